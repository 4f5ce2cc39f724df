import logging
from typing import Optional

from aws_cdk import Annotations, Stack
from constructs import Construct

from . import naming, outputs
from .settings import PipelineConfig
from .snow import SnowflakeResources
from .storage import LandingZone
from .tables import TAXI_COLUMNS

logger = logging.getLogger('data_pipeline')

NAME_TOKEN_CONTEXT = 'name_token'
USER_ARN_CONTEXT = 'snowflake_iam_user_arn'
EXTERNAL_ID_CONTEXT = 'snowflake_external_id'


class DataPipelineStack(Stack):
    """S3 landing zone wired to a Snowflake stage and destination table.

    Resources only reference attributes of the resources they depend on;
    CloudFormation derives the creation order from those references. The
    one edge that cannot be expressed is role trust -> storage integration
    identity, closed by redeploying with ``trust_user_arn`` and
    ``trust_external_id`` (see ``data_pipeline.handoff``).
    """

    def __init__(
            self,
            scope: Construct,
            id: str,
            config: PipelineConfig,
            name_token: Optional[str] = None,
            trust_user_arn: Optional[str] = None,
            trust_external_id: Optional[str] = None,
            **kwargs) -> None:
        super().__init__(scope, id, **kwargs)

        config.validate()
        self.config = config
        project, env = config.project, config.environment

        # AWS side
        self.landing = LandingZone(
            self, 'LandingZone',
            bucket_name=naming.bucket_name(project, env, name_token or self.account),
            role_name=naming.role_name(project, env),
            force_delete=config.force_delete,
            tags=config.resource_tags,
            trust_user_arn=trust_user_arn,
            trust_external_id=trust_external_id)
        bucket, role = self.landing.bucket, self.landing.role

        if self.landing.trust_is_placeholder:
            Annotations.of(self).add_warning(
                "Snowflake role trusts a placeholder principal. Redeploy with "
                "snowflake_iam_user_arn and snowflake_external_id context values.")
            logger.warning(f"{id}: role trust policy is a placeholder")

        # Snowflake side
        snow = SnowflakeResources(self, 'Snowflake',
                                  secret_name=config.secret_name)

        self.warehouse = snow.warehouse(
            name=naming.snowflake_name(env, f"{project}_WH"),
            size=config.warehouse_size,
            auto_suspend=config.auto_suspend,
            auto_resume=config.auto_resume,
            comment="Data pipeline warehouse managed by CDK")

        self.database = snow.database(
            name=naming.snowflake_name(env, f"{project}_DB"),
            comment="Data pipeline database managed by CDK")
        database_name = self.database.get_att_string('Name')

        self.schema = snow.schema(
            name="RAW",
            database=database_name,
            comment="Raw data landing schema")
        schema_name = self.schema.get_att_string('Name')

        # Bridge between the accounts
        self.storage_integration = snow.storage_integration(
            name=naming.snowflake_name(env, f"{project}_S3_INT"),
            role_arn=role.attr_arn,
            allowed_locations=[f"s3://{bucket.bucket_name}/"],
            comment="S3 storage integration managed by CDK")

        self.csv_format = snow.file_format(
            'CsvFormat',
            name="CSV_FORMAT",
            database=database_name,
            schema=schema_name,
            format_type="CSV",
            options={
                'field_delimiter': ',',
                'skip_header': 1,
                'null_if': ['NULL', 'null', ''],
                'empty_field_as_null': True,
            },
            comment="CSV file format for data ingestion")

        self.parquet_format = snow.file_format(
            'ParquetFormat',
            name="PARQUET_FORMAT",
            database=database_name,
            schema=schema_name,
            format_type="PARQUET",
            comment="Parquet file format for data ingestion")

        self.stage = snow.stage(
            name="S3_STAGE",
            database=database_name,
            schema=schema_name,
            url=f"s3://{bucket.bucket_name}/raw/",
            storage_integration=self.storage_integration.get_att_string('Name'),
            comment="External S3 stage managed by CDK")

        self.table = snow.table(
            name="TAXI_DATA",
            database=database_name,
            schema=schema_name,
            columns=TAXI_COLUMNS,
            comment="NYC Taxi trip data loaded from S3")

        self.outputs = outputs.export(self, {
            'BucketName': bucket.bucket_name,
            'BucketArn': bucket.bucket_arn,
            'RoleArn': role.attr_arn,
            'RoleName': role.ref,
            'WarehouseName': self.warehouse.get_att_string('Name'),
            'DatabaseName': database_name,
            'SchemaName': schema_name,
            'StageName': self.stage.get_att_string('Name'),
            'TableName': self.table.get_att_string('Name'),
            'StorageIntegrationName': self.storage_integration.get_att_string('Name'),
            'StorageAwsIamUserArn': self.storage_integration.get_att_string('StorageAwsIamUserArn'),
            'StorageAwsExternalId': self.storage_integration.get_att_string('StorageAwsExternalId'),
        })

    @classmethod
    def from_context(cls, scope: Construct, id: str, config: PipelineConfig, **kwargs) -> 'DataPipelineStack':
        """Build the stack from CDK context values.

        ``name_token`` fixes the bucket suffix; ``snowflake_iam_user_arn`` and
        ``snowflake_external_id`` are written by ``handoff identity`` after the
        first deploy and switch the role to the real trust policy.
        """
        node = scope.node
        return cls(scope, id,
                   config=config,
                   name_token=node.try_get_context(NAME_TOKEN_CONTEXT),
                   trust_user_arn=node.try_get_context(USER_ARN_CONTEXT),
                   trust_external_id=node.try_get_context(EXTERNAL_ID_CONTEXT),
                   **kwargs)
