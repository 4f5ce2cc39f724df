import os
from typing import Any, Dict, List, Optional

from aws_cdk import (
    BundlingOptions,
    CustomResource,
    Duration,
    Stack,
    aws_iam as iam,
    aws_lambda as lambda_,
    custom_resources as cr,
)
from constructs import Construct

from .tables import Column

HANDLER_CODE = os.path.join(os.path.dirname(__file__), 'lambdas', 'snowflake_resources')

# Handler dependencies are installed next to index.py in the asset
BUNDLING_COMMAND = [
    "bash", "-c",
    "pip install -r requirements.txt -t /asset-output && cp -au . /asset-output"
]


def sql_literal(value: Any) -> str:
    """Render a Python value as a Snowflake DDL literal.

    CloudFormation hands every custom resource property to the handler as a
    string, so option values are rendered at synth time.
    """
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return f"({', '.join(sql_literal(v) for v in value)})"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def render_options(options: Dict[str, Any]) -> Dict[str, str]:
    return {key.upper(): sql_literal(value) for key, value in options.items()}


class SnowflakeResources(Construct):
    """Snowflake objects declared as CloudFormation custom resources.

    Every object is served by one provider Lambda. Dependents receive the
    ``Name`` attribute of what they depend on, so CloudFormation orders the
    calls from the attribute flow alone.
    """

    def __init__(self, scope: Construct, id: str, secret_name: str, **kwargs) -> None:
        super().__init__(scope, id, **kwargs)

        # Lambda that handles Snowflake operations
        self.handler = lambda_.Function(
            self, 'SnowflakeHandler',
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_.Code.from_asset(
                HANDLER_CODE,
                exclude=['__pycache__', '*.pyc'],
                bundling=BundlingOptions(
                    image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                    command=BUNDLING_COMMAND
                )
            ),
            handler='index.handler',
            timeout=Duration.minutes(5),
            environment={
                'SECRET_NAME': secret_name
            }
        )

        stack = Stack.of(self)
        self.handler.add_to_role_policy(
            iam.PolicyStatement(
                actions=['secretsmanager:GetSecretValue'],
                resources=[
                    f"arn:{stack.partition}:secretsmanager:{stack.region}:{stack.account}:secret:{secret_name}*"]
            )
        )

        self.provider = cr.Provider(
            self, 'SnowflakeProvider',
            on_event_handler=self.handler
        )

    def _resource(self, id: str, resource_type: str, properties: Dict[str, Any]) -> CustomResource:
        return CustomResource(
            self, id,
            service_token=self.provider.service_token,
            resource_type=f"Custom::Snowflake{resource_type}",
            properties={'ResourceType': resource_type, **properties}
        )

    def warehouse(self, name: str, size: str, auto_suspend: int, auto_resume: bool,
                  comment: str = '') -> CustomResource:
        return self._resource('Warehouse', 'Warehouse', {
            'Name': name,
            'WarehouseSize': size,
            'AutoSuspend': str(auto_suspend),
            'AutoResume': str(auto_resume).lower(),
            'Comment': comment
        })

    def database(self, name: str, comment: str = '') -> CustomResource:
        return self._resource('Database', 'Database', {
            'Name': name,
            'Comment': comment
        })

    def schema(self, name: str, database: str, comment: str = '') -> CustomResource:
        return self._resource('Schema', 'Schema', {
            'Name': name,
            'Database': database,
            'Comment': comment
        })

    def storage_integration(self, name: str, role_arn: str, allowed_locations: List[str],
                            comment: str = '') -> CustomResource:
        return self._resource('StorageIntegration', 'StorageIntegration', {
            'Name': name,
            'StorageAwsRoleArn': role_arn,
            'StorageAllowedLocations': allowed_locations,
            'Comment': comment
        })

    def file_format(self, id: str, name: str, database: str, schema: str, format_type: str,
                    options: Optional[Dict[str, Any]] = None, comment: str = '') -> CustomResource:
        return self._resource(id, 'FileFormat', {
            'Name': name,
            'Database': database,
            'Schema': schema,
            'FormatType': format_type.upper(),
            'Options': render_options(options or {}),
            'Comment': comment
        })

    def stage(self, name: str, database: str, schema: str, url: str, storage_integration: str,
              comment: str = '') -> CustomResource:
        return self._resource('Stage', 'Stage', {
            'Name': name,
            'Database': database,
            'Schema': schema,
            'Url': url,
            'StorageIntegration': storage_integration,
            'Comment': comment
        })

    def table(self, name: str, database: str, schema: str, columns: List[Column],
              comment: str = '') -> CustomResource:
        return self._resource('Table', 'Table', {
            'Name': name,
            'Database': database,
            'Schema': schema,
            'Columns': [column.to_properties() for column in columns],
            'Comment': comment
        })
