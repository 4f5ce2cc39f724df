"""Handoff surface: exported identifiers and the SQL that consumes them."""
from typing import Dict

from aws_cdk import CfnOutput
from constructs import Construct

AWS_OUTPUTS = ['BucketName', 'BucketArn', 'RoleArn', 'RoleName']

SNOWFLAKE_OUTPUTS = [
    'WarehouseName',
    'DatabaseName',
    'SchemaName',
    'StageName',
    'TableName',
    'StorageIntegrationName',
]

# Read back after phase one to patch the role's trust policy
TRUST_OUTPUTS = ['StorageAwsIamUserArn', 'StorageAwsExternalId']

LOAD_TEMPLATE = """USE WAREHOUSE {WarehouseName};
USE DATABASE {DatabaseName};
USE SCHEMA {SchemaName};

COPY INTO {TableName}
FROM @{StageName}
FILE_FORMAT = {FileFormat}
MATCH_BY_COLUMN_NAME = CASE_INSENSITIVE
ON_ERROR = CONTINUE;

SELECT COUNT(*) AS total_rows FROM {TableName};
"""

VERIFY_TEMPLATE = """DESC STORAGE INTEGRATION {StorageIntegrationName};
LIST @{StageName};

CREATE OR REPLACE VIEW DAILY_SUMMARY AS
SELECT
    DATE_TRUNC('day', PICKUP_DATETIME) AS trip_date,
    COUNT(*) AS trip_count,
    SUM(PASSENGER_COUNT) AS total_passengers,
    AVG(TRIP_DISTANCE) AS avg_distance,
    AVG(FARE_AMOUNT) AS avg_fare,
    AVG(TIP_AMOUNT) AS avg_tip,
    SUM(TOTAL_AMOUNT) AS total_revenue
FROM {TableName}
GROUP BY 1;
"""

INSTRUCTIONS_TEMPLATE = """Next steps:
1. Patch the role trust policy with the storage integration identity:
   python -m data_pipeline.handoff identity --integration {StorageIntegrationName} --write-context cdk.context.json
   cdk deploy
   python -m data_pipeline.handoff status --role-name {RoleName}
2. Upload data to the landing zone:
   aws s3 cp data/sample.csv s3://{BucketName}/raw/
   aws s3 cp yellow_tripdata_2024-01.parquet s3://{BucketName}/raw/
3. Load it in Snowflake:
{LoadScript}"""


def render_load_script(names: Dict[str, str], file_format: str = 'PARQUET_FORMAT') -> str:
    """Render the COPY INTO script for the exported names.

    Args:
        names: Output values keyed by output name
        file_format: PARQUET_FORMAT or CSV_FORMAT
    """
    return LOAD_TEMPLATE.format(FileFormat=file_format, **names)


def render_verify_script(names: Dict[str, str]) -> str:
    return VERIFY_TEMPLATE.format(**names)


def render_instructions(names: Dict[str, str]) -> str:
    load = '\n'.join(f"   {line}" if line else line
                     for line in render_load_script(names).splitlines())
    return INSTRUCTIONS_TEMPLATE.format(LoadScript=load, **names)


def export(scope: Construct, values: Dict[str, str]) -> Dict[str, CfnOutput]:
    """Declare one stack output per value plus the rendered instructions"""
    outputs = {
        name: CfnOutput(scope, name, value=value)
        for name, value in values.items()
    }
    outputs['Instructions'] = CfnOutput(scope, 'Instructions',
                                        value=render_instructions(values))
    return outputs
