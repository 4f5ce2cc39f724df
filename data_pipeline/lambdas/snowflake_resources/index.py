import json
import logging
import os
import re
from typing import Any, Dict, List

import boto3
from snowflake.core import Root
from snowflake.core.database import Database
from snowflake.core.schema import Schema
from snowflake.core.table import Table, TableColumn
from snowflake.core.warehouse import Warehouse
from snowflake.snowpark import Session

# Set up logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_$]*$')

SCOPED_TYPES = {'FileFormat', 'Stage', 'Table'}


class SnowflakeResourceError(Exception):
    """Custom exception for Snowflake custom resource errors"""
    pass


def validate_props(props: Dict[str, Any]) -> None:
    """Validate the properties passed to the custom resource"""
    resource_type = props.get('ResourceType')
    if resource_type not in HANDLERS:
        raise SnowflakeResourceError(
            f"Unsupported resource type: {resource_type}")

    required_props = ['Name']
    if resource_type == 'Schema':
        required_props.append('Database')
    if resource_type in SCOPED_TYPES:
        required_props += ['Database', 'Schema']
    if resource_type == 'StorageIntegration':
        required_props += ['StorageAwsRoleArn', 'StorageAllowedLocations']
    if resource_type == 'Stage':
        required_props += ['Url', 'StorageIntegration']

    missing_props = [prop for prop in required_props if not props.get(prop)]
    if missing_props:
        raise SnowflakeResourceError(
            f"Missing required properties: {', '.join(missing_props)}")

    for prop in ['Name', 'Database', 'Schema', 'StorageIntegration']:
        if prop in props and not IDENTIFIER.match(props[prop]):
            raise SnowflakeResourceError(
                f"{prop} must contain only alphanumeric characters and underscores: {props[prop]}")

    for location in props.get('StorageAllowedLocations', []):
        if not location.startswith('s3://'):
            raise SnowflakeResourceError(
                f"Invalid S3 location format: {location}")


def quote(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def qualified_name(props: Dict[str, Any]) -> str:
    """Physical id: fully qualified object name"""
    if props['ResourceType'] in SCOPED_TYPES:
        return f"{props['Database']}.{props['Schema']}.{props['Name']}"
    if props['ResourceType'] == 'Schema':
        return f"{props['Database']}.{props['Name']}"
    return props['Name']


def get_root() -> Root:
    """Create Snowflake connection from AWS Secrets Manager credentials"""
    client = boto3.client('secretsmanager')
    secret = json.loads(client.get_secret_value(
        SecretId=os.environ['SECRET_NAME'])['SecretString'])

    session = Session.builder.configs({
        "account": secret['account'],
        "host": secret['host'],
        "user": secret['username'],
        "password": secret['password'],
        "role": secret['role'],
        "warehouse": secret.get('warehouse', 'COMPUTE_WH')
    }).create()

    return Root(session)


def execute(snow: Root, sql: str) -> List[Any]:
    logger.info(f"Executing: {sql}")
    return snow.session.sql(sql).collect()


# Warehouse


def create_or_alter_warehouse(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    snow.warehouses[props['Name']].create_or_alter(Warehouse(
        name=props['Name'],
        warehouse_size=props.get('WarehouseSize', 'X-SMALL'),
        auto_suspend=int(props.get('AutoSuspend', 60)),
        auto_resume=str(props.get('AutoResume', 'true')).lower(),
        comment=props.get('Comment')
    ))
    return {'Name': props['Name']}


def drop_warehouse(snow: Root, props: Dict[str, Any]) -> None:
    snow.warehouses[props['Name']].drop(if_exists=True)


# Database and schema


def create_or_alter_database(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    snow.databases[props['Name']].create_or_alter(Database(
        name=props['Name'],
        comment=props.get('Comment')
    ))
    return {'Name': props['Name']}


def drop_database(snow: Root, props: Dict[str, Any]) -> None:
    snow.databases[props['Name']].drop(if_exists=True)


def create_or_alter_schema(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    snow.databases[props['Database']].schemas[props['Name']].create_or_alter(Schema(
        name=props['Name'],
        comment=props.get('Comment')
    ))
    return {'Name': props['Name']}


def drop_schema(snow: Root, props: Dict[str, Any]) -> None:
    snow.databases[props['Database']].schemas[props['Name']].drop(if_exists=True)


# Storage integration


def describe_integration(snow: Root, integration_name: str) -> Dict[str, str]:
    """Get storage integration properties"""
    rows = execute(snow, f"DESC STORAGE INTEGRATION {integration_name}")
    # property, property_type, property_value, property_default
    return {row[0]: row[2] for row in rows}


def create_or_alter_storage_integration(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    """Create the integration once, then alter it in place.

    Replacing it would regenerate the external ID and break the role's trust.
    """
    name = props['Name']
    locations = ', '.join(quote(loc) for loc in props['StorageAllowedLocations'])
    settings = f"""
        STORAGE_AWS_ROLE_ARN = {quote(props['StorageAwsRoleArn'])}
        STORAGE_ALLOWED_LOCATIONS = ({locations})
        COMMENT = {quote(props.get('Comment', ''))}"""

    execute(snow, f"""
    CREATE STORAGE INTEGRATION IF NOT EXISTS {name}
        TYPE = EXTERNAL_STAGE
        STORAGE_PROVIDER = 'S3'
        ENABLED = TRUE{settings}
    """)
    execute(snow, f"""
    ALTER STORAGE INTEGRATION {name} SET
        ENABLED = TRUE{settings}
    """)

    desc = describe_integration(snow, name)
    return {
        'Name': name,
        'StorageAwsIamUserArn': desc['STORAGE_AWS_IAM_USER_ARN'],
        'StorageAwsExternalId': desc['STORAGE_AWS_EXTERNAL_ID']
    }


def drop_storage_integration(snow: Root, props: Dict[str, Any]) -> None:
    execute(snow, f"DROP STORAGE INTEGRATION IF EXISTS {props['Name']}")


# File format and stage


def create_or_replace_file_format(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    # Option values arrive already rendered as SQL literals
    options = ''.join(f"\n        {key} = {value}"
                      for key, value in (props.get('Options') or {}).items())
    execute(snow, f"""
    CREATE OR REPLACE FILE FORMAT {qualified_name(props)}
        TYPE = {props.get('FormatType', 'CSV')}{options}
        COMMENT = {quote(props.get('Comment', ''))}
    """)
    return {'Name': props['Name']}


def drop_file_format(snow: Root, props: Dict[str, Any]) -> None:
    execute(snow, f"DROP FILE FORMAT IF EXISTS {qualified_name(props)}")


def create_or_replace_stage(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    execute(snow, f"""
    CREATE OR REPLACE STAGE {qualified_name(props)}
        URL = {quote(props['Url'])}
        STORAGE_INTEGRATION = {props['StorageIntegration']}
        COMMENT = {quote(props.get('Comment', ''))}
    """)
    return {'Name': props['Name']}


def drop_stage(snow: Root, props: Dict[str, Any]) -> None:
    execute(snow, f"DROP STAGE IF EXISTS {qualified_name(props)}")


# Table


def table_columns(props: Dict[str, Any]) -> List[TableColumn]:
    """Columns in declared order; COPY INTO matches on this layout"""
    return [
        TableColumn(
            name=column['Name'],
            datatype=column['Type'],
            default=column.get('Default')
        )
        for column in props.get('Columns', [])
    ]


def create_or_alter_table(snow: Root, props: Dict[str, Any]) -> Dict[str, str]:
    tables = snow.databases[props['Database']].schemas[props['Schema']].tables
    tables[props['Name']].create_or_alter(Table(
        name=props['Name'],
        columns=table_columns(props),
        comment=props.get('Comment')
    ))
    return {'Name': props['Name']}


def drop_table(snow: Root, props: Dict[str, Any]) -> None:
    snow.databases[props['Database']].schemas[props['Schema']
                                              ].tables[props['Name']].drop(if_exists=True)


HANDLERS = {
    'Warehouse': (create_or_alter_warehouse, drop_warehouse),
    'Database': (create_or_alter_database, drop_database),
    'Schema': (create_or_alter_schema, drop_schema),
    'StorageIntegration': (create_or_alter_storage_integration, drop_storage_integration),
    'FileFormat': (create_or_replace_file_format, drop_file_format),
    'Stage': (create_or_replace_stage, drop_stage),
    'Table': (create_or_alter_table, drop_table),
}


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Handle Snowflake resource creation, updates and deletion"""
    request_type = event['RequestType']
    props = event['ResourceProperties']
    logger.info(
        f"Processing {request_type} request for {props.get('ResourceType')} {props.get('Name')}")

    try:
        validate_props(props)
        apply, drop = HANDLERS[props['ResourceType']]

        # Connect to Snowflake
        snow = get_root()

        try:
            if request_type in ['Create', 'Update']:
                data = apply(snow, props)
                return {
                    'PhysicalResourceId': qualified_name(props),
                    'Data': data
                }

            if request_type == 'Delete':
                drop(snow, props)
                return {
                    'PhysicalResourceId': event.get('PhysicalResourceId', qualified_name(props))
                }

            raise SnowflakeResourceError(
                f"Unsupported request type: {request_type}")
        finally:
            snow.session.close()

    except Exception as e:
        logger.error(
            f"Error processing {request_type} request for {props.get('Name')}: {str(e)}")
        raise SnowflakeResourceError(
            f"Error processing {request_type} request for {props.get('Name')}: {str(e)}") from e
