from unittest.mock import MagicMock, patch

import pytest

from data_pipeline.lambdas.snowflake_resources import index
from data_pipeline.lambdas.snowflake_resources.index import SnowflakeResourceError

DESC_ROWS = [
    ("ENABLED", "Boolean", "true", "false"),
    ("STORAGE_AWS_IAM_USER_ARN", "String",
     "arn:aws:iam::123456789012:user/abc1-b-self1234", ""),
    ("STORAGE_AWS_EXTERNAL_ID", "String", "ACCOUNT_SFCRole=2_abc=", ""),
]


@pytest.fixture(scope="function")
def snow():
    """Mock Root with a Snowpark session"""
    root = MagicMock()
    root.session.sql.return_value.collect.return_value = []
    return root


@pytest.fixture(autouse=True)
def get_root(snow):
    with patch.object(index, 'get_root', return_value=snow) as mock_get_root:
        yield mock_get_root


def event(request_type: str, **props) -> dict:
    return {
        'RequestType': request_type,
        'PhysicalResourceId': props.pop('PhysicalResourceId', None),
        'ResourceProperties': {'ServiceToken': 'arn:aws:lambda:token', **props}
    }


def executed(snow) -> list:
    return [call.args[0] for call in snow.session.sql.call_args_list]


def test_create_warehouse(snow):
    """Test warehouse creation from string properties"""
    response = index.handler(event(
        'Create', ResourceType='Warehouse', Name='DEV_DATA_PIPELINE_WH',
        WarehouseSize='X-SMALL', AutoSuspend='60', AutoResume='true',
        Comment='Data pipeline warehouse'), None)

    assert response == {
        'PhysicalResourceId': 'DEV_DATA_PIPELINE_WH',
        'Data': {'Name': 'DEV_DATA_PIPELINE_WH'}
    }
    snow.warehouses.__getitem__.assert_called_with('DEV_DATA_PIPELINE_WH')
    warehouse = snow.warehouses['DEV_DATA_PIPELINE_WH'].create_or_alter.call_args.args[0]
    assert warehouse.name == 'DEV_DATA_PIPELINE_WH'
    assert warehouse.warehouse_size == 'X-SMALL'
    assert warehouse.auto_suspend == 60
    snow.session.close.assert_called_once()


def test_create_schema(snow):
    response = index.handler(event(
        'Create', ResourceType='Schema', Name='RAW',
        Database='DEV_DATA_PIPELINE_DB'), None)

    assert response['PhysicalResourceId'] == 'DEV_DATA_PIPELINE_DB.RAW'
    snow.databases.__getitem__.assert_called_with('DEV_DATA_PIPELINE_DB')
    schema = snow.databases['DEV_DATA_PIPELINE_DB'].schemas['RAW'].create_or_alter.call_args.args[0]
    assert schema.name == 'RAW'


def test_create_storage_integration(snow):
    """Integration returns the identity the role trust policy needs"""
    snow.session.sql.return_value.collect.return_value = DESC_ROWS

    response = index.handler(event(
        'Create', ResourceType='StorageIntegration', Name='DEV_DATA_PIPELINE_S3_INT',
        StorageAwsRoleArn='arn:aws:iam::123456789012:role/snowflake',
        StorageAllowedLocations=['s3://data-pipeline-data-dev-abc123/']), None)

    assert response['Data'] == {
        'Name': 'DEV_DATA_PIPELINE_S3_INT',
        'StorageAwsIamUserArn': 'arn:aws:iam::123456789012:user/abc1-b-self1234',
        'StorageAwsExternalId': 'ACCOUNT_SFCRole=2_abc='
    }

    statements = executed(snow)
    assert "CREATE STORAGE INTEGRATION IF NOT EXISTS DEV_DATA_PIPELINE_S3_INT" in statements[0]
    assert "STORAGE_AWS_ROLE_ARN = 'arn:aws:iam::123456789012:role/snowflake'" in statements[0]
    assert "STORAGE_ALLOWED_LOCATIONS = ('s3://data-pipeline-data-dev-abc123/')" in statements[0]
    assert "ALTER STORAGE INTEGRATION DEV_DATA_PIPELINE_S3_INT SET" in statements[1]
    assert statements[2] == "DESC STORAGE INTEGRATION DEV_DATA_PIPELINE_S3_INT"


def test_create_file_format(snow):
    """Rendered options are passed through in order"""
    index.handler(event(
        'Create', ResourceType='FileFormat', Name='CSV_FORMAT',
        Database='DEV_DATA_PIPELINE_DB', Schema='RAW', FormatType='CSV',
        Options={'FIELD_DELIMITER': "','", 'SKIP_HEADER': '1',
                 'NULL_IF': "('NULL', 'null', '')"},
        Comment="CSV file format"), None)

    sql = executed(snow)[0]
    assert "CREATE OR REPLACE FILE FORMAT DEV_DATA_PIPELINE_DB.RAW.CSV_FORMAT" in sql
    assert "TYPE = CSV" in sql
    assert sql.index("FIELD_DELIMITER = ','") < sql.index("SKIP_HEADER = 1")
    assert "NULL_IF = ('NULL', 'null', '')" in sql
    assert "COMMENT = 'CSV file format'" in sql


def test_create_stage(snow):
    index.handler(event(
        'Create', ResourceType='Stage', Name='S3_STAGE',
        Database='DEV_DATA_PIPELINE_DB', Schema='RAW',
        Url='s3://data-pipeline-data-dev-abc123/raw/',
        StorageIntegration='DEV_DATA_PIPELINE_S3_INT'), None)

    sql = executed(snow)[0]
    assert "CREATE OR REPLACE STAGE DEV_DATA_PIPELINE_DB.RAW.S3_STAGE" in sql
    assert "URL = 's3://data-pipeline-data-dev-abc123/raw/'" in sql
    assert "STORAGE_INTEGRATION = DEV_DATA_PIPELINE_S3_INT" in sql


def test_create_table_keeps_column_order(snow):
    """Test table columns in declared order with defaults"""
    columns = [
        {'Name': 'VENDOR_ID', 'Type': 'NUMBER'},
        {'Name': 'PICKUP_DATETIME', 'Type': 'TIMESTAMP'},
        {'Name': 'LOADED_AT', 'Type': 'TIMESTAMP', 'Default': 'CURRENT_TIMESTAMP()'},
    ]
    response = index.handler(event(
        'Update', ResourceType='Table', Name='TAXI_DATA',
        Database='DEV_DATA_PIPELINE_DB', Schema='RAW', Columns=columns), None)

    assert response['PhysicalResourceId'] == 'DEV_DATA_PIPELINE_DB.RAW.TAXI_DATA'
    tables = snow.databases['DEV_DATA_PIPELINE_DB'].schemas['RAW'].tables
    table = tables['TAXI_DATA'].create_or_alter.call_args.args[0]
    assert [column.name for column in table.columns] == [
        'VENDOR_ID', 'PICKUP_DATETIME', 'LOADED_AT']
    assert table.columns[2].default == 'CURRENT_TIMESTAMP()'


def test_delete_drops_if_exists(snow):
    """Test delete requests drop the object and keep the physical id"""
    response = index.handler(event(
        'Delete', ResourceType='Stage', Name='S3_STAGE',
        Database='DEV_DATA_PIPELINE_DB', Schema='RAW',
        Url='s3://bucket/raw/', StorageIntegration='INT',
        PhysicalResourceId='DEV_DATA_PIPELINE_DB.RAW.S3_STAGE'), None)

    assert response == {
        'PhysicalResourceId': 'DEV_DATA_PIPELINE_DB.RAW.S3_STAGE'}
    assert executed(snow) == [
        "DROP STAGE IF EXISTS DEV_DATA_PIPELINE_DB.RAW.S3_STAGE"]


def test_delete_database(snow):
    index.handler(event('Delete', ResourceType='Database',
                        Name='DEV_DATA_PIPELINE_DB'), None)
    snow.databases['DEV_DATA_PIPELINE_DB'].drop.assert_called_once_with(
        if_exists=True)


def test_invalid_properties(get_root):
    """Validation fails before any Snowflake connection is made"""
    # Test unsupported resource type
    with pytest.raises(SnowflakeResourceError, match="Unsupported resource type"):
        index.handler(event('Create', ResourceType='Pipe', Name='P'), None)

    # Test missing properties
    with pytest.raises(SnowflakeResourceError, match="Missing required properties: Database, Schema"):
        index.handler(event('Create', ResourceType='Table', Name='T'), None)

    # Test invalid identifier
    with pytest.raises(SnowflakeResourceError, match="alphanumeric"):
        index.handler(event('Create', ResourceType='Database',
                            Name='DB; DROP DATABASE X'), None)

    # Test invalid S3 location
    with pytest.raises(SnowflakeResourceError, match="Invalid S3 location format"):
        index.handler(event(
            'Create', ResourceType='StorageIntegration', Name='INT',
            StorageAwsRoleArn='arn', StorageAllowedLocations=['https://bucket/']), None)

    get_root.assert_not_called()


def test_snowflake_errors_are_raised(snow):
    """Provider errors surface to CloudFormation and the session is closed"""
    snow.session.sql.side_effect = RuntimeError("Object already exists")

    with pytest.raises(SnowflakeResourceError, match="Object already exists"):
        index.handler(event(
            'Create', ResourceType='FileFormat', Name='PARQUET_FORMAT',
            Database='DB', Schema='RAW', FormatType='PARQUET'), None)

    snow.session.close.assert_called_once()
