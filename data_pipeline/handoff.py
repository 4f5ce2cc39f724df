"""Second phase of the cross-account trust handshake.

The storage integration's AWS identity only exists after the first deploy.
This module reads it back from Snowflake, records it as CDK context for the
next ``cdk deploy`` and checks whether the live role still trusts the
placeholder principal.

Usage:
    python -m data_pipeline.handoff identity --integration DEV_DATA_PIPELINE_S3_INT --write-context cdk.context.json
    cdk deploy
    python -m data_pipeline.handoff status --role-name data-pipeline-snowflake-access-dev
"""
import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import boto3
import snowflake.connector
from botocore.exceptions import ClientError

from .policies import is_placeholder_trust
from .stack import EXTERNAL_ID_CONTEXT, USER_ARN_CONTEXT

PLACEHOLDER = 'PLACEHOLDER'
PATCHED = 'PATCHED'

"""
Logging setup
"""
logger = logging.getLogger('handoff')
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setLevel(logging.INFO)
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)


class HandoffError(Exception):
    """Custom exception for trust handshake errors"""
    pass


@dataclass(frozen=True)
class IntegrationIdentity:
    """AWS identity Snowflake generated for a storage integration"""
    user_arn: str
    external_id: str

    def to_context(self) -> Dict[str, str]:
        return {
            USER_ARN_CONTEXT: self.user_arn,
            EXTERNAL_ID_CONTEXT: self.external_id
        }


def get_snowflake_connection(secret_name: str, boto_session: Optional[boto3.Session] = None) -> snowflake.connector.SnowflakeConnection:
    """Create Snowflake connection from AWS Secrets Manager credentials"""
    session = boto_session or boto3.session.Session()
    client = session.client('secretsmanager')

    try:
        secret = client.get_secret_value(SecretId=secret_name)
        creds = json.loads(secret['SecretString'])
    except ClientError as e:
        raise HandoffError(f"Failed to get secret {secret_name}: {e}")

    return snowflake.connector.connect(
        account=creds['account'],
        user=creds['username'],
        password=creds['password'],
        role=creds.get('role')
    )


def describe_integration(conn: Any, integration_name: str) -> IntegrationIdentity:
    """Read the generated IAM user ARN and external ID of a storage integration"""
    cursor = conn.cursor()
    try:
        cursor.execute(f"DESC STORAGE INTEGRATION {integration_name}")
        # property, property_type, property_value, property_default
        desc = {row[0]: row[2] for row in cursor.fetchall()}
    finally:
        cursor.close()

    try:
        return IntegrationIdentity(
            user_arn=desc['STORAGE_AWS_IAM_USER_ARN'],
            external_id=desc['STORAGE_AWS_EXTERNAL_ID'])
    except KeyError as e:
        raise HandoffError(
            f"Storage integration {integration_name} did not report {e}")


def write_context(path: str, identity: IntegrationIdentity) -> Dict[str, Any]:
    """Merge the integration identity into a CDK context file"""
    context = {}
    if os.path.exists(path):
        with open(path, 'r') as f:
            context = json.load(f)

    context.update(identity.to_context())

    with open(path, 'w') as f:
        json.dump(context, f, indent=2, sort_keys=True)
        f.write('\n')

    return context


def trust_status(iam_client: Any, role_name: str) -> str:
    """Report whether the live role still trusts the placeholder principal"""
    try:
        role = iam_client.get_role(RoleName=role_name)['Role']
    except ClientError as e:
        raise HandoffError(f"Failed to read role {role_name}: {e}")

    document = role['AssumeRolePolicyDocument']
    if isinstance(document, str):
        document = json.loads(document)

    return PLACEHOLDER if is_placeholder_trust(document) else PATCHED


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Close the Snowflake storage integration trust handshake')
    commands = parser.add_subparsers(dest='command', required=True)

    identity = commands.add_parser(
        'identity', help='Read the storage integration identity')
    identity.add_argument('--integration', required=True,
                          help='Storage integration name')
    identity.add_argument('--secret', default='snowflake/accountadmin',
                          help='Secrets Manager secret with Snowflake credentials')
    identity.add_argument('--write-context', metavar='PATH',
                          help='CDK context file to record the identity in')

    status = commands.add_parser(
        'status', help='Check the live role trust policy')
    status.add_argument('--role-name', required=True,
                        help='IAM role Snowflake assumes')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        if args.command == 'identity':
            conn = get_snowflake_connection(args.secret)
            try:
                identity = describe_integration(conn, args.integration)
            finally:
                conn.close()

            print(json.dumps(identity.to_context(), indent=2))
            if args.write_context:
                write_context(args.write_context, identity)
                logger.info(
                    f"Wrote integration identity to {args.write_context}; run cdk deploy to patch the role")
            return 0

        status = trust_status(boto3.client('iam'), args.role_name)
        print(status)
        if status == PLACEHOLDER:
            logger.error(
                f"Role {args.role_name} still trusts the placeholder principal; deployment is not complete")
            return 1
        return 0

    except HandoffError as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
