import re

from aws_cdk import Token

_BUCKET_NAME = re.compile(r'^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$')
# Resolved name minus its token, which needs at least one character
_BUCKET_PREFIX = re.compile(r'^[a-z0-9][a-z0-9.-]{0,60}-$')


def bucket_name(project: str, environment: str, token: str) -> str:
    """Build the landing bucket name from project, environment and a uniqueness token.

    Args:
        project: Project name
        environment: Environment name (dev, stg, prd)
        token: Caller supplied suffix, or an unresolved engine token such as the account id

    Returns:
        str: ``<project>-data-<env>-<token>``

    Raises:
        ValueError: If the name, or its prefix when the token is unresolved,
            breaks S3 bucket naming rules
    """
    if not token:
        raise ValueError("Bucket name token cannot be empty")

    if Token.is_unresolved(token):
        # Only the token itself is left to S3 at deploy time
        prefix = f"{project}-data-{environment}-".lower()
        if not _BUCKET_PREFIX.match(prefix) or '..' in prefix:
            raise ValueError(f"Invalid S3 bucket name prefix: {prefix}")
        return f"{prefix}{token}"

    name = f"{project}-data-{environment}-{token}".lower()
    if not _BUCKET_NAME.match(name) or '..' in name:
        raise ValueError(f"Invalid S3 bucket name: {name}")
    return name


def snowflake_name(environment: str, name: str) -> str:
    """Formats an account-level Snowflake object name with the environment prefix"""
    return f"{environment}_{name}".replace('-', '_').upper()


def role_name(project: str, environment: str) -> str:
    return f"{project}-snowflake-access-{environment}"
