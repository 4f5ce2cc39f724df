"""IAM policy documents for the Snowflake landing zone."""
from typing import Any, Dict, List, Optional

POLICY_VERSION = "2012-10-17"

# Stand-ins until the storage integration discloses its AWS identity
PLACEHOLDER_PRINCIPAL = "*"
PLACEHOLDER_EXTERNAL_ID = "snowflake_external_id"

BUCKET_READ_ACTIONS = [
    "s3:GetObject",
    "s3:GetObjectVersion",
    "s3:ListBucket",
]

ROLE_READ_ACTIONS = BUCKET_READ_ACTIONS + ["s3:GetBucketLocation"]


def _resources(bucket_arn: str) -> List[str]:
    return [bucket_arn, f"{bucket_arn}/*"]


def bucket_policy(bucket_arn: str, role_arn: str) -> Dict[str, Any]:
    """Bucket policy letting the Snowflake access role read the landing zone"""
    return {
        "Version": POLICY_VERSION,
        "Statement": [{
            "Sid": "AllowSnowflakeAccess",
            "Effect": "Allow",
            "Principal": {"AWS": role_arn},
            "Action": BUCKET_READ_ACTIONS,
            "Resource": _resources(bucket_arn)
        }]
    }


def read_policy(bucket_arn: str) -> Dict[str, Any]:
    """Permissions granted to the role Snowflake assumes"""
    return {
        "Version": POLICY_VERSION,
        "Statement": [{
            "Effect": "Allow",
            "Action": ROLE_READ_ACTIONS,
            "Resource": _resources(bucket_arn)
        }]
    }


def trust_policy(user_arn: Optional[str] = None, external_id: Optional[str] = None) -> Dict[str, Any]:
    """Trust relationship for the Snowflake access role.

    Without the storage integration's IAM user ARN and external ID this
    returns the placeholder document (wildcard principal). That state is
    insecure and non-functional until the second apply supplies both values.

    Args:
        user_arn: STORAGE_AWS_IAM_USER_ARN of the storage integration
        external_id: STORAGE_AWS_EXTERNAL_ID of the storage integration
    """
    return {
        "Version": POLICY_VERSION,
        "Statement": [{
            "Effect": "Allow",
            "Principal": {
                "AWS": user_arn or PLACEHOLDER_PRINCIPAL
            },
            "Action": "sts:AssumeRole",
            "Condition": {
                "StringEquals": {
                    "sts:ExternalId": external_id or PLACEHOLDER_EXTERNAL_ID
                }
            }
        }]
    }


def is_placeholder_trust(document: Dict[str, Any]) -> bool:
    """True when any statement still trusts the wildcard principal or placeholder external ID"""
    for statement in document.get("Statement", []):
        principal = statement.get("Principal", {})
        aws = principal.get("AWS") if isinstance(principal, dict) else principal
        principals = aws if isinstance(aws, list) else [aws]
        if PLACEHOLDER_PRINCIPAL in principals:
            return True

        condition = statement.get("Condition", {}).get("StringEquals", {})
        if condition.get("sts:ExternalId") == PLACEHOLDER_EXTERNAL_ID:
            return True
    return False
