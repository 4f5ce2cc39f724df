from typing import Dict, Optional

from aws_cdk import (
    RemovalPolicy,
    Tags,
    aws_iam as iam,
    aws_s3 as s3,
)
from constructs import Construct

from . import policies


class LandingZone(Construct):
    """S3 landing bucket plus the IAM role Snowflake assumes to read it.

    The role's trust policy is rendered from ``trust_user_arn`` and
    ``trust_external_id``. Both are unknown on the first apply, since the
    storage integration only discloses them after it exists, so the role is
    created with the placeholder trust and patched by a second apply.
    """

    def __init__(
            self,
            scope: Construct,
            id: str,
            bucket_name: str,
            role_name: str,
            force_delete: bool = False,
            tags: Optional[Dict[str, str]] = None,
            trust_user_arn: Optional[str] = None,
            trust_external_id: Optional[str] = None,
            **kwargs) -> None:
        super().__init__(scope, id, **kwargs)

        self.trust_policy = policies.trust_policy(
            trust_user_arn, trust_external_id)

        # Role Snowflake assumes
        self.role = iam.CfnRole(self, 'SnowflakeRole',
                                role_name=role_name,
                                assume_role_policy_document=self.trust_policy)

        # Landing bucket is always destroyed with the stack; without force delete
        # it must be emptied first or the teardown fails
        self.bucket = s3.Bucket(self, 'Bucket',
                                bucket_name=bucket_name,
                                removal_policy=RemovalPolicy.DESTROY,
                                auto_delete_objects=force_delete)

        for statement in policies.bucket_policy(self.bucket.bucket_arn, self.role.attr_arn)['Statement']:
            self.bucket.add_to_resource_policy(
                iam.PolicyStatement.from_json(statement))

        # S3 read permissions for the role
        self.role_policy = iam.CfnRolePolicy(self, 'SnowflakePolicy',
                                             role_name=self.role.ref,
                                             policy_name=f"{role_name}-read",
                                             policy_document=policies.read_policy(self.bucket.bucket_arn))

        for key, value in (tags or {}).items():
            Tags.of(self).add(key, value)

    @property
    def trust_is_placeholder(self) -> bool:
        return policies.is_placeholder_trust(self.trust_policy)
