import os

import boto3
import pytest
from aws_cdk import App
from aws_cdk.assertions import Template
from moto import mock_aws

from data_pipeline.settings import pipeline_config
from data_pipeline.stack import DataPipelineStack

# Synthesis in tests never runs the docker bundling of the handler asset
NO_BUNDLING = {'aws:cdk:bundling-stacks': []}


@pytest.fixture(scope="function")
def synth():
    """Synthesize a DataPipelineStack and return (stack, template)"""
    def _synth(environment: str = "dev", context: dict = None, **kwargs):
        app = App(context={**NO_BUNDLING, **(context or {})})
        kwargs.setdefault('name_token', 'abc123')
        stack = DataPipelineStack(app, "TestStack",
                                  config=pipeline_config(environment),
                                  **kwargs)
        return stack, Template.from_stack(stack)
    return _synth


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture(scope="function")
def iam(aws_credentials):
    """Mocked IAM client"""
    with mock_aws():
        yield boto3.client("iam")
