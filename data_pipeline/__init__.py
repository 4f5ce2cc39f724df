"""
S3 landing zone and Snowflake load pipeline declared with AWS CDK.
"""

from .settings import PipelineConfig, pipeline_config
from .stack import DataPipelineStack

__all__ = [
    'DataPipelineStack',
    'PipelineConfig',
    'pipeline_config'
]
