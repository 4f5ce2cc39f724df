#!/usr/bin/env python3
import logging

from aws_cdk import App, Environment

from data_pipeline.settings import pipeline_config
from data_pipeline.stack import DataPipelineStack

"""
Logging setup
"""
logger = logging.getLogger('data_pipeline')
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setLevel(logging.INFO)
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)

app = App()

config = pipeline_config(app.node.try_get_context("env"))

env = Environment(
    account=app.node.try_get_context("account"),
    region=app.node.try_get_context("region")
)

DataPipelineStack.from_context(app, f"DataPipeline-{config.environment}",
                               config=config, env=env)

logger.info(f"Synthesizing {config.project} for {config.environment}")

app.synth()
