import os
from dataclasses import dataclass, field, fields
from typing import Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), 'config', 'pipeline.yaml')


@dataclass
class PipelineConfig:
    """Configuration for one environment of the landing-zone pipeline"""
    project: str
    environment: str
    warehouse_size: str = "X-SMALL"
    auto_suspend: int = 60
    auto_resume: bool = True
    force_delete: bool = True
    secret_name: str = "snowflake/accountadmin"
    tags: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validates pipeline configuration"""
        valid_sizes = {"X-SMALL", "SMALL", "MEDIUM", "LARGE", "X-LARGE"}
        if not self.project:
            raise ValueError("Project name cannot be empty")
        if not self.environment:
            raise ValueError("Environment cannot be empty")
        if self.warehouse_size.upper() not in valid_sizes:
            raise ValueError(
                f"Invalid warehouse size. Must be one of {valid_sizes}")
        if self.auto_suspend < 0:
            raise ValueError("auto_suspend must be >= 0")

    @property
    def resource_tags(self) -> Dict[str, str]:
        return {
            'Project': self.project,
            'Environment': self.environment,
            **self.tags
        }


# Keys that defaults and environment overrides may set
ENVIRONMENT_SETTINGS = {f.name for f in fields(PipelineConfig)} - {'project', 'environment', 'tags'}


def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load and parse a YAML configuration file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        dict: Parsed YAML configuration

    Raises:
        FileNotFoundError: If configuration file does not exist
        yaml.YAMLError: If YAML parsing fails
    """
    with open(path, 'r') as f:
        return yaml.safe_load(f)


def resolve_environment(environment: Optional[str] = None) -> str:
    """Pick the target environment: explicit value, then PIPELINE_ENV, then dev"""
    return ((isinstance(environment, str) and environment.lower())
            or os.getenv('PIPELINE_ENV', 'dev').lower())


def pipeline_config(environment: Optional[str] = None, path: str = DEFAULT_CONFIG_PATH) -> PipelineConfig:
    """Build the validated configuration for an environment.

    Environment overrides are merged over the file's defaults.
    """
    raw = load_config(path)
    env = resolve_environment(environment)

    environments = raw.get('environments') or {}
    if env not in environments:
        raise ValueError(
            f"Invalid environment: {env}. Must be one of {sorted(environments)}")

    settings = {**(raw.get('defaults') or {}), **(environments[env] or {})}
    unknown = set(settings) - ENVIRONMENT_SETTINGS
    if unknown:
        raise ValueError(
            f"Unknown configuration keys for {env}: {sorted(unknown)}")

    config = PipelineConfig(
        project=raw['project'],
        environment=env,
        tags=raw.get('tags') or {},
        **settings
    )
    config.validate()
    return config
