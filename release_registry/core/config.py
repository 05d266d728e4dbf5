"""
Configuration for the release registry.

Settings are resolved in three layers, later layers winning:
* Model defaults.
* An optional YAML file named by the REGISTRY_CONFIG_FILE environment variable.
* Individual environment variables (GITHUB_TOKEN, REGISTRY_DATA_DIR, ...).
"""
from __future__ import annotations

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV_VAR = "REGISTRY_CONFIG_FILE"
DATA_ROOT_ENV_VAR = "REGISTRY_DATA_DIR"

# Resolve repository root (project root, not the Python package root)
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"

# Environment variable -> config field. Values are parsed by pydantic.
_ENV_FIELDS = {
    "GITHUB_TOKEN": "github_token",
    "GITHUB_API_URL": "github_api_url",
    "GITHUB_GRAPHQL_URL": "github_graphql_url",
    DATA_ROOT_ENV_VAR: "data_dir",
    "REGISTRY_KEYS_DIR": "keys_dir",
    "REGISTRY_ALLOWED_AGE_SECONDS": "allowed_age_seconds",
    "REGISTRY_PAGE_SIZE": "releases_page_size",
    "REGISTRY_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "REGISTRY_LOG_LEVEL": "log_level",
}


class RegistryConfig(BaseModel):
    """
    Top-level configuration for the registry service.

    One instance is built at startup and handed to every service that needs it.
    """

    github_token: str = Field(
        default="",
        description="Token used for GitHub API calls and asset downloads.",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API (used for the repository existence probe).",
    )
    github_graphql_url: str = Field(
        default="https://api.github.com/graphql",
        description="URL of the GitHub GraphQL endpoint (used for release harvesting).",
    )
    data_dir: Path = Field(
        default=_DEFAULT_DATA_DIR,
        description="Root directory for the on-disk version cache.",
    )
    keys_dir: Optional[Path] = Field(
        default=None,
        description="Directory of '<namespace>/<KEYID>.asc' signing keys. Defaults to <data_dir>/keys.",
    )
    allowed_age_seconds: int = Field(
        default=55 * 60,
        ge=0,
        description="Maximum age of a cache entry before reads trigger a background refresh.",
    )
    releases_page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Number of releases requested per GraphQL page.",
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout applied to every upstream request.",
    )
    provider_namespace_redirects: Dict[str, str] = Field(
        default_factory=dict,
        description="Maps a provider namespace to the GitHub owner that actually publishes its releases.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level.",
    )

    @property
    def allowed_age(self) -> timedelta:
        return timedelta(seconds=self.allowed_age_seconds)

    @property
    def effective_keys_dir(self) -> Path:
        return self.keys_dir or (self.data_dir / "keys")

    def effective_provider_namespace(self, namespace: str) -> str:
        """
        Map a provider namespace for authors that do not publish artifacts
        as GitHub releases under their own namespace.
        """
        return self.provider_namespace_redirects.get(namespace, namespace)


def _load_yaml(path: Path) -> dict:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
    return raw


def load_config(environ: Optional[Mapping[str, str]] = None) -> RegistryConfig:
    """
    Build the registry configuration from an optional YAML file and the environment.
    """
    env = os.environ if environ is None else environ
    values: dict = {}

    config_file = env.get(CONFIG_FILE_ENV_VAR)
    if config_file:
        path = Path(config_file).expanduser()
        logger.info(f"Loading config file {path}")
        values.update(_load_yaml(path))

    for env_name, field_name in _ENV_FIELDS.items():
        if env.get(env_name):
            values[field_name] = env[env_name]

    redirects_json = env.get("PROVIDER_NAMESPACE_REDIRECTS")
    if redirects_json:
        try:
            values["provider_namespace_redirects"] = json.loads(redirects_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"could not parse PROVIDER_NAMESPACE_REDIRECTS: {e}") from e

    config = RegistryConfig(**values)
    config.data_dir = config.data_dir.expanduser()
    config.data_dir.mkdir(parents=True, exist_ok=True)

    if not config.github_token:
        logger.warning("GITHUB_TOKEN is not set; upstream requests will be unauthenticated")

    return config
