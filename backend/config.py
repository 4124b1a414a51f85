"""
RunGhost configuration - `.runghost/config.yaml` validated with pydantic.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

import env
from errors import ConfigError
from models.identity import Identity, normalize_scope

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = ".runghost"
CONFIG_FILE_NAME = "config.yaml"


class NpmjsConfig(BaseModel):
    """npm registry settings for one identity."""

    scopes: List[str] = Field(default_factory=list)


class IdentityConfig(BaseModel):
    """A GitHub identity as written in config.yaml."""

    name: Optional[str] = None
    username: str
    scope: Optional[str] = None
    token: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    npmjs: Optional[NpmjsConfig] = None

    def all_scopes(self) -> List[str]:
        scopes: List[str] = []
        if self.scope:
            scopes.append(self.scope)
        if self.npmjs:
            scopes.extend(self.npmjs.scopes)
        return [normalize_scope(s) for s in scopes]


class CacheTtlConfig(BaseModel):
    """Advisory cache lifetimes in seconds; forceRefresh bypasses them."""

    scan_seconds: int = Field(default=5 * 60, ge=0, alias="scanSeconds")
    registry_listing_seconds: int = Field(default=60 * 60, ge=0, alias="registryListingSeconds")
    registry_package_seconds: int = Field(
        default=6 * 60 * 60, ge=0, alias="registryPackageSeconds"
    )

    class Config:
        populate_by_name = True


class RegistryConfig(BaseModel):
    """npm registry client tuning."""

    url: str = Field(default_factory=lambda: env.NPM_REGISTRY_URL)
    max_workers: int = Field(default=8, ge=1, alias="maxWorkers")
    requests_per_second: float = Field(default=10.0, gt=0, alias="requestsPerSecond")
    timeout_seconds: float = Field(default=30.0, gt=0, alias="timeoutSeconds")
    max_attempts: int = Field(default=5, ge=1, alias="maxAttempts")
    backoff_base_seconds: float = Field(default=0.5, ge=0, alias="backoffBaseSeconds")
    backoff_factor: float = Field(default=2.0, ge=1, alias="backoffFactor")
    jitter: float = Field(default=0.25, ge=0, le=1)
    page_size: int = Field(default=250, ge=1, le=250, alias="pageSize")

    class Config:
        populate_by_name = True


class RunGhostConfig(BaseModel):
    """Top-level configuration."""

    workspace_path: str = Field(default="", alias="workspacePath")
    data_directory: str = Field(default="~/.runghost", alias="dataDirectory")
    identities: Dict[str, IdentityConfig] = Field(default_factory=dict)
    cache_ttl: CacheTtlConfig = Field(default_factory=CacheTtlConfig, alias="cacheTtl")
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    scan_max_depth: int = Field(default=4, ge=0, alias="scanMaxDepth")
    refresh_timeout_seconds: float = Field(default=600.0, gt=0, alias="refreshTimeoutSeconds")
    refresh_interval_seconds: int = Field(default=300, ge=1, alias="refreshIntervalSeconds")

    class Config:
        populate_by_name = True

    def to_identities(self) -> List[Identity]:
        """Project configured identities into immutable Identity values, sorted by id."""
        return [
            Identity(id=identity_id, username=identity.username, scopes=identity.all_scopes())
            for identity_id, identity in sorted(self.identities.items())
        ]

    def configured_scopes(self) -> List[str]:
        scopes = set()
        for identity in self.to_identities():
            scopes.update(identity.scopes)
        return sorted(scopes)


def find_config_path(start_dir: Optional[str] = None) -> Optional[Path]:
    """
    Find the .runghost configuration directory by walking up the tree.

    Falls back to ~/.runghost.
    """
    current = Path(start_dir or os.getcwd()).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / DEFAULT_CONFIG_DIR
        if candidate.is_dir():
            return candidate

    home_candidate = Path.home() / DEFAULT_CONFIG_DIR
    if home_candidate.is_dir():
        return home_candidate
    return None


def parse_config(raw: dict, workspace_override: Optional[str] = None) -> RunGhostConfig:
    """
    Validate a raw config mapping and apply the workspace override.

    Raises:
        ConfigError: on validation failure or a missing workspace path
    """
    try:
        config = RunGhostConfig.model_validate(raw or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if workspace_override:
        config = config.model_copy(update={"workspace_path": workspace_override})

    if not config.workspace_path.strip():
        raise ConfigError("workspacePath is not configured")

    config = config.model_copy(
        update={
            "workspace_path": os.path.expanduser(config.workspace_path),
            "data_directory": os.path.expanduser(config.data_directory),
        }
    )
    return config


def load_config_from_directory(config_dir: Optional[str] = None) -> RunGhostConfig:
    """
    Load configuration from a .runghost directory.

    Args:
        config_dir: Explicit configuration directory. When omitted, uses
            RUNGHOST_CONFIG_DIR or searches upward from the working directory.

    Returns:
        Validated RunGhostConfig

    Raises:
        ConfigError: if no configuration is found or it does not validate
    """
    directory = config_dir or env.RUNGHOST_CONFIG_DIR
    config_path = Path(directory) if directory else find_config_path()
    if config_path is None:
        raise ConfigError(
            "No .runghost configuration found. Create .runghost/config.yaml first."
        )

    config_file = config_path / CONFIG_FILE_NAME
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_file}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_file} must contain a mapping")

    logger.debug("Loaded configuration from %s", config_file)
    return parse_config(raw, workspace_override=env.RUNGHOST_WORKSPACE_PATH)
