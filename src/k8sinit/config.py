"""k8sinit configuration management.

Handles configuration stored in /etc/k8sinit/config.yaml (usually written
by the launch template's user data). Supports environment variable
overrides and CLI flag precedence.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .bootstrap.artifacts import ArtifactSet
from .bootstrap.readiness import ClusterEndpoint
from .shared.paths import CLUSTER_CONFIG_DIR, CONFIG_FILE, KUBERNETES_DIR, cluster_config_paths, pki_paths

# Default values
DEFAULT_PORT = 6443
DEFAULT_CAPACITY_TIMEOUT = 600.0
DEFAULT_CAPACITY_POLL_INTERVAL = 5.0
DEFAULT_PROBE_INTERVAL = 1.0
DEFAULT_PROBE_ATTEMPTS = 3
DEFAULT_PROBE_DELAY = 0.1

# Environment variable mappings
ENV_VARS = {
    "endpoint": "K8SINIT_ENDPOINT",
    "port": "K8SINIT_PORT",
    "bucket": "K8SINIT_BUCKET",
    "region": "K8SINIT_REGION",
    "capacity_timeout": "K8SINIT_CAPACITY_TIMEOUT",
    "capacity_poll_interval": "K8SINIT_CAPACITY_POLL_INTERVAL",
    "probe_interval": "K8SINIT_PROBE_INTERVAL",
    "probe_attempts": "K8SINIT_PROBE_ATTEMPTS",
    "probe_delay": "K8SINIT_PROBE_DELAY",
    "kubernetes_dir": "K8SINIT_KUBERNETES_DIR",
    "cluster_config_dir": "K8SINIT_CLUSTER_CONFIG_DIR",
}


@dataclass
class K8sInitConfig:
    """Bootstrap configuration."""

    endpoint: str = ""
    port: int = DEFAULT_PORT
    bucket: str = ""
    region: str | None = None
    capacity_timeout: float = DEFAULT_CAPACITY_TIMEOUT
    capacity_poll_interval: float = DEFAULT_CAPACITY_POLL_INTERVAL
    probe_interval: float = DEFAULT_PROBE_INTERVAL
    probe_attempts: int = DEFAULT_PROBE_ATTEMPTS
    probe_delay: float = DEFAULT_PROBE_DELAY
    kubernetes_dir: Path = KUBERNETES_DIR
    cluster_config_dir: Path = CLUSTER_CONFIG_DIR

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def cluster_endpoint(self) -> ClusterEndpoint:
        return ClusterEndpoint(self.endpoint, self.port)

    def pki_artifacts(self) -> ArtifactSet:
        """PKI shared by all control plane nodes."""
        return ArtifactSet.from_paths(pki_paths(self.kubernetes_dir))

    def cluster_config_artifacts(self) -> ArtifactSet:
        """kubeadm configuration files and cluster-info."""
        return ArtifactSet.from_paths(cluster_config_paths(self.cluster_config_dir))

    def missing_required(self) -> list[str]:
        """Names of required values that are still empty."""
        return [key for key in ("endpoint", "bucket") if not getattr(self, key)]


def _config_keys() -> list[str]:
    return [f.name for f in fields(K8sInitConfig) if not f.name.startswith("_")]


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw file/env value to the field's type.

    Raises:
        ValueError: If the value has the wrong type or is out of range
    """
    if value is None:
        return None
    try:
        if key in ("port", "probe_attempts"):
            number = int(value)
            if number < 1:
                raise ValueError(f"{key} must be at least 1, got {number}")
            return number
        if key == "capacity_timeout":
            number = float(value)
            if number <= 0:
                raise ValueError(f"{key} must be greater than 0, got {number:g}")
            return number
        if key in ("capacity_poll_interval", "probe_interval", "probe_delay"):
            number = float(value)
            if number < 0:
                raise ValueError(f"{key} must not be negative, got {number:g}")
            return number
        if key in ("kubernetes_dir", "cluster_config_dir"):
            return Path(value)
    except TypeError as e:
        raise ValueError(f"{key} has an invalid type: {value!r}") from e
    return str(value)


def get_config_path() -> Path:
    """Get the config file path.

    Returns:
        Path from K8SINIT_CONFIG, else /etc/k8sinit/config.yaml
    """
    return Path(os.environ.get("K8SINIT_CONFIG", str(CONFIG_FILE)))


def load_config(config_path: str | Path | None = None, overrides: dict[str, Any] | None = None) -> K8sInitConfig:
    """Load configuration.

    Precedence (highest to lowest):
    1. CLI flags (overrides, None values ignored)
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Explicit config file (default: get_config_path())
        overrides: Values from CLI flags

    Returns:
        K8sInitConfig with values and sources

    Raises:
        ValueError: If the config file or a value cannot be parsed
    """
    config = K8sInitConfig()
    keys = _config_keys()
    sources: dict[str, str] = {key: "default" for key in keys}

    path = Path(config_path) if config_path else get_config_path()
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ValueError(f"Invalid config file {path}: expected a mapping")

        for key in keys:
            if key in file_config:
                try:
                    setattr(config, key, _coerce(key, file_config[key]))
                except ValueError as e:
                    raise ValueError(f"Invalid config file {path}: {e}") from e
                sources[key] = "config file"
    elif config_path:
        raise ValueError(f"Config file not found: {path}")

    for key in keys:
        env_value = os.environ.get(ENV_VARS[key])
        if env_value:
            try:
                setattr(config, key, _coerce(key, env_value))
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_VARS[key]}: {env_value!r} ({e})") from e
            sources[key] = "environment"

    for key, value in (overrides or {}).items():
        if value is not None:
            setattr(config, key, _coerce(key, value))
            sources[key] = "flag"

    config._sources = sources
    return config
