# uminai/config.py
"""
Registry service configuration.

Settings come from a YAML file, then environment variables override them:

    prefix: "did:uminai:"
    data_dir: ./uminai-data
    domain: registry.uminai.local
    server:
      host: 127.0.0.1
      port: 8080
    auth:
      max_skew: 300

Environment: UMINAI_PREFIX, UMINAI_DATA_DIR, UMINAI_DOMAIN, UMINAI_HOST,
UMINAI_PORT, UMINAI_MAX_SKEW.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .identity.actor import DOMAIN
from .identity.signatures import DEFAULT_MAX_SKEW
from .registry import DEFAULT_PREFIX


@dataclass
class RegistryConfig:
    """Resolved service settings."""
    prefix: str = DEFAULT_PREFIX
    data_dir: Path = Path("./uminai-data")
    domain: str = DOMAIN
    host: str = "127.0.0.1"
    port: int = 8080
    max_skew: float = DEFAULT_MAX_SKEW

    @property
    def journal_path(self) -> Path:
        return self.data_dir / "journal.jsonl"

    @property
    def events_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @property
    def actors_dir(self) -> Path:
        return self.data_dir / "actors"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        server = data.get("server") or {}
        auth = data.get("auth") or {}
        try:
            return cls(
                prefix=str(data.get("prefix", DEFAULT_PREFIX)),
                data_dir=Path(data.get("data_dir", "./uminai-data")),
                domain=str(data.get("domain", DOMAIN)),
                host=str(server.get("host", "127.0.0.1")),
                port=int(server.get("port", 8080)),
                max_skew=float(auth.get("max_skew", DEFAULT_MAX_SKEW)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}")

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "RegistryConfig":
        """Parse config from a YAML string."""
        try:
            data = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}")
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "RegistryConfig":
        """Load config from a YAML file."""
        with open(path, "r") as f:
            return cls.from_yaml(f.read())

    def apply_env(self, environ: Mapping[str, str] = None) -> "RegistryConfig":
        """Override settings from UMINAI_* environment variables."""
        env = os.environ if environ is None else environ
        try:
            if "UMINAI_PREFIX" in env:
                self.prefix = env["UMINAI_PREFIX"]
            if "UMINAI_DATA_DIR" in env:
                self.data_dir = Path(env["UMINAI_DATA_DIR"])
            if "UMINAI_DOMAIN" in env:
                self.domain = env["UMINAI_DOMAIN"]
            if "UMINAI_HOST" in env:
                self.host = env["UMINAI_HOST"]
            if "UMINAI_PORT" in env:
                self.port = int(env["UMINAI_PORT"])
            if "UMINAI_MAX_SKEW" in env:
                self.max_skew = float(env["UMINAI_MAX_SKEW"])
        except ValueError as e:
            raise ConfigError(f"Invalid environment override: {e}")
        return self


def load_config(path: Optional[Path | str] = None, environ: Mapping[str, str] = None) -> RegistryConfig:
    """
    Load configuration.

    Args:
        path: Optional YAML file; defaults apply when omitted
        environ: Environment to read overrides from (default os.environ)
    """
    config = RegistryConfig.from_file(path) if path else RegistryConfig()
    config.apply_env(environ)
    if not config.prefix:
        raise ConfigError("prefix must not be empty")
    return config
