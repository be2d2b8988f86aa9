"""Configuration loading and saving for the AgentDuty CLI."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

# Default locations
DEFAULT_CONFIG_DIR = Path.home() / ".agentduty"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_API_URL = "https://agentduty.dev/api/graphql"

# Workspace-scoped state lives here so it is visible inside and outside agent sandboxes
STATE_DIR_NAME = ".claude"

ENV_API_URL = "AGENTDUTY_API_URL"
ENV_API_KEY = "AGENTDUTY_API_KEY"
ENV_CONFIG_PATH = "AGENTDUTY_CONFIG"


class ConfigError(ValueError):
    """Raised when the config file cannot be parsed."""


@dataclass
class Config:
    """Resolved CLI configuration."""

    api_url: str = DEFAULT_API_URL
    access_token: str = ""
    refresh_token: str = ""

    # Where this config was read from; save_config writes back here
    path: Optional[Path] = None

    @property
    def token(self) -> str:
        """Credential to send: an API key from the environment wins over the stored token."""
        return os.environ.get(ENV_API_KEY) or self.access_token


def config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(ENV_CONFIG_PATH)
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def load_config(
    path: Optional[Path] = None,
    *,
    api_url: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load config from YAML, then apply environment and CLI overrides.

    A missing file is not an error; defaults are used.
    """
    env = os.environ if env is None else env
    path = path or config_path(env)

    data: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {path}: expected a mapping")

    cfg = Config(
        api_url=data.get("api_url") or DEFAULT_API_URL,
        access_token=data.get("access_token") or "",
        refresh_token=data.get("refresh_token") or "",
        path=path,
    )

    if env.get(ENV_API_URL):
        cfg.api_url = env[ENV_API_URL]
    if api_url:
        cfg.api_url = api_url

    logger.debug(f"Loaded config from {path} (api_url={cfg.api_url})")
    return cfg


def save_config(cfg: Config, path: Optional[Path] = None) -> Path:
    """Write config back to disk with owner-only permissions."""
    path = path or cfg.path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    data = {
        "api_url": cfg.api_url,
        "access_token": cfg.access_token,
        "refresh_token": cfg.refresh_token,
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False)
    os.chmod(path, 0o600)
    return path


def save_tokens(access_token: str, refresh_token: str, path: Optional[Path] = None) -> Path:
    """Store new credentials, keeping the rest of the file as written.

    Environment and --api-url overrides apply to one invocation only, so the
    file is re-read without them before writing.
    """
    path = path or config_path()
    cfg = load_config(path, env={})
    cfg.access_token = access_token
    cfg.refresh_token = refresh_token
    return save_config(cfg, path)
