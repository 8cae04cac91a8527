"""Load client configuration from .env, config/client.yaml and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobportal.log import get_logger

log = get_logger(__name__)

load_dotenv()

CONFIG_PATH: Path = Path("config") / "client.yaml"
DEFAULT_API_URL = "http://localhost:8081/api"
DEFAULT_TIMEOUT = 15.0
DEFAULT_RETRIES = 3
DEFAULT_STATE_DIR: Path = Path.home() / ".jobportal"


@dataclass
class ClientConfig:
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    state_dir: Path = DEFAULT_STATE_DIR

    @property
    def credentials_path(self) -> Path:
        return self.state_dir / "credentials.json"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Resolve configuration: YAML file first, then environment overrides."""
    if path is None:
        path = get_env("JOBPORTAL_CONFIG") or CONFIG_PATH
    path = Path(path)
    data = _read_yaml(path)
    if data:
        log.debug("Loaded client config from %s", path)

    api_url = get_env("JOBPORTAL_API_URL") or data.get("api_url") or DEFAULT_API_URL
    timeout = get_env("JOBPORTAL_TIMEOUT") or data.get("timeout") or DEFAULT_TIMEOUT
    retries = get_env("JOBPORTAL_RETRIES") or data.get("retries") or DEFAULT_RETRIES
    state_dir = get_env("JOBPORTAL_STATE_DIR") or data.get("state_dir") or DEFAULT_STATE_DIR

    return ClientConfig(
        api_url=str(api_url).rstrip("/"),
        timeout=float(timeout),
        retries=max(1, int(retries)),
        state_dir=Path(state_dir).expanduser(),
    )


def ensure_dirs(config: ClientConfig) -> None:
    config.state_dir.mkdir(parents=True, exist_ok=True)
