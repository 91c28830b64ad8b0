"""
Process settings loaded from environment variables.

These cover the plumbing around the pipeline (where the handoff file
lives, how the addon reaches the control API, how long a held message
waits) and are read once per process. Cipher settings live in
RuntimeConfig and can change at any time.
"""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict

DEFAULT_CONFIG_PATH = Path(__file__).parent / ".fieldcrypt_config.json"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUTHY = ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Immutable process settings."""

    model_config = ConfigDict(frozen=True)

    config_path: Path = DEFAULT_CONFIG_PATH
    backend_url: str = "http://127.0.0.1:5000"
    backend_timeout: float = 5.0
    intercept_timeout: float = 300.0
    poll_interval: float = 0.1
    max_body_size: int = 1024 * 1024
    verbose: bool = False
    log_level: str = "INFO"
    log_format: str = DEFAULT_LOG_FORMAT
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    proxy_port: int = 8080
    proxy_startup_wait: float = 1.0
    proxy_stop_timeout: float = 5.0

    @property
    def action_dir(self) -> Path:
        """Directory where the control API drops release files for held messages."""
        return self.config_path.parent


def load_settings() -> Settings:
    """
    Load settings from environment variables with defaults.

    Environment variables:
    - FIELDCRYPT_CONFIG_PATH (handoff file shared with the addon)
    - FIELDCRYPT_BACKEND_URL (default: http://127.0.0.1:5000)
    - FIELDCRYPT_INTERCEPT_TIMEOUT (seconds, default: 300)
    - FIELDCRYPT_MAX_BODY_SIZE (bytes shown in the intercept queue, default: 1MB)
    - FIELDCRYPT_VERBOSE (1/true/yes/on)
    - FIELDCRYPT_LOG_LEVEL (default: INFO)
    - FIELDCRYPT_LOG_FORMAT
    - FIELDCRYPT_API_HOST / FIELDCRYPT_API_PORT (default: 0.0.0.0:5000)
    - FIELDCRYPT_PROXY_PORT (default: 8080)

    Returns:
        Settings instance
    """
    env = os.environ
    return Settings(
        config_path=Path(env.get("FIELDCRYPT_CONFIG_PATH") or DEFAULT_CONFIG_PATH),
        backend_url=(env.get("FIELDCRYPT_BACKEND_URL") or "http://127.0.0.1:5000").rstrip("/"),
        intercept_timeout=float(env.get("FIELDCRYPT_INTERCEPT_TIMEOUT", "300")),
        max_body_size=int(env.get("FIELDCRYPT_MAX_BODY_SIZE", str(1024 * 1024))),
        verbose=env.get("FIELDCRYPT_VERBOSE", "0").lower() in _TRUTHY,
        log_level=env.get("FIELDCRYPT_LOG_LEVEL", "INFO").upper(),
        log_format=env.get("FIELDCRYPT_LOG_FORMAT") or DEFAULT_LOG_FORMAT,
        api_host=env.get("FIELDCRYPT_API_HOST", "0.0.0.0"),
        api_port=int(env.get("FIELDCRYPT_API_PORT", "5000")),
        proxy_port=int(env.get("FIELDCRYPT_PROXY_PORT", "8080")),
    )
