"""
Runtime configuration for fieldcrypt.

The control API owns a ConfigStore and mirrors every change into a small
JSON handoff file; the mitmproxy addon runs in another process and reads
that file into a fresh RuntimeConfig snapshot on every hook call.
"""

import base64
import binascii
import json
import logging
import threading
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from .errors import ConfigInvalid
from .settings import load_settings

logger = logging.getLogger(__name__)

CONFIG_PATH = load_settings().config_path

MODES = ("CBC", "ECB", "GCM")
PADDINGS = ("PKCS5Padding", "PKCS7Padding", "NoPadding")
KEY_SIZES = (128, 192, 256)
DATA_FORMATS = ("JSON", "RAW", "FORM")

CBC_IV_SIZE = 16
GCM_IV_SIZES = (12, 16)


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.strip(), validate=True)


class RuntimeConfig(BaseModel):
    """Immutable settings snapshot read once per hook call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["CBC", "ECB", "GCM"] = "CBC"
    padding: Literal["PKCS5Padding", "PKCS7Padding", "NoPadding"] = "PKCS7Padding"
    key_size: Literal[128, 192, 256] = 256
    key_b64: str = ""
    iv_b64: str = ""
    request_field: str = "data"
    response_field: str = "data"
    enabled: bool = False
    decrypt_requests: bool = True
    decrypt_responses: bool = True
    auto_encrypt: bool = True
    data_format: Literal["JSON", "RAW", "FORM"] = "JSON"
    intercept_enabled: bool = False

    def requires_iv(self) -> bool:
        return self.mode in ("CBC", "GCM")

    @property
    def effective_padding(self) -> str:
        return "NoPadding" if self.mode == "GCM" else self.padding

    @property
    def algorithm(self) -> str:
        return f"AES/{self.mode}/{self.effective_padding}"

    @property
    def key(self) -> bytes:
        if not self.key_b64:
            raise ConfigInvalid("Key not configured", code="KEY_MISSING")
        try:
            return _b64decode(self.key_b64)
        except (binascii.Error, ValueError) as e:
            raise ConfigInvalid(f"Key is not valid Base64: {e}", code="KEY_ENCODING") from e

    @property
    def iv(self) -> Optional[bytes]:
        if not self.requires_iv():
            return None
        if not self.iv_b64:
            raise ConfigInvalid(f"IV not configured for {self.mode} mode", code="IV_MISSING")
        try:
            return _b64decode(self.iv_b64)
        except (binascii.Error, ValueError) as e:
            raise ConfigInvalid(f"IV is not valid Base64: {e}", code="IV_ENCODING") from e

    def validation_errors(self) -> List[str]:
        """Return every reason this snapshot cannot be used; empty when valid."""
        errors: List[str] = []
        try:
            key = self.key
            if len(key) * 8 != self.key_size:
                errors.append(f"Key is {len(key) * 8} bits, expected {self.key_size}")
        except ConfigInvalid as e:
            errors.append(e.message)

        if self.requires_iv():
            try:
                iv = self.iv
                if self.mode == "CBC" and len(iv) != CBC_IV_SIZE:
                    errors.append(f"CBC IV must be {CBC_IV_SIZE} bytes, got {len(iv)}")
                elif self.mode == "GCM" and len(iv) not in GCM_IV_SIZES:
                    errors.append(f"GCM IV must be 12 or 16 bytes, got {len(iv)}")
            except ConfigInvalid as e:
                errors.append(e.message)
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def summary(self) -> str:
        # never include key material
        return (
            f"RuntimeConfig(algorithm={self.algorithm}, key_size={self.key_size}, enabled={self.enabled}, "
            f"decrypt_requests={self.decrypt_requests}, decrypt_responses={self.decrypt_responses}, "
            f"auto_encrypt={self.auto_encrypt})"
        )


def load_runtime_config(path: Optional[Path] = None) -> RuntimeConfig:
    """Read a fresh snapshot from the handoff file, falling back to defaults."""
    path = Path(path) if path else CONFIG_PATH
    try:
        if path.exists():
            return RuntimeConfig.model_validate(json.loads(path.read_text()))
    except (OSError, ValueError) as e:
        logger.warning("Failed to read config file %s; using defaults: %s", path, e)
    return RuntimeConfig()


def dump_runtime_config(cfg: RuntimeConfig, path: Optional[Path] = None):
    path = Path(path) if path else CONFIG_PATH
    path.write_text(json.dumps(cfg.model_dump()))
    logger.debug("Runtime config written to %s: %s", path, cfg.summary())


class ConfigStore:
    """Holds the current RuntimeConfig and swaps it atomically on change."""

    def __init__(self, initial: Optional[RuntimeConfig] = None, path: Optional[Path] = None):
        self._current = initial or RuntimeConfig()
        self._lock = threading.Lock()
        self.path = path

    def snapshot(self) -> RuntimeConfig:
        return self._current

    def get(self, name: str):
        return getattr(self._current, name)

    def update(self, **changes) -> RuntimeConfig:
        unknown = set(changes) - set(RuntimeConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        with self._lock:
            merged = {**self._current.model_dump(), **changes}
            # full re-validation; enum choices are checked here
            self._current = RuntimeConfig.model_validate(merged)
            self._persist()
            return self._current

    def set(self, name: str, value) -> RuntimeConfig:
        return self.update(**{name: value})

    def replace(self, cfg: RuntimeConfig) -> RuntimeConfig:
        with self._lock:
            self._current = cfg
            self._persist()
            return cfg

    def reset(self) -> RuntimeConfig:
        return self.replace(RuntimeConfig())

    def flush(self):
        with self._lock:
            self._persist()

    def _persist(self):
        if self.path is None:
            return
        try:
            dump_runtime_config(self._current, self.path)
        except OSError as e:
            logger.warning("Failed to write config file %s: %s", self.path, e)


def action_file(message_id: str, base_dir: Optional[Path] = None) -> Path:
    """File the control API writes to release a held message."""
    return (Path(base_dir) if base_dir else CONFIG_PATH.parent) / f".action_{message_id}.json"
