"""
The four intercept hooks.

Each hook is a pure function of (body, config snapshot). The host calls
them at different points of a message's life with no shared state:

    request_seen      decrypt the request field before the user sees it
    request_leaving   encrypt it again before it goes to the server
    response_seen     decrypt the response field as it arrives
    response_leaving  encrypt it again before it goes back to the client

A hook never raises: anything it cannot handle results in the original
body being forwarded unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from . import cipher_engine
from .classifier import looks_encrypted, looks_plaintext
from .config import RuntimeConfig
from .errors import CryptoError, CryptoFailure
from .field_codec import FieldValue, decode_plaintext, extract, inject, parse_body, render_body

logger = logging.getLogger(__name__)

DISABLED = "disabled"
INVALID_CONFIG = "invalid-config"
NOT_APPLICABLE = "not-applicable"
CLASSIFIER_VETO = "classifier-veto"
CRYPTO_FAILURE = "crypto-failure"
ERROR = "error"
DECRYPTED = "decrypted"
ENCRYPTED = "encrypted"


@dataclass(frozen=True)
class HookResult:
    """content is None when the original message should continue as-is."""

    content: Optional[bytes] = None
    reason: str = NOT_APPLICABLE

    @property
    def modified(self) -> bool:
        return self.content is not None


def _passthrough(label: str, reason: str, detail: str = "") -> HookResult:
    logger.debug("[%s] pass-through (%s)%s", label, reason, f": {detail}" if detail else "")
    return HookResult(None, reason)


def _decrypt_field(label: str, content: Optional[bytes], field: str, cfg: RuntimeConfig) -> HookResult:
    if not cfg.is_valid():
        return _passthrough(label, INVALID_CONFIG)
    document = parse_body(content, cfg.data_format)
    value = extract(document, field)
    if value is None:
        return _passthrough(label, NOT_APPLICABLE, f"field '{field}' not found")
    if not looks_encrypted(value.as_text()):
        return _passthrough(label, CLASSIFIER_VETO, f"field '{field}' does not look encrypted")

    plaintext = cipher_engine.decrypt_text(value.as_text(), cfg)
    decoded = decode_plaintext(plaintext)
    logger.info("[%s] field '%s' decrypted (%s)", label, field, "json" if decoded.is_structured else "text")
    return HookResult(render_body(inject(document, field, decoded)), DECRYPTED)


def _encrypt_field(label: str, content: Optional[bytes], field: str, cfg: RuntimeConfig) -> HookResult:
    if not cfg.is_valid():
        return _passthrough(label, INVALID_CONFIG)
    document = parse_body(content, cfg.data_format)
    value = extract(document, field)
    if value is None:
        return _passthrough(label, NOT_APPLICABLE, f"field '{field}' not found")
    plaintext = value.as_text()
    if not looks_plaintext(plaintext):
        return _passthrough(label, CLASSIFIER_VETO, f"field '{field}' already looks encrypted")

    ciphertext = cipher_engine.encrypt_text(plaintext, cfg)
    logger.info("[%s] field '%s' encrypted", label, field)
    return HookResult(render_body(inject(document, field, FieldValue.scalar(ciphertext))), ENCRYPTED)


def _guarded(label: str, transform: Callable[[], HookResult]) -> HookResult:
    try:
        return transform()
    except CryptoFailure as e:
        logger.warning("[%s] %s; forwarding original", label, e.message)
        return HookResult(None, CRYPTO_FAILURE)
    except CryptoError as e:
        logger.warning("[%s] %s; forwarding original", label, e.message)
        return HookResult(None, INVALID_CONFIG)
    except (ValueError, UnicodeError, TypeError, RecursionError) as e:
        logger.warning("[%s] unexpected error: %s; forwarding original", label, e)
        return HookResult(None, ERROR)


def on_request_seen(content: Optional[bytes], cfg: RuntimeConfig) -> HookResult:
    if not (cfg.enabled and cfg.decrypt_requests):
        return HookResult(None, DISABLED)
    return _guarded("request_seen", lambda: _decrypt_field("request_seen", content, cfg.request_field, cfg))


def on_request_leaving(content: Optional[bytes], cfg: RuntimeConfig) -> HookResult:
    if not (cfg.enabled and cfg.auto_encrypt):
        return HookResult(None, DISABLED)
    return _guarded("request_leaving", lambda: _encrypt_field("request_leaving", content, cfg.request_field, cfg))


def on_response_seen(content: Optional[bytes], cfg: RuntimeConfig) -> HookResult:
    if not (cfg.enabled and cfg.decrypt_responses):
        return HookResult(None, DISABLED)
    return _guarded("response_seen", lambda: _decrypt_field("response_seen", content, cfg.response_field, cfg))


def on_response_leaving(content: Optional[bytes], cfg: RuntimeConfig) -> HookResult:
    if not (cfg.enabled and cfg.auto_encrypt):
        return HookResult(None, DISABLED)
    return _guarded(
        "response_leaving", lambda: _encrypt_field("response_leaving", content, cfg.response_field, cfg)
    )


HOOKS: Dict[str, Callable[[Optional[bytes], RuntimeConfig], HookResult]] = {
    "request_seen": on_request_seen,
    "request_leaving": on_request_leaving,
    "response_seen": on_response_seen,
    "response_leaving": on_response_leaving,
}


def run_hook(name: str, content: Optional[bytes], cfg: RuntimeConfig) -> HookResult:
    return HOOKS[name](content, cfg)
