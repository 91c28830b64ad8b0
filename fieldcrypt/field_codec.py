"""
Locate and rewrite the configured field inside a message body.

Only top-level JSON objects are handled. RAW and FORM bodies are accepted
as configuration values but always pass through untouched.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

SCALAR = "scalar"
STRUCTURED = "structured"


@dataclass(frozen=True)
class FieldValue:
    kind: str
    value: Any

    @classmethod
    def scalar(cls, text: str) -> "FieldValue":
        return cls(SCALAR, text)

    @classmethod
    def structured(cls, value: Union[dict, list]) -> "FieldValue":
        return cls(STRUCTURED, value)

    @property
    def is_structured(self) -> bool:
        return self.kind == STRUCTURED

    def as_text(self) -> str:
        """String handed to the cipher layer."""
        if self.is_structured:
            return canonical_json(self.value)
        return self.value

    def to_json_value(self):
        return self.value


def canonical_json(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def parse_body(content: Optional[Union[bytes, str]], data_format: str = "JSON") -> Optional[dict]:
    """Return the top-level JSON object, or None when there is nothing to work with."""
    if data_format != "JSON":
        logger.debug("Data format %s is pass-through", data_format)
        return None
    if not content:
        return None
    try:
        text = content.decode("utf-8") if isinstance(content, bytes) else content
        document = json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError):
        logger.debug("Body is not JSON or nested too deeply; skipping")
        return None
    if not isinstance(document, dict):
        return None
    return document


def extract(document: Optional[dict], field: str) -> Optional[FieldValue]:
    if not document or field not in document:
        return None
    value = document[field]
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return FieldValue.structured(value)
    if isinstance(value, str):
        return FieldValue.scalar(value)
    # numbers and booleans keep their JSON spelling
    return FieldValue.scalar(json.dumps(value))


def decode_plaintext(text: str) -> FieldValue:
    """Re-embed decrypted text as JSON when it is an object or array, else as a string."""
    trimmed = text.strip()
    if trimmed.startswith(("{", "[")):
        try:
            parsed = json.loads(trimmed)
        except (ValueError, RecursionError):
            return FieldValue.scalar(text)
        if isinstance(parsed, (dict, list)):
            return FieldValue.structured(parsed)
    return FieldValue.scalar(text)


def inject(document: dict, field: str, value: FieldValue) -> dict:
    updated = dict(document)
    updated[field] = value.to_json_value()
    return updated


def render_body(document: dict) -> bytes:
    return canonical_json(document).encode("utf-8")
