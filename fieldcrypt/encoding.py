"""
Text conversions for key/IV material and quick payload inspection.

Keys and IVs are configured as Base64; test vectors are usually published
as hex, so the control API exposes these through /api/convert.
"""

import base64
import re
from typing import Callable, Dict
from urllib.parse import quote, unquote


def _to_bytes(value: str) -> bytes:
    return value.encode("utf-8", errors="replace")


def _from_bytes(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _strip_whitespace(value: str) -> str:
    return re.sub(r"\s+", "", value)


def hex_to_base64(value: str) -> str:
    return base64.b64encode(bytes.fromhex(_strip_whitespace(value))).decode("ascii")


def base64_to_hex(value: str) -> str:
    return base64.b64decode(_strip_whitespace(value), validate=True).hex()


def base64_encode(value: str) -> str:
    return base64.b64encode(_to_bytes(value)).decode("ascii")


def base64_decode(value: str) -> str:
    return _from_bytes(base64.b64decode(_strip_whitespace(value), validate=True))


def to_hex(value: str) -> str:
    return _to_bytes(value).hex()


def from_hex(value: str) -> str:
    return _from_bytes(bytes.fromhex(_strip_whitespace(value)))


def url_encode(value: str) -> str:
    return quote(value, safe="")


def url_decode(value: str) -> str:
    return unquote(value)


OPERATION_MAP: Dict[str, Callable[[str], str]] = {
    "hex_to_base64": hex_to_base64,
    "base64_to_hex": base64_to_hex,
    "base64_encode": base64_encode,
    "base64_decode": base64_decode,
    "to_hex": to_hex,
    "from_hex": from_hex,
    "url_encode": url_encode,
    "url_decode": url_decode,
}


def run_operation(name: str, value: str) -> str:
    func = OPERATION_MAP.get(name)
    if not func:
        raise ValueError(f"Unknown operation: {name}")
    return func(value)
