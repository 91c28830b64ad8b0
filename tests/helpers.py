"""
Key material and body builders shared by the test modules.
"""

import base64
import json

from fieldcrypt import cipher_engine
from fieldcrypt.config import RuntimeConfig

KEY_128 = base64.b64encode(bytes(range(16))).decode()
KEY_192 = base64.b64encode(bytes(range(24))).decode()
KEY_256 = base64.b64encode(bytes(range(32))).decode()
IV_16 = base64.b64encode(bytes(range(100, 116))).decode()
NONCE_12 = base64.b64encode(bytes(range(200, 212))).decode()


def encrypted_body(cfg: RuntimeConfig, plaintext: str, field: str = "data", **extra) -> bytes:
    """JSON body whose field holds the Base64 ciphertext of plaintext."""
    document = {field: cipher_engine.encrypt_text(plaintext, cfg), **extra}
    return json.dumps(document).encode()


def field_of(content: bytes, field: str = "data"):
    return json.loads(content)[field]
