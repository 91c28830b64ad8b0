"""
AES cipher engine.

Wraps the `cryptography` primitives behind the Java-style algorithm names
used by the applications we talk to (AES/CBC/PKCS5Padding and friends).
A new Cipher object is built for every call; nothing is shared between
concurrent hooks.
"""

import base64
import binascii
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import CBC_IV_SIZE, GCM_IV_SIZES, KEY_SIZES, RuntimeConfig
from .errors import ConfigInvalid, CryptoFailure, NotApplicable

logger = logging.getLogger(__name__)

BLOCK_SIZE = 16
GCM_TAG_SIZE = 16  # 128-bit authentication tag
GCM_NONCE_SIZE = 12
SELF_TEST_PLAINTEXT = "Test123!@#"


def algorithm_name(cfg: RuntimeConfig) -> str:
    return cfg.algorithm


def _key_for(cfg: RuntimeConfig) -> bytes:
    key = cfg.key
    if len(key) * 8 != cfg.key_size:
        raise ConfigInvalid(f"Key is {len(key) * 8} bits, expected {cfg.key_size}", code="KEY_SIZE")
    return key


def _iv_for(cfg: RuntimeConfig) -> Optional[bytes]:
    iv = cfg.iv
    if cfg.mode == "CBC" and len(iv) != CBC_IV_SIZE:
        raise ConfigInvalid(f"CBC IV must be {CBC_IV_SIZE} bytes, got {len(iv)}", code="IV_SIZE")
    if cfg.mode == "GCM" and len(iv) not in GCM_IV_SIZES:
        raise ConfigInvalid(f"GCM IV must be 12 or 16 bytes, got {len(iv)}", code="IV_SIZE")
    return iv


def _block_cipher(cfg: RuntimeConfig, key: bytes, iv: Optional[bytes]) -> Cipher:
    if cfg.mode == "ECB":
        return Cipher(algorithms.AES(key), modes.ECB())
    return Cipher(algorithms.AES(key), modes.CBC(iv))


def encrypt(plaintext: bytes, cfg: RuntimeConfig) -> bytes:
    """Encrypt raw bytes with the algorithm described by cfg."""
    key = _key_for(cfg)
    iv = _iv_for(cfg)

    if cfg.mode == "GCM":
        encryptor = Cipher(algorithms.AES(key), modes.GCM(iv)).encryptor()
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return ciphertext + encryptor.tag

    if cfg.effective_padding == "NoPadding":
        if len(plaintext) % BLOCK_SIZE:
            raise CryptoFailure(
                f"Input length {len(plaintext)} is not a multiple of {BLOCK_SIZE} with NoPadding",
                code="BLOCK_SIZE",
            )
        data = plaintext
    else:
        # PKCS5 and PKCS7 are the same scheme on a 128-bit block
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext) + padder.finalize()

    encryptor = _block_cipher(cfg, key, iv).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def decrypt(ciphertext: bytes, cfg: RuntimeConfig) -> bytes:
    """Decrypt raw bytes; raises CryptoFailure rather than returning garbage."""
    key = _key_for(cfg)
    iv = _iv_for(cfg)

    if cfg.mode == "GCM":
        if len(ciphertext) < GCM_TAG_SIZE:
            raise CryptoFailure("Ciphertext shorter than the GCM tag", code="TOO_SHORT")
        body, tag = ciphertext[:-GCM_TAG_SIZE], ciphertext[-GCM_TAG_SIZE:]
        decryptor = Cipher(algorithms.AES(key), modes.GCM(iv, tag)).decryptor()
        try:
            return decryptor.update(body) + decryptor.finalize()
        except InvalidTag as e:
            raise CryptoFailure("GCM authentication tag mismatch", code="TAG_MISMATCH") from e

    if len(ciphertext) < BLOCK_SIZE:
        raise CryptoFailure("Ciphertext shorter than one AES block", code="TOO_SHORT")
    if len(ciphertext) % BLOCK_SIZE:
        raise CryptoFailure(
            f"Ciphertext length {len(ciphertext)} is not a multiple of {BLOCK_SIZE}", code="BLOCK_SIZE"
        )

    decryptor = _block_cipher(cfg, key, iv).decryptor()
    data = decryptor.update(ciphertext) + decryptor.finalize()
    if cfg.effective_padding == "NoPadding":
        return data

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as e:
        raise CryptoFailure("Invalid padding (wrong key or IV?)", code="BAD_PADDING") from e


def encrypt_text(text: str, cfg: RuntimeConfig) -> str:
    """UTF-8 encode, encrypt and return standard Base64."""
    return base64.b64encode(encrypt(text.encode("utf-8"), cfg)).decode("ascii")


def decrypt_text(value: str, cfg: RuntimeConfig) -> str:
    """Base64 decode, decrypt and return the UTF-8 plaintext."""
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoFailure(f"Ciphertext is not valid Base64: {e}", code="BAD_BASE64") from e
    plaintext = decrypt(raw, cfg)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoFailure("Decrypted data is not valid UTF-8", code="BAD_UTF8") from e


def generate_key(bits: int) -> str:
    if bits not in KEY_SIZES:
        raise ConfigInvalid(f"Unsupported key size: {bits}", code="KEY_SIZE")
    return base64.b64encode(secrets.token_bytes(bits // 8)).decode("ascii")


def generate_iv(mode: str) -> Optional[str]:
    """Random IV for mode: 12 bytes for GCM, 16 for CBC, None for ECB."""
    if mode == "ECB":
        return None
    if mode == "GCM":
        size = GCM_NONCE_SIZE
    elif mode == "CBC":
        size = CBC_IV_SIZE
    else:
        raise ConfigInvalid(f"Unsupported mode: {mode}", code="MODE")
    return base64.b64encode(secrets.token_bytes(size)).decode("ascii")


def check_configuration(cfg: RuntimeConfig):
    """Round-trip a known plaintext; raises the first error encountered."""
    errors = cfg.validation_errors()
    if errors:
        raise ConfigInvalid("; ".join(errors))
    if decrypt_text(encrypt_text(SELF_TEST_PLAINTEXT, cfg), cfg) != SELF_TEST_PLAINTEXT:
        raise CryptoFailure("Round trip produced a different plaintext", code="ROUND_TRIP")


def test_configuration(cfg: RuntimeConfig) -> bool:
    try:
        check_configuration(cfg)
    except (CryptoFailure, ConfigInvalid, ValueError) as e:
        logger.info("Configuration self-test failed (%s): %s", cfg.algorithm, e)
        return False
    return True


def _selection(text: Optional[str]) -> str:
    selected = (text or "").strip()
    if not selected:
        raise NotApplicable("No text selected", code="EMPTY_SELECTION")
    return selected


def _require_valid(cfg: RuntimeConfig):
    errors = cfg.validation_errors()
    if errors:
        raise ConfigInvalid("Configuration is invalid: " + "; ".join(errors))


def manual_decrypt(text: str, cfg: RuntimeConfig) -> str:
    """Decrypt an arbitrary selected Base64 string."""
    selected = _selection(text)
    _require_valid(cfg)
    result = decrypt_text(selected, cfg)
    logger.info("Text decrypted on demand (%s)", cfg.algorithm)
    return result


def manual_encrypt(text: str, cfg: RuntimeConfig) -> str:
    """Encrypt an arbitrary selected string to Base64."""
    selected = _selection(text)
    _require_valid(cfg)
    result = encrypt_text(selected, cfg)
    logger.info("Text encrypted on demand (%s)", cfg.algorithm)
    return result
