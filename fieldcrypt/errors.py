"""
Exceptions raised by fieldcrypt.

Inside the intercept pipeline every one of these means "leave the message
alone". Manual operations and the configuration self-check let them
propagate so the caller can report them.
"""


class FieldCryptError(Exception):
    """Base exception for fieldcrypt errors."""

    code = "FIELDCRYPT_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class CryptoError(FieldCryptError):
    """Raised by the cipher layer when a value cannot be encrypted or decrypted."""

    code = "CRYPTO_ERROR"


class ConfigInvalid(CryptoError):
    """Raised when key or IV material is missing or has the wrong size."""

    code = "CONFIG_INVALID"


class CryptoFailure(CryptoError):
    """Raised when the cipher rejects the input (bad length, padding, GCM tag)."""

    code = "CRYPTO_FAILURE"


class NotApplicable(FieldCryptError):
    """Raised when there is nothing to transform (no field, no body, no selection)."""

    code = "NOT_APPLICABLE"
