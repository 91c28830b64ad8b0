"""
fieldcrypt - transparent AES field decryption for intercepted JSON traffic
"""

from .cipher_engine import (
    algorithm_name,
    decrypt,
    encrypt,
    generate_iv,
    generate_key,
    manual_decrypt,
    manual_encrypt,
    test_configuration,
)
from .classifier import looks_encrypted, looks_plaintext
from .config import ConfigStore, RuntimeConfig, load_runtime_config
from .errors import ConfigInvalid, CryptoError, CryptoFailure, FieldCryptError, NotApplicable
from .pipeline import (
    HOOKS,
    HookResult,
    on_request_leaving,
    on_request_seen,
    on_response_leaving,
    on_response_seen,
    run_hook,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigInvalid",
    "ConfigStore",
    "CryptoError",
    "CryptoFailure",
    "FieldCryptError",
    "HOOKS",
    "HookResult",
    "NotApplicable",
    "RuntimeConfig",
    "algorithm_name",
    "decrypt",
    "encrypt",
    "generate_iv",
    "generate_key",
    "load_runtime_config",
    "looks_encrypted",
    "looks_plaintext",
    "manual_decrypt",
    "manual_encrypt",
    "on_request_leaving",
    "on_request_seen",
    "on_response_leaving",
    "on_response_seen",
    "run_hook",
    "test_configuration",
]
