"""
Shared pytest fixtures for fieldcrypt tests.
"""

import pytest

from fieldcrypt.config import RuntimeConfig
from tests.helpers import IV_16, KEY_128, KEY_256, NONCE_12


@pytest.fixture
def cbc_config():
    """CBC / AES-256 with interception enabled."""
    return RuntimeConfig(mode="CBC", key_size=256, key_b64=KEY_256, iv_b64=IV_16, enabled=True)


@pytest.fixture
def gcm_config():
    """GCM / AES-256 with a 12 byte nonce."""
    return RuntimeConfig(mode="GCM", key_size=256, key_b64=KEY_256, iv_b64=NONCE_12, enabled=True)


@pytest.fixture
def ecb_config():
    """ECB / AES-128, no IV."""
    return RuntimeConfig(mode="ECB", key_size=128, key_b64=KEY_128, enabled=True)


@pytest.fixture
def config_path(tmp_path):
    """Handoff file location inside the test's temp dir."""
    return tmp_path / "fieldcrypt_config.json"
