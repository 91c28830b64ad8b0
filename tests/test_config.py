"""
Unit tests for RuntimeConfig and ConfigStore.
"""

import json
import threading

import pytest
from pydantic import ValidationError

from fieldcrypt.config import ConfigStore, RuntimeConfig, action_file, dump_runtime_config, load_runtime_config
from fieldcrypt.errors import ConfigInvalid
from tests.helpers import IV_16, KEY_128, KEY_192, KEY_256, NONCE_12


class TestDefaults:
    """Test cases for the default snapshot."""

    def test_defaults(self):
        """Test defaults match the documented values."""
        cfg = RuntimeConfig()
        assert cfg.mode == "CBC"
        assert cfg.padding == "PKCS7Padding"
        assert cfg.key_size == 256
        assert cfg.request_field == "data"
        assert cfg.response_field == "data"
        assert cfg.enabled is False
        assert cfg.decrypt_requests and cfg.decrypt_responses and cfg.auto_encrypt
        assert cfg.data_format == "JSON"
        assert cfg.intercept_enabled is False

    def test_defaults_are_invalid(self):
        """Test no key means not valid."""
        assert RuntimeConfig().is_valid() is False

    def test_frozen(self):
        """Test snapshots cannot be mutated in place."""
        cfg = RuntimeConfig()
        with pytest.raises(ValidationError):
            cfg.mode = "ECB"

    def test_rejects_unknown_choices(self):
        """Test enumerated fields."""
        with pytest.raises(ValidationError):
            RuntimeConfig(mode="CTR")
        with pytest.raises(ValidationError):
            RuntimeConfig(key_size=512)
        with pytest.raises(ValidationError):
            RuntimeConfig(padding="ISO10126Padding")


class TestValidation:
    """Test cases for is_valid and validation_errors."""

    @pytest.mark.parametrize("key,size", [(KEY_128, 128), (KEY_192, 192), (KEY_256, 256)])
    def test_key_sizes(self, key, size):
        """Test each supported key size."""
        assert RuntimeConfig(mode="ECB", key_size=size, key_b64=key).is_valid()

    def test_key_size_mismatch(self):
        """Test key length must match key_size."""
        cfg = RuntimeConfig(mode="ECB", key_size=256, key_b64=KEY_128)
        assert cfg.is_valid() is False
        assert cfg.validation_errors() == ["Key is 128 bits, expected 256"]

    def test_ecb_needs_no_iv(self):
        """Test ECB ignores the IV."""
        cfg = RuntimeConfig(mode="ECB", key_size=256, key_b64=KEY_256)
        assert cfg.requires_iv() is False
        assert cfg.iv is None
        assert cfg.is_valid()

    def test_cbc_iv(self):
        """Test CBC requires a 16 byte IV."""
        assert RuntimeConfig(mode="CBC", key_b64=KEY_256, iv_b64=IV_16).is_valid()
        assert not RuntimeConfig(mode="CBC", key_b64=KEY_256, iv_b64=NONCE_12).is_valid()
        assert not RuntimeConfig(mode="CBC", key_b64=KEY_256).is_valid()

    def test_gcm_iv(self):
        """Test GCM accepts 12 or 16 byte nonces."""
        assert RuntimeConfig(mode="GCM", key_b64=KEY_256, iv_b64=NONCE_12).is_valid()
        assert RuntimeConfig(mode="GCM", key_b64=KEY_256, iv_b64=IV_16).is_valid()
        assert not RuntimeConfig(mode="GCM", key_b64=KEY_256, iv_b64=KEY_128[:12]).is_valid()

    def test_bad_base64(self):
        """Test undecodable key material."""
        cfg = RuntimeConfig(mode="ECB", key_b64="not*base64")
        assert cfg.is_valid() is False
        with pytest.raises(ConfigInvalid):
            cfg.key

    def test_collects_all_errors(self):
        """Test key and IV problems are both reported."""
        assert len(RuntimeConfig(mode="CBC").validation_errors()) == 2

    def test_gcm_padding_is_forced(self):
        """Test GCM always reports NoPadding."""
        cfg = RuntimeConfig(mode="GCM", padding="PKCS5Padding")
        assert cfg.effective_padding == "NoPadding"
        assert cfg.algorithm == "AES/GCM/NoPadding"

    def test_summary_hides_key(self):
        """Test key material is not part of the summary."""
        cfg = RuntimeConfig(key_b64=KEY_256, iv_b64=IV_16)
        assert KEY_256 not in cfg.summary()
        assert IV_16 not in cfg.summary()


class TestConfigStore:
    """Test cases for ConfigStore."""

    def test_update_swaps_snapshot(self):
        """Test old snapshots stay unchanged after an update."""
        store = ConfigStore()
        before = store.snapshot()
        after = store.update(mode="GCM", enabled=True)
        assert before.mode == "CBC"
        assert after.mode == "GCM"
        assert store.snapshot() is after

    def test_set_and_get(self):
        """Test single-field access."""
        store = ConfigStore()
        store.set("request_field", "payload")
        assert store.get("request_field") == "payload"

    def test_setters_store_raw_values(self):
        """Test setters do not validate key material."""
        store = ConfigStore()
        cfg = store.update(key_b64="garbage")
        assert cfg.key_b64 == "garbage"
        assert cfg.is_valid() is False

    def test_unknown_field(self):
        """Test unknown names are rejected."""
        with pytest.raises(ValueError):
            ConfigStore().update(colour="blue")

    def test_bad_choice_keeps_old_snapshot(self):
        """Test a rejected update leaves the current snapshot in place."""
        store = ConfigStore()
        with pytest.raises(ValidationError):
            store.update(mode="OFB")
        assert store.snapshot().mode == "CBC"

    def test_reset(self):
        """Test reset restores defaults."""
        store = ConfigStore(RuntimeConfig(mode="ECB", enabled=True))
        assert store.reset() == RuntimeConfig()

    def test_persists_to_file(self, config_path):
        """Test every change is mirrored to the handoff file."""
        store = ConfigStore(path=config_path)
        store.update(enabled=True, key_b64=KEY_256, iv_b64=IV_16)
        assert load_runtime_config(config_path) == store.snapshot()

    def test_flush_writes_current(self, config_path):
        """Test flush writes without changing anything."""
        store = ConfigStore(RuntimeConfig(mode="ECB"), path=config_path)
        store.flush()
        assert json.loads(config_path.read_text())["mode"] == "ECB"

    def test_concurrent_updates(self):
        """Test concurrent writers never leave a half-applied snapshot."""
        store = ConfigStore()

        def writer(field):
            for i in range(50):
                store.update(**{field: f"{field}-{i}"})

        threads = [threading.Thread(target=writer, args=(f,)) for f in ("request_field", "response_field")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.get("request_field") == "request_field-49"
        assert store.get("response_field") == "response_field-49"


class TestHandoffFile:
    """Test cases for load_runtime_config and dump_runtime_config."""

    def test_missing_file(self, config_path):
        """Test defaults when the file is absent."""
        assert load_runtime_config(config_path) == RuntimeConfig()

    def test_corrupt_file(self, config_path):
        """Test defaults when the file is not valid JSON."""
        config_path.write_text("{not json")
        assert load_runtime_config(config_path) == RuntimeConfig()

    def test_invalid_values(self, config_path):
        """Test defaults when a value is out of range."""
        config_path.write_text(json.dumps({"mode": "XTS"}))
        assert load_runtime_config(config_path).enabled is False

    def test_round_trip(self, config_path):
        """Test dump then load."""
        cfg = RuntimeConfig(mode="GCM", key_b64=KEY_256, iv_b64=NONCE_12, enabled=True, response_field="r")
        dump_runtime_config(cfg, config_path)
        assert load_runtime_config(config_path) == cfg

    def test_action_file_location(self, tmp_path):
        """Test action files live next to the handoff file."""
        assert action_file("abc123", tmp_path) == tmp_path / ".action_abc123.json"
