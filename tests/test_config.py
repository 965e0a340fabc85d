"""
Tests for configuration, partition classification and envelope metadata.
"""

import json
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from carevault.config import EnvelopeConfig, StorageConfig, KDF_ITERATIONS, IV_SIZE
from carevault.errors import ConfigError
from carevault.metadata import PersistedEnvelope, StorageMetadata, now_ms
from carevault.partitions import (
    DEFAULT_SENSITIVE,
    Partition,
    PlainPartition,
    SealedPartition,
    Sensitivity,
    assemble,
    classify,
    locate_partitions,
    replace_partitions,
)


def expect_config_error(factory):
    try:
        factory()
    except ConfigError:
        return
    raise AssertionError("expected ConfigError")


def test_envelope_config_defaults_and_validation():
    """Defaults match the module constants; out-of-range values are refused."""
    print("Testing envelope config...", end=" ")
    config = EnvelopeConfig()
    assert config.kdf_iterations == KDF_ITERATIONS
    assert config.iv_size == IV_SIZE == 12
    assert config.key_size == 32

    expect_config_error(lambda: EnvelopeConfig(kdf_iterations=0))
    expect_config_error(lambda: EnvelopeConfig(iv_size=8))
    expect_config_error(lambda: EnvelopeConfig(salt_size=4))
    assert isinstance(ConfigError("x"), ValueError)
    print("PASS")


def test_storage_config_sensitive_partitions():
    """Sensitive partitions resolve to known names only."""
    print("Testing storage config...", end=" ")
    config = StorageConfig()
    assert config.sensitive_partitions == DEFAULT_SENSITIVE

    custom = StorageConfig(sensitive_partitions={"patients", "goals"})
    assert custom.sensitive_partitions == {Partition.PATIENTS, Partition.GOALS}

    expect_config_error(lambda: StorageConfig(sensitive_partitions={"uiPrefs"}))
    expect_config_error(lambda: StorageConfig(storage_key=""))
    expect_config_error(lambda: StorageConfig(schema_version=0))
    expect_config_error(lambda: StorageConfig(quota_bytes=0))
    print("PASS")


def test_config_from_env():
    """CAREVAULT_* variables override defaults."""
    print("Testing config from env...", end=" ")
    overrides = {
        "CAREVAULT_KDF_ITERATIONS": "2000",
        "CAREVAULT_IV_SIZE": "16",
        "CAREVAULT_ENCRYPTION_ENABLED": "false",
        "CAREVAULT_STORAGE_KEY": "ward-7",
        "CAREVAULT_SCHEMA_VERSION": "4",
        "CAREVAULT_SENSITIVE_PARTITIONS": "patients, vitals",
    }
    saved = {name: os.environ.get(name) for name in overrides}
    os.environ.update(overrides)
    try:
        envelope = EnvelopeConfig.from_env()
        assert envelope.kdf_iterations == 2000
        assert envelope.iv_size == 16

        storage = StorageConfig.from_env()
        assert storage.encryption_enabled is False
        assert storage.storage_key == "ward-7"
        assert storage.schema_version == 4
        assert storage.sensitive_partitions == {Partition.PATIENTS, Partition.VITALS}

        os.environ["CAREVAULT_KDF_ITERATIONS"] = "lots"
        expect_config_error(EnvelopeConfig.from_env)
    finally:
        for name, value in saved.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value
    print("PASS")


def test_classify():
    """Known sensitive names are SENSITIVE; everything else is PLAIN."""
    print("Testing classify...", end=" ")
    assert classify("patients") is Sensitivity.SENSITIVE
    assert classify("assessments") is Sensitivity.SENSITIVE
    assert classify("vitals") is Sensitivity.SENSITIVE
    assert classify("config") is Sensitivity.PLAIN
    assert classify("uiPrefs") is Sensitivity.PLAIN
    assert classify("goals", frozenset({Partition.GOALS})) is Sensitivity.SENSITIVE
    print("PASS")


def test_locate_and_replace_partitions():
    """Partitions are found at the top level or under "state"."""
    print("Testing partition location...", end=" ")
    flat = {"patients": [1], "config": {}}
    assert locate_partitions(flat) is flat
    assert replace_partitions(flat, {"patients": "x"}) == {"patients": "x"}

    wrapped = {"state": {"patients": [1]}, "version": 2}
    assert locate_partitions(wrapped) == {"patients": [1]}
    replaced = replace_partitions(wrapped, {"patients": "x"})
    assert replaced == {"state": {"patients": "x"}, "version": 2}
    assert wrapped["state"] == {"patients": [1]}

    not_wrapped = {"state": "idle", "patients": [1]}
    assert locate_partitions(not_wrapped) is not_wrapped
    print("PASS")


def test_assemble_keeps_order():
    """assemble() substitutes values without reordering keys."""
    print("Testing assemble...", end=" ")
    container = {"a": 1, "patients": [1], "z": 2}
    values = [PlainPartition("a", 1), SealedPartition("patients", "CIPHER"), PlainPartition("z", 2)]
    result = assemble(container, values)
    assert list(result) == ["a", "patients", "z"]
    assert result["patients"] == "CIPHER"
    assert container["patients"] == [1]
    print("PASS")


def test_metadata_round_trip():
    """Metadata serializes to the camelCase wire names."""
    print("Testing metadata...", end=" ")
    before = now_ms()
    metadata = StorageMetadata.create(schema_version=3, encrypted=True)
    assert before <= metadata.written_at <= now_ms()
    assert metadata.to_dict() == {
        "schemaVersion": 3,
        "encrypted": True,
        "writtenAt": metadata.written_at,
    }
    assert StorageMetadata.from_dict(metadata.to_dict()) == metadata

    assert StorageMetadata.from_dict({"schemaVersion": "1", "encrypted": True}) is None
    assert StorageMetadata.from_dict({"schemaVersion": 1, "encrypted": "yes"}) is None
    assert StorageMetadata.from_dict({"schemaVersion": True, "encrypted": True}) is None
    assert StorageMetadata.from_dict("metadata") is None
    print("PASS")


def test_envelope_recognition():
    """Only metadata+payload (or the 0.x metadata+data) documents are envelopes."""
    print("Testing envelope recognition...", end=" ")
    envelope = PersistedEnvelope(StorageMetadata(1, False, 1700000000000), {"config": {}})
    document = json.loads(envelope.to_text())
    assert document == {
        "metadata": {"schemaVersion": 1, "encrypted": False, "writtenAt": 1700000000000},
        "payload": {"config": {}},
    }
    assert PersistedEnvelope.from_document(document) == envelope

    legacy = {"metadata": {"version": 1, "encrypted": True, "timestamp": 5}, "data": {"a": 1}}
    parsed = PersistedEnvelope.from_document(legacy)
    assert parsed.metadata == StorageMetadata(1, True, 5)
    assert parsed.payload == {"a": 1}

    assert PersistedEnvelope.from_document({"patients": [], "config": {}}) is None
    assert PersistedEnvelope.from_document({"metadata": {}, "payload": {}}) is None
    assert PersistedEnvelope.from_document([1, 2]) is None
    print("PASS")


def main():
    tests = [
        test_envelope_config_defaults_and_validation,
        test_storage_config_sensitive_partitions,
        test_config_from_env,
        test_classify,
        test_locate_and_replace_partitions,
        test_assemble_keeps_order,
        test_metadata_round_trip,
        test_envelope_recognition,
    ]
    failed = 0
    for test in tests:
        try:
            test()
        except Exception as e:
            print(f"FAIL: {e}")
            failed += 1
    print(f"\nResults: {len(tests) - failed} passed, {failed} failed")
    return failed == 0


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
