import pytest

from rlncast import constants as C
from rlncast.config import CastConfig, format_config, get_config, load_config
from rlncast.errors import ConfigError


def test_defaults_without_environment():
    cfg = load_config({})
    assert cfg.coding.piece_count == C.PIECE_COUNT_DEFAULT
    assert cfg.coding.redundancy == C.REDUNDANCY_DEFAULT
    assert cfg.coding.max_frame_bytes == 900
    assert cfg.coding.auto_piece_count is False
    assert cfg.decoder.timeout == 30.0
    assert cfg.retry.max_attempts == 5
    assert cfg.compression.enabled is False
    assert cfg.logging.format is None
    assert cfg == CastConfig()


def test_environment_overrides():
    cfg = load_config(
        {
            "RLNCAST_PIECE_COUNT": "16",
            "RLNCAST_REDUNDANCY": "2.5",
            "RLNCAST_AUTO_PIECE_COUNT": "yes",
            "RLNCAST_MAX_FRAME_BYTES": "1KiB",
            "RLNCAST_MAX_PAYLOAD": "2MB",
            "RLNCAST_DECODER_TIMEOUT": "12.5",
            "RLNCAST_COMPLETED_CACHE": "16",
            "RLNCAST_RETRY_MAX_ATTEMPTS": "2",
            "RLNCAST_COMPRESSION": "on",
            "RLNCAST_COMPRESSION_LEVEL": "9",
            "RLNCAST_LOG_LEVEL": "debug",
            "RLNCAST_LOG_FORMAT": "JSON",
        }
    )
    assert cfg.coding.piece_count == 16
    assert cfg.coding.redundancy == 2.5
    assert cfg.coding.auto_piece_count is True
    assert cfg.coding.max_frame_bytes == 1024
    assert cfg.coding.max_payload_bytes == 2_000_000
    assert cfg.decoder.timeout == 12.5
    assert cfg.decoder.completed_cache_size == 16
    assert cfg.retry.max_attempts == 2
    assert cfg.compression.enabled is True
    assert cfg.compression.level == 9
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"


def test_blank_values_fall_back_to_defaults():
    cfg = load_config({"RLNCAST_PIECE_COUNT": "  ", "RLNCAST_MAX_FRAME_BYTES": ""})
    assert cfg.coding.piece_count == C.PIECE_COUNT_DEFAULT
    assert cfg.coding.max_frame_bytes == C.MAX_FRAME_BYTES_DEFAULT


@pytest.mark.parametrize(
    "env",
    [
        {"RLNCAST_PIECE_COUNT": "eight"},
        {"RLNCAST_PIECE_COUNT": "1"},
        {"RLNCAST_PIECE_COUNT": "5000"},
        {"RLNCAST_REDUNDANCY": "0.9"},
        {"RLNCAST_MAX_FRAME_BYTES": "20"},
        {"RLNCAST_MAX_FRAME_BYTES": "lots"},
        {"RLNCAST_AUTO_PIECE_COUNT": "maybe"},
        {"RLNCAST_DECODER_TIMEOUT": "0"},
        {"RLNCAST_COMPLETED_CACHE": "0"},
        {"RLNCAST_RETRY_MULTIPLIER": "0.5"},
        {"RLNCAST_MAX_CONCURRENT_PUBLISHES": "0"},
        {"RLNCAST_COMPRESSION_LEVEL": "99"},
        {"RLNCAST_LOG_FORMAT": "xml"},
    ],
)
def test_invalid_values_raise_config_error(env):
    with pytest.raises(ConfigError):
        load_config(env)


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        load_config({"RLNCAST_REDUNDANCY": "nope"})


def test_format_config_lists_every_section():
    text = format_config(load_config({}))
    assert "coding.piece_count: 8" in text
    assert "decoder.timeout: 30.0" in text
    assert "retry.base_delay: 0.1" in text
    assert "compression.enabled: False" in text


def test_get_config_reads_process_environment(monkeypatch):
    monkeypatch.setenv("RLNCAST_PIECE_COUNT", "12")
    get_config.cache_clear()
    try:
        assert get_config().coding.piece_count == 12
        assert get_config() is get_config()
    finally:
        get_config.cache_clear()
