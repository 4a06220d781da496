"""
Unit tests for infrastructure/config.py

Tests TOML loading, fallbacks and the process-wide instance.
"""
import pytest

from infrastructure.config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    GraphCoreConfig,
    IdGenerationConfig,
    get_config,
    load_config,
    load_toml_config,
    reset_config,
    set_config,
)


def test_shipped_file_matches_defaults():
    assert DEFAULT_CONFIG_PATH.exists()
    assert load_config(DEFAULT_CONFIG_PATH) == GraphCoreConfig()


def test_defaults():
    config = GraphCoreConfig()

    assert config.id_generation.max_retries == 10
    assert config.id_generation.random_suffix_length == 3
    assert config.validation.flag_cycles is False
    assert config.mutation_log.enabled is True
    assert config.mutation_log.buffer_size == 10000


def test_partial_file_overrides_only_given_keys(tmp_path):
    path = tmp_path / "graph.toml"
    path.write_text("[id_generation]\nmax_retries = 4\n\n[validation]\nflag_cycles = true\n")

    config = load_config(path)

    assert config.id_generation.max_retries == 4
    assert config.id_generation.random_suffix_length == 3
    assert config.validation.flag_cycles is True


def test_missing_file_gives_defaults(tmp_path):
    assert load_toml_config(tmp_path / "absent.toml") == {}
    assert load_config(tmp_path / "absent.toml") == GraphCoreConfig()


def test_malformed_file_warns(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[id_generation\nmax_retries = ")

    with pytest.warns(UserWarning, match="Failed to load config"):
        config = load_config(path)

    assert config == GraphCoreConfig()


def test_wrong_types_warn(tmp_path):
    path = tmp_path / "typed.toml"
    path.write_text('[id_generation]\nmax_retries = "ten"\n')

    with pytest.warns(UserWarning, match="Invalid workflow graph configuration"):
        config = load_config(path)

    assert config == GraphCoreConfig()


def test_out_of_range_value_warns(tmp_path):
    path = tmp_path / "range.toml"
    path.write_text("[id_generation]\nmax_retries = 0\n")

    with pytest.warns(UserWarning):
        config = load_config(path)

    assert config.id_generation.max_retries == 10


def test_id_generation_rejects_zero_retries():
    with pytest.raises(ValueError):
        IdGenerationConfig(max_retries=0)


def test_environment_variable_path(tmp_path, monkeypatch):
    path = tmp_path / "env.toml"
    path.write_text("[mutation_log]\nenabled = false\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    reset_config()

    assert get_config().mutation_log.enabled is False


def test_set_config_replaces_global():
    custom = GraphCoreConfig(id_generation=IdGenerationConfig(max_retries=2))

    set_config(custom)

    assert get_config() is custom
    reset_config()
    assert get_config() is not custom
