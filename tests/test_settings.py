"""Tests for veilstream.settings: TOML config loading and env overrides."""

from pathlib import Path

import pytest

from veilstream.settings import load_config

# Path to the config file shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "veilstream" / "config"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("VEILSTREAM_REASONING_ENABLED", raising=False)
    monkeypatch.delenv("VEILSTREAM_MODEL", raising=False)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "veilstream.toml"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_loads_bundled_defaults(self):
        cfg = load_config()
        assert cfg.proxy.reasoning_enabled is True
        assert cfg.proxy.max_fragment_length == 32
        assert cfg.proxy.passthrough_connecting_frame is False
        assert cfg.proxy.deadline_seconds == 120
        assert cfg.upstream.model == "openai/gpt-4o-mini"
        assert cfg.server.port == 8440

    def test_explicit_path_matches_default(self):
        assert load_config(_CONFIG_DIR / "defaults.toml") == load_config()

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = _write(tmp_path, "[proxy]\nmax_fragment_length = 8\n")
        cfg = load_config(path)
        assert cfg.proxy.max_fragment_length == 8
        assert cfg.proxy.reasoning_enabled is True
        assert cfg.upstream.max_retries == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[proxy\nreasoning_enabled = true\n")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(path)

    @pytest.mark.parametrize(
        "text",
        [
            "[proxy]\nmax_fragment_length = 0\n",
            "[proxy]\ndeadline_seconds = -1\n",
            "[upstream]\nmax_retries = 0\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(_write(tmp_path, text))


class TestEnvOverrides:
    @pytest.mark.parametrize("value", ["0", "false", "No", " off "])
    def test_reasoning_disabled(self, monkeypatch, value):
        monkeypatch.setenv("VEILSTREAM_REASONING_ENABLED", value)
        assert load_config().proxy.reasoning_enabled is False

    def test_reasoning_enabled_over_file(self, monkeypatch, tmp_path):
        path = _write(tmp_path, "[proxy]\nreasoning_enabled = false\n")
        monkeypatch.setenv("VEILSTREAM_REASONING_ENABLED", "true")
        assert load_config(path).proxy.reasoning_enabled is True

    def test_unrecognised_value_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("VEILSTREAM_REASONING_ENABLED", "maybe")
        cfg = load_config()
        assert cfg.proxy.reasoning_enabled is True
        assert "VEILSTREAM_REASONING_ENABLED" in caplog.text

    def test_model_override(self, monkeypatch):
        monkeypatch.setenv("VEILSTREAM_MODEL", "anthropic/claude-3-haiku")
        assert load_config().upstream.model == "anthropic/claude-3-haiku"
