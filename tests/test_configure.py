"""Tests for knock/configure.py."""
import pytest
import yaml

from knock.configure import run_setup
from knock.translate import ConfigError, load_config


def scripted(*answers):
    """Return an ask callable that replays ``answers`` and records the prompts."""
    remaining = list(answers)
    asked = []

    def ask(message, default):
        asked.append((message, default))
        return remaining.pop(0)

    ask.asked = asked
    return ask


def test_answers_are_written_and_read_back(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    ask = scripted("anthropic", "claude-opus-4-1", "https://proxy.internal/", "TEAM_ANTHROPIC_KEY")

    run_setup(path, ask=ask)

    config = load_config(environ={"TEAM_ANTHROPIC_KEY": "sk-team"}, config_path=path)
    assert config.provider == "anthropic"
    assert config.model == "claude-opus-4-1"
    assert config.base_url == "https://proxy.internal"
    assert config.api_key_env == "TEAM_ANTHROPIC_KEY"
    assert config.api_key == "sk-team"


def test_blank_answers_keep_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    ask = scripted("", "", "", "")

    run_setup(path, ask=ask)

    config = load_config(environ={}, config_path=path)
    assert config.provider == "openai"
    assert config.model == "gpt-5.1"
    assert config.base_url == "https://api.openai.com/v1"
    assert config.api_key_env == "OPENAI_API_KEY"
    assert [default for _, default in ask.asked] == [
        "openai",
        "gpt-5.1",
        "https://api.openai.com/v1",
        "OPENAI_API_KEY",
    ]


def test_ollama_does_not_ask_for_a_key_variable(tmp_path):
    path = tmp_path / "config.yaml"
    ask = scripted("ollama", "", "")

    run_setup(path, ask=ask)

    assert len(ask.asked) == 3
    assert "api_key_env" not in yaml.safe_load(path.read_text(encoding="utf-8"))["ollama"]


def test_existing_settings_are_offered_and_kept(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "provider: anthropic\n"
        "temperature: 0.5\n"
        "anthropic:\n"
        "  model: claude-haiku-4-5\n"
        "  api_key: sk-file\n"
        "ollama:\n"
        "  base_url: http://gpu-box:11434\n",
        encoding="utf-8",
    )
    ask = scripted("", "", "", "")

    run_setup(path, ask=ask)

    assert ask.asked[0][1] == "anthropic"
    assert ask.asked[1][1] == "claude-haiku-4-5"
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["temperature"] == 0.5
    assert data["anthropic"]["api_key"] == "sk-file"
    assert data["ollama"] == {"base_url": "http://gpu-box:11434"}


def test_unknown_provider_is_rejected_without_writing(tmp_path):
    path = tmp_path / "config.yaml"
    with pytest.raises(ConfigError):
        run_setup(path, ask=scripted("bedrock"))
    assert not path.exists()
