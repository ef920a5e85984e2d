"""Provider configuration resolved once at startup.

Values are taken from, in order of precedence:

1. explicit overrides (command-line flags),
2. ``KNOCK_*`` environment variables,
3. the provider's section of the YAML config file,
4. top-level keys of the YAML config file,
5. built-in defaults.

The config file lives at ``$KNOCK_CONFIG`` or ``~/.knock/config.yaml``::

    provider: anthropic
    temperature: 0.2
    anthropic:
      model: claude-sonnet-4-5
    ollama:
      base_url: http://gpu-box:11434

API keys are read from the environment variable named by ``api_key_env`` and
fall back to an ``api_key`` entry in the file. For OpenAI the older ``API_KEY``
variable is honoured after ``OPENAI_API_KEY``. A missing key is not an error
here; clients refuse to send without one.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

PROVIDERS = ("openai", "anthropic", "ollama")

DEFAULT_PROVIDER = "openai"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_TIMEOUT = 60.0
LEGACY_API_KEY_ENV = "API_KEY"

_PROVIDER_DEFAULTS: Dict[str, Dict[str, Optional[str]]] = {
    "openai": {
        "model": "gpt-5.1",
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
    },
    "anthropic": {
        "model": "claude-sonnet-4-5",
        "base_url": "https://api.anthropic.com",
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "ollama": {
        "model": "llama3.2",
        "base_url": "http://localhost:11434",
        "api_key_env": None,
    },
}

_ENV_KEYS = {
    "provider": "KNOCK_PROVIDER",
    "model": "KNOCK_MODEL",
    "base_url": "KNOCK_BASE_URL",
    "temperature": "KNOCK_TEMPERATURE",
}


class ConfigError(ValueError):
    """Raised when the configuration file or a setting is invalid."""


@dataclass(frozen=True)
class ProviderConfig:
    """Read-only settings for the single configured provider."""

    provider: str
    model: str
    base_url: str
    api_key_env: Optional[str] = None
    api_key: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    timeout: float = DEFAULT_TIMEOUT


def provider_defaults(provider: str) -> Dict[str, Optional[str]]:
    try:
        return dict(_PROVIDER_DEFAULTS[provider])
    except KeyError:
        raise ConfigError(
            f"Unknown provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}."
        ) from None


def get_default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    override = env.get("KNOCK_CONFIG")
    if override and override.strip():
        return Path(override.strip()).expanduser()
    return Path("~/.knock/config.yaml").expanduser()


def load_config_file(path: Path) -> Dict[str, Any]:
    """Return the parsed YAML mapping, or an empty dict if the file is absent."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ProviderConfig:
    env = os.environ if environ is None else environ
    path = config_path if config_path is not None else get_default_config_path(env)
    file_data = load_config_file(path)
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    provider = _first(
        overrides.get("provider"),
        _env_value(env, "provider"),
        file_data.get("provider"),
        DEFAULT_PROVIDER,
    )
    provider = str(provider).strip().lower()
    if provider not in PROVIDERS:
        raise ConfigError(
            f"Unknown provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}."
        )

    section = file_data.get(provider) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{provider}' in {path} must be a mapping")
    defaults = _PROVIDER_DEFAULTS[provider]

    def setting(name: str) -> Any:
        return _first(
            overrides.get(name),
            _env_value(env, name) if name in _ENV_KEYS else None,
            section.get(name),
            file_data.get(name),
            defaults.get(name),
        )

    api_key_env = setting("api_key_env")
    api_key = _resolve_api_key(
        env,
        api_key_env,
        _first(section.get("api_key"), file_data.get("api_key")),
        allow_legacy=provider == "openai",
    )

    return ProviderConfig(
        provider=provider,
        model=str(setting("model")),
        base_url=str(setting("base_url")).rstrip("/"),
        api_key_env=api_key_env,
        api_key=api_key,
        temperature=_as_float(setting("temperature"), DEFAULT_TEMPERATURE, "temperature"),
        timeout=_as_float(setting("timeout"), DEFAULT_TIMEOUT, "timeout"),
    )


def _resolve_api_key(
    environ: Mapping[str, str],
    api_key_env: Optional[str],
    file_key: Optional[str],
    *,
    allow_legacy: bool = False,
) -> Optional[str]:
    if not api_key_env:
        return None
    names = (api_key_env, LEGACY_API_KEY_ENV) if allow_legacy else (api_key_env,)
    for name in names:
        value = environ.get(name)
        if value and value.strip():
            return value.strip()
    if file_key and str(file_key).strip():
        return str(file_key).strip()
    return None


def _env_value(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(_ENV_KEYS[name])
    if value and value.strip():
        return value.strip()
    return None


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _as_float(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Setting '{name}' must be a number, got {value!r}") from exc
