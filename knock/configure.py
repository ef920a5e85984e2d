"""Interactive setup that writes provider settings to the YAML config file."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from prompt_toolkit import prompt

from .translate.config import PROVIDERS, ConfigError, load_config_file, provider_defaults

Ask = Callable[[str, str], str]


def ask_with_prompt_toolkit(message: str, default: str) -> str:
    return prompt(message, default=default)


def run_setup(path: Path, ask: Optional[Ask] = None) -> Dict[str, Any]:
    """Ask for provider settings and merge them into the config file at ``path``.

    Blank answers keep the offered default. Other sections of the file, and an
    ``api_key`` already stored for the chosen provider, are left in place.
    Returns the mapping that was written.
    """
    ask = ask or ask_with_prompt_toolkit
    path = Path(path).expanduser()
    data = load_config_file(path)

    current_provider = str(data.get("provider") or "openai")
    provider = _answer(ask, f"Provider ({'/'.join(PROVIDERS)}): ", current_provider).lower()
    if provider not in PROVIDERS:
        raise ConfigError(f"Unknown provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}.")

    section = data.get(provider) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{provider}' in {path} must be a mapping")
    defaults = provider_defaults(provider)

    def offered(name: str) -> str:
        return str(section.get(name) or defaults.get(name) or "")

    section["model"] = _answer(ask, "Model: ", offered("model"))
    section["base_url"] = _answer(ask, "Base URL: ", offered("base_url")).rstrip("/")
    if defaults.get("api_key_env"):
        section["api_key_env"] = _answer(ask, "API key environment variable: ", offered("api_key_env"))

    data["provider"] = provider
    data[provider] = section

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=True, allow_unicode=False), encoding="utf-8")
    return data


def _answer(ask: Ask, message: str, default: str) -> str:
    return ask(message, default).strip() or default
