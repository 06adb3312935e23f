"""App configuration (LLM connection, simulation timing, prompt overrides).

Resolution order, later wins:
  1. _CONFIG_DEFAULTS
  2. {data_dir}/config.json (written by update_config / PATCH /api/settings)
  3. environment variables (a .env file is loaded by the app on startup)

Updates are validated against AppSettings before anything is written, so a
bad PATCH never reaches disk.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from drifter.storage import SAVE_NAME_PATTERN

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "https://generativelanguage.googleapis.com",
        "provider_format": "gemini",
        "model": "gemini-3-flash-preview",
        "api_key": "",
        "timeout": 120.0,
    },
    "simulation": {
        "deadline_seconds": 60.0,
        "retry_delay_seconds": 1.0,
        "day_max_tokens": 4096,
        "ending_max_tokens": 2048,
        "save_name": "drifter_save",
    },
    # Empty string means "use the built-in template"
    "prompts": {
        "day": "",
        "ending": "",
    },
}

# env var → (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "LLM_PROVIDER_URL": ("llm", "provider_url"),
    "LLM_PROVIDER_FORMAT": ("llm", "provider_format"),
    "LLM_MODEL": ("llm", "model"),
    "LLM_API_KEY": ("llm", "api_key"),
    "GEMINI_API_KEY": ("llm", "api_key"),
}


class ConfigError(ValueError):
    """Raised when a settings update does not validate."""


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)


class LLMSettings(_Section):
    provider_url: str
    provider_format: Literal["gemini", "openai", "koboldcpp", "echo"]
    model: str
    api_key: str
    timeout: float = Field(gt=0)


class SimulationSettings(_Section):
    deadline_seconds: float = Field(gt=0)
    retry_delay_seconds: float = Field(ge=0)
    day_max_tokens: int = Field(gt=0)
    ending_max_tokens: int = Field(gt=0)
    save_name: str = Field(pattern=SAVE_NAME_PATTERN)


class PromptSettings(_Section):
    day: str
    ending: str


class AppSettings(_Section):
    llm: LLMSettings
    simulation: SimulationSettings
    prompts: PromptSettings


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    for section, vals in fields.items():
        if section in config and isinstance(vals, dict):
            for key, value in vals.items():
                if key in config[section]:
                    config[section][key] = value


def _stored_config(data_dir: Path) -> dict[str, Any]:
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    path = _config_path(data_dir)
    if path.is_file():
        _merge(config, json.loads(path.read_text()))
    return config


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored_config(data_dir)
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[section][key] = value
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into the stored config and persist. Returns the full config.

    Unknown sections and keys are ignored. Env overrides are applied to the
    returned value but never written to disk. Raises ConfigError, leaving the
    stored file untouched, when the merged result does not validate.
    """
    config = _stored_config(data_dir)
    llm_fields = fields.get("llm")
    if isinstance(llm_fields, dict) and llm_fields.get("api_key") == "***":
        # the masked value echoed back from GET /settings
        fields = {**fields, "llm": {k: v for k, v in llm_fields.items() if k != "api_key"}}
    _merge(config, fields)
    try:
        config = AppSettings.model_validate(config).model_dump()
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)


def public_config(config: dict[str, Any]) -> dict[str, Any]:
    """Config safe to return over HTTP (the API key is masked)."""
    shown = copy.deepcopy(config)
    shown["llm"]["api_key"] = "***" if config["llm"].get("api_key") else ""
    return shown
