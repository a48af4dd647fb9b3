"""Configuration system for aisubs.

Layered config loading (lowest to highest priority):
1. config/default.toml (shipped with package)
2. ~/.config/aisubs/config.toml (user-level)
3. ./aisubs.toml (project-level)
4. Environment variables (AISUBS_TRANSLATOR__MODEL, etc.) and .env
5. CLI flags
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent.parent.parent
_DEFAULT_CONFIG = _PACKAGE_ROOT / "config" / "default.toml"
_USER_CONFIG = Path.home() / ".config" / "aisubs" / "config.toml"
_PROJECT_CONFIG = Path("aisubs.toml")

# LiteLLM model prefixes per provider; "litellm" passes the model through as-is.
PROVIDER_PREFIXES: dict[str, str] = {
    "gemini": "gemini/",
    "openai": "openai/",
    "ollama": "ollama_chat/",
    "litellm": "",
}


class TranslatorConfig(BaseModel):
    provider: str = "gemini"  # "gemini", "openai", "ollama" or "litellm"
    model: str = "gemini-1.5-flash"
    api_key: str | None = None
    api_base: str | None = None
    timeout: float = 60.0  # seconds per completion request
    temperature: float = 0.2
    max_tokens: int = 4096
    max_chunk_chars: int = 2500
    max_chunk_cues: int = 60
    max_attempts: int = 4  # per chunk, for rate-limit and transient errors
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    history_size: int = 5  # previous translated pairs passed as context

    @property
    def litellm_model(self) -> str:
        """Return the model string LiteLLM expects for the active provider."""
        if self.provider not in PROVIDER_PREFIXES:
            raise ValueError(
                f"Unknown translation provider: '{self.provider}'. "
                f"Expected one of: {', '.join(sorted(PROVIDER_PREFIXES))}"
            )
        prefix = PROVIDER_PREFIXES[self.provider]
        if prefix and self.model.startswith(prefix):
            return self.model
        return prefix + self.model


class CatalogConfig(BaseModel):
    api_base: str = "https://api.opensubtitles.com/api/v1"
    api_key: str | None = None
    user_agent: str = "aisubs v0.3.0"
    source_language: str = "en"
    timeout: float = 15.0
    max_attempts: int = 3
    backoff_base: float = 0.5
    encodings: list[str] = ["utf-8", "cp1252"]


class CacheConfig(BaseModel):
    max_bytes: int | None = None  # LRU budget for translated artifacts
    max_entries: int | None = None
    source_ttl: float = 6 * 60 * 60  # seconds a fetched source stays authoritative


class JobConfig(BaseModel):
    max_workers: int = 4
    job_timeout: float = 600.0  # deadline for fetch + translate inside one job
    wait_timeout: float | None = 300.0  # default caller wait, None waits forever


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 7000
    base_url: str | None = None
    default_format: Literal["vtt", "srt", "ass"] = "vtt"


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AISUBS_",
        env_nested_delimiter="__",
    )

    translator: TranslatorConfig = TranslatorConfig()
    catalog: CatalogConfig = CatalogConfig()
    cache: CacheConfig = CacheConfig()
    jobs: JobConfig = JobConfig()
    server: ServerConfig = ServerConfig()
    data_dir: Path = Path("./aisubs_data")

    @property
    def translations_dir(self) -> Path:
        """Directory holding translated artifacts."""
        return self.data_dir / "translations"

    @property
    def sources_dir(self) -> Path:
        """Directory holding downloaded source subtitles."""
        return self.data_dir / "sources"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # CLI overrides (init) > env vars > TOML layers
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlLayersSource(settings_cls),
            file_secret_settings,
        )


def _load_toml(path: Path) -> dict:
    """Load a TOML file if it exists, return empty dict otherwise."""
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_toml_layers() -> dict:
    """Merge the default, user and project TOML files (later files win)."""
    config_data: dict = {}
    for path in (_DEFAULT_CONFIG, _USER_CONFIG, _PROJECT_CONFIG):
        layer = _load_toml(path)
        config_data = _deep_merge(config_data, layer)

    # Flatten 'general' section into top-level
    if "general" in config_data:
        general = config_data.pop("general")
        config_data = _deep_merge(config_data, general)
    return config_data


class TomlLayersSource(PydanticBaseSettingsSource):
    """Settings source backed by the layered TOML files."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        # Unused: __call__ returns the whole mapping at once
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return load_toml_layers()


def load_config(**cli_overrides: object) -> AppConfig:
    """Load configuration from all layers and merge.

    Args:
        **cli_overrides: Direct overrides from CLI flags. Keys can be
            dot-separated (e.g. translator.model="gpt-4o-mini").
    """
    overrides: dict = {}
    for key, value in cli_overrides.items():
        if value is None:
            continue
        parts = key.split(".")
        target = overrides
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    # TOML layers and env vars are read by the settings sources
    return AppConfig(**overrides)
