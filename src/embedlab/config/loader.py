"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (EMBEDLAB__SECTION__KEY)
3. Legacy deployment variables (KV_REST_API_URL, PGVECTOR_DATABASE_URL, ...)
4. Local YAML (./embedlab.yaml, or an explicit path)
5. Global YAML (~/.config/embedlab/config.yaml)
6. Built-in defaults (lowest priority)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from embedlab.config.models import (
    CacheConfig,
    DatabaseConfig,
    EmbedLabConfig,
    LimitsConfig,
    LoggingConfig,
    ModelConfig,
    TelemetryConfig,
)
from embedlab.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/embedlab/config.yaml").expanduser()
LOCAL_CONFIG_NAME = "embedlab.yaml"

# Deployment variables honoured for compatibility with hosted KV / Postgres
# integrations. First non-empty name in each tuple wins.
LEGACY_ENV_VARS: dict[tuple[str, str], tuple[str, ...]] = {
    ("cache", "kv_url"): ("KV_REST_API_URL", "VERCEL_KV_REST_API_URL", "KV_URL"),
    ("cache", "kv_token"): ("KV_REST_API_TOKEN", "VERCEL_KV_REST_API_TOKEN"),
    ("database", "url"): ("PGVECTOR_DATABASE_URL",),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _legacy_env_values(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect legacy deployment variables into a nested config dict."""
    environ = dict(os.environ) if environ is None else environ
    values: dict[str, Any] = {}
    for (section, key), names in LEGACY_ENV_VARS.items():
        for name in names:
            raw = environ.get(name, "").strip()
            if raw:
                values.setdefault(section, {})[key] = raw
                break
    return values


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


class _LegacyEnvSource(_YamlSource):
    """Settings source for un-prefixed deployment variables."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls, _legacy_env_values())


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class EmbedLabSettings(BaseSettings):
        """Root config. Env vars: EMBEDLAB__LOGGING__LEVEL, EMBEDLAB__MODEL__MODEL_ID, etc."""

        model_config = SettingsConfigDict(
            env_prefix="EMBEDLAB__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        model: ModelConfig = ModelConfig()
        cache: CacheConfig = CacheConfig()
        database: DatabaseConfig = DatabaseConfig()
        limits: LimitsConfig = LimitsConfig()
        telemetry: TelemetryConfig = TelemetryConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > legacy env > yaml files
            return (
                init_settings,
                env_settings,
                _LegacyEnvSource(settings_cls),
                _YamlSource(settings_cls, yaml_config),
            )

    return EmbedLabSettings


EmbedLabSettings = _make_settings_class({})


def load_config(config_path: Path | None = None, **kwargs: Any) -> EmbedLabConfig:
    """Load config: defaults < global yaml < local yaml < legacy env < env vars < kwargs.

    Args:
        config_path: Explicit YAML file. Defaults to ./embedlab.yaml when present.
        **kwargs: Override values (highest precedence), keyed by section.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError.parse_error(str(config_path), "file not found")

    local_path = config_path or Path.cwd() / LOCAL_CONFIG_NAME
    yaml_config = _deep_merge(_load_yaml(GLOBAL_CONFIG_PATH), _load_yaml(local_path))

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except PydanticValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e

    return EmbedLabConfig.model_validate(settings.model_dump())
