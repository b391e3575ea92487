from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from errata.domain.constants import DEFAULT_SERVER_PORT, REQUEST_TIMEOUT

CONFIG_FILES = [
    Path.home() / ".config/errata/config.toml",
    Path.home() / ".errata.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for errata.
    Supports loading from:
    1. Environment variables (ERRATA_*)
    2. Config file (~/.config/errata/config.toml)
    3. Manual overrides (CLI / HTTP)
    """

    model_config = SettingsConfigDict(
        env_prefix="ERRATA_",
        extra="ignore",
    )

    # Persistence backend
    backend: Literal["supabase", "snapshot"] = "snapshot"
    supabase_url: str | None = None
    supabase_key: str | None = None
    snapshot_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/errata/snapshot.yaml"
    )
    request_timeout: float = REQUEST_TIMEOUT

    # Server
    host: str = "127.0.0.1"
    port: int = DEFAULT_SERVER_PORT

    # None leaves each entry point's default (server INFO, CLI WARNING)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = None
        for f in CONFIG_FILES:
            if f.exists():
                toml_file = f
                break

        # Earlier sources win: overrides, then env, then the file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("snapshot_path", mode="before")
    @classmethod
    def resolve_snapshot_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("supabase_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> str | None:
        if not v:
            return None
        return str(v).rstrip("/")


def resolve_config(overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/errata/config.toml (if exists)
    3. Environment variables (ERRATA_*)
    4. overrides (passed from Typer or request parameters); None values are ignored
    """
    clean = {k: v for k, v in (overrides or {}).items() if v is not None}
    return AppConfig(**clean)
