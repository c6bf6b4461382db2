"""Game server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "MAHJONG_"}

    database_path: str = Field(default="backend/data/mahjong.db", min_length=1)
    log_dir: str = Field(default="backend/logs/game", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    # pause between the dealer/wind update and the new round's hands
    round_restart_delay_seconds: float = Field(default=5.0, ge=0)
    send_attempts: int = Field(default=3, ge=1, le=10)
    max_message_bytes: int = Field(default=16 * 1024, ge=256)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
