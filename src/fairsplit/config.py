from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    bot_token: Optional[str] = Field(None, alias="BOT_TOKEN")
    database_url: str = Field("memory://", alias="DATABASE_URL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    serialize_balances: bool = Field(False, alias="FAIRSPLIT_SERIALIZE_BALANCES")

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url.startswith("memory://")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
