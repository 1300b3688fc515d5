from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    env: str = Field(default="development", alias="APP_ENV")

    database_url: str = Field(default="sqlite:///./data/patients.db", alias="DATABASE_URL")

    default_page_size: int = Field(default=10, alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="MAX_PAGE_SIZE")
    name_filter_case_sensitive: bool = Field(default=False, alias="NAME_FILTER_CASE_SENSITIVE")
    query_timeout_sec: float = Field(default=30.0, alias="QUERY_TIMEOUT_SEC")

    audit_actor: str = Field(default="system", alias="AUDIT_ACTOR")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache
def get_settings() -> AppConfig:
    return AppConfig()
