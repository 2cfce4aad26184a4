from __future__ import annotations
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MEDIA_TWINS_", case_sensitive=False)

    # Storage
    db_path: str = Field(default="~/.media-twins/site.db")
    table_prefix: str = Field(default="wp_")
    redis_url: str = Field(default="redis://localhost:6379/0")
    log_queries: bool = False

    # Scanning
    posts_per_page: int = 500
    post_type: str = "attachment"
    post_status: str = "inherit"

    # Deleting
    delete_concurrency: int = 4

    # Keep-set seeds, merged with the ones given on the command line
    keep_ids: List[int] = []
    keep_keys: List[str] = []

    # Lookup cache
    guid_cache_ttl_sec: int = 3600     # 1 h

settings = Settings()
