"""Configuration models.

``CacheConfig`` and friends are plain pydantic models so they can be built
in code; ``ContentCacheSettings`` loads all of them from the environment:

    CONTENT_CACHE_CACHE__TTL_MS=5m
    CONTENT_CACHE_CACHE__USE_L2=true
    CONTENT_CACHE_NOTION__TOKEN=secret_...
    CONTENT_CACHE_WEBHOOK_SECRET=...
    CONTENT_CACHE_REDIS_URL=redis://localhost:6379/0
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contentcache.duration import parse_duration
from contentcache.types import CachePolicy


class CacheConfig(BaseModel):
    """Configuration for the tiered cache, consumed at construction."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    enabled: bool = Field(
        default=True,
        description="When false every read is a forced miss",
    )
    ttl_ms: int = Field(
        default=300_000,
        gt=0,
        description="Default entry TTL in milliseconds (accepts '5m' style)",
    )
    use_l2: bool = Field(
        default=False,
        description="Write through to the shared tier by default",
    )
    l2_ttl_seconds: int | None = Field(
        default=None,
        gt=0,
        description="Shared tier expiry; defaults to the TTL in seconds",
    )
    max_l1_entries: int = Field(
        default=100,
        gt=0,
        description="Maximum number of entries kept in process",
    )
    key_prefix: str = Field(
        default="notion-cache",
        description="Namespace for keys in the shared tier",
    )
    sweep_interval_seconds: float | None = Field(
        default=60.0,
        gt=0,
        description="Interval of the background expired-entry sweep (None disables)",
    )

    @field_validator("ttl_ms", mode="before")
    @classmethod
    def _parse_ttl(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    def default_policy(self) -> CachePolicy:
        return CachePolicy(
            ttl_ms=self.ttl_ms,
            use_l2=self.use_l2,
            l2_ttl_seconds=self.l2_ttl_seconds,
        )


class NotionSettings(BaseModel):
    """Notion API access."""

    token: SecretStr | None = Field(default=None, description="Integration token")
    base_url: str = Field(default="https://api.notion.com")
    version: str = Field(default="2022-06-28", description="Notion-Version header")
    timeout: float = Field(default=30.0, gt=0)


class PaginationSettings(BaseModel):
    """Bounds for draining a paginated collection."""

    max_pages: int = Field(default=50, gt=0, description="Hard page ceiling per drain")
    page_timeout_seconds: float = Field(default=10.0, gt=0)
    max_restarts: int = Field(default=2, ge=0, description="Cursor-expiry restarts")


class ContentCacheSettings(BaseSettings):
    """All content cache settings, loaded from environment variables.

    For nested settings, use double underscore: CONTENT_CACHE_CACHE__TTL_MS=60000
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTENT_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    notion: NotionSettings = Field(default_factory=NotionSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)

    webhook_secret: SecretStr | None = Field(
        default=None, description="Shared secret for webhook HMAC signatures"
    )
    redis_url: str | None = Field(default=None, description="Shared tier via Redis")
    kv_rest_url: str | None = Field(default=None, description="Shared tier via REST KV")
    kv_rest_token: SecretStr | None = Field(default=None)
