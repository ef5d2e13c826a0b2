from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_TIMEOUT_MS = 30_000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STATUSLINE_GIT_",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="statusline-git", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="production", description="Environment mode"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    git_binary_path: str = Field(default="git", description="Path to git binary")
    git_max_output_bytes: int = Field(
        default=1024 * 1024, gt=0, description="Per-stream output limit for git commands"
    )
    git_retry_delay_ms: int = Field(
        default=500, ge=0, description="Delay before retrying a timed-out git command"
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


settings = get_settings()


class CacheTypesConfig(BaseModel):
    """Which per-category results may be cached"""

    model_config = ConfigDict(extra="forbid")

    branch: bool = True
    status: bool = True
    version: bool = True
    stash: bool = True


class GitCacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    duration_ms: int = Field(default=5000, ge=0, description="Base cache TTL")
    cache_types: CacheTypesConfig = Field(default_factory=CacheTypesConfig)


class GitFeatureConfig(BaseModel):
    """Each flag toggles one sub-query's participation in the aggregate"""

    model_config = ConfigDict(extra="forbid")

    fetch_comparison: bool = True
    fetch_stash: bool = True
    fetch_operation: bool = True
    fetch_version: bool = True
    large_repo_threshold: int = Field(
        default=10_000, gt=0, description="Tracked file count above which a repo is large"
    )


class GitServiceConfig(BaseModel):
    """Configuration of one GitInfoService instance"""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    timeout_ms: int = Field(default=1000, gt=0, description="Per-command timeout")
    working_dir: Path = Field(default_factory=Path.cwd)
    cache: GitCacheConfig = Field(default_factory=GitCacheConfig)
    features: GitFeatureConfig = Field(default_factory=GitFeatureConfig)

    @field_validator("timeout_ms")
    @classmethod
    def clamp_timeout(cls, v: int) -> int:
        return min(v, MAX_TIMEOUT_MS)

    @field_validator("working_dir", mode="before")
    @classmethod
    def expand_working_dir(cls, v: Any) -> Path:
        return Path(v).expanduser()

    def merged(self, changes: Mapping[str, Any]) -> "GitServiceConfig":
        """Return a new config with a partial, possibly nested, mapping applied"""
        return GitServiceConfig.model_validate(
            _deep_merge(self.model_dump(), dict(changes))
        )


def _deep_merge(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], dict(value))
        else:
            merged[key] = value
    return merged
