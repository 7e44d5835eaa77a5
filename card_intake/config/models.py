"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import List
from pydantic import BaseModel, Field, field_validator, ConfigDict


DEFAULT_WHITELIST = [
    "localhost",
    "cdn.discordapp.com",
    "files.catbox.moe",
    "raw.githubusercontent.com",
]


class PathsConfig(BaseModel):
    """File path configuration."""
    
    characters: Path = Path("data/characters")
    thumbnails: Path = Path("data/thumbnails")
    uploads: Path = Path("data/uploads")
    
    @field_validator('characters', 'thumbnails', 'uploads')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class AvatarConfig(BaseModel):
    """Standard avatar dimensions used when a crop asks for a resize."""
    
    width: int = Field(default=512, gt=0, le=4096)
    height: int = Field(default=768, gt=0, le=4096)


class ContentConfig(BaseModel):
    """Content download configuration."""
    
    whitelist_import_domains: List[str] = Field(
        default_factory=lambda: list(DEFAULT_WHITELIST),
        description="Hosts allowed for generic (non-provider) downloads"
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    user_agent: str = "card-intake/0.1"
    
    @field_validator('whitelist_import_domains')
    @classmethod
    def normalize_hosts(cls, v: List[str]) -> List[str]:
        """Lower-case hosts and drop blanks."""
        return [host.strip().lower() for host in v if host and host.strip()]


class SystemConfig(BaseModel):
    """Top-level system configuration."""
    
    model_config = ConfigDict(extra='ignore')
    
    paths: PathsConfig = Field(default_factory=PathsConfig)
    avatar: AvatarConfig = Field(default_factory=AvatarConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8000, gt=0, le=65535)
    
    def model_post_init(self, __context) -> None:
        """Post-initialization validation and setup."""
        # Ensure directories exist
        for path_name in ['characters', 'thumbnails', 'uploads']:
            path = getattr(self.paths, path_name)
            path.mkdir(parents=True, exist_ok=True)
