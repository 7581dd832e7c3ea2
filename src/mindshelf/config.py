"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class SearchConfig:
    """Search orchestration and ranking settings."""
    debounce_seconds: float = 0.15
    short_query_cutoff: int = 3
    similarity_threshold: float = 0.1
    max_results: int = 100
    max_query_length: int = 500
    request_timeout: float = 10.0
    max_retries: int = 1


@dataclass
class CacheConfig:
    """Local cache settings."""
    cache_dir: Path = Path(".mindshelf/cache")
    ttl_seconds: float = 300.0
    max_items: int = 100
    byte_budget: int = 500_000
    reduced_items: int = 20
    minimal_items: int = 10
    schema_version: int = 1


@dataclass
class PaginationConfig:
    """Paging settings."""
    page_size: int = 50
    sort_order: str = "newest"


@dataclass
class StoreConfig:
    """Remote store and embedding service settings."""
    table: str = "content"
    search_function: str = "search_content"
    timeout: float = 10.0
    embedding_model: str = "nomic-embed-text"
    embedding_dimension: int = 768


@dataclass
class Settings:
    """Application settings."""

    # Endpoints and credentials (from environment only)
    store_url: str = ""
    api_key: str = ""
    access_token: Optional[str] = None
    embedding_url: Optional[str] = None

    # Config sections
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @property
    def cache_dir(self) -> Path:
        return self.cache.cache_dir

    @property
    def page_size(self) -> int:
        return self.pagination.page_size


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        store_url=os.getenv("MINDSHELF_STORE_URL", ""),
        api_key=os.getenv("MINDSHELF_API_KEY", ""),
        access_token=os.getenv("MINDSHELF_ACCESS_TOKEN"),
        embedding_url=os.getenv("MINDSHELF_EMBEDDING_URL"),
    )

    if "search" in config:
        for key, value in config["search"].items():
            setattr(settings.search, key, value)

    if "cache" in config:
        for key, value in config["cache"].items():
            if key == "cache_dir":
                value = Path(value)
            setattr(settings.cache, key, value)

    if "pagination" in config:
        for key, value in config["pagination"].items():
            setattr(settings.pagination, key, value)

    if "store" in config:
        for key, value in config["store"].items():
            setattr(settings.store, key, value)

    return settings
