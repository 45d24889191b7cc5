"""Configuration for the relationship resolver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field


@dataclass
class CacheConfig:
    """Cache configuration."""
    enabled: bool = True
    max_size: int = 10000
    default_ttl_seconds: float = 300.0


@dataclass
class LimitsConfig:
    """Hard caps that bound the cost of any single resolution."""
    # Lookup/rollup recursion through computed properties
    max_lookup_depth: int = 5

    # Ceiling for ancestor/descendant traversal (per-property max_depth is clamped to it)
    max_hierarchy_depth: int = 50

    # Default descendant fan-out cap
    max_descendant_nodes: int = 1000

    # Parallel sibling-branch fetches during descendant expansion
    descendant_concurrency: int = 8

    # Page size when draining rollup child queries
    query_page_size: int = 500

    def __post_init__(self):
        for name in (
            "max_lookup_depth",
            "max_hierarchy_depth",
            "max_descendant_nodes",
            "descendant_concurrency",
            "query_page_size",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"limits.{name} must be a positive integer, got {value!r}")


@dataclass
class SchemaConfig:
    """Schema configuration."""
    # Path to schema definition file or directory (YAML or JSON)
    definition_file: str | None = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    cache: CacheConfig = field(default_factory=CacheConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            cache=CacheConfig(**data.get("cache", {})),
            limits=LimitsConfig(**data.get("limits", {})),
            schema=SchemaConfig(**data.get("schema", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


def configure_logging(config: Config) -> None:
    """Apply the logging section to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
    )
