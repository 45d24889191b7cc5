"""Shared test fixtures for relationship resolver tests.

The schema comes from sample_schema.yaml at the repository root; records
live in an InMemoryDataProvider so tests can assert on fetch counts.
"""

from pathlib import Path

import pytest

from relationship_resolver.cache.memory import RelationshipCache
from relationship_resolver.config import Config, LimitsConfig
from relationship_resolver.data.memory import InMemoryDataProvider
from relationship_resolver.resolver import RelationshipResolver
from relationship_resolver.schema.loader import load_schema


_REPO_ROOT = Path(__file__).parent.parent


# =============================================================================
# Sample records
# =============================================================================

USERS = [
    {"id": "u1", "name": "Ada", "email": "ada@example.com", "manager": "u3"},
    {"id": "u2", "name": "Grace", "email": "grace@example.com", "manager": "u3"},
    {"id": "u3", "name": "Linus", "email": "linus@example.com", "manager": None},
]

# root -> eng -> backend -> api
#      \       \-> frontend
#       \-> ops
CATEGORIES = [
    {"id": "c-root", "name": "All", "parent": None},
    {"id": "c-eng", "name": "Engineering", "parent": "c-root"},
    {"id": "c-ops", "name": "Operations", "parent": "c-root"},
    {"id": "c-backend", "name": "Backend", "parent": "c-eng"},
    {"id": "c-frontend", "name": "Frontend", "parent": "c-eng"},
    {"id": "c-api", "name": "API", "parent": "c-backend"},
]

PROJECTS = [
    {"id": "p1", "name": "Apollo", "owner": "u1", "category": "c-api"},
    {"id": "p2", "name": "Hermes", "owner": "u2", "category": "c-ops"},
    {"id": "p3", "name": "Empty", "owner": None, "category": None},
]

TASKS = [
    {"id": "t1", "title": "Design", "hours": 2, "status": "open", "project": "p1",
     "assignee": "u1", "watchers": ["u2", "u3"]},
    {"id": "t2", "title": "Build", "hours": None, "status": "blocked", "project": "p1",
     "assignee": "u2", "watchers": []},
    {"id": "t3", "title": "Ship", "hours": 4, "status": "done", "project": "p1",
     "assignee": "u1", "watchers": ["u9", "u1"]},
    {"id": "t4", "title": "Plan", "hours": 5, "status": "open", "project": "p2",
     "assignee": "u9", "watchers": None},
]


# =============================================================================
# Schema Fixtures
# =============================================================================

@pytest.fixture
def schema_path() -> Path:
    """Path to the sample schema."""
    return _REPO_ROOT / "sample_schema.yaml"


@pytest.fixture
def schema_registry(schema_path):
    """Load the sample schema for testing."""
    return load_schema(schema_path)


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def data_provider() -> InMemoryDataProvider:
    """In-memory provider seeded with the sample records."""
    provider = InMemoryDataProvider()
    provider.upsert_many("users", USERS)
    provider.upsert_many("categories", CATEGORIES)
    provider.upsert_many("projects", PROJECTS)
    provider.upsert_many("tasks", TASKS)
    return provider


# =============================================================================
# Resolver Fixtures
# =============================================================================

@pytest.fixture
def config() -> Config:
    """Default test configuration."""
    return Config()


@pytest.fixture
def cache() -> RelationshipCache:
    """Relationship cache for testing."""
    return RelationshipCache(max_size=1000, default_ttl_seconds=300.0)


@pytest.fixture
def resolver(schema_registry, data_provider, config, cache) -> RelationshipResolver:
    """Resolver over the sample schema and records."""
    return RelationshipResolver(schema_registry, data_provider, config=config, cache=cache)


@pytest.fixture
def shallow_config() -> Config:
    """Configuration with a two-step lookup chain limit."""
    return Config(limits=LimitsConfig(max_lookup_depth=2))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Test Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow")
    config.addinivalue_line("markers", "concurrency: exercises concurrent resolution")
    config.addinivalue_line("markers", "cycles: schema or data cycle detection")
