"""
Relationship Resolver - computed properties over dynamic collections

Derives property values for records in a runtime-defined schema:
- Lookups: copy a value from a directly referenced record
- Rollups: aggregate values from records referencing back to a record
- Hierarchies: ancestors/descendants through a self-referencing parent link

Schema-level dependency cycles are detected statically from the schema
before any data is fetched; data-level parent loops are detected during
traversal.
"""

from .config import Config
from .errors import RelationshipError
from .resolver import RelationshipResolver

__version__ = "0.1.0"

__all__ = [
    "Config",
    "RelationshipError",
    "RelationshipResolver",
]
