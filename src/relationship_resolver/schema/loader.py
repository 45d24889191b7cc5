"""Schema loader - loads collection definitions from YAML/JSON files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..filters import parse_filter
from .models import CollectionModel, PropertyModel
from .registry import SchemaRegistry
from .types import CollectionSchema, PropertySchema


logger = logging.getLogger(__name__)


class SchemaLoadError(ValueError):
    """Raised when a schema document is invalid."""
    pass


class SchemaLoader:
    """
    Loads schema definitions from YAML or JSON files.

    File format:
    ```yaml
    projects:
      display_name: Projects
      properties:
        - code: name
        - code: owner
          kind: reference
          target_collection: users
        - code: owner_email
          kind: lookup
          reference_property: owner
          target_collection: users
          source_property: email
        - code: open_hours
          kind: rollup
          target_collection: tasks
          reference_property: project
          source_property: hours
          aggregate: sum
          filter: {field: status, operator: notEquals, value: done}
    ```
    """

    def load_file(self, path: str | Path) -> SchemaRegistry:
        """Load schema from a YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Schema file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        return self.load_dict(data or {})

    def load_dict(self, data: dict[str, Any]) -> SchemaRegistry:
        """Load schema from a dictionary."""
        registry = SchemaRegistry()

        for code, collection_data in data.items():
            schema = self.parse_collection(code, collection_data or {})
            registry.register(schema)
            logger.debug(f"Loaded collection: {code} ({len(schema.properties)} properties)")

        logger.info(f"Loaded {len(registry)} collections")
        return registry

    def parse_collection(self, code: str, data: dict[str, Any]) -> CollectionSchema:
        """Validate and convert a single collection document."""
        try:
            model = CollectionModel.model_validate(data)
        except ValidationError as e:
            raise SchemaLoadError(f"Invalid schema for collection '{code}': {e}") from e

        try:
            properties = tuple(self._to_property(p) for p in model.properties)
            return CollectionSchema(
                code=code,
                properties=properties,
                display_name=model.display_name or code,
                id_field=model.id_field,
            )
        except ValueError as e:
            raise SchemaLoadError(f"Invalid schema for collection '{code}': {e}") from e

    @staticmethod
    def _to_property(model: PropertyModel) -> PropertySchema:
        return PropertySchema(
            code=model.code,
            kind=model.kind,
            display_name=model.display_name or model.code,
            reference_property=model.reference_property,
            target_collection=model.target_collection,
            source_property=model.source_property,
            aggregate=model.aggregate,
            filter=parse_filter(model.filter),
            parent_property=model.parent_property,
            max_depth=model.max_depth,
        )

    def load_directory(self, directory: str | Path) -> SchemaRegistry:
        """
        Load schema from all YAML/JSON files in a directory.

        Files are loaded in alphabetical order. Later files can override
        earlier definitions.
        """
        directory = Path(directory)
        registry = SchemaRegistry()

        if not directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")

        files = sorted(directory.glob("*.yaml")) + sorted(directory.glob("*.yml")) + sorted(directory.glob("*.json"))

        for file_path in files:
            logger.info(f"Loading schema file: {file_path}")
            file_registry = self.load_file(file_path)
            registry.register_many(file_registry.all_collections())

        return registry


def load_schema(source: str | Path | dict) -> SchemaRegistry:
    """
    Convenience function to load a schema.

    Args:
        source: File path, directory path, or dictionary

    Returns:
        SchemaRegistry with loaded collections
    """
    loader = SchemaLoader()

    if isinstance(source, dict):
        return loader.load_dict(source)

    path = Path(source)
    if path.is_dir():
        return loader.load_directory(path)
    else:
        return loader.load_file(path)
