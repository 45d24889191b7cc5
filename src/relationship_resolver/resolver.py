"""Relationship resolver - computes lookup, rollup and hierarchical values.

Every resolution follows the same sequence:
1. Look up the property definition and check its references
2. Consult the detector's memoized acyclic status (no fresh traversal)
3. Enforce the lookup chain depth before anything is fetched
4. Serve from cache, or compute once for all concurrent callers
5. Fetch via the data interface, wrapping failures with resolver context
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable

from .cache.memory import RecordRef, RelationshipCache
from .config import Config
from .data.base import (
    DataNotFoundError,
    DataProvider,
    DataTimeoutError,
    FilterCapable,
    Pagination,
    QueryOptions,
    QueryResult,
    SortSpec,
)
from .errors import (
    CollectionNotFoundError,
    DataCircularReferenceError,
    DataSourceError,
    InvalidReferenceError,
    MaxDepthExceededError,
    PropertyNotFoundError,
    RecordNotFoundError,
    RelationshipError,
    ResolutionTimeoutError,
    SchemaCircularDependencyError,
)
from .filters import (
    Filter,
    FilterCondition,
    FilterOperator,
    and_filters,
    evaluate_filter,
    filter_fields,
)
from .graph.builder import DependencyGraphBuilder
from .graph.detector import CircularDependencyDetector
from .graph.integrity import check_property_references, check_schema_references
from .graph.types import CircularPath, DependencyGraph, DependencyNode
from .resolution.aggregate import aggregate
from .resolution.types import (
    BatchResult,
    HierarchyDirection,
    HierarchyNode,
    HierarchyResult,
    ProvenanceStep,
    ResolutionRequest,
    ResolutionResult,
    ResolverMetrics,
)
from .schema.loader import load_schema
from .schema.registry import SchemaProvider
from .schema.types import CollectionSchema, PropertyKind, PropertySchema


logger = logging.getLogger(__name__)

# Outcome of a computation destined for the cache: (result, fingerprint)
Computed = tuple[Any, frozenset[RecordRef]]


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _id_forms(record_id: str) -> list[Any]:
    """A record id as stored references may hold it: the string, and the integer for numeric ids."""
    if record_id.isdecimal() and str(int(record_id)) == record_id:
        return [record_id, int(record_id)]
    return [record_id]


def _link_condition(field: str, record_ids: list[str]) -> FilterCondition:
    """Condition matching rows whose `field` references any of `record_ids`."""
    values = [form for record_id in record_ids for form in _id_forms(record_id)]
    if len(values) == 1:
        return FilterCondition(field=field, operator=FilterOperator.EQUALS, value=values[0])
    return FilterCondition(field=field, operator=FilterOperator.IN_LIST, value=values)


async def _gather(aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """Run concurrently, in order; the first failure cancels whatever is still running."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
    if pending:
        await asyncio.wait(pending)

    errors = [t.exception() for t in tasks if not t.cancelled()]
    for error in errors:
        if error is not None:
            raise error
    return [t.result() for t in tasks]


class RelationshipResolver:
    """
    Resolves computed properties against a schema and a data provider.

    The dependency graph is built and fully analyzed at construction;
    properties caught in a schema-level cycle are reported as warnings
    and refuse to resolve. Graph state is swapped under a lock on
    reload_schema / on_collection_changed.
    """

    def __init__(
        self,
        schema_provider: SchemaProvider,
        data_provider: DataProvider,
        config: Config | None = None,
        cache: RelationshipCache | None = None,
    ):
        self.config = config or Config()
        self._schema = schema_provider
        self._data = data_provider
        self._limits = self.config.limits

        if cache is None:
            cache = RelationshipCache(
                max_size=self.config.cache.max_size,
                default_ttl_seconds=self.config.cache.default_ttl_seconds,
            )
        self._cache = cache
        self._cache_enabled = self.config.cache.enabled

        self._builder = DependencyGraphBuilder(schema_provider)
        self._graph_lock = threading.RLock()
        self._metrics = ResolverMetrics()

        self._detector = CircularDependencyDetector(self._builder.build())
        self._report_cycles(self._detector.analyze())

    @classmethod
    def from_config(
        cls,
        config: Config,
        data_provider: DataProvider,
        cache: RelationshipCache | None = None,
    ) -> RelationshipResolver:
        """Build a resolver over the schema named by `config.schema.definition_file`."""
        source = config.schema.definition_file
        if not source:
            raise ValueError("schema.definition_file is not configured")
        logger.info(f"Loading schema from {source}")
        return cls(load_schema(source), data_provider, config=config, cache=cache)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def graph(self) -> DependencyGraph:
        with self._graph_lock:
            return self._detector.graph

    @property
    def detector(self) -> CircularDependencyDetector:
        with self._graph_lock:
            return self._detector

    @property
    def cache(self) -> RelationshipCache:
        return self._cache

    @property
    def cache_stats(self) -> dict:
        return self._cache.stats

    @property
    def metrics(self) -> ResolverMetrics:
        """Snapshot of the running counters."""
        return replace(self._metrics)

    def reset_metrics(self) -> None:
        self._metrics = ResolverMetrics()

    # ------------------------------------------------------------------
    # Public resolution API
    # ------------------------------------------------------------------

    async def resolve_lookup(self, request: ResolutionRequest) -> ResolutionResult:
        """Copy a value from the record referenced by `request.property`'s reference."""
        self._metrics.lookups += 1
        return await self._run(request, self._lookup(request))

    async def resolve_rollup(self, request: ResolutionRequest) -> ResolutionResult:
        """Aggregate over the child records referencing `request.record_id`."""
        self._metrics.rollups += 1
        return await self._run(request, self._rollup(request))

    async def resolve_hierarchical(
        self,
        request: ResolutionRequest,
        direction: HierarchyDirection = HierarchyDirection.ANCESTORS,
        *,
        max_depth: int | None = None,
        max_nodes: int | None = None,
    ) -> HierarchyResult:
        """
        Traverse the self-referencing parent link.

        Ancestor and path traversal fail hard on a data-level loop or when
        the depth limit is overrun; descendant and sibling listings set
        `truncated` instead.
        """
        self._metrics.hierarchies += 1
        direction = HierarchyDirection(direction)
        return await self._run(
            request,
            self._hierarchy(request, direction, max_depth=max_depth, max_nodes=max_nodes),
        )

    async def resolve(
        self,
        request: ResolutionRequest,
        direction: HierarchyDirection | None = None,
    ) -> ResolutionResult | HierarchyResult:
        """Resolve by the property's kind. Plain and reference properties return the stored value."""
        _, prop = self._property(request.collection, request.property, request)

        if prop.kind == PropertyKind.LOOKUP:
            return await self.resolve_lookup(request)
        if prop.kind == PropertyKind.ROLLUP:
            return await self.resolve_rollup(request)
        if prop.kind == PropertyKind.HIERARCHICAL:
            return await self.resolve_hierarchical(request, direction or HierarchyDirection.ANCESTORS)
        return await self._run(request, self._stored(request))

    async def resolve_batch(self, requests: list[ResolutionRequest]) -> BatchResult:
        """Resolve independently and concurrently; failures are collected per request index."""
        batch = BatchResult(results=[None] * len(requests))

        async def one(index: int, request: ResolutionRequest) -> None:
            try:
                batch.results[index] = await self.resolve(request)
            except RelationshipError as e:
                batch.errors[index] = e

        await asyncio.gather(*(one(i, r) for i, r in enumerate(requests)))
        if batch.errors:
            logger.debug(f"Batch resolved with {len(batch.errors)}/{len(requests)} failures")
        return batch

    # ------------------------------------------------------------------
    # Validation (schema authoring)
    # ------------------------------------------------------------------

    def validate_schema(self) -> list[RelationshipError]:
        """Integrity problems and schema-level cycles in the current graph."""
        problems: list[RelationshipError] = list(check_schema_references(self._schema))
        for cycle in self.detector.find_all_cycles():
            problems.append(SchemaCircularDependencyError(cycle))
        return problems

    def validate_property(self, collection: str, prop: PropertySchema) -> None:
        """
        Check a new or edited property definition before it is persisted.

        Runs against a candidate graph; live resolver state is untouched.
        Raises the first problem found.
        """
        schema = self._schema.get_collection_schema(collection)
        if schema is None:
            raise CollectionNotFoundError(collection, property=prop.code)

        errors = check_property_references(self._schema, schema, prop)
        if errors:
            raise errors[0]

        with self._graph_lock:
            detector = self._detector
        candidate = DependencyGraphBuilder.with_property(detector.graph, schema, prop)
        detector.fork(candidate).validate_node(DependencyNode(collection, prop.code))

    # ------------------------------------------------------------------
    # Schema changes and invalidation
    # ------------------------------------------------------------------

    def reload_schema(self) -> list[CircularPath]:
        """Rebuild the whole graph from the schema provider."""
        detector = CircularDependencyDetector(self._builder.build())
        cycles = detector.analyze()
        with self._graph_lock:
            self._detector = detector
        self._cache.clear()
        logger.info("Schema reloaded; relationship cache cleared")
        self._report_cycles(cycles)
        return cycles

    def on_collection_changed(self, collection: str) -> list[CircularPath]:
        """Rebuild only the subgraph owned by one collection."""
        with self._graph_lock:
            current = self._detector
            graph = self._builder.update_collection(current.graph, collection)
            detector = current.fork(graph)
            cycles = detector.analyze()
            self._detector = detector
        self._cache.clear()
        self._report_cycles(cycles)
        return cycles

    def invalidate_record(self, collection: str, record_id: str) -> int:
        """Drop cached values derived from one record."""
        return self._cache.invalidate(collection, str(record_id))

    def invalidate_collection(self, collection: str) -> int:
        return self._cache.invalidate_collection(collection)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, request: ResolutionRequest, work: Awaitable[Any]) -> Any:
        """Apply the caller's timeout and count failures."""
        try:
            if request.timeout_seconds is None:
                return await work
            try:
                return await asyncio.wait_for(work, request.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise ResolutionTimeoutError(
                    f"Resolution of {request} timed out after {request.timeout_seconds}s",
                    collection=request.collection,
                    property=request.property,
                    record_id=request.record_id,
                    depth=request.depth,
                ) from e
        except RelationshipError as e:
            self._metrics.errors += 1
            logger.debug(f"Resolution of {request} failed: {e}")
            raise

    def _report_cycles(self, cycles: list[CircularPath]) -> None:
        for cycle in cycles:
            logger.warning(f"Circular dependency in schema: {cycle}; these properties cannot be resolved")

    def _property(
        self,
        collection: str,
        property: str,
        request: ResolutionRequest | None = None,
    ) -> tuple[CollectionSchema, PropertySchema]:
        ctx: dict[str, Any] = {}
        if request is not None:
            ctx = {"record_id": request.record_id, "depth": request.depth}

        schema = self._schema.get_collection_schema(collection)
        if schema is None:
            raise CollectionNotFoundError(collection, property=property, **ctx)
        prop = schema.get_property(property)
        if prop is None:
            raise PropertyNotFoundError(collection, property, **ctx)
        return schema, prop

    def _prepare(
        self,
        request: ResolutionRequest,
        kind: PropertyKind,
    ) -> tuple[CollectionSchema, PropertySchema]:
        """Everything that must pass before the first fetch."""
        with self._graph_lock:
            detector = self._detector

        schema, prop = self._property(request.collection, request.property, request)
        ctx = {
            "collection": request.collection,
            "property": request.property,
            "record_id": request.record_id,
            "depth": request.depth,
        }

        if prop.kind != kind:
            raise InvalidReferenceError(
                f"{schema.code}.{prop.code} is a {prop.kind.value} property, not {kind.value}",
                **ctx,
            )

        errors = check_property_references(self._schema, schema, prop)
        if errors:
            error = errors[0]
            error.record_id = request.record_id
            error.depth = request.depth
            raise error

        cycle = detector.find_cycle(DependencyNode(schema.code, prop.code))
        if cycle is not None:
            raise SchemaCircularDependencyError(cycle, **ctx)

        if request.depth >= self._limits.max_lookup_depth:
            raise MaxDepthExceededError(self._limits.max_lookup_depth, **ctx)

        return schema, prop

    async def _cached(
        self,
        request: ResolutionRequest,
        options: dict[str, Any],
        compute: Callable[[], Awaitable[Computed]],
    ) -> Any:
        if not (self._cache_enabled and request.use_cache):
            result, _ = await compute()
            return result

        key = self._cache.make_key(request.collection, request.record_id, request.property, options)
        result, from_cache = await self._cache.get_or_compute(key, compute)
        if from_cache:
            self._metrics.cache_hits += 1
            logger.debug(f"Cache hit for {request}")
            return replace(result, from_cache=True)
        self._metrics.cache_misses += 1
        return result

    async def _fetch(
        self,
        collection: str,
        record_id: str,
        request: ResolutionRequest,
    ) -> dict[str, Any] | None:
        return await self._call(
            request,
            f"fetching {collection}/{record_id}",
            self._data.get_by_id(collection, record_id),
        )

    async def _query(
        self,
        collection: str,
        options: QueryOptions,
        request: ResolutionRequest,
    ) -> QueryResult:
        return await self._call(request, f"querying {collection}", self._data.query(collection, options))

    async def _call(self, request: ResolutionRequest, what: str, call: Awaitable[Any]) -> Any:
        """Await a data interface call, wrapping its failures with resolver context."""
        ctx = {
            "collection": request.collection,
            "property": request.property,
            "record_id": request.record_id,
            "depth": request.depth,
        }
        start = time.perf_counter()
        try:
            logger.debug(f"Data source: {what} for {request}")
            return await call
        except (DataTimeoutError, asyncio.TimeoutError) as e:
            raise ResolutionTimeoutError(f"Data source timed out {what}: {e}", **ctx) from e
        except DataNotFoundError as e:
            raise DataSourceError(f"Data source has no data {what}: {e}", **ctx) from e
        except Exception as e:
            raise DataSourceError(f"Data source failed {what}: {e}", **ctx) from e
        finally:
            self._metrics.fetches += 1
            self._metrics.fetch_seconds += time.perf_counter() - start

    async def _load(
        self,
        schema: CollectionSchema,
        request: ResolutionRequest,
        record: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """The request's own record, fetched unless already in hand."""
        if record is None:
            record = await self._fetch(schema.code, request.record_id, request)
        if record is None:
            raise RecordNotFoundError(
                schema.code,
                request.record_id,
                property=request.property,
                depth=request.depth,
            )
        return record

    async def _value_of(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
        record_id: str,
        record: dict[str, Any],
    ) -> tuple[Any, frozenset[RecordRef], tuple[ProvenanceStep, ...]]:
        """A property's value on a record already fetched, recursing into computed properties."""
        if prop.kind == PropertyKind.HIERARCHICAL:
            return record.get(prop.parent_property), frozenset(), ()

        if prop.kind in (PropertyKind.LOOKUP, PropertyKind.ROLLUP):
            nested = request.descend(schema.code, record_id, prop.code)
            if prop.kind == PropertyKind.LOOKUP:
                result = await self._lookup(nested, record)
            else:
                result = await self._rollup(nested, record)
            return result.value, result.fingerprint, result.provenance

        return record.get(prop.code), frozenset(), ()

    # --- lookup -------------------------------------------------------

    async def _lookup(
        self,
        request: ResolutionRequest,
        record: dict[str, Any] | None = None,
    ) -> ResolutionResult:
        schema, prop = self._prepare(request, PropertyKind.LOOKUP)
        target_schema = self._schema.get_collection_schema(prop.target_collection)
        source = target_schema.get_property(prop.source_property)

        async def read_target(target_id: str) -> tuple[bool, Any, frozenset[RecordRef], tuple]:
            target = await self._fetch(target_schema.code, target_id, request)
            refs = frozenset({RecordRef(target_schema.code, target_id)})
            if target is None:
                logger.debug(f"{request}: reference to missing {target_schema.code}/{target_id}")
                return False, None, refs, ()
            value, nested_refs, nested_steps = await self._value_of(
                request, target_schema, source, target_id, target
            )
            # A nested resolution's provenance already starts at the target
            steps = nested_steps or (ProvenanceStep(target_schema.code, target_id, source.code),)
            return True, value, refs | nested_refs, steps

        async def compute() -> Computed:
            own = await self._load(schema, request, record)
            fingerprint = {RecordRef(schema.code, request.record_id)}
            provenance = [ProvenanceStep(schema.code, request.record_id, prop.code)]

            reference = own.get(prop.reference_property)
            if _is_blank(reference):
                value = None
            elif isinstance(reference, (list, tuple)):
                ids = [str(r) for r in reference if not _is_blank(r)]
                reads = await _gather(read_target(i) for i in ids)
                value = [v for found, v, _, _ in reads if found]
                for _, _, refs, steps in reads:
                    fingerprint |= refs
                    provenance.extend(steps)
            else:
                found, value, refs, steps = await read_target(str(reference))
                fingerprint |= refs
                provenance.extend(steps)

            result = ResolutionResult(
                value=value,
                provenance=tuple(provenance),
                fingerprint=frozenset(fingerprint),
            )
            return result, result.fingerprint

        return await self._cached(request, {"kind": "lookup"}, compute)

    # --- rollup -------------------------------------------------------

    async def _rollup(
        self,
        request: ResolutionRequest,
        record: dict[str, Any] | None = None,
    ) -> ResolutionResult:
        schema, prop = self._prepare(request, PropertyKind.ROLLUP)
        child_schema = self._schema.get_collection_schema(prop.target_collection)
        source = child_schema.get_property(prop.source_property) if prop.source_property else None

        async def compute() -> Computed:
            await self._load(schema, request, record)
            rows, filter_refs = await self._children_of(request, prop, child_schema)

            fingerprint = {RecordRef(schema.code, request.record_id)} | filter_refs
            provenance = [ProvenanceStep(schema.code, request.record_id, prop.code)]
            ids = [str(row.get(child_schema.id_field)) for row in rows]
            fingerprint.update(RecordRef(child_schema.code, i) for i in ids)

            if source is None:
                values: list[Any] = [None] * len(rows)
            elif source.is_computed:
                resolved = await _gather(
                    self._value_of(request, child_schema, source, i, row)
                    for i, row in zip(ids, rows)
                )
                values = [value for value, _, _ in resolved]
                for _, refs, steps in resolved:
                    fingerprint |= refs
                    provenance.extend(steps)
            else:
                values = [row.get(source.code) for row in rows]

            result = ResolutionResult(
                value=aggregate(values, prop.aggregate, prop.source_property),
                provenance=tuple(provenance),
                fingerprint=frozenset(fingerprint),
                row_count=len(rows),
            )
            return result, result.fingerprint

        return await self._cached(request, {"kind": "rollup"}, compute)

    async def _children_of(
        self,
        request: ResolutionRequest,
        prop: PropertySchema,
        child_schema: CollectionSchema,
    ) -> tuple[list[dict[str, Any]], frozenset[RecordRef]]:
        """
        Child rows referencing the request's record that pass the rollup filter.

        Filter conditions on computed child properties are evaluated here
        after resolving those properties per child; every child examined and
        every record read for it are returned for the fingerprint.
        """
        link = _link_condition(prop.reference_property, [request.record_id])
        referenced = (child_schema.get_property(code) for code in filter_fields(prop.filter))
        computed = [p for p in referenced if p is not None and p.is_computed]
        if not computed:
            return await self._drain(request, child_schema, link, prop.filter), frozenset()

        rows = await self._drain(request, child_schema, link)

        async def view_of(row: dict[str, Any]) -> tuple[dict[str, Any], frozenset[RecordRef]]:
            row_id = str(row.get(child_schema.id_field))
            view = dict(row)
            refs = frozenset({RecordRef(child_schema.code, row_id)})
            for field_prop in computed:
                value, field_refs, _ = await self._value_of(request, child_schema, field_prop, row_id, row)
                view[field_prop.code] = value
                refs |= field_refs
            return view, refs

        views = await _gather(view_of(row) for row in rows)
        kept = [row for row, (view, _) in zip(rows, views) if evaluate_filter(prop.filter, view)]
        read: frozenset[RecordRef] = frozenset().union(*(refs for _, refs in views))
        return kept, read

    def _split_filter(self, link: Filter, rest: Filter | None) -> tuple[Filter | None, Filter | None]:
        """
        (server-side, client-side) parts of a query for the current provider.

        The link condition goes to every provider that has not declined it;
        the rest is pushed only to a provider that accepts the whole filter.
        """
        combined = and_filters(link, rest)
        if not isinstance(self._data, FilterCapable):
            return link, rest
        if self._data.supports_filter(combined):
            return combined, None
        if self._data.supports_filter(link):
            return link, rest
        return None, combined

    async def _drain(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        link: Filter,
        rest: Filter | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Every matching row, page by page, ordered by id (at most `limit` rows)."""
        server, client = self._split_filter(link, rest)
        sort = (SortSpec(schema.id_field),)
        page_size = self._limits.query_page_size

        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            options = QueryOptions(filter=server, sort=sort, pagination=Pagination(offset, page_size))
            page = await self._query(schema.code, options, request)
            for row in page.records:
                if client is None or evaluate_filter(client, row):
                    rows.append(row)
                    if limit is not None and len(rows) >= limit:
                        return rows
            offset += len(page.records)
            if not page.records or offset >= page.total:
                return rows

    # --- hierarchy ----------------------------------------------------

    async def _hierarchy(
        self,
        request: ResolutionRequest,
        direction: HierarchyDirection,
        *,
        max_depth: int | None,
        max_nodes: int | None,
    ) -> HierarchyResult:
        schema, prop = self._prepare(request, PropertyKind.HIERARCHICAL)
        depth_limit = min(
            max_depth if max_depth is not None else prop.max_depth,
            self._limits.max_hierarchy_depth,
        )
        node_limit = min(
            max_nodes if max_nodes is not None else self._limits.max_descendant_nodes,
            self._limits.max_descendant_nodes,
        )
        options = {"direction": direction.value, "max_depth": depth_limit, "max_nodes": node_limit}

        async def compute() -> Computed:
            if direction == HierarchyDirection.PARENT:
                result = await self._parent(request, schema, prop)
            elif direction == HierarchyDirection.ANCESTORS:
                result = await self._ancestors(request, schema, prop, depth_limit)
            elif direction == HierarchyDirection.PATH:
                result = await self._path(request, schema, prop, depth_limit)
            elif direction == HierarchyDirection.SIBLINGS:
                result = await self._siblings(request, schema, prop, node_limit)
            else:
                result = await self._descendants(request, schema, prop, depth_limit, node_limit)
            return result, result.fingerprint

        return await self._cached(request, options, compute)

    def _parent_id(self, record: dict[str, Any], prop: PropertySchema) -> str | None:
        parent = record.get(prop.parent_property)
        return None if _is_blank(parent) else str(parent)

    async def _parent(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
    ) -> HierarchyResult:
        own = await self._load(schema, request, None)
        fingerprint = {RecordRef(schema.code, request.record_id)}
        parent_id = self._parent_id(own, prop)
        nodes: tuple[HierarchyNode, ...] = ()
        if parent_id is not None:
            fingerprint.add(RecordRef(schema.code, parent_id))
            parent = await self._fetch(schema.code, parent_id, request)
            if parent is not None:
                nodes = (HierarchyNode(parent_id, 1, self._parent_id(parent, prop), parent),)
        return HierarchyResult(
            direction=HierarchyDirection.PARENT,
            nodes=nodes,
            depth=len(nodes),
            fingerprint=frozenset(fingerprint),
        )

    async def _ancestors(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
        depth_limit: int,
    ) -> HierarchyResult:
        """Immediate parent first, root last. Fetches are sequential."""
        own = await self._load(schema, request, None)
        chain = [request.record_id]
        seen = {request.record_id}
        fingerprint = {RecordRef(schema.code, request.record_id)}
        nodes: list[HierarchyNode] = []

        parent_id = self._parent_id(own, prop)
        while parent_id is not None:
            if parent_id in seen:
                raise DataCircularReferenceError(
                    chain + [parent_id],
                    collection=schema.code,
                    property=prop.code,
                    record_id=request.record_id,
                )
            if len(nodes) >= depth_limit:
                raise MaxDepthExceededError(
                    depth_limit,
                    collection=schema.code,
                    property=prop.code,
                    record_id=request.record_id,
                    path=chain,
                    depth=len(nodes) + 1,
                )

            fingerprint.add(RecordRef(schema.code, parent_id))
            parent = await self._fetch(schema.code, parent_id, request)
            if parent is None:
                logger.debug(f"{request}: dangling parent {schema.code}/{parent_id} ends the chain")
                break

            next_id = self._parent_id(parent, prop)
            nodes.append(HierarchyNode(parent_id, len(nodes) + 1, next_id, parent))
            chain.append(parent_id)
            seen.add(parent_id)
            parent_id = next_id

        return HierarchyResult(
            direction=HierarchyDirection.ANCESTORS,
            nodes=tuple(nodes),
            depth=len(nodes),
            fingerprint=frozenset(fingerprint),
        )

    async def _path(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
        depth_limit: int,
    ) -> HierarchyResult:
        """Root first, the record itself last."""
        ancestors = await self._ancestors(request, schema, prop, depth_limit)
        own_parent = ancestors.nodes[0].record_id if ancestors.nodes else None
        chain = list(reversed(ancestors.nodes))
        chain_ids = [n.record_id for n in chain] + [request.record_id]
        parents = [n.parent_id for n in chain] + [own_parent]

        # Reindex depth from the root
        nodes = tuple(
            HierarchyNode(record_id, i, parents[i], chain[i].record if i < len(chain) else None)
            for i, record_id in enumerate(chain_ids)
        )
        return HierarchyResult(
            direction=HierarchyDirection.PATH,
            nodes=nodes,
            depth=ancestors.depth,
            fingerprint=ancestors.fingerprint,
        )

    async def _siblings(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
        node_limit: int,
    ) -> HierarchyResult:
        own = await self._load(schema, request, None)
        parent_id = self._parent_id(own, prop)
        if parent_id is None:
            flt = FilterCondition(field=prop.parent_property, operator=FilterOperator.IS_NULL)
        else:
            flt = _link_condition(prop.parent_property, [parent_id])

        # One extra row covers the record itself plus truncation detection
        rows = await self._drain(request, schema, flt, limit=node_limit + 2)
        siblings = [r for r in rows if str(r.get(schema.id_field)) != request.record_id]
        truncated = len(siblings) > node_limit
        siblings = siblings[:node_limit]

        fingerprint = {RecordRef(schema.code, request.record_id)}
        nodes = []
        for row in siblings:
            record_id = str(row.get(schema.id_field))
            fingerprint.add(RecordRef(schema.code, record_id))
            nodes.append(HierarchyNode(record_id, 0, parent_id, row))

        return HierarchyResult(
            direction=HierarchyDirection.SIBLINGS,
            nodes=tuple(nodes),
            truncated=truncated,
            fingerprint=frozenset(fingerprint),
        )

    async def _descendants(
        self,
        request: ResolutionRequest,
        schema: CollectionSchema,
        prop: PropertySchema,
        depth_limit: int,
        node_limit: int,
    ) -> HierarchyResult:
        """Breadth-first; each level's parents query their children concurrently."""
        await self._load(schema, request, None)
        semaphore = asyncio.Semaphore(self._limits.descendant_concurrency)

        async def children(parent_id: str) -> list[dict[str, Any]]:
            flt = _link_condition(prop.parent_property, [parent_id])
            async with semaphore:
                return await self._drain(request, schema, flt, limit=node_limit + 1)

        seen = {request.record_id}
        fingerprint = {RecordRef(schema.code, request.record_id)}
        nodes: list[HierarchyNode] = []
        frontier = [request.record_id]
        level = 0
        truncated = False

        while frontier and not truncated:
            if level >= depth_limit:
                deeper = _link_condition(prop.parent_property, frontier)
                truncated = bool(await self._drain(request, schema, deeper, limit=1))
                break

            levels = await _gather(children(p) for p in frontier)
            level += 1
            next_frontier: list[str] = []
            for parent_id, rows in zip(frontier, levels):
                for row in rows:
                    record_id = str(row.get(schema.id_field))
                    if record_id in seen:
                        logger.warning(
                            f"{request}: {schema.code}/{record_id} reached twice "
                            f"(via {parent_id}); skipping data-level loop"
                        )
                        continue
                    if len(nodes) >= node_limit:
                        truncated = True
                        break
                    seen.add(record_id)
                    fingerprint.add(RecordRef(schema.code, record_id))
                    nodes.append(HierarchyNode(record_id, level, parent_id, row))
                    next_frontier.append(record_id)
                if truncated:
                    break
            frontier = next_frontier

        return HierarchyResult(
            direction=HierarchyDirection.DESCENDANTS,
            nodes=tuple(nodes),
            truncated=truncated,
            depth=max((n.depth for n in nodes), default=0),
            fingerprint=frozenset(fingerprint),
        )

    # --- plain --------------------------------------------------------

    async def _stored(self, request: ResolutionRequest) -> ResolutionResult:
        schema, prop = self._property(request.collection, request.property, request)
        own = await self._load(schema, request, None)
        return ResolutionResult(
            value=own.get(prop.code),
            provenance=(ProvenanceStep(schema.code, request.record_id, prop.code),),
            fingerprint=frozenset({RecordRef(schema.code, request.record_id)}),
        )
