"""Tests for concurrent resolution: stampede collapse, cancellation, timeouts."""

import asyncio

import pytest

from relationship_resolver.errors import ResolutionTimeoutError
from relationship_resolver.resolution import HierarchyDirection, ResolutionRequest
from relationship_resolver.resolver import RelationshipResolver


@pytest.fixture
def slow_resolver(schema_registry, data_provider, config):
    data_provider.latency_seconds = 0.05
    return RelationshipResolver(schema_registry, data_provider, config=config)


@pytest.mark.concurrency
class TestStampede:
    @pytest.mark.asyncio
    async def test_concurrent_lookups_fetch_once(self, slow_resolver, data_provider):
        request = ResolutionRequest("tasks", "t1", "project_name")
        results = await asyncio.gather(*(slow_resolver.resolve_lookup(request) for _ in range(20)))

        assert {r.value for r in results} == {"Apollo"}
        assert data_provider.fetch_count("tasks", "t1") == 1
        assert data_provider.fetch_count("projects", "p1") == 1
        assert slow_resolver.cache_stats["coalesced"] == 19

    @pytest.mark.asyncio
    async def test_concurrent_rollups_query_once(self, slow_resolver, data_provider):
        request = ResolutionRequest("projects", "p1", "assignee_emails")
        results = await asyncio.gather(*(slow_resolver.resolve_rollup(request) for _ in range(10)))

        assert len({r.value for r in results}) == 1
        assert data_provider.fetch_count("tasks") == 1

    @pytest.mark.asyncio
    async def test_different_records_run_in_parallel(self, slow_resolver):
        requests = [ResolutionRequest("projects", f"p{i}", "owner_email") for i in (1, 2, 3)]
        loop = asyncio.get_running_loop()
        start = loop.time()
        results = await asyncio.gather(*(slow_resolver.resolve_lookup(r) for r in requests))
        elapsed = loop.time() - start

        assert [r.value for r in results] == ["ada@example.com", "grace@example.com", None]
        # Sequential would take at least 5 round trips
        assert elapsed < 0.2

    @pytest.mark.asyncio
    async def test_descendants_concurrently(self, slow_resolver):
        results = await asyncio.gather(*(
            slow_resolver.resolve_hierarchical(
                ResolutionRequest("categories", "c-root", "tree"),
                HierarchyDirection.DESCENDANTS,
            )
            for _ in range(5)
        ))
        assert all(r.record_ids == results[0].record_ids for r in results)


@pytest.mark.concurrency
class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_others(self, slow_resolver, data_provider):
        request = ResolutionRequest("tasks", "t1", "project_name")
        first = asyncio.create_task(slow_resolver.resolve_lookup(request))
        others = [asyncio.create_task(slow_resolver.resolve_lookup(request)) for _ in range(3)]
        await asyncio.sleep(0.01)

        first.cancel()
        results = await asyncio.gather(*others)

        assert first.cancelled()
        assert {r.value for r in results} == {"Apollo"}
        assert data_provider.fetch_count("tasks", "t1") == 1

    @pytest.mark.asyncio
    async def test_sole_caller_cancelled_leaves_no_entry(self, slow_resolver):
        request = ResolutionRequest("tasks", "t1", "project_name")
        task = asyncio.create_task(slow_resolver.resolve_lookup(request))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert slow_resolver.cache.size == 0
        assert slow_resolver.cache.in_flight == 0

    @pytest.mark.asyncio
    async def test_timed_out_caller_leaves_coalesced_fetch_running(self, slow_resolver, data_provider):
        impatient = ResolutionRequest("tasks", "t1", "project_name", timeout_seconds=0.01)
        patient = ResolutionRequest("tasks", "t1", "project_name")

        results = await asyncio.gather(
            slow_resolver.resolve_lookup(impatient),
            slow_resolver.resolve_lookup(patient),
            return_exceptions=True,
        )

        assert isinstance(results[0], ResolutionTimeoutError)
        assert results[1].value == "Apollo"
        assert data_provider.fetch_count("tasks", "t1") == 1
