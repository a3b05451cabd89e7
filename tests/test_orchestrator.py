"""Tests for the extraction orchestrator.

Run after changes to: jobtracker_ai/engine/orchestrator.py and anything it wires
(cache, gate, session, availability, json_utils, prompts)
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from jobtracker_ai.cancellation import CancellationToken
from jobtracker_ai.engine import create_orchestrator
from jobtracker_ai.engine.session import SessionState
from jobtracker_ai.exceptions import (
    ExtractionCancelledError,
    ExtractionRateLimitedError,
    InferenceUnavailableError,
)
from jobtracker_ai.models import AvailabilityStatus, ExtractedJobData
from jobtracker_ai.storage import MemoryStorage
from tests.fakes import FakeCapability, make_engine, make_extractor, wait_for_prompts


LINKEDIN_SHELL = "https://www.linkedin.com/jobs/collections/recommended/?currentJobId="


class TestExtract:
    """Successful extraction."""

    @pytest.mark.asyncio
    async def test_extracts_core_fields(self, capability):
        async with make_engine(capability) as engine:
            result = await engine.extract()

        assert result.company == "Acme Corp"
        assert result.position == "Backend Engineer"
        assert result.job_description == "Build APIs.\nReview code."
        assert sorted(capability.extraction_prompts) == ["company_and_position", "job_description"]

    @pytest.mark.asyncio
    async def test_fills_optional_fields_from_page_text(self, capability):
        async with make_engine(capability) as engine:
            result = await engine.extract()

        assert result.location == "Berlin"
        assert result.job_type == "Full-Time"
        assert result.requirements == ["3+ years of Python", "Experience with asyncio"]
        assert result.salary is None

    @pytest.mark.asyncio
    async def test_optional_fields_can_be_disabled(self, capability):
        async with make_engine(capability, fill_optional_fields=False) as engine:
            result = await engine.extract()

        assert result.location is None
        assert result.to_dict().keys() == {"company", "position", "job_description"}

    @pytest.mark.asyncio
    async def test_model_unknown_stays_unknown(self, capability):
        capability.responses["company_and_position"] = '{"company": "unknown", "position": ""}'
        async with make_engine(capability) as engine:
            result = await engine.extract()

        assert result.company == "unknown"
        assert result.position == "unknown"
        assert result.job_description != "unknown"

    @pytest.mark.asyncio
    async def test_async_content_extractor(self, capability):
        extractor = make_extractor()
        sync_extract = extractor.extract_content
        extractor.extract_content = AsyncMock(side_effect=lambda: sync_extract())

        async with make_engine(capability, extractor) as engine:
            result = await engine.extract()

        assert result.company == "Acme Corp"
        extractor.extract_content.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_content_extractor_failure_is_absorbed(self, capability):
        extractor = make_extractor()

        def broken_extract():
            raise RuntimeError("tab closed")

        extractor.extract_content = broken_extract

        async with make_engine(capability, extractor) as engine:
            result = await engine.extract()
            cached_content = await engine.content_cache.get(engine.current_identity())

        assert result.company == "Acme Corp"
        assert cached_content is None


class TestCaching:
    """Extraction and content caches."""

    @pytest.mark.asyncio
    async def test_second_call_is_cache_hit(self, capability):
        async with make_engine(capability) as engine:
            first = await engine.extract()
            second = await engine.extract()

            assert second == first
            assert len(capability.extraction_prompts) == 2
            assert engine.metrics.cache_hits == 1

    @pytest.mark.asyncio
    async def test_cache_hit_replays_partials(self, capability):
        received = []
        async with make_engine(capability) as engine:
            await engine.extract()
            await engine.extract(on_partial=lambda field, value: received.append(field))

        assert sorted(received) == ["company", "job_description", "position"]

    @pytest.mark.asyncio
    async def test_force_skips_cache(self, capability):
        async with make_engine(capability) as engine:
            await engine.extract()
            await engine.extract(force=True)

        assert len(capability.extraction_prompts) == 4

    @pytest.mark.asyncio
    async def test_spa_jobs_do_not_share_cache(self, capability):
        extractor = make_extractor(url=LINKEDIN_SHELL + "1")
        async with make_engine(capability, extractor) as engine:
            await engine.extract()

            extractor.url = LINKEDIN_SHELL + "2"
            capability.responses["company_and_position"] = '{"company": "Beta", "position": "SRE"}'
            second = await engine.extract()

            assert second.company == "Beta"
            assert len(capability.extraction_prompts) == 4

    @pytest.mark.asyncio
    async def test_content_is_captured_once_per_page(self, capability):
        extractor = make_extractor()
        sync_extract = extractor.extract_content
        calls = []
        extractor.extract_content = lambda: calls.append(1) or sync_extract()

        async with make_engine(capability, extractor) as engine:
            await engine.extract()
            await engine.extract(force=True)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_clear_caches_for_navigation(self, capability):
        async with make_engine(capability) as engine:
            await engine.extract()
            await engine.clear_caches_for_navigation()

            assert await engine.extraction_cache.get(engine.current_identity()) is None
            await engine.extract()

        assert len(capability.extraction_prompts) == 4

    @pytest.mark.asyncio
    async def test_shared_storage_survives_engine_restart(self, capability):
        storage = MemoryStorage()
        first_engine = make_engine(capability, storage=storage)
        await first_engine.extract()
        await first_engine.sessions.close()

        second_engine = make_engine(FakeCapability(), storage=storage)
        result = await second_engine.extract()

        assert result.company == "Acme Corp"
        assert second_engine.metrics.cache_hits == 1

    @pytest.mark.asyncio
    async def test_empty_injected_storage_is_used(self, capability):
        storage = MemoryStorage()
        assert len(storage) == 0

        async with make_engine(capability, storage=storage) as engine:
            assert engine.storage is storage
            await engine.extract()

        assert len(storage) > 0


class TestPartialResults:
    """Progressive delivery and partial failures."""

    @pytest.mark.asyncio
    async def test_partials_arrive_before_slow_prompt(self, capability):
        capability.delays["job_description"] = 0.05
        received = []

        async with make_engine(capability) as engine:
            await engine.extract(on_partial=lambda field, value: received.append(field))

        assert received[-1] == "job_description"
        assert set(received[:2]) == {"company", "position"}

    @pytest.mark.asyncio
    async def test_async_callback(self, capability):
        received = {}

        async def on_partial(field, value):
            await asyncio.sleep(0)
            received[field] = value

        async with make_engine(capability) as engine:
            await engine.extract(on_partial=on_partial)

        assert received["company"] == "Acme Corp"

    @pytest.mark.asyncio
    async def test_callback_errors_are_absorbed(self, capability):
        def on_partial(field, value):
            raise ValueError("UI went away")

        async with make_engine(capability) as engine:
            result = await engine.extract(on_partial=on_partial)

        assert result.company == "Acme Corp"

    @pytest.mark.asyncio
    async def test_one_failed_prompt_leaves_field_unknown(self, capability):
        capability.failures["job_description"] = RuntimeError("context overflow")

        async with make_engine(capability) as engine:
            result = await engine.extract()

            assert result.company == "Acme Corp"
            assert result.position == "Backend Engineer"
            assert result.job_description == "unknown"
            assert engine.metrics.partial_failures == 1

    @pytest.mark.asyncio
    async def test_unparseable_output_leaves_field_unknown(self, capability):
        capability.responses["company_and_position"] = "I cannot help with that."

        async with make_engine(capability) as engine:
            result = await engine.extract()

        assert result.company == "unknown"
        assert result.job_description == "Build APIs.\nReview code."

    @pytest.mark.asyncio
    async def test_all_prompts_failed_is_not_cached(self, capability):
        capability.failures["company_and_position"] = RuntimeError("boom")
        capability.failures["job_description"] = RuntimeError("boom")

        async with make_engine(capability) as engine:
            result = await engine.extract()

            assert result.is_empty
            assert await engine.extraction_cache.get(engine.current_identity()) is None
            assert engine.sessions.state == SessionState.ABSENT


class TestCancellation:
    """Cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_mid_flight_leaves_no_cache_entry(self, capability):
        capability.delays["job_description"] = 10
        token = CancellationToken()

        async with make_engine(capability) as engine:
            task = asyncio.create_task(engine.extract(cancel_token=token))
            await wait_for_prompts(capability, 2)
            token.cancel()

            with pytest.raises(ExtractionCancelledError):
                await task

            assert await engine.extraction_cache.get(engine.current_identity()) is None
            assert not engine.gate.state.is_extracting

    @pytest.mark.asyncio
    async def test_retry_right_after_cancel(self, capability):
        capability.delays["job_description"] = 10
        token = CancellationToken()

        async with make_engine(capability) as engine:
            task = asyncio.create_task(engine.extract(cancel_token=token))
            await wait_for_prompts(capability, 2)
            token.cancel()
            with pytest.raises(ExtractionCancelledError):
                await task

            capability.delays.clear()
            result = await engine.extract()

        assert result.job_description == "Build APIs.\nReview code."

    @pytest.mark.asyncio
    async def test_cancel_by_request_id(self, capability):
        capability.delays["job_description"] = 10

        async with make_engine(capability) as engine:
            task = asyncio.create_task(engine.extract(request_id="req-1"))
            await wait_for_prompts(capability, 2)

            assert engine.cancel("missing") is False
            assert engine.cancel("req-1") is True
            with pytest.raises(ExtractionCancelledError):
                await task

            assert engine.metrics.cancelled == 1

    @pytest.mark.asyncio
    async def test_pre_cancelled_token(self, capability):
        token = CancellationToken()
        token.cancel()

        async with make_engine(capability) as engine:
            with pytest.raises(ExtractionCancelledError):
                await engine.extract(cancel_token=token)

        assert capability.prompts == []


class TestErrors:
    """Errors surfaced to the caller."""

    @pytest.mark.asyncio
    async def test_unavailable_model_raises(self):
        capability = FakeCapability(status=AvailabilityStatus.UNAVAILABLE)

        async with make_engine(capability) as engine:
            with pytest.raises(InferenceUnavailableError):
                await engine.extract()

            assert not engine.gate.state.is_extracting
            assert engine.metrics.unavailable == 1

    @pytest.mark.asyncio
    async def test_session_creation_failure_raises_unavailable(self, capability):
        capability.create_error = RuntimeError("out of memory")

        async with make_engine(capability) as engine:
            with pytest.raises(InferenceUnavailableError):
                await engine.extract()

    @pytest.mark.asyncio
    async def test_concurrent_extraction_is_rate_limited(self, capability):
        capability.delays["job_description"] = 0.05

        async with make_engine(capability) as engine:
            first = asyncio.create_task(engine.extract())
            await wait_for_prompts(capability, 2)

            with pytest.raises(ExtractionRateLimitedError) as exc_info:
                await engine.extract()

            assert "in progress" in exc_info.value.reason
            await first

    @pytest.mark.asyncio
    async def test_downloadable_model_is_used_after_download(self):
        capability = FakeCapability(status=AvailabilityStatus.DOWNLOADABLE, create_delay=0.01)

        async with make_engine(capability) as engine:
            result = await engine.extract()

        assert result.company == "Acme Corp"
        assert capability.create_calls == 1


class TestEngineApi:
    """Metrics, pre-warm and wiring."""

    @pytest.mark.asyncio
    async def test_prewarm_creates_session(self, capability):
        async with make_engine(capability) as engine:
            assert await engine.prewarm_session() is True
            await engine.extract()

        assert capability.create_calls == 1

    @pytest.mark.asyncio
    async def test_prewarm_skipped_when_unavailable(self):
        capability = FakeCapability(status=AvailabilityStatus.UNAVAILABLE)

        async with make_engine(capability) as engine:
            assert await engine.prewarm_session() is False

        assert capability.create_calls == 0

    @pytest.mark.asyncio
    async def test_performance_metrics(self, capability):
        async with make_engine(capability) as engine:
            await engine.extract(request_id="abc")
            metrics = await engine.get_performance_metrics()

        assert metrics["is_initialized"] is True
        assert metrics["has_cached_content"] is True
        assert metrics["availability"] == "available"
        assert metrics["runs"]["completed"] == 1
        assert metrics["runs"]["last_run"]["request_id"] == "abc"
        assert set(metrics["runs"]["last_run"]["prompt_seconds"]) == {
            "company_and_position",
            "job_description",
        }

    @pytest.mark.asyncio
    async def test_close_releases_capability(self, capability):
        engine = make_engine(capability)
        await engine.extract()

        await engine.close()

        assert capability.closed
        assert capability.live_sessions == []

    @pytest.mark.asyncio
    async def test_create_orchestrator_from_settings(self, capability):
        engine = create_orchestrator(make_extractor(), capability=capability, storage=MemoryStorage())
        try:
            result = await engine.extract()
        finally:
            await engine.close()

        assert isinstance(result, ExtractedJobData)
        assert engine.gate.cooldown == 10.0
