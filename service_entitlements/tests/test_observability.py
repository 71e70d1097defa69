"""
Unit tests for metrics and tracing around entitlement operations.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from service_entitlements.app.auth.staff import StaffPolicy
from service_entitlements.app.features.catalog import default_catalog
from service_entitlements.app.features.models import Caller
from service_entitlements.app.persistence.memory import InMemoryEntitlementStore, InMemoryUserDirectory
from service_entitlements.app.ratelimit.limiter import OperationRateLimiter
from service_entitlements.app.service import EntitlementService
from shared.errors import NotFoundError, RateLimitError
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation

STAFF = Caller(user_id="staff-1", email="admin@toeverything.info")


class TestOperationMetrics:
    """Test cases for entitlement operation metrics."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("entitlements")

    @pytest.fixture
    def service(self, metrics):
        return EntitlementService(
            catalog=default_catalog(),
            store=InMemoryEntitlementStore(),
            users=InMemoryUserDirectory(),
            staff_policy=StaffPolicy(["@toeverything.info"]),
            metrics=metrics,
        )

    def test_time_operation_outcomes(self, metrics):
        """Test that outcomes are labelled ok or error."""
        with metrics.time_operation("grant"):
            pass

        with pytest.raises(ValueError):
            with metrics.time_operation("grant"):
                raise ValueError("boom")

        assert metrics.registry.get_sample_value(
            "entitlement_operations_total", {"operation": "grant", "outcome": "ok"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "entitlement_operations_total", {"operation": "grant", "outcome": "error"}
        ) == 1.0

    def test_collectors_do_not_share_registries(self):
        """Test that two collectors can coexist in one process."""
        first = MetricsCollector("entitlements")
        second = MetricsCollector("entitlements")

        first.record_error("NOT_FOUND")

        assert first.registry.get_sample_value(
            "errors_total", {"error_type": "NOT_FOUND", "service": "entitlements"}
        ) == 1.0
        assert second.registry.get_sample_value(
            "errors_total", {"error_type": "NOT_FOUND", "service": "entitlements"}
        ) is None

    @pytest.mark.asyncio
    async def test_service_records_operations(self, service, metrics):
        """Test that engine operations are counted with business events."""
        await service.grant(STAFF, "user-1", "copilot")

        with pytest.raises(NotFoundError):
            await service.grant(STAFF, "user-1", "teleportation")

        assert metrics.registry.get_sample_value(
            "entitlement_operations_total", {"operation": "grant", "outcome": "ok"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "entitlement_operations_total", {"operation": "grant", "outcome": "error"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "business_events_total", {"event_type": "entitlement_granted", "service": "entitlements"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_rate_limit_hits_counted(self, metrics):
        """Test that rejected calls increment the rate limit counter."""
        limiter = OperationRateLimiter("redis://localhost:6379/0", limit=1, metrics=metrics)
        mock_redis = AsyncMock()
        mock_pipeline = MagicMock()
        mock_pipeline.execute = AsyncMock(return_value=[2, 30])
        mock_redis.pipeline = MagicMock()
        mock_redis.pipeline.return_value.__aenter__.return_value = mock_pipeline

        with patch.object(limiter, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            with pytest.raises(RateLimitError):
                await limiter.enforce("user-1", "grant")

        assert metrics.registry.get_sample_value(
            "rate_limit_hits_total", {"operation": "grant"}
        ) == 1.0


class TestOperationTracing:
    """Test cases for operation spans."""

    @pytest.fixture
    def exporter(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        with patch('shared.tracing.get_tracer', side_effect=provider.get_tracer):
            yield exporter

    def test_trace_operation_records_error(self, exporter):
        """Test that failures mark the span."""
        with pytest.raises(RuntimeError):
            with trace_operation("entitlements.grant", operation="grant"):
                raise RuntimeError("store down")

        span = exporter.get_finished_spans()[0]
        assert span.name == "entitlements.grant"
        assert span.attributes["operation"] == "grant"
        assert span.attributes["error"] is True
        assert span.status.status_code == StatusCode.ERROR

    @pytest.mark.asyncio
    async def test_service_operations_are_traced(self, exporter):
        """Test that each engine operation opens a span."""
        service = EntitlementService(
            catalog=default_catalog(),
            store=InMemoryEntitlementStore(),
            users=InMemoryUserDirectory(),
            staff_policy=StaffPolicy(["@toeverything.info"]),
        )

        await service.grant(STAFF, "user-1", "pro_plan_v1")
        await service.resolve_quota("user-1")

        names = [span.name for span in exporter.get_finished_spans()]
        assert names == ["entitlements.grant", "entitlements.resolve_quota"]
