"""
Shared utilities for the Feature & Quota Entitlement Engine.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request/caller correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- tracing: OpenTelemetry provider setup and operation spans
- base_service: FastAPI application scaffold (health, metrics, error mapping)

Do not import from service_* packages into shared/.
"""
