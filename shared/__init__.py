"""
Shared utilities for the spell metadata cache.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for upstream calls
- circuit_breaker: Resilient external call protection
- base_service: FastAPI scaffold with health, metrics and error handlers

Do not import from service_* packages into shared/.
"""
