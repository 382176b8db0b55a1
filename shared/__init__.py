"""
Shared utilities for the memoization layer.

This package aggregates common building blocks consumed by the services:

- config: Settings via pydantic-settings
- logging: Structured logging with resolution context
- errors: Canonical error types and responses

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
