"""Common utilities shared across the search components.

Includes:
- ``config``: Pydantic-based engine configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.
- ``errors``: exception taxonomy raised by the engine and its collaborators.

Import pattern:
- from mailsearch.common.config import SearchEngineConfig
- from mailsearch.common.logging import configure_logging
"""
