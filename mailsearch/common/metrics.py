"""Metrics collection for the search engine.

Provides a thin convenience wrapper around ``prometheus_client`` so the
engine can consistently record search, indexing, embedding, and vector store
metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry (inject one to share or for testing)
"""

from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collection for the search engine.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.search_requests = Counter(
            'mailsearch_search_requests_total',
            'Total search requests',
            ['mode'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'mailsearch_search_duration_seconds',
            'Search duration',
            ['mode'],
            registry=self.registry
        )

        self.indexed_documents = Counter(
            'mailsearch_indexed_documents_total',
            'Total documents passed through index()',
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'mailsearch_embedding_requests_total',
            'Total embedding requests',
            ['status'],
            registry=self.registry
        )

        self.vector_store_operations = Counter(
            'mailsearch_vector_store_operations_total',
            'Total vector store operations',
            ['operation', 'backend'],
            registry=self.registry
        )

        self.lexical_documents = Gauge(
            'mailsearch_lexical_documents',
            'Documents currently held by the lexical index',
            registry=self.registry
        )

    def record_search(self, mode: str, duration: float) -> None:
        """Record search metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.search_requests.labels(mode=mode).inc()
        self.search_duration.labels(mode=mode).observe(duration)

    def record_indexed(self, count: int) -> None:
        """Record documents indexed."""
        self.indexed_documents.inc(count)

    def record_embedding(self, status: str) -> None:
        """Record an embedding call outcome (``success`` / ``failure``)."""
        self.embedding_requests.labels(status=status).inc()

    def record_vector_store_operation(self, operation: str, backend: str) -> None:
        """Record vector store operation metrics."""
        self.vector_store_operations.labels(operation=operation, backend=backend).inc()

    def set_lexical_documents(self, count: int) -> None:
        """Set the lexical index document gauge."""
        self.lexical_documents.set(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')
