"""Tests for common utilities."""

import pytest
import structlog
from pydantic import ValidationError

from mailsearch.common.config import BaseConfig, SearchEngineConfig
from mailsearch.common.errors import DimensionMismatchError, EmbeddingError, MailSearchError
from mailsearch.common.logging import configure_logging, configure_logging_from_config, get_logger
from mailsearch.common.metrics import MetricsCollector


def test_config_loading(monkeypatch):
    """Test configuration loading."""
    monkeypatch.delenv("MAILSEARCH_ENV", raising=False)
    config = BaseConfig()
    assert config.mailsearch_env == "local"
    assert config.mailsearch_log_level == "INFO"


def test_search_engine_config_defaults():
    config = SearchEngineConfig(_env_file=None)
    assert config.mailsearch_vector_backend == "memory"
    assert config.mailsearch_vector_dimension == 1536
    assert config.mailsearch_chunk_size == 1000
    assert config.mailsearch_chunk_overlap == 200
    assert config.mailsearch_chunk_id_guess_limit == 100
    assert config.mailsearch_reindex_page_size == 10000


def test_search_engine_config_from_env(monkeypatch):
    monkeypatch.setenv("MAILSEARCH_VECTOR_BACKEND", "opensearch")
    monkeypatch.setenv("MAILSEARCH_OPENSEARCH_HOSTS", "http://os1:9200, http://os2:9200")
    config = SearchEngineConfig(_env_file=None)

    store_config = config.vector_store_config()
    assert store_config["type"] == "opensearch"
    assert store_config["hosts"] == ["http://os1:9200", "http://os2:9200"]
    assert store_config["index_name"] == "mailsearch_vectors"


def test_chunk_overlap_must_be_smaller_than_size():
    with pytest.raises(ValidationError):
        SearchEngineConfig(_env_file=None, mailsearch_chunk_size=100, mailsearch_chunk_overlap=100)


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console", env="test")


def test_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        configure_logging("test-service", "LOUD")


def test_get_logger_binds_name():
    configure_logging("test-service", "INFO", "json")
    logger = get_logger("search.test")
    logger.info("Logger ready", count=1)


def test_logging_from_config_binds_service_and_env():
    config = SearchEngineConfig(
        _env_file=None,
        mailsearch_env="staging",
        mailsearch_log_level="debug",
        mailsearch_log_format="console",
    )
    configure_logging_from_config(config)
    assert structlog.contextvars.get_contextvars() == {"service": "mailsearch", "env": "staging"}


def test_logging_from_config_rejects_unknown_level():
    config = SearchEngineConfig(_env_file=None, mailsearch_log_level="LOUD")
    with pytest.raises(ValueError):
        configure_logging_from_config(config)


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_search("hybrid", 0.02)
    collector.record_indexed(3)
    collector.record_embedding("success")
    collector.record_vector_store_operation("upsert", "memory")
    collector.set_lexical_documents(3)

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert 'mailsearch_search_requests_total{mode="hybrid"} 1.0' in metrics
    assert "mailsearch_indexed_documents_total 3.0" in metrics
    assert "mailsearch_lexical_documents 3.0" in metrics


def test_collectors_do_not_share_registries():
    first = MetricsCollector("a")
    second = MetricsCollector("b")
    first.record_indexed(5)
    assert "mailsearch_indexed_documents_total 0.0" in second.get_metrics()


def test_error_cause_is_preserved():
    original = RuntimeError("boom")
    try:
        try:
            raise original
        except RuntimeError as e:
            raise EmbeddingError("wrapped") from e
    except MailSearchError as err:
        assert err.cause is original


def test_dimension_mismatch_is_an_embedding_error():
    err = DimensionMismatchError(4, 3)
    assert isinstance(err, EmbeddingError)
    assert err.expected == 4
    assert err.actual == 3
