"""Tests for the mailsearch package.

Unit tests run against the in-memory vector store, fake embedders and
in-memory storage. Tests marked ``integration`` need a live PostgreSQL with
the pgvector extension (``MAILSEARCH_TEST_PG_DSN``).
"""
