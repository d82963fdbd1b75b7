"""Tests for PostgresClient - pooled PostgreSQL access."""

from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient


class TestConvertParams:
    """UUID conversion - no database needed."""

    def test_none_passes_through(self):
        assert PostgresClient.convert_params(None) is None

    def test_uuid_in_tuple(self):
        value = UUID("00000000-0000-0000-0000-000000000001")
        assert PostgresClient.convert_params((value, 1)) == ("00000000-0000-0000-0000-000000000001", 1)

    def test_nested_list_and_dict(self):
        value = uuid4()
        converted = PostgresClient.convert_params({"ids": [value], "n": 2})
        assert converted == {"ids": [str(value)], "n": 2}


class TestPostgresClientInit:
    """Connection pool initialization."""

    def test_creates_pool_with_valid_url(self, db):
        """Valid URL creates working connection pool."""
        result = db.execute_scalar("SELECT 1")
        assert result == 1


class TestExecuteMethods:
    """Query execution methods."""

    def test_execute_returns_list_of_dicts(self, db):
        """execute() returns list of row dicts."""
        results = db.execute("SELECT 1 as num, 'hello' as word")
        assert results == [{"num": 1, "word": "hello"}]

    def test_execute_empty_returns_empty_list(self, db):
        """No matching rows returns [], not None."""
        results = db.execute("SELECT 1 WHERE false")
        assert results == []

    def test_execute_single_returns_dict(self, db):
        """execute_single() returns first row as dict."""
        result = db.execute_single("SELECT 42 as answer")
        assert result == {"answer": 42}

    def test_execute_single_no_rows_returns_none(self, db):
        """execute_single() returns None for empty result."""
        result = db.execute_single("SELECT 1 WHERE false")
        assert result is None

    def test_execute_scalar_no_rows_returns_none(self, db):
        """execute_scalar() returns None for empty result."""
        result = db.execute_scalar("SELECT 1 WHERE false")
        assert result is None

    def test_uuid_params_are_accepted(self, db):
        value = uuid4()
        assert db.execute_scalar("SELECT %s::uuid::text", (value,)) == str(value)
