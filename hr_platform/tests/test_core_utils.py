"""
Tests for shared core helpers: chunked bulk inserts, query table
extraction and the application exception handlers.
"""

import pytest
from unittest.mock import Mock

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from hr_platform.core.database_utils import bulk_insert_chunked, chunked
from hr_platform.core.exceptions import register_exception_handlers
from hr_platform.core.query_logger import extract_tables_from_query


class TestChunking:
    def test_chunked(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 3)) == []

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_bulk_insert_chunked(self):
        db = Mock()
        rows = [{"id": n} for n in range(5)]

        assert bulk_insert_chunked(db, "Model", rows, 2) == 5
        assert db.bulk_insert_mappings.call_count == 3
        db.commit.assert_not_called()


def test_extract_tables_from_query():
    query = (
        'SELECT * FROM payroll_periods p JOIN "payroll_input_values" v ON v.period_id = p.id '
        "WHERE p.id IN (SELECT period_id FROM public.payroll_receipts)"
    )

    assert sorted(extract_tables_from_query(query)) == [
        "payroll_input_values",
        "payroll_periods",
        "payroll_receipts",
    ]


class TestExceptionHandlers:
    @pytest.fixture
    def client(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/value")
        async def value():
            raise ValueError("months must be positive")

        @app.get("/database")
        async def database():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        return TestClient(app, raise_server_exceptions=False)

    def test_value_error(self, client):
        response = client.get("/value")

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "months must be positive"
        assert response.json()["detail"]["path"] == "/value"

    def test_database_error_hides_statement(self, client):
        response = client.get("/database")

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "PAYROLL_DATABASE_ERROR"
        assert "SELECT" not in response.json()["detail"]["message"]
