# hr_platform/core/query_logger.py

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from hr_platform.core.config import get_settings

logger = logging.getLogger("sqlalchemy.engine")
query_logger = logging.getLogger("query_performance")

settings = get_settings()


class QueryLogger:
    """SQL query statistics collector for development and debugging"""

    def __init__(self):
        self.enabled = settings.is_development or settings.debug
        self.slow_query_threshold = settings.slow_query_threshold_seconds
        self.query_stats: Dict[str, Any] = {}
        self.reset_stats()

    def reset_stats(self):
        self.query_stats = {
            "total_queries": 0,
            "slow_queries": 0,
            "total_time": 0.0,
            "queries_by_table": {},
        }


# Singleton instance
query_logger_instance = QueryLogger()


def setup_query_logging(engine: Engine):
    """
    Attach timing listeners to an SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    if not query_logger_instance.enabled:
        return

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())
        conn.info.setdefault("query_tables", []).append(
            extract_tables_from_query(statement)
        )

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_time = time.time() - conn.info["query_start_time"].pop(-1)
        tables = conn.info["query_tables"].pop(-1)

        stats = query_logger_instance.query_stats
        stats["total_queries"] += 1
        stats["total_time"] += total_time
        for table in tables:
            stats["queries_by_table"][table] = stats["queries_by_table"].get(table, 0) + 1

        if total_time > query_logger_instance.slow_query_threshold:
            stats["slow_queries"] += 1
            query_logger.warning(
                "SLOW QUERY (%.3fs): %s...", total_time, statement[:200]
            )

        if settings.log_sql_queries:
            logger.debug("Query complete in %.3fs", total_time)


def extract_tables_from_query(query: str) -> list:
    """
    Extract table names from a SQL statement (simple keyword scan).

    Args:
        query: SQL query string

    Returns:
        List of distinct table names found in the query
    """
    query_upper = query.upper()
    tables = set()

    for pattern in ("FROM ", "JOIN ", "UPDATE ", "INSERT INTO ", "DELETE FROM "):
        pos = 0
        while True:
            pos = query_upper.find(pattern, pos)
            if pos == -1:
                break

            start = pos + len(pattern)
            end = start
            while end < len(query) and query[end] not in " ,();\n":
                end += 1

            if end > start:
                table_name = query[start:end].strip().lower().split(".")[-1]
                table_name = table_name.strip("\"'`")
                if table_name and not table_name.startswith("("):
                    tables.add(table_name)

            pos = end

    return list(tables)


@contextmanager
def log_query_performance(operation_name: str):
    """
    Log the number of queries and elapsed time of a database operation.

    Example:
        with log_query_performance("payroll_backfill"):
            service.run_payroll_backfill(options)
    """
    if not query_logger_instance.enabled:
        yield
        return

    start_queries = query_logger_instance.query_stats["total_queries"]
    start_time = time.time()

    try:
        yield
    finally:
        elapsed_time = time.time() - start_time
        query_count = query_logger_instance.query_stats["total_queries"] - start_queries
        query_logger.info(
            "Operation '%s': %d queries in %.3fs",
            operation_name,
            query_count,
            elapsed_time,
        )
