"""Shared fixtures: an in-memory repository standing in for a quad store."""

from collections.abc import Callable, Iterable

import pytest

from biblink_creator.core import config as config_module
from biblink_creator.core.models import Credentials, RepositoryEndpoint
from biblink_creator.store.repository import (
    Quad,
    QueryExecutionError,
    QueryResult,
    RepositoryConnection,
    Row,
    TransactionError,
)


class FakeRepository(RepositoryConnection):
    """Answers every query with canned rows; records committed quads per transaction."""

    def __init__(self, rows: list[Row] | None = None, query_rows: Callable[[str], Iterable[Row]] | None = None) -> None:
        self.rows = rows or []
        self.query_rows = query_rows
        self.queries: list[str] = []
        self.results: list[QueryResult] = []
        self.committed: list[list[Quad]] = []
        self.rolled_back = 0
        self.closed = False
        self.fail_query = False
        self.fail_add_on_batch: set[int] = set()
        self.add_error: Exception = TransactionError("store rejected quad")
        self._pending: list[Quad] | None = None
        self._batches_started = 0

    def evaluate(self, query: str) -> QueryResult:
        self.queries.append(query)
        if self.fail_query:
            raise QueryExecutionError("malformed query")
        rows = self.query_rows(query) if self.query_rows else self.rows
        result = QueryResult(rows)
        self.results.append(result)
        return result

    def begin(self) -> None:
        if self._pending is not None:
            raise TransactionError("already open")
        self._batches_started += 1
        self._pending = []

    def add(self, quad: Quad) -> None:
        if self._pending is None:
            raise TransactionError("no transaction")
        if self._batches_started in self.fail_add_on_batch:
            raise self.add_error
        self._pending.append(quad)

    def commit(self) -> None:
        if self._pending is None:
            raise TransactionError("no transaction")
        self.committed.append(self._pending)
        self._pending = None

    def rollback(self) -> None:
        self._pending = None
        self.rolled_back += 1

    def close(self) -> None:
        self.closed = True

    @property
    def in_transaction(self) -> bool:
        return self._pending is not None

    @property
    def quads(self) -> list[Quad]:
        return [quad for batch in self.committed for quad in batch]


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every test runs against the test path set."""
    monkeypatch.setattr(config_module, "_config", config_module.EnvironmentConfig(mode="test"))


@pytest.fixture
def source_a() -> RepositoryEndpoint:
    return RepositoryEndpoint(server_url="http://a.example", repository_id="repo-a", repository_name="Library A")


@pytest.fixture
def source_b() -> RepositoryEndpoint:
    return RepositoryEndpoint(server_url="http://b.example", repository_id="repo-b", repository_name="Library B")


@pytest.fixture
def destination() -> RepositoryEndpoint:
    return RepositoryEndpoint(
        server_url="http://d.example",
        repository_id="links",
        schema_url="http://example.org/biblink/",
        credentials=Credentials(username="writer", password="secret"),
    )
