"""Tests for the RDF4J REST client using httpx.MockTransport."""

import json
from collections.abc import Callable

import httpx
import pytest

from biblink_creator.core.models import Credentials, RepositoryEndpoint
from biblink_creator.core.schema import XSD_STRING
from biblink_creator.store.repository import Literal, Quad, QueryExecutionError, TransactionError
from biblink_creator.store.sparql_http import (
    HTTPRepositoryConnection,
    is_connection_authorized,
    serialize_nquads,
)
from biblink_creator.utils.http import request_with_retry

SERVER = "http://rdf.example/rdf4j-server"
REPOSITORY_URL = f"{SERVER}/repositories/links"
TRANSACTION_URL = f"{REPOSITORY_URL}/transactions/txn-1"

QUAD = Quad(
    "http://a.example/1",
    "http://example.org/s/property/title",
    Literal('A "quoted"\ntitle', XSD_STRING),
    "http://example.org/s/graph/library_a",
)


def sparql_json(*bindings: dict[str, str]) -> dict:
    return {
        "head": {"vars": sorted({name for b in bindings for name in b})},
        "results": {"bindings": [{k: {"type": "literal", "value": v} for k, v in b.items()} for b in bindings]},
    }


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(request_with_retry.retry, "sleep", lambda _seconds: None)


def connection(handler: Callable[[httpx.Request], httpx.Response]) -> HTTPRepositoryConnection:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HTTPRepositoryConnection(SERVER + "/", "links", client)


class TestEvaluate:
    def test_rows(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=sparql_json({"subject": "s1", "doi": "10.1/a"}, {"subject": "s2"}))

        conn = connection(handler)
        with conn.evaluate("SELECT * WHERE { ?s ?p ?o }") as rows:
            assert list(rows) == [{"subject": "s1", "doi": "10.1/a"}, {"subject": "s2"}]

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == REPOSITORY_URL
        assert request.headers["Accept"] == "application/sparql-results+json"
        assert b"query=SELECT" in request.content

    def test_client_error_raises(self) -> None:
        conn = connection(lambda request: httpx.Response(400, text="MALFORMED QUERY"))
        with pytest.raises(QueryExecutionError):
            conn.evaluate("SELEC")

    def test_unreadable_payload_raises(self) -> None:
        conn = connection(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(QueryExecutionError):
            conn.evaluate("SELECT * WHERE { ?s ?p ?o }")

    def test_transient_error_retried(self) -> None:
        statuses = iter([503, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            return httpx.Response(status, json=sparql_json({"doi": "10.1/a"}) if status == 200 else None)

        rows = list(connection(handler).evaluate("SELECT ?doi WHERE { ?s ?p ?doi }"))
        assert rows == [{"doi": "10.1/a"}]


class TestTransactions:
    def recorder(self, fail_add: bool = False) -> tuple[list[httpx.Request], Callable[[httpx.Request], httpx.Response]]:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "POST":
                return httpx.Response(201, headers={"Location": TRANSACTION_URL})
            if request.method == "PUT" and fail_add and request.url.params.get("action") == "ADD":
                return httpx.Response(400)
            return httpx.Response(200)

        return requests, handler

    def test_commit_sends_quads_then_commits(self) -> None:
        requests, handler = self.recorder()
        conn = connection(handler)
        conn.begin()
        conn.add(QUAD)
        conn.commit()

        assert [(r.method, r.url.params.get("action")) for r in requests] == [
            ("POST", None),
            ("PUT", "ADD"),
            ("PUT", "COMMIT"),
        ]
        assert str(requests[0].url) == f"{REPOSITORY_URL}/transactions"
        assert requests[1].headers["Content-Type"] == "application/n-quads"
        assert requests[1].content.decode("utf-8") == serialize_nquads([QUAD])

    def test_failed_commit_discards_transaction(self) -> None:
        requests, handler = self.recorder(fail_add=True)
        conn = connection(handler)
        conn.begin()
        conn.add(QUAD)
        with pytest.raises(TransactionError):
            conn.commit()

        assert requests[-1].method == "DELETE"
        assert str(requests[-1].url) == TRANSACTION_URL
        # the connection can start over
        conn.begin()

    def test_unencodable_literal_discards_transaction(self) -> None:
        requests, handler = self.recorder()
        conn = connection(handler)
        conn.begin()
        conn.add(Quad(QUAD.subject, QUAD.predicate, Literal("Bad \ud800 one", XSD_STRING), QUAD.graph))
        with pytest.raises(TransactionError):
            conn.commit()

        assert [r.method for r in requests] == ["POST", "DELETE"]
        assert str(requests[-1].url) == TRANSACTION_URL
        conn.begin()

    def test_rollback_and_close(self) -> None:
        requests, handler = self.recorder()
        conn = connection(handler)
        conn.begin()
        conn.rollback()
        assert requests[-1].method == "DELETE"

        conn.begin()
        conn.close()
        assert [r.method for r in requests].count("DELETE") == 2

    def test_add_requires_transaction(self) -> None:
        requests, handler = self.recorder()
        with pytest.raises(TransactionError):
            connection(handler).add(QUAD)

    def test_missing_location(self) -> None:
        conn = connection(lambda request: httpx.Response(201))
        with pytest.raises(TransactionError):
            conn.begin()


def test_serialize_nquads_escapes_literals() -> None:
    line = serialize_nquads([QUAD])
    assert line == (
        '<http://a.example/1> <http://example.org/s/property/title> '
        '"A \\"quoted\\"\\ntitle"^^<http://www.w3.org/2001/XMLSchema#string> '
        "<http://example.org/s/graph/library_a> .\n"
    )
    assert serialize_nquads([]) == ""


class TestAuthorization:
    endpoint = RepositoryEndpoint(
        server_url=SERVER,
        repository_id="links",
        credentials=Credentials(username="writer", password="secret"),
    )

    def test_authorized(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="12")

        assert is_connection_authorized(self.endpoint, transport=httpx.MockTransport(handler))
        assert str(seen[0].url) == f"{SERVER}/protocol"
        assert seen[0].headers["Authorization"].startswith("Basic ")

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_rejected(self, status: int) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(status))
        assert not is_connection_authorized(self.endpoint, transport=transport)

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert not is_connection_authorized(self.endpoint, transport=httpx.MockTransport(handler))


def test_rows_ignore_missing_results() -> None:
    conn = connection(lambda request: httpx.Response(200, content=json.dumps({"head": {}}).encode()))
    assert list(conn.evaluate("ASK {}")) == []
