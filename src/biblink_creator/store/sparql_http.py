"""RDF4J (Sesame) REST protocol client.

Queries go to ``{server}/repositories/{id}`` and results come back as SPARQL
JSON. Writes are staged locally and sent to a server-side transaction on
commit, so a batch either lands completely or not at all.
"""

from collections.abc import Iterator
from typing import Any

import httpx

from ..core.models import RepositoryEndpoint
from ..utils.http import get_sync_client, request_with_retry
from ..utils.log import get_logger
from .repository import (
    Quad,
    QueryExecutionError,
    QueryResult,
    RepositoryConnection,
    Row,
    TransactionError,
)

log = get_logger(__name__)

SPARQL_RESULTS_JSON = "application/sparql-results+json"
NQUADS = "application/n-quads"


def _escape_literal(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def serialize_nquads(quads: list[Quad]) -> str:
    lines = [
        f'<{q.subject}> <{q.predicate}> "{_escape_literal(q.object.value)}"^^<{q.object.datatype}> <{q.graph}> .'
        for q in quads
    ]
    return "\n".join(lines) + "\n" if lines else ""


def _rows(payload: dict[str, Any]) -> Iterator[Row]:
    for binding in payload.get("results", {}).get("bindings", []):
        yield {name: term.get("value", "") for name, term in binding.items()}


class HTTPRepositoryConnection(RepositoryConnection):
    def __init__(
        self,
        server_url: str,
        repository_id: str,
        client: httpx.Client,
        owns_client: bool = True,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.repository_id = repository_id
        self.repository_url = f"{self.server_url}/repositories/{repository_id}"
        self._client = client
        self._owns_client = owns_client
        self._transaction_url: str | None = None
        self._pending: list[Quad] = []

    @classmethod
    def from_endpoint(
        cls,
        endpoint: RepositoryEndpoint,
        connect_timeout: float = 10.0,
        read_timeout: float = 300.0,
    ) -> "HTTPRepositoryConnection":
        client = get_sync_client(endpoint.credentials, connect_timeout, read_timeout)
        return cls(endpoint.server_url, endpoint.repository_id, client)

    def evaluate(self, query: str) -> QueryResult:
        try:
            response = request_with_retry(
                self._client,
                "POST",
                self.repository_url,
                data={"query": query},
                headers={"Accept": SPARQL_RESULTS_JSON},
            )
            payload = response.json()
        except httpx.HTTPError as e:
            raise QueryExecutionError(f"query failed on {self.repository_url}: {e}") from e
        except ValueError as e:
            raise QueryExecutionError(f"unreadable query result from {self.repository_url}: {e}") from e

        log.debug("query_evaluated", repository=self.repository_id, status=response.status_code)
        return QueryResult(_rows(payload), on_close=response.close)

    def begin(self) -> None:
        if self._transaction_url is not None:
            raise TransactionError("a transaction is already open")
        try:
            response = self._client.post(f"{self.repository_url}/transactions")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransactionError(f"cannot start transaction on {self.repository_url}: {e}") from e

        location = response.headers.get("Location")
        if not location:
            raise TransactionError("server did not return a transaction location")
        self._transaction_url = str(response.url.join(location))
        self._pending = []

    def add(self, quad: Quad) -> None:
        if self._transaction_url is None:
            raise TransactionError("no open transaction")
        self._pending.append(quad)

    def commit(self) -> None:
        if self._transaction_url is None:
            raise TransactionError("no open transaction")
        transaction_url = self._transaction_url
        try:
            # serialized before the first PUT so a bad literal sends nothing
            body = serialize_nquads(self._pending).encode("utf-8")
            if body:
                self._client.put(
                    transaction_url,
                    params={"action": "ADD"},
                    content=body,
                    headers={"Content-Type": NQUADS},
                ).raise_for_status()
            self._client.put(transaction_url, params={"action": "COMMIT"}).raise_for_status()
        except httpx.HTTPError as e:
            self._discard(transaction_url)
            raise TransactionError(f"commit failed on {self.repository_url}: {e}") from e
        except Exception as e:
            self._discard(transaction_url)
            raise TransactionError(f"cannot send transaction to {self.repository_url}: {e}") from e
        finally:
            self._transaction_url = None
            self._pending = []

    def rollback(self) -> None:
        if self._transaction_url is None:
            return
        transaction_url = self._transaction_url
        self._transaction_url = None
        self._pending = []
        self._discard(transaction_url)

    def _discard(self, transaction_url: str) -> None:
        try:
            self._client.delete(transaction_url)
        except httpx.HTTPError as e:
            log.warning("transaction_discard_failed", url=transaction_url, error=str(e))

    def close(self) -> None:
        if self._transaction_url is not None:
            self.rollback()
        if self._owns_client:
            self._client.close()


def is_connection_authorized(
    endpoint: RepositoryEndpoint,
    connect_timeout: float = 10.0,
    read_timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    """Request the server protocol endpoint with the endpoint's credentials.

    Returns:
        True when the server answered, False on rejected credentials or an
        unreachable server (both logged as errors)
    """
    url = f"{endpoint.server_url.rstrip('/')}/protocol"
    with get_sync_client(endpoint.credentials, connect_timeout, read_timeout, transport) as client:
        try:
            request_with_retry(client, "GET", url)
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                log.error("authorization_failed", server=endpoint.server_url, status=e.response.status_code)
            else:
                log.error("authorization_check_failed", server=endpoint.server_url, status=e.response.status_code)
            return False
        except httpx.HTTPError as e:
            log.error("server_unreachable", server=endpoint.server_url, error=str(e))
            return False
    return True
