"""Contract between the extraction pipeline and a quad store."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from types import TracebackType

Row = dict[str, str]


class RepositoryError(Exception):
    """Base class for failures talking to a repository."""


class QueryExecutionError(RepositoryError):
    """A query could not be evaluated (malformed query, transport error)."""


class TransactionError(RepositoryError):
    """A transaction could not be started, filled or committed."""


@dataclass(frozen=True)
class Literal:
    value: str
    datatype: str


@dataclass(frozen=True)
class Quad:
    subject: str
    predicate: str
    object: Literal
    graph: str


class QueryResult(Iterator[Row]):
    """Rows of one evaluated query.

    Rows map variable names to the string value of their binding; unbound
    variables are absent. The result releases its underlying resources when
    closed, which the context manager guarantees.
    """

    def __init__(self, rows: Iterable[Row], on_close: Callable[[], None] | None = None) -> None:
        self._rows = iter(rows)
        self._on_close = on_close
        self.closed = False

    def __iter__(self) -> "QueryResult":
        return self

    def __next__(self) -> Row:
        if self.closed:
            raise StopIteration
        return next(self._rows)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "QueryResult":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class RepositoryConnection(ABC):
    """A connection to one repository, owned by a single pipeline."""

    @abstractmethod
    def evaluate(self, query: str) -> QueryResult:
        """Run a SELECT query.

        Raises:
            QueryExecutionError: If the query cannot be evaluated
        """

    @abstractmethod
    def begin(self) -> None:
        """Start a transaction."""

    @abstractmethod
    def add(self, quad: Quad) -> None:
        """Add a quad to the open transaction."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the open transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard the open transaction."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
