"""Extraction of matching records from two repositories into a destination.

Source A and source B are linked when a record of each carries the same
normalized identifier. The pipeline collects the identifiers of source A,
keeps the ones source B also has, and then copies the identifier, title and
year of every matching record of both sources into per-source named graphs
of the destination repository, in batched transactions.
"""

from collections.abc import Callable, Iterable
from functools import partial
from types import TracebackType

from ..core.identifiers import IdentifierKind
from ..core.models import (
    ExtractedRecord,
    ExtractionOutcome,
    ExtractionSettings,
    FormatRules,
    RepositoryEndpoint,
)
from ..core.schema import XSD_GYEAR, XSD_STRING, Schema
from ..normalize import format_title, format_year, normalize_identifier
from ..store.repository import Literal, Quad, RepositoryConnection, RepositoryError
from ..store.sparql_http import HTTPRepositoryConnection, is_connection_authorized
from ..utils.log import get_logger

log = get_logger(__name__)

ConnectionFactory = Callable[[RepositoryEndpoint], RepositoryConnection]
Authorizer = Callable[[RepositoryEndpoint], bool]


def missing_endpoint_fields(endpoint: RepositoryEndpoint | None, destination: bool = False) -> list[str]:
    """Names of required endpoint fields that are blank.

    Sources need a server URL, repository ID and repository name (the name
    selects the destination graph). The destination needs a server URL,
    repository ID and schema URL. Credentials, when given, need both parts.
    """
    if endpoint is None:
        return ["endpoint"]
    required = ["server_url", "repository_id"]
    required.append("schema_url" if destination else "repository_name")
    missing = [name for name in required if not getattr(endpoint, name)]
    if endpoint.credentials is not None:
        if not endpoint.credentials.username:
            missing.append("credentials.username")
        if not endpoint.credentials.password:
            missing.append("credentials.password")
    return missing


def existing_identifiers_query(schema: Schema, graph_uri: str, kind: IdentifierKind) -> str:
    """SELECT the identifiers already saved in ``graph_uri``."""
    variable = kind.variable_name
    return (
        f"PREFIX prop: <{schema.property_path}>\n"
        "SELECT *\n"
        "WHERE {\n"
        f"    GRAPH <{graph_uri}> {{ ?subject prop:{variable} ?{variable} . }}\n"
        "}\n"
    )


def record_quads(record: ExtractedRecord, schema: Schema, kind: IdentifierKind, graph_uri: str) -> list[Quad]:
    quads = [
        Quad(record.subject, schema.identifier_property(kind), Literal(record.identifier, XSD_STRING), graph_uri),
        Quad(record.subject, schema.title_property, Literal(record.title, XSD_STRING), graph_uri),
    ]
    if record.year:
        quads.append(Quad(record.subject, schema.year_property, Literal(record.year, XSD_GYEAR), graph_uri))
    return quads


class DataExtractor:
    """Links records of source A to source B and saves them in the destination.

    The extractor owns its source A and destination connections; use it as a
    context manager or call ``close()``. Public operations never raise: they
    log and return 0, None or False instead.
    """

    def __init__(
        self,
        source_a: RepositoryEndpoint | None,
        destination: RepositoryEndpoint | None,
        settings: ExtractionSettings | None = None,
        source_a_rules: FormatRules | None = None,
        connection_factory: ConnectionFactory | None = None,
        authorizer: Authorizer | None = None,
    ) -> None:
        self.source_a = source_a
        self.destination = destination
        self.settings = settings or ExtractionSettings()
        self.source_a_rules = source_a_rules
        # a missing destination is reported by validate_configuration
        self.schema = Schema(destination.schema_url if destination is not None else "")
        self._connect = connection_factory or partial(
            HTTPRepositoryConnection.from_endpoint,
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
        )
        self._authorize = authorizer or partial(
            is_connection_authorized,
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
        )
        self._source_a_conn: RepositoryConnection | None = None
        self._destination_conn: RepositoryConnection | None = None

    def __enter__(self) -> "DataExtractor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release the source A and destination connections."""
        for role, conn in (("source_a", self._source_a_conn), ("destination", self._destination_conn)):
            if conn is not None:
                self._release(conn, role)
        self._source_a_conn = None
        self._destination_conn = None

    @staticmethod
    def _release(conn: RepositoryConnection, role: str) -> None:
        try:
            conn.close()
        except Exception as e:
            log.error("connection_close_failed", role=role, error=str(e))

    # --- configuration and authorization ---

    def validate_configuration(self, source_b: RepositoryEndpoint | None = None) -> bool:
        """Log every missing required field; True when nothing is missing."""
        endpoints: list[tuple[str, RepositoryEndpoint | None, bool]] = [
            ("source_a", self.source_a, False),
            ("destination", self.destination, True),
        ]
        if source_b is not None:
            endpoints.insert(1, ("source_b", source_b, False))

        complete = True
        for role, endpoint, is_destination in endpoints:
            for field in missing_endpoint_fields(endpoint, destination=is_destination):
                log.warning("repository_parameter_missing", role=role, field=field)
                complete = False
        return complete

    def check_authorization(self, source_b: RepositoryEndpoint | None = None) -> bool:
        """Check source A, source B (if given) and the destination; stop at the first failure."""
        endpoints = [("source_a", self.source_a)]
        if source_b is not None:
            endpoints.append(("source_b", source_b))
        endpoints.append(("destination", self.destination))

        for role, endpoint in endpoints:
            if endpoint is None:
                log.error("repository_not_authorized", role=role, server=None)
                return False
            try:
                authorized = self._authorize(endpoint)
            except Exception:
                log.exception("authorization_check_error", role=role, server=endpoint.server_url)
                authorized = False
            if not authorized:
                log.error("repository_not_authorized", role=role, server=endpoint.server_url)
                return False
        return True

    def _owned_connections(self) -> tuple[RepositoryConnection, RepositoryConnection]:
        if self._source_a_conn is None:
            self._source_a_conn = self._connect(self.source_a)
        if self._destination_conn is None:
            self._destination_conn = self._connect(self.destination)
        return self._source_a_conn, self._destination_conn

    # --- extraction ---

    def _log_extracted(self, count: int, kind: IdentifierKind) -> None:
        log.info("identifiers_extracted", kind=kind.display_name, records=count)

    def get_identifier_set(
        self,
        query: str,
        conn: RepositoryConnection,
        kind: IdentifierKind,
        format_identifiers: bool,
        rules: FormatRules | None = None,
    ) -> set[str] | None:
        """
        Collect the identifiers bound to the kind's variable.

        Args:
            query: SELECT query binding the kind's variable
            conn: Repository to query
            kind: Identifier kind to read
            format_identifiers: Normalize values and keep only valid ones
            rules: Replacement rules applied before normalization

        Returns:
            The identifier set (possibly empty), or None if the query failed
        """
        variable = kind.variable_name
        kind_rules = rules.for_kind(kind) if rules else None
        every = self.settings.extract_message_records
        identifiers: set[str] = set()
        extracted = 0

        try:
            with conn.evaluate(query) as rows:
                for row in rows:
                    extracted += 1
                    if extracted % every == 0:
                        self._log_extracted(extracted, kind)

                    value = row.get(variable)
                    if value is None:
                        log.warning("row_missing_binding", variable=variable)
                        continue
                    if not format_identifiers:
                        identifiers.add(value)
                        continue
                    result = normalize_identifier(value, kind, kind_rules)
                    if result.is_valid:
                        identifiers.add(result.value)
        except RepositoryError as e:
            log.error("identifier_query_failed", kind=kind.display_name, error=str(e))
            return None
        except Exception:
            log.exception("identifier_extraction_error", kind=kind.display_name)
            return None

        if extracted % every != 0:
            self._log_extracted(extracted, kind)
        return identifiers

    def get_formatted_identifier_set(
        self,
        query: str,
        conn: RepositoryConnection,
        inclusion: set[str] | None,
        exclusion: set[str] | None,
        kind: IdentifierKind,
        rules: FormatRules | None = None,
    ) -> ExtractionOutcome | None:
        """
        Collect normalized, valid identifiers filtered by inclusion/exclusion sets.

        Identifiers outside ``inclusion`` or inside ``exclusion`` are skipped
        before validity is considered; invalid ones that pass the filters are
        counted. Reading stops early once a non-empty ``inclusion`` set is
        fully covered.

        Returns:
            ExtractionOutcome, or None if the query failed
        """
        variable = kind.variable_name
        kind_rules = rules.for_kind(kind) if rules else None
        every = self.settings.extract_message_records
        outcome = ExtractionOutcome()
        extracted = 0

        try:
            with conn.evaluate(query) as rows:
                for row in rows:
                    extracted += 1
                    if extracted % every == 0:
                        self._log_extracted(extracted, kind)

                    value = row.get(variable)
                    if value is None:
                        log.warning("row_missing_binding", variable=variable)
                        continue
                    result = normalize_identifier(value, kind, kind_rules)
                    if inclusion is not None and result.value not in inclusion:
                        continue
                    if exclusion is not None and result.value in exclusion:
                        continue
                    if not result.is_valid:
                        outcome.invalid_count += 1
                        continue

                    outcome.identifiers.add(result.value)
                    if inclusion and len(outcome.identifiers) == len(inclusion):
                        log.debug("inclusion_set_covered", kind=kind.display_name, rows_read=extracted)
                        break
        except RepositoryError as e:
            log.error("identifier_query_failed", kind=kind.display_name, error=str(e))
            return None
        except Exception:
            log.exception("identifier_extraction_error", kind=kind.display_name)
            return None

        if extracted % every != 0:
            self._log_extracted(extracted, kind)
        if outcome.invalid_count:
            log.info("invalid_identifiers", kind=kind.display_name, count=outcome.invalid_count)
        if not outcome.identifiers:
            if extracted:
                log.info("no_new_identifiers_found", kind=kind.display_name)
            else:
                log.info("no_identifiers_found", kind=kind.display_name)
        return outcome

    def extract(
        self,
        source_a_query: str,
        source_b_query: str,
        source_b: RepositoryEndpoint | None,
        kind: IdentifierKind,
        save_new_only: bool = False,
        source_a_rules: FormatRules | None = None,
        source_b_rules: FormatRules | None = None,
    ) -> int:
        """
        Run the whole link extraction for one identifier kind.

        Args:
            source_a_query: Extraction query for source A
            source_b_query: Extraction query for source B
            source_b: Endpoint of source B (connection opened and released here)
            kind: Identifier kind linking the two sources
            save_new_only: Skip identifiers already saved for source B in the destination
            source_a_rules: Replacement rules for source A (defaults to the constructor's)
            source_b_rules: Replacement rules for source B

        Returns:
            Number of source B records saved in the destination
        """
        if source_b is None:
            log.warning("repository_parameter_missing", role="source_b", field="endpoint")
            return 0
        if not self.validate_configuration(source_b):
            return 0
        if not self.check_authorization(source_b):
            return 0

        source_a_rules = source_a_rules or self.source_a_rules
        source_b_conn: RepositoryConnection | None = None
        try:
            source_a_conn, destination_conn = self._owned_connections()
            source_b_conn = self._connect(source_b)
            return self._link(
                source_a_query,
                source_b_query,
                source_b,
                kind,
                save_new_only,
                source_a_rules,
                source_b_rules,
                source_a_conn,
                source_b_conn,
                destination_conn,
            )
        except Exception:
            log.exception("extraction_aborted", kind=kind.display_name)
            return 0
        finally:
            if source_b_conn is not None:
                self._release(source_b_conn, "source_b")

    def _link(
        self,
        source_a_query: str,
        source_b_query: str,
        source_b: RepositoryEndpoint,
        kind: IdentifierKind,
        save_new_only: bool,
        source_a_rules: FormatRules | None,
        source_b_rules: FormatRules | None,
        source_a_conn: RepositoryConnection,
        source_b_conn: RepositoryConnection,
        destination_conn: RepositoryConnection,
    ) -> int:
        existing: set[str] | None = None
        if save_new_only:
            graph_uri = self.schema.data_graph_uri(source_b.repository_name)
            log.info(
                "retrieving_existing_identifiers",
                kind=kind.display_name,
                source=source_b.repository_name,
                repository=self.destination.repository_id,
            )
            existing = self.get_identifier_set(
                existing_identifiers_query(self.schema, graph_uri, kind), destination_conn, kind, False
            )
            if existing is None:
                return 0
            log.info("existing_identifiers_found", kind=kind.display_name, unique=len(existing))

        log.info("extracting_identifiers", kind=kind.display_name, repository=self.source_a.repository_id)
        outcome_a = self.get_formatted_identifier_set(
            source_a_query, source_a_conn, None, existing, kind, source_a_rules
        )
        if outcome_a is None or not outcome_a.identifiers:
            return 0
        log.info("unique_identifiers_found", kind=kind.display_name, unique=len(outcome_a.identifiers))

        log.info("extracting_identifiers", kind=kind.display_name, repository=source_b.repository_id)
        outcome_b = self.get_formatted_identifier_set(
            source_b_query, source_b_conn, outcome_a.identifiers, None, kind, source_b_rules
        )
        if outcome_b is None or not outcome_b.identifiers:
            return 0
        matched = outcome_b.identifiers
        log.info("matching_identifiers_found", kind=kind.display_name, unique=len(matched))

        log.info("saving_records", repository=self.source_a.repository_id)
        saved_a = self._insert_extracted_records(
            matched, source_a_query, self.source_a.repository_name, source_a_conn, destination_conn, kind, source_a_rules
        )
        log.info("records_saved_total", repository=self.source_a.repository_id, saved=saved_a)

        log.info("saving_records", repository=source_b.repository_id)
        saved_b = self._insert_extracted_records(
            matched, source_b_query, source_b.repository_name, source_b_conn, destination_conn, kind, source_b_rules
        )
        log.info("records_saved_total", repository=source_b.repository_id, saved=saved_b)
        return saved_b

    # --- insertion ---

    def _insert_extracted_records(
        self,
        matched: set[str],
        query: str,
        repository_name: str,
        source_conn: RepositoryConnection,
        destination_conn: RepositoryConnection,
        kind: IdentifierKind,
        rules: FormatRules | None,
    ) -> int:
        variable = kind.variable_name
        kind_rules = rules.for_kind(kind) if rules else None
        title_rules = rules.title if rules else None
        year_rules = rules.year if rules else None
        batch_size = self.settings.insert_batch_size

        records: set[ExtractedRecord] = set()
        inserted = 0
        logged_steps = 0
        invalid_titles = 0
        invalid_years = 0

        try:
            with source_conn.evaluate(query) as rows:
                for row in rows:
                    raw = row.get(variable)
                    if raw is None:
                        continue
                    identifier = normalize_identifier(raw, kind, kind_rules)
                    if not identifier.is_valid or identifier.value not in matched:
                        continue
                    subject = row.get("subject")
                    raw_title = row.get("title")
                    if subject is None or raw_title is None:
                        log.warning("row_missing_binding", variable="subject" if subject is None else "title")
                        continue

                    title = format_title(raw_title, title_rules)
                    year = format_year(row.get("year", ""), year_rules)
                    if not year.is_valid:
                        invalid_years += 1
                    if not title.is_valid:
                        invalid_titles += 1
                        continue

                    records.add(
                        ExtractedRecord(
                            subject=subject, identifier=identifier.value, title=title.value, year=year.value
                        )
                    )
                    if len(records) >= batch_size:
                        inserted += self._execute_transaction(records, kind, repository_name, destination_conn)
                        records.clear()
                        logged_steps = self._log_inserted(logged_steps, inserted, kind)

                if records:
                    inserted += self._execute_transaction(records, kind, repository_name, destination_conn)
                    records.clear()
        except RepositoryError as e:
            log.error("record_query_failed", repository=repository_name, error=str(e))
        except Exception:
            log.exception("record_insertion_error", repository=repository_name)

        if invalid_titles:
            log.info("invalid_titles", repository=repository_name, count=invalid_titles)
        if invalid_years:
            log.info("invalid_years", repository=repository_name, count=invalid_years)
        return inserted

    def _execute_transaction(
        self,
        records: Iterable[ExtractedRecord],
        kind: IdentifierKind,
        repository_name: str,
        conn: RepositoryConnection,
    ) -> int:
        """Write one batch in a single transaction; returns the number of records committed."""
        records = list(records)
        graph_uri = self.schema.data_graph_uri(repository_name)
        try:
            conn.begin()
        except Exception as e:
            self._log_transaction_failed("begin", graph_uri, len(records), e)
            return 0

        added = False
        try:
            for record in records:
                for quad in record_quads(record, self.schema, kind, graph_uri):
                    conn.add(quad)
            added = True
        except Exception as e:
            self._log_transaction_failed("add", graph_uri, len(records), e)
        finally:
            # never leave the transaction open on the connection
            try:
                if added:
                    conn.commit()
                else:
                    conn.rollback()
            except Exception as e:
                self._log_transaction_failed("commit" if added else "rollback", graph_uri, len(records), e)
                added = False

        return len(records) if added else 0

    @staticmethod
    def _log_transaction_failed(stage: str, graph_uri: str, records: int, error: Exception) -> None:
        log.error(
            "transaction_failed",
            stage=stage,
            graph=graph_uri,
            records=records,
            error=str(error),
            error_type=type(error).__name__,
        )

    def _log_inserted(self, logged_steps: int, inserted: int, kind: IdentifierKind) -> int:
        every = self.settings.insert_message_records
        steps = inserted // every
        if steps != logged_steps:
            log.info("records_saved", kind=kind.display_name, saved=steps * every)
        return steps
