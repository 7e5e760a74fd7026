import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .core.config import get_config, load_run_config, set_test_mode
from .core.identifiers import IdentifierKind
from .core.models import RunConfig, ShingleUnit, SimilarityMeasure, SimilaritySelector
from .match.similarity import coefficient
from .normalize import normalize_identifier
from .pipeline.download import run_download_batches
from .pipeline.extractor import DataExtractor
from .utils.files import delete_temp_folder
from .utils.log import get_logger, setup_logging

# Load environment variables from .env file
load_dotenv()

# Global state for logging configuration
_log_state: dict[str, Any] = {
    "session_id": datetime.now().strftime("%Y%m%d_%H%M%S"),
    "log_file": None,
    "logger": None,
}

app = typer.Typer(help="Create links between bibliographic records of two RDF repositories.")


@app.callback()
def callback(
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress console log output (logs still written to file)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"),
    test: bool = typer.Option(
        False, "--test", help="Use test environment (separate log, download and config paths)"
    ),
) -> None:
    """Initialize application with structured logging and environment configuration."""
    if test:
        set_test_mode()

    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO")

    console_output = not quiet
    _log_state["log_file"] = setup_logging(
        session_id=_log_state["session_id"],
        log_level=log_level,
        console_output=console_output,
        log_dir=get_config().log_dir,
    )
    _log_state["logger"] = get_logger(__name__)

    if console_output:
        _log_state["logger"].info(
            "application_started",
            session_id=_log_state["session_id"],
            log_file=str(_log_state["log_file"]),
            quiet=quiet,
            verbose=verbose,
            environment=get_config().mode,
        )


def _get_logger() -> structlog.BoundLogger | Any:
    """Get the application logger."""
    if _log_state["logger"] is None:
        _log_state["log_file"] = setup_logging(session_id=_log_state["session_id"], log_dir=get_config().log_dir)
        _log_state["logger"] = get_logger(__name__)
    return _log_state["logger"]


class _LogProxy:
    """Proxy class that forwards all attribute access to the lazily-initialized logger."""

    def __getattr__(self, name: str) -> Any:
        return getattr(_get_logger(), name)


log = _LogProxy()


def _load_config(path: Path | None) -> RunConfig:
    try:
        return load_run_config(path)
    except FileNotFoundError as e:
        log.error("run_config_not_found", path=str(e.filename))
        typer.echo(f"Run configuration not found: {e.filename}", err=True)
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        log.error("run_config_invalid", errors=e.error_count())
        typer.echo(f"Invalid run configuration:\n{e}", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def extract(
    source_a_query: Path = typer.Option(..., "--source-a-query", exists=True, dir_okay=False, help="SPARQL file for source A"),  # noqa: B008
    source_b_query: Path = typer.Option(..., "--source-b-query", exists=True, dir_okay=False, help="SPARQL file for source B"),  # noqa: B008
    kind: IdentifierKind = typer.Option(IdentifierKind.DOI, "--kind", "-k", help="Identifier linking the two sources"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Run configuration JSON file"),  # noqa: B008
    save_new_only: bool = typer.Option(False, "--save-new-only", help="Skip identifiers already saved for source B"),
) -> None:
    """Save records of source A and source B that share an identifier into the destination."""
    run_config = _load_config(config)
    log.info("extract_started", kind=kind.display_name, save_new_only=save_new_only)

    with DataExtractor(
        run_config.source_a,
        run_config.destination,
        settings=run_config.settings,
        source_a_rules=run_config.source_a_rules,
    ) as extractor:
        saved = extractor.extract(
            source_a_query.read_text(encoding="utf-8"),
            source_b_query.read_text(encoding="utf-8"),
            run_config.source_b,
            kind,
            save_new_only=save_new_only,
            source_b_rules=run_config.source_b_rules,
        )

    log.info("extract_completed", kind=kind.display_name, saved=saved)
    typer.echo(f"Saved {saved} {run_config.source_b.repository_name or 'source B'} records.")


@app.command("check-auth")
def check_auth(
    config: Path | None = typer.Option(None, "--config", "-c", help="Run configuration JSON file"),  # noqa: B008
) -> None:
    """Check that every configured repository is reachable with its credentials."""
    run_config = _load_config(config)
    with DataExtractor(run_config.source_a, run_config.destination, settings=run_config.settings) as extractor:
        if not extractor.validate_configuration(run_config.source_b):
            typer.echo("Run configuration is incomplete.", err=True)
            raise typer.Exit(code=1)
        if not extractor.check_authorization(run_config.source_b):
            typer.echo("Authorization failed.", err=True)
            raise typer.Exit(code=1)
    typer.echo("All repositories authorized.")


@app.command()
def normalize(
    value: str = typer.Argument(..., help="Raw identifier value"),
    kind: IdentifierKind = typer.Option(IdentifierKind.DOI, "--kind", "-k"),
) -> None:
    """Print the normalized form of an identifier, or fail if it is invalid."""
    result = normalize_identifier(value, kind)
    if not result.is_valid:
        typer.echo(f"Invalid {kind.display_name}: {value!r}", err=True)
        raise typer.Exit(code=1)
    typer.echo(result.value)


@app.command()
def similarity(
    first: str = typer.Argument(...),
    second: str = typer.Argument(...),
    measure: SimilarityMeasure = typer.Option(SimilarityMeasure.JACCARD, "--measure", "-m"),
    unit: ShingleUnit = typer.Option(ShingleUnit.WORD, "--unit", "-u"),
    size: int = typer.Option(1, "--size", "-s", help="Shingle size (values below 1 count as 1)"),
) -> None:
    """Print the similarity coefficient of two strings."""
    selector = SimilaritySelector(measure=measure, unit=unit, size=size)
    typer.echo(f"{coefficient(first, second, selector):.4f}")


@app.command()
def download(
    ids_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File with one identifier per line"),  # noqa: B008
    url_template: str = typer.Option(..., "--url-template", help="URL with an {ids} placeholder"),
    dest: Path | None = typer.Option(None, "--dest", help="Destination directory"),  # noqa: B008
    config: Path | None = typer.Option(None, "--config", "-c", help="Run configuration JSON file"),  # noqa: B008
    fresh: bool = typer.Option(False, "--fresh", help="Empty the destination directory first"),
) -> None:
    """Download identifier batches from a remote service."""
    settings = _load_config(config).download
    dest = dest or get_config().download_dir
    identifiers = [line.strip() for line in ids_file.read_text(encoding="utf-8").splitlines() if line.strip()]

    if fresh:
        delete_temp_folder(dest)

    try:
        summary = asyncio.run(run_download_batches(identifiers, url_template, dest, settings))
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1) from e

    typer.echo(
        f"Downloaded {summary.downloaded} batches, {summary.failed} failed, {summary.skipped} skipped."
    )
    if summary.halted:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
