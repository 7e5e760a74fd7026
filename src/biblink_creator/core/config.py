"""Configuration management for production and test environments.

This module provides centralized path configuration for logs and downloaded
files, keeping test runs away from production data, and loads the JSON run
configuration describing the repositories of one link-creation run.
"""

from pathlib import Path
from typing import Literal

from ..utils.log import get_logger
from .models import RunConfig

log = get_logger(__name__)

EnvironmentMode = Literal["production", "test"]

_DEFAULT_PRODUCTION_PATHS = {
    "log_dir": Path("logs"),
    "download_dir": Path("data/downloads"),
    "run_config_path": Path("config/run_config.json"),
}

_DEFAULT_TEST_PATHS = {
    "log_dir": Path("test_data/logs"),
    "download_dir": Path("test_data/downloads"),
    "run_config_path": Path("test_data/run_config.json"),
}


class EnvironmentConfig:
    """Manages environment-specific paths.

    Production and test modes use disjoint path sets so a ``--test`` run
    never writes into production directories.
    """

    def __init__(self, mode: EnvironmentMode = "production") -> None:
        self._mode: EnvironmentMode = mode
        self._paths: dict[str, Path] = {}
        self._load_paths()
        log.debug("environment_config_initialized", mode=mode, paths=str(self._paths))

    def _load_paths(self) -> None:
        if self._mode == "test":
            self._paths = _DEFAULT_TEST_PATHS.copy()
        else:
            self._paths = _DEFAULT_PRODUCTION_PATHS.copy()

    @property
    def mode(self) -> EnvironmentMode:
        return self._mode

    @property
    def log_dir(self) -> Path:
        """Directory for JSONL session logs."""
        return self._paths["log_dir"]

    @property
    def download_dir(self) -> Path:
        """Directory receiving files from the download workflow."""
        return self._paths["download_dir"]

    @property
    def run_config_path(self) -> Path:
        """Default location of the run configuration JSON file."""
        return self._paths["run_config_path"]

    def set_mode(self, mode: EnvironmentMode) -> None:
        """Change environment mode and reload paths."""
        if mode != self._mode:
            old_mode = self._mode
            self._mode = mode
            self._load_paths()
            log.info(
                "environment_mode_changed",
                old_mode=old_mode,
                new_mode=mode,
                new_paths=str(self._paths),
            )

    def get_summary(self) -> dict[str, str]:
        return {"mode": self._mode, **{k: str(v) for k, v in self._paths.items()}}


_config: EnvironmentConfig | None = None


def get_config() -> EnvironmentConfig:
    """Get the global configuration instance, creating it in production mode."""
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="production")
    return _config


def set_test_mode() -> None:
    """Switch to test mode globally (CLI ``--test`` flag or test fixtures)."""
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="test")
        log.info("initialized_in_test_mode", paths=_config.get_summary())
    else:
        _config.set_mode("test")
        log.info("switched_to_test_mode", paths=_config.get_summary())


def set_production_mode() -> None:
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="production")
        log.info("initialized_in_production_mode", paths=_config.get_summary())
    else:
        _config.set_mode("production")
        log.info("switched_to_production_mode", paths=_config.get_summary())


def is_test_mode() -> bool:
    return get_config().mode == "test"


def load_run_config(path: Path | None = None) -> RunConfig:
    """Read and validate a run configuration file.

    Args:
        path: JSON file to read; defaults to the environment's run config path

    Returns:
        The validated RunConfig

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If the content does not describe a valid run
    """
    path = path or get_config().run_config_path
    log.info("loading_run_config", path=str(path))
    run_config = RunConfig.model_validate_json(path.read_text(encoding="utf-8"))
    log.debug(
        "run_config_loaded",
        source_a=run_config.source_a.repository_id,
        source_b=run_config.source_b.repository_id,
        destination=run_config.destination.repository_id,
    )
    return run_config
