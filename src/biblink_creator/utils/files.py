import shutil
from contextlib import suppress
from pathlib import Path

from .log import get_logger

log = get_logger(__name__)


def delete_temp_file(path: Path) -> bool:
    """Remove a file if it exists.

    Returns:
        True if a file was removed
    """
    if not path.is_file():
        return False
    try:
        path.unlink()
    except OSError as e:
        log.warning("temp_file_delete_failed", path=str(path), error=str(e))
        return False
    log.debug("temp_file_deleted", path=str(path))
    return True


def delete_temp_folder(path: Path) -> bool:
    """Remove a directory tree if it exists; files that cannot be removed are left behind."""
    if not path.is_dir():
        return False
    shutil.rmtree(path, ignore_errors=True)
    with suppress(FileNotFoundError):
        if any(path.iterdir()):
            log.warning("temp_folder_not_empty", path=str(path))
            return False
    log.debug("temp_folder_deleted", path=str(path))
    return True
