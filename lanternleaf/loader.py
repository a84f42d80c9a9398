"""Loading book text from disk."""

import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class LoadError(RuntimeError):
    """The source text could not be read."""


def load_text(path: Union[str, Path]) -> str:
    """Read a UTF-8 text file.

    A leading BOM is dropped and undecodable bytes are replaced, so any
    readable file yields a string.

    Raises:
        LoadError: If the file is missing or cannot be read.
    """
    path = Path(path)
    if path.is_dir():
        raise LoadError(f"{path} è una directory, non un file di testo")
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        raise LoadError(f"Impossibile leggere {path}: {e}") from e
    logger.debug("Caricati %d caratteri da %s", len(text), path)
    return text
