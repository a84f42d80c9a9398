"""Bookmark persistence.

Each source gets its own directory under the cache dir, named after the
SHA-256 of the source path, holding a ``bookmark.json`` file.
"""

import dataclasses
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from lanternleaf.models import Bookmark

logger = logging.getLogger(__name__)

CACHE_DIR_ENV = "LANTERNLEAF_CACHE_DIR"
DEFAULT_CACHE_DIR = Path(".cache")


def default_cache_dir() -> Path:
    value = os.environ.get(CACHE_DIR_ENV)
    return Path(value) if value else DEFAULT_CACHE_DIR


def source_cache_dir(source: Union[str, Path], cache_dir: Optional[Path] = None) -> Path:
    digest = hashlib.sha256(str(source).encode("utf-8")).hexdigest()
    return Path(cache_dir or default_cache_dir()) / digest


def bookmark_path(source: Union[str, Path], cache_dir: Optional[Path] = None) -> Path:
    return source_cache_dir(source, cache_dir) / "bookmark.json"


def load_bookmark(source: Union[str, Path], cache_dir: Optional[Path] = None) -> Optional[Bookmark]:
    """Read the saved bookmark for ``source``, or None if there is none usable."""
    path = bookmark_path(source, cache_dir)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug("Nessun segnalibro per %s", source)
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Segnalibro illeggibile in %s: %s", path, e)
        return None

    try:
        bookmark = Bookmark(
            page=max(0, int(data["page"])),
            sentence_idx=_optional_index(data.get("sentence_idx")),
            sentence_text=data.get("sentence_text") or None,
            scroll_y=float(data.get("scroll_y", 0.0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Segnalibro non valido in %s: %s", path, e)
        return None
    logger.debug("Segnalibro letto da %s: pagina %d", path, bookmark.page)
    return bookmark


def save_bookmark(source: Union[str, Path], bookmark: Bookmark, cache_dir: Optional[Path] = None) -> None:
    """Write the bookmark for ``source``. Failures are logged, not raised."""
    path = bookmark_path(source, cache_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(dataclasses.asdict(bookmark), ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError as e:
        logger.warning("Impossibile salvare il segnalibro in %s: %s", path, e)
        return
    logger.debug("Segnalibro salvato in %s", path)


def _optional_index(value) -> Optional[int]:
    if value is None:
        return None
    return max(0, int(value))
