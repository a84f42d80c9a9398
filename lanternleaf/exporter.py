"""Exporter - writes the audio units of a whole book for a speech backend."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union

from lanternleaf.session import ReaderSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


class AudioExporter:
    """Writes every audio unit of a session as JSON lines, in reading order."""

    def __init__(self, session: ReaderSession):
        self.session = session

    def export(
        self,
        output_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Write one JSON object per audio unit and return how many were written.

        Each line holds ``page``, ``audio_idx``, ``display_idx`` and ``text``.
        The file is written to a temporary sibling and moved into place, so
        an interrupted export never leaves a truncated file behind.

        Args:
            output_path: Destination ``.jsonl`` file.
            on_progress: Callback(current_page, total_pages, units_on_page).
        """
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        total_pages = len(self.session.pages)
        logger.info("Esportazione di %d pagine in %s", total_pages, out)

        fd, tmp_name = tempfile.mkstemp(prefix=".lanternleaf_", suffix=".jsonl", dir=out.parent)
        written = 0
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for page in self.session.pages:
                    units = 0
                    for page_idx, audio_idx, display_idx, text in self.session.iter_audio_units(page.index):
                        record = {
                            "page": page_idx,
                            "audio_idx": audio_idx,
                            "display_idx": display_idx,
                            "text": text,
                        }
                        f.write(json.dumps(record, ensure_ascii=False) + "\n")
                        units += 1
                    if units == 0 and page.sentence_count:
                        logger.debug("Pagina %d senza testo pronunciabile", page.index + 1)
                    written += units
                    if on_progress:
                        on_progress(page.index + 1, total_pages, units)
            os.replace(tmp_name, out)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("Esportate %d frasi audio in %s", written, out)
        return written
