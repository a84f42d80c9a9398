"""Progress reporting for the audio export."""

from tqdm import tqdm


class ProgressReporter:
    """tqdm bar over the pages of an export, counting the audio units written."""

    def __init__(self, total_pages: int):
        self._units = 0
        self._silent_pages = 0
        self._bar = tqdm(
            total=total_pages,
            desc="Esportazione",
            unit="pag",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} pagine [{elapsed}<{remaining}]",
        )

    def update(self, current: int, total: int, units: int) -> None:
        """Record page ``current`` of ``total`` and the ``units`` written for it."""
        if total != self._bar.total:
            self._bar.total = total
        self._units += units
        if units == 0:
            self._silent_pages += 1
        postfix = f"{self._units} frasi"
        if self._silent_pages:
            postfix += f", {self._silent_pages} pagine mute"
        self._bar.set_postfix_str(postfix, refresh=False)
        self._bar.update(current - self._bar.n)

    def close(self) -> None:
        self._bar.close()
