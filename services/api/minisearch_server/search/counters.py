from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SearchCounters:
    """Searches served since the last restart."""

    textual: int = 0
    graphical: int = 0

    def increment_textual(self) -> None:
        self.textual += 1

    def increment_graphical(self) -> None:
        self.graphical += 1
