"""
Test Helper Utilities

Reusable helpers for inspecting band runs and scripting collaborators.
"""

from typing import Any, Iterable, List, Optional

from band_engine import Band, BandType


def labels(events: Iterable[Any]) -> List[str]:
    """Band labels of a sequence of events, reprints marked with '*'"""
    return [event.band.label + ("*" if event.reprint else "") for event in events]


def of_type(events: Iterable[Any], band_type: BandType) -> List[Any]:
    return [event for event in events if event.band_type is band_type]


class ScriptedOracle:
    """
    Pagination oracle that refuses the n-th query (1-based) it receives.

    Every query is recorded so tests can assert which bands were asked.
    """

    def __init__(self, refuse_on: Iterable[int] = ()):
        self.refuse_on = set(refuse_on)
        self.queries: List[Band] = []

    def fits(self, band: Band, remaining_space_hint: Optional[float] = None) -> bool:
        self.queries.append(band)
        return len(self.queries) not in self.refuse_on

