"""
Band Engine Types and Enumerations

Type definitions for the band tree: band kinds, detail alias kinds,
variable scopes and aggregation kinds.
"""

from enum import Enum


class BandType(Enum):
    """
    Typed sections of a report layout

    Title and Summary fire once per run, page and column bands fire at
    every page/column boundary, group bands at group breaks and detail
    bands once per driving record (or per child row).
    """

    TITLE = "title"
    PAGE_HEADER = "page_header"
    COLUMN_HEADER = "column_header"
    GROUP_HEADER = "group_header"
    DETAIL = "detail"
    GROUP_FOOTER = "group_footer"
    COLUMN_FOOTER = "column_footer"
    PAGE_FOOTER = "page_footer"
    SUMMARY = "summary"

    @property
    def is_singleton(self) -> bool:
        """Whether a definition may declare at most one band of this type"""
        return self in SINGLETON_BAND_TYPES

    @property
    def is_group(self) -> bool:
        return self in (BandType.GROUP_HEADER, BandType.GROUP_FOOTER)


SINGLETON_BAND_TYPES = frozenset(
    {
        BandType.TITLE,
        BandType.SUMMARY,
        BandType.PAGE_HEADER,
        BandType.PAGE_FOOTER,
        BandType.COLUMN_HEADER,
        BandType.COLUMN_FOOTER,
    }
)


class AliasKind(Enum):
    """How a detail band resolves the rows it fires for"""

    NONE = "none"  # once per driving record
    DRIVING = "driving"  # once, reusing the driving record
    RELATION = "relation"  # once per child row of a named relation


class ScopeKind(Enum):
    """Boundary at which a variable resets"""

    DETAIL = "detail"
    GROUP = "group"
    PAGE = "page"
    REPORT = "report"


class AggregationKind(Enum):
    """How a variable folds observed values"""

    SUM = "sum"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    AVG = "avg"
    CUSTOM = "custom"


class DiagnosticKind(Enum):
    """Recoverable problems reported alongside the event stream"""

    EXPRESSION = "expression"
    CHILD_SOURCE = "child_source"
