"""Render events and side-channel diagnostics produced by a band run."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .models import Band
from .types import BandType, DiagnosticKind


@dataclass(frozen=True)
class RenderContext:
    """Data a renderer needs to draw one band instance"""

    record: Any = None
    child_record: Any = None
    variables: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    page_number: int = 1
    column_index: int = 0
    group_key: Tuple[Any, ...] = ()
    group_counts: Tuple[int, ...] = ()
    record_index: Optional[int] = None

    @property
    def current_row(self) -> Any:
        """Child row while iterating a relation, otherwise the driving record"""
        return self.child_record if self.child_record is not None else self.record


@dataclass(frozen=True)
class RenderEvent:
    """A band instance paired with its resolved context"""

    band: Band
    context: RenderContext
    sequence: int
    reprint: bool = False

    @property
    def band_type(self) -> BandType:
        return self.band.band_type

    @property
    def level(self) -> Optional[int]:
        return self.band.level

    @property
    def variables(self) -> Mapping[str, Any]:
        return self.context.variables

    def __str__(self) -> str:
        marker = " (reprint)" if self.reprint else ""
        return f"#{self.sequence} {self.band.label} p{self.context.page_number}{marker}"


@dataclass(frozen=True)
class Diagnostic:
    """Recoverable problem surfaced without interrupting the event stream"""

    kind: DiagnosticKind
    message: str
    band: Optional[str] = None
    record_index: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "band": self.band,
            "record_index": self.record_index,
            "details": self.details,
        }


@dataclass(frozen=True)
class RunStats:
    """Counters describing a run so far"""

    records_processed: int
    events_emitted: int
    pages: int
    diagnostics: int
    dropped_diagnostics: int = 0
