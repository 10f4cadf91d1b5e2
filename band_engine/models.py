"""Band definition model

Pydantic models describing a report's band tree: bands, group levels,
variables, relation metadata and page geometry. Instances are frozen once
built; invariant checks that need the whole tree live in
:mod:`band_engine.validation`.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DRIVING_ALIAS
from .types import AggregationKind, AliasKind, BandType, ScopeKind

_FROZEN = ConfigDict(frozen=True, arbitrary_types_allowed=True)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


class Expression(BaseModel):
    """Opaque reference handed to the expression evaluator."""

    model_config = _FROZEN

    ref: Any = Field(..., description="Reference understood by the evaluator (field path, callable, ...)")
    recoverable: bool = Field(default=False, description="Substitute `default` instead of failing the run")
    default: Any = None


def _as_expression(value: Any) -> Any:
    """Wrap bare references so callers may write ``on_entry="x"``."""
    if value is None or isinstance(value, Expression):
        return value
    if isinstance(value, dict) and "ref" in value:
        return value
    return {"ref": value}


# ---------------------------------------------------------------------------
# Bands
# ---------------------------------------------------------------------------


class Band(BaseModel):
    """One typed section of the report layout."""

    model_config = _FROZEN

    band_type: BandType
    name: Optional[str] = None
    level: Optional[int] = Field(default=None, ge=0, description="Group nesting level (group bands)")
    index: Optional[int] = Field(default=None, ge=0, description="Declared position among detail bands")
    target_alias: Optional[str] = Field(default=None, description="Relation iterated by a detail band")
    elements: Tuple[Any, ...] = ()

    on_entry: Optional[Expression] = None
    on_exit: Optional[Expression] = None
    visible: Optional[Expression] = None

    height: Optional[float] = Field(default=None, ge=0)
    start_new_page: bool = False
    start_new_column: bool = False
    reprint_on_page_break: bool = False
    min_distance_from_bottom: Optional[float] = Field(default=None, ge=0)
    reset_page_numbering: bool = False
    child_rows_required: bool = False

    @field_validator("on_entry", "on_exit", "visible", mode="before")
    @classmethod
    def wrap_expression(cls, v):
        return _as_expression(v)

    @field_validator("target_alias")
    @classmethod
    def blank_alias_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @property
    def alias_kind(self) -> AliasKind:
        if self.target_alias is None:
            return AliasKind.NONE
        if self.target_alias == DRIVING_ALIAS:
            return AliasKind.DRIVING
        return AliasKind.RELATION

    @property
    def label(self) -> str:
        """Readable identifier for logs and diagnostics"""
        if self.name:
            return self.name
        if self.band_type.is_group:
            return f"{self.band_type.value}[{self.level}]"
        if self.band_type is BandType.DETAIL and self.index is not None:
            return f"detail[{self.index}]"
        return self.band_type.value

    # Convenience constructors -------------------------------------------------

    @classmethod
    def title(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.TITLE, **kwargs)

    @classmethod
    def summary(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.SUMMARY, **kwargs)

    @classmethod
    def page_header(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.PAGE_HEADER, **kwargs)

    @classmethod
    def page_footer(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.PAGE_FOOTER, **kwargs)

    @classmethod
    def column_header(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.COLUMN_HEADER, **kwargs)

    @classmethod
    def column_footer(cls, **kwargs) -> "Band":
        return cls(band_type=BandType.COLUMN_FOOTER, **kwargs)

    @classmethod
    def group_header(cls, level: int, **kwargs) -> "Band":
        return cls(band_type=BandType.GROUP_HEADER, level=level, **kwargs)

    @classmethod
    def group_footer(cls, level: int, **kwargs) -> "Band":
        return cls(band_type=BandType.GROUP_FOOTER, level=level, **kwargs)

    @classmethod
    def detail(cls, target_alias: Optional[str] = None, **kwargs) -> "Band":
        return cls(band_type=BandType.DETAIL, target_alias=target_alias, **kwargs)


# ---------------------------------------------------------------------------
# Groups and variables
# ---------------------------------------------------------------------------


class GroupLevel(BaseModel):
    """Key derivation for one nesting level (0 = outermost)."""

    model_config = _FROZEN

    level: int = Field(..., ge=0)
    key: Expression
    name: Optional[str] = None
    comparer: Optional[Callable[[Any, Any], bool]] = Field(
        default=None, description="Returns True when two keys belong to the same group"
    )

    @field_validator("key", mode="before")
    @classmethod
    def wrap_key(cls, v):
        return _as_expression(v)


class VariableScope(BaseModel):
    """Boundary at which a variable resets."""

    model_config = ConfigDict(frozen=True)

    kind: ScopeKind
    level: Optional[int] = Field(default=None, ge=0)
    band_index: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def detail(cls, band_index: int) -> "VariableScope":
        return cls(kind=ScopeKind.DETAIL, band_index=band_index)

    @classmethod
    def group(cls, level: int) -> "VariableScope":
        return cls(kind=ScopeKind.GROUP, level=level)

    @classmethod
    def page(cls) -> "VariableScope":
        return cls(kind=ScopeKind.PAGE)

    @classmethod
    def report(cls) -> "VariableScope":
        return cls(kind=ScopeKind.REPORT)

    def __str__(self) -> str:
        if self.kind is ScopeKind.GROUP:
            return f"group({self.level})"
        if self.kind is ScopeKind.DETAIL:
            return f"detail({self.band_index})"
        return self.kind.value


class VariableSpec(BaseModel):
    """Declaration of a scoped accumulator."""

    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    scope: VariableScope = Field(default_factory=VariableScope.report)
    aggregation: AggregationKind = AggregationKind.SUM
    expression: Optional[Expression] = Field(default=None, description="Produces the observed value")
    reducer: Optional[Callable[[Any, Any], Any]] = Field(default=None, description="Fold function for CUSTOM")
    initial_value: Any = None
    depends_on: Tuple[str, ...] = ()

    @field_validator("expression", mode="before")
    @classmethod
    def wrap_expression(cls, v):
        return _as_expression(v)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


class PageGeometry(BaseModel):
    """Page metadata; only the column count matters to the engine itself."""

    model_config = ConfigDict(frozen=True)

    height: Optional[float] = Field(default=None, gt=0)
    width: Optional[float] = Field(default=None, gt=0)
    columns: int = Field(default=1, ge=1)


class ReportDefinition(BaseModel):
    """Immutable band tree plus report-level metadata."""

    model_config = _FROZEN

    name: str
    locale: str = "en"
    page: PageGeometry = Field(default_factory=PageGeometry)
    bands: Tuple[Band, ...] = ()
    groups: Tuple[GroupLevel, ...] = ()
    variables: Tuple[VariableSpec, ...] = ()
    relations: Dict[str, Optional[str]] = Field(
        default_factory=dict, description="Relation alias -> parent alias (None or 'driving' for the driving record)"
    )

    def bands_of(self, band_type: BandType) -> List[Band]:
        return [band for band in self.bands if band.band_type is band_type]

    def band(self, band_type: BandType) -> Optional[Band]:
        """First declared band of a type, or None"""
        for band in self.bands:
            if band.band_type is band_type:
                return band
        return None

    def group_header(self, level: int) -> Optional[Band]:
        return self._group_band(BandType.GROUP_HEADER, level)

    def group_footer(self, level: int) -> Optional[Band]:
        return self._group_band(BandType.GROUP_FOOTER, level)

    def _group_band(self, band_type: BandType, level: int) -> Optional[Band]:
        for band in self.bands:
            if band.band_type is band_type and band.level == level:
                return band
        return None

    @property
    def group_levels(self) -> List[GroupLevel]:
        """Group levels ordered outermost first"""
        return sorted(self.groups, key=lambda group: group.level)

    @property
    def level_count(self) -> int:
        return len(self.groups)

    @property
    def detail_bands(self) -> List[Band]:
        """Detail bands in declared order"""
        return self.bands_of(BandType.DETAIL)
