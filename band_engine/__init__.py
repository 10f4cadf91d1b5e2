"""
Band Engine

Banded report traversal: turns a band tree and a sorted driving cursor
into an ordered stream of render events with group breaks, detail
iteration, scoped accumulators and pagination handshakes.
"""

from .collaborators import (
    AlwaysFitsOracle,
    CallableChildRowSource,
    ChildRowSource,
    ExpressionEvaluator,
    FieldExpressionEvaluator,
    HeightBudgetOracle,
    MappingChildRowSource,
    PageAwareOracle,
    PaginationOracle,
)
from .events import Diagnostic, RenderContext, RenderEvent, RunStats
from .group_break import GroupBreakDetector, find_break_level
from .models import Band, Expression, GroupLevel, PageGeometry, ReportDefinition, VariableScope, VariableSpec
from .processor import BandProcessor, BandRun, run
from .types import AggregationKind, AliasKind, BandType, DiagnosticKind, ScopeKind
from .validation import validate_definition
from .variables import VariableManager

__version__ = "0.1.0"

__all__ = [
    # Engine
    "run",
    "BandProcessor",
    "BandRun",
    # Models
    "Band",
    "Expression",
    "GroupLevel",
    "PageGeometry",
    "ReportDefinition",
    "VariableScope",
    "VariableSpec",
    "validate_definition",
    # Types
    "AggregationKind",
    "AliasKind",
    "BandType",
    "DiagnosticKind",
    "ScopeKind",
    # Events
    "Diagnostic",
    "RenderContext",
    "RenderEvent",
    "RunStats",
    # Components
    "GroupBreakDetector",
    "find_break_level",
    "VariableManager",
    # Collaborators
    "AlwaysFitsOracle",
    "CallableChildRowSource",
    "ChildRowSource",
    "ExpressionEvaluator",
    "FieldExpressionEvaluator",
    "HeightBudgetOracle",
    "MappingChildRowSource",
    "PageAwareOracle",
    "PaginationOracle",
]
