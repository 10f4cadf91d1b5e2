"""
Band Processor

Single-pass, group-aware traversal of a driving cursor that yields render
events in canonical band order:

    Title
    PageHeader, ColumnHeader
    per record: GroupFooter(deepest..L), GroupHeader(L..deepest), Detail bands
    GroupFooter(deepest..0), ColumnFooter, PageFooter, Summary

Page breaks requested by the pagination oracle (or forced by band flags)
insert ColumnFooter/PageFooter/PageHeader/ColumnHeader events plus reprinted
group headers without touching group-break logic.

Each run owns its RunState; a BandProcessor only holds the validated
definition and collaborators, so independent runs may execute concurrently.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Iterable, Iterator, List, Optional

from core.config import settings
from core.exceptions import BandwriterError, ChildSourceError, ConfigurationError, ExpressionError, GroupKeyError
from core.logging import get_logger
from core.metrics import get_metrics_collector

from .collaborators import (
    AlwaysFitsOracle,
    ChildRowSource,
    ExpressionEvaluator,
    FieldExpressionEvaluator,
    PageAwareOracle,
    PaginationOracle,
)
from .constants import BREAK_REASON_COLUMNS, BREAK_REASON_FORCED, BREAK_REASON_OVERFLOW
from .events import Diagnostic, RenderContext, RenderEvent, RunStats
from .group_break import GroupBreakDetector
from .models import Band, Expression, ReportDefinition, VariableScope, VariableSpec
from .types import AliasKind, BandType, DiagnosticKind, ScopeKind
from .validation import validate_definition
from .variables import VariableManager, resolve_variable_order

logger = get_logger(__name__, domain="band_engine")


@dataclass
class RunState:
    """Mutable state of one run; never shared between runs"""

    level_count: int
    variables: VariableManager
    page_number: int = 1
    pages: int = 0
    column_index: int = 0
    page_open: bool = False
    page_has_content: bool = False
    column_has_content: bool = False
    open_depth: int = 0
    open_keys: List[Any] = field(default_factory=list)
    open_records: List[Any] = field(default_factory=list)
    group_counts: List[int] = field(default_factory=list)
    header_shown: List[bool] = field(default_factory=list)
    current_record: Any = None
    current_index: Optional[int] = None
    records_processed: int = 0
    events_emitted: int = 0

    def __post_init__(self):
        # Fixed-capacity, level-indexed arrays sized from the definition
        self.open_keys = [None] * self.level_count
        self.open_records = [None] * self.level_count
        self.group_counts = [0] * self.level_count
        self.header_shown = [False] * self.level_count

    @property
    def open_prefix(self) -> Optional[tuple]:
        if not self.open_depth:
            return None
        return tuple(self.open_keys[: self.open_depth])


class BandRun:
    """
    Lazy, forward-only, single-pass sequence of RenderEvents

    Recoverable problems accumulate in ``diagnostics``. Iterating again after
    exhaustion yields nothing; call ``run`` again with a fresh cursor instead.
    """

    def __init__(self, processor: "BandProcessor", driving_cursor: Iterable[Any]):
        self.definition = processor.definition
        self.diagnostics: List[Diagnostic] = []
        self.dropped_diagnostics = 0
        self._pass = _BandPass(processor, self, driving_cursor)
        self._events = self._pass.events()

    def __iter__(self) -> Iterator[RenderEvent]:
        return self

    def __next__(self) -> RenderEvent:
        return next(self._events)

    def close(self) -> None:
        """Abandon the run; no further events are produced"""
        self._events.close()

    @property
    def stats(self) -> RunStats:
        state = self._pass.state
        return RunStats(
            records_processed=state.records_processed,
            events_emitted=state.events_emitted,
            pages=state.pages,
            diagnostics=len(self.diagnostics),
            dropped_diagnostics=self.dropped_diagnostics,
        )

    def record_diagnostic(self, diagnostic: Diagnostic) -> None:
        if len(self.diagnostics) < settings.max_diagnostics:
            self.diagnostics.append(diagnostic)
        else:
            self.dropped_diagnostics += 1


class BandProcessor:
    """Validated definition plus collaborators; stateless between runs"""

    def __init__(
        self,
        definition: ReportDefinition,
        child_row_source: Optional[ChildRowSource] = None,
        expression_evaluator: Optional[ExpressionEvaluator] = None,
        pagination_oracle: Optional[PaginationOracle] = None,
    ):
        validate_definition(definition)

        self.definition = definition
        self.child_row_source = child_row_source
        self.evaluator = expression_evaluator or FieldExpressionEvaluator()
        self.oracle = pagination_oracle or AlwaysFitsOracle()

        if not hasattr(self.evaluator, "evaluate"):
            raise ConfigurationError("Expression evaluator must provide evaluate()", setting="expression_evaluator")
        if not hasattr(self.oracle, "fits"):
            raise ConfigurationError("Pagination oracle must provide fits()", setting="pagination_oracle")

        details = definition.detail_bands
        if child_row_source is None and any(b.alias_kind is AliasKind.RELATION for b in details):
            raise ConfigurationError(
                "Detail bands iterate relations but no child row source was supplied", setting="child_row_source"
            )

        self.detector = GroupBreakDetector(definition.groups)
        self.detail_bands = details
        self.page_header = definition.band(BandType.PAGE_HEADER) or Band.page_header()
        self.page_footer = definition.band(BandType.PAGE_FOOTER) or Band.page_footer()
        self.column_header = definition.band(BandType.COLUMN_HEADER) or Band.column_header()
        self.column_footer = definition.band(BandType.COLUMN_FOOTER) or Band.column_footer()
        self.update_order = self._update_order()
        self.relation_variables = self._relation_variables()

    def run(self, driving_cursor: Iterable[Any]) -> BandRun:
        return BandRun(self, driving_cursor)

    def _update_order(self) -> List[VariableSpec]:
        """
        Per-record update order: Detail, then Group innermost to outermost,
        then Page, then Report; dependency order within each tier.
        Detail variables of relation bands are updated per child row instead.
        """
        by_name = {spec.name: spec for spec in self.definition.variables}
        ordered = [by_name[name] for name in resolve_variable_order(self.definition.variables)]
        relation_indexes = {i for i, band in enumerate(self.detail_bands) if band.alias_kind is AliasKind.RELATION}

        def tier(spec: VariableSpec):
            scope = spec.scope
            if scope.kind is ScopeKind.DETAIL:
                return (0, scope.band_index)
            if scope.kind is ScopeKind.GROUP:
                return (1, -scope.level)
            if scope.kind is ScopeKind.PAGE:
                return (2, 0)
            return (3, 0)

        eligible = [
            spec
            for spec in ordered
            if not (spec.scope.kind is ScopeKind.DETAIL and spec.scope.band_index in relation_indexes)
        ]
        # sorted() is stable, so dependency order survives inside a tier
        return sorted(eligible, key=tier)

    def _relation_variables(self) -> Dict[int, List[VariableSpec]]:
        by_name = {spec.name: spec for spec in self.definition.variables}
        result: Dict[int, List[VariableSpec]] = {}
        for name in resolve_variable_order(self.definition.variables):
            spec = by_name[name]
            if spec.scope.kind is not ScopeKind.DETAIL:
                continue
            band = self.detail_bands[spec.scope.band_index]
            if band.alias_kind is AliasKind.RELATION:
                result.setdefault(spec.scope.band_index, []).append(spec)
        return result


def run(
    definition: ReportDefinition,
    driving_cursor: Iterable[Any],
    child_row_source: Optional[ChildRowSource] = None,
    expression_evaluator: Optional[ExpressionEvaluator] = None,
    pagination_oracle: Optional[PaginationOracle] = None,
) -> BandRun:
    """
    Process a driving cursor against a report definition

    The definition is validated before this returns, so DefinitionError
    surfaces here rather than on the first ``next()``.

    Args:
        definition: Report band tree
        driving_cursor: Records pre-sorted by group key, outermost level first
        child_row_source: Supplies rows for relation-bound detail bands
        expression_evaluator: Evaluates hooks, group keys and variable values
        pagination_oracle: Decides whether a band fits on the current page

    Returns:
        BandRun yielding RenderEvents on demand
    """
    processor = BandProcessor(
        definition,
        child_row_source=child_row_source,
        expression_evaluator=expression_evaluator,
        pagination_oracle=pagination_oracle,
    )
    return processor.run(driving_cursor)


class _BandPass:
    """The traversal itself; one instance per BandRun"""

    def __init__(self, processor: BandProcessor, band_run: BandRun, driving_cursor: Iterable[Any]):
        self.processor = processor
        self.definition = processor.definition
        self.band_run = band_run
        self.cursor = driving_cursor
        self.metrics = get_metrics_collector()
        self.log = logger.with_context(report=self.definition.name)
        self.state = RunState(
            level_count=processor.detector.level_count,
            variables=VariableManager.from_specs(self.definition.variables),
        )

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def events(self) -> Iterator[RenderEvent]:
        started = time.monotonic()
        status = "completed"
        self.log.info("Band run started", extra={"levels": self.state.level_count})
        try:
            yield from self._traverse()
        except GeneratorExit:
            status = "abandoned"
            raise
        except Exception as e:
            status = "failed"
            error_code = e.error_code if isinstance(e, BandwriterError) else type(e).__name__
            self.metrics.track_error(error_code)
            self.log.error(
                f"Band run failed: {e}",
                extra={"error_code": error_code, "records": self.state.records_processed},
            )
            raise
        finally:
            self.metrics.track_run(status, time.monotonic() - started, self.state.records_processed)
            self.log.info(
                "Band run finished",
                extra={
                    "status": status,
                    "records": self.state.records_processed,
                    "events": self.state.events_emitted,
                    "pages": self.state.pages,
                    "diagnostics": len(self.band_run.diagnostics),
                },
            )

    def _traverse(self) -> Iterator[RenderEvent]:
        state = self.state
        definition = self.definition

        title = definition.band(BandType.TITLE)
        if title is not None:
            yield from self._fire_visible(title)

        yield from self._open_page()

        previous_record = None
        for record in self.cursor:
            state.current_record = record
            state.current_index = state.records_processed

            if state.level_count:
                key = self.processor.detector.derive_key(self._key_evaluator(record), state.current_index)
                level = self._detect(key)
                if level is not None:
                    yield from self._close_groups(level, previous_record)
                    yield from self._open_groups(level, key, record)
                for lvl in range(state.open_depth):
                    state.group_counts[lvl] += 1

            for band_index, band in enumerate(self.processor.detail_bands):
                yield from self._fire_detail(band_index, band, record)

            self._accumulate(record)
            state.records_processed += 1
            previous_record = record

        if state.open_depth:
            yield from self._close_groups(0, previous_record)

        yield from self._close_page()

        summary = definition.band(BandType.SUMMARY)
        if summary is not None:
            yield from self._fire_visible(summary)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _key_evaluator(self, record: Any):
        context = self._context(record)
        return lambda expression: self.processor.evaluator.evaluate(expression.ref, context)

    def _detect(self, key: tuple) -> Optional[int]:
        try:
            return self.processor.detector.detect(self.state.open_prefix, key)
        except GroupKeyError as e:
            e.record_index = self.state.current_index
            e.details["record_index"] = self.state.current_index
            raise

    def _close_groups(self, level: int, record: Any) -> Iterator[RenderEvent]:
        """Footers from the deepest open level back up to ``level``"""
        state = self.state
        for lvl in range(state.open_depth - 1, level - 1, -1):
            footer = self.definition.group_footer(lvl)
            if footer is not None:
                yield from self._place(footer, record)
            state.variables.reset_scope(VariableScope.group(lvl))
            state.open_depth = lvl

    def _open_groups(self, level: int, key: tuple, record: Any) -> Iterator[RenderEvent]:
        """Headers from ``level`` down to the deepest declared level"""
        state = self.state
        for lvl in range(level, state.level_count):
            state.open_keys[lvl] = key[lvl]
            state.open_records[lvl] = record
            state.group_counts[lvl] = 0
            state.variables.reset_scope(VariableScope.group(lvl))
            state.header_shown[lvl] = False
            header = self.definition.group_header(lvl)
            if header is not None:
                state.header_shown[lvl] = yield from self._place(header, record, group_depth=lvl + 1)
            state.open_depth = lvl + 1

    def _reprint_group_headers(self) -> Iterator[RenderEvent]:
        """Repeat open headers flagged for reprint; hidden headers stay hidden"""
        for lvl in range(self.state.open_depth):
            header = self.definition.group_header(lvl)
            if header is not None and header.reprint_on_page_break and self.state.header_shown[lvl]:
                context = self._context(self.state.open_records[lvl], group_depth=lvl + 1)
                yield self._emit(header, context, reprint=True)

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    def _fire_detail(self, band_index: int, band: Band, record: Any) -> Iterator[RenderEvent]:
        state = self.state
        state.variables.reset_scope(VariableScope.detail(band_index))

        if band.alias_kind is not AliasKind.RELATION:
            yield from self._place(band, record)
            return

        specs = self.processor.relation_variables.get(band_index, [])
        for child in self._child_rows(band, record):
            yield from self._place(band, record, child_record=child)
            for spec in specs:
                self._update_variable(spec, self._context(record, child_record=child))

    def _child_rows(self, band: Band, record: Any) -> List[Any]:
        try:
            return list(self.processor.child_row_source.rows(record, band.target_alias))
        except Exception as e:
            error = ChildSourceError(
                band.target_alias, str(e), band=band.label, record_index=self.state.current_index
            )
            if band.child_rows_required:
                raise error from e
            self._diagnose(DiagnosticKind.CHILD_SOURCE, error, band)
            return []

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def _accumulate(self, record: Any) -> None:
        for spec in self.processor.update_order:
            self._update_variable(spec, self._context(record))

    def _update_variable(self, spec: VariableSpec, context: RenderContext) -> None:
        value = self._evaluate(spec.expression, context, purpose=f"variable '{spec.name}'")
        self.state.variables.accumulate(spec.name, value)

    # ------------------------------------------------------------------
    # Pages and columns
    # ------------------------------------------------------------------

    def _open_page(self) -> Iterator[RenderEvent]:
        state = self.state
        state.pages += 1
        state.column_index = 0
        state.page_open = True
        state.page_has_content = False
        state.column_has_content = False
        if isinstance(self.processor.oracle, PageAwareOracle):
            self.processor.oracle.page_started()
        yield from self._fire_visible(self.processor.page_header, state.current_record)
        yield from self._fire_visible(self.processor.column_header, state.current_record)

    def _close_page(self) -> Iterator[RenderEvent]:
        state = self.state
        yield from self._fire_visible(self.processor.column_footer, state.current_record)
        yield from self._fire_visible(self.processor.page_footer, state.current_record)
        state.variables.reset_scope(VariableScope.page())
        state.page_open = False

    def _page_break(self, reason: str, band: Band) -> Iterator[RenderEvent]:
        state = self.state
        self.log.debug(
            "Page break",
            extra={"reason": reason, "band_name": band.label, "page": state.page_number},
        )
        self.metrics.track_page_break(reason)
        yield from self._close_page()
        state.page_number = 1 if band.reset_page_numbering else state.page_number + 1
        yield from self._open_page()
        yield from self._reprint_group_headers()

    def _column_break(self, band: Band) -> Iterator[RenderEvent]:
        state = self.state
        if state.column_index + 1 >= self.definition.page.columns:
            yield from self._page_break(BREAK_REASON_COLUMNS, band)
            return
        yield from self._fire_visible(self.processor.column_footer, state.current_record)
        state.column_index += 1
        state.column_has_content = False
        yield from self._fire_visible(self.processor.column_header, state.current_record)

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _place(
        self,
        band: Band,
        record: Any,
        child_record: Any = None,
        group_depth: Optional[int] = None,
    ) -> Generator[RenderEvent, None, bool]:
        """
        Emit a content band, consulting the pagination oracle first

        Returns True when the band was emitted, False when it was hidden.
        """
        state = self.state
        oracle = self.processor.oracle
        context = self._context(record, child_record, group_depth)
        if not self._is_visible(band, context):
            return False

        if band.start_new_page and state.page_has_content:
            yield from self._page_break(BREAK_REASON_FORCED, band)
            # A fresh page always takes the band, but the oracle still books its space
            oracle.fits(band, band.min_distance_from_bottom)
        else:
            if band.start_new_column and state.column_has_content:
                yield from self._column_break(band)
            if not oracle.fits(band, band.min_distance_from_bottom):
                yield from self._page_break(BREAK_REASON_OVERFLOW, band)

        # Rebuild: a page break changes page number and page variables
        context = self._context(record, child_record, group_depth)
        yield from self._fire(band, context)
        state.page_has_content = True
        state.column_has_content = True
        return True

    def _fire_visible(self, band: Band, record: Any = None) -> Iterator[RenderEvent]:
        """Emit a band that is never subject to pagination"""
        context = self._context(record)
        if self._is_visible(band, context):
            yield from self._fire(band, context)

    def _fire(self, band: Band, context: RenderContext) -> Iterator[RenderEvent]:
        self._evaluate(band.on_entry, context, band=band, purpose="on_entry")
        yield self._emit(band, context)
        self._evaluate(band.on_exit, context, band=band, purpose="on_exit")

    def _emit(self, band: Band, context: RenderContext, reprint: bool = False) -> RenderEvent:
        state = self.state
        event = RenderEvent(band=band, context=context, sequence=state.events_emitted, reprint=reprint)
        state.events_emitted += 1
        self.metrics.track_event(band.band_type.value)
        return event

    def _is_visible(self, band: Band, context: RenderContext) -> bool:
        if band.visible is None:
            return True
        return bool(self._evaluate(band.visible, context, band=band, purpose="visible"))

    def _context(self, record: Any, child_record: Any = None, group_depth: Optional[int] = None) -> RenderContext:
        state = self.state
        depth = state.open_depth if group_depth is None else group_depth
        return RenderContext(
            record=record,
            child_record=child_record,
            variables=state.variables.snapshot(),
            page_number=state.page_number,
            column_index=state.column_index,
            group_key=tuple(state.open_keys[:depth]),
            group_counts=tuple(state.group_counts[:depth]),
            record_index=state.current_index,
        )

    # ------------------------------------------------------------------
    # Expressions and diagnostics
    # ------------------------------------------------------------------

    def _evaluate(
        self,
        expression: Optional[Expression],
        context: RenderContext,
        band: Optional[Band] = None,
        purpose: str = "expression",
    ) -> Any:
        if expression is None:
            return None
        try:
            return self.processor.evaluator.evaluate(expression.ref, context)
        except BandwriterError:
            raise
        except Exception as e:
            error = ExpressionError(
                f"Evaluating {purpose} failed: {e}",
                expression=expression.ref,
                band=band.label if band is not None else None,
                record_index=self.state.current_index,
            )
            if not expression.recoverable:
                raise error from e
            self._diagnose(DiagnosticKind.EXPRESSION, error, band, substituted=repr(expression.default))
            return expression.default

    def _diagnose(self, kind: DiagnosticKind, error: BandwriterError, band: Optional[Band], **details) -> None:
        diagnostic = Diagnostic(
            kind=kind,
            message=error.message,
            band=band.label if band is not None else None,
            record_index=self.state.current_index,
            details={**error.details, **details},
        )
        self.band_run.record_diagnostic(diagnostic)
        self.metrics.track_diagnostic(kind.value)
        self.log.warning(
            f"Recoverable {kind.value} problem: {error.message}",
            extra={
                "error_code": error.error_code,
                "record_index": self.state.current_index,
                "band_name": band.label if band is not None else None,
            },
        )
