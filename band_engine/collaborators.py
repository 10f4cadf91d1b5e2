"""
Collaborator contracts for the band processor

The engine only talks to the outside world through these protocols. The
concrete classes here are small reference implementations: field-path
expressions, in-memory child rows and simple pagination oracles. Hosts
plug in their own query layer, expression language and layout engine.
"""

from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence, runtime_checkable

from .models import Band

VARIABLE_PREFIX = "$"


@runtime_checkable
class ExpressionEvaluator(Protocol):
    def evaluate(self, expression_ref: Any, context: Any) -> Any:
        ...


@runtime_checkable
class ChildRowSource(Protocol):
    def rows(self, parent_record: Any, alias_name: str) -> Iterable[Any]:
        ...


@runtime_checkable
class PaginationOracle(Protocol):
    def fits(self, band: Band, remaining_space_hint: Optional[float]) -> bool:
        ...


@runtime_checkable
class PageAwareOracle(PaginationOracle, Protocol):
    """
    Pagination oracle that tracks page boundaries

    The engine calls ``page_started()`` each time it opens a page, after the
    previous PageFooter and before the new PageHeader.
    """

    def page_started(self) -> None:
        ...


def resolve_path(obj: Any, path: str) -> Any:
    """Follow a dotted path through mappings and attributes; missing steps give None"""
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


class FieldExpressionEvaluator:
    """
    Evaluates field-path references

    * callables are invoked with the context
    * ``"$name"`` reads a variable's current value
    * ``"record.x"`` reads from the driving record explicitly
    * any other string is a dotted path into the current row
      (the child row during relation iteration, otherwise the driving record)
    """

    def evaluate(self, expression_ref: Any, context: Any) -> Any:
        if callable(expression_ref):
            return expression_ref(context)
        if not isinstance(expression_ref, str):
            raise TypeError(f"Unsupported expression reference: {expression_ref!r}")

        if expression_ref.startswith(VARIABLE_PREFIX):
            name = expression_ref[len(VARIABLE_PREFIX):]
            if name not in context.variables:
                raise KeyError(f"unknown variable '{name}'")
            return context.variables[name]
        if expression_ref.startswith("record."):
            return resolve_path(context.record, expression_ref[len("record."):])
        return resolve_path(context.current_row, expression_ref)


class MappingChildRowSource:
    """
    In-memory child rows keyed by relation alias and parent key

    Example:
        MappingChildRowSource({"lines": {1: [line_a, line_b]}}, parent_key="id")
    """

    def __init__(self, relations: Mapping[str, Mapping[Any, Sequence[Any]]], parent_key: str = "id"):
        self.relations = relations
        self.parent_key = parent_key

    def rows(self, parent_record: Any, alias_name: str) -> Iterable[Any]:
        if alias_name not in self.relations:
            raise KeyError(f"unknown relation '{alias_name}'")
        key = resolve_path(parent_record, self.parent_key)
        return list(self.relations[alias_name].get(key, ()))


class CallableChildRowSource:
    """Adapts a plain ``rows(parent, alias)`` function"""

    def __init__(self, func: Callable[[Any, str], Iterable[Any]]):
        self.func = func

    def rows(self, parent_record: Any, alias_name: str) -> Iterable[Any]:
        return self.func(parent_record, alias_name)


class AlwaysFitsOracle:
    """Never asks for a page break"""

    def fits(self, band: Band, remaining_space_hint: Optional[float] = None) -> bool:
        return True


class HeightBudgetOracle:
    """
    Fixed-height page budget

    Each band consumes ``band.height`` (or ``default_band_height``); a band
    that would overrun ``page_height - reserved`` does not fit unless the
    page is still empty. It is a PageAwareOracle: ``page_started()`` runs
    whenever the engine opens a page and carries the refused band's height
    onto the new page.
    """

    def __init__(self, page_height: float, default_band_height: float = 1.0, reserved: float = 0.0):
        if page_height <= reserved:
            raise ValueError("page_height must exceed the reserved space")
        self.capacity = page_height - reserved
        self.default_band_height = default_band_height
        self.used = 0.0
        self._carry = 0.0

    def _height(self, band: Band) -> float:
        return band.height if band.height is not None else self.default_band_height

    def fits(self, band: Band, remaining_space_hint: Optional[float] = None) -> bool:
        height = self._height(band)
        needed = height + (remaining_space_hint or 0.0)
        if self.used and self.used + needed > self.capacity:
            self._carry = height
            return False
        self.used += height
        return True

    def page_started(self) -> None:
        self.used = self._carry
        self._carry = 0.0
