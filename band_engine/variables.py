"""
Variable/Accumulator Manager

Tracks scoped accumulators for one run. Each declaration keeps its
aggregation state; resetting a scope puts every accumulator declared with
that scope back to its identity element without dropping the declaration.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from core.exceptions import DefinitionError, VariableError
from core.logging import get_logger

from .models import VariableScope, VariableSpec
from .types import AggregationKind

logger = get_logger(__name__)


@dataclass
class Accumulator:
    """Live state of one declared variable"""

    name: str
    scope: VariableScope
    aggregation: AggregationKind
    reducer: Optional[Callable[[Any, Any], Any]] = None
    initial_value: Any = None
    state: Any = field(default=None, init=False)
    observations: int = field(default=0, init=False)

    def __post_init__(self):
        self.reset()

    def identity(self) -> Any:
        if self.aggregation in (AggregationKind.SUM, AggregationKind.COUNT):
            return 0 if self.initial_value is None else self.initial_value
        if self.aggregation is AggregationKind.AVG:
            return (0, 0)
        return self.initial_value

    def reset(self) -> None:
        self.state = self.identity()
        self.observations = 0

    def add(self, value: Any) -> None:
        kind = self.aggregation
        self.observations += 1

        if kind is AggregationKind.COUNT:
            self.state += 1
        elif kind is AggregationKind.CUSTOM:
            self.state = self.reducer(self.state, value)
        elif value is None:
            # SUM/MIN/MAX/AVG ignore missing observations
            return
        elif kind is AggregationKind.SUM:
            self.state = self.state + value
        elif kind is AggregationKind.MIN:
            self.state = value if self.state is None else min(self.state, value)
        elif kind is AggregationKind.MAX:
            self.state = value if self.state is None else max(self.state, value)
        elif kind is AggregationKind.AVG:
            total, count = self.state
            self.state = (total + value, count + 1)

    @property
    def value(self) -> Any:
        if self.aggregation is AggregationKind.AVG:
            total, count = self.state
            return total / count if count else None
        return self.state


class VariableManager:
    """Scoped accumulator table owned by a single run"""

    def __init__(self):
        self._accumulators: Dict[str, Accumulator] = {}

    @classmethod
    def from_specs(cls, specs: Iterable[VariableSpec]) -> "VariableManager":
        manager = cls()
        for spec in specs:
            manager.declare(
                spec.name,
                spec.scope,
                spec.aggregation,
                reducer=spec.reducer,
                initial_value=spec.initial_value,
            )
        return manager

    def declare(
        self,
        name: str,
        scope: VariableScope,
        aggregation: AggregationKind,
        reducer: Optional[Callable[[Any, Any], Any]] = None,
        initial_value: Any = None,
    ) -> None:
        """Declare a variable; names are unique within a run"""
        if name in self._accumulators:
            raise VariableError(f"Variable '{name}' is already declared", variable=name)
        if aggregation is AggregationKind.CUSTOM and reducer is None:
            raise VariableError(f"Custom variable '{name}' needs a reducer", variable=name)

        self._accumulators[name] = Accumulator(
            name=name,
            scope=scope,
            aggregation=aggregation,
            reducer=reducer,
            initial_value=initial_value,
        )

    def accumulate(self, name: str, value: Any) -> None:
        accumulator = self._get(name)
        try:
            accumulator.add(value)
        except TypeError as e:
            raise VariableError(
                f"Cannot fold {value!r} into {accumulator.aggregation.value} variable '{name}': {e}",
                variable=name,
            ) from e

    def current_value(self, name: str) -> Any:
        return self._get(name).value

    def reset(self, name: str) -> None:
        self._get(name).reset()

    def reset_scope(self, scope: VariableScope) -> List[str]:
        """Reset every variable declared with exactly this scope

        Returns:
            Names of the variables that were reset
        """
        reset = []
        for accumulator in self._accumulators.values():
            if accumulator.scope == scope:
                accumulator.reset()
                reset.append(accumulator.name)
        if reset:
            logger.debug("Variables reset", extra={"scope": str(scope), "variables": reset})
        return reset

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only copy of every variable's current value"""
        return MappingProxyType({name: a.value for name, a in self._accumulators.items()})

    def __contains__(self, name: str) -> bool:
        return name in self._accumulators

    def __len__(self) -> int:
        return len(self._accumulators)

    def _get(self, name: str) -> Accumulator:
        try:
            return self._accumulators[name]
        except KeyError:
            raise VariableError(f"Variable '{name}' is not declared", variable=name) from None


def resolve_variable_order(specs: Iterable[VariableSpec]) -> List[str]:
    """
    Order variable names so every variable follows the ones it depends on

    Ties keep declaration order. Raises DefinitionError for unknown
    dependencies or dependency cycles.
    """
    specs = list(specs)
    declared = [spec.name for spec in specs]
    known = set(declared)
    pending = {spec.name: set(spec.depends_on) for spec in specs}

    for name, deps in pending.items():
        unknown = deps - known
        if unknown:
            raise DefinitionError(
                f"Variable '{name}' depends on undeclared variables: {sorted(unknown)}",
                rule="variable_dependency",
                variable=name,
            )
        if name in deps:
            raise DefinitionError(
                f"Variable '{name}' depends on itself", rule="variable_dependency_cycle", variable=name
            )

    order: List[str] = []
    placed = set()
    while len(order) < len(declared):
        ready = [name for name in declared if name not in placed and pending[name] <= placed]
        if not ready:
            remaining = [name for name in declared if name not in placed]
            raise DefinitionError(
                f"Circular variable dependencies among: {remaining}",
                rule="variable_dependency_cycle",
                variables=remaining,
            )
        # One at a time keeps the result closest to declaration order
        order.append(ready[0])
        placed.add(ready[0])

    return order
