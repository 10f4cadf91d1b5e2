"""
Tests for scoped accumulators
"""

import pytest

from band_engine import AggregationKind, VariableManager, VariableScope, VariableSpec
from band_engine.variables import resolve_variable_order
from core.exceptions import DefinitionError, VariableError

pytestmark = pytest.mark.unit


@pytest.fixture
def manager():
    return VariableManager()


class TestAggregations:
    """Test each aggregation kind"""

    def test_sum(self, manager):
        manager.declare("total", VariableScope.report(), AggregationKind.SUM)
        for value in (10, 5, None, 7):
            manager.accumulate("total", value)
        assert manager.current_value("total") == 22

    def test_count_counts_every_observation(self, manager):
        """Test COUNT includes observations whose value is None"""
        manager.declare("rows", VariableScope.report(), AggregationKind.COUNT)
        for value in (1, None, "x"):
            manager.accumulate("rows", value)
        assert manager.current_value("rows") == 3

    def test_min_max(self, manager):
        manager.declare("lo", VariableScope.report(), AggregationKind.MIN)
        manager.declare("hi", VariableScope.report(), AggregationKind.MAX)
        assert manager.current_value("lo") is None
        for value in (4, None, 2, 9):
            manager.accumulate("lo", value)
            manager.accumulate("hi", value)
        assert manager.current_value("lo") == 2
        assert manager.current_value("hi") == 9

    def test_avg(self, manager):
        manager.declare("mean", VariableScope.report(), AggregationKind.AVG)
        assert manager.current_value("mean") is None
        for value in (2, 4, None):
            manager.accumulate("mean", value)
        assert manager.current_value("mean") == 3

    def test_custom_reducer(self, manager):
        manager.declare(
            "names", VariableScope.report(), AggregationKind.CUSTOM, reducer=lambda acc, v: acc + [v], initial_value=[]
        )
        manager.accumulate("names", "a")
        manager.accumulate("names", "b")
        assert manager.current_value("names") == ["a", "b"]

    def test_initial_value_for_sum(self, manager):
        manager.declare("total", VariableScope.report(), AggregationKind.SUM, initial_value=100)
        manager.accumulate("total", 1)
        assert manager.current_value("total") == 101
        manager.reset("total")
        assert manager.current_value("total") == 100

    def test_incompatible_value(self, manager):
        """Test a value that cannot be folded raises VariableError"""
        manager.declare("total", VariableScope.report(), AggregationKind.SUM)
        with pytest.raises(VariableError):
            manager.accumulate("total", "abc")


class TestScopes:
    """Test declaration and scope resets"""

    def test_reset_scope_is_exact(self, manager):
        """Test resetting one group level leaves other scopes alone"""
        manager.declare("g0", VariableScope.group(0), AggregationKind.SUM)
        manager.declare("g1", VariableScope.group(1), AggregationKind.SUM)
        manager.declare("total", VariableScope.report(), AggregationKind.SUM)
        for name in ("g0", "g1", "total"):
            manager.accumulate(name, 5)

        assert manager.reset_scope(VariableScope.group(1)) == ["g1"]
        assert manager.snapshot() == {"g0": 5, "g1": 0, "total": 5}

    def test_reset_keeps_declaration(self, manager):
        manager.declare("page_total", VariableScope.page(), AggregationKind.SUM)
        manager.reset_scope(VariableScope.page())
        assert "page_total" in manager
        assert len(manager) == 1

    def test_duplicate_declaration(self, manager):
        manager.declare("total", VariableScope.report(), AggregationKind.SUM)
        with pytest.raises(VariableError):
            manager.declare("total", VariableScope.page(), AggregationKind.SUM)

    def test_custom_without_reducer(self, manager):
        with pytest.raises(VariableError):
            manager.declare("x", VariableScope.report(), AggregationKind.CUSTOM)

    def test_unknown_variable(self, manager):
        with pytest.raises(VariableError) as exc_info:
            manager.current_value("missing")
        assert exc_info.value.variable == "missing"

    def test_snapshot_is_read_only(self, manager):
        manager.declare("total", VariableScope.report(), AggregationKind.SUM)
        snapshot = manager.snapshot()
        manager.accumulate("total", 3)
        assert snapshot["total"] == 0
        with pytest.raises(TypeError):
            snapshot["total"] = 1

    def test_from_specs(self):
        manager = VariableManager.from_specs(
            [VariableSpec(name="t", aggregation=AggregationKind.COUNT), VariableSpec(name="u")]
        )
        assert manager.snapshot() == {"t": 0, "u": 0}


class TestDependencyOrder:
    """Test topological ordering of variables"""

    def test_declaration_order_kept(self):
        specs = [VariableSpec(name="a"), VariableSpec(name="b"), VariableSpec(name="c")]
        assert resolve_variable_order(specs) == ["a", "b", "c"]

    def test_dependencies_first(self):
        specs = [
            VariableSpec(name="ratio", depends_on=("total", "rows")),
            VariableSpec(name="total"),
            VariableSpec(name="rows"),
        ]
        assert resolve_variable_order(specs) == ["total", "rows", "ratio"]

    def test_unknown_dependency(self):
        with pytest.raises(DefinitionError) as exc_info:
            resolve_variable_order([VariableSpec(name="a", depends_on=("b",))])
        assert exc_info.value.rule == "variable_dependency"

    def test_self_dependency(self):
        with pytest.raises(DefinitionError) as exc_info:
            resolve_variable_order([VariableSpec(name="a", depends_on=("a",))])
        assert exc_info.value.rule == "variable_dependency_cycle"
