"""
Tests for group break detection
"""

from decimal import Decimal

import pytest

from band_engine import GroupBreakDetector, GroupLevel, find_break_level
from band_engine.group_break import keys_equal
from core.exceptions import GroupKeyError

pytestmark = pytest.mark.unit


class TestFindBreakLevel:
    """Test shallowest-changed-level detection"""

    def test_first_record_opens_everything(self):
        assert find_break_level(None, ("E", "Boston"), 2) == 0

    def test_no_groups(self):
        assert find_break_level(None, (), 0) is None

    def test_same_keys(self):
        assert find_break_level(("E", "Boston"), ("E", "Boston"), 2) is None

    def test_inner_change(self):
        assert find_break_level(("E", "Boston"), ("E", "NYC"), 2) == 1

    def test_outer_change_wins(self):
        """Test the shallowest changed level is reported even when deeper keys match"""
        assert find_break_level(("E", "LA"), ("W", "LA"), 2) == 0

    def test_numeric_types_compare_by_value(self):
        assert find_break_level((1,), (Decimal("1"),), 1) is None
        assert find_break_level((1,), (1.0,), 1) is None

    def test_none_keys(self):
        assert find_break_level((None,), (None,), 1) is None
        assert find_break_level((None,), ("A",), 1) == 0

    def test_incomparable_types_strict(self):
        """Test unrelated key types raise GroupKeyError when strict"""
        with pytest.raises(GroupKeyError) as exc_info:
            find_break_level(("1",), (1,), 1, strict=True)
        assert exc_info.value.level == 0

    def test_incomparable_types_lenient(self):
        assert find_break_level(("1",), (1,), 1, strict=False) == 0

    def test_custom_comparer(self):
        """Test a per-level comparer overrides equality"""
        same_initial = lambda a, b: a[0] == b[0]  # noqa: E731
        assert find_break_level(("Boston",), ("Buffalo",), 1, comparers=[same_initial]) is None
        assert find_break_level(("Boston",), ("NYC",), 1, comparers=[same_initial]) == 0

    def test_comparer_failure(self):
        def broken(a, b):
            raise RuntimeError("no")

        with pytest.raises(GroupKeyError):
            find_break_level(("a",), ("b",), 1, comparers=[broken])

    def test_keys_equal(self):
        assert keys_equal("a", "a", strict=True)
        assert not keys_equal(1, 2, strict=True)


class TestGroupBreakDetector:
    """Test key derivation and detection"""

    def test_derive_key_in_level_order(self):
        detector = GroupBreakDetector([GroupLevel(level=1, key="city"), GroupLevel(level=0, key="region")])
        record = {"region": "E", "city": "NYC"}
        assert detector.level_count == 2
        assert detector.derive_key(lambda expression: record[expression.ref]) == ("E", "NYC")

    def test_derive_key_failure_is_fatal(self):
        """Test key derivation failures raise GroupKeyError with the record index"""
        detector = GroupBreakDetector([GroupLevel(level=0, key={"ref": "region", "recoverable": True})])

        def failing(expression):
            raise KeyError(expression.ref)

        with pytest.raises(GroupKeyError) as exc_info:
            detector.derive_key(failing, record_index=7)
        assert exc_info.value.record_index == 7
        assert exc_info.value.level == 0

    def test_detect(self):
        detector = GroupBreakDetector([GroupLevel(level=0, key="region")])
        assert detector.detect(None, ("E",)) == 0
        assert detector.detect(("E",), ("E",)) is None
        assert detector.detect(("E",), ("W",)) == 0
