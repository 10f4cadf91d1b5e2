"""
Group Break Detector

Compares successive driving records' group-key tuples and reports the
shallowest nesting level that changed. A change at level L implies every
deeper level closes and reopens too.
"""

from numbers import Number
from typing import Any, Callable, Optional, Sequence, Tuple

from core.config import settings
from core.exceptions import GroupKeyError

from .models import Expression, GroupLevel

Comparer = Callable[[Any, Any], bool]


def _comparable(previous: Any, current: Any) -> bool:
    if previous is None or current is None:
        return True
    if isinstance(previous, Number) and isinstance(current, Number):
        return True
    return isinstance(previous, type(current)) or isinstance(current, type(previous))


def keys_equal(previous: Any, current: Any, strict: Optional[bool] = None) -> bool:
    """Value equality, rejecting keys of unrelated types when strict"""
    if strict is None:
        strict = settings.strict_group_keys
    if strict and not _comparable(previous, current):
        raise TypeError(f"cannot compare {type(previous).__name__} with {type(current).__name__}")
    return previous == current


def find_break_level(
    previous: Optional[Sequence[Any]],
    current: Sequence[Any],
    level_count: int,
    comparers: Optional[Sequence[Optional[Comparer]]] = None,
    strict: Optional[bool] = None,
) -> Optional[int]:
    """
    Shallowest level whose key differs, or None when every level matches

    Args:
        previous: Key prefix of the currently open groups (None before the first record)
        current: Key tuple of the incoming record
        level_count: Number of declared group levels
        comparers: Optional per-level equality functions
        strict: Override for ``settings.strict_group_keys``

    Returns:
        Level index 0..level_count-1, or None
    """
    if level_count == 0:
        return None
    if previous is None:
        return 0

    for level in range(level_count):
        comparer = comparers[level] if comparers and level < len(comparers) else None
        try:
            if comparer is not None:
                same = bool(comparer(previous[level], current[level]))
            else:
                same = keys_equal(previous[level], current[level], strict=strict)
        except Exception as e:
            raise GroupKeyError(
                f"Group keys at level {level} are not comparable: {e}",
                level=level,
                previous=repr(previous[level]),
                current=repr(current[level]),
            ) from e
        if not same:
            return level

    return None


class GroupBreakDetector:
    """Derives group keys for a definition's levels and detects breaks"""

    def __init__(self, groups: Sequence[GroupLevel], strict: Optional[bool] = None):
        self.groups = sorted(groups, key=lambda group: group.level)
        self.comparers = [group.comparer for group in self.groups]
        self.strict = strict

    @property
    def level_count(self) -> int:
        return len(self.groups)

    def derive_key(
        self,
        evaluate: Callable[[Expression], Any],
        record_index: Optional[int] = None,
    ) -> Tuple[Any, ...]:
        """
        Evaluate every level's key expression

        Failures are fatal whatever the expression's recoverable flag says,
        since nesting below a broken key would be undefined.
        """
        key = []
        for group in self.groups:
            try:
                key.append(evaluate(group.key))
            except Exception as e:
                raise GroupKeyError(
                    f"Group key for level {group.level} could not be derived: {e}",
                    level=group.level,
                    record_index=record_index,
                ) from e
        return tuple(key)

    def detect(self, previous: Optional[Sequence[Any]], current: Sequence[Any]) -> Optional[int]:
        return find_break_level(previous, current, self.level_count, self.comparers, strict=self.strict)
