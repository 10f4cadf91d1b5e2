"""
Band tree validation

``validate_definition`` re-checks the invariants a report definition must
satisfy before a run may start. Every violation raises DefinitionError (or
its TargetAliasCycleError subclass); nothing here touches record data.
"""

from collections import Counter
from typing import List, Optional

from core.config import settings
from core.exceptions import DefinitionError, TargetAliasCycleError
from core.logging import get_logger

from .constants import DRIVING_ALIAS, MAX_GROUP_LEVELS
from .models import ReportDefinition
from .types import AggregationKind, AliasKind, BandType, ScopeKind
from .variables import resolve_variable_order

logger = get_logger(__name__)


def validate_definition(definition: ReportDefinition, max_levels: Optional[int] = None) -> ReportDefinition:
    """
    Validate a report definition

    Args:
        definition: Definition to check
        max_levels: Override for ``settings.max_group_levels``

    Returns:
        The same definition, for chaining

    Raises:
        DefinitionError: on the first violated rule
    """
    _check_singletons(definition)
    _check_groups(definition, max_levels)
    _check_details(definition)
    check_alias_cycles(definition)
    _check_variables(definition)

    logger.debug(
        "Report definition validated",
        extra={"report": definition.name, "bands": len(definition.bands), "levels": definition.level_count},
    )
    return definition


def _check_singletons(definition: ReportDefinition) -> None:
    counts = Counter(band.band_type for band in definition.bands)
    for band_type in BandType:
        if band_type.is_singleton and counts[band_type] > 1:
            raise DefinitionError(
                f"Report '{definition.name}' declares {counts[band_type]} {band_type.value} bands; at most one allowed",
                rule="singleton_band",
                band_type=band_type.value,
            )


def _check_groups(definition: ReportDefinition, max_levels: Optional[int]) -> None:
    limit = min(max_levels or settings.max_group_levels, MAX_GROUP_LEVELS)
    levels = sorted(group.level for group in definition.groups)

    if len(levels) > limit:
        raise DefinitionError(
            f"Report '{definition.name}' declares {len(levels)} group levels; at most {limit} allowed",
            rule="group_level_limit",
        )
    if levels != list(range(len(levels))):
        raise DefinitionError(
            f"Group levels must be contiguous from 0, found {levels}",
            rule="group_levels_contiguous",
        )

    for band_type in (BandType.GROUP_HEADER, BandType.GROUP_FOOTER):
        seen = set()
        for band in definition.bands_of(band_type):
            if band.level is None:
                raise DefinitionError(f"Group band '{band.label}' must specify a level", rule="group_band_level")
            if band.level >= len(levels):
                raise DefinitionError(
                    f"Group band '{band.label}' references undeclared level {band.level}",
                    rule="group_band_level",
                    level=band.level,
                )
            if band.level in seen:
                raise DefinitionError(
                    f"Level {band.level} has more than one {band_type.value} band",
                    rule="group_band_unique",
                    level=band.level,
                )
            seen.add(band.level)


def _check_details(definition: ReportDefinition) -> None:
    details = definition.detail_bands

    for position, band in enumerate(details):
        if band.index is not None and band.index != position:
            raise DefinitionError(
                f"Detail band '{band.label}' declares index {band.index} but is at position {position}",
                rule="detail_index",
            )
        if band.alias_kind is AliasKind.DRIVING and position != 0:
            raise DefinitionError(
                f"Target alias '{DRIVING_ALIAS}' is only allowed on the first detail band, "
                f"found on detail band {position}",
                rule="driving_alias_position",
                position=position,
            )


def check_alias_cycles(definition: ReportDefinition) -> None:
    """Follow each detail alias through relation metadata and reject loops"""
    relations = definition.relations

    for band in definition.detail_bands:
        if band.alias_kind is not AliasKind.RELATION:
            continue

        path: List[str] = [band.target_alias]
        parent = relations.get(band.target_alias)
        while parent is not None and parent != DRIVING_ALIAS:
            if parent in path:
                path.append(parent)
                raise TargetAliasCycleError(band.target_alias, path)
            path.append(parent)
            parent = relations.get(parent)


def _check_variables(definition: ReportDefinition) -> None:
    names = Counter(spec.name for spec in definition.variables)
    duplicates = sorted(name for name, count in names.items() if count > 1)
    if duplicates:
        raise DefinitionError(f"Duplicate variable names: {duplicates}", rule="variable_unique")

    detail_count = len(definition.detail_bands)
    for spec in definition.variables:
        scope = spec.scope
        if scope.kind is ScopeKind.GROUP and (scope.level is None or scope.level >= definition.level_count):
            raise DefinitionError(
                f"Variable '{spec.name}' is scoped to undeclared group level {scope.level}",
                rule="variable_scope",
                variable=spec.name,
            )
        if scope.kind is ScopeKind.DETAIL and (scope.band_index is None or scope.band_index >= detail_count):
            raise DefinitionError(
                f"Variable '{spec.name}' is scoped to undeclared detail band {scope.band_index}",
                rule="variable_scope",
                variable=spec.name,
            )
        if spec.aggregation is AggregationKind.CUSTOM and spec.reducer is None:
            raise DefinitionError(
                f"Custom variable '{spec.name}' needs a reducer", rule="variable_reducer", variable=spec.name
            )

    resolve_variable_order(definition.variables)
