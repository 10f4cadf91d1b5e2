"""
Shared fixtures for all tests
Provides common report definitions and driving records
"""
import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from band_engine import Band, GroupLevel, ReportDefinition, VariableScope, VariableSpec
from band_engine.types import AggregationKind
from core.config import get_settings


@pytest.fixture
def clean_settings():
    """Reset the cached settings around a test"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sales_records():
    """Driving records sorted by region then city"""
    return [
        {"id": 1, "region": "E", "city": "Boston", "amt": 10},
        {"id": 2, "region": "E", "city": "Boston", "amt": 5},
        {"id": 3, "region": "E", "city": "NYC", "amt": 7},
        {"id": 4, "region": "W", "city": "LA", "amt": 3},
    ]


@pytest.fixture
def region_definition():
    """One group level on region with a group-scoped SUM"""
    return ReportDefinition(
        name="sales_by_region",
        groups=[GroupLevel(level=0, key="region")],
        bands=[
            Band.title(),
            Band.group_header(0),
            Band.detail(),
            Band.group_footer(0),
            Band.summary(),
        ],
        variables=[
            VariableSpec(name="region_total", scope=VariableScope.group(0), expression="amt"),
            VariableSpec(name="grand_total", expression="amt"),
            VariableSpec(name="rows", aggregation=AggregationKind.COUNT, expression="id"),
        ],
    )


@pytest.fixture
def nested_definition():
    """Region and city levels with headers and footers at both levels"""
    return ReportDefinition(
        name="sales_by_city",
        groups=[GroupLevel(level=0, key="region"), GroupLevel(level=1, key="city")],
        bands=[
            Band.group_header(0),
            Band.group_header(1),
            Band.detail(),
            Band.group_footer(1),
            Band.group_footer(0),
        ],
        variables=[
            VariableSpec(name="city_total", scope=VariableScope.group(1), expression="amt"),
            VariableSpec(name="region_total", scope=VariableScope.group(0), expression="amt"),
        ],
    )

