"""
Root conftest.py for pytest configuration

This file handles:
1. Automatic marker inheritance based on test location
2. Marker registration
3. Optional marker validation report
"""
import os

# Keep test logs readable and metrics cheap before core settings load
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FORMAT", "text")

from tests.markers import DOMAIN_MARKERS, OTHER_MARKERS, MarkerValidator, apply_auto_markers, generate_marker_report


def pytest_collection_modifyitems(config, items):
    """Apply automatic markers to every collected item"""
    for item in items:
        apply_auto_markers(item)


def pytest_configure(config):
    """
    Configure pytest with custom markers.

    This registers primary and domain markers dynamically.
    """
    config.addinivalue_line("markers", "unit: Fast tests without external collaborators")
    config.addinivalue_line("markers", "integration: Tests wiring several components together")
    for marker_name, description in DOMAIN_MARKERS.items():
        config.addinivalue_line("markers", f"{marker_name}: {description}")
    for marker_name in OTHER_MARKERS:
        config.addinivalue_line("markers", f"{marker_name}: auxiliary marker")


def pytest_sessionfinish(session, exitstatus):
    """Print the marker report and fail on invalid markers when requested"""
    items = getattr(session, "items", [])
    show_report = session.config.getoption("--show-marker-report", default=False)
    validate_markers = session.config.getoption("--validate-markers", default=False)

    if (show_report or validate_markers) and items:
        print("\n" + generate_marker_report(items))

        if validate_markers:
            validator = MarkerValidator()
            if any(validator.validate_item(item)[0] for item in items) and exitstatus == 0:
                session.exitstatus = 1


def pytest_addoption(parser):
    """
    Add custom command line options.
    """
    parser.addoption(
        "--validate-markers",
        action="store_true",
        default=False,
        help="Validate that all tests have appropriate markers",
    )
    parser.addoption(
        "--show-marker-report",
        action="store_true",
        default=False,
        help="Show marker usage report at the end of test run",
    )
