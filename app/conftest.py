"""
Root pytest configuration for the Django project.

pytest-django loads config.settings_test (see pyproject.toml). This module
provides the project-wide marker conventions and fixtures. App-specific
fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_fees.py, test_stripe_adapter.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_handlers.py",
        "test_reconciler.py",
        "test_state_machine.py",
        "test_transaction_store.py",
        "test_payout_dispatcher.py",
        "test_dispute_handler.py",
        "test_checkout.py",
        "test_auto_release.py",
        "test_payout_retry.py",
        "test_seller_directory.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_fees.py",
        "test_money.py",
        "test_stripe_adapter.py",
        "test_state_transitions.py",
        "test_exceptions.py",
    ]

    for item in items:
        # Skip if test already has unit/integration marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    from rest_framework.test import APIClient

    return APIClient()
