"""Integration test conftest: real SQLite database per test.

Inherits the root conftest.py fixtures (session_maker, db_session,
test_account, etc.) and adds integration-specific markers.
"""

import pytest


@pytest.fixture(autouse=True)
def _mark_integration(request):
    """Auto-mark all tests in this directory as integration."""
    request.node.add_marker(pytest.mark.integration)
