"""
Pytest configuration and shared fixtures.

This module provides:
- Mock fixtures for unit tests
- Sample report and reference data
- Custom markers
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mock database session for unit tests."""
    session = AsyncMock()
    session.add = MagicMock()
    session.delete = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.scalars = AsyncMock()
    session.get = AsyncMock()

    @asynccontextmanager
    async def _nested_transaction() -> AsyncGenerator[None, None]:
        yield

    session.begin_nested = MagicMock(side_effect=lambda: _nested_transaction())
    return session


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_report_data() -> dict[str, Any]:
    """A legitimate hostel water report."""
    return {
        "id": uuid4(),
        "reporter_id": uuid4(),
        "title": "No water supply",
        "description": "Hostel 2 me pani nahi aa raha. Morning se.",
        "category_id": uuid4(),
        "location_id": uuid4(),
    }


@pytest.fixture
def sample_category_names() -> list[str]:
    return [
        "wifi",
        "water",
        "sanitation",
        "electricity",
        "hostel",
        "academics",
        "safety",
        "food",
        "infrastructure",
    ]


@pytest.fixture
def sample_location_names() -> list[str]:
    return [
        "Boys Hostel 1",
        "Boys Hostel 2",
        "Girls Hostel 1",
        "Central Library",
        "Main Canteen",
        "Faculty of Pharmacy",
        "HAHC Hospital",
        "Sports Complex",
    ]


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "unit: Unit tests (fast, no external dependencies)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests (require database/redis)",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow tests",
    )
    config.addinivalue_line(
        "markers",
        "external: Tests that call external APIs",
    )
