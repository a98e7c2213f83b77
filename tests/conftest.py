from unittest.mock import AsyncMock

import pytest

from market import YahooFinance


@pytest.fixture
def client() -> AsyncMock:
    """Stand-in for the Yahoo Finance capability; every method is an AsyncMock."""
    return AsyncMock(spec=YahooFinance)
