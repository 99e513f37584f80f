"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_settings():
    """Give each test freshly loaded settings."""
    from hostprobe.config import set_settings

    set_settings(None)
    yield
    set_settings(None)
