"""Pytest configuration and fixtures for the test suite.

Provides:
- Python path setup (so price_import imports without installation)
- Environment defaults, set before settings are first imported
- Shared fixtures for collaborator fakes
"""
import os
import sys
from pathlib import Path

# Project root is the directory holding price_import/
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

os.environ.setdefault("PRICE_IMPORT_ENVIRONMENT", "test")
os.environ.setdefault("PRICE_IMPORT_LOG_LEVEL", "WARNING")

import pytest

from tests.helpers import FakeCatalog, InMemoryFileStorage, InMemoryTemplateRepository


@pytest.fixture
def storage():
    """Empty in-memory file storage."""
    return InMemoryFileStorage()


@pytest.fixture
def catalog():
    """Empty in-memory catalog (query and writer)."""
    return FakeCatalog()


@pytest.fixture
def repository():
    """Empty in-memory template repository."""
    return InMemoryTemplateRepository()
