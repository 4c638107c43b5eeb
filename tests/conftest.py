"""
Shared pytest fixtures.
"""

import pytest

from revtrack.history.author import reset_author_context


@pytest.fixture(autouse=True)
def fresh_author_context():
    """Give every test its own global author context."""
    reset_author_context()
    yield
    reset_author_context()
