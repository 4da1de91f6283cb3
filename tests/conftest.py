import os

import pytest

# Must be set before config.get_settings() is first called
os.environ.setdefault("APP_ENV", "testing")

from repositories import reset_repositories  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state():
    """Reset the account set before each test."""
    reset_repositories()
