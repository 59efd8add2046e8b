"""
Pytest configuration for the pdp7fs test suite.

    python -m pytest                # everything
    python -m pytest -m "not slow"  # skip full-surface capacity runs

The tests are unittest.TestCase classes; pytest collects them directly.
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "slow: tests that fill a whole surface or emit several full images")
