import sys
import time
from pathlib import Path

import pytest

# Ensure repository root is on the import path for local package imports during tests.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture()
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture()
def no_retry_sleep(monkeypatch):
    """Make tenacity back-off instantaneous."""

    monkeypatch.setattr(time, "sleep", lambda _seconds: None)
