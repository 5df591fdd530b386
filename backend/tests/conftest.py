from __future__ import annotations

import sys
from pathlib import Path

import pytest


BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    from sla_engine.core import rate_limit

    rate_limit._limiter.reset()
    yield
    rate_limit._limiter.reset()
