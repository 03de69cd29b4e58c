from datetime import datetime

import pytest

from clock import fixed_clock


@pytest.fixture
def now():
    return datetime(2023, 12, 25, 15, 30)


@pytest.fixture
def clock(now):
    return fixed_clock(now)
