"""
Pytest configuration file.

Puts the project root on the Python path so test files can import
iterators, utils, models and app.
"""

import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from iterators import EXHAUSTED
from utils import clear_performance_metrics


@pytest.fixture
def pull():
    """Call next() n times and return everything it returned, sentinel included"""
    def _pull(producer, n):
        return [producer.next() for _ in range(n)]
    return _pull


@pytest.fixture
def drain():
    """Collect elements until exhaustion, with a safety bound"""
    def _drain(producer, limit=100_000):
        items = []
        for _ in range(limit):
            item = producer.next()
            if item is EXHAUSTED:
                return items
            items.append(item)
        raise AssertionError(f"producer did not exhaust within {limit} pulls")
    return _drain


@pytest.fixture(autouse=True)
def reset_metrics():
    clear_performance_metrics()
    yield
