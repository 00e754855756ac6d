"""
Configuration for pytest: import paths and shared fixtures.
"""

import sys
from collections import deque
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to Python path so we can import seq, utils, app, etc.
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import app
from seq import Seq


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def counting_sequencer():
    """
    Factory for single-pass batch sources that count fetches and finalize
    calls. Returns (seq, stats).
    """
    def make(batches):
        stats = {"fetches": 0, "finalized": 0}
        remaining = deque(batches)

        def generate():
            stats["fetches"] += 1
            return remaining.popleft() if remaining else None

        def finalize():
            stats["finalized"] += 1

        return Seq.sequencer(generate, finalize), stats

    return make


@pytest.fixture
def tracked_sequencer():
    """
    Factory for batch sources that append 'fetch <name>' and
    'finalize <name>' events to a shared log.
    """
    def make(name, batches, log):
        remaining = deque(batches)

        def generate():
            log.append(f"fetch {name}")
            return remaining.popleft() if remaining else None

        return Seq.sequencer(generate, lambda: log.append(f"finalize {name}"))

    return make


@pytest.fixture
def sample_data():
    return [5, 3, 8, 1, 9, 2, 7]
