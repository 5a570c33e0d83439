import os
import pytest
from unittest.mock import AsyncMock, MagicMock
import sys
from pathlib import Path

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
sys.path.append(project_root)

# Test configuration must be in place before settings are read
os.environ.setdefault('OPENAI_API_KEY', 'test-openai-key')
os.environ.setdefault('META_VERIFY_TOKEN', 'test-verify-token')
os.environ.setdefault('META_PAGE_TOKEN', 'test-page-token')
os.environ.setdefault('SUPABASE_URL', 'https://test-project.supabase.co')
os.environ.setdefault('SUPABASE_KEY', 'test-supabase-key')

# Mock Supabase before importing app
import supabase
def mock_create_client(*args, **kwargs):
    mock_client = MagicMock()
    mock_client.table = MagicMock()
    return mock_client

supabase.create_client = mock_create_client

# Now we can safely import the app
from api.routes import app
from api.services.aggregator import SessionAggregator
from api.services.extraction import LeadRecord

class FakeClock:
    """Monotonic clock that only moves when told to"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_client():
    from fastapi.testclient import TestClient
    return TestClient(app)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def extractor():
    mock = MagicMock()
    mock.extract = AsyncMock(return_value=LeadRecord(user_id='u1', task='fence repair', follow_up=True))
    return mock

@pytest.fixture
def lead_store():
    mock = MagicMock()
    mock.save_lead = AsyncMock(return_value=True)
    return mock

@pytest.fixture
def summarizer():
    return AsyncMock(return_value="Customer Alex asked about repairing a fence.")

@pytest.fixture
def aggregator(clock, extractor, lead_store, summarizer):
    return SessionAggregator(
        extractor=extractor,
        lead_store=lead_store,
        summarizer=summarizer,
        inactivity_window_ms=60_000,
        max_live_turns=10,
        deadline_check_interval_ms=10,
        clock=clock
    )
