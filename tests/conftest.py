# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
from datetime import datetime, timedelta
from http import HTTPStatus
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from lingo_core.config import OfflineConfig
from lingo_core.offline.events import Event, EventBus
from lingo_core.offline.local_store import MemoryStore


# =============================================================================
# HTTP FAKES
# =============================================================================

def make_response(
    status: int = 200,
    json_data: Any = None,
    content: Optional[bytes] = None,
    headers: Optional[Dict[str, str]] = None,
    reason: Optional[str] = None,
) -> MagicMock:
    """Build a stand-in for requests.Response"""
    response = MagicMock()
    response.status_code = status
    response.reason = reason or HTTPStatus(status).phrase

    if json_data is not None:
        response.content = json.dumps(json_data).encode("utf-8")
        response.json.return_value = json_data
    else:
        response.content = content or b""
        response.json.side_effect = ValueError("No JSON object could be decoded")

    response.text = response.content.decode("utf-8")
    response.headers = headers or {"Content-Type": "application/json"}
    return response


@pytest.fixture
def response_factory():
    """Factory for fake responses"""
    return make_response


@pytest.fixture
def mock_session():
    """Mock requests.Session; configure session.request per test"""
    session = MagicMock()
    session.request.return_value = make_response(200, json_data={"ok": True})
    return session


@pytest.fixture
def route(mock_session):
    """
    Route session.request by URL.

    Usage:
        route({"http://x/a": make_response(200), "http://x/b": ConnectionError()})
    Values may be a response, an exception, or a list consumed in order.
    """
    def configure(routes: Dict[str, Any]) -> MagicMock:
        def side_effect(method=None, url=None, **kwargs):
            outcome = routes[url]
            if isinstance(outcome, list):
                outcome = outcome.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        mock_session.request.side_effect = side_effect
        return mock_session

    return configure


def called_urls(session: MagicMock) -> List[str]:
    """URLs passed to session.request, in call order"""
    return [c.kwargs["url"] for c in session.request.call_args_list]


@pytest.fixture
def urls_called():
    return called_urls


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def offline_config():
    """Default configuration with a stable origin"""
    return OfflineConfig(
        api_base_url="http://api.test/api",
        origin="http://app.test",
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sleeps():
    """Recorded backoff delays instead of real sleeping"""
    recorded: List[float] = []

    def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)

    fake_sleep.calls = recorded
    return fake_sleep


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def captured_events(event_bus):
    """Every event published on event_bus"""
    received: List[Event] = []
    event_bus.subscribe(Event, received.append)
    return received


@pytest.fixture
def hours_ago():
    def build(hours: float) -> datetime:
        return datetime.now() - timedelta(hours=hours)
    return build


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit():
    """Mock Streamlit for testing"""
    import sys

    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    original_st = sys.modules.get('streamlit')
    sys.modules['streamlit'] = mock_st

    yield mock_st

    if original_st:
        sys.modules['streamlit'] = original_st
    else:
        del sys.modules['streamlit']
