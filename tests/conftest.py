"""
White Ninja AI - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator

import pytest
from faker import Faker
from httpx import AsyncClient, ASGITransport

# Set testing environment before any whiteninja import reads settings
os.environ['ENVIRONMENT'] = 'test'
os.environ['ANTHROPIC_API_KEY'] = 'test-api-key-for-testing-only'
os.environ['MAX_API_CALLS_PER_MINUTE'] = '100'
os.environ['API_RETRY_BASE_DELAY'] = '0'
os.environ['PHASE_TRANSITION_DELAY'] = '0'
os.environ['RATE_POLL_INTERVAL'] = '0.01'
os.environ['PAUSE_POLL_INTERVAL'] = '0.01'
os.environ['LOG_LEVEL'] = 'WARNING'
os.environ['LOG_FILE'] = ''

from whiteninja.main import create_app
from whiteninja.services.build_services import create_build_services
from whiteninja.utils.claude_client import get_claude_client

from mocks.mock_claude import MockClaudeClient

fake = Faker()


@pytest.fixture
def mock_claude() -> MockClaudeClient:
    """Scripted model client; every agent answers with a canned reply"""
    return MockClaudeClient()


@pytest.fixture
def services(mock_claude):
    """Fresh service set wired to the scripted client, with no pauses"""
    return create_build_services(
        client=mock_claude,
        phase_delay=0,
        retry_count=3,
        base_delay=0,
        timeout_seconds=5,
    )


@pytest.fixture
def app(services, mock_claude):
    app = create_app(services)
    app.dependency_overrides[get_claude_client] = lambda: mock_claude
    yield app
    app.dependency_overrides.clear()
    services.registry.shutdown()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the app in-process"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


@pytest.fixture
def brief() -> str:
    """A brief comfortably inside the length bounds"""
    return f"A landing page for {fake.company()}, a small roastery selling single-origin coffee online"
