"""
Shared fixtures for the e2e and BDD suites.
Tests run against API_BASE_URL when it is set (container pipeline), otherwise
against a service started in-process on an ephemeral port.
"""

import os

import pytest

from ecs_welcome import Settings, WelcomeServer


@pytest.fixture(scope="session")
def live_server():
    """Start the welcome service once per session on a random port."""
    with WelcomeServer(Settings(host="127.0.0.1", port=0, log_level="warning")) as server:
        yield server


@pytest.fixture(scope="session")
def api_url(request):
    """Get API URL from environment, falling back to the live server."""
    external = os.environ.get("API_BASE_URL")
    if external:
        return external.rstrip("/")
    return request.getfixturevalue("live_server").url
