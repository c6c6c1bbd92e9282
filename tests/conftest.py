"""Test configuration and fixtures for the marketplace API."""

import os
import tempfile
from typing import Generator

import pytest

# Keep the test run's log out of the working tree; must be set before app/config import
os.environ.setdefault('LOG_FILE', os.path.join(tempfile.gettempdir(), 'marketplace-tests.log'))

from app import app as flask_app  # noqa: E402
from local_backend import LocalBackend  # noqa: E402
from tests.utils import FakeEmailService, RecordingBackend, signup_and_login  # noqa: E402


@pytest.fixture
def backend() -> LocalBackend:
    """Fresh in-memory store (SQLite + StaticPool) per test."""
    return LocalBackend('sqlite://')


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture(name="client")
def client_fixture(backend, email_service) -> Generator:
    """Flask test client bound to the in-memory store and the fake email sender."""
    flask_app.config['TESTING'] = True
    flask_app.config['MARKETPLACE_BACKEND'] = backend
    flask_app.config['EMAIL_SERVICE'] = email_service
    try:
        with flask_app.test_client() as client:
            yield client
    finally:
        flask_app.config['MARKETPLACE_BACKEND'] = None
        flask_app.config['EMAIL_SERVICE'] = None


@pytest.fixture
def seller(client):
    """Signed-up and signed-in seller: {'id', 'email', 'headers'}."""
    return signup_and_login(client, 'seller@example.com', company_name='Acme Imports')


@pytest.fixture
def other_seller(client):
    return signup_and_login(client, 'other@example.com', company_name='Other Co')
