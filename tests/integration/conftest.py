"""
Fixtures for the emulator-backed integration tests.

These tests only run when ``FIRESTORE_EMULATOR_HOST`` points at a running
Firestore emulator, e.g.::

    gcloud emulators firestore start --host-port=localhost:8080
    FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/integration
"""

import logging
import os

import httpx
import pytest
import pytest_asyncio

from tokflo import FirestoreDB, init_tokflo
from tokflo.models import User

logger = logging.getLogger(__name__)

EMULATOR_HOST = os.environ.get("FIRESTORE_EMULATOR_HOST", "").strip()
DATABASE = os.environ.get("DATABASE", None) or None
# An unset CI secret expands to "", so fall through with ``or``.
PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or "tokflo-test"


def pytest_collection_modifyitems(config, items):
    if EMULATOR_HOST:
        return
    skip = pytest.mark.skip(reason="FIRESTORE_EMULATOR_HOST is not set")
    for item in items:
        if "tests/integration/" in item.nodeid:
            item.add_marker(skip)


@pytest.fixture()
def firestore_db():
    """
    Function-scoped so each test gets a fresh AsyncClient bound to the
    current event loop (avoids 'Event loop is closed' with gRPC).
    """
    return FirestoreDB(project_id=PROJECT_ID, database=DATABASE, emulator_host=EMULATOR_HOST)


@pytest_asyncio.fixture(autouse=True)
async def clean_firestore(firestore_db):
    """Wipe the emulator before and after each test."""
    await _wipe_emulator()
    init_tokflo(firestore_db)
    yield
    await _wipe_emulator()


async def _wipe_emulator():
    db_name = DATABASE or "(default)"
    url = f"http://{EMULATOR_HOST}/emulator/v1/projects/{PROJECT_ID}/databases/{db_name}/documents"
    async with httpx.AsyncClient() as client:
        response = await client.delete(url)
    if response.is_error:
        logger.warning(f"Emulator wipe returned {response.status_code}")


@pytest_asyncio.fixture
async def alice():
    return await User(id="alice", uid="alice", username="alice", display_name="Alice").put()


@pytest_asyncio.fixture
async def bob():
    return await User(id="bob", uid="bob", username="bob", display_name="Bob").put()
