import pytest
import pytest_asyncio

from tokflo import FirestoreDB, init_tokflo
from tokflo.models import Product, Store, User

from .fake_firestore import FakeFirestore


@pytest.fixture
def fake_client():
    return FakeFirestore()


@pytest.fixture
def firestore_db(fake_client):
    """FirestoreDB wired to the in-memory fake; never opens a real client."""
    db = FirestoreDB.__new__(FirestoreDB)
    db.project_id = "test-project"
    db.database = None
    db.credentials = None
    db._emulator_host = None
    db.client = fake_client
    return db


@pytest.fixture
def fake_db(firestore_db, fake_client):
    """Every TokFlo model bound to the fake; returns the fake for inspection."""
    init_tokflo(firestore_db)
    return fake_client


@pytest_asyncio.fixture
async def alice(fake_db):
    return await User(
        id="alice",
        uid="alice",
        email="alice@example.com",
        username="alice",
        display_name="Alice",
    ).put()


@pytest_asyncio.fixture
async def bob(fake_db):
    return await User(
        id="bob",
        uid="bob",
        email="bob@example.com",
        username="bob",
        display_name="Bob",
    ).put()


@pytest_asyncio.fixture
async def store(fake_db, alice):
    store = await Store(id="store-1", owner_id=alice.id, name="Alice Threads").put()
    await User.patch(alice.id, values={"has_store": True, "store_id": store.id})
    return store


@pytest_asyncio.fixture
async def product(fake_db, store):
    return await Product(
        id="prod-1",
        store_id=store.id,
        owner_id=store.owner_id,
        name="Lappa Dress",
        price=250.0,
        stock=5,
        category="fashion",
    ).put()
