import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from library_catalog.core.database import build_engine, init_db
from library_catalog.services import category_service, library_item_service
from library_catalog.services.blob_storage_service import InMemoryBlobStore

ADMIN = "admin-1"
REVIEWER = "reviewer-7"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def make_category(db):
    def _make(name, parent=None, **fields):
        data = {"name": name, **fields}
        if parent is not None:
            data["parent_id"] = parent.id
        return category_service.create_category(db, data, ADMIN)
    return _make


@pytest.fixture
def make_item(db, blob_store):
    def _make(title, category=None, published=False, file=None, **fields):
        data = {"title": title, "type": "ARTICLE", **fields}
        if category is not None:
            data["category_id"] = category.id
        item = library_item_service.create_item(db, data, ADMIN, file=file, blob_store=blob_store)
        if published:
            item = library_item_service.publish(db, item.id, REVIEWER)
        return item
    return _make
