from concurrent.futures import ThreadPoolExecutor

from sqlalchemy.orm import sessionmaker

from library_catalog.core.database import build_engine, init_db
from library_catalog.services import library_item_service

WORKERS = 4
VIEWS_PER_WORKER = 10


def test_concurrent_views_are_never_lost(tmp_path):
    engine = build_engine(
        f"sqlite:///{tmp_path / 'catalog.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    init_db(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as db:
        item_id = library_item_service.create_item(db, {"title": "Busy page", "type": "ARTICLE"}, "admin-1").id

    def view_many(_):
        with Session() as db:
            for _ in range(VIEWS_PER_WORKER):
                library_item_service.record_view(db, item_id)

    try:
        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(view_many, range(WORKERS)))

        with Session() as db:
            stats = library_item_service.get_item_statistics(db, item_id)
        assert stats.views == WORKERS * VIEWS_PER_WORKER
    finally:
        engine.dispose()
