"""
Category store.

Thin record-store functions over the ``library_categories`` table. Listing
functions return rows ordered by ``(display_order, name)``.
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from library_catalog.core.database import storage_errors
from library_catalog.models.category import Category

DEFAULT_ORDER = (Category.display_order, Category.name, Category.id)


def get_category(db: Session, category_id: int) -> Optional[Category]:
    with storage_errors(db):
        return db.get(Category, category_id)


def get_categories_by_ids(db: Session, category_ids: Iterable[int]) -> List[Category]:
    ids = list(category_ids)
    if not ids:
        return []
    return scan_categories(db, Category.id.in_(ids))


def get_category_by_name(db: Session, name: str, exclude_id: Optional[int] = None) -> Optional[Category]:
    """Case-insensitive exact name lookup."""
    with storage_errors(db):
        query = db.query(Category).filter(func.lower(Category.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        return query.first()


def scan_categories(db: Session, *criteria) -> List[Category]:
    with storage_errors(db):
        return db.query(Category).filter(*criteria).order_by(*DEFAULT_ORDER).all()


def scan_all_categories(db: Session) -> List[Category]:
    return scan_categories(db)


def get_children(db: Session, parent_id: int) -> List[Category]:
    return scan_categories(db, Category.parent_id == parent_id)


def count_children(db: Session, parent_id: int) -> int:
    with storage_errors(db):
        return db.query(func.count(Category.id)).filter(Category.parent_id == parent_id).scalar() or 0


def get_parent_map(db: Session) -> Dict[int, Optional[int]]:
    """Snapshot of ``id -> parent_id`` for every category."""
    with storage_errors(db):
        return {row.id: row.parent_id for row in db.query(Category.id, Category.parent_id).all()}


def get_max_display_order(db: Session) -> Optional[int]:
    with storage_errors(db):
        return db.query(func.max(Category.display_order)).scalar()


def put_category(db: Session, category: Category) -> Category:
    with storage_errors(db):
        db.add(category)
        db.commit()
        db.refresh(category)
    return category


def batch_put_categories(db: Session, categories: List[Category]) -> List[Category]:
    with storage_errors(db):
        db.add_all(categories)
        db.commit()
        for category in categories:
            db.refresh(category)
    return categories


def delete_category(db: Session, category: Category) -> bool:
    with storage_errors(db):
        db.delete(category)
        db.commit()
    return True


def batch_delete_categories(db: Session, category_ids: Iterable[int]) -> int:
    ids = list(category_ids)
    if not ids:
        return 0
    with storage_errors(db):
        deleted = db.query(Category).filter(Category.id.in_(ids)).delete(synchronize_session=False)
        db.commit()
    return deleted
