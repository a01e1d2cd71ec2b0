"""
Item store.

Record-store functions over ``library_items`` and its tag junction table.
Engagement counters are bumped with a single UPDATE statement so concurrent
increments on the same row never overwrite each other.
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from library_catalog.core.database import storage_errors
from library_catalog.core.exceptions import NotFoundError
from library_catalog.models.library_item import LibraryItem, LibraryItemTag
from library_catalog.schemas.library import EngagementCounter

NEWEST_FIRST = (LibraryItem.created_at.desc(), LibraryItem.id.desc())


def get_item(db: Session, item_id: int, for_update: bool = False) -> Optional[LibraryItem]:
    """Point lookup; ``for_update`` takes a row lock where the backend has one."""
    with storage_errors(db):
        if for_update:
            return db.query(LibraryItem).filter(LibraryItem.id == item_id).with_for_update().populate_existing().first()
        return db.get(LibraryItem, item_id)


def get_items_by_ids(db: Session, item_ids: Iterable[int]) -> List[LibraryItem]:
    ids = list(item_ids)
    if not ids:
        return []
    return scan_items(db, LibraryItem.id.in_(ids))


def scan_items(db: Session, *criteria, order_by=None, limit: Optional[int] = None) -> List[LibraryItem]:
    with storage_errors(db):
        query = db.query(LibraryItem).filter(*criteria)
        query = query.order_by(*(order_by or (LibraryItem.id,)))
        if limit is not None:
            query = query.limit(limit)
        return query.all()


def scan_all_items(db: Session) -> List[LibraryItem]:
    return scan_items(db, order_by=NEWEST_FIRST)


def item_ids_with_all_tags(tags: List[str]):
    wanted = list(dict.fromkeys(tags))
    return (
        select(LibraryItemTag.item_id)
        .where(LibraryItemTag.tag.in_(wanted))
        .group_by(LibraryItemTag.item_id)
        .having(func.count(func.distinct(LibraryItemTag.tag)) == len(wanted))
    )


def has_tag(tag: str):
    """Criterion: the item carries ``tag``."""
    return LibraryItem.tag_links.any(LibraryItemTag.tag == tag)


def has_all_tags(tags: List[str]):
    """Criterion: the item carries every tag in ``tags``."""
    return LibraryItem.id.in_(item_ids_with_all_tags(tags))


def has_any_tag(tags: List[str]):
    return LibraryItem.tag_links.any(LibraryItemTag.tag.in_(list(tags)))


def set_item_tags(item: LibraryItem, tags: Iterable[str]) -> None:
    """Replace an item's tag set without re-inserting tags it already carries."""
    wanted = list(dict.fromkeys(tags))
    for link in list(item.tag_links):
        if link.tag not in wanted:
            item.tag_links.remove(link)
    present = {link.tag for link in item.tag_links}
    for tag in wanted:
        if tag not in present:
            item.tag_links.append(LibraryItemTag(tag=tag))


def count_items_by_category(db: Session) -> Dict[int, int]:
    """Direct item count per category id (categories with no items are absent)."""
    with storage_errors(db):
        rows = db.query(LibraryItem.category_id, func.count(LibraryItem.id)).filter(
            LibraryItem.category_id.isnot(None)
        ).group_by(LibraryItem.category_id).all()
    return {category_id: count for category_id, count in rows}


def count_items_in_categories(db: Session, category_ids: Iterable[int]) -> int:
    ids = list(category_ids)
    if not ids:
        return 0
    with storage_errors(db):
        return db.query(func.count(LibraryItem.id)).filter(LibraryItem.category_id.in_(ids)).scalar() or 0


def count_items_in_category(db: Session, category_id: int) -> int:
    return count_items_in_categories(db, [category_id])


def put_item(db: Session, item: LibraryItem) -> LibraryItem:
    with storage_errors(db):
        db.add(item)
        db.commit()
        db.refresh(item)
    return item


def batch_put_items(db: Session, items: List[LibraryItem]) -> List[LibraryItem]:
    with storage_errors(db):
        db.add_all(items)
        db.commit()
        for item in items:
            db.refresh(item)
    return items


def delete_item(db: Session, item: LibraryItem) -> bool:
    with storage_errors(db):
        db.delete(item)
        db.commit()
    return True


def batch_delete_items(db: Session, item_ids: Iterable[int]) -> int:
    ids = list(item_ids)
    if not ids:
        return 0
    with storage_errors(db):
        db.query(LibraryItemTag).filter(LibraryItemTag.item_id.in_(ids)).delete(synchronize_session=False)
        deleted = db.query(LibraryItem).filter(LibraryItem.id.in_(ids)).delete(synchronize_session=False)
        db.commit()
    return deleted


def increment_counter(db: Session, item_id: int, counter: EngagementCounter) -> int:
    """Atomically add one to an engagement counter and return the new value."""
    column = getattr(LibraryItem, counter.value)
    with storage_errors(db):
        result = db.execute(
            update(LibraryItem)
            .where(LibraryItem.id == item_id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise NotFoundError("Library item", item_id)
        db.commit()
        value = db.query(column).filter(LibraryItem.id == item_id).scalar()
    return value
