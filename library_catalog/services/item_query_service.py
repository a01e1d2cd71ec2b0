from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from library_catalog.core.config import settings
from library_catalog.core.exceptions import ValidationError
from library_catalog.crud import crud_library_item
from library_catalog.models.library_item import LibraryItem
from library_catalog.schemas.library import ItemType
from library_catalog.services.search_service import KeywordSearch, SqlKeywordSearch

PUBLISHED = LibraryItem.is_published.is_(True)


def search(db: Session, keyword: str, searcher: Optional[KeywordSearch] = None) -> List[LibraryItem]:
    """Items matching ``keyword`` according to the search primitive (unordered)."""
    item_ids = (searcher or SqlKeywordSearch(db)).search_by_keyword(keyword)
    return crud_library_item.get_items_by_ids(db, item_ids)


# =============================================================================
# Filters
# =============================================================================

def filter_by_category(db: Session, category_id: int) -> List[LibraryItem]:
    return crud_library_item.scan_items(db, LibraryItem.category_id == category_id)


def filter_by_type(db: Session, item_type: Union[ItemType, str]) -> List[LibraryItem]:
    try:
        item_type = ItemType(item_type)
    except ValueError as e:
        raise ValidationError(f"Unknown item type: {item_type}", type=item_type) from e
    return crud_library_item.scan_items(db, LibraryItem.type == item_type.value)


def filter_by_tags(db: Session, tags: List[str]) -> List[LibraryItem]:
    """
    One tag is a membership test; several tags require all of them (AND).
    An empty tag list matches nothing.
    """
    tags = [t for t in dict.fromkeys(tags) if t]
    if not tags:
        return []
    if len(tags) == 1:
        return crud_library_item.scan_items(db, crud_library_item.has_tag(tags[0]))
    return crud_library_item.scan_items(db, crud_library_item.has_all_tags(tags))


def filter_by_difficulty(db: Session, difficulty: int) -> List[LibraryItem]:
    return crud_library_item.scan_items(db, LibraryItem.difficulty == difficulty)


def filter_by_language(db: Session, language: str) -> List[LibraryItem]:
    return crud_library_item.scan_items(db, LibraryItem.language == language)


# =============================================================================
# Listings
# =============================================================================

def get_all_items(db: Session) -> List[LibraryItem]:
    return crud_library_item.scan_all_items(db)


def get_published_items(db: Session) -> List[LibraryItem]:
    return crud_library_item.scan_items(db, PUBLISHED, order_by=crud_library_item.NEWEST_FIRST)


def get_featured_items(db: Session) -> List[LibraryItem]:
    return crud_library_item.scan_items(
        db, PUBLISHED, LibraryItem.is_featured.is_(True), order_by=crud_library_item.NEWEST_FIRST
    )


def get_pending_items(db: Session) -> List[LibraryItem]:
    """Items awaiting review (never published or unpublished)."""
    return crud_library_item.scan_items(db, LibraryItem.is_published.is_(False), order_by=crud_library_item.NEWEST_FIRST)


def get_popular_items(db: Session, limit: Optional[int] = None) -> List[LibraryItem]:
    """Published items, most viewed first."""
    return crud_library_item.scan_items(
        db,
        PUBLISHED,
        order_by=(LibraryItem.view_count.desc(), LibraryItem.id),
        limit=settings.DEFAULT_QUERY_LIMIT if limit is None else limit
    )


def get_recent_items(db: Session, limit: Optional[int] = None, within_days: Optional[int] = None) -> List[LibraryItem]:
    """Published items, newest first, optionally restricted to the last ``within_days`` days."""
    criteria = [PUBLISHED]
    if within_days is not None:
        criteria.append(LibraryItem.created_at >= datetime.now(timezone.utc) - timedelta(days=within_days))
    return crud_library_item.scan_items(
        db,
        *criteria,
        order_by=crud_library_item.NEWEST_FIRST,
        limit=settings.DEFAULT_QUERY_LIMIT if limit is None else limit
    )


def get_related_items(db: Session, item_id: int, limit: Optional[int] = None) -> List[LibraryItem]:
    """Published items sharing the category or at least one tag, excluding the item itself."""
    db_item = crud_library_item.get_item(db, item_id)
    if not db_item:
        return []

    related = []
    if db_item.category_id is not None:
        related.append(LibraryItem.category_id == db_item.category_id)
    tags = list(db_item.tags)
    if tags:
        related.append(crud_library_item.has_any_tag(tags))
    if not related:
        return []

    return crud_library_item.scan_items(
        db,
        PUBLISHED,
        LibraryItem.id != item_id,
        or_(*related),
        order_by=(LibraryItem.view_count.desc(), LibraryItem.id),
        limit=settings.DEFAULT_QUERY_LIMIT if limit is None else limit
    )
