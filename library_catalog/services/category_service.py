import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from library_catalog.core.exceptions import (
    CatalogError,
    HasItemsError,
    HasSubcategoriesError,
    NotFoundError,
)
from library_catalog.crud import crud_category, crud_library_item
from library_catalog.models.category import Category
from library_catalog.schemas.library import (
    BulkOperationResult,
    CategoryBulkUpdate,
    CategoryCreate,
    CategoryUpdate,
    parse_model,
)
from library_catalog.services.category_query_service import next_display_order
from library_catalog.services.hierarchy_validator import CategoryCandidate, validate_category

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ('name', 'description', 'icon_ref', 'parent_id', 'tags', 'display_order', 'is_active')


# =============================================================================
# Lookups
# =============================================================================

def get_category(db: Session, category_id: int) -> Optional[Category]:
    """Get a category by ID."""
    return crud_category.get_category(db, category_id)


def require_category(db: Session, category_id: int) -> Category:
    category = crud_category.get_category(db, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def get_categories(db: Session) -> List[Category]:
    return crud_category.scan_all_categories(db)


def get_active_categories(db: Session) -> List[Category]:
    return crud_category.scan_categories(db, Category.is_active.is_(True))


def get_parent_categories(db: Session) -> List[Category]:
    """Top-level categories (no parent)."""
    return crud_category.scan_categories(db, Category.parent_id.is_(None))


def get_subcategories(db: Session, parent_id: int) -> List[Category]:
    """Direct children of ``parent_id``; empty when the parent is unknown."""
    if not crud_category.get_category(db, parent_id):
        return []
    return crud_category.get_children(db, parent_id)


def find_by_name_containing(db: Session, text: str) -> List[Category]:
    return crud_category.scan_categories(db, func.lower(Category.name).contains(text.strip().lower(), autoescape=True))


def find_by_tag(db: Session, tag: str) -> List[Category]:
    # Category tags are a JSON column; the table is small enough to filter here
    return [c for c in crud_category.scan_all_categories(db) if tag in (c.tags or [])]


def exists_by_name(db: Session, name: str) -> bool:
    return crud_category.get_category_by_name(db, name) is not None


# =============================================================================
# Create / Update / Delete
# =============================================================================

def create_category(db: Session, data: Union[CategoryCreate, Dict[str, Any]], actor: str) -> Category:
    """Validate, stamp and persist a new category."""
    category_in = parse_model(CategoryCreate, data)
    logger.info(f"Creating category '{category_in.name}' by user {actor}")

    validate_category(db, CategoryCandidate(None, category_in.name, category_in.parent_id))

    now = datetime.now(timezone.utc)
    db_category = Category(
        name=category_in.name,
        description=category_in.description,
        icon_ref=category_in.icon_ref,
        parent_id=category_in.parent_id,
        tags=list(category_in.tags),
        display_order=category_in.display_order if category_in.display_order is not None else next_display_order(db),
        is_active=True,
        created_by=actor,
        created_at=now,
        updated_by=actor,
        updated_at=now
    )
    return crud_category.put_category(db, db_category)


def update_category(db: Session, category_id: int, data: Union[CategoryUpdate, Dict[str, Any]], actor: str) -> Category:
    """
    Merge the supplied fields into the stored category and re-run the full
    hierarchy validation on the merged result before anything is written.
    """
    update_in = parse_model(CategoryUpdate, data)
    logger.info(f"Updating category {category_id} by user {actor}")

    db_category = require_category(db, category_id)

    merged = {field: getattr(db_category, field) for field in MUTABLE_FIELDS}
    merged.update({k: v for k, v in update_in.model_dump(exclude_unset=True).items() if k in MUTABLE_FIELDS})
    if merged['name'] is None:
        merged['name'] = db_category.name
    if merged['is_active'] is None:
        merged['is_active'] = db_category.is_active
    if merged['tags'] is None:
        merged['tags'] = []

    validate_category(db, CategoryCandidate(category_id, merged['name'], merged['parent_id']))

    if merged['display_order'] is None:
        merged['display_order'] = next_display_order(db)

    for field, value in merged.items():
        setattr(db_category, field, value)
    db_category.tags = list(merged['tags'])
    db_category.updated_by = actor
    db_category.updated_at = datetime.now(timezone.utc)

    return crud_category.put_category(db, db_category)


def move_category(db: Session, category_id: int, new_parent_id: Optional[int], actor: str) -> Category:
    """Re-parent a category (``None`` moves it to the top level)."""
    return update_category(db, category_id, {"parent_id": new_parent_id}, actor)


def update_display_order(db: Session, category_id: int, display_order: int, actor: str) -> Category:
    return update_category(db, category_id, {"display_order": display_order}, actor)


def toggle_active(db: Session, category_id: int, active: bool, actor: str) -> Category:
    """Flip the active flag. Name and parent are untouched so no re-validation."""
    db_category = require_category(db, category_id)
    logger.info(f"Setting category {category_id} active={active} by user {actor}")

    db_category.is_active = active
    db_category.updated_by = actor
    db_category.updated_at = datetime.now(timezone.utc)

    return crud_category.put_category(db, db_category)


def check_delete_guard(db: Session, category_id: int) -> None:
    """A category may only be deleted once it has no subcategories and no items."""
    children = crud_category.count_children(db, category_id)
    if children:
        logger.warning(f"Refusing to delete category {category_id}: {children} subcategories")
        raise HasSubcategoriesError(category_id, children)

    items = crud_library_item.count_items_in_category(db, category_id)
    if items:
        logger.warning(f"Refusing to delete category {category_id}: {items} library items")
        raise HasItemsError(category_id, items)


def delete_category(db: Session, category_id: int, actor: str) -> bool:
    logger.info(f"Deleting category {category_id} by user {actor}")

    db_category = require_category(db, category_id)
    check_delete_guard(db, category_id)

    return crud_category.delete_category(db, db_category)


# =============================================================================
# Bulk Operations
# =============================================================================

def bulk_create(db: Session, categories: List[Union[CategoryCreate, Dict[str, Any]]], actor: str) -> BulkOperationResult:
    """Create each category independently; failures do not stop the batch."""
    logger.info(f"Bulk creating {len(categories)} categories by user {actor}")
    result = BulkOperationResult()

    for index, data in enumerate(categories):
        try:
            created = create_category(db, data, actor)
            result.succeeded.append(created.id)
        except CatalogError as e:
            name = data.get('name') if isinstance(data, dict) else getattr(data, 'name', None)
            result.record_failure(name if name is not None else index, e)

    return result


def bulk_update(db: Session, updates: List[Union[CategoryBulkUpdate, Dict[str, Any]]], actor: str) -> BulkOperationResult:
    logger.info(f"Bulk updating {len(updates)} categories by user {actor}")
    result = BulkOperationResult()

    for index, data in enumerate(updates):
        try:
            update_in = parse_model(CategoryBulkUpdate, data)
        except CatalogError as e:
            result.record_failure(index, e)
            continue
        try:
            update_category(db, update_in.id, update_in.model_dump(exclude_unset=True, exclude={'id'}), actor)
            result.succeeded.append(update_in.id)
        except CatalogError as e:
            result.record_failure(update_in.id, e)

    return result


def bulk_update_status(db: Session, category_ids: List[int], active: bool, actor: str) -> BulkOperationResult:
    logger.info(f"Bulk updating status for {len(category_ids)} categories to: {active}")
    result = BulkOperationResult()

    for category_id in category_ids:
        try:
            toggle_active(db, category_id, active, actor)
            result.succeeded.append(category_id)
        except CatalogError as e:
            result.record_failure(category_id, e)

    return result


def bulk_delete(db: Session, category_ids: List[int], actor: str) -> BulkOperationResult:
    """
    Apply the delete guard to each id on its own. Ids are processed in the
    given order, so a child listed before its parent frees the parent.
    """
    logger.info(f"Bulk deleting {len(category_ids)} categories by user {actor}")
    result = BulkOperationResult()

    for category_id in category_ids:
        try:
            delete_category(db, category_id, actor)
            result.succeeded.append(category_id)
        except CatalogError as e:
            result.record_failure(category_id, e)

    return result
