import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from library_catalog.core.config import settings
from library_catalog.core.exceptions import CatalogError, NotFoundError, ValidationError
from library_catalog.crud import crud_library_item
from library_catalog.models.library_item import LibraryItem
from library_catalog.schemas.library import (
    BulkOperationResult,
    BulkUploadDefaults,
    EngagementCounter,
    ItemStatistics,
    ItemType,
    LibraryItemCreate,
    LibraryItemUpdate,
    UploadedFile,
    parse_model,
)
from library_catalog.services import category_service
from library_catalog.services.blob_storage_service import (
    BlobStore,
    get_blob_store,
    release_blob,
    thumbnail_key_for,
    validate_upload,
)

logger = logging.getLogger(__name__)

DESCRIPTIVE_FIELDS = (
    'title', 'description', 'type', 'category_id', 'author',
    'source', 'difficulty', 'language', 'read_time_minutes'
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_item(db: Session, item_id: int, count_view: bool = False) -> Optional[LibraryItem]:
    """Get an item by ID; ``count_view`` records a view as the public detail page does."""
    db_item = crud_library_item.get_item(db, item_id)
    if db_item and count_view:
        crud_library_item.increment_counter(db, item_id, EngagementCounter.VIEW)
    return db_item


def require_item(db: Session, item_id: int, for_update: bool = False) -> LibraryItem:
    db_item = crud_library_item.get_item(db, item_id, for_update=for_update)
    if not db_item:
        raise NotFoundError("Library item", item_id)
    return db_item


# =============================================================================
# Create / Update / Delete
# =============================================================================

def create_item(
    db: Session,
    data: Union[LibraryItemCreate, Dict[str, Any]],
    actor: str,
    file: Optional[UploadedFile] = None,
    blob_store: Optional[BlobStore] = None
) -> LibraryItem:
    """
    Create an unpublished item with zeroed engagement counters. A supplied
    file is written to the blob store first and its key recorded as file_ref.
    """
    item_in = parse_model(LibraryItemCreate, data)
    logger.info(f"Creating library item '{item_in.title}' by user {actor}")

    now = _now()
    db_item = LibraryItem(
        title=item_in.title,
        description=item_in.description,
        type=item_in.type.value,
        content=item_in.content,
        thumbnail_ref=item_in.thumbnail_ref,
        category_id=item_in.category_id,
        author=item_in.author,
        source=item_in.source,
        read_time_minutes=item_in.read_time_minutes,
        language=item_in.language,
        difficulty=item_in.difficulty,
        item_metadata=dict(item_in.metadata),
        view_count=0,
        download_count=0,
        like_count=0,
        share_count=0,
        is_published=False,
        is_featured=False,
        created_by=actor,
        created_at=now,
        updated_by=actor,
        updated_at=now
    )
    crud_library_item.set_item_tags(db_item, item_in.tags)

    if file is not None:
        store = blob_store or get_blob_store()
        db_item.file_ref = store.store_upload(file)
        if not db_item.thumbnail_ref:
            db_item.thumbnail_ref = thumbnail_key_for(db_item.file_ref)

    try:
        return crud_library_item.put_item(db, db_item)
    except CatalogError:
        if db_item.file_ref:
            release_blob(blob_store or get_blob_store(), db_item.file_ref)
        raise


def update_item(
    db: Session,
    item_id: int,
    data: Union[LibraryItemUpdate, Dict[str, Any]],
    actor: str,
    file: Optional[UploadedFile] = None,
    blob_store: Optional[BlobStore] = None
) -> LibraryItem:
    """
    Replace the descriptive fields. Content and metadata are replaced only when
    supplied. A new file is stored first; the previous blob is released once
    the record points at the new one, and a derived thumbnail follows the file.
    A failed update leaves both the record and the previous blob untouched.
    """
    update_in = parse_model(LibraryItemUpdate, data)
    if file is not None:
        validate_upload(file)
    logger.info(f"Updating library item {item_id} by user {actor}")

    db_item = require_item(db, item_id, for_update=True)
    store = (blob_store or get_blob_store()) if file is not None else None
    old_file_ref = db_item.file_ref
    new_file_ref = None

    try:
        if file is not None:
            new_file_ref = store.store_upload(file)

        for field in DESCRIPTIVE_FIELDS:
            setattr(db_item, field, getattr(update_in, field))
        db_item.type = update_in.type.value
        crud_library_item.set_item_tags(db_item, update_in.tags)

        if update_in.content is not None:
            db_item.content = update_in.content

        if new_file_ref:
            derived = not db_item.thumbnail_ref or (
                old_file_ref and db_item.thumbnail_ref == thumbnail_key_for(old_file_ref)
            )
            if derived:
                db_item.thumbnail_ref = thumbnail_key_for(new_file_ref)
            db_item.file_ref = new_file_ref

        if update_in.metadata is not None:
            db_item.item_metadata = dict(update_in.metadata)

        db_item.updated_by = actor
        db_item.updated_at = _now()

        db_item = crud_library_item.put_item(db, db_item)
    except Exception:
        db.rollback()
        if new_file_ref:
            release_blob(store, new_file_ref)
        raise

    if new_file_ref:
        release_blob(store, old_file_ref)
    return db_item


def update_metadata(db: Session, item_id: int, metadata: Dict[str, Any], actor: str) -> LibraryItem:
    """Merge keys into the stored metadata; same-named keys are overwritten."""
    if not isinstance(metadata, dict):
        raise ValidationError("Metadata must be a mapping", id=item_id)

    db_item = require_item(db, item_id, for_update=True)
    db_item.item_metadata = {**(db_item.item_metadata or {}), **metadata}
    db_item.updated_by = actor
    db_item.updated_at = _now()

    return crud_library_item.put_item(db, db_item)


def delete_item(db: Session, item_id: int, actor: str, blob_store: Optional[BlobStore] = None) -> bool:
    """Release the item's blobs (best effort), then remove the record."""
    logger.info(f"Deleting library item {item_id} by user {actor}")

    db_item = require_item(db, item_id)
    if db_item.file_ref:
        store = blob_store or get_blob_store()
        release_blob(store, db_item.file_ref)

    return crud_library_item.delete_item(db, db_item)


# =============================================================================
# Publishing
# =============================================================================

def publish(db: Session, item_id: int, reviewer: str) -> LibraryItem:
    """Publish an item; publish date and reviewer are re-stamped on every publish."""
    logger.info(f"Publishing library item {item_id} by reviewer {reviewer}")

    db_item = require_item(db, item_id, for_update=True)
    now = _now()
    db_item.is_published = True
    db_item.publish_date = now
    db_item.reviewed_by = reviewer
    db_item.reviewed_at = now

    return crud_library_item.put_item(db, db_item)


def unpublish(db: Session, item_id: int, actor: str) -> LibraryItem:
    """Hide an item. Publish history is kept; the featured flag is cleared."""
    logger.info(f"Unpublishing library item {item_id} by user {actor}")

    db_item = require_item(db, item_id, for_update=True)
    db_item.is_published = False
    db_item.is_featured = False
    db_item.updated_by = actor
    db_item.updated_at = _now()

    return crud_library_item.put_item(db, db_item)


def set_featured(db: Session, item_id: int, featured: bool, actor: str) -> LibraryItem:
    db_item = require_item(db, item_id, for_update=True)
    if featured and not db_item.is_published:
        raise ValidationError("Only published items can be featured", id=item_id)

    db_item.is_featured = featured
    db_item.updated_by = actor
    db_item.updated_at = _now()

    return crud_library_item.put_item(db, db_item)


# =============================================================================
# Engagement
# =============================================================================

def record_view(db: Session, item_id: int) -> int:
    return crud_library_item.increment_counter(db, item_id, EngagementCounter.VIEW)


def record_download(db: Session, item_id: int) -> int:
    return crud_library_item.increment_counter(db, item_id, EngagementCounter.DOWNLOAD)


def record_like(db: Session, item_id: int) -> int:
    return crud_library_item.increment_counter(db, item_id, EngagementCounter.LIKE)


def record_share(db: Session, item_id: int) -> int:
    return crud_library_item.increment_counter(db, item_id, EngagementCounter.SHARE)


def get_item_statistics(db: Session, item_id: int) -> ItemStatistics:
    db_item = require_item(db, item_id)
    return ItemStatistics(
        views=db_item.view_count,
        downloads=db_item.download_count,
        likes=db_item.like_count,
        shares=db_item.share_count
    )


def download_item_file(db: Session, item_id: int, blob_store: Optional[BlobStore] = None) -> bytes:
    """Load the item's file and count the download."""
    db_item = require_item(db, item_id)
    if not db_item.file_ref:
        raise NotFoundError("Library item file", item_id)

    content = (blob_store or get_blob_store()).load(db_item.file_ref)
    record_download(db, item_id)
    return content


# =============================================================================
# Bulk Operations
# =============================================================================

def bulk_upload(
    db: Session,
    files: List[UploadedFile],
    defaults: Union[BulkUploadDefaults, Dict[str, Any]],
    actor: str,
    blob_store: Optional[BlobStore] = None
) -> BulkOperationResult:
    """
    Create one item per file from shared defaults. The title falls back to the
    file name, the type to DEFAULT_ITEM_TYPE; an unknown category id leaves
    the item uncategorised.
    """
    defaults_in = parse_model(BulkUploadDefaults, defaults)
    logger.info(f"Bulk uploading {len(files)} files by user {actor}")

    category_id = None
    if defaults_in.category_id is not None and category_service.get_category(db, defaults_in.category_id):
        category_id = defaults_in.category_id

    result = BulkOperationResult()
    for file in files:
        data = {
            "title": defaults_in.title or os.path.basename(file.filename),
            "description": defaults_in.description,
            "type": defaults_in.type or ItemType(settings.DEFAULT_ITEM_TYPE),
            "category_id": category_id,
            "tags": defaults_in.tags,
            "author": defaults_in.author,
            "source": defaults_in.source,
            "language": defaults_in.language or settings.DEFAULT_LANGUAGE,
            "difficulty": defaults_in.difficulty,
        }
        try:
            created = create_item(db, data, actor, file=file, blob_store=blob_store)
            result.succeeded.append(created.id)
        except CatalogError as e:
            result.record_failure(file.filename, e)

    return result


def bulk_delete(db: Session, item_ids: List[int], actor: str, blob_store: Optional[BlobStore] = None) -> BulkOperationResult:
    result = BulkOperationResult()
    for item_id in item_ids:
        try:
            delete_item(db, item_id, actor, blob_store=blob_store)
            result.succeeded.append(item_id)
        except CatalogError as e:
            result.record_failure(item_id, e)
    return result


def bulk_publish(db: Session, item_ids: List[int], reviewer: str) -> BulkOperationResult:
    result = BulkOperationResult()
    for item_id in item_ids:
        try:
            publish(db, item_id, reviewer)
            result.succeeded.append(item_id)
        except CatalogError as e:
            result.record_failure(item_id, e)
    return result
