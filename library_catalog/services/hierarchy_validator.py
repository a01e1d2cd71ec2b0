"""
Integrity rules for the category hierarchy.

Every create and update of a category runs the full set of checks against the
current store contents:

- name is unique across categories, compared case-insensitively
- a declared parent exists and is not the category itself
- following the parent chain from the declared parent never reaches the
  category again and never revisits an id

The checks are read-only; callers persist only after ``validate_category``
returns.
"""
import logging
from typing import Dict, NamedTuple, Optional

from sqlalchemy.orm import Session

from library_catalog.core.exceptions import (
    CircularReferenceError,
    DuplicateNameError,
    InvalidParentError,
)
from library_catalog.crud import crud_category

logger = logging.getLogger(__name__)

class CategoryCandidate(NamedTuple):
    """The identity-bearing fields of a category about to be written."""
    id: Optional[int]
    name: str
    parent_id: Optional[int]

def check_name_unique(db: Session, candidate: CategoryCandidate) -> None:
    existing = crud_category.get_category_by_name(db, candidate.name, exclude_id=candidate.id)
    if existing:
        logger.warning(f"Duplicate category name '{candidate.name}' (clashes with id {existing.id})")
        raise DuplicateNameError(candidate.name)

def check_parent(candidate: CategoryCandidate, parent_map: Dict[int, Optional[int]]) -> None:
    if candidate.parent_id is None:
        return
    if candidate.id is not None and candidate.parent_id == candidate.id:
        raise InvalidParentError("Category cannot be its own parent", candidate.id, candidate.parent_id)
    if candidate.parent_id not in parent_map:
        raise InvalidParentError("Parent category does not exist", candidate.id, candidate.parent_id)

def check_no_cycle(candidate: CategoryCandidate, parent_map: Dict[int, Optional[int]]) -> None:
    """
    Walk upward from the declared parent. The visited set bounds the walk by
    the number of categories, so it terminates even on corrupted data.
    """
    visited = []
    current = candidate.parent_id
    while current is not None:
        if current in visited or (candidate.id is not None and current == candidate.id):
            logger.warning(f"Circular reference for category {candidate.id}: chain {visited + [current]}")
            raise CircularReferenceError(candidate.id, candidate.parent_id, visited + [current])
        visited.append(current)
        current = parent_map.get(current)

def validate_category(db: Session, candidate: CategoryCandidate) -> None:
    """Run every hierarchy check, raising on the first violation."""
    check_name_unique(db, candidate)
    parent_map = crud_category.get_parent_map(db)
    check_parent(candidate, parent_map)
    check_no_cycle(candidate, parent_map)
