"""
Error hierarchy raised by the catalog services.

Every error carries a human readable message plus a ``context`` dict with the
offending id or name so a service layer can render a user-facing response.
"""
from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base exception for catalog operations."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class NotFoundError(CatalogError):
    """Unknown category or library item id."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found with id: {entity_id}", entity=entity, id=entity_id)


class DuplicateNameError(CatalogError):
    def __init__(self, name: str):
        super().__init__(f"Category with name '{name}' already exists", name=name)


class InvalidParentError(CatalogError):
    """Parent category is missing or is the category itself."""

    def __init__(self, message: str, category_id: Optional[int] = None, parent_id: Optional[int] = None):
        super().__init__(message, id=category_id, parent_id=parent_id)


class CircularReferenceError(CatalogError):
    def __init__(self, category_id: Optional[int], parent_id: Optional[int], chain=None):
        super().__init__(
            "Circular reference detected in category hierarchy",
            id=category_id,
            parent_id=parent_id,
            chain=list(chain or [])
        )


class HasSubcategoriesError(CatalogError):
    def __init__(self, category_id: int, count: int):
        super().__init__(
            "Cannot delete category with subcategories. Delete subcategories first.",
            id=category_id,
            subcategories=count
        )


class HasItemsError(CatalogError):
    def __init__(self, category_id: int, count: int):
        super().__init__(
            "Cannot delete category with library items. Move items to another category first.",
            id=category_id,
            items=count
        )


class ValidationError(CatalogError):
    """Malformed input, e.g. difficulty outside 1-3 or an empty upload."""

    def __init__(self, message: str, errors=None, **context: Any):
        super().__init__(message, **context)
        self.errors = list(errors or [])


class StorageUnavailableError(CatalogError):
    """The record store or the blob backend could not be reached."""

    def __init__(self, backend: str, detail: str = ""):
        super().__init__(f"{backend} is unavailable: {detail}" if detail else f"{backend} is unavailable", backend=backend)
