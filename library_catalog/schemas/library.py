from pydantic import AfterValidator, BaseModel, Field, StringConstraints, field_validator
from pydantic import ValidationError as PydanticValidationError
from typing import Annotated, Optional, List, Dict, Any
from enum import Enum
from library_catalog.core.exceptions import CatalogError, ValidationError


# =============================================================================
# Enums
# =============================================================================

class ItemType(str, Enum):
    PDF = "PDF"
    ARTICLE = "ARTICLE"
    VIDEO = "VIDEO"
    IMAGE_GALLERY = "IMAGE_GALLERY"
    INFOGRAPHIC = "INFOGRAPHIC"
    GUIDE = "GUIDE"
    RESEARCH_PAPER = "RESEARCH_PAPER"
    FAQ = "FAQ"



class EngagementCounter(str, Enum):
    VIEW = "view_count"
    DOWNLOAD = "download_count"
    LIKE = "like_count"
    SHARE = "share_count"


def _normalize_tags(v):
    """Tags behave as a set: strip, drop blanks and duplicates, keep first-seen order."""
    if v is None:
        return v
    seen = []
    for tag in v:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


TagList = Annotated[List[Annotated[str, StringConstraints(max_length=100)]], AfterValidator(_normalize_tags)]


# =============================================================================
# Category Schemas
# =============================================================================

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    icon_ref: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = None
    tags: TagList = []
    display_order: Optional[int] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name must not be blank')
        return v


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    """Fields left unset keep their stored value."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    icon_ref: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = None
    tags: Optional[TagList] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError('Name must not be blank')
        return v


class CategoryBulkUpdate(CategoryUpdate):
    id: int


class CategoryTreeNode(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon_ref: Optional[str] = None
    parent_id: Optional[int] = None
    display_order: int
    is_active: bool
    item_count: int = 0
    children: List['CategoryTreeNode'] = []


class CategoryStatistics(BaseModel):
    total_categories: int
    active_categories: int
    inactive_categories: int
    parent_categories: int
    sub_categories: int
    items_per_category: Dict[str, int] = {}
    most_popular_category: Optional[str] = None


# =============================================================================
# Library Item Schemas
# =============================================================================

class LibraryItemBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    type: ItemType
    content: Optional[str] = None
    thumbnail_ref: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = None
    tags: TagList = []
    author: Optional[str] = Field(None, max_length=200)
    source: Optional[str] = Field(None, max_length=200)
    read_time_minutes: Optional[int] = Field(None, ge=0)
    language: str = Field("en", min_length=2, max_length=10)
    difficulty: Optional[int] = Field(None, ge=1, le=3)
    metadata: Dict[str, Any] = {}


class LibraryItemCreate(LibraryItemBase):
    pass


class LibraryItemUpdate(BaseModel):
    """
    Descriptive fields are replaced wholesale; content and metadata are only
    replaced when supplied.
    """
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    type: ItemType
    content: Optional[str] = None
    category_id: Optional[int] = None
    tags: TagList = []
    author: Optional[str] = Field(None, max_length=200)
    source: Optional[str] = Field(None, max_length=200)
    read_time_minutes: Optional[int] = Field(None, ge=0)
    language: str = Field("en", min_length=2, max_length=10)
    difficulty: Optional[int] = Field(None, ge=1, le=3)
    metadata: Optional[Dict[str, Any]] = None


class BulkUploadDefaults(BaseModel):
    """Shared metadata applied to every file of a bulk upload."""
    title: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = None
    type: Optional[ItemType] = None
    category_id: Optional[int] = None
    tags: TagList = []
    author: Optional[str] = Field(None, max_length=200)
    source: Optional[str] = Field(None, max_length=200)
    language: Optional[str] = Field(None, min_length=2, max_length=10)
    difficulty: Optional[int] = Field(None, ge=1, le=3)


class ItemStatistics(BaseModel):
    views: int
    downloads: int
    likes: int
    shares: int


# =============================================================================
# Uploads & Bulk Results
# =============================================================================

class UploadedFile(BaseModel):
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


class BulkFailure(BaseModel):
    key: Any
    error: str
    message: str


class BulkOperationResult(BaseModel):
    succeeded: List[Any] = []
    failed: List[BulkFailure] = []

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def record_failure(self, key: Any, error: CatalogError) -> None:
        self.failed.append(BulkFailure(key=key, error=type(error).__name__, message=error.message))


def parse_model(model_cls, data):
    """Accept a schema instance or a plain mapping; surface bad input as ValidationError."""
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        fields = ", ".join(".".join(str(p) for p in err['loc']) for err in errors)
        raise ValidationError(f"Invalid {model_cls.__name__}: {fields}", errors=errors) from e
