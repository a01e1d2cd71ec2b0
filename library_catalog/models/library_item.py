from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.orm import relationship
from library_catalog.core.database import Base


class LibraryItemTag(Base):
    """One tag on one library item (junction rows keep tag filters in SQL)."""
    __tablename__ = "library_item_tags"
    __table_args__ = (
        UniqueConstraint('item_id', 'tag', name='uq_library_item_tags_item_tag'),
    )

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey('library_items.id', ondelete='CASCADE'), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    item = relationship("LibraryItem", back_populates="tag_links")


class LibraryItem(Base):
    """
    A published educational/reference item.
    category_id is a weak reference; categories do not own their items.
    """
    __tablename__ = "library_items"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(30), nullable=False, index=True)
    content = Column(Text, nullable=True)
    file_ref = Column(String(500), nullable=True)
    thumbnail_ref = Column(String(500), nullable=True)

    category_id = Column(Integer, nullable=True, index=True)

    author = Column(String(200), nullable=True)
    source = Column(String(200), nullable=True)
    read_time_minutes = Column(Integer, nullable=True)
    language = Column(String(10), nullable=False, default="en", index=True)
    difficulty = Column(Integer, nullable=True, index=True)  # 1-Beginner, 2-Intermediate, 3-Advanced

    # "metadata" is reserved on declarative classes
    item_metadata = Column("metadata", JSON, nullable=False, default=dict)

    # Engagement
    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)

    # Status
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    publish_date = Column(DateTime(timezone=True), nullable=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, index=True)
    updated_by = Column(String(100), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    tag_links = relationship(
        "LibraryItemTag",
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LibraryItemTag.id"
    )
    tags = association_proxy("tag_links", "tag", creator=lambda tag: LibraryItemTag(tag=tag))

    def __repr__(self):
        return f"<LibraryItem id={self.id} title={self.title!r} category_id={self.category_id}>"
