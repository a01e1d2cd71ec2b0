from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON
from library_catalog.core.database import Base


class Category(Base):
    """
    Node of the topic taxonomy.
    parent_id is a weak reference to another category; the hierarchy is
    walked by id lookups, never through an embedded object graph.
    """
    __tablename__ = "library_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False, index=True)
    description = Column(Text, nullable=True)
    icon_ref = Column(String(500), nullable=True)

    parent_id = Column(Integer, nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)

    display_order = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_by = Column(String(100), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Category id={self.id} name={self.name!r} parent_id={self.parent_id}>"
