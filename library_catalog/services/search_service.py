import logging
from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from library_catalog.core.database import storage_errors
from library_catalog.models.library_item import LibraryItem, LibraryItemTag

logger = logging.getLogger(__name__)


class KeywordSearch:
    """Search-by-keyword primitive: returns matching item ids, unordered."""

    def search_by_keyword(self, text: str) -> List[int]:
        raise NotImplementedError


class SqlKeywordSearch(KeywordSearch):
    """Case-insensitive substring match over the descriptive item fields and tags."""

    def __init__(self, db: Session):
        self.db = db

    def search_by_keyword(self, text: str) -> List[int]:
        keyword = (text or '').strip()
        if not keyword:
            return []
        with storage_errors(self.db):
            rows = self.db.query(LibraryItem.id).filter(
                or_(
                    LibraryItem.title.icontains(keyword, autoescape=True),
                    LibraryItem.description.icontains(keyword, autoescape=True),
                    LibraryItem.author.icontains(keyword, autoescape=True),
                    LibraryItem.source.icontains(keyword, autoescape=True),
                    LibraryItem.tag_links.any(LibraryItemTag.tag.icontains(keyword, autoescape=True))
                )
            ).all()
        logger.info(f"Keyword search '{keyword}' matched {len(rows)} items")
        return [row.id for row in rows]
