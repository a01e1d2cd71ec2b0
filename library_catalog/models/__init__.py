from library_catalog.models.category import Category
from library_catalog.models.library_item import LibraryItem, LibraryItemTag
