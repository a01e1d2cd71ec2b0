"""
Read-only views over the category hierarchy: breadcrumbs, descendants,
subtree item counts, the annotated tree, and catalog-wide statistics.
None of these run the hierarchy validator.
"""
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from library_catalog.core.exceptions import NotFoundError
from library_catalog.crud import crud_category, crud_library_item
from library_catalog.models.category import Category
from library_catalog.schemas.library import CategoryStatistics, CategoryTreeNode


def next_display_order(db: Session) -> int:
    """1 on an empty store, otherwise max(display_order) + 1."""
    max_order = crud_category.get_max_display_order(db)
    return 1 if max_order is None else max_order + 1


def get_hierarchy_path(db: Session, category_id: int) -> List[Category]:
    """Categories from the root ancestor down to ``category_id``; empty for an unknown id."""
    path: List[Category] = []
    seen = set()
    current = crud_category.get_category(db, category_id)

    while current and current.id not in seen:
        seen.add(current.id)
        path.insert(0, current)
        if current.parent_id is None:
            break
        current = crud_category.get_category(db, current.parent_id)

    return path


def get_all_descendants(db: Session, category_id: int) -> List[Category]:
    """Every transitive child of ``category_id``, breadth first."""
    descendants: List[Category] = []
    seen = {category_id}
    frontier = [category_id]

    while frontier:
        parent_id = frontier.pop(0)
        for child in crud_category.get_children(db, parent_id):
            if child.id in seen:
                continue
            seen.add(child.id)
            descendants.append(child)
            frontier.append(child.id)

    return descendants


def count_total_items_in_subtree(db: Session, category_id: int) -> int:
    """Items assigned to the category or to any of its descendants."""
    if crud_category.get_category(db, category_id) is None:
        return 0
    ids = [category_id] + [c.id for c in get_all_descendants(db, category_id)]
    return crud_library_item.count_items_in_categories(db, ids)


def get_category_tree(db: Session, root_id: Optional[int] = None) -> List[CategoryTreeNode]:
    """
    Nodes mirroring parent/child links, each annotated with its direct item
    count. Starts from the top-level categories, or from ``root_id`` when
    given. Children are ordered by (display_order, name).
    """
    all_categories = crud_category.scan_all_categories(db)
    item_counts = crud_library_item.count_items_by_category(db)

    children_of: Dict[Optional[int], List[Category]] = {}
    by_id = {}
    for cat in all_categories:
        by_id[cat.id] = cat
        children_of.setdefault(cat.parent_id, []).append(cat)

    def build(cat: Category, ancestors: frozenset) -> CategoryTreeNode:
        path = ancestors | {cat.id}
        return CategoryTreeNode(
            id=cat.id,
            name=cat.name,
            description=cat.description,
            icon_ref=cat.icon_ref,
            parent_id=cat.parent_id,
            display_order=cat.display_order,
            is_active=cat.is_active,
            item_count=item_counts.get(cat.id, 0),
            children=[build(child, path) for child in children_of.get(cat.id, []) if child.id not in path]
        )

    if root_id is not None:
        root = by_id.get(root_id)
        if root is None:
            raise NotFoundError("Category", root_id)
        return [build(root, frozenset())]

    # Categories whose parent is missing are surfaced as roots too
    roots = [cat for cat in all_categories if cat.parent_id is None or cat.parent_id not in by_id]
    return [build(cat, frozenset()) for cat in roots]


def get_popular_categories(db: Session, limit: int = 10) -> List[Category]:
    """Active categories ordered by direct item count, highest first."""
    item_counts = crud_library_item.count_items_by_category(db)
    active = crud_category.scan_categories(db, Category.is_active.is_(True))
    ranked = sorted(active, key=lambda c: item_counts.get(c.id, 0), reverse=True)
    return ranked[:limit]


def get_category_statistics(db: Session) -> CategoryStatistics:
    all_categories = crud_category.scan_all_categories(db)
    item_counts = crud_library_item.count_items_by_category(db)

    total = len(all_categories)
    active = sum(1 for c in all_categories if c.is_active)
    top_level = sum(1 for c in all_categories if c.parent_id is None)

    items_per_category = {c.name: item_counts.get(c.id, 0) for c in all_categories}

    # First category encountered with the highest count wins a tie
    most_popular = None
    best = -1
    for cat in all_categories:
        if not cat.is_active:
            continue
        count = item_counts.get(cat.id, 0)
        if count > best:
            best = count
            most_popular = cat.name

    return CategoryStatistics(
        total_categories=total,
        active_categories=active,
        inactive_categories=total - active,
        parent_categories=top_level,
        sub_categories=total - top_level,
        items_per_category=items_per_category,
        most_popular_category=most_popular
    )
