import pytest

from library_catalog.core.exceptions import CircularReferenceError, DuplicateNameError, InvalidParentError
from library_catalog.crud import crud_category
from library_catalog.models.category import Category
from library_catalog.services import category_service
from library_catalog.services.hierarchy_validator import (
    CategoryCandidate,
    check_no_cycle,
    check_parent,
    validate_category,
)

ADMIN = "admin-1"

def test_duplicate_name_is_case_insensitive(db, make_category):
    make_category("Reef")

    with pytest.raises(DuplicateNameError) as exc_info:
        make_category("reef")

    assert exc_info.value.context["name"] == "reef"
    assert len(crud_category.scan_all_categories(db)) == 1

def test_name_check_ignores_own_prior_value(db, make_category):
    reef = make_category("Reef")

    validate_category(db, CategoryCandidate(reef.id, "REEF", None))

def test_missing_parent_is_rejected(db):
    with pytest.raises(InvalidParentError):
        validate_category(db, CategoryCandidate(None, "Orphan", 999))

def test_self_parent_is_rejected():
    with pytest.raises(InvalidParentError) as exc_info:
        check_parent(CategoryCandidate(4, "Loop", 4), {4: None})

    assert "own parent" in exc_info.value.message

def test_parent_set_to_descendant_is_rejected_and_store_unchanged(db, make_category):
    a = make_category("Oceans")
    b = make_category("Reefs", parent=a)
    c = make_category("Coral", parent=b)

    with pytest.raises(CircularReferenceError):
        category_service.update_category(db, a.id, {"parent_id": c.id}, ADMIN)

    db.expire_all()
    assert crud_category.get_category(db, a.id).parent_id is None
    assert crud_category.get_parent_map(db) == {a.id: None, b.id: a.id, c.id: b.id}

def test_cycle_walk_terminates_on_corrupted_chain():
    # 2 -> 3 -> 2 already loops; a new category pointing at 2 must not hang
    parent_map = {1: None, 2: 3, 3: 2}

    with pytest.raises(CircularReferenceError) as exc_info:
        check_no_cycle(CategoryCandidate(None, "New", 2), parent_map)

    assert exc_info.value.context["chain"] == [2, 3, 2]

def test_parent_chains_always_terminate(db, make_category):
    roots = [make_category(f"Root {i}") for i in range(3)]
    level1 = [make_category(f"L1 {i}", parent=roots[i % 3]) for i in range(4)]
    for i in range(4):
        make_category(f"L2 {i}", parent=level1[i])
    # attempted re-parenting that would loop is refused
    with pytest.raises(CircularReferenceError):
        category_service.move_category(db, roots[0].id, level1[0].id, ADMIN)

    parent_map = crud_category.get_parent_map(db)
    total = len(parent_map)
    for category_id in parent_map:
        current, steps = category_id, 0
        while parent_map[current] is not None:
            current = parent_map[current]
            steps += 1
            assert steps <= total
        assert db.get(Category, current).parent_id is None
