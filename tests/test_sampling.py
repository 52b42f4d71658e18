import pytest

from fhir_tables.engine.sampling import UNBOUNDED, limit


@pytest.mark.parametrize("cap", [0, 1, 2, 5, 10])
def test_limit_is_an_order_preserving_prefix(cap):
    items = ["a", "b", "c", "d", "e"]
    result = limit(items, cap)
    assert len(result) == min(cap, len(items))
    assert result == items[: len(result)]


def test_unbounded_keeps_everything():
    items = [3, 1, 2]
    assert limit(items, UNBOUNDED) == items
    assert limit(items) == items


def test_does_not_mutate_input():
    items = [1, 2, 3]
    limit(items, 1)
    assert items == [1, 2, 3]


def test_returns_new_list_for_tuples():
    assert limit((1, 2, 3), 2) == [1, 2]


def test_negative_cap_rejected():
    with pytest.raises(ValueError):
        limit([1, 2], -1)
