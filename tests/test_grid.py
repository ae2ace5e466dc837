"""Tests for grid coordinate helpers"""
import pytest

from rtscom.models.grid import (
    GridPosition, col_to_label, grid_distance, label_to_col, label_to_position, manhattan_distance,
    position_to_label, positions_equal,
)


@pytest.mark.parametrize("col,label", [(0, "A"), (13, "N"), (25, "Z"), (26, "AA"), (27, "AB"), (701, "ZZ"), (702, "AAA")])
def test_column_labels(col, label):
    assert col_to_label(col) == label
    assert label_to_col(label) == col


def test_position_labels():
    assert position_to_label(GridPosition(col=13, row=14)) == "N15"
    assert label_to_position("n15") == GridPosition(col=13, row=14)
    assert label_to_position(" AA1 ") == GridPosition(col=26, row=0)


@pytest.mark.parametrize("label", ["", "15", "N", "N-1", "1N"])
def test_invalid_labels(label):
    with pytest.raises(ValueError):
        label_to_position(label)


def test_distances():
    a = GridPosition(0, 0)
    b = GridPosition(3, 4)

    assert grid_distance(a, b) == 5.0
    assert manhattan_distance(a, b) == 7
    assert positions_equal(b, GridPosition(3, 4))
    assert not positions_equal(a, b)


def test_position_dict_and_key():
    pos = GridPosition.from_dict({"col": "4", "row": 2.0})

    assert pos == GridPosition(4, 2)
    assert pos.to_dict() == {"col": 4, "row": 2}
    assert pos.key == "4,2"
    assert len({GridPosition(1, 1), GridPosition(1, 1)}) == 1
