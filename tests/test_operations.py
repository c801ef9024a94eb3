"""Tests for the operation table."""

import pytest

from plotbridge.errors import UnknownOperationError
from plotbridge.operations import OPERATIONS
from plotbridge.operations import TARGET_OWNER
from plotbridge.operations import Operation
from plotbridge.operations import get_operation


def test_keyword_coercions_are_table_data() -> None:
    """Verify the per-operation keyword coercion rules."""
    assert get_operation("fill_between").coercions == {"alpha": "float"}
    assert get_operation("axvspan").coercions == {"linewidth": "float", "alpha": "float"}
    arrow: Operation = get_operation("arrow")
    assert arrow.coercions["head_width"] == "float"
    assert arrow.coercions["overhang"] == "float"
    assert arrow.coercions["length_includes_head"] == "bool"
    assert arrow.coercions["head_starts_at_zero"] == "bool"
    assert get_operation("rcparams").coercions == {"text.usetex": "int"}
    assert get_operation("plot").coercions == {}


def test_rcparams_updates_through_pyplot_attribute() -> None:
    """Verify the rcparams row looks up ``update`` on ``pyplot.rcParams``."""
    operation: Operation = get_operation("rcparams")
    assert operation.owner == "pyplot"
    assert operation.owner_attribute == "rcParams"
    assert operation.callable_name == "update"


def test_axes_operations_run_on_a_target() -> None:
    """Verify that axes rows are looked up on a caller-supplied object."""
    operation: Operation = get_operation("axes.set_title")
    assert operation.owner == TARGET_OWNER
    assert operation.callable_name == "set_title"
    axes_ids: list[str] = [operation_id for operation_id in OPERATIONS if operation_id.startswith("axes.")]
    assert "axes.twinx" in axes_ids
    assert "axes.plot" in axes_ids


def test_unknown_operation_is_a_key_error() -> None:
    """Verify that unknown ids raise a ``KeyError``-compatible error."""
    with pytest.raises(UnknownOperationError):
        get_operation("contourf3d")
    with pytest.raises(KeyError):
        get_operation("")
