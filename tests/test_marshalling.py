"""Tests for value marshalling and the argument buffer."""

from collections.abc import Iterator
from fractions import Fraction

import pytest

from plotbridge.errors import ArgumentShapeMismatchError
from plotbridge.errors import BufferConsumedError
from plotbridge.marshalling import ArgumentBuffer
from plotbridge.marshalling import check_paired_lengths
from plotbridge.marshalling import coerce_keyword
from plotbridge.marshalling import empty_tuple
from plotbridge.marshalling import keyword_map
from plotbridge.marshalling import native_scalar
from plotbridge.marshalling import scalar
from plotbridge.marshalling import sequence
from plotbridge.marshalling import sequence_of_sequences
from plotbridge.refs import NewRef
from plotbridge.session import PlotSession


def test_native_scalar_rules() -> None:
    """Verify the scalar conversion rule without a runtime."""
    assert native_scalar(True) is True
    assert native_scalar(7) == 7
    assert isinstance(native_scalar(7), int)
    assert native_scalar(Fraction(1, 4)) == 0.25
    assert native_scalar("x") == "x"
    assert native_scalar(None) is None
    with pytest.raises(TypeError, match="scalar"):
        native_scalar(object())


def test_keyword_coercion_rules() -> None:
    """Verify string keyword coercions."""
    assert coerce_keyword("alpha", "0.5", "float") == 0.5
    assert coerce_keyword("text.usetex", "1", "int") == 1
    assert coerce_keyword("length_includes_head", "True", "bool") is True
    assert coerce_keyword("length_includes_head", "true", "bool") is False
    assert coerce_keyword("length_includes_head", "1", "bool") is False
    assert coerce_keyword("color", "red", "str") == "red"
    assert coerce_keyword("alpha", 1, "float") == 1.0
    with pytest.raises(ValueError, match="alpha"):
        coerce_keyword("alpha", "opaque", "float")


def test_paired_lengths() -> None:
    """Verify the shape precondition used by high-level operations."""
    assert check_paired_lengths(x=[1, 2], y=[3, 4]) == 2
    assert check_paired_lengths() == 0
    with pytest.raises(ArgumentShapeMismatchError, match="x has 3, y has 2"):
        check_paired_lengths(x=[1, 2, 3], y=[3, 4])


def test_scalar_round_trip(session: PlotSession) -> None:
    """Verify scalars survive the boundary with the expected types."""
    values: list[object] = [3.25, 2**40, "label", True, None]
    for value in values:
        with scalar(session, value) as cell:
            assert session.read_value(cell.handle) == value

    with scalar(session, 12) as cell:
        round_tripped: object = session.read_value(cell.handle)
        assert isinstance(round_tripped, int)


def test_sequences_round_trip(session: PlotSession) -> None:
    """Verify flat and nested sequences keep their length and values."""
    with sequence(session, [1, 3, 2]) as flat:
        assert session.read_value(flat.handle) == [1, 3, 2]

    with sequence_of_sequences(session, [[1.0, 2.0], [3.0]]) as nested:
        assert session.read_value(nested.handle) == [[1.0, 2.0], [3.0]]
        assert nested.ref_count() == 1

    with pytest.raises(TypeError, match="string"):
        sequence(session, "abc")


def test_keyword_map_with_coercions(session: PlotSession) -> None:
    """Verify keyword values are strings unless a coercion names the key."""
    keywords: dict[str, object] = {"alpha": "0.5", "color": "red", "lw": 2}
    with keyword_map(session, keywords, {"alpha": "float"}) as kwargs:
        assert session.read_value(kwargs.handle) == {"alpha": 0.5, "color": "red", "lw": 2}

    with keyword_map(session) as empty:
        assert session.read_value(empty.handle) == {}


def test_keyword_map_inserts_runtime_objects(session: PlotSession) -> None:
    """Verify that cells are inserted as the objects they name."""
    with sequence(session, [4, 5]) as values:
        before: int = values.ref_count()
        with keyword_map(session, {"data": values}) as kwargs:
            assert session.read_value(kwargs.handle) == {"data": [4, 5]}
        assert values.ref_count() == before


def test_argument_buffer_builds_tuple(session: PlotSession) -> None:
    """Verify buffer finalization and ownership transfer."""
    with ArgumentBuffer(session) as buffer:
        buffer.append([1, 3, 2])
        assert len(buffer) == 1
        with buffer.to_tuple() as args:
            assert session.read_value(args.handle) == ([1, 3, 2],)
            assert args.ref_count() == 1
        assert buffer.consumed is True


def test_argument_buffer_moves_cells_and_promotes_views(session: PlotSession) -> None:
    """Verify that appended cells are moved and views are promoted."""
    with sequence(session, [9.5]) as kept:
        moved: NewRef = sequence(session, [1.5])
        moved_handle: int | None = moved.handle
        with ArgumentBuffer(session) as buffer:
            buffer.append(moved).append(kept.borrow()).extend([1, "s"])
            assert moved.handle is None
            assert kept.ref_count() == 2
            with buffer.to_list() as packed:
                assert session.read_value(packed.handle) == [[1.5], [9.5], 1, "s"]
                assert session.ref_count(moved_handle) == 0
                assert kept.ref_count() == 1
        assert kept.ref_count() == 1


def test_argument_buffer_is_single_use(session: PlotSession) -> None:
    """Verify that a finalized buffer rejects further use."""
    buffer: ArgumentBuffer = ArgumentBuffer(session)
    buffer.append(1.0)
    with buffer.to_tuple():
        pass
    with pytest.raises(BufferConsumedError):
        buffer.to_tuple()
    with pytest.raises(BufferConsumedError):
        buffer.append(2.0)


def test_released_buffer_frees_unconsumed_values(session: PlotSession) -> None:
    """Verify that releasing an unfinalized buffer leaves no live handles behind."""
    baseline: int = session.live_handles()
    with ArgumentBuffer(session) as buffer:
        buffer.extend([[1.0, 2.0], [[3.0], [4.0]]])
        assert session.live_handles() > baseline
    assert session.live_handles() == baseline


def test_unsupported_value_fails_before_any_request(session: PlotSession) -> None:
    """Verify unsupported native types are rejected locally."""
    baseline: int = session.live_handles()
    with ArgumentBuffer(session) as buffer:
        with pytest.raises(TypeError):
            buffer.append({"not": "supported"})
    assert session.live_handles() == baseline


def test_empty_tuple(session: PlotSession) -> None:
    """Verify the empty positional tuple."""
    with empty_tuple(session) as args:
        assert session.read_value(args.handle) == ()


def test_iterables_are_marshalled_as_lists(session: PlotSession) -> None:
    """Verify generators and other non-sequence iterables become runtime lists."""
    with sequence(session, (value for value in [1, 2, 3])) as flat:
        assert session.read_value(flat.handle) == [1, 2, 3]

    rows: Iterator[Iterator[float]] = (iter(row) for row in [[1.0, 2.0], [3.0]])
    with sequence_of_sequences(session, rows) as nested:
        assert session.read_value(nested.handle) == [[1.0, 2.0], [3.0]]

    with ArgumentBuffer(session) as buffer:
        buffer.append(range(3)).append(value * 2 for value in [1, 2])
        with buffer.to_tuple() as args:
            assert session.read_value(args.handle) == ([0, 1, 2], [2, 4])


def test_ragged_rows_fail_before_any_request(session: PlotSession) -> None:
    """Verify that a row mixing lists and scalars is rejected locally."""
    baseline: int = session.live_handles()
    with ArgumentBuffer(session) as buffer:
        with pytest.raises(TypeError, match="Row 1"):
            buffer.append([[1.0, 2.0], 3.0])
        assert len(buffer) == 0
    with pytest.raises(TypeError, match="Row 0"):
        sequence_of_sequences(session, [4.0, [5.0]])
    with pytest.raises(TypeError, match="scalar"):
        sequence_of_sequences(session, [[1.0], [object()]])
    assert session.live_handles() == baseline


def test_non_iterable_sequence_argument_is_a_type_error(session: PlotSession) -> None:
    """Verify that scalars and mappings are not accepted as sequences."""
    with pytest.raises(TypeError, match="sequence"):
        sequence(session, 5)  # type: ignore[arg-type]
    with pytest.raises(TypeError, match="sequence"):
        sequence(session, {"a": 1})
