"""Conversion of native values into runtime objects.

Every function here only allocates new runtime objects and returns a
``NewRef`` owning exactly one obligation for the result. Integral numbers
stay exact integers; other reals become floats.
"""

import numbers
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from typing import TYPE_CHECKING
from typing import Literal

from plotbridge.errors import ArgumentShapeMismatchError
from plotbridge.errors import BufferConsumedError
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import ForeignRef
from plotbridge.refs import NewRef
from plotbridge.refs import handle_of

if TYPE_CHECKING:
    from plotbridge.session import PlotSession

KeywordCoercion = Literal["float", "int", "bool", "str"]
Scalar = bool | int | float | str | None


def native_scalar(value: object) -> Scalar:
    """Normalize one native scalar to the plain type sent to the runtime.

    :param value: Native value.
    :returns: ``bool``, ``int``, ``float``, ``str`` or ``None``.
    :raises TypeError: If the value is not a supported scalar.
    """
    if value is None or isinstance(value, (bool, str)) is True:
        return value  # type: ignore[return-value]
    if isinstance(value, numbers.Integral) is True:
        return int(value)
    if isinstance(value, numbers.Real) is True:
        return float(value)
    raise TypeError(f"Cannot marshal {type(value).__qualname__} as a scalar")


def _is_sequence(value: object) -> bool:
    """Report whether a value is marshalled as a list rather than a scalar.

    Strings, bytes and mappings never count; array-likes and other
    iterables do.

    :param value: Native value.
    :returns: ``True`` for list-shaped values.
    """
    if isinstance(value, (str, bytes, Mapping)) is True:
        return False
    if isinstance(value, Sequence) is True:
        return True
    if hasattr(value, "tolist") is True and hasattr(value, "__len__") is True:
        return True
    return isinstance(value, Iterable)


def _as_list(value: object) -> list[object]:
    """Materialize a sequence, array-like or iterable as a list.

    :param value: Native list-shaped value.
    :returns: Elements in order.
    :raises TypeError: If the value is not list-shaped.
    """
    if _is_sequence(value) is False:
        raise TypeError(f"Cannot marshal {type(value).__qualname__} as a sequence")
    if isinstance(value, Sequence) is True:
        return list(value)
    if hasattr(value, "tolist") is True:
        converted: object = value.tolist()  # type: ignore[attr-defined]
        if isinstance(converted, list) is False:
            raise TypeError(f"Cannot marshal {type(value).__qualname__} as a sequence")
        return converted  # type: ignore[return-value]
    return list(value)  # type: ignore[call-overload]


def _plain_rows(rows: object) -> list[list[Scalar]]:
    """Convert native rows to plain lists, checking every row before anything is sent.

    :param rows: Native rows of scalars.
    :returns: Rows of plain scalars.
    :raises TypeError: If a row is not list-shaped or holds a non-scalar.
    """
    plain: list[list[Scalar]] = []
    for index, row in enumerate(_as_list(rows)):
        if _is_sequence(row) is False:
            raise TypeError(f"Row {index} is a {type(row).__qualname__}, expected a sequence of scalars")
        plain.append([native_scalar(item) for item in _as_list(row)])
    return plain


def scalar(session: "PlotSession", value: object) -> NewRef:
    """Create one runtime scalar.

    :param session: Open session.
    :param value: Number, boolean, string or ``None``.
    :returns: Owned cell for the new object.
    """
    return NewRef(session, session.new_value(native_scalar(value)), nullable=False)


def sequence(session: "PlotSession", values: Iterable[object]) -> NewRef:
    """Create a runtime list with every element converted by the scalar rule.

    :param session: Open session.
    :param values: Native scalars.
    :returns: Owned cell for the new list.
    :raises TypeError: If ``values`` is a string or holds a non-scalar.
    """
    if isinstance(values, (str, bytes)) is True:
        raise TypeError("sequence expects a sequence of scalars, not a string")
    items: list[Scalar] = [native_scalar(item) for item in _as_list(values)]
    return NewRef(session, session.new_value(items), nullable=False)


def sequence_of_sequences(session: "PlotSession", rows: Iterable[Iterable[object]]) -> NewRef:
    """Create a runtime list of lists.

    Each inner list is created as its own owned cell and then moved into the
    outer list without a further increment.

    :param session: Open session.
    :param rows: Native rows of scalars.
    :returns: Owned cell for the outer list.
    :raises TypeError: If a row is not a sequence of scalars.
    """
    plain_rows: list[list[Scalar]] = _plain_rows(rows)
    with ArgumentBuffer(session) as buffer:
        for row in plain_rows:
            buffer.append(sequence(session, row))
        return buffer.to_list()


def empty_tuple(session: "PlotSession") -> NewRef:
    """Create an empty runtime tuple.

    :param session: Open session.
    :returns: Owned cell for the tuple.
    """
    return NewRef(session, session.pack("tuple", [], steal=True), nullable=False)


def coerce_keyword(key: str, value: object, kind: KeywordCoercion) -> Scalar:
    """Apply one keyword coercion rule.

    :param key: Keyword name, used in error messages.
    :param value: Raw keyword value, usually a string.
    :param kind: Target kind.
    :returns: Coerced scalar.
    :raises ValueError: If the value cannot be parsed as ``kind``.
    """
    if isinstance(value, str) is False:
        value = native_scalar(value)
        if kind == "bool":
            return bool(value)
        if kind == "str":
            return str(value)
        if kind == "int":
            return int(value)  # type: ignore[arg-type]
        return float(value)  # type: ignore[arg-type]

    text: str = value
    if kind == "str":
        return text
    if kind == "bool":
        return text == "True"
    try:
        if kind == "int":
            return int(text.strip())
        if kind == "float":
            return float(text.strip())
    except ValueError as exc:
        raise ValueError(f"Keyword {key!r} expects {kind}, got {text!r}") from exc
    raise ValueError(f"Unknown keyword coercion {kind!r} for {key!r}")


def keyword_map(
    session: "PlotSession",
    keywords: Mapping[str, object] | None = None,
    coercions: Mapping[str, KeywordCoercion] | None = None,
) -> NewRef:
    """Create a runtime dict of keyword arguments.

    String values pass through as strings unless ``coercions`` names their
    key. Typed native values follow the scalar rule; flat sequences become
    lists. Cells and borrowed views are inserted as the objects they name.

    :param session: Open session.
    :param keywords: Keyword names mapped to values.
    :param coercions: Per-key coercion table.
    :returns: Owned cell for the dict.
    :raises TypeError: If a key is not a string or a value is unsupported.
    """
    plain_items: dict[str, object] = {}
    object_items: dict[str, ForeignRef | BorrowedHandle] = {}
    rules: Mapping[str, KeywordCoercion] = coercions if coercions is not None else {}

    for key, value in (keywords or {}).items():
        if isinstance(key, str) is False:
            raise TypeError("keyword names must be strings")
        if isinstance(value, (ForeignRef, BorrowedHandle)) is True:
            object_items[key] = value
            continue
        kind: KeywordCoercion | None = rules.get(key)
        if kind is not None:
            plain_items[key] = coerce_keyword(key, value, kind)
        elif _is_sequence(value) is True:
            plain_items[key] = [native_scalar(item) for item in _as_list(value)]
        else:
            plain_items[key] = native_scalar(value)

    kwargs: NewRef = NewRef(session, session.new_value(plain_items), nullable=False)
    try:
        for key, value in object_items.items():
            session.dict_set_item(kwargs.handle, key, handle_of(session, value))  # type: ignore[arg-type]
    except BaseException:
        kwargs.release()
        raise
    return kwargs


def check_paired_lengths(**sequences: Sequence[object]) -> int:
    """Require named sequences to share one length.

    :param sequences: Sequences keyed by argument name.
    :returns: The common length, ``0`` when nothing was passed.
    :raises ArgumentShapeMismatchError: If the lengths differ.
    """
    lengths: dict[str, int] = {name: len(values) for name, values in sequences.items()}
    distinct: set[int] = set(lengths.values())
    if len(distinct) > 1:
        described: str = ", ".join(f"{name} has {length}" for name, length in lengths.items())
        raise ArgumentShapeMismatchError(f"Paired sequences differ in length: {described}")
    if len(distinct) == 0:
        return 0
    return distinct.pop()


class ArgumentBuffer:
    """Append-only builder for positional arguments, finalized exactly once.

    Appended values are converted immediately and their obligations held by
    the buffer. Finalizing moves every obligation into the new container;
    releasing the buffer frees whatever was never finalized.
    """

    _session: "PlotSession"
    _cells: list[ForeignRef]
    _consumed: bool

    def __init__(self, session: "PlotSession") -> None:
        """Initialize an empty buffer.

        :param session: Open session.
        """
        self._session = session
        self._cells = []
        self._consumed = False

    def __len__(self) -> int:
        return len(self._cells)

    @property
    def consumed(self) -> bool:
        """Report whether the buffer was finalized or released.

        :returns: ``True`` when no further use is allowed.
        """
        return self._consumed

    def _require_unconsumed(self) -> None:
        if self._consumed is True:
            raise BufferConsumedError("Argument buffer was already finalized or released")

    def append(self, value: object) -> "ArgumentBuffer":
        """Convert one native value and hold its obligation.

        Cells are moved into the buffer and left empty; borrowed views are
        promoted with one increment.

        :param value: Scalar, sequence, sequence of sequences, cell or view.
        :returns: This buffer, for chaining.
        :raises BufferConsumedError: If the buffer was finalized.
        :raises TypeError: If the value cannot be marshalled.
        """
        self._require_unconsumed()
        self._cells.append(self._marshal(value))
        return self

    def extend(self, values: Iterable[object]) -> "ArgumentBuffer":
        """Append several values in order.

        :param values: Values to append.
        :returns: This buffer, for chaining.
        """
        for value in values:
            self.append(value)
        return self

    def _marshal(self, value: object) -> ForeignRef:
        """Convert one appended value into an owned cell.

        :param value: Native value, cell or view.
        :returns: Cell holding one obligation.
        """
        session: PlotSession = self._session
        if isinstance(value, ForeignRef) is True:
            handle_of(session, value)
            return NewRef(session, value.detach(), nullable=False)
        if isinstance(value, BorrowedHandle) is True:
            handle_of(session, value)
            return value.promote()
        if _is_sequence(value) is True:
            items: list[object] = _as_list(value)
            nested: bool = any(_is_sequence(item) for item in items)
            if nested is True:
                # Ragged rows fail inside sequence_of_sequences before any request.
                return sequence_of_sequences(session, items)  # type: ignore[arg-type]
            return sequence(session, items)
        return scalar(session, value)

    def to_tuple(self) -> NewRef:
        """Finalize into a runtime tuple.

        :returns: Owned cell for the tuple.
        :raises BufferConsumedError: If the buffer was already finalized.
        """
        return self._finalize("tuple")

    def to_list(self) -> NewRef:
        """Finalize into a runtime list.

        :returns: Owned cell for the list.
        :raises BufferConsumedError: If the buffer was already finalized.
        """
        return self._finalize("list")

    def _finalize(self, kind: str) -> NewRef:
        """Pack the held cells into one container, stealing their obligations.

        :param kind: ``tuple`` or ``list``.
        :returns: Owned cell for the container.
        """
        self._require_unconsumed()
        handles: list[int] = [handle_of(self._session, cell) for cell in self._cells]
        container: int = self._session.pack(kind, handles, steal=True)
        # The container now carries the obligations the cells held.
        for cell in self._cells:
            cell.detach()
        self._cells = []
        self._consumed = True
        return NewRef(self._session, container, nullable=False)

    def release(self) -> None:
        """Release every obligation not yet moved into a container."""
        cells: list[ForeignRef] = self._cells
        self._cells = []
        self._consumed = True
        for cell in cells:
            cell.release()

    def __enter__(self) -> "ArgumentBuffer":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.release()
