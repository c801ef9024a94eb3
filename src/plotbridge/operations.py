"""Closed table of plotting operations and the generic operation caller.

Each entry names the runtime callable, where it is looked up, and how string
keyword values are coerced before the call. Adding an operation means adding
a row here; the call path itself never changes.
"""

from collections.abc import Iterable
from collections.abc import Mapping
from typing import TYPE_CHECKING

from plotbridge.dispatch import call
from plotbridge.dispatch import get_attribute
from plotbridge.errors import UnknownOperationError
from plotbridge.marshalling import ArgumentBuffer
from plotbridge.marshalling import KeywordCoercion
from plotbridge.marshalling import keyword_map
from plotbridge.refs import BorrowedRef
from plotbridge.refs import ForeignRef
from plotbridge.refs import HandleLike
from plotbridge.refs import NewRef

if TYPE_CHECKING:
    from plotbridge.session import PlotSession

# Owner that the caller supplies per call instead of a session module alias.
TARGET_OWNER: str = "target"


class Operation:
    """One row of the operation table."""

    operation_id: str
    callable_name: str
    owner: str
    owner_attribute: str | None
    coercions: dict[str, KeywordCoercion]

    def __init__(
        self,
        operation_id: str,
        callable_name: str,
        owner: str = "pyplot",
        coercions: Mapping[str, KeywordCoercion] | None = None,
        owner_attribute: str | None = None,
    ) -> None:
        """Initialize an operation row.

        :param operation_id: Table key.
        :param callable_name: Attribute name of the runtime callable.
        :param owner: Session module alias, or ``"target"`` for a caller-supplied object.
        :param coercions: Keyword coercion rules.
        :param owner_attribute: Attribute read from the owner before the callable lookup.
        """
        self.operation_id = operation_id
        self.callable_name = callable_name
        self.owner = owner
        self.coercions = dict(coercions or {})
        self.owner_attribute = owner_attribute

    def __repr__(self) -> str:
        return (
            f"Operation(operation_id={self.operation_id!r}, callable_name={self.callable_name!r}, "
            + f"owner={self.owner!r}, coercions={self.coercions!r})"
        )


def _pyplot_operations(names: Iterable[str]) -> list[Operation]:
    """Build rows that call a pyplot function of the same name.

    :param names: Pyplot function names.
    :returns: Operation rows.
    """
    return [Operation(name, name) for name in names]


def _target_operations(prefix: str, names: Iterable[str]) -> list[Operation]:
    """Build rows that call a method on a caller-supplied object.

    :param prefix: Id prefix such as ``axes``.
    :param names: Method names.
    :returns: Operation rows keyed ``prefix.name``.
    """
    return [Operation(f"{prefix}.{name}", name, owner=TARGET_OWNER) for name in names]


def _build_table(operations: Iterable[Operation]) -> dict[str, Operation]:
    """Index operation rows by id.

    :param operations: Rows in table order.
    :returns: Table keyed by operation id.
    :raises ValueError: If two rows share an id.
    """
    table: dict[str, Operation] = {}
    for operation in operations:
        if operation.operation_id in table:
            raise ValueError(f"Duplicate operation id: {operation.operation_id}")
        table[operation.operation_id] = operation
    return table


OPERATIONS: dict[str, Operation] = _build_table(
    [
        *_pyplot_operations(
            [
                "plot",
                "scatter",
                "hist",
                "bar",
                "barh",
                "errorbar",
                "semilogx",
                "semilogy",
                "loglog",
                "axhline",
                "axvline",
                "legend",
                "title",
                "suptitle",
                "xlabel",
                "ylabel",
                "xlim",
                "ylim",
                "xticks",
                "yticks",
                "margins",
                "axis",
                "grid",
                "text",
                "annotate",
                "figure",
                "fignum_exists",
                "subplots",
                "subplot",
                "gca",
                "gcf",
                "twinx",
                "twiny",
                "savefig",
                "show",
                "close",
                "clf",
                "cla",
                "draw",
                "pause",
                "tight_layout",
            ]
        ),
        Operation("fill_between", "fill_between", coercions={"alpha": "float"}),
        Operation("axvspan", "axvspan", coercions={"linewidth": "float", "alpha": "float"}),
        Operation(
            "arrow",
            "arrow",
            coercions={
                "width": "float",
                "head_width": "float",
                "head_length": "float",
                "overhang": "float",
                "length_includes_head": "bool",
                "head_starts_at_zero": "bool",
            },
        ),
        Operation(
            "rcparams",
            "update",
            coercions={"text.usetex": "int"},
            owner_attribute="rcParams",
        ),
        *_target_operations(
            "axes",
            [
                "plot",
                "set_title",
                "set_xlabel",
                "set_ylabel",
                "set_xlim",
                "set_ylim",
                "get_xlim",
                "get_ylim",
                "set_xticks",
                "set_yticks",
                "axhline",
                "axvline",
                "hlines",
                "vlines",
                "legend",
                "grid",
                "twinx",
                "twiny",
                "cla",
            ],
        ),
        *_target_operations("figure", ["savefig", "suptitle", "tight_layout"]),
    ]
)


def get_operation(operation_id: str) -> Operation:
    """Look up one operation.

    :param operation_id: Table key such as ``plot`` or ``axes.set_title``.
    :returns: Operation row.
    :raises UnknownOperationError: If the id is not in the table.
    """
    operation: Operation | None = OPERATIONS.get(operation_id)
    if operation is None:
        raise UnknownOperationError(operation_id)
    return operation


def _resolve_owner(session: "PlotSession", operation: Operation, target: HandleLike | None) -> HandleLike:
    """Pick the object an operation is looked up on.

    :param session: Open session.
    :param operation: Operation row.
    :param target: Caller-supplied object, for ``target`` rows.
    :returns: Owner cell or view.
    :raises ValueError: If ``target`` is missing or not allowed.
    """
    if operation.owner == TARGET_OWNER:
        if target is None:
            raise ValueError(f"Operation {operation.operation_id!r} requires a target object")
        return target
    if target is not None:
        raise ValueError(f"Operation {operation.operation_id!r} is bound to module {operation.owner!r}")
    return session.module(operation.owner)


def call_operation(
    session: "PlotSession",
    operation_id: str,
    args: Iterable[object] = (),
    keywords: Mapping[str, object] | None = None,
    target: HandleLike | None = None,
) -> BorrowedRef:
    """Marshal arguments, call one table operation, and return its result.

    :param session: Open session.
    :param operation_id: Table key.
    :param args: Native positional arguments, cells or views.
    :param keywords: Keyword values, coerced per the table row.
    :param target: Object the operation runs on, for ``target`` rows.
    :returns: Owned result cell.
    :raises UnknownOperationError: If the id is not in the table.
    :raises CallFailedError: If the runtime call raised.
    """
    operation: Operation = get_operation(operation_id)
    owner: HandleLike = _resolve_owner(session, operation, target)
    attribute_owner: NewRef | None = None
    if operation.owner_attribute is not None:
        attribute_owner = get_attribute(session, owner, operation.owner_attribute)
        owner = attribute_owner

    args_ref: ForeignRef | None = None
    kwargs_ref: ForeignRef | None = None
    try:
        with ArgumentBuffer(session) as buffer:
            buffer.extend(args)
            if len(buffer) > 0:
                args_ref = buffer.to_tuple()
        if keywords is not None and len(keywords) > 0:
            kwargs_ref = keyword_map(session, keywords, operation.coercions)
        return call(session, operation.callable_name, owner, args=args_ref, kwargs=kwargs_ref)
    finally:
        if kwargs_ref is not None:
            kwargs_ref.release()
        if args_ref is not None:
            args_ref.release()
        if attribute_owner is not None:
            attribute_owner.release()
