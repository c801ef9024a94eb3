"""Reference cells: single-owner wrappers around runtime handles.

A cell owns exactly one decrement obligation for the handle it wraps.
``NewRef`` takes over an obligation that already exists, ``BorrowedRef``
creates a fresh one with an increment at construction. ``BorrowedHandle`` is
a plain, non-owning view; it becomes a cell only through ``promote()``.
"""

import logging
import weakref
from typing import TYPE_CHECKING

from plotbridge.errors import BridgeProtocolError
from plotbridge.errors import InvalidHandleError
from plotbridge.errors import SessionNotInitializedError

if TYPE_CHECKING:
    from plotbridge.session import PlotSession

logger = logging.getLogger(__name__)


def _release_from_finalizer(session_ref: "weakref.ReferenceType[PlotSession]", handle: int) -> None:
    """Discharge the obligation of a cell that was garbage collected unreleased.

    :param session_ref: Weak reference to the owning session.
    :param handle: Handle whose obligation is discharged.
    """
    session: PlotSession | None = session_ref()
    if session is None or session.is_open is False:
        return
    try:
        session.release_from_finalizer(handle)
    except (BridgeProtocolError, InvalidHandleError, SessionNotInitializedError) as exc:
        logger.warning("[refs] finalizer release of handle %s failed: %s", handle, exc)


class ForeignRef:
    """Own the decrement obligation for one runtime handle, or for nothing."""

    _session: "PlotSession"
    _handle: int | None
    _finalizer: weakref.finalize | None

    def __init__(self, session: "PlotSession", handle: int | None, nullable: bool = True) -> None:
        """Wrap a handle whose obligation now belongs to this cell.

        :param session: Session the handle lives in.
        :param handle: Runtime handle, or ``None`` for an empty cell.
        :param nullable: Whether ``None`` is accepted.
        :raises InvalidHandleError: If ``handle`` is ``None`` and ``nullable`` is false.
        """
        if handle is None and nullable is False:
            raise InvalidHandleError(f"{type(self).__name__} requires a non-null handle")
        self._session = session
        self._handle = None
        self._finalizer = None
        self._adopt(handle)

    def _adopt(self, handle: int | None) -> None:
        """Take over ``handle`` and arm the garbage-collection release for it.

        :param handle: Handle to own, or ``None``.
        """
        self._handle = handle
        if handle is not None:
            self._finalizer = weakref.finalize(
                self,
                _release_from_finalizer,
                weakref.ref(self._session),
                handle,
            )
            self._finalizer.atexit = False

    @property
    def session(self) -> "PlotSession":
        """Return the owning session.

        :returns: Session.
        """
        return self._session

    @property
    def handle(self) -> int | None:
        """Return the wrapped handle without transferring ownership.

        :returns: Handle or ``None``.
        """
        return self._handle

    def __bool__(self) -> bool:
        return self._handle is not None

    def detach(self) -> int | None:
        """Hand the obligation to the caller without decrementing.

        :returns: The handle that was held, or ``None``.
        """
        handle: int | None = self._handle
        self._handle = None
        finalizer: weakref.finalize | None = self._finalizer
        self._finalizer = None
        if finalizer is not None:
            finalizer.detach()
        return handle

    def release(self) -> None:
        """Discharge the obligation once; later calls do nothing."""
        handle: int | None = self.detach()
        if handle is None:
            return
        if self._session.is_open is False:
            # The runtime is gone and took every object with it.
            logger.debug("[refs] handle %s outlived its session", handle)
            return
        self._session.decref(handle)

    def reset(self, handle: int | None) -> None:
        """Release the current obligation, then take over ``handle``.

        :param handle: New handle whose obligation this cell takes over.
        """
        self.release()
        self._adopt(handle)

    def borrow(self) -> "BorrowedHandle":
        """Return a non-owning view of the wrapped handle.

        :returns: Borrowed view.
        :raises InvalidHandleError: If the cell is empty.
        """
        if self._handle is None:
            raise InvalidHandleError("Cannot borrow from an empty reference cell")
        return BorrowedHandle(self._session, self._handle)

    def ref_count(self) -> int:
        """Return the runtime reference count of the wrapped handle.

        :returns: Count, ``0`` for an empty cell.
        """
        if self._handle is None:
            return 0
        return self._session.ref_count(self._handle)

    def __enter__(self) -> "ForeignRef":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(handle={self._handle!r})"


class NewRef(ForeignRef):
    """Cell for a handle whose obligation the caller already carries. No increment."""


class BorrowedRef(ForeignRef):
    """Cell for a handle the caller does not own; increments once at construction."""

    def __init__(self, session: "PlotSession", handle: int | None, nullable: bool = True) -> None:
        """Create a fresh obligation for a borrowed handle.

        :param session: Session the handle lives in.
        :param handle: Borrowed runtime handle, or ``None``.
        :param nullable: Whether ``None`` is accepted.
        :raises InvalidHandleError: If ``handle`` is ``None`` and ``nullable`` is false.
        """
        if handle is None and nullable is False:
            raise InvalidHandleError(f"{type(self).__name__} requires a non-null handle")
        if handle is not None:
            session.incref(handle)
        super().__init__(session, handle, nullable=nullable)


class BorrowedHandle:
    """Non-owning view of a live handle. It never releases anything."""

    _session: "PlotSession"
    _handle: int

    def __init__(self, session: "PlotSession", handle: int) -> None:
        """Initialize a view.

        :param session: Session the handle lives in.
        :param handle: Handle owned by someone else.
        :raises InvalidHandleError: If ``handle`` is ``None``.
        """
        if handle is None:
            raise InvalidHandleError("BorrowedHandle requires a non-null handle")
        self._session = session
        self._handle = handle

    @property
    def session(self) -> "PlotSession":
        """Return the owning session.

        :returns: Session.
        """
        return self._session

    @property
    def handle(self) -> int:
        """Return the viewed handle.

        :returns: Handle.
        """
        return self._handle

    def promote(self) -> BorrowedRef:
        """Take an obligation of our own with one explicit increment.

        :returns: Owned cell for the same handle.
        """
        return BorrowedRef(self._session, self._handle, nullable=False)

    def ref_count(self) -> int:
        """Return the runtime reference count of the viewed handle.

        :returns: Count.
        """
        return self._session.ref_count(self._handle)

    def __repr__(self) -> str:
        return f"BorrowedHandle(handle={self._handle!r})"


HandleLike = ForeignRef | BorrowedHandle


def handle_of(session: "PlotSession", value: HandleLike) -> int:
    """Return the live handle behind a cell or view of ``session``.

    :param session: Session the handle must belong to.
    :param value: Cell or view.
    :returns: Non-null handle.
    :raises InvalidHandleError: If the value is empty or belongs to another session.
    :raises TypeError: If the value is not a cell or view.
    """
    if isinstance(value, (ForeignRef, BorrowedHandle)) is False:
        raise TypeError(f"Expected a reference cell or borrowed handle, got {type(value).__qualname__}")
    if value.session is not session:
        raise InvalidHandleError("Cannot pass handles between different sessions")
    handle: int | None = value.handle
    if handle is None:
        raise InvalidHandleError("Empty reference cell used where a handle is required")
    return handle
