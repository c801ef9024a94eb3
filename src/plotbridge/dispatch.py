"""Call dispatch: resolve a named callable, invoke it once, hand back the result."""

import logging
from typing import TYPE_CHECKING
from typing import Literal

from plotbridge.errors import CallFailedError
from plotbridge.errors import DispatchStateError
from plotbridge.errors import RuntimeRemoteError
from plotbridge.marshalling import empty_tuple
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import BorrowedRef
from plotbridge.refs import HandleLike
from plotbridge.refs import NewRef
from plotbridge.refs import handle_of

if TYPE_CHECKING:
    from plotbridge.session import PlotSession

logger = logging.getLogger(__name__)

DispatchState = Literal["unresolved", "resolved", "invoked", "completed", "failed"]


class CallDescriptor:
    """Name of a callable plus the handle it is looked up on."""

    name: str
    owner: HandleLike

    def __init__(self, name: str, owner: HandleLike) -> None:
        """Initialize a descriptor.

        :param name: Attribute name of the callable on ``owner``.
        :param owner: Module or object the callable lives on.
        :raises ValueError: If ``name`` is empty.
        """
        if len(name) == 0:
            raise ValueError("callable name must be non-empty")
        self.name = name
        self.owner = owner

    def __repr__(self) -> str:
        return f"CallDescriptor(name={self.name!r}, owner={self.owner!r})"


class CallDispatcher:
    """Drive one call through ``unresolved -> resolved -> invoked -> completed | failed``.

    The dispatcher owns the callable obtained by :meth:`resolve` and the result
    produced by :meth:`invoke`. Both are released exactly once by
    :meth:`release`; a caller that wants the result afterwards must promote the
    view returned by :meth:`result`.
    """

    _session: "PlotSession"
    _descriptor: CallDescriptor
    _state: DispatchState
    _history: list[DispatchState]
    _resolve_failed: bool
    _function: NewRef | None
    _result: NewRef | None

    def __init__(self, session: "PlotSession", descriptor: CallDescriptor) -> None:
        """Initialize an unresolved dispatcher.

        :param session: Open session.
        :param descriptor: Callable to dispatch; consumed by this dispatcher.
        """
        self._session = session
        self._descriptor = descriptor
        self._state = "unresolved"
        self._history = ["unresolved"]
        self._resolve_failed = False
        self._function = None
        self._result = None

    @property
    def state(self) -> DispatchState:
        """Return the current dispatch state.

        :returns: State name.
        """
        return self._state

    @property
    def history(self) -> tuple[DispatchState, ...]:
        """Return every state this dispatcher has entered, in order.

        :returns: State names.
        """
        return tuple(self._history)

    @property
    def name(self) -> str:
        """Return the callable name.

        :returns: Name.
        """
        return self._descriptor.name

    def _enter(self, state: DispatchState) -> None:
        self._state = state
        self._history.append(state)

    def resolve(self) -> "CallDispatcher":
        """Look up the callable on its owner.

        After any lookup failure the dispatcher stays unresolved for good.

        :returns: This dispatcher.
        :raises SymbolNotFoundError: If the owner has no such attribute.
        :raises InvalidHandleError: If the owner was released.
        :raises DispatchStateError: If called in any state but unresolved.
        """
        if self._state != "unresolved" or self._resolve_failed is True:
            raise DispatchStateError(f"Cannot resolve {self.name!r} in state {self._state!r}")
        try:
            owner_handle: int = handle_of(self._session, self._descriptor.owner)
            function_handle: int = self._session.get_attr(owner_handle, self.name)
        except Exception as exc:
            self._resolve_failed = True
            logger.debug("[dispatch] resolving %s failed: %s", self.name, type(exc).__name__)
            raise
        self._function = NewRef(self._session, function_handle, nullable=False)
        self._enter("resolved")
        return self

    def invoke(self, args: HandleLike | None = None, kwargs: HandleLike | None = None) -> "CallDispatcher":
        """Call the resolved callable once.

        Passing ``kwargs`` without ``args`` synthesises an empty positional
        tuple. Cells passed as ``args``/``kwargs`` are not consumed.

        :param args: Foreign tuple of positional arguments, or ``None``.
        :param kwargs: Foreign dict of keyword arguments, or ``None``.
        :returns: This dispatcher.
        :raises DispatchStateError: If the dispatcher is not resolved.
        :raises CallFailedError: If the callable raised inside the runtime.
        """
        if self._state != "resolved" or self._function is None:
            if self._resolve_failed is True:
                raise DispatchStateError(f"Cannot invoke {self.name!r}: resolve failed")
            raise DispatchStateError(f"Cannot invoke {self.name!r} in state {self._state!r}")

        session: PlotSession = self._session
        args_handle: int | None = None
        kwargs_handle: int | None = None
        if args is not None:
            args_handle = handle_of(session, args)
        if kwargs is not None:
            kwargs_handle = handle_of(session, kwargs)

        self._enter("invoked")
        synthesized: NewRef | None = None
        try:
            if kwargs_handle is not None and args_handle is None:
                synthesized = empty_tuple(session)
                args_handle = synthesized.handle
            result_handle: int = session.call(self._function.handle, args_handle, kwargs_handle)  # type: ignore[arg-type]
        except RuntimeRemoteError as exc:
            self._enter("failed")
            logger.debug("[dispatch] %s failed: %s", self.name, exc.remote_type_name)
            raise CallFailedError(
                self.name,
                exc.remote_type_name,
                exc.remote_message,
                exc.remote_traceback,
            ) from exc
        except BaseException:
            self._enter("failed")
            raise
        finally:
            if synthesized is not None:
                synthesized.release()

        self._result = NewRef(session, result_handle, nullable=False)
        self._enter("completed")
        logger.debug("[dispatch] %s completed with handle %s", self.name, result_handle)
        return self

    def result(self) -> BorrowedHandle:
        """Return a view of the call result.

        :returns: Borrowed view, valid until :meth:`release`.
        :raises DispatchStateError: If the call has not completed.
        """
        if self._state != "completed" or self._result is None:
            raise DispatchStateError(f"No result for {self.name!r} in state {self._state!r}")
        return self._result.borrow()

    def release(self) -> None:
        """Release the callable and result obligations; later calls do nothing."""
        function: NewRef | None = self._function
        result: NewRef | None = self._result
        self._function = None
        self._result = None
        try:
            if result is not None:
                result.release()
        finally:
            if function is not None:
                function.release()

    def __enter__(self) -> "CallDispatcher":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"CallDispatcher(name={self.name!r}, state={self._state!r})"


def call(
    session: "PlotSession",
    name: str,
    owner: HandleLike,
    args: HandleLike | None = None,
    kwargs: HandleLike | None = None,
) -> BorrowedRef:
    """Resolve ``owner.name``, invoke it, and return an owned result.

    :param session: Open session.
    :param name: Callable name.
    :param owner: Module or object holding the callable.
    :param args: Foreign positional tuple or ``None``.
    :param kwargs: Foreign keyword dict or ``None``.
    :returns: Promoted result cell; the caller owns it.
    :raises SymbolNotFoundError: If ``name`` is missing on ``owner``.
    :raises CallFailedError: If the call raised inside the runtime.
    """
    with CallDispatcher(session, CallDescriptor(name, owner)) as dispatcher:
        dispatcher.resolve()
        dispatcher.invoke(args, kwargs)
        return dispatcher.result().promote()


def get_attribute(session: "PlotSession", owner: HandleLike, name: str) -> NewRef:
    """Look up a non-callable attribute.

    :param session: Open session.
    :param owner: Object holding the attribute.
    :param name: Attribute name.
    :returns: Owned cell for the attribute value.
    :raises SymbolNotFoundError: If the attribute is missing.
    """
    return NewRef(session, session.get_attr(handle_of(session, owner), name), nullable=False)
