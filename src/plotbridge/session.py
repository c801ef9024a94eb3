"""Caller-side session: runtime process lifecycle and request transport."""

import atexit
import logging
import multiprocessing
import threading
from multiprocessing.connection import Connection
from typing import ClassVar

from plotbridge.config import SessionConfig
from plotbridge.config import load_session_config
from plotbridge.dispatch import call
from plotbridge.errors import BridgeProtocolError
from plotbridge.errors import InvalidHandleError
from plotbridge.errors import RuntimeRemoteError
from plotbridge.errors import SessionAlreadyActiveError
from plotbridge.errors import SessionNotInitializedError
from plotbridge.errors import SymbolNotFoundError
from plotbridge.errors import UnsupportedValueError
from plotbridge.marshalling import ArgumentBuffer
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import NewRef
from plotbridge.worker import worker_entry

logger = logging.getLogger(__name__)

# Runtime-side error names that map back onto local error classes.
_LOCAL_ERROR_TYPES: dict[str, type[Exception]] = {
    "InvalidHandleError": InvalidHandleError,
    "SymbolNotFoundError": SymbolNotFoundError,
    "BridgeProtocolError": BridgeProtocolError,
    "UnsupportedValueError": UnsupportedValueError,
}


class PlotSession:
    """Own one runtime process and the module references imported into it.

    At most one session may be open per process. Every component that talks
    to the runtime takes the session as an explicit constructor argument.
    """

    _guard_lock: ClassVar[threading.Lock] = threading.Lock()
    _active_count: ClassVar[int] = 0

    _config: SessionConfig
    _connection: Connection | None
    _process: multiprocessing.process.BaseProcess | None
    _next_request_id: int
    _is_open: bool
    _is_closed: bool
    _holds_guard: bool
    _lock: threading.RLock
    _modules: dict[str, NewRef]
    _in_request: bool
    _deferred_releases: list[int]

    def __init__(self, config: SessionConfig | None = None) -> None:
        """Initialize an unopened session.

        :param config: Session configuration; defaults are loaded when omitted.
        """
        if config is None:
            config = load_session_config()
        self._config = config
        self._connection = None
        self._process = None
        self._next_request_id = 1
        self._is_open = False
        self._is_closed = False
        self._holds_guard = False
        self._lock = threading.RLock()
        self._modules = {}
        self._in_request = False
        self._deferred_releases = []

    @classmethod
    def active_count(cls) -> int:
        """Return how many sessions are currently open in this process.

        :returns: ``0`` or ``1``.
        """
        with cls._guard_lock:
            return cls._active_count

    @property
    def config(self) -> SessionConfig:
        """Return the session configuration.

        :returns: Configuration.
        """
        return self._config

    @property
    def is_open(self) -> bool:
        """Report whether the runtime is up and usable.

        :returns: ``True`` between a successful ``open`` and ``close``.
        """
        return self._is_open

    @property
    def is_closed(self) -> bool:
        """Report whether this session has been closed.

        :returns: ``True`` once ``close`` ran.
        """
        return self._is_closed

    def _acquire_guard(self) -> None:
        """Claim the process-wide single-session slot.

        :raises SessionAlreadyActiveError: If another session is open.
        """
        with PlotSession._guard_lock:
            if PlotSession._active_count != 0:
                raise SessionAlreadyActiveError(
                    f"A plotbridge session is already active (active sessions: {PlotSession._active_count})"
                )
            PlotSession._active_count += 1
            self._holds_guard = True

    def _release_guard(self) -> None:
        """Give the process-wide session slot back if this session holds it."""
        with PlotSession._guard_lock:
            if self._holds_guard is True:
                PlotSession._active_count -= 1
                self._holds_guard = False

    def open(self) -> "PlotSession":
        """Start the runtime and import the fixed module set.

        :returns: This session.
        :raises SessionAlreadyActiveError: If any session is already open.
        :raises SessionNotInitializedError: If this session was already closed.
        :raises SymbolNotFoundError: If a module cannot be imported.
        """
        with self._lock:
            if self._is_closed is True:
                raise SessionNotInitializedError("Session was closed and cannot be reopened")
            self._acquire_guard()
            try:
                self._start_process()
                self._is_open = True
                self._import_modules()
            except BaseException:
                self.close()
                raise
            atexit.register(self.close)
            logger.debug("[session] opened backend=%s modules=%s", self._config.backend, sorted(self._modules))
            return self

    def _start_process(self) -> None:
        """Spawn the runtime process and wait for its ready marker."""
        context = multiprocessing.get_context(self._config.start_method)
        parent_connection, child_connection = context.Pipe(duplex=True)
        process = context.Process(target=worker_entry, args=(child_connection,))
        process.daemon = True
        process.start()
        child_connection.close()

        self._connection = parent_connection
        self._process = process

        response: dict[str, object] = self._wait_for_response(expected_request_id=0)
        payload: object = response.get("payload")
        if isinstance(payload, dict) is False or payload.get("ready") is not True:
            raise BridgeProtocolError("Startup payload missing ready marker")

    def _import_modules(self) -> None:
        """Import every configured module, selecting the backend before pyplot."""
        for alias, module_name in self._config.modules:
            self._modules[alias] = NewRef(self, self.import_module(module_name), nullable=False)
            if alias == "matplotlib" and self._config.backend is not None:
                self._select_backend(self._config.backend)

    def _select_backend(self, backend: str) -> None:
        """Call ``matplotlib.use`` in the runtime.

        :param backend: Backend name such as ``Agg``.
        """
        with ArgumentBuffer(self) as buffer:
            buffer.append(backend)
            with buffer.to_tuple() as args:
                with call(self, "use", self.module("matplotlib"), args=args):
                    pass

    def module(self, alias: str) -> BorrowedHandle:
        """Return a view of one imported module.

        :param alias: Module alias such as ``pyplot``.
        :returns: Borrowed view owned by the session.
        :raises SessionNotInitializedError: If the session is not open.
        :raises SymbolNotFoundError: If the alias was not imported.
        """
        if self._is_closed is True:
            raise SessionNotInitializedError("Session is closed")
        if self._is_open is False:
            raise SessionNotInitializedError("Session is not open")
        module_ref: NewRef | None = self._modules.get(alias)
        if module_ref is None:
            raise SymbolNotFoundError(f"Session has no module aliased {alias!r}")
        return module_ref.borrow()

    def _require_connection(self) -> Connection:
        """Return the active IPC connection.

        :returns: Active connection object.
        :raises SessionNotInitializedError: If the session is not open.
        """
        if self._is_closed is True:
            raise SessionNotInitializedError("Session is closed")
        connection: Connection | None = self._connection
        if connection is None:
            raise SessionNotInitializedError("Session is not open")
        return connection

    def _raise_runtime_error(self, payload: dict[str, object]) -> None:
        """Raise a local exception from a runtime error payload.

        :param payload: Error payload dictionary.
        :raises RuntimeRemoteError: For runtime exceptions without a local counterpart.
        """
        error_type_obj: object = payload.get("error_type", "Exception")
        error_message_obj: object = payload.get("error_message", "")
        stacktrace_obj: object = payload.get("stacktrace", "")

        error_type: str = "Exception"
        if isinstance(error_type_obj, str) is True:
            error_type = error_type_obj
        error_message: str = ""
        if isinstance(error_message_obj, str) is True:
            error_message = error_message_obj
        stacktrace: str = ""
        if isinstance(stacktrace_obj, str) is True:
            stacktrace = stacktrace_obj

        local_type: type[Exception] | None = _LOCAL_ERROR_TYPES.get(error_type)
        if local_type is not None:
            raise local_type(error_message)
        raise RuntimeRemoteError(error_type, error_message, stacktrace)

    def _wait_for_response(self, expected_request_id: int) -> dict[str, object]:
        """Wait for one correlated runtime response.

        :param expected_request_id: Request id this side is waiting for.
        :returns: Response dictionary.
        :raises BridgeProtocolError: If the response shape is invalid or the pipe broke.
        """
        connection: Connection = self._require_connection()
        incoming: object
        try:
            incoming = connection.recv()
        except (EOFError, BrokenPipeError, OSError) as exc:
            raise BridgeProtocolError("Failed to receive message from runtime process") from exc

        if isinstance(incoming, dict) is False:
            raise BridgeProtocolError("Runtime message must be a dict")
        message: dict[str, object] = incoming

        request_id_obj: object = message.get("request_id")
        if isinstance(request_id_obj, int) is False:
            raise BridgeProtocolError("Runtime response request_id must be an int")
        if request_id_obj != expected_request_id:
            raise BridgeProtocolError(
                f"Unexpected response request_id {request_id_obj}; expected {expected_request_id}"
            )

        status: object = message.get("status")
        if status == "ok":
            return message
        if status != "error":
            raise BridgeProtocolError(f"Unknown runtime response status: {status!r}")

        payload_obj: object = message.get("payload")
        if isinstance(payload_obj, dict) is False:
            raise BridgeProtocolError("Error response payload must be a dict")
        self._raise_runtime_error(payload_obj)
        raise BridgeProtocolError("Unreachable runtime error state")

    def _send_request(self, action: str, payload: dict[str, object]) -> dict[str, object]:
        """Send one request and return the response payload.

        :param action: Action name.
        :param payload: Action payload.
        :returns: Response payload dictionary.
        """
        with self._lock:
            if self._is_open is False:
                raise SessionNotInitializedError("Session is not open")
            connection: Connection = self._require_connection()

            request_id: int = self._next_request_id
            self._next_request_id += 1
            request: dict[str, object] = {
                "request_id": request_id,
                "action": action,
            }
            request.update(payload)

            self._in_request = True
            try:
                try:
                    connection.send(request)
                except (BrokenPipeError, EOFError, OSError) as exc:
                    raise BridgeProtocolError("Failed to send request to runtime process") from exc
                response: dict[str, object] = self._wait_for_response(expected_request_id=request_id)
            finally:
                self._in_request = False

            self._flush_deferred_releases()
            response_payload: object = response.get("payload")
            if isinstance(response_payload, dict) is False:
                raise BridgeProtocolError(f"{action} payload must be a dict")
            return response_payload

    def release_from_finalizer(self, handle: int) -> None:
        """Discharge the obligation of a garbage-collected cell.

        Collection can happen while this thread waits for a response; such
        releases are queued and sent once the pending response has arrived.

        :param handle: Handle whose obligation is discharged.
        """
        with self._lock:
            if self._is_open is False:
                return
            if self._in_request is True:
                self._deferred_releases.append(handle)
                return
            self.decref(handle)

    def _flush_deferred_releases(self) -> None:
        """Send the releases queued while a request was in flight. Failures are logged."""
        pending: list[int] = self._deferred_releases
        self._deferred_releases = []
        for handle in pending:
            try:
                self.decref(handle)
            except (BridgeProtocolError, InvalidHandleError, SessionNotInitializedError) as exc:
                logger.warning("[session] deferred release of handle %s failed: %s", handle, exc)

    def _request_int(self, action: str, payload: dict[str, object], key: str) -> int:
        """Send one request and extract an integer field from the response.

        :param action: Action name.
        :param payload: Action payload.
        :param key: Response field holding the integer.
        :returns: Integer value.
        :raises BridgeProtocolError: If the field is missing or not an int.
        """
        response_payload: dict[str, object] = self._send_request(action, payload)
        value: object = response_payload.get(key)
        if isinstance(value, int) is False:
            raise BridgeProtocolError(f"{action} payload missing int {key}")
        return value

    def import_module(self, module_name: str) -> int:
        """Import a module in the runtime.

        :param module_name: Dotted module path.
        :returns: New handle; the caller owns one obligation.
        """
        return self._request_int("import_module", {"module_name": module_name}, "handle")

    def get_attr(self, handle: int, attr_name: str) -> int:
        """Look up an attribute on a runtime object.

        :param handle: Owner handle.
        :param attr_name: Attribute name.
        :returns: New handle; the caller owns one obligation.
        """
        return self._request_int("get_attr", {"handle": handle, "attr_name": attr_name}, "handle")

    def get_item(self, handle: int, index: object) -> int:
        """Subscript a runtime object.

        :param handle: Container handle.
        :param index: Plain index or key.
        :returns: New handle; the caller owns one obligation.
        """
        return self._request_int("get_item", {"handle": handle, "index": index}, "handle")

    def new_value(self, value: object) -> int:
        """Create a runtime object from plain data.

        :param value: Plain value.
        :returns: New handle; the caller owns one obligation.
        """
        return self._request_int("new_value", {"value": value}, "handle")

    def pack(self, kind: str, handles: list[int], steal: bool) -> int:
        """Build a tuple or list from existing handles.

        :param kind: ``tuple`` or ``list``.
        :param handles: Item handles in order.
        :param steal: Whether the container takes over the items' obligations.
        :returns: New handle; the caller owns one obligation.
        """
        return self._request_int("pack", {"kind": kind, "handles": handles, "steal": steal}, "handle")

    def dict_set_item(self, handle: int, key: str, value_handle: int) -> None:
        """Insert a runtime object into a runtime dict. Counts are unchanged.

        :param handle: Dict handle.
        :param key: String key.
        :param value_handle: Value handle.
        """
        self._send_request("dict_set_item", {"handle": handle, "key": key, "value_handle": value_handle})

    def call(self, handle: int, args_handle: int | None = None, kwargs_handle: int | None = None) -> int:
        """Invoke a runtime callable.

        :param handle: Callable handle.
        :param args_handle: Positional tuple handle or ``None``.
        :param kwargs_handle: Keyword dict handle or ``None``.
        :returns: New result handle; the caller owns one obligation.
        """
        return self._request_int(
            "call",
            {"handle": handle, "args_handle": args_handle, "kwargs_handle": kwargs_handle},
            "handle",
        )

    def incref(self, handle: int) -> int:
        """Add one obligation to a handle.

        :param handle: Handle.
        :returns: New count.
        """
        return self._request_int("incref", {"handle": handle}, "count")

    def decref(self, handle: int) -> int:
        """Discharge one obligation on a handle.

        :param handle: Handle.
        :returns: New count.
        """
        return self._request_int("decref", {"handle": handle}, "count")

    def ref_count(self, handle: int | None) -> int:
        """Return the runtime reference count of a handle.

        :param handle: Handle or ``None``.
        :returns: Count, ``0`` when the handle is null or not live.
        """
        if handle is None:
            return 0
        return self._request_int("ref_count", {"handle": handle}, "count")

    def read_value(self, handle: int) -> object:
        """Copy a runtime object back as plain data.

        :param handle: Handle.
        :returns: Plain value.
        """
        return self._send_request("read_value", {"handle": handle}).get("value")

    def live_handles(self) -> int:
        """Return how many handles the runtime currently tracks.

        :returns: Live handle count.
        """
        return self._request_int("live_handles", {}, "count")

    def close(self) -> None:
        """Release the module references and shut the runtime down, exactly once."""
        with self._lock:
            if self._is_closed is True:
                return
            try:
                self._release_modules()
            finally:
                self._is_open = False
                self._is_closed = True
                self._shutdown_process()
                self._release_guard()
                atexit.unregister(self.close)
                logger.debug("[session] closed")

    def _release_modules(self) -> None:
        """Release the module cells, newest first. A dead runtime only detaches them."""
        modules: list[NewRef] = list(self._modules.values())
        self._modules.clear()
        if self._is_open is False:
            for module_ref in modules:
                module_ref.detach()
            return
        for module_ref in reversed(modules):
            try:
                module_ref.release()
            except (BridgeProtocolError, InvalidHandleError) as exc:
                logger.warning("[session] module release failed during close: %s", exc)

    def _shutdown_process(self) -> None:
        """Ask the runtime to exit, then join it, terminating it after the timeout."""
        connection: Connection | None = self._connection
        process: multiprocessing.process.BaseProcess | None = self._process
        self._connection = None
        self._process = None

        if connection is not None:
            try:
                connection.send({"request_id": self._next_request_id, "action": "shutdown"})
                self._next_request_id += 1
            except (BrokenPipeError, EOFError, OSError):
                logger.debug("[session] runtime pipe already closed")
            try:
                connection.close()
            except OSError:
                logger.debug("[session] runtime pipe close failed")

        if process is not None:
            timeout: float = self._config.shutdown_timeout_seconds
            process.join(timeout=timeout)
            if process.is_alive() is True:
                logger.warning("[session] runtime did not exit within %.1fs; terminating", timeout)
                process.terminate()
                process.join(timeout=timeout)

    def __enter__(self) -> "PlotSession":
        if self._is_open is False:
            self.open()
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state: str = "open" if self._is_open else ("closed" if self._is_closed else "new")
        return f"PlotSession(state={state}, backend={self._config.backend!r})"
