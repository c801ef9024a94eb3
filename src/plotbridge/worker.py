"""Runtime-side host process for plotbridge.

The runtime owns every foreign object. The caller only ever sees integer
handles into :class:`HandleTable`, and every handle carries its own reference
count that changes only through ``store``/``incref``/``decref`` requests.
"""

import importlib
import numbers
import traceback
from multiprocessing.connection import Connection
from typing import Literal

from plotbridge.errors import BridgeProtocolError
from plotbridge.errors import InvalidHandleError
from plotbridge.errors import SymbolNotFoundError
from plotbridge.errors import UnsupportedValueError

PACK_KINDS: frozenset[str] = frozenset({"tuple", "list"})
ResponseStatus = Literal["ok", "error"]


class HandleTable:
    """Store runtime objects under integer handles with per-handle reference counts."""

    _objects: dict[int, object]
    _counts: dict[int, int]
    _by_identity: dict[int, int]
    _next_handle: int

    def __init__(self) -> None:
        """Initialize an empty handle table."""
        self._objects = {}
        self._counts = {}
        self._by_identity = {}
        self._next_handle = 1

    def __len__(self) -> int:
        return len(self._objects)

    def store(self, value: object) -> int:
        """Create one new obligation for ``value`` and return its handle.

        Storing an object that already has a handle returns that handle with
        its count incremented.

        :param value: Object to store.
        :returns: Handle for the object.
        """
        identity: int = id(value)
        existing: int | None = self._by_identity.get(identity)
        if existing is not None:
            self._counts[existing] += 1
            return existing

        handle: int = self._next_handle
        self._next_handle += 1
        self._objects[handle] = value
        self._counts[handle] = 1
        self._by_identity[identity] = handle
        return handle

    def get(self, handle: int) -> object:
        """Return the object behind a live handle.

        :param handle: Handle to resolve.
        :returns: Stored object.
        :raises InvalidHandleError: If the handle is unknown or released.
        """
        exists: bool = handle in self._objects
        if exists is False:
            raise InvalidHandleError(f"Unknown or released handle: {handle}")
        return self._objects[handle]

    def incref(self, handle: int) -> int:
        """Add one obligation to a live handle.

        :param handle: Handle to increment.
        :returns: New reference count.
        :raises InvalidHandleError: If the handle is unknown or released.
        """
        self.get(handle)
        self._counts[handle] += 1
        return self._counts[handle]

    def decref(self, handle: int) -> int:
        """Discharge one obligation, dropping the object when the count hits zero.

        :param handle: Handle to decrement.
        :returns: New reference count.
        :raises InvalidHandleError: If the handle is unknown or already released.
        """
        value: object = self.get(handle)
        remaining: int = self._counts[handle] - 1
        if remaining > 0:
            self._counts[handle] = remaining
            return remaining

        self._objects.pop(handle)
        self._counts.pop(handle)
        self._by_identity.pop(id(value), None)
        return 0

    def count(self, handle: int) -> int:
        """Return the reference count of a handle, ``0`` when it is not live.

        :param handle: Handle to inspect.
        :returns: Reference count.
        """
        return self._counts.get(handle, 0)

    def clear(self) -> None:
        """Drop every stored object."""
        self._objects.clear()
        self._counts.clear()
        self._by_identity.clear()


def _to_plain(value: object) -> object:
    """Convert a runtime object into plain data that can cross the pipe.

    :param value: Runtime object.
    :returns: Plain value.
    :raises UnsupportedValueError: If the object has no plain-data form.
    """
    if value is None or isinstance(value, (bool, str, bytes)) is True:
        return value
    if isinstance(value, numbers.Integral) is True:
        return int(value)
    if isinstance(value, numbers.Real) is True:
        return float(value)
    if isinstance(value, numbers.Complex) is True:
        return complex(value)
    if isinstance(value, list) is True:
        return [_to_plain(item) for item in value]
    if isinstance(value, tuple) is True:
        return tuple(_to_plain(item) for item in value)
    if isinstance(value, dict) is True:
        plain_dict: dict[object, object] = {}
        for key, item in value.items():
            plain_dict[_to_plain(key)] = _to_plain(item)
        return plain_dict
    raise UnsupportedValueError(f"Cannot read back {type(value).__qualname__} as plain data")


def _reply(connection: Connection, request_id: int, status: ResponseStatus, payload: dict[str, object]) -> bool:
    """Send one correlated response to the caller.

    :param connection: Runtime end of the pipe.
    :param request_id: Id of the request being answered, ``0`` for the ready marker.
    :param status: ``ok`` or ``error``.
    :param payload: Response body.
    :returns: ``False`` when the caller has already gone away.
    """
    try:
        connection.send({"request_id": request_id, "status": status, "payload": payload})
    except (BrokenPipeError, EOFError, OSError):
        return False
    return True


def _failure_payload(exc: BaseException, stacktrace: str = "") -> dict[str, object]:
    """Describe a runtime-side failure so the caller can rebuild it.

    Local plotbridge errors keep their class name and are re-raised as the
    same class on the caller side; anything else arrives as a remote error.

    :param exc: Exception raised while serving the request.
    :param stacktrace: Formatted traceback, empty for protocol rejections.
    :returns: Error payload.
    """
    return {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
        "stacktrace": stacktrace,
    }


def _require_request_id(message: dict[str, object]) -> int:
    """Extract and validate the request identifier.

    :param message: Request message.
    :returns: Request identifier.
    :raises BridgeProtocolError: If ``request_id`` is missing or invalid.
    """
    request_id: object = message.get("request_id")
    if isinstance(request_id, int) is False:
        raise BridgeProtocolError("request_id must be an integer")
    return request_id


def _require_str_field(message: dict[str, object], key: str) -> str:
    """Extract and validate a string field.

    :param message: Request message.
    :param key: Field name.
    :returns: String field value.
    :raises BridgeProtocolError: If the field is missing or invalid.
    """
    value: object = message.get(key)
    if isinstance(value, str) is False:
        raise BridgeProtocolError(f"{key} must be a string")
    return value


def _require_handle_field(message: dict[str, object], key: str) -> int:
    """Extract a non-null handle field.

    :param message: Request message.
    :param key: Field name.
    :returns: Handle value.
    :raises InvalidHandleError: If the handle is null.
    :raises BridgeProtocolError: If the field is not an integer.
    """
    value: object = message.get(key)
    if value is None:
        raise InvalidHandleError(f"{key} must not be a null handle")
    if isinstance(value, bool) is True or isinstance(value, int) is False:
        raise BridgeProtocolError(f"{key} must be an integer handle")
    return value


def _optional_handle_field(message: dict[str, object], key: str) -> int | None:
    """Extract a handle field that may be null.

    :param message: Request message.
    :param key: Field name.
    :returns: Handle value or ``None``.
    """
    if message.get(key) is None:
        return None
    return _require_handle_field(message, key)


class WorkerRuntime:
    """Own runtime-side protocol handling and the handle table."""

    _connection: Connection
    _table: HandleTable

    def __init__(self, connection: Connection) -> None:
        """Initialize runtime state.

        :param connection: Bidirectional IPC connection to the caller process.
        """
        self._connection = connection
        self._table = HandleTable()

    @property
    def table(self) -> HandleTable:
        """Return the handle table.

        :returns: Handle table.
        """
        return self._table

    def run(self) -> None:
        """Run the runtime message loop."""
        if _reply(self._connection, 0, "ok", {"ready": True}) is False:
            self._connection.close()
            return

        should_exit: bool = False
        while should_exit is False:
            try:
                incoming: object = self._connection.recv()
            except EOFError:
                break

            if isinstance(incoming, dict) is False:
                rejected: BridgeProtocolError = BridgeProtocolError("Incoming message must be a dict")
                _reply(self._connection, -1, "error", _failure_payload(rejected))
                continue

            should_exit = self._handle_incoming_request(incoming)

        self._table.clear()
        self._connection.close()

    def _handle_incoming_request(self, request_message: dict[str, object]) -> bool:
        """Handle one incoming request and emit a correlated response.

        :param request_message: Request dictionary.
        :returns: ``True`` when loop shutdown is requested.
        """
        try:
            request_id: int = _require_request_id(request_message)
            payload: dict[str, object] = self.execute_request(request_message)
            _reply(self._connection, request_id, "ok", payload)
            return payload.get("shutdown") is True
        except Exception as exc:
            request_id_fallback: int = -1
            request_id_obj: object = request_message.get("request_id")
            if isinstance(request_id_obj, int) is True:
                request_id_fallback = request_id_obj
            _reply(self._connection, request_id_fallback, "error", _failure_payload(exc, traceback.format_exc()))
            return False

    def execute_request(self, message: dict[str, object]) -> dict[str, object]:
        """Execute one request from the caller.

        :param message: Request message.
        :returns: Response payload.
        :raises BridgeProtocolError: If request fields are invalid.
        """
        action: str = _require_str_field(message, "action")

        if action == "import_module":
            module_name: str = _require_str_field(message, "module_name")
            try:
                module: object = importlib.import_module(module_name)
            except ImportError as exc:
                raise SymbolNotFoundError(f"Cannot import module {module_name!r}: {exc}") from exc
            return {"handle": self._table.store(module)}

        if action == "get_attr":
            owner: object = self._table.get(_require_handle_field(message, "handle"))
            attr_name: str = _require_str_field(message, "attr_name")
            try:
                attr_value: object = getattr(owner, attr_name)
            except AttributeError as exc:
                raise SymbolNotFoundError(
                    f"{type(owner).__qualname__} has no attribute {attr_name!r}"
                ) from exc
            return {"handle": self._table.store(attr_value)}

        if action == "get_item":
            container: object = self._table.get(_require_handle_field(message, "handle"))
            item: object = container[message.get("index")]  # type: ignore[index]
            return {"handle": self._table.store(item)}

        if action == "new_value":
            return {"handle": self._table.store(message.get("value"))}

        if action == "pack":
            return {"handle": self._pack(message)}

        if action == "dict_set_item":
            target: object = self._table.get(_require_handle_field(message, "handle"))
            if isinstance(target, dict) is False:
                raise BridgeProtocolError("dict_set_item target must be a dict")
            key: str = _require_str_field(message, "key")
            target[key] = self._table.get(_require_handle_field(message, "value_handle"))
            return {}

        if action == "call":
            return {"handle": self._call(message)}

        if action == "incref":
            return {"count": self._table.incref(_require_handle_field(message, "handle"))}

        if action == "decref":
            return {"count": self._table.decref(_require_handle_field(message, "handle"))}

        if action == "ref_count":
            handle_obj: object = message.get("handle")
            if isinstance(handle_obj, int) is False:
                return {"count": 0}
            return {"count": self._table.count(handle_obj)}

        if action == "read_value":
            value: object = self._table.get(_require_handle_field(message, "handle"))
            return {"value": _to_plain(value)}

        if action == "live_handles":
            return {"count": len(self._table)}

        if action == "shutdown":
            return {"shutdown": True}

        raise BridgeProtocolError(f"Unsupported action: {action}")

    def _pack(self, message: dict[str, object]) -> int:
        """Build a tuple or list from existing handles.

        With ``steal`` set, the obligations of the packed handles move into the
        container: each handle is decremented once after insertion.

        :param message: Request message.
        :returns: Handle of the new container.
        :raises BridgeProtocolError: If the kind or handle list is invalid.
        """
        kind: str = _require_str_field(message, "kind")
        if kind not in PACK_KINDS:
            raise BridgeProtocolError(f"pack kind must be one of: {', '.join(sorted(PACK_KINDS))}")
        handles_obj: object = message.get("handles")
        if isinstance(handles_obj, list) is False:
            raise BridgeProtocolError("handles must be a list")

        # Resolve everything first so a bad handle leaves every count untouched.
        items: list[object] = []
        for handle in handles_obj:
            if isinstance(handle, int) is False:
                raise InvalidHandleError("packed handles must be non-null integers")
            items.append(self._table.get(handle))

        container: object
        if kind == "tuple":
            container = tuple(items)
        else:
            container = list(items)
        container_handle: int = self._table.store(container)

        if message.get("steal") is True:
            for handle in handles_obj:
                self._table.decref(handle)
        return container_handle

    def _call(self, message: dict[str, object]) -> int:
        """Invoke a callable handle with an optional tuple and dict.

        :param message: Request message.
        :returns: Handle of the call result.
        :raises BridgeProtocolError: If keywords arrive without a positional tuple.
        """
        function: object = self._table.get(_require_handle_field(message, "handle"))
        args_handle: int | None = _optional_handle_field(message, "args_handle")
        kwargs_handle: int | None = _optional_handle_field(message, "kwargs_handle")
        if kwargs_handle is not None and args_handle is None:
            raise BridgeProtocolError("a positional tuple is required whenever keywords are present")

        args: object = ()
        if args_handle is not None:
            args = self._table.get(args_handle)
            if isinstance(args, tuple) is False:
                raise BridgeProtocolError("positional arguments must be a tuple")
        kwargs: object = {}
        if kwargs_handle is not None:
            kwargs = self._table.get(kwargs_handle)
            if isinstance(kwargs, dict) is False:
                raise BridgeProtocolError("keyword arguments must be a dict")

        if callable(function) is False:
            raise TypeError(f"{type(function).__qualname__!r} object is not callable")
        result: object = function(*args, **kwargs)  # type: ignore[operator]
        return self._table.store(result)


def worker_entry(connection: Connection) -> None:
    """Run the runtime message loop.

    :param connection: IPC connection from the caller process.
    """
    runtime: WorkerRuntime = WorkerRuntime(connection)
    runtime.run()
