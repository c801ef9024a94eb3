"""Custom error types for plotbridge."""


class PlotBridgeError(Exception):
    """Base class for all plotbridge errors."""


class InvalidHandleError(PlotBridgeError):
    """Raised when a null, unknown or released handle is used where a live one is required."""


class SymbolNotFoundError(PlotBridgeError):
    """Raised when a module or attribute cannot be resolved in the runtime."""


class ArgumentShapeMismatchError(PlotBridgeError):
    """Raised when paired argument sequences have different lengths."""


class SessionAlreadyActiveError(PlotBridgeError):
    """Raised when a session is opened while another one is still active."""


class SessionNotInitializedError(PlotBridgeError):
    """Raised when the runtime is used through a session that is not open."""


class DispatchStateError(PlotBridgeError):
    """Raised when a call dispatcher is driven out of order."""


class BufferConsumedError(PlotBridgeError):
    """Raised when an argument buffer is used after it was finalized."""


class BridgeProtocolError(PlotBridgeError):
    """Raised for unexpected messages on the caller/runtime IPC channel."""


class UnsupportedValueError(PlotBridgeError):
    """Raised when a runtime object cannot be read back as plain data."""


class UnknownOperationError(PlotBridgeError, KeyError):
    """Raised when an operation id is missing from the operation table."""


class RuntimeRemoteError(PlotBridgeError):
    """Raised when code running inside the runtime process raised.

    The runtime exception itself never crosses the pipe; only its class name,
    message and formatted traceback do.
    """

    remote_type_name: str
    remote_message: str
    remote_traceback: str

    def __init__(self, remote_type_name: str, remote_message: str, remote_traceback: str = "") -> None:
        """Initialize from the parts of a runtime error response.

        :param remote_type_name: Class name of the runtime exception.
        :param remote_message: Its message.
        :param remote_traceback: Traceback formatted inside the runtime, possibly empty.
        """
        self.remote_type_name = remote_type_name
        self.remote_message = remote_message
        self.remote_traceback = remote_traceback
        super().__init__(self._describe())

    def _headline(self) -> str:
        """Return the one-line summary used as the first line of the message.

        :returns: Summary line.
        """
        return f"{self.remote_type_name} in plotting runtime: {self.remote_message}"

    def _describe(self) -> str:
        """Return the full message, with the runtime traceback when there is one.

        :returns: Message text.
        """
        if len(self.remote_traceback.strip()) == 0:
            return self._headline()
        return f"{self._headline()}\n[runtime traceback]\n{self.remote_traceback.rstrip()}"


class CallFailedError(RuntimeRemoteError):
    """Raised when invoking a runtime callable produced no result."""

    callable_name: str

    def __init__(
        self,
        callable_name: str,
        remote_type_name: str,
        remote_message: str,
        remote_traceback: str = "",
    ) -> None:
        """Initialize a call failure.

        :param callable_name: Name of the callable that failed.
        :param remote_type_name: Class name of the runtime exception.
        :param remote_message: Its message.
        :param remote_traceback: Traceback formatted inside the runtime.
        """
        self.callable_name = callable_name
        super().__init__(remote_type_name, remote_message, remote_traceback)

    def _headline(self) -> str:
        """Return the summary line naming the failed callable.

        :returns: Summary line.
        """
        return f"Call to {self.callable_name!r} failed with {self.remote_type_name}: {self.remote_message}"
