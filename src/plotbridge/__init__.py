"""Public package API for plotbridge."""

from plotbridge.api import close_session
from plotbridge.api import open_session
from plotbridge.api import plotter
from plotbridge.dispatch import CallDescriptor
from plotbridge.dispatch import CallDispatcher
from plotbridge.dispatch import call
from plotbridge.errors import ArgumentShapeMismatchError
from plotbridge.errors import BridgeProtocolError
from plotbridge.errors import BufferConsumedError
from plotbridge.errors import CallFailedError
from plotbridge.errors import DispatchStateError
from plotbridge.errors import InvalidHandleError
from plotbridge.errors import PlotBridgeError
from plotbridge.errors import RuntimeRemoteError
from plotbridge.errors import SessionAlreadyActiveError
from plotbridge.errors import SessionNotInitializedError
from plotbridge.errors import SymbolNotFoundError
from plotbridge.errors import UnknownOperationError
from plotbridge.errors import UnsupportedValueError
from plotbridge.marshalling import ArgumentBuffer
from plotbridge.plotting import Axes
from plotbridge.plotting import AxesGrid
from plotbridge.plotting import Figure
from plotbridge.plotting import Plotter
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import BorrowedRef
from plotbridge.refs import ForeignRef
from plotbridge.refs import NewRef
from plotbridge.session import PlotSession

__all__: list[str] = [
    "close_session",
    "open_session",
    "plotter",
    "CallDescriptor",
    "CallDispatcher",
    "call",
    "ArgumentShapeMismatchError",
    "BridgeProtocolError",
    "BufferConsumedError",
    "CallFailedError",
    "DispatchStateError",
    "InvalidHandleError",
    "PlotBridgeError",
    "RuntimeRemoteError",
    "SessionAlreadyActiveError",
    "SessionNotInitializedError",
    "SymbolNotFoundError",
    "UnknownOperationError",
    "UnsupportedValueError",
    "ArgumentBuffer",
    "Axes",
    "AxesGrid",
    "Figure",
    "Plotter",
    "BorrowedHandle",
    "BorrowedRef",
    "ForeignRef",
    "NewRef",
    "PlotSession",
]
