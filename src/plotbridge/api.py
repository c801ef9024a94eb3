"""User-facing API entrypoints for plotbridge."""

from collections.abc import Mapping

from plotbridge.config import DEFAULT_SHUTDOWN_TIMEOUT_SECONDS
from plotbridge.config import SessionConfig
from plotbridge.config import load_session_config
from plotbridge.plotting import Plotter
from plotbridge.session import PlotSession


def open_session(
    backend: str | None = None,
    start_method: str = "spawn",
    shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    extra_modules: Mapping[str, str] | None = None,
) -> PlotSession:
    """Start the plotting runtime and return the open session.

    :param backend: Rendering backend such as ``Agg``; ``PLOTBRIDGE_BACKEND`` is used when omitted.
    :param start_method: ``multiprocessing`` start method for the runtime process.
    :param shutdown_timeout_seconds: Join timeout used while closing.
    :param extra_modules: Additional ``alias -> module`` imports made at open.
    :returns: Open session; close it with :func:`close_session` or a ``with`` block.
    :raises SessionAlreadyActiveError: If another session is open in this process.
    """
    config: SessionConfig = load_session_config(
        backend=backend,
        start_method=start_method,
        shutdown_timeout_seconds=shutdown_timeout_seconds,
        extra_modules=extra_modules,
    )
    return PlotSession(config).open()


def close_session(session: PlotSession) -> bool:
    """Close one session.

    :param session: Session to close.
    :returns: ``True`` when the session was open and is now closed.
    """
    was_open: bool = session.is_open
    session.close()
    return was_open


def plotter(session: PlotSession) -> Plotter:
    """Return the pyplot-style facade bound to ``session``.

    :param session: Open session.
    :returns: Plotter.
    """
    return Plotter(session)
