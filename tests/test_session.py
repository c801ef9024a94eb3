"""Tests for the session lifecycle and the single-session guard."""

import pytest

from plotbridge import close_session
from plotbridge import open_session
from plotbridge.config import SessionConfig
from plotbridge.errors import SessionAlreadyActiveError
from plotbridge.errors import SessionNotInitializedError
from plotbridge.errors import SymbolNotFoundError
from plotbridge.plotting import Plotter
from plotbridge.refs import BorrowedHandle
from plotbridge.session import PlotSession


def test_second_session_is_rejected_and_first_stays_usable(session_config: SessionConfig) -> None:
    """Verify the single-session guard."""
    first: PlotSession = PlotSession(session_config).open()
    second: PlotSession = PlotSession(session_config)
    try:
        assert PlotSession.active_count() == 1
        with pytest.raises(SessionAlreadyActiveError):
            second.open()

        assert first.is_open is True
        assert first.live_handles() >= 3
        assert second.is_open is False
        assert PlotSession.active_count() == 1
    finally:
        second.close()
        first.close()
    assert PlotSession.active_count() == 0


def test_closed_session_rejects_requests(session_config: SessionConfig) -> None:
    """Verify requests and reopening fail after close, and close is idempotent."""
    session: PlotSession = PlotSession(session_config).open()
    module_view: BorrowedHandle = session.module("pyplot")
    session.close()
    session.close()

    assert session.is_closed is True
    with pytest.raises(SessionNotInitializedError):
        session.live_handles()
    with pytest.raises(SessionNotInitializedError):
        session.incref(module_view.handle)
    with pytest.raises(SessionNotInitializedError):
        session.open()
    assert PlotSession.active_count() == 0


def test_unopened_session_rejects_requests(session_config: SessionConfig) -> None:
    """Verify that a session must be opened before use."""
    session: PlotSession = PlotSession(session_config)
    with pytest.raises(SessionNotInitializedError, match="not open"):
        session.new_value(1)
    session.close()


def test_context_manager_opens_and_closes(session_config: SessionConfig) -> None:
    """Verify the context manager lifecycle on normal and error exits."""
    with PlotSession(session_config) as session:
        assert session.is_open is True
        assert PlotSession.active_count() == 1
    assert session.is_closed is True
    assert PlotSession.active_count() == 0

    with pytest.raises(RuntimeError, match="inside"):
        with PlotSession(session_config) as failing:
            raise RuntimeError("inside")
    assert failing.is_closed is True
    assert PlotSession.active_count() == 0


def test_module_aliases(session: PlotSession) -> None:
    """Verify the fixed and configured module views."""
    for alias in ["matplotlib", "pyplot", "cm", "target"]:
        view: BorrowedHandle = session.module(alias)
        assert view.ref_count() >= 1
    with pytest.raises(SymbolNotFoundError, match="seaborn"):
        session.module("seaborn")


def test_missing_extra_module_fails_open_cleanly() -> None:
    """Verify that a failed open releases the guard."""
    with pytest.raises(SymbolNotFoundError, match="plotbridge_missing_module"):
        open_session(backend="Agg", extra_modules={"missing": "plotbridge_missing_module"})
    assert PlotSession.active_count() == 0


def test_functional_entry_points() -> None:
    """Verify ``open_session`` and ``close_session``."""
    session: PlotSession = open_session(backend="Agg")
    try:
        assert session.config.backend == "Agg"
        assert session.is_open is True
    finally:
        was_open: bool = close_session(session)
    assert was_open is True
    assert close_session(session) is False


def test_module_lookup_outside_open_session_is_lifecycle_misuse(session_config: SessionConfig) -> None:
    """Verify module views and facade calls on unopened or closed sessions."""
    unopened: PlotSession = PlotSession(session_config)
    with pytest.raises(SessionNotInitializedError, match="not open"):
        unopened.module("pyplot")
    unopened.close()

    session: PlotSession = PlotSession(session_config).open()
    session.close()
    with pytest.raises(SessionNotInitializedError, match="closed"):
        session.module("pyplot")
    with pytest.raises(SessionNotInitializedError):
        Plotter(session).plot([1, 2, 3])
