"""Tests for the call dispatcher and the call gateway."""

import pytest

from plotbridge.dispatch import CallDescriptor
from plotbridge.dispatch import CallDispatcher
from plotbridge.dispatch import call
from plotbridge.dispatch import get_attribute
from plotbridge.errors import CallFailedError
from plotbridge.errors import DispatchStateError
from plotbridge.errors import InvalidHandleError
from plotbridge.errors import RuntimeRemoteError
from plotbridge.errors import SymbolNotFoundError
from plotbridge.marshalling import ArgumentBuffer
from plotbridge.marshalling import keyword_map
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import BorrowedRef
from plotbridge.refs import NewRef
from plotbridge.session import PlotSession

TARGET_ALIAS: str = "target"


def _args(session: PlotSession, *values: object) -> NewRef:
    """Build a runtime positional tuple.

    :param session: Open session.
    :param values: Native values.
    :returns: Owned tuple cell.
    """
    with ArgumentBuffer(session) as buffer:
        buffer.extend(values)
        return buffer.to_tuple()


def test_plot_walks_every_state(session: PlotSession) -> None:
    """Verify the plot scenario from descriptor to a non-null result."""
    states: list[str] = []
    with _args(session, [1, 3, 2]) as args:
        assert session.read_value(args.handle) == ([1, 3, 2],)
        with keyword_map(session, {}) as kwargs:
            dispatcher: CallDispatcher = CallDispatcher(session, CallDescriptor("plot", session.module("pyplot")))
            with dispatcher:
                states.append(dispatcher.state)
                dispatcher.resolve()
                states.append(dispatcher.state)
                dispatcher.invoke(args, kwargs)
                states.append(dispatcher.state)
                result: BorrowedHandle = dispatcher.result()
                assert result.handle is not None
                assert result.ref_count() >= 1
    assert states == ["unresolved", "resolved", "completed"]
    assert dispatcher.history == ("unresolved", "resolved", "invoked", "completed")


def test_missing_symbol_is_terminal(session: PlotSession) -> None:
    """Verify resolve failure and the state error on a later invoke."""
    dispatcher: CallDispatcher = CallDispatcher(
        session,
        CallDescriptor("no_such_plot_function", session.module("pyplot")),
    )
    with pytest.raises(SymbolNotFoundError, match="no_such_plot_function"):
        dispatcher.resolve()
    assert dispatcher.state == "unresolved"

    with pytest.raises(DispatchStateError, match="resolve failed"):
        dispatcher.invoke()
    with pytest.raises(DispatchStateError):
        dispatcher.resolve()
    dispatcher.release()


def test_misuse_raises_state_errors(session: PlotSession) -> None:
    """Verify out-of-order calls raise ``DispatchStateError``."""
    with CallDispatcher(session, CallDescriptor("fresh_list", session.module(TARGET_ALIAS))) as dispatcher:
        with pytest.raises(DispatchStateError):
            dispatcher.invoke()
        with pytest.raises(DispatchStateError):
            dispatcher.result()

        dispatcher.resolve()
        with _args(session, 3) as args:
            dispatcher.invoke(args)
        assert session.read_value(dispatcher.result().handle) == [0, 1, 2]
        with pytest.raises(DispatchStateError):
            dispatcher.invoke()


def test_runtime_exception_becomes_call_failed(session: PlotSession) -> None:
    """Verify a raising callable moves the dispatcher to failed with full context."""
    with CallDispatcher(session, CallDescriptor("boom", session.module(TARGET_ALIAS))) as dispatcher:
        dispatcher.resolve()
        with _args(session, "kaboom") as args:
            with pytest.raises(CallFailedError) as exc_info:
                dispatcher.invoke(args)
        assert dispatcher.state == "failed"
        with pytest.raises(DispatchStateError):
            dispatcher.result()

    error: CallFailedError = exc_info.value
    assert error.callable_name == "boom"
    assert error.remote_type_name == "ValueError"
    assert error.remote_message == "kaboom"
    assert "Traceback" in error.remote_traceback
    assert str(error).startswith("Call to 'boom' failed with ValueError: kaboom\n[runtime traceback]\n")


def test_call_shapes(session: PlotSession) -> None:
    """Verify the four call shapes reach the runtime correctly."""
    owner: BorrowedHandle = session.module(TARGET_ALIAS)

    with call(session, "echo", owner) as no_args:
        assert session.read_value(no_args.handle) == {"args": [], "kwargs": {}}

    with _args(session, 1, "two") as args:
        with call(session, "echo", owner, args=args) as positional:
            assert session.read_value(positional.handle) == {"args": [1, "two"], "kwargs": {}}

        with keyword_map(session, {"scale": "2.5"}, {"scale": "float"}) as kwargs:
            with call(session, "echo", owner, args=args, kwargs=kwargs) as both:
                assert session.read_value(both.handle) == {"args": [1, "two"], "kwargs": {"scale": 2.5}}

            with call(session, "keywords_only", owner, kwargs=kwargs) as keywords_only:
                assert session.read_value(keywords_only.handle) == {"scale": 2.5}


def test_gateway_result_outlives_dispatcher(session: PlotSession) -> None:
    """Verify the gateway returns one promoted obligation and leaks nothing."""
    baseline: int = session.live_handles()
    with _args(session, "kept") as args:
        result: BorrowedRef = call(session, "make_tagged", session.module(TARGET_ALIAS), args=args)
    assert result.ref_count() == 1

    with get_attribute(session, result, "label") as label:
        assert session.read_value(label.handle) == "kept"
    with call(session, "describe", result) as described:
        assert session.read_value(described.handle) == "kept"

    result.release()
    assert session.live_handles() == baseline


def test_cells_passed_as_arguments_are_not_consumed(session: PlotSession) -> None:
    """Verify that invoking with a cell leaves the caller's obligation in place."""
    with _args(session, [1.5, 2.5]) as args:
        with call(session, "total", session.module(TARGET_ALIAS), args=args) as summed:
            assert session.read_value(summed.handle) == 4.0
        assert args.ref_count() == 1


def test_descriptor_requires_name(session: PlotSession) -> None:
    """Verify that descriptors need a callable name."""
    with pytest.raises(ValueError, match="non-empty"):
        CallDescriptor("", session.module("pyplot"))


def test_released_owner_makes_resolve_terminal(session: PlotSession) -> None:
    """Verify that any lookup failure leaves the dispatcher unusable."""
    owner: NewRef = NewRef(session, session.new_value([1.0]))
    dispatcher: CallDispatcher = CallDispatcher(session, CallDescriptor("append", owner))
    owner.release()

    with pytest.raises(InvalidHandleError):
        dispatcher.resolve()
    assert dispatcher.state == "unresolved"
    with pytest.raises(DispatchStateError):
        dispatcher.resolve()
    with pytest.raises(DispatchStateError, match="resolve failed"):
        dispatcher.invoke()
    dispatcher.release()


def test_remote_error_message_without_traceback() -> None:
    """Verify the message of a runtime error that carries no traceback."""
    error: RuntimeRemoteError = RuntimeRemoteError("KeyError", "'missing'")
    assert str(error) == "KeyError in plotting runtime: 'missing'"
    assert error.remote_traceback == ""
