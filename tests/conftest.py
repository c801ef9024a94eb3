"""Shared fixtures for plotbridge tests."""

from collections.abc import Iterator

import pytest

from plotbridge.config import SessionConfig
from plotbridge.config import load_session_config
from plotbridge.session import PlotSession

TARGET_ALIAS: str = "target"
TARGET_MODULE: str = "tests.fixtures.runtime_target"


@pytest.fixture
def session_config() -> SessionConfig:
    """Return a headless configuration that also imports the runtime-side helpers.

    :returns: Session configuration.
    """
    return load_session_config(backend="Agg", extra_modules={TARGET_ALIAS: TARGET_MODULE})


@pytest.fixture
def session(session_config: SessionConfig) -> Iterator[PlotSession]:
    """Open one session for the duration of a test.

    :param session_config: Session configuration.
    :yields: Open session.
    """
    active: PlotSession = PlotSession(session_config).open()
    try:
        yield active
    finally:
        active.close()
