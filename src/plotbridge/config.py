"""Session configuration for plotbridge."""

import os
from collections.abc import Mapping
from typing import Literal

StartMethod = Literal["spawn", "forkserver", "fork"]
BACKEND_ENV_VAR: str = "PLOTBRIDGE_BACKEND"
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS: float = 2.0
# Alias -> module path. Import order matters: the backend is selected on
# ``matplotlib`` before ``matplotlib.pyplot`` is imported.
FIXED_MODULES: tuple[tuple[str, str], ...] = (
    ("matplotlib", "matplotlib"),
    ("pyplot", "matplotlib.pyplot"),
    ("cm", "matplotlib.cm"),
)


class SessionConfig:
    """Validated settings for one runtime session."""

    backend: str | None
    start_method: StartMethod
    shutdown_timeout_seconds: float
    extra_modules: dict[str, str]

    def __init__(
        self,
        backend: str | None,
        start_method: StartMethod,
        shutdown_timeout_seconds: float,
        extra_modules: dict[str, str],
    ) -> None:
        """Initialize a configuration value.

        :param backend: Rendering backend passed to ``matplotlib.use`` or ``None``.
        :param start_method: ``multiprocessing`` start method for the runtime process.
        :param shutdown_timeout_seconds: Join timeout used while closing.
        :param extra_modules: Additional ``alias -> module`` imports made at open.
        """
        self.backend = backend
        self.start_method = start_method
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.extra_modules = dict(extra_modules)

    @property
    def modules(self) -> list[tuple[str, str]]:
        """Return every ``(alias, module)`` pair imported at open, in import order.

        :returns: Fixed modules followed by extra modules.
        """
        ordered: list[tuple[str, str]] = list(FIXED_MODULES)
        ordered.extend(self.extra_modules.items())
        return ordered

    def __repr__(self) -> str:
        return (
            f"SessionConfig(backend={self.backend!r}, start_method={self.start_method!r}, "
            + f"shutdown_timeout_seconds={self.shutdown_timeout_seconds!r}, "
            + f"extra_modules={self.extra_modules!r})"
        )


def _validate_backend(backend: str | None) -> str | None:
    """Normalize a backend name, falling back to the environment.

    :param backend: Requested backend or ``None``.
    :returns: Backend name or ``None`` for the runtime default.
    :raises ValueError: If the backend name is blank.
    """
    if backend is None:
        env_backend: str | None = os.environ.get(BACKEND_ENV_VAR)
        if env_backend is None:
            return None
        backend = env_backend

    normalized: str = backend.strip()
    if len(normalized) == 0:
        raise ValueError("backend must be a non-empty string")
    return normalized


def _validate_start_method(start_method: str) -> StartMethod:
    """Validate and normalize a start method.

    :param start_method: Requested start method.
    :returns: Validated start method.
    :raises ValueError: If the start method is unsupported.
    """
    if start_method == "spawn":
        return "spawn"
    if start_method == "forkserver":
        return "forkserver"
    if start_method == "fork":
        return "fork"
    raise ValueError("start_method must be one of: fork, forkserver, spawn")


def _validate_extra_modules(extra_modules: Mapping[str, str] | None) -> dict[str, str]:
    """Validate extra module aliases.

    :param extra_modules: Optional ``alias -> module`` mapping.
    :returns: Normalized mapping.
    :raises ValueError: If an alias is blank or collides with the fixed module set.
    """
    if extra_modules is None:
        return {}

    fixed_aliases: set[str] = {alias for alias, _ in FIXED_MODULES}
    normalized: dict[str, str] = {}
    for alias, module_name in extra_modules.items():
        if len(alias.strip()) == 0 or len(module_name.strip()) == 0:
            raise ValueError("extra_modules aliases and module names must be non-empty")
        if alias in fixed_aliases:
            raise ValueError(f"extra_modules alias {alias!r} collides with a fixed module")
        normalized[alias] = module_name.strip()
    return normalized


def load_session_config(
    backend: str | None = None,
    start_method: str = "spawn",
    shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    extra_modules: Mapping[str, str] | None = None,
) -> SessionConfig:
    """Build a validated session configuration.

    :param backend: Rendering backend; ``PLOTBRIDGE_BACKEND`` is used when omitted.
    :param start_method: ``multiprocessing`` start method.
    :param shutdown_timeout_seconds: Join timeout used while closing.
    :param extra_modules: Additional ``alias -> module`` imports made at open.
    :returns: Validated configuration.
    :raises ValueError: If any setting is invalid.
    """
    if shutdown_timeout_seconds <= 0:
        raise ValueError("shutdown_timeout_seconds must be positive")
    return SessionConfig(
        backend=_validate_backend(backend),
        start_method=_validate_start_method(start_method),
        shutdown_timeout_seconds=float(shutdown_timeout_seconds),
        extra_modules=_validate_extra_modules(extra_modules),
    )
