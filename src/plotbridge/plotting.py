"""Thin plotting facade over the operation table.

Nothing here talks to the runtime directly: every method builds native
values, validates paired sequences and goes through
:func:`plotbridge.operations.call_operation`.
"""

from collections.abc import Mapping
from collections.abc import Sequence
from typing import TYPE_CHECKING

from plotbridge.dispatch import get_attribute
from plotbridge.marshalling import check_paired_lengths
from plotbridge.operations import call_operation
from plotbridge.refs import BorrowedHandle
from plotbridge.refs import ForeignRef
from plotbridge.refs import NewRef

if TYPE_CHECKING:
    from plotbridge.session import PlotSession


def _run(
    session: "PlotSession",
    operation_id: str,
    args: Sequence[object] = (),
    keywords: Mapping[str, object] | None = None,
    target: ForeignRef | None = None,
) -> None:
    """Call one operation and drop its result.

    :param session: Open session.
    :param operation_id: Table key.
    :param args: Positional values.
    :param keywords: Keyword values.
    :param target: Object the operation runs on, for ``target`` rows.
    """
    with call_operation(session, operation_id, args, keywords, target):
        pass


def _read(
    session: "PlotSession",
    operation_id: str,
    args: Sequence[object] = (),
    keywords: Mapping[str, object] | None = None,
    target: ForeignRef | None = None,
) -> object:
    """Call one operation and copy its result back as plain data.

    :param session: Open session.
    :param operation_id: Table key.
    :param args: Positional values.
    :param keywords: Keyword values.
    :param target: Object the operation runs on, for ``target`` rows.
    :returns: Plain result.
    """
    with call_operation(session, operation_id, args, keywords, target) as result:
        return session.read_value(result.handle)  # type: ignore[arg-type]


def _limits(value: object) -> tuple[float, float]:
    """Normalize a runtime limits pair.

    :param value: Value read back from the runtime.
    :returns: ``(low, high)`` as floats.
    :raises TypeError: If the value is not a pair.
    """
    if isinstance(value, (list, tuple)) is False or len(value) != 2:  # type: ignore[arg-type]
        raise TypeError(f"Expected a (low, high) pair, got {value!r}")
    low, high = value  # type: ignore[misc]
    return float(low), float(high)


class _Owned:
    """Facade object that owns one runtime reference."""

    _session: "PlotSession"
    _ref: ForeignRef

    def __init__(self, session: "PlotSession", ref: ForeignRef) -> None:
        """Wrap an owned reference.

        :param session: Open session.
        :param ref: Cell whose obligation this object takes over.
        """
        self._session = session
        self._ref = ref

    @property
    def ref(self) -> ForeignRef:
        """Return the owned cell.

        :returns: Cell.
        """
        return self._ref

    def borrow(self) -> BorrowedHandle:
        """Return a view usable as an argument or keyword value.

        :returns: Borrowed view.
        """
        return self._ref.borrow()

    def release(self) -> None:
        """Release the runtime reference."""
        self._ref.release()

    def __enter__(self) -> "_Owned":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._ref!r})"


class Figure(_Owned):
    """A runtime figure."""

    @property
    def number(self) -> int:
        """Return the figure number.

        :returns: Figure number.
        """
        with get_attribute(self._session, self._ref, "number") as number:
            value: object = self._session.read_value(number.handle)  # type: ignore[arg-type]
        return int(value)  # type: ignore[arg-type]

    def savefig(self, filename: str, dpi: int = 100, **keywords: object) -> None:
        """Render this figure to ``filename``.

        :param filename: Output path as seen by the runtime process.
        :param dpi: Resolution.
        :param keywords: Extra ``savefig`` keywords.
        """
        keywords.setdefault("dpi", dpi)
        _run(self._session, "figure.savefig", [filename], keywords, target=self._ref)

    def suptitle(self, text: str, **keywords: object) -> None:
        """Set the figure title.

        :param text: Title text.
        :param keywords: Text properties.
        """
        _run(self._session, "figure.suptitle", [text], keywords, target=self._ref)

    def tight_layout(self) -> None:
        """Adjust subplot spacing."""
        _run(self._session, "figure.tight_layout", target=self._ref)


class Axes(_Owned):
    """A runtime axes object."""

    def plot(self, x: Sequence[object], y: Sequence[object] | None = None, fmt: str = "", **keywords: object) -> None:
        """Plot ``y`` against ``x``, or ``x`` against its indices.

        :param x: X values, or the Y values when ``y`` is omitted.
        :param y: Y values.
        :param fmt: Matplotlib format string.
        :param keywords: Line properties.
        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        args: list[object] = [x]
        if y is not None:
            check_paired_lengths(x=x, y=y)
            args.append(y)
        if len(fmt) > 0:
            args.append(fmt)
        _run(self._session, "axes.plot", args, keywords, target=self._ref)

    def set_title(self, text: str, **keywords: object) -> None:
        """Set the axes title.

        :param text: Title text.
        :param keywords: Text properties.
        """
        _run(self._session, "axes.set_title", [text], keywords, target=self._ref)

    def set_xlabel(self, text: str, **keywords: object) -> None:
        """Set the x axis label."""
        _run(self._session, "axes.set_xlabel", [text], keywords, target=self._ref)

    def set_ylabel(self, text: str, **keywords: object) -> None:
        """Set the y axis label."""
        _run(self._session, "axes.set_ylabel", [text], keywords, target=self._ref)

    def set_xlim(self, left: float, right: float) -> None:
        """Set the x limits.

        :param left: Left limit.
        :param right: Right limit.
        """
        _run(self._session, "axes.set_xlim", [left, right], target=self._ref)

    def set_ylim(self, bottom: float, top: float) -> None:
        """Set the y limits.

        :param bottom: Bottom limit.
        :param top: Top limit.
        """
        _run(self._session, "axes.set_ylim", [bottom, top], target=self._ref)

    def get_xlim(self) -> tuple[float, float]:
        """Return the x limits.

        :returns: ``(left, right)``.
        """
        return _limits(_read(self._session, "axes.get_xlim", target=self._ref))

    def get_ylim(self) -> tuple[float, float]:
        """Return the y limits.

        :returns: ``(bottom, top)``.
        """
        return _limits(_read(self._session, "axes.get_ylim", target=self._ref))

    def set_xticks(self, ticks: Sequence[float], labels: Sequence[str] | None = None, **keywords: object) -> None:
        """Set x tick positions and, optionally, their labels.

        :param ticks: Tick positions.
        :param labels: One label per tick.
        :param keywords: Text properties for the labels.
        :raises ArgumentShapeMismatchError: If ``labels`` does not match ``ticks``.
        """
        args: list[object] = [ticks]
        if labels is not None and len(labels) > 0:
            check_paired_lengths(ticks=ticks, labels=labels)
            args.append(labels)
        _run(self._session, "axes.set_xticks", args, keywords, target=self._ref)

    def set_yticks(self, ticks: Sequence[float], labels: Sequence[str] | None = None, **keywords: object) -> None:
        """Set y tick positions and, optionally, their labels.

        :raises ArgumentShapeMismatchError: If ``labels`` does not match ``ticks``.
        """
        args: list[object] = [ticks]
        if labels is not None and len(labels) > 0:
            check_paired_lengths(ticks=ticks, labels=labels)
            args.append(labels)
        _run(self._session, "axes.set_yticks", args, keywords, target=self._ref)

    def axhline(self, y: float, xmin: float = 0.0, xmax: float = 1.0, **keywords: object) -> None:
        """Draw a horizontal line across the axes."""
        _run(self._session, "axes.axhline", [y, xmin, xmax], keywords, target=self._ref)

    def axvline(self, x: float, ymin: float = 0.0, ymax: float = 1.0, **keywords: object) -> None:
        """Draw a vertical line across the axes."""
        _run(self._session, "axes.axvline", [x, ymin, ymax], keywords, target=self._ref)

    def hlines(self, y: float, xmin: float, xmax: float, **keywords: object) -> None:
        """Draw a horizontal line between ``xmin`` and ``xmax`` in data coordinates."""
        _run(self._session, "axes.hlines", [y, xmin, xmax], keywords, target=self._ref)

    def vlines(self, x: float, ymin: float, ymax: float, **keywords: object) -> None:
        """Draw a vertical line between ``ymin`` and ``ymax`` in data coordinates."""
        _run(self._session, "axes.vlines", [x, ymin, ymax], keywords, target=self._ref)

    def legend(self, **keywords: object) -> None:
        """Place a legend on the axes."""
        _run(self._session, "axes.legend", keywords=keywords, target=self._ref)

    def grid(self, visible: bool = True, **keywords: object) -> None:
        """Toggle the grid lines."""
        _run(self._session, "axes.grid", [visible], keywords, target=self._ref)

    def twinx(self) -> "Axes":
        """Create a sibling axes sharing this one's x axis.

        :returns: New owned axes.
        """
        return Axes(self._session, call_operation(self._session, "axes.twinx", target=self._ref))

    def twiny(self) -> "Axes":
        """Create a sibling axes sharing this one's y axis.

        :returns: New owned axes.
        """
        return Axes(self._session, call_operation(self._session, "axes.twiny", target=self._ref))

    def cla(self) -> None:
        """Clear the axes."""
        _run(self._session, "axes.cla", target=self._ref)


class AxesGrid(_Owned):
    """The array of axes returned by a multi-cell ``subplots`` call."""

    @property
    def shape(self) -> tuple[int, ...]:
        """Return the grid shape.

        :returns: Shape tuple.
        """
        with get_attribute(self._session, self._ref, "shape") as shape:
            value: object = self._session.read_value(shape.handle)  # type: ignore[arg-type]
        return tuple(int(size) for size in value)  # type: ignore[union-attr]

    def __getitem__(self, index: int | tuple[int, int]) -> Axes:
        """Return one cell of the grid.

        :param index: Flat index for a single row or column, ``(row, col)`` otherwise.
        :returns: New owned axes.
        """
        handle: int = self._session.get_item(self._ref.handle, index)  # type: ignore[arg-type]
        return Axes(self._session, NewRef(self._session, handle, nullable=False))


class Plotter:
    """Pyplot-style entry point bound to one session."""

    _session: "PlotSession"

    def __init__(self, session: "PlotSession") -> None:
        """Initialize a plotter.

        :param session: Open session.
        """
        self._session = session

    @property
    def session(self) -> "PlotSession":
        """Return the session.

        :returns: Session.
        """
        return self._session

    def plot(self, x: Sequence[object], y: Sequence[object] | None = None, fmt: str = "", **keywords: object) -> None:
        """Plot ``y`` against ``x``, or ``x`` against its indices.

        :param x: X values, or the Y values when ``y`` is omitted.
        :param y: Y values.
        :param fmt: Matplotlib format string.
        :param keywords: Line properties.
        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        args: list[object] = [x]
        if y is not None:
            check_paired_lengths(x=x, y=y)
            args.append(y)
        if len(fmt) > 0:
            args.append(fmt)
        _run(self._session, "plot", args, keywords)

    def semilogx(self, x: Sequence[float], y: Sequence[float], fmt: str = "", **keywords: object) -> None:
        """Plot with a logarithmic x axis.

        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        self._paired_xy("semilogx", x, y, fmt, keywords)

    def semilogy(self, x: Sequence[float], y: Sequence[float], fmt: str = "", **keywords: object) -> None:
        """Plot with a logarithmic y axis.

        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        self._paired_xy("semilogy", x, y, fmt, keywords)

    def loglog(self, x: Sequence[float], y: Sequence[float], fmt: str = "", **keywords: object) -> None:
        """Plot with both axes logarithmic.

        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        self._paired_xy("loglog", x, y, fmt, keywords)

    def _paired_xy(
        self,
        operation_id: str,
        x: Sequence[float],
        y: Sequence[float],
        fmt: str,
        keywords: Mapping[str, object],
    ) -> None:
        """Check and send an ``x``/``y`` plot call.

        :param operation_id: Table key.
        :param x: X values.
        :param y: Y values.
        :param fmt: Matplotlib format string, skipped when empty.
        :param keywords: Line properties.
        """
        check_paired_lengths(x=x, y=y)
        args: list[object] = [x, y]
        if len(fmt) > 0:
            args.append(fmt)
        _run(self._session, operation_id, args, keywords)

    def scatter(self, x: Sequence[float], y: Sequence[float], s: float = 1.0, **keywords: object) -> None:
        """Draw a scatter plot.

        :param x: X values.
        :param y: Y values.
        :param s: Marker size.
        :param keywords: Collection properties.
        :raises ArgumentShapeMismatchError: If ``x`` and ``y`` differ in length.
        """
        check_paired_lengths(x=x, y=y)
        keywords.setdefault("s", s)
        _run(self._session, "scatter", [x, y], keywords)

    def hist(
        self,
        values: Sequence[float],
        bins: int = 10,
        color: str = "b",
        alpha: float = 1.0,
        cumulative: bool = False,
    ) -> None:
        """Draw a histogram.

        :param values: Samples.
        :param bins: Number of bins.
        :param color: Bar color.
        :param alpha: Bar opacity.
        :param cumulative: Whether to accumulate counts.
        """
        keywords: dict[str, object] = {
            "bins": bins,
            "color": color,
            "alpha": alpha,
            "cumulative": cumulative,
        }
        _run(self._session, "hist", [values], keywords)

    def bar(self, x: Sequence[object], height: Sequence[float], **keywords: object) -> None:
        """Draw vertical bars.

        :raises ArgumentShapeMismatchError: If ``x`` and ``height`` differ in length.
        """
        check_paired_lengths(x=x, height=height)
        _run(self._session, "bar", [x, height], keywords)

    def barh(self, y: Sequence[object], width: Sequence[float], **keywords: object) -> None:
        """Draw horizontal bars.

        :raises ArgumentShapeMismatchError: If ``y`` and ``width`` differ in length.
        """
        check_paired_lengths(y=y, width=width)
        _run(self._session, "barh", [y, width], keywords)

    def errorbar(
        self,
        x: Sequence[float],
        y: Sequence[float],
        yerr: Sequence[float],
        **keywords: object,
    ) -> None:
        """Plot ``y`` against ``x`` with vertical error bars.

        :raises ArgumentShapeMismatchError: If the three sequences differ in length.
        """
        check_paired_lengths(x=x, y=y, yerr=yerr)
        keywords["yerr"] = yerr
        _run(self._session, "errorbar", [x, y], keywords)

    def fill_between(
        self,
        x: Sequence[float],
        y1: Sequence[float],
        y2: Sequence[float],
        **keywords: object,
    ) -> None:
        """Fill the area between two curves.

        String ``alpha`` values are parsed as floats.

        :raises ArgumentShapeMismatchError: If the three sequences differ in length.
        """
        check_paired_lengths(x=x, y1=y1, y2=y2)
        _run(self._session, "fill_between", [x, y1, y2], keywords)

    def arrow(self, x: float, y: float, dx: float, dy: float, **keywords: object) -> None:
        """Draw an arrow from ``(x, y)`` to ``(x + dx, y + dy)``.

        Size keywords given as strings are parsed as floats, the two head flags
        as booleans (only ``"True"`` is true).
        """
        _run(self._session, "arrow", [x, y, dx, dy], keywords)

    def axvspan(self, xmin: float, xmax: float, ymin: float = 0.0, ymax: float = 1.0, **keywords: object) -> None:
        """Shade a vertical span of the current axes.

        String ``linewidth`` and ``alpha`` values are parsed as floats.
        """
        _run(self._session, "axvspan", [xmin, xmax, ymin, ymax], keywords)

    def axhline(self, y: float, xmin: float = 0.0, xmax: float = 1.0, **keywords: object) -> None:
        """Draw a horizontal line across the current axes."""
        _run(self._session, "axhline", [y, xmin, xmax], keywords)

    def axvline(self, x: float, ymin: float = 0.0, ymax: float = 1.0, **keywords: object) -> None:
        """Draw a vertical line across the current axes."""
        _run(self._session, "axvline", [x, ymin, ymax], keywords)

    def legend(self, **keywords: object) -> None:
        """Place a legend on the current axes."""
        _run(self._session, "legend", keywords=keywords)

    def title(self, text: str, **keywords: object) -> None:
        """Set the title of the current axes."""
        _run(self._session, "title", [text], keywords)

    def suptitle(self, text: str, **keywords: object) -> None:
        """Set the title of the current figure."""
        _run(self._session, "suptitle", [text], keywords)

    def xlabel(self, text: str, **keywords: object) -> None:
        """Set the x axis label of the current axes."""
        _run(self._session, "xlabel", [text], keywords)

    def ylabel(self, text: str, **keywords: object) -> None:
        """Set the y axis label of the current axes."""
        _run(self._session, "ylabel", [text], keywords)

    def xlim(self, left: float | None = None, right: float | None = None) -> tuple[float, float]:
        """Get or set the x limits of the current axes.

        :param left: New left limit; omit both limits to only read them.
        :param right: New right limit.
        :returns: The limits in effect after the call.
        """
        return self._limits("xlim", left, right)

    def ylim(self, bottom: float | None = None, top: float | None = None) -> tuple[float, float]:
        """Get or set the y limits of the current axes.

        :param bottom: New bottom limit; omit both limits to only read them.
        :param top: New top limit.
        :returns: The limits in effect after the call.
        """
        return self._limits("ylim", bottom, top)

    def _limits(self, operation_id: str, low: float | None, high: float | None) -> tuple[float, float]:
        """Read or write one pair of limits.

        :param operation_id: ``xlim`` or ``ylim``.
        :param low: Lower limit, or ``None``.
        :param high: Upper limit, or ``None``.
        :returns: The limits in effect after the call.
        """
        args: list[object] = []
        if low is not None or high is not None:
            args = [low, high]
        return _limits(_read(self._session, operation_id, args))

    def xticks(self, ticks: Sequence[float], labels: Sequence[str] | None = None, **keywords: object) -> None:
        """Set x tick positions and, optionally, their labels.

        :raises ArgumentShapeMismatchError: If ``labels`` does not match ``ticks``.
        """
        self._ticks("xticks", ticks, labels, keywords)

    def yticks(self, ticks: Sequence[float], labels: Sequence[str] | None = None, **keywords: object) -> None:
        """Set y tick positions and, optionally, their labels.

        :raises ArgumentShapeMismatchError: If ``labels`` does not match ``ticks``.
        """
        self._ticks("yticks", ticks, labels, keywords)

    def _ticks(
        self,
        operation_id: str,
        ticks: Sequence[float],
        labels: Sequence[str] | None,
        keywords: Mapping[str, object],
    ) -> None:
        """Check and send a tick call.

        :param operation_id: ``xticks`` or ``yticks``.
        :param ticks: Tick positions.
        :param labels: Tick labels, skipped when empty.
        :param keywords: Text properties.
        """
        args: list[object] = [ticks]
        if labels is not None and len(labels) > 0:
            check_paired_lengths(ticks=ticks, labels=labels)
            args.append(labels)
        _run(self._session, operation_id, args, keywords)

    def margins(self, x: float, y: float | None = None) -> None:
        """Set autoscale margins of the current axes.

        :param x: X margin, or both margins when ``y`` is omitted.
        :param y: Y margin.
        """
        args: list[object] = [x]
        if y is not None:
            args.append(y)
        _run(self._session, "margins", args)

    def axis(self, option: str) -> None:
        """Apply an axis option such as ``equal`` or ``off``."""
        _run(self._session, "axis", [option])

    def grid(self, flag: bool = True) -> None:
        """Toggle grid lines on the current axes."""
        _run(self._session, "grid", [flag])

    def text(self, x: float, y: float, s: str, **keywords: object) -> None:
        """Place text at data coordinates."""
        _run(self._session, "text", [x, y, s], keywords)

    def annotate(self, text: str, x: float, y: float, **keywords: object) -> None:
        """Annotate the point ``(x, y)``."""
        keywords["xy"] = [x, y]
        _run(self._session, "annotate", [text], keywords)

    def figure(self, number: int | None = None, **keywords: object) -> int:
        """Create or activate a figure.

        :param number: Figure number to activate, or ``None`` for a new figure.
        :param keywords: Figure properties such as ``figsize`` or ``dpi``.
        :returns: Number of the active figure.
        """
        args: list[object] = []
        if number is not None:
            args.append(number)
        with Figure(self._session, call_operation(self._session, "figure", args, keywords)) as figure:
            return figure.number

    def fignum_exists(self, number: int) -> bool:
        """Report whether a figure number is in use.

        :param number: Figure number.
        :returns: ``True`` if the figure exists.
        """
        return bool(_read(self._session, "fignum_exists", [number]))

    def subplots(
        self,
        nrows: int = 1,
        ncols: int = 1,
        figsize: Sequence[float] | None = None,
        **keywords: object,
    ) -> tuple[Figure, Axes | AxesGrid]:
        """Create a figure with a grid of axes.

        :param nrows: Number of rows.
        :param ncols: Number of columns.
        :param figsize: Figure size in inches.
        :param keywords: Extra ``subplots`` keywords.
        :returns: The figure and either one axes or the axes grid.
        """
        if figsize is not None:
            keywords["figsize"] = list(figsize)
        keywords["nrows"] = nrows
        keywords["ncols"] = ncols
        single: bool = nrows * ncols == 1 and keywords.get("squeeze", True) is True

        with call_operation(self._session, "subplots", keywords=keywords) as result:
            pair_handle: int = result.handle  # type: ignore[assignment]
            figure: Figure = Figure(self._session, NewRef(self._session, self._session.get_item(pair_handle, 0)))
            try:
                axes_ref: NewRef = NewRef(self._session, self._session.get_item(pair_handle, 1))
            except BaseException:
                figure.release()
                raise
        if single is True:
            return figure, Axes(self._session, axes_ref)
        return figure, AxesGrid(self._session, axes_ref)

    def subplot(self, nrows: int, ncols: int, index: int) -> Axes:
        """Add a subplot to the current figure and make it current.

        :param nrows: Grid rows.
        :param ncols: Grid columns.
        :param index: One-based cell index.
        :returns: New owned axes.
        """
        return Axes(self._session, call_operation(self._session, "subplot", [nrows, ncols, index]))

    def gca(self) -> Axes:
        """Return the current axes.

        :returns: New owned axes.
        """
        return Axes(self._session, call_operation(self._session, "gca"))

    def gcf(self) -> Figure:
        """Return the current figure.

        :returns: New owned figure.
        """
        return Figure(self._session, call_operation(self._session, "gcf"))

    def twinx(self, axes: Axes | None = None) -> Axes:
        """Create an axes sharing the x axis of ``axes`` or of the current axes.

        The result is promoted exactly once on both paths.

        :param axes: Axes to twin; the current axes when omitted.
        :returns: New owned axes.
        """
        args: list[object] = []
        if axes is not None:
            args.append(axes.borrow())
        return Axes(self._session, call_operation(self._session, "twinx", args))

    def twiny(self, axes: Axes | None = None) -> Axes:
        """Create an axes sharing the y axis of ``axes`` or of the current axes.

        The result is promoted exactly once on both paths.

        :param axes: Axes to twin; the current axes when omitted.
        :returns: New owned axes.
        """
        args: list[object] = []
        if axes is not None:
            args.append(axes.borrow())
        return Axes(self._session, call_operation(self._session, "twiny", args))

    def savefig(self, filename: str, dpi: int = 100, format: str | None = None, **keywords: object) -> None:
        """Render the current figure to ``filename`` from inside the runtime.

        :param filename: Output path as seen by the runtime process.
        :param dpi: Resolution; non-positive values keep the runtime default.
        :param format: Output format; inferred from the file name when omitted.
        """
        if dpi > 0:
            keywords.setdefault("dpi", dpi)
        if format is not None and len(format) > 0:
            keywords.setdefault("format", format)
        _run(self._session, "savefig", [filename], keywords)

    def show(self, block: bool | None = None) -> None:
        """Display open figures; returns immediately on non-interactive backends.

        :param block: Whether to block, or ``None`` for the backend default.
        """
        keywords: dict[str, object] = {}
        if block is not None:
            keywords["block"] = block
        _run(self._session, "show", keywords=keywords)

    def draw(self) -> None:
        """Redraw the current figure."""
        _run(self._session, "draw")

    def pause(self, interval: float) -> None:
        """Run the GUI event loop for ``interval`` seconds."""
        _run(self._session, "pause", [interval])

    def tight_layout(self) -> None:
        """Adjust subplot spacing of the current figure."""
        _run(self._session, "tight_layout")

    def close(self, figure: Figure | int | str | None = None) -> None:
        """Close a figure.

        :param figure: Figure object, number or label; the current figure when omitted.
        """
        args: list[object] = []
        if isinstance(figure, Figure) is True:
            args.append(figure.borrow())  # type: ignore[union-attr]
        elif figure is not None:
            args.append(figure)
        _run(self._session, "close", args)

    def clf(self) -> None:
        """Clear the current figure."""
        _run(self._session, "clf")

    def cla(self) -> None:
        """Clear the current axes."""
        _run(self._session, "cla")

    def rcparams(self, params: Mapping[str, object]) -> None:
        """Update runtime rc parameters.

        Values are passed as strings except ``text.usetex``, parsed as an int.

        :param params: Parameter names mapped to values.
        """
        _run(self._session, "rcparams", keywords=params)
