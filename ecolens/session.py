from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from .analysis import AnalysisResult, analyze
from .dimensions import Axis, resolve_dimension
from .engine import rasterize
from .errors import ResizeError
from .results import EncodedPayload, SavingsEstimate, estimate
from .scheduler import RESIZE_DEBOUNCE_SECONDS, ResizeScheduler
from .settings import MAX_QUALITY, MIN_QUALITY, OutputFormat, ResizeMode, ResizeOptions
from .source import SourceImage


log = logging.getLogger(__name__)

DEFAULT_BASENAME = "ecolens_resized"

Listener = Callable[["EditingSession"], None]
Analyzer = Callable[[bytes, str], Awaitable[AnalysisResult]]


class EditingSession:
    """
    Live editing state for one open image.

    Owns the current ResizeOptions, the last good payload and a scheduler
    that re-renders after edits settle. Callers either poll the properties
    or subscribe() to be told when anything changes.

    A failed render leaves the previous payload in place; the failure is
    available as .error until the next successful render.
    """

    def __init__(
        self,
        source: SourceImage,
        options: Optional[ResizeOptions] = None,
        *,
        analyzer: Optional[Analyzer] = None,
        delay: float = RESIZE_DEBOUNCE_SECONDS,
        basename: str = DEFAULT_BASENAME,
    ) -> None:
        self.source = source
        self.basename = basename
        self._options = options or ResizeOptions.for_dimensions(source.dimensions)
        self._analyzer = analyzer or analyze

        self._payload: Optional[EncodedPayload] = None
        self._error: Optional[ResizeError] = None
        self._listeners: List[Listener] = []

        self._scheduler = ResizeScheduler(
            run=self._render,
            on_result=self._on_result,
            on_error=self._on_error,
            on_busy=lambda _busy: self._notify(),
            delay=delay,
        )

    # ---------------- observed state ----------------
    @property
    def options(self) -> ResizeOptions:
        return self._options

    @property
    def payload(self) -> Optional[EncodedPayload]:
        return self._payload

    @property
    def error(self) -> Optional[ResizeError]:
        return self._error

    @property
    def busy(self) -> bool:
        return self._scheduler.busy

    @property
    def estimate(self) -> SavingsEstimate:
        return estimate(self.source.size, self._payload)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------------- edits ----------------
    def set_width(self, value: float) -> None:
        self._edit_dimension(Axis.WIDTH, value)

    def set_height(self, value: float) -> None:
        self._edit_dimension(Axis.HEIGHT, value)

    def set_percentage(self, value: float) -> None:
        self._edit_dimension(Axis.PERCENTAGE, value)

    def set_quality(self, value: float) -> None:
        q = max(MIN_QUALITY, min(MAX_QUALITY, float(value)))
        self._apply(replace(self._options, quality=q))

    def set_format(self, fmt: OutputFormat) -> None:
        self._apply(replace(self._options, format=fmt))

    def set_mode(self, mode: ResizeMode) -> None:
        self._apply(replace(self._options, mode=mode))

    def set_maintain_aspect_ratio(self, locked: bool) -> None:
        self._apply(replace(self._options, maintain_aspect_ratio=bool(locked)))

    def refresh(self) -> None:
        """Schedule a render of the current options."""
        if self._can_render(self._options):
            self._scheduler.request(self._options)

    async def wait_idle(self) -> None:
        await self._scheduler.wait_idle()

    def close(self) -> None:
        self._scheduler.cancel()

    # ---------------- download ----------------
    def download_name(self) -> str:
        if self._payload is not None:
            w, h, fmt = self._payload.width, self._payload.height, self._payload.format
        else:
            w, h, fmt = self._options.width, self._options.height, self._options.format
        return f"{self.basename}_{w}x{h}.{fmt.extension}"

    def save(self, output_dir: Path, overwrite: bool = False) -> Path:
        if self._payload is None:
            raise RuntimeError("nothing rendered yet")

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        out_path = output_dir / self.download_name()
        if out_path.exists() and not overwrite:
            out_path = _next_available_name(out_path)

        out_path.write_bytes(self._payload.data)
        log.info("saved %s (%d bytes)", out_path, self._payload.byte_length)
        return out_path

    # ---------------- analysis ----------------
    async def analyze(self) -> AnalysisResult:
        """Describe the current render, or the original when nothing is rendered yet."""
        if self._payload is not None:
            return await self._analyzer(self._payload.data, self._payload.mime_type)
        return await self._analyzer(self.source.data, self.source.mime_type)

    # ---------------- internals ----------------
    def _edit_dimension(self, axis: Axis, value: float) -> None:
        self._apply(resolve_dimension(self.source.dimensions, self._options, axis, value))

    def _apply(self, new: ResizeOptions) -> None:
        old = self._options
        if new == old:
            return
        self._options = new

        if _render_inputs(new) != _render_inputs(old):
            if self._can_render(new):
                self._scheduler.request(new)
            else:
                # Nothing to draw; older pending or in-flight renders are stale.
                self._scheduler.cancel()
        self._notify()

    @staticmethod
    def _can_render(options: ResizeOptions) -> bool:
        return options.width > 0 and options.height > 0

    async def _render(self, options: ResizeOptions) -> EncodedPayload:
        return await rasterize(
            self.source,
            options.width,
            options.height,
            options.format,
            options.quality,
        )

    def _on_result(self, payload: EncodedPayload) -> None:
        self._payload = payload
        self._error = None
        self._notify()

    def _on_error(self, ex: ResizeError) -> None:
        self._error = ex
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def _render_inputs(options: ResizeOptions) -> tuple:
    # Mode, lock and percentage alone don't change the rendered pixels.
    return (options.width, options.height, options.quality, options.format)


def _next_available_name(path: Path) -> Path:
    # photo_100x50.jpeg -> photo_100x50 (1).jpeg
    base = path.with_suffix("")
    ext = path.suffix
    i = 1
    while True:
        candidate = Path(f"{base} ({i}){ext}")
        if not candidate.exists():
            return candidate
        i += 1
