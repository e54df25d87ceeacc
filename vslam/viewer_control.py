"""Viewer settings and the stop/finish handshake between the viewer and tracking."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Mapping

_DEFAULT_FPS = 30.0
_DEFAULT_WIDTH = 640
_DEFAULT_HEIGHT = 480


def _number(settings: Mapping[str, Any], key: str) -> float:
    value = settings.get(key)
    return 0.0 if value is None else float(value)


@dataclass(frozen=True)
class ViewerSettings:
    """Refresh period in milliseconds, image size and the initial viewpoint."""

    period_ms: float
    image_width: float
    image_height: float
    viewpoint_x: float
    viewpoint_y: float
    viewpoint_z: float
    viewpoint_f: float

    @classmethod
    def from_mapping(cls, settings):
        """Build viewer settings from a parsed mapping; missing entries read as zero."""
        fps = _number(settings, "Camera.fps")
        if fps < 1:
            fps = _DEFAULT_FPS
        width = _number(settings, "Camera.width")
        height = _number(settings, "Camera.height")
        if width < 1 or height < 1:
            width, height = _DEFAULT_WIDTH, _DEFAULT_HEIGHT
        return cls(
            period_ms=1e3 / fps,
            image_width=width,
            image_height=height,
            viewpoint_x=_number(settings, "Viewer.ViewpointX"),
            viewpoint_y=_number(settings, "Viewer.ViewpointY"),
            viewpoint_z=_number(settings, "Viewer.ViewpointZ"),
            viewpoint_f=_number(settings, "Viewer.ViewpointF"),
        )


class ViewerControl:
    """Thread-safe flags through which other threads pause or end the viewer loop.

    A viewer that has not started counts as finished and stopped.
    """

    def __init__(self):
        self._stop_lock = threading.Lock()
        self._finish_lock = threading.Lock()
        self._finish_requested = False
        self._finished = True
        self._stopped = True
        self._stop_requested = False

    def start(self):
        """Mark the viewer loop as running."""
        with self._stop_lock, self._finish_lock:
            self._finished = False
            self._stopped = False

    def request_finish(self):
        with self._finish_lock:
            self._finish_requested = True

    def check_finish(self) -> bool:
        with self._finish_lock:
            return self._finish_requested

    def set_finish(self):
        with self._finish_lock:
            self._finished = True

    def is_finished(self) -> bool:
        with self._finish_lock:
            return self._finished

    def request_stop(self):
        """Ask a running viewer to pause; ignored while it is already stopped."""
        with self._stop_lock:
            if not self._stopped:
                self._stop_requested = True

    def is_stopped(self) -> bool:
        with self._stop_lock:
            return self._stopped

    def stop(self) -> bool:
        """Honour a pending stop request; returns whether the viewer is now paused.

        A pending finish request takes precedence and prevents the pause.
        """
        with self._stop_lock, self._finish_lock:
            if self._finish_requested:
                return False
            if self._stop_requested:
                self._stopped = True
                self._stop_requested = False
                return True
            return False

    def release(self):
        """Let a paused viewer resume."""
        with self._stop_lock:
            self._stopped = False