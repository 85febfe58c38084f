from __future__ import annotations
from typing import Callable, Optional
from PySide6 import QtCore, QtWebSockets

from .models import (
    ConnectionState, LiveEvent,
    DISCONNECTED, CONNECTING, CONNECTED,
)

BASE_RETRY_MS = 1000
MAX_RETRY_MS  = 30000


def backoff_delay_ms(retry_count: int) -> int:
    """1s, 2s, 4s, 8s, 16s, then 30s for every further retry."""
    if retry_count >= 15:   # 2**15 s is far past the cap; avoid huge ints
        return MAX_RETRY_MS
    return min(MAX_RETRY_MS, (2 ** retry_count) * BASE_RETRY_MS)


class ConnectionManager(QtCore.QObject):
    """
    Owns the sensor WebSocket and its reconnection timer.

    DISCONNECTED → CONNECTING → CONNECTED → (close/error) DISCONNECTED
    → wait backoff → CONNECTING → ...

    Runs on the Qt event loop thread. Only one reconnection timer exists
    and it is single-shot, so there is never more than one pending retry.
    """

    status_changed = QtCore.Signal(str)
    event_received = QtCore.Signal(object)   # LiveEvent

    def __init__(self, url: str,
                 socket_factory: Optional[Callable[[], QtCore.QObject]] = None,
                 parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.url = url
        self.state = ConnectionState()
        self._socket_factory = socket_factory or QtWebSockets.QWebSocket
        self._socket = None
        self._closed = False

        self._retry_timer = QtCore.QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.timeout.connect(self.connect_stream)

    # ── scoped use ────────────────────────────
    def __enter__(self) -> "ConnectionManager":
        self.connect_stream()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def reconnect_pending(self) -> bool:
        return self._retry_timer.isActive()

    @property
    def pending_delay_ms(self) -> int:
        return self._retry_timer.interval() if self._retry_timer.isActive() else 0

    # ── lifecycle ─────────────────────────────
    @QtCore.Slot()
    def connect_stream(self) -> None:
        self._closed = False
        self._retry_timer.stop()
        self._release_socket()
        self._set_status(CONNECTING)

        sock = self._socket_factory()
        sock.connected.connect(self._on_open)
        sock.disconnected.connect(self._on_close)
        sock.errorOccurred.connect(self._on_error)
        sock.textMessageReceived.connect(self._on_message)
        self._socket = sock

        try:
            sock.open(QtCore.QUrl(self.url))
        except Exception as e:
            print(f"[ConnectionManager] Could not open {self.url}: {e}")
            self._on_error()

    def set_url(self, url: str) -> None:
        """Point at a new sensor; restarts the connection with a fresh retry budget."""
        if url == self.url:
            return
        self.url = url
        self.state.retry_count = 0
        if not self._closed:
            self.connect_stream()

    def shutdown(self) -> None:
        """Cancel any pending retry and drop the socket. Safe to call twice."""
        self._closed = True
        self._retry_timer.stop()
        self._release_socket()
        self._set_status(DISCONNECTED)

    def _release_socket(self) -> None:
        sock, self._socket = self._socket, None
        if sock is None:
            return
        # Detach first so closing does not feed back into _on_close.
        for sig in (sock.connected, sock.disconnected, sock.errorOccurred, sock.textMessageReceived):
            try:
                sig.disconnect()
            except (RuntimeError, TypeError):
                pass
        sock.abort()
        if isinstance(sock, QtCore.QObject):
            sock.deleteLater()

    def _set_status(self, status: str) -> None:
        if self.state.status == status:
            return
        self.state.status = status
        print(f"[ConnectionManager] {status} ({self.url})")
        self.status_changed.emit(status)

    # ── socket events ─────────────────────────
    @QtCore.Slot()
    def _on_open(self) -> None:
        self.state.retry_count = 0
        self.state.last_error = None
        self._set_status(CONNECTED)

    @QtCore.Slot()
    def _on_close(self) -> None:
        self._set_status(DISCONNECTED)
        self._schedule_reconnect()

    @QtCore.Slot(object)
    def _on_error(self, error=None) -> None:
        if self._socket is not None and hasattr(self._socket, "errorString"):
            self.state.last_error = self._socket.errorString()
        self._set_status(DISCONNECTED)
        self._schedule_reconnect()

    @QtCore.Slot(str)
    def _on_message(self, payload: str) -> None:
        try:
            event = LiveEvent.from_json(payload)
        except (ValueError, KeyError, TypeError, OverflowError):
            return
        self.event_received.emit(event)

    def _schedule_reconnect(self) -> None:
        # An error is usually followed by a close; only the first one counts.
        if self._closed or self._retry_timer.isActive():
            return
        delay = backoff_delay_ms(self.state.retry_count)
        self.state.retry_count += 1
        print(f"[ConnectionManager] Reconnecting in {delay}ms (attempt {self.state.retry_count})")
        self._retry_timer.start(delay)
