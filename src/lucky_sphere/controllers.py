from __future__ import annotations

import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass, field

from serial import Serial, SerialException
from serial.tools import list_ports
from serial.tools.list_ports_common import ListPortInfo

from . import config
from .input import HostAction

_log = logging.getLogger(__name__)

_BUTTON_LINES = {
    "PRESS:START": "start",
    "PRESS:DISMISS": "dismiss",
}

_SERIAL_ERRORS = (SerialException, OSError)


def parse_button_line(line: str) -> HostAction | None:
    action = _BUTTON_LINES.get(line.strip().upper())
    if action is None:
        return None
    return HostAction(action=action)


@dataclass
class _Board:
    device: str
    port: Serial
    last_press: dict[str, float] = field(default_factory=dict)

    def send(self, command: str) -> None:
        self.port.write(f"{command}\n".encode("utf-8"))
        self.port.flush()

    def accept(self, action: HostAction, now: float) -> bool:
        """False when the same button fired again inside the debounce window."""
        previous = self.last_press.get(action.action)
        self.last_press[action.action] = now
        return previous is None or now - previous >= config.CONTROLLER_DEBOUNCE_SECONDS


class ButtonManager:
    """
    Discovers USB-serial start buttons and relays presses to the host loop.

    A board answers ``WHO_ARE_YOU?`` with ``START_BUTTON``; afterwards it sends
    ``PRESS:START`` / ``PRESS:DISMISS`` lines and receives draw state names
    (``DRAWING``, ``REVEAL``, ``IDLE``) so it can light up accordingly. Boards
    plugged in mid-draw are sent the latest state right after the handshake.

    All serial I/O happens on one worker thread; the host loop only touches
    the two queues.
    """

    def __init__(self, autostart: bool = True) -> None:
        self._boards: dict[str, _Board] = {}
        self._presses: queue.Queue[HostAction] = queue.Queue()
        self._outbox: queue.Queue[str] = queue.Queue()
        self._last_state: str | None = None
        self._stop_event = threading.Event()
        self._worker = threading.Thread(target=self._run, name="button-io", daemon=True)
        if autostart:
            self._worker.start()

    def drain_actions(self) -> list[HostAction]:
        actions: list[HostAction] = []
        while True:
            try:
                actions.append(self._presses.get_nowait())
            except queue.Empty:
                return actions

    def send_all(self, command: str) -> None:
        self._outbox.put(command)

    def close(self) -> None:
        self._stop_event.set()
        if self._worker.is_alive():
            self._worker.join(timeout=2.0)
        for device in list(self._boards):
            self._drop(device)

    # --- worker ---

    def _run(self) -> None:
        _log.debug("button worker started (scan every %.1fs)", config.CONTROLLER_SCAN_INTERVAL_SECONDS)
        next_scan_at = 0.0
        while not self._stop_event.is_set():
            if time.monotonic() >= next_scan_at:
                try:
                    self._scan()
                except Exception:
                    _log.exception("button scan failed")
                next_scan_at = time.monotonic() + config.CONTROLLER_SCAN_INTERVAL_SECONDS
            try:
                self._flush_outbox()
                self._poll_boards(time.monotonic())
            except Exception:
                _log.exception("button worker error")
            self._stop_event.wait(0.01)

    def _scan(self) -> None:
        ports = list(list_ports.comports())
        present = {p.device for p in ports}
        for device in [d for d in self._boards if d not in present]:
            _log.info("start button unplugged: %s", device)
            self._drop(device)

        for info in ports:
            if info.device in self._boards or not _looks_like_usb_serial(info):
                continue
            board = self._handshake(info.device)
            if board is None:
                _log.debug("no start button on %s", info.device)
                continue
            self._boards[board.device] = board
            _log.info("start button connected: %s", board.device)
            if self._last_state is not None:
                self._send(board, self._last_state)

    def _handshake(self, device: str) -> _Board | None:
        try:
            port = Serial(device, baudrate=config.CONTROLLER_BAUDRATE, timeout=0, write_timeout=0)
        except _SERIAL_ERRORS:
            return None
        board = _Board(device=device, port=port)
        try:
            # Boards that reset on port-open need a moment before they answer.
            time.sleep(config.CONTROLLER_SETTLE_SECONDS)
            port.reset_input_buffer()
            board.send(config.CONTROLLER_HANDSHAKE_COMMAND)
            if self._await_line(port, config.CONTROLLER_IDENTITY):
                return board
        except _SERIAL_ERRORS:
            _log.debug("handshake error on %s", device, exc_info=True)
        _close_quietly(port)
        return None

    def _await_line(self, port: Serial, expected: str) -> bool:
        deadline = time.monotonic() + config.CONTROLLER_HANDSHAKE_TIMEOUT_SECONDS
        while time.monotonic() < deadline and not self._stop_event.is_set():
            line = _readline(port)
            if line == expected:
                return True
            if not line:
                time.sleep(0.01)
        return False

    def _flush_outbox(self) -> None:
        while True:
            try:
                command = self._outbox.get_nowait()
            except queue.Empty:
                return
            self._last_state = command
            for board in list(self._boards.values()):
                self._send(board, command)

    def _send(self, board: _Board, command: str) -> None:
        try:
            board.send(command)
        except _SERIAL_ERRORS:
            _log.debug("write to %s failed; dropping board", board.device)
            self._drop(board.device)

    def _poll_boards(self, now: float) -> None:
        for board in list(self._boards.values()):
            try:
                raw = board.port.readline()
            except _SERIAL_ERRORS:
                self._drop(board.device)
                continue
            while raw:
                line = raw.decode("utf-8", errors="ignore").strip()
                action = parse_button_line(line)
                if action is None:
                    _log.debug("ignored line from %s: %r", board.device, line)
                elif board.accept(action, now):
                    self._presses.put(action)
                try:
                    raw = board.port.readline()
                except _SERIAL_ERRORS:
                    self._drop(board.device)
                    break

    def _drop(self, device: str) -> None:
        board = self._boards.pop(device, None)
        if board is not None:
            _close_quietly(board.port)


def _looks_like_usb_serial(info: ListPortInfo) -> bool:
    # Only Linux exposes lots of non-USB ttys worth filtering out.
    if not sys.platform.startswith("linux"):
        return True
    device = (info.device or "").lower()
    if device.startswith(("/dev/ttyacm", "/dev/ttyusb")):
        return True
    fingerprint = " ".join(
        (getattr(info, attr, "") or "").lower()
        for attr in ("description", "manufacturer", "product", "hwid")
    )
    return any(marker in fingerprint for marker in config.CONTROLLER_USB_MARKERS)


def _readline(port: Serial) -> str:
    try:
        raw = port.readline()
    except _SERIAL_ERRORS:
        return ""
    return raw.decode("utf-8", errors="ignore").strip() if raw else ""


def _close_quietly(port: Serial) -> None:
    try:
        port.close()
    except _SERIAL_ERRORS:
        _log.debug("error closing %s", getattr(port, "port", port), exc_info=True)
