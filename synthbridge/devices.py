from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Set


logger = logging.getLogger(__name__)

# (device_name, raw_bytes)
Intake = Callable[[str, List[int]], None]
RawCallback = Callable[[List[int]], None]


class MidiUnavailable(RuntimeError):
    """Raised when the system MIDI stack cannot be used (missing backend, access denied)."""


@dataclass(frozen=True)
class PortChange:
    name: str
    state: str  # "connected" | "disconnected"
    kind: str  # "input" | "output"


class InputProvider:
    """Abstract MIDI input provider used by DeviceRegistry and PortWatcher."""

    def list_inputs(self) -> List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def list_outputs(self) -> List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def open_input(self, name: str, callback: RawCallback):  # pragma: no cover - interface
        """Open ``name`` and deliver each message's raw bytes to ``callback``.

        Returns a port object exposing ``.close()``.
        """
        raise NotImplementedError


class MidoInputProvider(InputProvider):
    """Mido/rtmidi-backed provider.

    ``name_filter`` restricts inputs to names containing the substring.
    """

    def __init__(self, name_filter: Optional[str] = None) -> None:
        self.name_filter = name_filter
        try:
            import mido
        except Exception as e:
            raise MidiUnavailable(f"mido not installed: {e}") from e
        self._mido = mido
        # Probe the backend once so sandboxed hosts fail here rather than mid-session
        try:
            mido.get_input_names()
        except Exception as e:
            raise MidiUnavailable(str(e)) from e

    def list_inputs(self) -> List[str]:
        names = self._mido.get_input_names()
        if self.name_filter:
            names = [n for n in names if self.name_filter in n]
        return list(names)

    def list_outputs(self) -> List[str]:
        return list(self._mido.get_output_names())

    def open_input(self, name: str, callback: RawCallback):
        def on_message(msg):
            callback(msg.bytes())

        return self._mido.open_input(name, callback=on_message)


class _VirtualPort:
    def __init__(self, provider: "VirtualInputProvider", name: str, callback: RawCallback) -> None:
        self.provider = provider
        self.name = name
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        self.closed = True
        self.provider._open.pop(self.name, None)


class VirtualInputProvider(InputProvider):
    """In-memory provider for tests and demos.

    ``send(name, data)`` delivers raw bytes to the open port, if any.
    """

    def __init__(self, inputs: Sequence[str] = (), outputs: Sequence[str] = ()) -> None:
        self.inputs: List[str] = list(inputs)
        self.outputs: List[str] = list(outputs)
        self._open: Dict[str, _VirtualPort] = {}
        self.opened: List[str] = []

    def list_inputs(self) -> List[str]:
        return list(self.inputs)

    def list_outputs(self) -> List[str]:
        return list(self.outputs)

    def open_input(self, name: str, callback: RawCallback) -> _VirtualPort:
        if name not in self.inputs:
            raise IOError(f"unknown input port: {name}")
        port = _VirtualPort(self, name, callback)
        self._open[name] = port
        self.opened.append(name)
        return port

    def is_open(self, name: str) -> bool:
        return name in self._open

    def send(self, name: str, data: Sequence[int]) -> bool:
        port = self._open.get(name)
        if port is None:
            return False
        port.callback(list(data))
        return True

    def plug(self, name: str, kind: str = "input") -> None:
        ports = self.inputs if kind == "input" else self.outputs
        if name not in ports:
            ports.append(name)

    def unplug(self, name: str, kind: str = "input") -> None:
        ports = self.inputs if kind == "input" else self.outputs
        if name in ports:
            ports.remove(name)


class DeviceRegistry:
    """Device name -> open input port; one subscription per name.

    Every message from a subscribed port is forwarded to ``intake`` with the
    device name. Repeated connect/disconnect notifications are idempotent.
    """

    def __init__(self, provider: InputProvider, intake: Intake, status: Optional[Callable[[str], None]] = None) -> None:
        self.provider = provider
        self.intake = intake
        self.status = status or (lambda line: logger.info(line))
        self._ports: Dict[str, object] = {}
        self._lock = threading.RLock()

    def enable(self, name: str) -> bool:
        with self._lock:
            if name in self._ports:
                return False

            def on_bytes(data: List[int], _name: str = name) -> None:
                # A message in flight when the port is disabled is dropped
                if not self.is_enabled(_name):
                    return
                self.intake(_name, data)

            self._ports[name] = self.provider.open_input(name, on_bytes)
        self.status(f"Found MIDI input: '{name}'")
        return True

    def disable(self, name: str) -> bool:
        with self._lock:
            port = self._ports.pop(name, None)
        if port is None:
            return False
        try:
            port.close()
        except Exception as e:
            logger.warning("closing %s failed: %s", name, e)
        self.status(f"Disabled MIDI input: '{name}'")
        return True

    def is_enabled(self, name: str) -> bool:
        with self._lock:
            return name in self._ports

    def subscribed(self) -> List[str]:
        with self._lock:
            return sorted(self._ports)

    def enable_all(self, names: Sequence[str]) -> int:
        """Enable each device; a port that fails to open is reported and skipped."""
        count = 0
        for name in names:
            try:
                if self.enable(name):
                    count += 1
            except Exception as e:
                self.status(f"Error opening MIDI input '{name}': {e}")
        return count

    def close_all(self) -> None:
        for name in self.subscribed():
            self.disable(name)

    def on_port_change(self, change: PortChange) -> None:
        self.status(f"State change: {change.name}, {change.state}")
        if change.kind != "input":
            return
        if change.state == "connected":
            self.enable_all([change.name])
        elif change.state == "disconnected":
            self.disable(change.name)


class PortWatcher:
    """Poll provider port names and report hot-plug changes.

    rtmidi has no plug notifications, so a daemon thread diffs the port lists
    every ``interval`` seconds.
    """

    def __init__(self, provider: InputProvider, on_change: Callable[[PortChange], None], interval: float = 1.0) -> None:
        self.provider = provider
        self.on_change = on_change
        self.interval = float(interval)
        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._known: Dict[str, Set[str]] = {"input": set(), "output": set()}

    def prime(self) -> None:
        """Record the current ports without reporting them."""
        self._known["input"] = set(self.provider.list_inputs())
        self._known["output"] = set(self.provider.list_outputs())

    def poll_once(self) -> List[PortChange]:
        changes: List[PortChange] = []
        current = {
            "input": set(self.provider.list_inputs()),
            "output": set(self.provider.list_outputs()),
        }
        for kind in ("input", "output"):
            before = self._known[kind]
            now = current[kind]
            for name in sorted(now - before):
                changes.append(PortChange(name, "connected", kind))
            for name in sorted(before - now):
                changes.append(PortChange(name, "disconnected", kind))
            self._known[kind] = now
        for ch in changes:
            self.on_change(ch)
        return changes

    def start(self) -> None:
        if self._t and self._t.is_alive():
            return
        self._stop.clear()
        self._t = threading.Thread(target=self._run, daemon=True)
        self._t.start()

    def stop(self) -> None:
        self._stop.set()
        if self._t:
            self._t.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll_once()
            except Exception as e:
                # Port enumeration can fail transiently while a device is being removed
                logger.warning("port poll failed: %s", e)
