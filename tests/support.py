"""Helpers shared by the guix-repl tests."""

import pathlib
import socket
import sys
import threading

from guix_repl import Notifier
from guix_repl import ReplConfig
from guix_repl import ReplSession
from guix_repl import StartupFailure

FAKE_GUILE: pathlib.Path = pathlib.Path(__file__).parent / "fixtures" / "fake_guile.py"


class RecordingNotifier(Notifier):
    """Notifier that keeps every event for later assertions."""

    events: list[tuple[str, str]]
    finished: threading.Event
    _lock: threading.Lock

    def __init__(self) -> None:
        """Initialize an empty event log."""
        self.events = []
        self.finished = threading.Event()
        self._lock = threading.Lock()

    def _record(self, kind: str, session: ReplSession) -> None:
        with self._lock:
            self.events.append((kind, session.role))

    def kinds(self) -> list[str]:
        """Return recorded event kinds, output chunks excluded.

        :returns: Event kinds in order.
        """
        with self._lock:
            return [kind for kind, _ in self.events]

    def session_starting(self, session: ReplSession) -> None:
        self._record("starting", session)

    def session_started(self, session: ReplSession) -> None:
        self._record("started", session)

    def startup_failed(self, session: ReplSession, error: StartupFailure) -> None:
        self._record("failed", session)

    def operation_started(self, session: ReplSession, source_text: str) -> None:
        self._record("operation_started", session)

    def operation_finished(self, session: ReplSession) -> None:
        self._record("operation_finished", session)
        self.finished.set()


def free_port() -> int:
    """Return a TCP port nobody listens on right now.

    :returns: Port number.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("localhost", 0))
        return probe.getsockname()[1]


def fake_config(server_mode: bool, *extra_args: str, **options: object) -> ReplConfig:
    """Build a configuration that runs the fake evaluator.

    :param server_mode: Whether the internal role connects over TCP.
    :param extra_args: Extra fake evaluator flags.
    :param options: Other configuration fields.
    :returns: Configuration.
    """
    values: dict[str, object] = {
        "program": sys.executable,
        "program_args": (str(FAKE_GUILE),) + extra_args,
        "server_mode": server_mode,
        "listen_port": free_port(),
        "startup_timeout": 10.0,
    }
    values.update(options)
    return ReplConfig(**values)  # type: ignore[arg-type]
