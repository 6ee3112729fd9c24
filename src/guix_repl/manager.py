"""Connection manager: owns the main and internal evaluator sessions."""

import atexit
import logging
import socket
import threading
import time
import weakref

from guix_repl.config import ROLE_INTERNAL
from guix_repl.config import ROLE_MAIN
from guix_repl.config import ReplConfig
from guix_repl.config import Role
from guix_repl.config import validate_role
from guix_repl.errors import EvaluationError
from guix_repl.errors import StartupFailure
from guix_repl.expression import make_load_expression
from guix_repl.expression import make_request
from guix_repl.notify import LoggingNotifier
from guix_repl.notify import Notifier
from guix_repl.reader import Reply
from guix_repl.reader import parse_reply
from guix_repl.session import SESSION_NAMES
from guix_repl.session import ProcessChannel
from guix_repl.session import ReplSession
from guix_repl.session import SocketChannel

logger = logging.getLogger(__name__)

_PORT_PROBE_TIMEOUT: float = 0.5


def _port_is_taken(host: str, port: int) -> bool:
    """Check whether something already accepts connections on ``host:port``.

    :param host: Host to probe.
    :param port: Port to probe.
    :returns: ``True`` when a listener answered.
    """
    try:
        probe: socket.socket = socket.create_connection((host, port), timeout=_PORT_PROBE_TIMEOUT)
    except OSError:
        return False
    probe.close()
    return True


def _close_manager(manager_ref: "weakref.ReferenceType[ConnectionManager]") -> None:
    """Close a manager at interpreter exit if it is still around.

    :param manager_ref: Weak reference to the manager.
    """
    manager: ConnectionManager | None = manager_ref()
    if manager is None:
        return
    manager.close()


class ConnectionManager:
    """Start, reuse and replace the evaluator sessions of one process.

    The ``main`` session takes interactive operations; the ``internal`` one
    answers synchronous queries. Outside server mode both roles share the
    main session.
    """

    _config: ReplConfig
    _notifier: Notifier
    _sessions: dict[Role, ReplSession]
    _lock: threading.RLock
    _is_closed: bool

    def __init__(
        self,
        config: ReplConfig | None = None,
        notifier: Notifier | None = None,
        close_at_exit: bool = True,
    ) -> None:
        """Initialize a manager with no sessions.

        :param config: Session settings; defaults to ``ReplConfig()``.
        :param notifier: Event receiver; defaults to :class:`LoggingNotifier`.
        :param close_at_exit: Tear sessions down when the interpreter exits.
        """
        if config is None:
            config = ReplConfig()
        if notifier is None:
            notifier = LoggingNotifier()
        self._config = config
        self._notifier = notifier
        self._sessions = {}
        self._lock = threading.RLock()
        self._is_closed = False
        if close_at_exit is True:
            atexit.register(_close_manager, weakref.ref(self))

    @property
    def config(self) -> ReplConfig:
        """Return the manager configuration.

        :returns: Configuration.
        """
        return self._config

    @property
    def notifier(self) -> Notifier:
        """Return the event receiver.

        :returns: Notifier.
        """
        return self._notifier

    def __enter__(self) -> "ConnectionManager":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.close()

    def get_session(self, role: str) -> ReplSession | None:
        """Return the registered session for ``role`` without starting one.

        :param role: Session role.
        :returns: Session, possibly dead, or ``None``.
        """
        validated_role: Role = validate_role(role)
        with self._lock:
            if validated_role == ROLE_INTERNAL and self._config.server_mode is False:
                validated_role = ROLE_MAIN
            return self._sessions.get(validated_role)

    def ensure_session(self, role: str) -> ReplSession:
        """Return a live session for ``role``, starting one if needed.

        A registered session whose process or connection died is closed and
        replaced. Failures are not retried; the next call tries again.

        :param role: ``"main"`` or ``"internal"``.
        :returns: Live session.
        :raises ValueError: If the role is unknown.
        :raises StartupFailure: If a new session cannot be brought up.
        """
        validated_role: Role = validate_role(role)
        with self._lock:
            if self._is_closed is True:
                raise StartupFailure(
                    "the connection manager is closed",
                    validated_role,
                    None,
                    SESSION_NAMES[validated_role],
                )
            if validated_role == ROLE_INTERNAL and self._config.server_mode is False:
                return self.ensure_session(ROLE_MAIN)

            existing: ReplSession | None = self._sessions.get(validated_role)
            if existing is not None:
                if existing.is_alive is True:
                    return existing
                logger.info("%s is dead; restarting it", existing.name)
                self._sessions.pop(validated_role, None)
                existing.close()

            session: ReplSession
            if validated_role == ROLE_MAIN:
                session = self._start_main()
            else:
                self.ensure_session(ROLE_MAIN)
                session = self._start_internal()
            self._sessions[validated_role] = session
            return session

    def _listen_port(self) -> int | None:
        """Return the port involved in startups, if any."""
        if self._config.server_mode is True:
            return self._config.listen_port
        return None

    def _start_main(self) -> ReplSession:
        """Spawn the main evaluator process.

        :returns: Ready session.
        :raises StartupFailure: If the port is taken or the process never gets ready.
        """
        config: ReplConfig = self._config
        port: int | None = self._listen_port()
        name: str = SESSION_NAMES[ROLE_MAIN]
        if port is not None:
            port_taken: bool = _port_is_taken(config.listen_host, port)
            if port_taken is True:
                failure = StartupFailure(
                    f"port {port} is already in use by another process",
                    ROLE_MAIN,
                    port,
                    name,
                )
                logger.error("%s", failure)
                raise failure

        argv: list[str] = config.command_line(ROLE_MAIN)
        try:
            channel: ProcessChannel = ProcessChannel.spawn(argv)
        except OSError as exc:
            raise StartupFailure(f"cannot run {argv[0]!r}: {exc}", ROLE_MAIN, port, name) from exc

        session = ReplSession(ROLE_MAIN, channel, self._notifier, config)
        self._bring_up(session, port, time.monotonic() + config.startup_timeout)
        return session

    def _start_internal(self) -> ReplSession:
        """Connect the internal session to the main process's REPL server.

        :returns: Ready session.
        :raises StartupFailure: If no connection is accepted in time.
        """
        config: ReplConfig = self._config
        port: int = config.listen_port
        deadline: float = time.monotonic() + config.startup_timeout
        try:
            channel: SocketChannel = SocketChannel.connect(config.listen_host, port, deadline)
        except OSError as exc:
            main_session: ReplSession | None = self._sessions.get(ROLE_MAIN)
            transcript: str = ""
            if main_session is not None:
                transcript = main_session.transcript
            raise StartupFailure(
                f"cannot connect to {config.listen_host}:{port}: {exc}",
                ROLE_INTERNAL,
                port,
                SESSION_NAMES[ROLE_MAIN],
                transcript,
            ) from exc

        session = ReplSession(ROLE_INTERNAL, channel, self._notifier, config)
        self._bring_up(session, port, deadline)
        return session

    def _bring_up(self, session: ReplSession, port: int | None, deadline: float) -> None:
        """Wait for a new session's prompt and load the startup files.

        :param session: Session with an open channel.
        :param port: Listening port to name in failures.
        :param deadline: ``time.monotonic()`` value bounding the wait.
        :raises StartupFailure: If the session does not become usable.
        """
        self._notifier.session_starting(session)
        session.start()
        try:
            remaining: float = max(deadline - time.monotonic(), 0.0)
            session.wait_ready(remaining, port)
            self._load_startup_files(session, port)
        except StartupFailure as exc:
            session.close()
            self._notifier.startup_failed(session, exc)
            raise
        self._notifier.session_started(session)

    def _load_startup_files(self, session: ReplSession, port: int | None) -> None:
        """Load every configured startup file into a fresh session.

        :param session: Ready session.
        :param port: Listening port to name in failures.
        :raises StartupFailure: If a file fails to load.
        """
        for path in self._config.startup_files:
            try:
                reply: Reply = parse_reply(session.request(make_request(make_load_expression(path))))
            except EvaluationError as exc:
                raise StartupFailure(
                    f"loading {path!r} failed: {exc.diagnostic}",
                    session.role,
                    port,
                    session.name,
                    session.transcript,
                ) from exc
            if reply.error is not None:
                raise StartupFailure(
                    f"loading {path!r} failed: {reply.error}",
                    session.role,
                    port,
                    session.name,
                    session.transcript,
                )

    def restart(self) -> None:
        """Close every session; the next request starts fresh ones."""
        with self._lock:
            self._close_sessions()

    def _close_sessions(self) -> None:
        # Internal first: it may be connected to the main process.
        for role in (ROLE_INTERNAL, ROLE_MAIN):
            session: ReplSession | None = self._sessions.pop(role, None)
            if session is not None:
                session.close()

    def close(self) -> None:
        """Close every session and refuse to start new ones."""
        with self._lock:
            if self._is_closed is True:
                return
            self._is_closed = True
            self._close_sessions()
