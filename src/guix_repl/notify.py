"""Status notifications emitted by sessions and the connection manager."""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guix_repl.errors import StartupFailure
    from guix_repl.session import ReplSession

logger = logging.getLogger(__name__)


class Notifier:
    """Receiver for session lifecycle and output events.

    Every hook is a no-op here; front-ends override the ones they display.
    Hooks run on the caller's thread, except ``output`` and
    ``operation_finished`` which run on the session reader thread.
    """

    def session_starting(self, session: "ReplSession") -> None:
        """Report that a session process or connection is being brought up."""

    def session_started(self, session: "ReplSession") -> None:
        """Report that a session reached its first prompt."""

    def startup_failed(self, session: "ReplSession", error: "StartupFailure") -> None:
        """Report a startup failure before it is raised to the caller."""

    def operation_started(self, session: "ReplSession", source_text: str) -> None:
        """Report that interactive input was submitted to a session."""

    def operation_finished(self, session: "ReplSession") -> None:
        """Report that the evaluator returned to its prompt after an operation."""

    def output(self, session: "ReplSession", text: str) -> None:
        """Receive a chunk of raw evaluator output."""


class LoggingNotifier(Notifier):
    """Notifier that writes every event to the ``guix_repl.notify`` logger."""

    def session_starting(self, session: "ReplSession") -> None:
        logger.info("Starting %s...", session.name)

    def session_started(self, session: "ReplSession") -> None:
        logger.info("%s has been started.", session.name)

    def startup_failed(self, session: "ReplSession", error: "StartupFailure") -> None:
        logger.error("%s failed to start: %s", session.name, error)

    def operation_started(self, session: "ReplSession", source_text: str) -> None:
        logger.info("%s: operation submitted", session.name)
        logger.debug("%s <- %s", session.name, source_text)

    def operation_finished(self, session: "ReplSession") -> None:
        logger.info("%s: operation finished", session.name)

    def output(self, session: "ReplSession", text: str) -> None:
        logger.debug("%s -> %r", session.name, text)
