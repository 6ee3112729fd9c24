"""Synchronous and interactive evaluation on top of a connection manager."""

import logging

from guix_repl.config import ROLE_INTERNAL
from guix_repl.config import ROLE_MAIN
from guix_repl.errors import EvaluationError
from guix_repl.expression import encode
from guix_repl.expression import make_request
from guix_repl.expression import wrap_forms
from guix_repl.manager import ConnectionManager
from guix_repl.reader import Reply
from guix_repl.reader import decode
from guix_repl.reader import parse_reply
from guix_repl.session import ReplSession

logger = logging.getLogger(__name__)


def evaluate(manager: ConnectionManager, source_text: str, wrap: bool = False) -> list[str]:
    """Evaluate source text on the internal session and wait for its values.

    :param manager: Connection manager owning the sessions.
    :param source_text: Guile source; a single form unless ``wrap`` is set.
    :param wrap: Group several top-level forms into one ``begin`` form.
    :returns: Printed representation of every returned value.
    :raises StartupFailure: If the internal session cannot be started.
    :raises EvaluationError: If the evaluator reports an error or dies mid-call.
    """
    form: str = source_text
    if wrap is True:
        form = wrap_forms(source_text)
    session: ReplSession = manager.ensure_session(ROLE_INTERNAL)
    segment: str = session.request(make_request(form))
    reply: Reply = parse_reply(segment)
    if reply.error is not None:
        logger.debug("%s: %s failed with %s", session.name, form, reply.error)
        raise EvaluationError(reply.error, reply.output)
    return list(reply.values or ())


def evaluate_and_decode(manager: ConnectionManager, source_text: str, wrap: bool = False) -> object:
    """Evaluate source text and decode its first value.

    :param manager: Connection manager owning the sessions.
    :param source_text: Guile source.
    :param wrap: Group several top-level forms into one ``begin`` form.
    :returns: Decoded first value; ``None`` when nothing was returned.
    :raises EvaluationError: If the evaluator reports an error.
    :raises DecodeError: If the first value cannot be read.
    """
    values: list[str] = evaluate(manager, source_text, wrap=wrap)
    if len(values) == 0:
        return None
    return decode(values[0])


def evaluate_call(manager: ConnectionManager, function_name: str, *args: object) -> object:
    """Call a Guile procedure and decode its first value.

    :param manager: Connection manager owning the sessions.
    :param function_name: Procedure name.
    :param args: Call arguments, encoded with :func:`guix_repl.expression.encode`.
    :returns: Decoded first value.
    """
    return evaluate_and_decode(manager, encode(function_name, args))


def submit(manager: ConnectionManager, source_text: str) -> None:
    """Send source text to the main session as if the user typed it.

    Returns as soon as the input is written; output shows up in the
    session transcript and through the notifier.

    :param manager: Connection manager owning the sessions.
    :param source_text: Guile source.
    :raises StartupFailure: If the main session cannot be started.
    """
    session: ReplSession = manager.ensure_session(ROLE_MAIN)
    session.discard_input()
    session.type_input(source_text)
    session.send_input()
