"""Public package API for guix-repl."""

from sexpdata import Symbol

from guix_repl.api import close_default_manager
from guix_repl.api import evaluate
from guix_repl.api import evaluate_and_decode
from guix_repl.api import evaluate_call
from guix_repl.api import get_default_manager
from guix_repl.api import set_default_manager
from guix_repl.api import submit
from guix_repl.config import ReplConfig
from guix_repl.errors import DecodeError
from guix_repl.errors import EvaluationError
from guix_repl.errors import GuixReplError
from guix_repl.errors import SessionTransportError
from guix_repl.errors import StartupFailure
from guix_repl.expression import FALSE
from guix_repl.expression import Call
from guix_repl.expression import Keyword
from guix_repl.expression import encode
from guix_repl.manager import ConnectionManager
from guix_repl.notify import LoggingNotifier
from guix_repl.notify import Notifier
from guix_repl.reader import Reply
from guix_repl.reader import decode
from guix_repl.session import ReplSession

__all__: list[str] = [
    "close_default_manager",
    "decode",
    "encode",
    "evaluate",
    "evaluate_and_decode",
    "evaluate_call",
    "get_default_manager",
    "set_default_manager",
    "submit",
    "Call",
    "ConnectionManager",
    "DecodeError",
    "EvaluationError",
    "FALSE",
    "GuixReplError",
    "Keyword",
    "LoggingNotifier",
    "Notifier",
    "ReplConfig",
    "ReplSession",
    "Reply",
    "SessionTransportError",
    "StartupFailure",
    "Symbol",
]
