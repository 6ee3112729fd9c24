"""User-facing API entrypoints for guix-repl."""

import threading

from guix_repl.config import ReplConfig
from guix_repl.evaluator import evaluate as _evaluate
from guix_repl.evaluator import evaluate_and_decode as _evaluate_and_decode
from guix_repl.evaluator import evaluate_call as _evaluate_call
from guix_repl.evaluator import submit as _submit
from guix_repl.manager import ConnectionManager

_DEFAULT_MANAGER_LOCK: threading.Lock = threading.Lock()
_DEFAULT_MANAGER: ConnectionManager | None = None


def get_default_manager() -> ConnectionManager:
    """Return the process-wide manager, creating it from the environment.

    :returns: Shared connection manager.
    """
    global _DEFAULT_MANAGER
    with _DEFAULT_MANAGER_LOCK:
        if _DEFAULT_MANAGER is None:
            _DEFAULT_MANAGER = ConnectionManager(ReplConfig.from_env())
        return _DEFAULT_MANAGER


def set_default_manager(manager: ConnectionManager | None) -> ConnectionManager | None:
    """Replace the process-wide manager.

    The previous manager is returned and left open.

    :param manager: New manager, or ``None`` to create one lazily again.
    :returns: Previous manager.
    """
    global _DEFAULT_MANAGER
    with _DEFAULT_MANAGER_LOCK:
        previous: ConnectionManager | None = _DEFAULT_MANAGER
        _DEFAULT_MANAGER = manager
        return previous


def close_default_manager() -> bool:
    """Close and forget the process-wide manager.

    :returns: ``True`` when a manager existed.
    """
    previous: ConnectionManager | None = set_default_manager(None)
    if previous is None:
        return False
    previous.close()
    return True


def evaluate(source_text: str, wrap: bool = False) -> list[str]:
    """Evaluate source text on the internal session.

    :param source_text: Guile source.
    :param wrap: Group several top-level forms into one ``begin`` form.
    :returns: Printed values.
    """
    return _evaluate(get_default_manager(), source_text, wrap=wrap)


def evaluate_and_decode(source_text: str, wrap: bool = False) -> object:
    """Evaluate source text on the internal session and decode the first value.

    :param source_text: Guile source.
    :param wrap: Group several top-level forms into one ``begin`` form.
    :returns: Decoded value.
    """
    return _evaluate_and_decode(get_default_manager(), source_text, wrap=wrap)


def evaluate_call(function_name: str, *args: object) -> object:
    """Call a Guile procedure on the internal session and decode its value.

    :param function_name: Procedure name.
    :param args: Call arguments.
    :returns: Decoded value.
    """
    return _evaluate_call(get_default_manager(), function_name, *args)


def submit(source_text: str) -> None:
    """Send source text to the main session without waiting for it.

    :param source_text: Guile source.
    """
    _submit(get_default_manager(), source_text)
