"""Custom error types for guix-repl."""


class GuixReplError(Exception):
    """Base class for all guix-repl errors."""


class StartupFailure(GuixReplError):
    """Raised when an evaluator session cannot be brought up."""

    role: str
    port: int | None
    transcript: str

    def __init__(self, reason: str, role: str, port: int | None, session_name: str, transcript: str = "") -> None:
        """Initialize a startup failure.

        :param reason: Short description of what went wrong.
        :param role: Session role that failed to start.
        :param port: Listening port involved in the startup, if any.
        :param session_name: Display name of the session whose transcript holds details.
        :param transcript: Captured evaluator output at the time of the failure.
        """
        self.role = role
        self.port = port
        self.transcript = transcript
        location: str = ""
        if port is not None:
            location = f" (port {port})"
        formatted: str = (
            f"Failed to start the {role} evaluator session{location}: {reason}\n"
            + f"See the '{session_name}' transcript for details."
        )
        super().__init__(formatted)


class EvaluationError(GuixReplError):
    """Raised when the remote evaluator reports an error for a request."""

    diagnostic: str
    output: str

    def __init__(self, diagnostic: str, output: str = "") -> None:
        """Initialize an evaluation error.

        :param diagnostic: Diagnostic text reported by the evaluator, verbatim.
        :param output: Output printed by the evaluator before the error.
        """
        self.diagnostic = diagnostic
        self.output = output
        super().__init__(f"Evaluator reported an error: {diagnostic}")


class SessionTransportError(EvaluationError):
    """Raised when a session's process or socket goes away mid-request."""


class DecodeError(GuixReplError):
    """Raised when a successful reply cannot be read into a Python value."""

    raw_text: str

    def __init__(self, raw_text: str, reason: str) -> None:
        """Initialize a decode error.

        :param raw_text: Textual value that failed to decode.
        :param reason: Reader failure description.
        """
        self.raw_text = raw_text
        super().__init__(f"Cannot decode evaluator value {raw_text!r}: {reason}")
