"""Configuration for evaluator sessions."""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import replace
from typing import Literal

Role = Literal["main", "internal"]
ROLE_MAIN: Role = "main"
ROLE_INTERNAL: Role = "internal"
DEFAULT_PORT: int = 37246
DEFAULT_PROMPT_PATTERN: str = r"[^@()\s]+@\([^)]*\)(?: \[[0-9]+\])?> "
_TRUE_WORDS: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: frozenset[str] = frozenset({"0", "false", "no", "off"})


def validate_role(role: str) -> Role:
    """Validate and normalize a session role name.

    :param role: Requested role.
    :returns: Validated role.
    :raises ValueError: If the role is unknown.
    """
    if role == ROLE_MAIN:
        return ROLE_MAIN
    if role == ROLE_INTERNAL:
        return ROLE_INTERNAL
    raise ValueError("role must be one of: internal, main")


def _parse_bool(name: str, raw_value: str) -> bool:
    """Parse a boolean environment override.

    :param name: Variable name, used in error messages.
    :param raw_value: Raw variable value.
    :returns: Parsed boolean.
    :raises ValueError: If the value is not a recognized boolean word.
    """
    lowered: str = raw_value.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw_value!r}")


@dataclass(frozen=True)
class ReplConfig:
    """Settings shared by every session of one connection manager.

    ``server_mode`` makes the main process listen on ``listen_port`` so the
    internal session can connect to it; without it the internal role reuses
    the main session.
    """

    program: str = "guile"
    program_args: tuple[str, ...] = ("-q",)
    server_mode: bool = True
    listen_port: int = DEFAULT_PORT
    listen_host: str = "localhost"
    startup_timeout: float = 30.0
    prompt_pattern: str = DEFAULT_PROMPT_PATTERN
    load_path: tuple[str, ...] = ()
    startup_files: tuple[str, ...] = ()
    encoding: str = "utf-8"
    transcript_limit: int = 200000

    def __post_init__(self) -> None:
        """Validate field values.

        :raises ValueError: If a field is out of range.
        """
        if len(self.program) == 0:
            raise ValueError("program cannot be empty")
        if isinstance(self.listen_port, bool) is True or isinstance(self.listen_port, int) is False:
            raise ValueError("listen_port must be an integer")
        if self.listen_port < 1 or self.listen_port > 65535:
            raise ValueError("listen_port must be in the range 1..65535")
        if self.startup_timeout <= 0:
            raise ValueError("startup_timeout must be positive")
        if self.transcript_limit <= 0:
            raise ValueError("transcript_limit must be positive")
        try:
            re.compile(self.prompt_pattern)
        except re.error as exc:
            raise ValueError(f"prompt_pattern is not a valid regular expression: {exc}") from exc

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "ReplConfig":
        """Build a configuration from ``GUIX_REPL_*`` environment variables.

        :param environ: Mapping to read instead of ``os.environ``.
        :param overrides: Explicit field values that win over the environment.
        :returns: Validated configuration.
        :raises ValueError: If a variable holds an invalid value.
        """
        if environ is None:
            environ = os.environ
        values: dict[str, object] = {}

        program: str | None = environ.get("GUIX_REPL_PROGRAM")
        if program is not None:
            values["program"] = program

        server_mode: str | None = environ.get("GUIX_REPL_SERVER_MODE")
        if server_mode is not None:
            values["server_mode"] = _parse_bool("GUIX_REPL_SERVER_MODE", server_mode)

        port: str | None = environ.get("GUIX_REPL_PORT")
        if port is not None:
            try:
                values["listen_port"] = int(port)
            except ValueError as exc:
                raise ValueError(f"GUIX_REPL_PORT must be an integer, got {port!r}") from exc

        timeout: str | None = environ.get("GUIX_REPL_STARTUP_TIMEOUT")
        if timeout is not None:
            try:
                values["startup_timeout"] = float(timeout)
            except ValueError as exc:
                raise ValueError(f"GUIX_REPL_STARTUP_TIMEOUT must be a number, got {timeout!r}") from exc

        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def with_options(self, **changes: object) -> "ReplConfig":
        """Return a copy with some fields replaced.

        :param changes: Field values to replace.
        :returns: New validated configuration.
        """
        return replace(self, **changes)  # type: ignore[arg-type]

    def command_line(self, role: str) -> list[str]:
        """Build the evaluator argv for a spawned session.

        The listen flag is one token; the evaluator rejects ``--listen <port>``.

        :param role: Session role being spawned.
        :returns: Argument vector.
        """
        validated_role: Role = validate_role(role)
        argv: list[str] = [self.program]
        argv.extend(self.program_args)
        for directory in self.load_path:
            argv.append("-L")
            argv.append(directory)
        if validated_role == ROLE_MAIN and self.server_mode is True:
            argv.append(f"--listen={self.listen_port}")
        return argv
