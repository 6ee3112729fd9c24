"""Build Guile source text for remote procedure calls."""

import math
from dataclasses import dataclass
from dataclasses import field

from sexpdata import Symbol
from sexpdata import dumps

EMPTY_LIST_LITERAL: str = "'()"
TRUE_LITERAL: str = "#t"
FALSE_LITERAL: str = "#f"


class _FalseType:
    """Type of the :data:`FALSE` sentinel."""

    _instance: "_FalseType | None" = None

    def __new__(cls) -> "_FalseType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "FALSE"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "FALSE"


FALSE: _FalseType = _FalseType()
"""Argument that encodes as the ``#f`` literal.

``None`` and ``False`` both encode as the empty list, so callers that need a
boolean false on the Guile side pass this sentinel instead.
"""


@dataclass(frozen=True)
class Keyword:
    """Flag token printed as a Guile keyword (``#:name``)."""

    name: str

    def __post_init__(self) -> None:
        """Validate the keyword name.

        :raises ValueError: If the name is empty or contains whitespace.
        """
        _check_identifier(self.name, "keyword name")

    def __str__(self) -> str:
        return f"#:{self.name}"


def _check_identifier(name: str, description: str) -> None:
    """Reject names that cannot be printed as one Guile token.

    :param name: Candidate name.
    :param description: What the name is, used in error messages.
    :raises ValueError: If the name is empty or holds delimiters.
    """
    if len(name) == 0:
        raise ValueError(f"{description} cannot be empty")
    for character in name:
        if character.isspace() is True or character in "()\"';":
            raise ValueError(f"{description} contains an invalid character: {name!r}")


def _print_number(value: int | float) -> str:
    """Print a number in Guile syntax.

    :param value: Integer or float.
    :returns: Printed number.
    """
    if isinstance(value, float) is True:
        if math.isnan(value) is True:
            return "+nan.0"
        if math.isinf(value) is True:
            if value > 0:
                return "+inf.0"
            return "-inf.0"
    return repr(value)


def print_datum(value: object) -> str:
    """Print a value the way it appears inside quoted data.

    :param value: Value to print.
    :returns: Guile external representation.
    :raises TypeError: If the value kind has no Guile representation here.
    :raises ValueError: If a symbol cannot be printed as one token.
    """
    if value is None:
        return "()"
    if value is True:
        return TRUE_LITERAL
    if value is False or value is FALSE:
        return FALSE_LITERAL
    if isinstance(value, Keyword) is True:
        return str(value)
    # Symbol subclasses str, so it is checked before strings. Its dumps()
    # form escapes characters such as "?" that Guile symbols use freely.
    if isinstance(value, Symbol) is True:
        _check_identifier(value, "symbol")
        return str(value)
    if isinstance(value, str) is True:
        return dumps(value)
    if isinstance(value, (int, float)) is True:
        return _print_number(value)
    if isinstance(value, (list, tuple)) is True:
        items: list[str] = [print_datum(item) for item in value]
        return "(" + " ".join(items) + ")"
    raise TypeError(f"Cannot encode value of type {type(value).__name__} for the evaluator")


def encode_argument(value: object) -> str:
    """Encode one call argument.

    :param value: Argument value.
    :returns: Guile source text for the argument.
    :raises TypeError: If the value kind is unsupported.
    """
    if value is None or value is False:
        return EMPTY_LIST_LITERAL
    if isinstance(value, (list, tuple)) is True and len(value) == 0:
        return EMPTY_LIST_LITERAL
    if value is True or value is FALSE or isinstance(value, Keyword) is True:
        return print_datum(value)
    if isinstance(value, (Symbol, list, tuple)) is True:
        return "'" + print_datum(value)
    return print_datum(value)


def encode(function_name: str, args: list[object] | tuple[object, ...] = ()) -> str:
    """Encode a procedure call as Guile source text.

    ``encode("foo", [Symbol("bar"), 1, "x"])`` gives ``(foo 'bar 1 "x")``.

    :param function_name: Name of the procedure to call.
    :param args: Ordered call arguments.
    :returns: Call expression text.
    :raises ValueError: If the procedure name cannot be printed as a symbol.
    :raises TypeError: If an argument kind is unsupported.
    """
    name: str = str(function_name)
    _check_identifier(name, "function name")
    parts: list[str] = [name]
    for arg in args:
        parts.append(encode_argument(arg))
    return "(" + " ".join(parts) + ")"


@dataclass(frozen=True)
class Call:
    """Immutable description of one remote procedure call."""

    function_name: str
    args: tuple[object, ...] = field(default=())

    def __post_init__(self) -> None:
        if isinstance(self.args, tuple) is False:
            object.__setattr__(self, "args", tuple(self.args))

    def encode(self) -> str:
        """Return the Guile source text of this call.

        :returns: Call expression text.
        """
        return encode(self.function_name, self.args)


def wrap_forms(source_text: str) -> str:
    """Group several top-level forms so they evaluate as one unit.

    :param source_text: One or more forms.
    :returns: A single ``begin`` form.
    """
    return f"(begin {source_text})"


def make_load_expression(path: str) -> str:
    """Build the expression that loads one source file.

    :param path: Source file path.
    :returns: ``load`` call text.
    """
    return encode("load", [path])


# The reply mirrors Geiser's: ((result "v1" ...) (output . "")) on success,
# ((error (key . k) (args . "...")) (output . "")) when a condition escapes.
# It always starts on a fresh line so output printed by the form stays apart.
_REQUEST_TEMPLATE: str = (
    "(catch #t"
    " (lambda () (call-with-values (lambda () {form})"
    " (lambda vals (newline) (write (list (cons 'result (map object->string vals)) (cons 'output \"\"))) (newline))))"
    " (lambda (key . args) (newline) (write (list (list 'error (cons 'key key) (cons 'args (object->string args)))"
    " (cons 'output \"\"))) (newline)))"
)


def make_request(source_text: str) -> str:
    """Wrap a form so its values or its error come back as one reply line.

    :param source_text: A single Guile form.
    :returns: Request text sent to the evaluator.
    """
    return _REQUEST_TEMPLATE.format(form=source_text)
