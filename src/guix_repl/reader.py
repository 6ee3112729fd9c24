"""Read evaluator replies into Python values."""

import re
from dataclasses import dataclass

from sexpdata import ExpectClosingBracket
from sexpdata import ExpectNothing
from sexpdata import Quoted
from sexpdata import Symbol
from sexpdata import parse

from guix_repl.errors import DecodeError
from guix_repl.errors import EvaluationError
from guix_repl.expression import print_datum

_TRUE_TOKEN: re.Pattern[str] = re.compile(r"#t")
_NO_VALUE_TOKEN: re.Pattern[str] = re.compile(r"#f|#<unspecified>")
_NIL: Symbol = Symbol("nil")
_DOT: Symbol = Symbol(".")
_RESULT: Symbol = Symbol("result")
_ERROR: Symbol = Symbol("error")
_OUTPUT: Symbol = Symbol("output")
_READER_ERRORS: tuple[type[Exception], ...] = (
    ExpectClosingBracket,
    ExpectNothing,
    AssertionError,
    IndexError,
    ValueError,
)


def _read_data(text: str, raw_text: str | None = None) -> list[object]:
    """Parse every top-level datum in ``text`` without boolean translation.

    :param text: Source text.
    :param raw_text: Text to report in errors, when ``text`` was rewritten.
    :returns: Parsed top-level data.
    :raises DecodeError: If the text is not well-formed.
    """
    try:
        return parse(text, nil=None, true=None, false=None)
    except _READER_ERRORS as exc:
        if raw_text is None:
            raw_text = text
        raise DecodeError(raw_text, str(exc) or type(exc).__name__) from exc


def _is_dot(item: object) -> bool:
    """Report whether a parsed item is the dotted-pair separator."""
    return isinstance(item, Symbol) is True and item == _DOT


def _to_python(value: object) -> object:
    """Convert parsed data into plain Python values.

    :param value: Value produced by the reader.
    :returns: Converted value.
    """
    if isinstance(value, Symbol) is True:
        if value == _NIL:
            return None
        if value == Symbol("t"):
            return True
        return value
    if isinstance(value, Quoted) is True:
        return _to_python(value.x)
    if isinstance(value, list) is True:
        items: list[object] = [_to_python(item) for item in value]
        is_pair: bool = len(value) == 3 and _is_dot(value[1])
        if is_pair is True:
            return (items[0], items[2])
        return items
    return value


def decode(raw_text: str) -> object:
    """Decode one printed evaluator value.

    ``#t`` becomes ``True``; ``#f`` and ``#<unspecified>`` become ``None``.
    The literals are replaced textually before reading, so the same
    character sequences inside strings or symbols are replaced too.

    :param raw_text: Printed value as returned by the evaluator.
    :returns: Python value: ``int``, ``float``, ``str``, ``bool``, ``None``,
        :class:`sexpdata.Symbol`, ``list``, or a 2-tuple for a dotted pair.
    :raises DecodeError: If the text is not exactly one readable datum.
    """
    substituted: str = _TRUE_TOKEN.sub("t", raw_text)
    substituted = _NO_VALUE_TOKEN.sub("nil", substituted)
    data: list[object] = _read_data(substituted, raw_text)
    if len(data) != 1:
        raise DecodeError(raw_text, f"expected one datum, found {len(data)}")
    return _to_python(data[0])


def count_forms(source_text: str) -> int:
    """Count the top-level forms the evaluator will read from ``source_text``.

    The evaluator prints one prompt per form it reads, so this is the number
    of prompts an interactive submission produces. Text the reader cannot
    split is counted as one form.

    :param source_text: Guile source.
    :returns: Number of top-level forms, ``0`` for blank input.
    """
    if len(source_text.strip()) == 0:
        return 0
    try:
        data: list[object] = _read_data(source_text)
    except DecodeError:
        return 1
    return len(data)


@dataclass(frozen=True)
class Reply:
    """Outcome of one synchronous request.

    Exactly one of ``values`` and ``error`` is set.
    """

    values: tuple[str, ...] | None = None
    error: str | None = None
    output: str = ""

    def __post_init__(self) -> None:
        has_values: bool = self.values is not None
        has_error: bool = self.error is not None
        if has_values is has_error:
            raise ValueError("Reply must hold either values or an error")

    @property
    def ok(self) -> bool:
        """Report whether the request succeeded.

        :returns: ``True`` for a success reply.
        """
        return self.values is not None


def _entry_tail(entry: list[object]) -> list[object]:
    """Return the payload of one alist entry, unwrapping ``(key . value)``."""
    if len(entry) == 3 and _is_dot(entry[1]) is True:
        return [entry[2]]
    return entry[1:]


def parse_reply(segment: str) -> Reply:
    """Read the reply printed for one request.

    The reply alist is the last non-blank line of the segment; anything
    before it, less the newline the request prints ahead of the reply, is
    output the evaluated form printed.

    :param segment: Evaluator output between the request and the next prompt.
    :returns: Parsed reply.
    :raises EvaluationError: If the segment holds no well-formed reply, which
        happens when the evaluator could not read the request at all.
    """
    stripped: str = segment.rstrip()
    if len(stripped.strip()) == 0:
        raise EvaluationError("Evaluator returned no reply", output=segment)

    last_newline: int = stripped.rfind("\n")
    reply_line: str = stripped[last_newline + 1:]
    printed: str = stripped[: last_newline + 1]
    if printed.endswith("\n") is True:
        printed = printed[:-1]

    try:
        data: list[object] = _read_data(reply_line)
    except DecodeError as exc:
        raise EvaluationError(stripped, output=printed) from exc

    if len(data) != 1 or isinstance(data[0], list) is False:
        raise EvaluationError(stripped, output=printed)

    values: tuple[str, ...] | None = None
    error: str | None = None
    output: str = printed
    for entry in data[0]:
        if isinstance(entry, list) is False or len(entry) == 0:
            raise EvaluationError(stripped, output=printed)
        head: object = entry[0]
        tail: list[object] = _entry_tail(entry)
        if head == _RESULT:
            values = tuple(str(item) for item in tail)
        elif head == _ERROR:
            error = " ".join(print_datum(item) for item in tail)
        elif head == _OUTPUT:
            for item in tail:
                if isinstance(item, str) is True:
                    output += item

    if values is None and error is None:
        raise EvaluationError(stripped, output=printed)
    if error is not None:
        return Reply(error=error, output=output)
    return Reply(values=values, output=output)
