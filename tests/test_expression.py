"""Tests for call encoding."""

import pytest
from sexpdata import Symbol

from guix_repl import FALSE
from guix_repl import Call
from guix_repl import Keyword
from guix_repl import encode
from guix_repl.expression import make_load_expression
from guix_repl.expression import make_request
from guix_repl.expression import wrap_forms


def test_encode_without_arguments() -> None:
    """A call with no arguments is just the parenthesized name."""
    assert encode("package-names") == "(package-names)"


def test_encode_empty_values_as_empty_list() -> None:
    """``None``, ``False`` and empty sequences all become the empty list."""
    assert encode("f", [None, False, [], ()]) == "(f '() '() '() '())"


def test_encode_false_sentinel_differs_from_none() -> None:
    """Only the dedicated sentinel produces a boolean false literal."""
    encoded_none: str = encode("f", [None])
    encoded_false: str = encode("f", [FALSE])
    assert encoded_none == "(f '())"
    assert encoded_false == "(f #f)"
    assert encoded_none != encoded_false


def test_encode_true_and_keyword_flags() -> None:
    """``True`` and keywords use the hash prefix, unquoted."""
    assert encode("f", [True, Keyword("installed")]) == "(f #t #:installed)"


def test_encode_quotes_symbols_and_lists() -> None:
    """Symbols and lists are quoted so they reach the callee unevaluated."""
    encoded: str = encode("f", [Symbol("foo"), [Symbol("a"), Symbol("b")]])
    assert encoded == "(f 'foo '(a b))"


def test_encode_nested_list_contents() -> None:
    """Quoted data prints strings, numbers, booleans and nested lists."""
    encoded: str = encode("f", [[Symbol("id"), "guile", 2, 1.5, [True, FALSE, None, Keyword("k")]]])
    assert encoded == "(f '(id \"guile\" 2 1.5 (#t #f () #:k)))"


def test_encode_plain_numbers_and_strings() -> None:
    """Numbers and strings are printed as they are."""
    assert encode("f", [42, -3, 2.5, "emacs"]) == '(f 42 -3 2.5 "emacs")'


def test_encode_escapes_strings() -> None:
    """Quotes and backslashes inside strings are escaped."""
    assert encode("f", ['say "hi" \\']) == '(f "say \\"hi\\" \\\\")'


def test_encode_special_floats() -> None:
    """Infinities use Guile's spelling."""
    assert encode("f", [float("inf"), float("-inf")]) == "(f +inf.0 -inf.0)"


def test_encode_rejects_unsupported_kinds() -> None:
    """Values outside the supported kinds are programming errors."""
    with pytest.raises(TypeError):
        encode("f", [object()])
    with pytest.raises(TypeError):
        encode("f", [{"a": 1}])


def test_encode_rejects_bad_function_names() -> None:
    """Function names must print as one symbol."""
    with pytest.raises(ValueError):
        encode("", [])
    with pytest.raises(ValueError):
        encode("two words", [])


def test_encode_rejects_symbols_that_split_into_several_tokens() -> None:
    """Symbol arguments, bare or nested, must print as one token."""
    with pytest.raises(ValueError):
        encode("f", [Symbol("two words")])
    with pytest.raises(ValueError):
        encode("f", [[Symbol("ok"), Symbol("a)b")]])
    with pytest.raises(ValueError):
        encode("f", [Symbol("")])
    assert encode("f", [Symbol("emacs-guix?")]) == "(f 'emacs-guix?)"


def test_encode_accepts_symbol_function_name() -> None:
    """A symbol works as the function name."""
    assert encode(Symbol("package-names"), [1]) == "(package-names 1)"


def test_call_is_immutable_and_pure() -> None:
    """Encoding a call twice gives the same text and the call cannot change."""
    call = Call("generation-list", [Symbol("profile"), 3])
    first: str = call.encode()
    second: str = call.encode()
    assert first == second == "(generation-list 'profile 3)"
    assert call.args == (Symbol("profile"), 3)
    with pytest.raises(AttributeError):
        call.function_name = "other"  # type: ignore[misc]


def test_keyword_validation() -> None:
    """Keywords need a non-empty name without delimiters."""
    with pytest.raises(ValueError):
        Keyword("")
    with pytest.raises(ValueError):
        Keyword("a b")


def test_false_sentinel_is_falsy_singleton() -> None:
    """The sentinel is a single falsy object."""
    assert bool(FALSE) is False
    assert repr(FALSE) == "FALSE"


def test_wrap_and_load_helpers() -> None:
    """Helpers build grouping and load forms."""
    assert wrap_forms("(define x 1) x") == "(begin (define x 1) x)"
    assert make_load_expression("/tmp/helper.scm") == '(load "/tmp/helper.scm")'


def test_request_embeds_form() -> None:
    """Requests wrap the form in an error-catching reply printer."""
    request: str = make_request("(+ 1 2)")
    assert request.startswith("(catch #t") is True
    assert "(lambda () (+ 1 2))" in request
    assert "\n" not in request
