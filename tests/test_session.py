"""Tests for prompt splitting and single sessions."""

import sys
from collections.abc import Iterator

import pytest

from guix_repl import ReplConfig
from guix_repl import ReplSession
from guix_repl import SessionTransportError
from guix_repl import StartupFailure
from guix_repl.expression import make_request
from guix_repl.reader import parse_reply
from guix_repl.session import ProcessChannel
from guix_repl.session import PromptSplitter
from tests.support import FAKE_GUILE
from tests.support import RecordingNotifier

PROMPT: str = "scheme@(guile-user)> "


def test_splitter_waits_for_prompt() -> None:
    """Output without a prompt stays pending."""
    splitter = PromptSplitter(ReplConfig().prompt_pattern)
    assert splitter.feed("GNU Guile 3.0\n") == []
    assert splitter.pending == "GNU Guile 3.0\n"


def test_splitter_handles_prompt_split_across_chunks() -> None:
    """A prompt arriving in pieces completes the segment once whole."""
    splitter = PromptSplitter(ReplConfig().prompt_pattern)
    assert splitter.feed("$1 = 3\nscheme@(gui") == []
    assert splitter.feed("le-user)> ") == ["$1 = 3\n"]
    assert splitter.pending == ""


def test_splitter_returns_several_segments() -> None:
    """Several prompts in one chunk give several segments in order."""
    splitter = PromptSplitter(ReplConfig().prompt_pattern)
    segments: list[str] = splitter.feed(f"banner\n{PROMPT}one\n{PROMPT}two\nscheme@(guile-user) [1]> rest")
    assert segments == ["banner\n", "one\n", "two\n"]
    assert splitter.pending == "rest"


def _fake_session(notifier: RecordingNotifier, *extra_args: str) -> ReplSession:
    config = ReplConfig(program=sys.executable, server_mode=False)
    channel: ProcessChannel = ProcessChannel.spawn([sys.executable, str(FAKE_GUILE), *extra_args])
    return ReplSession("main", channel, notifier, config)


@pytest.fixture
def session(notifier: RecordingNotifier) -> Iterator[ReplSession]:
    """Provide a started session over the fake evaluator.

    :param notifier: Recording notifier.
    :yields: Ready session.
    """
    created: ReplSession = _fake_session(notifier)
    created.start()
    created.wait_ready(10.0)
    yield created
    created.close()


def test_session_request_round_trip(session: ReplSession) -> None:
    """A request returns the reply printed before the next prompt."""
    segment: str = session.request(make_request("(+ 1 2)"))
    assert parse_reply(segment).values == ("3",)
    assert session.is_alive is True
    assert session.name == "Guix REPL"
    assert session.address is None
    assert session.pid is not None


def test_session_transcript_records_output(session: ReplSession) -> None:
    """Everything the evaluator prints lands in the transcript."""
    session.request(make_request('(begin (display "hello") 1)'))
    transcript: str = session.transcript
    assert "GNU Guile" in transcript
    assert "hello" in transcript
    assert PROMPT in transcript


def test_session_staged_input_is_replaced(session: ReplSession, notifier: RecordingNotifier) -> None:
    """Sending input clears the staging area and reports the operation."""
    session.type_input("(+ 1")
    session.discard_input()
    session.type_input("(+ 1 1)")
    assert session.staged_input == "(+ 1 1)"
    session.send_input()
    assert session.staged_input == ""
    finished: bool = notifier.finished.wait(10.0)
    assert finished is True
    assert "$1 = 2" in session.transcript


def test_session_close_is_idempotent(session: ReplSession) -> None:
    """Closing twice is harmless and leaves the session dead."""
    session.close()
    session.close()
    assert session.is_alive is False
    with pytest.raises(SessionTransportError):
        session.request(make_request("1"))


def test_wait_ready_times_out_without_prompt(notifier: RecordingNotifier) -> None:
    """No prompt within the timeout is a startup failure."""
    silent: ReplSession = _fake_session(notifier, "--no-prompt")
    silent.start()
    try:
        with pytest.raises(StartupFailure) as exc_info:
            silent.wait_ready(0.5, port=4000)
        assert exc_info.value.port == 4000
        assert "port 4000" in str(exc_info.value)
        assert "Guix REPL" in str(exc_info.value)
        assert "GNU Guile" in exc_info.value.transcript
    finally:
        silent.close()


def test_wait_ready_reports_early_exit(notifier: RecordingNotifier) -> None:
    """An evaluator that exits before its prompt is a startup failure."""
    dying: ReplSession = _fake_session(notifier, "--exit-after-banner")
    dying.start()
    try:
        with pytest.raises(StartupFailure):
            dying.wait_ready(10.0)
    finally:
        dying.close()
