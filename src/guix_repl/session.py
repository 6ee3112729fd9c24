"""Evaluator sessions: one live process or socket connection each."""

import codecs
import logging
import os
import re
import socket
import subprocess
import threading
import time
from collections import deque
from typing import Literal

from guix_repl.config import ReplConfig
from guix_repl.errors import SessionTransportError
from guix_repl.errors import StartupFailure
from guix_repl.notify import Notifier
from guix_repl.reader import count_forms

logger = logging.getLogger(__name__)

SESSION_NAMES: dict[str, str] = {
    "main": "Guix REPL",
    "internal": "Guix Internal REPL",
}
_READ_CHUNK_SIZE: int = 4096
_CONNECT_RETRY_DELAY: float = 0.05
ExpectationKind = Literal["startup", "request", "operation", "form"]


class ProcessChannel:
    """Spawned evaluator process talking over its standard streams."""

    _process: subprocess.Popen[bytes]
    _closed: bool

    def __init__(self, process: "subprocess.Popen[bytes]") -> None:
        """Wrap an already spawned process.

        :param process: Process with piped stdin and stdout.
        """
        self._process = process
        self._closed = False

    @classmethod
    def spawn(cls, argv: list[str]) -> "ProcessChannel":
        """Spawn the evaluator.

        :param argv: Command line.
        :returns: Channel for the new process.
        :raises OSError: If the program cannot be executed.
        """
        logger.debug("Spawning evaluator: %s", argv)
        process: subprocess.Popen[bytes] = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            bufsize=0,
        )
        return cls(process)

    @property
    def pid(self) -> int:
        """Return the process identifier.

        :returns: Process identifier.
        """
        return self._process.pid

    def is_alive(self) -> bool:
        """Report whether the process is still running.

        :returns: ``True`` while the process has not exited.
        """
        if self._closed is True:
            return False
        return self._process.poll() is None

    def read_chunk(self) -> bytes:
        """Block until output is available.

        :returns: Output bytes, or ``b""`` at end of stream.
        """
        stdout = self._process.stdout
        if stdout is None:
            return b""
        try:
            return os.read(stdout.fileno(), _READ_CHUNK_SIZE)
        except (OSError, ValueError):
            return b""

    def write(self, data: bytes) -> None:
        """Send bytes to the process input.

        :param data: Bytes to send.
        :raises SessionTransportError: If the pipe is closed.
        """
        stdin = self._process.stdin
        if stdin is None or self._closed is True:
            raise SessionTransportError("Evaluator process input is closed")
        try:
            stdin.write(data)
            stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise SessionTransportError("Failed to write to evaluator process") from exc

    def close(self) -> None:
        """Terminate the process and release its pipes."""
        if self._closed is True:
            return
        self._closed = True
        process: subprocess.Popen[bytes] = self._process
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass
        try:
            process.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            process.terminate()
            try:
                process.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        if process.stdout is not None:
            try:
                process.stdout.close()
            except OSError:
                pass


class SocketChannel:
    """TCP connection to the REPL server of a running evaluator."""

    _socket: socket.socket
    _address: tuple[str, int]
    _closed: bool
    _at_eof: bool

    def __init__(self, connection: socket.socket, address: tuple[str, int]) -> None:
        """Wrap a connected socket.

        :param connection: Connected stream socket.
        :param address: Remote ``(host, port)``.
        """
        self._socket = connection
        self._address = address
        self._closed = False
        self._at_eof = False

    @classmethod
    def connect(cls, host: str, port: int, deadline: float) -> "SocketChannel":
        """Connect, retrying while the server is not listening yet.

        :param host: Server host.
        :param port: Server port.
        :param deadline: ``time.monotonic()`` value after which to give up.
        :returns: Connected channel.
        :raises OSError: If no connection was accepted before the deadline.
        """
        last_error: OSError | None = None
        while True:
            remaining: float = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                connection: socket.socket = socket.create_connection((host, port), timeout=remaining)
            except OSError as exc:
                last_error = exc
                time.sleep(_CONNECT_RETRY_DELAY)
                continue
            connection.settimeout(None)
            logger.debug("Connected to %s:%s", host, port)
            return cls(connection, (host, port))
        if last_error is not None:
            raise last_error
        raise TimeoutError(f"Timed out connecting to {host}:{port}")

    @property
    def address(self) -> tuple[str, int]:
        """Return the remote address.

        :returns: ``(host, port)`` tuple.
        """
        return self._address

    def is_alive(self) -> bool:
        """Report whether the connection is open.

        :returns: ``True`` until the peer closes or the channel is closed.
        """
        return self._closed is False and self._at_eof is False

    def read_chunk(self) -> bytes:
        """Block until data arrives.

        :returns: Received bytes, or ``b""`` once the connection is gone.
        """
        try:
            data: bytes = self._socket.recv(_READ_CHUNK_SIZE)
        except OSError:
            data = b""
        if len(data) == 0:
            self._at_eof = True
        return data

    def write(self, data: bytes) -> None:
        """Send bytes to the server.

        :param data: Bytes to send.
        :raises SessionTransportError: If the connection is gone.
        """
        if self.is_alive() is False:
            raise SessionTransportError("Evaluator connection is closed")
        try:
            self._socket.sendall(data)
        except OSError as exc:
            raise SessionTransportError("Failed to write to evaluator connection") from exc

    def close(self) -> None:
        """Close the connection."""
        if self._closed is True:
            return
        self._closed = True
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._socket.close()


Channel = ProcessChannel | SocketChannel


class PromptSplitter:
    """Cut a stream of evaluator output into prompt-terminated segments."""

    _pattern: re.Pattern[str]
    _buffer: str

    def __init__(self, prompt_pattern: str) -> None:
        """Initialize an empty splitter.

        :param prompt_pattern: Regular expression matching one prompt.
        """
        self._pattern = re.compile(prompt_pattern)
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Return output received since the last prompt.

        :returns: Unterminated output.
        """
        return self._buffer

    def feed(self, text: str) -> list[str]:
        """Add output and return every segment completed by a prompt.

        :param text: Newly received output.
        :returns: Completed segments, prompts excluded.
        """
        self._buffer += text
        segments: list[str] = []
        while True:
            match: re.Match[str] | None = self._pattern.search(self._buffer)
            if match is None:
                break
            segments.append(self._buffer[: match.start()])
            self._buffer = self._buffer[match.end():]
        return segments


class _Expectation:
    """One prompt the session is waiting for."""

    kind: ExpectationKind
    event: threading.Event
    text: str | None
    error: Exception | None

    def __init__(self, kind: ExpectationKind) -> None:
        self.kind = kind
        self.event = threading.Event()
        self.text = None
        self.error = None


class ReplSession:
    """One live connection to a remote evaluator, scoped to a role.

    Every prompt the evaluator prints ends the oldest outstanding
    expectation, in the order input was sent.
    """

    role: str
    name: str
    _channel: Channel
    _notifier: Notifier
    _splitter: PromptSplitter
    _decoder: codecs.IncrementalDecoder
    _encoding: str
    _transcript: str
    _transcript_limit: int
    _expectations: deque[_Expectation]
    _state_lock: threading.Lock
    _request_lock: threading.Lock
    _input_lock: threading.Lock
    _staged_input: str
    _reader: threading.Thread | None
    _at_eof: bool
    _is_closed: bool

    def __init__(self, role: str, channel: Channel, notifier: Notifier, config: ReplConfig) -> None:
        """Initialize a session around an open channel.

        :param role: Session role.
        :param channel: Process or socket channel.
        :param notifier: Receiver for lifecycle and output events.
        :param config: Manager configuration.
        """
        self.role = role
        self.name = SESSION_NAMES[role]
        self._channel = channel
        self._notifier = notifier
        self._splitter = PromptSplitter(config.prompt_pattern)
        self._encoding = config.encoding
        self._decoder = codecs.getincrementaldecoder(config.encoding)(errors="replace")
        self._transcript = ""
        self._transcript_limit = config.transcript_limit
        self._expectations = deque()
        self._state_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._input_lock = threading.Lock()
        self._staged_input = ""
        self._reader = None
        self._at_eof = False
        self._is_closed = False

    def __repr__(self) -> str:
        state: str = "alive"
        if self.is_alive is False:
            state = "dead"
        return f"<ReplSession {self.name!r} role={self.role} {state}>"

    @property
    def address(self) -> tuple[str, int] | None:
        """Return the remote address for socket sessions.

        :returns: ``(host, port)`` or ``None`` for spawned sessions.
        """
        if isinstance(self._channel, SocketChannel) is True:
            return self._channel.address
        return None

    @property
    def pid(self) -> int | None:
        """Return the evaluator process identifier for spawned sessions.

        :returns: Process identifier or ``None`` for socket sessions.
        """
        if isinstance(self._channel, ProcessChannel) is True:
            return self._channel.pid
        return None

    @property
    def is_alive(self) -> bool:
        """Report whether the session can still take input.

        :returns: ``True`` while the channel is open and has not hit end of stream.
        """
        with self._state_lock:
            if self._is_closed is True or self._at_eof is True:
                return False
        return self._channel.is_alive()

    @property
    def transcript(self) -> str:
        """Return the most recent evaluator output, prompts included.

        :returns: Transcript text.
        """
        with self._state_lock:
            return self._transcript

    @property
    def staged_input(self) -> str:
        """Return input typed but not yet sent.

        :returns: Staged input text.
        """
        return self._staged_input

    def start(self) -> None:
        """Start pumping evaluator output; the first prompt marks readiness."""
        with self._state_lock:
            if self._reader is not None:
                return
            self._expectations.append(_Expectation("startup"))
            reader = threading.Thread(target=self._pump_output, name=f"{self.name} reader", daemon=True)
            self._reader = reader
        reader.start()

    def wait_ready(self, timeout: float, port: int | None = None) -> None:
        """Wait for the evaluator's first prompt.

        :param timeout: Seconds to wait.
        :param port: Listening port to name in failures.
        :raises StartupFailure: If no prompt arrives in time or the channel dies first.
        """
        with self._state_lock:
            startup: _Expectation | None = None
            for expectation in self._expectations:
                if expectation.kind == "startup":
                    startup = expectation
                    break
        if startup is None:
            return

        signalled: bool = startup.event.wait(timeout)
        if signalled is False:
            raise StartupFailure(
                f"no prompt within {timeout:g} seconds",
                self.role,
                port,
                self.name,
                self.transcript,
            )
        if startup.error is not None:
            raise StartupFailure(
                "the evaluator exited before becoming ready",
                self.role,
                port,
                self.name,
                self.transcript,
            ) from startup.error

    def _expect(self, kind: ExpectationKind, forms: int = 1) -> list[_Expectation]:
        """Register the prompts to wait for before input is written.

        Input holding several forms makes the evaluator print one prompt per
        form; all but the last are registered as ``"form"`` expectations.

        :param kind: What the last prompt completes.
        :param forms: Number of top-level forms in the input.
        :returns: Registered expectations, the one for ``kind`` last.
        :raises SessionTransportError: If the session is already dead.
        """
        expectations: list[_Expectation] = [_Expectation("form") for _ in range(forms - 1)]
        expectations.append(_Expectation(kind))
        with self._state_lock:
            if self._is_closed is True or self._at_eof is True:
                raise SessionTransportError(f"{self.name} is not running")
            self._expectations.extend(expectations)
        return expectations

    def _withdraw(self, expectations: list[_Expectation]) -> None:
        """Forget expectations whose input could not be written."""
        with self._state_lock:
            for expectation in expectations:
                try:
                    self._expectations.remove(expectation)
                except ValueError:
                    pass

    def _write_line(self, text: str) -> None:
        """Send one line of input.

        :param text: Input text without the trailing newline.
        :raises SessionTransportError: If the channel is gone.
        """
        logger.debug("%s <- %s", self.name, text)
        data: bytes = (text + "\n").encode(self._encoding)
        self._channel.write(data)

    def _send(self, kind: ExpectationKind, text: str, forms: int = 1) -> list[_Expectation]:
        """Register the prompts ``text`` will produce, then write it.

        Registration and write happen under one lock so the expectation
        queue stays in the order input reaches the evaluator.

        :param kind: What the last prompt completes.
        :param text: Input line.
        :param forms: Number of top-level forms in ``text``.
        :returns: Registered expectations.
        :raises SessionTransportError: If the session is dead.
        """
        with self._input_lock:
            registered: list[_Expectation] = self._expect(kind, forms)
            try:
                self._write_line(text)
            except SessionTransportError:
                self._withdraw(registered)
                raise
        return registered

    def request(self, text: str) -> str:
        """Send one synchronous request and wait for the output it produces.

        Only one request is in flight per session; concurrent callers queue
        on a lock. There is no timeout once the request is written.

        :param text: Request text.
        :returns: Output printed before the next prompt.
        :raises SessionTransportError: If the session dies before replying.
        """
        with self._request_lock:
            expectation: _Expectation = self._send("request", text)[-1]
            expectation.event.wait()
            if expectation.error is not None:
                raise expectation.error
            if expectation.text is None:
                raise SessionTransportError(f"{self.name} closed before replying")
            return expectation.text

    def discard_input(self) -> None:
        """Drop input typed but not yet sent."""
        self._staged_input = ""

    def type_input(self, text: str) -> None:
        """Append text to the staged input.

        :param text: Text to stage.
        """
        self._staged_input += text

    def send_input(self) -> None:
        """Send the staged input as an interactive operation without waiting.

        The operation finishes at the prompt that follows its last form.
        Blank input is sent but starts no operation, since the evaluator
        prints no prompt for it.

        :raises SessionTransportError: If the session is dead.
        """
        source_text: str = self._staged_input
        self._staged_input = ""
        forms: int = count_forms(source_text)
        if forms == 0:
            with self._input_lock:
                self._write_line(source_text)
            return
        self._send("operation", source_text, forms)
        self._notifier.operation_started(self, source_text)

    def _append_transcript(self, text: str) -> None:
        with self._state_lock:
            combined: str = self._transcript + text
            if len(combined) > self._transcript_limit:
                combined = combined[-self._transcript_limit:]
            self._transcript = combined

    def _complete(self, segment: str) -> None:
        """Hand one prompt-terminated segment to the oldest expectation."""
        with self._state_lock:
            if len(self._expectations) == 0:
                logger.debug("%s: unsolicited prompt", self.name)
                return
            expectation: _Expectation = self._expectations.popleft()
        expectation.text = segment
        expectation.event.set()
        if expectation.kind == "operation":
            self._notifier.operation_finished(self)

    def _fail_pending(self, reason: str) -> None:
        """Wake every waiter with a transport error."""
        with self._state_lock:
            self._at_eof = True
            pending: list[_Expectation] = list(self._expectations)
            self._expectations.clear()
        for expectation in pending:
            expectation.error = SessionTransportError(reason, output=self._splitter.pending)
            expectation.event.set()

    def _pump_output(self) -> None:
        """Reader thread body: route output until the channel closes."""
        while True:
            chunk: bytes = self._channel.read_chunk()
            if len(chunk) == 0:
                break
            text: str = self._decoder.decode(chunk)
            if len(text) == 0:
                continue
            self._append_transcript(text)
            self._notifier.output(self, text)
            for segment in self._splitter.feed(text):
                self._complete(segment)
        logger.info("%s: evaluator output closed", self.name)
        self._fail_pending(f"{self.name} exited")

    def close(self) -> None:
        """Close the channel and fail any waiting requests."""
        with self._state_lock:
            if self._is_closed is True:
                return
            self._is_closed = True
        self._channel.close()
        self._fail_pending(f"{self.name} was closed")
        reader: threading.Thread | None = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2.0)
