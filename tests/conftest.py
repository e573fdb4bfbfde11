"""
Shared fixtures: an in-memory MPD server stream and a scripted terminal.

FakeMPDStream answers each command line as soon as it is written, so the
client under test sees the same strict request/response ordering as a socket.
"""

from typing import Callable, Dict, Iterable, List, Optional

import pytest

from mpd_search import KeyEvent, MPDClient

GREETING = "OK MPD 0.23.5\n"


def default_handler(files: Optional[List[str]] = None, playlistlength: int = 3) -> Callable[[str], str]:
    files = ["Artist/Album/01 Foo.flac", "Artist/Album/02 Bar.flac"] if files is None else files

    def handle(command: str) -> str:
        if command == "status":
            return f"volume: 100\nrepeat: 0\nplaylistlength: {playlistlength}\nstate: stop\nOK\n"
        if command.startswith("search "):
            body = "".join(f"file: {f}\nTitle: {f.rsplit('/', 1)[-1]}\n" for f in files)
            return body + "OK\n"
        return "OK\n"

    return handle


class FakeMPDStream:
    def __init__(self, handler: Optional[Callable[[str], str]] = None, greeting: str = GREETING):
        self.handler = handler or default_handler()
        self.commands: List[str] = []
        self.closed = False
        self._pending = b""
        self._out = bytearray(greeting.encode("utf-8"))

    def write(self, data: bytes) -> int:
        self._pending += data
        while b"\n" in self._pending:
            line, self._pending = self._pending.split(b"\n", 1)
            command = line.decode("utf-8")
            self.commands.append(command)
            self._out += self.handler(command).encode("utf-8")
        return len(data)

    def flush(self) -> None:
        pass

    def readline(self) -> bytes:
        i = self._out.find(b"\n")
        end = len(self._out) if i < 0 else i + 1
        line = bytes(self._out[:end])
        del self._out[:end]
        return line

    def close(self) -> None:
        self.closed = True


class FakeTerminal:
    """Renderer + input source; keeps every presented frame as a list of rows."""

    def __init__(self, events: Iterable[KeyEvent], height: int = 24):
        self._events = list(events)
        self.height = height
        self.frames: List[List[str]] = []
        self.statuses: List[str] = []
        self._rows: Dict[int, str] = {}

    def clear(self) -> None:
        self._rows = {}

    def print(self, x: int, y: int, text: str) -> None:
        assert y < self.height - 1, f"drew row {y} with height {self.height}"
        self._rows[y] = text

    def present(self, status: str = "") -> None:
        self.frames.append([self._rows[y] for y in sorted(self._rows)])
        self.statuses.append(status)

    def poll_event(self) -> KeyEvent:
        assert self._events, "session asked for more input than scripted"
        return self._events.pop(0)

    @property
    def last_frame(self) -> List[str]:
        return self.frames[-1]


def keys(text: str) -> List[KeyEvent]:
    return [KeyEvent.of(c) for c in text]


@pytest.fixture
def stream() -> FakeMPDStream:
    return FakeMPDStream()


@pytest.fixture
def client(stream: FakeMPDStream) -> MPDClient:
    return MPDClient.open(stream)

