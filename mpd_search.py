#!/usr/bin/env python3
"""MPD incremental search: narrow the library one keystroke at a time, then queue it."""

import logging
import re
import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

MPD_HOST = "127.0.0.1"
MPD_PORT = 6600
ENCODING = "utf-8"

FILE_PREFIX = "file: "
PLAYLIST_LENGTH_PREFIX = "playlistlength: "
FRAME_HEADER = "Filters:"


# ── Errors ───────────────────────────────────────────────────────────


class MPDError(Exception):
    """Base class for everything that can go wrong talking to the server."""


class ConnectError(MPDError):
    pass


class CommandError(MPDError):
    pass


class CommandIOError(CommandError):
    pass


ACK_RE = re.compile(r"^ACK \[(\d+)@(\d+)\] \{([^}]*)\}\s?(.*)$")


class ServerRejected(CommandError):
    """An ``ACK`` terminator: ``ACK [<error>@<list_num>] {<command>} <message>``."""

    def __init__(self, line: str):
        self.line = line.rstrip("\r\n")
        match = ACK_RE.match(self.line)
        if match:
            self.code: Optional[int] = int(match.group(1))
            self.list_num: Optional[int] = int(match.group(2))
            self.command = match.group(3)
            self.message = match.group(4)
        else:
            self.code = None
            self.list_num = None
            self.command = ""
            self.message = self.line[3:].strip()
        super().__init__(self.message or self.line)


class ProtocolError(MPDError):
    pass


class InvalidTransition(RuntimeError):
    pass


# ── Filters ──────────────────────────────────────────────────────────


class FilterType(Enum):
    ANY = "any"
    TITLE = "title"
    TRACK = "track"
    DISC = "disc"
    ALBUM = "album"
    ARTIST = "artist"
    ALBUM_ARTIST = "albumartist"


FILTER_KEYS = {
    " ": FilterType.ANY,
    "t": FilterType.TITLE,
    "T": FilterType.TRACK,
    "d": FilterType.DISC,
    "b": FilterType.ALBUM,
    "a": FilterType.ARTIST,
    "A": FilterType.ALBUM_ARTIST,
}


def char_to_filter_type(c: str) -> Optional[FilterType]:
    return FILTER_KEYS.get(c)


def is_term_char(c: str) -> bool:
    return c.isalnum() or c.isspace()


def mpd_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


# ── Constraint model ─────────────────────────────────────────────────


@dataclass
class Constraint:
    filter_type: FilterType
    term: str = ""

    def to_fragment(self) -> str:
        return f'{self.filter_type.value} "{mpd_escape(self.term)}" '


class ConstraintModel:
    """Ordered filter/term pairs; only the last one is ever edited or removed."""

    def __init__(self) -> None:
        self._constraints: List[Constraint] = []

    def __len__(self) -> int:
        return len(self._constraints)

    def __iter__(self) -> Iterator[Constraint]:
        return iter(self._constraints)

    def last(self) -> Optional[Constraint]:
        return self._constraints[-1] if self._constraints else None

    def push(self, filter_type: FilterType) -> Constraint:
        constraint = Constraint(filter_type)
        self._constraints.append(constraint)
        return constraint

    def pop(self) -> bool:
        if not self._constraints:
            return False
        self._constraints.pop()
        return True

    def edit_last(self, fn: Callable[[str], str]) -> None:
        if self._constraints:
            last = self._constraints[-1]
            last.term = fn(last.term)

    def to_search_fragment(self) -> str:
        return "".join(c.to_fragment() for c in self._constraints)


# ── Key events & state machine ───────────────────────────────────────


class KeyKind(Enum):
    ESCAPE = "escape"
    ENTER = "enter"
    BACKSPACE = "backspace"
    CHAR = "char"
    OTHER = "other"


@dataclass(frozen=True)
class KeyEvent:
    kind: KeyKind
    char: str = ""

    @classmethod
    def of(cls, c: str) -> "KeyEvent":
        return cls(KeyKind.CHAR, c)


ESCAPE = KeyEvent(KeyKind.ESCAPE)
ENTER = KeyEvent(KeyKind.ENTER)
BACKSPACE = KeyEvent(KeyKind.BACKSPACE)
OTHER = KeyEvent(KeyKind.OTHER)


class SessionState(Enum):
    NEED_TYPE = "need-type"
    NEED_TERM = "need-term"
    SHOULD_COMMIT = "should-commit"
    SHOULD_EXIT = "should-exit"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.SHOULD_COMMIT, SessionState.SHOULD_EXIT)


def advance(state: SessionState, event: KeyEvent, model: ConstraintModel) -> Tuple[SessionState, bool]:
    """Apply one key event to ``model``.

    Returns the next state and whether the model's content changed, which is
    what decides if a fresh search is needed.
    """
    if state.is_terminal:
        raise InvalidTransition(f"{state.name} accepts no further events (got {event})")

    kind = event.kind
    if kind is KeyKind.ESCAPE:
        return SessionState.SHOULD_EXIT, False

    if state is SessionState.NEED_TYPE:
        if kind is KeyKind.ENTER:
            return SessionState.SHOULD_COMMIT, False
        if kind is KeyKind.BACKSPACE:
            popped = model.pop()
            # NEED_TERM always edits model.last(), so only resume it if one is left
            return (SessionState.NEED_TERM if len(model) else SessionState.NEED_TYPE), popped
        if kind is KeyKind.CHAR:
            filter_type = char_to_filter_type(event.char)
            if filter_type is not None:
                model.push(filter_type)
                return SessionState.NEED_TERM, True
        return SessionState.NEED_TYPE, False

    # NEED_TERM
    if kind is KeyKind.ENTER:
        return SessionState.NEED_TYPE, False
    if kind is KeyKind.BACKSPACE:
        last = model.last()
        if last is not None and last.term:
            model.edit_last(lambda term: term[:-1])
            return SessionState.NEED_TERM, True
        model.pop()
        return SessionState.NEED_TYPE, True
    if kind is KeyKind.CHAR and is_term_char(event.char):
        c = event.char
        model.edit_last(lambda term: term + c)
        return SessionState.NEED_TERM, True
    return SessionState.NEED_TERM, False


class SearchController:
    """Holds the session state and feeds key events through :func:`advance`."""

    def __init__(self, model: ConstraintModel) -> None:
        self.model = model
        self.state = SessionState.NEED_TYPE

    def feed(self, event: KeyEvent) -> bool:
        state, changed = advance(self.state, event, self.model)
        if state is not self.state:
            logger.debug("State %s -> %s on %s", self.state.name, state.name, event.kind.value)
        self.state = state
        return changed


# ── Protocol client ──────────────────────────────────────────────────


def parse_files(lines: List[str]) -> List[str]:
    return [line[len(FILE_PREFIX):] for line in lines if line.startswith(FILE_PREFIX)]


def parse_playlist_length(lines: List[str]) -> int:
    for line in lines:
        if line.startswith(PLAYLIST_LENGTH_PREFIX):
            token = line[len(PLAYLIST_LENGTH_PREFIX):].strip()
            if not (token.isascii() and token.isdigit()):
                raise ProtocolError(f"Server returned invalid playlist length: {token!r}")
            return int(token)
    raise ProtocolError("Server status has no playlistlength")


class MPDClient:
    """Strict request/response client for the MPD line protocol.

    One command is written, then lines are read until ``OK`` or ``ACK``;
    the next command is never written before that terminator arrives.
    """

    def __init__(self, stream: BinaryIO, sock: Optional[socket.socket] = None):
        self._stream = stream
        self._sock = sock
        self.version = ""

    @classmethod
    def connect(cls, host: str = MPD_HOST, port: int = MPD_PORT) -> "MPDClient":
        try:
            sock = socket.create_connection((host, port))
        except OSError as e:
            raise ConnectError(f"Cannot connect to MPD at {host}:{port}: {e}") from e
        try:
            return cls.open(sock.makefile("rwb"), sock=sock)
        except ConnectError:
            sock.close()
            raise

    @classmethod
    def open(cls, stream: BinaryIO, sock: Optional[socket.socket] = None) -> "MPDClient":
        client = cls(stream, sock)
        client._handshake()
        return client

    def _handshake(self) -> None:
        try:
            greeting = self._readline()
        except CommandIOError as e:
            raise ConnectError(f"No greeting from MPD: {e}") from e
        if not greeting.startswith("OK"):
            raise ConnectError(f"Server did not return OK: {greeting!r}")
        if greeting.startswith("OK MPD "):
            self.version = greeting[len("OK MPD "):].strip()
        logger.info("Connected to MPD %s", self.version or "(unknown version)")

    def _readline(self) -> str:
        try:
            raw = self._stream.readline()
        except OSError as e:
            raise CommandIOError(f"Failed to read from mpd socket: {e}") from e
        if not raw:
            raise CommandIOError("Connection closed by server")
        return raw.decode(ENCODING, errors="replace").rstrip("\r\n")

    def send(self, command: str) -> List[str]:
        logger.debug("-> %s", command)
        try:
            self._stream.write(command.encode(ENCODING) + b"\n")
            self._stream.flush()
        except OSError as e:
            raise CommandIOError(f"Failed to write to mpd socket: {e}") from e

        lines: List[str] = []
        while True:
            line = self._readline()
            if line.rstrip() == "OK":
                return lines
            if line.startswith("ACK"):
                err = ServerRejected(line)
                logger.warning("Server rejected %r: %s", command, err.line)
                raise err
            lines.append(line)

    def search(self, fragment: str) -> List[str]:
        return parse_files(self.send(f"search {fragment}"))

    def playlist_length(self) -> int:
        return parse_playlist_length(self.send("status"))

    def searchadd(self, fragment: str) -> None:
        self.send(f"searchadd {fragment}")

    def play(self, index: int) -> None:
        self.send(f"play {index}")

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            if self._sock is not None:
                self._sock.close()
                self._sock = None

    def __enter__(self) -> "MPDClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ── Session ──────────────────────────────────────────────────────────


class Renderer(Protocol):
    height: int

    def clear(self) -> None: ...

    def print(self, x: int, y: int, text: str) -> None: ...

    def present(self, status: str = "") -> None: ...


class InputSource(Protocol):
    def poll_event(self) -> KeyEvent: ...


KEY_HINTS = {
    SessionState.NEED_TYPE: "  ".join(
        f"{'space' if key == ' ' else key} {ft.value}" for key, ft in FILTER_KEYS.items()
    ) + "  bksp back  enter commit  esc quit",
    SessionState.NEED_TERM: "type term  enter finish  bksp erase  esc quit",
}


def status_line(state: SessionState, message: str = "") -> str:
    hints = KEY_HINTS.get(state, "")
    return f"{message} | {hints}" if message else hints


def draw_frame(
    renderer: Renderer,
    state: SessionState,
    model: ConstraintModel,
    matches: List[str],
    message: str = "",
) -> None:
    """Header, then constraints, then matches; never more than ``height - 1`` rows.

    The key hints and any rejection message go to ``present`` for the
    frontend's status row.
    """
    renderer.clear()
    bound = renderer.height - 1
    lines = [FRAME_HEADER] + [c.to_fragment() for c in model] + matches
    for y, text in enumerate(lines[:max(bound, 0)]):
        renderer.print(0, y, text)
    renderer.present(status_line(state, message))


@dataclass
class SessionResult:
    state: SessionState
    model: ConstraintModel
    matches: List[str] = field(default_factory=list)
    added: int = 0


class Session:
    """Render, read one key, advance, re-query on change; commit at the end."""

    def __init__(self, client: MPDClient, renderer: Renderer, events: InputSource):
        self.client = client
        self.renderer = renderer
        self.events = events
        self.model = ConstraintModel()
        self.controller = SearchController(self.model)
        self.matches: List[str] = []
        self.status = ""

    @property
    def state(self) -> SessionState:
        return self.controller.state

    def refresh(self) -> None:
        self.status = ""
        if not len(self.model):
            self.matches = []
            return
        try:
            self.matches = self.client.search(self.model.to_search_fragment())
        except ServerRejected as e:
            self.matches = []
            self.status = f"search rejected: {e.message or e.line}"

    def run(self) -> SessionResult:
        changed = True
        while not self.state.is_terminal:
            if changed:
                self.refresh()
            draw_frame(self.renderer, self.state, self.model, self.matches, self.status)
            changed = self.controller.feed(self.events.poll_event())

        added = 0
        if self.state is SessionState.SHOULD_COMMIT:
            added = self.commit()
        logger.info("Session ended: %s (%d constraints)", self.state.name, len(self.model))
        return SessionResult(self.state, self.model, list(self.matches), added)

    def commit(self) -> int:
        index = self.client.playlist_length()
        if not len(self.model):
            logger.info("Nothing to add")
            return 0
        fragment = self.model.to_search_fragment()
        logger.info("Adding %s at %d", fragment.strip(), index)
        self.client.searchadd(fragment)
        self.client.play(index)
        return len(self.matches)


def summarize(result: SessionResult) -> Optional[str]:
    if result.state is not SessionState.SHOULD_COMMIT:
        return None
    return f"Added {result.added} songs"
