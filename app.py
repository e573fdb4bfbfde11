#!/usr/bin/env python3
"""MPD Search TUI: incremental library search for MPD, on Textual."""

import logging
import queue
import sys
from typing import Dict, Optional

from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Static

from logging_setup import setup_logging
from mpd_search import (
    BACKSPACE,
    ENTER,
    ESCAPE,
    OTHER,
    KeyEvent,
    MPDClient,
    MPDError,
    Session,
    SessionResult,
    summarize,
)

logger = logging.getLogger(__name__)


def key_to_event(key: str, character: Optional[str] = None) -> KeyEvent:
    if key == "escape":
        return ESCAPE
    if key == "enter":
        return ENTER
    if key in ("backspace", "ctrl+h"):
        return BACKSPACE
    if character and len(character) == 1 and character.isprintable():
        return KeyEvent.of(character)
    return OTHER


# ── Terminal adapter ─────────────────────────────────────────────────


class TextualTerminal:
    """Renderer and input source for a Session running off the UI thread.

    Rows are buffered between ``clear`` and ``present``; ``present`` hands the
    finished frame to the UI thread. Keys arrive through a queue.
    """

    def __init__(self, app: "MPDSearchApp") -> None:
        self._app = app
        self._rows: Dict[int, str] = {}
        self._events: "queue.Queue[KeyEvent]" = queue.Queue()
        self.height = 0

    def clear(self) -> None:
        self._rows = {}

    def print(self, x: int, y: int, text: str) -> None:
        if 0 <= y < self.height:
            self._rows[y] = " " * x + text

    def render_text(self) -> str:
        if not self._rows:
            return ""
        return "\n".join(self._rows.get(y, "") for y in range(max(self._rows) + 1))

    def present(self, status: str = "") -> None:
        if self._app.is_running:
            self._app.call_from_thread(self._app.show_frame, self.render_text(), status)

    def put(self, event: KeyEvent) -> None:
        self._events.put(event)

    def poll_event(self) -> KeyEvent:
        return self._events.get()


# ── Widgets ──────────────────────────────────────────────────────────


class FrameView(Static):
    """The search frame: filters, then matching files."""

    def on_resize(self, event: events.Resize) -> None:
        self.app.frame_resized(event.size.height)


# ── Main App ─────────────────────────────────────────────────────────


class MPDSearchApp(App):
    """Type filters, watch the matches narrow, Enter to queue and play."""

    CSS = """
    Screen {
        background: $surface;
    }

    #main-layout {
        height: 1fr;
    }

    #frame {
        width: 1fr;
        height: 1fr;
        padding: 0 1;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $primary-background-darken-1;
        padding: 0 2;
    }

    Header {
        dock: top;
    }
    """

    TITLE = "♫ MPD Search"
    SUB_TITLE = "Incremental search"

    BINDINGS = [
        Binding("escape", "feed('escape')", "Quit", priority=True),
        Binding("enter", "feed('enter')", "Next / Commit", priority=True),
        Binding("backspace", "feed('backspace')", "Erase", priority=True, show=False),
    ]

    def __init__(self, client: MPDClient):
        super().__init__()
        self.client = client
        self.terminal = TextualTerminal(self)
        self.session_result: Optional[SessionResult] = None
        self.session_error: Optional[BaseException] = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            yield FrameView("", id="frame", markup=False)
        yield Static("", id="status-bar", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.run_session()

    def on_unmount(self) -> None:
        # unblocks a session still waiting for a key when the app is quit another way
        self.terminal.put(ESCAPE)

    @work(thread=True, exit_on_error=False)
    def run_session(self) -> None:
        try:
            self.session_result = Session(self.client, self.terminal, self.terminal).run()
        except Exception as e:
            logger.exception("Session failed")
            self.session_error = e
        finally:
            if self.is_running:
                self.call_from_thread(self.exit, self.session_result)

    def show_frame(self, text: str, status: str = "") -> None:
        try:
            self.query_one("#frame", FrameView).update(text)
            self.query_one("#status-bar", Static).update(status)
        except NoMatches:
            pass

    def frame_resized(self, height: int) -> None:
        self.terminal.height = height
        self.terminal.put(OTHER)

    # ── Events ────────────────────────────────────────────────────────

    def action_feed(self, key: str) -> None:
        self.terminal.put(key_to_event(key))

    def on_key(self, event: events.Key) -> None:
        self.terminal.put(key_to_event(event.key, event.character))
        event.stop()
        event.prevent_default()


# ── Entry point ──────────────────────────────────────────────────────

def main() -> int:
    setup_logging()
    try:
        client = MPDClient.connect()
    except MPDError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    with client:
        app = MPDSearchApp(client)
        app.run()

    if app.session_error is not None:
        if isinstance(app.session_error, MPDError):
            print(f"error: {app.session_error}", file=sys.stderr)
            return 1
        raise app.session_error
    if app.session_result is not None:
        message = summarize(app.session_result)
        if message:
            print(message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
