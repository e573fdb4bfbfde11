#!/usr/bin/env python3
import curses
import locale
import logging
import os
import sys
from typing import Union

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


def init_locale() -> None:
    for loc in ("en_US.UTF-8", "C.UTF-8", "UTF-8", ""):
        try:
            locale.setlocale(locale.LC_ALL, loc)
            return
        except locale.Error:
            continue


init_locale()

C_STATUS = 1
C_HEADER = 2


def init_colors() -> None:
    try:
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(C_STATUS, curses.COLOR_BLACK, curses.COLOR_WHITE)
        curses.init_pair(C_HEADER, curses.COLOR_BLUE, -1)
    except curses.error:
        pass


def safe_addstr(stdscr, y, x, text, attr=0):
    h, w = stdscr.getmaxyx()
    if y < 0 or y >= h or x < 0 or x >= w:
        return
    truncated = text[: max(0, w - x - 1)]
    if not truncated:
        return
    try:
        stdscr.addstr(y, x, truncated, attr)
    except curses.error:
        pass


def key_to_event(key: Union[str, int]) -> KeyEvent:
    if isinstance(key, str):
        if key == "\x1b":
            return ESCAPE
        if key in ("\n", "\r"):
            return ENTER
        if key in ("\x7f", "\b"):
            return BACKSPACE
        if len(key) == 1 and key.isprintable():
            return KeyEvent.of(key)
        return OTHER
    if key == curses.KEY_ENTER:
        return ENTER
    if key == curses.KEY_BACKSPACE:
        return BACKSPACE
    return OTHER


class CursesTerminal:
    """Draws frames on ``stdscr`` and reads one key at a time from it."""

    def __init__(self, stdscr):
        self.stdscr = stdscr

    @property
    def height(self) -> int:
        return self.stdscr.getmaxyx()[0]

    def clear(self) -> None:
        self.stdscr.erase()

    def print(self, x: int, y: int, text: str) -> None:
        attr = curses.color_pair(C_HEADER) | curses.A_BOLD if y == 0 else 0
        safe_addstr(self.stdscr, y, x, text, attr)

    def present(self, status: str = "") -> None:
        draw_status_bar(self.stdscr, status)
        self.stdscr.refresh()

    def poll_event(self) -> KeyEvent:
        while True:
            try:
                key = self.stdscr.get_wch()
            except curses.error:
                continue
            return key_to_event(key)


def draw_status_bar(stdscr, status: str) -> None:
    height, width = stdscr.getmaxyx()
    if height < 2:
        return
    bar_attr = curses.color_pair(C_STATUS)
    safe_addstr(stdscr, height - 1, 0, " " * (width - 1), bar_attr)
    safe_addstr(stdscr, height - 1, 0, status, bar_attr)


# ── Main ─────────────────────────────────────────────────────────────


def main(stdscr, client: MPDClient) -> SessionResult:
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    stdscr.nodelay(False)
    stdscr.keypad(True)
    init_colors()
    terminal = CursesTerminal(stdscr)
    return Session(client, terminal, terminal).run()


def run() -> int:
    if not sys.stdin.isatty():
        print("This TUI must be run in a real terminal.")
        return 1
    setup_logging()
    os.environ.setdefault("NCURSES_NO_UTF8_ACS", "1")
    os.environ.setdefault("ESCDELAY", "25")
    try:
        with MPDClient.connect() as client:
            result = curses.wrapper(main, client)
    except MPDError as e:
        logger.error("Session failed: %s", e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    message = summarize(result)
    if message:
        print(message)
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
