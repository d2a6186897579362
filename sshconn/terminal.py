"""
Terminal ownership.

TerminalSession is the only code that changes terminal modes. It opens
curses (raw input, alternate screen, hidden cursor), paints render.Frame
objects with the colour pairs of the active theme, reads normalized keys,
and hands the terminal to child processes:

    handle = term.suspend()
    ... run ssh ...
    term.resume(handle)

handoff() wraps that sequence so the terminal is reclaimed even when the
child command raises.
"""
import curses
import os
import signal
import sys
import time
from dataclasses import dataclass

from . import render
from .errors import SessionError
from .utils import debug_log, run_reset_commands, truncate_visual

# Curses color pair IDs (1-based because 0 is reserved)
CP_HEADER = 1   # Headers, titles, column names
CP_ACCENT = 2   # Focused field, selection, search box
CP_TEXT = 3     # Normal body text
CP_WARN = 4     # Errors, delete and host-key dialogs
CP_BORDER = 5   # Borders, footer

THEMES = [
    {
        "name": "🔵 Default",
        "colors": {
            CP_HEADER: (curses.COLOR_BLUE, -1),
            CP_ACCENT: (curses.COLOR_CYAN, -1),
            CP_TEXT: (curses.COLOR_WHITE, -1),
            CP_WARN: (curses.COLOR_RED, -1),
            CP_BORDER: (curses.COLOR_BLUE, -1),
        },
        "colors_256": {
            CP_HEADER: (33, -1),
            CP_ACCENT: (45, -1),
            CP_TEXT: (255, -1),
            CP_WARN: (203, -1),
            CP_BORDER: (33, -1),
        },
        "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD, CP_BORDER: curses.A_DIM},
    },
    {
        "name": "🔸 Gruvbox",
        "colors": {
            CP_HEADER: (curses.COLOR_YELLOW, -1),
            CP_ACCENT: (curses.COLOR_GREEN, -1),
            CP_TEXT: (curses.COLOR_WHITE, -1),
            CP_WARN: (curses.COLOR_RED, -1),
            CP_BORDER: (curses.COLOR_YELLOW, -1),
        },
        "colors_256": {
            CP_HEADER: (214, 235),
            CP_ACCENT: (142, 235),
            CP_TEXT: (223, 235),
            CP_WARN: (167, 235),
            CP_BORDER: (246, 235),
        },
        "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD, CP_BORDER: curses.A_DIM},
    },
    {
        "name": "🌆 Tokyo Night",
        "colors": {
            CP_HEADER: (curses.COLOR_MAGENTA, -1),
            CP_ACCENT: (curses.COLOR_CYAN, -1),
            CP_TEXT: (curses.COLOR_WHITE, -1),
            CP_WARN: (curses.COLOR_YELLOW, -1),
            CP_BORDER: (curses.COLOR_BLUE, -1),
        },
        "colors_256": {
            CP_HEADER: (135, 234),
            CP_ACCENT: (45, 234),
            CP_TEXT: (189, 234),
            CP_WARN: (220, 234),
            CP_BORDER: (63, 234),
        },
        "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD, CP_BORDER: curses.A_DIM},
    },
]

# render role -> (colour pair, extra attribute)
ROLE_STYLES = {
    render.R_TEXT: (CP_TEXT, curses.A_NORMAL),
    render.R_HEADER: (CP_HEADER, curses.A_NORMAL),
    render.R_ACCENT: (CP_ACCENT, curses.A_NORMAL),
    render.R_WARN: (CP_WARN, curses.A_BOLD),
    render.R_BORDER: (CP_BORDER, curses.A_NORMAL),
    render.R_SELECTED: (CP_ACCENT, curses.A_REVERSE | curses.A_BOLD),
    render.R_DIM: (CP_BORDER, curses.A_DIM),
    render.R_ERROR: (CP_WARN, curses.A_NORMAL),
    render.R_DIALOG: (CP_TEXT, curses.A_NORMAL),
}

# --------------------------------------------------
# Key normalization
# --------------------------------------------------
# Named keys are multi-character strings; a 1-character string is always text.
KEY_NAMES = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_PPAGE: "ppage",
    curses.KEY_NPAGE: "npage",
    curses.KEY_BTAB: "btab",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_DC: "delete",
    curses.KEY_ENTER: "enter",
    curses.KEY_RESIZE: "resize",
}

CHAR_NAMES = {
    "\n": "enter",
    "\r": "enter",
    "\t": "tab",
    "\x1b": "esc",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl-c",
}

# get_wch() is drained at most this many times after a handoff
MAX_DRAIN = 1024


def normalize_key(key):
    if key is None:
        return None
    if isinstance(key, int):
        return KEY_NAMES.get(key, f"key-{key}")
    if key in CHAR_NAMES:
        return CHAR_NAMES[key]
    if len(key) == 1 and ord(key) < 32:
        return "ctrl-" + chr(ord(key) + 96)
    if not key.isprintable():
        return f"key-{ord(key[0])}"
    return key


def is_text(key):
    return key is not None and len(key) == 1


def _ignore_interrupt(signum, frame):
    # the child gets Ctrl-C itself; a Python handler, unlike SIG_IGN, is reset on exec
    debug_log("HANDOFF: SIGINT ignored while the child owns the terminal")


@dataclass(frozen=True)
class TerminalHandle:
    """Terminal modes in force before a handoff."""
    raw_mode: bool
    alt_screen: bool


@dataclass
class HandoffResult:
    value: object = None
    error: Exception = None


class TerminalSession:
    def __init__(self, theme_index=0, settle_delay=0.25):
        self.stdscr = None
        self.theme_index = theme_index
        self.settle_delay = settle_delay
        self.has_colors = False
        self.raw_mode = False
        self.alt_screen = False

    # ---- lifecycle ----
    def open(self):
        os.environ.setdefault("ESCDELAY", "25")
        self.stdscr = curses.initscr()
        self.alt_screen = True
        self.enter_modes()
        try:
            if curses.has_colors():
                curses.start_color()
                self.has_colors = True
        except curses.error as e:
            debug_log(f"THEME: colours unavailable: {e}")
        self.apply_theme()
        debug_log("TERMINAL: curses started")
        return self

    def enter_modes(self):
        curses.noecho()
        curses.raw()
        self.stdscr.keypad(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass  # terminal cannot hide the cursor
        self.raw_mode = True

    def close(self):
        if self.stdscr is None:
            return
        try:
            self.stdscr.keypad(False)
            curses.noraw()
            curses.echo()
            curses.curs_set(1)
        except curses.error as e:
            debug_log(f"TERMINAL: mode restore failed: {e}")
        finally:
            try:
                curses.endwin()
            except curses.error as e:
                debug_log(f"TERMINAL: endwin failed: {e}")
            self.raw_mode = False
            self.alt_screen = False
            self.stdscr = None
        debug_log("TERMINAL: curses stopped")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---- themes ----
    @property
    def theme(self):
        return THEMES[self.theme_index % len(THEMES)]

    def apply_theme(self):
        """Initializes color pairs for the current theme, using 256 colors if available."""
        if not self.has_colors:
            return
        theme = self.theme
        use_256 = curses.COLORS >= 256 and "colors_256" in theme
        try:
            curses.use_default_colors()
        except curses.error:
            pass
        for pair_id, (fg, bg) in (theme["colors_256"] if use_256 else theme["colors"]).items():
            try:
                curses.init_pair(pair_id, fg, bg)
            except curses.error as e:
                debug_log(f"THEME: init_pair({pair_id}) failed: {e}")
        self.stdscr.bkgdset(" ", curses.color_pair(CP_TEXT))

    def cycle_theme(self):
        self.theme_index = (self.theme_index + 1) % len(THEMES)
        self.apply_theme()
        debug_log(f"THEME: switched to {self.theme['name']}")
        return self.theme_index

    def role_attr(self, role):
        pair, extra = ROLE_STYLES.get(role, (CP_TEXT, curses.A_NORMAL))
        if not self.has_colors:
            return extra
        return curses.color_pair(pair) | self.theme.get("attrs", {}).get(pair, curses.A_NORMAL) | extra

    # ---- drawing / input ----
    def size(self):
        """(height, width) of the screen."""
        return self.stdscr.getmaxyx()

    def paint(self, frame):
        """Draw a frame; curses errors propagate to the caller's failure counter."""
        scr = self.stdscr
        scr.erase()
        h, w = scr.getmaxyx()
        for span in frame.spans:
            if span.y >= h or span.x >= w:
                continue
            # writing the bottom-right cell moves the cursor off-screen
            limit = w - span.x - (1 if span.y == h - 1 else 0)
            text = truncate_visual(span.text, limit)
            if text:
                scr.addstr(span.y, span.x, text, self.role_attr(span.role))
        scr.noutrefresh()
        curses.doupdate()

    def read_key(self, timeout_ms):
        """One normalized key, or None when nothing arrived within timeout_ms."""
        self.stdscr.timeout(timeout_ms)
        try:
            key = self.stdscr.get_wch()
        except curses.error:
            return None
        if key == curses.KEY_RESIZE:
            self.rebuild()
        return normalize_key(key)

    # ---- handoff ----
    def suspend(self):
        handle = TerminalHandle(raw_mode=self.raw_mode, alt_screen=self.alt_screen)
        curses.def_prog_mode()
        curses.endwin()
        self.raw_mode = False
        self.alt_screen = False
        sys.stdout.flush()
        debug_log("HANDOFF: terminal released")
        return handle

    def resume(self, handle):
        curses.reset_prog_mode()
        if handle.raw_mode:
            curses.raw()
        self.stdscr.keypad(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        self.stdscr.clear()
        self.stdscr.move(0, 0)
        self.stdscr.refresh()
        self.raw_mode = handle.raw_mode
        self.alt_screen = handle.alt_screen
        self.drain_input()
        self.rebuild()
        debug_log("HANDOFF: terminal reclaimed")

    def drain_input(self):
        """Discard keys typed while the child process owned the terminal."""
        curses.flushinp()
        self.stdscr.nodelay(True)
        try:
            for _ in range(MAX_DRAIN):
                try:
                    self.stdscr.get_wch()
                except curses.error:
                    break
        finally:
            self.stdscr.nodelay(False)

    def rebuild(self):
        curses.update_lines_cols()
        self.stdscr.clearok(True)
        self.stdscr.touchwin()

    def handoff(self, command):
        """
        Run command() with the terminal released and always take it back.

        An exception from the command is returned in HandoffResult.error so the
        caller reports it once curses owns the screen again. Ctrl-C in the
        child's terminal does not interrupt this process; an interrupt that
        still reaches the command comes back as a SessionError.
        """
        handle = self.suspend()
        result = HandoffResult()
        swapped, previous = False, None
        try:
            previous = signal.signal(signal.SIGINT, _ignore_interrupt)
            swapped = True
        except ValueError:
            pass  # handlers can only be set from the main thread
        try:
            result.value = command()
        except KeyboardInterrupt:
            debug_log("HANDOFF: command interrupted")
            result.error = SessionError("Session interrupted")
        except Exception as e:
            debug_log(f"HANDOFF: command raised {e!r}")
            result.error = e
        finally:
            if swapped:
                signal.signal(signal.SIGINT, signal.SIG_DFL if previous is None else previous)
            time.sleep(self.settle_delay)
            self.resume(handle)
        return result

    # ---- recovery ----
    def recover(self):
        """Reset terminal attributes and re-enter curses modes after a render failure."""
        run_reset_commands()
        try:
            self.enter_modes()
            self.rebuild()
        except curses.error as e:
            debug_log(f"RECOVERY: re-entering curses failed: {e}")
