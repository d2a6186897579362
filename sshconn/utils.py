import os
import subprocess
import time
import unicodedata

CONFIG_DIR = os.path.expanduser("~/.config/ssh-conn")

# Debug logging
DEBUG_LOG_PATH = os.path.join(CONFIG_DIR, "debug.log")


def set_log_path(path):
    global DEBUG_LOG_PATH
    DEBUG_LOG_PATH = os.path.expanduser(path)


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a", encoding="utf-8") as f:
            f.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}\n")
    except OSError:
        pass


# --------------------------------------------------
# Terminal recovery
# --------------------------------------------------
RESET_COMMANDS = [
    ["stty", "sane"],
    ["tput", "sgr0"],
    ["tput", "cnorm"],
]


def run_reset_commands(commands=RESET_COMMANDS):
    """Best-effort terminal attribute reset. Returns how many commands ran cleanly."""
    ok = 0
    for cmd in commands:
        try:
            res = subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=2)
            if res.returncode == 0:
                ok += 1
        except (OSError, subprocess.SubprocessError) as e:
            debug_log(f"RECOVERY: {' '.join(cmd)} failed: {e}")
    return ok


# --------------------------------------------------
# Visual width helpers (CJK labels, status icons)
# --------------------------------------------------
# Rendered double-width by most emoji-capable terminals despite a narrow east_asian_width
WIDE_SYMBOLS = ('⚠', '✏')


def char_width(char):
    # Zero-width check first (Marks, Enclosing marks, Format characters like ZWJ/VS)
    if unicodedata.category(char) in ('Mn', 'Me', 'Cf'):
        return 0
    if unicodedata.east_asian_width(char) in ('W', 'F') or char in WIDE_SYMBOLS:
        return 2
    return 1


def display_width(text):
    return sum(char_width(c) for c in text)


def truncate_visual(text, width):
    """Cut text so it occupies at most `width` terminal cells."""
    if width <= 0:
        return ""
    out = []
    used = 0
    for char in text:
        cw = char_width(char)
        if used + cw > width:
            break
        out.append(char)
        used += cw
    return "".join(out)


def pad_visual(text, width):
    """Pad (or cut) string to exactly `width` cells, accounting for double-width characters."""
    text = truncate_visual(text, width)
    return text + " " * max(0, width - display_width(text))
