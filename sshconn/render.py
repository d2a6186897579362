"""
Frame builder.

build_frame() turns (profiles, selection, active overlay) into a Frame: a
list of positioned text spans tagged with a colour role. It does no I/O;
terminal.py paints frames with curses and the tests inspect them directly.
"""
import textwrap
from dataclasses import dataclass, field
from typing import List

from .modal import (ACCEPT, ADD, DeleteConfirmModal, ErrorModal, FormModal,
                    HostKeyModal, SearchModal)
from .models import PASSWORD, Probing, Reachable, Unknown, Unreachable
from .utils import display_width, pad_visual, truncate_visual

# Colour roles (mapped to curses colour pairs by the active theme)
R_TEXT = "text"
R_HEADER = "header"
R_ACCENT = "accent"
R_WARN = "warn"
R_BORDER = "border"
R_SELECTED = "selected"
R_DIM = "dim"
R_ERROR = "error"
R_DIALOG = "dialog"

MIN_WIDTH = 20
MIN_HEIGHT = 6
HIGHLIGHT = "▍ "


@dataclass
class Span:
    y: int
    x: int
    text: str
    role: str = R_TEXT


@dataclass
class Frame:
    width: int
    height: int
    spans: List[Span] = field(default_factory=list)
    offset: int = 0

    def put(self, y, x, text, role=R_TEXT):
        if 0 <= y < self.height and 0 <= x < self.width and text:
            self.spans.append(Span(y, x, truncate_visual(text, self.width - x), role))

    def text_at(self, y):
        """Row `y` as plain text (later spans overwrite earlier ones)."""
        row = [" "] * self.width
        for s in self.spans:
            if s.y != y:
                continue
            col = s.x
            for ch in s.text:
                if col >= self.width:
                    break
                row[col] = ch
                cw = display_width(ch)
                if cw == 2 and col + 1 < self.width:
                    row[col + 1] = ""  # second cell of a wide character
                col += max(1, cw)
        return "".join(row).rstrip()

    def dump(self):
        return "\n".join(self.text_at(y) for y in range(self.height))


# --------------------------------------------------
# Status cells
# --------------------------------------------------
def status_icon(status):
    if isinstance(status, Probing):
        return "🟡"
    if isinstance(status, Reachable):
        return f"🟢 {status.millis}ms"
    if isinstance(status, Unreachable):
        return "🔴"
    return "⚪"


def status_detail(status, t):
    if isinstance(status, Probing):
        return t("status.probing")
    if isinstance(status, Reachable):
        return f"{t('status.reachable')} ({status.millis}ms)"
    if isinstance(status, Unreachable):
        return f"{t('status.unreachable')}: {status.reason}"
    if isinstance(status, Unknown):
        return t("status.unknown")
    return ""


# --------------------------------------------------
# Geometry helpers
# --------------------------------------------------
def centered_rect(percent_x, percent_y, width, height, min_w=0, min_h=0):
    w = min(width, max(min_w, width * percent_x // 100))
    h = min(height, max(min_h, height * percent_y // 100))
    return (height - h) // 2, (width - w) // 2, h, w


def draw_box(frame, y, x, h, w, title="", role=R_BORDER, fill_role=R_TEXT):
    """Bordered box with a cleared interior."""
    if h < 2 or w < 2:
        return
    frame.put(y, x, "┌" + "─" * (w - 2) + "┐", role)
    for row in range(y + 1, y + h - 1):
        frame.put(row, x, "│", role)
        frame.put(row, x + 1, " " * (w - 2), fill_role)
        frame.put(row, x + w - 1, "│", role)
    frame.put(y + h - 1, x, "└" + "─" * (w - 2) + "┘", role)
    if title:
        frame.put(y, x + 2, truncate_visual(f" {title} ", w - 4), role)


def wrap_lines(lines, width):
    out = []
    for line in lines:
        if not line:
            out.append("")
            continue
        out.extend(textwrap.wrap(line, max(1, width), replace_whitespace=False) or [""])
    return out


def _dialog(frame, lines, title, role, percent_x, percent_y, text_role=None):
    """Centered dialog sized to fit `lines` where possible."""
    inner_w = max(10, frame.width * percent_x // 100 - 4)
    body = wrap_lines(lines, inner_w)
    y, x, h, w = centered_rect(percent_x, percent_y, frame.width, frame.height,
                               min_w=min(frame.width, 30), min_h=len(body) + 2)
    draw_box(frame, y, x, h, w, title, role, role)
    for i, line in enumerate(body[:max(0, h - 2)]):
        frame.put(y + 1 + i, x + 2, truncate_visual(line, w - 4), text_role or role)
    return y, x, h, w


# --------------------------------------------------
# Main table
# --------------------------------------------------
def column_widths(inner):
    """Widths for Host, HostName, User, Port, Status, ProxyCommand, IdentityFile."""
    user_w, port_w, status_w = 10, 6, 12
    flex = max(0, inner - user_w - port_w - status_w)
    host_w = max(8, flex // 4)
    hostname_w = max(8, flex // 4)
    rest = max(0, flex - host_w - hostname_w)
    proxy_w = rest // 2
    ident_w = rest - proxy_w
    return [host_w, hostname_w, user_w, port_w, status_w, proxy_w, ident_w]


def format_row(cells, widths):
    return "".join(pad_visual(c, w) for c, w in zip(cells, widths) if w > 0)


def scroll_offset(selected, offset, visible, total):
    if visible <= 0 or total <= visible:
        return 0
    if selected < offset:
        offset = selected
    elif selected >= offset + visible:
        offset = selected - visible + 1
    return max(0, min(offset, total - visible))


def draw_table(frame, profiles, selected, offset, t, top, search_query=None):
    w, h = frame.width, frame.height - top
    if search_query:
        title = f"{t('ui.server_list')} ({t('ui.search_result')}: {search_query}) ({t('help.main')})"
    else:
        title = f"{t('ui.server_list')} ({t('help.main')})"
    draw_box(frame, top, 0, h, w, title, R_BORDER)

    inner = w - 2 - len(HIGHLIGHT)
    widths = column_widths(inner)
    headers = [t("column.host"), t("column.hostname"), t("column.user"), t("column.port"),
               t("column.status"), t("column.proxy_command"), t("column.identity_file")]
    frame.put(top + 1, 1 + len(HIGHLIGHT), format_row(headers, widths), R_HEADER)

    # header + top/bottom border
    visible = max(0, h - 3)
    offset = scroll_offset(selected, offset, visible, len(profiles))
    if not profiles:
        frame.put(top + 2, 1 + len(HIGHLIGHT), t("ui.no_servers"), R_DIM)
    for i in range(visible):
        idx = offset + i
        if idx >= len(profiles):
            break
        p = profiles[idx]
        cells = [p.host, p.hostname or "", p.user or "", p.port or "", status_icon(p.status),
                 p.proxy_command or "", p.identity_file or ""]
        line = format_row(cells, widths)
        if idx == selected:
            frame.put(top + 2 + i, 1, pad_visual(HIGHLIGHT + line, w - 2), R_SELECTED)
        else:
            frame.put(top + 2 + i, 1 + len(HIGHLIGHT), line, R_TEXT)

    if 0 <= selected < len(profiles):
        p = profiles[selected]
        footer = f" {p.connection_string()} · {status_detail(p.status, t)} "
        frame.put(top + h - 1, 2, truncate_visual(footer, w - 4), R_DIM)
    return offset


def draw_search(frame, modal, t):
    title = t("ui.search_prompt")
    if modal.committed_query:
        title = f"{title} ({t('ui.search_result')}: {modal.committed_query})"
    draw_box(frame, 0, 0, 3, frame.width, title, R_ACCENT)
    frame.put(1, 2, f"{t('ui.search_input_label')}: {modal.draft}█", R_TEXT)
    return 3


# --------------------------------------------------
# Overlays
# --------------------------------------------------
def form_line(index, f, modal, t):
    focused = index == modal.focus
    marks = ""
    if f.readonly:
        marks += "🔒 "
    if modal.error_field == index:
        marks += "❌ "
    value = "*" * len(f.value) if f.field_type == PASSWORD else f.value
    cursor = "█" if focused and modal.editing else ""
    prefix = "▶ " if focused else "  "
    return f"{prefix}{marks}{f.label}: {value}{cursor}"


def draw_form(frame, modal, t):
    title = t("ui.add_form_title") if modal.mode == ADD else t("ui.edit_form_title")
    lines = [form_line(i, f, modal, t) for i, f in enumerate(modal.fields)]
    lines.append("")
    lines.append(t("ui.form_editing_hint") if modal.editing else t("ui.form_shortcuts"))
    if any(f.readonly for f in modal.fields):
        lines.append(f"🔒 {t('ui.host_readonly_hint')}")
    y, x, h, w = centered_rect(70, 80, frame.width, frame.height,
                               min_w=min(frame.width, 40), min_h=len(lines) + 2)
    draw_box(frame, y, x, h, w, title, R_DIALOG, R_DIALOG)
    for i, line in enumerate(lines[:max(0, h - 2)]):
        role = R_DIALOG
        if i == modal.focus:
            role = R_ACCENT
        if i == modal.error_field:
            role = R_WARN
        frame.put(y + 1 + i, x + 2, truncate_visual(line, w - 4), role)


def draw_delete(frame, modal, t):
    lines = [
        "",
        t("ui.delete_message", modal.target),
        "",
        t("ui.delete_warning"),
        "",
        f"{t('ui.delete_prompt')}{modal.draft}█",
        "",
        t("ui.delete_esc"),
    ]
    _dialog(frame, lines, f"⚠ {t('ui.delete_title')}", R_ERROR, 50, 20)


def draw_error(frame, modal, t):
    lines = ["", modal.message, "", t("ui.press_any_key")]
    _dialog(frame, lines, f"❌ {t('ui.error_title')}", R_ERROR, 60, 30)


def draw_host_key(frame, modal, t):
    yes, no = t("host_key.accept"), t("host_key.reject")
    if modal.choice == ACCEPT:
        choice = f"▶ [ {yes} ]   [ {no} ]"
    else:
        choice = f"  [ {yes} ] ▶ [ {no} ]"
    lines = [
        "",
        t("host_key.warning", modal.target),
        "",
        t("host_key.reasons"),
        t("host_key.reason_1"),
        t("host_key.reason_2"),
        "",
        t("host_key.question"),
        "",
        "    " + choice,
        "",
        "    " + t("host_key.shortcuts"),
    ]
    _dialog(frame, lines, t("host_key.title"), R_WARN, 60, 40)


def draw_overlay(frame, modal, t):
    if isinstance(modal, FormModal):
        draw_form(frame, modal, t)
    elif isinstance(modal, DeleteConfirmModal):
        draw_delete(frame, modal, t)
    elif isinstance(modal, HostKeyModal):
        draw_host_key(frame, modal, t)
    elif isinstance(modal, ErrorModal):
        # the interrupted overlay stays visible underneath
        if modal.resume is not None:
            draw_overlay(frame, modal.resume, t)
        draw_error(frame, modal, t)
    elif isinstance(modal, SearchModal) or modal is None:
        pass  # drawn as part of the base layout
    else:
        raise TypeError(f"unknown overlay {modal!r}")


def build_frame(profiles, selected, modal, t, width, height, search_query=None, offset=0):
    frame = Frame(width, height, offset=offset)
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        frame.put(0, 0, t("ui.too_small"), R_WARN)
        return frame

    search = modal
    if isinstance(modal, ErrorModal):
        search = modal.resume
    top = draw_search(frame, search, t) if isinstance(search, SearchModal) else 0
    frame.offset = draw_table(frame, profiles, selected, offset, t, top, search_query)
    draw_overlay(frame, modal, t)
    return frame
