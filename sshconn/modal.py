"""
Overlay state for the TUI.

Exactly one of these is active at a time (or none). They are plain data:
the event loop in app.py mutates them, render.py draws them.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from .models import NUMBER, PASSWORD, PATH, FormField

ADD = "add"
EDIT = "edit"

ACCEPT = 0
REJECT = 1

# Form field order; indexes are used by validation and by the save path
F_HOST, F_HOSTNAME, F_USER, F_PORT, F_PROXY, F_IDENTITY, F_PASSWORD = range(7)


@dataclass
class SearchModal:
    committed_query: Optional[str] = None
    draft: str = ""


@dataclass
class DeleteConfirmModal:
    target: str
    draft: str = ""


@dataclass
class FormModal:
    mode: str
    fields: List[FormField] = field(default_factory=list)
    focus: int = 0
    editing: bool = False
    error_field: Optional[int] = None

    def is_readonly(self, index):
        return 0 <= index < len(self.fields) and self.fields[index].readonly

    def focused(self):
        if 0 <= self.focus < len(self.fields):
            return self.fields[self.focus]
        return None

    def value(self, index):
        return self.fields[index].value

    def next_field(self):
        """Move focus forward (wrapping), skipping readonly fields."""
        n = len(self.fields)
        for step in range(1, n + 1):
            idx = (self.focus + step) % n
            if not self.is_readonly(idx):
                self.focus = idx
                return

    def prev_field(self):
        n = len(self.fields)
        for step in range(1, n + 1):
            idx = (self.focus - step) % n
            if not self.is_readonly(idx):
                self.focus = idx
                return

    def type_char(self, ch):
        f = self.focused()
        if f is not None and not f.readonly:
            f.value += ch

    def backspace(self):
        f = self.focused()
        if f is not None and not f.readonly:
            f.value = f.value[:-1]

    def press_enter(self):
        """Enter starts editing; while editing it commits and moves on to the next field."""
        if self.editing:
            self.editing = False
            if self.focus + 1 < len(self.fields):
                self.focus += 1
                self.editing = True
        elif self.is_readonly(self.focus):
            if self.focus + 1 < len(self.fields):
                self.focus += 1
                self.editing = True
        else:
            self.editing = True
            if self.error_field == self.focus:
                self.error_field = None

    def mark_error(self, index):
        self.focus = index
        self.editing = True
        self.error_field = index


@dataclass
class ErrorModal:
    message: str
    # overlay interrupted by the error, restored when it is dismissed
    resume: object = None


@dataclass
class HostKeyModal:
    target: str
    choice: int = ACCEPT


OVERLAYS = (SearchModal, DeleteConfirmModal, FormModal, ErrorModal, HostKeyModal)


def build_form(t, mode, profile=None):
    """Fresh form fields: empty for ADD, pre-filled from `profile` for EDIT."""
    def val(attr):
        if profile is None:
            return ""
        return getattr(profile, attr) or ""

    fields = [
        FormField(t("form.host"), val("host"), required=True, readonly=(mode == EDIT)),
        FormField(t("form.hostname"), val("hostname"), required=True),
        FormField(t("form.user"), val("user")),
        FormField(t("form.port"), val("port"), field_type=NUMBER),
        FormField(t("form.proxy_command"), val("proxy_command")),
        FormField(t("form.identity_file"), val("identity_file"), field_type=PATH),
        FormField(t("form.password"), "", field_type=PASSWORD),
    ]
    # Edit starts on the first editable field
    focus = F_HOSTNAME if mode == EDIT else F_HOST
    return FormModal(mode=mode, fields=fields, focus=focus)
