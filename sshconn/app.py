"""
Event loop of the TUI.

One iteration: merge finished probe results, draw, wait up to
poll_interval_ms for one key, dispatch it to the active overlay (or the
main list). Overlays are the dataclasses in modal.py; at most one is
active. Every collaborator error is turned into an ErrorModal.
"""
import sqlite3
import time

from .errors import InvalidPortError, SshConnError, TerminalFatalError, ValidationError
from .modal import (ACCEPT, ADD, EDIT, F_HOST, F_HOSTNAME, F_IDENTITY, F_PASSWORD, F_PORT,
                    F_PROXY, F_USER, REJECT, DeleteConfirmModal, ErrorModal, FormModal,
                    HostKeyModal, OVERLAYS, SearchModal, build_form)
from .models import Probing, Profile, optional, parse_optional_port
from .probe import ProbePool, merge_results
from .render import build_frame
from .settings import DEFAULT_CONFIG
from .terminal import is_text
from .utils import debug_log

COLLABORATOR_ERRORS = (SshConnError, OSError, sqlite3.Error)
RECOVERY_PAUSE = 0.1


class App:
    def __init__(self, store, launcher, terminal, translator, config=None, probes=None, save_settings=None):
        self.store = store
        self.launcher = launcher
        self.term = terminal
        self.t = translator
        self.config = dict(DEFAULT_CONFIG, **(config or {}))
        if probes is None:
            probes = ProbePool(
                timeout=self.config["probe_timeout"],
                min_display=self.config["probe_min_display"],
                max_workers=self.config["probe_workers"],
            )
        self.probes = probes
        self.save_settings = save_settings

        self.profiles = []
        self.selected = 0
        self.offset = 0
        self.modal = None
        self.search_query = None
        self.running = False
        self.render_failures = 0

    # --------------------------------------------------
    # Loop
    # --------------------------------------------------
    def run(self):
        self.running = True
        self.reload()
        if self.config["probe_on_start"] and self.profiles:
            self.probes.submit_all(self.profiles)
        try:
            while self.running:
                self.step()
        finally:
            self.probes.shutdown()

    def step(self):
        self.merge_probes()
        self.draw()
        key = self.term.read_key(self.config["poll_interval_ms"])
        if key is not None:
            self.dispatch(key)

    def merge_probes(self):
        results = self.probes.drain()
        if results:
            merge_results(self.profiles, results)

    def draw(self):
        """Render one frame. Returns False after a recovered failure."""
        limit = self.config["max_render_failures"]
        try:
            height, width = self.term.size()
            frame = build_frame(self.profiles, self.selected, self.modal, self.t, width, height,
                                search_query=self.search_query, offset=self.offset)
            self.term.paint(frame)
        except Exception as e:  # any failure to build or paint a frame counts
            self.render_failures += 1
            debug_log(f"RENDER: failure {self.render_failures}/{limit}: {e!r}")
            self.term.recover()
            if self.render_failures >= limit:
                raise TerminalFatalError(
                    f"Terminal rendering failed {self.render_failures} times in a row: {e}"
                ) from e
            time.sleep(RECOVERY_PAUSE)
            return False
        self.offset = frame.offset
        self.render_failures = 0
        return True

    def dispatch(self, key):
        if key == "resize":
            return  # the next draw picks up the new size
        modal = self.modal
        if isinstance(modal, ErrorModal):
            self.on_error_key(key)
        elif isinstance(modal, SearchModal):
            self.on_search_key(modal, key)
        elif isinstance(modal, DeleteConfirmModal):
            self.on_delete_key(modal, key)
        elif isinstance(modal, FormModal):
            self.on_form_key(modal, key)
        elif isinstance(modal, HostKeyModal):
            self.on_host_key(modal, key)
        elif modal is None:
            self.on_main_key(key)
        else:
            raise TypeError(f"unknown overlay {modal!r}")

    # --------------------------------------------------
    # State helpers
    # --------------------------------------------------
    def current(self):
        if 0 <= self.selected < len(self.profiles):
            return self.profiles[self.selected]
        return None

    def clamp(self):
        if not self.profiles:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, len(self.profiles) - 1))

    def open_overlay(self, overlay):
        if not isinstance(overlay, OVERLAYS):
            raise TypeError(f"not an overlay: {overlay!r}")
        if self.modal is not None:
            debug_log(f"UI: refusing {type(overlay).__name__} while {type(self.modal).__name__} is open")
            return False
        self.modal = overlay
        return True

    def show_error(self, error, resume=None):
        message = str(error) or type(error).__name__
        debug_log(f"UI: error dialog: {message}")
        self.modal = ErrorModal(message, resume=resume)

    def fetch(self, query):
        if query and query.strip():
            return self.store.search_profiles(query)
        return self.store.list_profiles()

    def set_profiles(self, profiles):
        # finished probe results survive a reload; in-flight ones are dropped at merge time
        known = {p.host: p.status for p in self.profiles if not isinstance(p.status, Probing)}
        for p in profiles:
            if p.host in known:
                p.status = known[p.host]
        self.profiles = profiles
        self.clamp()

    def reload(self, resume=None):
        """Re-read profiles honouring the committed search filter."""
        try:
            profiles = self.fetch(self.search_query)
        except COLLABORATOR_ERRORS as e:
            self.show_error(e, resume=resume)
            return False
        self.set_profiles(profiles)
        return True

    def page_size(self):
        try:
            height, _ = self.term.size()
        except Exception as e:
            debug_log(f"UI: cannot read terminal size: {e!r}")
            return 1
        return max(1, height - 3)

    def move(self, delta):
        self.selected += delta
        self.clamp()

    # --------------------------------------------------
    # Main list
    # --------------------------------------------------
    def on_main_key(self, key):
        if key in ("q", "ctrl-c"):
            self.running = False
        elif key in ("up", "k"):
            self.move(-1)
        elif key in ("down", "j"):
            self.move(1)
        elif key == "ppage":
            self.move(-self.page_size())
        elif key == "npage":
            self.move(self.page_size())
        elif key in ("home", "g"):
            self.selected = 0
        elif key in ("end", "G"):
            self.selected = max(0, len(self.profiles) - 1)
        elif key == "enter":
            self.connect_selected()
        elif key in ("a", "n"):
            self.open_overlay(build_form(self.t, ADD))
        elif key == "e":
            if self.current() is not None:
                self.open_overlay(build_form(self.t, EDIT, self.current()))
        elif key == "d":
            if self.current() is not None:
                self.open_overlay(DeleteConfirmModal(self.current().host))
        elif key in ("s", "/"):
            self.open_overlay(SearchModal(self.search_query, self.search_query or ""))
        elif key == "t":
            if self.current() is not None:
                self.probes.submit(self.selected, self.current())
        elif key == "T":
            self.probes.submit_all(self.profiles)
        elif key == "r":
            self.reload()
        elif key == "c":
            self.cycle_theme()

    def cycle_theme(self):
        self.config["theme"] = self.term.cycle_theme()
        if self.save_settings is not None:
            self.save_settings(self.config)

    # --------------------------------------------------
    # Overlays
    # --------------------------------------------------
    def on_error_key(self, key):
        resume = self.modal.resume
        if isinstance(resume, FormModal):
            resume.error_field = None
        self.modal = resume

    def live_filter(self, modal):
        try:
            profiles = self.fetch(modal.draft)
        except COLLABORATOR_ERRORS as e:
            self.show_error(e, resume=modal)
            return
        self.set_profiles(profiles)
        self.selected = 0

    def on_search_key(self, modal, key):
        if key == "enter":
            self.modal = None
            self.search_query = modal.draft.strip() or None
            self.selected = 0
            self.reload()
        elif key in ("esc", "ctrl-c"):
            self.modal = None
            self.reload()
        elif key == "backspace":
            modal.draft = modal.draft[:-1]
            self.live_filter(modal)
        elif is_text(key):
            modal.draft += key
            self.live_filter(modal)

    def on_delete_key(self, modal, key):
        if is_text(key):
            modal.draft += key
        elif key == "backspace":
            modal.draft = modal.draft[:-1]
        elif key == "enter" and modal.draft.strip().lower() == "yes":
            self.modal = None
            try:
                self.store.delete_profile(modal.target)
            except COLLABORATOR_ERRORS as e:
                self.show_error(e)
                return
            self.reload()
        else:
            # Esc, Enter without "yes", any other special key
            self.modal = None

    def on_form_key(self, modal, key):
        if modal.editing:
            if key == "enter":
                modal.press_enter()
            elif key == "esc":
                modal.editing = False
            elif key == "backspace":
                modal.backspace()
            elif key == "ctrl-c":
                self.modal = None
            elif is_text(key):
                modal.type_char(key)
            return

        if key in ("tab", "down"):
            modal.next_field()
        elif key in ("btab", "up"):
            modal.prev_field()
        elif key == "enter":
            modal.press_enter()
        elif key in ("esc", "q", "ctrl-c"):
            self.modal = None
        elif key == "s":
            self.save_form(modal)

    def validate_form(self, modal):
        if not modal.value(F_HOST).strip():
            raise ValidationError(self.t("error.required_fields"), F_HOST)
        if not modal.value(F_HOSTNAME).strip():
            raise ValidationError(self.t("error.required_fields"), F_HOSTNAME)
        try:
            parse_optional_port(modal.value(F_PORT))
        except InvalidPortError as e:
            key = "error.port_range" if str(e.port).strip().isdigit() else "error.port_format"
            raise InvalidPortError(e.port, F_PORT, self.t(key, str(e.port).strip())) from e

    def save_form(self, modal):
        try:
            self.validate_form(modal)
        except ValidationError as e:
            modal.mark_error(e.field_index)
            self.show_error(e, resume=modal)
            return

        args = (
            modal.value(F_HOST).strip(),
            modal.value(F_HOSTNAME).strip(),
            optional(modal.value(F_USER)),
            optional(modal.value(F_PORT)),
            optional(modal.value(F_PROXY)),
            optional(modal.value(F_IDENTITY)),
            modal.value(F_PASSWORD) or None,
        )
        try:
            if modal.mode == ADD:
                self.store.add_profile(*args)
            else:
                self.store.edit_profile(*args)
        except COLLABORATOR_ERRORS as e:
            self.show_error(e, resume=modal)
            return

        self.modal = None
        if self.reload() and modal.mode == ADD:
            self.selected = 0

    def on_host_key(self, modal, key):
        if key in ("left", "h"):
            modal.choice = ACCEPT
        elif key in ("right", "l"):
            modal.choice = REJECT
        elif key == "tab":
            modal.choice = REJECT if modal.choice == ACCEPT else ACCEPT
        elif key == "enter":
            self.resolve_host_key(modal, modal.choice == ACCEPT)
        elif key == "y":
            self.resolve_host_key(modal, True)
        elif key in ("n", "esc", "ctrl-c"):
            self.resolve_host_key(modal, False)

    def resolve_host_key(self, modal, accept):
        self.modal = None
        if not accept:
            debug_log(f"SESSION: changed host key for {modal.target} rejected")
            return
        profile = next((p for p in self.profiles if p.host == modal.target), Profile(modal.target))
        if not self.launcher.purge_host_key(profile):
            debug_log(f"WARN HANDOFF: host key purge for {modal.target} failed, retrying anyway")
        self.run_session(modal.target)

    # --------------------------------------------------
    # Connecting
    # --------------------------------------------------
    def connect_selected(self):
        profile = self.current()
        if profile is None:
            return
        result = self.launcher.check(profile.host)
        if result.host_key_mismatch:
            self.open_overlay(HostKeyModal(profile.host))
        elif not result.ok:
            self.show_error(result.message or self.t("error.connection_failed"))
        else:
            self.run_session(profile.host)

    def run_session(self, host):
        debug_log(f"HANDOFF: starting session for {host}")
        outcome = self.term.handoff(lambda: self.launcher.launch(host))
        self.reload()
        self.draw()
        # a failed reload already opened an error dialog; the session error goes on top of it
        pending = self.modal
        if outcome.error is not None:
            self.show_error(outcome.error, resume=pending)
        elif outcome.value is not None and not outcome.value.ok:
            self.show_error(outcome.value.message or self.t("error.connection_failed"), resume=pending)
