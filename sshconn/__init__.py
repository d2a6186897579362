import argparse
import os
import sys

from .app import App
from .config import SshConfigStore
from .errors import SshConnError, TerminalFatalError
from .i18n import Translator, detect_language, language_from_code
from .passwords import PasswordStore
from .session import SessionLauncher
from .settings import load_config, save_config
from .terminal import TerminalSession
from .utils import debug_log, run_reset_commands

MIN_COLS = 60
MIN_ROWS = 15


def _get_app_version():
    try:
        v_file = os.path.join(os.path.dirname(__file__), "VERSION")
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "0.0.0"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="ssh-conn",
        description="List and connect to SSH servers configured in ssh config",
    )
    parser.add_argument("--version", action="version", version=f"ssh-conn {_get_app_version()}")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument("--lang", type=str, help="UI language (en, zh)")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("list", help="List all servers in ssh config")

    p = sub.add_parser("connect", help="Connect to a server")
    p.add_argument("host", help="Host alias in ssh config")

    p = sub.add_parser("add", help="Add a server to ssh config")
    p.add_argument("host", help="Host alias in ssh config")
    p.add_argument("hostname", help="Server address (HostName)")
    p.add_argument("-u", "--user", type=str)
    p.add_argument("-p", "--port", type=str)
    p.add_argument("--proxy-command", type=str)
    p.add_argument("--identity-file", type=str)

    p = sub.add_parser("edit", help="Change a server; omitted options keep their value")
    p.add_argument("host", help="Host alias in ssh config")
    p.add_argument("--hostname", type=str)
    p.add_argument("-u", "--user", type=str)
    p.add_argument("-p", "--port", type=str)
    p.add_argument("--proxy-command", type=str)
    p.add_argument("--identity-file", type=str)

    p = sub.add_parser("delete", help="Delete a server from ssh config")
    p.add_argument("host", help="Host alias in ssh config")

    p = sub.add_parser("search", help="Search servers by host, address, user or port")
    p.add_argument("query")

    sub.add_parser("backup", help="Copy ssh config to a timestamped backup")
    return parser.parse_args(argv)


# --------------------------------------------------
# Subcommands
# --------------------------------------------------
def format_profile(p, t):
    lines = [f"  {t('column.host')}: {p.host}"]
    for label, value in (
        (t("column.hostname"), p.hostname),
        (t("column.user"), p.user),
        (t("column.port"), p.port),
        (t("column.proxy_command"), p.proxy_command),
        (t("column.identity_file"), p.identity_file),
    ):
        if value:
            lines.append(f"    {label}: {value}")
    return "\n".join(lines)


def print_profiles(profiles, title, t):
    print(title)
    print("-" * 80)
    for p in profiles:
        print(format_profile(p, t))
        print()


def connect_from_shell(host, store, launcher, t):
    profile = store.get_profile(host)
    check = launcher.check(host)
    if check.host_key_mismatch:
        print(t("cli.host_key_changed", host))
        answer = input(t("cli.host_key_question")).strip().lower()
        if answer not in ("y", "yes"):
            print(t("cli.user_refused"))
            return 1
        if not launcher.purge_host_key(profile):
            debug_log(f"WARN SESSION: host key purge for {host} failed, retrying anyway")
    elif not check.ok:
        print(f"Error: {check.message}", file=sys.stderr)
        return 1
    result = launcher.launch(host)
    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    return 0


def run_command(args, store, launcher, t):
    if args.command == "list":
        profiles = store.list_profiles()
        if not profiles:
            print(t("cli.no_servers"))
        else:
            print_profiles(profiles, f"{t('cli.server_list')}:", t)
    elif args.command == "search":
        profiles = store.search_profiles(args.query)
        if not profiles:
            print(t("cli.no_matches", args.query))
        else:
            print_profiles(profiles, t("cli.search_results", args.query), t)
    elif args.command == "connect":
        return connect_from_shell(args.host, store, launcher, t)
    elif args.command == "add":
        store.add_profile(args.host, args.hostname, args.user, args.port,
                          args.proxy_command, args.identity_file)
        print(f"✓ {t('cli.added')}: {args.host}")
    elif args.command == "edit":
        old = store.get_profile(args.host)

        def pick(new, current):
            return current if new is None else (new or None)

        store.edit_profile(
            args.host,
            pick(args.hostname, old.hostname),
            pick(args.user, old.user),
            pick(args.port, old.port),
            pick(args.proxy_command, old.proxy_command),
            pick(args.identity_file, old.identity_file),
        )
        print(f"✓ {t('cli.updated')}: {args.host}")
    elif args.command == "delete":
        store.delete_profile(args.host)
        print(f"✓ {t('cli.deleted')}: {args.host}")
    elif args.command == "backup":
        print(f"✓ {t('cli.backup_created')}: {store.backup()}")
    return 0


# --------------------------------------------------
# TUI
# --------------------------------------------------
def check_and_show_terminal_size_then_exit(t):
    try:
        size = os.get_terminal_size()
    except OSError:
        # not a TTY; curses will report the problem itself
        return
    cols, rows = size.columns, size.lines
    if cols < MIN_COLS or rows < MIN_ROWS:
        print("┌────────────────────────────────────────────────┐")
        print(f"  {t('cli.too_small_title')}")
        print("├────────────────────────────────────────────────┤")
        print(f"  {t('cli.current_size', cols, rows)}")
        print(f"  {t('cli.minimum_size', MIN_COLS, MIN_ROWS)}")
        print("└────────────────────────────────────────────────┘")
        print(f"\n{t('cli.resize_hint')}\n")
        sys.exit(1)


def run_tui(cfg, store, launcher, t, config_path=None):
    term = TerminalSession(theme_index=cfg["theme"], settle_delay=cfg["settle_delay"])
    app = App(store, launcher, term, t, cfg,
              save_settings=lambda c: save_config(c, config_path))
    try:
        with term:
            app.run()
    except TerminalFatalError:
        run_reset_commands()
        raise
    return 0


def main(args):
    cfg = load_config(args.config)
    language = language_from_code(args.lang) or detect_language(cfg["language"])
    t = Translator(language)
    passwords = PasswordStore(cfg["password_db"])
    store = SshConfigStore(cfg["ssh_config"], passwords)
    launcher = SessionLauncher(passwords)

    if args.command:
        return run_command(args, store, launcher, t)

    # Check terminal size after args so --help works in small terminals
    check_and_show_terminal_size_then_exit(t)
    return run_tui(cfg, store, launcher, t, args.config)


def cli_entry():
    """terminal command 'ssh-conn' entry point"""
    args = parse_args()
    try:
        code = main(args)
    except SshConnError as e:
        debug_log(f"FATAL: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code)
