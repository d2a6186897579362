"""
Running ssh.

SessionLauncher builds the ssh (or `sshpass -e ssh`) command lines for a
profile and runs them. check() is a non-interactive preflight whose
output is captured; launch() inherits the terminal and must only be
called while TerminalSession has released it.
"""
import os
import shutil
import subprocess
from dataclasses import dataclass

from .errors import PasswordStoreError
from .models import DEFAULT_SSH_PORT
from .utils import debug_log

PREFLIGHT_OPTIONS = [
    "-o", "BatchMode=yes",
    "-o", "ConnectTimeout=10",
    "-o", "StrictHostKeyChecking=yes",
]
INTERACTIVE_OPTIONS = [
    "-o", "StrictHostKeyChecking=accept-new",
    "-o", "LogLevel=ERROR",
    "-tt",
]
# Wall-clock bound on the preflight (ConnectTimeout only covers TCP connect)
PREFLIGHT_TIMEOUT = 20
SSH_CONNECTION_FAILED = 255

HOST_KEY_CHANGED_MARKERS = (
    "REMOTE HOST IDENTIFICATION HAS CHANGED",
    "Someone could be eavesdropping on you right now",
)
# "No ED25519 host key is known for ..." under StrictHostKeyChecking=yes
UNKNOWN_HOST_MARKER = "host key is known"
AUTH_REFUSED_MARKERS = (
    "Permission denied",
    "Too many authentication failures",
)


@dataclass
class SessionResult:
    ok: bool
    host_key_mismatch: bool = False
    message: str = ""


def is_host_key_mismatch(stderr):
    """True when ssh refused a host whose known key differs from the one offered."""
    if any(m in stderr for m in HOST_KEY_CHANGED_MARKERS):
        return True
    if "Host key for" in stderr and "has changed" in stderr:
        return True
    # With StrictHostKeyChecking=yes an unknown host also fails verification
    return "Host key verification failed" in stderr and UNKNOWN_HOST_MARKER not in stderr


def last_line(text):
    lines = [l.strip() for l in text.splitlines() if l.strip()]
    return lines[-1] if lines else ""


class SessionLauncher:
    def __init__(self, passwords=None, ssh_command="ssh"):
        self.passwords = passwords
        self.ssh_command = ssh_command

    def stored_password(self, host):
        if self.passwords is None:
            return None
        try:
            return self.passwords.get(host)
        except PasswordStoreError as e:
            debug_log(f"WARN SESSION: {e}; connecting without stored password")
            return None

    def interactive_command(self, host):
        """(argv, env) for the interactive session; the password only travels in SSHPASS."""
        argv = [self.ssh_command, *INTERACTIVE_OPTIONS, host]
        password = self.stored_password(host)
        if not password:
            return argv, None
        if shutil.which("sshpass") is None:
            debug_log(f"SESSION: sshpass not installed, {host} will prompt for its password")
            return argv, None
        env = dict(os.environ, SSHPASS=password)
        return ["sshpass", "-e", *argv], env

    def check(self, host):
        """Non-interactive preflight: can we reach and verify `host`?"""
        argv = [self.ssh_command, *PREFLIGHT_OPTIONS, host, "exit"]
        debug_log(f"SESSION: preflight {' '.join(argv)}")
        try:
            res = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                timeout=PREFLIGHT_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            return SessionResult(False, message=f"Connection check for '{host}' timed out after {PREFLIGHT_TIMEOUT}s")
        except OSError as e:
            return SessionResult(False, message=f"Cannot start ssh: {e}")

        stderr = res.stderr or ""
        if res.returncode == 0:
            return SessionResult(True)
        if is_host_key_mismatch(stderr):
            debug_log(f"SESSION: host key mismatch for {host}")
            return SessionResult(False, host_key_mismatch=True, message=last_line(stderr))
        if UNKNOWN_HOST_MARKER in stderr:
            # first contact; accept-new stores the key during the interactive session
            return SessionResult(True)
        if res.returncode == SSH_CONNECTION_FAILED and not any(m in stderr for m in AUTH_REFUSED_MARKERS):
            msg = last_line(stderr) or f"ssh exited with status {res.returncode}"
            debug_log(f"SESSION: preflight failed for {host}: {msg}")
            return SessionResult(False, message=msg)
        # authentication is left to the interactive session
        return SessionResult(True)

    def launch(self, host):
        """Run the interactive session on the inherited terminal."""
        argv, env = self.interactive_command(host)
        debug_log(f"SESSION: launching {' '.join(argv)}")
        try:
            code = subprocess.call(argv, env=env)
        except OSError as e:
            return SessionResult(False, message=f"Cannot start {argv[0]}: {e}")
        debug_log(f"SESSION: {host} exited with status {code}")
        if code == SSH_CONNECTION_FAILED:
            return SessionResult(False, message=f"SSH connection to '{host}' failed (exit status {code})")
        return SessionResult(True)

    def purge_host_key(self, profile):
        """ssh-keygen -R for every name the stale key may be stored under. False if any removal failed."""
        names = [profile.host]
        address = profile.address()
        if address != profile.host:
            names.append(address)
        port = profile.port_number()
        if port != DEFAULT_SSH_PORT:
            names.append(f"[{address}]:{port}")

        ok = True
        for name in names:
            try:
                res = subprocess.run(
                    ["ssh-keygen", "-R", name],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                )
            except OSError as e:
                debug_log(f"WARN SESSION: cannot run ssh-keygen: {e}")
                return False
            if res.returncode != 0:
                debug_log(f"WARN SESSION: ssh-keygen -R {name} failed: {last_line(res.stderr or '')}")
                ok = False
        return ok
