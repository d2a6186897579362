"""
Profiles stored in an OpenSSH client config file.

SshConfigStore parses `Host` blocks into Profile objects and rewrites the
file when profiles are added, edited or deleted. Unrelated lines
(comments, wildcard blocks, Match sections) are kept as they are.
"""
import os
import shutil
import time
from dataclasses import dataclass
from typing import List

from .errors import ConfigParseError, HostAlreadyExistsError, HostNotFoundError
from .models import KNOWN_OPTIONS, Profile, parse_optional_port, validate_host, validate_hostname
from .utils import debug_log

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.ssh/config")
WILDCARDS = ("*", "?", "!")


@dataclass
class HostBlock:
    """Line range [start, end) of one `Host` block; profile is None for wildcard-only blocks."""
    start: int
    end: int
    patterns: List[str]
    profile: Profile = None


def split_option(line):
    """'Key value', 'Key=value' or 'Key = value' -> (key, value)."""
    line = line.strip()
    for i, ch in enumerate(line):
        if ch.isspace() or ch == "=":
            key = line[:i]
            rest = line[i:].lstrip()
            if rest.startswith("="):
                rest = rest[1:].lstrip()
            return key, rest
    return line, ""


def first_concrete(patterns):
    for p in patterns:
        if p and not any(c in p for c in WILDCARDS):
            return p
    return None


def parse_blocks(lines):
    """Split config lines into HostBlocks. Lines before the first Host belong to none."""
    blocks = []
    current = None
    for i, raw in enumerate(lines):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, value = split_option(line)
        keyword = key.lower()
        if keyword in ("host", "match"):
            if current is not None:
                current.end = i
                blocks.append(current)
            patterns = value.split() if keyword == "host" else []
            alias = first_concrete(patterns)
            current = HostBlock(i, len(lines), patterns, Profile(alias) if alias else None)
            continue
        if current is None or current.profile is None or not value:
            continue
        attr = KNOWN_OPTIONS.get(keyword)
        if attr:
            setattr(current.profile, attr, value)
        else:
            current.profile.options[key] = value
    if current is not None:
        blocks.append(current)

    # trailing blank lines and comments stay outside the block
    for block in blocks:
        while block.end - 1 > block.start and (
            not lines[block.end - 1].strip() or lines[block.end - 1].strip().startswith("#")
        ):
            block.end -= 1
    return blocks


class SshConfigStore:
    def __init__(self, path=DEFAULT_CONFIG_PATH, passwords=None):
        self.path = os.path.expanduser(path)
        self.passwords = passwords

    # ---- file access ----
    def read_lines(self):
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                return f.read().splitlines()
        except OSError as e:
            raise ConfigParseError(f"Cannot read {self.path}: {e}") from e

    def write_lines(self, lines):
        tmp = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", mode=0o700, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write("\n".join(lines).rstrip("\n") + "\n")
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            raise ConfigParseError(f"Cannot write {self.path}: {e}") from e

    def find_block(self, lines, host):
        for block in parse_blocks(lines):
            if host in block.patterns:
                return block
        return None

    # ---- queries ----
    def list_profiles(self):
        return [b.profile for b in parse_blocks(self.read_lines()) if b.profile is not None]

    def search_profiles(self, query):
        query = (query or "").strip()
        profiles = self.list_profiles()
        if not query:
            return profiles
        return [p for p in profiles if p.matches(query)]

    def get_profile(self, host):
        for p in self.list_profiles():
            if p.host == host:
                return p
        raise HostNotFoundError(host)

    def exists(self, host):
        return any(p.host == host for p in self.list_profiles())

    # ---- mutations ----
    def add_profile(self, host, hostname, user=None, port=None, proxy_command=None,
                    identity_file=None, password=None):
        validate_host(host)
        validate_hostname(hostname)
        parse_optional_port(port)
        if self.exists(host):
            raise HostAlreadyExistsError(host)

        profile = Profile(host, hostname=hostname, user=user, port=port,
                          proxy_command=proxy_command, identity_file=identity_file)
        lines = self.read_lines()
        while lines and not lines[-1].strip():
            lines.pop()
        if lines:
            lines.append("")
        lines.extend(profile.to_config_lines())
        self.write_lines(lines)
        if password and self.passwords is not None:
            self.passwords.save(host, password)
        debug_log(f"STORE: added {host}")
        return profile

    def edit_profile(self, host, hostname, user=None, port=None, proxy_command=None,
                     identity_file=None, password=None):
        """
        Replace the values of an existing profile.

        Given values are written as-is; None removes the option. Options not
        covered by the arguments (ConnectTimeout, custom keys) are kept. Comment
        lines inside the block are kept too, moved to the top of the block. The
        Host line itself is not touched. A None password leaves the stored
        password alone.
        """
        validate_hostname(hostname)
        parse_optional_port(port)
        lines = self.read_lines()
        block = self.find_block(lines, host)
        if block is None or block.profile is None:
            raise HostNotFoundError(host)

        old = block.profile
        profile = Profile(host, hostname=hostname, user=user, port=port,
                          proxy_command=proxy_command, identity_file=identity_file,
                          connect_timeout=old.connect_timeout,
                          server_alive_interval=old.server_alive_interval,
                          options=dict(old.options))
        comments = [l for l in lines[block.start + 1:block.end] if l.strip().startswith("#")]
        body = comments + profile.to_config_lines()[1:]
        lines[block.start + 1:block.end] = body
        self.write_lines(lines)
        if password and self.passwords is not None:
            self.passwords.save(host, password)
        debug_log(f"STORE: edited {host}")
        return profile

    def delete_profile(self, host):
        validate_host(host)
        lines = self.read_lines()
        block = self.find_block(lines, host)
        if block is None:
            raise HostNotFoundError(host)
        del lines[block.start:block.end]
        # collapse the blank line left behind
        if 0 < block.start < len(lines) and not lines[block.start].strip() and not lines[block.start - 1].strip():
            del lines[block.start]
        self.write_lines(lines)
        if self.passwords is not None:
            self.passwords.delete(host)
        debug_log(f"STORE: deleted {host}")

    def backup(self):
        """Copy the config to <path>.backup.YYYYmmdd_HHMMSS and return that path."""
        target = f"{self.path}.backup.{time.strftime('%Y%m%d_%H%M%S')}"
        try:
            shutil.copy2(self.path, target)
        except OSError as e:
            raise ConfigParseError(f"Cannot back up {self.path}: {e}") from e
        debug_log(f"STORE: backup written to {target}")
        return target
