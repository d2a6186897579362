from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import ConfigParseError, InvalidPortError

DEFAULT_SSH_PORT = 22


# --------------------------------------------------
# Connection status (never persisted)
# --------------------------------------------------
@dataclass(frozen=True)
class Unknown:
    kind = "unknown"


@dataclass(frozen=True)
class Probing:
    kind = "probing"


@dataclass(frozen=True)
class Reachable:
    latency: float  # seconds
    kind = "reachable"

    @property
    def millis(self):
        return int(round(self.latency * 1000))


@dataclass(frozen=True)
class Unreachable:
    reason: str
    kind = "unreachable"


UNKNOWN = Unknown()
PROBING = Probing()


# --------------------------------------------------
# Profiles
# --------------------------------------------------
# ssh_config keyword (lowercase) -> Profile attribute
KNOWN_OPTIONS = {
    "hostname": "hostname",
    "user": "user",
    "port": "port",
    "proxycommand": "proxy_command",
    "identityfile": "identity_file",
    "connecttimeout": "connect_timeout",
    "serveraliveinterval": "server_alive_interval",
}

# Profile attribute -> canonical ssh_config keyword, in write order
CONFIG_KEYWORDS = [
    ("hostname", "HostName"),
    ("user", "User"),
    ("port", "Port"),
    ("proxy_command", "ProxyCommand"),
    ("identity_file", "IdentityFile"),
    ("connect_timeout", "ConnectTimeout"),
    ("server_alive_interval", "ServerAliveInterval"),
]


@dataclass
class Profile:
    host: str
    hostname: Optional[str] = None
    user: Optional[str] = None
    port: Optional[str] = None
    proxy_command: Optional[str] = None
    identity_file: Optional[str] = None
    connect_timeout: Optional[str] = None
    server_alive_interval: Optional[str] = None
    options: Dict[str, str] = field(default_factory=dict)
    status: object = field(default=UNKNOWN, compare=False)

    def address(self):
        return self.hostname or self.host

    def port_number(self):
        try:
            port = int(self.port)
        except (TypeError, ValueError):
            return DEFAULT_SSH_PORT
        return port if 0 < port < 65536 else DEFAULT_SSH_PORT

    def probe_timeout(self, default):
        """ConnectTimeout of the profile when it is a positive number, else `default`."""
        try:
            value = float(self.connect_timeout)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    def connection_string(self):
        target = self.hostname or self.host
        if self.user and self.hostname:
            target = f"{self.user}@{target}"
        if self.port and self.hostname:
            target = f"{target}:{self.port}"
        return target

    def matches(self, query):
        """Case-insensitive substring match on host, hostname, user and port."""
        q = query.lower()
        return any(
            value and q in value.lower()
            for value in (self.host, self.hostname, self.user, self.port)
        )

    def to_config_lines(self):
        lines = [f"Host {self.host}"]
        for attr, keyword in CONFIG_KEYWORDS:
            value = getattr(self, attr)
            if value:
                lines.append(f"    {keyword} {value}")
        for key, value in self.options.items():
            lines.append(f"    {key} {value}")
        return lines


# --------------------------------------------------
# Form fields
# --------------------------------------------------
TEXT = "text"
NUMBER = "number"
PASSWORD = "password"
PATH = "path"


@dataclass
class FormField:
    label: str
    value: str = ""
    required: bool = False
    field_type: str = TEXT
    readonly: bool = False


# --------------------------------------------------
# Validation
# --------------------------------------------------
def validate_port(value):
    """Return the port as int; raise InvalidPortError unless it is an integer in [1, 65535]."""
    text = str(value).strip()
    if not text.isdigit():
        raise InvalidPortError(value)
    port = int(text)
    if not 1 <= port <= 65535:
        raise InvalidPortError(value)
    return port


def parse_optional_port(value):
    """Empty means unset (None); anything else must be a valid port."""
    if value is None or str(value).strip() == "":
        return None
    return validate_port(value)


def validate_host(host):
    if not host:
        raise ConfigParseError("Host name cannot be empty")
    if any(c.isspace() for c in host):
        raise ConfigParseError("Host name cannot contain spaces or tabs")


def validate_hostname(hostname):
    if not hostname:
        raise ConfigParseError("HostName cannot be empty")
    if hostname.strip() != hostname or " " in hostname:
        raise ConfigParseError("HostName cannot contain spaces")
    if ".." in hostname:
        raise ConfigParseError("HostName cannot contain consecutive dots")
    if hostname.startswith(".") or hostname.endswith("."):
        raise ConfigParseError("HostName cannot start or end with a dot")


def optional(value):
    """Form text -> collaborator argument: empty strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None
