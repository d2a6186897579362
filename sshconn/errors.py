"""
Exceptions raised by ssh-conn.

Every collaborator failure the TUI can show is an SshConnError; the event
loop turns them into error dialogs, the CLI prints them and exits 1.
"""


class SshConnError(Exception):
    """Base exception for ssh-conn errors."""


class ConfigParseError(SshConnError):
    """Invalid value or unreadable ssh config."""


class ValidationError(SshConnError):
    """A form or command-line value failed validation."""

    def __init__(self, message, field_index=None):
        super().__init__(message)
        self.field_index = field_index


class InvalidPortError(ValidationError):
    def __init__(self, port, field_index=None, message=None):
        super().__init__(message or f"Invalid port '{port}': must be between 1 and 65535", field_index)
        self.port = port


class HostNotFoundError(SshConnError):
    def __init__(self, host):
        super().__init__(f"Host not found: '{host}'")
        self.host = host


class HostAlreadyExistsError(SshConnError):
    def __init__(self, host):
        super().__init__(f"Host already exists: '{host}'")
        self.host = host


class PasswordStoreError(SshConnError):
    """Password database could not be read or written."""


class SessionError(SshConnError):
    """ssh / sshpass could not be started or the connection failed."""


class TerminalFatalError(SshConnError):
    """The terminal kept failing to render; the UI gives up."""
