import os
import sqlite3

from .errors import PasswordStoreError
from .utils import debug_log

DEFAULT_DB_PATH = os.path.expanduser("~/.ssh/ssh_conn_passwords.db")

SCHEMA_SQL = "CREATE TABLE IF NOT EXISTS passwords (host TEXT PRIMARY KEY, password TEXT)"


class PasswordStore:
    """Stored SSH passwords keyed by Host alias (sqlite3)."""

    def __init__(self, path=DEFAULT_DB_PATH):
        self.path = os.path.expanduser(path)

    def connect(self):
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            conn = sqlite3.connect(self.path, timeout=5, isolation_level=None)  # autocommit
            conn.execute(SCHEMA_SQL)
        except (OSError, sqlite3.Error) as e:
            raise PasswordStoreError(f"Cannot open password database {self.path}: {e}") from e
        try:
            os.chmod(self.path, 0o600)
        except OSError as e:
            debug_log(f"STORE: chmod {self.path} failed: {e}")
        return conn

    def get(self, host):
        conn = self.connect()
        try:
            row = conn.execute("SELECT password FROM passwords WHERE host = ?", (host,)).fetchone()
        except sqlite3.Error as e:
            raise PasswordStoreError(f"Cannot read password for '{host}': {e}") from e
        finally:
            conn.close()
        return row[0] if row and row[0] else None

    def save(self, host, password):
        conn = self.connect()
        try:
            conn.execute("INSERT OR REPLACE INTO passwords (host, password) VALUES (?, ?)", (host, password))
        except sqlite3.Error as e:
            raise PasswordStoreError(f"Cannot save password for '{host}': {e}") from e
        finally:
            conn.close()
        debug_log(f"STORE: password saved for {host}")

    def delete(self, host):
        conn = self.connect()
        try:
            conn.execute("DELETE FROM passwords WHERE host = ?", (host,))
        except sqlite3.Error as e:
            raise PasswordStoreError(f"Cannot delete password for '{host}': {e}") from e
        finally:
            conn.close()
