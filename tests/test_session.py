import os
import subprocess
import tempfile
import unittest
from unittest.mock import MagicMock, call, patch

from sshconn import utils
from sshconn.errors import PasswordStoreError
from sshconn.models import Profile
from sshconn.session import SessionLauncher, is_host_key_mismatch

CHANGED = """@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@
@    WARNING: REMOTE HOST IDENTIFICATION HAS CHANGED!     @
@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@
IT IS POSSIBLE THAT SOMEONE IS DOING SOMETHING NASTY!
Host key verification failed.
"""
UNKNOWN = "No ED25519 host key is known for web1 and you have requested strict checking.\nHost key verification failed.\n"


def completed(code, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=code, stdout=None, stderr=stderr)


def setUpModule():
    global _tmp
    _tmp = tempfile.TemporaryDirectory()
    utils.set_log_path(os.path.join(_tmp.name, "debug.log"))


def tearDownModule():
    _tmp.cleanup()


class TestMismatchDetection(unittest.TestCase):
    def test_markers(self):
        self.assertTrue(is_host_key_mismatch(CHANGED))
        self.assertTrue(is_host_key_mismatch("Host key for web1 has changed and you have requested strict checking."))
        self.assertFalse(is_host_key_mismatch(UNKNOWN))
        self.assertFalse(is_host_key_mismatch("ssh: connect to host web1 port 22: Connection refused"))


class TestCheck(unittest.TestCase):
    def setUp(self):
        self.launcher = SessionLauncher()

    @patch("sshconn.session.subprocess.run", return_value=completed(0))
    def test_ok(self, run):
        res = self.launcher.check("web1")
        self.assertTrue(res.ok)
        argv = run.call_args[0][0]
        self.assertEqual(argv[0], "ssh")
        self.assertIn("BatchMode=yes", argv)
        self.assertIn("StrictHostKeyChecking=yes", argv)
        self.assertEqual(argv[-2:], ["web1", "exit"])

    @patch("sshconn.session.subprocess.run", return_value=completed(255, CHANGED))
    def test_host_key_mismatch(self, _run):
        res = self.launcher.check("web1")
        self.assertFalse(res.ok)
        self.assertTrue(res.host_key_mismatch)

    @patch("sshconn.session.subprocess.run", return_value=completed(255, UNKNOWN))
    def test_unknown_host_is_not_mismatch(self, _run):
        res = self.launcher.check("web1")
        self.assertTrue(res.ok)
        self.assertFalse(res.host_key_mismatch)

    @patch("sshconn.session.subprocess.run",
           return_value=completed(255, "ssh: connect to host 10.0.0.1 port 22: Connection refused\n"))
    def test_connection_failure(self, _run):
        res = self.launcher.check("web1")
        self.assertFalse(res.ok)
        self.assertFalse(res.host_key_mismatch)
        self.assertEqual(res.message, "ssh: connect to host 10.0.0.1 port 22: Connection refused")

    @patch("sshconn.session.subprocess.run",
           return_value=completed(255, "deploy@10.0.0.1: Permission denied (publickey,password).\n"))
    def test_auth_refusal_is_left_to_session(self, _run):
        self.assertTrue(self.launcher.check("web1").ok)

    @patch("sshconn.session.subprocess.run", side_effect=FileNotFoundError(2, "No such file or directory"))
    def test_ssh_missing(self, _run):
        res = self.launcher.check("web1")
        self.assertFalse(res.ok)
        self.assertIn("Cannot start ssh", res.message)

    @patch("sshconn.session.subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="ssh", timeout=20))
    def test_timeout(self, _run):
        res = self.launcher.check("web1")
        self.assertFalse(res.ok)
        self.assertIn("timed out", res.message)


class TestLaunch(unittest.TestCase):
    @patch("sshconn.session.shutil.which", return_value="/usr/bin/sshpass")
    @patch("sshconn.session.subprocess.call", return_value=0)
    def test_password_travels_in_env(self, call_, _which):
        passwords = MagicMock()
        passwords.get.return_value = "s3cret"
        res = SessionLauncher(passwords).launch("web1")
        self.assertTrue(res.ok)
        argv = call_.call_args[0][0]
        env = call_.call_args[1]["env"]
        self.assertEqual(argv[:3], ["sshpass", "-e", "ssh"])
        self.assertEqual(argv[-1], "web1")
        self.assertNotIn("s3cret", argv)
        self.assertEqual(env["SSHPASS"], "s3cret")

    @patch("sshconn.session.shutil.which", return_value=None)
    @patch("sshconn.session.subprocess.call", return_value=0)
    def test_without_sshpass(self, call_, _which):
        passwords = MagicMock()
        passwords.get.return_value = "s3cret"
        SessionLauncher(passwords).launch("web1")
        argv = call_.call_args[0][0]
        self.assertEqual(argv[0], "ssh")
        self.assertIn("-tt", argv)
        self.assertIsNone(call_.call_args[1]["env"])

    @patch("sshconn.session.subprocess.call", return_value=0)
    def test_password_store_error_falls_back(self, call_):
        passwords = MagicMock()
        passwords.get.side_effect = PasswordStoreError("locked")
        self.assertTrue(SessionLauncher(passwords).launch("web1").ok)
        self.assertEqual(call_.call_args[0][0][0], "ssh")

    @patch("sshconn.session.subprocess.call", return_value=255)
    def test_exit_255_is_failure(self, _call):
        res = SessionLauncher().launch("web1")
        self.assertFalse(res.ok)
        self.assertIn("255", res.message)

    @patch("sshconn.session.subprocess.call", return_value=1)
    def test_other_exit_is_normal_end(self, _call):
        self.assertTrue(SessionLauncher().launch("web1").ok)


class TestPurge(unittest.TestCase):
    @patch("sshconn.session.subprocess.run", return_value=completed(0))
    def test_all_names(self, run):
        ok = SessionLauncher().purge_host_key(Profile("web1", hostname="10.0.0.1", port="2222"))
        self.assertTrue(ok)
        names = [c[0][0][2] for c in run.call_args_list]
        self.assertEqual(names, ["web1", "10.0.0.1", "[10.0.0.1]:2222"])

    @patch("sshconn.session.subprocess.run", return_value=completed(0))
    def test_default_port_alias_only(self, run):
        SessionLauncher().purge_host_key(Profile("web1"))
        run.assert_has_calls([call(["ssh-keygen", "-R", "web1"], stdout=subprocess.DEVNULL,
                                   stderr=subprocess.PIPE, text=True)])
        self.assertEqual(run.call_count, 1)

    @patch("sshconn.session.subprocess.run", return_value=completed(1, "not found"))
    def test_failure_reported(self, _run):
        self.assertFalse(SessionLauncher().purge_host_key(Profile("web1")))


if __name__ == "__main__":
    unittest.main()
