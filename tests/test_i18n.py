import os
import tempfile
import unittest
from unittest.mock import patch

from sshconn import utils
from sshconn.i18n import LOCALE_DIR, Translator, detect_language, language_from_code, load_locale


class TestLanguageDetection(unittest.TestCase):
    def test_codes(self):
        self.assertEqual(language_from_code("zh_CN.UTF-8"), "zh")
        self.assertEqual(language_from_code("zh-TW"), "zh")
        self.assertEqual(language_from_code("en_US.UTF-8"), "en")
        self.assertEqual(language_from_code("C"), "en")
        self.assertIsNone(language_from_code("fr_FR.UTF-8"))
        self.assertIsNone(language_from_code(""))
        self.assertIsNone(language_from_code(None))

    @patch.dict(os.environ, {"SSH_CONN_LANG": "zh", "LANG": "en_US.UTF-8"}, clear=True)
    def test_env_override_wins(self):
        self.assertEqual(detect_language("en"), "zh")

    @patch.dict(os.environ, {"LANG": "zh_CN.UTF-8"}, clear=True)
    def test_configured_beats_locale(self):
        self.assertEqual(detect_language("en"), "en")
        self.assertEqual(detect_language("auto"), "zh")

    @patch.dict(os.environ, {"LANG": "de_DE.UTF-8"}, clear=True)
    def test_fallback(self):
        self.assertEqual(detect_language(), "en")


class TestTranslator(unittest.TestCase):
    def test_lookup_and_placeholders(self):
        t = Translator("en")
        self.assertEqual(t("ui.server_list"), "Servers")
        self.assertEqual(t.t("cli.no_matches", "redis"), "No servers match 'redis'")
        self.assertEqual(t("cli.current_size", 40, 10), "Current size:     40 cols × 10 lines")

    def test_chinese(self):
        self.assertEqual(Translator("zh")("ui.server_list"), "服务器列表")

    def test_unknown_language_and_key(self):
        t = Translator("fr")
        self.assertEqual(t.language, "en")
        self.assertEqual(t("no.such.key"), "no.such.key")

    def test_locales_have_same_keys(self):
        self.assertEqual(set(load_locale("en")), set(load_locale("zh")))

    def test_missing_key_falls_back_to_english(self):
        with tempfile.TemporaryDirectory() as tmp:
            utils.set_log_path(os.path.join(tmp, "debug.log"))
            with open(os.path.join(tmp, "zh.yaml"), "w", encoding="utf-8") as f:
                f.write("ui:\n  server_list: 服务器\n")
            with open(os.path.join(LOCALE_DIR, "en.yaml"), encoding="utf-8") as src, \
                    open(os.path.join(tmp, "en.yaml"), "w", encoding="utf-8") as dst:
                dst.write(src.read())
            t = Translator("zh", locale_dir=tmp)
            self.assertEqual(t("ui.server_list"), "服务器")
            self.assertEqual(t("error.required_fields"), "Host and HostName are required")

    def test_broken_locale_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            utils.set_log_path(os.path.join(tmp, "debug.log"))
            with open(os.path.join(tmp, "en.yaml"), "w", encoding="utf-8") as f:
                f.write("ui: [unclosed\n")
            self.assertEqual(load_locale("en", tmp), {})
            self.assertEqual(Translator("en", locale_dir=tmp)("ui.server_list"), "ui.server_list")


if __name__ == "__main__":
    unittest.main()
