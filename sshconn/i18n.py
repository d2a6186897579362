"""
Translated UI strings.

Locale files live in sshconn/locales/<code>.yaml as nested mappings; a
Translator flattens them into dotted keys ("form.host", "error.port_range").
One Translator is built at startup and handed to the renderer and the
event loop.
"""
import os

import yaml

from .utils import debug_log

LOCALE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "locales")
SUPPORTED = ("en", "zh")
FALLBACK = "en"

_ALIASES = {
    "en": "en", "en_us": "en", "en_gb": "en", "english": "en", "c": "en", "posix": "en",
    "zh": "zh", "zh_cn": "zh", "zh_tw": "zh", "zh_hk": "zh", "chinese": "zh",
}


def language_from_code(code):
    if not code:
        return None
    code = code.split(".")[0].split("@")[0].lower().replace("-", "_")
    if code in _ALIASES:
        return _ALIASES[code]
    return _ALIASES.get(code.split("_")[0])


def detect_language(configured="auto"):
    """SSH_CONN_LANG wins, then the configured language, then the locale environment."""
    lang = language_from_code(os.environ.get("SSH_CONN_LANG"))
    if lang:
        return lang
    if configured and configured != "auto":
        lang = language_from_code(configured)
        if lang:
            return lang
    for var in ("LC_ALL", "LC_MESSAGES", "LANG", "LANGUAGE"):
        lang = language_from_code(os.environ.get(var))
        if lang:
            return lang
    return FALLBACK


def _flatten(data, prefix=""):
    out = {}
    for key, value in data.items():
        full = f"{prefix}{key}"
        if isinstance(value, dict):
            out.update(_flatten(value, full + "."))
        elif value is not None:
            out[full] = str(value)
    return out


def load_locale(code, locale_dir=LOCALE_DIR):
    path = os.path.join(locale_dir, f"{code}.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        debug_log(f"I18N: Cannot load {path}: {e}")
        return {}
    return _flatten(raw) if isinstance(raw, dict) else {}


class Translator:
    def __init__(self, language=FALLBACK, locale_dir=LOCALE_DIR):
        if language not in SUPPORTED:
            language = FALLBACK
        self.language = language
        self._strings = load_locale(language, locale_dir)
        self._fallback = self._strings if language == FALLBACK else load_locale(FALLBACK, locale_dir)

    def t(self, key, *args):
        """Look up `key`; positional args fill `{}` placeholders in order."""
        text = self._strings.get(key) or self._fallback.get(key) or key
        for arg in args:
            text = text.replace("{}", str(arg), 1)
        return text

    __call__ = t
