import os

import yaml

from .utils import CONFIG_DIR, debug_log

CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")

DEFAULT_CONFIG = {
    "language": "auto",
    "theme": 0,
    "probe_timeout": 5,
    "probe_workers": 16,
    "probe_min_display": 0.2,
    "probe_on_start": True,
    "poll_interval_ms": 100,
    "settle_delay": 0.25,
    "max_render_failures": 5,
    "ssh_config": "~/.ssh/config",
    "password_db": "~/.ssh/ssh_conn_passwords.db",
}

# key -> (type, minimum); values failing the check fall back to the default
_NUMERIC_KEYS = {
    "theme": (int, 0),
    "probe_timeout": (float, 0.1),
    "probe_workers": (int, 1),
    "probe_min_display": (float, 0.0),
    "poll_interval_ms": (int, 10),
    "settle_delay": (float, 0.0),
    "max_render_failures": (int, 1),
}


def _coerce(cfg):
    for key, (kind, minimum) in _NUMERIC_KEYS.items():
        try:
            value = kind(cfg[key])
            if value < minimum:
                raise ValueError(f"below {minimum}")
            cfg[key] = value
        except (TypeError, ValueError) as e:
            debug_log(f"CONFIG: Invalid {key}={cfg.get(key)!r} ({e}), using default")
            cfg[key] = DEFAULT_CONFIG[key]
    cfg["probe_on_start"] = bool(cfg.get("probe_on_start"))
    return cfg


def load_config(path=None):
    """Read the YAML config merged over DEFAULT_CONFIG; create it with defaults on first run."""
    path = os.path.expanduser(path or CONFIG_PATH)
    cfg = dict(DEFAULT_CONFIG)
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                saved = yaml.safe_load(f) or {}
            if isinstance(saved, dict):
                cfg.update(saved)
            else:
                debug_log(f"CONFIG: {path} is not a mapping, using defaults")
        except (OSError, yaml.YAMLError) as e:
            debug_log(f"CONFIG: Error loading {path}: {e}")
    else:
        save_config(cfg, path)
    return _coerce(cfg)


def save_config(cfg, path=None):
    path = os.path.expanduser(path or CONFIG_PATH)
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(cfg, f, default_flow_style=False, allow_unicode=True)
    except OSError as e:
        debug_log(f"CONFIG: Error saving {path}: {e}")
