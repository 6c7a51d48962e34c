"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from nvlink.config import load_config, CLIENT_TIMEOUT_S
    >>> cfg = load_config("nvlink.toml")
    >>> cfg["timeout"]
    4.0
"""

import tomllib

# Seconds of silence after which a client is forgotten.
CLIENT_TIMEOUT_S = 4.0

# Seconds between host update ticks in the headless host.
TICK_S = 0.1

# Ports are derived from this plus the host process id.
BASE_PORT = 56000


def load_config(path: str) -> dict:
    """Read a TOML config file and validate it.

    Required: ``project`` (str), the host project directory.

    Optional ``[session]`` table: ``enabled`` (bool, default true),
    ``timeout`` (number, default CLIENT_TIMEOUT_S), ``tick`` (number,
    default TICK_S), ``pid`` (int, overrides the process id used for
    port derivation).

    Optional ``[status]`` table: ``port`` (int, default 0 = disabled),
    ``host`` (str, default ``"127.0.0.1"``).

    Optional ``[prefs]`` table: preference keys and values (bool, str,
    int or float), handed to the host's preference store.

    Raises:
        ValueError: If any required key is missing or has the wrong type.

    Example:
        >>> cfg = load_config("nvlink.toml")
        >>> cfg["status_port"]
        0
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    _require_str(raw, "project")

    session = _optional_table(raw, "session")
    status = _optional_table(raw, "status")
    prefs = _optional_table(raw, "prefs")

    result = {
        "project": raw["project"],
        "enabled": _get_bool(session, "session.enabled", True),
        "timeout": _get_positive_number(session, "session.timeout", CLIENT_TIMEOUT_S),
        "tick": _get_positive_number(session, "session.tick", TICK_S),
        "pid": _get_int(session, "session.pid", None),
        "status_port": _get_int(status, "status.port", 0),
        "status_host": _get_str(status, "status.host", "127.0.0.1"),
        "prefs": _require_prefs(prefs),
    }

    if result["pid"] is not None and result["pid"] < 0:
        raise ValueError("session.pid must be >= 0, got %d" % result["pid"])
    if not (0 <= result["status_port"] <= 65535):
        raise ValueError("status.port must be 0-65535, got %d" % result["status_port"])

    return result


def _optional_table(raw: dict[str, object], key: str) -> dict:
    """Return table *key* from *raw*, or an empty dict if absent."""
    if key not in raw:
        return {}
    if not isinstance(raw[key], dict):
        raise ValueError("[%s] must be a table" % key)
    return raw[key]


def _require_prefs(prefs: dict[str, object]) -> dict:
    """Validate that every [prefs] value is a scalar."""
    for k, v in prefs.items():
        if not isinstance(v, (bool, str, int, float)):
            raise ValueError("prefs.%s must be bool, str or number, got %s"
                             % (k, type(v).__name__))
    return dict(prefs)


def _get_bool(table: dict[str, object], name: str, default: bool) -> bool:
    """Return bool *name* from *table*, or *default*."""
    key = name.rsplit(".", 1)[-1]
    if key not in table:
        return default
    if not isinstance(table[key], bool):
        raise ValueError("%s must be bool, got %s" % (name, type(table[key]).__name__))
    return table[key]


def _get_int(table: dict[str, object], name: str, default):
    """Return int *name* from *table*, or *default*."""
    key = name.rsplit(".", 1)[-1]
    if key not in table:
        return default
    value = table[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("%s must be int, got %s" % (name, type(value).__name__))
    return value


def _get_str(table: dict[str, object], name: str, default: str) -> str:
    """Return str *name* from *table*, or *default*."""
    key = name.rsplit(".", 1)[-1]
    if key not in table:
        return default
    if not isinstance(table[key], str):
        raise ValueError("%s must be str, got %s" % (name, type(table[key]).__name__))
    return table[key]


def _get_positive_number(table: dict[str, object], name: str, default: float) -> float:
    """Return a positive int or float *name* from *table*, or *default*."""
    key = name.rsplit(".", 1)[-1]
    if key not in table:
        return default
    value = table[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("%s must be a number, got %s" % (name, type(value).__name__))
    if value <= 0:
        raise ValueError("%s must be positive, got %s" % (name, value))
    return float(value)


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))
