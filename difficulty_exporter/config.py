import yaml

from .errors import ConfigError

DEFAULTS = {
    "rpc": None,
    "dsn": None,
    "interval": 3,
    "start": -1,
    "resume": False,
    "pushgateway": None,
    "namespace": "quai_network",
    "job": "quai",
    "grouping": {},
    "rpc_namespace": "quai",
    "rpc_timeout": 10,
    "connect_attempts": 5,
    "connect_delay": 2,
    "push_timeout": 10,
    "table": "block_difficulty",
    "healthz_port": None,
    "log_format": "text",
    "log_level": "INFO",
}

_INT_KEYS = ("start", "connect_attempts")
_FLOAT_KEYS = ("interval", "rpc_timeout", "connect_delay", "push_timeout")


# Config loader with normalization
def load_config(path):
    with open(path, "r") as f:
        raw_config = yaml.safe_load(f)
    return normalize_config(raw_config or {})


def normalize_config(config):
    """
    Fill in defaults and coerce numeric options.

    Example file:
      rpc: http://localhost:9001
      dsn: mysql+pymysql://user:pass@db/quai
      interval: 3
      pushgateway: pushgateway:9091
      grouping:
        instance: zone-0-0
    """
    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping")

    normalized = dict(DEFAULTS)
    for key, value in config.items():
        if key not in DEFAULTS:
            raise ConfigError(f"Unknown config option: {key}")
        normalized[key] = value

    try:
        for key in _INT_KEYS:
            normalized[key] = int(normalized[key])
        for key in _FLOAT_KEYS:
            normalized[key] = float(normalized[key])
        if normalized["healthz_port"] is not None:
            normalized["healthz_port"] = int(normalized["healthz_port"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric option: {e}") from e

    normalized["resume"] = bool(normalized["resume"])
    normalized["grouping"] = {
        str(k): str(v) for k, v in (normalized["grouping"] or {}).items()
    }
    return normalized


def merge_args(config, args):
    """Overlay command-line values that were explicitly given."""
    merged = dict(config)
    for key in DEFAULTS:
        value = getattr(args, key, None)
        if value is not None:
            merged[key] = value
    return normalize_config(merged)


def validate_config(config):
    if not config.get("rpc") or not config.get("dsn"):
        raise ConfigError("rpc and dsn parameters are required")
    if config["interval"] <= 0:
        raise ConfigError(f"interval must be positive, got {config['interval']}")
    for key in ("rpc_timeout", "push_timeout"):
        if config[key] <= 0:
            raise ConfigError(f"{key} must be positive, got {config[key]}")
    if config["connect_delay"] < 0:
        raise ConfigError(
            f"connect_delay must not be negative, got {config['connect_delay']}"
        )
    if config["connect_attempts"] < 1:
        raise ConfigError(
            f"connect_attempts must be at least 1, got {config['connect_attempts']}"
        )
    return config
