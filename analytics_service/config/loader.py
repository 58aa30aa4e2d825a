"""
Configuration management and loading.

Handles service settings from a YAML file and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = "analytics_service.yaml"
DEFAULT_ENV_FILE = ".env"
DEVELOPMENT_ENVIRONMENT = "development"


class BackendKind(Enum):
    """Storage paradigms a deployment can select."""
    SQLITE = "sqlite"
    MONGODB = "mongodb"


@dataclass(frozen=True)
class ServerConfig:
    """Listener and worker pool settings."""
    host: str = "0.0.0.0"
    port: int = 8089
    max_workers: int = 10
    grace_period_seconds: float = 5.0

    def __post_init__(self):
        """Validate listener values."""
        if not self.host:
            raise ValueError("server host cannot be empty")
        if not 0 <= self.port <= 65535:
            raise ValueError("server port must be between 0 and 65535")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if self.grace_period_seconds < 0:
            raise ValueError("grace_period_seconds must be >= 0")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SQLiteConfig:
    """Location of the SQLite database file."""
    path: str = "analytics_service.db"

    def __post_init__(self):
        if not self.path:
            raise ValueError("sqlite path cannot be empty")


@dataclass(frozen=True)
class MongoConfig:
    """MongoDB credentials and location."""
    host: str = "localhost"
    port: int = 27017
    database: str = "analytics"
    collection: str = "logs"
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        """Validate MongoDB values."""
        if not self.host:
            raise ValueError("mongodb host cannot be empty")
        if not 0 < self.port <= 65535:
            raise ValueError("mongodb port must be between 1 and 65535")
        if not self.database:
            raise ValueError("mongodb database cannot be empty")
        if not self.collection:
            raise ValueError("mongodb collection cannot be empty")


@dataclass(frozen=True)
class StorageConfig:
    """Backend selection and per-backend settings."""
    backend: BackendKind = BackendKind.SQLITE
    request_timeout_seconds: Optional[float] = None
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    mongodb: MongoConfig = field(default_factory=MongoConfig)

    def __post_init__(self):
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")


@dataclass(frozen=True)
class LoggingConfig:
    """Log level and output format."""
    level: str = "INFO"
    json: bool = False

    def __post_init__(self):
        if self.level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {self.level}")


@dataclass(frozen=True)
class ServiceConfig:
    """Complete service configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_env_var(key: str, default: Optional[str] = None) -> Optional[str]:
    """Look up an environment variable, falling back to default when unset."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value


def load_env_file(path: str = DEFAULT_ENV_FILE) -> bool:
    """Load variables from a .env file when running in development.

    ANALYTICS_ENV selects the environment and defaults to development.
    Variables already set in the process environment are left untouched.

    Returns:
        True if any variable was loaded from the file
    """
    environment = get_env_var("ANALYTICS_ENV", DEVELOPMENT_ENVIRONMENT)
    if environment != DEVELOPMENT_ENVIRONMENT:
        return False
    if not Path(path).is_file():
        return False
    return load_dotenv(path, override=False)


def load_service_config(path: Optional[str] = None) -> ServiceConfig:
    """Load and validate service configuration.

    The YAML file is read first, then environment variables override
    individual values. In development a .env file in the working directory
    is loaded into the environment first. When no path is given,
    ANALYTICS_CONFIG is consulted, then the default file name; a missing
    default file just means defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated ServiceConfig object

    Raises:
        FileNotFoundError: If an explicitly requested config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    load_env_file()

    explicit = path is not None or get_env_var("ANALYTICS_CONFIG") is not None
    config_path = Path(path or get_env_var("ANALYTICS_CONFIG", DEFAULT_CONFIG_PATH))

    raw_config: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")
    elif explicit:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    _check_keys(raw_config, {'server', 'storage', 'logging'}, "configuration")

    config = ServiceConfig(
        server=_parse_server(_section(raw_config, 'server', "server")),
        storage=_parse_storage(_section(raw_config, 'storage', "storage")),
        logging=_parse_logging(_section(raw_config, 'logging', "logging")),
    )
    return apply_env_overrides(config)


def apply_env_overrides(config: ServiceConfig) -> ServiceConfig:
    """Overlay environment variables onto a loaded configuration."""
    server = config.server
    host = get_env_var("ANALYTICS_HOST")
    port = get_env_var("ANALYTICS_PORT")
    if host is not None:
        server = replace(server, host=host)
    if port is not None:
        server = replace(server, port=_to_int(port, "ANALYTICS_PORT"))

    storage = config.storage
    backend = get_env_var("ANALYTICS_BACKEND")
    if backend is not None:
        storage = replace(storage, backend=_parse_backend(backend, "ANALYTICS_BACKEND"))

    sqlite_path = get_env_var("SQLITE_PATH")
    if sqlite_path is not None:
        storage = replace(storage, sqlite=SQLiteConfig(path=sqlite_path))

    mongo = storage.mongodb
    mongo_overrides = {}
    for env_key, attr in (
        ("MONGODB_USER", "user"),
        ("MONGODB_PASSWORD", "password"),
        ("MONGODB_HOST", "host"),
        ("MONGODB_DB", "database"),
    ):
        value = get_env_var(env_key)
        if value is not None:
            mongo_overrides[attr] = value
    mongo_port = get_env_var("MONGODB_PORT")
    if mongo_port is not None:
        mongo_overrides["port"] = _to_int(mongo_port, "MONGODB_PORT")
    if mongo_overrides:
        storage = replace(storage, mongodb=replace(mongo, **mongo_overrides))

    logging_config = config.logging
    log_level = get_env_var("ANALYTICS_LOG_LEVEL")
    if log_level is not None:
        logging_config = replace(logging_config, level=log_level.upper())

    return ServiceConfig(server=server, storage=storage, logging=logging_config)


def _section(data: Dict, key: str, path: str) -> Dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _check_keys(data: Dict, allowed_keys: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _to_int(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{path}' must be an integer")


def _to_float(value: Any, path: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{path}' must be a number")


def _parse_backend(value: Any, path: str) -> BackendKind:
    if not isinstance(value, str):
        raise ValueError(f"'{path}' must be a string")
    try:
        return BackendKind(value.strip().lower())
    except ValueError:
        valid_backends = [kind.value for kind in BackendKind]
        raise ValueError(f"'{path}' must be one of: {valid_backends}")


def _parse_server(data: Dict) -> ServerConfig:
    _check_keys(data, {'host', 'port', 'max_workers', 'grace_period_seconds'}, "server")
    defaults = ServerConfig()
    return ServerConfig(
        host=str(data.get('host', defaults.host)),
        port=_to_int(data.get('port', defaults.port), "server.port"),
        max_workers=_to_int(data.get('max_workers', defaults.max_workers), "server.max_workers"),
        grace_period_seconds=_to_float(
            data.get('grace_period_seconds', defaults.grace_period_seconds),
            "server.grace_period_seconds",
        ),
    )


def _parse_storage(data: Dict) -> StorageConfig:
    _check_keys(data, {'backend', 'request_timeout_seconds', 'sqlite', 'mongodb'}, "storage")

    timeout = data.get('request_timeout_seconds')
    if timeout is not None:
        timeout = _to_float(timeout, "storage.request_timeout_seconds")

    sqlite_data = _section(data, 'sqlite', "storage.sqlite")
    _check_keys(sqlite_data, {'path'}, "storage.sqlite")
    sqlite = SQLiteConfig(path=str(sqlite_data.get('path', SQLiteConfig.path)))

    mongo_data = _section(data, 'mongodb', "storage.mongodb")
    _check_keys(
        mongo_data,
        {'host', 'port', 'database', 'collection', 'user', 'password'},
        "storage.mongodb",
    )
    mongo_defaults = MongoConfig()
    mongodb = MongoConfig(
        host=str(mongo_data.get('host', mongo_defaults.host)),
        port=_to_int(mongo_data.get('port', mongo_defaults.port), "storage.mongodb.port"),
        database=str(mongo_data.get('database', mongo_defaults.database)),
        collection=str(mongo_data.get('collection', mongo_defaults.collection)),
        user=mongo_data.get('user'),
        password=mongo_data.get('password'),
    )

    return StorageConfig(
        backend=_parse_backend(data.get('backend', BackendKind.SQLITE.value), "storage.backend"),
        request_timeout_seconds=timeout,
        sqlite=sqlite,
        mongodb=mongodb,
    )


def _parse_logging(data: Dict) -> LoggingConfig:
    _check_keys(data, {'level', 'json'}, "logging")

    level = data.get('level', LoggingConfig.level)
    if not isinstance(level, str):
        raise ValueError("'logging.level' must be a string")
    json_format = data.get('json', False)
    if not isinstance(json_format, bool):
        raise ValueError("'logging.json' must be a boolean")

    return LoggingConfig(level=level.upper(), json=json_format)
