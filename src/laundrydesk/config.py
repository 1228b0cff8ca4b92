from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class AuthConfig:
    secret_key: str
    token_max_age_seconds: int = 86400


@dataclass(frozen=True)
class BusinessConfig:
    default_page_size: int = 10
    max_page_size: int = 100


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    auth: AuthConfig
    db: DbConfig
    business: BusinessConfig


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    if tomllib is None:
        raise ConfigError("tomllib not available. Use Python 3.11+.")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    return parse_config(data)


def parse_config(data: dict) -> AppConfig:
    try:
        app = data.get("app", {})
        auth = data["auth"]
        db = data["db"]
        business = data.get("business", {})
        cfg = AppConfig(
            name=str(app.get("name", "LaundryDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            auth=AuthConfig(
                secret_key=str(auth["secret_key"]),
                token_max_age_seconds=int(auth.get("token_max_age_seconds", 86400)),
            ),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=BusinessConfig(
                default_page_size=int(business.get("default_page_size", 10)),
                max_page_size=int(business.get("max_page_size", 100)),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e

    if not cfg.auth.secret_key.strip():
        raise ConfigError("[auth] secret_key cannot be empty.")
    if cfg.business.default_page_size <= 0 or cfg.business.max_page_size < cfg.business.default_page_size:
        raise ConfigError("[business] page sizes must be > 0 and max_page_size >= default_page_size.")
    if not isinstance(logging.getLevelName(cfg.log_level), int):
        raise ConfigError(f"Unknown log level: {cfg.log_level}")
    return cfg


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
