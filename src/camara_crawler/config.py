import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError


DEFAULT_CONFIG_PATH = "config/config.yaml"
RESOURCE_NAMES = ("deputies", "propositions", "votes")

# ------------------------- small utils -------------------------

def require_obj(d: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = d.get(key)
    if not isinstance(v, dict):
        raise ConfigError(f"Missing or invalid config.{key} (must be an object)")
    return v

def optional_obj(d: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = d.get(key) or {}
    if not isinstance(v, dict):
        raise ConfigError(f"config.{key} must be an object if provided")
    return v

def require(d: Dict[str, Any], key: str, t) -> Any:
    if key not in d:
        raise ConfigError(f"Missing config.{key}")
    v = d[key]
    if not isinstance(v, t):
        raise ConfigError(f"Invalid config.{key} type (expected {t}, got {type(v)})")
    return v

def getenv_required(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise ConfigError(f"Missing required env var: {name}")
    return v


# ------------------------- config dataclasses -------------------------

@dataclass(frozen=True)
class DbCfg:
    uri_env: str
    database_env: str
    collections: Dict[str, str]

    def uri(self) -> str:
        return getenv_required(self.uri_env)

    def database(self) -> str:
        return getenv_required(self.database_env)

@dataclass(frozen=True)
class RetryCfg:
    max_attempts: int = 3
    backoff_sec: float = 2.0

@dataclass(frozen=True)
class HttpCfg:
    base_url: str = "https://dadosabertos.camara.leg.br/api/v2"
    timeout_sec: float = 60.0
    user_agent: str = "camara-crawler"
    retries: RetryCfg = field(default_factory=RetryCfg)

@dataclass(frozen=True)
class LogCfg:
    level: str = "INFO"
    error_log_file: Optional[str] = None

@dataclass(frozen=True)
class ServerCfg:
    host: str = "0.0.0.0"
    port: int = 3000

@dataclass(frozen=True)
class ResourceCfg:
    name: str
    enabled: bool = True
    page_size: int = 20
    params: Dict[str, Any] = field(default_factory=dict)

@dataclass(frozen=True)
class AppCfg:
    db: DbCfg
    http: HttpCfg
    log: LogCfg
    server: ServerCfg
    resources: Dict[str, ResourceCfg]

    def resource(self, name: str) -> ResourceCfg:
        if name not in self.resources:
            raise ConfigError(f"Unknown resource: {name}")
        return self.resources[name]

    def enabled_resources(self) -> List[str]:
        return [n for n in RESOURCE_NAMES if n in self.resources and self.resources[n].enabled]


_DEFAULT_PAGE_SIZE = {"deputies": 100, "propositions": 20, "votes": 20}
_DEFAULT_COLLECTIONS = {"deputies": "deputies", "propositions": "propositions", "votes": "votes"}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ConfigError("YAML root must be an object")
    return cfg


def parse_cfg(cfg: Dict[str, Any]) -> AppCfg:
    db = require_obj(cfg, "db")
    http = optional_obj(cfg, "http")
    log = optional_obj(cfg, "logging")
    server = optional_obj(cfg, "server")
    resources_raw = optional_obj(cfg, "resources")

    # db
    collections = dict(_DEFAULT_COLLECTIONS)
    for k, v in optional_obj(db, "collections").items():
        if k not in collections or not isinstance(v, str) or not v.strip():
            raise ConfigError(f"Invalid config.db.collections.{k}")
        collections[k] = v.strip()

    db_cfg = DbCfg(
        uri_env=require(db, "uri_env", str),
        database_env=require(db, "database_env", str),
        collections=collections,
    )

    # http
    retries = optional_obj(http, "retries")
    retry_cfg = RetryCfg(
        max_attempts=int(retries.get("max_attempts", 3)),
        backoff_sec=float(retries.get("backoff_sec", 2)),
    )
    if retry_cfg.max_attempts < 1:
        raise ConfigError("config.http.retries.max_attempts must be >= 1")
    if retry_cfg.backoff_sec < 0:
        raise ConfigError("config.http.retries.backoff_sec must be >= 0")

    http_cfg = HttpCfg(
        base_url=str(http.get("base_url", HttpCfg.base_url)).rstrip("/"),
        timeout_sec=float(http.get("timeout_sec", 60)),
        user_agent=str(http.get("user_agent", "camara-crawler")),
        retries=retry_cfg,
    )

    log_cfg = LogCfg(
        level=str(log.get("level", "INFO")).upper(),
        error_log_file=log.get("error_log_file") or None,
    )

    server_cfg = ServerCfg(
        host=str(server.get("host", "0.0.0.0")),
        port=int(server.get("port", 3000)),
    )

    # resources
    resources: Dict[str, ResourceCfg] = {}
    for name in RESOURCE_NAMES:
        r = resources_raw.get(name) or {}
        if not isinstance(r, dict):
            raise ConfigError(f"config.resources.{name} must be an object")
        page_size = int(r.get("page_size", _DEFAULT_PAGE_SIZE[name]))
        if page_size < 1:
            raise ConfigError(f"config.resources.{name}.page_size must be >= 1")
        params = r.get("params") or {}
        if not isinstance(params, dict):
            raise ConfigError(f"config.resources.{name}.params must be an object")
        resources[name] = ResourceCfg(
            name=name,
            enabled=bool(r.get("enabled", True)),
            page_size=page_size,
            params=params,
        )

    unknown = set(resources_raw) - set(RESOURCE_NAMES)
    if unknown:
        raise ConfigError(f"Unknown config.resources entries: {sorted(unknown)}")

    return AppCfg(db=db_cfg, http=http_cfg, log=log_cfg, server=server_cfg, resources=resources)


def load_app_config(path: Optional[str] = None) -> AppCfg:
    load_dotenv()
    return parse_cfg(load_config(path))
