"""
Pydantic-конфиг зеркала реестра.
"""

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


# ---------- логирование ----------
class FileLogConfig(BaseModel):
    path: str = "logs/registry_cache.log"
    max_bytes: int = Field(10_485_760, alias="max_bytes")
    backup_count: int = 3
    level: str = "DEBUG"
    fmt: str = Field("%(asctime)s %(levelname)-8s %(name)s: %(message)s", alias="format")


class ConsoleLogConfig(BaseModel):
    level: str = "INFO"
    fmt: str = Field("%(asctime)s %(levelname)-8s %(message)s", alias="format")


class LoggingConfig(BaseModel):
    file: FileLogConfig = Field(default_factory=FileLogConfig)
    console: ConsoleLogConfig = Field(default_factory=ConsoleLogConfig)
    date_format: str = "%Y-%m-%d %H:%M:%S"


# ---------- кеш ----------
class CacheConfig(BaseModel):
    path: str = "db"


# ---------- внешний источник ----------
class UpstreamConfig(BaseModel):
    kind: Literal["http", "static"] = "http"
    timeout: float = 30.0
    user_agent: str = "registry-cache"
    pool_size: int = 10
    # только для kind=static
    min_service: float = 0.0
    max_service: float = 0.0


# ---------- политика ресурсов ----------
class FixedTTLConfig(BaseModel):
    ttl: float = 3600.0


class ResourceConfig(BaseModel):
    read_only: bool = False
    max_attempts: int = Field(3, ge=1)
    serve_stale_on_error: bool = False
    read_only_serves_stale: bool = False
    strategy: Literal["trust_cached", "fixed_ttl"] = "fixed_ttl"
    fixed_ttl: FixedTTLConfig = Field(default_factory=FixedTTLConfig)


# ---------- вывод ----------
class OutputConfig(BaseModel):
    path: str


class Settings(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    resource: ResourceConfig = Field(default_factory=ResourceConfig)
    output: Optional[OutputConfig] = None

    # загрузка из YAML
    @classmethod
    def load(cls, path: str | None = None) -> "Settings":
        yaml_path = path or os.getenv("CONFIG_PATH", "config/default.yaml")
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)
