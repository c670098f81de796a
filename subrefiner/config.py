import os
from typing import List, Literal

import yaml
from pydantic import BaseModel, ValidationError as ModelValidationError, field_validator

from .errors import ConfigError
from .probe import DEFAULT_TIMEOUT


class Settings:
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CONFIG_PATH: str = os.getenv("REFINER_CONFIG", "config.yaml")
    OUT_DIR: str = os.getenv("REFINER_OUT_DIR", "export")
    HTTP_TIMEOUT: float = float(os.getenv("REFINER_HTTP_TIMEOUT", "20"))
    USER_AGENT: str = os.getenv("REFINER_USER_AGENT", "XraySubRefiner/1.1")

settings = Settings()


class Subscription(BaseModel):
    key: str
    url: str


class LiteConfig(BaseModel):
    strategy: Literal["tail", "per_host"] = "tail"
    max_total: int = 100
    per_host_limit: int = 0
    n: int = 100

    @field_validator("max_total", "n")
    @classmethod
    def _default_when_non_positive(cls, v: int) -> int:
        return v if v > 0 else 100


class ProbeConfig(BaseModel):
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = 50


class RefinerConfig(BaseModel):
    allowed_schemes: List[str]
    lite: LiteConfig = LiteConfig()
    probe: ProbeConfig = ProbeConfig()
    subscriptions: List[Subscription] = []
    locations: List[Subscription] = []

    @field_validator("allowed_schemes")
    @classmethod
    def _normalize_schemes(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("allowed_schemes is missing or empty")
        schemes = []
        for s in v:
            s = s.strip().lower()
            if not s:
                raise ValueError("allowed_schemes contains an empty value")
            schemes.append(s)
        return schemes

    def all_subscriptions(self) -> List[Subscription]:
        return self.subscriptions + self.locations


def parse_config(data) -> RefinerConfig:
    if not isinstance(data, dict):
        raise ConfigError("config must be a mapping")
    try:
        return RefinerConfig.model_validate(data)
    except ModelValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e


def load_config(path: str) -> RefinerConfig:
    """加载 YAML 配置文件"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file {path} not found") from e
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    return parse_config(data)
