# copilot/settings.py

import os
import pathlib
from dataclasses import dataclass
from typing import Dict, Optional

import yaml

from copilot.ratelimit import ConfigError

DEFAULT_CFG_PATH = "configs/settings.yaml"


def load_cfg(path: str) -> Dict:
    """
    Load configuration from a YAML file.

    A missing file yields ``{}`` so the service runs on defaults and env vars.
    """
    p = pathlib.Path(path)
    if not p.exists():
        return {}
    cfg = yaml.safe_load(p.read_text(encoding="utf-8"))
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return cfg


def _int_env(name: str, default: int) -> int:
    """Integer env var; unset, non-numeric or 0 means ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw) or default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    demo_mode: bool = False
    max_req_per_minute: int = 6
    max_req_per_hour: int = 30
    demo_max_tokens: int = 500
    max_tokens: int = 1024
    data_seed: int = 42
    top_k: int = 6
    max_buckets: Optional[int] = None

    def validate(self) -> "Settings":
        for name in ("max_req_per_minute", "max_req_per_hour", "demo_max_tokens", "max_tokens", "top_k"):
            val = getattr(self, name)
            if val < 0:
                raise ConfigError(f"{name} must be >= 0, got {val}")
        if self.max_buckets is not None and self.max_buckets < 1:
            raise ConfigError(f"max_buckets must be >= 1, got {self.max_buckets}")
        return self

    @property
    def answer_max_tokens(self) -> int:
        return self.demo_max_tokens if self.demo_mode else self.max_tokens


def load_settings(path: str = DEFAULT_CFG_PATH) -> Settings:
    """YAML defaults first, environment variables win."""
    cfg = load_cfg(path)
    demo = cfg.get("demo", {}) or {}
    ret = cfg.get("retrieval", {}) or {}
    llm = cfg.get("llm", {}) or {}
    lim = cfg.get("rate_limit", {}) or {}

    demo_env = os.getenv("DEMO_MODE")
    demo_mode = demo_env == "1" if demo_env is not None else bool(demo.get("enabled", False))

    max_buckets = lim.get("max_buckets")
    return Settings(
        demo_mode=demo_mode,
        max_req_per_minute=_int_env("DEMO_MAX_REQ_PER_MINUTE", int(demo.get("max_req_per_minute", 6))),
        max_req_per_hour=_int_env("DEMO_MAX_REQ_PER_HOUR", int(demo.get("max_req_per_hour", 30))),
        demo_max_tokens=_int_env("DEMO_MAX_TOKENS", int(demo.get("max_tokens", 500))),
        max_tokens=int(llm.get("max_tokens", 1024)),
        data_seed=_int_env("DATA_SEED", int((cfg.get("data") or {}).get("seed", 42))),
        top_k=_int_env("RETRIEVAL_TOP_K", int(ret.get("top_k", 6))),
        max_buckets=int(max_buckets) if max_buckets is not None else None,
    ).validate()
