from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import yaml
from dotenv import load_dotenv

from grid_connector.exceptions.errors import ConfigurationError

load_dotenv()

def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)

def _env_list(key: str, default: List[str]) -> List[str]:
    val = os.environ.get(key)
    if not val:
        return default
    return [x.strip() for x in val.split(",") if x.strip()]

@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    log_level: str = "INFO"
    log_file: str = "logs/grid_connector.log"

    # Search index (Elasticsearch) paging
    search_page_cap: int = 10000
    search_scroll_keepalive: str = "1m"
    search_default_size: int = 10

    # Absolute ceiling on rows accumulated for a single query
    max_result_size: int = 1000000

    http_timeout_seconds: float = 30.0

    # Object-store delimited files
    delimiter: str = ","
    fallback_encodings: List[str] = field(default_factory=lambda: ["utf-8", "latin-1"])

    aws_region: str = "us-east-1"

    # Athena / Redshift Data API statement polling
    poll_interval: float = 0.5
    max_polls: int = 240

    def validate(self) -> None:
        errors = []
        if self.search_page_cap <= 0:
            errors.append("search_page_cap must be positive")
        if self.search_default_size < 0:
            errors.append("search_default_size must not be negative")
        if self.max_result_size <= 0:
            errors.append("max_result_size must be positive")
        if self.http_timeout_seconds <= 0:
            errors.append("http_timeout_seconds must be positive")
        if self.max_polls <= 0:
            errors.append("max_polls must be positive")
        if not self.fallback_encodings:
            errors.append("fallback_encodings must not be empty")
        if errors:
            raise ConfigurationError(f"Configuration validation errors: {'; '.join(errors)}")

def load_settings(config_dir: str = "config") -> Settings:
    app_env = _env("APP_ENV", "dev")
    cfg_path = Path(config_dir) / f"{app_env}.yaml"
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    defaults = Settings()

    app_cfg = cfg.get("app") or {}
    search_cfg = cfg.get("search") or {}
    limits_cfg = cfg.get("limits") or {}
    http_cfg = cfg.get("http") or {}
    files_cfg = cfg.get("files") or {}
    aws_cfg = cfg.get("aws") or {}
    poll_cfg = cfg.get("polling") or {}

    search_page_cap = int(_env("SEARCH_PAGE_CAP", str(search_cfg.get("page_cap", defaults.search_page_cap))))
    search_scroll_keepalive = _env(
        "SEARCH_SCROLL_KEEPALIVE", str(search_cfg.get("scroll_keepalive", defaults.search_scroll_keepalive))
    )
    search_default_size = int(
        _env("SEARCH_DEFAULT_SIZE", str(search_cfg.get("default_size", defaults.search_default_size)))
    )
    max_result_size = int(_env("MAX_RESULT_SIZE", str(limits_cfg.get("max_result_size", defaults.max_result_size))))
    http_timeout_seconds = float(
        _env("HTTP_TIMEOUT_SECONDS", str(http_cfg.get("timeout_seconds", defaults.http_timeout_seconds)))
    )

    delimiter = _env("DEFAULT_DELIMITER", str(files_cfg.get("delimiter", defaults.delimiter)))
    fallback_encodings = _env_list(
        "FALLBACK_ENCODINGS", list(files_cfg.get("fallback_encodings", defaults.fallback_encodings))
    )

    aws_region = _env("AWS_REGION", str(aws_cfg.get("region", defaults.aws_region)))
    poll_interval = float(
        _env("POLL_INTERVAL", str(poll_cfg.get("interval", defaults.poll_interval)))
    )
    max_polls = int(_env("MAX_POLLS", str(poll_cfg.get("max_polls", defaults.max_polls))))

    settings = Settings(
        env=app_env,
        log_level=_env("LOG_LEVEL", str(app_cfg.get("log_level", defaults.log_level))),
        log_file=_env("LOG_FILE", str(app_cfg.get("log_file", defaults.log_file))),
        search_page_cap=search_page_cap,
        search_scroll_keepalive=search_scroll_keepalive,
        search_default_size=search_default_size,
        max_result_size=max_result_size,
        http_timeout_seconds=http_timeout_seconds,
        delimiter=delimiter,
        fallback_encodings=fallback_encodings,
        aws_region=aws_region,
        poll_interval=poll_interval,
        max_polls=max_polls,
    )
    settings.validate()
    return settings
