import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    bind: str = "0.0.0.0:8080"
    log_level: str = "INFO"
    log_pretty: bool = False
    minio_url: str = "http://localhost:9000"
    minio_root_user: str = ""
    minio_root_password: str = ""
    mc_bin: str = "mc"
    mc_alias: str = "liteadmin"
    cli_timeout_sec: int = 30
    cli_retries: int = 1
    max_subproc_concurrency: int = 16
    enrich_service_accounts: bool = False
    metrics_enabled: bool = False
    dist_dir: Optional[str] = "dist"

    def bind_host_port(self) -> Tuple[str, int]:
        host, _, port = self.bind.rpartition(":")
        return (host or "0.0.0.0", int(port or 8080))


def load_settings() -> Settings:
    """Read settings from the environment."""
    return Settings(
        bind=os.environ.get("BIND", "0.0.0.0:8080"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_pretty=_env_bool("LOG_PRETTY"),
        minio_url=os.environ.get("MINIO_URL", "http://localhost:9000"),
        minio_root_user=os.environ.get("MINIO_ROOT_USER", ""),
        minio_root_password=os.environ.get("MINIO_ROOT_PASSWORD", ""),
        mc_bin=os.environ.get("MC_BIN", "mc"),
        mc_alias=os.environ.get("MC_ALIAS", "liteadmin"),
        cli_timeout_sec=int(os.environ.get("CLI_TIMEOUT_SEC", "30")),
        cli_retries=int(os.environ.get("CLI_RETRIES", "1")),
        max_subproc_concurrency=int(os.environ.get("MAX_SUBPROC_CONCURRENCY", "16")),
        enrich_service_accounts=_env_bool("ENRICH_SERVICE_ACCOUNTS"),
        metrics_enabled=_env_bool("METRICS_ENABLED"),
        dist_dir=os.environ.get("DIST_DIR", "dist") or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
