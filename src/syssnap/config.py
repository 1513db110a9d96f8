"""Configuration schema and loader."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = "/etc/syssnap-panel.yaml"


class PanelConfig(BaseModel):
    # Process cache
    cache_dir: str = "/root/tmp/imh-sys-snap"
    cache_expire_seconds: int = Field(default=3600, ge=60)
    trusted_uid: int = 0  # owner every trusted cache entry must have
    command_timeout: float = Field(default=30.0, gt=0)

    # sysstat
    sar_path: str = "sar"
    sar_log_paths: list[str] = Field(
        default_factory=lambda: ["/var/log/sa/sa", "/var/log/sysstat/sa"]
    )
    default_interval: int = Field(default=600, gt=0)
    max_interval: int = Field(default=3600, gt=0)

    # sys-snap
    perl_path: str = "/usr/bin/perl"
    syssnap_script: str = "/opt/imh-sys-snap/bin/sys-snap.pl"
    snapshot_cache_ttl: int = Field(default=60, ge=0)

    # UI
    refresh_rate: float = Field(default=60.0, ge=1.0)
    log_level: str = "INFO"
    log_file: str | None = "/root/tmp/imh-sys-snap/panel.log"


def default_config_path() -> Path:
    return Path(os.environ.get("SYSSNAP_PANEL_CONFIG", DEFAULT_CONFIG_PATH))


def load_config(path: str | Path | None = None) -> PanelConfig:
    """Load config from a YAML file, falling back to defaults if it is missing."""
    p = Path(path).expanduser() if path is not None else default_config_path()
    if not p.exists():
        return PanelConfig()
    with open(p) as f:
        data = yaml.safe_load(f) or {}
    return PanelConfig(**data)
