"""
Configuration management for the netwatch agent.

Settings come from environment variables (NETWATCH_*) or a YAML file.
Both paths produce the same validated AgentConfig.
"""

from __future__ import annotations

import ipaddress
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


DEFAULT_WATCHED_FILES = [
    "/etc/passwd",
    "/etc/group",
    "/etc/hosts",
    "/etc/ssh/sshd_config",
]


class AgentConfig(BaseModel):
    """Netwatch agent configuration."""

    # ========================================================================
    # File Integrity
    # ========================================================================

    watched_files: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WATCHED_FILES),
        description="Files whose content is baselined and watched"
    )
    base_dir: Optional[Path] = Field(
        default=None,
        description="Directory relative watched paths are resolved against"
    )
    integrity_interval: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Seconds between file integrity checks"
    )

    # ========================================================================
    # Resource Anomaly
    # ========================================================================

    memory_threshold: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Memory utilization ratio above which an anomaly is raised"
    )
    memory_limit_bytes: Optional[int] = Field(
        default=None,
        gt=0,
        description="Memory budget for the process (defaults to physical memory)"
    )
    anomaly_interval: int = Field(
        default=30,
        ge=1,
        le=86400,
        description="Seconds between memory anomaly checks"
    )
    stats_interval: int = Field(
        default=30,
        ge=1,
        le=86400,
        description="Seconds between system stats snapshots"
    )

    # ========================================================================
    # Network Discovery
    # ========================================================================

    subnet: str = Field(
        default="192.168.1.0/24",
        description="IPv4 network swept by on-demand discovery"
    )
    discovery_timeout: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Timeout in seconds for each discovery command"
    )
    nmap_path: str = Field(default="nmap", description="Ping sweep executable")
    arp_path: str = Field(default="arp", description="ARP table executable")

    # ========================================================================
    # Event Storage
    # ========================================================================

    db_path: Path = Field(
        default=Path("/var/lib/netwatch/events.db"),
        description="SQLite database for events and telemetry"
    )
    dispatch_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Pending fire-and-forget events before new ones are dropped"
    )

    # ========================================================================
    # API
    # ========================================================================

    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8090, ge=1, le=65535)

    # ========================================================================
    # Logging
    # ========================================================================

    log_level: str = Field(default="INFO", description="Agent log level")

    # ========================================================================
    # Validators
    # ========================================================================

    @field_validator('subnet')
    @classmethod
    def validate_subnet(cls, v):
        try:
            ipaddress.IPv4Network(v, strict=False)
        except ValueError as e:
            raise ValueError(f'subnet must be an IPv4 network: {e}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, or ERROR')
        return v

    # ========================================================================
    # Parsed Properties
    # ========================================================================

    def resolve_watched_files(self) -> list[Path]:
        """Watched paths with relative entries anchored at base_dir."""
        base = self.base_dir or Path.cwd()
        resolved = []
        for entry in self.watched_files:
            path = Path(entry).expanduser()
            resolved.append(path if path.is_absolute() else base / path)
        return resolved

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    @classmethod
    def from_yaml(cls, path: Path) -> "AgentConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        values: dict = {}

        if "watched_files" in data:
            values["watched_files"] = data["watched_files"]
        if "base_dir" in data:
            values["base_dir"] = data["base_dir"]

        if "intervals" in data:
            i = data["intervals"]
            if "integrity" in i:
                values["integrity_interval"] = i["integrity"]
            if "anomaly" in i:
                values["anomaly_interval"] = i["anomaly"]
            if "stats" in i:
                values["stats_interval"] = i["stats"]

        if "memory" in data:
            m = data["memory"]
            if "threshold" in m:
                values["memory_threshold"] = m["threshold"]
            if "limit_bytes" in m:
                values["memory_limit_bytes"] = m["limit_bytes"]

        if "discovery" in data:
            d = data["discovery"]
            for key, field_name in (
                ("subnet", "subnet"),
                ("timeout", "discovery_timeout"),
                ("nmap", "nmap_path"),
                ("arp", "arp_path"),
            ):
                if key in d:
                    values[field_name] = d[key]

        if "storage" in data:
            s = data["storage"]
            if "db" in s:
                values["db_path"] = s["db"]
            if "queue_size" in s:
                values["dispatch_queue_size"] = s["queue_size"]

        if "api" in data:
            a = data["api"]
            values["api_host"] = a.get("host", "127.0.0.1")
            values["api_port"] = a.get("port", 8090)

        values["log_level"] = data.get("log_level", "INFO")

        return cls(**values)


def load_config() -> AgentConfig:
    """
    Load configuration from environment variables.

    Unset variables fall back to the model defaults.

    Raises:
        pydantic.ValidationError: If a setting is invalid
    """
    env_map = {
        'NETWATCH_BASE_DIR': 'base_dir',
        'NETWATCH_SUBNET': 'subnet',
        'NETWATCH_MEMORY_THRESHOLD': 'memory_threshold',
        'NETWATCH_MEMORY_LIMIT_BYTES': 'memory_limit_bytes',
        'NETWATCH_INTEGRITY_INTERVAL': 'integrity_interval',
        'NETWATCH_ANOMALY_INTERVAL': 'anomaly_interval',
        'NETWATCH_STATS_INTERVAL': 'stats_interval',
        'NETWATCH_DISCOVERY_TIMEOUT': 'discovery_timeout',
        'NETWATCH_NMAP_PATH': 'nmap_path',
        'NETWATCH_ARP_PATH': 'arp_path',
        'NETWATCH_DB_PATH': 'db_path',
        'NETWATCH_QUEUE_SIZE': 'dispatch_queue_size',
        'NETWATCH_API_HOST': 'api_host',
        'NETWATCH_API_PORT': 'api_port',
        'NETWATCH_LOG_LEVEL': 'log_level',
    }

    config_dict: dict = {
        field_name: os.environ[var]
        for var, field_name in env_map.items()
        if os.environ.get(var)
    }

    # Watched files (comma-separated)
    watched = os.environ.get('NETWATCH_WATCHED_FILES', '')
    if watched.strip():
        config_dict['watched_files'] = [p.strip() for p in watched.split(',') if p.strip()]

    return AgentConfig(**config_dict)
