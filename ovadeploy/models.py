"""Data models for ova-deployer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from ovadeploy.constants import (
    CONFIG_DIR_NAME,
    DEFAULT_DISK_MODE,
    DEFAULT_GATEWAY,
    DEFAULT_IP_CIDR,
    DEFAULT_USER,
    IMAGE_DIR_NAME,
    OUTPUT_OVA_NAME,
    OVFTOOL_BINARY,
    SEED_DIR_NAME,
)


class FileReference(NamedTuple):
    href: str
    file_id: str
    size: Optional[int]


class ManifestEntry(NamedTuple):
    algorithm: str  # "SHA1", "SHA256", "SHA512"
    name: str
    digest: str


@dataclass
class DeployConfig:
    host: str
    ova_path: Path
    vm_name: str
    user: str = DEFAULT_USER
    password: Optional[str] = None
    ip_cidr: str = DEFAULT_IP_CIDR
    gateway: str = DEFAULT_GATEWAY
    overwrite: bool = False
    power_on: bool = True
    disk_mode: str = DEFAULT_DISK_MODE
    datastore: Optional[str] = None
    network: Optional[str] = None
    no_ssl_verify: bool = True
    iso_name: Optional[str] = None
    guest_user: Optional[str] = None
    guest_password: Optional[str] = None
    workdir: Path = Path(".")
    log_path: Optional[Path] = None
    ovftool: str = OVFTOOL_BINARY
    deploy: bool = True
    keep_workspace: bool = False

    @property
    def config_dir(self) -> Path:
        return self.workdir / CONFIG_DIR_NAME

    @property
    def image_dir(self) -> Path:
        return self.workdir / IMAGE_DIR_NAME

    @property
    def seed_dir(self) -> Path:
        return self.image_dir / SEED_DIR_NAME

    @property
    def output_ova(self) -> Path:
        return self.image_dir / OUTPUT_OVA_NAME


class Stage(NamedTuple):
    name: str
    action: Callable[[], Optional[str]]


@dataclass
class StageResult:
    name: str
    status: str  # "ok", "skipped", "failed"
    detail: str = ""
    elapsed: float = 0.0
