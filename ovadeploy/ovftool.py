"""Deployment to ESXi through VMware ``ovftool``."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from ovadeploy.exceptions import DeployError
from ovadeploy.models import DeployConfig
from ovadeploy.utils import log, run_streaming

MASK = "********"


def target_locator(cfg: DeployConfig, password: Optional[str] = None) -> str:
    user = quote(cfg.user, safe="")
    secret = cfg.password if password is None else password
    if secret:
        return f"vi://{user}:{quote(secret, safe='')}@{cfg.host}"
    return f"vi://{user}@{cfg.host}"


def build_command(cfg: DeployConfig, ova_path: Path) -> List[str]:
    """Build the ovftool command line for ``ova_path``."""
    cmd = [cfg.ovftool]
    if cfg.no_ssl_verify:
        cmd.append("--noSSLVerify")
    cmd.extend(
        [
            f"--name={cfg.vm_name}",
            f"--diskMode={cfg.disk_mode}",
        ]
    )
    if cfg.datastore:
        cmd.append(f"--datastore={cfg.datastore}")
    if cfg.network:
        cmd.append(f"--network={cfg.network}")
    if cfg.power_on:
        cmd.append("--powerOn")
    if cfg.overwrite:
        cmd.append("--overwrite")
    cmd.append(str(ova_path))
    cmd.append(target_locator(cfg))
    return cmd


def mask_command(cmd: List[str], cfg: DeployConfig) -> List[str]:
    """Copy of ``cmd`` with the password in the target locator masked."""
    if not cfg.password:
        return list(cmd)
    real = target_locator(cfg)
    masked = target_locator(cfg, password=MASK)
    return [masked if arg == real else arg for arg in cmd]


def deploy(cfg: DeployConfig, ova_path: Path) -> None:
    if not ova_path.is_file():
        raise DeployError(f"OVA to deploy not found: {ova_path}")
    cmd = build_command(cfg, ova_path)
    log("INFO", f"Deploying {ova_path.name} as '{cfg.vm_name}' to {cfg.host}")
    log("INFO", f"Command: {' '.join(mask_command(cmd, cfg))}")
    rc = run_streaming(cmd, display=mask_command(cmd, cfg))
    if rc != 0:
        raise DeployError(f"ovftool exited with status {rc}")
