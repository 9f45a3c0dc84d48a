"""Shared test fixtures: synthetic OVA bundles and a clean environment."""

from __future__ import annotations

import hashlib
import subprocess
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest

from ovadeploy.models import DeployConfig

OVF_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<Envelope vmw:buildId="build-123" xmlns="http://schemas.dmtf.org/ovf/envelope/1" xmlns:ovf="http://schemas.dmtf.org/ovf/envelope/1" xmlns:rasd="http://schemas.dmtf.org/wbem/wscim/1/cim-schema/2/CIM_ResourceAllocationSettingData" xmlns:vmw="http://www.vmware.com/schema/ovf">
  <References>
    <File ovf:href="Stats-N1-disk1.vmdk" ovf:id="file2" ovf:size="{disk_size}"/>
    <File ovf:href="Stats-N1-file1.iso" ovf:id="file1" ovf:size="1024"/>
    <File ovf:href="Stats-N1-file2.nvram" ovf:id="file3" ovf:size="{nvram_size}"/>
  </References>
  <DiskSection>
    <Info>Virtual disk information</Info>
    <Disk ovf:capacity="16" ovf:capacityAllocationUnits="byte * 2^30" ovf:diskId="vmdisk1" ovf:fileRef="file2"/>
  </DiskSection>
  <VirtualSystem ovf:id="Stats-N1">
    <Info>A virtual machine</Info>
    <Name>Stats-N1</Name>
  </VirtualSystem>
</Envelope>
"""

DISK_BYTES = b"KDMV" + b"\x00" * 508
NVRAM_BYTES = b"nvram-state"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def ovf_text() -> str:
    return OVF_TEMPLATE.format(disk_size=len(DISK_BYTES), nvram_size=len(NVRAM_BYTES))


@pytest.fixture
def image_dir(tmp_path, ovf_text) -> Path:
    """An extracted Stats-N1 bundle: descriptor, manifest, disk and NVRAM (no ISO yet)."""
    directory = tmp_path / "extracted"
    directory.mkdir()
    (directory / "Stats-N1.ovf").write_text(ovf_text, encoding="utf-8")
    (directory / "Stats-N1-disk1.vmdk").write_bytes(DISK_BYTES)
    (directory / "Stats-N1-file2.nvram").write_bytes(NVRAM_BYTES)
    manifest = (
        f"SHA256(Stats-N1.ovf)= {sha256_hex(ovf_text.encode('utf-8'))}\n"
        f"SHA256(Stats-N1-disk1.vmdk)= {sha256_hex(DISK_BYTES)}\n"
        f"SHA256(Stats-N1-file1.iso)= {'0' * 64}\n"
        f"SHA256(Stats-N1-file2.nvram)= {sha256_hex(NVRAM_BYTES)}\n"
    )
    (directory / "Stats-N1.mf").write_text(manifest, encoding="utf-8")
    return directory


@pytest.fixture
def make_ova(image_dir):
    """Return a factory that tars the extracted bundle into an OVA at the given path."""

    def _make(path: Path) -> Path:
        with tarfile.open(path, "w", format=tarfile.USTAR_FORMAT) as tar:
            for name in ("Stats-N1.ovf", "Stats-N1.mf", "Stats-N1-disk1.vmdk", "Stats-N1-file2.nvram"):
                tar.add(image_dir / name, arcname=name)
        return path

    return _make


@pytest.fixture
def default_deploy_config(tmp_path) -> DeployConfig:
    """Return a DeployConfig rooted in a temporary workdir."""
    return DeployConfig(
        host="192.168.1.100",
        ova_path=tmp_path / "myvm.ova",
        vm_name="myvm",
        user="root",
        password="secret",
        ip_cidr="172.20.20.18/24",
        gateway="172.20.20.1",
        workdir=tmp_path / "work",
        log_path=tmp_path / "work" / "deploy.log",
    )


def fake_genisoimage(cmd, check=True, **kwargs):
    """Stand-in for ``run`` that writes an "ISO" concatenating the graft-point files."""
    output = Path(cmd[cmd.index("-output") + 1])
    payload = b""
    for arg in cmd:
        if "=" in arg and not arg.startswith("-"):
            name, path = arg.split("=", 1)
            payload += name.encode() + b"\n" + Path(path).read_bytes()
    output.write_bytes(b"CD001" + payload)
    return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="Total translation table size: 0\nExtent written\n")


@pytest.fixture
def fake_iso_tool():
    """Patch ISO mastering so no genisoimage binary is needed; yields the mocked run()."""
    with (
        patch("ovadeploy.iso.find_iso_tool", return_value="genisoimage"),
        patch("ovadeploy.iso.run", side_effect=fake_genisoimage) as mock_run,
    ):
        yield mock_run


# Environment variables read by config.build_parser()/config_from_args()
_CONFIG_ENV_VARS = [
    "ESXI_HOST",
    "ESXI_USER",
    "ESXI_PASSWORD",
    "GUEST_PASSWORD",
    "NO_DEPLOY",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear every environment variable the config layer reads."""
    for key in _CONFIG_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
