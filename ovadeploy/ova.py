"""OVA archive extraction, member discovery and repackaging."""

from __future__ import annotations

import tarfile
from pathlib import Path, PurePosixPath
from typing import List

from ovadeploy.exceptions import DeployError
from ovadeploy.ovf import OvfDescriptor
from ovadeploy.utils import ensure_directory, log


def _check_member(member: tarfile.TarInfo) -> None:
    name = PurePosixPath(member.name)
    if name.is_absolute() or ".." in name.parts:
        raise DeployError(f"Refusing unsafe OVA member path: {member.name}")
    if not (member.isfile() or member.isdir()):
        raise DeployError(f"Refusing non-regular OVA member: {member.name}")


def extract_ova(ova_path: Path, dest: Path) -> List[str]:
    """Extract ``ova_path`` into ``dest`` and return the member names."""
    if not ova_path.is_file():
        raise DeployError(f"OVA file not found: {ova_path}")
    ensure_directory(dest)
    try:
        with tarfile.open(ova_path, "r") as tar:
            members = tar.getmembers()
            for member in members:
                _check_member(member)
            if hasattr(tarfile, "data_filter"):
                tar.extractall(path=dest, members=members, filter="data")
            else:  # pragma: no cover - interpreters without extraction filters
                tar.extractall(path=dest, members=members)
    except tarfile.TarError as exc:
        raise DeployError(f"Failed to extract OVA archive {ova_path}: {exc}") from exc
    names = [m.name for m in members if m.isfile()]
    for name in names:
        log("DEBUG", f"  extracted {name}")
    return names


def find_single(image_dir: Path, pattern: str) -> Path:
    found = sorted(p for p in image_dir.glob(pattern) if p.is_file())
    if not found:
        raise DeployError(f"No {pattern} file in {image_dir}")
    if len(found) > 1:
        names = ", ".join(p.name for p in found)
        raise DeployError(f"Expected a single {pattern} file in {image_dir}, found: {names}")
    return found[0]


def find_descriptor(image_dir: Path) -> Path:
    return find_single(image_dir, "*.ovf")


def find_manifest(image_dir: Path) -> Path:
    return find_single(image_dir, "*.mf")


def discover_members(image_dir: Path) -> List[str]:
    """Ordered OVA member list: descriptor, manifest, then referenced files.

    Exactly one manifest is required, as for extraction; it goes second.
    """
    descriptor = find_descriptor(image_dir)
    members = [descriptor.name, find_manifest(image_dir).name]

    missing = []
    for ref in OvfDescriptor.load(descriptor).file_references():
        if not ref.href or ref.href in members:
            continue
        if not (image_dir / ref.href).is_file():
            missing.append(ref.href)
            continue
        members.append(ref.href)
    if missing:
        raise DeployError(f"Files referenced by {descriptor.name} are missing: {', '.join(missing)}")

    # the signature covers the old manifest and cannot survive the repair
    for cert in sorted(image_dir.glob("*.cert")):
        log("WARN", f"Dropping signing certificate {cert.name}; the repackaged OVA is unsigned")
    return members


def create_ova(output: Path, image_dir: Path, members: List[str]) -> Path:
    output.unlink(missing_ok=True)
    with tarfile.open(output, "w", format=tarfile.USTAR_FORMAT) as tar:
        for name in members:
            tar.add(image_dir / name, arcname=name, recursive=False)
            log("DEBUG", f"  added {name}")
    return output
