"""Seed ISO mastering for ova-deployer."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict

from ovadeploy.constants import ISO_TOOLS, ISO_VOLUME_ID
from ovadeploy.exceptions import DeployError
from ovadeploy.utils import log, record_output, run


def find_iso_tool() -> str:
    for tool in ISO_TOOLS:
        if shutil.which(tool):
            return tool
    raise DeployError(f"No ISO mastering tool found (tried: {', '.join(ISO_TOOLS)})")


def build_seed_iso(output: Path, seed_files: Dict[str, Path], volume_id: str = ISO_VOLUME_ID) -> int:
    """Master ``seed_files`` (name -> path) into ``output``. Returns the ISO size in bytes."""
    for name, path in seed_files.items():
        if not path.exists():
            raise DeployError(f"Seed file {name} missing: {path}")
    tool = find_iso_tool()
    output.unlink(missing_ok=True)
    cmd = [
        tool,
        "-output",
        str(output),
        "-volid",
        volume_id,
        "-joliet",
        "-rock",
        "-graft-points",
    ]
    cmd.extend(f"{name}={path}" for name, path in seed_files.items())
    try:
        result = run(cmd, capture_output=True)
    except subprocess.CalledProcessError as exc:
        record_output(exc.stdout, exc.stderr)
        stderr = (exc.stderr or "").strip()
        raise DeployError(f"{tool} failed with exit code {exc.returncode}: {stderr}") from exc
    record_output(result.stdout, result.stderr)
    if not output.exists():
        raise DeployError(f"{tool} did not produce {output}")
    size = output.stat().st_size
    log("DEBUG", f"Seed ISO {output.name}: {size} bytes")
    return size
