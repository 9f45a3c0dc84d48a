"""Cloud-init seed templates and rendering for ova-deployer.

Templates live in ``config/`` and are created once with built-in defaults.
Every run renders fresh copies into the workspace; templates are never
rewritten, so a hand-edited ``config/network.conf`` survives across runs.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from ovadeploy.constants import (
    DEFAULT_SEED_TEMPLATES,
    META_DATA,
    NETWORK_CONFIG,
    SEED_FILES,
    USER_DATA,
)
from ovadeploy.exceptions import SeedError
from ovadeploy.models import DeployConfig
from ovadeploy.utils import ensure_directory, hash_password, log


def ensure_seed_templates(config_dir: Path) -> List[Path]:
    """Write default templates for missing seed files. Returns the files created."""
    ensure_directory(config_dir)
    created: List[Path] = []
    for name in SEED_FILES:
        target = config_dir / name
        if target.exists():
            continue
        target.write_text(DEFAULT_SEED_TEMPLATES[name], encoding="utf-8")
        created.append(target)
    return created


def _find_interface(doc: Dict[str, object]) -> Tuple[List[str], Dict[str, object]]:
    """Return the key path to the first interface declaring ``addresses`` and its mapping."""
    path: List[str] = []
    network = doc
    if "network" in doc:
        network = doc["network"]
        path.append("network")
    if not isinstance(network, dict):
        raise SeedError(f"{NETWORK_CONFIG}: 'network' is not a mapping")
    ethernets = network.get("ethernets")
    if not isinstance(ethernets, dict) or not ethernets:
        raise SeedError(f"{NETWORK_CONFIG}: no 'ethernets' section found")
    for name, iface in ethernets.items():
        if isinstance(iface, dict) and "addresses" in iface:
            return path + ["ethernets", str(name)], iface
    raise SeedError(f"{NETWORK_CONFIG}: field 'addresses' not found in any ethernets interface")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _is_content(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def _value_end(lines: List[str], start: int) -> int:
    """Index just past the value of the key on ``lines[start]``.

    Deeper lines belong to the value, as do ``-`` items at the key's own
    indentation. Trailing blank and comment lines are left outside.
    """
    indent = _indent(lines[start])
    end = start + 1
    while end < len(lines):
        line = lines[end]
        if _is_content(line):
            depth = _indent(line)
            if depth < indent or (depth == indent and not line.lstrip().startswith("-")):
                break
        end += 1
    while end - 1 > start and not _is_content(lines[end - 1]):
        end -= 1
    return end


def _find_key(lines: List[str], key: str, start: int, end: int) -> Optional[int]:
    """Line index of ``key`` among the direct children of the block ``lines[start:end]``."""
    depth = next((_indent(line) for line in lines[start:end] if _is_content(line)), None)
    if depth is None:
        return None
    pattern = re.compile(rf"^ {{{depth}}}(['\"]?){re.escape(key)}\1\s*:(\s|$)")
    for idx in range(start, end):
        if pattern.match(lines[idx]):
            return idx
    return None


def render_network_config(template: str, ip_cidr: str, gateway: str) -> str:
    """Return ``template`` with the first interface's address and gateway replaced.

    Only the ``addresses`` and ``gateway4`` lines of that interface change;
    comments, quoting and every other line are kept as written. An empty
    ``gateway`` removes the ``gateway4`` line.
    """
    try:
        doc = yaml.safe_load(template)
    except yaml.YAMLError as exc:
        raise SeedError(f"{NETWORK_CONFIG}: invalid YAML: {exc}") from exc
    if not isinstance(doc, dict):
        raise SeedError(f"{NETWORK_CONFIG}: expected a mapping at top level")

    path, iface = _find_interface(doc)
    if gateway and "gateway4" not in iface:
        raise SeedError(f"{NETWORK_CONFIG}: field 'gateway4' not found next to 'addresses'")

    lines = template.splitlines()
    start, end = 0, len(lines)
    for key in path:
        idx = _find_key(lines, key, start, end)
        if idx is None:
            raise SeedError(f"{NETWORK_CONFIG}: cannot edit '{key}' in place (block-style mapping expected)")
        start, end = idx + 1, _value_end(lines, idx)

    edits: List[Tuple[int, int, List[str]]] = []
    for key, value in (("addresses", f"[{ip_cidr}]"), ("gateway4", gateway)):
        if key not in iface:
            continue
        idx = _find_key(lines, key, start, end)
        if idx is None:
            raise SeedError(f"{NETWORK_CONFIG}: field '{key}' not found as a line of {path[-1]}")
        replacement = [f"{' ' * _indent(lines[idx])}{key}: {value}"] if value else []
        edits.append((idx, _value_end(lines, idx), replacement))

    for first, last, replacement in sorted(edits, reverse=True):
        lines[first:last] = replacement
    rendered = "\n".join(lines)
    return rendered + "\n" if template.endswith("\n") else rendered


def render_user_data(template: str, guest_user: Optional[str] = None, guest_password: Optional[str] = None) -> str:
    if not guest_password:
        return template
    first_line = template.lstrip().split("\n", 1)[0].strip()
    if first_line != "#cloud-config":
        raise SeedError(f"{USER_DATA}: a guest password needs a #cloud-config template")
    try:
        doc = yaml.safe_load(template) or {}
    except yaml.YAMLError as exc:
        raise SeedError(f"{USER_DATA}: invalid YAML: {exc}") from exc
    if not isinstance(doc, dict):
        raise SeedError(f"{USER_DATA}: expected a mapping at top level")

    user = {
        "name": guest_user or "admin",
        "lock_passwd": False,
        "sudo": "ALL=(ALL) NOPASSWD:ALL",
        "shell": "/bin/bash",
        "passwd": hash_password(guest_password),
    }
    users = doc.get("users")
    if not isinstance(users, list):
        users = ["default"] if users is None else [users]
    users.append(user)
    doc["users"] = users
    doc["ssh_pwauth"] = True
    doc.setdefault("chpasswd", {"expire": False})
    return "#cloud-config\n" + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def render_seed(cfg: DeployConfig, seed_dir: Path) -> Dict[str, Path]:
    """Render the three seed files from ``cfg.config_dir`` into ``seed_dir``."""
    ensure_directory(seed_dir)
    rendered: Dict[str, Path] = {}
    for name in SEED_FILES:
        source = cfg.config_dir / name
        if not source.exists():
            raise SeedError(f"Seed template missing: {source}")
        content = source.read_text(encoding="utf-8")
        if name == NETWORK_CONFIG:
            content = render_network_config(content, cfg.ip_cidr, cfg.gateway)
            log("INFO", f"Network: addresses=[{cfg.ip_cidr}] gateway4={cfg.gateway or '<none>'}")
        elif name == USER_DATA:
            content = render_user_data(content, cfg.guest_user, cfg.guest_password)
        elif name == META_DATA and not content.strip():
            log("WARN", f"{source} is empty")
        target = seed_dir / name
        target.write_text(content, encoding="utf-8")
        rendered[name] = target
    return rendered
