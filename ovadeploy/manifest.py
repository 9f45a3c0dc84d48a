"""OVA manifest (.mf) parsing and digest repair."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import List, Optional

from ovadeploy.constants import (
    DEFAULT_MANIFEST_ALGORITHM,
    MANIFEST_ALGORITHMS,
    MANIFEST_LINE_RE,
)
from ovadeploy.exceptions import DeployError
from ovadeploy.models import ManifestEntry
from ovadeploy.utils import log


def file_digest(path: Path, algorithm: str = DEFAULT_MANIFEST_ALGORITHM) -> str:
    """Hex digest of ``path`` using a manifest algorithm name (SHA1/SHA256/SHA512)."""
    try:
        hasher = hashlib.new(MANIFEST_ALGORITHMS[algorithm.upper()])
    except KeyError:
        raise DeployError(f"Unsupported manifest algorithm: {algorithm}")
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class Manifest:
    def __init__(self, path: Path, entries: List[ManifestEntry]) -> None:
        self.path = path
        self.entries = entries

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        if not path.exists():
            raise DeployError(f"Manifest not found: {path}")
        entries: List[ManifestEntry] = []
        for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            match = MANIFEST_LINE_RE.match(line)
            if not match:
                raise DeployError(f"{path.name}:{lineno}: unrecognised manifest line: {line!r}")
            entries.append(ManifestEntry(match["algo"], match["name"], match["digest"].lower()))
        return cls(path, entries)

    @property
    def default_algorithm(self) -> str:
        return self.entries[0].algorithm if self.entries else DEFAULT_MANIFEST_ALGORITHM

    def get(self, name: str) -> Optional[ManifestEntry]:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def update(self, name: str, digest: str) -> None:
        for idx, entry in enumerate(self.entries):
            if entry.name == name:
                self.entries[idx] = entry._replace(digest=digest.lower())
                return
        raise DeployError(f"{self.path.name}: no entry for {name}")

    def refresh(self, name: str, file_path: Path, add_missing: bool = True) -> ManifestEntry:
        """Recompute the digest for ``name`` from ``file_path`` with the entry's own algorithm."""
        entry = self.get(name)
        if entry is None:
            if not add_missing:
                raise DeployError(f"{self.path.name}: no entry for {name}")
            algorithm = self.default_algorithm
            log("WARN", f"{self.path.name} has no entry for {name}; adding {algorithm} line")
            entry = ManifestEntry(algorithm, name, file_digest(file_path, algorithm))
            self.entries.append(entry)
            return entry
        self.update(name, file_digest(file_path, entry.algorithm))
        return self.get(name)  # type: ignore[return-value]

    def verify(self, base_dir: Path) -> List[str]:
        """Return the names whose on-disk digest does not match (or which are missing)."""
        mismatched = []
        for entry in self.entries:
            member = base_dir / entry.name
            if not member.exists() or file_digest(member, entry.algorithm) != entry.digest:
                mismatched.append(entry.name)
        return mismatched

    def render(self) -> str:
        return "".join(f"{e.algorithm}({e.name})= {e.digest}\n" for e in self.entries)

    def save(self) -> None:
        self.path.write_text(self.render(), encoding="utf-8")
