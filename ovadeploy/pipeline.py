"""Ordered deployment pipeline for ova-deployer.

Each stage runs to completion before the next one starts. The first failure
stops the run, purges the partially-built ``image/`` workspace (unless
``keep_workspace`` is set) and surfaces as a :class:`StageError`.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, List, Optional

from ovadeploy import ovftool
from ovadeploy.constants import NETWORK_CONFIG, SEED_FILES
from ovadeploy.exceptions import DeployError, StageError
from ovadeploy.iso import build_seed_iso
from ovadeploy.manifest import Manifest
from ovadeploy.models import DeployConfig, Stage, StageResult
from ovadeploy.ova import create_ova, discover_members, extract_ova, find_descriptor, find_manifest
from ovadeploy.ovf import OvfDescriptor
from ovadeploy.seed import ensure_seed_templates, render_seed
from ovadeploy.utils import ensure_directory, log, purge_directory, strip_progress_lines


class DeploymentPipeline:
    def __init__(self, cfg: DeployConfig) -> None:
        self.cfg = cfg
        self.results: List[StageResult] = []
        self._seed_files: Dict[str, Path] = {}
        self._iso_name: Optional[str] = None
        self._descriptor: Optional[Path] = None
        self._manifest: Optional[Path] = None

    def stages(self) -> List[Stage]:
        return [
            Stage("workspace", self.prepare_workspace),
            Stage("seed-templates", self.ensure_templates),
            Stage("purge", self.purge_workspace),
            Stage("extract", self.extract),
            Stage("network-config", self.render_seed),
            Stage("seed-iso", self.master_iso),
            Stage("descriptor", self.repair_descriptor),
            Stage("manifest", self.repair_manifest),
            Stage("repackage", self.repackage),
            Stage("deploy", self.deploy),
        ]

    def run(self) -> List[StageResult]:
        self.results = []
        stages = self.stages()
        for idx, stage in enumerate(stages, start=1):
            if stage.name == "deploy" and not self.cfg.deploy:
                log("INFO", f"[{idx}/{len(stages)}] {stage.name}: skipped (--no-deploy)")
                self.results.append(StageResult(stage.name, "skipped"))
                continue
            log("INFO", f"[{idx}/{len(stages)}] {stage.name}...")
            started = time.monotonic()
            try:
                detail = stage.action() or ""
            except DeployError as exc:
                self._fail(stage, started, str(exc))
                raise StageError(stage.name, str(exc)) from exc
            except (OSError, ValueError) as exc:
                self._fail(stage, started, str(exc))
                raise StageError(stage.name, f"{type(exc).__name__}: {exc}") from exc
            elapsed = time.monotonic() - started
            self.results.append(StageResult(stage.name, "ok", detail, elapsed))
            log("SUCCESS", f"[{idx}/{len(stages)}] {stage.name} done{': ' + detail if detail else ''}")
        return self.results

    def _fail(self, stage: Stage, started: float, message: str) -> None:
        self.results.append(StageResult(stage.name, "failed", message, time.monotonic() - started))
        self.cleanup()

    def cleanup(self) -> None:
        """Drop the torn workspace left behind by a failed run."""
        if self.cfg.keep_workspace:
            log("WARN", f"Leaving workspace {self.cfg.image_dir} as-is (--keep-workspace)")
            return
        try:
            purge_directory(self.cfg.image_dir)
            log("INFO", f"Purged partially-built workspace {self.cfg.image_dir}")
        except OSError as exc:
            log("WARN", f"Failed to purge {self.cfg.image_dir}: {exc}")

    # -- stages ---------------------------------------------------------

    def prepare_workspace(self) -> str:
        ensure_directory(self.cfg.config_dir)
        ensure_directory(self.cfg.image_dir)
        return str(self.cfg.workdir)

    def ensure_templates(self) -> str:
        created = ensure_seed_templates(self.cfg.config_dir)
        for path in created:
            log("INFO", f"Created default seed template {path}")
        if not created:
            return "existing templates kept"
        return f"created {', '.join(p.name for p in created)}"

    def purge_workspace(self) -> str:
        removed = purge_directory(self.cfg.image_dir)
        return f"{removed} entries removed"

    def extract(self) -> str:
        names = extract_ova(self.cfg.ova_path, self.cfg.image_dir)
        self._descriptor = find_descriptor(self.cfg.image_dir)
        self._manifest = find_manifest(self.cfg.image_dir)
        return f"{len(names)} files from {self.cfg.ova_path.name}"

    def render_seed(self) -> str:
        self._seed_files = render_seed(self.cfg, self.cfg.seed_dir)
        return f"{NETWORK_CONFIG} rendered"

    def master_iso(self) -> str:
        assert self._descriptor is not None
        descriptor = OvfDescriptor.load(self._descriptor)
        ref = descriptor.find_iso_reference(self.cfg.iso_name)
        self._iso_name = ref.href
        ordered = {name: self._seed_files[name] for name in SEED_FILES}
        size = build_seed_iso(self.cfg.image_dir / ref.href, ordered)
        return f"{ref.href} ({size} bytes)"

    def repair_descriptor(self) -> str:
        assert self._descriptor is not None and self._iso_name is not None
        size = (self.cfg.image_dir / self._iso_name).stat().st_size
        descriptor = OvfDescriptor.load(self._descriptor)
        descriptor.set_file_size(self._iso_name, size)
        descriptor.save()
        return f"{self._iso_name} ovf:size={size}"

    def repair_manifest(self) -> str:
        assert self._descriptor is not None and self._manifest is not None and self._iso_name is not None
        manifest = Manifest.load(self._manifest)
        # the descriptor was rewritten by the previous stage, so its digest changes too
        for name in (self._iso_name, self._descriptor.name):
            entry = manifest.refresh(name, self.cfg.image_dir / name)
            log("DEBUG", f"{entry.algorithm}({entry.name})= {entry.digest}")
        manifest.save()
        return f"{self._iso_name}, {self._descriptor.name}"

    def repackage(self) -> str:
        assert self._manifest is not None
        mismatched = Manifest.load(self._manifest).verify(self.cfg.image_dir)
        if mismatched:
            raise DeployError(f"Manifest digests do not match: {', '.join(mismatched)}")
        members = discover_members(self.cfg.image_dir)
        create_ova(self.cfg.output_ova, self.cfg.image_dir, members)
        return f"{self.cfg.output_ova} ({len(members)} members)"

    def deploy(self) -> str:
        try:
            ovftool.deploy(self.cfg, self.cfg.output_ova)
        finally:
            if self.cfg.log_path is not None:
                strip_progress_lines(self.cfg.log_path)
        return f"{self.cfg.vm_name} on {self.cfg.host}"
