"""End-to-end tests for ovadeploy.pipeline with ISO mastering and ovftool mocked."""

from __future__ import annotations

import dataclasses
import hashlib
import tarfile
from unittest.mock import patch

import pytest

from ovadeploy.exceptions import StageError
from ovadeploy.manifest import Manifest
from ovadeploy.ova import extract_ova
from ovadeploy.ovf import OvfDescriptor
from ovadeploy.pipeline import DeploymentPipeline
from ovadeploy.utils import open_run_log

EDITED_NETWORK = """\
network:
  version: 2
  ethernets:
    ens192:
      dhcp4: false
      addresses: [10.9.9.9/16]
      gateway4: 10.9.0.1
      nameservers:
        addresses: [1.1.1.1]
"""


@pytest.fixture
def cfg(default_deploy_config, make_ova):
    make_ova(default_deploy_config.ova_path)
    return default_deploy_config


@pytest.fixture
def ovftool_stream():
    with patch("ovadeploy.ovftool.run_streaming", return_value=0) as mock_stream:
        yield mock_stream


def _members(path):
    with tarfile.open(path) as tar:
        return tar.getnames()


class TestHappyPath:
    def test_repackages_and_deploys(self, cfg, fake_iso_tool, ovftool_stream, tmp_path):
        results = DeploymentPipeline(cfg).run()

        assert [r.name for r in results] == [
            "workspace",
            "seed-templates",
            "purge",
            "extract",
            "network-config",
            "seed-iso",
            "descriptor",
            "manifest",
            "repackage",
            "deploy",
        ]
        assert all(r.status == "ok" for r in results)

        image = cfg.image_dir
        assert _members(image / "image.ova") == [
            "Stats-N1.ovf",
            "Stats-N1.mf",
            "Stats-N1-disk1.vmdk",
            "Stats-N1-file1.iso",
            "Stats-N1-file2.nvram",
        ]

        unpacked = tmp_path / "unpacked"
        extract_ova(image / "image.ova", unpacked)
        iso = unpacked / "Stats-N1-file1.iso"
        assert b"addresses: [172.20.20.18/24]" in iso.read_bytes()
        assert b"gateway4: 172.20.20.1" in iso.read_bytes()
        assert OvfDescriptor.load(unpacked / "Stats-N1.ovf").find_iso_reference().size == iso.stat().st_size

        manifest = Manifest.load(unpacked / "Stats-N1.mf")
        assert manifest.verify(unpacked) == []
        assert manifest.get("Stats-N1.ovf").digest == hashlib.sha256((unpacked / "Stats-N1.ovf").read_bytes()).hexdigest()
        assert manifest.get("Stats-N1-file1.iso").digest == hashlib.sha256(iso.read_bytes()).hexdigest()

        cmd = ovftool_stream.call_args[0][0]
        assert "--name=myvm" in cmd
        assert "--powerOn" in cmd
        assert cmd[-2] == str(image / "image.ova")
        assert cmd[-1] == "vi://root:secret@192.168.1.100"

    def test_rerun_keeps_edited_template(self, cfg, fake_iso_tool, ovftool_stream):
        DeploymentPipeline(cfg).run()
        (cfg.config_dir / "network.conf").write_text(EDITED_NETWORK)

        DeploymentPipeline(cfg).run()

        assert (cfg.config_dir / "network.conf").read_text() == EDITED_NETWORK
        payload = (cfg.image_dir / "Stats-N1-file1.iso").read_bytes()
        assert b"addresses: [172.20.20.18/24]" in payload
        assert b"addresses: [1.1.1.1]" in payload
        assert b"10.9.9.9" not in payload

    def test_no_deploy_skips_ovftool(self, cfg, fake_iso_tool, ovftool_stream):
        cfg = dataclasses.replace(cfg, deploy=False)
        results = DeploymentPipeline(cfg).run()
        assert results[-1].name == "deploy"
        assert results[-1].status == "skipped"
        ovftool_stream.assert_not_called()
        assert (cfg.image_dir / "image.ova").is_file()

    def test_progress_lines_stripped_from_run_log(self, cfg, fake_iso_tool):
        def fake_stream(cmd, display=None):
            with open(cfg.log_path, "a", encoding="utf-8") as f:
                f.write("2026-01-01 00:00:00 [OUT] Disk progress: 42%\n")
                f.write("2026-01-01 00:00:00 [OUT] Transfer Completed\n")
            return 0

        open_run_log(cfg.log_path)
        try:
            with patch("ovadeploy.ovftool.run_streaming", side_effect=fake_stream):
                DeploymentPipeline(cfg).run()
        finally:
            open_run_log(None)
        text = cfg.log_path.read_text()
        assert "Disk progress" not in text
        assert "Transfer Completed" in text
        assert "[OUT] Total translation table size: 0" in text
        assert "secret" not in text


class TestFailure:
    def test_failure_purges_workspace(self, cfg, fake_iso_tool, ovftool_stream):
        cfg = dataclasses.replace(cfg, iso_name="absent.iso")
        pipeline = DeploymentPipeline(cfg)
        with pytest.raises(StageError) as excinfo:
            pipeline.run()
        assert excinfo.value.stage == "seed-iso"
        assert pipeline.results[-1].status == "failed"
        assert list(cfg.image_dir.iterdir()) == []
        assert (cfg.config_dir / "network.conf").exists()
        ovftool_stream.assert_not_called()

    def test_keep_workspace_on_failure(self, cfg, fake_iso_tool, ovftool_stream):
        cfg = dataclasses.replace(cfg, iso_name="absent.iso", keep_workspace=True)
        with pytest.raises(StageError):
            DeploymentPipeline(cfg).run()
        assert (cfg.image_dir / "Stats-N1.ovf").exists()

    def test_missing_ova(self, default_deploy_config, fake_iso_tool, ovftool_stream):
        with pytest.raises(StageError, match=r"\[extract\] OVA file not found"):
            DeploymentPipeline(default_deploy_config).run()

    def test_deploy_failure_keeps_stage_name(self, cfg, fake_iso_tool):
        with patch("ovadeploy.ovftool.run_streaming", return_value=1):
            with pytest.raises(StageError) as excinfo:
                DeploymentPipeline(cfg).run()
        assert excinfo.value.stage == "deploy"
        assert "ovftool exited with status 1" in str(excinfo.value)
