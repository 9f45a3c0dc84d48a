"""CLI entry points for ova-deployer."""

from __future__ import annotations

import dataclasses
import time
from typing import List, Optional

from ovadeploy.config import build_parser, config_from_args
from ovadeploy.constants import _SENSITIVE_FIELDS
from ovadeploy.exceptions import ConfigError, DeployError
from ovadeploy.models import DeployConfig, StageResult
from ovadeploy.pipeline import DeploymentPipeline
from ovadeploy.utils import log, open_run_log


def show_config(cfg: DeployConfig) -> None:
    """Print the resolved deployment configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name in _SENSITIVE_FIELDS:
            print(f"  {field.name}: {'********' if value else '<unset>'}")
        else:
            print(f"  {field.name}: {value}")


def log_parameters(cfg: DeployConfig) -> None:
    log("INFO", f"Start deploying {cfg.ova_path} with the following parameters:")
    log("INFO", f"  ESXi host: {cfg.host}")
    log("INFO", f"  ESXi user: {cfg.user}")
    log("INFO", f"  OVA:       {cfg.ova_path}")
    log("INFO", f"  VM name:   {cfg.vm_name}")
    log("INFO", f"  IP:        {cfg.ip_cidr}")
    log("INFO", f"  GW:        {cfg.gateway or '<none>'}")
    if cfg.overwrite:
        log("INFO", "  Overwrite: existing VM will be replaced")


def print_summary(results: List[StageResult]) -> None:
    width = max((len(r.name) for r in results), default=0)
    for result in results:
        line = f"  {result.name:<{width}}  {result.status:<7}  {result.elapsed:6.1f}s"
        if result.detail:
            line += f"  {result.detail}"
        print(line, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        cfg = config_from_args(args)
    except ConfigError as exc:
        log("ERROR", str(exc))
        print(parser.format_usage().strip(), flush=True)
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    open_run_log(cfg.log_path)
    started = time.monotonic()
    pipeline = DeploymentPipeline(cfg)
    try:
        log_parameters(cfg)
        results = pipeline.run()
        print_summary(results)
        if cfg.deploy:
            log("SUCCESS", f"All tasks are done in {time.monotonic() - started:.0f}s: '{cfg.vm_name}' deployed to {cfg.host}")
        else:
            log("SUCCESS", f"Repackaged OVA ready at {cfg.output_ova} (deployment skipped)")
        return 0
    except DeployError as exc:
        log("ERROR", str(exc))
        print_summary(pipeline.results)
        return 1
    except KeyboardInterrupt:
        log("ERROR", "Interrupted; workspace may be left in an intermediate state")
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        open_run_log(None)
