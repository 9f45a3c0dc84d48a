"""Command-line and environment configuration for ova-deployer."""

from __future__ import annotations

import argparse
import getpass
from pathlib import Path
from typing import List, Optional

from ovadeploy.constants import (
    DEFAULT_DISK_MODE,
    DEFAULT_GATEWAY,
    DEFAULT_IP_CIDR,
    DEFAULT_LOG_NAME,
    DEFAULT_OVFTOOL,
    DEFAULT_USER,
    DISK_MODES,
)
from ovadeploy.exceptions import ConfigError
from ovadeploy.models import DeployConfig
from ovadeploy.utils import get_env, get_env_bool, has_controlling_tty

USAGE = (
    "%(prog)s --host [ESXI_HOST] --user [ESXI_USER] --password [ESXI_PASSWORD] --ova [OVA_FILE] "
    "--vm_name [VM_NAME] --ip [IP_ADDRESS/SUBNET] --gw [DEFAULT_GW_IP]"
)


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that reports bad usage as ConfigError instead of exiting with 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


def derive_vm_name(ova_path: str) -> str:
    """OVA basename with the first extension stripped (``foo.bar.ova`` -> ``foo``)."""
    name = Path(ova_path).name
    stem = name.split(".", 1)[0]
    return stem or name


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="ova-deploy",
        usage=USAGE,
        description="Inject a cloud-init seed into an OVA, repair its manifest and deploy it to ESXi with ovftool",
    )
    parser.add_argument("--host", default=get_env("ESXI_HOST"), help="ESXi host address (required)")
    parser.add_argument("--user", default=get_env("ESXI_USER", DEFAULT_USER), help="ESXi user (default: root)")
    parser.add_argument("--password", default=None, help="ESXi password (prompted when omitted)")
    parser.add_argument("--ova", default=None, help="Source OVA file (required)")
    parser.add_argument("--vm_name", "--vm-name", dest="vm_name", default=None, help="VM name (default: OVA basename)")
    parser.add_argument("--ip", default=DEFAULT_IP_CIDR, help=f"Guest IP in CIDR form (default: {DEFAULT_IP_CIDR})")
    parser.add_argument("--gw", default=DEFAULT_GATEWAY, help="Guest default gateway (default: none)")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite an existing VM with the same name")
    parser.add_argument("--no-power-on", action="store_true", help="Do not power on the VM after deployment")
    parser.add_argument(
        "--disk-mode",
        default=DEFAULT_DISK_MODE,
        choices=sorted(DISK_MODES),
        help=f"Disk provisioning mode (default: {DEFAULT_DISK_MODE})",
    )
    parser.add_argument("--datastore", default=None, help="Target datastore")
    parser.add_argument("--network", default=None, help="Target port group for the VM network")
    parser.add_argument("--ssl-verify", action="store_true", help="Verify the host's SSL certificate")
    parser.add_argument("--iso-name", default=None, help="Seed ISO member name (default: the descriptor's *.iso file)")
    parser.add_argument("--guest-user", default=None, help="Add this login user to the guest via cloud-init")
    parser.add_argument("--guest-password", default=get_env("GUEST_PASSWORD"), help="Password for --guest-user")
    parser.add_argument("--workdir", default=".", help="Directory holding config/ and image/ (default: .)")
    parser.add_argument("--log-file", default=None, help=f"Run log (default: <workdir>/{DEFAULT_LOG_NAME})")
    parser.add_argument("--ovftool", default=DEFAULT_OVFTOOL, help="Path to the ovftool binary")
    parser.add_argument("--no-deploy", action="store_true", help="Build image/image.ova but do not deploy it")
    parser.add_argument("--keep-workspace", action="store_true", help="Keep image/ as-is when a stage fails")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    return parser


def resolve_password(explicit: Optional[str], user: str, host: str) -> Optional[str]:
    if explicit:
        return explicit
    from_env = get_env("ESXI_PASSWORD")
    if from_env:
        return from_env
    if not has_controlling_tty():
        return None
    try:
        return getpass.getpass(f"Password for {user}@{host}: ") or None
    except (EOFError, KeyboardInterrupt):
        return None


def config_from_args(args: argparse.Namespace, prompt: bool = True) -> DeployConfig:
    """Resolve parsed flags into a DeployConfig. Raises ConfigError before any side effect."""
    missing = [flag for flag, value in (("--host", args.host), ("--ova", args.ova)) if not value]
    if missing:
        raise ConfigError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")

    deploy = not args.no_deploy and not get_env_bool("NO_DEPLOY", False)
    password = args.password
    if prompt and deploy and not args.show_config:
        password = resolve_password(args.password, args.user, args.host)
        if not password:
            raise ConfigError("--password is required (no TTY available to prompt for it)")

    workdir = Path(args.workdir)
    log_path = Path(args.log_file) if args.log_file else workdir / DEFAULT_LOG_NAME

    return DeployConfig(
        host=args.host,
        ova_path=Path(args.ova),
        vm_name=args.vm_name or derive_vm_name(args.ova),
        user=args.user,
        password=password,
        ip_cidr=args.ip,
        gateway=args.gw,
        overwrite=args.overwrite,
        power_on=not args.no_power_on,
        disk_mode=args.disk_mode,
        datastore=args.datastore,
        network=args.network,
        no_ssl_verify=not args.ssl_verify,
        iso_name=args.iso_name,
        guest_user=args.guest_user,
        guest_password=args.guest_password,
        workdir=workdir,
        log_path=log_path,
        ovftool=args.ovftool,
        deploy=deploy,
        keep_workspace=args.keep_workspace,
    )


def parse_args(argv: Optional[List[str]] = None, prompt: bool = True) -> DeployConfig:
    return config_from_args(build_parser().parse_args(argv), prompt=prompt)
