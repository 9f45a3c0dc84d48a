"""Global constants and default values for ova-deployer."""

from __future__ import annotations

import os
import re

DEFAULT_USER = "root"
DEFAULT_IP_CIDR = "192.168.1.100/24"
DEFAULT_GATEWAY = ""
DEFAULT_DISK_MODE = "thin"
OVFTOOL_BINARY = "ovftool"
DEFAULT_OVFTOOL = os.environ.get("OVFTOOL", OVFTOOL_BINARY)

# Workspace layout, relative to --workdir
CONFIG_DIR_NAME = "config"
IMAGE_DIR_NAME = "image"
SEED_DIR_NAME = "seed"
OUTPUT_OVA_NAME = "image.ova"
DEFAULT_LOG_NAME = "deploy.log"

META_DATA = "meta-data"
USER_DATA = "user-data"
NETWORK_CONFIG = "network.conf"
SEED_FILES = (USER_DATA, META_DATA, NETWORK_CONFIG)

ISO_VOLUME_ID = "cidata"
ISO_TOOLS = ("genisoimage", "mkisofs")

DISK_MODES = {"thin", "thick", "eagerZeroedThick", "monolithicSparse", "monolithicFlat", "twoGbMaxExtentSparse"}

OVF_NS = "http://schemas.dmtf.org/ovf/envelope/1"
MANIFEST_ALGORITHMS = {"SHA1": "sha1", "SHA256": "sha256", "SHA512": "sha512"}
DEFAULT_MANIFEST_ALGORITHM = "SHA256"
MANIFEST_LINE_RE = re.compile(r"^(?P<algo>SHA1|SHA256|SHA512)\((?P<name>[^)]+)\)\s*=\s*(?P<digest>[0-9a-fA-F]+)\s*$")

# ovftool redraws these with carriage returns; they are dropped from the persisted log
PROGRESS_LINE_RE = re.compile(r"(Disk progress|Progress):\s*\d{1,3}%\s*$", re.IGNORECASE)

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

_SENSITIVE_FIELDS = {"password", "guest_password"}

DEFAULT_META_DATA = """\
instance-id: iid-ova-appliance
local-hostname: appliance
"""

DEFAULT_USER_DATA = """\
#cloud-config
bootcmd:
  - [sh, -c, "mkdir -p /mnt/cidata && mount -L cidata /mnt/cidata || true"]
runcmd:
  - [sh, -c, "cp /mnt/cidata/network.conf /etc/netplan/50-cloud-init.yaml && netplan apply"]
"""

DEFAULT_NETWORK_CONFIG = """\
network:
  version: 2
  ethernets:
    eth0:
      dhcp4: false
      addresses: [192.168.1.100/24]
      gateway4: 192.168.1.1
"""

DEFAULT_SEED_TEMPLATES = {
    META_DATA: DEFAULT_META_DATA,
    USER_DATA: DEFAULT_USER_DATA,
    NETWORK_CONFIG: DEFAULT_NETWORK_CONFIG,
}
