from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "build_config.yaml"

DEFAULT_KERNEL_URL = (
    "https://github.com/key2p/IPQ/releases/download/6.17_cloud/"
    "linux-image-6.17.7-x64v3-xanmod1_6.17.7-2_amd64.deb"
)
DEFAULT_ABI = "v3"
ABIS = ("v1", "v2", "v3")

DEFAULT_RUNTIME_URL = "https://github.com/mgoltzsche/podman-static/releases/latest/download/podman-linux-amd64.tar.gz"
DEFAULT_ALPINE_ROOTFS_URL = "https://github.com/key2p/minideb/releases/download/alpine-rootfs/alpine-part-rootfs.tar.gz"
DEFAULT_ALPINE_RELEASES_URL = "https://dl-cdn.alpinelinux.org/alpine/latest-stable/releases/x86_64"

DEFAULT_REQUIRED_TOOLS = [
    "curl",
    "tar",
    "gzip",
    "xz",
    "cpio",
    "dpkg-deb",
    "parted",
    "fallocate",
    "losetup",
    "mkfs.vfat",
    "mkfs.ext4",
    "zerofree",
    "grub-install",
    "xorriso",
    "grub-mkrescue",
    "strip",
    "upx",
]

TOOLS_HINT = (
    "Please install the missing tools to proceed.\n"
    "On Debian/Ubuntu: sudo apt-get install curl tar gzip xz-utils cpio dpkg parted fdisk "
    "util-linux dosfstools e2fsprogs zerofree xorriso grub-pc-bin grub-efi-amd64-bin binutils upx-ucl"
)

# Paths relative to the extracted runtime bundle root.
DEFAULT_RUNTIME_STRIP = [
    "usr/local/bin/podman",
    "usr/local/bin/crun",
    "usr/local/lib/podman/netavark",
]
DEFAULT_RUNTIME_UPX = [
    "usr/local/bin/podman",
    "usr/local/lib/podman/netavark",
    "usr/local/lib/podman/aardvark-dns",
    "usr/local/lib/podman/rootlessport",
    "usr/local/lib/podman/conmon",
]
# Removed from the initrd after the runtime bundle is copied in.
DEFAULT_RUNTIME_REMOVE = [
    "usr/local/libexec/podman/quadlet",
    "usr/local/bin/runc",
    "usr/local/bin/README.md",
    "README.md",
]

# cloud-utils-growpart e2fsprogs-extra: growpart + mkfs.ext4 for the installer
# iptables busybox-openrc busybox-mdev-openrc: podman networking/devices
# dropbear dropbear-ssh: ssh access
DEFAULT_ALPINE_PACKAGES = [
    "cloud-utils-growpart",
    "e2fsprogs-extra",
    "iptables",
    "busybox-openrc",
    "busybox-mdev-openrc",
    "dropbear",
    "dropbear-ssh",
]
DEFAULT_ALPINE_SERVICES = ["cgroups"]

DEFAULT_BOOTSTRAP_PACKAGES = [
    "debootstrap",
    "debian-archive-keyring",
    "jq",
    "dpkg-dev",
    "gnupg",
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gpg",
    "perl",
]
DEFAULT_KEYRING_URL = "https://ftp.debian.org/debian/pool/main/d/debian-archive-keyring/debian-archive-keyring_2025.1_all.deb"

DEFAULT_PARTITIONS: List[Dict[str, Any]] = [
    {"name": "ESP", "fs": "fat32", "start_mib": 1, "end_mib": 62, "flag": "esp", "label": "ESP"},
    {"name": "primary", "fs": None, "start_mib": 62, "end_mib": 64, "flag": "bios_grub", "label": None},
    {"name": "boot", "fs": "ext4", "start_mib": 64, "end_mib": 320, "flag": None, "label": "ZPOD_BOOT"},
    {"name": "root", "fs": "ext4", "start_mib": 320, "end_mib": None, "flag": None, "label": "ZPOD_ROOT"},
]


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = raw.get(name) or {}
    if not isinstance(sec, dict):
        raise ConfigError(f"build config section '{name}' must be a mapping")
    return sec


def _str_list(value: Any, default: List[str], *, key: str) -> List[str]:
    if value is None:
        return list(default)
    if not isinstance(value, list):
        raise ConfigError(f"build config key '{key}' must be a list")
    return [str(v) for v in value]


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any]

    # paths

    @property
    def cache_dir(self) -> str:
        return str(_section(self.raw, "paths").get("cache_dir") or "/dev/shm")

    @property
    def work_dir(self) -> str:
        return str(_section(self.raw, "paths").get("work_dir") or "/dev/shm/cache/build_zpod")

    @property
    def output_dir(self) -> str:
        return str(_section(self.raw, "paths").get("output_dir") or "/dev/shm/cache/dist")

    @property
    def installer_dir(self) -> str:
        return str(_section(self.raw, "paths").get("installer_dir") or "scripts/install")

    @property
    def alpine_work_dir(self) -> str:
        return str(_section(self.raw, "paths").get("alpine_work_dir") or "/dev/shm/alpine-rootfs")

    @property
    def alpine_output(self) -> str:
        return str(_section(self.raw, "paths").get("alpine_output") or "/dev/shm/alpine-part-rootfs.tar.gz")

    # kernel

    @property
    def kernel_url(self) -> str:
        return str(_section(self.raw, "kernel").get("url") or DEFAULT_KERNEL_URL)

    @property
    def abi(self) -> str:
        abi = str(_section(self.raw, "kernel").get("abi") or DEFAULT_ABI)
        if abi not in ABIS:
            raise ConfigError(f"kernel.abi must be one of {', '.join(ABIS)}, got {abi!r}")
        return abi

    # container runtime

    @property
    def runtime_url(self) -> str:
        return str(_section(self.raw, "runtime").get("url") or DEFAULT_RUNTIME_URL)

    @property
    def runtime_compress(self) -> bool:
        return bool(_section(self.raw, "runtime").get("compress", True))

    @property
    def runtime_strip(self) -> List[str]:
        return _str_list(_section(self.raw, "runtime").get("strip"), DEFAULT_RUNTIME_STRIP, key="runtime.strip")

    @property
    def runtime_upx(self) -> List[str]:
        return _str_list(_section(self.raw, "runtime").get("upx"), DEFAULT_RUNTIME_UPX, key="runtime.upx")

    @property
    def runtime_remove(self) -> List[str]:
        return _str_list(_section(self.raw, "runtime").get("remove"), DEFAULT_RUNTIME_REMOVE, key="runtime.remove")

    # alpine

    @property
    def alpine_initrd_rootfs_url(self) -> str:
        return str(_section(self.raw, "alpine").get("initrd_rootfs_url") or DEFAULT_ALPINE_ROOTFS_URL)

    @property
    def alpine_releases_url(self) -> str:
        return str(_section(self.raw, "alpine").get("releases_url") or DEFAULT_ALPINE_RELEASES_URL).rstrip("/")

    @property
    def alpine_packages(self) -> List[str]:
        return _str_list(_section(self.raw, "alpine").get("packages"), DEFAULT_ALPINE_PACKAGES, key="alpine.packages")

    @property
    def alpine_services(self) -> List[str]:
        return _str_list(_section(self.raw, "alpine").get("services"), DEFAULT_ALPINE_SERVICES, key="alpine.services")

    @property
    def alpine_nameserver(self) -> str:
        return str(_section(self.raw, "alpine").get("nameserver") or "1.1.1.1")

    @property
    def alpine_version_file(self) -> str:
        return str(_section(self.raw, "alpine").get("version_file") or "/dev/shm/alpine_version")

    # disk image

    @property
    def disk_image_size_mib(self) -> int:
        return int(_section(self.raw, "disk").get("image_size_mib") or 356)

    @property
    def disk_partitions(self) -> List[Dict[str, Any]]:
        parts = _section(self.raw, "disk").get("partitions")
        if parts is None:
            return [dict(p) for p in DEFAULT_PARTITIONS]
        if not isinstance(parts, list) or not all(isinstance(p, dict) for p in parts):
            raise ConfigError("disk.partitions must be a list of mappings")
        return [dict(p) for p in parts]

    @property
    def grub_bios_modules(self) -> str:
        return str(_section(self.raw, "disk").get("grub_bios_modules") or "ext2 iso9660 xzio")

    # iso

    @property
    def iso_volume_id(self) -> str:
        return str(_section(self.raw, "iso").get("volume_id") or "ZPOD_INSTALL")

    @property
    def iso_timeout(self) -> int:
        return int(_section(self.raw, "iso").get("timeout", 3))

    @property
    def iso_menu_title(self) -> str:
        return str(_section(self.raw, "iso").get("menu_title") or "Install ZPod OS")

    @property
    def iso_kernel_cmdline(self) -> str:
        return str(_section(self.raw, "iso").get("kernel_cmdline") or "net.ifnames=0 biosdevname=0 quiet")

    # outputs

    @property
    def name_prefix(self) -> str:
        return str(_section(self.raw, "outputs").get("name_prefix") or "zpod")

    # optimize / initrd

    @property
    def optimize(self) -> Dict[str, Any]:
        return _section(self.raw, "optimize")

    @property
    def dropbear_host_key(self) -> Optional[str]:
        v = _section(self.raw, "initrd").get("dropbear_host_key")
        return str(v).strip() if v else None

    # bootstrap

    @property
    def bootstrap_packages(self) -> List[str]:
        return _str_list(
            _section(self.raw, "bootstrap").get("packages"), DEFAULT_BOOTSTRAP_PACKAGES, key="bootstrap.packages"
        )

    @property
    def keyring_url(self) -> str:
        return str(_section(self.raw, "bootstrap").get("keyring_url") or DEFAULT_KEYRING_URL)

    # tools

    @property
    def required_tools(self) -> List[str]:
        return _str_list(_section(self.raw, "tools").get("required"), DEFAULT_REQUIRED_TOOLS, key="tools.required")


def load_build_config(path: Optional[str] = None) -> BuildConfig:
    """Load the YAML build config.

    With no explicit path, ``build_config.yaml`` in the working directory is
    used when present; otherwise every setting takes its built-in default.
    """

    if path is None:
        if not Path(DEFAULT_CONFIG_PATH).exists():
            return BuildConfig(raw={})
        path = DEFAULT_CONFIG_PATH

    p = Path(path)
    if not p.exists():
        raise ConfigError(f"build config not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("build config must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return BuildConfig(raw=raw)
