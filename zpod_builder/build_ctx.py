from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .build_config import BuildConfig

TARGETS = ("all", "gz", "iso")

# Directories created inside the initrd before anything is extracted into it.
INITRD_DIRS = ["bin", "etc", "lib", "os/bin", "installer", "proc", "sys", "dev", "tmp", "rom"]


@dataclass(frozen=True)
class BuildCtx:
    cfg: BuildConfig
    abi: str
    kernel_url: str
    target: str = "all"
    dry_run: bool = False

    @property
    def wants_tarball(self) -> bool:
        return self.target in {"all", "gz"}

    @property
    def wants_iso(self) -> bool:
        return self.target in {"all", "iso"}

    # download cache

    @property
    def cache_dir(self) -> Path:
        return Path(self.cfg.cache_dir)

    @property
    def kernel_deb_path(self) -> Path:
        return self.cache_dir / f"kernel{self.abi}.deb"

    @property
    def runtime_tarball_path(self) -> Path:
        return self.cache_dir / "podman-linux-amd64.tar.gz"

    @property
    def runtime_cache_dir(self) -> Path:
        return self.cache_dir / "podman_cache"

    @property
    def alpine_rootfs_path(self) -> Path:
        return self.cache_dir / "alpine-part-rootfs.tar.gz"

    @property
    def disk_image_cache_path(self) -> Path:
        return self.cache_dir / "disk.img.xz"

    @property
    def raw_disk_image_path(self) -> Path:
        return self.cache_dir / "disk.img"

    # work tree

    @property
    def work_dir(self) -> Path:
        return Path(self.cfg.work_dir)

    @property
    def initrd_dir(self) -> Path:
        return self.work_dir / "initrd"

    @property
    def iso_dir(self) -> Path:
        return self.work_dir / "iso"

    @property
    def kernel_extract_dir(self) -> Path:
        return self.work_dir / "kernel_extracted"

    @property
    def image_mount_dir(self) -> Path:
        return self.work_dir / "img_mount"

    @property
    def vmlinuz_path(self) -> Path:
        return self.work_dir / "zpod-vmlinuz"

    @property
    def initrd_path(self) -> Path:
        return self.work_dir / "zpod-initrd"

    @property
    def disk_image_path(self) -> Path:
        return self.work_dir / "disk.img.xz"

    @property
    def installer_dir(self) -> Path:
        return Path(self.cfg.installer_dir)

    # outputs

    @property
    def output_dir(self) -> Path:
        return Path(self.cfg.output_dir)

    @property
    def artifact_name(self) -> str:
        return f"{self.cfg.name_prefix}{self.abi}"

    @property
    def tarball_path(self) -> Path:
        return self.output_dir / f"{self.artifact_name}.tar.gz"

    @property
    def iso_path(self) -> Path:
        return self.output_dir / f"{self.artifact_name}.iso"
