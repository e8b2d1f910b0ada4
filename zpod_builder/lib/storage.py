from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ConfigError
from .block import partition_device
from .command import run_cmd

logger = logging.getLogger(__name__)

MKFS_BY_FS = {
    "fat32": ["mkfs.vfat", "-F", "32"],
    "ext4": ["mkfs.ext4", "-F"],
}


@dataclass(frozen=True)
class PartitionSpec:
    name: str
    start_mib: int
    end_mib: Optional[int]  # None = rest of the disk
    fs: Optional[str] = None  # fat32|ext4|None (left unformatted)
    flag: Optional[str] = None  # parted flag, e.g. esp|bios_grub
    label: Optional[str] = None

    @property
    def end(self) -> str:
        return "100%" if self.end_mib is None else f"{self.end_mib}MiB"


@dataclass(frozen=True)
class PartitionPlan:
    """Ordered GPT layout of the installer disk image.

    Default (numbered from 1):
    1. ESP (FAT32, esp flag)
    2. BIOS boot (bios_grub flag, unformatted)
    3. /boot (ext4)
    4. / (ext4, rest of the image)

    The EFI partition must not shrink much below ~61MiB and the BIOS boot
    partition must stay at 2MiB, otherwise some firmware refuses to boot.
    """

    partitions: Sequence[PartitionSpec]
    image_size_mib: int = 356

    @classmethod
    def from_config(cls, parts: List[Dict[str, Any]], *, image_size_mib: int) -> "PartitionPlan":
        specs = []
        for p in parts:
            try:
                specs.append(
                    PartitionSpec(
                        name=str(p["name"]),
                        start_mib=int(p["start_mib"]),
                        end_mib=None if p.get("end_mib") is None else int(p["end_mib"]),
                        fs=p.get("fs"),
                        flag=p.get("flag"),
                        label=p.get("label"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"invalid disk partition entry {p!r}: {e}") from e
        plan = cls(partitions=specs, image_size_mib=image_size_mib)
        plan.validate()
        return plan

    def validate(self) -> None:
        if not self.partitions:
            raise ConfigError("disk layout has no partitions")
        prev_end = None
        for i, p in enumerate(self.partitions, start=1):
            if p.fs is not None and p.fs not in MKFS_BY_FS:
                raise ConfigError(f"partition {i}: unsupported filesystem {p.fs!r}")
            if prev_end is not None and p.start_mib != prev_end:
                raise ConfigError(f"partition {i} must start at {prev_end}MiB, got {p.start_mib}MiB")
            if p.end_mib is None:
                if i != len(self.partitions):
                    raise ConfigError(f"partition {i}: only the last partition may extend to the end")
                if p.start_mib >= self.image_size_mib:
                    raise ConfigError(f"partition {i} starts beyond the {self.image_size_mib}MiB image")
            elif p.end_mib <= p.start_mib:
                raise ConfigError(f"partition {i}: end must be after start")
            elif p.end_mib > self.image_size_mib:
                raise ConfigError(f"partition {i} ends beyond the {self.image_size_mib}MiB image")
            prev_end = p.end_mib

    def parted_args(self) -> List[str]:
        argv = ["mklabel", "gpt"]
        for i, p in enumerate(self.partitions, start=1):
            argv.append("mkpart")
            argv.append(p.name)
            if p.fs:
                argv.append(p.fs)
            argv += [f"{p.start_mib}MiB", p.end]
            if p.flag:
                argv += ["set", str(i), p.flag, "on"]
        return argv

    def index_of(self, *, fs: Optional[str] = None, flag: Optional[str] = None) -> int:
        """1-based number of the first partition matching fs/flag."""

        for i, p in enumerate(self.partitions, start=1):
            if fs is not None and p.fs != fs:
                continue
            if flag is not None and p.flag != flag:
                continue
            return i
        raise ConfigError(f"disk layout has no partition with fs={fs} flag={flag}")

    @property
    def esp_index(self) -> int:
        return self.index_of(flag="esp")

    @property
    def boot_index(self) -> int:
        # first ext4 partition holds /boot (GRUB's boot directory)
        return self.index_of(fs="ext4")

    @property
    def ext4_indexes(self) -> List[int]:
        return [i for i, p in enumerate(self.partitions, start=1) if p.fs == "ext4"]


def create_image(plan: PartitionPlan, image: str | Path, *, dry_run: bool = False) -> None:
    """Allocate the image file and write the GPT layout into it."""

    img = Path(image)
    if not dry_run:
        img.parent.mkdir(parents=True, exist_ok=True)
        if img.exists():
            img.unlink()
    run_cmd(["fallocate", "-l", f"{plan.image_size_mib}M", str(img)], dry_run=dry_run)
    run_cmd(["parted", "-s", str(img), *plan.parted_args()], dry_run=dry_run)
    logger.info("Partitioned %s (%d partitions, %dMiB)", str(img), len(plan.partitions), plan.image_size_mib)


def format_partitions(plan: PartitionPlan, loop_dev: str, *, dry_run: bool = False) -> List[str]:
    """Create filesystems on the loop-attached image; returns the formatted devices."""

    formatted = []
    for i, p in enumerate(plan.partitions, start=1):
        if not p.fs:
            continue
        dev = partition_device(loop_dev, i)
        argv = list(MKFS_BY_FS[p.fs])
        if p.label:
            argv += ["-n" if p.fs == "fat32" else "-L", p.label]
        run_cmd([*argv, dev], dry_run=dry_run)
        formatted.append(dev)
    return formatted


def zerofree_partitions(plan: PartitionPlan, loop_dev: str, *, dry_run: bool = False) -> None:
    """Zero unused ext4 blocks so the image compresses well (must be unmounted)."""

    for i in plan.ext4_indexes:
        run_cmd(["zerofree", "-v", partition_device(loop_dev, i)], dry_run=dry_run)
