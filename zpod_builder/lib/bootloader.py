from __future__ import annotations

import logging
from pathlib import Path

from ..errors import BootloaderError, CommandError
from .command import run_cmd
from .files import write_atomic

logger = logging.getLogger(__name__)


def install_grub_efi(*, mount_dir: str | Path, dry_run: bool = False) -> None:
    """Install GRUB for x86_64 EFI as a removable-media bootloader.

    Assumes the boot partition is mounted at mount_dir and the ESP at
    mount_dir/boot/efi.
    """

    mnt = Path(mount_dir)
    try:
        run_cmd(
            [
                "grub-install",
                "--target=x86_64-efi",
                f"--efi-directory={mnt / 'boot/efi'}",
                f"--boot-directory={mnt / 'boot'}",
                "--removable",
                "--no-floppy",
            ],
            dry_run=dry_run,
        )
    except CommandError as e:
        raise BootloaderError("GRUB EFI install failed!") from e
    logger.info("GRUB EFI installed")


def install_grub_bios(
    *,
    mount_dir: str | Path,
    disk: str,
    modules: str = "ext2 iso9660 xzio",
    dry_run: bool = False,
) -> None:
    """Install GRUB for legacy BIOS into the disk's MBR + bios_grub partition."""

    mnt = Path(mount_dir)
    try:
        run_cmd(
            [
                "grub-install",
                "--target=i386-pc",
                f"--modules={modules}",
                f"--boot-directory={mnt / 'boot'}",
                "--no-floppy",
                disk,
            ],
            dry_run=dry_run,
        )
    except CommandError as e:
        raise BootloaderError("GRUB BIOS install failed!") from e
    logger.info("GRUB BIOS installed on %s", disk)


def render_iso_grub_cfg(
    *,
    title: str = "Install ZPod OS",
    kernel: str = "/boot/zpod-vmlinuz",
    initrd: str = "/boot/zpod-initrd",
    cmdline: str = "net.ifnames=0 biosdevname=0 quiet",
    timeout: int = 3,
) -> str:
    return (
        f"set timeout={timeout}\n"
        "set default=0\n"
        "\n"
        f'menuentry "{title}" {{\n'
        '    echo "Loading kernel..."\n'
        f"    linux {kernel} {cmdline}\n"
        f"    initrd {initrd}\n"
        "}\n"
    )


def write_iso_grub_cfg(iso_root: str | Path, contents: str, *, dry_run: bool = False) -> Path:
    cfg = Path(iso_root) / "boot/grub/grub.cfg"
    write_atomic(cfg, contents, dry_run=dry_run)
    logger.info("Wrote ISO grub config: %s", str(cfg))
    return cfg


def make_rescue_iso(
    *,
    iso_root: str | Path,
    output: str | Path,
    volume_id: str = "ZPOD_INSTALL",
    dry_run: bool = False,
) -> None:
    """Build a BIOS+EFI bootable GRUB ISO (grub-mkrescue wraps xorriso)."""

    run_cmd(
        [
            "grub-mkrescue",
            "--compress=xz",
            "-o",
            str(output),
            str(iso_root),
            "--",
            "-volid",
            volume_id,
        ],
        dry_run=dry_run,
    )
