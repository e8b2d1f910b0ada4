"""
Tests for zpod_builder.lib.bootloader.
"""

import pytest

from zpod_builder.errors import BootloaderError
from zpod_builder.lib import bootloader

EXPECTED_GRUB_CFG = """\
set timeout=3
set default=0

menuentry "Install ZPod OS" {
    echo "Loading kernel..."
    linux /boot/zpod-vmlinuz net.ifnames=0 biosdevname=0 quiet
    initrd /boot/zpod-initrd
}
"""


class TestIsoGrubCfg:
    def test_default_menu(self):
        assert bootloader.render_iso_grub_cfg() == EXPECTED_GRUB_CFG

    def test_written_under_boot_grub(self, tmp_path):
        path = bootloader.write_iso_grub_cfg(tmp_path, EXPECTED_GRUB_CFG)
        assert path == tmp_path / "boot/grub/grub.cfg"
        assert path.read_text() == EXPECTED_GRUB_CFG


class TestGrubInstall:
    """Tests for the dual EFI + BIOS install."""

    def test_efi_args(self, tmp_path, fake_run):
        bootloader.install_grub_efi(mount_dir=tmp_path)
        assert fake_run.calls == [
            [
                "grub-install",
                "--target=x86_64-efi",
                f"--efi-directory={tmp_path / 'boot/efi'}",
                f"--boot-directory={tmp_path / 'boot'}",
                "--removable",
                "--no-floppy",
            ]
        ]

    def test_bios_args(self, tmp_path, fake_run):
        bootloader.install_grub_bios(mount_dir=tmp_path, disk="/dev/loop7")
        assert fake_run.calls == [
            [
                "grub-install",
                "--target=i386-pc",
                "--modules=ext2 iso9660 xzio",
                f"--boot-directory={tmp_path / 'boot'}",
                "--no-floppy",
                "/dev/loop7",
            ]
        ]

    def test_efi_failure(self, tmp_path, fake_run):
        fake_run.on("grub-install", "--target=x86_64-efi", returncode=1)
        with pytest.raises(BootloaderError, match="GRUB EFI install failed!"):
            bootloader.install_grub_efi(mount_dir=tmp_path)

    def test_bios_failure(self, tmp_path, fake_run):
        fake_run.on("grub-install", "--target=i386-pc", returncode=1)
        with pytest.raises(BootloaderError, match="GRUB BIOS install failed!"):
            bootloader.install_grub_bios(mount_dir=tmp_path, disk="/dev/loop7")


class TestRescueIso:
    def test_mkrescue_args(self, tmp_path, fake_run):
        bootloader.make_rescue_iso(iso_root=tmp_path / "iso", output=tmp_path / "zpodv3.iso")
        assert fake_run.calls == [
            [
                "grub-mkrescue",
                "--compress=xz",
                "-o",
                str(tmp_path / "zpodv3.iso"),
                str(tmp_path / "iso"),
                "--",
                "-volid",
                "ZPOD_INSTALL",
            ]
        ]
