"""
Tests for the Alpine rootfs customization and the build-host bootstrap.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from zpod_builder import alpine_rootfs, bootstrap
from zpod_builder.errors import DownloadError, HostError
from zpod_builder.lib.pkg import apk_script

RELEASES_YAML = """\
---
-
  title: "Mini root filesystem"
  flavor: alpine-minirootfs
  file: alpine-minirootfs-3.22.2-x86_64.tar.gz
  version: 3.22.2
-
  title: "Netboot"
  file: alpine-netboot-3.22.2-x86_64.tar.gz
"""


class TestPickMinirootfs:
    def test_first_minirootfs_entry(self):
        doc = yaml.safe_load(RELEASES_YAML)
        assert alpine_rootfs.pick_minirootfs(doc) == "alpine-minirootfs-3.22.2-x86_64.tar.gz"

    def test_no_entry(self):
        with pytest.raises(DownloadError, match="Could not parse"):
            alpine_rootfs.pick_minirootfs([{"file": "alpine-netboot.tar.gz"}])

    def test_not_a_list(self):
        with pytest.raises(DownloadError):
            alpine_rootfs.pick_minirootfs({"file": "alpine-minirootfs.tar.gz"})


class TestApkScript:
    def test_script(self):
        script = apk_script(["dropbear", "iptables"], services=["cgroups"])
        parts = [p.strip(" \\\n") for p in script.split("&&")]
        assert parts == [
            "date",
            "ln -sf /etc/ssl /usr/lib/ssl",
            "apk --no-check-certificate update",
            "apk --no-check-certificate upgrade",
            "apk add -v --no-check-certificate dropbear iptables",
            "rc-update add cgroups",
            "rm -rf /var/cache/apk/*",
        ]


class TestRunAlpineBuild:
    """Tests for run_alpine_build()."""

    def test_requires_root(self, build_cfg):
        with patch("zpod_builder.alpine_rootfs.os.geteuid", return_value=1000):
            with pytest.raises(HostError, match="root"):
                alpine_rootfs.run_alpine_build(build_cfg)

    def test_full_run(self, build_cfg, fake_run, all_tools_present, tmp_path):
        fake_run.on("curl", "-sL", stdout=RELEASES_YAML)
        rootfs = Path(build_cfg.alpine_work_dir) / "rootfs"
        out = tmp_path / "custom.tar.gz"

        with patch("zpod_builder.alpine_rootfs.os.geteuid", return_value=0):
            with patch("zpod_builder.alpine_rootfs.os.chmod") as chmod:
                result = alpine_rootfs.run_alpine_build(build_cfg, output=str(out))

        assert result == out
        assert Path(build_cfg.alpine_version_file).read_text() == "alpine-minirootfs-3.22.2-x86_64.tar.gz\n"
        (download,) = fake_run.find("curl", "-L")
        assert download[-1].endswith("/alpine-minirootfs-3.22.2-x86_64.tar.gz")

        i_chroot = fake_run.index("chroot")
        assert fake_run.index("mount", "--bind", "/proc") < i_chroot < fake_run.index("umount", str(rootfs / "dev"))
        assert fake_run.index("umount", str(rootfs / "proc")) < fake_run.index("tar", "-czf")
        assert fake_run.find("tar", "-czf") == [["tar", "-czf", str(out), "-C", str(rootfs), "."]]
        chmod.assert_called_once_with(out, 0o666)
        assert not Path(build_cfg.alpine_work_dir).exists()

    def test_work_dir_removed_on_failure(self, build_cfg, fake_run, all_tools_present):
        fake_run.on("curl", "-sL", stdout=RELEASES_YAML)
        fake_run.on("chroot", returncode=1)

        with patch("zpod_builder.alpine_rootfs.os.geteuid", return_value=0):
            with pytest.raises(RuntimeError):
                alpine_rootfs.run_alpine_build(build_cfg)

        assert len(fake_run.find("umount")) == 3
        assert fake_run.find("tar", "-czf") == []
        assert not Path(build_cfg.alpine_work_dir).exists()


class TestBootstrap:
    """Tests for run_bootstrap()."""

    def test_refuses_non_debian(self, build_cfg, tmp_path):
        with patch.object(bootstrap, "DEBIAN_VERSION_FILE", str(tmp_path / "debian_version")):
            with pytest.raises(HostError, match="debian"):
                bootstrap.run_bootstrap(build_cfg)

    def test_installs_packages_and_keyring(self, build_cfg, fake_run, tmp_path):
        marker = tmp_path / "debian_version"
        marker.write_text("13.1\n")

        with patch.object(bootstrap, "DEBIAN_VERSION_FILE", str(marker)):
            bootstrap.run_bootstrap(build_cfg)

        assert fake_run.calls[0] == ["apt-get", "update"]
        assert fake_run.calls[1][:3] == ["apt-get", "install", "-y"]
        assert "debootstrap" in fake_run.calls[1]
        deb = Path(build_cfg.cache_dir) / "debian-archive-keyring_2025.1_all.deb"
        assert fake_run.calls[-1] == ["dpkg", "-i", str(deb)]
        assert deb.exists()
