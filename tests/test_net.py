"""
Tests for zpod_builder.lib.net (cached downloads).
"""

import pytest

from zpod_builder.errors import DownloadError
from zpod_builder.lib import net


class TestFetch:
    """Tests for fetch()."""

    def test_cache_hit_never_downloads(self, tmp_path, fake_run):
        dest = tmp_path / "kernelv3.deb"
        dest.write_bytes(b"cached")

        assert net.fetch("https://example.invalid/k.deb", dest) is False
        assert fake_run.calls == []
        assert dest.read_bytes() == b"cached"

    def test_cache_miss_downloads_then_renames(self, tmp_path, fake_run):
        dest = tmp_path / "cache" / "podman.tar.gz"

        assert net.fetch("https://example.invalid/podman.tar.gz", dest) is True

        (call,) = fake_run.find("curl")
        assert call[:3] == ["curl", "-L", "--fail"]
        assert call[-1] == "https://example.invalid/podman.tar.gz"
        assert call[call.index("-o") + 1] == str(dest) + ".part"
        assert dest.read_bytes() == b"payload"
        assert not (tmp_path / "cache" / "podman.tar.gz.part").exists()

    def test_second_fetch_is_a_cache_hit(self, tmp_path, fake_run):
        dest = tmp_path / "alpine.tar.gz"
        net.fetch("https://example.invalid/a.tar.gz", dest)
        net.fetch("https://example.invalid/a.tar.gz", dest)

        assert len(fake_run.find("curl")) == 1

    def test_failed_download_leaves_no_cache_file(self, tmp_path, fake_run):
        fake_run.on("curl", returncode=22)
        dest = tmp_path / "k.deb"

        with pytest.raises(DownloadError):
            net.fetch("https://example.invalid/missing.deb", dest)

        assert not dest.exists()
        assert not (tmp_path / "k.deb.part").exists()

    def test_dry_run_runs_nothing(self, tmp_path, fake_run):
        assert net.fetch("https://example.invalid/k.deb", tmp_path / "k.deb", dry_run=True) is True
        assert fake_run.calls == []


class TestFetchText:
    """Tests for fetch_text()."""

    def test_returns_stdout(self, fake_run):
        fake_run.on("curl", stdout="- file: alpine-minirootfs-3.22.0-x86_64.tar.gz\n")
        assert "alpine-minirootfs" in net.fetch_text("https://example.invalid/latest-releases.yaml")

    def test_failure_raises_download_error(self, fake_run):
        fake_run.on("curl", returncode=6)
        with pytest.raises(DownloadError):
            net.fetch_text("https://example.invalid/latest-releases.yaml")
