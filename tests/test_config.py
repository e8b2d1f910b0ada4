"""
Tests for zpod_builder.build_config and the derived BuildCtx paths.
"""

import pytest

from zpod_builder.build_config import (
    DEFAULT_KERNEL_URL,
    DEFAULT_REQUIRED_TOOLS,
    BuildConfig,
    load_build_config,
)
from zpod_builder.build_ctx import BuildCtx
from zpod_builder.errors import ConfigError


class TestLoadBuildConfig:
    """Tests for load_build_config()."""

    def test_no_path_and_no_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = load_build_config(None)
        assert cfg.raw == {}
        assert cfg.kernel_url == DEFAULT_KERNEL_URL

    def test_no_path_uses_cwd_file(self, tmp_path, monkeypatch):
        (tmp_path / "build_config.yaml").write_text("outputs:\n  name_prefix: zp\n")
        monkeypatch.chdir(tmp_path)
        assert load_build_config(None).name_prefix == "zp"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_build_config(str(tmp_path / "nope.yaml"))

    def test_non_yaml_suffix(self, tmp_path):
        p = tmp_path / "cfg.json"
        p.write_text("{}")
        with pytest.raises(ConfigError, match="must be YAML"):
            load_build_config(str(p))

    def test_invalid_yaml(self, tmp_path):
        p = tmp_path / "cfg.yaml"
        p.write_text("paths: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_build_config(str(p))

    def test_document_must_be_mapping(self, tmp_path):
        p = tmp_path / "cfg.yaml"
        p.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_build_config(str(p))


class TestBuildConfig:
    """Tests for BuildConfig accessors."""

    def test_defaults(self):
        cfg = BuildConfig(raw={})
        assert cfg.abi == "v3"
        assert cfg.disk_image_size_mib == 356
        assert cfg.iso_volume_id == "ZPOD_INSTALL"
        assert cfg.iso_timeout == 3
        assert cfg.alpine_services == ["cgroups"]
        assert cfg.required_tools == DEFAULT_REQUIRED_TOOLS
        assert cfg.dropbear_host_key is None
        assert [p["name"] for p in cfg.disk_partitions] == ["ESP", "primary", "boot", "root"]

    def test_invalid_abi(self):
        with pytest.raises(ConfigError, match="kernel.abi"):
            BuildConfig(raw={"kernel": {"abi": "v9"}}).abi

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError, match="section 'paths'"):
            BuildConfig(raw={"paths": ["x"]}).work_dir

    def test_list_keys_validated(self):
        with pytest.raises(ConfigError, match="alpine.packages"):
            BuildConfig(raw={"alpine": {"packages": "dropbear"}}).alpine_packages

    def test_sample_config_loads(self):
        from pathlib import Path

        sample = Path(__file__).resolve().parent.parent / "build_config.yaml"
        cfg = load_build_config(str(sample))
        assert cfg.abi == "v3"
        assert len(cfg.disk_partitions) == 4
        assert cfg.dropbear_host_key


class TestBuildCtx:
    """Tests for derived paths and target flags."""

    def test_paths(self, make_ctx, tmp_path):
        ctx = make_ctx()
        assert ctx.kernel_deb_path == tmp_path / "cache/kernelv3.deb"
        assert ctx.initrd_dir == tmp_path / "work/initrd"
        assert ctx.disk_image_path == tmp_path / "work/disk.img.xz"
        assert ctx.tarball_path == tmp_path / "dist/zpodv3.tar.gz"
        assert ctx.iso_path == tmp_path / "dist/zpodv3.iso"

    @pytest.mark.parametrize(
        "target,tarball,iso",
        [("all", True, True), ("gz", True, False), ("iso", False, True)],
    )
    def test_target_flags(self, make_ctx, target, tarball, iso):
        ctx = make_ctx(target=target)
        assert ctx.wants_tarball is tarball
        assert ctx.wants_iso is iso

    def test_ctx_is_frozen(self, make_ctx):
        ctx = make_ctx()
        with pytest.raises(Exception):
            ctx.abi = "v1"
