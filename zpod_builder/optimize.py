"""System tuning and hardening of a target root filesystem.

Every file is either fully rendered from :class:`OptimizeSettings` or patched
with delete-then-append, and all writes are atomic. Applying the same
settings twice leaves every file byte-identical to a single application.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigError
from .lib.files import patch_lines, replace_in_file, write_atomic

logger = logging.getLogger(__name__)

DEFAULT_SYSCTL: Dict[str, str] = {
    "net.core.netdev_budget": "599",
    "net.core.somaxconn": "16384",
    "net.core.netdev_max_backlog": "32768",
    "net.ipv4.tcp_max_syn_backlog": "32768",
    "net.ipv4.tcp_max_orphans": "32768",
    "net.ipv4.ip_local_port_range": "10000 64000",
    "net.ipv4.ip_forward": "1",
    "net.ipv4.ip_default_ttl": "128",
    "net.ipv4.tcp_timestamps": "1",
    "net.ipv4.tcp_syncookies": "0",
    "net.ipv4.tcp_window_scaling": "1",
    "net.ipv4.tcp_sack": "1",
    "net.ipv4.tcp_mtu_probing": "1",
    # https://blog.cloudflare.com/optimizing-tcp-for-high-throughput-and-low-latency/
    "net.ipv4.tcp_rmem": "8192 262144 33554432",
    "net.ipv4.tcp_wmem": "4096 16384 16777216",
    "net.ipv4.tcp_adv_win_scale": "-2",
    "net.ipv4.tcp_collapse_max_bytes": "6291456",
    "net.ipv4.tcp_notsent_lowat": "131072",
    "net.ipv4.tcp_moderate_rcvbuf": "1",
    "net.ipv4.tcp_shrink_window": "1",
    "net.ipv4.tcp_tw_reuse": "1",
    "net.ipv4.tcp_fin_timeout": "13",
    "net.ipv4.tcp_max_tw_buckets": "65535",
    "net.ipv4.tcp_synack_retries": "2",
    "net.ipv4.tcp_keepalive_time": "180",
    "net.ipv4.icmp_echo_ignore_broadcasts": "1",
    "net.ipv4.icmp_ignore_bogus_error_responses": "1",
    "net.ipv4.tcp_congestion_control": "bbr",
    "net.core.default_qdisc": "fq",
    "net.nf_conntrack_max": "1000000",
    "vm.swappiness": "10",
    "vm.dirty_ratio": "10",
    "vm.dirty_background_ratio": "2",
    "vm.vfs_cache_pressure": "68",
    "fs.file-max": "2147483647",
    "fs.inotify.max_user_instances": "8192",
}

# (domain, type, item, value)
DEFAULT_LIMITS: List[Tuple[str, str, str, str]] = [
    ("*", "soft", "nofile", "65536"),
    ("*", "hard", "nofile", "131072"),
    ("*", "soft", "nproc", "65536"),
    ("*", "hard", "nproc", "131072"),
    ("root", "soft", "nofile", "131072"),
    ("root", "hard", "nofile", "262144"),
    ("root", "soft", "nproc", "65535"),
    ("root", "hard", "nproc", "131072"),
]

DEFAULT_NTP_SERVERS = [
    "time.apple.com",
    "time.cloudflare.com",
    "ntp.aliyun.com",
    "0.pool.ntp.org",
    "cn.ntp.org.cn",
]

# Shell login audit: every interactive command goes to syslog facility local6.
PROFILE_AUDIT_LINES = [
    "LOGIN_IP=$(who am i | awk '{print $NF}')",
    'export HISTTIMEFORMAT="%F %T `whoami` "',
    r"""export PROMPT_COMMAND='RETRN_VAL=$?;logger -p local6.debug "[$(whoami)@$SSH_USER$LOGIN_IP: `pwd`] [$$]: $(history 1 | sed "s/^[ ]*[0-9]\+[ ]*//" ) [$RETRN_VAL]"'""",
]
PROFILE_DROP = [r"LOGIN_IP", r"PROMPT_COMMAND", r"HISTTIMEFORMAT", r"^alias docker="]
DOCKER_ALIAS = "alias docker=podman"

SYSLOG_AUDIT_LINE = "local6.* /var/log/commands.log"
SYSLOG_DROP = [r"^local6\.\*"]

SHADOW_ROOT_UNSET = r"root:\*::0"


@dataclass(frozen=True)
class OptimizeSettings:
    hostname: str = "zpod_host"
    root_password_hash: Optional[str] = None
    ssh_authorized_keys: Sequence[str] = ()
    ssh_key_marker: str = "zpod_priv"
    ntp_servers: Sequence[str] = tuple(DEFAULT_NTP_SERVERS)
    sysctl: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_SYSCTL))
    limits: Sequence[Tuple[str, str, str, str]] = tuple(DEFAULT_LIMITS)
    drop_ttys: Sequence[str] = ("tty3", "tty4", "tty5", "tty6")
    docker_alias: bool = True
    command_audit: bool = True

    @classmethod
    def from_config(cls, raw: Dict[str, Any]) -> "OptimizeSettings":
        """Build settings from the ``optimize:`` config section.

        ``sysctl`` entries are merged over the defaults; a null value removes
        a default key. ``limits`` replaces the default table.
        """

        if not isinstance(raw, dict):
            raise ConfigError("optimize section must be a mapping")

        sysctl = dict(DEFAULT_SYSCTL)
        overrides = raw.get("sysctl") or {}
        if not isinstance(overrides, dict):
            raise ConfigError("optimize.sysctl must be a mapping")
        for k, v in overrides.items():
            if v is None:
                sysctl.pop(str(k), None)
            else:
                sysctl[str(k)] = str(v)

        limits: Sequence[Tuple[str, str, str, str]] = tuple(DEFAULT_LIMITS)
        if raw.get("limits") is not None:
            rows = []
            for row in raw["limits"]:
                if isinstance(row, str):
                    row = row.split()
                if not isinstance(row, (list, tuple)) or len(row) != 4:
                    raise ConfigError(f"optimize.limits entries need 4 fields, got {row!r}")
                rows.append(tuple(str(x) for x in row))
            limits = tuple(rows)

        keys = raw.get("ssh_authorized_keys") or []
        if not isinstance(keys, list):
            raise ConfigError("optimize.ssh_authorized_keys must be a list of strings")

        kwargs: Dict[str, Any] = {
            "sysctl": sysctl,
            "limits": limits,
            "ssh_authorized_keys": tuple(str(k).strip() for k in keys if str(k).strip()),
        }
        if raw.get("hostname"):
            kwargs["hostname"] = str(raw["hostname"]).strip()
        if raw.get("root_password_hash"):
            kwargs["root_password_hash"] = str(raw["root_password_hash"])
        if raw.get("ssh_key_marker"):
            kwargs["ssh_key_marker"] = str(raw["ssh_key_marker"])
        if raw.get("ntp_servers") is not None:
            kwargs["ntp_servers"] = tuple(str(s) for s in raw["ntp_servers"])
        if raw.get("drop_ttys") is not None:
            kwargs["drop_ttys"] = tuple(str(t) for t in raw["drop_ttys"])
        if "docker_alias" in raw:
            kwargs["docker_alias"] = bool(raw["docker_alias"])
        if "command_audit" in raw:
            kwargs["command_audit"] = bool(raw["command_audit"])
        return cls(**kwargs)


def render_sysctl(settings: OptimizeSettings) -> str:
    lines = ["# Kernel parameters"]
    lines += [f"{k} = {v}" for k, v in settings.sysctl.items()]
    return "\n".join(lines) + "\n"


def render_limits(settings: OptimizeSettings) -> str:
    return "".join(" ".join(row) + "\n" for row in settings.limits)


def render_ntp(settings: OptimizeSettings) -> str:
    return "".join(f"server {s}\n" for s in settings.ntp_servers)


def _profile_lines(settings: OptimizeSettings) -> List[str]:
    lines: List[str] = []
    if settings.docker_alias:
        lines.append(DOCKER_ALIAS)
    if settings.command_audit:
        lines += PROFILE_AUDIT_LINES
    return lines


def _write_authorized_keys(root: Path, settings: OptimizeSettings, *, dry_run: bool) -> Path:
    ssh_dir = root / "root/.ssh"
    keys_path = ssh_dir / "authorized_keys"
    drop = [re.escape(settings.ssh_key_marker)] if settings.ssh_key_marker else []
    drop += [r"^" + re.escape(k) + r"$" for k in settings.ssh_authorized_keys]

    if not dry_run:
        ssh_dir.mkdir(parents=True, exist_ok=True)
    patch_lines(keys_path, drop=drop, append=settings.ssh_authorized_keys, dry_run=dry_run)
    if not dry_run:
        os.chmod(ssh_dir, 0o700)
        os.chmod(keys_path, 0o600)
    return keys_path


def apply_optimizations(root_path: str | Path, settings: OptimizeSettings, *, dry_run: bool = False) -> List[Path]:
    """Tune and harden the root filesystem at root_path; returns touched files."""

    root = Path(root_path)
    if not root.is_dir():
        raise ConfigError(f"Invalid root path '{root_path}'.")

    touched: List[Path] = []

    shadow = root / "etc/shadow"
    if settings.root_password_hash:
        n = replace_in_file(shadow, SHADOW_ROOT_UNSET, f"root:{settings.root_password_hash}::0", dry_run=dry_run)
        if n:
            touched.append(shadow)
            logger.info("Set root password hash in %s", str(shadow))

    write_atomic(root / "etc/sysctl.conf", render_sysctl(settings), dry_run=dry_run)
    write_atomic(root / "etc/security/limits.conf", render_limits(settings), dry_run=dry_run)
    write_atomic(root / "etc/ntp.conf", render_ntp(settings), dry_run=dry_run)
    touched += [root / "etc/sysctl.conf", root / "etc/security/limits.conf", root / "etc/ntp.conf"]

    touched.append(_write_authorized_keys(root, settings, dry_run=dry_run))

    write_atomic(root / "etc/hostname", settings.hostname + "\n", dry_run=dry_run)
    touched.append(root / "etc/hostname")

    patch_lines(root / "etc/profile", drop=PROFILE_DROP, append=_profile_lines(settings), dry_run=dry_run)
    touched.append(root / "etc/profile")

    if settings.command_audit:
        patch_lines(root / "etc/syslog.conf", drop=SYSLOG_DROP, append=[SYSLOG_AUDIT_LINE], dry_run=dry_run)
        touched.append(root / "etc/syslog.conf")

    # keep only the first consoles
    if settings.drop_ttys and patch_lines(
        root / "etc/inittab",
        drop=[re.escape(t) for t in settings.drop_ttys],
        create=False,
        dry_run=dry_run,
    ):
        touched.append(root / "etc/inittab")

    logger.info("Optimized %s (%d files)", str(root), len(touched))
    return touched
