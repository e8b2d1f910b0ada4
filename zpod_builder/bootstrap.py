from __future__ import annotations

import logging
from pathlib import Path

from .build_config import BuildConfig
from .errors import HostError
from .lib.net import fetch
from .lib.pkg import apt_install, apt_update, dpkg_install

logger = logging.getLogger(__name__)

DEBIAN_VERSION_FILE = "/etc/debian_version"


def run_bootstrap(cfg: BuildConfig, *, dry_run: bool = False) -> None:
    """Prepare a Debian build host: base packages plus a current archive keyring."""

    if not Path(DEBIAN_VERSION_FILE).is_file():
        raise HostError("minideb can currently only be built on debian based distros, aborting...")

    apt_update(dry_run=dry_run)
    apt_install(cfg.bootstrap_packages, dry_run=dry_run)

    url = cfg.keyring_url
    deb = Path(cfg.cache_dir) / url.rsplit("/", 1)[-1]
    fetch(url, deb, dry_run=dry_run)
    dpkg_install(deb, dry_run=dry_run)
    logger.info("Build host bootstrapped (%d packages)", len(cfg.bootstrap_packages))
