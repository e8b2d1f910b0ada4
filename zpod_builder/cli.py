from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

from .alpine_rootfs import run_alpine_build
from .bootstrap import run_bootstrap
from .build import run_build
from .build_config import ABIS, load_build_config
from .build_ctx import BuildCtx
from .errors import ConfigError, ZpodError
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .optimize import OptimizeSettings, apply_optimizations

logger = logging.getLogger(__name__)


class ZpodArgumentParser(argparse.ArgumentParser):
    """argparse parser whose usage errors exit 1 like every other failure."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def cmd_build(args: argparse.Namespace) -> int:
    cfg = load_build_config(args.config)
    abi = args.abi or cfg.abi
    if abi not in ABIS:
        raise ConfigError(f"abi must be one of {', '.join(ABIS)}")

    ctx = BuildCtx(
        cfg=cfg,
        abi=abi,
        kernel_url=args.kernel or cfg.kernel_url,
        target=args.target,
        dry_run=bool(args.dry_run),
    )
    run_build(ctx, stop_after=args.stop_after)
    return 0


def cmd_alpine_rootfs(args: argparse.Namespace) -> int:
    cfg = load_build_config(args.config)
    out = run_alpine_build(cfg, output=args.output, dry_run=bool(args.dry_run))
    print(out)
    return 0


def cmd_optimize(args: argparse.Namespace) -> int:
    cfg = load_build_config(args.config)
    settings = OptimizeSettings.from_config(cfg.optimize)
    apply_optimizations(args.root, settings)
    return 0


def cmd_bootstrap(args: argparse.Namespace) -> int:
    cfg = load_build_config(args.config)
    run_bootstrap(cfg, dry_run=bool(args.dry_run))
    return 0


def _common(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--config", default=None, help="YAML build config (default: ./build_config.yaml if present)")
    sp.add_argument("--log", default=DEFAULT_LOG_PATH, help=f"Log file (default: {DEFAULT_LOG_PATH})")


def build_parser() -> argparse.ArgumentParser:
    p = ZpodArgumentParser(prog="zpod", description="ZPod OS image builder")
    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("build", help="Build the ZPod installer artifacts (tar.gz and/or ISO)")
    sp.add_argument("-k", "--kernel", default=None, help="Kernel .deb URL")
    sp.add_argument("-a", "--abi", default=None, choices=ABIS, help="x86-64 micro-architecture level (default: v3)")
    tgt = sp.add_mutually_exclusive_group()
    tgt.add_argument("--all", dest="target", action="store_const", const="all", help="Build both gz and iso (default)")
    tgt.add_argument("--gz", dest="target", action="store_const", const="gz", help="Build only the tar.gz")
    tgt.add_argument("--iso", dest="target", action="store_const", const="iso", help="Build only the ISO")
    sp.set_defaults(target="all")
    sp.add_argument("--stop-after", default=None, help="Stop after the given step id")
    sp.add_argument("--dry-run", action="store_true")
    _common(sp)
    sp.set_defaults(func=cmd_build)

    sp = sub.add_parser("alpine-rootfs", help="Build the customized Alpine minirootfs tarball (needs root)")
    sp.add_argument("--output", default=None, help="Output tarball path")
    sp.add_argument("--dry-run", action="store_true")
    _common(sp)
    sp.set_defaults(func=cmd_alpine_rootfs)

    sp = sub.add_parser("optimize", help="Apply sysctl/security tuning to a root filesystem")
    sp.add_argument("root", help="Root filesystem directory")
    _common(sp)
    sp.set_defaults(func=cmd_optimize)

    sp = sub.add_parser("bootstrap", help="Install build dependencies on a Debian host")
    sp.add_argument("--dry-run", action="store_true")
    _common(sp)
    sp.set_defaults(func=cmd_bootstrap)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    configure_logging(log_path=args.log)
    try:
        return int(args.func(args))
    except ZpodError as e:
        logger.error("%s", e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
