import argparse
import sys
import threading
import time
from typing import List, Optional

from geofw.config import Settings, get_settings
from geofw.errors import GeofwError
from geofw.pipeline import build_ruleset, refresh_prefixes, setup_firewall
from geofw.scheduler import start_scheduler
from geofw.utils.logger import get_logger, setup as log_setup

log = get_logger(__name__)


# ------------------------------------------------------------------ #
# CLI argument parsing
# ------------------------------------------------------------------ #
def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geofw",
        description="Build an nftables allow-list from the prefixes announced by a set of ASNs.",
    )
    parser.add_argument(
        "--fetch", "-f",
        action="store_true",
        help="Fetch the routing table and rewrite the prefix files.",
    )
    parser.add_argument(
        "--setup", "-s",
        action="store_true",
        help="Render the nftables configuration from the prefix files and apply it.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="With --setup, print the rendered ruleset instead of applying it.",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Keep running and refresh the prefix files daily at GEOFW_REFRESH_TIME (UTC).",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def _report(exc: GeofwError) -> None:
    cause = exc.__cause__
    detail = f" (caused by {type(cause).__name__}: {cause})" if cause else ""
    log.error("%s failed: %s%s", exc.stage, exc, detail)


def run(args: argparse.Namespace, cfg: Settings, cancel: Optional[threading.Event] = None) -> int:
    """Run the selected jobs once; return the process exit status."""
    do_fetch = args.fetch or not args.setup
    do_setup = args.setup or not args.fetch

    try:
        if do_fetch:
            refresh_prefixes(cfg, cancel=cancel)
        if do_setup:
            if args.dry_run:
                sys.stdout.write(build_ruleset(cfg))
            else:
                result = setup_firewall(cfg)
                if not result.ok:
                    return 1
    except GeofwError as exc:
        _report(exc)
        return 1
    return 0


def _run_scheduled(cfg: Settings) -> int:
    cancel = threading.Event()

    def job() -> None:
        try:
            log.info("=== geofw refresh started ===")
            refresh_prefixes(cfg, cancel=cancel)
            log.info("geofw refresh finished OK")
        except GeofwError as exc:
            _report(exc)
        except Exception:
            log.exception("geofw refresh failed")

    scheduler = start_scheduler(cfg, job)
    log.info("geofw scheduler started (daily at %s UTC)", cfg.refresh_time)
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        log.info("geofw scheduler stopping – exiting.")
        cancel.set()
        scheduler.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = get_settings()

    log_kwargs = {"level": "DEBUG"} if (args.verbose or cfg.debug) else {}
    if cfg.log_file:
        log_kwargs["logfile"] = cfg.log_file
    log_setup(**log_kwargs)
    if args.dry_run and not args.setup:
        args.setup = True

    try:
        if args.schedule:
            return _run_scheduled(cfg)
        return run(args, cfg)
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
