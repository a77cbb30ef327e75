"""
Command-line application for Distributor.

Ties together configuration, logging, the staleness cache and the
distribution engine behind a small set of subcommands::

    distributor add NAME -r ROOT [-t TARGET]
    distributor ignore NAME -g GLOB
    distributor unignore NAME -g GLOB
    distributor remove NAME [-t TARGET]
    distributor list
    distributor clear
    distributor run [--force] [--silence] [NAME ...]
"""

import argparse
import logging
import logging.handlers
import sys
from pathlib import Path

from distributor import __app_name__, __version__
from distributor.cache import StalenessCache
from distributor.config import Config
from distributor.copier import CopyOutcome, display_path
from distributor.engine import Distributor
from distributor.errors import CacheError, DistributorError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUN_FAILED = 2

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config, verbose: bool = False) -> None:
    """Configure rotating file log and stderr handler."""
    level_name = "DEBUG" if verbose else config.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(_LOG_FORMAT)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)

    if not config.log_file:
        return
    log_path = Path(config.log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=config.max_log_size_mb * 1024 * 1024,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    except OSError:
        logger.error("Could not open log file %s", log_path, exc_info=True)
        return
    fh.setLevel(level)
    fh.setFormatter(fmt)
    root_logger.addHandler(fh)


def echo(text: str) -> None:
    """Print *text*, escaping anything stdout cannot encode."""
    encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
    print(text.encode(encoding, "backslashreplace").decode(encoding))


def print_outcome(outcome: CopyOutcome) -> None:
    echo(outcome.describe())


class App:
    """Runs one CLI command against a loaded configuration."""

    def __init__(self, config: Config):
        self.config = config

    def open_distributor(self, report: bool = True) -> Distributor:
        cache = StalenessCache.load(self.config.cache_path)
        return Distributor(cache, on_outcome=print_outcome if report else None)

    # ------------------------------------------------------------------
    # Configuration commands
    # ------------------------------------------------------------------

    def add(self, name: str, root: str | None, target: str | None) -> int:
        cfg = self.config
        if not cfg.has_distribution(name):
            if root is None:
                echo(f"add distributor failed. root path is required for new {name!r}.")
                return EXIT_CONFIG_ERROR
            cfg.add_distribution(name, root)
            logger.info("Added distribution %r (root=%s)", name, root)
        elif root is not None and Path(root) != cfg.get(name).root:
            echo(f"Distribution {name!r} already exists with root {cfg.get(name).root}.")
            return EXIT_CONFIG_ERROR
        if target is not None:
            cfg.add_target(name, target)
            logger.info("Added target %s to %r", target, name)
        cfg.save()
        return EXIT_OK

    def ignore(self, name: str, pattern: str) -> int:
        self.config.add_ignore(name, pattern)
        self.config.save()
        return EXIT_OK

    def unignore(self, name: str, pattern: str) -> int:
        self.config.remove_ignore(name, pattern)
        self.config.save()
        return EXIT_OK

    def remove(self, name: str, target: str | None) -> int:
        if target is not None:
            self.config.remove_target(name, target)
        else:
            self.config.remove_distribution(name)
        self.config.save()
        return EXIT_OK

    def show(self) -> int:
        specs = self.config.distributions
        if not specs:
            echo("No distributions configured.")
            return EXIT_OK
        for spec in specs:
            echo(f"{spec.name}: {spec.root}")
            for pattern in spec.ignore:
                echo(f"    ignore  {pattern}")
            for target in spec.targets:
                echo(f"    target  {target}")
        return EXIT_OK

    # ------------------------------------------------------------------
    # Engine commands
    # ------------------------------------------------------------------

    def clear(self) -> int:
        dist = Distributor(StalenessCache(path=self.config.cache_path))
        try:
            dist.clear_cache()
        except CacheError as exc:
            echo(f"Could not clear cache: {exc}")
            return EXIT_RUN_FAILED
        echo("Cache cleared.")
        return EXIT_OK

    def run(self, names: list[str], force: bool = False, report: bool = True) -> int:
        specs = [self.config.get(n) for n in names] if names else self.config.distributions
        if not specs:
            echo("No distributions configured.")
            return EXIT_OK

        with self.open_distributor(report) as dist:
            results = dist.distribute_all(specs, force=force, report=report)

        status = EXIT_OK
        for result in results:
            if result.error is not None:
                echo(f"[Error] {result.name}: {result.error}")
                status = EXIT_RUN_FAILED
            for directory, exc in result.skipped_dirs:
                echo(f"[Skipped] {display_path(directory)}: {exc}")
            if result.failures:
                status = EXIT_RUN_FAILED
        if report:
            echo(dist.stats.summary())
        return status


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="distributor",
        description="Copy changed files from declared sources to their targets.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", help="Path to the config file (or its directory).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages.")
    sub = parser.add_subparsers(dest="command", metavar="command")

    p = sub.add_parser("add", help="Add a distribution, or a target to one.")
    p.add_argument("name", help="Distribution name.")
    p.add_argument("-r", "--root", help="Source root (file or directory).")
    p.add_argument("-t", "--target", help="Target directory.")

    p = sub.add_parser("ignore", help="Add an ignore glob to a distribution.")
    p.add_argument("name", help="Distribution name.")
    p.add_argument("-g", "--glob", required=True, help="Ignore glob, relative to the root.")

    p = sub.add_parser("unignore", help="Remove an ignore glob from a distribution.")
    p.add_argument("name", help="Distribution name.")
    p.add_argument("-g", "--glob", required=True, help="Ignore glob to remove.")

    p = sub.add_parser("remove", help="Remove a target, or the whole distribution.")
    p.add_argument("name", help="Distribution name.")
    p.add_argument("-t", "--target", help="Target to remove; omit to remove the distribution.")

    sub.add_parser("list", help="Print the configuration.")
    sub.add_parser("clear", help="Clear the staleness cache.")

    p = sub.add_parser("run", help="Run distributions.")
    p.add_argument("names", nargs="*", help="Distributions to run (default: all).")
    p.add_argument("-f", "--force", action="store_true", help="Ignore the cache and copy everything.")
    p.add_argument("-s", "--silence", action="store_true", help="Do not print per-file outcomes.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config(args.config)
    setup_logging(config, verbose=args.verbose)
    logger.info("Welcome to %s %s.", __app_name__, __version__)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    app = App(config)
    try:
        if args.command == "add":
            return app.add(args.name, args.root, args.target)
        if args.command == "ignore":
            return app.ignore(args.name, args.glob)
        if args.command == "unignore":
            return app.unignore(args.name, args.glob)
        if args.command == "remove":
            return app.remove(args.name, args.target)
        if args.command == "list":
            return app.show()
        if args.command == "clear":
            return app.clear()
        if args.command == "run":
            return app.run(args.names, force=args.force, report=not args.silence)
    except DistributorError as exc:
        echo(f"{args.command} failed. {exc}")
        return EXIT_CONFIG_ERROR
    except OSError as exc:
        logger.error("Could not save configuration: %s", exc)
        return EXIT_CONFIG_ERROR
    parser.error(f"unknown command {args.command!r}")
    return EXIT_CONFIG_ERROR
