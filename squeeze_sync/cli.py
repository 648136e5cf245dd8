"""
Command line interface.

    sqsync [options] SRC DST

Fatal conditions raise :class:`~squeeze_sync.errors.FatalError` from the
logger; :func:`main` is the only place that turns them into an exit status.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Callable, List, Optional, Sequence

from . import __version__
from .config import Config, SyncOptions
from .errors import ConfigurationError, FatalError, InvalidPatternError
from .filters import REGEX_PREFIX, FilterSet
from .log import Colors, SyncLogger
from .progress import CLIProgress, NullProgress, format_time
from .sync import SyncDriver, SyncStats


USAGE_EPILOG = """\
Filters:
  --filter accepts either a regular expression prefixed with 'rx:' or the
  path of a filter file. Filter files hold one pattern per line; blank lines
  and lines starting with '#' are ignored. Lines without the 'rx:' prefix are
  globs ('*' matches within one path component, '**' across components).

Examples:
  sqsync -dy --log /var/log /data/src /backup/dst
  sqsync --filter 'rx:\\.tmp$' -c --compress-choice lz4 /data/src /backup/dst
"""


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='sqsync',
        description='Mirror a source directory onto a destination directory.',
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('source', nargs='?', metavar='SRC',
                        help='Source directory')
    parser.add_argument('dest', nargs='?', metavar='DST',
                        help='Destination directory')

    parser.add_argument('-v', '--version', action='version',
                        version=f'%(prog)s {__version__}')
    parser.add_argument('-d', '--delete', action='store_true',
                        help='Delete destination entries missing from the source')
    parser.add_argument('-y', '--yes', dest='assume_yes', action='store_true',
                        help='Do not ask for confirmation')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Only print warnings and errors')
    parser.add_argument('-c', '--compress', action='store_true',
                        help='Store files in the destination as compressed containers')
    parser.add_argument('-t', '--dry-run', dest='dry_run', action='store_true',
                        help='Test run: report what would change without changing anything')
    parser.add_argument('--skip-hash', dest='skip_hash', action='store_true',
                        help='Compare modification times instead of content hashes')
    parser.add_argument('--skip-mod', dest='skip_mode', action='store_true',
                        help='Do not fix permission-only differences')
    parser.add_argument('--filter', dest='filters', action='append', default=[],
                        metavar='rx:REGEX|FILE',
                        help='Exclude matching paths (repeatable)')
    parser.add_argument('--log', dest='log_path', metavar='PATH',
                        help=f'Also write messages to PATH (a directory gets {Config.LOG_FILE_NAME})')
    parser.add_argument('--compress-choice', dest='compression',
                        choices=['zstd', 'lz4', 'zlib'],
                        help=f'Container codec (default {Config.DEFAULT_COMPRESSION})')
    parser.add_argument('--compress-level', dest='compress_level', type=int, metavar='NUM',
                        help='Codec compression level')
    parser.add_argument('--stats', action='store_true',
                        help='Print a summary table at the end')
    return parser


def build_filters(values: Sequence[str], log: SyncLogger) -> FilterSet:
    """
    Build a :class:`FilterSet` from ``--filter`` values.

    Values starting with ``rx:`` are added as patterns, anything else is
    read as a filter file. Bad patterns or unreadable files are fatal.
    """
    filters = FilterSet()
    for value in values:
        try:
            if value.startswith(REGEX_PREFIX):
                filters.add(value)
            else:
                filters.add_file(value)
        except InvalidPatternError as e:
            log.fatal("%s", e)
    return filters


def resolve_root(path: str, label: str, log: SyncLogger) -> str:
    """Resolve an operand with ``realpath``; it must be an existing directory."""
    resolved = os.path.realpath(path)
    if not os.path.isdir(resolved):
        log.fatal("%s '%s' must be a directory.", label, path)
    return resolved


def confirm(source: str, dest: str, input_func: Callable[[str], str] = input) -> bool:
    print(f"From: {source}")
    print(f"To:   {dest}")
    try:
        answer = input_func("Continue? [Y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() != 'n'


def print_stats(stats: SyncStats) -> None:
    """Print the run summary table."""
    print()
    print(Colors.bold("=" * 50))
    print(Colors.bold("SYNC STATISTICS".center(50)))
    print(Colors.bold("=" * 50))
    for label, value in stats.rows():
        print(f"{label + ':':<24}{value:>26}")
    print(f"{'Time elapsed:':<24}{format_time(stats.elapsed):>26}")
    print(Colors.bold("=" * 50))
    if stats.errors:
        print(Colors.error(f"Finished with {stats.errors} errors"))
    else:
        print(Colors.success("Finished"))


def main(argv: Optional[List[str]] = None, input_func: Callable[[str], str] = input) -> int:
    """
    CLI entry point.

    Returns:
        Exit code: 0 on completion (per-path errors included), 1 on a fatal
        condition
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.source or not args.dest:
        parser.print_help()
        return 0

    log = SyncLogger(quiet=args.quiet)
    try:
        if args.log_path:
            try:
                log.set_log_path(args.log_path)
            except ConfigurationError as e:
                log.fatal("%s", e)

        source = resolve_root(args.source, "Source", log)
        dest = resolve_root(args.dest, "Destination", log)
        filters = build_filters(args.filters, log)

        if not args.assume_yes and not confirm(source, dest, input_func):
            return 0

        options = SyncOptions(
            source_root=source,
            dest_root=dest,
            delete=args.delete,
            dry_run=args.dry_run,
            quiet=args.quiet,
            assume_yes=args.assume_yes,
            compress=args.compress,
            skip_hash=args.skip_hash,
            skip_mode=args.skip_mode,
            compression=args.compression,
            compress_level=args.compress_level,
            log_path=args.log_path,
            stats=args.stats,
        )

        use_bar = Config.ENABLE_PROGRESS and not args.quiet
        progress = CLIProgress() if use_bar else NullProgress()
        driver = SyncDriver(options, filters, log, progress)

        try:
            stats = driver.run()
        except ConfigurationError as e:
            log.fatal("%s", e)

        if args.stats:
            print_stats(stats)
        return 0

    except FatalError:
        return 1
    finally:
        log.close()


if __name__ == '__main__':
    sys.exit(main())
