from __future__ import annotations

import argparse
import getpass as _getpass
import sys
import time
from typing import List

from satchel.constants import DEFAULT_ARCHIVE_NAME, DEFAULT_COMPRESS_LEVEL, EXIT_FAILURE, EXIT_OK, EXIT_USAGE, KIND_DIR
from satchel.entryutil import EntryResult
from satchel.errors import PasswordRequired, SatchelError, UsageError
from satchel.options import MODE_ARCHIVE, MODE_EXTRACT, MODE_LIST, Options
from satchel.reader import ArchiveReader, read_archive
from satchel.writer import write_archive


def _reporter(verb: str, quiet: bool):
    """Per-entry progress printer; skips are always shown, on stderr."""

    def _report(res: EntryResult) -> None:
        if res.status == "skipped":
            print(f"Warning: skipping {res.name}: {res.error}", file=sys.stderr)
            return
        if quiet:
            return
        if res.status == "excluded":
            print(f"    skipping: {res.name} (the archive itself)")
        elif res.status == "unsupported":
            print(f"    skipping: {res.name} (unsupported file type)")
        else:
            suffix = "/" if res.kind == KIND_DIR else ""
            print(f"{verb:>12}: {res.name}{suffix}")

    return _report


def _with_password_prompt(options: Options, action):
    """Run ``action``; on a sealed archive and an interactive stdin, ask once."""
    try:
        return action()
    except PasswordRequired:
        if options.password or not sys.stdin.isatty():
            raise
        options.password = _getpass.getpass("Archive password: ")
        return action()


def cmd_archive(options: Options) -> bool:
    """Create ``options.archive`` from the roots in ``options.paths``.

    Returns:
        True when every visited node made it into the archive, False when
        keep-going skipped some.
    """
    t0 = time.time()
    summary = write_archive(options.paths, options.archive, options, report=_reporter("adding", options.quiet))
    dt = max(0.000001, time.time() - t0)
    mib = summary.bytes / (1024.0 * 1024.0)
    print(
        f"Done: {summary.files} files, {summary.dirs} dirs ({mib:.2f} MiB) in {dt:.1f}s; "
        f"skipped={len(summary.skipped)} unsupported={len(summary.unsupported)}"
    )
    if summary.skipped:
        print(f"Error: {len(summary.skipped)} item(s) could not be archived", file=sys.stderr)
    return not summary.skipped


def cmd_extract(options: Options) -> bool:
    """Extract ``options.archive`` into the single directory in ``options.paths``."""
    target = options.paths[0]
    t0 = time.time()
    summary = _with_password_prompt(
        options, lambda: read_archive(options.archive, target, options, report=_reporter("extracting", options.quiet))
    )
    dt = max(0.000001, time.time() - t0)
    mib = summary.bytes / (1024.0 * 1024.0)
    print(
        f"Done: extracted {summary.files} files, {summary.dirs} dirs ({mib:.2f} MiB) in {dt:.1f}s; "
        f"skipped={len(summary.skipped)} unsupported={len(summary.unsupported)}"
    )
    if summary.skipped:
        print(f"Error: {len(summary.skipped)} entry(ies) could not be extracted", file=sys.stderr)
    return not summary.skipped


def cmd_list(options: Options) -> bool:
    """List archive entries as kind, mode, size and name."""

    def _list() -> None:
        with ArchiveReader(options.archive, options) as r:
            for info, e in r.members():
                if e is None:
                    print(f"other\t----\t{info.size}\t{info.name}")
                elif e.kind == KIND_DIR:
                    print(f"{e.kind}\t{e.mode:04o}\t-\t{e.name}/")
                else:
                    print(f"{e.kind}\t{e.mode:04o}\t{e.size}\t{e.name}")

    _with_password_prompt(options, _list)
    return True


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="satchel",
        description="Pack files and directories into a tar archive, or unpack one.",
        epilog=(
            "Archives whose name ends in .gz or .gzip are gzip-compressed. "
            "With --password the archive is sealed with XChaCha20-Poly1305 (Argon2id key)."
        ),
    )
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("-x", "--extract", action="store_true", help="extract from archive into DIR")
    mode.add_argument("-t", "--list", action="store_true", help="list archive contents")
    ap.add_argument("-f", "--file", default=DEFAULT_ARCHIVE_NAME, help=f"archive file name (default: {DEFAULT_ARCHIVE_NAME})")
    ap.add_argument("paths", nargs="*", help="files/directories to archive, or the directory to extract into")
    ap.add_argument(
        "-k",
        "--keep-going",
        action="store_true",
        help="skip entries that cannot be read or written instead of aborting (exit status is still 1)",
    )
    ap.add_argument("-q", "--quiet", action="store_true", help="limit outputs to summaries only")
    ap.add_argument("--password", help="seal (or open) the archive with this password")
    ap.add_argument(
        "--level",
        type=int,
        default=DEFAULT_COMPRESS_LEVEL,
        help=f"gzip compression level 1-9 (default {DEFAULT_COMPRESS_LEVEL})",
    )
    ap.add_argument("--no-mtime", action="store_true", help="do not restore modification times on extract")
    return ap


def options_from_args(args: argparse.Namespace) -> Options:
    if args.extract:
        mode = MODE_EXTRACT
    elif args.list:
        mode = MODE_LIST
    else:
        mode = MODE_ARCHIVE
    return Options(
        mode=mode,
        archive=args.file,
        paths=list(args.paths),
        keep_going=args.keep_going,
        quiet=args.quiet,
        password=args.password,
        compress_level=args.level,
        restore_mtime=not args.no_mtime,
    ).validate()


def main(argv: List[str] | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    try:
        options = options_from_args(args)
    except UsageError as e:
        ap.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    try:
        if options.mode == MODE_EXTRACT:
            ok = cmd_extract(options)
        elif options.mode == MODE_LIST:
            ok = cmd_list(options)
        else:
            ok = cmd_archive(options)
    except PasswordRequired:
        print("Error: Archive is encrypted. Provide --password.", file=sys.stderr)
        return EXIT_FAILURE
    except UsageError as e:
        ap.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (SatchelError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK if ok else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
