"""
Command-line interface for gbbackup.

Provides commands for listing tiles, creating plain or encrypted backups,
previewing backup files and restoring from them.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import NoReturn

from gbbackup import __version__
from gbbackup.backup import (
    BackupManager,
    InvalidBackupError,
    PasswordRequiredError,
)
from gbbackup.backup.codec import confirm_password
from gbbackup.backup.errors import PasswordMismatchError
from gbbackup.backup.payload import summarize
from gbbackup.backup.preview import BackupPreview, is_encrypted
from gbbackup.backup.tiles import find_tiles, select_all, tile_count
from gbbackup.config.settings import (
    ConfigurationError,
    Settings,
    load_config,
)
from gbbackup.storage import JsonFileStore

logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False


def set_output_mode(quiet: bool = False) -> None:
    """Set the output mode for the CLI."""
    global _quiet_mode
    _quiet_mode = quiet


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode.
    """
    if force or not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the gbbackup CLI."""
    parser = argparse.ArgumentParser(
        prog="gbbackup",
        description="Backup and restore for the GadgetBoy POS record store",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to configuration file (default: ~/.gbbackup/config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # tiles command
    tiles_parser = subparsers.add_parser(
        "tiles",
        help="List selectable backup tiles",
        description="List tile keys, their collections and current record counts.",
    )
    tiles_parser.set_defaults(func=cmd_tiles)

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Create a backup",
        description="Create a comprehensive or tile-selected backup, optionally encrypted.",
    )
    backup_parser.add_argument(
        "--output",
        "-o",
        metavar="PATH",
        help="Output directory for backup file (default: configured backup_dir)",
    )
    backup_parser.add_argument(
        "--select",
        metavar="TILE",
        action="append",
        default=[],
        help="Tile key to include (repeatable); see 'gbbackup tiles'",
    )
    backup_parser.add_argument(
        "--all-tiles",
        action="store_true",
        dest="all_tiles",
        help="Select every tile (partial backup of all tile collections)",
    )
    backup_parser.add_argument(
        "--encrypt",
        action="store_true",
        help="Encrypt the backup with a password (.gbpos)",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # preview command
    preview_parser = subparsers.add_parser(
        "preview",
        help="Preview a backup file",
        description="Show the collections and record counts in a backup without restoring.",
    )
    preview_parser.add_argument("backup_file", metavar="FILE", help="Backup file")
    preview_parser.set_defaults(func=cmd_preview)

    # restore command
    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore from a backup file",
        description="Replace live collections with the ones found in a backup file.",
    )
    restore_parser.add_argument("backup_file", metavar="FILE", help="Backup file")
    restore_parser.add_argument(
        "--no-backup",
        action="store_true",
        dest="no_backup",
        help="Skip backing up existing data before restore",
    )
    restore_parser.add_argument(
        "--verify-only",
        action="store_true",
        dest="verify_only",
        help="Validate the backup without restoring",
    )
    restore_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompts",
    )
    restore_parser.set_defaults(func=cmd_restore)

    return parser


def setup_logging(verbose: int, quiet: bool, default_level: str = "INFO") -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = default_level
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_manager(settings: Settings) -> BackupManager:
    """Create a BackupManager for the configured store."""
    return BackupManager(
        store=JsonFileStore(settings.data_path),
        backup_dir=settings.backup_path,
        source_label=settings.backup.source_label,
        extra_collections=settings.backup.extra_collections,
        snapshot_workers=settings.backup.snapshot_workers,
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config) if args.config else None
    settings = load_config(config_path)
    if args.verbose == 0 and not args.quiet:
        logging.getLogger().setLevel(settings.log_level)
    return settings


def _print_preview(preview: BackupPreview) -> None:
    output("Backup information:")
    if preview.created_at:
        output(f"  Created: {preview.created_at}")
    output(f"  Type: {preview.kind.value}")
    output(f"  Full payload: {'yes' if preview.is_comprehensive else 'no'}")
    output(f"  Encrypted: {'yes' if preview.encrypted else 'no'}")
    output(f"  Collections: {len(preview.collections)}")
    for name in preview.collections:
        output(f"    - {name}: {preview.counts[name]}")
    output(f"  Total records: {preview.total_records}")


def cmd_tiles(args: argparse.Namespace) -> int:
    """List tiles with their collections and record counts."""
    settings = _load_settings(args)
    manager = build_manager(settings)

    tiles = manager.get_tiles()
    snapshot = manager.snapshot(select_all(tiles))

    output(f"{'Tile':<28} {'Records':>8}  Collections")
    output("-" * 60)
    for tile in tiles:
        count = tile_count(tile, snapshot.collections)
        collections = ", ".join(sorted(tile.collections))
        output(f"{tile.key:<28} {count:>8}  {collections}")
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Create a backup of the record store."""
    settings = _load_settings(args)
    manager = build_manager(settings)

    selection: set[str] | None = None
    if args.all_tiles:
        selection = select_all(manager.get_tiles())
    elif args.select:
        try:
            tiles = find_tiles(manager.get_tiles(), args.select)
        except KeyError as e:
            output_error(f"Error: {e.args[0]}")
            return 1
        selection = select_all(tiles)

    password = None
    if args.encrypt:
        password = getpass.getpass("Enter a password to encrypt the backup (.gbpos): ")
        confirmation = getpass.getpass("Confirm password: ")
        try:
            confirm_password(password, confirmation)
        except (ValueError, PasswordMismatchError) as e:
            output_error(f"Error: {e}")
            return 1

    output("gbbackup Backup")
    output("=" * 50)
    output()
    output(f"Data file: {settings.data_path}")
    output(f"Scope: {'selected tiles' if selection is not None else 'all collections'}")
    output(f"Encrypted: {'yes' if password else 'no'}")
    output()
    output("Creating backup...")

    output_path = Path(args.output) if args.output else None
    result = manager.create_backup(
        output_path=output_path,
        selection=selection,
        password=password,
        confirmation=password,
    )

    if not result.success:
        output()
        output_error(f"Backup failed: {result.error}")
        return 1

    output()
    output("Backup created successfully!")
    output()
    output(f"  File: {result.path}")
    output(f"  Size: {result.size_bytes:,} bytes")
    if result.payload:
        output(f"  {summarize(result.payload)}")
    output()
    output("To restore from this backup, run:")
    output(f"  gbbackup restore {result.path}")
    return 0


def _read_password_if_needed(backup_path: Path) -> str | None:
    if is_encrypted(backup_path.read_bytes()):
        return getpass.getpass("Enter password to decrypt the backup (.gbpos): ")
    return None


def cmd_preview(args: argparse.Namespace) -> int:
    """Preview a backup file."""
    settings = _load_settings(args)
    manager = build_manager(settings)
    backup_path = Path(args.backup_file)

    if not backup_path.exists():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    try:
        password = _read_password_if_needed(backup_path)
        preview = manager.preview_file(backup_path, password)
    except (InvalidBackupError, PasswordRequiredError) as e:
        output_error(f"Error: {e}")
        return 1

    _print_preview(preview)
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the record store from a backup file."""
    settings = _load_settings(args)
    manager = build_manager(settings)
    backup_path = Path(args.backup_file)

    if not backup_path.exists():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    output("gbbackup Restore")
    output("=" * 50)
    output()
    output(f"Backup file: {backup_path}")
    output()

    try:
        password = _read_password_if_needed(backup_path)
        payload, preview = manager.inspect_file(backup_path, password)
    except (InvalidBackupError, PasswordRequiredError) as e:
        output_error(f"Error: {e}")
        return 1

    _print_preview(preview)
    output()

    if args.verify_only:
        output("Verification complete (--verify-only specified)")
        return 0

    backup_existing = settings.backup.pre_restore_backup and not args.no_backup

    if not args.force:
        output("WARNING: This will replace the collections listed above.")
        if backup_existing:
            output("(A backup of existing data will be created first)")
        output()
        response = input("Proceed with restore? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Restore cancelled.")
            return 0

    output()
    output("Restoring...")
    # Restore the payload that was previewed; the file is not read again.
    result = manager.restore_payload(payload, backup_existing=backup_existing)

    if result.backup_created:
        output(f"  Previous data backed up to: {result.backup_created}")

    if result.success:
        output()
        output("Restore completed successfully!")
        output()
        output(f"  Collections restored: {len(result.restored)}")
        output(f"  Records restored: {result.records_restored}")
        return 0

    output()
    output_error(f"Restore failed: {result.error}")
    for name, error in result.failures.items():
        output_error(f"  - {name}: {error}")
    if result.restored:
        output(f"  Collections restored before failure: {', '.join(result.restored)}")
    return 1


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the gbbackup CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
