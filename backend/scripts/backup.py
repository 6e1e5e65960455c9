"""SQLite backup utility.

Usage:
    python scripts/backup.py create
    python scripts/backup.py list
    python scripts/backup.py restore backup-2026-01-01T12-00-00.db
"""
import argparse
import os
import shutil
import sqlite3
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
BACKUP_PREFIX = "backup-"


def default_db_path() -> Path:
    url = os.getenv("DATABASE_URL", "sqlite:///./responses.db")
    if not url.startswith("sqlite:///"):
        raise SystemExit(f"Backups only support SQLite databases, got {url!r}")
    return Path(url[len("sqlite:///"):])


def _stamp() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")


def _copy_database(src: Path, dst: Path) -> None:
    # sqlite backup API picks up pages still sitting in the WAL file
    with sqlite3.connect(src) as source, sqlite3.connect(dst) as target:
        source.backup(target)
    source.close()
    target.close()


def create_backup(db_path: Path, backup_dir: Path, max_backups: int = 7) -> Path:
    if not db_path.exists():
        raise FileNotFoundError(f"Database file not found: {db_path}")
    backup_dir.mkdir(parents=True, exist_ok=True)
    target = backup_dir / f"{BACKUP_PREFIX}{_stamp()}.db"
    _copy_database(db_path, target)
    clean_old_backups(backup_dir, max_backups)
    return target


def list_backups(backup_dir: Path) -> List[Path]:
    """Backups newest first."""
    if not backup_dir.exists():
        return []
    files = [p for p in backup_dir.iterdir()
             if p.name.startswith(BACKUP_PREFIX) and p.suffix == ".db"]
    return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


def clean_old_backups(backup_dir: Path, max_backups: int) -> List[Path]:
    removed = []
    for old in list_backups(backup_dir)[max_backups:]:
        old.unlink()
        removed.append(old)
    return removed


def restore_backup(name: str, db_path: Path, backup_dir: Path) -> Optional[Path]:
    """Copy a backup over the live database; the current file is saved first.

    Returns the path of the saved pre-restore copy, if there was a database.
    """
    source = backup_dir / Path(name).name
    if not source.is_file():
        raise FileNotFoundError(f"Backup file not found: {name}")
    saved = None
    if db_path.exists():
        saved = backup_dir / f"current-before-restore-{_stamp()}.db"
        _copy_database(db_path, saved)
    for suffix in ("-wal", "-shm"):
        stale = db_path.with_name(db_path.name + suffix)
        if stale.exists():
            stale.unlink()
    shutil.copyfile(source, db_path)
    return saved


def main(argv=None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Database backup utility")
    parser.add_argument("--db", type=Path, default=None, help="SQLite file (default: from DATABASE_URL)")
    parser.add_argument("--dir", type=Path, default=ROOT / "backups", help="backup directory")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("create", help="create a new backup")
    sub.add_parser("list", help="list backups")
    restore = sub.add_parser("restore", help="restore from a backup")
    restore.add_argument("name")
    args = parser.parse_args(argv)

    db_path = args.db or default_db_path()
    max_backups = int(os.getenv("MAX_BACKUPS", "7") or 7)

    try:
        if args.command == "create":
            target = create_backup(db_path, args.dir, max_backups)
            size_mb = target.stat().st_size / (1024 * 1024)
            print(f"Backup created: {target.name} ({size_mb:.2f} MB)")
            print(f"Total backups: {len(list_backups(args.dir))}")
        elif args.command == "list":
            backups = list_backups(args.dir)
            if not backups:
                print("No backups found")
            for i, p in enumerate(backups, 1):
                stat = p.stat()
                when = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
                print(f"{i}. {p.name}  {stat.st_size / (1024 * 1024):.2f} MB  {when}")
        elif args.command == "restore":
            saved = restore_backup(args.name, db_path, args.dir)
            if saved:
                print(f"Current database backed up as: {saved.name}")
            print(f"Database restored from: {args.name}")
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
