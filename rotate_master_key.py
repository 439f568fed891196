#!/usr/bin/env python3
"""Re-encrypt every stored provider secret after changing ENCRYPTION_MASTER_KEY.

Set ENCRYPTION_MASTER_KEY to the NEW key (env or .env), then pass the old one:

Usage:
    python rotate_master_key.py --old-key <64 hex chars>
    python rotate_master_key.py --old-key <hex> --dry-run    # Preview without writing
    OLD_ENCRYPTION_MASTER_KEY=<hex> python rotate_master_key.py
"""

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from db import Database, api_key_secret, endpoint_secret
from errors import EasyPromptError
from keyvault import KeyVault, parse_master_key
from settings import Settings

console = Console()


@dataclass
class RotationReport:
    rotated: int = 0
    skipped: int = 0
    failed: list[tuple[str, str]] = field(default_factory=list)  # (config id, reason)


async def rotate(db: Database, old_key: str, new_vault: KeyVault, dry_run: bool = False) -> RotationReport:
    """Re-encrypt each config from ``old_key`` to ``new_vault``'s key.

    A row that does not decrypt with the old key is reported and left as is.
    """
    report = RotationReport()
    for row in await db.all_provider_configs():
        key, endpoint = api_key_secret(row), endpoint_secret(row)
        if key is None and endpoint is None:
            report.skipped += 1
            continue
        try:
            new_key = new_vault.re_encrypt(key, old_key) if key else None
            new_endpoint = new_vault.re_encrypt(endpoint, old_key) if endpoint else None
        except EasyPromptError as e:
            report.failed.append((row["id"], e.message))
            continue
        if not dry_run:
            await db.replace_provider_config_secrets(row["id"], new_key, new_endpoint)
        report.rotated += 1
    return report


def _print_report(report: RotationReport, dry_run: bool) -> None:
    table = Table(title="Master key rotation" + (" (dry run)" if dry_run else ""))
    table.add_column("Result")
    table.add_column("Configs", justify="right")
    table.add_row("[green]re-encrypted[/green]" if not dry_run else "would re-encrypt", str(report.rotated))
    table.add_row("no secrets", str(report.skipped))
    table.add_row("[red]failed[/red]", str(len(report.failed)))
    console.print(table)
    for config_id, reason in report.failed:
        console.print(f"  [red]FAIL[/red] {config_id}: {reason}")


async def main() -> int:
    load_dotenv(Path(__file__).parent / ".env")

    parser = argparse.ArgumentParser(description="Re-encrypt stored provider secrets with a new master key")
    parser.add_argument("--old-key", default=os.environ.get("OLD_ENCRYPTION_MASTER_KEY"),
                        help="Previous master key (default: $OLD_ENCRYPTION_MASTER_KEY)")
    parser.add_argument("--db-path", default=None, help="Database path (default: $DB_PATH)")
    parser.add_argument("--dry-run", action="store_true", help="Decrypt and re-encrypt without writing")
    args = parser.parse_args()

    new_vault = KeyVault()
    try:
        parse_master_key(args.old_key)
        new_vault.validate_config()
    except EasyPromptError as e:
        console.print(f"[red]{e.message}[/red]")
        return 2

    db = Database(args.db_path or Settings.from_env().db_path)
    if not db.path.exists():
        console.print(f"[red]Database not found: {db.path}[/red]")
        return 2

    report = await rotate(db, args.old_key, new_vault, dry_run=args.dry_run)
    _print_report(report, args.dry_run)
    return 1 if report.failed else 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
