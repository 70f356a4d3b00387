#!/usr/bin/env python3
"""
Warm the spell metadata store for a list of spell IDs.

Runs the same read-through path as the spell service, so it can be executed
from a developer workstation or CI job before traffic arrives. IDs come from
the command line and/or a file with one ID per line.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from shared.config import BaseConfig
from shared.logging import configure_logging
from service_spells.app.freshness import FreshnessPolicy
from service_spells.app.orchestrator import CacheOrchestrator
from service_spells.app.store import create_record_store
from service_spells.app.upstream import BlizzardClient


async def warm(
    config: BaseConfig,
    spell_ids: List[int],
    *,
    concurrency: int,
    force: bool,
    dry_run: bool,
) -> dict:
    """Execute cache warming and return the summary."""
    if dry_run:
        return {"planned": len(set(spell_ids)), "spell_ids": sorted(set(spell_ids))}

    store = create_record_store(
        config.store_backend,
        config.postgres_dsn,
        min_size=1,
        max_size=max(1, concurrency),
    )
    upstream = BlizzardClient.from_config(config)
    orchestrator = CacheOrchestrator(
        store,
        upstream,
        FreshnessPolicy(config.refresh_interval_seconds),
    )

    await store.start()
    try:
        return await orchestrator.warm(spell_ids, concurrency=concurrency, force=force)
    finally:
        await orchestrator.aclose()
        await upstream.aclose()
        await store.stop()


def _read_ids(values: List[str], ids_file: Optional[Path]) -> List[int]:
    raw = list(values)
    if ids_file:
        raw.extend(
            line.strip()
            for line in ids_file.read_text().splitlines()
            if line.strip() and not line.lstrip().startswith("#")
        )
    spell_ids = []
    for value in raw:
        if not value.isdigit():
            raise ValueError(f"Invalid spell ID: {value!r}")
        spell_ids.append(int(value))
    return spell_ids


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the spell metadata store.")
    parser.add_argument("spell_ids", nargs="*", help="Spell IDs to warm")
    parser.add_argument("--ids-file", type=Path, default=None, help="File with one spell ID per line")
    parser.add_argument("--concurrency", type=int, default=5, help="Concurrent upstream fetches")
    parser.add_argument("--force", action="store_true", help="Refetch even when the stored record is fresh")
    parser.add_argument("--dry-run", action="store_true", help="Do not fetch or write; print the planned IDs")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    config = BaseConfig()
    configure_logging("spells-warm", config.log_level)

    try:
        spell_ids = _read_ids(args.spell_ids, args.ids_file)
    except (OSError, ValueError) as exc:
        print(f"[spell-warm] {exc}", file=sys.stderr)
        return 2

    if not spell_ids:
        print("[spell-warm] no spell IDs given", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(
            warm(
                config,
                spell_ids,
                concurrency=args.concurrency,
                force=args.force,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[spell-warm] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[spell-warm] DRY RUN - no upstream calls or store writes executed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if not summary.get("errors") else 1


if __name__ == "__main__":
    raise SystemExit(main())
