"""Command line for reconciliation runs.

Usage:

  # Show which files represent each entity
  fin-recon catalog micro
  fin-recon catalog paired 2025-08-01

  # Extract the latest statements into a JSON artifact
  fin-recon micro MIC_12_2024.json
  fin-recon micro MIC_12_2024.json 2025-08-01
  fin-recon paired MID_12_2024.json

  # Derive metrics
  fin-recon ratios MID_12_2024.json reports.csv
  fin-recon show MID_12_2024.json 12345678

  # Report store
  fin-recon upload MID_12_2024.json
  fin-recon report rep_2024_12 12345678

  # Configuration and store check
  fin-recon health
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import date

from fin_recon.config import get_config

log = logging.getLogger(__name__)


def _header(title: str):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def cmd_catalog(mode: str = "micro", min_date: str | None = None):
    """Resolve the catalog without extracting anything."""
    from fin_recon.pipeline import make_resolver

    _header(f"Catalog: {mode}")
    resolver = make_resolver(get_config(), _date(min_date))
    if mode == "paired":
        resolution = resolver.resolve_paired()
    else:
        resolution = resolver.resolve_micro()

    for code, chosen in sorted(resolution.filenames().items())[:20]:
        if isinstance(chosen, dict):
            print(f"  {code:10s}  {chosen['form1']}")
            print(f"  {'':10s}  {chosen['form2']}")
        else:
            print(f"  {code:10s}  {chosen}")
    stats = resolution.stats
    print(f"\n  Scanned: {stats.scanned}  Selected: {stats.selected}")
    print(f"  Region-skipped: {stats.region_skipped}  Unparsed: {stats.unparsed}  "
          f"Before min date: {stats.before_min_date}  Incomplete pairs: {stats.incomplete_pairs}")


def cmd_build(mode: str, out_path: str, min_date: str | None = None):
    """Resolve, extract and save statements for *mode*."""
    from fin_recon.pipeline import build_micro_statements, build_paired_statements, save_json

    _header(f"Build {mode} statements → {out_path}")
    build = build_paired_statements if mode == "paired" else build_micro_statements
    result = asyncio.run(build(get_config(), min_date=_date(min_date)))
    save_json(out_path, result.records)
    print(f"  Succeeded: {result.succeeded}")
    print(f"  Failed:    {result.failed}")
    for failure in result.failures[:10]:
        print(f"    {failure.entity_code}: {failure.error}")


def cmd_ratios(in_path: str, out_path: str = "reports.csv"):
    """Derive metrics for every statement in a JSON artifact."""
    from fin_recon.pipeline import export_reports, load_json

    _header(f"Ratios: {in_path}")
    df = export_reports(load_json(in_path), out_path)
    print(f"  {len(df)} reports written to {out_path}")
    if not df.empty:
        print(f"  Full-form: {(df['report_type'] == 'full').sum()}  "
              f"Short-form: {(df['report_type'] == 'short').sum()}")


def cmd_show(in_path: str, tin: str):
    """Print the formatted report of one entity from a JSON artifact."""
    from fin_recon.formatting import format_report
    from fin_recon.pipeline import load_json
    from fin_recon.ratios import compute_report

    _header(f"Report: {tin}")
    for record in load_json(in_path):
        if str(record.get("TIN")) == tin:
            for label, value in format_report(compute_report(record)).items():
                print(f"  {label:45s}  {value:>16s}")
            return
    print("  Not found.")


def cmd_upload(in_path: str):
    """Upload a JSON artifact to the report store."""
    from fin_recon import db
    from fin_recon.pipeline import load_json

    _header(f"Upload: {in_path}")
    if not db.is_available():
        print("  Report store unavailable (set MONGODB_URI).")
        return
    result = db.upsert_statements(load_json(in_path), batch_size=get_config().upload_batch_size)
    print(f"  Written: {result.written}  Skipped: {result.skipped}  Batches: {result.batches}")


def cmd_report(period: str, tin: str):
    """Fetch one stored report."""
    from fin_recon.db import get_report

    _header(f"Stored report: {period}/{tin}")
    data = get_report(period, tin)
    if not data:
        print("  Not found.")
        return
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_health():
    """Configuration and report store check."""
    from fin_recon import db

    _header("fin-recon health check")
    cfg = get_config()
    print(f"  Regions:      {', '.join(sorted(cfg.allowed_regions))}")
    print(f"  Batch size:   {cfg.batch_size}")
    print(f"  Min date:     {cfg.min_date or '-'}")
    for label, folder in (("Micro", cfg.micro_dir), ("Form 1", cfg.form1_dir), ("Form 2", cfg.form2_dir)):
        status = "[PASS]" if os.path.isdir(folder) else "[FAIL]"
        print(f"  {status} {label:7s} folder: {folder}")
    if not cfg.mongodb_uri:
        print("  [SKIP] MONGODB_URI is not set, uploads and lookups are disabled")
    elif db.is_available():
        print("  [PASS] MongoDB reachable")
    else:
        print("  [FAIL] MongoDB unreachable")
    print(f"  [{'PASS' if cfg.api_key else 'WARN'}] API key {'set' if cfg.api_key else 'not set'}")


COMMANDS = {
    "catalog": (cmd_catalog, "micro|paired [min_date]"),
    "micro": (cmd_build, "out.json [min_date]"),
    "paired": (cmd_build, "out.json [min_date]"),
    "ratios": (cmd_ratios, "in.json [out.csv]"),
    "show": (cmd_show, "in.json tin"),
    "upload": (cmd_upload, "in.json"),
    "report": (cmd_report, "period tin"),
    "health": (cmd_health, ""),
}


def main(argv: list[str] | None = None):
    args = sys.argv[1:] if argv is None else argv
    logging.basicConfig(
        level=get_config().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args or args[0] in ("-h", "--help", "help"):
        print("\nfin-recon: statement reconciliation")
        print("=" * 44)
        print("\nUsage: fin-recon <command> [args]\n")
        print("Commands:")
        for cmd, (_, usage) in COMMANDS.items():
            print(f"  {cmd:10s}  {usage}")
        print()
        return

    cmd_name = args[0].lower()
    if cmd_name not in COMMANDS:
        print(f"Unknown command: {cmd_name}")
        print(f"Available: {', '.join(COMMANDS.keys())}")
        return

    fn, usage = COMMANDS[cmd_name]
    rest = args[1:]

    if cmd_name in ("micro", "paired"):
        if not rest:
            print(f"Usage: fin-recon {cmd_name} {usage}")
            return
        fn(cmd_name, *rest[:2])
    elif cmd_name == "catalog":
        fn(*rest[:2])
    elif cmd_name == "health":
        fn()
    else:
        required = len(usage.split()) - usage.count("[")
        if len(rest) < required:
            print(f"Usage: fin-recon {cmd_name} {usage}")
            return
        fn(*rest[:len(usage.split())])


if __name__ == "__main__":
    main()
