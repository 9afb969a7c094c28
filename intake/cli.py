"""
Maintenance Intake — Operator CLI

Usage:
    # Submit a report (prints duplicates, link or creation result)
    python -m intake.cli submit --input '{"assetId": 7, "title": "Pump leaking oil"}' --actor u-12

    # Act on a returned candidate list
    python -m intake.cli submit --report report.json --link occ_1a2b3c --token mc_...
    python -m intake.cli submit --report report.json --force --token mc_...

    # Inspect
    python -m intake.cli show occ_1a2b3c
    python -m intake.cli list --asset 7 --status dispatched
    python -m intake.cli ledger [--occurrence <id>] [--asset <id>] [-v]
    python -m intake.cli stats

    # Operator follow-ups
    python -m intake.cli close occ_1a2b3c --note "Checked, within tolerance"
    python -m intake.cli merge occ_1a2b3c --into occ_9f8e7d

    # HTTP API
    python -m intake.cli serve --port 8080
"""

import argparse
import json
import sys
import time
from pathlib import Path

import yaml

from engine.config import load_config
from engine.errors import IntakeError
from engine.logging import configure_logging
from intake.coordinator import ResolutionCoordinator


def _load_report(args) -> dict:
    if args.report:
        p = Path(args.report)
        if not p.exists():
            print(f"Error: report file not found: {args.report}", file=sys.stderr)
            sys.exit(1)
        with open(p) as f:
            return json.load(f) if p.suffix == ".json" else yaml.safe_load(f) or {}
    if args.input:
        return json.loads(args.input)
    print("Error: provide --report or --input", file=sys.stderr)
    sys.exit(1)


def cmd_submit(args, coord: ResolutionCoordinator):
    """Submit a report through the intake workflow."""
    raw = _load_report(args)
    if args.link:
        raw["linkToOccurrenceId"] = args.link
    if args.force:
        raw["forceCreate"] = True
    if args.token:
        raw["resumeToken"] = args.token

    result = coord.submit(raw, actor=args.actor)
    body = result.to_dict()

    print(f"\n{'═' * 70}", file=sys.stderr)
    if body.get("hasDuplicates"):
        print(f"  POSSIBLE DUPLICATES: {len(body['candidates'])}", file=sys.stderr)
        for c in body["candidates"]:
            print(f"    {c['occurrenceId']}  {c['similarity']:5.1f}  {c['title']}", file=sys.stderr)
        print(f"  resume token: {body['resumeToken']}", file=sys.stderr)
    elif body.get("wasLinkedToExisting"):
        print(f"  LINKED: {body['linkedToOccurrenceId']} "
              f"(reports: {body['reportCount']})", file=sys.stderr)
    else:
        occ = body["occurrence"]
        print(f"  CREATED: {occ['id']}  {occ['outcome']}  {occ['priority']}", file=sys.stderr)
        if body.get("workOrder"):
            print(f"  work order: {body['workOrder']['id']} "
                  f"({body['workOrder']['priority']})", file=sys.stderr)
        if body.get("downtimeLog"):
            print(f"  downtime: {body['downtimeLog']['id']} ({body['downtimeLog']['category']})", file=sys.stderr)
    print(f"{'═' * 70}\n", file=sys.stderr)
    print(json.dumps(body, indent=2, default=str))


def cmd_show(args, coord: ResolutionCoordinator):
    """Show an occurrence with its history."""
    print(json.dumps(coord.get_occurrence(args.occurrence_id), indent=2, default=str))


def cmd_list(args, coord: ResolutionCoordinator):
    """List occurrences."""
    occurrences = coord.list_occurrences(asset_id=args.asset, status=args.status,
                                         limit=args.limit)
    if not occurrences:
        print("No occurrences found.")
        return

    print(f"\nOccurrences ({len(occurrences)})")
    print(f"{'─' * 70}")
    for o in occurrences:
        ts = time.strftime("%Y-%m-%d %H:%M", time.localtime(o.created_at))
        marker = " " if o.is_root else "↳"
        print(f"  {marker} {o.occurrence_id}  {o.priority.value}  {o.status.value:12s} "
              f"x{o.report_count}  [{ts}] {o.title[:40]}")


def cmd_close(args, coord: ResolutionCoordinator):
    """Close an open observation."""
    occ = coord.close_observation(args.occurrence_id, actor=args.actor, note=args.note)
    print(f"Closed: {occ.occurrence_id}")


def cmd_merge(args, coord: ResolutionCoordinator):
    """Merge a root occurrence into another root."""
    root = coord.merge(args.occurrence_id, args.into, actor=args.actor)
    print(f"Merged: {args.occurrence_id} → {root.occurrence_id} "
          f"(reports: {root.report_count})")


def cmd_ledger(args, coord: ResolutionCoordinator):
    """Show action ledger."""
    entries = coord.get_ledger(occurrence_id=args.occurrence, asset_id=args.asset)
    if not entries:
        print("No ledger entries found.")
        return

    print(f"\nAction Ledger ({len(entries)} entries)")
    print(f"{'─' * 70}")
    for e in entries:
        ts = time.strftime("%H:%M:%S", time.localtime(e["created_at"]))
        print(f"  [{ts}] {e['action_type']:24s} {e['occurrence_id'][:20]}  {e['actor_id']}")
        if args.verbose:
            for k, v in e["details"].items():
                val = str(v)[:60]
                print(f"           {k}: {val}")


def cmd_stats(args, coord: ResolutionCoordinator):
    """Show store statistics."""
    print(json.dumps(coord.stats(), indent=2))


def cmd_serve(args, coord: ResolutionCoordinator):
    """Serve the HTTP API over this coordinator."""
    import uvicorn

    from api.server import create_app

    uvicorn.run(create_app(coordinator=coord), host=args.host, port=args.port)


COMMANDS = {
    "submit": cmd_submit,
    "show": cmd_show,
    "list": cmd_list,
    "close": cmd_close,
    "merge": cmd_merge,
    "ledger": cmd_ledger,
    "stats": cmd_stats,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Maintenance Intake — incident intake and duplicate resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default="intake.yaml",
                        help="Intake config YAML (default: intake.yaml)")
    parser.add_argument("--db", default=None,
                        help="SQLite database path (overrides storage.path)")

    subs = parser.add_subparsers(dest="command", help="Command")

    submit_p = subs.add_parser("submit", help="Submit a report")
    submit_p.add_argument("--report", "-r", help="Report JSON/YAML file")
    submit_p.add_argument("--input", "-i", help="Report as a JSON string")
    submit_p.add_argument("--actor", "-a", default="", help="Submitting actor id")
    submit_p.add_argument("--link", help="Link to this candidate occurrence id")
    submit_p.add_argument("--force", action="store_true", help="Create despite candidates")
    submit_p.add_argument("--token", help="Resume token from the candidate list")

    show_p = subs.add_parser("show", help="Show an occurrence with history")
    show_p.add_argument("occurrence_id")

    list_p = subs.add_parser("list", help="List occurrences")
    list_p.add_argument("--asset", type=int, default=None)
    list_p.add_argument("--status", default=None,
                        choices=["observation", "dispatched", "closed"])
    list_p.add_argument("--limit", type=int, default=50)

    close_p = subs.add_parser("close", help="Close an open observation")
    close_p.add_argument("occurrence_id")
    close_p.add_argument("--actor", "-a", default="")
    close_p.add_argument("--note", "-n", default="")

    merge_p = subs.add_parser("merge", help="Merge a root occurrence into another")
    merge_p.add_argument("occurrence_id")
    merge_p.add_argument("--into", required=True, help="Surviving root occurrence id")
    merge_p.add_argument("--actor", "-a", default="")

    ledger_p = subs.add_parser("ledger", help="Show action ledger")
    ledger_p.add_argument("--occurrence", help="Filter by occurrence ID")
    ledger_p.add_argument("--asset", type=int, help="Filter by asset ID")
    ledger_p.add_argument("--verbose", "-v", action="store_true")

    subs.add_parser("stats", help="Show store statistics")

    serve_p = subs.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8080)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if not Path(args.config).exists():
        print(f"Warning: config not found at {args.config}, using defaults", file=sys.stderr)
    cfg = load_config(base_path=args.config)
    if args.db:
        cfg.setdefault("storage", {})["path"] = args.db
    configure_logging(level=str(cfg.get("logging", {}).get("level", "WARNING")))

    coord = ResolutionCoordinator.from_config(cfg)
    try:
        COMMANDS[args.command](args, coord)
    except IntakeError as e:
        print(f"\n  ✗ FAILED: {e.message}", file=sys.stderr)
        print(json.dumps(e.to_dict(), indent=2, default=str))
        sys.exit(2 if e.retryable else 1)
    finally:
        coord.close()


if __name__ == "__main__":
    main()
