#!/usr/bin/env python3
"""
tamperwatch CLI
Capture DOM dumps, compare them against reference renderings, and inspect
the results.
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

from tamperwatch.dom import load_document, render_document
from tamperwatch.errors import LoadError
from tamperwatch.logs import setup as setup_logs
from tamperwatch.mode import DEFAULT_MODE
from pipelines.compare_dumps import run as run_compare
from pipelines.dump_pages import read_urls, run as run_dump


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tamperwatch",
        description="Detect injected DOM content by comparing page renderings."
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    # ───────────────────────── DUMP PAGES ─────────────────────────
    pdump = sub.add_parser("dump", help="Capture DOM dumps for a list of URLs")
    pdump.add_argument("--urls-file", type=Path, required=True)
    pdump.add_argument("--out", type=Path, required=True, help="Directory for the dumps")
    pdump.add_argument("--rate", type=float, default=1.0, help="Pages per second")
    pdump.add_argument("--dead-letter", type=Path, default=Path("out/dead_letter.jsonl"))
    pdump.add_argument("--health", type=Path, default=Path("out/dump_health.json"))

    # ───────────────────────── COMPARE DUMPS ─────────────────────────
    pcmp = sub.add_parser("compare", help="Compare base dumps against target dumps")
    pcmp.add_argument("base_dir", type=Path)
    pcmp.add_argument("target_dir", type=Path)
    pcmp.add_argument("out_dir", type=Path)
    pcmp.add_argument("verification_dirs", type=Path, nargs="*")
    pcmp.add_argument("--workers", type=int, default=4)
    pcmp.add_argument("--health", type=Path, default=Path("out/compare_health.json"))
    pcmp.add_argument("--keep-comments", action="store_true", help="Compare comments too")
    pcmp.add_argument("--keep-whitespace", action="store_true", help="Compare whitespace too")
    pcmp.add_argument("--strict-attribute-order", action="store_true",
                      help="Report attributes in a different order")
    pcmp.add_argument("--skip-unmatched", action="store_true",
                      help="Report unmatched children as missing instead of pairing them")

    # ───────────────────────── SHOW DUMP ─────────────────────────
    pshow = sub.add_parser("show", help="Print a stored DOM dump as HTML")
    pshow.add_argument("dump", type=Path)

    # ───────────────────────── TRIAGE DEAD LETTER ─────────────────────────
    pt = sub.add_parser("triage", help="Summarize capture failures")
    pt.add_argument("--dead-letter", type=Path, default=Path("out/dead_letter.jsonl"))

    return parser


def _readable_dir(parser: argparse.ArgumentParser, path: Path) -> Path:
    if not path.is_dir():
        parser.error(f"Cannot read {path}")
    return path


def triage(dead_letter: Path) -> int:
    if not dead_letter.exists():
        print(f"No dead-letter file found at {dead_letter}")
        return 2

    counts = {}
    for line in dead_letter.read_text(encoding="utf-8").splitlines():
        try:
            err = json.loads(line).get("error", "UNKNOWN")
        except ValueError:
            err = "PARSE_ERROR"
        counts[err] = counts.get(err, 0) + 1

    print("Dead-letter summary:")
    for k, v in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
        print(f"  - ({v}) {k[:160]}")
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ───────────────────────── DISPATCH COMMANDS ─────────────────────────
    if args.cmd == "dump":
        log = setup_logs(command="dump", run_id=uuid.uuid4().hex[:12])
        try:
            urls = read_urls(args.urls_file)
        except FileNotFoundError as e:
            parser.error(str(e))
        summary = asyncio.run(run_dump(urls, args.out, args.dead_letter, args.health, log, rate_per_sec=args.rate))
        return 0 if summary["failed"] == 0 else 1

    if args.cmd == "compare":
        for directory in [args.base_dir, args.target_dir, *args.verification_dirs]:
            _readable_dir(parser, directory)
        mode = DEFAULT_MODE.copy(
            ignore_comments=not args.keep_comments,
            ignore_whitespace=not args.keep_whitespace,
            ignore_attribute_order=not args.strict_attribute_order,
            compare_unmatched=not args.skip_unmatched,
        )
        log = setup_logs(command="compare", run_id=uuid.uuid4().hex[:12])
        summary = asyncio.run(
            run_compare(
                args.base_dir,
                args.target_dir,
                args.out_dir,
                args.verification_dirs,
                log,
                mode=mode,
                workers=args.workers,
                health_path=args.health,
            )
        )
        print(
            f"{summary.total} dumps: {summary.equal} equal, {summary.clean} clean, "
            f"{summary.flagged} flagged, {summary.missing} missing, {summary.errors} errors",
            file=sys.stderr,
        )
        return 1 if summary.errors else 0

    if args.cmd == "show":
        try:
            document = load_document(args.dump)
        except LoadError as e:
            print(str(e), file=sys.stderr)
            return 2
        sys.stdout.write(render_document(document))
        return 0

    if args.cmd == "triage":
        return triage(args.dead_letter)

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
