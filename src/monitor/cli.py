"""CLI entry-point for the Access Monitor.

Usage examples
--------------
# Replay a recorded access log (CSV or JSONL) against config/rules.yaml:
python -m src.monitor replay --input data/access.jsonl

# Watch a live JSONL access log and notify on wall-clock time:
python -m src.monitor watch --input data/access_live.jsonl

# Validate the rule file and print the parsed rules:
python -m src.monitor check --config config/rules.yaml
"""

from __future__ import annotations

import argparse
import sys

from src.contracts.errors import ConfigError
from src.monitor.pipeline import run_replay, run_watch
from src.monitor.rules import load_config, tick_interval
from src.shared.logger import setup_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="access-monitor",
        description="Access Monitor — windowed threshold alerts on HTTP access logs",
    )
    p.add_argument(
        "--config",
        default="config/rules.yaml",
        help="Rules and sinks YAML. Default: config/rules.yaml",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO",
    )
    p.add_argument("--log-file", default=None, help="Also write logs to this file.")

    sub = p.add_subparsers(dest="command", required=True)

    rp = sub.add_parser("replay", help="Replay a recorded access log on a simulated clock.")
    rp.add_argument("--input", required=True, help="Access log (CSV or JSONL, by extension).")
    rp.add_argument("--out-dir", default="out", help="Output directory. Default: out/")

    wp = sub.add_parser("watch", help="Tail a JSONL access log and evaluate on wall-clock time.")
    wp.add_argument("--input", required=True, help="JSONL access log to follow.")
    wp.add_argument("--out-dir", default="out", help="Output directory. Default: out/")
    wp.add_argument(
        "--poll-interval-ms",
        type=int,
        default=1000,
        help="How often to check the log for new lines, ms (default: 1000).",
    )
    wp.add_argument(
        "--tick-interval-sec",
        type=float,
        default=None,
        help="Evaluation tick interval. Default: finest rule frequency.",
    )
    wp.add_argument(
        "--from-start",
        action="store_true",
        default=False,
        help="Read the existing file content too, not only new lines.",
    )

    sub.add_parser("check", help="Validate the config and print the parsed rules.")
    return p


def _check(config_path: str) -> int:
    rules, sinks_cfg = load_config(config_path)
    for r in rules:
        flag = "" if r.enabled else "  (disabled)"
        print(
            f"{r.name}: path {r.match_mode.value} {r.pattern!r}, "
            f"count {r.operator.value} {r.threshold} over {int(r.window.total_seconds())}s, "
            f"every {int(r.frequency.total_seconds())}s, "
            f"min periods {r.min_failing_periods}, auto-mitigate {r.auto_mitigate}, "
            f"to {r.recipient or '-'}{flag}"
        )
    kinds = ", ".join(str(s.get("type")) for s in sinks_cfg) or "log (default)"
    print(f"sinks: {kinds}")
    print(f"tick interval: {tick_interval(rules):.0f}s")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        if args.command == "check":
            return _check(args.config)
        if args.command == "replay":
            result = run_replay(args.input, config_path=args.config, out_dir=args.out_dir)
            print(f"{len(result['notifications'])} notification(s); outputs in {args.out_dir}/")
            return 0
        run_watch(
            args.input,
            config_path=args.config,
            out_dir=args.out_dir,
            poll_interval_sec=args.poll_interval_ms / 1000.0,
            from_start=args.from_start,
            tick_interval_sec=args.tick_interval_sec,
        )
        return 0
    except (ConfigError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
