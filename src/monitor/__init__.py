"""Access Monitor — scheduled log monitoring and notification.

Modules
───────
  ingestor    — push interface: raw record → AccessEvent → aggregator
  aggregator  — clock-aligned tumbling windows, per-rule counts
  evaluator   — scheduled threshold predicate, Normal/Firing state machine
  dispatcher  — edge-triggered, de-duplicated notification delivery
  sinks       — delivery adapters (log, jsonl, webhook, smtp, retry, fanout)
  rules       — YAML → AlertRule
  scheduler   — non-overlapping periodic tick loop
  stats       — per-stage counters and recent errors
  engine      — wires the stages together
  sources     — access-log readers (batch and live tail)
  pipeline    — replay / watch orchestration
  reporter    — notifications CSV and text report
  cli         — argparse entry-point
"""
