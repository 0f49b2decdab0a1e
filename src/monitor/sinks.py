"""Notification sinks — the delivery side of the monitor.

Contract
────────
  send(notification) -> bool

``True`` means delivered.  A sink may also raise; the dispatcher treats a
raise and a ``False`` the same way.

Shipped adapters
────────────────
  log      — write the notification to the log
  jsonl    — append one JSON line per notification to a file
  webhook  — POST JSON to a URL (requests)
  smtp     — plain-text email (smtplib)
  memory   — keep notifications in process

Any of them can be wrapped with ``retry`` for bounded retries, and several
can be combined with ``FanoutSink``.
"""

from __future__ import annotations

import logging
import random
import smtplib
import threading
import time
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import requests

from src.contracts.errors import ConfigError
from src.contracts.notification import Notification

log = logging.getLogger(__name__)


@runtime_checkable
class NotificationSink(Protocol):
    def send(self, notification: Notification) -> bool: ...


class LogSink:
    """Writes notifications to the log.  Never fails."""

    def __init__(self, level: str = "WARNING") -> None:
        self.level = getattr(logging, level.upper(), logging.WARNING)

    def send(self, notification: Notification) -> bool:
        log.log(
            self.level,
            "NOTIFY to=%s rule=%s count=%d fired_at=%s",
            notification.recipient or "-",
            notification.rule,
            notification.observed_count,
            notification.to_dict()["fired_at"],
        )
        return True


class JsonlSink:
    """Appends each notification as one JSON line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def send(self, notification: Notification) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self.path.open("a", encoding="utf-8") as fh:
            fh.write(notification.to_json() + "\n")
            fh.flush()
        return True


class WebhookSink:
    """POSTs the notification JSON to *url*."""

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 5.0,
    ) -> None:
        if not url:
            raise ConfigError("webhook sink requires a url")
        self.url = url
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.timeout = timeout

    def send(self, notification: Notification) -> bool:
        response = requests.post(
            self.url,
            json=notification.to_dict(),
            headers=self.headers,
            timeout=self.timeout,
        )
        if not response.ok:
            log.warning(
                "Webhook %s answered %s: %s",
                self.url, response.status_code, response.text[:200],
            )
        return response.ok


class SmtpSink:
    """Plain-text email through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: str = "",
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        if not host or not sender:
            raise ConfigError("smtp sink requires host and sender")
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, notification: Notification) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = notification.subject
        msg["From"] = self.sender
        msg["To"] = notification.recipient
        msg.set_content(notification.body())
        return msg

    def send(self, notification: Notification) -> bool:
        if not notification.recipient:
            log.warning("Notification for %s has no recipient — email not sent", notification.rule)
            return False
        msg = self.build_message(notification)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
        return True


class RetryingSink:
    """Bounded retry with exponential backoff + jitter around another sink."""

    def __init__(
        self,
        inner: NotificationSink,
        max_attempts: int = 3,
        base_delay_sec: float = 0.5,
        max_delay_sec: float = 5.0,
        sleep=time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ConfigError("retry max_attempts must be >= 1")
        self.inner = inner
        self.max_attempts = max_attempts
        self.base_delay_sec = base_delay_sec
        self.max_delay_sec = max_delay_sec
        self._sleep = sleep

    def send(self, notification: Notification) -> bool:
        last_exc: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.inner.send(notification):
                    return True
                last_exc = None
            except Exception as exc:
                last_exc = exc
            if attempt < self.max_attempts:
                delay = min(self.base_delay_sec * (2 ** (attempt - 1)), self.max_delay_sec)
                delay += random.uniform(0, delay * 0.1)
                log.warning(
                    "Delivery of %s failed (attempt %d/%d), retrying in %.2fs",
                    notification.rule, attempt, self.max_attempts, delay,
                )
                self._sleep(delay)
        if last_exc is not None:
            raise last_exc
        return False


class FanoutSink:
    """Sends to every child sink; succeeds only if all of them do."""

    def __init__(self, sinks: list[NotificationSink]) -> None:
        self.sinks = list(sinks)

    def send(self, notification: Notification) -> bool:
        ok = True
        errors: list[Exception] = []
        for sink in self.sinks:
            try:
                ok = sink.send(notification) and ok
            except Exception as exc:
                log.error("Sink %s failed: %s", type(sink).__name__, exc)
                errors.append(exc)
                ok = False
        if errors and len(errors) == len(self.sinks):
            raise errors[0]
        return ok


class MemorySink:
    """Keeps every notification in process, for code that embeds the engine."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self._lock = threading.Lock()

    def send(self, notification: Notification) -> bool:
        with self._lock:
            self.notifications.append(notification)
        return True


# ═══════════════════════════════════════════════════════════════════════════
#  Factory
# ═══════════════════════════════════════════════════════════════════════════


def _build_one(cfg: dict[str, Any]) -> NotificationSink:
    kind = str(cfg.get("type", "")).lower()
    if kind == "log":
        sink: NotificationSink = LogSink(level=cfg.get("level", "WARNING"))
    elif kind == "jsonl":
        if not cfg.get("path"):
            raise ConfigError("jsonl sink requires a path")
        sink = JsonlSink(cfg["path"])
    elif kind == "webhook":
        sink = WebhookSink(
            url=cfg.get("url", ""),
            headers=cfg.get("headers") or {},
            timeout=float(cfg.get("timeout_sec", 5.0)),
        )
    elif kind == "smtp":
        sink = SmtpSink(
            host=cfg.get("host", ""),
            port=int(cfg.get("port", 587)),
            sender=cfg.get("sender", ""),
            username=cfg.get("username", ""),
            password=cfg.get("password", ""),
            use_tls=bool(cfg.get("use_tls", True)),
            timeout=float(cfg.get("timeout_sec", 10.0)),
        )
    else:
        raise ConfigError(f"unknown sink type '{cfg.get('type')}'")

    retry = cfg.get("retry")
    if retry:
        retry = retry if isinstance(retry, dict) else {}
        sink = RetryingSink(
            sink,
            max_attempts=int(retry.get("max_attempts", 3)),
            base_delay_sec=float(retry.get("base_delay_sec", 0.5)),
            max_delay_sec=float(retry.get("max_delay_sec", 5.0)),
        )
    return sink


def build_sink(sinks_cfg: list[dict[str, Any]] | None) -> NotificationSink:
    """Build the sink described by the ``sinks:`` config section.

    An empty or missing section yields a ``LogSink``.
    """
    if not sinks_cfg:
        return LogSink()
    sinks = [_build_one(c) for c in sinks_cfg if c.get("enabled", True)]
    if not sinks:
        return LogSink()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)
