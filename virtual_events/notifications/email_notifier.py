"""
Outbound email notifications through the Resend HTTP API.

Sending is fire-and-forget: messages are handed to a small thread pool and
the caller gets control back immediately. Without RESEND_API_KEY and
RESEND_FROM_EMAIL the notifier is disabled and every call is a no-op.
"""

import html
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional

import requests

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SECONDS = 10


class EmailNotifier:
    def __init__(self, api_key: Optional[str], from_email: Optional[str],
                 max_workers: int = 2, http=None) -> None:
        self.api_key = api_key
        self.from_email = from_email
        # Module-level requests.post uses a new session per call
        self._http = http or requests
        self._executor: Optional[ThreadPoolExecutor] = None
        self._max_workers = max_workers

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EmailNotifier":
        return cls(config.get("RESEND_API_KEY"), config.get("RESEND_FROM_EMAIL"))

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.from_email)

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers,
                                                thread_name_prefix="email-notifier")
        return self._executor

    def send(self, to: str, subject: str, body_html: str) -> None:
        """Deliver one message synchronously. Raises on HTTP failure."""
        response = self._http.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.from_email,
                "to": [to],
                "subject": subject,
                "html": body_html,
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

    def notify_registration(self, user: Dict[str, Any], event: Dict[str, Any]) -> Optional[Future]:
        """
        Queue a registration confirmation for `user`.

        Returns:
            Future: The pending send, or None when notifications are disabled.
        """
        if not self.enabled:
            logging.debug("[Notifier] Email credentials not configured; skipping")
            return None

        title = event["title"]
        start = event["start_at"].isoformat() if event.get("start_at") else "TBA"
        lines = [
            f"<p>Hi {html.escape(user['name'])},</p>",
            f"<p>You are registered for <strong>{html.escape(title)}</strong>.</p>",
            f"<p>Starts at: {start}</p>",
        ]
        if event.get("meeting_url"):
            lines.append(f"<p>Join here: {html.escape(event['meeting_url'])}</p>")

        future = self._pool().submit(
            self.send, user["email"], f"Registration confirmed: {title}", "\n".join(lines)
        )
        future.add_done_callback(_log_failure)
        return future

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logging.warning(f"[Notifier] Failed to send email: {exc}")
