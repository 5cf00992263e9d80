from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request

logger = logging.getLogger(__name__)

NTFY_PRIORITY = {"low": "2", "normal": "3", "high": "4"}


class Notifier:
    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        raise NotImplementedError


class NoopNotifier(Notifier):
    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        logger.debug("Notification dropped (no target configured): %s", title)
        return False


class _HttpNotifier(Notifier):
    max_attempts = 3
    timeout_s = 5
    backoff_s = 0.25

    def _build_request(self, title: str, body: str, priority: str) -> urllib.request.Request:
        raise NotImplementedError

    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        return self._send_with_retry(self._build_request(title, body, priority))

    def _send_with_retry(self, req: urllib.request.Request) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                urllib.request.urlopen(req, timeout=self.timeout_s).read()
                return True
            except (urllib.error.URLError, TimeoutError, OSError) as exc:
                if attempt >= self.max_attempts:
                    logger.warning("Notifier send to %s failed after %d attempts: %s", req.full_url, attempt, exc)
                    return False
                time.sleep(self.backoff_s * attempt)
        return False


class DiscordNotifier(_HttpNotifier):
    def __init__(self, webhook_url: str) -> None:
        self.webhook_url = webhook_url

    def _build_request(self, title: str, body: str, priority: str) -> urllib.request.Request:
        prefix = ":rotating_light: " if priority == "high" else ""
        payload = {"content": f"{prefix}**{title}**\n{body}"}
        return urllib.request.Request(
            self.webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )


class NtfyNotifier(_HttpNotifier):
    def __init__(self, topic_url: str) -> None:
        self.topic_url = topic_url

    def _build_request(self, title: str, body: str, priority: str) -> urllib.request.Request:
        return urllib.request.Request(
            self.topic_url,
            data=body.encode("utf-8"),
            headers={"Title": title, "Priority": NTFY_PRIORITY.get(priority, "3"), "Tags": "soccer"},
            method="POST",
        )


def build_notifier(settings: dict) -> Notifier:
    """Discord wins over ntfy when both are configured."""
    if settings.get("discord_webhook_url"):
        return DiscordNotifier(settings["discord_webhook_url"])
    if settings.get("ntfy_topic_url"):
        return NtfyNotifier(settings["ntfy_topic_url"])
    return NoopNotifier()
