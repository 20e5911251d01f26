"""Best-effort lifecycle notifications over a webhook.

Payloads are Discord-style JSON objects with a single ``content`` field. When the
webhook is unset (empty or a placeholder) every call is a silent no-op, and
delivery failures never propagate to the caller.
"""

from typing import Optional

import requests
from rich.console import Console

from .models import LifecycleEvent, LifecycleEventType, WEBHOOK_PLACEHOLDERS


console = Console()

REQUEST_TIMEOUT_SECONDS = 10


def webhook_configured(url: Optional[str]) -> bool:
    """Return False for empty or placeholder webhook URLs."""
    if not url:
        return False
    cleaned = url.strip().strip("'\"")
    return bool(cleaned) and cleaned not in WEBHOOK_PLACEHOLDERS


def format_event(event: LifecycleEvent) -> str:
    """Render a lifecycle event as the message sent to the webhook."""
    label = event.worker_label
    if event.type == LifecycleEventType.STARTED:
        return f"🚀 **Agent Loop Started**: Mission initiation for `{label}`."
    if event.type == LifecycleEventType.ITERATION_COMPLETE:
        return (
            f"♻️ **Iteration {event.iteration} Complete**: "
            f"Restarting the agent loop for `{label}`."
        )
    if event.type == LifecycleEventType.INTERRUPTED:
        return (
            f"🚨 **Agent Loop Interrupted!** The process for `{label}` "
            f"has stopped unexpectedly."
        )
    return (
        f"✅ **Mission Accomplished**: `{label}` has completed all tasks "
        f"and terminated the loop."
    )


def lifecycle_event(
    event_type: LifecycleEventType,
    worker_label: str,
    iteration: Optional[int] = None
) -> LifecycleEvent:
    """Create a lifecycle event with its formatted message."""
    event = LifecycleEvent(
        type=event_type,
        message="",
        worker_label=worker_label,
        iteration=iteration,
    )
    event.message = format_event(event)
    return event


class WebhookNotifier:
    """Posts lifecycle events to a webhook. Never raises."""

    def __init__(self, webhook_url: Optional[str], timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.webhook_url = (webhook_url or "").strip().strip("'\"")
        self.timeout = timeout
        self.enabled = webhook_configured(self.webhook_url)

    def send(self, content: str) -> bool:
        """Post raw content.

        Returns:
            True if the endpoint accepted the message
        """
        if not self.enabled:
            return False

        try:
            response = requests.post(
                self.webhook_url,
                json={"content": content},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            console.print(f"[dim][Notifier] Delivery failed: {e}[/dim]")
            return False

    def notify(self, event: LifecycleEvent) -> bool:
        return self.send(event.message)

    def send_worklog(self, excerpt: str) -> bool:
        """Forward the final worklog excerpt after completion."""
        if not excerpt.strip():
            return False
        return self.send(f"📝 **Final Agent Worklog:**\n\n{excerpt}\n")
