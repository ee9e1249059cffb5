"""Incoming-webhook client for Mattermost notifications."""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass, field, fields
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

BOT_USERNAME = "Reviewer Roulette Bot"

_ROLE_LABELS = {
    "codeowner": ("👑", "Code Owner"),
    "team_member": ("🤝", "Team Member"),
    "external": ("🌍", "External Reviewer"),
}


class MattermostError(RuntimeError):
    """Raised when a message cannot be delivered."""


@dataclass
class Field:
    """A field inside a message attachment."""

    title: str = ""
    value: str = ""
    short: bool = False


@dataclass
class Attachment:
    """A message attachment; empty parts are left out of the payload."""

    fallback: str = ""
    color: str = ""
    pretext: str = ""
    author_name: str = ""
    author_link: str = ""
    author_icon: str = ""
    title: str = ""
    title_link: str = ""
    text: str = ""
    fields: List[Field] = field(default_factory=list)
    image_url: str = ""
    thumb_url: str = ""
    footer: str = ""
    footer_icon: str = ""


def _attachment_dict(attachment: Attachment) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for spec in fields(attachment):
        value = getattr(attachment, spec.name)
        if not value:
            continue
        if spec.name == "fields":
            value = [
                {"short": item.short, "title": item.title, "value": item.value} for item in value
            ]
        result[spec.name] = value
    return result


@dataclass
class Message:
    """A webhook message payload."""

    text: str = ""
    channel: str = ""
    username: str = ""
    icon_url: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """The JSON payload, without empty parts."""
        result: Dict[str, Any] = {}
        for name in ("channel", "username", "text", "icon_url"):
            value = getattr(self, name)
            if value:
                result[name] = value
        if self.attachments:
            result["attachments"] = [_attachment_dict(item) for item in self.attachments]
        return result


@dataclass
class PendingMR:
    """A merge request waiting for review."""

    title: str
    url: str
    author: str
    age: Callable[[], timedelta]
    created_at: str = ""
    team: str = ""


@dataclass
class ReviewerSelection:
    """A reviewer picked by the roulette."""

    username: str
    role: str
    active_reviews: int = 0
    team: str = ""


def format_daily_reminder(pending_mrs: Sequence[PendingMR]) -> str:
    """Markdown text listing the pending merge requests with their age."""
    lines = [
        "### 📋 Daily Review Reminder\n\n"
        f"There are **{len(pending_mrs)}** merge requests pending review:\n\n"
    ]
    for mr in pending_mrs:
        hours = mr.age().total_seconds() / 3600
        age_text = f"{hours / 24:.1f} days" if hours > 24 else f"{hours:.1f} hours"
        icon = "⚠️" if hours > 48 else "•"
        lines.append(f"{icon} [{mr.title}]({mr.url}) by @{mr.author} ({age_text} old)\n")
    lines.append("\n_Please review these merge requests when you have time!_ 🙏")
    return "".join(lines)


def format_roulette_result(mr_url: str, selections: Sequence[ReviewerSelection]) -> str:
    """Markdown text announcing the selected reviewers."""
    lines = ["🎲 **Reviewer Roulette Results**\n\n"]
    for selection in selections:
        emoji, role_name = _ROLE_LABELS.get(selection.role, ("👤", selection.role))
        active = (
            f" ({selection.active_reviews} active reviews)" if selection.active_reviews > 0 else ""
        )
        lines.append(f"{emoji} **{role_name}**: @{selection.username}{active}\n")
    lines.append(f"\n[View Merge Request]({mr_url})")
    return "".join(lines)


class MattermostClient:
    """Posts messages to a Mattermost incoming webhook."""

    def __init__(
        self,
        webhook_url: str,
        channel: str = "",
        enabled: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.channel = channel
        self.enabled = enabled
        self.timeout = timeout

    def send_message(self, message: Message) -> bool:
        """Post a message; returns False when the client is disabled.

        A message without a channel is sent to the client's channel.
        """
        if not self.enabled:
            logger.debug("Mattermost is disabled, skipping message")
            return False
        if not message.channel:
            message.channel = self.channel

        payload = json.dumps(message.to_dict(), ensure_ascii=False).encode("utf-8")
        request = urllib.request.Request(
            self.webhook_url,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = response.status
        except urllib.error.HTTPError as exc:
            raise MattermostError(f"mattermost returned status {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise MattermostError(f"failed to send message to Mattermost: {exc}") from exc
        if status != 200:
            raise MattermostError(f"mattermost returned status {status}")

        logger.debug("Sent message to Mattermost channel %s", message.channel)
        return True

    def send_simple_message(self, text: str) -> bool:
        """Post a plain text message."""
        return self.send_message(Message(text=text))

    def send_daily_review_reminder(self, pending_mrs: Sequence[PendingMR]) -> bool:
        """Post the daily reminder; nothing is sent when no MR is pending."""
        if not pending_mrs:
            logger.debug("No pending MRs, skipping daily reminder")
            return False
        return self.send_message(
            Message(username=BOT_USERNAME, text=format_daily_reminder(pending_mrs))
        )

    def send_roulette_result(
        self,
        project_id: Optional[int],
        mr_iid: Optional[int],
        mr_url: str,
        selections: Sequence[ReviewerSelection],
    ) -> bool:
        """Post the reviewers chosen for a merge request."""
        if not self.enabled:
            return False
        return self.send_simple_message(format_roulette_result(mr_url, selections))