"""Notification data model shared by the CLI, poller and feed."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# Lower number = lower severity
PRIORITY_MIN = 1
PRIORITY_MAX = 5
DEFAULT_PRIORITY = 3

STATUS_PENDING = "pending"
STATUS_DELIVERED = "delivered"
STATUS_RESPONDED = "responded"
STATUS_ARCHIVED = "archived"
STATUS_SNOOZED = "snoozed"

AWAITING_STATUSES = (STATUS_PENDING, STATUS_DELIVERED)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the service, or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_age(created: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Short relative age like "now", "5m ago", "3h ago", "2d ago"."""
    if created is None:
        return "?"
    now = now or datetime.now(timezone.utc)
    seconds = (now - created).total_seconds()
    if seconds < 60:
        return "now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


@dataclass(frozen=True)
class Response:
    """A human reply to a notification."""

    text: str = ""
    selected_option: str = ""
    channel: str = ""
    created_at: str = ""  # ISO-8601, compared lexically

    @classmethod
    def from_dict(cls, data: dict) -> "Response":
        return cls(
            text=data.get("text") or "",
            selected_option=data.get("selectedOption") or "",
            channel=data.get("channel") or "",
            created_at=data.get("createdAt") or "",
        )

    def to_dict(self) -> dict:
        result = {"text": self.text, "channel": self.channel, "createdAt": self.created_at}
        if self.selected_option:
            result["selectedOption"] = self.selected_option
        return result


@dataclass(frozen=True)
class Notification:
    """A message from the agent, plus whatever the human said back."""

    # Identity
    id: str
    short_code: str = ""

    # Content
    message: str = ""
    priority: int = DEFAULT_PRIORITY
    status: str = STATUS_PENDING
    options: tuple[str, ...] = ()

    # Timing
    created_at: str = ""
    snoozed_until: Optional[str] = None

    responses: tuple[Response, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        responses = [Response.from_dict(r) for r in data.get("responses") or []]
        # Older servers return a single "response" object
        if not responses and data.get("response"):
            responses = [Response.from_dict(data["response"])]
        return cls(
            id=data.get("id") or "",
            short_code=data.get("shortCode") or "",
            message=data.get("message") or "",
            priority=data.get("priority") or DEFAULT_PRIORITY,
            status=data.get("status") or STATUS_PENDING,
            options=tuple(data.get("options") or ()),
            created_at=data.get("createdAt") or "",
            snoozed_until=data.get("snoozedUntil"),
            responses=tuple(responses),
        )

    def to_dict(self) -> dict:
        result = {
            "id": self.id,
            "shortCode": self.short_code,
            "status": self.status,
            "priority": self.priority,
            "message": self.message,
            "createdAt": self.created_at,
        }
        if self.options:
            result["options"] = list(self.options)
        if self.snoozed_until:
            result["snoozedUntil"] = self.snoozed_until
        if self.responses:
            result["responses"] = [r.to_dict() for r in self.responses]
        return result

    @property
    def created_time(self) -> Optional[datetime]:
        return parse_timestamp(self.created_at)

    @property
    def snoozed_until_time(self) -> Optional[datetime]:
        return parse_timestamp(self.snoozed_until)

    @property
    def first_response(self) -> Optional[Response]:
        return self.responses[0] if self.responses else None

    def age(self, now: Optional[datetime] = None) -> str:
        return format_age(self.created_time, now)


@dataclass(frozen=True)
class ResponseWithContext:
    """A response together with the notification it answers."""

    response: Response
    short_code: str
    response_index: int  # 1-based within the notification

    def to_dict(self) -> dict:
        return {
            "response": self.response.to_dict(),
            "shortCode": self.short_code,
            "responseIndex": self.response_index,
        }


@dataclass(frozen=True)
class SessionHistory:
    """All notifications sent under one session key."""

    session_id: str
    workspace: str = ""
    notifications: tuple[Notification, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "SessionHistory":
        return cls(
            session_id=data.get("sessionId") or "",
            workspace=data.get("workspace") or "",
            notifications=tuple(Notification.from_dict(n) for n in data.get("notifications") or []),
        )

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "workspace": self.workspace,
            "notifications": [n.to_dict() for n in self.notifications],
        }

    def latest_response_time(self) -> str:
        """Most recent response timestamp in the session ("" when none)."""
        latest = ""
        for notification in self.notifications:
            for response in notification.responses:
                if response.created_at > latest:
                    latest = response.created_at
        return latest

    def responses_after(self, watermark: str) -> list[ResponseWithContext]:
        """Responses strictly newer than the watermark, oldest first.

        Ties keep server order (sorted() is stable).
        """
        return collect_responses_after(self.notifications, watermark)


def collect_responses_after(notifications, watermark: str) -> list[ResponseWithContext]:
    """Responses across notifications with created_at > watermark, oldest first."""
    found = []
    for notification in notifications:
        for i, response in enumerate(notification.responses, 1):
            if response.created_at > watermark:
                found.append(ResponseWithContext(
                    response=response,
                    short_code=notification.short_code,
                    response_index=i,
                ))
    return sorted(found, key=lambda r: r.response.created_at)


@dataclass(frozen=True)
class ApiKey:
    """A long-lived API key. The secret is only present right after creation."""

    id: str
    name: str = ""
    prefix: str = ""
    key: str = ""
    last_used_at: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ApiKey":
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            prefix=data.get("keyPrefix") or data.get("prefix") or "",
            key=data.get("key") or "",
            last_used_at=data.get("lastUsedAt"),
            created_at=data.get("createdAt") or "",
        )

    def to_dict(self) -> dict:
        result = {"id": self.id, "prefix": self.prefix}
        if self.key:
            result["key"] = self.key
        if self.name:
            result["name"] = self.name
            result["lastUsedAt"] = self.last_used_at
            result["createdAt"] = self.created_at
        return result
