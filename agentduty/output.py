"""Plain-text and JSON output for CLI commands."""

import json
import sys
from typing import Iterable

from .models import ApiKey, Notification, Response, ResponseWithContext, SessionHistory


def truncate(text: str, max_len: int = 50) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def to_jsonable(value):
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def print_json(value) -> None:
    print(json.dumps(to_jsonable(value), indent=2))


def print_error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def print_notification_created(n: Notification) -> None:
    print(f"Notification sent: {n.short_code}")
    print(f"Priority: {n.priority} | Status: {n.status}")
    print(f"Poll: agentduty poll {n.short_code}")


def print_response(r: Response) -> None:
    print(f"Response: {r.text}")
    if r.selected_option:
        print(f"Selected: {r.selected_option}")
    print(f"Channel:  {r.channel}")


def print_notification(n: Notification) -> None:
    print(f"ID:       {n.short_code}")
    print(f"Status:   {n.status}")
    print(f"Priority: {n.priority}")
    print(f"Message:  {n.message}")
    if n.options:
        print(f"Options:  {', '.join(n.options)}")
    if n.first_response:
        print()
        print_response(n.first_response)


def print_response_with_context(r: ResponseWithContext) -> None:
    print(f"[{r.short_code} #{r.response_index}] {r.response.created_at}")
    print_response(r.response)
    print()


def print_notifications(notifications: Iterable[Notification]) -> None:
    notifications = list(notifications)
    if not notifications:
        print("No active notifications.")
        return

    print(f"{'ID':<8}  {'PRIORITY':<8}  {'MESSAGE':<50}  {'STATUS':<10}  AGE")
    for n in notifications:
        message = truncate(n.message.replace("\n", " "), 50)
        print(f"{n.short_code:<8}  {n.priority:<8}  {message:<50}  {n.status:<10}  {n.age()}")


def print_session_history(history: SessionHistory) -> None:
    print(f"Session: {history.session_id}")
    if history.workspace:
        print(f"Workspace: {history.workspace}")
    print("=" * 60)

    if not history.notifications:
        print("No notifications in this session.")
        return

    for n in history.notifications:
        print()
        print(f"┌─ {n.short_code} ({n.status}) {n.age()}")
        for line in n.message.split("\n"):
            print(f"│ {line}")
        if n.options:
            print(f"│ Options: {', '.join(n.options)}")
        for i, r in enumerate(n.responses, 1):
            reply = r.text or r.selected_option
            print(f"├─ #{i} via {r.channel or '?'}: {reply}")
        print("└" + "─" * 40)


def print_api_key_created(k: ApiKey) -> None:
    print("API key created. Save it now, it will not be shown again.")
    print()
    print(k.key)
    print()
    print(f"Use: export AGENTDUTY_API_KEY='{k.key}'")


def print_api_keys(keys: Iterable[ApiKey]) -> None:
    keys = list(keys)
    if not keys:
        print("No API keys.")
        return

    print(f"{'ID':<24}  {'NAME':<16}  {'PREFIX':<12}  {'LAST USED':<24}  CREATED")
    for k in keys:
        print(f"{k.id:<24}  {k.name:<16}  {k.prefix + '…':<12}  {k.last_used_at or 'never':<24}  {k.created_at}")
