"""UI widgets for the AgentDuty feed TUI.

Widgets only read the FeedModel; the text builders are plain functions so the
same state renders the same way in both layouts.
"""

from typing import Optional

from rich.text import Text
from textual.containers import ScrollableContainer
from textual.widgets import Static

from ..feed import SNOOZE_PROMPT, FeedModel, FeedState
from ..models import Notification
from ..output import truncate

PRIORITY_STYLES = {
    5: "bold red",
    4: "bold dark_orange",
    3: "bold yellow",
    2: "bold blue",
    1: "bold grey62",
}


def priority_style(priority: int) -> str:
    return PRIORITY_STYLES.get(priority, PRIORITY_STYLES[3])


def one_line(text: str) -> str:
    """Collapse whitespace and newlines to single spaces."""
    return " ".join(text.split())


def build_card_text(n: Notification, focused: bool, skipped: bool, width: int) -> Text:
    """One-line card: cursor, priority badge, message, short code."""
    text = Text()
    if focused:
        text.append("▶ ", style="bold cyan")
    else:
        text.append("  ")

    text.append(f"P{n.priority}", style=priority_style(n.priority))
    text.append("  ")

    prefix_width = 6  # cursor(2) + badge(2) + gap(2)
    msg_width = max(5, width - prefix_width - len(n.short_code) - 1)
    msg_style = "dim" if skipped else ("bold white" if focused else "white")
    text.append(truncate(one_line(n.message), msg_width), style=msg_style)
    text.append(" ")
    text.append(n.short_code, style="dim")
    return text


def build_list_text(model: FeedModel, width: int) -> Text:
    """The card list for the current model."""
    visible = model.visible_items()
    if not visible:
        if not model.loaded:
            return Text("Loading...", style="dim")
        return Text("No pending notifications.\nRefreshing every few seconds...", style="dim")

    text = Text()
    for i, n in enumerate(visible):
        if i:
            text.append("\n")
        text.append_text(build_card_text(n, i == model.cursor, model.is_skipped(n.id), width))
    return text


def build_detail_text(model: FeedModel, width: int = 60) -> Text:
    """Full view of the focused notification."""
    n = model.focused_item()
    if n is None:
        return Text("No notification selected", style="dim")

    text = Text()
    text.append(f"Priority {n.priority}", style=priority_style(n.priority))
    text.append(f"  Status: {n.status}\n\n", style="dim")
    text.append(n.message)
    text.append("\n\n")

    meta = f"{n.age()} · {n.short_code}"
    snoozed = n.snoozed_until_time
    if snoozed:
        meta += f" · snoozed until {snoozed.astimezone().strftime('%H:%M')}"
    if model.is_skipped(n.id):
        meta += " · skipped"
    text.append(meta + "\n", style="dim")

    if n.options:
        text.append("\nOptions\n", style="bold blue")
        for i, option in enumerate(n.options, 1):
            text.append(f"  [{i}] {option}\n")

    if n.responses:
        text.append("\nResponses\n", style="bold blue")
        for r in n.responses:
            text.append(f"  {r.channel or '?'}: ", style="dim")
            text.append(f"{r.text or r.selected_option}\n")

    if model.state is FeedState.SNOOZE_PICKING:
        text.append("\nSnooze\n", style="bold blue")
        text.append(f"  {SNOOZE_PROMPT}\n")
    elif model.state is FeedState.COMPOSING:
        text.append("\nReply below\n", style="bold blue")
    return text


class FeedList(Static):
    """Compact list of pending notifications."""

    def show(self, model: FeedModel) -> None:
        self.update(build_list_text(model, self.size.width or 32))


class NotificationDetail(ScrollableContainer, can_focus=False):
    """Scrollable panel with the focused notification."""

    def __init__(self, id: Optional[str] = None):
        super().__init__(id=id)
        self._body = Static("", markup=False)
        self._shown_id: Optional[str] = None

    def compose(self):
        yield self._body

    def show(self, model: FeedModel) -> None:
        self._body.update(build_detail_text(model, self.size.width or 60))
        focused = model.focused_item()
        focused_id = focused.id if focused else None
        # Only jump back to the top when a different notification is shown
        if focused_id != self._shown_id:
            self._shown_id = focused_id
            self.scroll_home(animate=False)
