"""State machine behind the live notification feed.

The model is plain synchronous Python: key handlers and result callbacks
mutate it, and anything that needs the network is returned as a Mutation for
the caller to dispatch. The Textual app runs every call on its one event loop,
so no locking is needed here.
"""

import enum
import itertools
from dataclasses import dataclass, field
from typing import Callable, Optional

from .models import Notification

SNOOZE_CHOICES = (5, 15, 60, 240)  # minutes, picked with keys 1-4


def snooze_label(minutes: int) -> str:
    return f"{minutes // 60}h" if minutes >= 60 else f"{minutes}m"


SNOOZE_PROMPT = "  ".join(
    f"[{i}] {snooze_label(m)}" for i, m in enumerate(SNOOZE_CHOICES, 1)
) + "  Esc cancel"


class FeedState(enum.Enum):
    BROWSING = "browsing"
    COMPOSING = "composing"
    SNOOZE_PICKING = "snooze_picking"


class MutationKind(enum.Enum):
    RESPOND = "respond"
    SNOOZE = "snooze"
    ARCHIVE = "archive"
    ARCHIVE_ALL = "archive_all"


_mutation_ids = itertools.count(1)


@dataclass(frozen=True)
class Mutation:
    """A request the feed wants sent to the service."""

    kind: MutationKind
    notification_id: Optional[str] = None
    text: Optional[str] = None
    selected_option: Optional[str] = None
    minutes: Optional[int] = None
    request_id: int = field(default_factory=lambda: next(_mutation_ids))

    def send(self, client) -> object:
        """Perform the request with an AgentDutyClient."""
        if self.kind is MutationKind.RESPOND:
            return client.submit_response(self.notification_id, text=self.text, selected_option=self.selected_option)
        if self.kind is MutationKind.SNOOZE:
            return client.snooze(self.notification_id, self.minutes)
        if self.kind is MutationKind.ARCHIVE:
            return client.archive(self.notification_id)
        return client.archive_all()


@dataclass
class PendingOperation:
    """An optimistic change awaiting server confirmation."""

    mutation: Mutation
    rollback: Callable[["FeedModel"], None]


class FeedModel:
    """Pending notifications plus client-only hidden/skipped flags."""

    def __init__(self):
        self.items: list[Notification] = []
        self.cursor = 0
        self.state = FeedState.BROWSING
        self.loaded = False

        # Client-only flags, never sent to the server
        self.hidden: set[str] = set()
        self.skipped: set[str] = set()

        self.pending: dict[int, PendingOperation] = {}
        # Notification a reply or snooze is aimed at, fixed when the mode starts
        self.target_id: Optional[str] = None
        self.error: Optional[str] = None
        self.status = ""

    # -- derived views --

    def visible_items(self) -> list[Notification]:
        """Active items in server order, then skipped items in server order."""
        active = []
        skipped = []
        for item in self.items:
            if item.id in self.hidden:
                continue
            if item.id in self.skipped:
                skipped.append(item)
            else:
                active.append(item)
        return active + skipped

    def active_count(self) -> int:
        return sum(1 for n in self.items if n.id not in self.hidden and n.id not in self.skipped)

    def focused_item(self) -> Optional[Notification]:
        visible = self.visible_items()
        if 0 <= self.cursor < len(visible):
            return visible[self.cursor]
        return None

    def is_skipped(self, notification_id: str) -> bool:
        return notification_id in self.skipped

    def _clamp_cursor(self) -> None:
        visible = len(self.visible_items())
        if self.cursor >= visible:
            self.cursor = max(0, visible - 1)
        if self.cursor < 0:
            self.cursor = 0

    # -- server results --

    def apply_refresh(self, items: list[Notification]) -> None:
        """Replace the list with the server's and reconcile local flags."""
        self.items = list(items)
        self.loaded = True
        self.error = None
        server_ids = {n.id for n in self.items}
        if self.target_id is not None and self.target_id not in server_ids:
            # The item being answered left the feed
            self._leave_mode()
            self.status = "Notification is no longer pending"
        # Hidden ids the server no longer reports have really left the feed
        self.hidden &= server_ids
        self.skipped &= server_ids
        self._clamp_cursor()
        visible_ids = [n.id for n in self.visible_items()]
        if self.target_id in visible_ids:
            # Keep the item being answered under the cursor
            self.cursor = visible_ids.index(self.target_id)

    def refresh_failed(self, error: Exception) -> None:
        """Remember the error; keep showing the previous list."""
        self.loaded = True
        self.error = str(error)

    def complete(self, mutation: Mutation, error: Optional[Exception] = None) -> None:
        """Record the outcome of a dispatched mutation, rolling back on failure."""
        operation = self.pending.pop(mutation.request_id, None)
        if error is None:
            return
        self.status = f"Error: {error}"
        if operation is not None:
            operation.rollback(self)
            self._clamp_cursor()

    # -- optimistic helpers --

    def _hide(self, notification_id: str, mutation: Mutation) -> Mutation:
        def rollback(model: "FeedModel") -> None:
            model.hidden.discard(notification_id)

        self.hidden.add(notification_id)
        self.pending[mutation.request_id] = PendingOperation(mutation, rollback)
        self._clamp_cursor()
        return mutation

    # -- browsing --

    def move_up(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1

    def move_down(self) -> None:
        if self.cursor < len(self.visible_items()) - 1:
            self.cursor += 1

    def select_option(self, number: int) -> Optional[Mutation]:
        """Answer the focused item with its numbered option (1-based)."""
        item = self.focused_item()
        if item is None or not 1 <= number <= len(item.options):
            return None
        option = item.options[number - 1]
        return self._hide(item.id, Mutation(MutationKind.RESPOND, item.id, selected_option=option))

    def toggle_skip(self) -> None:
        item = self.focused_item()
        if item is None:
            return
        if item.id in self.skipped:
            self.skipped.discard(item.id)
            self.status = f"Unskipped {item.short_code}"
        else:
            self.skipped.add(item.id)
            self.status = f"Skipped {item.short_code}"
            # The item moved behind the active segment; keep the cursor inside it
            active = self.active_count()
            if active > 0 and self.cursor >= active:
                self.cursor = active - 1
        self._clamp_cursor()

    def archive(self) -> Optional[Mutation]:
        item = self.focused_item()
        if item is None:
            return None
        self.status = f"Archived {item.short_code}"
        return self._hide(item.id, Mutation(MutationKind.ARCHIVE, item.id))

    def archive_all(self) -> Optional[Mutation]:
        if not self.visible_items():
            return None
        snapshot = list(self.items)
        archived_ids = {n.id for n in snapshot}

        def rollback(model: "FeedModel") -> None:
            model.hidden.clear()
            # Nothing refreshed in the meantime: put the old list back
            if not model.items:
                model.items = snapshot

        mutation = Mutation(MutationKind.ARCHIVE_ALL)
        self.items = []
        # Keep archived ids hidden so a refresh racing the request cannot resurrect them
        self.hidden = set(archived_ids)
        self.cursor = 0
        self.status = f"Archived {len(snapshot)} notifications"
        self.pending[mutation.request_id] = PendingOperation(mutation, rollback)
        return mutation

    # -- composing --

    def _target(self) -> Optional[Notification]:
        for item in self.items:
            if item.id == self.target_id and item.id not in self.hidden:
                return item
        return None

    def _leave_mode(self) -> None:
        self.state = FeedState.BROWSING
        self.target_id = None

    def begin_compose(self) -> bool:
        item = self.focused_item()
        if item is None:
            return False
        self.state = FeedState.COMPOSING
        self.target_id = item.id
        self.status = f"Replying to {item.short_code} · Enter to send · Esc to cancel"
        return True

    def submit_reply(self, text: str) -> Optional[Mutation]:
        text = text.strip()
        if self.state is not FeedState.COMPOSING or not text:
            return None
        item = self._target()
        self._leave_mode()
        self.status = ""
        if item is None:
            return None
        return self._hide(item.id, Mutation(MutationKind.RESPOND, item.id, text=text))

    # -- snoozing --

    def begin_snooze(self) -> bool:
        item = self.focused_item()
        if item is None:
            return False
        self.state = FeedState.SNOOZE_PICKING
        self.target_id = item.id
        self.status = f"Snooze {item.short_code}: {SNOOZE_PROMPT}"
        return True

    def pick_snooze(self, number: int) -> Optional[Mutation]:
        if self.state is not FeedState.SNOOZE_PICKING or not 1 <= number <= len(SNOOZE_CHOICES):
            return None
        item = self._target()
        self._leave_mode()
        if item is None:
            return None
        minutes = SNOOZE_CHOICES[number - 1]
        self.status = f"Snoozed {item.short_code} for {snooze_label(minutes)}"
        return self._hide(item.id, Mutation(MutationKind.SNOOZE, item.id, minutes=minutes))

    # -- shared --

    def press_digit(self, number: int) -> Optional[Mutation]:
        """Digit keys mean snooze duration while picking, else option number."""
        if self.state is FeedState.SNOOZE_PICKING:
            return self.pick_snooze(number)
        if self.state is FeedState.BROWSING:
            return self.select_option(number)
        return None

    def cancel(self) -> None:
        """Escape: back to browsing with no side effects."""
        if self.state is not FeedState.BROWSING:
            self._leave_mode()
            self.status = ""
