"""AgentDuty live feed TUI application."""

import logging
from typing import Optional

from textual import events, on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Input, Static

from .client import AgentDutyClient
from .errors import AgentDutyError
from .feed import FeedModel, FeedState, Mutation
from .models import Notification
from .ui import APP_CSS, MIN_SPLIT_WIDTH, FeedList, NotificationDetail

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 3.0  # seconds between feed fetches

# Actions that only make sense while browsing the list
BROWSING_ACTIONS = {
    "cursor_up",
    "cursor_down",
    "compose",
    "skip",
    "snooze",
    "archive",
    "archive_all",
}


class FeedApp(App):
    """Live feed of pending notifications with optimistic actions."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
        Binding("up", "cursor_up", "Up", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("down", "cursor_down", "Down", show=False),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("enter", "compose", "Reply"),
        Binding("a", "archive", "Archive"),
        Binding("A", "archive_all", "Archive All"),
        Binding("s", "skip", "Skip"),
        Binding("z", "snooze", "Snooze"),
        Binding("escape", "cancel", "Cancel", show=False),
    ] + [
        Binding(str(n), f"digit({n})", f"Option {n}", show=False)
        for n in range(1, 10)
    ]

    def __init__(self, client: AgentDutyClient, refresh_interval: float = REFRESH_INTERVAL):
        super().__init__()
        self.client = client
        self.refresh_interval = refresh_interval
        self.model = FeedModel()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal(id="panes"):
            with Vertical(id="list-container"):
                yield Static("[bold]Pending[/]", id="list-header", classes="list-header")
                yield FeedList(id="feed-list")
            with Vertical(id="detail-container"):
                yield NotificationDetail(id="detail-panel")
        yield Static("", id="error-bar")
        yield Input(placeholder="Type your response... (Enter to send, Escape to cancel)", id="reply-input")
        yield Static("", id="status-bar")
        yield Footer()

    def on_mount(self):
        """Start the refresh cycle."""
        self.title = "AgentDuty Feed"
        self.screen.set_class(self.size.width < MIN_SPLIT_WIDTH, "single")
        self._refresh_view()
        self._refresh_feed()

    def on_resize(self, event: events.Resize) -> None:
        """Switch between split-pane and single-column layouts."""
        self.screen.set_class(event.size.width < MIN_SPLIT_WIDTH, "single")
        try:
            self._refresh_view()
        except NoMatches:
            # Resized before the widgets were mounted
            pass

    def check_action(self, action: str, parameters: tuple) -> Optional[bool]:
        """Disable list actions while composing or picking a snooze duration."""
        if action in BROWSING_ACTIONS and self.model.state is not FeedState.BROWSING:
            return False
        if action == "digit" and self.model.state is FeedState.COMPOSING:
            return False
        return True

    # -- refresh cycle --

    @work(thread=True, exclusive=True, group="refresh")
    def _refresh_feed(self):
        """Fetch the active feed in the background."""
        try:
            items = self.client.fetch_active_feed()
        except AgentDutyError as e:
            self.call_from_thread(self._on_feed_refreshed, None, e)
            return
        self.call_from_thread(self._on_feed_refreshed, items, None)

    def _on_feed_refreshed(self, items: Optional[list[Notification]], error: Optional[Exception]):
        """Apply a fetch result and schedule the next one."""
        if error is not None:
            logger.info(f"Feed refresh failed: {error}")
            self.model.refresh_failed(error)
        else:
            self.model.apply_refresh(items or [])
            reply = self.query_one("#reply-input", Input)
            if self.model.state is not FeedState.COMPOSING and reply.has_class("visible"):
                self._close_reply()
        self._refresh_view()
        self.set_timer(self.refresh_interval, self._refresh_feed)

    # -- mutations --

    def _dispatch(self, mutation: Optional[Mutation]) -> None:
        if mutation is not None:
            self._send_mutation(mutation)
        self._refresh_view()

    @work(thread=True, group="mutations")
    def _send_mutation(self, mutation: Mutation):
        """Send one optimistic change; the result comes back as an event."""
        error: Optional[Exception] = None
        try:
            mutation.send(self.client)
        except AgentDutyError as e:
            error = e
        self.call_from_thread(self._on_mutation_finished, mutation, error)

    def _on_mutation_finished(self, mutation: Mutation, error: Optional[Exception]):
        self.model.complete(mutation, error)
        if error is not None:
            self.notify(f"{mutation.kind.value} failed: {error}", severity="error", timeout=3)
        self._refresh_view()

    # -- rendering --

    def _refresh_view(self):
        """Redraw every widget from the model."""
        model = self.model
        self.query_one("#feed-list", FeedList).show(model)
        self.query_one("#detail-panel", NotificationDetail).show(model)

        visible = len(model.visible_items())
        self.sub_title = f"{visible} pending"
        self.query_one("#list-header", Static).update(f"[bold]Pending[/] [dim]({visible})[/]")

        error_bar = self.query_one("#error-bar", Static)
        if model.error:
            error_bar.update(f"Error: {model.error}")
            error_bar.add_class("visible")
        else:
            error_bar.remove_class("visible")

        self.query_one("#status-bar", Static).update(model.status)

    # -- actions --

    def action_cursor_up(self):
        self.model.move_up()
        self._refresh_view()

    def action_cursor_down(self):
        self.model.move_down()
        self._refresh_view()

    def action_digit(self, number: int):
        """Option number while browsing, duration while snoozing."""
        self._dispatch(self.model.press_digit(number))

    def action_skip(self):
        self.model.toggle_skip()
        self._refresh_view()

    def action_snooze(self):
        self.model.begin_snooze()
        self._refresh_view()

    def action_archive(self):
        self._dispatch(self.model.archive())

    def action_archive_all(self):
        self._dispatch(self.model.archive_all())

    def action_compose(self):
        """Open the reply box for the focused notification."""
        if not self.model.begin_compose():
            return
        reply = self.query_one("#reply-input", Input)
        reply.value = ""
        reply.add_class("visible")
        reply.focus()
        self._refresh_view()

    def action_cancel(self):
        """Leave reply or snooze mode without sending anything."""
        self.model.cancel()
        self._close_reply()
        self._refresh_view()

    def _close_reply(self):
        reply = self.query_one("#reply-input", Input)
        reply.value = ""
        reply.remove_class("visible")
        self.set_focus(None)

    @on(Input.Submitted, "#reply-input")
    def on_reply_submitted(self, event: Input.Submitted):
        """Send the typed reply."""
        mutation = self.model.submit_reply(event.value)
        if self.model.state is FeedState.BROWSING:
            self._close_reply()
        self._dispatch(mutation)
