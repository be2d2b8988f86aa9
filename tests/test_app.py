"""Tests for the feed app, driven through Textual's test pilot."""

import asyncio

from agentduty.app import FeedApp
from agentduty.errors import TransportError
from agentduty.feed import FeedState
from agentduty.models import Notification
from agentduty.ui import APP_CSS, LIST_PANEL_WIDTH


class FakeFeedClient:
    """Serves a fixed feed; archive can be told to fail."""

    def __init__(self, items, fail_archive=False):
        self.items = list(items)
        self.fail_archive = fail_archive
        self.archived = []
        self.replies = []

    def fetch_active_feed(self):
        return list(self.items)

    def archive(self, notification_id):
        self.archived.append(notification_id)
        if self.fail_archive:
            raise TransportError("http 500: archive failed")

    def submit_response(self, notification_id, text=None, selected_option=None):
        self.replies.append((notification_id, text, selected_option))


def feed_items():
    return [
        Notification(id="a", short_code="A", message="Deploy to prod?"),
        Notification(id="b", short_code="B", message="Tests are flaky"),
    ]


def run_app(client, keys, size=(120, 30)):
    """Start the app, let the first refresh land, press keys, return the model."""

    async def scenario():
        app = FeedApp(client, refresh_interval=60)
        async with app.run_test(size=size) as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            for key in keys:
                await pilot.press(key)
                await app.workers.wait_for_complete()
                await pilot.pause()
            return app.model, app.screen.has_class("single")

    return asyncio.run(scenario())


class TestFeedApp:
    """End-to-end behavior of the feed app."""

    def test_first_refresh_loads_items(self):
        model, _ = run_app(FakeFeedClient(feed_items()), [])
        assert model.loaded
        assert [n.id for n in model.visible_items()] == ["a", "b"]

    def test_failed_archive_rolls_back(self):
        """The worker's failure comes back to the model and the item reappears."""
        client = FakeFeedClient(feed_items(), fail_archive=True)

        model, _ = run_app(client, ["a"])

        assert client.archived == ["a"]
        assert [n.id for n in model.visible_items()] == ["a", "b"]
        assert model.status.startswith("Error:")
        assert model.pending == {}

    def test_successful_archive_hides_item(self):
        client = FakeFeedClient(feed_items())
        model, _ = run_app(client, ["a"])
        assert client.archived == ["a"]
        assert [n.id for n in model.visible_items()] == ["b"]

    def test_typed_reply_is_sent(self):
        client = FakeFeedClient(feed_items())

        model, _ = run_app(client, ["down", "enter", "o", "k", "enter"])

        assert client.replies == [("b", "ok", None)]
        assert model.state is FeedState.BROWSING

    def test_narrow_terminal_uses_single_column(self):
        _, single = run_app(FakeFeedClient(feed_items()), [], size=(60, 30))
        assert single

    def test_list_panel_width_comes_from_constant(self):
        assert f"$list-width: {LIST_PANEL_WIDTH};" in APP_CSS
        assert "width: $list-width;" in APP_CSS
