"""Tests for the feed state machine and its text rendering."""

import pytest

from agentduty.errors import TransportError
from agentduty.feed import (
    SNOOZE_CHOICES,
    FeedModel,
    FeedState,
    Mutation,
    MutationKind,
)
from agentduty.models import Notification
from agentduty.ui.widgets import build_card_text, build_detail_text, build_list_text


def item(id, options=(), priority=3, message=None):
    return Notification(
        id=id,
        short_code=id.upper(),
        message=message or f"message {id}",
        priority=priority,
        options=tuple(options),
    )


def ids(model):
    return [n.id for n in model.visible_items()]


@pytest.fixture
def model():
    m = FeedModel()
    m.apply_refresh([item("a"), item("b", options=["yes", "no"]), item("c"), item("d")])
    return m


class TestVisibleOrdering:
    """Active items first, skipped appended, hidden never shown."""

    def test_server_order_by_default(self, model):
        assert ids(model) == ["a", "b", "c", "d"]

    def test_skipping_moves_item_behind_active(self, model):
        model.skipped.add("d")
        model.cursor = 1

        model.toggle_skip()

        assert ids(model) == ["a", "c", "b", "d"]
        assert model.focused_item().id == "c"

    def test_hidden_items_are_not_visible(self, model):
        model.hidden.add("b")
        assert ids(model) == ["a", "c", "d"]

    def test_skip_toggles_back(self, model):
        model.cursor = 0
        model.toggle_skip()
        assert ids(model) == ["b", "c", "d", "a"]
        model.cursor = 3
        model.toggle_skip()
        assert ids(model) == ["a", "b", "c", "d"]

    def test_skip_clamps_cursor_into_active_segment(self, model):
        """Skipping the last active item leaves the cursor on the new last active one."""
        model.cursor = 3
        model.toggle_skip()
        assert ids(model) == ["a", "b", "c", "d"]
        assert model.cursor == 2
        assert model.focused_item().id == "c"

    def test_skip_on_empty_feed_is_noop(self):
        m = FeedModel()
        m.toggle_skip()
        assert m.skipped == set()


class TestCursor:
    """Cursor movement and clamping."""

    def test_move_within_bounds(self, model):
        model.move_up()
        assert model.cursor == 0
        for _ in range(10):
            model.move_down()
        assert model.cursor == 3

    def test_refresh_shrinking_list_clamps_cursor(self, model):
        model.cursor = 3
        model.apply_refresh([item("a")])
        assert model.cursor == 0
        assert model.focused_item().id == "a"

    def test_empty_refresh(self, model):
        model.apply_refresh([])
        assert model.cursor == 0
        assert model.focused_item() is None


class TestRefresh:
    """Reconciling local flags against the server list."""

    def test_hidden_survives_while_server_still_reports_item(self, model):
        model.hidden.add("b")
        model.apply_refresh([item("a"), item("b"), item("c")])
        assert "b" in model.hidden
        assert ids(model) == ["a", "c"]

    def test_hidden_dropped_when_server_no_longer_reports_item(self, model):
        model.hidden.add("b")
        model.apply_refresh([item("a"), item("c")])
        assert model.hidden == set()

    def test_skipped_pruned_with_server_list(self, model):
        model.skipped.add("d")
        model.apply_refresh([item("a")])
        assert model.skipped == set()

    def test_failed_refresh_keeps_list(self, model):
        model.refresh_failed(TransportError("connection refused"))
        assert ids(model) == ["a", "b", "c", "d"]
        assert "connection refused" in model.error

    def test_successful_refresh_clears_error(self, model):
        model.refresh_failed(TransportError("boom"))
        model.apply_refresh([item("a")])
        assert model.error is None


class TestArchive:
    """Optimistic archive with rollback."""

    def test_archive_hides_and_dispatches(self, model):
        model.cursor = 1
        mutation = model.archive()
        assert mutation.kind is MutationKind.ARCHIVE
        assert mutation.notification_id == "b"
        assert ids(model) == ["a", "c", "d"]
        assert mutation.request_id in model.pending

    def test_failed_archive_restores_item_in_place(self, model):
        model.cursor = 1
        mutation = model.archive()

        model.complete(mutation, TransportError("500"))

        assert ids(model) == ["a", "b", "c", "d"]
        assert model.status.startswith("Error:")
        assert model.pending == {}

    def test_successful_archive_stays_hidden_until_refresh(self, model):
        model.cursor = 1
        mutation = model.archive()
        model.complete(mutation)
        assert ids(model) == ["a", "c", "d"]
        model.apply_refresh([item("a"), item("c"), item("d")])
        assert model.hidden == set()

    def test_archive_last_item_moves_cursor(self, model):
        model.cursor = 3
        model.archive()
        assert model.cursor == 2


class TestArchiveAll:
    """Clearing the whole feed."""

    def test_clears_everything(self, model):
        mutation = model.archive_all()
        assert mutation.kind is MutationKind.ARCHIVE_ALL
        assert ids(model) == []
        assert model.cursor == 0

    def test_failure_restores_snapshot(self, model):
        mutation = model.archive_all()
        model.complete(mutation, TransportError("down"))
        assert ids(model) == ["a", "b", "c", "d"]
        assert model.hidden == set()

    def test_refresh_during_request_does_not_resurrect(self, model):
        model.archive_all()
        model.apply_refresh([item("a"), item("b"), item("c"), item("d")])
        assert ids(model) == []

    def test_refresh_with_new_item_during_request(self, model):
        model.archive_all()
        model.apply_refresh([item("a"), item("e")])
        assert ids(model) == ["e"]

    def test_failure_after_refresh_shows_server_list(self, model):
        mutation = model.archive_all()
        model.apply_refresh([item("a"), item("b")])
        model.complete(mutation, TransportError("down"))
        assert ids(model) == ["a", "b"]

    def test_noop_on_empty_feed(self):
        assert FeedModel().archive_all() is None


class TestOptions:
    """Digit keys answer with a numbered option."""

    def test_in_range_option_responds(self, model):
        model.cursor = 1
        mutation = model.press_digit(2)
        assert mutation.kind is MutationKind.RESPOND
        assert mutation.selected_option == "no"
        assert "b" in model.hidden

    def test_out_of_range_option_ignored(self, model):
        model.cursor = 1
        assert model.press_digit(3) is None
        assert model.hidden == set()

    def test_item_without_options_ignores_digits(self, model):
        assert model.press_digit(1) is None


class TestCompose:
    """Free-text replies."""

    def test_submit_reply(self, model):
        model.cursor = 2
        assert model.begin_compose()
        assert model.state is FeedState.COMPOSING

        mutation = model.submit_reply("  ship it  ")

        assert model.state is FeedState.BROWSING
        assert mutation.kind is MutationKind.RESPOND
        assert mutation.notification_id == "c"
        assert mutation.text == "ship it"
        assert "c" in model.hidden

    def test_blank_reply_keeps_composing(self, model):
        model.begin_compose()
        assert model.submit_reply("   ") is None
        assert model.state is FeedState.COMPOSING

    def test_escape_cancels_without_side_effects(self, model):
        model.begin_compose()
        model.cancel()
        assert model.state is FeedState.BROWSING
        assert model.hidden == set()
        assert model.pending == {}

    def test_digits_ignored_while_composing(self, model):
        model.cursor = 1
        model.begin_compose()
        assert model.press_digit(1) is None

    def test_compose_requires_focus(self):
        m = FeedModel()
        assert not m.begin_compose()
        assert m.state is FeedState.BROWSING

    def test_failed_reply_rolls_back(self, model):
        model.begin_compose()
        mutation = model.submit_reply("ok")
        model.complete(mutation, TransportError("timeout"))
        assert ids(model) == ["a", "b", "c", "d"]

    def test_reply_goes_to_item_composed_on(self, model):
        """A refresh that puts a new item above the cursor does not retarget the reply."""
        model.cursor = 0
        model.begin_compose()
        model.apply_refresh([item("new"), item("a"), item("b")])

        mutation = model.submit_reply("yes")

        assert mutation.notification_id == "a"
        assert "new" not in model.hidden

    def test_cursor_follows_item_being_answered(self, model):
        model.cursor = 1
        model.begin_compose()
        model.apply_refresh([item("new"), item("a"), item("b")])
        assert model.focused_item().id == "b"

    def test_compose_ends_when_item_leaves_feed(self, model):
        model.cursor = 0
        model.begin_compose()
        model.apply_refresh([item("b"), item("c")])

        assert model.state is FeedState.BROWSING
        assert model.submit_reply("yes") is None
        assert model.pending == {}


class TestSnooze:
    """Snooze duration picking."""

    def test_pick_duration(self, model):
        model.cursor = 0
        assert model.begin_snooze()
        assert model.state is FeedState.SNOOZE_PICKING

        mutation = model.press_digit(2)

        assert mutation.kind is MutationKind.SNOOZE
        assert mutation.minutes == SNOOZE_CHOICES[1]
        assert model.state is FeedState.BROWSING
        assert "a" in model.hidden

    def test_out_of_range_duration_ignored(self, model):
        model.begin_snooze()
        assert model.press_digit(len(SNOOZE_CHOICES) + 1) is None
        assert model.state is FeedState.SNOOZE_PICKING

    def test_escape_cancels(self, model):
        model.begin_snooze()
        model.cancel()
        assert model.state is FeedState.BROWSING
        assert model.hidden == set()

    def test_snooze_targets_item_picked_before_refresh(self, model):
        model.cursor = 0
        model.begin_snooze()
        model.apply_refresh([item("new"), item("a"), item("b")])

        mutation = model.press_digit(1)

        assert mutation.notification_id == "a"

    def test_snooze_dropped_when_item_leaves_feed(self, model):
        model.cursor = 0
        model.begin_snooze()
        model.apply_refresh([item("b")])

        assert model.state is FeedState.BROWSING
        assert model.press_digit(1) is None
        assert model.hidden == set()


class FakeClient:
    def __init__(self):
        self.calls = []

    def submit_response(self, notification_id, text=None, selected_option=None):
        self.calls.append(("respond", notification_id, text, selected_option))

    def snooze(self, notification_id, minutes):
        self.calls.append(("snooze", notification_id, minutes))

    def archive(self, notification_id):
        self.calls.append(("archive", notification_id))

    def archive_all(self):
        self.calls.append(("archive_all",))
        return 4


class TestMutationSend:
    """Mutations map onto client calls."""

    def test_each_kind(self):
        client = FakeClient()
        Mutation(MutationKind.RESPOND, "n1", text="hi").send(client)
        Mutation(MutationKind.SNOOZE, "n2", minutes=15).send(client)
        Mutation(MutationKind.ARCHIVE, "n3").send(client)
        assert Mutation(MutationKind.ARCHIVE_ALL).send(client) == 4
        assert client.calls == [
            ("respond", "n1", "hi", None),
            ("snooze", "n2", 15),
            ("archive", "n3"),
            ("archive_all",),
        ]

    def test_request_ids_are_unique(self):
        assert Mutation(MutationKind.ARCHIVE_ALL).request_id != Mutation(MutationKind.ARCHIVE_ALL).request_id


class TestRendering:
    """Text builders used by both layouts."""

    def test_loading_before_first_refresh(self):
        assert build_list_text(FeedModel(), 40).plain == "Loading..."

    def test_empty_feed_message(self):
        m = FeedModel()
        m.apply_refresh([])
        assert "No pending notifications" in build_list_text(m, 40).plain

    def test_same_items_at_any_width(self, model):
        """Narrow and wide layouts show the same items in the same order."""
        model.skipped.add("a")
        narrow = build_list_text(model, 20).plain.splitlines()
        wide = build_list_text(model, 120).plain.splitlines()
        assert [line.split()[-1] for line in narrow] == ["B", "C", "D", "A"]
        assert [line.split()[-1] for line in wide] == ["B", "C", "D", "A"]

    def test_cursor_marker_on_focused_card(self, model):
        model.cursor = 2
        lines = build_list_text(model, 60).plain.splitlines()
        assert lines[2].startswith("▶")
        assert not lines[0].startswith("▶")

    def test_card_truncates_long_message(self):
        card = build_card_text(item("x", message="word " * 50), focused=False, skipped=False, width=30)
        assert len(card.plain) <= 30
        assert card.plain.endswith(" X")

    def test_card_collapses_newlines(self):
        card = build_card_text(item("x", message="line one\nline two"), focused=True, skipped=False, width=80)
        assert "\n" not in card.plain

    def test_detail_lists_options(self, model):
        model.cursor = 1
        plain = build_detail_text(model).plain
        assert "[1] yes" in plain
        assert "[2] no" in plain

    def test_detail_without_focus(self):
        assert "No notification selected" in build_detail_text(FeedModel()).plain
