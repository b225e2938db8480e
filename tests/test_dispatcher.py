from bizclaw_device.automation.backend import AutomationContext
from bizclaw_device.automation.dispatcher import ActionDispatcher
from bizclaw_device.automation.models import GlobalAction, NodeAction

from tests.conftest_fake_device import FakeBackend, FakeNode, button, edit_field, text_node


def _dispatcher(root, automation_config, **backend_kwargs):
    backend = FakeBackend(root, **backend_kwargs)
    return ActionDispatcher(AutomationContext(backend), automation_config), backend


class TestClickByText:
    def test_clicks_clickable_ancestor_three_levels_up(self, automation_config):
        label = text_node("Lan Nguyen")
        row = FakeNode(clickable=True, children=[
            FakeNode(children=[FakeNode(children=[label])]),
        ])
        dispatcher, _ = _dispatcher(FakeNode(children=[row]), automation_config)

        assert dispatcher.click_by_text("Lan Nguyen") is True
        assert row.action_kinds() == [NodeAction.CLICK]
        assert label.actions == []

    def test_matching_is_case_insensitive_substring(self, automation_config):
        target = button("What's on your mind?")
        dispatcher, _ = _dispatcher(FakeNode(children=[target]), automation_config)
        assert dispatcher.click_by_text("what's on your mind") is True

    def test_first_match_wins(self, automation_config):
        first, second = button("Send"), button("Send")
        dispatcher, _ = _dispatcher(FakeNode(children=[first, second]), automation_config)

        assert dispatcher.click_by_text("Send")
        assert first.action_kinds() == [NodeAction.CLICK]
        assert second.actions == []

    def test_falls_through_to_next_candidate_when_no_clickable_ancestor(self, automation_config):
        orphan = text_node("Post")
        real = button("Post")
        dispatcher, _ = _dispatcher(FakeNode(children=[orphan, real]), automation_config)

        assert dispatcher.click_by_text("Post")
        assert real.action_kinds() == [NodeAction.CLICK]

    def test_rejected_click_tries_next_ancestor(self, automation_config):
        inner = button("Gửi", accept=False)
        outer = FakeNode(clickable=True, children=[inner])
        dispatcher, _ = _dispatcher(FakeNode(children=[outer]), automation_config)

        assert dispatcher.click_by_text("Gửi")
        assert outer.action_kinds() == [NodeAction.CLICK]

    def test_no_match_returns_false(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(children=[button("Cancel")]), automation_config)
        assert dispatcher.click_by_text("Post") is False

    def test_unbound_fails_without_side_effects(self, automation_config):
        dispatcher = ActionDispatcher(AutomationContext(), automation_config)
        assert dispatcher.click_by_text("Post") is False
        assert dispatcher.find_by_text("Post") == []


class TestTyping:
    def test_type_into_field_mutates_only_matching_field(self, automation_config):
        search = edit_field(hint="Search")
        message = edit_field(hint="Aa")
        dispatcher, _ = _dispatcher(FakeNode(children=[search, message]), automation_config)

        assert dispatcher.type_into_field("aa", "Xin chào") is True
        assert message.text == "Xin chào"
        assert message.action_kinds() == [NodeAction.FOCUS, NodeAction.CLICK, NodeAction.SET_TEXT]
        assert search.actions == []
        assert search.text == ""

    def test_type_into_field_without_match_mutates_nothing(self, automation_config):
        search = edit_field(hint="Search")
        dispatcher, _ = _dispatcher(FakeNode(children=[search]), automation_config)

        assert dispatcher.type_into_field("Message", "hello") is False
        assert search.actions == []

    def test_type_into_field_is_fail_fast_on_first_match(self, automation_config):
        stubborn = edit_field(hint="Message", accept=False)
        backup = edit_field(hint="Message")
        dispatcher, _ = _dispatcher(FakeNode(children=[stubborn, backup]), automation_config)

        assert dispatcher.type_into_field("Message", "hello") is False
        assert backup.actions == []

    def test_type_text_targets_focused_field(self, automation_config):
        other = edit_field(hint="Search")
        focused = edit_field(hint="Comment", focused=True)
        dispatcher, _ = _dispatcher(FakeNode(children=[other, focused]), automation_config)

        assert dispatcher.type_text("Great post") is True
        assert focused.text == "Great post"
        assert other.text == ""

    def test_type_text_falls_back_to_first_editable(self, automation_config):
        first = edit_field(hint="Write something")
        dispatcher, _ = _dispatcher(FakeNode(children=[text_node("Title"), first]), automation_config)

        assert dispatcher.type_text("hello")
        assert first.text == "hello"

    def test_type_text_without_editable_fails(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(children=[text_node("Title")]), automation_config)
        assert dispatcher.type_text("hello") is False

    def test_press_enter_uses_ime_action(self, automation_config):
        focused = edit_field(hint="Comment", focused=True)
        dispatcher, _ = _dispatcher(FakeNode(children=[focused]), automation_config)

        assert dispatcher.press_enter()
        assert focused.action_kinds() == [NodeAction.IME_ENTER]


class TestScrollAndNavigation:
    def test_scroll_uses_first_scrollable(self, automation_config):
        feed = FakeNode(scrollable=True, children=[text_node("post")])
        dispatcher, _ = _dispatcher(FakeNode(children=[feed]), automation_config)

        assert dispatcher.scroll_down()
        assert dispatcher.scroll_up()
        assert feed.action_kinds() == [NodeAction.SCROLL_FORWARD, NodeAction.SCROLL_BACKWARD]

    def test_scroll_without_scrollable_fails(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(children=[text_node("static")]), automation_config)
        assert dispatcher.scroll_down() is False

    def test_global_actions_reach_backend(self, automation_config):
        dispatcher, backend = _dispatcher(FakeNode(), automation_config)
        assert dispatcher.press_back()
        assert dispatcher.press_home()
        assert dispatcher.open_recents()
        assert dispatcher.open_notifications()
        assert backend.global_actions == [
            GlobalAction.BACK, GlobalAction.HOME, GlobalAction.RECENTS, GlobalAction.NOTIFICATIONS,
        ]

    def test_launch_and_url(self, automation_config):
        dispatcher, backend = _dispatcher(FakeNode(), automation_config)
        assert dispatcher.launch_app("com.zing.zalo")
        assert dispatcher.open_url("https://bizclaw.vn")
        assert backend.launched == ["com.zing.zalo"]
        assert backend.opened_urls == ["https://bizclaw.vn"]


class TestGestures:
    def test_tap_returns_accepted_and_completion(self, automation_config):
        dispatcher, backend = _dispatcher(FakeNode(), automation_config)
        result = dispatcher.tap_at(540, 1200)

        assert result
        assert result.wait(timeout=0.1) is True
        stroke = backend.gestures[0].strokes[0]
        assert stroke.start == (540, 1200)
        assert stroke.is_tap
        assert stroke.duration_ms == 100

    def test_cancelled_gesture_completes_false(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(), automation_config, gesture_mode="cancel")
        result = dispatcher.swipe(500, 1500, 500, 500)

        assert result.accepted
        assert result.done
        assert result.wait() is False

    def test_pending_gesture_is_not_done_until_callback(self, automation_config):
        dispatcher, backend = _dispatcher(FakeNode(), automation_config, gesture_mode="pending")
        result = dispatcher.swipe(500, 1500, 500, 500, duration_ms=250)

        assert result.accepted
        assert not result.done
        backend.pending_callbacks[0](True)
        assert result.wait(timeout=0.1) is True
        assert backend.gestures[0].strokes[0].duration_ms == 250

    def test_wait_times_out_on_pending_gesture(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(), automation_config, gesture_mode="pending")
        result = dispatcher.tap_at(1, 1, wait=True)
        assert result.accepted
        assert result.wait(timeout=0.01) is False

    def test_rejected_gesture(self, automation_config):
        dispatcher, _ = _dispatcher(FakeNode(), automation_config, gesture_mode="reject")
        result = dispatcher.tap_at(1, 1)
        assert not result
        assert result.done
        assert result.wait() is False

    def test_unbound_gesture_is_rejected(self, automation_config):
        result = ActionDispatcher(AutomationContext(), automation_config).tap_at(1, 1)
        assert not result


class TestDescribeScreen:
    def test_lists_kind_labels(self, automation_config):
        root = FakeNode(package="com.facebook.katana", children=[
            text_node("Home"), button("Post"), edit_field(hint="Aa", text="draft"),
        ])
        dispatcher, _ = _dispatcher(root, automation_config)

        assert dispatcher.describe_screen().splitlines() == [
            "App: com.facebook.katana",
            "Elements: 3",
            "---",
            "[TEXT] Home",
            "[BUTTON] Post",
            "[INPUT] draft",
        ]

    def test_unavailable_returns_none(self, automation_config):
        assert ActionDispatcher(AutomationContext(), automation_config).describe_screen() is None
