import pytest

from bizclaw_device.automation.models import FailureKind
from bizclaw_device.workflows.apps import MESSENGER_PACKAGE

from tests.conftest_fake_device import FakeNode, button, edit_field, text_node


class TestToolRegistry:
    def test_standard_tools_are_registered(self, registry):
        assert {
            "facebook.post", "facebook.comment", "messenger.reply", "messenger.read",
            "zalo.send", "screen.read", "screen.click", "screen.scroll",
            "device.navigate", "app.open", "url.open",
        } <= set(registry.names())

    def test_describe_lists_arguments(self, registry):
        described = {tool["name"]: tool for tool in registry.describe()}
        assert described["messenger.reply"]["arguments"] == ["contact_name", "message"]
        assert described["messenger.read"]["optional_arguments"] == {"limit": 10}
        assert described["screen.read"]["mutating"] is False

    @pytest.mark.asyncio
    async def test_invoke_returns_success_and_message_only(self, registry, fake_backend):
        fake_backend.root = FakeNode(package=MESSENGER_PACKAGE, children=[
            button("Lan"), edit_field(hint="Aa"), button("Send"),
        ])

        result = await registry.invoke("messenger.reply", {"contact_name": "Lan", "message": "Hi"})

        assert result == {"success": True, "message": "Sent to Lan: Hi..."}

    @pytest.mark.asyncio
    async def test_unknown_tool_is_failure_not_exception(self, registry):
        result = await registry.invoke("calendar.create", {})
        assert result["success"] is False
        assert "Unknown tool" in result["message"]

    @pytest.mark.asyncio
    async def test_missing_argument(self, registry, fake_backend):
        result = await registry.invoke("messenger.reply", {"contact_name": "Lan"})

        assert result["success"] is False
        assert "message" in result["message"]
        assert fake_backend.launched == []

    @pytest.mark.asyncio
    async def test_blank_argument_counts_as_missing(self, registry):
        result = await registry.invoke("screen.click", {"text": "   "})
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_optional_argument_is_coerced(self, registry, fake_backend):
        fake_backend.root = FakeNode(package=MESSENGER_PACKAGE, children=[
            text_node("one"), text_node("two"), text_node("three"),
        ])

        result = await registry.invoke("messenger.read", {"limit": "2"})

        assert result["message"] == "Messages:\ntwo\nthree"

    @pytest.mark.asyncio
    async def test_invalid_optional_argument(self, registry):
        result = await registry.invoke("messenger.read", {"limit": "many"})
        assert result["success"] is False
        assert "limit" in result["message"]

    @pytest.mark.asyncio
    async def test_handler_exception_is_contained(self, registry, monkeypatch):
        async def _explode(text):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(registry.get("screen.click"), "handler", _explode)
        result = await registry.invoke_result("screen.click", {"text": "Buy"})

        assert result.success is False
        assert result.failure == FailureKind.ERROR
        assert "kaboom" in result.message

    @pytest.mark.asyncio
    async def test_scroll_defaults_to_down(self, registry, fake_backend):
        fake_backend.root = FakeNode(children=[FakeNode(scrollable=True, children=[text_node("row")])])
        result = await registry.invoke("screen.scroll")
        assert result == {"success": True, "message": "Scrolled down"}
