"""
App Controller - high-level automation for popular apps
=======================================================

Each method is a complete workflow the agent calls as a single tool:

    agent tool call "facebook.post"
        -> AppController.facebook_post()
            -> open Facebook
            -> find "Bạn đang nghĩ gì?" / "What's on your mind?"
            -> tap, type content, tap "Đăng" / "Post"

Labels are matched in Vietnamese first, then English. They track the
current app builds and break when the apps change their copy.
"""

import logging

from ..core.secure_logging import preview_text, sanitize_for_log
from .engine import StepKind, Workflow, WorkflowEngine, WorkflowResult, WorkflowStep

logger = logging.getLogger(__name__)

FACEBOOK_PACKAGE = "com.facebook.katana"
MESSENGER_PACKAGE = "com.facebook.orca"
ZALO_PACKAGE = "com.zing.zalo"

FACEBOOK_COMPOSER_LABELS = ["Bạn đang nghĩ gì", "What's on your mind", "Viết gì đó"]
FACEBOOK_POST_LABELS = ["Đăng", "Post"]
FACEBOOK_COMMENT_LABELS = ["Bình luận", "Comment"]
MESSENGER_INPUT_HINTS = ["Aa", "Message", "Nhắn tin"]
ZALO_INPUT_HINTS = ["Nhắn tin", "Tin nhắn"]
SEND_LABELS = ["Gửi", "Send"]


class AppController:
    """Named app workflows on top of a ``WorkflowEngine``."""

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine
        self.delays = engine.delays

    # ─── Facebook ─────────────────────────────────────────────────

    def facebook_post_workflow(self, content: str) -> Workflow:
        d = self.delays
        return Workflow(
            name="facebook.post",
            steps=[
                WorkflowStep(StepKind.OPEN_APP, "open Facebook", [FACEBOOK_PACKAGE]),
                WorkflowStep(StepKind.CLICK_BY_TEXT, "find post composer field", FACEBOOK_COMPOSER_LABELS,
                             delay_before=d.app_launch),
                WorkflowStep(StepKind.TYPE_FOCUSED, "type into post field", text=content,
                             delay_before=d.screen_transition),
                WorkflowStep(StepKind.CLICK_BY_TEXT, "find Post button", FACEBOOK_POST_LABELS,
                             delay_before=d.after_typing),
            ],
            success_message=f"Posted to Facebook: {preview_text(content)}",
        )

    async def facebook_post(self, content: str) -> WorkflowResult:
        return await self.engine.run(self.facebook_post_workflow(content))

    def facebook_comment_workflow(self, comment: str) -> Workflow:
        d = self.delays
        return Workflow(
            name="facebook.comment",
            steps=[
                WorkflowStep(StepKind.CLICK_BY_TEXT, "find Comment button", FACEBOOK_COMMENT_LABELS),
                WorkflowStep(StepKind.TYPE_FOCUSED, "type comment", text=comment,
                             delay_before=d.composer_open),
                WorkflowStep(StepKind.PRESS_ENTER, "submit comment", required=False,
                             delay_before=d.before_send),
            ],
            success_message=f"Commented on Facebook: {preview_text(comment)}",
        )

    async def facebook_comment(self, comment: str) -> WorkflowResult:
        return await self.engine.run(self.facebook_comment_workflow(comment))

    # ─── Messenger ────────────────────────────────────────────────

    def messenger_reply_workflow(self, contact_name: str, message: str) -> Workflow:
        d = self.delays
        contact = sanitize_for_log(contact_name, 80)
        return Workflow(
            name="messenger.reply",
            steps=[
                WorkflowStep(StepKind.OPEN_APP, "open Messenger", [MESSENGER_PACKAGE]),
                WorkflowStep(StepKind.CLICK_BY_TEXT, f"find conversation: {contact}", [contact_name],
                             delay_before=d.app_launch),
                WorkflowStep(StepKind.TYPE_INTO_FIELD, "type into message field", MESSENGER_INPUT_HINTS,
                             text=message, delay_before=d.screen_transition, fallback=StepKind.TYPE_FOCUSED),
                WorkflowStep(StepKind.CLICK_BY_TEXT, "send message", SEND_LABELS,
                             delay_before=d.before_send, fallback=StepKind.PRESS_ENTER),
            ],
            success_message=f"Sent to {contact}: {preview_text(message)}",
        )

    async def messenger_reply(self, contact_name: str, message: str) -> WorkflowResult:
        return await self.engine.run(self.messenger_reply_workflow(contact_name, message))

    async def messenger_read_messages(self, limit: int = 10) -> WorkflowResult:
        """Recent messages of the conversation currently open in Messenger."""
        return await self.engine.read_transcript(MESSENGER_PACKAGE, limit=limit, app_label="Messenger")

    # ─── Zalo ─────────────────────────────────────────────────────

    def zalo_send_message_workflow(self, contact_name: str, message: str) -> Workflow:
        d = self.delays
        contact = sanitize_for_log(contact_name, 80)
        return Workflow(
            name="zalo.send",
            steps=[
                WorkflowStep(StepKind.OPEN_APP, "open Zalo", [ZALO_PACKAGE]),
                WorkflowStep(StepKind.CLICK_BY_TEXT, f"find contact: {contact}", [contact_name],
                             delay_before=d.app_launch),
                WorkflowStep(StepKind.TYPE_INTO_FIELD, "type message", ZALO_INPUT_HINTS,
                             text=message, delay_before=d.screen_transition, fallback=StepKind.TYPE_FOCUSED),
                WorkflowStep(StepKind.CLICK_BY_TEXT, "send message", ["Gửi"], required=False,
                             delay_before=d.before_send, fallback=StepKind.PRESS_ENTER),
            ],
            success_message=f"Zalo sent to {contact}: {preview_text(message)}",
        )

    async def zalo_send_message(self, contact_name: str, message: str) -> WorkflowResult:
        return await self.engine.run(self.zalo_send_message_workflow(contact_name, message))

    # ─── Generic app control ──────────────────────────────────────

    async def read_current_screen(self) -> WorkflowResult:
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="screen.read")
        summary = await self.engine.call(self.engine.dispatcher.describe_screen)
        if summary is None:
            return WorkflowResult.unavailable("Cannot read screen", workflow="screen.read")
        return WorkflowResult.ok(summary, workflow="screen.read")

    async def click_element(self, text: str) -> WorkflowResult:
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="screen.click")
        clicked = await self.engine.call(self.engine.dispatcher.click_by_text, text)
        label = sanitize_for_log(text, 80)
        if clicked:
            return WorkflowResult.ok(f"Clicked: {label}", workflow="screen.click", steps_completed=1)
        return WorkflowResult.error(f"Element not found: {label}", workflow="screen.click")

    async def open_app(self, package_name: str) -> WorkflowResult:
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="app.open")
        launched = await self.engine.call(self.engine.dispatcher.launch_app, package_name)
        if launched:
            return WorkflowResult.ok(f"Opened {package_name}", workflow="app.open", steps_completed=1)
        return WorkflowResult.error(f"Cannot open app: {package_name}", workflow="app.open")

    async def open_url(self, url: str) -> WorkflowResult:
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="url.open")
        opened = await self.engine.call(self.engine.dispatcher.open_url, url)
        label = sanitize_for_log(url, 120)
        if opened:
            return WorkflowResult.ok(f"Opened URL: {label}", workflow="url.open", steps_completed=1)
        return WorkflowResult.error(f"Cannot open URL: {label}", workflow="url.open")

    async def navigate(self, action: str) -> WorkflowResult:
        """Global navigation: back, home, recents or notifications."""
        d = self.engine.dispatcher
        handlers = {
            "back": d.press_back,
            "home": d.press_home,
            "recents": d.open_recents,
            "notifications": d.open_notifications,
        }
        handler = handlers.get(action)
        if handler is None:
            return WorkflowResult.error(f"Unknown navigation action: {sanitize_for_log(action, 40)}", workflow="navigate")
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="navigate")
        accepted = await self.engine.call(handler)
        if accepted:
            return WorkflowResult.ok(f"Navigation accepted: {action}", workflow="navigate", steps_completed=1)
        return WorkflowResult.error(f"Navigation rejected: {action}", workflow="navigate")

    async def scroll(self, direction: str = "down") -> WorkflowResult:
        if not self.engine.context.is_bound:
            return WorkflowResult.unavailable(workflow="screen.scroll")
        d = self.engine.dispatcher
        primitive = d.scroll_up if direction == "up" else d.scroll_down
        scrolled = await self.engine.call(primitive)
        if scrolled:
            return WorkflowResult.ok(f"Scrolled {direction}", workflow="screen.scroll", steps_completed=1)
        return WorkflowResult.error("No scrollable element on screen", workflow="screen.scroll")
