import shlex
import subprocess
from types import SimpleNamespace

import pytest

from bizclaw_device.automation.adb_backend import AdbBackend, parse_bounds, quote_input_text
from bizclaw_device.automation.backend import AutomationContext
from bizclaw_device.automation.dispatcher import ActionDispatcher
from bizclaw_device.automation.models import ElementBounds, GlobalAction, NodeAction
from bizclaw_device.automation.tree_reader import ElementTreeReader
from bizclaw_device.core.config import AdbSettings

DUMP = """UI hierchary dumped to: /sdcard/bizclaw_window.xml
<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<hierarchy rotation="0">
  <node index="0" text="" resource-id="" class="android.widget.FrameLayout" package="com.facebook.orca"
        content-desc="" clickable="false" focusable="false" focused="false" scrollable="false"
        long-clickable="false" bounds="[0,0][1080,2400]">
    <node index="0" text="" class="android.widget.LinearLayout" package="com.facebook.orca"
          content-desc="Lan" clickable="true" focusable="true" focused="false" scrollable="false"
          long-clickable="false" bounds="[0,200][1080,360]">
      <node index="0" text="Lan Nguyễn" class="android.widget.TextView" package="com.facebook.orca"
            content-desc="" clickable="false" focusable="false" focused="false" scrollable="false"
            long-clickable="false" bounds="[180,240][600,300]" />
    </node>
    <node index="1" text="" hint="Aa" class="android.widget.EditText" package="com.facebook.orca"
          content-desc="" clickable="true" focusable="true" focused="false" scrollable="false"
          long-clickable="false" bounds="[40,2200][900,2320]" />
  </node>
</hierarchy>
"""


class FakeRunner:
    def __init__(self, outputs=None, returncode=0):
        self.commands = []
        self.outputs = outputs or {}
        self.returncode = returncode

    def __call__(self, command, capture_output, timeout, check):
        self.commands.append(command)
        stdout = b""
        for marker, output in self.outputs.items():
            if marker in " ".join(command):
                stdout = output.encode("utf-8")
        return SimpleNamespace(returncode=self.returncode, stdout=stdout, stderr=b"device offline")

    def shell_commands(self):
        return [c[-1] for c in self.commands if "shell" in c]


def _settings(**overrides):
    values = dict(adb_binary="adb", serial="emulator-5554", command_timeout=5.0,
                  dump_path="/sdcard/bizclaw_window.xml")
    values.update(overrides)
    return AdbSettings(**values)


@pytest.fixture
def runner():
    return FakeRunner({"uiautomator dump": DUMP})


@pytest.fixture
def adb(runner):
    backend = AdbBackend(_settings(), runner=runner)
    yield backend
    backend.close()


class TestHelpers:
    def test_parse_bounds(self):
        assert parse_bounds("[0,200][1080,360]") == ElementBounds(0, 200, 1080, 360)

    def test_parse_bounds_garbage(self):
        assert parse_bounds("nope") == ElementBounds()

    def test_quote_input_text(self):
        assert quote_input_text("hi there") == "hi%sthere"
        assert shlex.split(quote_input_text("a&b; reboot")) == ["a&b;%sreboot"]

    @pytest.mark.parametrize("text, typed", [
        ("I'm here!", "I'm%shere!"),
        ("Hello (world)!", "Hello%s(world)!"),
        ("say \"hi\" \\ $HOME", "say%s\"hi\"%s\\%s$HOME"),
    ])
    def test_quoted_text_reaches_input_unchanged(self, text, typed):
        assert shlex.split(f"input text {quote_input_text(text)}") == ["input", "text", typed]


class TestHierarchy:
    def test_parse_dump_with_preamble(self, adb):
        root = adb.root_in_active_window()

        assert root.package_name == "com.facebook.orca"
        row, field = root.children
        assert row.is_clickable
        assert row.children[0].text == "Lan Nguyễn"
        assert row.children[0].parent is row
        assert field.is_editable
        assert field.hint_text == "Aa"

    def test_serial_is_passed(self, adb, runner):
        adb.root_in_active_window()
        assert runner.commands[0][:3] == ["adb", "-s", "emulator-5554"]
        assert adb.name == "adb:emulator-5554"

    def test_failed_dump_reads_as_no_window(self):
        backend = AdbBackend(_settings(serial=None), runner=FakeRunner(returncode=1))
        assert backend.root_in_active_window() is None

    def test_malformed_dump(self, adb):
        assert adb.parse_hierarchy("<hierarchy><node") is None
        assert adb.parse_hierarchy("ERROR: null root node") is None

    def test_timeout_is_adb_error(self):
        def _timeout(command, **kwargs):
            raise subprocess.TimeoutExpired(command, 5)

        backend = AdbBackend(_settings(), runner=_timeout)
        assert backend.root_in_active_window() is None

    def test_snapshot_through_tree_reader(self, adb, automation_config):
        snapshot = ElementTreeReader(AutomationContext(adb), automation_config).capture()
        assert snapshot.package_name == "com.facebook.orca"
        assert [e.text for e in snapshot.elements if e.text] == ["Lan Nguyễn"]


class TestActions:
    def test_click_taps_center_of_ancestor(self, adb, runner, automation_config):
        dispatcher = ActionDispatcher(AutomationContext(adb), automation_config)

        assert dispatcher.click_by_text("lan nguyễn")

        assert "input tap 540 280" in runner.shell_commands()

    def test_ascii_text_uses_input_text(self, adb, runner):
        field = adb.root_in_active_window().children[1]

        assert field.perform_action(NodeAction.SET_TEXT, {"text": "hi there"})

        assert runner.shell_commands()[-1] == "input text hi%sthere"

    def test_unicode_text_uses_ime_broadcast(self, adb, runner):
        field = adb.root_in_active_window().children[1]
        field.perform_action(NodeAction.SET_TEXT, {"text": "Chào bạn"})
        assert runner.shell_commands()[-1] == "am broadcast -a ADB_INPUT_TEXT --es msg 'Chào bạn'"

    def test_global_back(self, adb, runner):
        assert adb.perform_global_action(GlobalAction.BACK)
        assert runner.shell_commands() == ["input keyevent 4"]

    def test_launch_app(self, adb, runner):
        assert adb.launch_app("com.zing.zalo")
        assert runner.shell_commands() == ["monkey -p com.zing.zalo -c android.intent.category.LAUNCHER 1"]

    def test_failed_command_is_false(self):
        backend = AdbBackend(_settings(), runner=FakeRunner(returncode=1))
        assert backend.open_url("https://example.com") is False

    def test_apostrophe_in_message_stays_one_argument(self, adb, runner):
        field = adb.root_in_active_window().children[1]

        assert field.perform_action(NodeAction.SET_TEXT, {"text": "I'm here!"})

        assert shlex.split(runner.shell_commands()[-1]) == ["input", "text", "I'm%shere!"]

    def test_package_name_cannot_chain_commands(self, adb, runner):
        assert adb.launch_app("com.x; rm -rf /sdcard/DCIM")

        args = shlex.split(runner.shell_commands()[-1])
        assert args[:3] == ["monkey", "-p", "com.x; rm -rf /sdcard/DCIM"]
        assert "rm" not in args

    def test_url_is_quoted(self, adb, runner):
        assert adb.open_url("https://example.com/?a=1&b='2'")

        args = shlex.split(runner.shell_commands()[-1])
        assert args[-1] == "https://example.com/?a=1&b='2'"
