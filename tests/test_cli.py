import json

import pytest

from bizclaw_device import __main__ as cli
from bizclaw_device.daemon.preferences import PreferenceStore


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)


class TestArguments:
    def test_parse_tool_arguments(self):
        assert cli.parse_tool_arguments(["contact_name=Lan", "message=a=b"]) == {
            "contact_name": "Lan",
            "message": "a=b",
        }

    def test_parse_tool_arguments_rejects_bare_words(self):
        with pytest.raises(ValueError):
            cli.parse_tool_arguments(["Lan"])

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestCommands:
    def test_auto_start_persists(self, capsys, tmp_path):
        assert cli.main(["auto-start", "on"]) == 0

        assert "auto_start_on_boot = True" in capsys.readouterr().out
        prefs_path = tmp_path / "bizclaw_home" / "device_prefs.json"
        assert PreferenceStore(prefs_path).load().auto_start_on_boot is True

    def test_tool_list(self, capsys):
        assert cli.main(["tool", "--list"]) == 0

        names = {tool["name"] for tool in json.loads(capsys.readouterr().out)}
        assert "messenger.reply" in names

    def test_tool_bad_argument(self, capsys):
        assert cli.main(["tool", "screen.click", "Buy"]) == 2

    def test_boot_without_auto_start_exits(self):
        assert cli.main(["boot"]) == 0

    def test_daemon_without_native_library_fails(self, capsys, monkeypatch):
        monkeypatch.setenv("BIZCLAW_MANAGE_PRIORITY", "false")
        assert cli.main(["daemon"]) == 1
        assert "BIZCLAW_NATIVE_LIBRARY" in capsys.readouterr().out
