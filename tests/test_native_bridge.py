import json

import pytest

from bizclaw_device.daemon.native_bridge import (
    DaemonConfig,
    DaemonStatus,
    MessageResponse,
    NativeEngine,
    NativeLibrary,
    NativeLibraryError,
)


def _config():
    return DaemonConfig(config_path="/tmp/bizclaw.toml", data_dir="/tmp/data", host="127.0.0.1", port=3001)


class TestDaemonConfig:
    def test_serialises_all_fields(self):
        assert json.loads(_config().to_json()) == {
            "config_path": "/tmp/bizclaw.toml",
            "data_dir": "/tmp/data",
            "host": "127.0.0.1",
            "port": 3001,
        }

    def test_rejects_invalid_port(self):
        with pytest.raises(ValueError):
            DaemonConfig(config_path="c", data_dir="d", port=70000)


class TestNativeEngine:
    def test_start_passes_config_json(self, native_engine, fake_library):
        result = native_engine.start(_config())
        assert result.ok
        assert fake_library.last_config["port"] == 3001

    def test_engine_reported_failure_is_not_ok(self, native_engine, fake_library):
        fake_library.fail_start = "Daemon already running"
        result = native_engine.start(_config())
        assert not result.ok
        assert "Daemon already running" in result.error
        assert native_engine.fault_count == 1

    def test_status_decodes(self, native_engine, fake_library):
        native_engine.start(_config())
        result = native_engine.status()
        assert result.ok
        assert isinstance(result.value, DaemonStatus)
        assert result.value.running is True
        assert result.value.version == "0.3.1"

    def test_malformed_json_is_contained(self, native_engine, fake_library):
        fake_library.status_payload = "{not json"
        result = native_engine.status()
        assert result.ok is False
        assert "JSONDecodeError" in result.error

    def test_exception_inside_library_is_contained(self, native_engine, fake_library):
        fake_library.raise_on["send_message"] = OSError("segfault guard tripped")
        result = native_engine.send_message("hi")
        assert result.ok is False
        assert "segfault guard tripped" in result.error
        assert native_engine.last_error.startswith("OSError")

    def test_send_message(self, native_engine):
        native_engine.start(_config())
        result = native_engine.send_message("xin chào")
        assert result.value == MessageResponse(success=True, response="Echo: xin chào", agent="default", tokens_used=0)

    def test_version(self, native_engine):
        assert native_engine.version().value == "0.3.1"

    def test_missing_library_path_is_a_fault(self):
        engine = NativeEngine(library_path=None)
        result = engine.version()
        assert result.ok is False
        assert "BIZCLAW_NATIVE_LIBRARY" in result.error
        assert not engine.loaded

    def test_nonexistent_library_file_is_a_fault(self, tmp_path):
        engine = NativeEngine(library_path=str(tmp_path / "libbizclaw_ffi.so"))
        result = engine.start(_config())
        assert result.ok is False
        assert "not found" in result.error

    def test_library_loaded_once(self, fake_library):
        loads = []

        def _loader(path):
            loads.append(path)
            return fake_library

        engine = NativeEngine(library_path="/opt/libbizclaw_ffi.so", loader=_loader)
        engine.version()
        engine.version()
        assert loads == ["/opt/libbizclaw_ffi.so"]


class TestNativeLibrary:
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(NativeLibraryError):
            NativeLibrary(str(tmp_path / "missing.so"))


class TestStatusModels:
    def test_status_tolerates_partial_payload(self):
        status = DaemonStatus.from_dict({"running": False, "error": "panic"})
        assert status.running is False
        assert status.error == "panic"
        assert status.uptime_secs == 0

    def test_message_response_defaults(self):
        assert MessageResponse.from_dict({}).success is False
