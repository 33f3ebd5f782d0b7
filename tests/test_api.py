"""
==============================================================================
HTTP and WebSocket Tests
==============================================================================

Tests for REST API endpoints and the live scanning WebSocket.

==============================================================================
"""

from fastapi.testclient import TestClient

from labelscan.imaging.pipeline import VARIANT_ORDER
from labelscan.scanner.orchestrator import PHASE_HINTS

from conftest import EAN_VALUE, png_base64, png_bytes, render_ean13


STEADY = {"stable_frames_required": 0, "min_decode_interval_ms": 0}


class TestHealthEndpoints:
    """Tests for /api/v1/health and the root summary."""

    def test_health_lists_engines(self, client: TestClient):
        """Test the report names the loaded engines."""
        data = client.get("/api/v1/health").json()
        assert data["status"] == "healthy"
        assert data["details"]["engines"]["primary"] == "fake-primary"

    def test_health_degraded(self, broken_client: TestClient):
        """Test a missing primary engine reports degraded."""
        response = broken_client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["engines"] == "unhealthy"
        assert "engine_error" in data["details"]

    def test_ready_with_engine(self, client: TestClient):
        """Test readiness once the primary engine is built."""
        assert client.get("/api/v1/health/ready").json() == {"ready": True}

    def test_not_ready_without_engine(self, broken_client: TestClient):
        """Test readiness fails without a primary engine."""
        assert broken_client.get("/api/v1/health/ready").json()["ready"] is False

    def test_engines_built_off_event_loop(self, client: TestClient, engine_manager):
        """Test health and readiness never touch the engine manager on the event loop."""
        client.get("/api/v1/health")
        client.get("/api/v1/health/ready")
        assert engine_manager.calls == 2
        assert engine_manager.loop_calls == 0

    def test_alive(self, client: TestClient):
        """Test the liveness check needs no engines."""
        assert client.get("/api/v1/health/live").json() == {"alive": True}

    def test_root(self, client: TestClient):
        """Test the service summary."""
        assert client.get("/").json()["websocket"] == "/ws/scan"


class TestDecodeEndpoints:
    """Tests for single-shot decoding."""

    def test_decode_upload(self, client: TestClient, upload: dict):
        """Test decoding a clean label."""
        response = client.post("/api/v1/decode", files=upload)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["value"] == EAN_VALUE
        assert data["pass_name"] == "raw"
        assert data["committed"] is True
        assert data["reading"]["source_tag"] == "fake-primary"

    def test_decode_repeat_not_committed(self, client: TestClient, upload: dict):
        """Test an immediate repeat is decoded but not recorded again."""
        client.post("/api/v1/decode", files=upload)
        response = client.post("/api/v1/decode", files=upload)
        assert response.status_code == 200
        assert response.json()["committed"] is False
        assert client.get("/api/v1/readings").json()["total"] == 1

    def test_decode_nothing_found(self, client: TestClient):
        """Test a blank image returns NO_DECODE_RESULT."""
        blank = render_ean13(dark=200, light=200)
        response = client.post(
            "/api/v1/decode",
            files={"file": ("blank.png", png_bytes(blank), "image/png")}
        )
        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == "NO_DECODE_RESULT"

    def test_decode_not_an_image(self, client: TestClient):
        """Test a non-image upload."""
        response = client.post(
            "/api/v1/decode",
            files={"file": ("notes.txt", b"hello world", "text/plain")}
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_IMAGE"

    def test_decode_requires_file(self, client: TestClient):
        """Test the file field is required."""
        assert client.post("/api/v1/decode").status_code == 422

    def test_decode_engine_unavailable(self, broken_client: TestClient, upload: dict):
        """Test a missing primary engine returns 503."""
        response = broken_client.post("/api/v1/decode", files=upload)
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "ENGINE_UNAVAILABLE"

    def test_preview(self, client: TestClient, upload: dict):
        """Test the preview returns the crop and every variant."""
        response = client.post("/api/v1/decode/preview", files=upload)
        assert response.status_code == 200
        data = response.json()
        assert list(data["variants"].keys()) == list(VARIANT_ORDER)
        assert data["crop"].startswith("data:image/png;base64,")
        assert set(data["crop_rect"].keys()) == {"x", "y", "width", "height"}


class TestReadingEndpoints:
    """Tests for the reading history."""

    def test_manual_entry(self, client: TestClient):
        """Test adding a manual reading."""
        response = client.post("/api/v1/readings", json={"value": " SN-0042 "})
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["data"]["value"] == "SN-0042"
        assert data["data"]["source_tag"] == "MANUAL"

    def test_manual_entry_too_short(self, client: TestClient):
        """Test short manual values are rejected."""
        response = client.post("/api/v1/readings", json={"value": "123"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALUE_REJECTED"

    def test_manual_entry_empty(self, client: TestClient):
        """Test empty manual values fail validation."""
        assert client.post("/api/v1/readings", json={"value": ""}).status_code == 422

    def test_list_and_clear(self, client: TestClient, upload: dict):
        """Test listing and clearing the history."""
        client.post("/api/v1/decode", files=upload)
        client.post("/api/v1/readings", json={"value": "SN-0042"})

        listing = client.get("/api/v1/readings").json()
        assert listing["total"] == 2
        assert [r["value"] for r in listing["items"]] == [EAN_VALUE, "SN-0042"]

        response = client.delete("/api/v1/readings")
        assert response.status_code == 200
        assert response.json()["message"] == "Cleared 2 readings"
        assert client.get("/api/v1/readings").json()["total"] == 0


class TestScannerWebSocket:
    """Tests for the live scanning WebSocket."""

    def test_init_and_reading(self, client: TestClient, reading_log):
        """Test a steady clean frame produces a reading."""
        frame = png_base64(render_ean13())

        with client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init", "config": STEADY})
            init = ws.receive_json()
            assert init["type"] == "init"
            assert init["hint"] == PHASE_HINTS[0]
            assert init["engines"]["primary"] == "fake-primary"
            assert init["config"]["stable_frames_required"] == 0

            ws.send_json({"type": "frame", "frame": frame})
            ws.send_json({"type": "frame", "frame": "data:image/png;base64," + frame})
            message = ws.receive_json()

            assert message["type"] == "reading"
            assert message["reading"]["value"] == EAN_VALUE
            assert message["reading"]["source_tag"] == "fake-primary"

            ws.send_json({"type": "stop"})

        assert reading_log.last().value == EAN_VALUE

    def test_restart(self, client: TestClient):
        """Test a restart reports phase 0."""
        with client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init"})
            session = ws.receive_json()["session"]

            ws.send_json({"type": "restart"})
            message = ws.receive_json()
            assert message == {"type": "phase", "phase": 0, "hint": PHASE_HINTS[0]}
            assert session >= 1

    def test_bad_frame(self, client: TestClient):
        """Test an undecodable frame is reported, not fatal."""
        with client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init"})
            ws.receive_json()

            ws.send_json({"type": "frame", "frame": "bm90IGFuIGltYWdl"})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["code"] == "INVALID_IMAGE"

            ws.send_json({"type": "bogus"})
            assert ws.receive_json()["code"] == "UNKNOWN_MESSAGE"

    def test_invalid_config(self, client: TestClient):
        """Test a bad configuration is rejected at init."""
        with client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init", "config": {"phase_thresholds_ms": "5,4,3,2"}})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["code"] == "VALIDATION_ERROR"

    def test_engine_unavailable(self, broken_client: TestClient):
        """Test a session cannot start without a primary engine."""
        with broken_client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init"})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["code"] == "ENGINE_UNAVAILABLE"

    def test_frame_after_stop(self, client: TestClient):
        """Test frames are refused while stopped and accepted again after a restart."""
        frame = png_base64(render_ean13())

        with client.websocket_connect("/ws/scan") as ws:
            ws.send_json({"type": "init", "config": STEADY})
            session = ws.receive_json()["session"]

            ws.send_json({"type": "stop"})
            assert ws.receive_json() == {"type": "stopped", "session": session}

            ws.send_json({"type": "frame", "frame": frame})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["code"] == "SESSION_NOT_ACTIVE"

            ws.send_json({"type": "restart"})
            assert ws.receive_json()["phase"] == 0

            ws.send_json({"type": "frame", "frame": frame})
            ws.send_json({"type": "frame", "frame": frame})
            assert ws.receive_json()["type"] == "reading"
