import pytest

from coach_agent.phases import PipelinePhase
from coach_agent.state_bus import StateBus
from coach_os.config import ScreenMetrics
from coach_os.overlay import ImageOverlaySurface
from coach_web.server import create_app, snapshot_payload


@pytest.fixture
def bus():
    bus = StateBus()
    bus.set_running(True)
    bus.update(PipelinePhase.locked("Tap Continue@540,1992"))
    bus.set_hint("Tap Continue")
    return bus


def test_state_endpoint_mirrors_bus(bus):
    app, _ = create_app(bus)
    client = app.test_client()

    response = client.get("/api/state")

    assert response.status_code == 200
    assert response.get_json() == {
        "phase": "locked",
        "detail": "Tap Continue@540,1992",
        "message": 'Tap "Tap Continue@540,1992" to continue.',
        "hint": "Tap Continue",
        "running": True,
    }


def test_overlay_png_requires_image_surface(bus):
    app, _ = create_app(bus)

    response = app.test_client().get("/api/overlay.png")

    assert response.status_code == 404


def test_overlay_png_serves_canvas(bus):
    surface = ImageOverlaySurface(ScreenMetrics(width_px=90, height_px=160))
    surface.draw_ring(10, 10, 44)
    app, _ = create_app(bus, surface)

    response = app.test_client().get("/api/overlay.png")

    assert response.status_code == 200
    assert response.mimetype == "image/png"
    assert response.data[:8] == b"\x89PNG\r\n\x1a\n"


def test_socket_clients_get_state_on_connect_and_updates(bus):
    app, socketio = create_app(bus)
    client = socketio.test_client(app)

    received = client.get_received()
    assert received[0]["name"] == "update"
    assert received[0]["args"][0]["phase"] == "locked"

    bus.update(PipelinePhase.lost())
    received = client.get_received()
    assert received[-1]["args"][0]["phase"] == "lost"
    client.disconnect()


def test_unsubscribe_is_registered(bus):
    app, _ = create_app(bus)
    app.extensions["coach_unsubscribe"]()

    assert snapshot_payload(bus.snapshot())["hint"] == "Tap Continue"
