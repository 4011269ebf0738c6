import pytest
from PIL import Image

from coach_agent.phases import PhaseKind, PipelinePhase
from coach_agent.session import CoachSession, SessionError
from coach_os.capture import CaptureError
from coach_os.config import ScreenMetrics
from coach_os.overlay import OverlayRenderer
from coach_os.preferences import Preferences
from coach_vision.locator import LocatedBox
from coach_vision.planner import PlanOk

PHONE = ScreenMetrics(width_px=1080, height_px=2400, density=1.0)


class InlineExecutor:
    def __init__(self) -> None:
        self.shutdowns = 0

    def submit(self, fn, *args, **kwargs):
        return fn(*args, **kwargs)

    def shutdown(self, *args, **kwargs):
        self.shutdowns += 1


class FakeFrameSource:
    def __init__(self, fail_with=None) -> None:
        self.fail_with = fail_with
        self.on_frame = None
        self.starts = 0
        self.stops = 0

    def start(self, on_frame):
        self.starts += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.on_frame = on_frame

    def stop(self):
        self.stops += 1
        self.on_frame = None

    def push(self):
        self.on_frame(Image.new("RGBA", (54, 120), (120, 130, 140, 255)))


class StaticPlanner:
    def __init__(self) -> None:
        self.calls = 0

    def plan(self, frame, context, api_key):
        self.calls += 1
        return PlanOk("Tap Continue")


class StaticLocator:
    def locate(self, frame, instruction, api_key, model=None):
        return LocatedBox(x=0.30, y=0.80, w=0.40, h=0.06, matched_text="Continue")

    def in_backoff(self):
        return False


class RecordingSurface:
    def __init__(self) -> None:
        self.calls = []

    def draw_ring(self, left, top, size):
        self.calls.append(("ring", left, top, size))

    def clear_ring(self):
        self.calls.append(("clear",))

    def draw_status(self, text):
        self.calls.append(("status", text))

    def remove(self):
        self.calls.append(("remove",))


def make_session(frame_source):
    surface = RecordingSurface()
    overlay = OverlayRenderer(surface, PHONE)
    planner = StaticPlanner()
    session = CoachSession(
        frame_source=frame_source,
        overlay=overlay,
        planner=planner,
        locator=StaticLocator(),
        preferences=Preferences({"openai_api_key": "sk", "gemini_api_key": "g"}),
        screen=PHONE,
        worker=InlineExecutor(),
        ui=InlineExecutor(),
        clock=lambda: 0,
    )
    return session, overlay, surface, planner


def test_start_scans_and_first_frame_locks():
    source = FakeFrameSource()
    session, overlay, surface, planner = make_session(source)
    phases = []
    session.bus.subscribe(lambda snapshot: phases.append(snapshot.phase.kind))

    session.start()

    assert session.running
    assert session.bus.running
    assert session.bus.phase.kind is PhaseKind.SCANNING
    distinct = [kind for idx, kind in enumerate(phases) if idx == 0 or phases[idx - 1] is not kind]
    assert distinct == [
        PhaseKind.IDLE,
        PhaseKind.REQUESTING_CAPTURE,
        PhaseKind.STARTING,
        PhaseKind.SCANNING,
    ]
    assert session.bus.hint == "Scanning…"

    source.push()

    assert planner.calls == 1
    assert session.bus.phase == PipelinePhase.locked("Tap Continue@540,1992")
    assert overlay.ring_visible


def test_start_is_idempotent():
    source = FakeFrameSource()
    session, _, _, _ = make_session(source)

    session.start()
    session.start()

    assert source.starts == 1


def test_stop_hides_ring_and_returns_to_idle():
    source = FakeFrameSource()
    session, overlay, _, _ = make_session(source)
    session.start()
    source.push()

    session.stop()
    session.stop()

    assert source.stops == 1
    assert not session.running
    assert not overlay.ring_visible
    assert session.controller.lock is None
    assert session.controller.frame_slot.clone() is None
    snapshot = session.bus.snapshot()
    assert snapshot.phase == PipelinePhase.idle()
    assert snapshot.hint == ""
    assert not snapshot.running


def test_session_can_restart_after_stop():
    source = FakeFrameSource()
    session, _, _, planner = make_session(source)
    session.start()
    source.push()
    session.stop()

    session.start()
    source.push()

    assert source.starts == 2
    assert planner.calls == 2
    assert session.bus.phase.kind is PhaseKind.LOCKED


def test_capture_init_failure_publishes_error():
    source = FakeFrameSource(fail_with=CaptureError("permission denied"))
    session, overlay, surface, _ = make_session(source)

    with pytest.raises(CaptureError):
        session.start()

    assert not session.running
    assert session.bus.phase == PipelinePhase.error("permission denied")
    assert session.bus.hint == "Screen capture init failed: permission denied"
    assert not session.bus.running
    assert ("status", "Coach: Screen capture init failed: permission denied") in surface.calls


def test_capture_failure_after_start_stops_pipeline():
    source = FakeFrameSource()
    session, overlay, _, _ = make_session(source)
    session.start()
    source.push()

    session.report_capture_failure("screen capture failed: display lost")

    assert not session.running
    assert source.stops == 1
    assert not overlay.ring_visible
    assert session.bus.phase == PipelinePhase.error("screen capture failed: display lost")


def test_close_removes_overlay_and_blocks_restart():
    source = FakeFrameSource()
    worker = InlineExecutor()
    ui = InlineExecutor()
    surface = RecordingSurface()
    session = CoachSession(
        frame_source=source,
        overlay=OverlayRenderer(surface, PHONE),
        planner=StaticPlanner(),
        locator=StaticLocator(),
        preferences=Preferences({"openai_api_key": "sk", "gemini_api_key": "g"}),
        screen=PHONE,
        worker=worker,
        ui=ui,
    )

    with session:
        session.start()

    assert surface.calls[-1] == ("remove",)
    # injected executors belong to the caller
    assert worker.shutdowns == 0
    assert ui.shutdowns == 0
    with pytest.raises(SessionError):
        session.start()
