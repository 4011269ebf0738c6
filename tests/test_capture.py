import threading

import pytest
from PIL import Image

from coach_os.capture import CaptureError, FrameSlot, MssFrameSource, capture_size, downscale_frame
from coach_os.config import CaptureConfig, ScreenMetrics
from coach_os.dispatch import UiDispatcher, WorkerPool


@pytest.mark.parametrize(
    "screen, expected",
    [
        ((1080, 2400), (540, 1200)),
        ((2400, 1080), (1200, 540)),
        ((600, 800), (360, 480)),
        ((320, 480), (320, 480)),
        ((720, 400), (360, 360)),
    ],
)
def test_capture_size(screen, expected):
    assert capture_size(*screen) == expected


def test_downscale_keeps_requested_size_and_rgba():
    raw = Image.new("RGB", (1080, 2400), (1, 2, 3))

    frame = downscale_frame(raw, (540, 1200))

    assert frame.size == (540, 1200)
    assert frame.mode == "RGBA"
    assert frame.getpixel((10, 10)) == (1, 2, 3, 255)


def test_downscale_passes_through_matching_frames():
    raw = Image.new("RGBA", (540, 1200))
    assert downscale_frame(raw, (540, 1200)) is raw


def test_frame_slot_hands_out_copies():
    slot = FrameSlot()
    assert slot.clone() is None
    assert slot.apply(lambda frame: frame.size) is None

    original = Image.new("RGBA", (8, 8), (9, 9, 9, 255))
    slot.put(original)
    copy = slot.clone()
    copy.putpixel((0, 0), (0, 0, 0, 0))

    assert copy is not original
    assert slot.apply(lambda frame: frame.getpixel((0, 0))) == (9, 9, 9, 255)


def test_frame_slot_closes_replaced_frames():
    slot = FrameSlot()
    first = Image.new("RGBA", (4, 4))
    second = Image.new("RGBA", (4, 4))

    slot.put(first)
    slot.put(second)

    with pytest.raises(ValueError):
        first.getpixel((0, 0))
    slot.clear()
    assert slot.clone() is None


def test_ui_dispatcher_runs_in_order_and_drops_after_shutdown():
    ui = UiDispatcher()
    seen = []
    for idx in range(5):
        ui.submit(seen.append, idx)
    ui.shutdown()

    assert seen == [0, 1, 2, 3, 4]
    assert ui.submit(seen.append, 99) is None
    ui.shutdown()


def test_worker_pool_rejects_work_after_shutdown():
    pool = WorkerPool(max_workers=2)
    done = threading.Event()
    pool.submit(done.set).result(timeout=5)
    assert done.is_set()

    pool.shutdown()
    with pytest.raises(RuntimeError):
        pool.submit(done.set)


class _FakeShot:
    def __init__(self, width, height):
        self.size = (width, height)
        self.rgb = bytes([90, 60, 30]) * (width * height)


class _FakeSct:
    def __init__(self, owner):
        self._owner = owner
        self.monitors = [{"width": 0, "height": 0}, {"left": 0, "top": 0, "width": 400, "height": 800}]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def grab(self, monitor):
        if self._owner.fail:
            raise OSError("XGetImage failed")
        return _FakeShot(monitor["width"], monitor["height"])


class _FakeMss:
    def __init__(self, fail=False):
        self.fail = fail

    def mss(self):
        return _FakeSct(self)


def test_mss_source_delivers_downscaled_frames(monkeypatch):
    monkeypatch.setattr("coach_os.capture.mss", _FakeMss())
    source = MssFrameSource(CaptureConfig(interval_s=0.01))
    got = threading.Event()
    frames = []

    def on_frame(frame):
        frames.append((frame.size, frame.mode, frame.getpixel((0, 0))))
        got.set()

    assert source.screen == ScreenMetrics(400, 800)
    source.start(on_frame)
    try:
        assert got.wait(timeout=5)
    finally:
        source.stop()

    assert frames[0] == ((360, 720), "RGBA", (90, 60, 30, 255))


def test_mss_source_reports_repeated_grab_failures(monkeypatch):
    monkeypatch.setattr("coach_os.capture.mss", _FakeMss(fail=True))
    errors = []
    failed = threading.Event()

    def on_error(detail):
        errors.append(detail)
        failed.set()

    source = MssFrameSource(CaptureConfig(interval_s=0.0), on_error=on_error, max_consecutive_failures=3)
    source.start(lambda frame: None)
    try:
        assert failed.wait(timeout=5)
    finally:
        source.stop()

    assert errors == ["screen capture failed: XGetImage failed"]


def test_mss_source_rejects_missing_monitor(monkeypatch):
    monkeypatch.setattr("coach_os.capture.mss", _FakeMss())
    source = MssFrameSource(CaptureConfig(monitor=5))

    with pytest.raises(CaptureError):
        source.start(lambda frame: None)


def test_mss_source_requires_library(monkeypatch):
    monkeypatch.setattr("coach_os.capture.mss", None)

    with pytest.raises(CaptureError):
        MssFrameSource(CaptureConfig()).start(lambda frame: None)


class _CountingMss(_FakeMss):
    """Opens fine for the caller of `start`, fails on the capture thread."""

    def __init__(self, fail_on_thread=False):
        super().__init__()
        self.opened = 0
        self.fail_on_thread = fail_on_thread

    def mss(self):
        self.opened += 1
        if self.fail_on_thread and threading.current_thread().name == "coach-capture":
            raise OSError("XOpenDisplay failed")
        return _FakeSct(self)


def test_mss_source_reports_display_open_failure_on_capture_thread(monkeypatch):
    fake = _CountingMss(fail_on_thread=True)
    monkeypatch.setattr("coach_os.capture.mss", fake)
    errors = []
    failed = threading.Event()

    def on_error(detail):
        errors.append(detail)
        failed.set()

    frames = []
    source = MssFrameSource(CaptureConfig(interval_s=0.01), on_error=on_error)
    source.start(frames.append)
    try:
        assert failed.wait(timeout=5)
    finally:
        source.stop()

    assert errors == ["screen capture failed: XOpenDisplay failed"]
    assert frames == []


def test_mss_source_start_opens_display_once(monkeypatch):
    fake = _CountingMss()
    monkeypatch.setattr("coach_os.capture.mss", fake)
    source = MssFrameSource(CaptureConfig(interval_s=60.0))
    got = threading.Event()

    source.start(lambda frame: got.set())
    try:
        assert got.wait(timeout=5)
    finally:
        source.stop()

    # one check from start, one session held by the capture thread
    assert fake.opened == 2
    assert source.screen == ScreenMetrics(400, 800)


def test_worker_pool_shutdown_still_runs_queued_work():
    pool = WorkerPool(max_workers=1)
    gate = threading.Event()
    ran = []
    pool.submit(gate.wait, 5)
    queued = pool.submit(ran.append, "cleanup")

    gate.set()
    pool.shutdown(wait=True)

    assert not queued.cancelled()
    assert ran == ["cleanup"]
