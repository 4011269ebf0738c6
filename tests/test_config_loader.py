import tempfile
import unittest
from pathlib import Path

from coach_os.config import CoachConfig, ScreenMetrics, load_configs


class LoadConfigsTest(unittest.TestCase):
    def test_defaults_when_missing_file(self) -> None:
        capture_cfg, coach_cfg, vision_cfg = load_configs(Path("nonexistent.yaml"))
        self.assertAlmostEqual(capture_cfg.interval_s, 0.1)
        self.assertIsNone(capture_cfg.screen)
        self.assertEqual(coach_cfg.min_analyze_gap_ms, 350)
        self.assertEqual(coach_cfg.api_cooldown_ms, 900)
        self.assertEqual(coach_cfg.no_lock_retry_ms, 6000)
        self.assertEqual(coach_cfg.locating_hold_ms, 2500)
        self.assertEqual(coach_cfg.change_threshold, 900_000)
        self.assertEqual(coach_cfg.preferences_path, Path("prefs.yaml"))
        self.assertFalse(coach_cfg.web_enabled)
        self.assertEqual(vision_cfg.jpeg_quality, 70)
        self.assertEqual(vision_cfg.planner.model, "gpt-4o-mini")
        self.assertEqual(vision_cfg.planner.max_tokens, 80)
        self.assertEqual(vision_cfg.locator.default_model, "gemini-2.0-flash")
        self.assertAlmostEqual(vision_cfg.locator.backoff_default_s, 30.0)
        self.assertAlmostEqual(vision_cfg.locator.backoff_min_s, 2.0)

    def test_overrides_apply(self) -> None:
        yaml_content = """
capture:
  interval_s: 0.25
  monitor: 2
  screen:
    width: 1080
    height: 2400
    density: 2.75
coach:
  api_cooldown_ms: 1200
  change_threshold: 500000
  ring_min_dp: 40
  ring_max_dp: 120
  preferences_path: other_prefs.yaml
  web_enabled: true
  web_port: 8080
vision:
  jpeg_quality: 60
  planner:
    model: gpt-4o
    max_tokens: 64
  locator:
    endpoint_base: https://example.test/models/
    default_model: gemini-test
    backoff:
      default_s: 45
      min_s: 5
"""
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_path = Path(tmpdir) / "config.yaml"
            cfg_path.write_text(yaml_content, encoding="utf-8")

            capture_cfg, coach_cfg, vision_cfg = load_configs(cfg_path)

        self.assertAlmostEqual(capture_cfg.interval_s, 0.25)
        self.assertEqual(capture_cfg.monitor, 2)
        self.assertEqual(capture_cfg.screen, ScreenMetrics(1080, 2400, 2.75))
        self.assertEqual(coach_cfg.api_cooldown_ms, 1200)
        self.assertEqual(coach_cfg.change_threshold, 500_000)
        self.assertAlmostEqual(coach_cfg.ring_min_dp, 40.0)
        self.assertAlmostEqual(coach_cfg.ring_max_dp, 120.0)
        self.assertEqual(coach_cfg.preferences_path, Path("other_prefs.yaml"))
        self.assertTrue(coach_cfg.web_enabled)
        self.assertEqual(coach_cfg.web_port, 8080)
        # Untouched keys keep their defaults
        self.assertEqual(coach_cfg.no_lock_retry_ms, 6000)
        self.assertEqual(vision_cfg.jpeg_quality, 60)
        self.assertEqual(vision_cfg.planner.model, "gpt-4o")
        self.assertEqual(vision_cfg.planner.max_tokens, 64)
        self.assertEqual(vision_cfg.locator.endpoint_base, "https://example.test/models")
        self.assertEqual(vision_cfg.locator.default_model, "gemini-test")
        self.assertAlmostEqual(vision_cfg.locator.backoff_default_s, 45.0)
        self.assertAlmostEqual(vision_cfg.locator.backoff_min_s, 5.0)

    def test_partial_screen_override_is_ignored(self) -> None:
        yaml_content = """
capture:
  screen:
    width: 1080
"""
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_path = Path(tmpdir) / "config.yaml"
            cfg_path.write_text(yaml_content, encoding="utf-8")

            capture_cfg, _, _ = load_configs(cfg_path)

        self.assertIsNone(capture_cfg.screen)

    def test_ring_bounds_are_validated(self) -> None:
        yaml_content = """
coach:
  ring_min_dp: 150
  ring_max_dp: 140
"""
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_path = Path(tmpdir) / "config.yaml"
            cfg_path.write_text(yaml_content, encoding="utf-8")

            with self.assertRaises(ValueError):
                load_configs(cfg_path)

        with self.assertRaises(ValueError):
            CoachConfig(ring_min_dp=200.0)


def test_dp_conversion_rounds_to_pixels():
    screen = ScreenMetrics(width_px=1080, height_px=2400, density=2.75)
    assert screen.dp(44) == 121
    assert screen.dp(140) == 385
    assert ScreenMetrics(1080, 2400).dp(140) == 140


if __name__ == "__main__":
    unittest.main()
