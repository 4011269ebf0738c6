#!/usr/bin/env python3
"""Main entry point for the screen coach."""
import logging
import sys
import time
from pathlib import Path

from coach_agent import CoachSession
from coach_agent.phases import PhaseKind
from coach_os.capture import CaptureError, MssFrameSource
from coach_os.config import load_configs
from coach_os.overlay import ImageOverlaySurface, OverlayRenderer
from coach_os.preferences import PREF_GEMINI_API_KEY, PREF_OPENAI_API_KEY, load_preferences
from coach_vision.locator import TargetLocator
from coach_vision.planner import StepPlanner


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure logging for the application.

    Args:
        level: Logging level (default: INFO)

    Returns:
        Root logger instance
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger()


def main() -> int:
    """Main entry point."""
    logger = setup_logging(level=logging.INFO)

    logger.info("=" * 70)
    logger.info("Screen Coach - on-screen tap guidance")
    logger.info("=" * 70)

    # Load configuration
    config_path = Path("config.yaml")
    if not config_path.exists():
        logger.warning("config.yaml not found; using defaults")

    try:
        capture_cfg, coach_cfg, vision_cfg = load_configs(config_path)
        preferences = load_preferences(coach_cfg.preferences_path)
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    logger.info("Configuration loaded successfully")
    logger.info("  Planner model: %s", vision_cfg.planner.model)
    logger.info("  Locator model: %s", preferences.gemini_model())
    logger.info("  Preferences: %s", coach_cfg.preferences_path)

    # Missing keys are reported on the overlay too, but warn early here.
    if not preferences.openai_api_key():
        logger.warning("No %s preference (or OPENAI_API_KEY) set", PREF_OPENAI_API_KEY)
    if not preferences.gemini_api_key():
        logger.warning("No %s preference (or GEMINI_API_KEY) set", PREF_GEMINI_API_KEY)

    session = None
    try:
        frame_source = MssFrameSource(
            capture_cfg,
            on_error=lambda detail: session.report_capture_failure(detail) if session else None,
            logger=logging.getLogger("coach_os.capture"),
        )
        screen = frame_source.screen
        logger.info("  Screen: %dx%d @ %.1fx", screen.width_px, screen.height_px, screen.density)

        surface = ImageOverlaySurface(screen)
        overlay = OverlayRenderer(
            surface,
            screen,
            ring_min_dp=coach_cfg.ring_min_dp,
            status_max_chars=coach_cfg.status_max_chars,
        )
        session = CoachSession(
            frame_source=frame_source,
            overlay=overlay,
            planner=StepPlanner(vision_cfg.planner, jpeg_quality=vision_cfg.jpeg_quality),
            locator=TargetLocator(vision_cfg.locator, jpeg_quality=vision_cfg.jpeg_quality),
            preferences=preferences,
            screen=screen,
            config=coach_cfg,
        )

        logger.info("Starting coach...")
        logger.info("Press Ctrl+C to stop gracefully")
        logger.info("")

        session.start()

        if coach_cfg.web_enabled:
            from coach_web.server import create_app, run_app

            app, socketio = create_app(session.bus, surface)
            run_app(app, socketio, host=coach_cfg.web_host, port=coach_cfg.web_port)
        else:
            while session.running:
                time.sleep(0.5)

        if session.bus.phase.kind is PhaseKind.ERROR:
            logger.error("Coach stopped on error: %s", session.bus.phase.detail)
            return 1

        logger.info("Coach terminated normally")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except CaptureError as exc:
        logger.error("Screen capture unavailable: %s", exc)
        return 1
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        return 1
    finally:
        if session is not None:
            session.close()


if __name__ == "__main__":
    sys.exit(main())
