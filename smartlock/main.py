"""
Smart Lock Node Main Orchestrator
---------------------------------
Central coordinator for all lock components.

This can run on:
- Raspberry Pi with a relay/strike on a GPIO pin (production)
- Laptop with webcam (development, GPIO simulated)

Architecture:
- Single Python process
- Main thread runs the camera -> recognition -> decision loop
- Worker threads: admin HTTP server (uvicorn), MQTT network loop (paho),
  alert webhook sender, relock timers

Flow:
1. Camera capture -> every Nth frame sampled
2. Haar cascade finds faces, largest face goes to LBPH recognizer
3. Confidence policy + enrollment check decide admit / deny
4. Lock actuator pulses the strike and relocks on a timer
5. Every decision lands in the access log with a snapshot

Exit codes: 0 after a graceful shutdown, 1 on startup failure or when a
supervised worker dies.
"""

import logging
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from .admin import create_app
from .config import Config, load_config
from .context import AppContext, build_context
from .exceptions import StartupFailure
from .threads import AdminServerThread, RemoteCommandChannel, create_remote_channel_from_config
from .vision import Camera, create_camera_from_config


logger = logging.getLogger("SmartLock")


def configure_logging(config: Config):
    """Console + file logging for the whole process."""
    handlers = [logging.StreamHandler()]
    if config.LOG_FILE:
        Path(config.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


class SmartLockNode:
    """
    Main lock node application.

    Owns the application context, the camera and the worker threads.
    stop() is idempotent and always leaves the lock locked.
    """

    def __init__(self, config: Config):
        self.config = config

        self._running = False
        self._shutdown_event = threading.Event()
        self._stopped = False
        self.exit_code = 0

        # Components (initialized in start())
        self.context: Optional[AppContext] = None
        self.camera: Optional[Camera] = None

        # Threads
        self.admin_thread: Optional[AdminServerThread] = None
        self.remote_channel: Optional[RemoteCommandChannel] = None

        self.stats = {
            "start_time": None,
        }

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown_event

    def _init_context(self):
        logger.info("Initializing storage, lock and vision...")
        self.context = build_context(self.config)
        logger.info(
            f"Storage initialized: {len(self.context.store.list_users())} enrolled users, "
            f"{len(self.context.recognizer.trained_labels)} recognizable"
        )

    def _init_camera(self):
        logger.info(f"Opening camera {self.config.CAMERA_INDEX}...")
        self.camera = create_camera_from_config(self.config)
        self.camera.open()

    def _init_threads(self):
        logger.info("Initializing worker threads...")
        ctx = self.context

        if ctx.notifier.enabled:
            ctx.notifier.start()
            logger.info("Alert thread started")
        else:
            logger.info("Alerts disabled (ALERT_WEBHOOK_URL not set)")

        if self.config.ADMIN_ENABLED:
            app = create_app(ctx.admin_service, engine=ctx.engine)
            self.admin_thread = AdminServerThread(app, host=self.config.ADMIN_HOST, port=self.config.ADMIN_PORT)
            self.admin_thread.start_and_wait()
        else:
            logger.info("Admin server disabled")

        if self.config.MQTT_ENABLED:
            self.remote_channel = create_remote_channel_from_config(self.config, ctx.engine)
            self.remote_channel.start()
        else:
            logger.info("Remote commands disabled (MQTT_ENABLED=false)")

    def start(self) -> bool:
        """
        Start the lock node.

        Returns:
            True if started successfully
        """
        logger.info("=" * 50)
        logger.info("Smart Lock Node starting")
        logger.info("=" * 50)

        try:
            self._init_context()
            self._init_camera()
            self._init_threads()
        except StartupFailure as e:
            logger.error(f"Startup failed: {e}")
            self.exit_code = 1
            self.stop()
            return False

        self.stats["start_time"] = time.time()
        self._running = True
        logger.info("Smart Lock Node started successfully")
        return True

    def request_shutdown(self, reason: str = "requested"):
        if not self._shutdown_event.is_set():
            logger.info(f"Shutdown {reason}")
        self._shutdown_event.set()

    def _check_workers(self):
        """Called after each frame; a dead worker ends the process."""
        if self.admin_thread is not None and self.admin_thread.failed:
            logger.error(f"Admin server died: {self.admin_thread.error!r}")
            self.exit_code = 1
            self.request_shutdown("after worker failure")

    def run(self):
        """Main recognition loop. Returns when shutdown is requested."""
        if not self._running:
            logger.error("Smart Lock Node not started")
            return

        self.context.engine.run(
            self.camera.frames(self._shutdown_event),
            self._shutdown_event,
            on_frame=self._check_workers,
        )

    def stop(self):
        """Stop the node gracefully."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Smart Lock Node shutting down...")

        self._running = False
        self._shutdown_event.set()

        # No new commands first, then the lock, then the log
        if self.remote_channel:
            self.remote_channel.stop()

        if self.admin_thread:
            self.admin_thread.stop()

        if self.context:
            notifier = self.context.notifier
            if notifier.is_alive():
                notifier.stop()
                notifier.join(timeout=2.0)
            self.context.close()

        if self.camera:
            self.camera.close()

        logger.info("Smart Lock Node stopped")
        self._print_stats()

    def _print_stats(self):
        if not self.stats["start_time"] or not self.context:
            return

        runtime = time.time() - self.stats["start_time"]
        engine_stats = self.context.engine.stats
        lock_stats = self.context.actuator.get_stats()
        pipeline_stats = self.context.pipeline.stats

        logger.info("=" * 50)
        logger.info("Session Statistics:")
        logger.info(f"  Runtime: {runtime:.1f}s")
        logger.info(f"  Frames seen: {pipeline_stats['frames_seen']} (sampled {pipeline_stats['frames_sampled']})")
        logger.info(f"  Admitted: {engine_stats['admitted']}")
        logger.info(f"  Denied: {engine_stats['denied']}")
        logger.info(f"  Errors: detector {engine_stats['detector_errors']}, actuator {engine_stats['actuator_errors']}")
        logger.info(f"  Remote: {engine_stats['remote_unlocks']} unlocks, {engine_stats['remote_locks']} locks")
        logger.info(f"  Lock pulses: {lock_stats['pulses']} (extended {lock_stats['extensions']})")
        logger.info("=" * 50)


def main(argv=None) -> int:
    """Entry point."""
    args = sys.argv[1:] if argv is None else argv
    config = load_config(args[0] if args else None)
    configure_logging(config)

    node = SmartLockNode(config)

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        node.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not node.start():
        logger.error("Failed to start Smart Lock Node")
        return 1

    try:
        node.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        node.exit_code = 1
    finally:
        node.stop()

    return node.exit_code


if __name__ == "__main__":
    sys.exit(main())
