"""
Admin Server Thread - runs the admin HTTP app under uvicorn.

Supervised: start() waits until the server is listening (or failed),
stop() asks uvicorn to exit and joins, and any crash is kept in
`error` for the main loop to see.
"""

import logging
import threading
import time
from typing import Optional

import uvicorn

from ..exceptions import StartupFailure


logger = logging.getLogger(__name__)


class AdminServerThread(threading.Thread):
    """uvicorn server on a worker thread."""

    def __init__(self, app, host: str = "0.0.0.0", port: int = 8080):
        super().__init__(name="AdminServerThread", daemon=True)
        self.host = host
        self.port = port
        self._server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
        self.error: Optional[BaseException] = None

    @property
    def started(self) -> bool:
        return self._server.started

    @property
    def failed(self) -> bool:
        if self.error is not None:
            return True
        # Exited on its own without being asked to stop
        return self.started and not self.is_alive() and not self._server.should_exit

    def run(self):
        logger.info(f"Admin server starting on {self.host}:{self.port}")
        try:
            self._server.run()
        except (Exception, SystemExit) as e:
            # uvicorn exits via SystemExit when it cannot bind
            self.error = e
            logger.error(f"Admin server crashed: {e!r}")
            return
        logger.info("Admin server stopped")

    def start_and_wait(self, timeout: float = 5.0):
        """Start and block until serving. Raises StartupFailure otherwise."""
        self.start()
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.started:
                logger.info(f"Admin server listening on http://{self.host}:{self.port}")
                return
            if self.error is not None or not self.is_alive():
                break
            time.sleep(0.05)

        self.stop()
        raise StartupFailure(f"Admin server failed to start on {self.host}:{self.port}: {self.error!r}")

    def stop(self, timeout: float = 5.0):
        """Graceful stop: let in-flight requests finish, then join."""
        self._server.should_exit = True
        if self.is_alive():
            self.join(timeout=timeout)
            if self.is_alive():
                logger.warning("Admin server did not stop in time")
