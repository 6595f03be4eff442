"""
Application context: every shared handle (store, actuator, detector,
engine, ...) is built here once, handed to the components that need it,
and torn down through close().
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .admin import AdminService
from .config import Config
from .core import (
    AccessControlEngine,
    GpioPin,
    LockActuator,
    create_actuator_from_config,
    create_policy_from_config,
)
from .core.decision import describe
from .exceptions import DetectorError, StartupFailure, StorageError
from .storage import AccessLogger, ImageArchive, PersistentStore, User
from .threads import AlertNotifier, create_alert_notifier_from_config
from .vision import LBPHRecognizer, RecognitionPipeline, create_detector_from_config
from .vision.pipeline import Detector


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Shared components with a single teardown path."""
    config: Config
    store: PersistentStore
    access_images: ImageArchive
    user_images: ImageArchive
    actuator: LockActuator
    detector: Detector
    recognizer: LBPHRecognizer
    pipeline: RecognitionPipeline
    access_logger: AccessLogger
    notifier: AlertNotifier
    engine: AccessControlEngine
    admin_service: AdminService

    def retrain(self, user: Optional[User] = None):
        """Rebuild recognizer templates from the enrolled users."""
        try:
            self.recognizer.train(self.store.list_users(), detector=self.detector)
        except (DetectorError, StorageError) as e:
            logger.error(f"Recognizer retrain failed after enrolling {user.label if user else '-'}: {e}")

    def close(self):
        """
        Lock, drain held log events, then close the store.
        Safe to call more than once.
        """
        try:
            self.actuator.cleanup()
        except Exception:
            logger.exception("Actuator cleanup failed")

        if not self.store.closed:
            remaining = self.access_logger.flush()
            if remaining:
                logger.error(f"{remaining} access events could not be written before shutdown")
            self.store.close()


def build_context(
    config: Config,
    pin: Optional[GpioPin] = None,
    detector: Optional[Detector] = None,
    recognizer: Optional[LBPHRecognizer] = None,
    notifier: Optional[AlertNotifier] = None,
) -> AppContext:
    """
    Construct all components. Any failure is a StartupFailure.

    pin / detector / recognizer / notifier may be injected (tests,
    alternative hardware); otherwise they come from config.
    """
    try:
        store = PersistentStore(db_path=config.DB_PATH)
    except StorageError as e:
        raise StartupFailure(f"Store unopenable: {e}") from e

    try:
        access_images = ImageArchive(config.ACCESS_IMAGE_DIR)
        user_images = ImageArchive(config.USER_IMAGE_DIR)
    except OSError as e:
        store.close()
        raise StartupFailure(f"Image directories unavailable: {e}") from e

    try:
        actuator = create_actuator_from_config(config, pin=pin)
        actuator.initialize()

        detector = detector or create_detector_from_config(config)
        recognizer = recognizer or LBPHRecognizer()
        try:
            recognizer.train(store.list_users(), detector=detector)
        except (DetectorError, StorageError) as e:
            raise StartupFailure(f"Recognizer could not be trained: {e}") from e
    except StartupFailure:
        store.close()
        raise

    pipeline = RecognitionPipeline(detector, recognizer, frame_skip=config.FRAME_SKIP)
    access_logger = AccessLogger(store, access_images, retry_delay=config.STORAGE_RETRY_DELAY)
    notifier = notifier or create_alert_notifier_from_config(config)
    policy = create_policy_from_config(config)

    engine = AccessControlEngine(
        pipeline=pipeline,
        policy=policy,
        actuator=actuator,
        access_logger=access_logger,
        store=store,
        notifier=notifier,
    )

    admin_service = AdminService(store, user_images, access_images)
    context = AppContext(
        config=config,
        store=store,
        access_images=access_images,
        user_images=user_images,
        actuator=actuator,
        detector=detector,
        recognizer=recognizer,
        pipeline=pipeline,
        access_logger=access_logger,
        notifier=notifier,
        engine=engine,
        admin_service=admin_service,
    )
    admin_service.on_enrolled = context.retrain

    logger.info(
        f"Context ready: admit when {describe(policy)}, every {pipeline.frame_skip} frame(s), "
        f"unlock window {actuator.unlock_duration}s"
    )
    return context
