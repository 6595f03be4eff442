import smartlock.main as main_module
from smartlock.config import Config
from smartlock.exceptions import StartupFailure


def test_startup_failure_sets_exit_code(monkeypatch):
    def failing_build(config):
        raise StartupFailure("camera unplugged")

    monkeypatch.setattr(main_module, "build_context", failing_build)
    node = main_module.SmartLockNode(Config())

    assert node.start() is False
    assert node.exit_code == 1
    # stop() already ran once; a second call is a no-op
    node.stop()


def test_dead_admin_worker_requests_shutdown():
    class DeadAdmin:
        failed = True
        error = OSError("address in use")

    node = main_module.SmartLockNode(Config())
    node.admin_thread = DeadAdmin()

    node._check_workers()

    assert node.shutdown_event.is_set()
    assert node.exit_code == 1
