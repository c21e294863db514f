"""
Unit tests for ShutdownManager.
"""
import signal
import unittest
import threading
import time
from unittest.mock import patch, MagicMock

from src.common.shutdown import ShutdownManager, ShutdownState


class TestShutdownManager(unittest.TestCase):
    """Tests for ShutdownManager."""

    def setUp(self):
        ShutdownManager.reset()
        self.shutdown = ShutdownManager(timeout=5)

    def tearDown(self):
        ShutdownManager.reset()

    def test_initial_state_is_running(self):
        self.assertTrue(self.shutdown.is_running)
        self.assertFalse(self.shutdown.is_shutting_down)
        self.assertEqual(self.shutdown.state, ShutdownState.RUNNING)

    def test_singleton_returns_same_instance(self):
        self.assertIs(ShutdownManager(), ShutdownManager())

    def test_callbacks_execute_in_priority_order(self):
        order = []
        self.shutdown.register(lambda: order.append("sessions"), priority=20, name="sessions")
        self.shutdown.register(lambda: order.append("http"), priority=0, name="http_server")
        self.shutdown.register(lambda: order.append("loops"), priority=10, name="poll_loops")

        self.shutdown.initiate_shutdown()

        self.assertEqual(order, ["http", "loops", "sessions"])
        self.assertEqual(self.shutdown.state, ShutdownState.STOPPED)

    def test_callback_error_doesnt_stop_others(self):
        called = []

        def failing():
            raise RuntimeError("fail")

        self.shutdown.register(failing, priority=0, name="failing")
        self.shutdown.register(lambda: called.append("ok"), priority=10, name="ok")

        self.shutdown.initiate_shutdown()
        self.assertEqual(called, ["ok"])

    def test_double_shutdown_ignored(self):
        calls = []
        self.shutdown.register(lambda: calls.append(1), name="once")
        self.shutdown.initiate_shutdown()
        self.shutdown.initiate_shutdown()
        self.assertEqual(calls, [1])

    def test_wait_for_shutdown_times_out(self):
        self.assertFalse(self.shutdown.wait_for_shutdown(timeout=0.1))

    def test_wait_for_shutdown_triggered(self):
        def trigger():
            time.sleep(0.1)
            self.shutdown.initiate_shutdown()

        t = threading.Thread(target=trigger)
        t.start()
        self.assertTrue(self.shutdown.wait_for_shutdown(timeout=2.0))
        t.join()

    @patch("src.common.shutdown.signal.signal")
    def test_install_signal_handlers_with_reload(self, mock_signal):
        self.shutdown.install_signal_handlers(on_reload=lambda: None)
        installed = [c.args[0] for c in mock_signal.call_args_list]
        self.assertIn(signal.SIGINT, installed)
        self.assertIn(signal.SIGTERM, installed)
        self.assertIn(signal.SIGHUP, installed)

    @patch("src.common.shutdown.signal.signal")
    def test_install_without_reload_skips_sighup(self, mock_signal):
        self.shutdown.install_signal_handlers()
        installed = [c.args[0] for c in mock_signal.call_args_list]
        self.assertNotIn(signal.SIGHUP, installed)

    def test_signal_handler_runs_shutdown_in_thread(self):
        self.shutdown._signal_handler(signal.SIGTERM, None)
        self.assertTrue(self.shutdown.wait_for_shutdown(timeout=2.0))
        self.assertEqual(self.shutdown.state, ShutdownState.STOPPED)

    def test_reload_handler_invokes_callback(self):
        done = threading.Event()
        reload_fn = MagicMock(side_effect=lambda: done.set())
        with patch("src.common.shutdown.signal.signal"):
            self.shutdown.install_signal_handlers(on_reload=reload_fn)

        self.shutdown._reload_handler(signal.SIGHUP, None)

        self.assertTrue(done.wait(timeout=2.0))
        reload_fn.assert_called_once()

    def test_get_status(self):
        self.shutdown.register(lambda: None, name="poll_loops", priority=10)
        status = self.shutdown.get_status()

        self.assertEqual(status["state"], "running")
        self.assertEqual(status["callback_names"], ["poll_loops"])
        self.assertEqual(status["timeout"], 5)


if __name__ == "__main__":
    unittest.main()
