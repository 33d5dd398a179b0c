import threading
import time
import unittest
from unittest.mock import MagicMock

from timecapsule.db import InMemoryDbClient
from timecapsule.delivery import DeliverySweep, LoggingNotifier
from timecapsule.types import MessageType

DAY = 24 * 60 * 60


def _schedule(db, delivery_date, *, title="Hello", user_id="director-1"):
    child = db.create_child(user_id, name="Ada", birth_date="2020-01-01")
    return db.create_message(
        user_id,
        child_id=child.id,
        title=title,
        content="For when you are older",
        type=MessageType.TEXT,
        delivery_date=delivery_date,
    )


class FlakyDb(InMemoryDbClient):
    """Fails mark_delivered for selected ids."""

    def __init__(self, failing_ids=()):
        super().__init__()
        self.failing_ids = set(failing_ids)
        self.mark_calls = []

    def mark_delivered(self, message_id):
        self.mark_calls.append(message_id)
        if message_id in self.failing_ids:
            raise RuntimeError("simulated store error")
        return super().mark_delivered(message_id)


class DeliverySweepTests(unittest.TestCase):
    def setUp(self):
        self.now = time.time()
        self.db = FlakyDb()
        self.sweep = DeliverySweep(self.db, call_timeout_seconds=2.0)

    def test_past_due_message_is_delivered(self):
        message = _schedule(self.db, self.now - DAY)

        result = self.sweep(now=self.now)

        self.assertEqual(result.delivered, [message.id])
        self.assertTrue(self.db.messages[message.id].is_delivered)

    def test_future_message_is_left_alone(self):
        message = _schedule(self.db, self.now + DAY)

        result = self.sweep(now=self.now)

        self.assertEqual(result.attempted, 0)
        self.assertFalse(self.db.messages[message.id].is_delivered)
        self.assertEqual(self.db.mark_calls, [])

    def test_message_due_exactly_now_is_delivered(self):
        message = _schedule(self.db, self.now)

        result = self.sweep(now=self.now)

        self.assertEqual(result.delivered, [message.id])

    def test_failed_update_does_not_stop_the_batch(self):
        first = _schedule(self.db, self.now - DAY, title="A")
        second = _schedule(self.db, self.now - DAY, title="B")
        self.db.failing_ids = {first.id}

        with self.assertLogs("timecapsule.delivery", level="ERROR") as logs:
            result = self.sweep(now=self.now)

        self.assertEqual(result.failed, [first.id])
        self.assertEqual(result.delivered, [second.id])
        self.assertFalse(self.db.messages[first.id].is_delivered)
        self.assertTrue(self.db.messages[second.id].is_delivered)
        self.assertTrue(any(first.id in line for line in logs.output))

    def test_failed_message_is_retried_next_sweep(self):
        message = _schedule(self.db, self.now - DAY)
        self.db.failing_ids = {message.id}
        self.sweep(now=self.now)

        self.db.failing_ids = set()
        result = self.sweep(now=self.now + 60)

        self.assertEqual(result.delivered, [message.id])
        self.assertTrue(self.db.messages[message.id].is_delivered)

    def test_delivered_message_is_not_picked_up_again(self):
        message = _schedule(self.db, self.now - DAY)
        self.sweep(now=self.now)

        result = self.sweep(now=self.now + DAY)

        self.assertEqual(result.attempted, 0)
        self.assertEqual(self.db.mark_calls, [message.id])
        self.assertTrue(self.db.messages[message.id].is_delivered)

    def test_empty_sweep_makes_no_updates_and_logs_nothing(self):
        _schedule(self.db, self.now + DAY)

        with self.assertNoLogs("timecapsule.delivery", level="DEBUG"):
            result = self.sweep(now=self.now)

        self.assertFalse(result.query_failed)
        self.assertEqual(result.attempted, 0)
        self.assertEqual(self.db.mark_calls, [])

    def test_query_failure_aborts_sweep(self):
        db = MagicMock()
        db.find_due_messages.side_effect = ConnectionError("store unreachable")
        sweep = DeliverySweep(db, call_timeout_seconds=1.0)

        with self.assertLogs("timecapsule.delivery", level="ERROR"):
            result = sweep(now=self.now)

        self.assertTrue(result.query_failed)
        db.mark_delivered.assert_not_called()

    def test_now_is_computed_once_per_sweep(self):
        db = MagicMock()
        db.find_due_messages.return_value = []
        sweep = DeliverySweep(db)

        result = sweep()

        db.find_due_messages.assert_called_once_with(result.now)

    def test_notifier_failure_skips_the_update(self):
        message = _schedule(self.db, self.now - DAY)
        notifier = MagicMock()
        notifier.deliver.side_effect = RuntimeError("push gateway down")
        sweep = DeliverySweep(self.db, notifier, call_timeout_seconds=1.0)

        result = sweep(now=self.now)

        self.assertEqual(result.failed, [message.id])
        self.assertEqual(self.db.mark_calls, [])
        self.assertFalse(self.db.messages[message.id].is_delivered)

    def test_notifier_runs_before_the_update(self):
        message = _schedule(self.db, self.now - DAY)
        seen = []

        class RecordingNotifier:
            def deliver(inner_self, msg):
                seen.append((msg.id, self.db.messages[msg.id].is_delivered))

        sweep = DeliverySweep(self.db, RecordingNotifier())
        sweep(now=self.now)

        self.assertEqual(seen, [(message.id, False)])

    def test_message_deleted_mid_sweep_is_reported_missing(self):
        message = _schedule(self.db, self.now - DAY)

        class DeletingNotifier:
            def deliver(inner_self, msg):
                self.db.delete_message(msg.id, msg.user_id)

        sweep = DeliverySweep(self.db, DeletingNotifier())
        result = sweep(now=self.now)

        self.assertEqual(result.missing, [message.id])
        self.assertEqual(result.failed, [])

    def test_slow_update_times_out_and_sweep_continues(self):
        slow = _schedule(self.db, self.now - DAY, title="slow")
        fast = _schedule(self.db, self.now - DAY, title="fast")
        release = threading.Event()
        real_mark_delivered = self.db.mark_delivered

        def mark_delivered(message_id):
            if message_id == slow.id:
                release.wait(5)
            return real_mark_delivered(message_id)

        self.db.mark_delivered = mark_delivered
        sweep = DeliverySweep(self.db, call_timeout_seconds=0.1)
        self.addCleanup(release.set)

        result = sweep(now=self.now)

        self.assertEqual(result.failed, [slow.id])
        self.assertEqual(result.delivered, [fast.id])

    def test_sweeps_recover_after_hung_store_calls(self):
        message = _schedule(self.db, self.now - DAY)
        release = threading.Event()
        self.addCleanup(release.set)
        real_find_due_messages = self.db.find_due_messages
        calls = []

        def find_due_messages(now):
            calls.append(now)
            if len(calls) <= 4:
                release.wait(5)
            return real_find_due_messages(now)

        self.db.find_due_messages = find_due_messages
        sweep = DeliverySweep(self.db, call_timeout_seconds=0.1)

        with self.assertLogs("timecapsule.delivery", level="ERROR"):
            for _ in range(4):
                self.assertTrue(sweep(now=self.now).query_failed)

        result = sweep(now=self.now)

        self.assertFalse(result.query_failed)
        self.assertEqual(result.delivered, [message.id])

    def test_sweep_never_raises(self):
        db = MagicMock()
        # Not iterable: blows up inside the batch loop.
        db.find_due_messages.return_value = 42
        sweep = DeliverySweep(db)

        with self.assertLogs("timecapsule.delivery", level="ERROR"):
            result = sweep(now=self.now)

        self.assertEqual(result.attempted, 0)
        db.mark_delivered.assert_not_called()


class LoggingNotifierTests(unittest.TestCase):
    def test_logs_message_and_child(self):
        db = InMemoryDbClient()
        message = _schedule(db, time.time())

        with self.assertLogs("timecapsule.delivery", level="INFO") as logs:
            LoggingNotifier().deliver(message)

        self.assertIn(message.id, logs.output[0])
        self.assertIn(message.child_id, logs.output[0])


if __name__ == "__main__":
    unittest.main()
