"""
Tests for the watch loop: delivery, error policies, re-subscription and
graceful shutdown.
"""

import threading

import pytest

from microkit.framework.configuration import WatchErrorPolicy, WatchLoop, WatchSettings, WatchState
from microkit.infrastructure.exceptions import (
    DecodeError, MicrokitException, NotFoundError, TransportError
)

from fixtures.fake_sources import FakeDocumentSource, wait_until

PATH = "billing/staging"


@pytest.fixture
def make_watch(source, store, terminate):
    watches = []

    def factory(settings=None):
        watch = WatchLoop(source, store, PATH, settings, terminate)
        watches.append(watch)
        return watch.start()

    yield factory

    for watch in watches:
        watch.stop(timeout=2)


class TestDelivery:
    """Snapshots are merged in delivery order."""

    def test_snapshots_are_merged(self, make_watch, source, store):
        watch = make_watch()
        subscription = source.latest_subscription()
        assert wait_until(lambda: watch.state == WatchState.WATCHING)

        subscription.publish({"log_level": "debug"})
        subscription.publish({"log_level": "info"})

        assert wait_until(lambda: watch.merge_count == 2)
        assert store.get_string("log_level") == "info"
        assert watch.is_running()

    def test_merge_is_full_replace(self, make_watch, source, store):
        store.merge({"feature_x": "off", "other": "1"})
        watch = make_watch()
        source.latest_subscription().publish({"feature_x": "on"})

        assert wait_until(lambda: watch.merge_count == 1)
        assert store.get_string("feature_x") == "on"
        assert store.get_string("other") == ""

    def test_start_twice_is_rejected(self, make_watch):
        watch = make_watch()
        with pytest.raises(RuntimeError):
            watch.start()


class TestDecodeErrors:
    """Decode errors follow on_decode_error."""

    def test_terminate_policy(self, make_watch, source, store, terminate):
        watch = make_watch()
        subscription = source.latest_subscription()
        subscription.fail(DecodeError("garbage", config_path=PATH))

        assert terminate.called.wait(2)
        assert isinstance(terminate.errors[0], DecodeError)
        assert wait_until(lambda: not watch.is_running())
        assert watch.state == WatchState.TERMINATED
        assert subscription.stopped

    def test_log_and_continue_keeps_last_state(self, make_watch, source, store, terminate):
        watch = make_watch(WatchSettings(on_decode_error=WatchErrorPolicy.LOG_AND_CONTINUE))
        subscription = source.latest_subscription()

        subscription.publish({"log_level": "debug"})
        assert wait_until(lambda: watch.merge_count == 1)

        subscription.fail(DecodeError("garbage", config_path=PATH))
        subscription.publish({"log_level": "warn"})

        assert wait_until(lambda: watch.merge_count == 2)
        assert store.get_string("log_level") == "warn"
        assert isinstance(watch.last_error, DecodeError)
        assert not terminate.called.is_set()
        assert watch.state == WatchState.WATCHING


class TestMissingDocument:
    """A deleted document follows on_missing_document."""

    def test_terminate_policy(self, make_watch, source, terminate):
        make_watch()
        source.latest_subscription().fail(NotFoundError("deleted", config_path=PATH))

        assert terminate.called.wait(2)
        assert isinstance(terminate.errors[0], NotFoundError)

    def test_log_and_continue(self, make_watch, source, store, terminate):
        watch = make_watch(WatchSettings(on_missing_document="log_and_continue"))
        subscription = source.latest_subscription()

        subscription.publish({"a": "1"})
        subscription.fail(NotFoundError("deleted", config_path=PATH))
        subscription.publish({"a": "2"})

        assert wait_until(lambda: watch.merge_count == 2)
        assert store.get_string("a") == "2"
        assert not terminate.called.is_set()


class TestTransportErrors:
    """A dead feed is fatal unless re-subscription is enabled."""

    def test_fatal_without_resubscribe(self, make_watch, source, terminate):
        watch = make_watch()
        source.latest_subscription().fail(TransportError("stream reset", config_path=PATH))

        assert terminate.called.wait(2)
        assert isinstance(terminate.errors[0], TransportError)
        assert watch.state == WatchState.TERMINATED
        assert source.subscribe_calls == 1

    def test_producer_close_is_fatal(self, make_watch, source, terminate):
        make_watch()
        source.latest_subscription().close("feed ended")
        assert terminate.called.wait(2)

    def test_resubscribes_and_keeps_merging(self, make_watch, source, store, terminate, fast_settings):
        settings = fast_settings.model_copy(update={"resubscribe_attempts": 3})
        watch = make_watch(settings)

        first = source.latest_subscription()
        first.publish({"v": "1"})
        assert wait_until(lambda: watch.merge_count == 1)

        first.fail(TransportError("stream reset", config_path=PATH))
        second = source.latest_subscription(count=2)
        second.publish({"v": "2"})

        assert wait_until(lambda: watch.merge_count == 2)
        assert store.get_string("v") == "2"
        assert first.stopped
        assert not terminate.called.is_set()
        assert wait_until(lambda: watch.state == WatchState.WATCHING)

    def test_resubscribe_retries_failed_subscribe_calls(self, make_watch, source, store, terminate, fast_settings):
        settings = fast_settings.model_copy(update={"resubscribe_attempts": 3})
        watch = make_watch(settings)
        first = source.latest_subscription()

        source.subscribe_errors = [TransportError("unavailable"), TransportError("unavailable")]
        first.fail(TransportError("stream reset", config_path=PATH))

        replacement = source.latest_subscription(count=2)
        replacement.publish({"v": "after outage"})

        assert wait_until(lambda: watch.merge_count == 1)
        assert source.subscribe_calls == 4
        assert not terminate.called.is_set()

    def test_exhaustion_terminates(self, make_watch, source, terminate, fast_settings):
        settings = fast_settings.model_copy(update={"resubscribe_attempts": 2})
        watch = make_watch(settings)
        first = source.latest_subscription()

        source.fail_all_subscribes = TransportError("unavailable")
        first.fail(TransportError("stream reset", config_path=PATH))

        assert terminate.called.wait(5)
        error = terminate.errors[0]
        assert isinstance(error, MicrokitException)
        assert error.error_code == "RETRY_EXHAUSTED"
        assert source.subscribe_calls == 3
        assert watch.state == WatchState.TERMINATED

    def test_initial_subscribe_failure_is_fatal(self, make_watch, source, terminate):
        source.fail_all_subscribes = TransportError("permission denied")
        watch = make_watch()

        assert terminate.called.wait(2)
        assert isinstance(terminate.errors[0], TransportError)
        assert wait_until(lambda: watch.state == WatchState.TERMINATED)


class TestStop:
    """stop() is a graceful exit, never a termination."""

    def test_stop(self, make_watch, source, terminate):
        watch = make_watch()
        subscription = source.latest_subscription()
        assert wait_until(lambda: watch.state == WatchState.WATCHING)

        watch.stop(timeout=2)

        assert watch.state == WatchState.STOPPED
        assert subscription.stopped
        assert not watch.is_running()
        assert not terminate.called.is_set()

    def test_stop_before_start(self, source, store, terminate):
        watch = WatchLoop(source, store, PATH, terminate=terminate)
        watch.stop()
        assert watch.state == WatchState.STOPPED
        assert source.subscribe_calls == 0

    def test_stop_is_idempotent(self, make_watch, source, terminate):
        watch = make_watch()
        source.latest_subscription()
        watch.stop(timeout=2)
        watch.stop(timeout=2)
        assert watch.state == WatchState.STOPPED
        assert not terminate.called.is_set()

    def test_stop_after_termination_keeps_terminated(self, make_watch, source, terminate):
        watch = make_watch()
        source.latest_subscription().fail(DecodeError("garbage"))
        assert terminate.called.wait(2)
        watch.stop(timeout=2)
        assert watch.state == WatchState.TERMINATED

    def test_stop_timeout_keeps_state_until_loop_exits(self, store, terminate):
        entered = threading.Event()
        release = threading.Event()

        class SlowSubscribeSource(FakeDocumentSource):
            def subscribe(self, path):
                entered.set()
                release.wait(5)
                return super().subscribe(path)

        source = SlowSubscribeSource()
        watch = WatchLoop(source, store, PATH, terminate=terminate).start()
        assert entered.wait(2)

        watch.stop(timeout=0.05)
        assert watch.state == WatchState.SUBSCRIBING

        release.set()
        watch.join(2)

        assert watch.state == WatchState.STOPPED
        assert source.subscriptions[0].stopped
        assert not terminate.called.is_set()
