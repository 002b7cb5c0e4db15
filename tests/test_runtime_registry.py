"""
Tests for the runtime registry: memoised acquisition, subscriptions, retry, timeouts.
"""

import asyncio

import pytest

from runtime_core.exceptions import RuntimeAcquisitionError, RuntimeTimedOut, UnsupportedLanguageError
from runtime_core.models import AcquisitionState
from runtime_core.runtime_registry import RuntimeRegistry


class TestAcquisition:
    """Test cases for RuntimeRegistry.get_runtime."""

    def test_concurrent_requests_construct_once(self, make_factory):
        """Test concurrent requests construct the runtime once."""
        factory = make_factory()
        registry = RuntimeRegistry({'python': factory})

        async def scenario():
            return await asyncio.gather(*(registry.get_runtime('python') for _ in range(10)))

        handles = asyncio.run(scenario())
        assert factory.calls == 1
        assert len(handles) == 10
        assert all(handle is handles[0] for handle in handles)
        assert registry.is_ready('python')

    def test_loading_state_while_in_flight(self, make_factory):
        """Test the loading state while construction is in flight."""
        registry = RuntimeRegistry({'python': make_factory(delay=0.05)})

        async def scenario():
            task = asyncio.ensure_future(registry.get_runtime('python'))
            await asyncio.sleep(0.01)
            assert registry.is_loading('python')
            assert registry.state('python') == AcquisitionState.LOADING
            await task

        asyncio.run(scenario())
        assert registry.state('python') == AcquisitionState.READY

    def test_aliases_share_one_entry(self, make_factory):
        """Test aliases share one registry entry."""
        factory = make_factory()
        registry = RuntimeRegistry({'python': factory})

        async def scenario():
            first = await registry.get_runtime('py')
            second = await registry.get_runtime('PYTHON')
            return first, second

        first, second = asyncio.run(scenario())
        assert first is second
        assert factory.calls == 1

    def test_sync_factory_supported(self, echo_handle_cls):
        """Test synchronous factories are supported."""
        handle = echo_handle_cls()
        registry = RuntimeRegistry({'python': lambda: handle})
        assert asyncio.run(registry.get_runtime('python')) is handle

    def test_unknown_language_raises(self):
        """Test unknown languages raise."""
        registry = RuntimeRegistry()
        with pytest.raises(UnsupportedLanguageError):
            asyncio.run(registry.get_runtime('cobol'))
        assert registry.state('cobol') == AcquisitionState.UNSTARTED

    def test_cached_handle_returned_without_construction(self, make_factory):
        """Test a cached handle is returned without construction."""
        factory = make_factory()
        registry = RuntimeRegistry({'python': factory})
        asyncio.run(registry.get_runtime('python'))
        asyncio.run(registry.get_runtime('python'))
        assert factory.calls == 1
        assert registry.get_cached('python') is not None


class TestFailure:
    """Test cases for acquisition failure and retry."""

    def test_failure_propagates_and_is_retryable(self, make_factory):
        """Test a failure propagates and the next call retries."""
        factory = make_factory(fail_times=1)
        registry = RuntimeRegistry({'python': factory})

        with pytest.raises(RuntimeAcquisitionError) as exc_info:
            asyncio.run(registry.get_runtime('python'))
        assert exc_info.value.language == 'python'
        assert registry.state('python') == AcquisitionState.FAILED
        assert registry.last_error('python') is not None
        assert registry.get_cached('python') is None

        handle = asyncio.run(registry.get_runtime('python'))
        assert handle is not None
        assert factory.calls == 2
        assert registry.is_ready('python')
        assert registry.get_status()['python']['attempts'] == 2

    def test_all_waiters_see_the_failure(self, make_factory):
        """Test every waiter sees the same failure."""
        registry = RuntimeRegistry({'python': make_factory(fail_times=1)})

        async def scenario():
            return await asyncio.gather(*(registry.get_runtime('python') for _ in range(3)),
                                        return_exceptions=True)

        results = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeAcquisitionError) for r in results)

    def test_subscribers_not_notified_on_failure(self, make_factory):
        """Test subscribers are not notified on failure."""
        registry = RuntimeRegistry({'python': make_factory(fail_times=1)})
        calls = []
        registry.subscribe('python', calls.append)
        with pytest.raises(RuntimeAcquisitionError):
            asyncio.run(registry.get_runtime('python'))
        assert calls == []


class TestSubscriptions:
    """Test cases for ready notifications."""

    def test_subscribers_run_in_registration_order(self, make_factory):
        """Test subscribers run in registration order."""
        registry = RuntimeRegistry({'python': make_factory()})
        calls = []
        registry.subscribe('python', lambda handle: calls.append('first'))
        registry.subscribe('python', lambda handle: calls.append('second'))
        asyncio.run(registry.get_runtime('python'))
        assert calls == ['first', 'second']

    def test_subscribe_after_ready_fires_immediately(self, make_factory):
        """Test subscribing after ready fires the callback at once."""
        registry = RuntimeRegistry({'python': make_factory()})
        handle = asyncio.run(registry.get_runtime('python'))
        received = []
        registry.subscribe('python', received.append)
        assert received == [handle]

    def test_failing_late_subscriber_is_logged_not_raised(self, make_factory):
        """Test a raising subscriber on a ready runtime does not break later subscribers."""
        registry = RuntimeRegistry({'python': make_factory()})
        handle = asyncio.run(registry.get_runtime('python'))

        def broken(handle):
            raise RuntimeError('subscriber failed')

        registry.subscribe('python', broken)
        received = []
        registry.subscribe('python', received.append)
        assert received == [handle]

    def test_unsubscribe(self, make_factory):
        """Test unsubscribed callbacks are not called."""
        registry = RuntimeRegistry({'python': make_factory()})
        calls = []
        unsubscribe = registry.subscribe('python', calls.append)
        unsubscribe()
        unsubscribe()
        asyncio.run(registry.get_runtime('python'))
        assert calls == []


class TestTimeouts:
    """Test cases for bounded waits and cancellation."""

    def test_timeout_does_not_cancel_shared_acquisition(self, make_factory):
        """Test a caller timeout leaves the shared acquisition running."""
        factory = make_factory(delay=0.1)
        registry = RuntimeRegistry({'python': factory})

        async def scenario():
            with pytest.raises(RuntimeTimedOut) as exc_info:
                await registry.get_runtime('python', timeout=0.01)
            assert exc_info.value.phase == 'acquisition'
            assert registry.is_loading('python')
            return await registry.get_runtime('python')

        handle = asyncio.run(scenario())
        assert handle is not None
        assert factory.calls == 1

    def test_default_timeout(self, make_factory):
        """Test the registry default timeout applies."""
        registry = RuntimeRegistry({'python': make_factory(delay=0.1)}, default_timeout=0.01)
        with pytest.raises(RuntimeTimedOut):
            asyncio.run(registry.get_runtime('python'))

    def test_cancelled_caller_does_not_cancel_acquisition(self, make_factory):
        """Test a cancelled caller leaves the shared acquisition running."""
        factory = make_factory(delay=0.05)
        registry = RuntimeRegistry({'python': factory})

        async def scenario():
            waiter = asyncio.ensure_future(registry.get_runtime('python'))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            return await registry.get_runtime('python')

        assert asyncio.run(scenario()) is not None
        assert factory.calls == 1


class TestRegistryInfo:
    """Test cases for introspection helpers."""

    def test_should_preload_only_embedded(self):
        """Test only embedded runtimes are preloaded."""
        registry = RuntimeRegistry()
        assert registry.should_preload('python') is True
        assert registry.should_preload('javascript') is False
        assert registry.should_preload('rust') is False

    def test_reset_clears_cache(self, make_factory):
        """Test reset clears cached runtimes."""
        factory = make_factory()
        registry = RuntimeRegistry({'python': factory})
        asyncio.run(registry.get_runtime('python'))
        registry.reset()
        assert registry.state('python') == AcquisitionState.UNSTARTED
        asyncio.run(registry.get_runtime('python'))
        assert factory.calls == 2
