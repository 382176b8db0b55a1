"""
Unit tests for the cache interceptor.
"""

import itertools
from typing import Annotated
from unittest.mock import MagicMock, patch

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_memoize.app.backends import MemoryCache
from service_memoize.app.interceptor import CacheInterceptor, memoize
from service_memoize.app.keys import KeyBuilder
from service_memoize.app.policy import Key, PolicyRegistry, cacheable, policy_of
from service_memoize.app.services import ClockedUppercaseService
from shared.config import MemoizeConfig
from shared.errors import CacheInfrastructureError, PolicyError, UnstableKeyError


def counting_clock():
    """Clock returning T0, T1, ... on successive readings."""
    counter = itertools.count()
    return lambda: f"T{next(counter)}"


class Counter:
    """Service with a cached and an uncached operation."""

    def __init__(self):
        self.calls = 0

    @cacheable("counter", ttl=20)
    def cached(self, value):
        self.calls += 1
        return f"{value}#{self.calls}"

    def uncached(self):
        self.calls += 1
        return self.calls

    @cacheable("counter.none", ttl=20)
    def nothing(self, value):
        self.calls += 1
        return None

    @staticmethod
    @cacheable("counter.static", ttl=20)
    def double(value: Annotated[int, Key], note: str = ""):
        return value * 2


class RogueBackend:
    """Backend that misuses the resolver by invoking it twice."""

    def get_or_compute(self, ttl, key, resolver):
        resolver()
        return resolver()


class TestCacheInterceptor:
    """Test cases for CacheInterceptor.invoke."""

    @pytest.fixture
    def backend(self):
        """Create MemoryCache instance."""
        return MemoryCache()

    @pytest.fixture
    def interceptor(self, backend):
        """Create CacheInterceptor around the memory backend."""
        return CacheInterceptor(backend)

    @pytest.fixture
    def service(self):
        """Create the sample service with a deterministic clock."""
        return ClockedUppercaseService(clock=counting_clock())

    def test_repeated_calls_return_first_value(self, interceptor, backend, service):
        """Test upper("text") is computed once under cache1.text."""
        v1 = interceptor.invoke(service.apply, ("text",))
        v2 = interceptor.invoke(service.apply, ("text",))

        assert v1 == v2 == "T0:TEXT"
        assert backend.keys() == ["cache1.text"]

    def test_untagged_argument_ignored(self, interceptor, backend, service):
        """Test only the tagged source argument forms the key."""
        v1 = interceptor.invoke(service.apply_with_prefix, ("text", "Prefix"))
        v2 = interceptor.invoke(service.apply_with_prefix, ("text", "Prefix"))
        v3 = interceptor.invoke(service.apply_with_prefix, ("text", "X-Prefix"))

        assert v1 == v2 == v3 == "Prefix@T0:TEXT"
        assert backend.keys() == ["cache2.text"]

    def test_tagged_argument_changes_key(self, interceptor, backend, service):
        """Test varying a tagged argument produces a new entry."""
        v1 = interceptor.invoke(service.apply_with_prefix, ("text", "Prefix"))
        v2 = interceptor.invoke(service.apply_with_prefix, ("other", "Prefix"))

        assert v1 != v2
        assert sorted(backend.keys()) == ["cache2.other", "cache2.text"]

    def test_keyword_and_positional_share_key(self, interceptor, service):
        """Test keyword calls bind to the same key as positional ones."""
        v1 = interceptor.invoke(service.apply, ("text",))
        v2 = interceptor.invoke(service.apply, (), {"source": "text"})

        assert v1 == v2

    def test_unannotated_passthrough(self):
        """Test operations without policy never reach the backend."""
        backend = MagicMock(wraps=MemoryCache())
        interceptor = CacheInterceptor(backend)
        counter = Counter()

        results = [interceptor.invoke(counter.uncached) for _ in range(10)]

        assert results == list(range(1, 11))
        backend.get_or_compute.assert_not_called()

    def test_operation_failure_not_cached(self, interceptor, backend):
        """Test a failing operation is re-executed on the next call."""
        calls = []

        @cacheable("cache1", ttl=20)
        def explode(value):
            calls.append(value)
            raise ValueError(value)

        for _ in range(2):
            with pytest.raises(ValueError):
                interceptor.invoke(explode, ("boom",))

        assert calls == ["boom", "boom"]
        assert not backend.contains("cache1.boom")

    def test_operation_failure_identity(self, interceptor):
        """Test the operation's own exception reaches the caller untranslated."""
        error = RuntimeError("service failed")

        @cacheable("ns")
        def failing():
            raise error

        with pytest.raises(RuntimeError) as excinfo:
            interceptor.invoke(failing)

        assert excinfo.value is error

    def test_none_result_recomputed(self, interceptor):
        """Test None results are not treated as cached."""
        counter = Counter()

        interceptor.invoke(counter.nothing, ("x",))
        interceptor.invoke(counter.nothing, ("x",))

        assert counter.calls == 2

    def test_backend_provider(self, backend, service):
        """Test a zero-argument provider is resolved on dispatch."""
        lookups = []

        def provider():
            lookups.append(1)
            return backend

        interceptor = CacheInterceptor(provider)

        interceptor.invoke(service.apply, ("a",))
        interceptor.invoke(service.apply, ("a",))

        assert len(lookups) == 2
        assert backend.keys() == ["cache1.a"]

    def test_failing_provider_is_infrastructure_failure(self, service):
        """Test provider failures are reported as infrastructure failures."""
        def provider():
            raise LookupError("no backend bound")

        interceptor = CacheInterceptor(provider)

        with pytest.raises(CacheInfrastructureError) as excinfo:
            interceptor.invoke(service.apply, ("a",))

        assert isinstance(excinfo.value.cause, LookupError)

    def test_resolver_invoked_twice(self, service):
        """Test a resolver runs the operation at most once."""
        interceptor = CacheInterceptor(RogueBackend())

        with pytest.raises(CacheInfrastructureError):
            interceptor.invoke(service.apply, ("a",))

    def test_invalid_registry_position(self, backend, service):
        """Test out-of-range registered positions fail as infrastructure failures."""
        registry = PolicyRegistry()
        registry.register("apply", namespace="cache1", ttl=20, key_positions=(3,))
        interceptor = CacheInterceptor(backend, registry=registry)

        with pytest.raises(PolicyError):
            interceptor.invoke(service.apply, ("a",))

    def test_registry_policy(self, backend):
        """Test registered policies apply to undecorated operations."""
        registry = PolicyRegistry()
        registry.register("lookup", namespace="reg", ttl=5, key_positions=(1,))
        interceptor = CacheInterceptor(backend, registry=registry)
        calls = []

        def lookup(tenant, item):
            calls.append(item)
            return f"{tenant}/{item}"

        assert interceptor.invoke(lookup, ("t1", "i1")) == "t1/i1"
        assert interceptor.invoke(lookup, ("t2", "i1")) == "t1/i1"
        assert backend.keys() == ["reg.i1"]
        assert calls == ["i1"]

    def test_strict_keys(self, backend):
        """Test strict key building rejects identity-bearing arguments."""
        interceptor = CacheInterceptor(backend, key_builder=KeyBuilder(strict=True))

        @cacheable("ns")
        def operation(value):
            return value

        with pytest.raises(UnstableKeyError):
            interceptor.invoke(operation, (object(),))

    def test_resolve_hook(self, backend, service):
        """Test the trace hook fires once per resolution."""
        hook = MagicMock()
        interceptor = CacheInterceptor(backend, on_resolve=hook)

        interceptor.invoke(service.apply, ("text",))
        interceptor.invoke(service.apply, ("text",))

        hook.assert_called_once_with("ClockedUppercaseService.apply", "cache1.text")

    def test_key_for_requires_policy(self, interceptor):
        """Test key computation on an undeclared operation is refused."""
        with pytest.raises(CacheInfrastructureError):
            interceptor.key_for(Counter().uncached, (), {})

    def test_from_config(self):
        """Test settings choose the backend, key strictness and log level."""
        config = MemoizeConfig(backend="ttl_memory", strict_keys=True, log_level="debug")
        with patch("service_memoize.app.interceptor.interceptor.configure_logging") as configure:
            interceptor = CacheInterceptor.from_config(config)

        configure.assert_called_once_with("memoize", "debug")
        assert interceptor.backend.name == "ttl_memory"
        assert interceptor.key_builder.strict is True


class TestWrapAndEnhance:
    """Test cases for the decorator and class surfaces."""

    def test_wrap_function(self):
        """Test wrapping a module-level style function."""
        backend = MemoryCache()
        calls = []

        @memoize(backend)
        @cacheable("users", ttl=60)
        def load_user(user_id: str, verbose: bool = False):
            calls.append(user_id)
            return {"id": user_id}

        assert load_user("u1") == {"id": "u1"}
        assert load_user("u1", verbose=False) == {"id": "u1"}
        assert calls == ["u1"]
        assert backend.keys() == ["users.u1.false"]
        assert load_user.__name__ == "load_user"
        assert policy_of(load_user) is None
        assert policy_of(load_user.__wrapped__).namespace == "users"

    def test_enhance_class(self):
        """Test enhanced subclasses intercept policy-bearing methods."""
        backend = MemoryCache()
        interceptor = CacheInterceptor(backend)
        Enhanced = interceptor.enhance(ClockedUppercaseService)

        service = Enhanced(clock=counting_clock())

        assert isinstance(service, ClockedUppercaseService)
        assert service.apply("text") == service.apply("text") == "T0:TEXT"
        assert service.apply_with_prefix("text", "Prefix") == "Prefix@T1:TEXT"
        assert service.apply_with_prefix("text", "X-Prefix") == "Prefix@T1:TEXT"
        assert sorted(backend.keys()) == ["cache1.text", "cache2.text"]

    def test_enhance_static_method(self):
        """Test static methods with a policy are intercepted too."""
        backend = MemoryCache()
        Enhanced = CacheInterceptor(backend).enhance(Counter)

        assert Enhanced.double(4, note="a") == 8
        assert Enhanced.double(4, note="b") == 8
        assert backend.keys() == ["counter.static.4"]

    def test_enhance_leaves_plain_methods(self):
        """Test methods without policy keep their behaviour."""
        Enhanced = CacheInterceptor(MemoryCache()).enhance(Counter)
        counter = Enhanced()

        assert [counter.uncached() for _ in range(3)] == [1, 2, 3]
        assert counter.cached("a") == counter.cached("a") == "a#4"

    def test_enhance_twice_caches_once(self):
        """Test enhancing an enhanced class does not intercept twice."""
        backend = MemoryCache()
        interceptor = CacheInterceptor(backend)
        Twice = interceptor.enhance(interceptor.enhance(Counter))

        counter = Twice()
        assert counter.cached("a") == "a#1"
        assert counter.cached("a") == "a#1"


class TestAsyncInterception:
    """Test cases for coroutine operations."""

    @pytest.mark.asyncio
    async def test_async_operation_cached(self):
        """Test async operations are cached through the coroutine path."""
        backend = MemoryCache()
        calls = []

        @memoize(backend)
        @cacheable("quotes", ttl=5)
        async def fetch_quote(symbol: Annotated[str, Key], trace_id: str = ""):
            calls.append(symbol)
            return {"symbol": symbol, "price": 42}

        first = await fetch_quote("BRN", trace_id="a")
        second = await fetch_quote("BRN", trace_id="b")

        assert first == second
        assert calls == ["BRN"]
        assert backend.keys() == ["quotes.BRN"]

    @pytest.mark.asyncio
    async def test_async_passthrough(self):
        """Test async operations without policy run every time."""
        interceptor = CacheInterceptor(MemoryCache())
        calls = []

        async def ping():
            calls.append(1)
            return "pong"

        for _ in range(3):
            assert await interceptor.ainvoke(ping) == "pong"

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_async_requires_capable_backend(self):
        """Test backends without a coroutine variant are refused."""
        backend = MagicMock(spec=["get_or_compute"])
        interceptor = CacheInterceptor(backend)

        @cacheable("ns")
        async def operation():
            return 1

        with pytest.raises(CacheInfrastructureError):
            await interceptor.ainvoke(operation)
