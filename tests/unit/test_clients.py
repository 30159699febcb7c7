import httpx
import pytest

from callguard.clients import ResilientServiceClient, is_retryable_http_error
from callguard.core.exceptions import RetryExhaustedError, UpstreamError
from callguard.core.invoker import ResilientInvoker
from callguard.core.retry import RetryPolicy

class Upstream:
    """Scripted upstream service for httpx.MockTransport.

    Each script step is a status code, a (status, json) pair or an exception.
    The last step repeats once the script runs out.
    """

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, tuple):
            status, body = step
            return httpx.Response(status, json=body)
        return httpx.Response(step)

@pytest.fixture
def make_client(breaker, retry_policy, cache, clock, sleeper):
    """Create a client whose invoker classifies HTTP errors."""
    def factory(upstream: Upstream) -> ResilientServiceClient:
        invoker = ResilientInvoker(
            name="users",
            breaker=breaker,
            retry_policy=RetryPolicy(retry_policy.config, is_retryable=is_retryable_http_error),
            cache=cache,
            clock=clock,
            sleep=sleeper
        )
        return ResilientServiceClient(
            "http://users.test/",
            invoker,
            transport=httpx.MockTransport(upstream)
        )

    return factory

def test_retryable_classification():
    """Test which HTTP failures are considered transient"""
    request = httpx.Request("GET", "http://users.test/")

    def status_error(code):
        return httpx.HTTPStatusError("error", request=request, response=httpx.Response(code, request=request))

    assert is_retryable_http_error(httpx.ConnectError("refused", request=request))
    assert is_retryable_http_error(httpx.ReadTimeout("slow", request=request))
    assert is_retryable_http_error(status_error(503))
    assert is_retryable_http_error(status_error(429))
    assert not is_retryable_http_error(status_error(404))
    assert not is_retryable_http_error(status_error(400))
    assert not is_retryable_http_error(ValueError("not http"))

@pytest.mark.asyncio
async def test_get_json_is_cached(make_client):
    """Test repeated GETs are served from the result cache"""
    upstream = Upstream((200, {"id": 1}))
    client = make_client(upstream)

    first = await client.get_json("/users/1", params={"expand": "roles"})
    second = await client.get_json("users/1", params={"expand": "roles"})
    await client.close()

    assert first == second == {"id": 1}
    assert len(upstream.requests) == 1
    assert str(upstream.requests[0].url) == "http://users.test/users/1?expand=roles"

@pytest.mark.asyncio
async def test_get_json_retries_server_errors(make_client, sleeper):
    """Test 5xx responses are retried until success"""
    upstream = Upstream(
        503,
        502,
        (200, {"id": 1})
    )
    async with make_client(upstream) as client:
        result = await client.get_json("/users/1")

    assert result == {"id": 1}
    assert len(upstream.requests) == 3
    assert sleeper.delays == pytest.approx([0.1, 0.2])

@pytest.mark.asyncio
async def test_get_json_does_not_retry_client_errors(make_client):
    """Test 4xx responses fail immediately"""
    upstream = Upstream(404)
    async with make_client(upstream) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_json("/users/404")

    assert len(upstream.requests) == 1
    assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

@pytest.mark.asyncio
async def test_transport_errors_exhaust_retries(make_client):
    """Test connection failures surface as RetryExhaustedError"""
    upstream = Upstream(httpx.ConnectError("refused"))
    async with make_client(upstream) as client:
        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.get_json("/users/1")

    assert len(upstream.requests) == 3
    assert isinstance(exc_info.value.last_error.cause, httpx.ConnectError)

@pytest.mark.asyncio
async def test_post_json_is_never_cached(make_client, cache):
    """Test POST results bypass the result cache"""
    upstream = Upstream((201, {"created": True}))
    async with make_client(upstream) as client:
        await client.post_json("/users", {"name": "a"})
        await client.post_json("/users", {"name": "a"})

    assert len(upstream.requests) == 2
    assert upstream.requests[0].method == "POST"
    assert len(cache) == 0
