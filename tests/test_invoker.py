import threading
import time

import pytest
from google.api_core import exceptions as api_exceptions

from risklens.llm.invoker import (
    CancellationToken,
    InvocationTimeout,
    ModelInvoker,
    backoff_ms,
    classify_error,
)
from risklens.utils.errors import ModelInvocationError
from risklens.utils.types import FinishReason, RawModelResponse, TokenUsage


class StubClient:
    """Replays a script of replies; exceptions in the script are raised."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0

    def generate(self, prompt: str) -> RawModelResponse:
        self.calls += 1
        item = self.script[min(self.calls, len(self.script)) - 1]
        if isinstance(item, BaseException):
            raise item
        return RawModelResponse(text=item, usage=TokenUsage(3, 4, 7))


class SlowClient:
    def __init__(self, seconds: float):
        self.seconds = seconds

    def generate(self, prompt: str) -> RawModelResponse:
        time.sleep(self.seconds)
        return RawModelResponse(text="late")


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float):
        self.delays.append(seconds)


def test_success_first_attempt():
    sleep = SleepRecorder()
    env = ModelInvoker(StubClient('{"ok": 1}'), sleep=sleep).invoke("prompt")
    assert env.success
    assert env.attempts == 1
    assert env.usage.total_tokens == 7
    assert env.result.finish_reason is FinishReason.STOP
    assert sleep.delays == []


def test_retry_then_success():
    sleep = SleepRecorder()
    client = StubClient(RuntimeError("boom"), "")
    client.script.append("fine")
    env = ModelInvoker(client, sleep=sleep).invoke("prompt", max_retries=3)
    assert env.success and env.attempts == 3
    assert sleep.delays == [1.0, 2.0]


def test_always_failing_client_exact_attempts_and_backoff():
    sleep = SleepRecorder()
    client = StubClient(RuntimeError("down"))
    env = ModelInvoker(client, sleep=sleep).invoke("prompt", max_retries=6)
    assert not env.success
    assert client.calls == 6
    assert env.error.attempts == 6
    assert env.error.code == "error"
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 10.0]
    assert sum(sleep.delays) == sum(backoff_ms(a) for a in range(1, 6)) / 1000


def test_backoff_is_capped():
    assert [backoff_ms(a) for a in (1, 2, 3, 4, 5, 9)] == [1000, 2000, 4000, 8000, 10000, 10000]


def test_timeout_counts_as_failure():
    sleep = SleepRecorder()
    env = ModelInvoker(SlowClient(0.5), sleep=sleep).invoke("prompt", max_retries=1, timeout_ms=20)
    assert not env.success
    assert env.error.code == "timeout"
    assert "20ms" in env.error.message


def test_cancel_aborts_inflight_call_and_skips_retries():
    token = CancellationToken()
    client = SlowClient(1.0)
    threading.Timer(0.05, token.cancel).start()
    started = time.perf_counter()
    env = ModelInvoker(client).invoke("prompt", max_retries=3, timeout_ms=5000, cancel=token)
    assert not env.success
    assert env.error.code == "cancelled"
    assert env.attempts == 1
    assert time.perf_counter() - started < 0.9


def test_cancel_before_start():
    token = CancellationToken()
    token.cancel()
    client = StubClient("never")
    env = ModelInvoker(client).invoke("prompt", cancel=token)
    assert env.error.code == "cancelled"
    assert client.calls == 0


@pytest.mark.parametrize(
    "exc, code",
    [
        (api_exceptions.ResourceExhausted("slow down"), "rate_limited"),
        (api_exceptions.PermissionDenied("nope"), "forbidden"),
        (api_exceptions.Unauthenticated("who"), "forbidden"),
        (api_exceptions.InvalidArgument("bad"), "bad_request"),
        (api_exceptions.InternalServerError("oops"), "server_error"),
        (api_exceptions.ServiceUnavailable("later"), "server_error"),
        (RuntimeError("response blocked by safety filters"), "safety_filtered"),
        (RuntimeError("quota exhausted for project"), "quota_exceeded"),
        (InvocationTimeout(100), "timeout"),
        (RuntimeError("mystery"), "error"),
    ],
)
def test_classify_error(exc, code):
    assert classify_error(exc)[0] == code


def test_raw_invoke_raises_structured_error():
    invoker = ModelInvoker(StubClient(api_exceptions.PermissionDenied("key")), sleep=SleepRecorder())
    with pytest.raises(ModelInvocationError) as exc:
        invoker.raw_invoke("prompt")
    assert exc.value.code == "forbidden"
    assert exc.value.attempts == 1


def test_raw_invoke_returns_provider_shape():
    rsp = ModelInvoker(StubClient("text"), sleep=SleepRecorder()).raw_invoke("prompt")
    assert rsp.text == "text"
    assert rsp.usage.prompt_tokens == 3
