"""Resilient model invocation: per-attempt timeout, capped exponential backoff, cancellation.

The remote call runs on a worker thread and the caller waits on a condition
variable shared with the cancellation token, so a timeout, a finished call or a
cancel all wake the same wait. Backoff sleeps use the same wait and are cut
short by a cancel.
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Union

from google.api_core import exceptions as api_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from risklens.utils.errors import ModelInvocationError
from risklens.utils.types import AnalysisPrompt, RawModelResponse, TokenUsage

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 10000

ERROR_MESSAGES = {
    "rate_limited": "API rate limit exceeded. Please try again later.",
    "forbidden": "API access forbidden. Check your API key and permissions.",
    "bad_request": "Invalid request. Please check your prompt format.",
    "server_error": "Gemini API server error. Please try again later.",
    "safety_filtered": "Content filtered by safety settings. Please modify your input.",
    "quota_exceeded": "API quota exceeded. Please check your usage limits.",
    "empty_response": "Model returned an empty response.",
    "cancelled": "Invocation cancelled.",
}


class InvocationTimeout(Exception):
    def __init__(self, timeout_ms: int):
        super().__init__(f"Request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class EmptyResponse(Exception):
    pass


class InvocationCancelled(Exception):
    pass


class CancellationToken:
    """Cooperative cancel signal; also the condition every invoker wait blocks on."""

    def __init__(self):
        self._cond = threading.Condition()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def notify(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def wait_for(self, predicate: Callable[[], bool], timeout: Optional[float]) -> bool:
        """Block until predicate() holds, the token is cancelled, or timeout elapses."""
        with self._cond:
            return self._cond.wait_for(lambda: self._cancelled or predicate(), timeout)


@dataclass
class InvocationError:
    code: str
    message: str
    attempts: int


@dataclass
class ResponseEnvelope:
    success: bool
    result: Optional[RawModelResponse] = None
    error: Optional[InvocationError] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    attempts: int = 0


def backoff_ms(attempt: int) -> int:
    return min(BACKOFF_BASE_MS * 2 ** (attempt - 1), BACKOFF_CAP_MS)


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, api_exceptions.GoogleAPICallError):
        return exc.code
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> Tuple[str, str]:
    """Map an exception raised around a model call to (code, caller-facing message)."""
    if isinstance(exc, InvocationTimeout):
        return "timeout", str(exc)
    if isinstance(exc, EmptyResponse):
        return "empty_response", ERROR_MESSAGES["empty_response"]
    if isinstance(exc, InvocationCancelled):
        return "cancelled", ERROR_MESSAGES["cancelled"]
    if isinstance(exc, (BlockedPromptException, StopCandidateException)):
        return "safety_filtered", ERROR_MESSAGES["safety_filtered"]

    status = _status_of(exc)
    if status == 429 or isinstance(exc, api_exceptions.ResourceExhausted):
        code = "rate_limited"
    elif status in (401, 403) or isinstance(exc, (api_exceptions.PermissionDenied, api_exceptions.Unauthenticated)):
        code = "forbidden"
    elif status == 400 or isinstance(exc, api_exceptions.InvalidArgument):
        code = "bad_request"
    elif status is not None and 500 <= status < 600:
        code = "server_error"
    else:
        text = str(exc).lower()
        if "safety" in text or "blocked" in text:
            code = "safety_filtered"
        elif "quota" in text:
            code = "quota_exceeded"
        else:
            return "error", f"Gemini API error: {str(exc) or type(exc).__name__}"
    return code, ERROR_MESSAGES[code]


class ModelInvoker:
    def __init__(self, client, sleep: Optional[Callable[[float], None]] = None):
        self.client = client
        self._sleep = sleep

    def invoke(
        self,
        prompt: Union[str, AnalysisPrompt],
        max_retries: int = 3,
        timeout_ms: int = 60000,
        cancel: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        """Call the model with retries; failures come back as an envelope, never raised."""
        token = cancel or CancellationToken()
        text = prompt.as_text() if isinstance(prompt, AnalysisPrompt) else prompt
        max_retries = max(1, int(max_retries))
        code, message = "error", "No attempt was made"

        for attempt in range(1, max_retries + 1):
            if token.cancelled:
                return self._failed("cancelled", ERROR_MESSAGES["cancelled"], attempt - 1)
            try:
                rsp = self._attempt(text, timeout_ms, token)
                if not rsp.text or not rsp.text.strip():
                    raise EmptyResponse()
                logger.debug("Model call succeeded on attempt %d/%d", attempt, max_retries)
                return ResponseEnvelope(success=True, result=rsp, usage=rsp.usage, attempts=attempt)
            except InvocationCancelled:
                return self._failed("cancelled", ERROR_MESSAGES["cancelled"], attempt)
            except Exception as e:
                code, message = classify_error(e)
                logger.warning("Model call attempt %d/%d failed (%s): %s", attempt, max_retries, code, message)

            if attempt < max_retries:
                delay = backoff_ms(attempt)
                logger.debug("Backing off %dms before retry", delay)
                self._backoff(delay, token)

        return self._failed(code, message, max_retries)

    def raw_invoke(self, prompt: Union[str, AnalysisPrompt], timeout_ms: int = 60000) -> RawModelResponse:
        """Single attempt returning the provider's unstructured shape."""
        envelope = self.invoke(prompt, max_retries=1, timeout_ms=timeout_ms)
        if not envelope.success:
            err = envelope.error
            raise ModelInvocationError(err.code, err.message, err.attempts)
        return envelope.result

    def _attempt(self, text: str, timeout_ms: int, token: CancellationToken) -> RawModelResponse:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-call")
        try:
            future = executor.submit(self.client.generate, text)
            future.add_done_callback(lambda _f: token.notify())
            token.wait_for(future.done, timeout_ms / 1000.0)
        finally:
            # a timed-out call keeps running in the background; its result is dropped
            executor.shutdown(wait=False)
        if future.done():
            return future.result()
        future.cancel()
        if token.cancelled:
            raise InvocationCancelled()
        raise InvocationTimeout(timeout_ms)

    def _backoff(self, delay_ms: int, token: CancellationToken) -> None:
        if self._sleep is not None:
            self._sleep(delay_ms / 1000.0)
        else:
            token.wait_for(lambda: False, delay_ms / 1000.0)

    @staticmethod
    def _failed(code: str, message: str, attempts: int) -> ResponseEnvelope:
        return ResponseEnvelope(success=False, error=InvocationError(code, message, attempts), attempts=attempts)
