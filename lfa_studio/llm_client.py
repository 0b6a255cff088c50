# lfa_studio/llm_client.py

import logging
import random
import threading
import time
import traceback
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langchain_google_vertexai import ChatVertexAI
from openai import OpenAI

logger = logging.getLogger("lfa_studio.llm")

T = TypeVar("T")


class MaxRetryErrorsException(Exception):
    pass


# -----------------------
# Model names
# -----------------------

def is_openai_model(model_name: str) -> bool:
    prefixes = ("gpt-", "gpt4", "gpt-4", "gpt-5", "o3", "o4")
    return any((model_name or "").startswith(p) for p in prefixes)


# preset -> (verbosity, reasoning effort, service tier)
_OPENAI_PRESETS: Dict[str, Tuple[Optional[str], Optional[str], Optional[str]]] = {
    "standard": ("low", "low", None),
    "std": ("low", "low", None),
    "fast": ("low", "none", None),
    "medium": ("medium", "medium", None),
    "deep": ("medium", "high", None),
    "standard-flex": ("low", "low", "flex"),
    "fast-flex": ("low", "none", "flex"),
}
_VERBOSITY = {"low", "medium", "high"}
_REASONING = {"none", "minimal", "low", "medium", "high", "xhigh"}
_TIERS = {"auto", "default", "flex", "priority"}


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """
    'gpt-5.1_fast' -> ('gpt-5.1', {'text': {...}, 'reasoning': {...}, 'service_tier': ...}).
    Suffix tokens are presets or explicit verbosity/reasoning/tier values.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: no model name given")
    base, *tokens = raw.split("_")
    if not tokens:
        return base, {}

    verbosity = reasoning = tier = None
    unknown = []
    for tok in (t.strip().lower() for t in tokens):
        if not tok:
            continue
        if tok in _OPENAI_PRESETS:
            p_verb, p_reason, p_tier = _OPENAI_PRESETS[tok]
            verbosity = verbosity or p_verb
            reasoning = reasoning or p_reason
            tier = tier or p_tier
        elif verbosity is None and tok in _VERBOSITY:
            verbosity = tok
        elif reasoning is None and tok in _REASONING:
            reasoning = tok
        elif tier is None and tok in _TIERS:
            tier = tok
        else:
            unknown.append(tok)
    if unknown:
        raise ValueError(f"parse_model_name: unknown suffix token(s) {unknown} in '{raw}'")

    params: Dict[str, Any] = {"service_tier": tier or "default"}
    if verbosity is not None:
        params["text"] = {"verbosity": verbosity}
    if reasoning is not None:
        params["reasoning"] = {"effort": reasoning}
    return base, params


# -----------------------
# Retries
# -----------------------

def _is_timeout_error(e: Exception) -> bool:
    if isinstance(e, TimeoutError):
        return True
    msg = repr(e)
    return "TimeoutError" in msg or "timed out" in msg.lower()


def _is_resource_exhausted_error(e: Exception) -> bool:
    msg = str(e)
    return "429" in msg and (
        "RESOURCE_EXHAUSTED" in msg or "Resource has been exhausted" in msg or "Too Many Requests" in msg
    )


class Backoff:
    """
    Shared wait window for every call made through one client. A 429 or timeout
    pushes the window out (jittered, doubling up to `max_seconds`); a success
    halves the next delay.
    """

    def __init__(
        self,
        initial_seconds: float = 30.0,
        max_seconds: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._wait_until = 0.0
        self._seconds = initial_seconds
        self._max_seconds = max_seconds
        self._sleep = sleep
        self._monotonic = monotonic

    def wait(self) -> None:
        while True:
            with self._lock:
                remaining = self._wait_until - self._monotonic()
            if remaining <= 0:
                return
            self._sleep(min(remaining, 1.0))

    def register_failure(self) -> float:
        with self._lock:
            delay = random.uniform(self._seconds * 0.95, self._seconds * 1.35)
            self._seconds = min(self._seconds * 2, self._max_seconds)
            self._wait_until = max(self._wait_until, self._monotonic() + delay)
            return delay

    def register_success(self) -> None:
        with self._lock:
            self._seconds = max(1.0, self._seconds * 0.5)


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    backoff: Backoff,
    retries: int = 3,
    log: Callable[[str], None] | None = None,
) -> T:
    """Run a blocking LLM call, backing off on 429/timeouts, up to `retries` attempts."""
    last_exception: Exception | None = None
    for attempt in range(max(1, retries)):
        backoff.wait()
        start_time = time.time()
        try:
            result = fn()
            backoff.register_success()
            return result
        except Exception as e:
            elapsed = time.time() - start_time
            last_exception = e
            if _is_resource_exhausted_error(e) or _is_timeout_error(e):
                delay = backoff.register_failure()
                msg = f"Attempt {attempt+1} got 429/timeout, backing off ~{delay:.1f}s."
            else:
                msg = f"Attempt {attempt+1} failed."
            if log:
                log(f"{msg} (elapsed={elapsed:.2f}s): {e}\n{traceback.format_exc()}")

    raise MaxRetryErrorsException(f"All {retries} retry attempts failed.") from last_exception


# -----------------------
# Chat client
# -----------------------

class ChatLlmClient:
    """
    Minimal wrapper for chat-style use:

        text = chat_llm.invoke([SystemMessage(...), HumanMessage(...)])

    Under the hood:
    - Vertex: ChatVertexAI.invoke(messages)
    - OpenAI: Responses API with input=[{role, content}, ...]
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
        retries: int = 3,
        temperature: float = 0.3,
        backoff: Backoff | None = None,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name = model_name
        self.retries = retries
        self.backoff = backoff or Backoff()
        self.last_usage: Optional[Dict[str, int]] = None
        self._openai_params: Dict[str, Any] = {}

        if self.provider == "vertex":
            self._vertex = ChatVertexAI(
                project=vertex_project,
                location=vertex_region,
                model_name=model_name,
                timeout=timeout,
                temperature=temperature,
            )
            self._client = None
        else:
            self._vertex = None
            self.model_name, self._openai_params = parse_model_name(model_name)
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout
            self._client = OpenAI(**client_kwargs)

    def _merge_usage(self, inc: Dict[str, int]) -> None:
        if self.last_usage is None:
            self.last_usage = dict(inc)
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _to_openai_messages(self, messages: List[BaseMessage]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "developer"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out

    def _invoke_once(self, messages: List[BaseMessage]) -> str:
        if self.provider == "vertex":
            resp = self._vertex.invoke(messages)
            usage_md = getattr(resp, "usage_metadata", None)
            if usage_md:
                self._merge_usage({
                    "prompt_token_count": int(usage_md.get("input_tokens", 0) or 0),
                    "candidates_token_count": int(usage_md.get("output_tokens", 0) or 0),
                    "total_token_count": int(usage_md.get("total_tokens", 0) or 0),
                })
            if isinstance(resp, str):
                return resp
            return getattr(resp, "content", str(resp))

        resp = self._client.responses.create(
            model=self.model_name,
            input=self._to_openai_messages(messages),
            **self._openai_params,
        )
        usage = getattr(resp, "usage", None)
        if usage is not None:
            self._merge_usage({
                "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
                "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
                "total_token_count": getattr(usage, "total_tokens", 0) or 0,
            })
        return (getattr(resp, "output_text", "") or "").strip()

    def invoke(self, messages: List[BaseMessage], *, retries: int | None = None) -> str:
        """Synchronous chat call with 429/timeout backoff + retries."""
        return call_with_retries_sync(
            lambda: self._invoke_once(messages),
            backoff=self.backoff,
            retries=self.retries if retries is None else retries,
            log=lambda msg: logger.warning("[CHAT-LLM-RETRY] %s", msg),
        )


def build_chat_llm(settings) -> ChatLlmClient:
    return ChatLlmClient(
        settings.llm_model,
        vertex_project=settings.google_project,
        vertex_region=settings.google_region,
        timeout=settings.llm_timeout,
        retries=settings.llm_retries,
    )
