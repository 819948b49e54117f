"""Async chat-model client used for batch analysis and narrative synthesis.

The model is a LangChain chat model (``ChatOpenAI`` or ``ChatOllama``,
chosen by ``settings.llm_provider``).  Provider exceptions are translated
into the :class:`~auditor.errors.TransientExternalError` family so the
dispatcher's retry loop can treat every provider the same way.  The
LangChain client's own retries are disabled; retrying happens in one place.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai

from auditor.analysis.models import Batch, SiteReport
from auditor.analysis.parser import ResponseParser
from auditor.config import Settings
from auditor.errors import MalformedResponseError, NetworkError, RateLimited
from auditor.llm.prompts import build_batch_messages, build_synthesis_messages, clean_analysis_text


def build_chat_model(settings: Settings) -> Any:
    """Return a LangChain chat model configured from *settings*."""
    if settings.llm_provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=settings.openai_chat_model,
            api_key=settings.openai_api_key,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout,
            max_retries=0,
        )

    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=settings.ollama_chat_model,
        base_url=settings.ollama_base_url,
        temperature=settings.llm_temperature,
        num_predict=settings.llm_max_tokens,
    )


def _retry_after(exc: openai.APIStatusError) -> float | None:
    raw = exc.response.headers.get("retry-after") if exc.response is not None else None
    try:
        return float(raw) if raw else None
    except ValueError:
        return None


def _content_text(response: Any) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        # Multi-part content blocks; keep the text parts only.
        content = "".join(
            part if isinstance(part, str) else str(part.get("text", ""))
            for part in content
        )
    return str(content or "").strip()


class LLMClient:
    """Thin async wrapper over a LangChain chat model.

    Args:
        settings: Provider and model options.
        model: Pre-built chat model; built from *settings* when omitted.
        logger: Optional logger; defaults to this module's logger.
    """

    def __init__(
        self,
        settings: Settings,
        model: Any | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.model = model if model is not None else build_chat_model(settings)
        self.log = logger or logging.getLogger(__name__)

    async def complete(self, messages: list[Any]) -> str:
        """Send *messages* and return the stripped reply text.

        Raises:
            RateLimited: The provider rejected the call with HTTP 429.
            NetworkError: Connection failure, timeout or other non-2xx status.
        """
        try:
            response = await self.model.ainvoke(messages)
        except openai.RateLimitError as exc:
            raise RateLimited(str(exc), retry_after=_retry_after(exc)) from exc
        except (openai.APITimeoutError, openai.APIConnectionError) as exc:
            raise NetworkError(f"LLM API unreachable: {exc}") from exc
        except openai.APIStatusError as exc:
            raise NetworkError(f"LLM API returned {exc.status_code}: {exc}") from exc
        except (httpx.HTTPError, ConnectionError, TimeoutError) as exc:
            raise NetworkError(f"LLM API unreachable: {exc}") from exc
        return _content_text(response)

    async def analyze_batch(self, batch: Batch, slug: str, total: int) -> str:
        """Return the raw per-page analysis text for *batch*.

        Raises:
            MalformedResponseError: The reply was empty or carried none of
                the expected section markers.
        """
        text = await self.complete(build_batch_messages(batch, slug, total))
        if not text:
            raise MalformedResponseError(f"empty reply for batch {batch.index + 1}")
        if not ResponseParser.has_markers(text):
            raise MalformedResponseError(
                f"reply for batch {batch.index + 1} has no section markers"
            )
        self.log.debug(
            "[LLM] batch %d/%d answered (%d chars)", batch.index + 1, total, len(text)
        )
        return text

    async def synthesise(self, report: SiteReport, slug: str, page_text: str) -> str:
        """Return the cleaned narrative site assessment."""
        text = clean_analysis_text(
            await self.complete(build_synthesis_messages(report, slug, page_text))
        )
        if not text:
            raise MalformedResponseError("empty narrative reply")
        return text
