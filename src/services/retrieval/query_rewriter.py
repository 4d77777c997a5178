"""LLM-backed rewriting of chat messages into vector-search queries.

Conversational messages ("hey, what did the handbook say about leave again?")
embed poorly.  The rewriter asks the chat model for a short query that
keeps only the concepts worth matching on.
"""

from __future__ import annotations

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)

REWRITE_PROMPT = """You are a query optimization assistant. Your task is to convert a user's message into an optimized search query for a vector database.

User message: "{message}"

Generate a clear, concise search query that captures the key concepts and intent of the user's message. The query should be optimized for semantic similarity search.

Return ONLY the search query text, without any explanations or additional text."""

_QUOTES = "\"'`"


class QueryRewriter:
    """Turns a user message into a search query via an :class:`ILLMProvider`."""

    def __init__(self, llm: ILLMProvider, max_tokens: int = 200) -> None:
        self._llm = llm
        self._max_tokens = max_tokens

    async def rewrite(self, message: str) -> str:
        """Return an optimized search query for *message*.

        Raises
        ------
        LLMError
            If the model call fails or produces nothing usable.
        """
        text = await self._llm.complete(
            system_prompt="",
            user_prompt=REWRITE_PROMPT.format(message=message),
            temperature=0.0,
            max_tokens=self._max_tokens,
        )
        query = text.strip().strip(_QUOTES).strip()
        if not query:
            raise LLMError(
                message="Query rewrite returned an empty query",
                provider_name=self._llm.get_provider_name(),
            )
        logger.debug("query_rewritten", original_chars=len(message), query=query)
        return query
