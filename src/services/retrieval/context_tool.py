"""Turning retrieved passages into model-ready text.

Two consumers:

- **Direct augmentation** -- the chat client retrieves up front and wraps
  the user's question with numbered context blocks
  (:func:`augment_user_message`).
- **Tool calling** -- models that support tools get
  :class:`KnowledgeBaseTool`, which they call with their own search query.
  The tool always answers with a JSON string (``status`` of ``success``,
  ``no_results`` or ``error``) so the model can explain a failure to the
  user instead of the turn failing.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from src.models.rag import RetrievalResult, RetrievedPassage
from src.pipeline.cancellation import CancellationToken
from src.services.retrieval.retrieval_service import (
    RetrievalErrorKind,
    RetrievalService,
    position_label,
)

logger = structlog.get_logger(logger_name=__name__)

TOOL_NAME = "getAdditionalContext"

TOOL_DESCRIPTION = (
    "Retrieve relevant context and information from the knowledge base to help answer "
    "questions. Use this tool when you need additional information or context that might "
    "be stored in documents. The tool will search for and return relevant document chunks "
    "based on your search query and collection name."
)

# Mean distance above which the model is told to treat results with caution.
LOW_RELEVANCE_THRESHOLD = 1.0

LOW_RELEVANCE_NOTE = (
    "\n\nNOTE: The retrieved documents may have low relevance to the query. Use this "
    "information cautiously and consider informing the user if the answer seems uncertain."
)

# Per error kind: (message, suggestion) shown to the model.
_ERROR_GUIDANCE: dict[RetrievalErrorKind, tuple[str, str]] = {
    RetrievalErrorKind.NO_COLLECTION: (
        "Collection name is required but was not provided.",
        "Please specify the collection name to search in. Ask the user which collection "
        "to use if uncertain.",
    ),
    RetrievalErrorKind.INVALID_QUERY: (
        "Search query cannot be empty.",
        "Provide a meaningful search query based on the user's question.",
    ),
    RetrievalErrorKind.EMBEDDING_FAILED: (
        "Failed to generate embedding for the search query.",
        "The embedding service may be unavailable. Try rephrasing the question or inform "
        "the user about the technical issue.",
    ),
    RetrievalErrorKind.INVALID_EMBEDDING: (
        "Received invalid embedding data.",
        "There may be an issue with the embedding service. Try a different search query "
        "or inform the user.",
    ),
    RetrievalErrorKind.COLLECTION_NOT_FOUND: (
        'The collection "{collection}" was not found in the knowledge base.',
        "Ask the user to verify the collection name or select a different collection.",
    ),
    RetrievalErrorKind.DATABASE_QUERY_FAILED: (
        "Failed to query the knowledge base.",
        "The knowledge base may be unavailable. Inform the user and try again later.",
    ),
    RetrievalErrorKind.UNEXPECTED_ERROR: (
        "An unexpected error occurred while retrieving context.",
        "This is an unexpected technical issue. Inform the user that the knowledge base is "
        "temporarily unavailable and try to answer based on general knowledge if possible.",
    ),
    RetrievalErrorKind.CANCELLED: (
        "The knowledge base search was cancelled.",
        "Answer based on general knowledge if appropriate.",
    ),
}


# ---------------------------------------------------------------------------
# Direct augmentation
# ---------------------------------------------------------------------------

def build_chat_context(passages: list[RetrievedPassage]) -> str:
    """Render passages as ``[Context i]: text`` blocks separated by blank lines."""
    return "\n\n".join(f"[Context {i}]: {p.text}" for i, p in enumerate(passages, start=1))


def augment_user_message(question: str, passages: list[RetrievedPassage]) -> str:
    """Wrap *question* with retrieved context; unchanged when there is none."""
    if not passages:
        return question
    return (
        "Based on the following context, please answer the user's question:\n\n"
        f"{build_chat_context(passages)}\n\n"
        f"User question: {question}"
    )


def build_tool_system_prompt(system_prompt: str, collection_name: str | None) -> str:
    """Append the tool-use instructions given to tool-capable models."""
    prompt = (
        (system_prompt or "")
        + "\n\nINSTRUCTION 1: You have access to external tools to assist in answering the "
        "user's question. Always attempt to use them to enhance your responses."
    )
    if collection_name:
        return prompt + (
            f"\n\nINSTRUCTION 2: If you require additional context use the {TOOL_NAME} tool "
            f"with the '{collection_name}' collection to provide the most relevant information."
        )
    return prompt + (
        " No specific collection was selected. You will have to remind the user to select a "
        "collection if needed."
    )


# ---------------------------------------------------------------------------
# Tool calling
# ---------------------------------------------------------------------------

class KnowledgeBaseTool:
    """Knowledge-base search exposed to a tool-calling model.

    The model supplies its own optimized query, so the tool does not run
    the query rewriter.
    """

    def __init__(
        self,
        retrieval_service: RetrievalService,
        n_results: int = 5,
        annotate_positions: bool = True,
    ) -> None:
        self._retrieval = retrieval_service
        self._n_results = n_results
        self._annotate = annotate_positions

    @staticmethod
    def definition() -> dict[str, Any]:
        """Return the OpenAI-style function definition for this tool."""
        return {
            "type": "function",
            "function": {
                "name": TOOL_NAME,
                "description": TOOL_DESCRIPTION,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "collectionName": {
                            "type": "string",
                            "description": (
                                "The name of the knowledge base collection to search in. Use "
                                "the collection name that the user has selected or mentioned."
                            ),
                        },
                        "searchQuery": {
                            "type": "string",
                            "description": (
                                "An optimized search query to find relevant information in the "
                                "knowledge base. Should be specific and focused on the key "
                                "concepts needed to answer the user's question."
                            ),
                        },
                    },
                    "required": ["collectionName", "searchQuery"],
                },
            },
        }

    async def execute(
        self,
        collection_name: str,
        search_query: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        """Search *collection_name* and return the tool's JSON answer."""
        logger.info("knowledge_base_tool_called", collection=collection_name, query=search_query)
        result = await self._retrieval.retrieve(
            search_query,
            collection_name,
            top_k=self._n_results,
            rewrite=False,
            cancellation=cancellation,
        )
        return json.dumps(self._to_payload(result, collection_name, search_query))

    async def fetch_adjacent(self, collection_name: str, chunk_id: str, direction: int = 1) -> str:
        """Return the neighbouring chunk of *chunk_id* as tool JSON."""
        passage = await self._retrieval.fetch_adjacent(collection_name, chunk_id, direction)
        if passage is None:
            return json.dumps(
                {
                    "status": "no_results",
                    "message": f"No chunk found next to {chunk_id}.",
                    "searched_collection": collection_name,
                }
            )
        return json.dumps(
            {
                "status": "success",
                "collection": collection_name,
                "chunk_id": passage.id,
                "position": position_label(passage),
                "context": passage.text,
            }
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _to_payload(
        self, result: RetrievalResult, collection_name: str, search_query: str
    ) -> dict[str, Any]:
        if result.error_kind is not None:
            kind = RetrievalErrorKind(result.error_kind)
            message, suggestion = _ERROR_GUIDANCE[kind]
            payload: dict[str, Any] = {
                "status": "error",
                "error_type": kind.value,
                "message": message.format(collection=collection_name),
                "suggestion": suggestion,
            }
            if result.error:
                payload["details"] = result.error
            return payload

        if not result.passages:
            return {
                "status": "no_results",
                "message": (
                    f'No relevant information found in the knowledge base for: "{search_query}"'
                ),
                "searched_collection": collection_name,
                "suggestion": (
                    "Try rephrasing the question, using different keywords, or inform the user "
                    "that this information is not available in the current knowledge base. You "
                    "can still answer based on your general knowledge if appropriate."
                ),
            }

        average = result.average_distance or 0.0
        context = "\n\n".join(
            self._format_source(i, p) for i, p in enumerate(result.passages, start=1)
        )
        if average > LOW_RELEVANCE_THRESHOLD:
            context += LOW_RELEVANCE_NOTE

        return {
            "status": "success",
            "message": "Successfully retrieved context from knowledge base.",
            "collection": collection_name,
            "query_used": search_query,
            "documents_found": len(result.passages),
            "average_relevance": f"{average:.3f}",
            "context": context,
        }

    def _format_source(self, number: int, passage: RetrievedPassage) -> str:
        header = f"[Source {number}] (Relevance: {passage.distance:.3f}):"
        label = position_label(passage) if self._annotate else None
        if label:
            return f"{header}\n{passage.text}\n({label})"
        return f"{header}\n{passage.text}"
