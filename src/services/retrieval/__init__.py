"""Query-time retrieval for the ragvault knowledge base.

rewrite (query_rewriter.py) -> embed -> search (retrieval_service.py)
-> context assembly and the model-facing tool (context_tool.py).
"""

from src.services.retrieval.context_tool import (
    KnowledgeBaseTool,
    augment_user_message,
    build_chat_context,
    build_tool_system_prompt,
)
from src.services.retrieval.query_rewriter import QueryRewriter
from src.services.retrieval.retrieval_service import (
    RetrievalErrorKind,
    RetrievalService,
    classify_distance,
)

__all__ = [
    "KnowledgeBaseTool",
    "QueryRewriter",
    "RetrievalErrorKind",
    "RetrievalService",
    "augment_user_message",
    "build_chat_context",
    "build_tool_system_prompt",
    "classify_distance",
]
