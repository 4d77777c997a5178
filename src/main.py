"""ragvault FastAPI application entry point.

Wires together providers and services via dependency injection.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

Also exposes :func:`build_services` so the CLI assembles exactly the same
service graph as the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    parse_origins,
)
from src.api.routes import API_VERSION
from src.api.routes import router as api_router
from src.config.loader import load_config, settings_from_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.ingestion.job_controller import IngestionJobController
from src.services.ingestion.source_processors import DocumentTextExtractor
from src.services.retrieval import KnowledgeBaseTool, QueryRewriter, RetrievalService
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = settings_from_config()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """OpenAI (or an OpenAI-compatible server) when a key is set, else Ollama."""
    if app_settings.uses_openai():
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Unlike the chat model there is no runtime fallback: a collection can
    only be searched with the model that embedded it, so the choice is
    made by configuration alone.
    """
    if app_settings.uses_openai():
        return OpenAIEmbeddingProvider(settings=app_settings)
    return NomicEmbeddingProvider(settings=app_settings)


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    return ChromaDBProvider(
        host=app_settings.chromadb_host,
        port=app_settings.chromadb_port,
        persist_directory=app_settings.chromadb_persist_dir,
    )


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_services(
    app_settings: Settings,
    *,
    embedding_provider: IEmbeddingProvider,
    vector_store: IVectorStoreProvider,
    llm_provider: ILLMProvider,
    text_extractor: ITextExtractor | None = None,
) -> dict[str, Any]:
    """Assemble the services around already-built providers.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        llm=llm_provider,
        default_top_k=app_settings.retrieval_top_k,
        rewrite_queries=app_settings.rewrite_queries,
    )
    return {
        "settings": app_settings,
        "embedding_provider": embedding_provider,
        "vector_store": vector_store,
        "llm_provider": llm_provider,
        "job_controller": IngestionJobController(
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            text_extractor=text_extractor or DocumentTextExtractor(),
            settings=app_settings,
        ),
        "retrieval_service": retrieval_service,
        "query_rewriter": QueryRewriter(llm_provider),
        "knowledge_base_tool": KnowledgeBaseTool(
            retrieval_service, n_results=app_settings.retrieval_top_k
        ),
    }


def build_providers(app_settings: Settings) -> dict[str, Any]:
    """Construct the three remote-service providers from configuration."""
    return {
        "embedding_provider": _build_embedding_provider(app_settings),
        "vector_store": _build_vector_store(app_settings),
        "llm_provider": _build_llm_provider(app_settings),
    }


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application."""
    return build_services(app_settings, **build_providers(app_settings))


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=API_VERSION,
        environment=settings.app_env,
        embedding_provider=components["embedding_provider"].get_provider_name(),
        embedding_model=components["embedding_provider"].get_model_name(),
        llm_provider=components["llm_provider"].get_provider_name(),
        vector_store=components["vector_store"].get_provider_name(),
        config_sections=sorted(config),
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="ragvault API",
        version=API_VERSION,
        description=(
            "Upload PDF and text documents into named vector-store collections "
            "with streamed progress, then retrieve relevant passages to ground "
            "chat answers."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=parse_origins(settings.cors_origins))

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Serve the API with uvicorn (reloading in development)."""
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
