"""Vector store provider implementations.

ChromaDB is the sole vector store implementation.  By default it talks to a
Chroma server at CHROMADB_HOST:CHROMADB_PORT; setting CHROMADB_PERSIST_DIR
switches to an embedded on-disk store instead.

To swap ChromaDB for another vector database, create a new class
implementing IVectorStoreProvider and construct it in main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
