"""Embedding provider shared by ingestion and query time.

Chunks and questions must be embedded by the same model so their vectors
are comparable; both sides obtain it from :func:`get_embedding_function`.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from langchain_huggingface import HuggingFaceEmbeddings

from finsight.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_embedding_function() -> HuggingFaceEmbeddings:
    """Return the configured sentence-transformer embedding function.

    Vectors are L2-normalised so cosine similarity and inner product agree.
    """
    logger.info("Loading embedding model %s", settings.embedding_model)
    return HuggingFaceEmbeddings(
        model_name=settings.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )
