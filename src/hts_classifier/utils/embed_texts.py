import threading
from typing import Dict, Optional

import numpy as np
from sentence_transformers import SentenceTransformer
from hts_classifier.logger import get_logger

logger = get_logger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

# Cached in memory so each model is loaded once per process
_EMBEDDING_MODELS: Dict[str, SentenceTransformer] = {}
_MODEL_LOCK = threading.Lock()


def _get_model(model_name: str):
    """
    Lazy loads the SentenceTransformer model for model_name.
    """
    model = _EMBEDDING_MODELS.get(model_name)
    if model is not None:
        return model

    with _MODEL_LOCK:
        if model_name not in _EMBEDDING_MODELS:
            try:
                logger.info(f"Loading embedding model: {model_name}")
                _EMBEDDING_MODELS[model_name] = SentenceTransformer(model_name)
            except Exception as e:
                logger.error(f"Failed to load SentenceTransformer model: {e}")
                raise
        return _EMBEDDING_MODELS[model_name]


def embed_texts(texts: list[str], model_name: Optional[str] = None) -> np.ndarray:
    """
    Generates embeddings for a list of strings using a SentenceTransformer model.

    The backfill job and the query-time retriever must pass the same model_name,
    otherwise corpus and query vectors are not comparable.

    Args:
        texts: A list of strings to be embedded.
        model_name: SentenceTransformer model id. Defaults to all-MiniLM-L6-v2.

    Returns:
        A numpy array of shape (N, D) where N is the number of input strings
        and D is the dimensionality of the embeddings.
    """
    if not texts:
        logger.warning("Empty list of texts passed to embed_texts.")
        return np.array([]).astype('float32')

    # Ensure single string is treated as a list
    if isinstance(texts, str):
        texts = [texts]

    model = _get_model(model_name or DEFAULT_EMBEDDING_MODEL)

    try:
        logger.debug(f"Generating embeddings for {len(texts)} texts.")

        embeddings = model.encode(texts, show_progress_bar=False, normalize_embeddings=True)

        vector_array = np.array(embeddings).astype('float32')

        logger.debug(f"Generated embeddings. Shape: {vector_array.shape}")
        return vector_array

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise


def to_pgvector(vector) -> str:
    """Render a vector as a pgvector literal, e.g. '[0.1,0.2,0.3]'."""
    return "[" + ",".join(str(float(x)) for x in np.asarray(vector).ravel()) + "]"
