# copilot/rag/scoring.py
from typing import List, Mapping, Sequence

import numpy as np

OVERLAP_WEIGHT = 0.5
COSINE_WEIGHT = 0.5


def overlap_score(query_tokens: Sequence[str], doc_tokens: Sequence[str]) -> float:
    """
    Document tokens that hit the query vocabulary, divided by query length.

    The denominator is the raw query token count (duplicates included), so a
    document repeating a query term can push this past 1.0.
    """
    if not query_tokens:
        return 0.0
    vocab = set(query_tokens)
    hits = sum(1 for t in doc_tokens if t in vocab)
    return hits / len(query_tokens)


def cosine_similarity(a: Mapping[str, int], b: Mapping[str, int]) -> float:
    """Cosine over the union of keys; absent keys count as 0."""
    keys: List[str] = list(set(a) | set(b))
    if not keys:
        return 0.0
    va = np.array([float(a.get(k, 0)) for k in keys])
    vb = np.array([float(b.get(k, 0)) for k in keys])
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def combined_score(
    query_tokens: Sequence[str],
    query_tf: Mapping[str, int],
    doc_tokens: Sequence[str],
    doc_tf: Mapping[str, int],
) -> float:
    overlap = overlap_score(query_tokens, doc_tokens)
    cos = cosine_similarity(query_tf, doc_tf)
    return OVERLAP_WEIGHT * overlap + COSINE_WEIGHT * cos
