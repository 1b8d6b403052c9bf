# core/similarity_engine/ranking.py
"""
Best-match selection over a dense similarity matrix.
"""
from typing import Tuple
import numpy as np

def top_matches(similarities: np.ndarray, top_k: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the most similar targets for every query row.

    Args:
        similarities: Dense array shape (m, n) from cosine_similarity
        top_k: Matches per row; clamped to n

    Returns:
        Tuple of (indices, scores), both shape (m, min(top_k, n)), each row
        sorted by descending score
    """
    similarities = np.asarray(similarities)
    if similarities.ndim != 2:
        raise ValueError("similarities must be 2D")
    if top_k < 1:
        raise ValueError(f"top_k must be at least 1, got {top_k}")

    num_targets = similarities.shape[1]
    top_k = min(top_k, num_targets)
    if top_k == 0:
        empty = np.empty((similarities.shape[0], 0))
        return empty.astype(np.int64), empty.astype(similarities.dtype)

    # Unordered top-k per row, then sort only those k columns
    if top_k < num_targets:
        candidates = np.argpartition(-similarities, top_k - 1, axis=1)[:, :top_k]
    else:
        candidates = np.tile(np.arange(num_targets), (similarities.shape[0], 1))
    candidate_scores = np.take_along_axis(similarities, candidates, axis=1)

    order = np.argsort(-candidate_scores, axis=1, kind="stable")
    indices = np.take_along_axis(candidates, order, axis=1)
    scores = np.take_along_axis(candidate_scores, order, axis=1)
    return indices.astype(np.int64), scores
