from dataclasses import dataclass
from typing import Hashable, Iterable, Optional, Tuple, Union

import numpy as np

from school_attendance.config import settings
from school_attendance.errors import DimensionMismatchError, FormatError
from school_attendance.services.descriptor import (
    DescriptorCodec,
    Embedding,
    EmbeddingLike,
    as_embedding,
)
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)

Candidate = Tuple[Hashable, Union[str, EmbeddingLike]]


@dataclass(frozen=True)
class Match:
    candidate_id: Hashable
    distance: float

    @property
    def confidence(self) -> float:
        # A similarity score, not a probability.
        return 1.0 - self.distance


def euclidean_distance(a: Embedding, b: Embedding) -> float:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(a.shape[0], b.shape[0])
    return float(np.linalg.norm(a - b))


class DistanceMatcher:
    """
    Linear nearest-neighbour search over enrolled descriptors.

    A candidate becomes the best match only when its distance is strictly
    below both the current best and the threshold, so ties keep the first
    candidate seen. Candidates that cannot be decoded or whose length differs
    from the query are skipped. A malformed query, including one whose length
    differs from the codec's dimension, raises FormatError.
    """

    def __init__(
        self,
        threshold: float = settings.MATCH_DISTANCE_THRESHOLD,
        codec: Optional[DescriptorCodec] = None,
    ):
        self.threshold = threshold
        self.codec = codec or DescriptorCodec(dimension=None)

    def prepare_query(self, query: Union[str, EmbeddingLike]) -> Embedding:
        if isinstance(query, str):
            return self.codec.decode(query)
        return self.codec.validate(query)

    def _candidate_embedding(self, value: Union[str, EmbeddingLike]) -> Embedding:
        if isinstance(value, str):
            return self.codec.decode(value)
        return as_embedding(value)

    def best_match(
        self,
        query: Union[str, EmbeddingLike],
        candidates: Iterable[Candidate],
        threshold: Optional[float] = None,
    ) -> Optional[Match]:
        query_vector = self.prepare_query(query)

        best: Optional[Match] = None
        best_distance = self.threshold if threshold is None else threshold
        for candidate_id, value in candidates:
            try:
                distance = euclidean_distance(
                    query_vector, self._candidate_embedding(value)
                )
            except (FormatError, DimensionMismatchError) as exc:
                logger.warning("Skipping candidate %s: %s", candidate_id, exc)
                continue

            logger.debug("Face comparison: distance = %.4f for %s", distance, candidate_id)
            if distance < best_distance:
                best_distance = distance
                best = Match(candidate_id=candidate_id, distance=distance)

        return best
