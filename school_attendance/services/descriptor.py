"""
Descriptor codec.

Face embeddings are persisted as comma-joined decimal text. Each component is
written with ``repr`` so that decoding reproduces the exact float64 value.

Usage:
    codec = DescriptorCodec(dimension=128)
    text = codec.encode(embedding)
    embedding = codec.decode(text)
"""
import math
import re
from typing import Iterable, Optional, Union

import numpy as np

from school_attendance.config import settings
from school_attendance.errors import FormatError

Embedding = np.ndarray
EmbeddingLike = Union[np.ndarray, Iterable[float]]

SEPARATOR = ","
NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def as_embedding(values: EmbeddingLike) -> Embedding:
    """Coerce a numeric sequence to a 1-D float64 vector, or raise FormatError."""
    try:
        vector = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise FormatError(f"Embedding is not numeric: {exc}") from exc
    if vector.ndim != 1 or vector.size == 0:
        raise FormatError(f"Embedding must be a non-empty vector, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise FormatError("Embedding contains non-finite values")
    return vector


class DescriptorCodec:
    def __init__(self, dimension: Optional[int] = settings.DESCRIPTOR_DIMENSION):
        # None disables the length check.
        self.dimension = dimension

    def _check_dimension(self, size: int) -> None:
        if self.dimension is not None and size != self.dimension:
            raise FormatError(
                f"Descriptor has {size} components, expected {self.dimension}"
            )

    def validate(self, embedding: EmbeddingLike) -> Embedding:
        """Coerce an in-memory embedding and check it against the dimension."""
        vector = as_embedding(embedding)
        self._check_dimension(vector.size)
        return vector

    def encode(self, embedding: EmbeddingLike) -> str:
        vector = self.validate(embedding)
        return SEPARATOR.join(repr(float(value)) for value in vector)

    def decode(self, text: str) -> Embedding:
        if not isinstance(text, str) or not text.strip():
            raise FormatError("Descriptor is empty")

        tokens = text.split(SEPARATOR)
        self._check_dimension(len(tokens))

        values = []
        for position, token in enumerate(tokens):
            token = token.strip()
            # float() alone also accepts "1_5", "nan" and "infinity".
            if not NUMBER_PATTERN.fullmatch(token):
                raise FormatError(f"Descriptor token {position} is not a number: {token!r}")
            value = float(token)
            if not math.isfinite(value):
                raise FormatError(f"Descriptor token {position} is not finite")
            values.append(value)
        return np.array(values, dtype=np.float64)


default_codec = DescriptorCodec()


def encode(embedding: EmbeddingLike) -> str:
    return default_codec.encode(embedding)


def decode(text: str) -> Embedding:
    return default_codec.decode(text)
