"""Vector encoding helpers shared by the store and search layers."""

from ees.infra.search.vector_codec import decode_vector, encode_vector, vector_dimensions

__all__ = [
    "decode_vector",
    "encode_vector",
    "vector_dimensions",
]
