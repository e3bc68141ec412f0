"""
Speaker identification.
"""

from hey_llama.speaker.base import Identifier, NullIdentifier, Speaker, SpeakerError
from hey_llama.speaker.embedding import EmbeddingIdentifier, cosine_distance

__all__ = [
    "Identifier",
    "NullIdentifier",
    "Speaker",
    "SpeakerError",
    "EmbeddingIdentifier",
    "cosine_distance",
]
