"""Model collection for the topic-model experiments."""

from . import lda

__all__ = ["lda"]
