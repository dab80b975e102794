# src/metaprog/errors.py
"""
Exception types raised at the stage boundaries of the meta-program pipeline.
"""

from __future__ import annotations


class MetaProgramError(Exception):
    """Base class for all meta-program pipeline failures."""


class InvalidInputError(MetaProgramError, ValueError):
    """A factor matrix is malformed (negative, non-finite, empty or all-zero)."""


class DegenerateClusteringError(MetaProgramError):
    """The requested number of clusters cannot be realized from the similarity matrix."""


class EmptySignatureError(MetaProgramError):
    """A cluster has no genes left after confidence filtering."""

    def __init__(self, cluster_id: int, message: str | None = None):
        self.cluster_id = int(cluster_id)
        super().__init__(
            message
            or f"Cluster {cluster_id} has an empty consensus signature after filtering."
        )
