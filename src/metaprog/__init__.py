# src/metaprog/__init__.py
from __future__ import annotations

from .errors import (
    DegenerateClusteringError,
    EmptySignatureError,
    InvalidInputError,
    MetaProgramError,
)

__all__ = [
    "DegenerateClusteringError",
    "EmptySignatureError",
    "InvalidInputError",
    "MetaProgramError",
]
