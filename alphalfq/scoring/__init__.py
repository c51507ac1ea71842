"""Statistical validation.

Target-decoy FDR with q-values and optional picked competition.
"""

from .fdr import (
    calculate_fdr,
    calculate_fdr_statistics,
)

__all__ = [
    "calculate_fdr",
    "calculate_fdr_statistics",
]
