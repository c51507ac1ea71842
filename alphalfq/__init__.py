"""AlphaLFQ - Label-free MS1 quantification with match-between-runs.

Peptides identified by MS/MS are quantified from their isotope-resolved MS1
signal, traced across consecutive scans into chromatographic peaks.
Match-between-runs transfers identifications to runs where the peptide was
not fragmented, scoring every transfer against target/decoy controls.

Raw file reading and peptide identification happen upstream; this library
starts from indexed MS1 peaks and identification records.
"""

__version__ = "0.1.0"

from alphalfq import mass
from alphalfq import features
from alphalfq import mbr
from alphalfq import scoring
from alphalfq.data import IndexedPeak, Identification, ProteinGroup, SpectraFileInfo
from alphalfq.exceptions import AlphaLfqError, ScorerFileMismatchError, UsageError
from alphalfq.indexing import PeakIndex
from alphalfq.params import InstrumentType, LfqParams
from alphalfq.quantification import quantify_identifications

__all__ = [
    "mass",
    "features",
    "mbr",
    "scoring",
    # Records
    "IndexedPeak",
    "Identification",
    "ProteinGroup",
    "SpectraFileInfo",
    "PeakIndex",
    # Configuration and errors
    "InstrumentType",
    "LfqParams",
    "AlphaLfqError",
    "UsageError",
    "ScorerFileMismatchError",
    # Per-run quantification
    "quantify_identifications",
]
