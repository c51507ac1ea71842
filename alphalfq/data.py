"""Records shared by the quantification and match-between-runs modules.

``SpectraFileInfo`` and ``Identification`` use identity semantics: two runs or
two identifications are the same only if they are the same object, so one
``Identification`` can be referenced by many peaks without copies.
``IndexedPeak`` is a value type; two lookups of the same centroid in the same
scan compare equal and hash identically, which the envelope de-duplication in
``ChromatographicPeak.merge_feature_with`` relies on.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True, eq=False)
class SpectraFileInfo:
    """One LC-MS run."""

    full_file_path: str
    condition: str = ""
    biological_replicate: int = 0
    technical_replicate: int = 0
    fraction: int = 0

    @property
    def filename_without_extension(self) -> str:
        return Path(self.full_file_path).stem

    def __repr__(self):
        return f"SpectraFileInfo({self.filename_without_extension!r})"


@dataclass(frozen=True)
class ProteinGroup:
    """Protein group an identified peptide maps to."""

    protein_group_name: str
    gene_name: str = ""
    organism: str = ""


@dataclass(frozen=True, eq=False)
class Identification:
    """A confident peptide-spectrum match produced upstream.

    ``peakfinding_mass`` is the mass used to locate MS1 signal and to compute
    the peak's mass error; it defaults to ``monoisotopic_mass``.
    """

    spectra_file: SpectraFileInfo
    base_sequence: str
    modified_sequence: str
    monoisotopic_mass: float
    ms2_retention_time_in_minutes: float
    precursor_charge_state: int
    protein_groups: Tuple[ProteinGroup, ...] = ()
    peakfinding_mass: Optional[float] = None
    use_for_protein_quant: bool = True
    is_decoy: bool = False

    def __post_init__(self):
        # frozen dataclass: normalize through object.__setattr__
        if self.peakfinding_mass is None:
            object.__setattr__(self, "peakfinding_mass", float(self.monoisotopic_mass))
        object.__setattr__(self, "protein_groups", tuple(self.protein_groups))

    def __repr__(self):
        return (
            f"Identification({self.modified_sequence!r}, z={self.precursor_charge_state}, "
            f"rt={self.ms2_retention_time_in_minutes:.2f})"
        )


@dataclass(frozen=True)
class IndexedPeak:
    """A centroided MS1 peak located by the peak index."""

    mz: float
    intensity: float
    zero_based_ms1_scan_index: int
    retention_time: float
    one_based_scan_number: int = field(default=-1, compare=False)
