"""Target and decoy acceptor peaks of one donor identification."""

from typing import Iterable, Iterator, Optional, Tuple

from alphalfq.data import Identification
from alphalfq.features.chromatographic_peak import ChromatographicPeak


class DonorGroup:
    """Acceptor peaks transferred from one donor identification.

    Targets were searched at the predicted retention time, decoys at a
    randomly shifted one. The explicit partition is what a downstream
    probability calibration learns from.

    Args:
        donor_id: Identification the peaks were transferred from
        target_acceptors: MBR peaks at the predicted retention time
        decoy_acceptors: MBR peaks at decoy retention times
    """

    __slots__ = ('_donor_id', '_target_acceptors', '_decoy_acceptors')

    def __init__(
        self,
        donor_id: Identification,
        target_acceptors: Iterable[ChromatographicPeak],
        decoy_acceptors: Iterable[ChromatographicPeak],
    ):
        self._donor_id = donor_id
        self._target_acceptors = tuple(target_acceptors)
        self._decoy_acceptors = tuple(decoy_acceptors)

    @property
    def donor_id(self) -> Identification:
        return self._donor_id

    @property
    def target_acceptors(self) -> Tuple[ChromatographicPeak, ...]:
        return self._target_acceptors

    @property
    def decoy_acceptors(self) -> Tuple[ChromatographicPeak, ...]:
        return self._decoy_acceptors

    @property
    def best_target_mbr_score(self) -> float:
        """Highest target MBR score, 0 if there are no targets."""
        if not self._target_acceptors:
            return 0.0
        return max(peak.mbr_score for peak in self._target_acceptors)

    @property
    def best_target(self) -> Optional[ChromatographicPeak]:
        if not self._target_acceptors:
            return None
        return max(self._target_acceptors, key=lambda peak: peak.mbr_score)

    def __iter__(self) -> Iterator[ChromatographicPeak]:
        yield from self._target_acceptors
        yield from self._decoy_acceptors

    def __len__(self):
        return len(self._target_acceptors) + len(self._decoy_acceptors)

    def __repr__(self):
        return (
            f"DonorGroup({self._donor_id.modified_sequence!r}, targets={len(self._target_acceptors)}, "
            f"decoys={len(self._decoy_acceptors)}, best={self.best_target_mbr_score:.1f})"
        )
