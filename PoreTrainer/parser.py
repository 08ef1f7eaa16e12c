"""
parser.py

Loading of basecalled nanopore reads from FAST5 (HDF5) files: the event
table, the basecalled sequence and the map from read k-mers to events.
"""

import io
import logging
from typing import Dict, List, Optional

import h5py
import numpy as np
from Bio import SeqIO

from .poremodel import GLOBAL_PARAMETERS, PoreModel

DEFAULT_BASECALL_GROUP = "Basecall_1D_000"
DEFAULT_KMER_SIZE = 5

STRANDS = ("template", "complement")
T_IDX = 0
C_IDX = 1

EVENT_DTYPE = np.dtype([
    ("mean", np.float64),
    ("stdv", np.float64),
    ("start", np.float64),
    ("length", np.float64),
])


class ReadLoadError(RuntimeError):
    """Raised when a FAST5 file lacks the slots needed for training."""


def make_events(
    means,
    stdvs=None,
    starts=None,
    lengths=None,
) -> np.ndarray:
    """
    Build an event table from per-event columns.

    Missing columns default to a standard deviation of 1, unit length and
    consecutive start times.
    """
    means = np.asarray(means, dtype=np.float64)
    n = len(means)
    events = np.zeros(n, dtype=EVENT_DTYPE)
    events["mean"] = means
    events["stdv"] = 1.0 if stdvs is None else stdvs
    events["length"] = 1.0 if lengths is None else lengths
    events["start"] = np.arange(n, dtype=np.float64) if starts is None else starts
    return events


def build_event_map(moves: np.ndarray, n_kmers: int) -> np.ndarray:
    """
    Map each k-mer position of a read to the range of events assigned to it.

    The first event belongs to k-mer 0 and every later event advances the
    k-mer index by its ``move`` value.

    Parameters
    ----------
    moves : np.ndarray
        Per-event move values (non-negative integers).
    n_kmers : int
        Number of k-mers in the read sequence.

    Returns
    -------
    np.ndarray
        Array of shape (n_kmers, 2) holding the inclusive (start, stop)
        event indices for each k-mer, -1 where no event maps.
    """
    event_map = np.full((max(n_kmers, 0), 2), -1, dtype=np.int64)
    moves = np.asarray(moves, dtype=np.int64)
    if len(moves) == 0 or n_kmers <= 0:
        return event_map

    kmer_idx = np.cumsum(moves) - moves[0]
    event_idx = np.arange(len(moves))

    # events past the end of the sequence have no k-mer to map to
    in_range = kmer_idx < n_kmers
    kmer_idx = kmer_idx[in_range]
    event_idx = event_idx[in_range]
    if len(kmer_idx) == 0:
        return event_map

    kmers, first = np.unique(kmer_idx, return_index=True)
    last = np.append(first[1:], len(kmer_idx)) - 1
    event_map[kmers, 0] = event_idx[first]
    event_map[kmers, 1] = event_idx[last]
    return event_map


class SquiggleRead:
    """
    A basecalled read: per-strand events, the basecalled sequence, the
    k-mer to event index map and a per-strand pore model.

    ``base_to_event_map`` has shape (n_kmers, 2 strands, 2) and holds the
    inclusive (start, stop) event range for each k-mer position of
    ``read_sequence``; -1 marks a k-mer without events.
    """

    def __init__(
        self,
        read_name: str,
        read_sequence: str,
        events: List[np.ndarray],
        base_to_event_map: np.ndarray,
        k: int = DEFAULT_KMER_SIZE,
        model_params: Optional[List[Dict[str, float]]] = None,
        fast5_path: Optional[str] = None,
    ):
        self.read_name = read_name
        self.read_sequence = read_sequence
        self.events = events
        self.base_to_event_map = base_to_event_map
        self.k = k
        self.fast5_path = fast5_path

        self.pore_model = []
        for strand_idx in range(len(STRANDS)):
            model = PoreModel(k)
            if model_params is not None and model_params[strand_idx]:
                model.set_parameters(model_params[strand_idx])
            model.bake_gaussian_parameters()
            self.pore_model.append(model)

    @classmethod
    def from_events(
        cls,
        read_name: str,
        read_sequence: str,
        events: np.ndarray,
        moves,
        k: int = DEFAULT_KMER_SIZE,
    ) -> "SquiggleRead":
        """Template-only read whose event map is derived from move values."""
        n_kmers = max(len(read_sequence) - k + 1, 0)
        event_map = np.full((n_kmers, len(STRANDS), 2), -1, dtype=np.int64)
        event_map[:, T_IDX, :] = build_event_map(moves, n_kmers)
        return cls(
            read_name,
            read_sequence,
            [events, np.zeros(0, dtype=EVENT_DTYPE)],
            event_map,
            k=k,
        )

    @property
    def n_kmers(self) -> int:
        return len(self.base_to_event_map)

    def n_events(self, strand_idx: int) -> int:
        return len(self.events[strand_idx])

    def get_time(self, event_idx, strand_idx: int):
        """Start time of an event relative to the first event of the strand."""
        starts = self.events[strand_idx]["start"]
        return starts[event_idx] - starts[0]

    def __repr__(self):
        return (
            f"SquiggleRead({self.read_name!r}, length={len(self.read_sequence)}, "
            f"events={[len(e) for e in self.events]})"
        )


# ----------------------------------------------------------------------
# FAST5 loading
# ----------------------------------------------------------------------
def _decode(value) -> str:
    # depending on how the file was written the value may already be str
    try:
        return value.decode()
    except (TypeError, AttributeError):
        return value


def infer_kmer_size(raw_events: np.ndarray, default: int = DEFAULT_KMER_SIZE) -> int:
    """Length of the basecaller's model_state k-mers, or ``default``."""
    if raw_events.dtype.names is None or "model_state" not in raw_events.dtype.names or len(raw_events) == 0:
        return default
    return len(_decode(raw_events["model_state"][0]))


def _get_sampling_rate(fast5_data: h5py.File) -> Optional[float]:
    try:
        return float(fast5_data["/UniqueGlobalKey/channel_id"].attrs["sampling_rate"])
    except KeyError:
        return None


def _convert_events(raw_events: np.ndarray, sampling_rate: Optional[float]) -> np.ndarray:
    """Convert a basecaller event table to EVENT_DTYPE with times in seconds."""
    events = make_events(
        raw_events["mean"],
        stdvs=raw_events["stdv"],
        starts=raw_events["start"],
        lengths=raw_events["length"],
    )
    # integer start/length columns are in samples
    if np.issubdtype(raw_events.dtype["start"], np.integer) and sampling_rate:
        events["start"] /= sampling_rate
        events["length"] /= sampling_rate
    return events


def _read_model_params(strand_group: h5py.Group) -> Dict[str, float]:
    if "Model" not in strand_group:
        return {}
    attrs = strand_group["Model"].attrs
    return {name: float(attrs[name]) for name in GLOBAL_PARAMETERS if name in attrs}


def load_read(
    fast5_path: str,
    basecall_group: str = DEFAULT_BASECALL_GROUP,
    k: Optional[int] = None,
) -> SquiggleRead:
    """
    Load a basecalled read from a single-read FAST5 file.

    Parameters
    ----------
    fast5_path : str
        Path to the FAST5 file.
    basecall_group : str
        Group under /Analyses holding the basecaller output.
    k : int, optional
        K-mer size of the event map. If None, inferred from the events'
        model_state column.

    Returns
    -------
    SquiggleRead

    Raises
    ------
    ReadLoadError
        If the file lacks the template events or the Fastq slot.
    """
    bc_path = f"/Analyses/{basecall_group}"
    events: List[np.ndarray] = []
    model_params: List[Dict[str, float]] = []

    with h5py.File(fast5_path, "r") as fast5_data:
        if bc_path not in fast5_data:
            raise ReadLoadError(f"{fast5_path}: basecall group '{basecall_group}' not present")

        template_path = f"{bc_path}/BaseCalled_template"
        try:
            raw_template = fast5_data[f"{template_path}/Events"][()]
            fastq = _decode(fast5_data[f"{template_path}/Fastq"][()])
        except KeyError:
            raise ReadLoadError(f"{fast5_path}: template Events or Fastq slot not present")

        if raw_template.dtype.names is None or "move" not in raw_template.dtype.names:
            raise ReadLoadError(f"{fast5_path}: template events have no 'move' column")

        sampling_rate = _get_sampling_rate(fast5_data)
        for strand in STRANDS:
            strand_path = f"{bc_path}/BaseCalled_{strand}"
            if strand_path in fast5_data and "Events" in fast5_data[strand_path]:
                raw_events = fast5_data[f"{strand_path}/Events"][()]
                events.append(_convert_events(raw_events, sampling_rate))
                model_params.append(_read_model_params(fast5_data[strand_path]))
            else:
                events.append(np.zeros(0, dtype=EVENT_DTYPE))
                model_params.append({})

    try:
        record = next(SeqIO.parse(io.StringIO(fastq), "fastq"))
    except (StopIteration, ValueError) as e:
        raise ReadLoadError(f"{fast5_path}: unable to parse Fastq slot: {e}")

    read_sequence = str(record.seq).upper()
    if k is None:
        k = infer_kmer_size(raw_template)

    # only the template strand has a 1D basecall to map against
    n_kmers = max(len(read_sequence) - k + 1, 0)
    event_map = np.full((n_kmers, len(STRANDS), 2), -1, dtype=np.int64)
    event_map[:, T_IDX, :] = build_event_map(raw_template["move"], n_kmers)

    logging.debug(
        f"Read '{record.id}': {len(read_sequence)} bases, "
        f"{len(events[T_IDX])} template events, k={k}"
    )
    return SquiggleRead(
        record.id,
        read_sequence,
        events,
        event_map,
        k=k,
        model_params=model_params,
        fast5_path=fast5_path,
    )


def load_reads(
    fast5_paths: List[str],
    basecall_group: str = DEFAULT_BASECALL_GROUP,
    k: Optional[int] = None,
) -> List[SquiggleRead]:
    """
    Load every read in ``fast5_paths``, in order.

    Loading stops at the first file that cannot be read; the error is logged
    and re-raised.
    """
    reads = []
    for fast5_path in fast5_paths:
        logging.info(f"Loading {fast5_path}")
        try:
            reads.append(load_read(fast5_path, basecall_group=basecall_group, k=k))
        except (OSError, ReadLoadError) as e:
            logging.error(f"Failed to load read '{fast5_path}': {e}")
            raise
    logging.info(f"Loaded {len(reads)} reads")
    return reads
