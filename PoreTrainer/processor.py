"""
processor.py

Functions for aligning basecalled k-mers to events, aggregating per-k-mer
training data, building the initial pore model and recalibrating each
read's scaling parameters against it.
"""

# Standard library imports
import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

# Third-party imports
import numpy as np
import pandas as pd

# Local package imports
from .alphabet import DNA_ALPHABET, DNAAlphabet
from .parser import T_IDX, SquiggleRead
from .poremodel import PoreModel

MIN_EVENTS_TO_RESCALE = 200
TRAINING_TABLE_COLUMNS = ["read_idx", "kmer", "level_mean", "duration"]
TRAINING_TABLE_DTYPES = {"read_idx": "int64", "level_mean": "float64", "duration": "float64"}


class EventAlignment(NamedTuple):
    """One k-mer to event correspondence of a read."""
    ref_kmer: str
    ref_position: int
    strand_idx: int
    event_idx: int
    rc: bool
    model_kmer: str
    hmm_state: str = "M"


class StateTrainingData(NamedTuple):
    level_mean: float
    level_stdv: float
    read_var: float


# Indexed by k-mer rank, then observation
KmerTrainingData = List[List[StateTrainingData]]


class TrainingResult(NamedTuple):
    model: PoreModel
    use_kmer: np.ndarray
    best_read_idx: int
    training_table: pd.DataFrame
    recalibration: pd.DataFrame


# ----------------------------------------------------------------------
# Alignment and training data
# ----------------------------------------------------------------------
def generate_alignment_to_basecalls(
    read: SquiggleRead,
    k: int,
    strand_idx: int,
    use_kmer: Optional[Sequence[bool]] = None,
    alphabet: DNAAlphabet = DNA_ALPHABET,
) -> List[EventAlignment]:
    """
    Align the k-mers of a read's basecalled sequence to its events.

    Only k-mer positions that map to exactly one event are kept; positions
    without events or spanning several events are skipped.

    Parameters
    ----------
    read : SquiggleRead
        The read to align.
    k : int
        K-mer length.
    strand_idx : int
        Strand whose events are aligned.
    use_kmer : sequence of bool, optional
        If given, only k-mers whose rank is marked True are kept.
    alphabet : DNAAlphabet
        Alphabet used to rank k-mers.

    Returns
    -------
    list of EventAlignment
        Alignment entries in read order.
    """
    num_kmers_in_alphabet = alphabet.get_num_strings(k)
    read_sequence = read.read_sequence
    n_kmers = min(len(read_sequence) - k + 1, read.n_kmers)

    alignment = []
    for ki in range(n_kmers):
        start, stop = read.base_to_event_map[ki, strand_idx]

        # skip kmers without events and with multiple events
        if start == -1 or start != stop:
            continue

        kmer = read_sequence[ki:ki + k]

        # skip kmers with ambiguous bases
        if not alphabet.is_valid(kmer):
            continue

        kmer_rank = alphabet.kmer_rank(kmer, k)
        assert kmer_rank < num_kmers_in_alphabet

        if use_kmer is None or use_kmer[kmer_rank]:
            alignment.append(EventAlignment(
                ref_kmer=kmer,
                ref_position=ki,
                strand_idx=strand_idx,
                event_idx=int(start),
                rc=False,
                model_kmer=kmer,
            ))

    return alignment


def alignment_to_training_data(
    read: SquiggleRead,
    alignment: List[EventAlignment],
    k: int,
    alphabet: DNAAlphabet = DNA_ALPHABET,
) -> KmerTrainingData:
    """
    Collect the observed event levels of an alignment per k-mer rank.

    Returns
    -------
    list of list of StateTrainingData
        One (possibly empty) list per k-mer rank.
    """
    num_kmers_in_alphabet = alphabet.get_num_strings(k)
    kmer_training_data: KmerTrainingData = [[] for _ in range(num_kmers_in_alphabet)]

    for a in alignment:
        kmer_rank = alphabet.kmer_rank(a.model_kmer, k)
        assert kmer_rank < num_kmers_in_alphabet

        event = read.events[a.strand_idx][a.event_idx]
        kmer_training_data[kmer_rank].append(StateTrainingData(
            level_mean=float(event["mean"]),
            level_stdv=float(event["stdv"]),
            read_var=read.pore_model[a.strand_idx].var,
        ))

    return kmer_training_data


def alignment_to_table(
    read: SquiggleRead,
    alignment: List[EventAlignment],
    read_idx: int,
) -> pd.DataFrame:
    """Per-event training table: read index, k-mer, level and duration."""
    rows = []
    for a in alignment:
        event = read.events[a.strand_idx][a.event_idx]
        rows.append((read_idx, a.model_kmer, float(event["mean"]), float(event["length"])))
    return pd.DataFrame(rows, columns=TRAINING_TABLE_COLUMNS).astype(TRAINING_TABLE_DTYPES)


def count_training_events(training_data: KmerTrainingData) -> int:
    return sum(len(samples) for samples in training_data)


def select_best_read(read_training_data: List[KmerTrainingData]) -> int:
    """
    Select the read with the most training events.

    The first read reaching the maximum wins; 0 is returned when there are
    no reads or none has any events.
    """
    max_events = 0
    max_events_index = 0
    for rti, kmer_training_data in enumerate(read_training_data):
        total_events = count_training_events(kmer_training_data)
        print(f"read {rti} has {total_events} events (max: {max_events}, {max_events_index})")

        if total_events > max_events:
            max_events = total_events
            max_events_index = rti

    return max_events_index


# ----------------------------------------------------------------------
# Model construction
# ----------------------------------------------------------------------
def kmer_median(values: Sequence[float]) -> Tuple[float, bool]:
    """
    Median of a k-mer's observed levels.

    Returns
    -------
    tuple(float, bool)
        (median, observed). An empty sequence gives (0.0, False).
    """
    n = len(values)
    if n == 0:
        return 0.0, False

    values = np.sort(np.asarray(values, dtype=np.float64))
    if n % 2 == 0:
        median = (values[n // 2 - 1] + values[n // 2]) / 2.0
    else:
        median = values[n // 2]
    return float(median), True


def train_initial_model(
    kmer_training_data: KmerTrainingData,
    k: int,
    alphabet: DNAAlphabet = DNA_ALPHABET,
    verbose: int = 0,
) -> Tuple[PoreModel, np.ndarray]:
    """
    Build a pore model whose k-mer levels are the medians of the observed levels.

    K-mers without observations keep the default state and are marked
    unusable.

    Returns
    -------
    tuple(PoreModel, np.ndarray)
        The baked model and the boolean per-rank usable mask.
    """
    pore_model = PoreModel(k, alphabet)
    use_kmer = np.zeros(pore_model.num_states, dtype=bool)

    for ki, samples in enumerate(kmer_training_data):
        values = [s.level_mean for s in samples]
        median, observed = kmer_median(values)
        if not observed:
            continue

        use_kmer[ki] = True
        pore_model.level_mean[ki] = median
        pore_model.level_stdv[ki] = 1.0
        if verbose > 0:
            print(f"k: {ki} median: {median:.2f} values: {' '.join(f'{v:g}' for v in values)}")

    pore_model.bake_gaussian_parameters()
    logging.info(f"Initial model covers {int(use_kmer.sum())} of {len(use_kmer)} k-mers")
    return pore_model, use_kmer


# ----------------------------------------------------------------------
# Recalibration
# ----------------------------------------------------------------------
def recalibrate_model(
    read: SquiggleRead,
    strand_idx: int,
    alignment: List[EventAlignment],
    alphabet: DNAAlphabet = DNA_ALPHABET,
    scale_var: bool = True,
    scale_drift: bool = True,
) -> bool:
    """
    Fit a read's shift, scale and drift (and optionally var) to its model.

    Solves the weighted least squares problem
    ``level = shift + scale * mu + drift * time`` with weights ``1 / sigma**2``
    over the matched events, where mu and sigma come from the read's current
    pore model. The read's model is updated in place and re-baked.

    Parameters
    ----------
    read : SquiggleRead
        Read to recalibrate.
    strand_idx : int
        Strand whose model is recalibrated.
    alignment : list of EventAlignment
        Events aligned to model k-mers.
    alphabet : DNAAlphabet
        Alphabet used to rank k-mers.
    scale_var : bool
        Also re-estimate var from the fit residuals.
    scale_drift : bool
        Include the drift term in the fit. Otherwise the read's current drift
        is kept and subtracted from the levels before fitting.

    Returns
    -------
    bool
        True if the read had enough events to be recalibrated.
    """
    if len(alignment) <= MIN_EVENTS_TO_RESCALE:
        return False

    model = read.pore_model[strand_idx]
    matches = [a for a in alignment if a.hmm_state == "M"]
    event_idx = np.array([a.event_idx for a in matches], dtype=np.int64)
    ranks = np.array([alphabet.kmer_rank(a.model_kmer, model.k) for a in matches], dtype=np.int64)

    level = read.events[strand_idx]["mean"][event_idx]
    time = read.get_time(event_idx, strand_idx)
    mu = model.level_mean[ranks]
    sigma = model.level_stdv[ranks]
    inv_var = 1.0 / (sigma * sigma)

    columns = [np.ones_like(mu), mu]
    if scale_drift:
        columns.append(time)
        target = level
    else:
        # the read's current drift is held fixed
        target = level - model.drift * time
    design = np.column_stack(columns)

    # normal equations of the weighted problem
    coef_mat = design.T @ (design * inv_var[:, np.newaxis])
    dep_vect = design.T @ (target * inv_var)
    solution = np.linalg.solve(coef_mat, dep_vect)

    shift, scale = float(solution[0]), float(solution[1])
    drift = float(solution[2]) if scale_drift else model.drift

    model.shift = shift
    model.scale = scale
    model.drift = drift
    if scale_var:
        residuals = (level - shift - scale * mu - drift * time) / sigma
        model.var = float(np.sqrt(np.mean(residuals ** 2)))
    model.bake_gaussian_parameters()
    return True


def recalibrate_reads(
    reads: List[SquiggleRead],
    pore_model: PoreModel,
    use_kmer: np.ndarray,
    k: int,
    strand_idx: int = T_IDX,
    scale_var: bool = False,
    alphabet: DNAAlphabet = DNA_ALPHABET,
) -> pd.DataFrame:
    """
    Assign the model to every read, then recalibrate each read against it.

    Returns
    -------
    pd.DataFrame
        Per-read recalibrated parameters.
    """
    for read in reads:
        read.pore_model[strand_idx] = pore_model.copy()

    rows = []
    for read_idx, read in enumerate(reads):
        # alignment restricted to the k-mers present in the model
        alignment = generate_alignment_to_basecalls(read, k, strand_idx, use_kmer, alphabet)

        recalibrated = recalibrate_model(
            read,
            strand_idx,
            alignment,
            alphabet,
            scale_var=scale_var,
        )
        if not recalibrated:
            logging.warning(
                f"Read '{read.read_name}' has {len(alignment)} usable events "
                f"(need > {MIN_EVENTS_TO_RESCALE}); parameters left unchanged."
            )

        read_model = read.pore_model[strand_idx]
        print(
            f"[recalibration] events: {read.n_events(strand_idx)} alignment: {len(alignment)} "
            f"shift: {read_model.shift:.2f} scale: {read_model.scale:.2f} "
            f"drift: {read_model.drift:.4f} var: {read_model.var:.2f}"
        )
        rows.append({
            "read_idx": read_idx,
            "read_name": read.read_name,
            "events": read.n_events(strand_idx),
            "alignment": len(alignment),
            "recalibrated": recalibrated,
            **read_model.parameters(),
        })

    return pd.DataFrame(rows)


# ----------------------------------------------------------------------
# Full pipeline
# ----------------------------------------------------------------------
def train_model(
    reads: List[SquiggleRead],
    k: int,
    strand_idx: int = T_IDX,
    scale_var: bool = False,
    verbose: int = 0,
    alphabet: DNAAlphabet = DNA_ALPHABET,
) -> TrainingResult:
    """
    Train a pore model from basecalled reads and recalibrate every read.

    The read with the most aligned events provides the per-k-mer medians of
    the initial model; each read is then recalibrated against a copy of it.

    Parameters
    ----------
    reads : list of SquiggleRead
        Loaded reads; their event maps must use k-mer size ``k``.
    k : int
        K-mer size of the model.
    strand_idx : int
        Strand to train on.
    scale_var : bool
        Also fit var during recalibration.
    verbose : int
        Verbosity; above 0 prints the per-k-mer medians.
    alphabet : DNAAlphabet
        Alphabet used to rank k-mers.

    Returns
    -------
    TrainingResult
    """
    mismatched = [r.read_name for r in reads if r.k != k]
    if mismatched:
        raise ValueError(f"Reads built with a k-mer size other than {k}: {mismatched}")

    read_training_data = []
    tables = []
    for read_idx, read in enumerate(reads):
        # extract alignment of events to k-mers
        alignment = generate_alignment_to_basecalls(read, k, strand_idx, None, alphabet)

        # convert the alignment into model training data for this read
        read_training_data.append(alignment_to_training_data(read, alignment, k, alphabet))
        tables.append(alignment_to_table(read, alignment, read_idx))

    training_table = (
        pd.concat(tables, ignore_index=True)
        if tables else pd.DataFrame(columns=TRAINING_TABLE_COLUMNS).astype(TRAINING_TABLE_DTYPES)
    )

    if read_training_data:
        best_read_idx = select_best_read(read_training_data)
        selected = read_training_data[best_read_idx]
    else:
        best_read_idx = 0
        selected = [[] for _ in range(alphabet.get_num_strings(k))]
    logging.info(f"Using read {best_read_idx} as the basis of the initial model")

    pore_model, use_kmer = train_initial_model(selected, k, alphabet, verbose=verbose)

    recalibration = recalibrate_reads(
        reads,
        pore_model,
        use_kmer,
        k,
        strand_idx=strand_idx,
        scale_var=scale_var,
        alphabet=alphabet,
    )

    return TrainingResult(
        model=pore_model,
        use_kmer=use_kmer,
        best_read_idx=best_read_idx,
        training_table=training_table,
        recalibration=recalibration,
    )
