from pathlib import Path

import h5py
import numpy as np
import pytest


def _write_fast5(
    path: Path,
    read_id: str,
    sequence: str,
    means,
    moves,
    k: int = 5,
    stdvs=None,
    starts=None,
    lengths=None,
    model_params=None,
    sampling_rate=None,
    basecall_group: str = "Basecall_1D_000",
    with_fastq: bool = True,
) -> Path:
    """Write a minimal single-read FAST5 file with a 1D template basecall."""
    n = len(means)
    integer_times = starts is not None and np.issubdtype(np.asarray(starts).dtype, np.integer)
    time_dtype = "i8" if integer_times else "f8"
    dtype = [
        ("mean", "f8"),
        ("stdv", "f8"),
        ("start", time_dtype),
        ("length", time_dtype),
        ("model_state", f"S{k}"),
        ("move", "i4"),
    ]
    events = np.zeros(n, dtype=dtype)
    events["mean"] = means
    events["stdv"] = 1.0 if stdvs is None else stdvs
    events["start"] = np.arange(n) if starts is None else starts
    events["length"] = 1 if lengths is None else lengths
    events["move"] = moves

    kmer_idx = np.cumsum(moves) - moves[0]
    n_kmers = len(sequence) - k + 1
    events["model_state"] = [
        sequence[i:i + k].encode() if i < n_kmers else b"N" * k for i in kmer_idx
    ]

    with h5py.File(path, "w") as f:
        grp = f.create_group(f"/Analyses/{basecall_group}/BaseCalled_template")
        grp.create_dataset("Events", data=events)
        if with_fastq:
            grp.create_dataset("Fastq", data=f"@{read_id}\n{sequence}\n+\n{'5' * len(sequence)}\n")
        if model_params:
            model = grp.create_group("Model")
            for name, value in model_params.items():
                model.attrs[name] = value
        if sampling_rate is not None:
            f.create_group("/UniqueGlobalKey/channel_id").attrs["sampling_rate"] = sampling_rate
    return path


@pytest.fixture
def write_fast5():
    # Usage:
    #
    #   def test_something(tmp_path, write_fast5):
    #       path = write_fast5(tmp_path / "read.fast5", "read1", "ACGTAC", [1.0, 2.0], [0, 1])
    #
    return _write_fast5
