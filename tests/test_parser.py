import numpy as np
import pytest

from PoreTrainer.parser import (
    C_IDX,
    T_IDX,
    ReadLoadError,
    SquiggleRead,
    build_event_map,
    load_read,
    load_reads,
    make_events,
)


def test_build_event_map_accumulates_moves():
    # events: k0, k1, k1 (stay), k3 (skip of 2), k4
    event_map = build_event_map(np.array([0, 1, 0, 2, 1]), n_kmers=5)

    assert event_map.tolist() == [
        [0, 0],
        [1, 2],
        [-1, -1],
        [3, 3],
        [4, 4],
    ]


def test_build_event_map_first_move_is_ignored():
    event_map = build_event_map(np.array([1, 1, 1]), n_kmers=3)
    assert event_map.tolist() == [[0, 0], [1, 1], [2, 2]]


def test_build_event_map_drops_events_past_sequence_end():
    event_map = build_event_map(np.array([0, 1, 1, 1]), n_kmers=2)
    assert event_map.tolist() == [[0, 0], [1, 1]]


def test_build_event_map_empty():
    assert build_event_map(np.array([], dtype=int), n_kmers=3).tolist() == [[-1, -1]] * 3
    assert build_event_map(np.array([0, 1]), n_kmers=0).shape == (0, 2)


def test_from_events_builds_template_map_only():
    events = make_events([80.0, 90.0, 100.0])
    read = SquiggleRead.from_events("r", "ACGTACG", events, moves=[0, 1, 1], k=5)

    assert read.n_kmers == 3
    assert read.base_to_event_map[:, T_IDX].tolist() == [[0, 0], [1, 1], [2, 2]]
    assert (read.base_to_event_map[:, C_IDX] == -1).all()
    assert read.n_events(C_IDX) == 0


def test_get_time_is_relative_to_first_event():
    events = make_events([1.0, 2.0, 3.0], starts=[10.0, 10.5, 12.0])
    read = SquiggleRead.from_events("r", "ACGTACG", events, moves=[0, 1, 1])
    assert read.get_time(2, T_IDX) == pytest.approx(2.0)
    assert read.get_time(np.array([0, 1]), T_IDX).tolist() == [0.0, 0.5]


def test_load_read(tmp_path, write_fast5):
    path = write_fast5(
        tmp_path / "read1.fast5",
        "read1",
        "ACGTACGTAC",
        means=[80.0, 85.0, 86.0, 90.0, 95.0, 99.0],
        moves=[0, 1, 0, 1, 2, 1],
        model_params={"shift": 5.0, "scale": 1.2, "drift": 0.1, "var": 1.5},
    )

    read = load_read(str(path))

    assert read.read_name == "read1"
    assert read.read_sequence == "ACGTACGTAC"
    assert read.k == 5
    assert read.fast5_path == str(path)
    assert read.n_events(T_IDX) == 6
    assert read.events[T_IDX]["mean"].tolist() == [80.0, 85.0, 86.0, 90.0, 95.0, 99.0]
    assert read.base_to_event_map[:, T_IDX].tolist() == [
        [0, 0],
        [1, 2],
        [3, 3],
        [-1, -1],
        [4, 4],
        [5, 5],
    ]

    model = read.pore_model[T_IDX]
    assert model.k == 5
    assert model.shift == 5.0
    assert model.scale == 1.2
    assert model.var == 1.5
    # parameters absent from the file keep their defaults
    assert model.scale_sd == 1.0


def test_load_read_explicit_kmer_size(tmp_path, write_fast5):
    path = write_fast5(tmp_path / "r.fast5", "r", "ACGTACG", [1.0, 2.0, 3.0], [0, 1, 1], k=5)
    read = load_read(str(path), k=3)
    assert read.k == 3
    assert read.n_kmers == 5


def test_load_read_converts_sample_times(tmp_path, write_fast5):
    path = write_fast5(
        tmp_path / "r.fast5",
        "r",
        "ACGTACG",
        means=[1.0, 2.0, 3.0],
        moves=[0, 1, 1],
        starts=np.array([4000, 4010, 4040]),
        lengths=np.array([10, 30, 20]),
        sampling_rate=4000.0,
    )
    read = load_read(str(path))

    assert read.events[T_IDX]["start"].tolist() == pytest.approx([1.0, 1.0025, 1.01])
    assert read.events[T_IDX]["length"].tolist() == pytest.approx([0.0025, 0.0075, 0.005])


def test_load_read_missing_fastq(tmp_path, write_fast5):
    path = write_fast5(tmp_path / "r.fast5", "r", "ACGTACG", [1.0], [0], with_fastq=False)
    with pytest.raises(ReadLoadError, match="Fastq"):
        load_read(str(path))


def test_load_read_missing_basecall_group(tmp_path, write_fast5):
    path = write_fast5(tmp_path / "r.fast5", "r", "ACGTACG", [1.0], [0])
    with pytest.raises(ReadLoadError, match="Basecall_1D_001"):
        load_read(str(path), basecall_group="Basecall_1D_001")


def test_load_reads_preserves_order(tmp_path, write_fast5):
    paths = [
        str(write_fast5(tmp_path / f"{name}.fast5", name, "ACGTACG", [1.0, 2.0], [0, 1]))
        for name in ("b", "a")
    ]
    reads = load_reads(paths)
    assert [r.read_name for r in reads] == ["b", "a"]


def test_load_reads_raises_on_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_reads([str(tmp_path / "does_not_exist.fast5")])
