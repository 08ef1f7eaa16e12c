import pytest

from PoreTrainer.alphabet import DNA_ALPHABET


def test_num_strings():
    assert DNA_ALPHABET.get_num_strings(1) == 4
    assert DNA_ALPHABET.get_num_strings(5) == 1024


def test_kmer_rank_is_lexicographic():
    assert DNA_ALPHABET.kmer_rank("AAAAA", 5) == 0
    assert DNA_ALPHABET.kmer_rank("AAAAC", 5) == 1
    assert DNA_ALPHABET.kmer_rank("CAAAA", 5) == 256
    assert DNA_ALPHABET.kmer_rank("TTTTT", 5) == 1023


def test_kmer_rank_uses_first_k_symbols():
    assert DNA_ALPHABET.kmer_rank("ACGTACGT", 3) == DNA_ALPHABET.kmer_rank("ACG", 3)


def test_rank_to_kmer_inverts_rank():
    for kmer in ("ACGTA", "TTGCA", "GGGGG"):
        assert DNA_ALPHABET.rank_to_kmer(DNA_ALPHABET.kmer_rank(kmer, 5), 5) == kmer


def test_all_kmers_in_rank_order():
    kmers = DNA_ALPHABET.all_kmers(2)
    assert len(kmers) == 16
    assert kmers[:5] == ["AA", "AC", "AG", "AT", "CA"]


@pytest.mark.parametrize("kmer", ["ACGNA", "acgta", "AC"])
def test_invalid_kmers_raise(kmer):
    with pytest.raises(ValueError):
        DNA_ALPHABET.kmer_rank(kmer, 5)


def test_out_of_range_rank_raises():
    with pytest.raises(ValueError):
        DNA_ALPHABET.rank_to_kmer(1024, 5)
    with pytest.raises(ValueError):
        DNA_ALPHABET.rank_to_kmer(-1, 5)


def test_is_valid():
    assert DNA_ALPHABET.is_valid("ACGT")
    assert not DNA_ALPHABET.is_valid("ACGU")
