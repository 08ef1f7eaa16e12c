"""
alphabet.py

DNA k-mer alphabet: conversion between k-mer strings and their dense ranks.
"""

from typing import List


class DNAAlphabet:
    """
    Four-letter DNA alphabet with lexicographic k-mer ranking.

    A k-mer's rank is its value as a base-4 number, reading the symbols
    "ACGT" as digits 0-3. Ranks are dense and bounded by ``4 ** k``.
    """

    symbols = "ACGT"

    def __init__(self):
        self._symbol_rank = {s: i for i, s in enumerate(self.symbols)}

    @property
    def size(self) -> int:
        return len(self.symbols)

    def get_num_strings(self, k: int) -> int:
        """Number of distinct k-mers of length ``k``."""
        return self.size ** k

    def is_valid(self, kmer: str) -> bool:
        return all(s in self._symbol_rank for s in kmer)

    def kmer_rank(self, kmer: str, k: int) -> int:
        """
        Compute the rank of the first ``k`` symbols of ``kmer``.

        Raises
        ------
        ValueError
            If the k-mer is shorter than ``k`` or contains a symbol
            outside the alphabet.
        """
        if len(kmer) < k:
            raise ValueError(f"k-mer '{kmer}' is shorter than k={k}")

        rank = 0
        for s in kmer[:k]:
            try:
                rank = rank * self.size + self._symbol_rank[s]
            except KeyError:
                raise ValueError(f"Invalid symbol '{s}' in k-mer '{kmer}'")
        return rank

    def rank_to_kmer(self, rank: int, k: int) -> str:
        """Inverse of :meth:`kmer_rank`."""
        if rank < 0 or rank >= self.get_num_strings(k):
            raise ValueError(f"Rank {rank} out of range for k={k}")

        symbols: List[str] = []
        for _ in range(k):
            rank, digit = divmod(rank, self.size)
            symbols.append(self.symbols[digit])
        return "".join(reversed(symbols))

    def all_kmers(self, k: int) -> List[str]:
        """All k-mers of length ``k`` in rank order."""
        return [self.rank_to_kmer(r, k) for r in range(self.get_num_strings(k))]


DNA_ALPHABET = DNAAlphabet()
