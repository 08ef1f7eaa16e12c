"""
poremodel.py

Pore model: expected signal statistics per k-mer plus the global calibration
parameters that map the model onto a single read's signal.
"""

import copy
import logging
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .alphabet import DNA_ALPHABET, DNAAlphabet

MODEL_COLUMNS = ["kmer", "level_mean", "level_stdv", "sd_mean", "sd_stdv"]
GLOBAL_PARAMETERS = ["shift", "scale", "drift", "var", "scale_sd", "var_sd"]


class PoreModel:
    """
    Table of per-k-mer Gaussian parameters indexed by k-mer rank.

    The primary parameters (``level_mean``, ``level_stdv``, ``sd_mean``,
    ``sd_stdv``) describe the pore; the global parameters (``shift``,
    ``scale``, ``drift``, ``var``, ``scale_sd``, ``var_sd``) describe one
    read. :meth:`bake_gaussian_parameters` combines the two into the
    ``scaled_*`` arrays used for scoring.
    """

    def __init__(self, k: int, alphabet: DNAAlphabet = DNA_ALPHABET):
        self.k = k
        self.alphabet = alphabet
        n = alphabet.get_num_strings(k)

        self.level_mean = np.zeros(n, dtype=np.float64)
        self.level_stdv = np.ones(n, dtype=np.float64)
        self.sd_mean = np.zeros(n, dtype=np.float64)
        self.sd_stdv = np.ones(n, dtype=np.float64)

        self.shift = 0.0
        self.scale = 1.0
        self.drift = 0.0
        self.var = 1.0
        self.scale_sd = 1.0
        self.var_sd = 1.0

        self.scaled_mean = np.zeros(n, dtype=np.float64)
        self.scaled_stdv = np.ones(n, dtype=np.float64)
        self.scaled_log_stdv = np.zeros(n, dtype=np.float64)
        self.scaled_sd_mean = np.zeros(n, dtype=np.float64)
        self.scaled_sd_stdv = np.ones(n, dtype=np.float64)

    @classmethod
    def empty(cls, k: int, alphabet: DNAAlphabet = DNA_ALPHABET) -> "PoreModel":
        """Model with default states and identity calibration, already baked."""
        model = cls(k, alphabet)
        model.bake_gaussian_parameters()
        return model

    @property
    def num_states(self) -> int:
        return len(self.level_mean)

    def set_parameters(self, params: Dict[str, float]) -> None:
        """Set global calibration parameters from a mapping, ignoring unknown keys."""
        for name in GLOBAL_PARAMETERS:
            if name in params:
                setattr(self, name, float(params[name]))

    def parameters(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in GLOBAL_PARAMETERS}

    def bake_gaussian_parameters(self) -> None:
        """Derive the read-scaled Gaussian parameters from the primary ones."""
        self.scaled_mean = self.level_mean * self.scale + self.shift
        self.scaled_stdv = self.level_stdv * self.var
        self.scaled_log_stdv = np.log(self.scaled_stdv)
        self.scaled_sd_mean = self.sd_mean * self.scale_sd
        self.scaled_sd_stdv = self.sd_stdv * np.sqrt(self.scale_sd ** 3 / self.var_sd)

    def copy(self) -> "PoreModel":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dataframe(self) -> pd.DataFrame:
        """Per-k-mer table in rank order."""
        return pd.DataFrame({
            "kmer": self.alphabet.all_kmers(self.k),
            "level_mean": self.level_mean,
            "level_stdv": self.level_stdv,
            "sd_mean": self.sd_mean,
            "sd_stdv": self.sd_stdv,
        })

    def write(self, path: str, use_kmer: Optional[np.ndarray] = None) -> None:
        """
        Write the model in nanopolish's tab-separated model format.

        Parameters
        ----------
        path : str
            Output file path.
        use_kmer : np.ndarray of bool, optional
            If given, only k-mers marked usable are written.
        """
        df = self.to_dataframe()
        if use_kmer is not None:
            df = df.loc[np.asarray(use_kmer, dtype=bool)]

        with open(path, "w") as f:
            f.write(f"#k\t{self.k}\n")
            for name, value in self.parameters().items():
                f.write(f"#{name}\t{value}\n")
            df.to_csv(f, sep="\t", index=False, float_format="%.5f")

        logging.info(f"Wrote pore model with {len(df)} k-mers to {path}")

    @classmethod
    def load(cls, path: str, alphabet: DNAAlphabet = DNA_ALPHABET) -> "PoreModel":
        """
        Load a model written by :meth:`write`.

        K-mers missing from the file keep their default values.
        """
        header: Dict[str, str] = {}
        with open(path, "r") as f:
            for line in f:
                if not line.startswith("#"):
                    break
                key, _, value = line[1:].rstrip("\n").partition("\t")
                header[key] = value

        df = pd.read_csv(path, sep="\t", comment="#")
        missing = set(MODEL_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Model file {path} is missing columns: {sorted(missing)}")

        k = int(header["k"]) if "k" in header else len(df["kmer"].iloc[0])
        model = cls(k, alphabet)
        model.set_parameters({name: float(v) for name, v in header.items() if name in GLOBAL_PARAMETERS})

        ranks = np.array([alphabet.kmer_rank(kmer, k) for kmer in df["kmer"]], dtype=np.int64)
        model.level_mean[ranks] = df["level_mean"].to_numpy()
        model.level_stdv[ranks] = df["level_stdv"].to_numpy()
        model.sd_mean[ranks] = df["sd_mean"].to_numpy()
        model.sd_stdv[ranks] = df["sd_stdv"].to_numpy()
        model.bake_gaussian_parameters()
        return model
