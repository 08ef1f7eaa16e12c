"""
plotting.py

Optional diagnostic plots of a trained pore model and of the per-read
recalibration parameters.
"""

import logging

import matplotlib
matplotlib.use("Agg")
from matplotlib import pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .poremodel import PoreModel


def plot_kmer_levels(pore_model: PoreModel, use_kmer: np.ndarray, path: str) -> None:
    """Histogram of the trained levels of all usable k-mers."""
    levels = pore_model.level_mean[np.asarray(use_kmer, dtype=bool)]

    fig, ax = plt.subplots(figsize=(6, 4))
    sns.histplot(levels, bins=30, ax=ax)
    if len(levels) > 0:
        ax.axvline(x=float(np.median(levels)), color="r")
    ax.set_xlabel("Median event level (pA)")
    ax.set_ylabel("Number of k-mers")
    ax.set_title(f"{len(levels)} trained {pore_model.k}-mers")
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    logging.info(f"K-mer level histogram saved to: {path}")


def plot_recalibration(recalibration: pd.DataFrame, path: str) -> None:
    """Scatter of per-read shift against scale, coloured by recalibration status."""
    fig, ax = plt.subplots(figsize=(6, 4))
    sns.scatterplot(data=recalibration, x="shift", y="scale", hue="recalibrated", ax=ax)
    ax.set_xlabel("Shift")
    ax.set_ylabel("Scale")
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    logging.info(f"Recalibration plot saved to: {path}")
