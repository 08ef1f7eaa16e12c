"""
PoreTrainer Command-Line Interface (CLI)

This module provides the command-line interface for PoreTrainer, a tool for
training a nanopore pore model from the basecalled reads listed in a
file-of-filenames. It handles read loading, model construction, per-read
recalibration and writing of the output tables.
"""

import argparse
import logging
import os
import sys

from . import __version__
from .fileutils import read_fofn
from .parser import DEFAULT_BASECALL_GROUP, DEFAULT_KMER_SIZE, T_IDX, load_reads
from .processor import TRAINING_TABLE_COLUMNS, train_model

DEFAULT_OUTPUT = "trainmodel.tsv"


# ----------------------------------------------------------------------
# Startup Banner Function
# ----------------------------------------------------------------------
def print_startup_message():
    """Display a styled startup banner for PoreTrainer."""
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    RESET = "\033[0m"

    print("\n" + GREEN + "=" * 60 + RESET, file=sys.stderr)
    print(CYAN + "        PoreTrainer - nanopore pore model training" + RESET, file=sys.stderr)
    print(GREEN + "=" * 60 + RESET + "\n", file=sys.stderr)


def _ensure_parent_dir(path: str) -> None:
    output_dir = os.path.dirname(path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="poretrainer",
        formatter_class=argparse.RawTextHelpFormatter,
        description=(
            "PoreTrainer - Train a new pore model using the basecalled reads in input.fofn.\n\n"
            "Example usage:\n"
            "  poretrainer -v \\\n"
            "    --model-output results/trained.model \\\n"
            "    reads.fofn"
        ),
    )

    parser.add_argument(
        "fofn",
        help="File listing the basecalled FAST5 files to train on, one per line.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help=(
            "Display verbose output (repeat for more): debug logging and a\n"
            "'k: <rank> median: <level> values: ...' line per trained k-mer."
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=(
            f"%(prog)s Version {__version__}\n"
            "Train a pore model from basecalled nanopore reads."
        ),
    )

    # --- Input options ---
    parser.add_argument(
        "-k", "--kmer-size",
        type=int,
        default=None,
        help=f"K-mer size of the model (default: inferred from the reads, else {DEFAULT_KMER_SIZE}).",
    )
    parser.add_argument(
        "--basecall-group",
        default=DEFAULT_BASECALL_GROUP,
        help=f"FAST5 group holding the basecaller output (default: {DEFAULT_BASECALL_GROUP}).",
    )

    # --- Recalibration options ---
    parser.add_argument(
        "--scale-var",
        action="store_true",
        help="Also re-estimate each read's var parameter during recalibration.",
    )

    # --- Output options ---
    parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"Path to the per-event training table (default: {DEFAULT_OUTPUT}).",
    )
    parser.add_argument(
        "--model-output",
        help="Optional path to write the trained pore model.",
    )
    parser.add_argument(
        "--recalibration-output",
        help="Optional path to write the per-read recalibrated parameters.",
    )
    parser.add_argument(
        "--plot-dir",
        help="Optional folder for diagnostic plots.",
    )
    return parser


# -------------------------------------------------------------------------
# Main entry point
# -------------------------------------------------------------------------
def main(argv=None) -> None:
    """Main function for the PoreTrainer command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.kmer_size is not None and args.kmer_size < 1:
        parser.error("--kmer-size must be a positive integer")

    # ----------------------
    # Logging configuration
    # ----------------------
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 0 else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    print_startup_message()
    logging.info("Starting PoreTrainer...")

    # ----------------------
    # Load reads
    # ----------------------
    read_paths = read_fofn(args.fofn)
    reads = load_reads(read_paths, basecall_group=args.basecall_group, k=args.kmer_size)

    if args.kmer_size is not None:
        k = args.kmer_size
    elif reads:
        k = reads[0].k
    else:
        k = DEFAULT_KMER_SIZE
    logging.info(f"Training a {k}-mer model on the template strand.")

    # ----------------------
    # Train and recalibrate
    # ----------------------
    result = train_model(
        reads,
        k,
        strand_idx=T_IDX,
        scale_var=args.scale_var,
        verbose=args.verbose,
    )

    # ----------------------
    # Save output
    # ----------------------
    _ensure_parent_dir(args.output)
    (
        result.training_table
        .loc[:, TRAINING_TABLE_COLUMNS]
        .round({"level_mean": 2, "duration": 5})
        .to_csv(args.output, sep="\t", index=False)
    )
    logging.info(f"Training table saved to: {args.output}")

    if args.model_output:
        _ensure_parent_dir(args.model_output)
        result.model.write(args.model_output, use_kmer=result.use_kmer)

    if args.recalibration_output:
        _ensure_parent_dir(args.recalibration_output)
        result.recalibration.to_csv(args.recalibration_output, sep="\t", index=False)
        logging.info(f"Recalibration table saved to: {args.recalibration_output}")

    if args.plot_dir:
        # matplotlib is only imported when plots are requested
        from .plotting import plot_kmer_levels, plot_recalibration

        os.makedirs(args.plot_dir, exist_ok=True)
        plot_kmer_levels(result.model, result.use_kmer, os.path.join(args.plot_dir, "kmer_levels.pdf"))
        if not result.recalibration.empty:
            plot_recalibration(result.recalibration, os.path.join(args.plot_dir, "recalibration.pdf"))

    logging.info("PoreTrainer has finished successfully!")


if __name__ == "__main__":
    main()
