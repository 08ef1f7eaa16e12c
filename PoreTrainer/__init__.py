"""
PoreTrainer: A command-line tool for training a nanopore pore model from
basecalled reads and recalibrating per-read scaling parameters against it.

This package is intended to be used mainly via the command line.
The main entry point is defined in `cli.py`.
"""

__version__ = "0.1"
