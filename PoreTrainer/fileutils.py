import os
from glob import glob
from typing import List, Optional


def list_fast5_files(
    folder: str,
    extensions: Optional[List[str]] = None,
) -> List[str]:
    """
    List FAST5 files in a specified folder based on given extensions.

    Parameters
    ----------
    folder : str
        The path to the directory containing FAST5 files.
    extensions : list of str, optional
        List of file extensions to include (default: [".fast5"]).

    Returns
    -------
    list of str
        Sorted list of matching file paths.
    """
    if extensions is None:
        extensions = [".fast5"]

    files = []
    for ext in extensions:
        files.extend(glob(os.path.join(folder, f"*{ext}")))

    # Remove duplicates and sort for consistency
    return sorted(set(files))


def read_fofn(fofn_path: str, extensions: Optional[List[str]] = None) -> List[str]:
    """
    Read a file-of-filenames listing the reads to train on.

    Each non-blank line names one read source. Lines are taken as-is apart
    from surrounding whitespace; an entry naming a directory is expanded to
    the FAST5 files it contains.

    Parameters
    ----------
    fofn_path : str
        Path to the newline-delimited list of read files.
    extensions : list of str, optional
        Extensions used when expanding directory entries.

    Returns
    -------
    list of str
        Read source paths in file order.
    """
    read_paths = []
    with open(fofn_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if os.path.isdir(line):
                read_paths.extend(list_fast5_files(line, extensions))
            else:
                read_paths.append(line)
    return read_paths
