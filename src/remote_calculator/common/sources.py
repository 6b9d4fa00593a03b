"""Load batches of expressions from text files and archives."""
from pathlib import Path
import tarfile
import tempfile
from typing import Callable, Dict, List
import zipfile

import py7zr


def _read_zip(archive_path: Path, workdir: Path) -> Path:
    with zipfile.ZipFile(archive_path, "r") as zf:
        names = [name for name in zf.namelist() if name.endswith(".txt")]
        if not names:
            raise ValueError(f"📄❌ No .txt file found in {archive_path.name}")
        return Path(zf.extract(names[0], path=workdir))


def _read_tar_xz(archive_path: Path, workdir: Path) -> Path:
    with tarfile.open(archive_path, "r:xz") as tf:
        members = [member for member in tf.getmembers() if member.isfile() and member.name.endswith(".txt")]
        if not members:
            raise ValueError(f"📄❌ No .txt file found in {archive_path.name}")
        tf.extract(members[0], path=workdir, filter="data")
        return workdir / members[0].name


def _read_7z(archive_path: Path, workdir: Path) -> Path:
    with py7zr.SevenZipFile(archive_path, mode="r") as archive:
        names = [name for name in archive.getnames() if name.endswith(".txt")]
        if not names:
            raise ValueError(f"📄❌ No .txt file found in {archive_path.name}")
        archive.extract(path=workdir, targets=[names[0]])
        return workdir / names[0]


# Archive suffix -> function extracting the first .txt member into a directory
ARCHIVE_READERS: Dict[str, Callable[[Path, Path], Path]] = {
    ".zip": _read_zip,
    ".tar.xz": _read_tar_xz,
    ".7z": _read_7z,
}


def archive_suffix(path: Path) -> str:
    """
    Return the suffix identifying the format of a file, ``.tar.xz`` included.

    :param Path path: Input file

    :return: Lower-case suffix
    :rtype: str
    """
    suffixes = [suffix.lower() for suffix in path.suffixes]
    if suffixes[-2:] == [".tar", ".xz"]:
        return ".tar.xz"
    return suffixes[-1] if suffixes else ""


def read_text(input_file: Path) -> str:
    """
    Read a plain text file, or the first .txt file found in a supported archive.

    Supported formats:
    - .txt
    - .zip
    - .tar.xz
    - .7z

    :param Path input_file: Path to the input file or archive

    :return: Text content
    :rtype: str
    :raises ValueError: If the archive format is unsupported or contains no .txt file
    """
    suffix = archive_suffix(input_file)
    if suffix == ".txt":
        return input_file.read_text(encoding="utf-8")

    reader = ARCHIVE_READERS.get(suffix)
    if reader is None:
        raise ValueError(f"📄❌ Unsupported archive format: {suffix or input_file.name}")

    # Extract into a throwaway directory, the archive is never unpacked in place
    with tempfile.TemporaryDirectory() as tmpdir:
        return reader(input_file, Path(tmpdir)).read_text(encoding="utf-8")


def load_expressions(input_file: Path) -> List[str]:
    """
    Load the non-empty expressions of a batch file, one per line.

    :param Path input_file: Path to the input file or archive

    :return: Stripped expressions, in file order
    :rtype: List[str]
    """
    return [line.strip() for line in read_text(input_file).splitlines() if line.strip()]
