# Copyright (c) Syntropy Systems
"""Pack a model text directory into .zip and unpack it back."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)


def pack_zip(src_dir: Path, zip_path: Path | None = None) -> Path:
    """Pack directory into zip, archive entries are prefixed by directory name.

    Default zip path is ``<src_dir>.zip``, an existing archive is replaced.
    """
    if not src_dir.is_dir():
        msg = f"directory not found: {src_dir}"
        raise FileNotFoundError(msg)

    if zip_path is None:
        zip_path = src_dir.with_name(src_dir.name + ".zip")

    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(src_dir.rglob("*")):
            if path.is_file():
                zf.write(path, Path(src_dir.name) / path.relative_to(src_dir))

    logger.info("Packed %s", zip_path)
    return zip_path


def unpack_zip(zip_path: Path, dst_dir: Path) -> Path:
    """Unpack zip into destination directory and return the top level directory.

    Entries which would be written outside of destination are rejected.
    """
    if not zip_path.is_file():
        msg = f"zip file not found: {zip_path}"
        raise FileNotFoundError(msg)

    dst_dir.mkdir(parents=True, exist_ok=True)
    root = dst_dir.resolve()

    with zipfile.ZipFile(zip_path) as zf:
        for name in zf.namelist():
            target = (root / name).resolve()
            if root != target and root not in target.parents:
                msg = f"invalid zip entry: {name}"
                raise ValueError(msg)
        zf.extractall(root)

    logger.info("Unpacked %s", zip_path)

    top = root / zip_path.stem
    return top if top.is_dir() else root
