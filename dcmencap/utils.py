from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import pydicom
from pydicom.dataset import Dataset, FileDataset
from pydicom.multival import MultiValue
from pydicom.tag import Tag

from .fields import MULTI_VALUE_SEPARATOR

logger = logging.getLogger(__name__)


def read_dicom(path: str | os.PathLike, force: bool = True) -> FileDataset | None:
    try:
        return pydicom.dcmread(str(path), force=force, stop_before_pixels=True)
    except Exception as e:
        logger.debug("Failed to read DICOM %s: %s", path, e)
        return None


def get(ds: Dataset, tag: int | tuple[int, int] | str, default: Any = None) -> Any:
    try:
        if isinstance(tag, str):
            return getattr(ds, tag, default)
        return ds.get(Tag(tag)).value if Tag(tag) in ds else default
    except Exception:
        return default


def get_text(ds: Dataset, tag: int | tuple[int, int] | str) -> Optional[str]:
    """Element value as a stripped string, ``None`` when absent or empty."""
    value = get(ds, tag)
    if value is None:
        return None
    if isinstance(value, (MultiValue, list, tuple)):
        return MULTI_VALUE_SEPARATOR.join(str(v).strip() for v in value if str(v).strip()) or None
    text = str(value).strip()
    return text or None


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)
