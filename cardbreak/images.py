from __future__ import annotations

import io
import re
from pathlib import Path
from typing import Dict, Mapping, Optional

import requests
from PIL import Image, UnidentifiedImageError

from .layout import ImageMeta
from .markup import collect_image_ids


IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp")
IMAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
REQUEST_TIMEOUT = 30


def _read_size(source: str, base_dir: Path) -> Optional[ImageMeta]:
    if re.match(r"^https?://", source, flags=re.IGNORECASE):
        response = requests.get(source, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        with Image.open(io.BytesIO(response.content)) as image:
            width, height = image.size
        return ImageMeta(width=width, height=height)

    candidate = Path(source)
    if not candidate.is_absolute():
        candidate = (base_dir / candidate).resolve()
    if not candidate.exists():
        return None
    with Image.open(candidate) as image:
        width, height = image.size
    return ImageMeta(width=width, height=height)


def load_image_meta(
    sources: Mapping[str, str],
    base_dir: Path = Path("."),
    debug: bool = False,
) -> Dict[str, ImageMeta]:
    """Read pixel sizes for ``image id -> path or URL`` entries.

    Sources that cannot be read are left out so the estimator falls back to
    its default aspect ratio for them.
    """
    metas: Dict[str, ImageMeta] = {}
    for image_id, source in sources.items():
        source = str(source).strip()
        if not IMAGE_ID_PATTERN.match(image_id):
            if debug:
                print(f"[DEBUG] Ignoring invalid image id '{image_id}'")
            continue
        if not source:
            if debug:
                print(f"[DEBUG] Missing source for image {image_id}")
            continue
        try:
            meta = _read_size(source, base_dir)
        except (requests.RequestException, UnidentifiedImageError, OSError) as exc:
            if debug:
                print(f"[DEBUG] Failed to read image '{source}': {exc}")
            continue
        if meta is None:
            if debug:
                print(f"[DEBUG] Image file not found: {source}")
            continue
        if meta.width <= 0 or meta.height <= 0:
            continue
        metas[image_id] = meta
        if debug:
            print(f"[DEBUG] Image {image_id} -> {meta.width}x{meta.height}px")
    return metas


def scan_image_dir(directory: Path) -> Dict[str, str]:
    """Map image ids (file stems) to the image files found in ``directory``."""
    if not directory.is_dir():
        raise FileNotFoundError(f"Image directory not found: {directory}")
    found: Dict[str, str] = {}
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() in IMAGE_SUFFIXES and IMAGE_ID_PATTERN.match(path.stem):
            found.setdefault(path.stem, str(path.resolve()))
    return found


def referenced_sources(text: str, sources: Mapping[str, str]) -> Dict[str, str]:
    """Restrict ``sources`` to images actually used in ``text``."""
    used = set(collect_image_ids(text))
    return {image_id: src for image_id, src in sources.items() if image_id in used}
