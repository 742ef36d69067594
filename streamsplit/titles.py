"""Title id allocation."""
from __future__ import annotations

import re
import time
from pathlib import Path
from uuid import uuid4

_UNSAFE_STEM_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_STEM_LENGTH = 80


def allocate_title_id(original_filename: str) -> str:
    """Return a collision-free, filesystem-safe id for a new title.

    Combines a millisecond timestamp, a random suffix and the sanitized stem
    of the uploaded filename, e.g. ``1718000000000-1a2b3c4d-movie``.
    """
    stem = Path(original_filename or "").stem
    stem = _UNSAFE_STEM_CHARS.sub("_", stem).strip("._-")[:MAX_STEM_LENGTH] or "title"
    return f"{int(time.time() * 1000)}-{uuid4().hex[:8]}-{stem}"
