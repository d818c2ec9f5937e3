"""
Small filesystem helpers shared across mthds.
"""

import os
import tempfile
from pathlib import Path
from typing import Union
import logging

logger = logging.getLogger(__name__)


def write_text_atomic(path: Union[str, Path], content: str) -> Path:
    """
    Write text atomically: write to a temp file in the same directory, then rename.

    Readers never observe a half-written file. Parent directories are
    created as needed.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp"
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(temp_path, target)
    except Exception:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    logger.debug(f"Wrote {target}")
    return target
