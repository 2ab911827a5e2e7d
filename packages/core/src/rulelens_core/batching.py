from __future__ import annotations

import math

from rulelens_core.models import FileChange, ReviewBatch


def plan_batches(files: list[FileChange], batch_size: int) -> list[ReviewBatch]:
    """Split files into consecutive batches of at most batch_size, preserving order."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
    total = math.ceil(len(files) / batch_size)
    return [
        ReviewBatch(files=files[i * batch_size : (i + 1) * batch_size], index=i, total=total) for i in range(total)
    ]
