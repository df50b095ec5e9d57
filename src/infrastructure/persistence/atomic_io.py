import asyncio
import os
import tempfile
from pathlib import Path

import aiofiles
from loguru import logger


async def atomic_write(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` via a sibling temp file.

    Readers see either the old snapshot or the new one, never a torn write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory keeps the rename on one filesystem
    fd, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp_", suffix=path.suffix)
    temp_path = Path(temp_name)

    try:
        async with aiofiles.open(fd, mode="w", encoding="utf-8", closefd=True) as f:
            await f.write(content)
            await f.flush()
        await asyncio.to_thread(os.replace, temp_path, path)
        logger.debug("Atomic write completed: {}", path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
