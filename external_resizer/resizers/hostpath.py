"""Host path backend.

Meant for development and testing only; it does not work in a multi-node
cluster. Instead of expanding anything it records the latest requested size
in a file inside the host path directory.
"""

import asyncio
import logging
from pathlib import Path

from .._util import sanitize_name
from ..exceptions import ResizerBackendError
from ..models import ResizeOutcome, Volume
from . import Resizer

logger = logging.getLogger(__name__)

SIZE_FILE_NAME = "kubernetes-host-path-size"
_DIRECTORY_TYPES = frozenset({"", "Directory", "DirectoryOrCreate"})


class HostPathResizer(Resizer):
    @property
    def name(self) -> str:
        return sanitize_name("kubernetes.io/host-path")

    def can_support(self, volume: Volume) -> bool:
        host_path = volume.spec.get("hostPath")
        if not host_path:
            return False
        return (host_path.get("type") or "") in _DIRECTORY_TYPES

    async def resize(self, volume: Volume, requested: int) -> ResizeOutcome:
        size_file = Path(volume.spec["hostPath"]["path"]) / SIZE_FILE_NAME
        try:
            await asyncio.to_thread(size_file.write_text, str(requested))
        except OSError as exc:
            raise ResizerBackendError(f"Failed to write {size_file}: {exc}") from exc
        logger.debug("Recorded size %s of volume %s in %s", requested, volume.name, size_file)
        return ResizeOutcome(new_size=requested, fs_resize_required=False)
