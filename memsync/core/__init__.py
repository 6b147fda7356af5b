"""memsync core: the MemoryClient facade.

    from memsync.core import MemoryClient
"""

from memsync.core.client import MemoryClient, generate_id
from memsync.core.sync import SyncMixin

__all__ = ["MemoryClient", "SyncMixin", "generate_id"]
