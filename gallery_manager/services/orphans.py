"""
Reclamation of temporary galleries that were never promoted.
"""
import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from gallery_manager.services.registry import ImageRegistry
from gallery_manager.services.storage import StorageLayout
from gallery_manager.utils.locks import IdentityLocks, identity_locks

logger = logging.getLogger(__name__)


async def reap_orphans(
    registry: ImageRegistry,
    layout: StorageLayout,
    temporary_prefix: str,
    older_than: Optional[timedelta] = None,
    locks: Optional[IdentityLocks] = None,
) -> List[str]:
    """
    Delete rows and directories of every temporary gallery of ``registry.type``.

    Any owner id starting with ``temporary_prefix`` is eligible. Without
    ``older_than`` no recency check is made, so the caller must only sweep
    identities known to be stale (e.g. expired sessions).

    Returns:
        list[str]: The owner ids that were removed
    """
    locks = locks or identity_locks
    owner_ids = await registry.temporary_owner_ids(temporary_prefix, older_than)

    for owner_id in owner_ids:
        async with locks.hold(registry.type, owner_id):
            deleted = await registry.delete_all_for_owner(owner_id)
            await asyncio.to_thread(layout.remove_directory_tree, layout.directory_path(owner_id))
        logger.info(f"Reaped orphan gallery {owner_id} ({registry.type}): {deleted} images")

    return owner_ids
