"""
Rank arrangement for gallery images.
"""
import logging
from typing import Dict, Mapping, Optional

from gallery_manager.services.registry import ImageRegistry

logger = logging.getLogger(__name__)


def arrange_ranks(order: Mapping[int, Optional[int]]) -> Dict[int, int]:
    """
    Turn the caller's enumeration order into rank values.

    Each entry maps an image id to a provisional rank; ``None`` keeps the
    image's own id as its provisional value. The provisional values are pooled,
    sorted, and handed back out in the order the ids were enumerated, so the
    result is a permutation of the existing slot values rather than a fresh
    0..n numbering.

    Example:
        >>> arrange_ranks({7: None, 3: None, 5: None})
        {7: 3, 3: 5, 5: 7}
    """
    provisional = [image_id if rank is None else rank for image_id, rank in order.items()]
    slots = sorted(provisional)
    return dict(zip(order.keys(), slots))


async def arrange(registry: ImageRegistry, owner_id: str, order: Mapping[int, Optional[int]]) -> Dict[int, int]:
    """Compute new ranks for ``order`` and persist each one."""
    ranks = arrange_ranks(order)
    for image_id, rank in ranks.items():
        await registry.update_rank(owner_id, image_id, rank)
    logger.info(f"Arranged {len(ranks)} images in gallery {owner_id} ({registry.type})")
    return ranks
