"""
Image registry: gallery_image rows for one owner type.

Every query is scoped by (type, owner_id). Methods flush but never commit;
the caller owns the transaction.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_manager.models import GalleryImage

logger = logging.getLogger(__name__)


class ImageRegistry:
    def __init__(self, session: AsyncSession, type: str):
        self.session = session
        self.type = type

    def _scope(self, owner_id: str):
        return (GalleryImage.type == self.type, GalleryImage.owner_id == owner_id)

    async def list_images(self, owner_id: str, image_ids: Optional[Iterable[int]] = None) -> List[GalleryImage]:
        """Images of a gallery ordered by rank ascending, optionally limited to ``image_ids``."""
        query = select(GalleryImage).where(*self._scope(owner_id))
        if image_ids is not None:
            query = query.where(GalleryImage.id.in_(list(image_ids)))
        query = query.order_by(GalleryImage.rank.asc(), GalleryImage.id.asc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get(self, owner_id: str, image_id: int) -> Optional[GalleryImage]:
        result = await self.session.execute(
            select(GalleryImage).where(*self._scope(owner_id), GalleryImage.id == image_id)
        )
        return result.scalar_one_or_none()

    async def insert(self, owner_id: str, name: Optional[str] = None, description: Optional[str] = None) -> GalleryImage:
        """Insert a row; its rank starts equal to its id so new images sort last."""
        image = GalleryImage(type=self.type, owner_id=owner_id, name=name, description=description, rank=0)
        self.session.add(image)
        await self.session.flush()
        image.rank = image.id
        await self.session.flush()
        return image

    async def update_owner(self, old_owner_id: str, new_owner_id: str) -> int:
        result = await self.session.execute(
            update(GalleryImage)
            .where(*self._scope(old_owner_id))
            .values(owner_id=new_owner_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def update_metadata(
        self,
        owner_id: str,
        image_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[GalleryImage]:
        """Update only the fields that are not None."""
        image = await self.get(owner_id, image_id)
        if image is None:
            return None
        if name is not None:
            image.name = name
        if description is not None:
            image.description = description
        await self.session.flush()
        return image

    async def update_rank(self, owner_id: str, image_id: int, rank: int) -> bool:
        result = await self.session.execute(
            update(GalleryImage)
            .where(*self._scope(owner_id), GalleryImage.id == image_id)
            .values(rank=rank)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    async def delete(self, owner_id: str, image_id: int) -> bool:
        result = await self.session.execute(
            delete(GalleryImage)
            .where(*self._scope(owner_id), GalleryImage.id == image_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    async def delete_all_for_owner(self, owner_id: str) -> int:
        result = await self.session.execute(
            delete(GalleryImage)
            .where(*self._scope(owner_id))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def temporary_owner_ids(self, prefix: str, older_than: Optional[timedelta] = None) -> List[str]:
        """
        Distinct owner ids of this type that start with ``prefix``.

        Args:
            prefix: Temporary id prefix; SQL wildcards in it are matched literally
            older_than: If set, only owners whose newest image is older than this
        """
        query = (
            select(GalleryImage.owner_id)
            .where(GalleryImage.type == self.type, GalleryImage.owner_id.startswith(prefix, autoescape=True))
            .group_by(GalleryImage.owner_id)
        )
        if older_than is not None:
            cutoff = datetime.now(timezone.utc) - older_than
            query = query.having(func.max(GalleryImage.created_at) < cutoff)
        result = await self.session.execute(query.order_by(GalleryImage.owner_id))
        return list(result.scalars().all())
