"""
Temporary tickets for uploads attached to a form that is not saved yet.

A ticket ties an image to (temporary index, CSRF token, user or session), so a
later request carrying the same token can find out which images it uploaded.
The token rotates on every request; ``rotate`` moves the tickets onto the new
token so the link survives.
"""
import logging
from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_manager.models import GalleryTemp
from gallery_manager.services.identity import RequestContext

logger = logging.getLogger(__name__)


def _identity_filter(context: RequestContext):
    if context.user_id:
        return GalleryTemp.user_identity_id == context.user_id
    return GalleryTemp.session_id == context.session_id


async def record_ticket(session: AsyncSession, image_id: int, temporary_index: str, context: RequestContext) -> GalleryTemp:
    """
    Raises:
        ValueError: If the context carries no CSRF token
    """
    if not context.csrf_token:
        raise ValueError("A CSRF token is required to record a temporary ticket")
    ticket = GalleryTemp(
        image_id=image_id,
        temporary_index=str(temporary_index),
        csrf_token=context.csrf_token,
        user_identity_id=context.user_id,
        session_id=context.session_id,
    )
    session.add(ticket)
    await session.flush()
    return ticket


async def image_ids_for_ticket(session: AsyncSession, temporary_index: str, context: RequestContext) -> List[int]:
    """Image ids uploaded under ``temporary_index`` with the context's token and identity."""
    if not context.csrf_token:
        return []
    result = await session.execute(
        select(GalleryTemp.image_id)
        .where(
            GalleryTemp.temporary_index == str(temporary_index),
            GalleryTemp.csrf_token == context.csrf_token,
            _identity_filter(context),
        )
        .order_by(GalleryTemp.id)
    )
    return list(result.scalars().all())


async def rotate_tickets(session: AsyncSession, temporary_index: str, context: RequestContext, new_token: str) -> int:
    """Rewrite tickets on the context's (old) token to ``new_token``. Returns the row count."""
    if not context.csrf_token:
        return 0
    result = await session.execute(
        update(GalleryTemp)
        .where(
            GalleryTemp.temporary_index == str(temporary_index),
            GalleryTemp.csrf_token == context.csrf_token,
            _identity_filter(context),
        )
        .values(csrf_token=new_token)
        .execution_options(synchronize_session="fetch")
    )
    logger.debug(f"Rotated {result.rowcount} temporary tickets for index {temporary_index}")
    return result.rowcount
