"""
Gallery attached to an owner record.

``Gallery`` ties together the identity of the owner, the image registry, the
storage layout and the version pipeline. The owner's persistence code calls
the lifecycle hooks explicitly:

    gallery.on_loaded()            # after the owner is loaded / before insert
    await gallery.on_persisted()   # after the owner row is flushed
    await gallery.rollback()       # if the owner's transaction is abandoned
    await gallery.on_before_delete()

``on_persisted`` rewrites the registry rows inside the caller's transaction
and then renames the gallery directory. The rename is outside the database
transaction, so a caller that rolls back must call ``rollback()`` as well.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_manager.config import Settings, settings as default_settings
from gallery_manager.exceptions import ImageNotFoundError, TransformError
from gallery_manager.models import GalleryImage
from gallery_manager.services import ordering, orphans
from gallery_manager.services.identity import GalleryIdentity, RequestContext
from gallery_manager.services.registry import ImageRegistry
from gallery_manager.services.storage import StorageLayout
from gallery_manager.services.versions import (
    ORIGINAL,
    PREVIEW,
    ImaginaryCropTransform,
    PassThroughTransform,
    RegenerationResult,
    VersionPipeline,
    VersionReport,
    VersionTransform,
)
from gallery_manager.utils.locks import IdentityLocks, identity_locks

logger = logging.getLogger(__name__)


@dataclass
class GalleryConfig:
    """Configuration of galleries for one owner type."""

    type: str
    directory: Path
    url: str
    extension: str = "jpg"
    time_hash: Optional[str] = "_"
    remote_directory: Optional[str] = None
    imaginary_url: str = "http://imaginary:9000"
    imaginary_timeout: float = 30.0
    preview_width: int = 130
    preview_height: int = 88
    pk_glue: str = "_"
    temporary_prefix: str = "temp"
    temporary_template: str = "{temporaryPrefix}-{temporaryIndex}-{combineId}"
    temporary_index_filter: str = r"\d+"
    regenerate_concurrency: int = 4
    has_name: bool = True
    has_description: bool = True
    versions: Dict[str, VersionTransform] = field(default_factory=dict)

    def __post_init__(self):
        self.directory = Path(self.directory)
        # Copied so a versions dict shared between configs is left untouched
        self.versions = dict(self.versions)
        if ORIGINAL not in self.versions:
            self.versions[ORIGINAL] = PassThroughTransform()
        if PREVIEW not in self.versions:
            self.versions[PREVIEW] = ImaginaryCropTransform(
                self.imaginary_url,
                self.preview_width,
                self.preview_height,
                timeout=self.imaginary_timeout,
            )

    @classmethod
    def from_settings(cls, type: str, settings: Optional[Settings] = None, **overrides: Any) -> "GalleryConfig":
        settings = settings or default_settings
        values = dict(
            type=type,
            directory=Path(settings.GALLERY_DIRECTORY),
            url=settings.GALLERY_URL,
            extension=settings.GALLERY_EXTENSION,
            time_hash=settings.GALLERY_TIME_HASH,
            remote_directory=settings.IMAGINARY_DIRECTORY or None,
            imaginary_url=settings.IMAGINARY_URL,
            imaginary_timeout=settings.IMAGINARY_TIMEOUT,
            preview_width=settings.PREVIEW_WIDTH,
            preview_height=settings.PREVIEW_HEIGHT,
            pk_glue=settings.PK_GLUE,
            temporary_prefix=settings.TEMPORARY_PREFIX,
            temporary_template=settings.TEMPORARY_TEMPLATE,
            temporary_index_filter=settings.TEMPORARY_INDEX_FILTER,
            regenerate_concurrency=settings.REGENERATE_CONCURRENCY,
        )
        values.update(overrides)
        return cls(**values)

    def layout(self) -> StorageLayout:
        return StorageLayout(
            directory=self.directory,
            url=self.url,
            extension=self.extension,
            remote_directory=self.remote_directory,
            time_hash=self.time_hash,
        )


class Gallery:
    """One owner's gallery bound to a database session."""

    def __init__(
        self,
        owner: Any,
        config: GalleryConfig,
        session: AsyncSession,
        context: Optional[RequestContext] = None,
        *,
        temporary_index: Optional[str] = None,
        locks: Optional[IdentityLocks] = None,
    ):
        self.owner = owner
        self.config = config
        self.session = session
        self.identity = GalleryIdentity(
            owner,
            context,
            temporary_prefix=config.temporary_prefix,
            temporary_template=config.temporary_template,
            temporary_index_filter=config.temporary_index_filter,
            pk_glue=config.pk_glue,
            temporary_index=temporary_index,
        )
        self.registry = ImageRegistry(session, config.type)
        self.layout = config.layout()
        self.pipeline = VersionPipeline(self.layout, config.versions)
        self.locks = locks or identity_locks
        self._images: Optional[List[GalleryImage]] = None
        self._promoted_from: Optional[str] = None
        self._promoted_to: Optional[str] = None

    @property
    def type(self) -> str:
        return self.config.type

    @property
    def gallery_id(self) -> str:
        return self.identity.current()

    @property
    def directory_path(self) -> Path:
        return self.layout.directory_path(self.gallery_id)

    def set_temporary_id(self, raw_gallery_id: str) -> bool:
        return self.identity.set_temporary_id(raw_gallery_id)

    # ---------------------------------------------------------------- lifecycle

    def on_loaded(self) -> str:
        """Record the current identity; call after load and before insert."""
        return self.identity.record()

    async def on_persisted(self) -> bool:
        """
        Move the gallery to the owner's new identity after insert or update.

        Rows are rewritten first, inside the caller's transaction, so a
        failure there rolls back with the owner. The directory is renamed
        afterwards.

        Returns:
            True if the identity changed and the gallery was moved
        """
        if not self.identity.changed():
            return False
        old_id = self.identity.recorded
        new_id = self.identity.current()

        async with self.locks.hold(self.type, old_id, new_id):
            moved_rows = await self.registry.update_owner(old_id, new_id)
            moved_dir = await asyncio.to_thread(
                self.layout.rename_directory,
                self.layout.directory_path(old_id),
                self.layout.directory_path(new_id),
            )

        self._promoted_from, self._promoted_to = old_id, new_id
        self.identity.record()
        self._images = None
        logger.info(
            f"Promoted gallery {old_id} -> {new_id} ({self.type}): "
            f"{moved_rows} rows, directory {'moved' if moved_dir else 'absent'}"
        )
        return True

    promote = on_persisted

    async def rollback(self) -> bool:
        """
        Undo the directory rename of the last promotion.

        Registry rows roll back with the caller's transaction; only the
        directory needs to be moved back by hand.
        """
        if self._promoted_from is None:
            return False
        old_id, new_id = self._promoted_from, self._promoted_to

        async with self.locks.hold(self.type, old_id, new_id):
            await asyncio.to_thread(
                self.layout.rename_directory,
                self.layout.directory_path(new_id),
                self.layout.directory_path(old_id),
            )

        self.identity.restore(old_id)
        self._promoted_from = self._promoted_to = None
        self._images = None
        logger.info(f"Rolled back gallery directory {new_id} -> {old_id} ({self.type})")
        return True

    async def on_before_delete(self) -> None:
        """Remove every image and the gallery directory before the owner is deleted."""
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            for image in await self.images():
                await self._delete_image(gallery_id, image.id)
            await asyncio.to_thread(self.layout.remove_directory_tree, self.layout.directory_path(gallery_id))
        self._images = []

    # ------------------------------------------------------------------ reading

    async def images(self) -> List[GalleryImage]:
        """Images ordered by rank; cached for the lifetime of this instance."""
        if self._images is None:
            self._images = await self.registry.list_images(self.gallery_id)
        return self._images

    def url(self, image_id: int, version: str = ORIGINAL) -> Optional[str]:
        return self.layout.public_url(self.gallery_id, image_id, version)

    def file_path(self, image_id: int, version: str = ORIGINAL) -> Path:
        return self.layout.file_path(self.gallery_id, image_id, version)

    def urls(self, image_id: int) -> Dict[str, Optional[str]]:
        return {version: self.url(image_id, version) for version in self.config.versions}

    # ------------------------------------------------------------------ actions

    async def add_image(self, source_path: Path, name: Optional[str] = None, description: Optional[str] = None) -> GalleryImage:
        """
        Register a new image and materialize all its versions.

        Raises:
            TransformError: If the original could not be produced; the row and
            any written files are removed before raising
            GalleryStorageError: If the image directory cannot be written
        """
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            image = await self.registry.insert(gallery_id, name=name, description=description)
            try:
                report = await self.pipeline.materialize(gallery_id, image.id, Path(source_path))
            except Exception:
                await self._discard(gallery_id, image.id)
                raise
            if not report.original_ok:
                await self._discard(gallery_id, image.id)
                raise TransformError(ORIGINAL, f"cannot store image from {source_path}")

        if self._images is not None:
            self._images.append(image)
        logger.info(
            f"Added image {image.id} to gallery {gallery_id} ({self.type}): "
            f"{report.succeeded} versions, {report.failed} failed"
        )
        return image

    async def _discard(self, gallery_id: str, image_id: int) -> None:
        await self.registry.delete(gallery_id, image_id)
        await asyncio.to_thread(self.layout.remove_directory_tree, self.layout.image_directory(gallery_id, image_id))

    async def replace_image(self, image_id: int, source_path: Path) -> VersionReport:
        """
        Replace the files of an existing image and regenerate its versions.

        Raises:
            ImageNotFoundError: If the image is not part of this gallery
            TransformError: If the new original could not be produced
        """
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            if await self.registry.get(gallery_id, image_id) is None:
                raise ImageNotFoundError(image_id)
            report = await self.pipeline.materialize(gallery_id, image_id, Path(source_path))
        if not report.original_ok:
            raise TransformError(ORIGINAL, f"cannot store image from {source_path}")
        return report

    async def _delete_image(self, gallery_id: str, image_id: int) -> bool:
        deleted = await self.registry.delete(gallery_id, image_id)
        if deleted:
            for version in self.config.versions:
                await asyncio.to_thread(self.layout.remove_file, self.layout.file_path(gallery_id, image_id, version))
            await asyncio.to_thread(
                self.layout.remove_directory_tree, self.layout.image_directory(gallery_id, image_id)
            )
        return deleted

    async def delete_image(self, image_id: int) -> bool:
        """Delete one image's row and files. Returns False if it was not in this gallery."""
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            deleted = await self._delete_image(gallery_id, image_id)
        if deleted:
            logger.info(f"Deleted image {image_id} from gallery {gallery_id} ({self.type})")
        return deleted

    async def delete_images(self, image_ids: Iterable[int]) -> List[int]:
        """
        Delete several images under one lock.

        If at least one image was deleted and the registry holds no image of
        this gallery afterwards, the gallery directory is removed too.

        Returns:
            list[int]: Ids that were actually deleted
        """
        image_ids = list(image_ids)
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            deleted = [image_id for image_id in image_ids if await self._delete_image(gallery_id, image_id)]
            if deleted and not await self.registry.list_images(gallery_id):
                await asyncio.to_thread(self.layout.remove_directory_tree, self.layout.directory_path(gallery_id))

        if self._images is not None:
            removed = set(deleted)
            self._images = [image for image in self._images if image.id not in removed]
        if deleted:
            logger.info(f"Deleted images {deleted} from gallery {gallery_id} ({self.type})")
        return deleted

    async def update_images_data(self, images_data: Mapping[int, Mapping[str, Optional[str]]]) -> List[GalleryImage]:
        """
        Update name and/or description of images.

        Args:
            images_data: ``{image_id: {"name": ..., "description": ...}}``;
                         missing or None keys are left unchanged

        Returns:
            list[GalleryImage]: The updated images of this gallery
        """
        gallery_id = self.gallery_id
        updated = []
        for image in await self.registry.list_images(gallery_id, images_data.keys()):
            data = images_data[image.id]
            result = await self.registry.update_metadata(
                gallery_id, image.id, name=data.get("name"), description=data.get("description")
            )
            if result is not None:
                updated.append(result)
        return updated

    async def arrange(self, order: Mapping[int, Optional[int]]) -> Dict[int, int]:
        """Reorder images; ``None`` keeps an image's own id as provisional rank."""
        ranks = await ordering.arrange(self.registry, self.gallery_id, order)
        if self._images is not None:
            for image in self._images:
                if image.id in ranks:
                    image.rank = ranks[image.id]
            self._images.sort(key=lambda image: (image.rank, image.id))
        return ranks

    # -------------------------------------------------------------- maintenance

    async def regenerate(
        self,
        old_extension: Optional[str] = None,
        only_versions: Optional[Iterable[str]] = None,
    ) -> RegenerationResult:
        """
        Rebuild versions of every image after a configuration change.

        Args:
            old_extension: Extension the files were stored with, if it changed
            only_versions: Restrict regeneration to these version names

        Returns:
            RegenerationResult: Counts of succeeded and failed version generations
        """
        gallery_id = self.gallery_id
        async with self.locks.hold(self.type, gallery_id):
            image_ids = [image.id for image in await self.images()]
            return await self.pipeline.regenerate(
                gallery_id,
                image_ids,
                old_extension=old_extension,
                only_versions=only_versions,
                concurrency=self.config.regenerate_concurrency,
            )


async def reap_orphans(
    config: GalleryConfig,
    session: AsyncSession,
    older_than: Optional[timedelta] = None,
    locks: Optional[IdentityLocks] = None,
) -> List[str]:
    """Delete temporary galleries of ``config.type`` that were never promoted."""
    return await orphans.reap_orphans(
        ImageRegistry(session, config.type),
        config.layout(),
        config.temporary_prefix,
        older_than=older_than,
        locks=locks,
    )


async def regenerate_all(
    config: GalleryConfig,
    session: AsyncSession,
    old_extension: Optional[str] = None,
    only_versions: Optional[Iterable[str]] = None,
    locks: Optional[IdentityLocks] = None,
) -> RegenerationResult:
    """Regenerate every gallery of ``config.type``, permanent and temporary."""
    result = await session.execute(
        select(GalleryImage.owner_id).where(GalleryImage.type == config.type).distinct()
    )
    only = list(only_versions) if only_versions is not None else None
    pipeline = VersionPipeline(config.layout(), config.versions)
    locks = locks or identity_locks
    total = RegenerationResult()

    registry = ImageRegistry(session, config.type)
    for owner_id in result.scalars().all():
        async with locks.hold(config.type, owner_id):
            image_ids = [image.id for image in await registry.list_images(owner_id)]
            counts = await pipeline.regenerate(
                owner_id, image_ids, old_extension, only, concurrency=config.regenerate_concurrency
            )
        total.succeeded += counts.succeeded
        total.failed += counts.failed
    return total
