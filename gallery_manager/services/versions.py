"""
Version generation pipeline.

An image is stored once as ``original`` and then derived into any number of
named versions. Each version is produced by a ``VersionTransform`` that reads
the original file and returns the bytes to write. Transforms never depend on
each other; they all read the same on-disk original in declared order, so a
transform must not modify the file it is given.
"""
import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, Optional, Union

import httpx

from gallery_manager.exceptions import TransformError
from gallery_manager.services.storage import StorageLayout
from gallery_manager.utils.image_converter import (
    DEFAULT_QUALITY,
    ImageConversionError,
    convert_image,
    format_for_extension,
)

logger = logging.getLogger(__name__)

ORIGINAL = "original"
PREVIEW = "preview"


class VersionTransform(ABC):
    """Produces the bytes of one version from the original image."""

    @abstractmethod
    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        """
        Args:
            original_path: Local path of the original file
            remote_path: Path of the same file as seen by the remote processor

        Raises:
            TransformError: If the version cannot be produced
        """


class PassThroughTransform(VersionTransform):
    """Default ``original`` transform: the file bytes unchanged."""

    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        try:
            return await asyncio.to_thread(original_path.read_bytes)
        except OSError as e:
            raise TransformError(ORIGINAL, str(e)) from e


class CallableTransform(VersionTransform):
    """Wraps a plain function ``fn(original_path, remote_path) -> bytes``, sync or async."""

    def __init__(
        self,
        fn: Callable[[Path, str], Union[bytes, Awaitable[bytes]]],
        name: str = "custom",
    ):
        self.fn = fn
        self.name = name

    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        if inspect.iscoroutinefunction(self.fn):
            return await self.fn(original_path, remote_path)
        return await asyncio.to_thread(self.fn, original_path, remote_path)


class ImaginaryCropTransform(VersionTransform):
    """
    Crop/resize through an imaginary HTTP service.

    Sends ``GET {base_url}/crop?file=...&width=...&height=...`` and returns the
    response body. Timeouts, network errors and non-2xx responses become
    ``TransformError`` so the pipeline counts them as a version failure.
    """

    def __init__(
        self,
        base_url: str,
        width: int,
        height: int,
        timeout: float = 30.0,
        name: str = PREVIEW,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.width = width
        self.height = height
        self.timeout = timeout
        self.name = name
        self.client = client

    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        params = {"file": remote_path, "width": self.width, "height": self.height}
        try:
            if self.client is not None:
                response = await self.client.get(f"{self.base_url}/crop", params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(f"{self.base_url}/crop", params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransformError(self.name, f"imaginary request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise TransformError(self.name, f"imaginary returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TransformError(self.name, f"imaginary request failed: {str(e)}") from e
        return response.content


class PillowResizeTransform(VersionTransform):
    """Local resize with Pillow, for deployments without an imaginary service."""

    def __init__(
        self,
        width: int,
        height: int,
        extension: str = "jpg",
        crop: bool = False,
        quality: int = DEFAULT_QUALITY,
        name: str = "resized",
    ):
        self.size = (width, height)
        self.image_format = format_for_extension(extension)
        self.crop = crop
        self.quality = quality
        self.name = name

    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        try:
            content = await asyncio.to_thread(original_path.read_bytes)
            return await asyncio.to_thread(
                convert_image, content, self.image_format, self.quality, self.size, self.crop
            )
        except (OSError, ImageConversionError) as e:
            raise TransformError(self.name, str(e)) from e


class PillowNormalizeTransform(VersionTransform):
    """``original`` transform that transcodes to the gallery extension and drops metadata."""

    def __init__(self, extension: str = "jpg", quality: int = DEFAULT_QUALITY):
        self.image_format = format_for_extension(extension)
        self.quality = quality

    async def generate(self, original_path: Path, remote_path: str) -> bytes:
        try:
            content = await asyncio.to_thread(original_path.read_bytes)
            return await asyncio.to_thread(convert_image, content, self.image_format, self.quality)
        except (OSError, ImageConversionError) as e:
            raise TransformError(ORIGINAL, str(e)) from e


@dataclass
class VersionReport:
    """Per-version outcome for one image."""

    image_id: int
    results: Dict[str, bool] = field(default_factory=dict)

    @property
    def original_ok(self) -> bool:
        return self.results.get(ORIGINAL, False)

    @property
    def succeeded(self) -> int:
        return sum(1 for ok in self.results.values() if ok)

    @property
    def failed(self) -> int:
        return sum(1 for ok in self.results.values() if not ok)


@dataclass
class RegenerationResult:
    """Aggregate counts of a bulk regeneration."""

    succeeded: int = 0
    failed: int = 0

    def __iter__(self):
        return iter((self.succeeded, self.failed))


class VersionPipeline:
    """Writes the original and derives every configured version from it."""

    def __init__(self, layout: StorageLayout, versions: Dict[str, VersionTransform]):
        if ORIGINAL not in versions:
            raise ValueError("versions must define an 'original' transform")
        self.layout = layout
        self.versions = versions

    def _derived(self, only_versions: Optional[Iterable[str]]):
        selected = set(only_versions) if only_versions is not None else None
        for name, transform in self.versions.items():
            if name == ORIGINAL:
                continue
            if selected is None or name in selected:
                yield name, transform

    async def _generate_derived(
        self,
        report: VersionReport,
        gallery_id: str,
        original_path: Path,
        remote_path: str,
        only_versions: Optional[Iterable[str]],
    ) -> None:
        image_id = report.image_id
        for name, transform in self._derived(only_versions):
            try:
                content = await transform.generate(original_path, remote_path)
                await asyncio.to_thread(
                    self.layout.write_file, self.layout.file_path(gallery_id, image_id, name), content
                )
                report.results[name] = True
            except Exception as e:
                logger.warning(f"Version '{name}' of image {image_id} in gallery {gallery_id} failed: {str(e)}")
                report.results[name] = False

    async def materialize(
        self,
        gallery_id: str,
        image_id: int,
        source_path: Path,
        only_versions: Optional[Iterable[str]] = None,
    ) -> VersionReport:
        """
        Store ``source_path`` as the original of an image and derive its versions.

        The source is copied to the original path, the ``original`` transform
        runs once and its output replaces the copy, then every other version
        runs in declared order.

        Args:
            gallery_id: Current gallery identity
            image_id: Registry id of the image
            source_path: Uploaded file to store
            only_versions: Optional subset of derived version names to generate

        Returns:
            VersionReport: Outcome per version name. If the original failed,
            no other version was attempted.

        Raises:
            GalleryStorageError: If the image directory cannot be created or
            the source cannot be copied
        """
        report = VersionReport(image_id=image_id)
        original_path = self.layout.file_path(gallery_id, image_id, ORIGINAL)
        remote_path = self.layout.remote_path(gallery_id, image_id, ORIGINAL)

        await asyncio.to_thread(self.layout.create_directory_tree, original_path.parent)
        await asyncio.to_thread(self.layout.copy_file, Path(source_path), original_path)

        try:
            content = await self.versions[ORIGINAL].generate(original_path, remote_path)
            await asyncio.to_thread(self.layout.write_file, original_path, content)
            report.results[ORIGINAL] = True
        except Exception as e:
            logger.warning(f"Original of image {image_id} in gallery {gallery_id} failed: {str(e)}")
            report.results[ORIGINAL] = False
            return report

        await self._generate_derived(report, gallery_id, original_path, remote_path, only_versions)
        return report

    async def regenerate_image(
        self,
        gallery_id: str,
        image_id: int,
        old_extension: Optional[str] = None,
        only_versions: Optional[Iterable[str]] = None,
    ) -> VersionReport:
        """
        Rebuild derived versions of an already stored image.

        With ``old_extension`` the original is read at the old extension,
        passed through the ``original`` transform, every old-extension version
        file is removed and the result is written at the current extension.
        Without it, the ``original`` transform only validates that the stored
        original is still usable.

        Only derived versions count towards ``succeeded``; a broken original
        counts as one failure and skips the image.
        """
        report = VersionReport(image_id=image_id)
        original_path = self.layout.file_path(gallery_id, image_id, ORIGINAL)
        remote_path = self.layout.remote_path(gallery_id, image_id, ORIGINAL)

        try:
            if old_extension is not None:
                old_path = self.layout.file_path(gallery_id, image_id, ORIGINAL, old_extension)
                old_remote = self.layout.remote_path(gallery_id, image_id, ORIGINAL, old_extension)
                content = await self.versions[ORIGINAL].generate(old_path, old_remote)
                for name in self.versions:
                    await asyncio.to_thread(
                        self.layout.remove_file, self.layout.file_path(gallery_id, image_id, name, old_extension)
                    )
                await asyncio.to_thread(self.layout.write_file, original_path, content)
            else:
                await asyncio.to_thread(self.layout.create_directory_tree, original_path.parent)
                await self.versions[ORIGINAL].generate(original_path, remote_path)
        except Exception as e:
            logger.warning(f"Original of image {image_id} in gallery {gallery_id} is unusable: {str(e)}")
            report.results[ORIGINAL] = False
            return report

        await self._generate_derived(report, gallery_id, original_path, remote_path, only_versions)
        return report

    async def regenerate(
        self,
        gallery_id: str,
        image_ids: Iterable[int],
        old_extension: Optional[str] = None,
        only_versions: Optional[Iterable[str]] = None,
        concurrency: int = 4,
    ) -> RegenerationResult:
        """
        Regenerate versions for many images, ``concurrency`` images at a time.

        Returns:
            RegenerationResult: Counts of succeeded and failed version generations
        """
        only = list(only_versions) if only_versions is not None else None
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _one(image_id: int) -> VersionReport:
            async with semaphore:
                return await self.regenerate_image(gallery_id, image_id, old_extension, only)

        reports = await asyncio.gather(*[_one(image_id) for image_id in image_ids])

        result = RegenerationResult()
        for report in reports:
            result.succeeded += sum(1 for name, ok in report.results.items() if ok and name != ORIGINAL)
            result.failed += report.failed
        logger.info(
            f"Regenerated gallery {gallery_id}: {result.succeeded} versions succeeded, {result.failed} failed"
        )
        return result
