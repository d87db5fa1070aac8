"""
Filesystem layout for gallery files.

Every version file lives at::

    {directory}/{galleryId}/{imageId}/{version}.{extension}

The remote image processor may see the same tree mounted somewhere else, so
each path can also be rendered against ``remote_directory``. All methods here
are blocking; async callers run them through ``asyncio.to_thread``.
"""
import logging
import os
import shutil
import zlib
from pathlib import Path
from typing import Optional

from gallery_manager.exceptions import GalleryStorageError

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o777


class StorageLayout:
    """Path computation and file primitives for one gallery root."""

    def __init__(
        self,
        directory: Path,
        url: str,
        extension: str = "jpg",
        remote_directory: Optional[str] = None,
        time_hash: Optional[str] = "_",
    ):
        self.directory = Path(directory)
        self.url = url.rstrip("/")
        self.extension = extension
        self.remote_directory = remote_directory.rstrip("/") if remote_directory else None
        self.time_hash = time_hash

    def file_name(
        self,
        gallery_id: str,
        image_id: int,
        version: str = "original",
        extension: Optional[str] = None,
    ) -> str:
        """Relative path of a version file, shared by local, remote and public paths."""
        return f"{gallery_id}/{image_id}/{version}.{extension or self.extension}"

    def file_path(
        self,
        gallery_id: str,
        image_id: int,
        version: str = "original",
        extension: Optional[str] = None,
    ) -> Path:
        return self._contained(self.directory / self.file_name(gallery_id, image_id, version, extension))

    def remote_path(
        self,
        gallery_id: str,
        image_id: int,
        version: str = "original",
        extension: Optional[str] = None,
    ) -> str:
        """Path of a version file as seen by the remote image processor."""
        local = self.file_path(gallery_id, image_id, version, extension)
        if self.remote_directory is None:
            return str(local)
        relative = self.file_name(gallery_id, image_id, version, extension)
        return f"{self.remote_directory}/{relative}"

    def directory_path(self, gallery_id: str) -> Path:
        return self._contained(self.directory / gallery_id)

    def image_directory(self, gallery_id: str, image_id: int) -> Path:
        return self._contained(self.directory / gallery_id / str(image_id))

    def _contained(self, path: Path) -> Path:
        """
        Raises:
            GalleryStorageError: If ``path`` does not resolve strictly below the gallery root
        """
        if self.directory.resolve() not in path.resolve().parents:
            raise GalleryStorageError(f"Path {path} is outside gallery directory {self.directory}")
        return path

    def public_url(self, gallery_id: str, image_id: int, version: str = "original") -> Optional[str]:
        """
        Public URL of a version file.

        Returns:
            None when the file does not exist, otherwise the URL with an
            optional ``?{time_hash}={crc32(mtime)}`` cache-busting suffix.
        """
        path = self.file_path(gallery_id, image_id, version)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None

        url = f"{self.url}/{self.file_name(gallery_id, image_id, version)}"
        if self.time_hash:
            checksum = zlib.crc32(str(int(mtime)).encode("ascii"))
            url = f"{url}?{self.time_hash}={checksum}"
        return url

    @staticmethod
    def create_directory_tree(path: Path) -> None:
        """
        Create ``path`` and its parents. Idempotent.

        Raises:
            GalleryStorageError: If the directory cannot be created
        """
        try:
            path.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise GalleryStorageError(f"Cannot create directory {path}: {e}") from e

    @staticmethod
    def write_file(path: Path, content: bytes) -> None:
        try:
            path.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise GalleryStorageError(f"Cannot write {path}: {e}") from e

    @staticmethod
    def copy_file(source: Path, destination: Path) -> None:
        # Copy rather than move: the upload may live on another filesystem
        try:
            destination.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as e:
            raise GalleryStorageError(f"Cannot copy {source} to {destination}: {e}") from e

    @staticmethod
    def rename_directory(source: Path, destination: Path) -> bool:
        """
        Rename a directory in one filesystem operation.

        Returns:
            False when ``source`` does not exist, True after the rename
        """
        if not source.is_dir():
            return False
        destination.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        os.rename(source, destination)
        logger.info(f"Renamed gallery directory {source} -> {destination}")
        return True

    @staticmethod
    def remove_file(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Failed to remove file {path}: {str(e)}")
            return False

    @staticmethod
    def remove_directory_tree(path: Path) -> bool:
        if not path.exists():
            return True
        try:
            shutil.rmtree(path)
            return True
        except OSError as e:
            logger.warning(f"Failed to remove directory {path}: {str(e)}")
            return False
