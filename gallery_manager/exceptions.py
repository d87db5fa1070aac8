"""
Exception hierarchy for gallery operations.
Routes translate these into HTTP errors; services raise them.
"""


class GalleryError(Exception):
    """Base class for all gallery errors."""


class TransformError(GalleryError):
    """A version transform could not produce bytes for an image."""

    def __init__(self, version: str, message: str):
        self.version = version
        super().__init__(f"Version '{version}' failed: {message}")


class TemplateParseError(GalleryError, ValueError):
    """A raw gallery id does not match the temporary id template."""


class GalleryStorageError(GalleryError):
    """The gallery directory tree could not be created or written."""


class ImageNotFoundError(GalleryError):
    """No image with the given id exists in the gallery."""

    def __init__(self, image_id: int):
        self.image_id = image_id
        super().__init__(f"Image ID {image_id} does not exist")
