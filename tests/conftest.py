"""Shared pytest fixtures for gallery tests."""

import shutil
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
from PIL import Image
from sqlalchemy import Column, Integer, String
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gallery_manager import models  # noqa: F401
from gallery_manager.database import Base
from gallery_manager.services.gallery import Gallery, GalleryConfig
from gallery_manager.services.identity import RequestContext
from gallery_manager.services.versions import CallableTransform, PillowResizeTransform
from gallery_manager.utils.locks import IdentityLocks


class Post(Base):
    """Owner model used by the tests."""

    __tablename__ = "post"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, default="")


def copy_original(original_path: Path, remote_path: str) -> bytes:
    return original_path.read_bytes()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
async def engine(temp_dir: Path):
    """File-backed SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{temp_dir / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_image(temp_dir: Path) -> Path:
    """A small JPEG upload."""
    path = temp_dir / "upload.jpg"
    Image.new("RGB", (64, 48), color=(200, 30, 30)).save(path, format="JPEG")
    return path


@pytest.fixture
def gallery_config(temp_dir: Path) -> GalleryConfig:
    """Gallery config for Post owners with local-only versions.

    ``preview`` copies the original and ``small`` resizes with Pillow,
    so no imaginary service is needed.
    """
    return GalleryConfig(
        type="Post",
        directory=temp_dir / "gallery",
        url="/media/gallery",
        versions={
            "preview": CallableTransform(copy_original, name="preview"),
            "small": PillowResizeTransform(16, 16, name="small"),
        },
    )


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(session_id="sess42", csrf_token="token-1")


@pytest.fixture
def locks() -> IdentityLocks:
    return IdentityLocks()


@pytest.fixture
def make_gallery(gallery_config, session, context, locks):
    """Factory building a Gallery for an owner with the shared fixtures."""

    def _make(owner, config=None, temporary_index="1", **kwargs) -> Gallery:
        return Gallery(
            owner,
            config or gallery_config,
            session,
            kwargs.pop("context", context),
            temporary_index=temporary_index,
            locks=locks,
            **kwargs,
        )

    return _make


def snapshot(directory: Path) -> dict:
    """Relative path -> bytes of every file below ``directory``."""
    return {
        str(path.relative_to(directory)): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }
