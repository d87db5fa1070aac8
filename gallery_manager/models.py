"""
SQLAlchemy models for the application.
All database models inherit from Base (declarative base).
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from sqlalchemy.sql import func
from gallery_manager.database import Base


class GalleryImage(Base):
    """
    Gallery image metadata.
    One table holds images of several owner kinds, so rows are always
    addressed by the (type, owner_id) pair.
    """
    __tablename__ = "gallery_image"
    __table_args__ = (
        Index("ix_gallery_image_type_owner", "type", "ownerId"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(255), nullable=False)
    owner_id = Column("ownerId", String(255), nullable=False)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    rank = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<GalleryImage id={self.id} type={self.type!r} owner={self.owner_id!r} rank={self.rank}>"


class GalleryTemp(Base):
    """
    Temporary ticket linking an uploaded image to an unsaved form.
    Looked up by (temporaryIndex, csrfToken, user or session).
    """
    __tablename__ = "gallery_temp"

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column("imageId", Integer, nullable=False, index=True)
    temporary_index = Column("temporaryIndex", String(64), nullable=False)
    csrf_token = Column("csrfToken", String(255), nullable=False, index=True)
    user_identity_id = Column("userIdentityId", String(255), nullable=True)
    session_id = Column("sessionId", String(255), nullable=True)
