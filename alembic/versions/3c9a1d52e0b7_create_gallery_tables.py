"""create_gallery_tables

Revision ID: 3c9a1d52e0b7
Revises:
Create Date: 2026-10-17 09:12:41.508133

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9a1d52e0b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'gallery_image',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=255), nullable=False),
        sa.Column('ownerId', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    # Every query filters on (type, ownerId)
    op.create_index('ix_gallery_image_type_owner', 'gallery_image', ['type', 'ownerId'], unique=False)

    op.create_table(
        'gallery_temp',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('imageId', sa.Integer(), nullable=False),
        sa.Column('temporaryIndex', sa.String(length=64), nullable=False),
        sa.Column('csrfToken', sa.String(length=255), nullable=False),
        sa.Column('userIdentityId', sa.String(length=255), nullable=True),
        sa.Column('sessionId', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_gallery_temp_imageId'), 'gallery_temp', ['imageId'], unique=False)
    op.create_index(op.f('ix_gallery_temp_csrfToken'), 'gallery_temp', ['csrfToken'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_gallery_temp_csrfToken'), table_name='gallery_temp')
    op.drop_index(op.f('ix_gallery_temp_imageId'), table_name='gallery_temp')
    op.drop_table('gallery_temp')

    op.drop_index('ix_gallery_image_type_owner', table_name='gallery_image')
    op.drop_table('gallery_image')
