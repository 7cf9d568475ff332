"""Create initial schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-19 10:12:41.204417

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=240), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'api_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'libraries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('content_change_date', sa.DateTime(), nullable=False),
        sa.Column('location', sa.Text(), nullable=False),
        sa.Column('is_audiobook_regex', sa.Text(), nullable=False),
        sa.Column('last_scan', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'library_permissions',
        sa.Column('library_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['library_id'], ['libraries.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('library_id', 'user_id')
    )

    op.create_table(
        'audiobooks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('location', sa.Text(), nullable=False),
        sa.Column('title', sa.String(length=1024), nullable=False),
        sa.Column('artist', sa.String(length=1024), nullable=True),
        sa.Column('length', sa.Float(), nullable=False),
        sa.Column('library_id', sa.Uuid(), nullable=False),
        sa.Column('hash', sa.LargeBinary(), nullable=False),
        sa.Column('file_extension', sa.String(length=255), nullable=False),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['library_id'], ['libraries.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('library_id', 'hash', name='uq_audiobooks_library_hash')
    )
    op.create_index(op.f('ix_audiobooks_library_id'), 'audiobooks', ['library_id'], unique=False)

    op.create_table(
        'chapters',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=1024), nullable=True),
        sa.Column('audiobook_id', sa.Uuid(), nullable=False),
        sa.Column('start_time', sa.Float(), nullable=False),
        sa.Column('number', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['audiobook_id'], ['audiobooks.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audiobook_id', 'number', name='uq_chapters_audiobook_number')
    )
    op.create_index(op.f('ix_chapters_audiobook_id'), 'chapters', ['audiobook_id'], unique=False)

    op.create_table(
        'playstates',
        sa.Column('audiobook_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Float(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['audiobook_id'], ['audiobooks.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('audiobook_id', 'user_id')
    )


def downgrade() -> None:
    op.drop_table('playstates')
    op.drop_index(op.f('ix_chapters_audiobook_id'), table_name='chapters')
    op.drop_table('chapters')
    op.drop_index(op.f('ix_audiobooks_library_id'), table_name='audiobooks')
    op.drop_table('audiobooks')
    op.drop_table('library_permissions')
    op.drop_table('libraries')
    op.drop_table('api_tokens')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
