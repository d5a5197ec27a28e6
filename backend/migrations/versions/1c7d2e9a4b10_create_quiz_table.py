"""create quiz table

Revision ID: 1c7d2e9a4b10
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1c7d2e9a4b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'quiz' in insp.get_table_names():
        return
    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('course', sa.String(length=128), nullable=True),
        sa.Column('difficulty', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('questions', sa.Text(), nullable=False),
        sa.Column('items_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    with op.batch_alter_table('quiz') as batch_op:
        batch_op.create_index('ix_quiz_course', ['course'])


def downgrade():
    with op.batch_alter_table('quiz') as batch_op:
        batch_op.drop_index('ix_quiz_course')
    op.drop_table('quiz')
