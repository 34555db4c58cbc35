"""create race_session, player and timer_sync tables

Revision ID: 5c2e9a71b0d4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9a71b0d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'race_session' not in existing_tables:
        op.create_table(
            'race_session',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('room_code', sa.String(length=6), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('scoring_policy', sa.String(length=16), nullable=False),
            sa.Column('duration_ms', sa.Integer(), nullable=True),
            sa.Column('start_time', sa.BigInteger(), nullable=True),
            sa.Column('bonus_scores', sa.Text(), nullable=True),
            sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('last_updated', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_race_session_room_code'), 'race_session', ['room_code'], unique=True)

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('session_id', sa.Integer(), nullable=False),
            sa.Column('player_name', sa.String(length=64), nullable=False),
            sa.Column('field_number', sa.Integer(), nullable=False),
            sa.Column('checkin_time', sa.BigInteger(), nullable=False),
            sa.Column('bonus_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('bruto_score', sa.Integer(), nullable=True),
            sa.Column('netto_score', sa.Integer(), nullable=True),
            sa.Column('finished_at', sa.BigInteger(), nullable=True),
            sa.Column('auto_stopped', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(['session_id'], ['race_session.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('session_id', 'field_number', name='uq_player_session_field'),
        )

    if 'timer_sync' not in existing_tables:
        op.create_table(
            'timer_sync',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('session_id', sa.Integer(), nullable=False),
            sa.Column('timer_state', sa.String(length=16), nullable=False),
            sa.Column('start_time', sa.BigInteger(), nullable=True),
            sa.Column('updated_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['session_id'], ['race_session.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('session_id'),
        )


def downgrade():
    op.drop_table('timer_sync')
    op.drop_table('player')
    op.drop_index(op.f('ix_race_session_room_code'), table_name='race_session')
    op.drop_table('race_session')
