"""create match, log_entry and match_score tables

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('title', sa.String(length=128), nullable=False, server_default=''),
            sa.Column('status', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('win_score', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('overtime_margin', sa.Integer(), nullable=False, server_default='2'),
            sa.Column('max_rounds', sa.Integer(), nullable=False, server_default='3'),
        )

    if 'log_entry' not in existing_tables:
        op.create_table(
            'log_entry',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('match_id', sa.Integer(), nullable=False),
            sa.Column('round', sa.Integer(), nullable=False),
            sa.Column('team', sa.Integer(), nullable=False),
            sa.Column('points', sa.Integer(), nullable=False),
            sa.Column('timestamp', sa.String(length=40), nullable=False),
        )
        op.create_index('ix_log_entry_match_id', 'log_entry', ['match_id'])
        op.create_index('ix_log_entry_round', 'log_entry', ['round'])

    if 'match_score' not in existing_tables:
        op.create_table(
            'match_score',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('round', sa.Integer(), nullable=False),
            sa.Column('team1_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('team2_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('current_half', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('note', sa.Text(), nullable=False, server_default=''),
            sa.Column('set_details', sa.Text(), nullable=True),
            sa.Column('logs', sa.Text(), nullable=True),
            sa.UniqueConstraint('match_id', 'round', name='uq_match_score_match_round'),
        )
        op.create_index('ix_match_score_match_id', 'match_score', ['match_id'])


def downgrade():
    op.drop_index('ix_match_score_match_id', table_name='match_score')
    op.drop_table('match_score')
    op.drop_index('ix_log_entry_round', table_name='log_entry')
    op.drop_index('ix_log_entry_match_id', table_name='log_entry')
    op.drop_table('log_entry')
    op.drop_table('match')
