"""create game, player, vote and round_stat tables

Revision ID: 3a7c9e1f0b2d
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7c9e1f0b2d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'game' not in existing_tables:
        op.create_table(
            'game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_code', sa.String(length=8), nullable=False),
            sa.Column('phase', sa.String(length=32), nullable=False, server_default='admin-lobby'),
            sa.Column('current_word', sa.String(length=128), nullable=True),
            sa.Column('word_category', sa.String(length=128), nullable=True),
            sa.Column('liar_id', sa.Integer(), nullable=True),
            sa.Column('starting_player_id', sa.Integer(), nullable=True),
            sa.Column('last_starting_index', sa.Integer(), nullable=False, server_default='-1'),
            sa.Column('time_left', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('tie_breaker_id', sa.Integer(), nullable=True),
            sa.Column('tie_candidates', sa.Text(), nullable=True),
            sa.Column('winner', sa.String(length=16), nullable=True),
            sa.Column('round_number', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('category_options', sa.Text(), nullable=True),
            sa.Column('word_options', sa.Text(), nullable=True),
            sa.Column('window_seq', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('window_open', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_game_game_code', 'game', ['game_code'], unique=True)

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('card', sa.String(length=128), nullable=True),
            sa.Column('player_order', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint('game_id', 'player_order', name='uq_player_game_order'),
        )
        op.create_index('ix_player_game_id', 'player', ['game_id'])

    if 'vote' not in existing_tables:
        op.create_table(
            'vote',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('voter_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
            sa.Column('target_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
            sa.UniqueConstraint('game_id', 'voter_id', name='uq_vote_game_voter'),
        )
        op.create_index('ix_vote_game_id', 'vote', ['game_id'])

    if 'round_stat' not in existing_tables:
        op.create_table(
            'round_stat',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('round_number', sa.Integer(), nullable=False),
            sa.Column('liar_player_id', sa.Integer(), nullable=True),
            sa.Column('liar_player_name', sa.String(length=64), nullable=False),
            sa.Column('eliminated_player_id', sa.Integer(), nullable=True),
            sa.Column('eliminated_player_name', sa.String(length=64), nullable=False),
            sa.Column('liar_won', sa.Boolean(), nullable=False),
            sa.Column('word', sa.String(length=128), nullable=False),
            sa.Column('category', sa.String(length=128), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_round_stat_game_id', 'round_stat', ['game_id'])


def downgrade():
    op.drop_index('ix_round_stat_game_id', table_name='round_stat')
    op.drop_table('round_stat')
    op.drop_index('ix_vote_game_id', table_name='vote')
    op.drop_table('vote')
    op.drop_index('ix_player_game_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_game_game_code', table_name='game')
    op.drop_table('game')
