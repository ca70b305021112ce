"""Initial schema: users, profiles, limits, likes, matches, messages, credits, safety

Revision ID: 20251019_001
Revises:
Create Date: 2025-10-19 10:00:00

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20251019_001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create users table
    op.create_table('users',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('gender', sa.String(length=16), nullable=False),
    sa.Column('interested_in', sa.String(length=16), nullable=False),
    sa.Column('date_of_birth', sa.Date(), nullable=False),
    sa.Column('city', sa.String(length=100), nullable=False),
    sa.Column('latitude', sa.Float(), nullable=True),
    sa.Column('longitude', sa.Float(), nullable=True),
    sa.Column('distance_radius', sa.Integer(), nullable=False, server_default='50'),
    sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('is_premium', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('premium_expires_at', sa.DateTime(), nullable=True),
    sa.Column('is_banned', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('cooldown_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('cooldown_until', sa.DateTime(), nullable=True),
    sa.Column('boost_expires_at', sa.DateTime(), nullable=True),
    sa.Column('push_token', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('credit_balance >= 0', name='chk_users_credit_non_negative'),
    sa.CheckConstraint("interested_in IN ('male','female','both')", name='chk_users_interested_in'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_city'), 'users', ['city'], unique=False)

    # Create user_privacy_settings table
    op.create_table('user_privacy_settings',
    sa.Column('user_id', sa.BigInteger(), nullable=False),
    sa.Column('hide_distance', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('hide_city', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('incognito_mode', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('show_online_status', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('user_id')
    )

    # Create user_profiles table
    op.create_table('user_profiles',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.BigInteger(), nullable=False),
    sa.Column('height', sa.Integer(), nullable=True),
    sa.Column('interests', sa.JSON(), nullable=False),
    sa.Column('bio', sa.Text(), nullable=True),
    sa.Column('prompt1', sa.Text(), nullable=True),
    sa.Column('prompt2', sa.Text(), nullable=True),
    sa.Column('prompt3', sa.Text(), nullable=True),
    sa.Column('smoker', sa.Boolean(), nullable=True),
    sa.Column('drinker', sa.String(length=32), nullable=True),
    sa.Column('relationship_goal', sa.String(length=32), nullable=True),
    sa.Column('quiz_answers', sa.JSON(), nullable=False),
    sa.Column('personality_traits', sa.JSON(), nullable=False),
    sa.Column('personality_summary', sa.Text(), nullable=True),
    sa.Column('top_traits', sa.JSON(), nullable=False),
    sa.Column('compatibility_tips', sa.Text(), nullable=True),
    sa.Column('self_summary', sa.Text(), nullable=True),
    sa.Column('ideal_partner_prompt', sa.Text(), nullable=True),
    sa.Column('connection_preferences', sa.Text(), nullable=True),
    sa.Column('dealbreakers', sa.Text(), nullable=True),
    sa.Column('growth_journey', sa.Text(), nullable=True),
    sa.Column('persona_embedding', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id')
    )
    op.create_index(op.f('ix_user_profiles_user_id'), 'user_profiles', ['user_id'], unique=False)

    # Create user_activity_limits table
    op.create_table('user_activity_limits',
    sa.Column('user_id', sa.BigInteger(), nullable=False),
    sa.Column('on_grid_likes_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('off_grid_likes_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('messages_started_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('last_reset_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('user_id')
    )

    # Create likes table
    op.create_table('likes',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('liker_id', sa.BigInteger(), nullable=False),
    sa.Column('liked_id', sa.BigInteger(), nullable=False),
    sa.Column('is_on_grid', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('is_superlike', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('is_compliment', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('compliment_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('liker_id <> liked_id', name='chk_like_no_self'),
    sa.ForeignKeyConstraint(['liked_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['liker_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('liker_id', 'liked_id', name='uq_likes_pair')
    )
    op.create_index('idx_likes_liker', 'likes', ['liker_id'], unique=False)
    op.create_index(op.f('ix_likes_liked_id'), 'likes', ['liked_id'], unique=False)

    # Create matches table; (user1_id, user2_id) is the ordered pair (min, max)
    op.create_table('matches',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('user1_id', sa.BigInteger(), nullable=False),
    sa.Column('user2_id', sa.BigInteger(), nullable=False),
    sa.Column('matched_at', sa.DateTime(), nullable=False),
    sa.Column('last_message_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('user1_id < user2_id', name='chk_match_ordered_pair'),
    sa.ForeignKeyConstraint(['user1_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user2_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user1_id', 'user2_id', name='uq_matches_pair')
    )
    op.create_index(op.f('ix_matches_user1_id'), 'matches', ['user1_id'], unique=False)
    op.create_index(op.f('ix_matches_user2_id'), 'matches', ['user2_id'], unique=False)

    # Create messages table
    op.create_table('messages',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('match_id', sa.BigInteger(), nullable=False),
    sa.Column('sender_id', sa.BigInteger(), nullable=False),
    sa.Column('recipient_id', sa.BigInteger(), nullable=False),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('message_type', sa.String(length=16), nullable=False, server_default='text'),
    sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['match_id'], ['matches.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['recipient_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_messages_match_created', 'messages', ['match_id', 'created_at'], unique=False)
    op.create_index('idx_messages_unread', 'messages', ['recipient_id', 'is_read'], unique=False)

    # Create credit_transactions table
    op.create_table('credit_transactions',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.BigInteger(), nullable=False),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('direction', sa.String(length=8), nullable=False),
    sa.Column('reason', sa.String(length=64), nullable=False),
    sa.Column('metadata', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('amount > 0', name='chk_credit_tx_amount_positive'),
    sa.CheckConstraint("direction IN ('credit','debit')", name='chk_credit_tx_direction'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_credit_tx_user_created', 'credit_transactions', ['user_id', 'created_at'], unique=False)

    # Create search_history table
    op.create_table('search_history',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.BigInteger(), nullable=False),
    sa.Column('search_query', sa.Text(), nullable=False, server_default=''),
    sa.Column('filters', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_search_history_user_created', 'search_history', ['user_id', 'created_at'], unique=False)

    # Create blocks table
    op.create_table('blocks',
    sa.Column('blocker_id', sa.BigInteger(), nullable=False),
    sa.Column('blocked_id', sa.BigInteger(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('blocker_id <> blocked_id', name='chk_block_no_self'),
    sa.ForeignKeyConstraint(['blocked_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['blocker_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('blocker_id', 'blocked_id')
    )
    op.create_index('idx_blocks_blocked', 'blocks', ['blocked_id'], unique=False)

    # Create reports table
    op.create_table('reports',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('reporter_id', sa.BigInteger(), nullable=False),
    sa.Column('reported_id', sa.BigInteger(), nullable=False),
    sa.Column('reason', sa.String(length=24), nullable=False),
    sa.Column('comment', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False, server_default='new'),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint("reason IN ('spam','abuse','fake','inappropriate','other')", name='chk_report_reason'),
    sa.CheckConstraint("status IN ('new','in_review','resolved')", name='chk_report_status'),
    sa.ForeignKeyConstraint(['reported_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['reporter_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reports_reporter_id'), 'reports', ['reporter_id'], unique=False)
    op.create_index(op.f('ix_reports_reported_id'), 'reports', ['reported_id'], unique=False)
    op.create_index(
        'idx_reports_target_open', 'reports', ['reported_id', 'status'], unique=False,
        postgresql_where=sa.text("status IN ('new','in_review')")
    )

    # Create moderation_actions table
    op.create_table('moderation_actions',
    sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column('target_user', sa.BigInteger(), nullable=False),
    sa.Column('action', sa.String(length=24), nullable=False),
    sa.Column('actor', sa.String(length=64), nullable=False),
    sa.Column('reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['target_user'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_moderation_actions_target_user'), 'moderation_actions', ['target_user'], unique=False)


def downgrade() -> None:
    op.drop_table('moderation_actions')
    op.drop_table('reports')
    op.drop_table('blocks')
    op.drop_table('search_history')
    op.drop_table('credit_transactions')
    op.drop_table('messages')
    op.drop_table('matches')
    op.drop_table('likes')
    op.drop_table('user_activity_limits')
    op.drop_table('user_profiles')
    op.drop_table('user_privacy_settings')
    op.drop_table('users')
