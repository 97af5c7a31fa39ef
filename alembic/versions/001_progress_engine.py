"""Progress engine baseline.

Creates the XP, points, streak, monthly raffle, micro-reward, badge,
mission, challenge, team, referral, farmer score and rewards shop tables.

Revision ID: 001_progress_engine
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_engine"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

TABLES = (
    "user_redemptions",
    "reward_items",
    "farmer_scores",
    "referral_share_badges",
    "referral_shares",
    "referral_milestone_rewards",
    "referral_milestones",
    "referrals",
    "referral_codes",
    "team_achievements",
    "team_stats",
    "team_members",
    "teams",
    "challenge_day_marks",
    "challenge_progress",
    "challenge_templates",
    "user_perks",
    "mission_step_progress",
    "user_missions",
    "missions",
    "user_badges",
    "badge_progress",
    "daily_action_counts",
    "user_micro_actions",
    "micro_action_rewards",
    "raffle_entries",
    "monthly_raffles",
    "raffle_prizes",
    "streak_milestone_claims",
    "streak_milestones",
    "streak_activity_logs",
    "user_streaks",
    "points_transactions",
    "user_points",
    "xp_ledger",
    "user_profiles",
)


def upgrade() -> None:
    # --- Profile / XP ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_profiles (
            user_id VARCHAR(64) PRIMARY KEY,
            total_xp INTEGER NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            level_title VARCHAR(64) NOT NULL DEFAULT 'Seedling',
            articles_completed INTEGER NOT NULL DEFAULT 0,
            videos_completed INTEGER NOT NULL DEFAULT 0,
            photo_uploads INTEGER NOT NULL DEFAULT 0,
            missions_completed INTEGER NOT NULL DEFAULT 0,
            raffle_entries INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL CONSTRAINT ck_xp_ledger_amount_positive CHECK (amount > 0),
            source VARCHAR(50) NOT NULL,
            source_id VARCHAR(128),
            description TEXT,
            metadata JSONB DEFAULT '{}',
            idempotency_key VARCHAR(200) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_xp_ledger_user_created
        ON xp_ledger(user_id, created_at)
    """)

    # --- Points ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_points (
            user_id VARCHAR(64) PRIMARY KEY,
            total_points INTEGER NOT NULL DEFAULT 0
                CONSTRAINT ck_user_points_non_negative CHECK (total_points >= 0),
            lifetime_points INTEGER NOT NULL DEFAULT 0
                CONSTRAINT ck_user_points_lifetime_non_negative CHECK (lifetime_points >= 0),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL,
            transaction_type VARCHAR(10) NOT NULL
                CONSTRAINT ck_points_transactions_type CHECK (transaction_type IN ('earn', 'redeem')),
            source VARCHAR(50) NOT NULL,
            reference_id VARCHAR(128),
            description TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_points_transactions_user_created
        ON points_transactions(user_id, created_at)
    """)

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            user_id VARCHAR(64) PRIMARY KEY,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            run_started_on DATE,
            freezes_available INTEGER NOT NULL DEFAULT 0,
            last_saved_on DATE,
            saves_used INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_activity_logs (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            activity_date DATE NOT NULL,
            activity_type VARCHAR(50) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_streak_activity_user_date_type UNIQUE (user_id, activity_date, activity_type)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_milestones (
            days INTEGER PRIMARY KEY,
            name VARCHAR(64) NOT NULL,
            reward_type VARCHAR(20) NOT NULL,
            reward_value INTEGER NOT NULL DEFAULT 0,
            bonus_xp INTEGER NOT NULL DEFAULT 0,
            grants_freeze BOOLEAN NOT NULL DEFAULT false,
            voice_tip_key VARCHAR(64)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_milestone_claims (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            days INTEGER NOT NULL,
            run_started_on DATE NOT NULL,
            claimed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_streak_claim_user_days_run UNIQUE (user_id, days, run_started_on)
        )
    """)
    # --- Monthly raffle ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS raffle_prizes (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(100) NOT NULL UNIQUE,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            value_usd DOUBLE PRECISION,
            sponsor VARCHAR(255),
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS monthly_raffles (
            id BIGSERIAL PRIMARY KEY,
            year INTEGER NOT NULL,
            month INTEGER NOT NULL,
            prize_id BIGINT REFERENCES raffle_prizes(id) ON DELETE SET NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'active',
            total_entries INTEGER NOT NULL DEFAULT 0,
            draw_date DATE NOT NULL,
            winner_id VARCHAR(64),
            winner_entries INTEGER,
            total_participants INTEGER,
            drawn_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_monthly_raffles_year_month UNIQUE (year, month),
            CONSTRAINT ck_monthly_raffles_month CHECK (month BETWEEN 1 AND 12),
            CONSTRAINT ck_monthly_raffles_status CHECK (status IN ('active', 'completed'))
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS raffle_entries (
            id BIGSERIAL PRIMARY KEY,
            raffle_id BIGINT NOT NULL REFERENCES monthly_raffles(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            entry_count INTEGER NOT NULL DEFAULT 1,
            source VARCHAR(50) NOT NULL,
            source_id VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_raffle_entries_source UNIQUE (raffle_id, user_id, source, source_id),
            CONSTRAINT ck_raffle_entries_count_positive CHECK (entry_count > 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_raffle_entries_raffle_user
        ON raffle_entries(raffle_id, user_id)
    """)

    # --- Micro-rewards / badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS micro_action_rewards (
            action_type VARCHAR(50) PRIMARY KEY,
            action_name VARCHAR(100) NOT NULL,
            points_reward INTEGER NOT NULL DEFAULT 1,
            xp_reward INTEGER NOT NULL DEFAULT 1,
            cooldown_minutes INTEGER NOT NULL DEFAULT 0,
            daily_limit INTEGER NOT NULL DEFAULT 5,
            feedback_message TEXT,
            badge_type VARCHAR(50),
            badge_target INTEGER NOT NULL DEFAULT 10,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_micro_actions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            action_type VARCHAR(50) NOT NULL,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            context_data JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_micro_actions_user_type_created
        ON user_micro_actions(user_id, action_type, created_at)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_action_counts (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            action_type VARCHAR(50) NOT NULL,
            action_date DATE NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_daily_action_counts UNIQUE (user_id, action_type, action_date)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge_type VARCHAR(50) NOT NULL,
            current_progress INTEGER NOT NULL DEFAULT 0,
            target_progress INTEGER NOT NULL,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            CONSTRAINT uq_badge_progress_user_badge UNIQUE (user_id, badge_type)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge_slug VARCHAR(100) NOT NULL,
            source VARCHAR(50) NOT NULL,
            metadata JSONB DEFAULT '{}',
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_badges_user_slug UNIQUE (user_id, badge_slug)
        )
    """)

    # --- Missions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS missions (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(100) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            crop_type VARCHAR(100),
            season VARCHAR(50),
            steps JSONB NOT NULL DEFAULT '[]',
            xp_reward INTEGER NOT NULL DEFAULT 50,
            points_reward INTEGER NOT NULL DEFAULT 30,
            duration_days INTEGER NOT NULL DEFAULT 90,
            difficulty VARCHAR(20) NOT NULL DEFAULT 'medium',
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_missions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            mission_id BIGINT NOT NULL REFERENCES missions(id) ON DELETE CASCADE,
            field_key VARCHAR(64) NOT NULL DEFAULT '',
            status VARCHAR(20) NOT NULL DEFAULT 'active'
                CONSTRAINT ck_user_missions_status CHECK (status IN ('active', 'completed', 'failed', 'abandoned')),
            current_step INTEGER NOT NULL DEFAULT 0,
            completed_steps INTEGER NOT NULL DEFAULT 0,
            total_steps INTEGER NOT NULL,
            progress_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            target_date TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            points_earned INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_missions_user_id
        ON user_missions(user_id)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_user_missions_active
        ON user_missions(user_id, mission_id, field_key)
        WHERE status = 'active'
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS mission_step_progress (
            id BIGSERIAL PRIMARY KEY,
            user_mission_id BIGINT NOT NULL REFERENCES user_missions(id) ON DELETE CASCADE,
            step_index INTEGER NOT NULL,
            step_name VARCHAR(255) NOT NULL,
            step_description TEXT,
            status VARCHAR(20) NOT NULL DEFAULT 'pending'
                CONSTRAINT ck_mission_step_progress_status
                CHECK (status IN ('pending', 'in_progress', 'completed', 'skipped')),
            due_date TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            evidence_url TEXT,
            notes TEXT,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_mission_step_progress UNIQUE (user_mission_id, step_index)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_perks (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            perk VARCHAR(50) NOT NULL,
            source VARCHAR(100) NOT NULL,
            granted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_perks_user_perk
        ON user_perks(user_id, perk)
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_templates (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(100) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            scope VARCHAR(20) NOT NULL DEFAULT 'individual'
                CONSTRAINT ck_challenge_templates_scope CHECK (scope IN ('individual', 'team')),
            target_action VARCHAR(100) NOT NULL,
            target_count INTEGER NOT NULL DEFAULT 1
                CONSTRAINT ck_challenge_templates_target CHECK (target_count > 0),
            counts_distinct_days BOOLEAN NOT NULL DEFAULT false,
            xp_reward INTEGER NOT NULL DEFAULT 20,
            points_reward INTEGER NOT NULL DEFAULT 10,
            badge_name VARCHAR(100),
            start_date DATE NOT NULL,
            end_date DATE,
            is_recurring BOOLEAN NOT NULL DEFAULT false,
            recurrence VARCHAR(20),
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_challenge_templates_lookup
        ON challenge_templates(scope, target_action, is_active)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_progress (
            id BIGSERIAL PRIMARY KEY,
            subject_type VARCHAR(20) NOT NULL,
            subject_id VARCHAR(64) NOT NULL,
            template_id BIGINT NOT NULL REFERENCES challenge_templates(id) ON DELETE CASCADE,
            window_key VARCHAR(20) NOT NULL,
            current_progress INTEGER NOT NULL DEFAULT 0,
            target_progress INTEGER NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'active'
                CONSTRAINT ck_challenge_progress_status CHECK (status IN ('active', 'completed', 'expired')),
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT ck_challenge_progress_clamped CHECK (current_progress <= target_progress),
            CONSTRAINT uq_challenge_progress_subject_window
                UNIQUE (subject_type, subject_id, template_id, window_key)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_day_marks (
            id BIGSERIAL PRIMARY KEY,
            progress_id BIGINT NOT NULL REFERENCES challenge_progress(id) ON DELETE CASCADE,
            activity_date DATE NOT NULL,
            CONSTRAINT uq_challenge_day_marks UNIQUE (progress_id, activity_date)
        )
    """)

    # --- Teams ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS teams (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            description TEXT,
            team_type VARCHAR(20) NOT NULL DEFAULT 'other',
            leader_id VARCHAR(64) NOT NULL,
            invite_code VARCHAR(12) UNIQUE NOT NULL,
            location VARCHAR(100),
            is_active BOOLEAN NOT NULL DEFAULT true,
            max_members INTEGER NOT NULL DEFAULT 50,
            member_count INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS team_members (
            id BIGSERIAL PRIMARY KEY,
            team_id BIGINT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            role VARCHAR(10) NOT NULL DEFAULT 'member'
                CONSTRAINT ck_team_members_role CHECK (role IN ('leader', 'member')),
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_team_members_team_user UNIQUE (team_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_team_members_user_id
        ON team_members(user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS team_stats (
            team_id BIGINT PRIMARY KEY REFERENCES teams(id) ON DELETE CASCADE,
            total_xp INTEGER NOT NULL DEFAULT 0,
            challenges_completed INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS team_achievements (
            id BIGSERIAL PRIMARY KEY,
            team_id BIGINT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            achievement_name VARCHAR(100) NOT NULL,
            description TEXT,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_team_achievements_team_name UNIQUE (team_id, achievement_name)
        )
    """)

    # --- Referrals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_codes (
            user_id VARCHAR(64) PRIMARY KEY,
            code VARCHAR(12) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id BIGSERIAL PRIMARY KEY,
            referrer_id VARCHAR(64) NOT NULL,
            referred_id VARCHAR(64) UNIQUE NOT NULL,
            referral_code VARCHAR(12) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending'
                CONSTRAINT ck_referrals_status CHECK (status IN ('pending', 'activated', 'rewarded')),
            activation_action VARCHAR(50),
            referrer_xp_awarded INTEGER NOT NULL DEFAULT 0,
            referrer_points_awarded INTEGER NOT NULL DEFAULT 0,
            referred_xp_awarded INTEGER NOT NULL DEFAULT 0,
            referred_points_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            activated_at TIMESTAMPTZ,
            CONSTRAINT ck_referrals_not_self CHECK (referrer_id <> referred_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referrals_referrer_id
        ON referrals(referrer_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_milestones (
            user_id VARCHAR(64) PRIMARY KEY,
            total_referrals INTEGER NOT NULL DEFAULT 0,
            activated_referrals INTEGER NOT NULL DEFAULT 0,
            current_tier VARCHAR(20) NOT NULL DEFAULT 'starter',
            milestone_3_claimed BOOLEAN NOT NULL DEFAULT false,
            milestone_10_claimed BOOLEAN NOT NULL DEFAULT false,
            milestone_25_claimed BOOLEAN NOT NULL DEFAULT false,
            milestone_50_claimed BOOLEAN NOT NULL DEFAULT false,
            milestone_100_claimed BOOLEAN NOT NULL DEFAULT false,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_milestone_rewards (
            threshold INTEGER PRIMARY KEY,
            points_reward INTEGER NOT NULL,
            xp_reward INTEGER NOT NULL DEFAULT 0,
            tier VARCHAR(20)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_shares (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            channel VARCHAR(30) NOT NULL,
            shared_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referral_shares_user_id
        ON referral_shares(user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_share_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge VARCHAR(20) NOT NULL,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referral_share_badges_user_badge UNIQUE (user_id, badge)
        )
    """)

    # --- Farmer score ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS farmer_scores (
            user_id VARCHAR(64) PRIMARY KEY,
            learning_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            mission_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            engagement_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            reliability_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            total_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            tier VARCHAR(20) NOT NULL DEFAULT 'bronze',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_farmer_scores_total CHECK (total_score >= 0 AND total_score <= 100)
        )
    """)

    # --- Rewards shop ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_items (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(100) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            category VARCHAR(20) NOT NULL,
            points_cost INTEGER NOT NULL CONSTRAINT ck_reward_items_cost_positive CHECK (points_cost > 0),
            stock_quantity INTEGER NOT NULL DEFAULT -1
                CONSTRAINT ck_reward_items_stock CHECK (stock_quantity >= -1),
            partner_name VARCHAR(255),
            is_active BOOLEAN NOT NULL DEFAULT true,
            is_featured BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_redemptions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            item_id BIGINT NOT NULL REFERENCES reward_items(id),
            quantity INTEGER NOT NULL DEFAULT 1,
            points_spent INTEGER NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            redemption_code VARCHAR(20) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_redemptions_user_id
        ON user_redemptions(user_id)
    """)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
