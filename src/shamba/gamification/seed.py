"""Catalog seed data: reward tables, milestones, missions, challenges, shop items.

Tuning lives in these rows rather than in code; seeding upserts so a deploy
can adjust amounts without a migration.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.base import dialect_insert
from shamba.db.models import (
    ChallengeTemplate,
    MicroActionReward,
    Mission,
    ReferralMilestoneReward,
    RafflePrize,
    RewardItem,
    StreakMilestone,
)

logger = logging.getLogger(__name__)

CATALOG_EPOCH = date(2025, 1, 1)

# action_type, name, points, xp, cooldown minutes, daily limit, badge type, badge target
_MICRO_REWARDS = [
    ("price_check", "Check market price", 1, 1, 5, 10, "market_watcher", 10),
    ("price_compare", "Compare market prices", 2, 2, 10, 5, None, 10),
    ("weather_check", "Check the weather", 1, 1, 30, 5, "weather_guru", 7),
    ("weather_forecast", "View the forecast", 2, 2, 60, 3, None, 10),
    ("task_complete", "Complete a farm task", 3, 3, 0, 20, "task_master", 20),
    ("task_create", "Plan a farm task", 1, 1, 0, 10, None, 10),
    ("field_visit", "Log a field visit", 2, 2, 0, 10, "field_inspector", 15),
    ("article_read", "Read an article", 2, 3, 0, 10, "knowledge_seeker", 10),
    ("video_watch", "Watch a video", 3, 4, 0, 5, "video_learner", 5),
    ("quiz_attempt", "Attempt a quiz", 2, 2, 0, 5, None, 10),
    ("community_post", "Post in the community", 3, 3, 5, 5, "community_voice", 10),
    ("community_comment", "Comment on a post", 1, 1, 1, 15, None, 10),
    ("community_like", "Like a post", 1, 1, 0, 20, None, 10),
    ("photo_upload", "Upload a crop photo", 2, 2, 0, 10, "photo_journalist", 10),
    ("pest_report", "Report a pest sighting", 3, 3, 0, 5, None, 10),
    ("expense_logged", "Log an expense", 2, 2, 0, 10, None, 10),
    ("income_logged", "Log income", 2, 2, 0, 10, None, 10),
    ("inventory_update", "Update inventory", 2, 2, 0, 10, None, 10),
]

MICRO_REWARD_SEED_DATA: list[dict] = [
    {
        "action_type": action_type,
        "action_name": name,
        "points_reward": points,
        "xp_reward": xp,
        "cooldown_minutes": cooldown,
        "daily_limit": limit,
        "feedback_message": f"+{points} points",
        "badge_type": badge_type,
        "badge_target": badge_target,
        "is_active": True,
    }
    for action_type, name, points, xp, cooldown, limit, badge_type, badge_target in _MICRO_REWARDS
]

STREAK_MILESTONE_SEED_DATA: list[dict] = [
    {"days": 3, "name": "3-Day Sprout", "reward_type": "voice_tip", "reward_value": 0,
     "bonus_xp": 5, "grants_freeze": False, "voice_tip_key": "streak_3_tip"},
    {"days": 7, "name": "Week Warrior", "reward_type": "points", "reward_value": 10,
     "bonus_xp": 10, "grants_freeze": True, "voice_tip_key": None},
    {"days": 14, "name": "Fortnight Farmer", "reward_type": "points", "reward_value": 25,
     "bonus_xp": 15, "grants_freeze": False, "voice_tip_key": None},
    {"days": 21, "name": "Habit Builder", "reward_type": "points", "reward_value": 40,
     "bonus_xp": 20, "grants_freeze": False, "voice_tip_key": None},
    {"days": 30, "name": "Monthly Master", "reward_type": "badge", "reward_value": 0,
     "bonus_xp": 30, "grants_freeze": True, "voice_tip_key": None},
]

REFERRAL_MILESTONE_SEED_DATA: list[dict] = [
    {"threshold": 3, "points_reward": 50, "xp_reward": 10, "tier": None},
    {"threshold": 10, "points_reward": 150, "xp_reward": 25, "tier": "recruiter"},
    {"threshold": 25, "points_reward": 400, "xp_reward": 50, "tier": None},
    {"threshold": 50, "points_reward": 1000, "xp_reward": 100, "tier": "champion"},
    {"threshold": 100, "points_reward": 2500, "xp_reward": 250, "tier": "legend"},
]


def _step(name: str, description: str, day_offset: int, xp_reward: int) -> dict:
    return {
        "name": name,
        "description": description,
        "day_offset": day_offset,
        "xp_reward": xp_reward,
        "photo_required": True,
    }


MISSION_SEED_DATA: list[dict] = [
    {
        "slug": "maize-season-success",
        "name": "Maize Season Success",
        "description": "Complete all 6 steps of your maize growing plan, from soil preparation to harvest.",
        "crop_type": "maize",
        "season": "long_rains",
        "steps": [
            _step("Soil Preparation", "Test soil pH and nutrients. Plow and harrow the field.", 0, 10),
            _step("Planting", "Plant certified seed at 75cm x 25cm spacing, 5cm deep.", 7, 15),
            _step("First Weeding & Fertilizer", "Weed 2-3 weeks after planting and top dress.", 21, 10),
            _step("Pest & Disease Inspection", "Scout for fall armyworm, stem borers and streak virus.", 35, 15),
            _step("Second Fertilizer Application", "Apply the second dose at tasseling.", 50, 10),
            _step("Harvest Preparation", "Prepare drying and storage. Harvest at 20-25% moisture.", 90, 15),
        ],
        "xp_reward": 100,
        "points_reward": 50,
        "duration_days": 90,
        "difficulty": "medium",
    },
    {
        "slug": "bean-harvest-champion",
        "name": "Bean Harvest Champion",
        "description": "Master your bean crop from planting to harvest.",
        "crop_type": "beans",
        "season": "short_rains",
        "steps": [
            _step("Land Preparation", "Clear weeds and make furrows 45-60cm apart.", 0, 10),
            _step("Sowing Seeds", "Plant 2-3 seeds per hole, 5cm deep.", 5, 15),
            _step("First Weeding", "Weed carefully 2 weeks after emergence.", 20, 10),
            _step("Pest & Disease Check", "Scout for aphids, bean fly and rust.", 35, 15),
            _step("Flowering Care", "Keep soil moist during flowering.", 45, 10),
            _step("Harvest & Dry", "Harvest when 90% of pods turn yellow. Dry and store airtight.", 75, 15),
        ],
        "xp_reward": 80,
        "points_reward": 40,
        "duration_days": 75,
        "difficulty": "easy",
    },
]


def _challenge(
    slug: str,
    name: str,
    description: str,
    target_action: str,
    target_count: int,
    scope: str = "individual",
    weekly: bool = True,
    distinct_days: bool = False,
    badge_name: str | None = None,
) -> dict:
    xp, points = (100, 50) if scope == "team" else (20, 10)
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "scope": scope,
        "target_action": target_action,
        "target_count": target_count,
        "counts_distinct_days": distinct_days,
        "xp_reward": xp,
        "points_reward": points,
        "badge_name": badge_name,
        "start_date": CATALOG_EPOCH,
        "end_date": None,
        "is_recurring": weekly,
        "recurrence": "weekly" if weekly else None,
        "is_active": True,
    }


CHALLENGE_SEED_DATA: list[dict] = [
    _challenge("photo-patrol", "Photo Patrol", "Upload 3 photos of your crops or pests", "photo_upload", 3),
    _challenge("price-checker", "Price Checker", "Check market prices on 4 days this week",
               "price_check", 4, distinct_days=True),
    _challenge("community-voice", "Community Voice", "Share 2 farming tips or questions", "community_post", 2),
    _challenge("learning-sprint", "Learning Sprint", "Read 2 learning articles", "article_read", 2),
    _challenge("task-master", "Task Master", "Complete 5 farm tasks this week", "task_complete", 5),
    _challenge("field-scout", "Field Scout", "Log 3 field visits this week", "field_visit", 3),
    _challenge("season-finisher", "Season Finisher", "Complete a seasonal mission",
               "mission_complete", 1, weekly=False, badge_name="season_finisher"),
    _challenge("team-referral-champions", "Referral Champions", "Team goal: 50 active referrals",
               "referral_activated", 50, scope="team", weekly=False, badge_name="Referral Champions"),
    _challenge("team-learning-together", "Learning Together", "Team goal: 100 articles read",
               "article_read", 100, scope="team", weekly=False, badge_name="Learning Team"),
    _challenge("team-crop-plan-masters", "Crop Plan Masters", "Team goal: 100 missions completed",
               "mission_complete", 100, scope="team", weekly=False, badge_name="Mission Masters"),
    _challenge("team-photo-patrol", "Photo Patrol Team", "Team goal: 200 pest and crop photos",
               "photo_upload", 200, scope="team", weekly=False, badge_name="Photo Patrol"),
]

REWARD_ITEM_SEED_DATA: list[dict] = [
    {"slug": "maize-seeds-2kg", "name": "Maize Seeds (2kg)", "category": "seeds", "points_cost": 100,
     "stock_quantity": 50, "partner_name": "Kenya Seed Company", "is_featured": True,
     "description": "Certified maize seed for planting"},
    {"slug": "bean-seeds-1kg", "name": "Bean Seeds (1kg)", "category": "seeds", "points_cost": 75,
     "stock_quantity": 100, "partner_name": "Kenya Seed Company", "is_featured": False,
     "description": "Drought-resistant bean seed"},
    {"slug": "npk-voucher", "name": "NPK Fertilizer Voucher", "category": "fertilizer", "points_cost": 150,
     "stock_quantity": -1, "partner_name": "National Cereals Board", "is_featured": True,
     "description": "5kg NPK fertilizer at partner agro-dealers"},
    {"slug": "organic-compost-10kg", "name": "Organic Compost (10kg)", "category": "fertilizer",
     "points_cost": 120, "stock_quantity": 30, "partner_name": "Twiga Foods", "is_featured": False,
     "description": "Organic compost for soil improvement"},
    {"slug": "hand-sprayer", "name": "Hand Sprayer", "category": "tools", "points_cost": 300,
     "stock_quantity": 20, "partner_name": "Flamingo Horticulture", "is_featured": True,
     "description": "16L knapsack sprayer"},
    {"slug": "soil-testing-kit", "name": "Soil Testing Kit", "category": "tools", "points_cost": 200,
     "stock_quantity": 15, "partner_name": "Agricultural Technology", "is_featured": False,
     "description": "Basic soil pH and nutrient test kit"},
    {"slug": "airtime-100", "name": "Mobile Airtime (KES 100)", "category": "vouchers", "points_cost": 50,
     "stock_quantity": -1, "partner_name": "Safaricom", "is_featured": False,
     "description": "Airtime on any network"},
    {"slug": "agro-dealer-500", "name": "Agro-dealer Voucher (KES 500)", "category": "vouchers",
     "points_cost": 250, "stock_quantity": -1, "partner_name": None, "is_featured": True,
     "description": "Spend at any partner agro-dealer"},
    {"slug": "drip-irrigation-kit", "name": "Drip Irrigation Starter Kit", "category": "tools",
     "points_cost": 500, "stock_quantity": 10, "partner_name": "Amiran Kenya", "is_featured": True,
     "description": "Drip irrigation for small plots"},
    {"slug": "crop-insurance-voucher", "name": "Crop Insurance Voucher", "category": "services",
     "points_cost": 400, "stock_quantity": 25, "partner_name": "ACRE Africa", "is_featured": False,
     "description": "Discount on a crop insurance premium"},
]

RAFFLE_PRIZE_SEED_DATA: list[dict] = [
    {"slug": "solar-panel-kit", "name": "Solar Panel Kit", "value_usd": 150.0, "sponsor": "AgroAfrica",
     "description": "Solar panel, battery and LED lights for the farm and home", "is_active": True},
]


async def _upsert(db: AsyncSession, model: type, rows: list[dict], key: str) -> int:
    for row in rows:
        stmt = dialect_insert(db, model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={column: getattr(stmt.excluded, column) for column in row if column != key},
        )
        await db.execute(stmt)
    return len(rows)


async def seed_catalogs(db: AsyncSession) -> dict[str, int]:
    """Upsert every catalog. Returns rows seeded per catalog."""
    counts = {
        "micro_action_rewards": await _upsert(db, MicroActionReward, MICRO_REWARD_SEED_DATA, "action_type"),
        "streak_milestones": await _upsert(db, StreakMilestone, STREAK_MILESTONE_SEED_DATA, "days"),
        "referral_milestone_rewards": await _upsert(
            db, ReferralMilestoneReward, REFERRAL_MILESTONE_SEED_DATA, "threshold"
        ),
        "missions": await _upsert(db, Mission, MISSION_SEED_DATA, "slug"),
        "challenge_templates": await _upsert(db, ChallengeTemplate, CHALLENGE_SEED_DATA, "slug"),
        "reward_items": await _upsert(db, RewardItem, REWARD_ITEM_SEED_DATA, "slug"),
        "raffle_prizes": await _upsert(db, RafflePrize, RAFFLE_PRIZE_SEED_DATA, "slug"),
    }
    await db.flush()
    logger.info("Seeded catalogs: %s", counts)
    return counts
