"""
Reward eligibility, share text and badge/frame metadata.

Eligibility here is advisory: whatever signs an on-chain claim has to re-check
it server-side before issuing anything.
"""

from typing import Optional, Sequence

from . import game

STREAK_TIERS = (30, 14, 7)

FRAME_PERFECT = 1
FRAME_QUICK = 2
FRAME_ON_FIRE = 3

FRAMES = {
    FRAME_PERFECT: {
        "name": "Perfect Frame",
        "description": "Awarded for solving a Grid of the Day puzzle in just 1 attempt.",
        "image": "frames/perfect.png",
        "rarity": "Legendary",
    },
    FRAME_QUICK: {
        "name": "Quick Solver Frame",
        "description": "Awarded for solving a Grid of the Day puzzle in 2 attempts or less.",
        "image": "frames/quick.png",
        "rarity": "Epic",
    },
    FRAME_ON_FIRE: {
        "name": "On Fire Frame",
        "description": "Awarded for keeping a streak of 3 or more days.",
        "image": "frames/fire.png",
        "rarity": "Rare",
    },
}

# badge token ids: daily badges use the day id, streak badges live above these bases
STREAK_BADGE_BASES = {7: 1000000, 14: 1000007, 30: 1000014}
STREAK_BADGE_TITLES = {7: ("Achiever", "7-Day Streak Achiever"), 14: ("Master", "14-Day Streak Master"), 30: ("Champion", "30-Day Streak Champion")}


def streak_tier(current_streak: int) -> Optional[int]:
    for tier in STREAK_TIERS:
        if current_streak >= tier:
            return tier
    return None


def claimable(solved: bool, attempts_used: int, current_streak: int) -> dict:
    rewards: dict = {}
    if not solved:
        return rewards
    rewards["dailyBadge"] = True
    tier = streak_tier(current_streak)
    if tier:
        rewards["weeklyStreakBadge"] = tier
    frames = []
    if attempts_used == 1:
        frames.append(FRAME_PERFECT)
    if attempts_used <= 2:
        frames.append(FRAME_QUICK)
    if current_streak >= 3:
        frames.append(FRAME_ON_FIRE)
    if frames:
        rewards["frames"] = frames
    return rewards


def share_text(feedback_history: Sequence[Sequence[str]], day_id: int, attempts_used: int, solved: bool, mode: str, streak: int) -> str:
    header = f"GridOfDay #{day_id} {attempts_used if solved else 'X'}/{game.MAX_ATTEMPTS}{'*' if mode == game.HARD else ''}"
    lines = [header]
    lines.extend("".join(game.FEEDBACK_EMOJI[m] for m in row) for row in feedback_history)
    if streak > 0:
        lines.append(f"\U0001F525 Streak {streak}")
    return "\n".join(lines)


def share_link(app_url: str, day_id: int) -> str:
    return f"{app_url}?d={day_id}"


def badge_metadata(token_id: int, app_url: str) -> dict:
    """ERC-1155 style metadata for a daily or streak badge token id."""
    for days in sorted(STREAK_BADGE_BASES, reverse=True):
        if token_id >= STREAK_BADGE_BASES[days]:
            tier_name, title = STREAK_BADGE_TITLES[days]
            return {
                "name": title,
                "description": f"Awarded for completing Grid of the Day puzzles for {days} consecutive days.",
                "image": f"{app_url}/badges/streak-{days}.png",
                "attributes": [
                    {"trait_type": "Type", "value": "Streak Badge"},
                    {"trait_type": "Streak Days", "value": days},
                    {"trait_type": "Tier", "value": tier_name},
                    {"trait_type": "Transferable", "value": "No"},
                ],
            }
    return {
        "name": f"Grid of the Day #{token_id}",
        "description": f"Completion badge for Grid of the Day puzzle #{token_id}.",
        "image": f"{app_url}/badges/daily.png",
        "attributes": [
            {"trait_type": "Type", "value": "Daily Badge"},
            {"trait_type": "Day", "value": token_id},
            {"trait_type": "Transferable", "value": "No"},
        ],
    }


def frame_metadata(frame_id: int, app_url: str) -> dict:
    frame = FRAMES.get(frame_id)
    if frame is None:
        return {
            "name": f"Frame #{frame_id}",
            "description": "A cosmetic frame for your Grid of the Day profile.",
            "image": f"{app_url}/frames/default.png",
            "attributes": [
                {"trait_type": "Type", "value": "Frame"},
                {"trait_type": "ID", "value": frame_id},
                {"trait_type": "Transferable", "value": "Yes"},
            ],
        }
    return {
        "name": frame["name"],
        "description": frame["description"],
        "image": f"{app_url}/{frame['image']}",
        "attributes": [
            {"trait_type": "Type", "value": "Frame"},
            {"trait_type": "Rarity", "value": frame["rarity"]},
            {"trait_type": "ID", "value": frame_id},
            {"trait_type": "Transferable", "value": "Yes"},
        ],
    }
