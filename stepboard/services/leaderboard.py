from typing import Iterable, List

from stepboard.models import LeaderboardEntry, UserCredential


def build_leaderboard(users: Iterable[UserCredential], limit: int = 50) -> List[LeaderboardEntry]:
    ranked = sorted(users, key=lambda user: user.steps_today, reverse=True)
    return [
        LeaderboardEntry(name=user.display_name or "Unknown", steps=user.steps_today)
        for user in ranked[:limit]
    ]
