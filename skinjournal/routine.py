from datetime import datetime, timezone
from typing import List, Optional

# ==================== ROUTINE STREAKS ====================

STREAK_BONUS_DAYS = 7
STREAK_BONUS_POINTS = 3
MILESTONE_DAYS = 50

ACHIEVEMENTS = {
    'first_routine': {
        'title': 'First Routine',
        'description': 'Completed your skincare routine for the first time',
        'icon': 'star',
    },
    'week_streak': {
        'title': '7-Day Streak',
        'description': 'Completed your routine 7 days in a row',
        'icon': 'flame',
    },
    'month_streak': {
        'title': '30-Day Streak',
        'description': 'Completed your routine 30 days in a row',
        'icon': 'trophy',
    },
    'milestone': {
        'title': 'Consistency Milestone',
        'description': 'Another 50 routine days completed',
        'icon': 'award',
    },
}


def bonus_points(streak: int) -> int:
    """+3 points for every full 7-day streak"""
    return (max(streak, 0) // STREAK_BONUS_DAYS) * STREAK_BONUS_POINTS


def _as_date(value) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    return None


def earned_achievements(streak: int, total_days: int) -> List[str]:
    """Achievement types unlocked by reaching this streak / total"""
    earned = []
    if total_days == 1:
        earned.append('first_routine')
    if streak == 7:
        earned.append('week_streak')
    if streak == 30:
        earned.append('month_streak')
    if total_days > 0 and total_days % MILESTONE_DAYS == 0:
        earned.append('milestone')
    return earned


def advance_streak(progress: Optional[dict], today: datetime) -> dict:
    """
    Mark one routine day as completed.

    Same day twice leaves everything unchanged, the next calendar day
    extends the streak, and any gap starts a new streak at 1.
    """
    progress = progress or {}
    today = _as_date(today)

    current_streak = progress.get('streak', 0) or 0
    longest_streak = progress.get('longest_streak', 0) or 0
    total_days = progress.get('total_days_completed', 0) or 0
    last_date = _as_date(progress.get('last_completed_date'))

    if last_date is not None:
        days_diff = (today - last_date).days
        if days_diff == 0:
            return {
                'streak': current_streak,
                'longest_streak': max(longest_streak, current_streak),
                'total_days_completed': total_days,
                'last_completed_date': last_date.isoformat(),
                'already_completed': True,
                'bonus_earned': 0,
                'total_bonus': bonus_points(current_streak),
                'achievements': [],
            }
        new_streak = current_streak + 1 if days_diff == 1 else 1
    else:
        new_streak = 1

    total_days += 1
    bonus_earned = max(bonus_points(new_streak) - bonus_points(current_streak), 0)

    return {
        'streak': new_streak,
        'longest_streak': max(longest_streak, new_streak),
        'total_days_completed': total_days,
        'last_completed_date': today.isoformat(),
        'already_completed': False,
        'bonus_earned': bonus_earned,
        'total_bonus': bonus_points(new_streak),
        'achievements': earned_achievements(new_streak, total_days),
    }


def streak_message(result: dict) -> str:
    if result.get('already_completed'):
        return 'Already completed today!'
    message = f"{result['streak']} day streak!"
    if result.get('bonus_earned', 0) > 0:
        message = f"🎉 {result['streak']} day streak! +{result['bonus_earned']} bonus points earned!"
    return message
