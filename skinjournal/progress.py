import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

# ==================== PROGRESS METRICS ====================
# The AI gateway only reports deltas ("+20%" better texture), never absolute
# levels, so every metric is drawn on a symmetric 0-100 scale around 50.

BASELINE_VALUE = 50
MIN_VALUE = 0
MAX_VALUE = 100

# Ordered catalog. Inverse metrics get better when the number goes down.
TRACKED_METRICS = [
    {'key': 'texture', 'label': 'Texture', 'inverse': False},
    {'key': 'hydration', 'label': 'Hydration', 'inverse': False},
    {'key': 'acne', 'label': 'Acne', 'inverse': True},
    {'key': 'redness', 'label': 'Redness', 'inverse': True},
    {'key': 'pores', 'label': 'Pores', 'inverse': True},
    {'key': 'brightness', 'label': 'Brightness', 'inverse': False},
    {'key': 'elasticity', 'label': 'Elasticity', 'inverse': False},
    {'key': 'overall', 'label': 'Overall', 'inverse': False},
]

ALWAYS_SHOWN_METRIC = 'overall'
FALLBACK_METRIC_LABEL = 'Overall Condition'

# Chart weights per improvement status (English and the legacy Indonesian labels)
IMPROVED_STATUSES = {'improved', 'better', 'membaik'}
STABLE_STATUSES = {'same', 'stable', 'stabil'}
CHART_IMPROVED_POINTS = 15
CHART_STABLE_POINTS = 5
CHART_MAX_POINTS = 10


class PhotoSnapshot(BaseModel):
    id: str
    image_url: str
    created_at: datetime
    analysis_result: Optional[Dict[str, Any]] = None
    comparison_summary: Optional[str] = None


class ProgressMetric(BaseModel):
    label: str
    before_value: float
    after_value: float
    improvement: float
    category: str  # positive / negative / neutral


def is_number(value: Any) -> bool:
    """Finite int or float. Ints too large for a float do not count."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> float:
    return max(MIN_VALUE, min(MAX_VALUE, value))


def _categorize(value: float) -> str:
    if value > 0:
        return 'positive'
    if value < 0:
        return 'negative'
    return 'neutral'


def _analysis_of(snapshot: Any) -> dict:
    """analysis_result of a stored document or PhotoSnapshot, {} when unusable"""
    if isinstance(snapshot, dict):
        analysis = snapshot.get('analysis_result')
    else:
        analysis = getattr(snapshot, 'analysis_result', None)
    return analysis if isinstance(analysis, dict) else {}


def _created_at_of(snapshot: Any) -> Optional[datetime]:
    if isinstance(snapshot, dict):
        created_at = snapshot.get('created_at')
    else:
        created_at = getattr(snapshot, 'created_at', None)
    if isinstance(created_at, str):
        try:
            created_at = datetime.fromisoformat(created_at.replace('Z', '+00:00'))
        except ValueError:
            return None
    if isinstance(created_at, datetime):
        if created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
        return created_at
    return None


def _issue_count(snapshot: Any) -> int:
    issues = _analysis_of(snapshot).get('issues')
    return len(issues) if isinstance(issues, list) else 0


def extract_metric_value(entry: Any) -> float:
    """
    Reduce one improvements entry to a plain number.

    The gateway sends either a bare number or an object with a numeric
    'percentage'. Everything else, including a missing entry, counts as 0.
    """
    if is_number(entry):
        return float(entry)
    if isinstance(entry, dict):
        percentage = entry.get('percentage')
        if is_number(percentage):
            return float(percentage)
    return 0.0


def _build_metric(label: str, improvement: float) -> ProgressMetric:
    return ProgressMetric(
        label=label,
        before_value=BASELINE_VALUE,
        after_value=_clamp(BASELINE_VALUE + improvement),
        improvement=improvement,
        category=_categorize(improvement),
    )


def issue_change_percentage(before: Any, after: Any) -> int:
    """Share of the 'before' issues that are gone in 'after', in whole percent."""
    issues_before = _issue_count(before)
    issues_after = _issue_count(after)
    if issues_before <= 0:
        return 0
    return _round_half_up((issues_before - issues_after) / issues_before * 100)


def compute_metrics(before: Any, after: Any) -> List[ProgressMetric]:
    """
    Turn two photo snapshots into display-ready improvement metrics.

    Metrics come from the 'improvements' mapping of the later snapshot, in
    catalog order. Zero entries are dropped except the overall row. When the
    later snapshot has no improvements at all, a single "Overall Condition"
    metric is derived from how many detected issues disappeared.
    """
    metrics = []
    improvements = _analysis_of(after).get('improvements')

    if isinstance(improvements, dict):
        for metric in TRACKED_METRICS:
            raw = extract_metric_value(improvements.get(metric['key']))
            if raw == 0 and metric['key'] != ALWAYS_SHOWN_METRIC:
                continue
            normalized = -raw if metric['inverse'] else raw
            metrics.append(_build_metric(metric['label'], normalized))

    if not metrics:
        metrics.append(_build_metric(FALLBACK_METRIC_LABEL, issue_change_percentage(before, after)))

    return metrics


# ==================== COMPARISON HELPERS ====================

def select_default_pair(snapshots: List[Any]) -> Optional[Tuple[Any, Any]]:
    """Earliest and latest snapshot by created_at, None with fewer than two"""
    if not snapshots or len(snapshots) < 2:
        return None
    ordered = sorted(snapshots, key=lambda s: _created_at_of(s) or datetime.min)
    return ordered[0], ordered[-1]


def summarize_comparison(before: Any, after: Any) -> dict:
    """Before/after summary shown above the metric list."""
    issues_before = _issue_count(before)
    issues_after = _issue_count(after)
    issue_improvement = issues_before - issues_after

    before_date = _created_at_of(before)
    after_date = _created_at_of(after)
    days_diff = (after_date - before_date).days if before_date and after_date else 0

    if issue_improvement > 0:
        status = 'improved'
    elif issue_improvement < 0:
        status = 'declined'
    else:
        status = 'stable'

    return {
        'days_diff': days_diff,
        'issues_before': issues_before,
        'issues_after': issues_after,
        'issue_improvement': issue_improvement,
        'percentage': issue_change_percentage(before, after),
        'status': status,
        'metrics': [m.model_dump() for m in compute_metrics(before, after)],
    }


# ==================== ANALYTICS ====================

def calculate_health_score(latest_analysis: Optional[dict], photo_count: int = 0) -> int:
    """
    Overall skin health score (0-100) for the dashboard.

    latest_analysis is the newest stored skin scan. Uses the score reported
    by the AI when it is a valid 0-100 number, otherwise estimates one from
    confidence, detected issues and how many progress photos the user has
    taken.
    """
    if not isinstance(latest_analysis, dict):
        return BASELINE_VALUE

    reported = latest_analysis.get('skin_health_score')
    if is_number(reported) and 0 <= reported <= 100:
        return _round_half_up(reported)

    confidence = latest_analysis.get('confidence_score')
    if not is_number(confidence) or confidence == 0:
        confidence = 0.75
    issues = latest_analysis.get('detected_issues', latest_analysis.get('issues'))
    issues_count = len(issues) if isinstance(issues, list) else 0

    base_score = 50 + confidence * 35
    issues_penalty = issues_count * 8
    progress_bonus = min(max(photo_count, 0) * 2, 15)

    score = min(max(base_score - issues_penalty + progress_bonus, 15), 100)
    return _round_half_up(score)


def build_progress_chart(snapshots: List[Any]) -> List[dict]:
    """
    Chart points for the most recent snapshots, oldest first.

    Each point scores 15 per improved aspect and 5 per stable one.
    """
    ordered = sorted(snapshots or [], key=lambda s: _created_at_of(s) or datetime.min)
    points = []
    for snapshot in ordered[-CHART_MAX_POINTS:]:
        improvements = _analysis_of(snapshot).get('improvements')
        improved = stable = 0
        if isinstance(improvements, dict):
            for entry in improvements.values():
                status = entry.get('status') if isinstance(entry, dict) else None
                if not isinstance(status, str):
                    continue
                status = status.strip().lower()
                if status in IMPROVED_STATUSES:
                    improved += 1
                elif status in STABLE_STATUSES:
                    stable += 1
        created_at = _created_at_of(snapshot)
        points.append({
            'date': created_at.date().isoformat() if created_at else None,
            'improvements': improved * CHART_IMPROVED_POINTS + stable * CHART_STABLE_POINTS,
        })
    return points
