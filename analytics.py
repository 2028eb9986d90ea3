"""Admin analytics computed from tournaments, registrations, matches and profiles."""
from datetime import date, timedelta

from models import (
    ACTIVE_PROFILE_WINDOW,
    Dispute,
    Match,
    Profile,
    Registration,
    Tournament,
    current_time,
    humanize,
    percent_of,
    round_half_up,
    to_local,
)

TIME_RANGES = {'7d': 7, '14d': 14, '30d': 30, '90d': 90, 'all': None}
DEFAULT_TIME_RANGE = '30d'
MONTHLY_BUCKETS = 12
ACTIVITY_DAYS = 14


def normalize_range(value: str | None) -> str:
    return value if value in TIME_RANGES else DEFAULT_TIME_RANGE


def growth(current, previous) -> int:
    """Month-over-month change in percent; 0 when there is no baseline."""
    if not previous:
        return 0
    return percent_of(current - previous, previous)


def _local_date(value) -> date | None:
    local = to_local(value)
    return local.date() if local else None


def _month_of(value):
    day = _local_date(value)
    return (day.year, day.month) if day else None


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def build_buckets(time_range: str, today: date) -> list[dict]:
    """Timeline buckets ending today: daily, or monthly for ``all``."""
    time_range = normalize_range(time_range)
    days = TIME_RANGES[time_range]
    buckets = []
    if days is None:
        for offset in range(MONTHLY_BUCKETS - 1, -1, -1):
            year, month = _shift_month(today.year, today.month, -offset)
            start = date(year, month, 1)
            next_year, next_month = _shift_month(year, month, 1)
            buckets.append({
                'period': f'{start:%b} {start:%y}',
                'start': start,
                'end': date(next_year, next_month, 1),
            })
        return buckets

    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        if days == 90:
            label = f'{day:%b} {day.day}'
        else:
            label = f'{day:%a}, {day:%b} {day.day}'
        buckets.append({'period': label, 'start': day, 'end': day + timedelta(days=1)})
    return buckets


def _in_bucket(value, bucket) -> bool:
    day = _local_date(value)
    return day is not None and bucket['start'] <= day < bucket['end']


def compute_analytics(time_range: str = DEFAULT_TIME_RANGE, now=None) -> dict:
    time_range = normalize_range(time_range)
    now = now or current_time()
    today = _local_date(now)
    days = TIME_RANGES[time_range]
    window_start = now - timedelta(days=days) if days else None

    def in_window(value):
        return value is not None and (window_start is None or value >= window_start)

    tournaments = Tournament.query.all()
    profiles = Profile.query.all()
    registrations = Registration.query.all()
    matches = Match.query.all()
    disputes = Dispute.query.all()

    window_tournaments = [t for t in tournaments if in_window(t.created_at)]
    window_matches = [m for m in matches if in_window(m.created_at)]
    window_registrations = [r for r in registrations if in_window(r.registered_at)]
    window_disputes = [d for d in disputes if in_window(d.created_at)]

    this_month = (today.year, today.month)
    last_month = _shift_month(today.year, today.month, -1)

    def revenue_in(month, pool=tournaments):
        return sum(t.prize_pool or 0 for t in pool if _month_of(t.created_at) == month)

    def signups_in(month):
        return sum(1 for p in profiles if _month_of(p.created_at) == month)

    monthly_revenue = revenue_in(this_month, window_tournaments)
    new_this_month = signups_in(this_month)
    active_since = now - ACTIVE_PROFILE_WINDOW

    completed_tournaments = sum(1 for t in window_tournaments if t.status == 'completed')
    completed_matches = sum(1 for m in window_matches if m.status == 'completed')

    buckets = build_buckets(time_range, today)
    timeline = []
    format_signups = []
    for bucket in buckets:
        bucket_tournaments = [t for t in window_tournaments if _in_bucket(t.created_at, bucket)]
        bucket_signups = sum(1 for r in window_registrations if _in_bucket(r.registered_at, bucket))
        timeline.append({
            'period': bucket['period'],
            'revenue': sum(t.prize_pool or 0 for t in bucket_tournaments),
            'tournaments': len(bucket_tournaments),
            'signups': bucket_signups,
        })

        created = sum(1 for t in tournaments if _in_bucket(t.created_at, bucket))
        joined = sum(1 for r in registrations if _in_bucket(r.registered_at, bucket))
        format_signups.append({
            'period': bucket['period'],
            'signups': round_half_up(joined / created * 100, 1) if created else 0,
        })

    formats: dict[str, dict] = {}
    window_ids = {t.id: t for t in window_tournaments}
    for tournament in window_tournaments:
        formats.setdefault(tournament.format, {'count': 0, 'signups': 0})['count'] += 1
    for registration in window_registrations:
        tournament = window_ids.get(registration.tournament_id)
        if tournament:
            formats[tournament.format]['signups'] += 1

    tournament_formats = [
        {
            'format': humanize(fmt).upper(),
            'count': stats['count'],
            'signups': stats['signups'],
            'percentage': percent_of(stats['count'], len(window_tournaments)),
        }
        for fmt, stats in formats.items()
    ]

    activity = []
    for offset in range(ACTIVITY_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_matches = [m for m in window_matches if _local_date(m.created_at) == day]
        players = {pid for m in day_matches for pid in (m.player1_id, m.player2_id) if pid}
        activity.append({'day': f'{day:%a}', 'active': len(players), 'matches': len(day_matches)})

    return {
        'range': time_range,
        'revenue': {
            'total': sum(t.prize_pool or 0 for t in window_tournaments),
            'monthly': monthly_revenue,
            'growth': growth(monthly_revenue, revenue_in(last_month)),
        },
        'players': {
            'total': len(profiles),
            'active': sum(1 for p in profiles if p.last_seen_at and p.last_seen_at >= active_since),
            'new_this_month': new_this_month,
            'growth': growth(new_this_month, signups_in(last_month)),
        },
        'tournaments': {
            'total': len(window_tournaments),
            'active': sum(1 for t in window_tournaments if t.status == 'ongoing'),
            'completed': completed_tournaments,
            'completion_rate': percent_of(completed_tournaments, len(window_tournaments)),
        },
        'matches': {
            'total': len(window_matches),
            'completed': completed_matches,
            'disputed': len(window_disputes),
            'dispute_rate': percent_of(len(window_disputes), len(window_matches)),
        },
        'timeline': timeline,
        'tournament_formats': tournament_formats,
        'format_signups_over_time': format_signups,
        'player_activity': activity,
    }
