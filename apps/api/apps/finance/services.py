"""
Finance analytics over paid time slots.

A slot counts as paid when it carries a payment amount and a payment date.
Month and period boundaries are computed in the clinic time zone.
"""
from datetime import datetime, time as dt_time, timedelta

from django.db.models import Avg, Count, Sum
from django.db.models.functions import TruncMonth, TruncQuarter, TruncYear
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from apps.core.exceptions import DomainError
from apps.scheduling.models import SessionTypeChoices, TimeSlot, clinic_timezone

GRANULARITIES = ('monthly', 'quarterly', 'yearly')
_TRUNC = {
    'monthly': TruncMonth,
    'quarterly': TruncQuarter,
    'yearly': TruncYear,
}


def paid_slots(**filters):
    return TimeSlot.objects.filter(
        payment_amount__isnull=False,
        payment_date__isnull=False,
        **filters
    )


def _money(value):
    return float(value) if value is not None else 0.0


def _month_start(year, month):
    return clinic_timezone().localize(datetime(year, month, 1))


def _add_months(year, month, delta):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _now():
    return timezone.localtime(timezone.now(), clinic_timezone())


def month_boundaries(now=None):
    now = now or _now()
    this_month = _month_start(now.year, now.month)
    next_month = _month_start(*_add_months(now.year, now.month, 1))
    last_month = _month_start(*_add_months(now.year, now.month, -1))
    return {
        'start_of_this_month': this_month,
        'start_of_next_month': next_month,
        'start_of_last_month': last_month,
        'end_of_last_month': this_month,
    }


def _pct(current, previous):
    """Growth %, None when there is no base to compare with."""
    if previous > 0:
        return round((current - previous) / previous * 100, 2)
    return None if current > 0 else 0


def _totals(queryset):
    stats = queryset.aggregate(
        revenue=Sum('payment_amount'),
        appointments=Count('id'),
        avg_charge=Avg('payment_amount'),
    )
    return {
        'revenue': _money(stats['revenue']),
        'appointments': stats['appointments'],
        'avg_charge': _money(stats['avg_charge']) if stats['avg_charge'] is not None else None,
    }


def _all_time(queryset):
    totals = _totals(queryset)
    return {
        'total_revenue_all_time': totals['revenue'],
        'total_appointments_all_time': totals['appointments'],
        'avg_charge_all_time': totals['avg_charge'],
    }


def _series(queryset, granularity):
    tz = clinic_timezone()
    rows = (
        queryset.annotate(period=_TRUNC[granularity]('payment_date', tzinfo=tz))
        .values('period')
        .annotate(
            total_revenue=Sum('payment_amount'),
            appointments=Count('id'),
            avg_charge=Avg('payment_amount'),
        )
        .order_by('period')
    )
    series = []
    for row in rows:
        period = row['period']
        entry = {'year': period.year}
        if granularity == 'monthly':
            entry['month'] = period.month
        elif granularity == 'quarterly':
            entry['quarter'] = (period.month - 1) // 3 + 1
        entry.update({
            'total_revenue': _money(row['total_revenue']),
            'appointments': row['appointments'],
            'avg_charge': _money(row['avg_charge']),
        })
        series.append(entry)
    return series


# ============================================================================
# Admin
# ============================================================================

def monthly_income_by_doctor(year=None):
    """Monthly revenue per doctor, highest all-time revenue first."""
    queryset = paid_slots()
    tz = clinic_timezone()
    if year:
        start = _month_start(year, 1)
        queryset = queryset.filter(payment_date__gte=start, payment_date__lt=_month_start(year + 1, 1))

    rows = (
        queryset.annotate(period=TruncMonth('payment_date', tzinfo=tz))
        .values(
            'period',
            'session__doctor_id',
            'session__doctor__name',
            'session__doctor__email',
            'session__doctor__specialization',
        )
        .annotate(
            total_revenue=Sum('payment_amount'),
            appointments=Count('id'),
            avg_charge=Avg('payment_amount'),
        )
        .order_by('session__doctor_id', 'period')
    )

    doctors = {}
    for row in rows:
        doctor_id = str(row['session__doctor_id'])
        entry = doctors.setdefault(doctor_id, {
            'doctor_id': doctor_id,
            'doctor': {
                'id': doctor_id,
                'name': row['session__doctor__name'],
                'email': row['session__doctor__email'],
                'specialization': row['session__doctor__specialization'],
            },
            'total_revenue_all_time': 0.0,
            'total_appointments_all_time': 0,
            'months': [],
        })
        revenue = _money(row['total_revenue'])
        entry['months'].append({
            'year': row['period'].year,
            'month': row['period'].month,
            'total_revenue': revenue,
            'appointments': row['appointments'],
            'avg_charge': _money(row['avg_charge']),
        })
        entry['total_revenue_all_time'] += revenue
        entry['total_appointments_all_time'] += row['appointments']

    return sorted(doctors.values(), key=lambda d: d['total_revenue_all_time'], reverse=True)


def _parse_iso_bound(value, end=False):
    """ISO date or datetime; a bare date used as ``to`` includes that whole day."""
    tz = clinic_timezone()
    label = 'to' if end else 'from'
    try:
        moment = parse_datetime(value)
        if moment is not None:
            return moment if timezone.is_aware(moment) else tz.localize(moment)
        day = parse_date(value)
        if day is None:
            raise DomainError(f'Invalid {label} date.')
        if end:
            day = day + timedelta(days=1)
    except (ValueError, OverflowError):
        # Well-formed but impossible, e.g. 2024-02-30
        raise DomainError(f'Invalid {label} date.')
    return tz.localize(datetime.combine(day, dt_time.min))


def resolve_insights_range(params):
    """
    (from, to) with exclusive end.

    Either fromYear/fromMonth/toYear/toMonth or from/to, never both.
    Default: current calendar year to date.
    """
    ym_keys = ('fromYear', 'fromMonth', 'toYear', 'toMonth')
    have_ym = all(params.get(k) for k in ym_keys)
    have_iso = bool(params.get('from') or params.get('to'))

    if have_ym and have_iso:
        raise DomainError('Provide either (fromYear,fromMonth,toYear,toMonth) OR (from,to), not both.')

    if have_ym:
        try:
            fy, fm, ty, tm = (int(params[k]) for k in ym_keys)
        except (TypeError, ValueError):
            raise DomainError('fromYear/fromMonth/toYear/toMonth must be numbers.')
        if not (1 <= fm <= 12 and 1 <= tm <= 12):
            raise DomainError('fromMonth/toMonth must be in 1..12.')
        try:
            return _month_start(fy, fm), _month_start(*_add_months(ty, tm, 1))
        except (ValueError, OverflowError):
            raise DomainError('fromYear/toYear out of range.')

    if have_iso:
        start = _parse_iso_bound(params['from']) if params.get('from') else _month_start(1970, 1)
        end = _parse_iso_bound(params['to'], end=True) if params.get('to') else _now() + timedelta(days=365)
        return start, end

    now = _now()
    return _month_start(now.year, 1), _month_start(*_add_months(now.year, now.month, 1))


def business_insights(params):
    """Admin dashboard: summary, growth vs previous period, series, mix, leaderboards."""
    granularity = (params.get('granularity') or 'monthly').lower()
    if granularity not in GRANULARITIES:
        raise DomainError('granularity must be monthly | quarterly | yearly')

    top = params.get('top')
    if top not in (None, ''):
        try:
            top = int(top)
        except ValueError:
            raise DomainError('top must be a positive integer')
        if top < 1:
            raise DomainError('top must be a positive integer')
    top_n = max(1, min(top or 5, 25))

    start, end = resolve_insights_range(params)
    in_range = paid_slots(payment_date__gte=start, payment_date__lt=end)

    prev_start = start - (end - start)
    prev_range = paid_slots(payment_date__gte=prev_start, payment_date__lt=start)

    current = _totals(in_range)
    current.update(in_range.aggregate(
        distinct_patients=Count('patient', distinct=True),
        distinct_doctors=Count('session__doctor', distinct=True),
    ))
    previous = _totals(prev_range)

    def change(key):
        return {
            'current': current[key],
            'previous': previous[key],
            'delta': current[key] - previous[key],
            'delta_pct': _pct(current[key], previous[key]),
        }

    mix_by_type = [
        {'type': row['session__type'], 'revenue': _money(row['revenue']), 'appointments': row['appointments']}
        for row in in_range.values('session__type')
        .annotate(revenue=Sum('payment_amount'), appointments=Count('id'))
        .order_by('-revenue')
    ]

    top_doctors = [
        {
            'doctor_id': str(row['session__doctor_id']),
            'doctor': {
                'id': str(row['session__doctor_id']),
                'name': row['session__doctor__name'],
                'email': row['session__doctor__email'],
                'specialization': row['session__doctor__specialization'],
            },
            'revenue': _money(row['revenue']),
            'appointments': row['appointments'],
            'avg_charge': _money(row['avg_charge']),
        }
        for row in in_range.values(
            'session__doctor_id',
            'session__doctor__name',
            'session__doctor__email',
            'session__doctor__specialization',
        )
        .annotate(revenue=Sum('payment_amount'), appointments=Count('id'), avg_charge=Avg('payment_amount'))
        .order_by('-revenue')[:top_n]
    ]

    top_hospitals = [
        {
            'hospital_id': str(row['session__hospital_id']),
            'hospital': {'name': row['session__hospital__name'], 'location': row['session__hospital__location']},
            'revenue': _money(row['revenue']),
            'appointments': row['appointments'],
        }
        for row in in_range.filter(
            session__type=SessionTypeChoices.IN_PERSON,
            session__hospital__isnull=False,
        )
        .values('session__hospital_id', 'session__hospital__name', 'session__hospital__location')
        .annotate(revenue=Sum('payment_amount'), appointments=Count('id'))
        .order_by('-revenue')[:top_n]
    ]

    appointments = current['appointments']
    return {
        'granularity': granularity,
        'period_bounds': {'from': start.isoformat(), 'to': end.isoformat()},
        'summary': {
            'revenue': current['revenue'],
            'appointments': appointments,
            'avg_charge': current['avg_charge'],
            'revenue_per_appointment': current['revenue'] / appointments if appointments else None,
            'distinct_patients': current['distinct_patients'],
            'distinct_doctors': current['distinct_doctors'],
        },
        'change_vs_prev': {
            'revenue': change('revenue'),
            'appointments': change('appointments'),
        },
        'series': _series(in_range, granularity),
        'mix_by_type': mix_by_type,
        'leaderboards': {
            'top_doctors': top_doctors,
            'top_hospitals': top_hospitals,
        },
        'context': {
            'all_time': _all_time(paid_slots()),
            'previous_period_bounds': {'from': prev_start.isoformat(), 'to': start.isoformat()},
        },
    }


# ============================================================================
# Per doctor
# ============================================================================

def doctor_overview(doctor, months=12):
    """Monthly series (last ``months`` months), this/last month, month-over-month %."""
    months = max(1, min(months or 12, 60))
    now = _now()
    bounds = month_boundaries(now)
    base = paid_slots(session__doctor=doctor)

    series_start = _month_start(*_add_months(now.year, now.month, -(months - 1)))
    series = _series(
        base.filter(payment_date__gte=series_start, payment_date__lt=bounds['start_of_next_month']),
        'monthly',
    )
    last_month = _totals(base.filter(
        payment_date__gte=bounds['start_of_last_month'],
        payment_date__lt=bounds['end_of_last_month'],
    ))
    this_month = _totals(base.filter(
        payment_date__gte=bounds['start_of_this_month'],
        payment_date__lt=bounds['start_of_next_month'],
    ))

    return {
        'doctor_id': str(doctor.pk),
        'series_months': months,
        'monthly_series': series,
        'last_month': {'revenue': last_month['revenue'], 'appointments': last_month['appointments']},
        'this_month': {'revenue': this_month['revenue'], 'appointments': this_month['appointments']},
        'month_over_month_rate_pct': (
            round((this_month['revenue'] - last_month['revenue']) / last_month['revenue'] * 100, 2)
            if last_month['revenue'] > 0 else None
        ),
        'all_time': _all_time(base),
        'period_bounds': {key: value.isoformat() for key, value in bounds.items()},
    }


def doctor_quick_stats(doctor):
    """Last month, this month (to date), growth %, year to date."""
    now = _now()
    bounds = month_boundaries(now)
    base = paid_slots(session__doctor=doctor)

    last_month = _totals(base.filter(
        payment_date__gte=bounds['start_of_last_month'],
        payment_date__lt=bounds['end_of_last_month'],
    ))
    this_month = _totals(base.filter(
        payment_date__gte=bounds['start_of_this_month'],
        payment_date__lt=bounds['start_of_next_month'],
    ))
    ytd = _totals(base.filter(
        payment_date__gte=_month_start(now.year, 1),
        payment_date__lt=bounds['start_of_next_month'],
    ))

    return {
        'last_month_income': last_month['revenue'],
        'this_month_revenue': this_month['revenue'],
        'income_rate_pct_vs_last_month': (
            round((this_month['revenue'] - last_month['revenue']) / last_month['revenue'] * 100, 2)
            if last_month['revenue'] > 0 else None
        ),
        'year_to_date_revenue': ytd['revenue'],
        'counts': {
            'last_month_appointments': last_month['appointments'],
            'this_month_appointments': this_month['appointments'],
            'ytd_appointments': ytd['appointments'],
        },
    }


def doctor_payments(doctor, date_from=None, date_to=None):
    """Paid appointments of the doctor, most recent payment first."""
    queryset = paid_slots(session__doctor=doctor).select_related('session', 'session__hospital')
    if date_from:
        queryset = queryset.filter(payment_date__gte=_parse_iso_bound(date_from))
    if date_to:
        queryset = queryset.filter(payment_date__lt=_parse_iso_bound(date_to, end=True))

    return [
        {
            'session_id': str(slot.session_id),
            'slot_index': slot.position,
            'date': slot.session.date.isoformat(),
            'start_time': slot.start_time.strftime('%H:%M'),
            'end_time': slot.end_time.strftime('%H:%M'),
            'patient_id': str(slot.patient_id) if slot.patient_id else None,
            'payment_amount': _money(slot.payment_amount),
            'payment_currency': slot.payment_currency,
            'payment_date': slot.payment_date.isoformat(),
            'payment_intent_id': slot.payment_intent_id,
            'appointment_status': slot.appointment_status,
            'status': slot.status,
            'meeting_id': slot.meeting_id,
            'meeting_link': slot.session.meeting_link,
            'session_type': slot.session.type,
            'hospital': slot.session.hospital.name if slot.session.hospital else None,
        }
        for slot in queryset.order_by('-payment_date')
    ]
