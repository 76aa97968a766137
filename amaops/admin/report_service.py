from __future__ import annotations

import re
import time
from datetime import date, datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException

from ..config import Config
from ..core.documents import Document, DocumentStore, collection, join_path
from ..core.logging import get_logger
from ..core.models import CONVERTED, NO_STATUS, SALES_ROLES
from ..core.timeutils import (
    IST,
    ist_day_end,
    ist_day_start,
    ist_today,
    isoformat,
    now_utc,
    parse_day,
    to_datetime,
    to_millis,
)


logger = get_logger(__name__)

PRODUCTIVITY_RANGES = {"today", "yesterday", "last7days", "last30days", "custom"}
RANGE_LABELS = {"yesterday": "Yesterday", "last7days": "Last 7 Days", "last30days": "Last 30 Days", "custom": "Custom Range"}
MAX_CUSTOM_SNAPSHOT_DAYS = 93

SALES_ANALYTICS_FIELDS = (
    "status",
    "source_database",
    "date",
    "assigned_to",
    "assignedTo",
    "email",
    "mobile",
    "query",
    "lastNote",
    "salesNotes",
)

CONVERSION_BUCKETS = [
    ("Same Day (0-24h)", 0),
    ("2-3 Days", 3),
    ("4-7 Days", 7),
    ("1-2 Weeks", 14),
    ("2-4 Weeks", 30),
    ("1-2 Months", 60),
    ("2+ Months", None),
]

INCOME_BUCKETS = [
    ("0-25K", 25000),
    ("25K-50K", 50000),
    ("50K-75K", 75000),
    ("75K-100K", 100000),
    ("100K+", None),
]

# First two pincode digits -> state; first matching range wins.
PINCODE_STATES = [
    (11, 11, "Delhi"),
    (12, 13, "Haryana"),
    (14, 16, "Punjab"),
    (17, 17, "Himachal Pradesh"),
    (18, 19, "Jammu & Kashmir"),
    (20, 28, "Uttar Pradesh"),
    (30, 34, "Rajasthan"),
    (36, 39, "Gujarat"),
    (40, 44, "Maharashtra"),
    (45, 48, "Madhya Pradesh"),
    (49, 49, "Chhattisgarh"),
    (50, 53, "Andhra Pradesh/Telangana"),
    (56, 59, "Karnataka"),
    (60, 64, "Tamil Nadu"),
    (67, 69, "Kerala"),
    (70, 74, "West Bengal"),
    (75, 77, "Odisha"),
    (78, 78, "Assam"),
    (79, 79, "North Eastern States"),
    (80, 85, "Bihar"),
    (92, 92, "Jharkhand"),
]

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
_PINCODE = re.compile(r"\b\d{6}\b")
_LEADING_INT = re.compile(r"^\s*(-?\d+)")
_DAY_MS = 24 * 60 * 60 * 1000
_HOUR_MS = 60 * 60 * 1000


class ReportCache:
    """Per-process TTL cache for analytics payloads keyed by report parameters."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def _round2(value: float) -> float:
    return round(value * 100) / 100


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def _leading_int(value: Any) -> Optional[int]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    match = _LEADING_INT.match(str(value or ""))
    return int(match.group(1)) if match else None


def _normalize_status(status: Any) -> str:
    if status == "–" or not status:
        return NO_STATUS
    return status


def _analytics_bounds(start_date: Optional[str], end_date: Optional[str]) -> Tuple[Optional[datetime], Optional[datetime]]:
    try:
        start = ist_day_start(parse_day(start_date)) if start_date else None
        end = None
        if end_date:
            end_day = parse_day(end_date)
            end = now_utc() if end_day == ist_today() else ist_day_end(end_day)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Dates must be YYYY-MM-DD.") from exc
    return start, end


def _date_window(query, start: Optional[datetime], end: Optional[datetime], millis_field: str, converted_field: str):
    """Apply the creation window (epoch ms) and the conversion window (timestamp) to a pair of queries."""
    base, conversions = query
    if start is not None:
        base = base.where(millis_field, ">=", int(start.timestamp() * 1000))
        conversions = conversions.where(converted_field, ">=", start)
    if end is not None:
        base = base.where(millis_field, "<=", int(end.timestamp() * 1000))
        conversions = conversions.where(converted_field, "<=", end)
    return base, conversions


def _active_salesperson_names(store: DocumentStore) -> Tuple[set, int]:
    docs = store.stream(
        collection("users").where("role", "in", SALES_ROLES).where("status", "==", "active")
    )
    names = set()
    for doc in docs:
        name = f"{doc.get('firstName') or ''} {doc.get('lastName') or ''}".strip()
        if name:
            names.add(name)
    return names, len(docs)


def _month_key(millis: Any) -> Optional[str]:
    moment = to_datetime(millis)
    if moment is None:
        return None
    local = moment.astimezone(IST)
    return f"{local.year}-{local.month:02d}"


def _counts_to_rows(counts: Dict[str, int], sort_desc: bool = True) -> List[Dict[str, Any]]:
    rows = [{"name": name, "value": value} for name, value in counts.items()]
    if sort_desc:
        rows.sort(key=lambda row: row["value"], reverse=True)
    return rows


# --- sales report ---------------------------------------------------------------------


def sales_analytics(
    store: DocumentStore,
    cache: ReportCache,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    cache_key = f"sales-analytics-{start_date}-{end_date}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    start, end = _analytics_bounds(start_date, end_date)
    base, conversions = _date_window(
        (
            collection("ama_leads").fields(*SALES_ANALYTICS_FIELDS),
            collection("ama_leads")
            .where("status", "==", CONVERTED)
            .fields("status", "assigned_to", "assignedTo", "convertedAt"),
        ),
        start,
        end,
        "date",
        "convertedAt",
    )
    leads = [doc.data for doc in store.stream(base)]
    converted = [doc.data for doc in store.stream(conversions)]
    total_leads = len(leads)
    converted_count = len(converted)

    if not total_leads and not converted_count:
        return {"analytics": None, "estimatedReads": 2}

    categories: Dict[str, int] = {}
    for lead in leads:
        status = _normalize_status(lead.get("status"))
        categories[status] = categories.get(status, 0) + 1
    categories[CONVERTED] = converted_count
    category_rows = sorted(
        (
            {"name": name, "value": value, "percentage": _percent(value, total_leads)}
            for name, value in categories.items()
        ),
        key=lambda row: row["value"],
        reverse=True,
    )

    active_names, user_reads = _active_salesperson_names(store)
    per_person: Dict[str, Dict[str, Any]] = {}

    def _person(name: str) -> Dict[str, Any]:
        return per_person.setdefault(
            name, {"name": name, "totalLeads": 0, "interested": 0, "converted": 0, "statusBreakdown": {}}
        )

    for lead in leads:
        name = str(lead.get("assigned_to") or lead.get("assignedTo") or "Unassigned").strip()
        if name not in active_names:
            continue
        stats = _person(name)
        stats["totalLeads"] += 1
        status = _normalize_status(lead.get("status"))
        if status == "Interested":
            stats["interested"] += 1
        if status != CONVERTED:
            stats["statusBreakdown"][status] = stats["statusBreakdown"].get(status, 0) + 1

    for lead in converted:
        name = str(lead.get("assigned_to") or lead.get("assignedTo") or "Unassigned").strip()
        if name not in active_names:
            continue
        stats = _person(name)
        stats["converted"] += 1
        stats["statusBreakdown"][CONVERTED] = stats["statusBreakdown"].get(CONVERTED, 0) + 1

    performance = []
    for stats in per_person.values():
        rate = _percent(stats["interested"] + stats["converted"], stats["totalLeads"])
        performance.append({**stats, "conversionRate": _round2(rate)})
    performance.sort(key=lambda row: row["totalLeads"], reverse=True)

    sources: Dict[str, int] = {}
    months: Dict[str, int] = {}
    for lead in leads:
        source = lead.get("source_database") or "Unknown"
        sources[source] = sources.get(source, 0) + 1
        if lead.get("date"):
            key = _month_key(lead.get("date"))
            if key:
                months[key] = months.get(key, 0) + 1

    def _has_phone(value: Any) -> bool:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value > 0
        return bool(value) and str(value).strip().isdigit() and int(str(value).strip()) > 0

    contact_analysis = {
        "hasEmail": sum(1 for lead in leads if lead.get("email")),
        "hasPhone": sum(1 for lead in leads if _has_phone(lead.get("mobile"))),
        "hasQuery": sum(1 for lead in leads if lead.get("query")),
        "hasNotes": sum(1 for lead in leads if lead.get("lastNote")),
        "hasSalesNotes": sum(1 for lead in leads if lead.get("salesNotes")),
    }

    analytics = {
        "totalLeads": total_leads,
        "uniqueAssignees": len(performance),
        "conversionRate": _round2(_percent(converted_count, total_leads)),
        "categoryDistribution": category_rows,
        "assigneeDistribution": [{"name": row["name"], "value": row["totalLeads"]} for row in performance],
        "sourceDatabaseDistribution": _counts_to_rows(sources),
        "monthlyDistribution": sorted(_counts_to_rows(months, sort_desc=False), key=lambda row: row["name"]),
        "salesPerformance": performance,
        "contactAnalysis": contact_analysis,
    }
    estimated_reads = total_leads + converted_count + user_reads
    logger.info(
        "Sales analytics computed.",
        extra={"total_leads": total_leads, "converted": converted_count, "estimated_reads": estimated_reads},
    )
    result = {"analytics": analytics, "estimatedReads": estimated_reads}
    cache.set(cache_key, result)
    return result


def productivity_range(
    range_name: str,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
) -> Tuple[date, date]:
    """Inclusive IST day span for a productivity range."""
    today = ist_today()
    if range_name == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if range_name == "last7days":
        return today - timedelta(days=6), today
    if range_name == "last30days":
        return today - timedelta(days=29), today
    if range_name == "custom" and custom_start and custom_end:
        try:
            first, last = parse_day(custom_start), parse_day(custom_end)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="customStart and customEnd must be YYYY-MM-DD.") from exc
        if last < first:
            raise HTTPException(status_code=400, detail="customEnd must not be before customStart.")
        return first, last
    return today, today


def _validate_range(range_name: str) -> None:
    if range_name not in PRODUCTIVITY_RANGES:
        raise HTTPException(status_code=400, detail=f"range must be one of {sorted(PRODUCTIVITY_RANGES)}.")


def _later(current: Optional[datetime], candidate: Any) -> Optional[datetime]:
    moment = to_datetime(candidate)
    if moment is None:
        return current
    if current is None or moment > current:
        return moment
    return current


def _finalize_productivity(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    result = []
    for row in rows:
        last = row.get("lastActivity")
        result.append({**row, "lastActivity": isoformat(last or datetime.fromtimestamp(0, tz=timezone.utc))})
    result.sort(key=lambda row: row["leadsWorked"], reverse=True)
    return result


def _live_productivity(
    store: DocumentStore,
    collection_name: str,
    status_field: str,
    track_conversions: bool,
) -> Tuple[List[Dict[str, Any]], int]:
    today = ist_today()
    docs = store.stream(
        collection(collection_name)
        .where("lastModified", ">=", ist_day_start(today))
        .where("lastModified", "<=", ist_day_end(today))
    )
    stats: Dict[str, Dict[str, Any]] = {}
    for doc in docs:
        user = doc.get("assigned_to") or "Unassigned"
        row = stats.get(user)
        if row is None:
            row = {
                "userId": user,
                "userName": user,
                "date": today.isoformat(),
                "leadsWorked": 0,
                "lastActivity": None,
                "statusBreakdown": {},
            }
            if track_conversions:
                row["convertedLeads"] = 0
            stats[user] = row
        row["leadsWorked"] += 1
        row["lastActivity"] = _later(row["lastActivity"], doc.get("lastModified"))
        status = _normalize_status(doc.get(status_field))
        row["statusBreakdown"][status] = row["statusBreakdown"].get(status, 0) + 1
        if track_conversions and doc.get(status_field) == CONVERTED:
            row["convertedLeads"] += 1
    return _finalize_productivity(stats.values()), len(docs)


def _merge_user_productivity(
    stats: Dict[str, Dict[str, Any]],
    entries: Any,
    label: str,
    track_conversions: bool,
) -> None:
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        user = entry.get("userId") or "Unassigned"
        row = stats.get(user)
        if row is None:
            row = {
                "userId": user,
                "userName": entry.get("userName") or user,
                "date": label,
                "leadsWorked": 0,
                "lastActivity": None,
                "statusBreakdown": {},
            }
            if track_conversions:
                row["convertedLeads"] = 0
            stats[user] = row
        row["leadsWorked"] += entry.get("leadsWorked") or 0
        if track_conversions:
            row["convertedLeads"] += entry.get("convertedLeads") or 0
        row["lastActivity"] = _later(row["lastActivity"], entry.get("lastActivity"))
        for status, count in (entry.get("statusBreakdown") or {}).items():
            status = _normalize_status(status)
            row["statusBreakdown"][status] = row["statusBreakdown"].get(status, 0) + (count or 0)


def sales_productivity(
    store: DocumentStore,
    *,
    range_name: str = "today",
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
) -> Dict[str, Any]:
    _validate_range(range_name)
    if range_name == "today":
        rows, reads = _live_productivity(store, "ama_leads", "status", track_conversions=False)
        return {"productivityStats": rows, "estimatedReads": reads}

    first, last = productivity_range(range_name, custom_start, custom_end)
    if range_name == "custom" and (last - first).days >= MAX_CUSTOM_SNAPSHOT_DAYS:
        raise HTTPException(status_code=400, detail=f"Custom ranges are limited to {MAX_CUSTOM_SNAPSHOT_DAYS} days.")
    days = [first + timedelta(days=offset) for offset in range((last - first).days + 1)]
    snapshots = store.get_all(join_path("productivity_snapshots", day.isoformat()) for day in days)

    stats: Dict[str, Dict[str, Any]] = {}
    label = RANGE_LABELS.get(range_name, range_name)
    for snapshot in snapshots:
        if snapshot is None:
            continue
        section = snapshot.get("amaLeads") or {}
        _merge_user_productivity(stats, section.get("userProductivity"), label, track_conversions=False)
    return {"productivityStats": _finalize_productivity(stats.values()), "estimatedReads": len(days)}


def sales_report(
    store: DocumentStore,
    cache: ReportCache,
    *,
    report_type: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    range_name: str = "today",
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
) -> Dict[str, Any]:
    if report_type == "analytics":
        return sales_analytics(store, cache, start_date=start_date, end_date=end_date)
    if report_type == "productivity":
        return sales_productivity(store, range_name=range_name, custom_start=custom_start, custom_end=custom_end)
    raise HTTPException(status_code=400, detail="Invalid type")


# --- billcut report -------------------------------------------------------------------


def _debt_midpoint(debt_range: Any) -> Optional[float]:
    """``"3 - 5"`` (lakhs) -> 400000."""
    if not debt_range or debt_range == "Not specified":
        return None
    parts = str(debt_range).split(" - ")
    values = [(_leading_int(part) or 0) * 100000 for part in parts[:2]]
    if len(values) == 1:
        values.append(0)
    midpoint = (values[0] + values[1]) / 2
    return midpoint if midpoint > 0 else None


def _pincode_state(address: Any) -> str:
    match = _PINCODE.search(str(address or ""))
    if not match:
        return "Unknown"
    prefix = int(match.group(0)[:2])
    for low, high, state in PINCODE_STATES:
        if low <= prefix <= high:
            return state
    return "Unknown"


def _created_millis(lead: Dict[str, Any]) -> Optional[int]:
    return to_millis(lead.get("date")) if lead.get("date") else to_millis(lead.get("synced_date"))


def _conversion_bucket(days: int) -> str:
    for name, limit in CONVERSION_BUCKETS:
        if limit is None or days <= limit:
            return name
    return CONVERSION_BUCKETS[-1][0]


def _income_bucket(income: Any) -> str:
    value = _leading_int(income) or 0
    for name, limit in INCOME_BUCKETS:
        if limit is None or value <= limit:
            return name
    return INCOME_BUCKETS[-1][0]


def _ist(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).astimezone(IST)


def _conversion_time_rows(converted: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows = []
    for lead in converted:
        created = _created_millis(lead)
        converted_at = to_millis(lead.get("convertedAt"))
        if created is None or converted_at is None:
            continue
        diff = converted_at - created
        rows.append(
            {
                "leadName": lead.get("name"),
                "assignedTo": lead.get("assigned_to"),
                "createdAt": isoformat(_ist(created)),
                "convertedAt": isoformat(_ist(converted_at)),
                "conversionTimeDays": diff // _DAY_MS,
                "conversionTimeHours": (diff % _DAY_MS) // _HOUR_MS,
                "conversionTimeMs": diff,
                "debtRange": lead.get("debt_range"),
                "income": lead.get("income"),
            }
        )
    return rows


def _timeline(leads: List[Dict[str, Any]], converted: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    timeline: Dict[str, Dict[str, Any]] = {}

    def _day(key: str) -> Dict[str, Any]:
        return timeline.setdefault(
            key,
            {"date": key, "totalLeads": 0, "convertedLeads": 0, "interestedLeads": 0, "notInterestedLeads": 0},
        )

    for lead in leads:
        created = _created_millis(lead)
        if created is None:
            continue
        row = _day(_ist(created).date().isoformat())
        row["totalLeads"] += 1
        if lead.get("category") == "Interested":
            row["interestedLeads"] += 1
        elif lead.get("category") == "Not Interested":
            row["notInterestedLeads"] += 1

    for lead in converted:
        converted_at = to_millis(lead.get("convertedAt"))
        if converted_at is None:
            continue
        _day(_ist(converted_at).date().isoformat())["convertedLeads"] += 1

    return [timeline[key] for key in sorted(timeline)][-30:]


def _debt_sort_key(row: Dict[str, Any]) -> Tuple[int, int]:
    if row["name"] == "Not specified":
        return (1, 0)
    return (0, _leading_int(row["name"]) or 0)


def billcut_analytics(
    store: DocumentStore,
    cache: ReportCache,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    cache_key = f"billcut-analytics-{start_date}-{end_date}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    start, end = _analytics_bounds(start_date, end_date)
    base, conversions = _date_window(
        (collection("billcutLeads"), collection("billcutLeads").where("category", "==", CONVERTED)),
        start,
        end,
        "date",
        "convertedAt",
    )
    lead_docs: List[Document] = store.stream(base)
    converted_docs: List[Document] = store.stream(conversions)
    leads = [{"id": doc.id, **doc.data} for doc in lead_docs]
    converted = [{"id": doc.id, **doc.data} for doc in converted_docs]
    total_leads = len(leads)
    converted_count = len(converted)

    if not leads and not converted:
        return {"analytics": None}

    unique_assignees = len({lead.get("assigned_to") for lead in leads + converted})

    midpoints = [value for value in (_debt_midpoint(lead.get("debt_range")) for lead in leads) if value]
    average_debt = round(sum(midpoints) / len(midpoints)) if midpoints else 0
    short_loans = sum(1 for lead in leads if lead.get("category") == "Short Loan")

    conversion_rows = _conversion_time_rows(converted)
    avg_ms = sum(row["conversionTimeMs"] for row in conversion_rows) / len(conversion_rows) if conversion_rows else 0
    buckets = {name: 0 for name, _ in CONVERSION_BUCKETS}
    by_salesperson: Dict[Any, List[int]] = {}
    for row in conversion_rows:
        buckets[_conversion_bucket(row["conversionTimeDays"])] += 1
        by_salesperson.setdefault(row["assignedTo"], []).append(row["conversionTimeDays"])

    hourly = [0] * 24
    weekdays: Dict[str, int] = {}
    months: Dict[str, int] = {}
    for lead in leads:
        created = _created_millis(lead)
        if created is None:
            continue
        local = _ist(created)
        hourly[local.hour] += 1
        weekday = WEEKDAY_NAMES[local.weekday()]
        weekdays[weekday] = weekdays.get(weekday, 0) + 1
        if lead.get("date"):
            key = _month_key(lead.get("date"))
            if key:
                months[key] = months.get(key, 0) + 1

    categories: Dict[str, int] = {}
    assignees: Dict[str, int] = {}
    debt_ranges: Dict[str, int] = {}
    incomes = {name: 0 for name, _ in INCOME_BUCKETS}
    states: Dict[str, int] = {}
    for lead in leads:
        category = lead.get("category") or "Uncategorized"
        if category != CONVERTED:
            categories[category] = categories.get(category, 0) + 1
        assignee = lead.get("assigned_to") or "Unassigned"
        assignees[assignee] = assignees.get(assignee, 0) + 1
        debt_range = lead.get("debt_range") or "Not specified"
        debt_ranges[debt_range] = debt_ranges.get(debt_range, 0) + 1
        incomes[_income_bucket(lead.get("income"))] += 1
        state = _pincode_state(lead.get("address"))
        states[state] = states.get(state, 0) + 1
    categories[CONVERTED] = converted_count
    category_rows = [
        {"name": name, "value": value, "percentage": _percent(value, total_leads)}
        for name, value in categories.items()
    ]

    active_names, _ = _active_salesperson_names(store)
    performance = []
    for name, count in assignees.items():
        if name not in active_names:
            continue
        own = [lead for lead in leads if lead.get("assigned_to") == name]
        own_converted = sum(1 for lead in converted if lead.get("assigned_to") == name)
        interested = sum(1 for lead in own if lead.get("category") == "Interested")
        breakdown = {}
        for row in category_rows:
            if row["name"] == CONVERTED:
                breakdown[row["name"]] = own_converted
            else:
                breakdown[row["name"]] = sum(1 for lead in own if lead.get("category") == row["name"])
        performance.append(
            {
                "name": name,
                "totalLeads": count,
                "interested": interested,
                "converted": own_converted,
                "conversionRate": _round2(_percent(interested + own_converted, count)),
                "statusBreakdown": breakdown,
            }
        )

    language_leads = [
        lead
        for lead in leads
        if lead.get("category") == "Language Barrier"
        or lead.get("status") == "Language Barrier"
        or lead.get("language_barrier")
    ]
    languages: Dict[str, int] = {}
    for lead in language_leads:
        language = lead.get("language_barrier") or "Unknown"
        languages[language] = languages.get(language, 0) + 1

    analytics = {
        "totalLeads": total_leads,
        "uniqueAssignees": unique_assignees,
        "averageDebt": average_debt,
        "conversionRate": _round2(_percent(converted_count, total_leads)),
        "shortLoanRate": _round2(_percent(short_loans, total_leads)),
        "conversionTimeData": conversion_rows,
        "avgConversionTimeDays": int(avg_ms // _DAY_MS),
        "avgConversionTimeHours": int((avg_ms % _DAY_MS) // _HOUR_MS),
        "conversionTimeBuckets": [{"name": name, "value": value} for name, value in buckets.items()],
        "conversionTimeBySalesperson": [
            {
                "name": name,
                "conversions": days,
                "avgDays": sum(days) / len(days),
                "fastestDays": min(days),
                "slowestDays": max(days),
                "totalConversions": len(days),
            }
            for name, days in by_salesperson.items()
        ],
        "leadEntryTimelineData": _timeline(leads, converted),
        "hourlyPatternData": [{"hour": f"{hour}:00", "leads": count} for hour, count in enumerate(hourly)],
        "dayOfWeekPatternData": [{"day": day, "count": count} for day, count in weekdays.items()],
        "languageBarrierLeads": len(language_leads),
        "languageDistribution": _counts_to_rows(languages),
        "categoryDistribution": category_rows,
        "assigneeDistribution": _counts_to_rows(assignees, sort_desc=False),
        "debtRangeDistribution": sorted(_counts_to_rows(debt_ranges, sort_desc=False), key=_debt_sort_key),
        "incomeDistribution": _counts_to_rows(incomes, sort_desc=False),
        "stateDistribution": _counts_to_rows(states)[:10],
        "monthlyDistribution": sorted(_counts_to_rows(months, sort_desc=False), key=lambda row: row["name"]),
        "salesPerformance": performance,
        "contactAnalysis": {
            "hasEmail": sum(1 for lead in leads if lead.get("email")),
            "hasPhone": sum(1 for lead in leads if lead.get("mobile")),
            "hasNotes": sum(1 for lead in leads if lead.get("sales_notes")),
        },
    }
    logger.info(
        "Billcut analytics computed.",
        extra={"total_leads": total_leads, "converted": converted_count},
    )
    result = {"analytics": analytics, "docCount": total_leads}
    cache.set(cache_key, result)
    return result


def billcut_productivity(
    store: DocumentStore,
    *,
    range_name: str = "today",
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
) -> Dict[str, Any]:
    _validate_range(range_name)
    if range_name == "today":
        rows, reads = _live_productivity(store, "billcutLeads", "category", track_conversions=True)
        return {"productivityStats": rows, "docCount": reads}

    first, last = productivity_range(range_name, custom_start, custom_end)
    docs = store.stream(
        collection("productivity_snapshots")
        .where("date", ">=", ist_day_start(first))
        .where("date", "<=", ist_day_end(last))
    )
    stats: Dict[str, Dict[str, Any]] = {}
    label = RANGE_LABELS.get(range_name, range_name)
    for doc in docs:
        section = doc.get("billcutLeads") or {}
        _merge_user_productivity(stats, section.get("userProductivity"), label, track_conversions=True)
    return {"productivityStats": _finalize_productivity(stats.values()), "docCount": len(docs)}


def billcut_report(
    store: DocumentStore,
    cache: ReportCache,
    *,
    report_type: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    range_name: str = "today",
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None,
) -> Dict[str, Any]:
    if report_type == "analytics":
        return billcut_analytics(store, cache, start_date=start_date, end_date=end_date)
    if report_type == "productivity":
        return billcut_productivity(store, range_name=range_name, custom_start=custom_start, custom_end=custom_end)
    raise HTTPException(status_code=400, detail="Invalid type parameter")


_report_cache = ReportCache(Config.REPORT_CACHE_TTL_SECONDS)


def get_report_cache() -> ReportCache:
    return _report_cache
