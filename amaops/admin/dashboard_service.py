from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from ..core.documents import DocumentStore, collection, join_path
from ..core.logging import get_logger
from ..core.timeutils import (
    IST,
    MONTH_NAMES,
    ist_day_end,
    ist_day_start,
    ist_month_bounds,
    isoformat,
    month_label,
    now_utc,
    parse_amount,
    parse_day,
    parse_month_label,
    serialize,
    to_datetime,
)


logger = get_logger(__name__)

CLIENT_STATUSES = ["Active", "Dropped", "Not Responding", "On Hold", "Inactive"]

LEAD_STATUS_ROWS = [
    "Interested",
    "Not Interested",
    "Not Answering",
    "Callback",
    "Converted",
    "Loan Required",
    "Short Loan",
    "Cibil Issue",
    "Closed Lead",
    "Language Barrier",
    "Future Potential",
    "No Status",
]
LEAD_SOURCES = ["settleloans", "credsettlee", "ama", "billcut"]
LEAD_SOURCE_LABELS = ["Settleloans", "Credsettlee", "AMA", "Billcut"]
STATUS_COLORS = [
    "rgba(75, 192, 192, 0.6)",
    "rgba(255, 99, 132, 0.6)",
    "rgba(255, 206, 86, 0.6)",
    "rgba(54, 162, 235, 0.6)",
    "rgba(153, 102, 255, 0.6)",
    "rgba(255, 159, 64, 0.6)",
    "rgba(199, 199, 199, 0.6)",
    "rgba(83, 102, 255, 0.6)",
    "rgba(40, 159, 64, 0.6)",
    "rgba(210, 99, 132, 0.6)",
    "rgba(100, 206, 86, 0.6)",
    "rgba(150, 162, 235, 0.6)",
]

PAYMENTS_SAMPLE_SIZE = 100
PAYMENT_HISTORY_CLIENTS = 20
PAYMENT_HISTORY_PER_CLIENT = 5


def _resolve_month(month: Optional[int], year: Optional[int]) -> Tuple[int, int]:
    current = now_utc().astimezone(IST)
    month_index = current.month - 1 if month is None else month
    if not 0 <= month_index <= 11:
        raise HTTPException(status_code=400, detail="month must be between 0 and 11.")
    return month_index, current.year if year is None else year


def _in_range(value: Any, start, end) -> bool:
    moment = to_datetime(value)
    return moment is not None and start <= moment <= end


def _rate(collected: float, target: float) -> int:
    if not target or target <= 0:
        return 0
    return round(collected / target * 100)


def _full_name(data: Dict[str, Any]) -> str:
    return f"{data.get('firstName') or ''} {data.get('lastName') or ''}".strip()


# --- superadmin: sales --------------------------------------------------------


def active_sales_people(store: DocumentStore) -> List[Dict[str, str]]:
    people = []
    for doc in store.stream(collection("users").where("role", "==", "sales")):
        name = _full_name(doc.data)
        if name and doc.get("status") in ("active", None):
            people.append({"id": doc.id, "name": name})
    people.sort(key=lambda person: person["name"].lower())
    return people


def _individual_sales(row: Dict[str, Any], fallback_name: str) -> Dict[str, Any]:
    target = parse_amount(row.get("amountCollectedTarget"))
    collected = parse_amount(row.get("amountCollected"))
    return {
        "name": row.get("userName") or fallback_name,
        "targetAmount": target,
        "collectedAmount": collected,
        "conversionRate": _rate(collected, target),
        "monthlyData": [0, 0, 0, 0, 0, 0],
    }


def superadmin_sales(
    store: DocumentStore,
    *,
    month: Optional[int] = None,
    year: Optional[int] = None,
    salesperson: Optional[str] = None,
) -> Dict[str, Any]:
    month_index, year = _resolve_month(month, year)
    start, end = ist_month_bounds(year, month_index)
    salespeople = active_sales_people(store)

    payment_revenue = 0.0
    has_payment_data = False
    for doc in store.stream(collection("payments").where("status", "==", "approved")):
        if _in_range(doc.get("timestamp"), start, end):
            payment_revenue += parse_amount(doc.get("amount"))
            has_payment_data = True

    rows_path = join_path("targets", month_label(year, month_index), "sales_targets")
    total_target = 0.0
    total_collected = 0.0
    for doc in store.stream(collection(rows_path)):
        total_target += parse_amount(doc.get("amountCollectedTarget"))
        total_collected += parse_amount(doc.get("amountCollected"))
    if has_payment_data:
        total_collected = payment_revenue

    individual = None
    if salesperson:
        person = next((p for p in salespeople if p["name"] == salesperson), None)
        if person:
            row = store.get(join_path(rows_path, person["id"]))
            if row is not None:
                individual = _individual_sales(row.data, salesperson)
        if individual is None:
            rows = store.stream(collection(rows_path).where("userName", "==", salesperson).take(1))
            if rows:
                individual = _individual_sales(rows[0].data, salesperson)

    return {
        "salesAnalytics": {
            "totalTargetAmount": total_target,
            "totalCollectedAmount": total_collected,
            "monthlyRevenue": [0, 0, 0, 0, 0, 0],
            "conversionRate": _rate(total_collected, total_target),
            "avgDealSize": 0,
        },
        "salespeople": salespeople,
        "individualSalesData": individual,
    }


# --- superadmin: ops payments -----------------------------------------------------


def superadmin_ops_payments(
    store: DocumentStore,
    *,
    month: Optional[int] = None,
    year: Optional[int] = None,
    salesperson: Optional[str] = None,
) -> Dict[str, Any]:
    month_index, year = _resolve_month(month, year)
    start, end = ist_month_bounds(year, month_index)

    query = collection("ops_payments")
    if salesperson:
        query = query.where("submittedBy", "==", salesperson)

    analytics = {
        "totalApprovedAmount": 0.0,
        "totalPendingAmount": 0.0,
        "totalRejectedAmount": 0.0,
        "approvedCount": 0,
        "pendingCount": 0,
        "rejectedCount": 0,
        "totalCount": 0,
    }
    for doc in store.stream(query):
        moment = to_datetime(doc.get("timestamp"))
        if moment is not None and not start <= moment <= end:
            continue
        analytics["totalCount"] += 1
        status = doc.get("status")
        if status in ("approved", "pending", "rejected"):
            analytics[f"total{status.title()}Amount"] += parse_amount(doc.get("amount"))
            analytics[f"{status}Count"] += 1
    return analytics


# --- superadmin: lead sources ---------------------------------------------------


def _map_source(source_database: Any) -> Optional[str]:
    if not source_database:
        return None
    source = str(source_database).lower()
    if "settleloans" in source:
        return "settleloans"
    if "credsettle" in source:
        return "credsettlee"
    if "ama" in source:
        return "ama"
    return None


def superadmin_leads(
    store: DocumentStore,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    salesperson: Optional[str] = None,
    is_filter_applied: bool = False,
) -> Dict[str, Any]:
    leads_query = collection("ama_leads")
    billcut_query = collection("billcutLeads")

    if is_filter_applied:
        try:
            if start_date:
                start = ist_day_start(parse_day(start_date))
                leads_query = leads_query.where("synced_at", ">=", start)
                billcut_query = billcut_query.where("synced_date", ">=", start)
            if end_date:
                end = ist_day_end(parse_day(end_date))
                leads_query = leads_query.where("synced_at", "<=", end)
                billcut_query = billcut_query.where("synced_date", "<=", end)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Dates must be YYYY-MM-DD.") from exc

    if salesperson and salesperson != "all":
        leads_query = leads_query.where("assignedTo", "==", salesperson)
        billcut_query = billcut_query.where("assigned_to", "==", salesperson)

    totals = {source: 0 for source in LEAD_SOURCES}
    matrix = {status: {source: 0 for source in LEAD_SOURCES} for status in LEAD_STATUS_ROWS}

    for doc in store.stream(leads_query.fields("source_database", "status")):
        source = _map_source(doc.get("source_database"))
        if source is None:
            continue
        totals[source] += 1
        status = doc.get("status")
        matrix[status if status in matrix else "No Status"][source] += 1

    for doc in store.stream(billcut_query.fields("category")):
        totals["billcut"] += 1
        category = doc.get("category")
        matrix[category if category in matrix else "No Status"]["billcut"] += 1

    datasets = [
        {
            "label": status,
            "data": [matrix[status][source] for source in LEAD_SOURCES],
            "backgroundColor": STATUS_COLORS[index % len(STATUS_COLORS)],
        }
        for index, status in enumerate(LEAD_STATUS_ROWS)
    ]
    return {
        "leadsBySourceData": {"labels": LEAD_SOURCE_LABELS, "datasets": datasets},
        "sourceTotals": totals,
    }


# --- superadmin: clients ------------------------------------------------------------


def _positive_amount(value: Any) -> float:
    amount = parse_amount(value) if value else 0.0
    return amount if amount > 0 else 0.0


def superadmin_clients(store: DocumentStore) -> Dict[str, Any]:
    clients = collection("clients")
    total_clients = store.count(clients)
    status_distribution = {
        status: store.count(clients.where("adv_status", "==", status))
        + store.count(clients.where("status", "==", status))
        for status in CLIENT_STATUSES
    }

    advocate_count: Dict[str, int] = {}
    advocate_status: Dict[str, Dict[str, int]] = {}
    loan_types: Dict[str, int] = {}
    sources: Dict[str, int] = {}
    cities: Dict[str, int] = {}
    total_loan_amount = 0.0
    loan_count = 0

    docs = store.stream(clients)
    logger.info("Client analytics read documents.", extra={"documents": len(docs)})
    for doc in docs:
        data = doc.data
        status = data.get("adv_status") or data.get("status") or "Inactive"
        advocate = data.get("alloc_adv") or "Unassigned"
        advocate_count[advocate] = advocate_count.get(advocate, 0) + 1
        per_status = advocate_status.setdefault(advocate, {name: 0 for name in CLIENT_STATUSES})
        per_status[status] = per_status.get(status, 0) + 1

        source = data.get("source") or "Unknown"
        sources[source] = sources.get(source, 0) + 1
        city = data.get("city") or "Unknown"
        cities[city] = cities.get(city, 0) + 1

        client_loan = _positive_amount(data.get("creditCardDues")) + _positive_amount(data.get("personalLoanDues"))
        if client_loan > 0:
            total_loan_amount += client_loan
            loan_count += 1

        banks = data.get("banks")
        if isinstance(banks, list):
            for bank in banks:
                loan_type = (bank.get("loanType") if isinstance(bank, dict) else None) or "Unknown"
                loan_types[loan_type] = loan_types.get(loan_type, 0) + 1

    ranked = sorted(advocate_count.items(), key=lambda item: item[1], reverse=True)
    return {
        "totalClients": total_clients,
        "statusDistribution": status_distribution,
        "topAdvocates": [{"name": name, "clientCount": count} for name, count in ranked[:10]],
        "loanTypeDistribution": loan_types,
        "sourceDistribution": sources,
        "cityDistribution": cities,
        "totalLoanAmount": total_loan_amount,
        "avgLoanAmount": round(total_loan_amount / loan_count) if loan_count else 0,
        "advocateStatusDistribution": advocate_status,
    }


# --- superadmin: client payments --------------------------------------------------


def superadmin_payments(store: DocumentStore) -> Dict[str, Any]:
    current = now_utc().astimezone(IST)
    _, month_end = ist_month_bounds(current.year, current.month - 1)

    analytics: Dict[str, Any] = {
        "totalPaymentsAmount": 0,
        "totalPaidAmount": 0,
        "totalPendingAmount": 0,
        "clientCount": 0,
        "paymentMethodDistribution": {},
        "monthlyPaymentsData": [0, 0, 0, 0, 0, 0],
        "paymentTypeDistribution": {"full": 0, "partial": 0},
    }
    month_pending = 0.0
    client_ids = []

    for doc in store.stream(collection("clients_payments").take(PAYMENTS_SAMPLE_SIZE)):
        data = doc.data
        client_ids.append(doc.id)
        analytics["clientCount"] += 1
        analytics["totalPaymentsAmount"] += data.get("totalPaymentAmount") or 0
        analytics["totalPaidAmount"] += data.get("paidAmount") or 0
        analytics["totalPendingAmount"] += data.get("pendingAmount") or 0

        monthly_fees = data.get("monthlyFees") or 0
        start_date = to_datetime(data.get("startDate"))
        if start_date is not None and start_date <= month_end:
            month_pending += monthly_fees

        if (data.get("paymentsCompleted") or 0) > 0:
            if (data.get("paidAmount") or 0) < monthly_fees:
                analytics["paymentTypeDistribution"]["partial"] += 1
            else:
                analytics["paymentTypeDistribution"]["full"] += 1

    month_collected = 0.0
    for client_id in client_ids[:PAYMENT_HISTORY_CLIENTS]:
        history = (
            collection(join_path("clients_payments", client_id, "payment_history"))
            .where("payment_status", "in", ["approved", "Approved"])
            .take(PAYMENT_HISTORY_PER_CLIENT)
        )
        for payment in store.stream(history):
            month_collected += payment.get("requestedAmount") or 0

    total = analytics["totalPaymentsAmount"]
    analytics["completionRate"] = round(analytics["totalPaidAmount"] / total * 100) if total > 0 else 0
    return {
        "paymentAnalytics": analytics,
        "currentMonthPayments": {
            "collected": month_collected,
            "pending": max(0, month_pending - month_collected),
        },
    }


# --- admin dashboard -------------------------------------------------------------------


def _approved_payments_by_user(store: DocumentStore, start, end) -> Tuple[Dict[str, float], bool]:
    approved = collection("payments").where("status", "==", "approved")
    # Timestamps are stored both natively and as ISO strings.
    queries = [
        approved.where("timestamp", ">=", start).where("timestamp", "<=", end),
        approved.where("timestamp", ">=", isoformat(start)).where("timestamp", "<=", isoformat(end)),
    ]
    seen = set()
    totals: Dict[str, float] = {}
    for query in queries:
        for doc in store.stream(query):
            if doc.id in seen:
                continue
            seen.add(doc.id)
            user_key = doc.get("userId") or doc.get("assignedTo") or doc.get("salesperson")
            if user_key:
                totals[user_key] = totals.get(user_key, 0.0) + parse_amount(doc.get("amount"))
    return totals, bool(seen)


def _collected_for(row_id: str, data: Dict[str, Any], payments: Dict[str, float], has_payments: bool) -> Any:
    collected = data.get("amountCollected") or 0
    if has_payments:
        for identifier in (data.get("userId"), data.get("userName"), row_id):
            if identifier and payments.get(identifier):
                return payments[identifier]
    return collected


def admin_dashboard(store: DocumentStore, *, month: str, year: int) -> Dict[str, Any]:
    month_name = month[:3].title()
    if month_name not in MONTH_NAMES:
        raise HTTPException(status_code=400, detail="month must be a short month name like 'Jan'.")
    month_index = MONTH_NAMES.index(month_name)

    sales_users = []
    sales = 0
    advocates = 0
    for doc in store.stream(collection("users").where("status", "==", "active")):
        data = doc.data
        if data.get("role") == "sales":
            sales += 1
            full_name = _full_name(data)
            sales_users.append(
                {
                    "id": doc.id,
                    "uid": data.get("uid"),
                    "firstName": data.get("firstName") or "",
                    "lastName": data.get("lastName") or "",
                    "email": data.get("email"),
                    "fullName": full_name,
                    "status": data.get("status"),
                    "role": data.get("role"),
                    "identifiers": [
                        value
                        for value in (
                            doc.id,
                            data.get("uid"),
                            data.get("firstName"),
                            data.get("lastName"),
                            full_name,
                            data.get("email"),
                        )
                        if value
                    ],
                }
            )
        if data.get("role") == "advocate":
            advocates += 1

    start, end = ist_month_bounds(year, month_index)
    payments, has_payments = _approved_payments_by_user(store, start, end)

    month_id = month_label(year, month_index)
    targets = []
    if store.get(join_path("targets", month_id)) is not None:
        for doc in store.stream(collection(join_path("targets", month_id, "sales_targets"))):
            data = doc.data
            targets.append(
                {
                    "id": doc.id,
                    "userId": data.get("userId"),
                    "userName": data.get("userName"),
                    "amountCollected": _collected_for(doc.id, data, payments, has_payments),
                    "amountCollectedTarget": data.get("amountCollectedTarget") or 0,
                    "convertedLeads": data.get("convertedLeads") or 0,
                    "convertedLeadsTarget": data.get("convertedLeadsTarget") or 0,
                }
            )
    else:
        for doc in store.stream(collection("targets")):
            data = doc.data
            if data.get("month") and data.get("year"):
                continue
            targets.append(
                {
                    "id": doc.id,
                    **serialize(data),
                    "amountCollected": _collected_for(doc.id, data, payments, has_payments),
                }
            )

    return {
        "salesUsers": sales_users,
        "targetData": targets,
        "stats": {"totalUsers": len(sales_users), "totalSales": sales, "totalAdvocates": advocates},
    }


# --- revenue history ----------------------------------------------------------------


def _monthly_totals(store: DocumentStore, collection_name: str) -> Dict[Tuple[int, int], float]:
    totals: Dict[Tuple[int, int], float] = {}
    for doc in store.stream(collection(collection_name).where("status", "==", "approved")):
        moment = to_datetime(doc.get("timestamp"))
        if moment is None:
            continue
        local = moment.astimezone(IST)
        key = (local.year, local.month - 1)
        totals[key] = totals.get(key, 0.0) + parse_amount(doc.get("amount"))
    return totals


def _history_rows(totals: Dict[Tuple[int, int], float], targets: Dict[Tuple[int, int], float]) -> List[Dict[str, Any]]:
    rows = []
    for year, month_index in sorted(totals):
        name = MONTH_NAMES[month_index]
        rows.append(
            {
                "month": name,
                "year": year,
                "fullLabel": f"{name} {year}",
                "collected": totals[(year, month_index)],
                "target": targets.get((year, month_index), 0),
            }
        )
    return rows


def dashboard_history(store: DocumentStore, *, month: Optional[str] = None, year: Optional[int] = None) -> List[Dict[str, Any]]:
    totals = _monthly_totals(store, "payments")

    if month and year:
        parsed = parse_month_label(f"{month}_{year}")
        if parsed is None:
            raise HTTPException(status_code=400, detail="month must be a short month name like 'Jan'.")
        totals = {key: value for key, value in totals.items() if key <= parsed}

    targets: Dict[Tuple[int, int], float] = {}
    for doc in store.stream(collection("targets")):
        key = parse_month_label(doc.id) if "_" in doc.id else None
        if key is None:
            continue
        if doc.get("total"):
            targets[key] = parse_amount(str(doc.get("total")).replace(",", ""))
        elif doc.get("amountCollectedTarget"):
            targets[key] = parse_amount(doc.get("amountCollectedTarget"))
    return _history_rows(totals, targets)


def ops_revenue_history(store: DocumentStore) -> List[Dict[str, Any]]:
    return _history_rows(_monthly_totals(store, "ops_payments"), {})
