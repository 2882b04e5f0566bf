"""Read-only listings and CSV exports for the admin dashboard.

Nothing in this module writes to the database.  The paginated endpoints and
their CSV exports share one query builder so filters and ordering always
agree between what an admin sees and what they download.
"""

import csv
import io
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlmodel import select

from app.config import PAGE_SIZE_DEFAULT, PAGE_SIZE_MAX
from app.errors import ValidationError
from app.models import Balance, Checkin, Child, QrCode, User

DEFAULT_CHILD_SORT = "name"

CHILD_CSV_COLUMNS = [
    "id",
    "name",
    "gender",
    "dateOfBirth",
    "age",
    "parentId",
    "parentName",
    "parentEmail",
    "balanceCents",
    "timesCheckedIn",
    "lastCheckin",
    "qrCode",
]
CHECKIN_CSV_COLUMNS = [
    "id",
    "childId",
    "childName",
    "volunteerName",
    "checkinTime",
    "checkinDate",
]


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    limit = PAGE_SIZE_DEFAULT if limit is None else limit
    limit = max(1, min(limit, PAGE_SIZE_MAX))
    offset = max(0, offset or 0)
    return limit, offset


def age_on(date_of_birth: date | None, today: date) -> int | None:
    if date_of_birth is None:
        return None
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def search_amount_cents(term: str) -> int | None:
    """Read a search term as a dollar amount, e.g. ``"12.5"`` -> 1250."""

    try:
        amount = Decimal(term.strip().lstrip("$"))
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    cents = amount * 100
    if cents != cents.to_integral_value():
        return None
    return int(cents)


def _children_query(search: str | None, sort_by: str | None, order: str | None):
    parent = aliased(User)
    balance_cents = func.coalesce(Balance.amount_cents, 0)
    query = (
        select(
            Child.id,
            Child.name,
            Child.gender,
            Child.date_of_birth,
            Child.parent_id,
            parent.name.label("parent_name"),
            parent.email.label("parent_email"),
            balance_cents.label("balance_cents"),
            Child.times_checked_in,
            Balance.last_checkin,
            QrCode.id.label("qr_code"),
        )
        .join(parent, parent.id == Child.parent_id)
        .outerjoin(Balance, Balance.child_id == Child.id)
        .outerjoin(QrCode, QrCode.child_id == Child.id)
    )

    if search and search.strip():
        term = search.strip()
        clauses = [
            Child.name.icontains(term, autoescape=True),
            parent.name.icontains(term, autoescape=True),
            parent.email.icontains(term, autoescape=True),
            QrCode.id.icontains(term, autoescape=True),
        ]
        cents = search_amount_cents(search)
        if cents is not None:
            clauses.append(balance_cents == cents)
        query = query.where(or_(*clauses))

    # (expression, may be NULL).  Age ascending means youngest first, which
    # is the latest date of birth.
    sort_columns = {
        "name": (Child.name, False),
        "age": (Child.date_of_birth, True),
        "balance": (balance_cents, False),
        "parentName": (parent.name, False),
        "checkins": (Child.times_checked_in, False),
        "lastCheckin": (Balance.last_checkin, True),
    }
    key = sort_by if sort_by in sort_columns else DEFAULT_CHILD_SORT
    expression, nullable = sort_columns[key]
    descending = (order or "asc").lower() == "desc"
    if key == "age":
        descending = not descending
    ordering = [expression.is_(None)] if nullable else []
    ordering.append(expression.desc() if descending else expression.asc())
    ordering.append(Child.id)
    return query.order_by(*ordering)


def _child_row(row, today: date) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "gender": row.gender.value if hasattr(row.gender, "value") else row.gender,
        "date_of_birth": row.date_of_birth,
        "age": age_on(row.date_of_birth, today),
        "parent_id": row.parent_id,
        "parent_name": row.parent_name,
        "parent_email": row.parent_email,
        "balance_cents": row.balance_cents,
        "times_checked_in": row.times_checked_in,
        "last_checkin": row.last_checkin,
        "qr_code": row.qr_code,
    }


async def list_children_report(
    db: AsyncSession,
    search: str | None = None,
    sort_by: str | None = None,
    order: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    paginate: bool = True,
) -> tuple[int, list[dict]]:
    """Return ``(total, rows)`` for the admin children table."""

    query = _children_query(search, sort_by, order)
    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    if paginate:
        limit, offset = clamp_page(limit, offset)
        query = query.offset(offset).limit(limit)
    result = await db.execute(query)
    today = date.today()
    return total, [_child_row(row, today) for row in result.all()]


def parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """Parse ``from``/``to`` query values into a half-open datetime range.

    A date-only ``to`` covers that whole day.
    """

    if not start or not end:
        raise ValidationError("from and to are required")
    try:
        start_at = datetime.fromisoformat(start)
        end_at = datetime.fromisoformat(end)
    except ValueError:
        raise ValidationError("from and to must be ISO dates or datetimes")
    if len(end.strip()) == 10:
        end_at = datetime.combine(end_at.date(), time.min) + timedelta(days=1)
    else:
        end_at = end_at + timedelta(microseconds=1)
    # Stored instants are naive UTC.
    if start_at.tzinfo is not None:
        start_at = start_at.astimezone(timezone.utc).replace(tzinfo=None)
    if end_at.tzinfo is not None:
        end_at = end_at.astimezone(timezone.utc).replace(tzinfo=None)
    if end_at <= start_at:
        raise ValidationError("to must not be before from")
    return start_at, end_at


async def list_checkins_report(
    db: AsyncSession, start: datetime, end: datetime
) -> list[dict]:
    volunteer = aliased(User)
    result = await db.execute(
        select(
            Checkin.id,
            Checkin.child_id,
            Child.name.label("child_name"),
            volunteer.name.label("volunteer_name"),
            Checkin.checkin_time,
            Checkin.checkin_date,
        )
        .join(Child, Child.id == Checkin.child_id)
        .outerjoin(volunteer, volunteer.id == Checkin.volunteer_id)
        .where(Checkin.checkin_time >= start, Checkin.checkin_time < end)
        .order_by(Checkin.checkin_time.desc(), Checkin.id.desc())
    )
    return [
        {
            "id": row.id,
            "child_id": row.child_id,
            "child_name": row.child_name,
            "volunteer_name": row.volunteer_name,
            "checkin_time": row.checkin_time,
            "checkin_date": row.checkin_date,
        }
        for row in result.all()
    ]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def rows_to_csv(rows: list[dict], columns: list[str]) -> str:
    """Render snake_case row dicts under camelCase CSV headers."""

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        record = {}
        for key, value in row.items():
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            record[_camel(key)] = "" if value is None else value
        writer.writerow(record)
    return output.getvalue()
