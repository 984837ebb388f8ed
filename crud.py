"""
Database operations behind the expense API.

Everything here takes an open SQLAlchemy ``Session`` and a ``User`` and never
touches HTTP; the route handlers in ``main`` translate results and missing
records into responses.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, joinedload

from models import Category, Expense, User
from months import add_months, month_bounds

logger = logging.getLogger(__name__)


SEED_CATEGORIES = ["Groceries", "Rent", "Transport", "Entertainment", "Utilities"]

# (category, amount, months back from the current one, day of month, description)
SEED_EXPENSES = [
    ("Rent", "1200.00", 0, 1, "Monthly rent"),
    ("Groceries", "84.35", 0, 3, "Weekly shop"),
    ("Transport", "45.00", 0, 5, "Transit pass top-up"),
    ("Utilities", "96.20", 0, 8, "Electricity bill"),
    ("Entertainment", "18.50", 0, 12, "Cinema"),
    ("Groceries", "62.10", 0, 14, None),
    ("Rent", "1200.00", 1, 1, "Monthly rent"),
    ("Groceries", "71.80", 1, 6, "Weekly shop"),
    ("Entertainment", "42.00", 1, 20, "Concert tickets"),
    ("Transport", "23.75", 1, 25, "Taxi"),
]


def _expense_query(db: Session, user: User, month: Optional[str] = None, category: Optional[str] = None) -> Query:
    query = db.query(Expense).filter(Expense.user_id == user.id)

    bounds = month_bounds(month)
    if bounds:
        start, end = bounds
        query = query.filter(Expense.date >= start)
        if end is not None:
            query = query.filter(Expense.date < end)

    if category:
        query = query.filter(Expense.category.has(Category.name == category))

    return query


def filter_expenses(db: Session, user: User, month: Optional[str] = None, category: Optional[str] = None) -> List[Expense]:
    """User's expenses, optionally limited to a month and an exact category name, oldest first."""
    return (
        _expense_query(db, user, month, category)
        .options(joinedload(Expense.category))
        .order_by(Expense.date.asc(), Expense.id.asc())
        .all()
    )


# ---------- Users / categories ----------
def get_or_create_user(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user

    user = User(email=email)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.query(User).filter(User.email == email).one()
    db.refresh(user)
    logger.info("Created user %s", email)
    return user


def get_or_create_category(db: Session, user: User, name: str) -> Category:
    """
    Return the user's category called ``name``, creating it when missing.

    A concurrent request may insert the same name between the lookup and the
    insert; the unique (user_id, name) constraint rejects the loser, which then
    reads back the winner's row.
    """
    name = name.strip()
    user_id = user.id

    category = db.query(Category).filter(Category.user_id == user_id, Category.name == name).first()
    if category:
        return category

    category = Category(name=name, user_id=user_id)
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.query(Category).filter(Category.user_id == user_id, Category.name == name).one()
    db.refresh(category)
    logger.info("Created category %r for user %s", name, user_id)
    return category


def list_categories(db: Session, user: User) -> List[Category]:
    return (
        db.query(Category)
        .filter(Category.user_id == user.id)
        .order_by(Category.name.asc())
        .all()
    )


# ---------- Expenses ----------
def get_user_expense(db: Session, user: User, expense_id: int) -> Optional[Expense]:
    return db.query(Expense).filter(Expense.id == expense_id, Expense.user_id == user.id).first()


def create_expense(
    db: Session,
    user: User,
    amount,
    expense_date: date,
    category_name: str,
    description: Optional[str] = None,
) -> Expense:
    category = get_or_create_category(db, user, category_name)

    exp = Expense(
        amount=amount,
        date=expense_date,
        description=description,
        category_id=category.id,
        user_id=user.id,
    )
    db.add(exp)
    db.commit()
    db.refresh(exp)
    return exp


def update_expense(
    db: Session,
    user: User,
    exp: Expense,
    amount,
    expense_date: date,
    category_name: str,
    description: Optional[str] = None,
) -> Expense:
    # resolve first: the category upsert may roll the session back
    category = get_or_create_category(db, user, category_name)

    exp.amount = amount
    exp.date = expense_date
    exp.description = description
    exp.category_id = category.id
    db.commit()
    db.refresh(exp)
    return exp


def delete_expense(db: Session, exp: Expense) -> None:
    expense_id = exp.id
    db.delete(exp)
    db.commit()
    logger.info("Deleted expense %s", expense_id)


# ---------- Summary ----------
def _money(value) -> float:
    return round(float(value or 0), 2)


def summarize_expenses(db: Session, user: User, month: Optional[str] = None, category: Optional[str] = None) -> Dict[str, Any]:
    """Totals for the filtered expenses plus the per-category breakdown used by the chart."""
    base = _expense_query(db, user, month, category)

    count, total, largest = base.with_entities(
        func.count(Expense.id),
        func.sum(Expense.amount),
        func.max(Expense.amount),
    ).one()

    rows = (
        base.join(Category, Expense.category_id == Category.id)
        .with_entities(
            Category.name,
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("count"),
        )
        .group_by(Category.name)
        .all()
    )
    by_category = sorted(
        ({"category": name, "total": _money(cat_total), "count": cat_count} for name, cat_total, cat_count in rows),
        key=lambda row: (-row["total"], row["category"]),
    )

    total = _money(total)
    return {
        "month": month if month_bounds(month) else None,
        "category": category or None,
        "total": total,
        "count": count,
        "average": round(total / count, 2) if count else 0.0,
        "largest": _money(largest),
        "byCategory": by_category,
    }


# ---------- Seeding ----------
def seed_demo_data(db: Session, email: str, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Make sure the demo user has the default categories and some sample expenses.

    Safe to call repeatedly: sample expenses are only inserted while the user
    has none.
    """
    today = today or date.today()
    user = get_or_create_user(db, email)

    categories = {name: get_or_create_category(db, user, name) for name in SEED_CATEGORIES}

    created = 0
    has_expenses = db.query(Expense.id).filter(Expense.user_id == user.id).first() is not None
    if not has_expenses:
        for cat_name, amount, months_back, day, description in SEED_EXPENSES:
            year, mon = add_months(today.year, today.month, -months_back)
            db.add(Expense(
                amount=Decimal(amount),
                date=date(year, mon, day),
                description=description,
                category_id=categories[cat_name].id,
                user_id=user.id,
            ))
            created += 1
        db.commit()
        logger.info("Seeded %d expenses for %s", created, email)

    return {
        "message": "Seeded demo data" if created else "Demo data already present",
        "created": created,
        "expenses": db.query(Expense).filter(Expense.user_id == user.id).count(),
        "categories": db.query(Category).filter(Category.user_id == user.id).count(),
    }
