from datetime import date, datetime
from sqlalchemy import func
from AuditService import BaseService
from Models import Expense, ExpenseCategory
from Helpers import NotFoundError, ConflictError, parse_date

PAYMENT_METHODS = ("Cash", "Bank Deposit", "Cheque")
STATUSES = ("pending", "approved", "rejected", "paid")
DEFAULT_COLOR = "#6554C0"


class ExpenseService(BaseService):

    def get_expenses(self, school_id, limit=50, offset=0, status=None, category_id=None):
        q = self.session.query(Expense).filter(Expense.school_id == school_id)
        if status:
            q = q.filter(Expense.status == status)
        if category_id:
            q = q.filter(Expense.category_id == category_id)
        total = q.count()
        rows = q.order_by(Expense.expense_date.desc(), Expense.id.desc()).offset(offset).limit(limit).all()
        data = []
        for e in rows:
            row = e.to_dict()
            row["category_name"] = e.category.name if e.category else None
            data.append(row)
        return {"data": data, "total": total}

    def _category(self, school_id, category_id) -> ExpenseCategory:
        category = (self.session.query(ExpenseCategory)
                    .filter_by(id=category_id, school_id=school_id, is_active=True).first())
        if category is None:
            raise NotFoundError("Expense category not found")
        return category

    def create_expense(self, school_id, data: dict) -> Expense:
        try:
            amount = float(data.get("amount"))
        except (TypeError, ValueError):
            raise ValueError("amount must be a number")
        if not amount.is_integer():
            raise ValueError("amount must be a whole amount")
        if amount <= 0:
            raise ValueError("amount must be greater than zero")
        amount = int(amount)
        description = (data.get("description") or "").strip()
        if not description:
            raise ValueError("description is required")
        if data.get("category_id"):
            self._category(school_id, data["category_id"])

        method = data.get("payment_method")
        expense = Expense(
            school_id=school_id,
            category_id=data.get("category_id"),
            amount=amount,
            description=description,
            vendor=data.get("vendor"),
            reference_number=data.get("reference_number"),
            expense_date=parse_date(data.get("expense_date"), date.today()),
            payment_method=method if method in PAYMENT_METHODS else "Cash",
            term=data.get("term"),
            year=data.get("year"),
            notes=data.get("notes"),
            status="pending",
            created_by=self.actor_id,
        )
        self.session.add(expense)
        self.session.flush()
        self.audit(school_id, "create", "expense", expense.id, description, {"amount": amount})
        self.commit()
        return expense

    def update_expense_status(self, school_id, expense_id, status) -> Expense:
        if status not in STATUSES or status == "pending":
            raise ValueError("status must be approved, rejected or paid")
        expense = self.session.query(Expense).filter_by(id=expense_id, school_id=school_id).first()
        if expense is None:
            raise NotFoundError("Expense not found")
        if expense.status == "rejected" and status == "paid":
            raise ValueError("A rejected expense cannot be paid")
        expense.status = status
        expense.approved_by = self.actor_id
        expense.approved_at = datetime.now()
        self.audit(school_id, "update", "expense", expense.id, expense.description, {"status": status})
        self.commit()
        return expense

    def get_expense_categories(self, school_id):
        return (self.session.query(ExpenseCategory)
                .filter_by(school_id=school_id, is_active=True)
                .order_by(ExpenseCategory.name).all())

    def create_expense_category(self, school_id, name, description=None, color=None) -> ExpenseCategory:
        name = (name or "").strip()
        if not name:
            raise ValueError("Category name is required")
        existing = self.session.query(ExpenseCategory).filter_by(school_id=school_id, name=name).first()
        if existing is not None and existing.is_active:
            raise ConflictError(f"Category {name} already exists")
        if existing is not None:
            # reactivate rather than hit the unique constraint
            existing.is_active = True
            existing.description = description
            existing.color = color or existing.color
            category = existing
        else:
            category = ExpenseCategory(school_id=school_id, name=name, description=description,
                                       color=color or DEFAULT_COLOR)
            self.session.add(category)
        self.commit()
        return category

    def delete_expense_category(self, school_id, category_id):
        category = self._category(school_id, category_id)
        category.is_active = False
        self.commit()

    def expense_totals(self, school_id, year=None):
        q = (self.session.query(ExpenseCategory.name, func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
             .select_from(Expense)
             .outerjoin(ExpenseCategory, ExpenseCategory.id == Expense.category_id)
             .filter(Expense.school_id == school_id, Expense.status != "rejected"))
        if year:
            q = q.filter(Expense.year == year)
        rows = q.group_by(ExpenseCategory.name).all()
        return [{"category": name or "Uncategorised", "count": count, "total": int(total)}
                for name, count, total in rows]
