"""
Fee structures, invoicing, payments and the finance ledger.

Every invoice writes a debit to ``finance_transactions`` and every payment a
credit, so a student's statement is the running sum of their non-voided
ledger rows. Voiding a payment voids its credit and restores the invoice it
was applied to.
"""
from datetime import date, datetime
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from AuditService import BaseService
from Models import (FeeStructure, Scholarship, StudentScholarship, StudentFeeOverride, Invoice,
                    InvoiceItem, FeePayment, FinanceTransaction, Student, Expense)
from Helpers import NotFoundError, ConflictError, parse_date, aging_bucket

PAYMENT_METHODS = ("Cash", "Bank Deposit", "Cheque", "Mobile Money")
SCHOLARSHIP_TYPES = ("percentage", "fixed")
BOARDING_STATUSES = ("day", "boarding", "all")
STRUCTURE_FIELDS = ("class_level", "fee_type", "amount", "term", "year", "boarding_status", "description")


def _amount(value, field="amount", allow_zero=True, whole=True):
    """Money is held in whole shillings; percentages may be fractional."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number")
    if whole and not amount.is_integer():
        raise ValueError(f"{field} must be a whole amount")
    if amount < 0:
        raise ValueError(f"{field} cannot be negative")
    if amount == 0 and not allow_zero:
        raise ValueError(f"{field} must be greater than zero")
    return int(amount) if whole else amount


class FeeService(BaseService):

    def _student(self, school_id, student_id) -> Student:
        student = self.session.query(Student).filter_by(id=student_id, school_id=school_id).first()
        if student is None:
            raise NotFoundError("Student not found")
        return student

    ##### FEE STRUCTURES #####

    def get_fee_structures(self, school_id, class_level=None, year=None, term=None):
        q = self.session.query(FeeStructure).filter_by(school_id=school_id, is_active=True)
        if class_level:
            q = q.filter(FeeStructure.class_level == class_level)
        if year:
            q = q.filter(FeeStructure.year == year)
        if term:
            q = q.filter(or_(FeeStructure.term == term, FeeStructure.term.is_(None)))
        return q.order_by(FeeStructure.class_level, FeeStructure.fee_type).all()

    def _validate_structure(self, data):
        if data.get("boarding_status") and data["boarding_status"] not in BOARDING_STATUSES:
            raise ValueError(f"boarding_status must be one of: {', '.join(BOARDING_STATUSES)}")
        if data.get("term") is not None and data["term"] not in (1, 2, 3):
            raise ValueError("term must be 1, 2 or 3")

    def create_fee_structure(self, school_id, data: dict) -> FeeStructure:
        for field in ("class_level", "fee_type", "year"):
            if not data.get(field):
                raise ValueError(f"{field} is required")
        amount = _amount(data.get("amount"))
        self._validate_structure(data)
        duplicate = (self.session.query(FeeStructure.id)
                     .filter_by(school_id=school_id, class_level=data["class_level"], fee_type=data["fee_type"],
                                term=data.get("term"), year=data["year"],
                                boarding_status=data.get("boarding_status"), is_active=True)
                     .first())
        if duplicate:
            raise ConflictError("A fee structure for this class, fee type and period already exists")
        structure = FeeStructure(school_id=school_id, class_level=data["class_level"], fee_type=data["fee_type"],
                                 amount=amount, term=data.get("term"), year=data["year"],
                                 boarding_status=data.get("boarding_status"), description=data.get("description"))
        self.session.add(structure)
        self.commit()
        return structure

    def update_fee_structure(self, school_id, structure_id, data: dict) -> FeeStructure:
        structure = (self.session.query(FeeStructure)
                     .filter_by(id=structure_id, school_id=school_id, is_active=True).first())
        if structure is None:
            raise NotFoundError("Fee structure not found")
        self._validate_structure(data)
        if "amount" in data:
            data = dict(data, amount=_amount(data["amount"]))
        for field in STRUCTURE_FIELDS:
            if field in data:
                setattr(structure, field, data[field])
        self.commit()
        return structure

    def delete_fee_structure(self, school_id, structure_id):
        structure = (self.session.query(FeeStructure)
                     .filter_by(id=structure_id, school_id=school_id, is_active=True).first())
        if structure is None:
            raise NotFoundError("Fee structure not found")
        structure.is_active = False
        self.commit()

    ##### SCHOLARSHIPS & OVERRIDES #####

    def get_scholarships(self, school_id):
        return self.session.query(Scholarship).filter_by(school_id=school_id, is_active=True).order_by(Scholarship.name).all()

    def create_scholarship(self, school_id, data: dict) -> Scholarship:
        if not data.get("name"):
            raise ValueError("name is required")
        if data.get("type") not in SCHOLARSHIP_TYPES:
            raise ValueError("type must be percentage or fixed")
        value = _amount(data.get("value"), "value", whole=data["type"] == "fixed")
        if data["type"] == "percentage" and value > 100:
            raise ValueError("A percentage scholarship cannot exceed 100")
        scholarship = Scholarship(school_id=school_id, name=data["name"], type=data["type"], value=value,
                                  fee_types=list(data.get("fee_types") or []), description=data.get("description"))
        self.session.add(scholarship)
        self.commit()
        return scholarship

    def assign_scholarship(self, school_id, student_id, scholarship_id, year, term=None) -> StudentScholarship:
        self._student(school_id, student_id)
        scholarship = (self.session.query(Scholarship)
                       .filter_by(id=scholarship_id, school_id=school_id, is_active=True).first())
        if scholarship is None:
            raise NotFoundError("Scholarship not found")
        if not year:
            raise ValueError("year is required")
        row = StudentScholarship(school_id=school_id, student_id=student_id, scholarship_id=scholarship.id,
                                 year=year, term=term)
        self.session.add(row)
        self.commit()
        return row

    def get_overrides(self, school_id, student_id):
        return (self.session.query(StudentFeeOverride)
                .filter_by(school_id=school_id, student_id=student_id)
                .order_by(StudentFeeOverride.year, StudentFeeOverride.fee_type).all())

    def create_override(self, school_id, data: dict) -> StudentFeeOverride:
        self._student(school_id, data.get("student_id"))
        if not data.get("fee_type") or not data.get("year"):
            raise ValueError("fee_type and year are required")
        override = StudentFeeOverride(school_id=school_id, student_id=data["student_id"], fee_type=data["fee_type"],
                                      custom_amount=_amount(data.get("custom_amount"), "custom_amount"),
                                      year=data["year"], term=data.get("term"), reason=data.get("reason"))
        self.session.add(override)
        self.commit()
        return override

    def delete_override(self, school_id, override_id):
        override = self.session.query(StudentFeeOverride).filter_by(id=override_id, school_id=school_id).first()
        if override is None:
            raise NotFoundError("Fee override not found")
        self.session.delete(override)
        self.commit()

    ##### INVOICES #####

    def generate_invoices(self, school_id, term, year, due_date=None, class_level=None):
        structures_q = (self.session.query(FeeStructure)
                        .filter(FeeStructure.school_id == school_id, FeeStructure.year == year,
                                FeeStructure.is_active.is_(True),
                                or_(FeeStructure.term == term, FeeStructure.term.is_(None))))
        if class_level:
            structures_q = structures_q.filter(FeeStructure.class_level == class_level)
        structures = structures_q.all()
        if not structures:
            raise ValueError("No fee structures found for this term/year")

        students_q = self.session.query(Student).filter_by(school_id=school_id, is_active=True)
        if class_level:
            students_q = students_q.filter(Student.class_level == class_level)
        students = students_q.order_by(Student.id).all()
        if not students:
            raise ValueError("No active students found")

        invoiced = {sid for (sid,) in self.session.query(Invoice.student_id)
                    .filter_by(school_id=school_id, term=term, year=year).all()}

        overrides = {}
        # term-specific overrides win over whole-year ones
        for o in (self.session.query(StudentFeeOverride)
                  .filter(StudentFeeOverride.school_id == school_id, StudentFeeOverride.year == year,
                          or_(StudentFeeOverride.term == term, StudentFeeOverride.term.is_(None)))
                  .order_by(StudentFeeOverride.term.isnot(None), StudentFeeOverride.id).all()):
            overrides[(o.student_id, o.fee_type)] = o.custom_amount

        scholarships = {}
        for award in (self.session.query(StudentScholarship)
                      .join(Scholarship, Scholarship.id == StudentScholarship.scholarship_id)
                      .filter(StudentScholarship.school_id == school_id, StudentScholarship.year == year,
                              StudentScholarship.status == "active", Scholarship.is_active.is_(True),
                              or_(StudentScholarship.term == term, StudentScholarship.term.is_(None)))
                      .all()):
            scholarships.setdefault(award.student_id, []).append(award.scholarship)

        due = parse_date(due_date)
        created, skipped = 0, 0
        try:
            for student in students:
                if student.id in invoiced:
                    skipped += 1
                    continue
                applicable = [s for s in structures
                              if s.class_level == student.class_level
                              and (not s.boarding_status or s.boarding_status in ("all", student.boarding_status))]
                if not applicable:
                    skipped += 1
                    continue

                items = []
                for s in applicable:
                    original = overrides.get((student.id, s.fee_type), s.amount)
                    amount = original
                    for scholarship in scholarships.get(student.id, []):
                        if scholarship.covers(s.fee_type):
                            amount = scholarship.discounted(amount)
                    items.append(InvoiceItem(fee_type=s.fee_type, description=s.description or s.fee_type,
                                             original_amount=original, discount=original - amount, amount=amount))
                total = sum(i.amount for i in items)
                number = f"INV-{year}-T{term}-{school_id}-{student.id:05d}"
                invoice = Invoice(school_id=school_id, student_id=student.id, invoice_number=number,
                                  term=term, year=year, total_amount=total, amount_paid=0, balance=total,
                                  due_date=due, status="unpaid" if total > 0 else "paid", items=items)
                self.session.add(invoice)
                self.session.flush()
                self.session.add(FinanceTransaction(
                    school_id=school_id, student_id=student.id, invoice_id=invoice.id,
                    transaction_type="debit", amount=total, term=term, year=year,
                    description=f"Fees - T{term}/{year} - {number}"))
                created += 1
            self.audit(school_id, "create", "invoice", None, None,
                       {"term": term, "year": year, "created": created, "skipped": skipped})
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return {"invoices_created": created, "invoices_skipped": skipped}

    def get_invoices(self, school_id, status=None, term=None, year=None, student_id=None, limit=50, offset=0):
        q = (self.session.query(Invoice, Student)
             .join(Student, Student.id == Invoice.student_id)
             .filter(Invoice.school_id == school_id))
        if status:
            q = q.filter(Invoice.status == status)
        if term:
            q = q.filter(Invoice.term == term)
        if year:
            q = q.filter(Invoice.year == year)
        if student_id:
            q = q.filter(Invoice.student_id == student_id)
        total = q.count()
        rows = q.order_by(Invoice.id.desc()).offset(offset).limit(limit).all()
        data = []
        for invoice, student in rows:
            row = invoice.to_dict()
            row["student"] = student.summary()
            data.append(row)
        return {"data": data, "total": total}

    def get_invoice(self, school_id, invoice_id) -> Invoice:
        invoice = self.session.query(Invoice).filter_by(id=invoice_id, school_id=school_id).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    def update_invoice(self, school_id, invoice_id, data: dict) -> Invoice:
        invoice = self.get_invoice(school_id, invoice_id)
        if "due_date" in data:
            invoice.due_date = parse_date(data["due_date"])
        if "notes" in data:
            invoice.notes = data["notes"]
        self.commit()
        return invoice

    def _remind(self, invoice, reminder_type):
        invoice.reminder_count = (invoice.reminder_count or 0) + 1
        invoice.reminder_sent_at = datetime.now()
        invoice.last_reminder_type = reminder_type

    def send_reminder(self, school_id, invoice_id, reminder_type="sms") -> Invoice:
        invoice = self.get_invoice(school_id, invoice_id)
        if invoice.balance <= 0:
            raise ValueError("Invoice has no outstanding balance")
        self._remind(invoice, reminder_type)
        self.commit()
        return invoice

    def send_bulk_reminders(self, school_id, term=None, year=None, min_balance=0, reminder_type="sms") -> int:
        q = self.session.query(Invoice).filter(Invoice.school_id == school_id, Invoice.balance > (min_balance or 0))
        if term:
            q = q.filter(Invoice.term == term)
        if year:
            q = q.filter(Invoice.year == year)
        invoices = q.all()
        for invoice in invoices:
            self._remind(invoice, reminder_type)
        self.commit()
        return len(invoices)

    ##### PAYMENTS #####

    def _next_receipt_number(self, school_id):
        prefix = f"REC-{date.today().year}-"
        last = (self.session.query(FeePayment.receipt_number)
                .filter(FeePayment.school_id == school_id, FeePayment.receipt_number.like(f"{prefix}%"))
                .order_by(FeePayment.id.desc()).first())
        seq = 1
        if last:
            try:
                seq = int(last[0][len(prefix):]) + 1
            except ValueError:
                seq = 1
        return f"{prefix}{seq:04d}"

    def record_payment(self, school_id, data: dict) -> FeePayment:
        for field in ("student_id", "fee_type", "term", "year"):
            if not data.get(field):
                raise ValueError(f"{field} is required")
        amount = _amount(data.get("amount_paid"), "amount_paid", allow_zero=False)
        student = self._student(school_id, data["student_id"])
        term, year = data["term"], data["year"]

        invoice = (self.session.query(Invoice)
                   .filter_by(school_id=school_id, student_id=student.id, term=term, year=year).first())
        if invoice is not None:
            amount_due = invoice.balance
            if invoice.balance > 0 and amount > invoice.balance:
                raise ValueError(f"OVERPAYMENT: Amount ({amount:,.0f}) exceeds invoice balance ({invoice.balance:,.0f})")
        else:
            amount_due = _amount(data.get("amount_due") or 0, "amount_due")
        balance = max(0, amount_due - amount)

        method = data.get("payment_method") or "Cash"
        if method not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        receipt = data.get("receipt_number") or self._next_receipt_number(school_id)
        if self.session.query(FeePayment.id).filter_by(school_id=school_id, receipt_number=receipt).first():
            raise ConflictError(f"Receipt number {receipt} already exists")

        payment = FeePayment(school_id=school_id, student_id=student.id,
                             invoice_id=invoice.id if invoice else None, fee_type=data["fee_type"],
                             amount_due=amount_due, amount_paid=amount, balance=balance, term=term, year=year,
                             payment_date=parse_date(data.get("payment_date"), date.today()),
                             payment_method=method, receipt_number=receipt,
                             status="paid" if balance <= 0 else "partial", notes=data.get("notes"),
                             recorded_by=self.actor_id)
        self.session.add(payment)
        self.session.flush()
        self.session.add(FinanceTransaction(
            school_id=school_id, student_id=student.id, payment_id=payment.id,
            invoice_id=invoice.id if invoice else None, transaction_type="credit", amount=amount,
            term=term, year=year, transaction_date=payment.payment_date,
            description=f"Payment - {data['fee_type']} (T{term}/{year}) - {receipt}"))
        if invoice is not None:
            invoice.apply_payment(amount)
        self.audit(school_id, "create", "fee_payment", payment.id, student.name,
                   {"amount": amount, "receipt_number": receipt})
        self.commit()
        return payment

    def void_payment(self, school_id, payment_id, reason) -> FeePayment:
        payment = (self.session.query(FeePayment)
                   .filter_by(id=payment_id, school_id=school_id, is_deleted=False).first())
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.is_voided:
            raise ValueError("Payment is already voided")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to void a payment")

        payment.is_voided = True
        payment.void_reason = reason.strip()
        payment.voided_at = datetime.now()
        payment.voided_by = self.actor_id
        payment.status = "voided"
        for txn in self.session.query(FinanceTransaction).filter_by(payment_id=payment.id).all():
            txn.is_voided = True
        if payment.invoice_id:
            invoice = self.session.get(Invoice, payment.invoice_id)
            if invoice is not None:
                invoice.reverse_payment(payment.amount_paid)
        self.audit(school_id, "void", "fee_payment", payment.id, payment.receipt_number, {"reason": payment.void_reason})
        self.commit()
        return payment

    def get_payments(self, school_id, term=None, year=None, limit=50, offset=0):
        q = (self.session.query(FeePayment, Student)
             .join(Student, Student.id == FeePayment.student_id)
             .filter(FeePayment.school_id == school_id, FeePayment.is_deleted.is_(False)))
        if term:
            q = q.filter(FeePayment.term == term)
        if year:
            q = q.filter(FeePayment.year == year)
        total = q.count()
        rows = q.order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).offset(offset).limit(limit).all()
        data = []
        for payment, student in rows:
            row = payment.to_dict()
            row["student_name"] = student.name
            row["class_level"] = student.class_level
            data.append(row)
        return {"data": data, "total": total}

    def get_student_payments(self, school_id, student_id):
        self._student(school_id, student_id)
        return (self.session.query(FeePayment)
                .filter_by(school_id=school_id, student_id=student_id, is_deleted=False)
                .order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).all())

    ##### REPORTS #####

    def statement(self, school_id, student_id):
        student = self._student(school_id, student_id)
        rows = (self.session.query(FinanceTransaction)
                .filter_by(school_id=school_id, student_id=student.id, is_voided=False)
                .order_by(FinanceTransaction.transaction_date, FinanceTransaction.id).all())
        running = 0
        entries = []
        for txn in rows:
            running += txn.amount if txn.transaction_type == "debit" else -txn.amount
            entry = txn.to_dict()
            entry["running_balance"] = running
            entries.append(entry)
        return {"student": student.summary(), "transactions": entries, "balance": running}

    def student_fees(self, school_id, student_id):
        invoices = (self.session.query(Invoice).filter_by(school_id=school_id, student_id=student_id)
                    .order_by(Invoice.year.desc(), Invoice.term.desc()).all())
        payments = [p for p in self.get_student_payments(school_id, student_id) if not p.is_voided]
        return {
            "invoices": [i.to_dict() for i in invoices],
            "payments": [p.to_dict() for p in payments],
            "balance": sum(i.balance for i in invoices),
        }

    def debtors(self, school_id, term=None, year=None, class_level=None, limit=50, offset=0, today=None):
        today = today or date.today()
        q = (self.session.query(Invoice, Student)
             .join(Student, Student.id == Invoice.student_id)
             .filter(Invoice.school_id == school_id, Invoice.balance > 0))
        if term:
            q = q.filter(Invoice.term == term)
        if year:
            q = q.filter(Invoice.year == year)
        if class_level:
            q = q.filter(Student.class_level == class_level)

        buckets = {b: {"count": 0, "amount": 0} for b in ("current", "1-30", "31-60", "61-90", "90+")}
        data = []
        for invoice, student in q.order_by(Invoice.balance.desc(), Invoice.id).all():
            reference = invoice.due_date or invoice.created_at.date()
            days = (today - reference).days
            bucket = aging_bucket(days)
            buckets[bucket]["count"] += 1
            buckets[bucket]["amount"] += invoice.balance
            data.append({
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "student": student.summary(),
                "parent_contact": student.parent_contact,
                "total_amount": invoice.total_amount,
                "amount_paid": invoice.amount_paid,
                "balance": invoice.balance,
                "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
                "days_overdue": max(0, days),
                "aging_bucket": bucket,
                "reminder_count": invoice.reminder_count,
            })
        return {
            "data": data[offset:offset + limit],
            "total": len(data),
            "summary": {
                "total_debtors": len(data),
                "total_outstanding": sum(d["balance"] for d in data),
                "aging": buckets,
            },
        }

    def summary(self, school_id, term=None, year=None):
        invoices = self.session.query(func.coalesce(func.sum(Invoice.total_amount), 0),
                                      func.coalesce(func.sum(Invoice.balance), 0)).filter(Invoice.school_id == school_id)
        payments = (self.session.query(func.coalesce(func.sum(FeePayment.amount_paid), 0))
                    .filter(FeePayment.school_id == school_id, FeePayment.is_voided.is_(False),
                            FeePayment.is_deleted.is_(False)))
        expenses = (self.session.query(func.coalesce(func.sum(Expense.amount), 0))
                    .filter(Expense.school_id == school_id, Expense.status.in_(("approved", "paid"))))
        if term:
            invoices = invoices.filter(Invoice.term == term)
            payments = payments.filter(FeePayment.term == term)
            expenses = expenses.filter(Expense.term == term)
        if year:
            invoices = invoices.filter(Invoice.year == year)
            payments = payments.filter(FeePayment.year == year)
            expenses = expenses.filter(Expense.year == year)

        invoiced, outstanding = invoices.one()
        collected = payments.scalar()
        spent = expenses.scalar()
        return {
            "total_invoiced": int(invoiced),
            "total_collected": int(collected),
            "total_outstanding": int(outstanding),
            "total_expenses": int(spent),
            "net_position": int(collected) - int(spent),
            "collection_rate": round(float(collected) * 100.0 / float(invoiced), 1) if invoiced else 0.0,
        }
