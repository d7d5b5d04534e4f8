from datetime import date
from sqlalchemy import func
from AuditService import BaseService
from AttendanceService import ATTENDANCE_DEFAULTS
from Models import (School, UserSchool, User, Student, Teacher, AttendanceSettings, GateAttendance,
                    TeacherAttendance, FeePayment, Invoice, Expense)
from Helpers import NotFoundError, ConflictError, PermissionDenied, is_valid_email

SCHOOL_FIELDS = ("name", "address", "phone", "email", "motto", "logo_url")
SETTINGS_FIELDS = ("current_term", "current_year", "streams", "grading_config")


class SchoolService(BaseService):

    def get_schools(self, user):
        q = self.session.query(School).filter(School.is_active.is_(True))
        if not user.is_super_admin:
            q = q.join(UserSchool, UserSchool.school_id == School.id).filter(UserSchool.user_id == user.id)
        return q.order_by(School.name).all()

    def get_school(self, school_id, user=None) -> School:
        school = self.session.get(School, school_id)
        if school is None:
            raise NotFoundError("School not found")
        if user is not None and not user.is_super_admin and user.membership(school_id) is None:
            raise NotFoundError("School not found")
        return school

    def create_school(self, data: dict) -> School:
        if not data.get("name") or not data.get("code"):
            raise ValueError("name and code are required")
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        if self.session.query(School.id).filter_by(code=data["code"]).first():
            raise ConflictError(f"A school with code {data['code']} already exists")
        school = School(code=data["code"], streams={}, current_term=1, current_year=date.today().year)
        for field in SCHOOL_FIELDS:
            if field in data:
                setattr(school, field, data[field])
        self.session.add(school)
        self.session.flush()
        self.session.add(AttendanceSettings(school_id=school.id, **ATTENDANCE_DEFAULTS))
        self.audit(school.id, "create", "school", school.id, school.name)
        self.commit()
        return school

    def update_school(self, school_id, data: dict) -> School:
        school = self.get_school(school_id)
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        if "name" in data and not data["name"]:
            raise ValueError("name cannot be empty")
        changes = [f for f in SCHOOL_FIELDS if f in data]
        for field in changes:
            setattr(school, field, data[field])
        self.audit(school.id, "update", "school", school.id, school.name, {"changes": changes})
        self.commit()
        return school

    def delete_school(self, school_id):
        if self.actor is None or not self.actor.is_super_admin:
            raise PermissionDenied("Super admin access required")
        school = self.get_school(school_id)
        school.is_active = False
        self.audit(school.id, "delete", "school", school.id, school.name, {"type": "soft_delete"})
        self.commit()

    def get_settings(self, school_id):
        school = self.get_school(school_id)
        return {field: getattr(school, field) for field in SETTINGS_FIELDS}

    def update_settings(self, school_id, data: dict):
        school = self.get_school(school_id)
        if "current_term" in data and data["current_term"] not in (1, 2, 3):
            raise ValueError("current_term must be 1, 2 or 3")
        if "current_year" in data and not isinstance(data["current_year"], int):
            raise ValueError("current_year must be a year")
        if "streams" in data and not isinstance(data["streams"], dict):
            raise ValueError("streams must map class levels to stream names")
        grading = data.get("grading_config")
        if grading is not None and not isinstance(grading, dict):
            raise ValueError("grading_config must be an object")
        for field in SETTINGS_FIELDS:
            if field in data:
                setattr(school, field, data[field])
        self.audit(school.id, "update", "school_settings", school.id, school.name,
                   {"changes": [f for f in SETTINGS_FIELDS if f in data]})
        self.commit()
        return {field: getattr(school, field) for field in SETTINGS_FIELDS}

    def platform_stats(self):
        count = lambda q: q.scalar() or 0
        return {
            "schools": count(self.session.query(func.count(School.id))),
            "active_schools": count(self.session.query(func.count(School.id)).filter(School.is_active.is_(True))),
            "users": count(self.session.query(func.count(User.id))),
            "students": count(self.session.query(func.count(Student.id)).filter(Student.is_active.is_(True))),
            "teachers": count(self.session.query(func.count(Teacher.id)).filter(Teacher.is_active.is_(True))),
        }

    def dashboard(self, school_id, today=None):
        today = today or date.today()
        school = self.get_school(school_id)
        students = (self.session.query(Student.gender, Student.boarding_status, func.count(Student.id))
                    .filter_by(school_id=school_id, is_active=True)
                    .group_by(Student.gender, Student.boarding_status).all())
        by_gender, by_boarding = {}, {}
        for gender, boarding, n in students:
            by_gender[gender] = by_gender.get(gender, 0) + n
            by_boarding[boarding] = by_boarding.get(boarding, 0) + n

        gate = dict(self.session.query(GateAttendance.status, func.count(GateAttendance.id))
                    .filter_by(school_id=school_id, date=today)
                    .group_by(GateAttendance.status).all())
        teachers_in = (self.session.query(func.count(TeacherAttendance.id))
                       .filter(TeacherAttendance.school_id == school_id, TeacherAttendance.date == today,
                               TeacherAttendance.check_in_time.isnot(None)).scalar())
        collected = (self.session.query(func.coalesce(func.sum(FeePayment.amount_paid), 0))
                     .filter(FeePayment.school_id == school_id, FeePayment.term == school.current_term,
                             FeePayment.year == school.current_year, FeePayment.is_voided.is_(False),
                             FeePayment.is_deleted.is_(False)).scalar())
        outstanding = (self.session.query(func.coalesce(func.sum(Invoice.balance), 0))
                       .filter(Invoice.school_id == school_id).scalar())
        pending_expenses = (self.session.query(func.count(Expense.id))
                            .filter_by(school_id=school_id, status="pending").scalar())
        return {
            "students": {"total": sum(by_gender.values()), "by_gender": by_gender, "by_boarding_status": by_boarding},
            "teachers": (self.session.query(func.count(Teacher.id))
                         .filter_by(school_id=school_id, is_active=True).scalar()),
            "gate_attendance_today": gate,
            "teachers_checked_in_today": teachers_in,
            "fees_collected_this_term": int(collected),
            "outstanding_balance": int(outstanding),
            "pending_expenses": pending_expenses,
            "term": school.current_term,
            "year": school.current_year,
        }
