from datetime import date, datetime
from sqlalchemy import (Column, Integer, String, ForeignKey, LargeBinary, Text,
                        Float, Boolean, Date, DateTime, JSON, UniqueConstraint)
from sqlalchemy.orm import relationship, declarative_base, Session
from sqlalchemy.sql.schema import Table
from sqlalchemy.exc import SQLAlchemyError
from Helpers import NotFoundError
import bcrypt

Base = declarative_base()


class SerializerMixin:
    """Column-wise dict view of a row; dates become ISO strings."""
    _hidden_fields = ()

    def to_dict(self):
        out = {}
        for column in self.__table__.columns:
            if column.key in self._hidden_fields:
                continue
            value = getattr(self, column.key)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[column.key] = value
        return out


student_guardian_association = Table('student_guardians', Base.metadata,
    Column('student_id', Integer, ForeignKey('students.id', ondelete='CASCADE'), primary_key=True),
    Column('guardian_id', Integer, ForeignKey('guardians.id', ondelete='CASCADE'), primary_key=True)
)


##### SCHOOLS & USERS #####

class School(SerializerMixin, Base):
    __tablename__ = 'schools'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    address = Column(String(255))
    phone = Column(String(50))
    email = Column(String(255))
    motto = Column(String(255))
    logo_url = Column(String(1000))
    current_term = Column(Integer, nullable=False, default=1)
    current_year = Column(Integer, nullable=False, default=lambda: date.today().year)
    streams = Column(JSON, default=dict)
    grading_config = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    memberships = relationship('UserSchool', back_populates='school', cascade="all, delete-orphan")
    attendance_settings = relationship('AttendanceSettings', back_populates='school', uselist=False,
                                       cascade="all, delete-orphan")


class User(SerializerMixin, Base):
    __tablename__ = "users"
    _hidden_fields = ('password',)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(120), nullable=False)
    email = Column(String(255), index=True)
    phone = Column(String(50))
    role = Column(String(30), nullable=False, default='staff')
    is_super_admin = Column(Boolean, nullable=False, default=False)
    password = Column(LargeBinary(60), nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    last_login_at = Column(DateTime)

    memberships = relationship('UserSchool', back_populates='user', cascade="all, delete-orphan")

    def __init__(self, username, name, password, email=None, phone=None, role='staff', is_super_admin=False) -> None:
        self.username = username
        self.name = name
        self.email = email
        self.phone = phone
        self.role = role
        self.is_super_admin = is_super_admin
        self.set_password(password)

    def set_password(self, password: str):
        self.password = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())

    def check_password(self, password: str) -> bool:
        return bcrypt.checkpw(password.encode('utf-8'), self.password)

    def membership(self, school_id):
        for m in self.memberships:
            if m.school_id == school_id:
                return m
        return None

    def default_membership(self):
        """Primary school membership, falling back to the oldest one."""
        if not self.memberships:
            return None
        primary = [m for m in self.memberships if m.is_primary]
        return primary[0] if primary else sorted(self.memberships, key=lambda m: m.id)[0]

    def get_profile(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_super_admin": self.is_super_admin,
            "schools": [
                {"school_id": m.school_id, "school_name": m.school.name if m.school else None,
                 "role": m.role, "is_primary": m.is_primary}
                for m in self.memberships
            ],
        }


class UserSchool(SerializerMixin, Base):
    __tablename__ = 'user_schools'
    __table_args__ = (UniqueConstraint('user_id', 'school_id', name='uq_user_school'),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(30), nullable=False, default='staff')
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)

    user = relationship('User', back_populates='memberships')
    school = relationship('School', back_populates='memberships')


class AuditLog(SerializerMixin, Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, index=True)
    user_id = Column(Integer, index=True)
    user_name = Column(String(120))
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer)
    entity_name = Column(String(255))
    details = Column(JSON)
    ip_address = Column(String(64))
    created_at = Column(DateTime, default=datetime.now, index=True)


##### STUDENTS & GUARDIANS #####

class Student(SerializerMixin, Base):
    __tablename__ = 'students'
    __table_args__ = (UniqueConstraint('school_id', 'index_number', name='uq_student_index'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    index_number = Column(String(50), nullable=False)
    name = Column(String(150), nullable=False)
    class_level = Column(String(20), nullable=False)
    stream = Column(String(50), nullable=False)
    gender = Column(String(10), nullable=False)
    date_of_birth = Column(Date)
    parent_name = Column(String(150))
    parent_contact = Column(String(50))
    admission_date = Column(Date)
    boarding_status = Column(String(20), nullable=False, default='day')
    photo_url = Column(String(1000))
    medical_info = Column(JSON)
    emergency_contacts = Column(JSON)
    special_cases = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    guardians = relationship('Guardian', secondary=student_guardian_association, back_populates='students')
    marks = relationship('Mark', back_populates='student', cascade="all, delete-orphan")

    def summary(self):
        return {"id": self.id, "name": self.name, "class_level": self.class_level,
                "stream": self.stream, "index_number": self.index_number}


class Guardian(SerializerMixin, Base):
    __tablename__ = 'guardians'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    name = Column(String(150), nullable=False)
    relation = Column(String(50))
    phone = Column(String(50))
    email = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)

    students = relationship('Student', secondary=student_guardian_association, back_populates='guardians')

    def link_student(self, session: Session, student):
        try:
            if student not in self.students:
                self.students.append(student)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

    def unlink_student(self, session: Session, student_id: int):
        try:
            student = next((s for s in self.students if s.id == student_id), None)
            if student is None:
                raise NotFoundError("Student not linked to this guardian")
            self.students.remove(student)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise


class PromotionHistory(SerializerMixin, Base):
    __tablename__ = 'promotion_history'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    from_class = Column(String(20), nullable=False)
    to_class = Column(String(20), nullable=False)
    from_stream = Column(String(50))
    to_stream = Column(String(50))
    academic_year = Column(Integer, nullable=False)
    term = Column(Integer)
    promoted_by = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)


##### TEACHERS & CLASSES #####

class Teacher(SerializerMixin, Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    employee_id = Column(String(50))
    name = Column(String(150), nullable=False)
    gender = Column(String(10), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)
    roles = Column(JSON, default=list)
    subjects = Column(JSON, default=list)
    teaching_classes = Column(JSON, default=list)
    assigned_class = Column(String(20))
    assigned_stream = Column(String(50))
    qualifications = Column(Text)
    date_joined = Column(Date)
    initials = Column(String(10))
    national_id = Column(String(50))
    address = Column(String(255))
    emergency_contact = Column(String(100))
    education_history = Column(JSON, default=list)
    photo_url = Column(String(1000))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    assignments = relationship('TeacherAssignment', back_populates='teacher', cascade="all, delete-orphan")


class ClassStream(SerializerMixin, Base):
    __tablename__ = 'class_streams'
    __table_args__ = (UniqueConstraint('school_id', 'class_level', 'stream_name', name='uq_class_stream'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    class_level = Column(String(20), nullable=False)
    stream_name = Column(String(50), nullable=False)
    max_capacity = Column(Integer, nullable=False, default=60)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)


class TeacherAssignment(SerializerMixin, Base):
    __tablename__ = 'teacher_assignments'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False)
    class_level = Column(String(20), nullable=False)
    stream = Column(String(50), nullable=False)
    subject = Column(String(50))
    role = Column(String(30), nullable=False)
    term = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)

    teacher = relationship('Teacher', back_populates='assignments')


##### MARKS #####

class Mark(SerializerMixin, Base):
    __tablename__ = 'marks'
    __table_args__ = (UniqueConstraint('student_id', 'term', 'year', 'type', name='uq_mark_record'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    term = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)
    marks = Column(JSON, nullable=False, default=dict)
    aggregate = Column(Integer, nullable=False, default=0)
    division = Column(String(5), nullable=False, default='-')
    comment = Column(Text)
    status = Column(String(20), nullable=False, default='draft')
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    student = relationship('Student', back_populates='marks')

    def total(self):
        return sum(v for v in (self.marks or {}).values() if v is not None)


##### ATTENDANCE #####

class AttendanceSettings(SerializerMixin, Base):
    __tablename__ = 'attendance_settings'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), unique=True, nullable=False)
    school_start_time = Column(String(5), nullable=False, default='08:00')
    late_threshold_minutes = Column(Integer, nullable=False, default=15)
    gate_close_time = Column(String(5), nullable=False, default='08:30')
    school_end_time = Column(String(5), nullable=False, default='16:30')
    enable_face_recognition = Column(Boolean, nullable=False, default=False)
    face_confidence_threshold = Column(Float, nullable=False, default=0.6)
    enable_geofencing = Column(Boolean, nullable=False, default=False)
    school_latitude = Column(Float)
    school_longitude = Column(Float)
    geofence_radius_meters = Column(Integer, nullable=False, default=100)
    periods_per_day = Column(Integer, nullable=False, default=8)
    period_duration_minutes = Column(Integer, nullable=False, default=40)

    school = relationship('School', back_populates='attendance_settings')


class GateAttendance(SerializerMixin, Base):
    __tablename__ = 'gate_attendance'
    __table_args__ = (UniqueConstraint('student_id', 'date', name='uq_gate_student_date'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False, index=True)
    check_in_time = Column(String(5))
    check_out_time = Column(String(5))
    check_in_method = Column(String(20))
    check_out_method = Column(String(20))
    status = Column(String(20), nullable=False)
    notes = Column(Text)
    recorded_by = Column(Integer)

    student = relationship('Student')


class ClassAttendance(SerializerMixin, Base):
    __tablename__ = 'class_attendance'
    __table_args__ = (UniqueConstraint('student_id', 'date', 'period', name='uq_class_attendance'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    class_level = Column(String(20), nullable=False)
    stream = Column(String(50), nullable=False)
    date = Column(Date, nullable=False)
    period = Column(Integer, nullable=False)
    subject = Column(String(50))
    status = Column(String(20), nullable=False)
    recorded_by = Column(Integer)


class BoardingRollCall(SerializerMixin, Base):
    __tablename__ = 'boarding_roll_calls'
    __table_args__ = (UniqueConstraint('student_id', 'date', 'session', name='uq_roll_call'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    session = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    notes = Column(Text)
    recorded_by = Column(Integer)


class TeacherAttendance(SerializerMixin, Base):
    __tablename__ = 'teacher_attendance'
    __table_args__ = (UniqueConstraint('teacher_id', 'date', name='uq_teacher_date'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False, index=True)
    check_in_time = Column(String(5))
    check_out_time = Column(String(5))
    check_in_method = Column(String(20))
    check_out_method = Column(String(20))
    status = Column(String(20), nullable=False)
    leave_type = Column(String(30))
    latitude = Column(Float)
    longitude = Column(Float)
    location_accuracy = Column(Float)
    distance_from_school = Column(Float)
    face_match_confidence = Column(Float)
    notes = Column(Text)

    teacher = relationship('Teacher')


class FaceEmbedding(SerializerMixin, Base):
    __tablename__ = 'face_embeddings'
    __table_args__ = (UniqueConstraint('school_id', 'person_type', 'person_id', name='uq_face_person'),)
    _hidden_fields = ('embedding',)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    person_type = Column(String(20), nullable=False)
    person_id = Column(Integer, nullable=False)
    embedding = Column(JSON, nullable=False)
    quality = Column(Float)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


##### FEES #####

class FeeStructure(SerializerMixin, Base):
    __tablename__ = 'fee_structures'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    class_level = Column(String(20), nullable=False)
    fee_type = Column(String(50), nullable=False)
    amount = Column(Integer, nullable=False)
    term = Column(Integer)
    year = Column(Integer, nullable=False)
    boarding_status = Column(String(20))
    description = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)


class Scholarship(SerializerMixin, Base):
    __tablename__ = 'scholarships'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    type = Column(String(20), nullable=False)
    value = Column(Float, nullable=False)
    fee_types = Column(JSON, default=list)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    def discounted(self, amount: int) -> int:
        if self.type == 'percentage':
            return int(round(amount * (1 - self.value / 100)))
        return max(0, int(round(amount - self.value)))

    def covers(self, fee_type: str) -> bool:
        return not self.fee_types or fee_type in self.fee_types


class StudentScholarship(SerializerMixin, Base):
    __tablename__ = 'student_scholarships'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    scholarship_id = Column(Integer, ForeignKey('scholarships.id', ondelete='CASCADE'), nullable=False)
    year = Column(Integer, nullable=False)
    term = Column(Integer)
    status = Column(String(20), nullable=False, default='active')

    scholarship = relationship('Scholarship')


class StudentFeeOverride(SerializerMixin, Base):
    __tablename__ = 'student_fee_overrides'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    fee_type = Column(String(50), nullable=False)
    custom_amount = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    term = Column(Integer)
    reason = Column(String(255))


class Invoice(SerializerMixin, Base):
    __tablename__ = 'invoices'
    __table_args__ = (UniqueConstraint('school_id', 'invoice_number', name='uq_invoice_number'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    invoice_number = Column(String(60), nullable=False)
    term = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
    balance = Column(Integer, nullable=False, default=0)
    due_date = Column(Date)
    status = Column(String(20), nullable=False, default='unpaid')
    notes = Column(Text)
    reminder_count = Column(Integer, nullable=False, default=0)
    reminder_sent_at = Column(DateTime)
    last_reminder_type = Column(String(20))
    created_at = Column(DateTime, default=datetime.now)

    student = relationship('Student')
    items = relationship('InvoiceItem', back_populates='invoice', cascade="all, delete-orphan")

    def apply_payment(self, amount: int):
        self.amount_paid = (self.amount_paid or 0) + amount
        self.balance = max(0, self.total_amount - self.amount_paid)
        self.status = 'paid' if self.balance <= 0 else 'partial'

    def reverse_payment(self, amount: int):
        self.amount_paid = max(0, (self.amount_paid or 0) - amount)
        self.balance = max(0, self.total_amount - self.amount_paid)
        if self.amount_paid <= 0:
            self.status = 'unpaid'
        elif self.balance <= 0:
            self.status = 'paid'
        else:
            self.status = 'partial'


class InvoiceItem(SerializerMixin, Base):
    __tablename__ = 'invoice_items'

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    fee_type = Column(String(50), nullable=False)
    description = Column(String(255))
    original_amount = Column(Integer, nullable=False)
    discount = Column(Integer, nullable=False, default=0)
    amount = Column(Integer, nullable=False)

    invoice = relationship('Invoice', back_populates='items')


class FeePayment(SerializerMixin, Base):
    __tablename__ = 'fee_payments'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='SET NULL'))
    fee_type = Column(String(50), nullable=False)
    amount_due = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    term = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    payment_method = Column(String(30), nullable=False, default='Cash')
    receipt_number = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    notes = Column(Text)
    is_voided = Column(Boolean, nullable=False, default=False)
    void_reason = Column(Text)
    voided_at = Column(DateTime)
    voided_by = Column(Integer)
    is_deleted = Column(Boolean, nullable=False, default=False)
    recorded_by = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    student = relationship('Student')


class FinanceTransaction(SerializerMixin, Base):
    __tablename__ = 'finance_transactions'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'))
    payment_id = Column(Integer, ForeignKey('fee_payments.id', ondelete='SET NULL'))
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='SET NULL'))
    transaction_type = Column(String(10), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(String(255))
    term = Column(Integer)
    year = Column(Integer)
    transaction_date = Column(Date, nullable=False, default=date.today)
    is_voided = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)


##### EXPENSES #####

class ExpenseCategory(SerializerMixin, Base):
    __tablename__ = 'expense_categories'
    __table_args__ = (UniqueConstraint('school_id', 'name', name='uq_expense_category'),)

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(255))
    color = Column(String(20), nullable=False, default='#6554C0')
    is_active = Column(Boolean, nullable=False, default=True)


class Expense(SerializerMixin, Base):
    __tablename__ = 'expenses'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey('expense_categories.id', ondelete='SET NULL'))
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False)
    vendor = Column(String(150))
    reference_number = Column(String(100))
    expense_date = Column(Date, nullable=False, default=date.today)
    payment_method = Column(String(30), nullable=False, default='Cash')
    term = Column(Integer)
    year = Column(Integer)
    status = Column(String(20), nullable=False, default='pending')
    notes = Column(Text)
    approved_by = Column(Integer)
    approved_at = Column(DateTime)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    category = relationship('ExpenseCategory')


##### MESSAGING #####

class Conversation(SerializerMixin, Base):
    __tablename__ = 'conversations'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default='direct')
    group_name = Column(String(150))
    group_description = Column(Text)
    admins = Column(JSON, default=list)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    last_message_at = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)

    participants = relationship('ConversationParticipant', back_populates='conversation', cascade="all, delete-orphan")
    messages = relationship('Message', back_populates='conversation', cascade="all, delete-orphan",
                            order_by='Message.id')

    def participant(self, user_id):
        return next((p for p in self.participants if p.user_id == user_id), None)


class ConversationParticipant(SerializerMixin, Base):
    __tablename__ = 'conversation_participants'
    __table_args__ = (UniqueConstraint('conversation_id', 'user_id', name='uq_conversation_user'),)

    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    last_read_at = Column(DateTime)
    is_archived = Column(Boolean, nullable=False, default=False)
    is_muted = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, default=datetime.now)

    conversation = relationship('Conversation', back_populates='participants')
    user = relationship('User')


class Message(SerializerMixin, Base):
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    content = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default='text')
    attachment_url = Column(String(1000))
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)

    conversation = relationship('Conversation', back_populates='messages')
    sender = relationship('User')
