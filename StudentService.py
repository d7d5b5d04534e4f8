from datetime import date
from sqlalchemy import func, asc, desc
from AuditService import BaseService
from Models import Student, ClassStream, School, PromotionHistory
from Helpers import NotFoundError, ConflictError, parse_date

REQUIRED_FIELDS = ("name", "class_level", "stream", "gender")
EDITABLE_FIELDS = ("name", "class_level", "stream", "gender", "index_number", "parent_name",
                   "parent_contact", "boarding_status", "photo_url", "medical_info",
                   "emergency_contacts", "special_cases")
DATE_FIELDS = ("date_of_birth", "admission_date")
SORTABLE = {"name": Student.name, "class_level": Student.class_level,
            "stream": Student.stream, "boarding_status": Student.boarding_status}

CLASS_PROGRESSION = {
    "Baby": "Middle", "Middle": "Top", "Top": "P1",
    "P1": "P2", "P2": "P3", "P3": "P4", "P4": "P5", "P5": "P6", "P6": "P7",
    "P7": "Alumni",
}


class StudentService(BaseService):

    def get_student(self, school_id, student_id) -> Student:
        student = self.session.query(Student).filter_by(id=student_id, school_id=school_id).first()
        if student is None:
            raise NotFoundError("Student not found")
        return student

    def get_students(self, school_id, class_level=None, stream=None):
        q = self.session.query(Student).filter_by(school_id=school_id, is_active=True)
        if class_level:
            q = q.filter(Student.class_level == class_level)
        if stream:
            q = q.filter(Student.stream == stream)
        return q.order_by(Student.name).all()

    def search(self, school_id, q=None, class_level=None, stream=None, boarding_status=None,
               sort_by="name", sort_order="asc", limit=50):
        query = self.session.query(Student).filter_by(school_id=school_id, is_active=True)
        if q:
            query = query.filter(func.lower(Student.name).like(f"%{q.lower()}%"))
        if class_level:
            query = query.filter(Student.class_level == class_level)
        if stream:
            query = query.filter(Student.stream == stream)
        if boarding_status:
            query = query.filter(func.lower(Student.boarding_status) == boarding_status.lower())
        column = SORTABLE.get(sort_by, Student.name)
        query = query.order_by(desc(column) if sort_order == "desc" else asc(column), Student.id)
        return query.limit(min(limit, 50)).all()

    def _enrolment(self, school_id, class_level, stream):
        return (self.session.query(func.count(Student.id))
                .filter_by(school_id=school_id, class_level=class_level, stream=stream, is_active=True)
                .scalar())

    def check_capacity(self, school_id, class_level, stream, force=False):
        if force:
            return
        cs = (self.session.query(ClassStream)
              .filter_by(school_id=school_id, class_level=class_level, stream_name=stream)
              .first())
        if cs is None:
            return
        if self._enrolment(school_id, class_level, stream) >= cs.max_capacity:
            raise ConflictError(f"CAPACITY_WARNING: Stream {stream} is at maximum capacity ({cs.max_capacity}).")

    def _next_index_number(self, school_id):
        year = date.today().year
        seq = self.session.query(func.count(Student.id)).filter_by(school_id=school_id).scalar() + 1
        while True:
            candidate = f"STU-{year}-{seq:05d}"
            taken = self.session.query(Student.id).filter_by(school_id=school_id, index_number=candidate).first()
            if not taken:
                return candidate
            seq += 1

    def _apply(self, student, data):
        for field in EDITABLE_FIELDS:
            if field in data:
                setattr(student, field, data[field])
        for field in DATE_FIELDS:
            if field in data:
                setattr(student, field, parse_date(data[field]))

    def create_student(self, school_id, data: dict) -> Student:
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        self.check_capacity(school_id, data["class_level"], data["stream"], data.get("force_capacity_override"))

        index_number = data.get("index_number") or self._next_index_number(school_id)
        if self.session.query(Student.id).filter_by(school_id=school_id, index_number=index_number).first():
            raise ConflictError(f"Index number {index_number} already exists")

        student = Student(school_id=school_id, special_cases={}, boarding_status="day")
        self._apply(student, data)
        student.index_number = index_number
        self.session.add(student)
        self.session.flush()
        self.audit(school_id, "create", "student", student.id, student.name,
                   {"class_level": student.class_level, "stream": student.stream})
        self.commit()
        return student

    def update_student(self, school_id, student_id, data: dict) -> Student:
        student = self.get_student(school_id, student_id)
        new_class = data.get("class_level", student.class_level)
        new_stream = data.get("stream", student.stream)
        if (new_class, new_stream) != (student.class_level, student.stream):
            self.check_capacity(school_id, new_class, new_stream, data.get("force_capacity_override"))

        index_number = data.get("index_number")
        if index_number and index_number != student.index_number:
            clash = (self.session.query(Student.id)
                     .filter_by(school_id=school_id, index_number=index_number).first())
            if clash:
                raise ConflictError(f"Index number {index_number} already exists")

        changes = [k for k in data if k in EDITABLE_FIELDS or k in DATE_FIELDS]
        self._apply(student, data)
        self.audit(school_id, "update", "student", student.id, student.name, {"changes": changes})
        self.commit()
        return student

    def delete_student(self, school_id, student_id):
        student = self.get_student(school_id, student_id)
        student.is_active = False
        self.audit(school_id, "delete", "student", student.id, student.name, {"type": "soft_delete"})
        self.commit()

    def delete_students(self, school_id, student_ids):
        students = (self.session.query(Student)
                    .filter(Student.school_id == school_id, Student.id.in_(student_ids or []),
                            Student.is_active.is_(True))
                    .all())
        for s in students:
            s.is_active = False
        self.audit(school_id, "delete_batch", "student", None, None,
                   {"ids": [s.id for s in students], "count": len(students)})
        self.commit()
        return len(students)

    def import_students(self, school_id, rows):
        imported, skipped, errors = 0, 0, []
        seen = set()
        for i, row in enumerate(rows or []):
            missing = [f for f in REQUIRED_FIELDS if not row.get(f)]
            if missing:
                errors.append({"row": i, "error": f"Missing required fields: {', '.join(missing)}"})
                continue
            index_number = row.get("index_number")
            if index_number:
                exists = (self.session.query(Student.id)
                          .filter_by(school_id=school_id, index_number=index_number).first())
                if exists or index_number in seen:
                    skipped += 1
                    continue
            else:
                index_number = self._next_index_number(school_id)
            seen.add(index_number)
            student = Student(school_id=school_id, special_cases={}, boarding_status="day")
            self._apply(student, row)
            student.index_number = index_number
            self.session.add(student)
            self.session.flush()
            imported += 1
        if imported:
            self.audit(school_id, "create", "student", None, None, {"type": "import", "count": imported})
        self.commit()
        return {"imported": imported, "skipped": skipped, "errors": errors}

    def promote(self, school_id, student_ids, target_stream=None):
        school = self.session.get(School, school_id)
        promoted, graduated, skipped = 0, 0, 0
        students = (self.session.query(Student)
                    .filter(Student.school_id == school_id, Student.id.in_(student_ids or []),
                            Student.is_active.is_(True))
                    .all())
        for s in students:
            next_class = CLASS_PROGRESSION.get(s.class_level)
            if next_class is None:
                skipped += 1
                continue
            new_stream = target_stream or s.stream
            self.session.add(PromotionHistory(
                school_id=school_id, student_id=s.id,
                from_class=s.class_level, to_class=next_class,
                from_stream=s.stream, to_stream=new_stream,
                academic_year=school.current_year, term=school.current_term,
                promoted_by=self.actor_id))
            s.class_level = next_class
            s.stream = new_stream
            if next_class == "Alumni":
                graduated += 1
            else:
                promoted += 1
        skipped += len(set(student_ids or [])) - len(students)
        self.audit(school_id, "update", "student", None, None,
                   {"type": "promotion", "promoted": promoted, "graduated": graduated})
        self.commit()
        return {"promoted_count": promoted, "graduated_count": graduated, "skipped_count": skipped}

    def promotion_history(self, school_id, student_id):
        self.get_student(school_id, student_id)
        return (self.session.query(PromotionHistory)
                .filter_by(school_id=school_id, student_id=student_id)
                .order_by(PromotionHistory.id).all())

    def verify(self, student_id):
        """Public view used by the verification QR code."""
        student = self.session.get(Student, student_id)
        if student is None:
            raise NotFoundError("Student not found")
        school = self.session.get(School, student.school_id)
        return {
            "id": student.id,
            "name": student.name,
            "index_number": student.index_number,
            "class_level": student.class_level,
            "stream": student.stream,
            "school_name": school.name if school else None,
            "status": "active" if student.is_active else "inactive",
            "photo_url": student.photo_url,
        }
