import json
from AuditService import BaseService
from Models import Teacher
from Helpers import NotFoundError, clean_optional, is_valid_email, parse_date

REQUIRED_FIELDS = ("name", "gender", "phone", "email")
OPTIONAL_FIELDS = ("employee_id", "assigned_class", "assigned_stream", "qualifications", "initials",
                   "national_id", "address", "emergency_contact", "photo_url", "date_joined")
LIST_FIELDS = ("roles", "subjects", "teaching_classes")


class TeacherService(BaseService):

    def get_teachers(self, school_id):
        return (self.session.query(Teacher)
                .filter_by(school_id=school_id, is_active=True)
                .order_by(Teacher.name).all())

    def get_teacher_by_id(self, teacher_id, school_id) -> Teacher:
        teacher = self.session.query(Teacher).filter_by(id=teacher_id, school_id=school_id).first()
        if teacher is None:
            raise NotFoundError("Teacher not found")
        return teacher

    @staticmethod
    def _education_history(value):
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return []
        return value if isinstance(value, list) else []

    def _apply(self, teacher, data):
        data = clean_optional(data, OPTIONAL_FIELDS)
        for field in ("name", "gender", "phone", "email") + OPTIONAL_FIELDS:
            if field in data:
                value = parse_date(data[field]) if field == "date_joined" else data[field]
                setattr(teacher, field, value)
        for field in LIST_FIELDS:
            if field in data:
                setattr(teacher, field, list(data[field] or []))
        if "education_history" in data:
            teacher.education_history = self._education_history(data["education_history"])

    def create_teacher(self, school_id, data: dict) -> Teacher:
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")
        if not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")

        teacher = Teacher(school_id=school_id, roles=[], subjects=[], teaching_classes=[], education_history=[])
        self._apply(teacher, data)
        self.session.add(teacher)
        self.session.flush()
        self.audit(school_id, "create", "teacher", teacher.id, teacher.name, {"roles": teacher.roles})
        self.commit()
        return teacher

    def update_teacher(self, teacher_id, school_id, data: dict) -> Teacher:
        teacher = self.get_teacher_by_id(teacher_id, school_id)
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        for field in REQUIRED_FIELDS:
            if field in data and not data[field]:
                raise ValueError(f"{field} cannot be empty")
        self._apply(teacher, data)
        self.audit(school_id, "update", "teacher", teacher.id, teacher.name, {"changes": sorted(data.keys())})
        self.commit()
        return teacher

    def delete_teacher(self, teacher_id, school_id):
        teacher = self.get_teacher_by_id(teacher_id, school_id)
        teacher.is_active = False
        self.audit(school_id, "delete", "teacher", teacher.id, teacher.name, {"type": "soft_delete"})
        self.commit()

    def batch_import_teachers(self, school_id, rows):
        created = []
        for row in rows or []:
            missing = [f for f in REQUIRED_FIELDS if not row.get(f)]
            if missing:
                raise ValueError(f"Row for {row.get('name') or 'unknown'} is missing: {', '.join(missing)}")
            teacher = Teacher(school_id=school_id, roles=[], subjects=[], teaching_classes=[], education_history=[])
            self._apply(teacher, row)
            self.session.add(teacher)
            created.append(teacher)
        if created:
            self.session.flush()
            self.audit(school_id, "create", "teacher", None, None, {"type": "import", "count": len(created)})
        self.commit()
        return created
