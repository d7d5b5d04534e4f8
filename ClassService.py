from sqlalchemy import func
from AuditService import BaseService
from Models import ClassStream, TeacherAssignment, Teacher, Student, School
from Helpers import NotFoundError, ConflictError

CLASS_TEACHER = "class_teacher"
SUBJECT_TEACHER = "subject_teacher"


class ClassService(BaseService):

    def get_streams(self, school_id):
        streams = (self.session.query(ClassStream)
                   .filter_by(school_id=school_id)
                   .order_by(ClassStream.sort_order, ClassStream.class_level, ClassStream.stream_name)
                   .all())
        counts = dict(
            ((cl, st), n) for cl, st, n in
            self.session.query(Student.class_level, Student.stream, func.count(Student.id))
            .filter_by(school_id=school_id, is_active=True)
            .group_by(Student.class_level, Student.stream)
            .all()
        )
        out = []
        for s in streams:
            row = s.to_dict()
            row["enrolled"] = counts.get((s.class_level, s.stream_name), 0)
            out.append(row)
        return out

    def _stream(self, school_id, stream_id) -> ClassStream:
        stream = self.session.query(ClassStream).filter_by(id=stream_id, school_id=school_id).first()
        if stream is None:
            raise NotFoundError("Stream not found or unauthorized")
        return stream

    def create_stream(self, school_id, class_level, stream_name, max_capacity=None, sort_order=0) -> ClassStream:
        if not class_level or not stream_name:
            raise ValueError("class_level and stream_name are required")
        exists = (self.session.query(ClassStream.id)
                  .filter_by(school_id=school_id, class_level=class_level, stream_name=stream_name)
                  .first())
        if exists:
            raise ConflictError(f"Stream {stream_name} already exists in class {class_level}")
        stream = ClassStream(school_id=school_id, class_level=class_level, stream_name=stream_name,
                             max_capacity=max_capacity or 60, sort_order=sort_order or 0)
        self.session.add(stream)
        self.commit()
        return stream

    def update_stream_capacity(self, school_id, stream_id, max_capacity) -> ClassStream:
        if max_capacity is None or int(max_capacity) < 1:
            raise ValueError("max_capacity must be at least 1")
        stream = self._stream(school_id, stream_id)
        stream.max_capacity = int(max_capacity)
        self.commit()
        return stream

    def delete_stream(self, school_id, stream_id):
        stream = self._stream(school_id, stream_id)
        self.session.delete(stream)
        self.commit()

    def get_assignments(self, school_id, term, year):
        rows = (self.session.query(TeacherAssignment, Teacher.name)
                .join(Teacher, Teacher.id == TeacherAssignment.teacher_id)
                .filter(TeacherAssignment.school_id == school_id,
                        TeacherAssignment.term == term,
                        TeacherAssignment.year == year,
                        TeacherAssignment.is_active.is_(True))
                .order_by(TeacherAssignment.class_level, TeacherAssignment.stream, TeacherAssignment.subject)
                .all())
        out = []
        for assignment, teacher_name in rows:
            row = assignment.to_dict()
            row["teacher_name"] = teacher_name
            out.append(row)
        return out

    def _teacher(self, school_id, teacher_id):
        teacher = (self.session.query(Teacher)
                   .filter_by(id=teacher_id, school_id=school_id, is_active=True).first())
        if teacher is None:
            raise NotFoundError("Teacher not found")
        return teacher

    def _upsert_assignment(self, school_id, teacher_id, class_level, stream, term, year, role, subject=None):
        self._teacher(school_id, teacher_id)
        if not class_level or not stream or not term or not year:
            raise ValueError("class_level, stream, term and year are required")
        existing = (self.session.query(TeacherAssignment)
                    .filter_by(school_id=school_id, class_level=class_level, stream=stream,
                               role=role, term=term, year=year, subject=subject)
                    .first())
        if existing:
            existing.teacher_id = teacher_id
            existing.is_active = True
            assignment = existing
        else:
            assignment = TeacherAssignment(school_id=school_id, teacher_id=teacher_id, class_level=class_level,
                                           stream=stream, subject=subject, role=role, term=term, year=year)
            self.session.add(assignment)
        self.commit()
        return assignment

    def assign_class_teacher(self, school_id, teacher_id, class_level, stream, term, year):
        return self._upsert_assignment(school_id, teacher_id, class_level, stream, term, year, CLASS_TEACHER)

    def assign_subject_teacher(self, school_id, teacher_id, class_level, stream, subject, term, year):
        if not subject:
            raise ValueError("subject is required")
        return self._upsert_assignment(school_id, teacher_id, class_level, stream, term, year,
                                       SUBJECT_TEACHER, subject)

    def remove_assignment(self, school_id, assignment_id):
        assignment = (self.session.query(TeacherAssignment)
                      .filter_by(id=assignment_id, school_id=school_id).first())
        if assignment is None:
            raise NotFoundError("Assignment not found or unauthorized")
        self.session.delete(assignment)
        self.commit()

    def class_register(self, school_id, class_level, stream=None):
        school = self.session.get(School, school_id)
        q = self.session.query(Student).filter_by(school_id=school_id, class_level=class_level, is_active=True)
        if stream:
            q = q.filter(Student.stream == stream)
        students = q.order_by(Student.stream, Student.name).all()

        class_teacher = None
        if stream:
            row = (self.session.query(TeacherAssignment, Teacher.name)
                   .join(Teacher, Teacher.id == TeacherAssignment.teacher_id)
                   .filter(TeacherAssignment.school_id == school_id,
                           TeacherAssignment.class_level == class_level,
                           TeacherAssignment.stream == stream,
                           TeacherAssignment.role == CLASS_TEACHER,
                           TeacherAssignment.term == school.current_term,
                           TeacherAssignment.year == school.current_year,
                           TeacherAssignment.is_active.is_(True))
                   .first())
            if row:
                class_teacher = {"id": row[0].teacher_id, "name": row[1]}
        return {
            "class_level": class_level,
            "stream": stream,
            "class_teacher": class_teacher,
            "students": [s.summary() for s in students],
            "count": len(students),
        }
