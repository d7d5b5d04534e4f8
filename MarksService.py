"""
Marks entry and report-card computation.

Scores are stored per subject code in a JSON column. Aggregate and division
are derived from the student's class level and the school's grading scale
every time a record is saved, so stored values always agree with the scale
in force at the time of entry.
"""
from collections import OrderedDict
from sqlalchemy.exc import SQLAlchemyError
from AuditService import BaseService
from Models import Mark, Student, School
from Helpers import (NotFoundError, grading_scale, calculate_grade, calculate_aggregate,
                     calculate_division, subject_comment, class_teacher_comment,
                     head_teacher_comment, ordinal)

ALL_SUBJECTS = ("english", "maths", "science", "sst", "literacy1", "literacy2")


def _clean_scores(marks):
    if not isinstance(marks, dict):
        raise ValueError("marks must be an object of subject scores")
    cleaned = {}
    for subject, score in marks.items():
        if score is None or score == "":
            continue
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError(f"Score for {subject} must be a number")
        if score < 0 or score > 100:
            raise ValueError(f"Score for {subject} must be between 0 and 100")
        cleaned[subject] = score
    return cleaned


class MarksService(BaseService):

    def _scale(self, school_id):
        school = self.session.get(School, school_id)
        return grading_scale(school.grading_config if school else None)

    def get_marks(self, school_id, year=None, term=None, type=None, class_level=None):
        q = self.session.query(Mark).filter(Mark.school_id == school_id)
        if year:
            q = q.filter(Mark.year == year)
        if term:
            q = q.filter(Mark.term == term)
        if type:
            q = q.filter(Mark.type == type)
        if class_level:
            q = q.join(Student, Student.id == Mark.student_id).filter(Student.class_level == class_level)
        return q.order_by(Mark.student_id, Mark.year, Mark.term).all()

    def get_student_marks(self, school_id, student_id, year=None):
        q = self.session.query(Mark).filter_by(school_id=school_id, student_id=student_id)
        if year:
            q = q.filter(Mark.year == year)
        return q.order_by(Mark.year, Mark.term, Mark.type).all()

    def _upsert(self, school_id, data, scale) -> Mark:
        for field in ("student_id", "term", "year", "type"):
            if not data.get(field):
                raise ValueError(f"{field} is required")
        student = (self.session.query(Student)
                   .filter_by(id=data["student_id"], school_id=school_id).first())
        if student is None:
            raise NotFoundError(f"Student {data['student_id']} not found")

        scores = _clean_scores(data.get("marks") or {})
        aggregate = calculate_aggregate(scores, student.class_level, scale)

        record = (self.session.query(Mark)
                  .filter_by(student_id=student.id, term=data["term"], year=data["year"], type=data["type"])
                  .first())
        if record is None:
            record = Mark(school_id=school_id, student_id=student.id,
                          term=data["term"], year=data["year"], type=data["type"])
            self.session.add(record)
        record.marks = scores
        record.aggregate = aggregate
        record.division = calculate_division(aggregate, scale)
        record.comment = data.get("comment", record.comment)
        record.status = data.get("status") or record.status or "draft"
        return record

    def save_mark(self, school_id, data: dict) -> Mark:
        record = self._upsert(school_id, data, self._scale(school_id))
        self.commit()
        return record

    def save_marks_batch(self, school_id, rows):
        if not rows:
            return []
        scale = self._scale(school_id)
        try:
            saved = [self._upsert(school_id, row, scale) for row in rows]
            self.session.commit()
        except (ValueError, NotFoundError, SQLAlchemyError):
            self.session.rollback()
            raise
        return saved

    def delete_marks_batch(self, school_id, student_ids, term, year, type):
        if not student_ids:
            return {"deleted": 0}
        deleted = (self.session.query(Mark)
                   .filter(Mark.school_id == school_id, Mark.student_id.in_(student_ids),
                           Mark.term == term, Mark.year == year, Mark.type == type)
                   .delete(synchronize_session=False))
        self.commit()
        return {"deleted": deleted}

    def _class_records(self, school_id, class_level, stream, term, year, type):
        q = (self.session.query(Student, Mark)
             .outerjoin(Mark, (Mark.student_id == Student.id) & (Mark.term == term)
                        & (Mark.year == year) & (Mark.type == type))
             .filter(Student.school_id == school_id, Student.class_level == class_level,
                     Student.is_active.is_(True)))
        if stream:
            q = q.filter(Student.stream == stream)
        return q.order_by(Student.name).all()

    def class_report(self, school_id, class_level, term, year, type, stream=None):
        """Report cards for a class, ranked by aggregate then total marks."""
        scale = self._scale(school_id)
        cards = []
        for student, record in self._class_records(school_id, class_level, stream, term, year, type):
            scores = record.marks if record else {}
            total = sum(scores.values())
            aggregate = record.aggregate if record else 0
            subjects = OrderedDict()
            for subject, score in scores.items():
                grade, points = calculate_grade(score, scale)
                subjects[subject] = {"mark": score, "grade": grade, "points": points,
                                     "comment": subject_comment(score)}
            cards.append({
                "student": student.summary(),
                "subjects": subjects,
                "total": total,
                "average": round(total / len(scores), 2) if scores else 0,
                "aggregate": aggregate,
                "division": calculate_division(aggregate, scale),
                "class_teacher_comment": class_teacher_comment(aggregate, student.name, student.gender,
                                                               student.special_cases),
                "head_teacher_comment": head_teacher_comment(aggregate),
                "comment": record.comment if record else None,
            })

        # Incomplete results (aggregate 0) rank after every graded student.
        cards.sort(key=lambda c: (c["aggregate"] == 0, c["aggregate"], -c["total"]))
        rank, previous = 0, None
        for i, card in enumerate(cards, start=1):
            key = (card["aggregate"], card["total"])
            if key != previous:
                rank, previous = i, key
            card["position"] = ordinal(rank)
            card["out_of"] = len(cards)

        totals = [c["total"] for c in cards if c["subjects"]]
        return {
            "class_level": class_level,
            "stream": stream,
            "term": term,
            "year": year,
            "type": type,
            "class_average": round(sum(totals) / len(totals), 2) if totals else 0,
            "students": cards,
        }

    def subject_analysis(self, school_id, class_level, term, year, type, stream=None):
        scale = self._scale(school_id)
        passing = scale["passing_mark"]
        per_subject = {}
        divisions = {}
        for _, record in self._class_records(school_id, class_level, stream, term, year, type):
            if record is None:
                continue
            divisions[record.division] = divisions.get(record.division, 0) + 1
            for subject, score in (record.marks or {}).items():
                per_subject.setdefault(subject, []).append(score)

        subjects = {}
        for subject in sorted(per_subject, key=lambda s: (s not in ALL_SUBJECTS, s)):
            scores = per_subject[subject]
            passed = len([s for s in scores if s >= passing])
            subjects[subject] = {
                "count": len(scores),
                "average": round(sum(scores) / len(scores), 2),
                "highest": max(scores),
                "lowest": min(scores),
                "passed": passed,
                "pass_rate": round(passed * 100.0 / len(scores), 1),
            }
        return {"subjects": subjects, "divisions": divisions}
