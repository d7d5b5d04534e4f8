from datetime import datetime, date
from sqlalchemy import func, select
from AuditService import BaseService
from Models import (AttendanceSettings, GateAttendance, ClassAttendance, BoardingRollCall, Student)
from Helpers import NotFoundError, is_valid_hhmm, hhmm, add_minutes, parse_date

ATTENDANCE_DEFAULTS = {
    "school_start_time": "08:00",
    "late_threshold_minutes": 15,
    "gate_close_time": "08:30",
    "school_end_time": "16:30",
    "enable_face_recognition": False,
    "face_confidence_threshold": 0.6,
    "enable_geofencing": False,
    "geofence_radius_meters": 100,
    "periods_per_day": 8,
    "period_duration_minutes": 40,
}
TIME_FIELDS = ("school_start_time", "gate_close_time", "school_end_time")
SETTINGS_FIELDS = tuple(ATTENDANCE_DEFAULTS) + ("school_latitude", "school_longitude")

CLASS_STATUSES = ("present", "absent", "late", "excused")
ROLL_CALL_STATUSES = ("present", "absent", "sick", "excused")
ROLL_CALL_SESSIONS = ("morning", "evening", "night")
GATE_STATUSES = ("present", "late", "absent", "left_early")


def load_settings(session, school_id) -> AttendanceSettings:
    """Attendance settings for a school, created with defaults on first use."""
    settings = session.query(AttendanceSettings).filter_by(school_id=school_id).first()
    if settings is None:
        settings = AttendanceSettings(school_id=school_id, **ATTENDANCE_DEFAULTS)
        session.add(settings)
        session.flush()
    return settings


def arrival_status(settings, time_str) -> str:
    late_after = add_minutes(settings.school_start_time, settings.late_threshold_minutes)
    return "late" if time_str > late_after else "present"


class AttendanceService(BaseService):

    ##### SETTINGS #####

    def get_settings(self, school_id):
        settings = load_settings(self.session, school_id)
        self.commit()
        return settings

    def update_settings(self, school_id, data: dict):
        settings = load_settings(self.session, school_id)
        for field in TIME_FIELDS:
            if field in data and not is_valid_hhmm(data[field]):
                raise ValueError(f"{field} must be in HH:MM format")
        threshold = data.get("face_confidence_threshold")
        if threshold is not None and not (0 < float(threshold) <= 2):
            raise ValueError("face_confidence_threshold must be between 0 and 2")
        for field in ("late_threshold_minutes", "geofence_radius_meters", "periods_per_day",
                      "period_duration_minutes"):
            if field in data and (data[field] is None or int(data[field]) < 0):
                raise ValueError(f"{field} must be a non-negative number")
        for field in SETTINGS_FIELDS:
            if field in data:
                setattr(settings, field, data[field])
        self.commit()
        return settings

    ##### GATE #####

    def _student(self, school_id, student_id) -> Student:
        student = (self.session.query(Student)
                   .filter_by(id=student_id, school_id=school_id, is_active=True).first())
        if student is None:
            raise NotFoundError("Student not found")
        return student

    def get_gate_attendance(self, school_id, day=None):
        day = day or date.today()
        rows = (self.session.query(GateAttendance, Student)
                .join(Student, Student.id == GateAttendance.student_id)
                .filter(GateAttendance.school_id == school_id, GateAttendance.date == day)
                .order_by(Student.name).all())
        out = []
        for record, student in rows:
            row = record.to_dict()
            row["student_name"] = student.name
            row["class_level"] = student.class_level
            row["stream"] = student.stream
            out.append(row)
        return out

    def check_in(self, school_id, student_id, method="manual", now=None) -> GateAttendance:
        now = now or datetime.now()
        student = self._student(school_id, student_id)
        record = (self.session.query(GateAttendance)
                  .filter_by(student_id=student.id, date=now.date()).first())
        if record is not None and record.check_in_time:
            raise ValueError("Student already checked in today")

        settings = load_settings(self.session, school_id)
        time_str = hhmm(now)
        if record is None:
            record = GateAttendance(school_id=school_id, student_id=student.id, date=now.date())
            self.session.add(record)
        record.check_in_time = time_str
        record.check_in_method = method or "manual"
        record.status = arrival_status(settings, time_str)
        record.recorded_by = self.actor_id
        self.commit()
        return record

    def check_out(self, school_id, student_id, method="manual", now=None) -> GateAttendance:
        now = now or datetime.now()
        student = self._student(school_id, student_id)
        record = (self.session.query(GateAttendance)
                  .filter_by(student_id=student.id, date=now.date()).first())
        if record is None or not record.check_in_time:
            raise ValueError("Student not checked in today")
        if record.check_out_time:
            raise ValueError("Student already checked out today")

        settings = load_settings(self.session, school_id)
        time_str = hhmm(now)
        record.check_out_time = time_str
        record.check_out_method = method or "manual"
        if time_str < settings.school_end_time and record.status in ("present", "late"):
            record.status = "left_early"
        self.commit()
        return record

    def mark_absent(self, school_id, day=None) -> int:
        day = day or date.today()
        recorded = (select(GateAttendance.student_id)
                    .where(GateAttendance.school_id == school_id, GateAttendance.date == day))
        missing = (self.session.query(Student.id)
                   .filter(Student.school_id == school_id, Student.is_active.is_(True),
                           ~Student.id.in_(recorded))
                   .all())
        for (student_id,) in missing:
            self.session.add(GateAttendance(school_id=school_id, student_id=student_id, date=day,
                                            status="absent", recorded_by=self.actor_id))
        self.commit()
        return len(missing)

    def daily_summary(self, school_id, day=None):
        day = day or date.today()
        counts = dict(self.session.query(GateAttendance.status, func.count(GateAttendance.id))
                      .filter_by(school_id=school_id, date=day)
                      .group_by(GateAttendance.status).all())
        total = (self.session.query(func.count(Student.id))
                 .filter_by(school_id=school_id, is_active=True).scalar())
        recorded = sum(counts.values())
        summary = {status: counts.get(status, 0) for status in GATE_STATUSES}
        summary.update({"date": day.isoformat(), "total_students": total,
                        "not_recorded": max(0, total - recorded)})
        return summary

    def student_history(self, school_id, student_id, date_from=None, date_to=None, limit=60):
        q = self.session.query(GateAttendance).filter_by(school_id=school_id, student_id=student_id)
        if date_from:
            q = q.filter(GateAttendance.date >= date_from)
        if date_to:
            q = q.filter(GateAttendance.date <= date_to)
        return q.order_by(GateAttendance.date.desc()).limit(limit).all()

    ##### CLASS #####

    def record_class_attendance(self, school_id, class_level, stream, day, period, records, subject=None):
        if not class_level or not stream:
            raise ValueError("class_level and stream are required")
        settings = load_settings(self.session, school_id)
        try:
            period = int(period)
        except (TypeError, ValueError):
            raise ValueError("period must be a number")
        if period < 1 or period > settings.periods_per_day:
            raise ValueError(f"period must be between 1 and {settings.periods_per_day}")
        if not records:
            raise ValueError("No attendance records provided")
        day = parse_date(day, date.today())

        saved = 0
        for item in records:
            status = item.get("status")
            if status not in CLASS_STATUSES:
                raise ValueError(f"Invalid status: {status}")
            student = self._student(school_id, item.get("student_id"))
            row = (self.session.query(ClassAttendance)
                   .filter_by(student_id=student.id, date=day, period=period).first())
            if row is None:
                row = ClassAttendance(school_id=school_id, student_id=student.id, date=day, period=period)
                self.session.add(row)
            row.class_level = class_level
            row.stream = stream
            row.subject = subject
            row.status = status
            row.recorded_by = self.actor_id
            saved += 1
        self.commit()
        return saved

    def get_class_attendance(self, school_id, class_level, stream=None, day=None, period=None):
        q = self.session.query(ClassAttendance).filter_by(school_id=school_id, class_level=class_level,
                                                          date=day or date.today())
        if stream:
            q = q.filter(ClassAttendance.stream == stream)
        if period:
            q = q.filter(ClassAttendance.period == int(period))
        rows = q.order_by(ClassAttendance.period, ClassAttendance.student_id).all()
        summary = {status: 0 for status in CLASS_STATUSES}
        for r in rows:
            summary[r.status] = summary.get(r.status, 0) + 1
        return rows, summary

    ##### BOARDING #####

    def submit_roll_call(self, school_id, session_name, records, day=None):
        if session_name not in ROLL_CALL_SESSIONS:
            raise ValueError(f"session must be one of: {', '.join(ROLL_CALL_SESSIONS)}")
        if not records:
            raise ValueError("No roll call records provided")
        day = parse_date(day, date.today())
        saved = 0
        for item in records:
            status = item.get("status")
            if status not in ROLL_CALL_STATUSES:
                raise ValueError(f"Invalid status: {status}")
            student = self._student(school_id, item.get("student_id"))
            if (student.boarding_status or "day") == "day":
                raise ValueError(f"{student.name} is not a boarder")
            row = (self.session.query(BoardingRollCall)
                   .filter_by(student_id=student.id, date=day, session=session_name).first())
            if row is None:
                row = BoardingRollCall(school_id=school_id, student_id=student.id, date=day, session=session_name)
                self.session.add(row)
            row.status = status
            row.notes = item.get("notes")
            row.recorded_by = self.actor_id
            saved += 1
        self.commit()
        return saved

    def get_roll_calls(self, school_id, day=None, session_name=None):
        q = self.session.query(BoardingRollCall).filter_by(school_id=school_id, date=day or date.today())
        if session_name:
            q = q.filter(BoardingRollCall.session == session_name)
        return q.order_by(BoardingRollCall.session, BoardingRollCall.student_id).all()
