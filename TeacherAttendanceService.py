from datetime import datetime, date
from AuditService import BaseService
from AttendanceService import load_settings, arrival_status
from Models import TeacherAttendance, Teacher
from Helpers import NotFoundError, PermissionDenied, hhmm, haversine_distance, parse_date

STATUSES = ("present", "late", "absent", "half_day", "on_leave", "left_early")
LEAVE_TYPES = ("sick", "annual", "maternity", "paternity", "study", "compassionate", "other")


class TeacherAttendanceService(BaseService):

    def _teacher(self, school_id, teacher_id) -> Teacher:
        teacher = (self.session.query(Teacher)
                   .filter_by(id=teacher_id, school_id=school_id, is_active=True).first())
        if teacher is None:
            raise NotFoundError("Teacher not found")
        return teacher

    def _today(self, teacher_id, day):
        return self.session.query(TeacherAttendance).filter_by(teacher_id=teacher_id, date=day).first()

    def get_attendance(self, school_id, day=None):
        rows = (self.session.query(TeacherAttendance, Teacher.name)
                .join(Teacher, Teacher.id == TeacherAttendance.teacher_id)
                .filter(TeacherAttendance.school_id == school_id,
                        TeacherAttendance.date == (day or date.today()))
                .order_by(Teacher.name).all())
        out = []
        for record, name in rows:
            row = record.to_dict()
            row["teacher_name"] = name
            out.append(row)
        return out

    def check_in(self, school_id, teacher_id, method="manual", latitude=None, longitude=None,
                 accuracy=None, face_confidence=None, now=None) -> TeacherAttendance:
        now = now or datetime.now()
        teacher = self._teacher(school_id, teacher_id)
        record = self._today(teacher.id, now.date())
        if record is not None and record.status == "on_leave":
            raise ValueError("Teacher is on leave today")
        if record is not None and record.check_in_time:
            raise ValueError("Teacher already checked in today")

        settings = load_settings(self.session, school_id)
        distance = None
        has_school_location = settings.school_latitude is not None and settings.school_longitude is not None
        if latitude is not None and longitude is not None and has_school_location:
            distance = round(haversine_distance(float(latitude), float(longitude),
                                                settings.school_latitude, settings.school_longitude), 1)
        if settings.enable_geofencing and has_school_location:
            if distance is None:
                raise ValueError("Location is required for check-in")
            if distance > settings.geofence_radius_meters:
                raise PermissionDenied("Outside school geofence")

        time_str = hhmm(now)
        if record is None:
            record = TeacherAttendance(school_id=school_id, teacher_id=teacher.id, date=now.date())
            self.session.add(record)
        record.check_in_time = time_str
        record.check_in_method = method or "manual"
        record.status = arrival_status(settings, time_str)
        record.latitude = latitude
        record.longitude = longitude
        record.location_accuracy = accuracy
        record.distance_from_school = distance
        record.face_match_confidence = face_confidence
        self.commit()
        return record

    def check_out(self, school_id, teacher_id, method="manual", now=None) -> TeacherAttendance:
        now = now or datetime.now()
        teacher = self._teacher(school_id, teacher_id)
        record = self._today(teacher.id, now.date())
        if record is None or not record.check_in_time:
            raise ValueError("Teacher not checked in today")
        if record.check_out_time:
            raise ValueError("Teacher already checked out today")

        settings = load_settings(self.session, school_id)
        time_str = hhmm(now)
        record.check_out_time = time_str
        record.check_out_method = method or "manual"
        if time_str < settings.school_end_time and record.status != "on_leave":
            record.status = "left_early"
        self.commit()
        return record

    def mark_leave(self, school_id, teacher_id, day, leave_type, notes=None) -> TeacherAttendance:
        if leave_type not in LEAVE_TYPES:
            raise ValueError(f"leave_type must be one of: {', '.join(LEAVE_TYPES)}")
        day = parse_date(day)
        if day is None:
            raise ValueError("date is required")
        teacher = self._teacher(school_id, teacher_id)
        record = self._today(teacher.id, day)
        if record is None:
            record = TeacherAttendance(school_id=school_id, teacher_id=teacher.id, date=day)
            self.session.add(record)
        record.status = "on_leave"
        record.leave_type = leave_type
        record.notes = notes
        self.commit()
        return record

    def history(self, school_id, teacher_id, date_from=None, date_to=None):
        teacher = self._teacher(school_id, teacher_id)
        q = self.session.query(TeacherAttendance).filter_by(school_id=school_id, teacher_id=teacher.id)
        if date_from:
            q = q.filter(TeacherAttendance.date >= date_from)
        if date_to:
            q = q.filter(TeacherAttendance.date <= date_to)
        rows = q.order_by(TeacherAttendance.date.desc()).all()
        counts = {status: 0 for status in STATUSES}
        for r in rows:
            counts[r.status] = counts.get(r.status, 0) + 1
        return rows, counts
