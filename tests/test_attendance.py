import unittest
from datetime import date, datetime
from apitest import ApiTestCase
from AttendanceService import AttendanceService
from Models import GateAttendance, User


class GateTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.student_id = self.make_student()
        self.service = AttendanceService(self.session, self.session.get(User, self.admin_id))
        self.day = date(2024, 3, 4)

    def at(self, hhmm):
        hours, minutes = (int(x) for x in hhmm.split(":"))
        return datetime(2024, 3, 4, hours, minutes)

    def test_on_time_and_late_arrivals(self):
        late_id = self.make_student(name="Late Comer")
        self.assertEqual(self.service.check_in(self.school_id, self.student_id, now=self.at("08:15")).status, "present")
        self.assertEqual(self.service.check_in(self.school_id, late_id, now=self.at("08:16")).status, "late")

    def test_late_threshold_comes_from_settings(self):
        self.service.update_settings(self.school_id, {"school_start_time": "07:30", "late_threshold_minutes": 0})
        self.assertEqual(self.service.check_in(self.school_id, self.student_id, now=self.at("07:31")).status, "late")

    def test_double_check_in(self):
        self.service.check_in(self.school_id, self.student_id, now=self.at("07:50"))
        with self.assertRaisesRegex(ValueError, "Student already checked in today"):
            self.service.check_in(self.school_id, self.student_id, now=self.at("07:55"))

    def test_check_out_before_end_of_day_is_left_early(self):
        self.service.check_in(self.school_id, self.student_id, now=self.at("07:50"))
        record = self.service.check_out(self.school_id, self.student_id, now=self.at("12:00"))
        self.assertEqual(record.status, "left_early")
        self.assertEqual(record.check_out_time, "12:00")

    def test_check_out_after_end_of_day_keeps_status(self):
        self.service.check_in(self.school_id, self.student_id, now=self.at("08:20"))
        self.assertEqual(self.service.check_out(self.school_id, self.student_id, now=self.at("16:45")).status, "late")

    def test_check_out_without_check_in(self):
        with self.assertRaisesRegex(ValueError, "Student not checked in today"):
            self.service.check_out(self.school_id, self.student_id, now=self.at("16:45"))

    def test_mark_absent_only_touches_unrecorded_students(self):
        absentee = self.make_student(name="Absent Pupil")
        self.service.check_in(self.school_id, self.student_id, now=self.at("07:50"))
        self.assertEqual(self.service.mark_absent(self.school_id, self.day), 1)
        self.assertEqual(self.service.mark_absent(self.school_id, self.day), 0)
        row = self.db().query(GateAttendance).filter_by(student_id=absentee).one()
        self.assertEqual(row.status, "absent")

    def test_daily_summary(self):
        self.make_student(name="Absent Pupil")
        self.make_student(name="Unrecorded Pupil")
        self.service.check_in(self.school_id, self.student_id, now=self.at("08:40"))
        summary = self.service.daily_summary(self.school_id, self.day)
        self.assertEqual(summary['late'], 1)
        self.assertEqual(summary['total_students'], 3)
        self.assertEqual(summary['not_recorded'], 2)

    def test_gate_routes(self):
        response = self.client.post('/api/attendance/gate/check-in', json={"student_id": self.student_id})
        self.assertStatus(response, 200, "Checked in")
        response = self.client.post('/api/attendance/gate/check-in', json={"student_id": self.student_id})
        self.assertStatus(response, 400, "Student already checked in today")
        rows = self.read(self.client.get('/api/attendance/gate'))['attendance']
        self.assertEqual(rows[0]['student_name'], "Amina Nakato")
        self.assertStatus(self.client.post('/api/attendance/gate/check-in', json={}), 400, "student_id is required")


class ClassAttendanceTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.a = self.make_student(name="Amina Nakato")
        self.b = self.make_student(name="Brian Mugisha")

    def post(self, **overrides):
        body = {"class_level": "P5", "stream": "Blue", "date": "2024-03-04", "period": 2,
                "records": [{"student_id": self.a, "status": "present"}, {"student_id": self.b, "status": "late"}]}
        body.update(overrides)
        return self.client.post('/api/attendance/class', json=body)

    def test_record_and_summarise(self):
        self.assertEqual(self.assertStatus(self.post(), 200)['saved'], 2)
        self.post(records=[{"student_id": self.b, "status": "excused"}])
        data = self.read(self.client.get('/api/attendance/class?class_level=P5&date=2024-03-04&period=2'))
        self.assertEqual(len(data['attendance']), 2)
        self.assertEqual(data['summary'], {"present": 1, "absent": 0, "late": 0, "excused": 1})

    def test_period_out_of_range(self):
        self.assertStatus(self.post(period=9), 400, "period must be between 1 and 8")

    def test_invalid_status(self):
        self.assertStatus(self.post(records=[{"student_id": self.a, "status": "sleeping"}]), 400,
                          "Invalid status: sleeping")

    def test_no_records(self):
        self.assertStatus(self.post(records=[]), 400, "No attendance records provided")


class BoardingTestCase(ApiTestCase):

    def test_roll_call_for_boarders(self):
        boarder = self.make_student(name="Boarder", boarding_status="boarding")
        body = {"session": "night", "date": "2024-03-04", "records": [{"student_id": boarder, "status": "sick"}]}
        self.assertStatus(self.client.post('/api/attendance/boarding', json=body), 200, "1 records saved")
        rows = self.read(self.client.get('/api/attendance/boarding?date=2024-03-04&session=night'))['roll_calls']
        self.assertEqual(rows[0]['status'], "sick")

    def test_day_scholar_rejected(self):
        day_scholar = self.make_student(name="Day Scholar")
        body = {"session": "night", "records": [{"student_id": day_scholar, "status": "present"}]}
        self.assertStatus(self.client.post('/api/attendance/boarding', json=body), 400, "Day Scholar is not a boarder")

    def test_unknown_session(self):
        body = {"session": "noon", "records": [{"student_id": 1, "status": "present"}]}
        self.assertStatus(self.client.post('/api/attendance/boarding', json=body), 400,
                          "session must be one of: morning, evening, night")


class SettingsTestCase(ApiTestCase):

    def test_defaults(self):
        settings = self.assertStatus(self.client.get('/api/attendance/settings'), 200)['settings']
        self.assertEqual(settings['school_start_time'], "08:00")
        self.assertEqual(settings['late_threshold_minutes'], 15)

    def test_update_validates_times(self):
        response = self.client.put('/api/attendance/settings', json={"school_end_time": "4pm"})
        self.assertStatus(response, 400, "school_end_time must be in HH:MM format")

    def test_only_admins_update(self):
        self.make_user("clerk", "staff")
        response = self.login("clerk").put('/api/attendance/settings', json={"school_end_time": "16:00"})
        self.assertStatus(response, 403, "Admin access required")


if __name__ == "__main__":
    unittest.main()
