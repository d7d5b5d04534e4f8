import unittest
from datetime import date
from apitest import ApiTestCase, app
from Models import Student, ClassStream, PromotionHistory, AuditLog


class StudentCrudTestCase(ApiTestCase):

    def test_create_student_generates_index_number(self):
        response = self.client.post('/api/students', json={"name": "Brian Mugisha", "class_level": "P3",
                                                           "stream": "Red", "gender": "M"})
        data = self.assertStatus(response, 201, "Student created")
        self.assertEqual(data['student']['index_number'], f"STU-{date.today().year}-00001")
        self.assertEqual(data['student']['boarding_status'], "day")

    def test_create_student_missing_fields(self):
        response = self.client.post('/api/students', json={"name": "Brian Mugisha"})
        self.assertStatus(response, 400, "Missing required fields: class_level, stream, gender")

    def test_duplicate_index_number(self):
        self.make_student(index_number="A-1")
        response = self.client.post('/api/students', json={"name": "Brian Mugisha", "class_level": "P3",
                                                           "stream": "Red", "gender": "M", "index_number": "A-1"})
        self.assertStatus(response, 409, "Index number A-1 already exists")

    def test_stream_capacity(self):
        self.session.add(ClassStream(school_id=self.school_id, class_level="P5", stream_name="Blue", max_capacity=1))
        self.session.commit()
        self.make_student()
        payload = {"name": "Brian Mugisha", "class_level": "P5", "stream": "Blue", "gender": "M"}

        response = self.client.post('/api/students', json=payload)
        self.assertStatus(response, 409, "CAPACITY_WARNING: Stream Blue is at maximum capacity (1).")

        payload["force_capacity_override"] = True
        self.assertStatus(self.client.post('/api/students', json=payload), 201)

    def test_update_student(self):
        student_id = self.make_student()
        response = self.client.put(f'/api/students/{student_id}', json={"stream": "Green",
                                                                        "date_of_birth": "2014-05-02"})
        data = self.assertStatus(response, 200, "Student updated")
        self.assertEqual(data['student']['stream'], "Green")
        self.assertEqual(data['student']['date_of_birth'], "2014-05-02")

    def test_update_with_bad_date(self):
        student_id = self.make_student()
        response = self.client.put(f'/api/students/{student_id}', json={"date_of_birth": "02/05/2014"})
        self.assertStatus(response, 400, "Invalid date: 02/05/2014")

    def test_delete_is_soft_and_audited(self):
        student_id = self.make_student()
        self.assertStatus(self.client.delete(f'/api/students/{student_id}'), 200, "Student deleted")
        self.assertFalse(self.db().get(Student, student_id).is_active)
        log = self.db().query(AuditLog).filter_by(entity_type="student", action="delete").one()
        self.assertEqual(log.details, {"type": "soft_delete"})
        self.assertEqual(self.read(self.client.get('/api/students'))['students'], [])

    def test_batch_delete(self):
        ids = [self.make_student(name=f"Pupil {i}") for i in range(3)]
        data = self.assertStatus(self.client.post('/api/students/batch-delete', json={"student_ids": ids[:2]}), 200)
        self.assertEqual(data['deleted'], 2)

    def test_students_are_scoped_to_school(self):
        other = self.make_school("Hillside Academy", "HSA")
        foreign_id = self.make_student(name="Outsider", school_id=other)
        self.assertStatus(self.client.get(f'/api/students/{foreign_id}'), 404, "Student not found")

    def test_search_and_sort(self):
        self.make_student(name="Zed Kato", boarding_status="boarding")
        self.make_student(name="Amos Kato")
        self.make_student(name="Mary Akello")
        data = self.read(self.client.get('/api/students/search?q=kato&sort_order=desc'))
        self.assertEqual([s['name'] for s in data['students']], ["Zed Kato", "Amos Kato"])
        data = self.read(self.client.get('/api/students/search?boarding_status=Boarding'))
        self.assertEqual([s['name'] for s in data['students']], ["Zed Kato"])


class StudentAccessTestCase(ApiTestCase):

    def test_bursar_can_read_but_not_write(self):
        self.make_user("bursar", "bursar")
        bursar = self.login("bursar")
        self.assertStatus(bursar.get('/api/students'), 200)
        response = bursar.post('/api/students', json={"name": "X", "class_level": "P1", "stream": "A", "gender": "M"})
        self.assertStatus(response, 403, "Forbidden")

    def test_staff_cannot_delete(self):
        student_id = self.make_student()
        self.make_user("clerk", "staff")
        self.assertStatus(self.login("clerk").delete(f'/api/students/{student_id}'), 403, "Admin access required")

    def test_anonymous_request(self):
        self.assertStatus(app.test_client().get('/api/students'), 401, "Authentication required")


class ImportTestCase(ApiTestCase):

    def test_import_skips_existing_and_reports_errors(self):
        self.make_student(index_number="A-1")
        rows = [
            {"name": "One", "class_level": "P1", "stream": "A", "gender": "F", "index_number": "A-1"},
            {"name": "Two", "class_level": "P1", "stream": "A", "gender": "F", "index_number": "A-2"},
            {"name": "Three", "class_level": "P1", "stream": "A", "gender": "F"},
            {"name": "Broken"},
        ]
        data = self.assertStatus(self.client.post('/api/students/import', json={"students": rows}), 200)
        self.assertEqual(data['imported'], 2)
        self.assertEqual(data['skipped'], 1)
        self.assertEqual(len(data['errors']), 1)
        self.assertEqual(data['errors'][0]['row'], 3)

    def test_import_requires_list(self):
        self.assertStatus(self.client.post('/api/students/import', json={"students": "x"}), 400,
                          "students must be a list")


class PromotionTestCase(ApiTestCase):

    def test_promote_and_graduate(self):
        p3 = self.make_student(name="Pupil Three", class_level="P3")
        p7 = self.make_student(name="Pupil Seven", class_level="P7")
        alumni = self.make_student(name="Old Pupil", class_level="Alumni")
        response = self.client.post('/api/students/promote', json={"student_ids": [p3, p7, alumni, 999]})
        data = self.assertStatus(response, 200)
        self.assertEqual((data['promoted_count'], data['graduated_count'], data['skipped_count']), (1, 1, 2))

        self.assertEqual(self.db().get(Student, p3).class_level, "P4")
        self.assertEqual(self.db().get(Student, p7).class_level, "Alumni")
        history = self.read(self.client.get(f'/api/students/{p3}/promotions'))['history']
        self.assertEqual((history[0]['from_class'], history[0]['to_class']), ("P3", "P4"))
        self.assertEqual(self.db().query(PromotionHistory).count(), 2)

    def test_promote_to_new_stream(self):
        student_id = self.make_student(class_level="Top", stream="Blue")
        self.client.post('/api/students/promote', json={"student_ids": [student_id], "target_stream": "Red"})
        student = self.db().get(Student, student_id)
        self.assertEqual((student.class_level, student.stream), ("P1", "Red"))


class VerifyTestCase(ApiTestCase):

    def test_public_verification(self):
        student_id = self.make_student()
        data = self.assertStatus(app.test_client().get(f'/api/verify/student/{student_id}'), 200)
        self.assertEqual(data['student']['school_name'], "Greenhill Primary")
        self.assertEqual(data['student']['status'], "active")
        self.assertNotIn('medical_info', data['student'])

    def test_unknown_student(self):
        self.assertStatus(app.test_client().get('/api/verify/student/404'), 404, "Student not found")


if __name__ == "__main__":
    unittest.main()
