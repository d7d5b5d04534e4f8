import unittest
from apitest import ApiTestCase
from Models import Teacher


class TeacherTestCase(ApiTestCase):

    def payload(self, **overrides):
        data = {"name": "Grace Atim", "gender": "F", "phone": "0701234567", "email": "atim@example.com",
                "subjects": ["english", "sst"], "employee_id": ""}
        data.update(overrides)
        return data

    def test_create_teacher(self):
        data = self.assertStatus(self.client.post('/api/teachers', json=self.payload()), 201, "Teacher created")
        self.assertEqual(data['teacher']['subjects'], ["english", "sst"])
        self.assertIsNone(data['teacher']['employee_id'])
        self.assertEqual(data['teacher']['education_history'], [])

    def test_missing_fields(self):
        response = self.client.post('/api/teachers', json={"name": "Grace Atim"})
        self.assertStatus(response, 400, "Missing required fields: gender, phone, email")

    def test_invalid_email(self):
        response = self.client.post('/api/teachers', json=self.payload(email="atim"))
        self.assertStatus(response, 400, "Invalid email format")

    def test_education_history_from_json_string(self):
        history = '[{"institution": "Kyambogo", "award": "Diploma"}]'
        data = self.read(self.client.post('/api/teachers', json=self.payload(education_history=history)))
        self.assertEqual(data['teacher']['education_history'][0]['institution'], "Kyambogo")

        data = self.read(self.client.post('/api/teachers', json=self.payload(education_history="not json")))
        self.assertEqual(data['teacher']['education_history'], [])

    def test_update_teacher(self):
        teacher_id = self.make_teacher()
        response = self.client.put(f'/api/teachers/{teacher_id}', json={"name": "John B. Okello",
                                                                        "date_joined": "2019-01-07"})
        data = self.assertStatus(response, 200, "Teacher updated")
        self.assertEqual(data['teacher']['name'], "John B. Okello")
        self.assertEqual(data['teacher']['date_joined'], "2019-01-07")

    def test_update_cannot_blank_required_field(self):
        teacher_id = self.make_teacher()
        self.assertStatus(self.client.put(f'/api/teachers/{teacher_id}', json={"phone": ""}), 400,
                          "phone cannot be empty")

    def test_delete_is_soft(self):
        teacher_id = self.make_teacher()
        self.assertStatus(self.client.delete(f'/api/teachers/{teacher_id}'), 200, "Teacher deleted")
        self.assertFalse(self.db().get(Teacher, teacher_id).is_active)
        self.assertEqual(self.read(self.client.get('/api/teachers'))['teachers'], [])

    def test_unknown_teacher(self):
        self.assertStatus(self.client.get('/api/teachers/77'), 404, "Teacher not found")

    def test_batch_import_is_all_or_nothing(self):
        rows = [self.payload(), self.payload(name="Peter Ouma", email="ouma@example.com"), {"name": "Incomplete"}]
        response = self.client.post('/api/teachers/import', json={"teachers": rows})
        self.assertStatus(response, 400, "Row for Incomplete is missing: gender, phone, email")
        self.assertEqual(self.db().query(Teacher).count(), 0)

        response = self.client.post('/api/teachers/import', json={"teachers": rows[:2]})
        self.assertStatus(response, 201, "2 teachers imported")

    def test_teacher_role_can_read_but_not_create(self):
        self.make_user("teacher", "teacher")
        client = self.login("teacher")
        self.assertStatus(client.get('/api/teachers'), 200)
        self.assertStatus(client.post('/api/teachers', json=self.payload()), 403, "Admin access required")


if __name__ == "__main__":
    unittest.main()
