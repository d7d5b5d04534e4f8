import unittest
from apitest import ApiTestCase
from Models import School


class StreamTestCase(ApiTestCase):

    def test_create_and_list_streams_with_enrolment(self):
        self.assertStatus(self.client.post('/api/streams', json={"class_level": "P5", "stream_name": "Blue",
                                                                 "max_capacity": 40}), 201, "Stream created")
        self.make_student(class_level="P5", stream="Blue")
        streams = self.read(self.client.get('/api/streams'))['streams']
        self.assertEqual(streams[0]['max_capacity'], 40)
        self.assertEqual(streams[0]['enrolled'], 1)

    def test_default_capacity(self):
        data = self.read(self.client.post('/api/streams', json={"class_level": "P1", "stream_name": "A"}))
        self.assertEqual(data['stream']['max_capacity'], 60)

    def test_duplicate_stream(self):
        self.client.post('/api/streams', json={"class_level": "P5", "stream_name": "Blue"})
        response = self.client.post('/api/streams', json={"class_level": "P5", "stream_name": "Blue"})
        self.assertStatus(response, 409, "Stream Blue already exists in class P5")

    def test_update_capacity(self):
        stream_id = self.read(self.client.post('/api/streams', json={"class_level": "P5",
                                                                     "stream_name": "Blue"}))['stream']['id']
        data = self.assertStatus(self.client.put(f'/api/streams/{stream_id}', json={"max_capacity": 45}), 200)
        self.assertEqual(data['stream']['max_capacity'], 45)
        self.assertStatus(self.client.put(f'/api/streams/{stream_id}', json={"max_capacity": 0}), 400,
                          "max_capacity must be at least 1")

    def test_delete_foreign_stream(self):
        self.assertStatus(self.client.delete('/api/streams/55'), 404, "Stream not found or unauthorized")


class AssignmentTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.teacher_id = self.make_teacher()
        self.other_teacher = self.make_teacher(name="Grace Atim", email="atim@example.com")
        self.year = self.db().get(School, self.school_id).current_year

    def test_class_teacher_is_replaced_not_duplicated(self):
        body = {"teacher_id": self.teacher_id, "class_level": "P5", "stream": "Blue"}
        self.assertStatus(self.client.post('/api/assignments/class-teacher', json=body), 200, "Class teacher assigned")
        body["teacher_id"] = self.other_teacher
        self.client.post('/api/assignments/class-teacher', json=body)

        data = self.read(self.client.get('/api/assignments'))
        self.assertEqual((data['term'], data['year']), (1, self.year))
        self.assertEqual(len(data['assignments']), 1)
        self.assertEqual(data['assignments'][0]['teacher_name'], "Grace Atim")

    def test_subject_teacher_requires_subject(self):
        body = {"teacher_id": self.teacher_id, "class_level": "P5", "stream": "Blue"}
        self.assertStatus(self.client.post('/api/assignments/subject-teacher', json=body), 400, "subject is required")
        body["subject"] = "maths"
        data = self.assertStatus(self.client.post('/api/assignments/subject-teacher', json=body), 200)
        self.assertEqual(data['assignment']['role'], "subject_teacher")

    def test_unknown_teacher(self):
        body = {"teacher_id": 999, "class_level": "P5", "stream": "Blue"}
        self.assertStatus(self.client.post('/api/assignments/class-teacher', json=body), 404, "Teacher not found")

    def test_remove_assignment(self):
        body = {"teacher_id": self.teacher_id, "class_level": "P5", "stream": "Blue", "subject": "maths"}
        assignment_id = self.read(self.client.post('/api/assignments/subject-teacher', json=body))['assignment']['id']
        self.assertStatus(self.client.delete(f'/api/assignments/{assignment_id}'), 200, "Assignment removed")
        self.assertStatus(self.client.delete(f'/api/assignments/{assignment_id}'), 404,
                          "Assignment not found or unauthorized")

    def test_class_register(self):
        self.make_student(name="Amina Nakato", class_level="P5", stream="Blue")
        self.make_student(name="Brian Mugisha", class_level="P5", stream="Red")
        self.client.post('/api/assignments/class-teacher',
                         json={"teacher_id": self.teacher_id, "class_level": "P5", "stream": "Blue"})
        data = self.assertStatus(self.client.get('/api/classes/P5/register?stream=Blue'), 200)
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['class_teacher']['name'], "John Okello")

        data = self.read(self.client.get('/api/classes/P5/register'))
        self.assertEqual(data['count'], 2)
        self.assertIsNone(data['class_teacher'])


if __name__ == "__main__":
    unittest.main()
