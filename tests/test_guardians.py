import unittest
from apitest import ApiTestCase, PASSWORD
from Models import Guardian, Mark, User


class GuardianTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.student_id = self.make_student()
        response = self.client.post('/api/guardians', json={"name": "Sarah Nakato", "relation": "Mother",
                                                            "phone": "0772000000", "email": "sarah@example.com"})
        self.guardian_id = self.assertStatus(response, 201, "Guardian created")['guardian']['id']

    def test_create_guardian_requires_name(self):
        self.assertStatus(self.client.post('/api/guardians', json={"phone": "1"}), 400, "Guardian name is required")

    def test_invalid_email(self):
        response = self.client.post('/api/guardians', json={"name": "X", "email": "nope"})
        self.assertStatus(response, 400, "Invalid email format")

    def test_link_and_unlink(self):
        url = f'/api/guardians/{self.guardian_id}/students'
        data = self.assertStatus(self.client.post(url, json={"student_id": self.student_id}), 200, "Student linked")
        self.assertEqual([s['id'] for s in data['guardian']['students']], [self.student_id])

        # linking twice keeps a single association
        self.client.post(url, json={"student_id": self.student_id})
        self.assertEqual(len(self.db().get(Guardian, self.guardian_id).students), 1)

        self.assertStatus(self.client.delete(f'{url}/{self.student_id}'), 200, "Student unlinked")
        self.assertStatus(self.client.delete(f'{url}/{self.student_id}'), 404, "Student not linked to this guardian")

    def test_link_unknown_student(self):
        response = self.client.post(f'/api/guardians/{self.guardian_id}/students', json={"student_id": 999})
        self.assertStatus(response, 404, "Student not found")

    def test_student_detail_lists_guardians(self):
        self.client.post(f'/api/guardians/{self.guardian_id}/students', json={"student_id": self.student_id})
        data = self.read(self.client.get(f'/api/students/{self.student_id}'))
        self.assertEqual(data['student']['guardians'][0]['relation'], "Mother")

    def test_teacher_cannot_manage_guardians(self):
        self.make_user("teacher", "teacher")
        self.assertStatus(self.login("teacher").get('/api/guardians'), 403, "Admin access required")

    def test_staff_cannot_manage_guardians(self):
        self.make_user("clerk", "staff")
        clerk = self.login("clerk")
        self.assertStatus(clerk.get('/api/guardians'), 403, "Admin access required")
        self.assertStatus(clerk.post('/api/guardians', json={"name": "Sarah Nakato"}), 403, "Admin access required")


class ParentPortalTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.child_id = self.make_student(name="Amina Nakato")
        self.other_id = self.make_student(name="Someone Else")
        guardian = Guardian(school_id=self.school_id, name="Sarah Nakato", relation="Mother")
        self.session.add(guardian)
        self.session.commit()
        self.guardian_id = guardian.id
        self.client.post(f'/api/guardians/{guardian.id}/students', json={"student_id": self.child_id})

        response = self.client.post(f'/api/guardians/{guardian.id}/account',
                                    json={"username": "sarah", "password": PASSWORD})
        self.assertStatus(response, 201, "Parent account created")
        self.parent = self.login("sarah")

    def test_account_is_parent_member(self):
        user = self.db().query(User).filter_by(username="sarah").one()
        self.assertEqual(user.membership(self.school_id).role, "parent")
        self.assertEqual(self.db().get(Guardian, self.guardian_id).user_id, user.id)

    def test_second_account_conflicts(self):
        response = self.client.post(f'/api/guardians/{self.guardian_id}/account',
                                    json={"username": "sarah2", "password": PASSWORD})
        self.assertStatus(response, 409, "Guardian already has an account")

    def test_children(self):
        data = self.assertStatus(self.parent.get('/api/parent/children'), 200)
        self.assertEqual([c['id'] for c in data['children']], [self.child_id])

    def test_child_marks(self):
        self.session.add(Mark(school_id=self.school_id, student_id=self.child_id, term=1, year=2024, type="EOT",
                              marks={"english": 80}, aggregate=0, division="-", status="draft"))
        self.session.commit()
        data = self.assertStatus(self.parent.get(f'/api/parent/children/{self.child_id}/marks'), 200)
        self.assertEqual(data['marks'][0]['marks'], {"english": 80})

    def test_other_children_are_hidden(self):
        self.assertStatus(self.parent.get(f'/api/parent/children/{self.other_id}/marks'), 404, "Child not found")
        self.assertStatus(self.parent.get(f'/api/parent/children/{self.other_id}/fees'), 404, "Child not found")

    def test_child_attendance_and_fees(self):
        self.assertStatus(self.parent.get(f'/api/parent/children/{self.child_id}/attendance'), 200)
        data = self.assertStatus(self.parent.get(f'/api/parent/children/{self.child_id}/fees'), 200)
        self.assertEqual(data['balance'], 0)

    def test_parent_cannot_reach_staff_routes(self):
        self.assertStatus(self.parent.get('/api/students'), 403, "Forbidden")


if __name__ == "__main__":
    unittest.main()
