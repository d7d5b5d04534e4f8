import os, sys
import json
import unittest
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ["FLASK_CONFIG"] = "Test"

import app as app_module
from app import app, SessionLocal, engine
from Models import Base, User, UserSchool, Student, Teacher
from SchoolService import SchoolService

PASSWORD = "Passw0rd1"


class ApiTestCase(unittest.TestCase):
    """Fresh in-memory database per test, with one school and its admin logged in."""

    def setUp(self):
        Base.metadata.create_all(bind=engine)
        app_module.LOGIN_ATTEMPTS.clear()
        app_module.TOKEN_BLOCKLIST.clear()
        self.session = SessionLocal()
        self.school_id = self.make_school("Greenhill Primary", "GHP")
        self.admin_id = self.make_user("admin", "admin")
        self.client = self.login("admin")

    def tearDown(self):
        self.session.close()
        Base.metadata.drop_all(bind=engine)

    ##### FIXTURES #####

    def make_school(self, name, code):
        return SchoolService(self.session).create_school({"name": name, "code": code}).id

    def make_user(self, username, role, school_id=None, super_admin=False, member=True, name=None):
        user = User(username=username, name=name or username.title(), password=PASSWORD,
                    email=f"{username}@example.com", role=role, is_super_admin=super_admin)
        self.session.add(user)
        self.session.flush()
        if member:
            self.session.add(UserSchool(user_id=user.id, school_id=school_id or self.school_id,
                                        role=role, is_primary=True))
        self.session.commit()
        return user.id

    def make_student(self, name="Amina Nakato", class_level="P5", stream="Blue", gender="F",
                     boarding_status="day", school_id=None, **extra):
        extra.setdefault("index_number", f"IDX-{name.replace(' ', '')}")
        extra.setdefault("special_cases", {})
        student = Student(school_id=school_id or self.school_id, name=name, class_level=class_level,
                          stream=stream, gender=gender, boarding_status=boarding_status, **extra)
        self.session.add(student)
        self.session.commit()
        return student.id

    def make_teacher(self, name="John Okello", email="okello@example.com", school_id=None):
        teacher = Teacher(school_id=school_id or self.school_id, name=name, gender="M", phone="0700000000",
                          email=email, roles=[], subjects=[], teaching_classes=[], education_history=[])
        self.session.add(teacher)
        self.session.commit()
        return teacher.id

    def db(self):
        self.session.expire_all()
        return self.session

    ##### HTTP #####

    def login(self, username, password=PASSWORD):
        client = app.test_client()
        response = client.post('/api/auth/login', json={"username": username, "password": password})
        self.assertEqual(response.status_code, 200, response.data)
        return client

    def read(self, response):
        return json.loads(response.data.decode())

    def assertStatus(self, response, code, message=None):
        self.assertEqual(response.status_code, code, response.data)
        data = self.read(response)
        self.assertEqual(data['status'], 'success' if code < 400 else 'error')
        if message is not None:
            self.assertEqual(data['message'], message)
        return data
