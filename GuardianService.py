from AuditService import BaseService
from Models import Guardian, Student, User, UserSchool
from Helpers import NotFoundError, ConflictError, is_valid_email, password_problem


class GuardianService(BaseService):

    def get_guardians(self, school_id):
        return (self.session.query(Guardian)
                .filter_by(school_id=school_id, is_active=True)
                .order_by(Guardian.name).all())

    def get_guardian(self, school_id, guardian_id) -> Guardian:
        guardian = self.session.query(Guardian).filter_by(id=guardian_id, school_id=school_id).first()
        if guardian is None:
            raise NotFoundError("Guardian not found")
        return guardian

    def create_guardian(self, school_id, data: dict) -> Guardian:
        if not data.get("name"):
            raise ValueError("Guardian name is required")
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        guardian = Guardian(school_id=school_id, name=data["name"], relation=data.get("relation"),
                            phone=data.get("phone"), email=data.get("email") or None)
        self.session.add(guardian)
        self.commit()
        return guardian

    def link_student(self, school_id, guardian_id, student_id):
        guardian = self.get_guardian(school_id, guardian_id)
        student = self.session.query(Student).filter_by(id=student_id, school_id=school_id).first()
        if student is None:
            raise NotFoundError("Student not found")
        guardian.link_student(self.session, student)
        return guardian

    def unlink_student(self, school_id, guardian_id, student_id):
        guardian = self.get_guardian(school_id, guardian_id)
        guardian.unlink_student(self.session, student_id)

    def create_account(self, school_id, guardian_id, username, password) -> User:
        """Give a guardian a parent login in this school."""
        guardian = self.get_guardian(school_id, guardian_id)
        if guardian.user_id:
            raise ConflictError("Guardian already has an account")
        if not username:
            raise ValueError("Username is required")
        problem = password_problem(password)
        if problem:
            raise ValueError(problem)
        if self.session.query(User.id).filter_by(username=username).first():
            raise ConflictError("A user with this username already exists")

        user = User(username=username, name=guardian.name, password=password,
                    email=guardian.email, phone=guardian.phone, role="parent")
        self.session.add(user)
        self.session.flush()
        self.session.add(UserSchool(user_id=user.id, school_id=school_id, role="parent", is_primary=True))
        guardian.user_id = user.id
        self.audit(school_id, "create", "user", user.id, user.name, {"role": "parent", "guardian_id": guardian.id})
        self.commit()
        return user

    def children_for_user(self, school_id, user_id):
        return (self.session.query(Student)
                .join(Student.guardians)
                .filter(Guardian.user_id == user_id, Guardian.school_id == school_id,
                        Student.is_active.is_(True))
                .order_by(Student.name).all())

    def child_for_user(self, school_id, user_id, student_id) -> Student:
        for child in self.children_for_user(school_id, user_id):
            if child.id == student_id:
                return child
        raise NotFoundError("Child not found")
