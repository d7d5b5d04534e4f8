from datetime import datetime
from AuditService import BaseService
from Models import User, UserSchool, School
from Helpers import NotFoundError, ConflictError, PermissionDenied, is_valid_email, password_problem

ROLES = ("admin", "teacher", "bursar", "staff", "parent")
PROFILE_FIELDS = ("name", "email", "phone")


class UserService(BaseService):

    def authenticate(self, username, password) -> User:
        """Match on username or email; returns None when the credentials are wrong."""
        user = self.session.query(User).filter_by(username=username).first()
        if user is None and username and "@" in username:
            user = self.session.query(User).filter_by(email=username).first()
        if user is None or not user.check_password(password):
            return None
        user.last_login_at = datetime.now()
        membership = user.default_membership()
        self.actor = user
        self.audit(membership.school_id if membership else None, "login", "user", user.id, user.name)
        self.commit()
        return user

    def get_user(self, user_id) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _check_new_user(self, data):
        for field in ("username", "name", "password"):
            if not data.get(field):
                raise ValueError(f"{field} is required")
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        problem = password_problem(data["password"])
        if problem:
            raise ValueError(problem)
        if self.session.query(User.id).filter_by(username=data["username"]).first():
            raise ConflictError("A user with this username already exists")

    @staticmethod
    def _check_role(role):
        if role not in ROLES:
            raise ValueError(f"role must be one of: {', '.join(ROLES)}")

    def _apply_profile(self, user, data):
        if data.get("email") and not is_valid_email(data["email"]):
            raise ValueError("Invalid email format")
        if "name" in data and not data["name"]:
            raise ValueError("name cannot be empty")
        for field in PROFILE_FIELDS:
            if field in data:
                value = data[field]
                setattr(user, field, value if field == "name" else (value or None))

    ##### SCHOOL ADMIN #####

    def get_school_users(self, school_id):
        rows = (self.session.query(User, UserSchool)
                .join(UserSchool, UserSchool.user_id == User.id)
                .filter(UserSchool.school_id == school_id)
                .order_by(User.name).all())
        out = []
        for user, membership in rows:
            row = user.to_dict()
            row["role"] = membership.role
            row["is_primary"] = membership.is_primary
            out.append(row)
        return out

    def _school_member(self, school_id, user_id):
        membership = self.session.query(UserSchool).filter_by(school_id=school_id, user_id=user_id).first()
        if membership is None:
            raise NotFoundError("User not found in this school")
        return membership

    def create_school_user(self, school_id, data: dict) -> User:
        self._check_new_user(data)
        role = data.get("role") or "staff"
        self._check_role(role)
        user = User(username=data["username"], name=data["name"], password=data["password"],
                    email=data.get("email") or None, phone=data.get("phone") or None, role=role)
        self.session.add(user)
        self.session.flush()
        self.session.add(UserSchool(user_id=user.id, school_id=school_id, role=role, is_primary=True))
        self.audit(school_id, "create", "user", user.id, user.name, {"role": role})
        self.commit()
        return user

    def update_school_user(self, school_id, user_id, data: dict) -> User:
        membership = self._school_member(school_id, user_id)
        user = membership.user
        if "role" in data:
            self._check_role(data["role"])
            membership.role = data["role"]
        self._apply_profile(user, data)
        self.audit(school_id, "update", "user", user.id, user.name, {"changes": sorted(data.keys())})
        self.commit()
        return user

    def remove_school_user(self, school_id, user_id):
        if user_id == self.actor_id:
            raise ValueError("You cannot remove your own account")
        membership = self._school_member(school_id, user_id)
        name = membership.user.name
        self.session.delete(membership)
        self.audit(school_id, "delete", "user", user_id, name, {"type": "remove_from_school"})
        self.commit()

    def reset_password(self, school_id, user_id, password):
        membership = self._school_member(school_id, user_id)
        problem = password_problem(password)
        if problem:
            raise ValueError(problem)
        if membership.user.is_super_admin and not (self.actor and self.actor.is_super_admin):
            raise PermissionDenied("Super admin access required")
        membership.user.set_password(password)
        self.audit(school_id, "update", "user", user_id, membership.user.name, {"type": "password_reset"})
        self.commit()

    def change_password(self, user, current_password, new_password):
        if not current_password or not user.check_password(current_password):
            raise PermissionDenied("Current password is incorrect")
        problem = password_problem(new_password)
        if problem:
            raise ValueError(problem)
        user.set_password(new_password)
        self.commit()

    ##### SUPER ADMIN #####

    def get_all_users(self):
        return [u.get_profile() for u in self.session.query(User).order_by(User.name).all()]

    def create_user(self, data: dict) -> User:
        self._check_new_user(data)
        role = data.get("role") or "staff"
        self._check_role(role)
        user = User(username=data["username"], name=data["name"], password=data["password"],
                    email=data.get("email") or None, phone=data.get("phone") or None, role=role,
                    is_super_admin=bool(data.get("is_super_admin")))
        self.session.add(user)
        self.session.flush()
        if data.get("school_id"):
            if self.session.get(School, data["school_id"]) is None:
                raise NotFoundError("School not found")
            self.session.add(UserSchool(user_id=user.id, school_id=data["school_id"], role=role, is_primary=True))
        self.audit(data.get("school_id"), "create", "user", user.id, user.name,
                   {"role": role, "is_super_admin": user.is_super_admin})
        self.commit()
        return user

    def update_user(self, user_id, data: dict) -> User:
        user = self.get_user(user_id)
        self._apply_profile(user, data)
        if "is_super_admin" in data:
            if user.id == self.actor_id and not data["is_super_admin"]:
                raise ValueError("You cannot revoke your own super admin access")
            user.is_super_admin = bool(data["is_super_admin"])
        if data.get("password"):
            problem = password_problem(data["password"])
            if problem:
                raise ValueError(problem)
            user.set_password(data["password"])
        self.audit(None, "update", "user", user.id, user.name,
                   {"changes": sorted(k for k in data.keys() if k != "password")})
        self.commit()
        return user

    def delete_user(self, user_id):
        if user_id == self.actor_id:
            raise ValueError("You cannot delete your own account")
        user = self.get_user(user_id)
        name = user.name
        self.session.delete(user)
        self.audit(None, "delete", "user", user_id, name)
        self.commit()

    def get_user_schools(self, user_id):
        return self.get_user(user_id).get_profile()["schools"]

    def assign_school(self, user_id, school_id, role, is_primary=False) -> UserSchool:
        user = self.get_user(user_id)
        if self.session.get(School, school_id) is None:
            raise NotFoundError("School not found")
        self._check_role(role)
        membership = user.membership(school_id)
        if membership is None:
            membership = UserSchool(user_id=user.id, school_id=school_id)
            self.session.add(membership)
            user.memberships.append(membership)
        membership.role = role
        if is_primary:
            for m in user.memberships:
                m.is_primary = m is membership
        self.audit(school_id, "update", "user", user.id, user.name, {"assigned_school": school_id, "role": role})
        self.commit()
        return membership

    def unassign_school(self, user_id, school_id):
        user = self.get_user(user_id)
        membership = user.membership(school_id)
        if membership is None:
            raise NotFoundError("User is not assigned to this school")
        user.memberships.remove(membership)
        self.audit(school_id, "update", "user", user.id, user.name, {"removed_school": school_id})
        self.commit()
