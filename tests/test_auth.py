import unittest
from datetime import datetime, timedelta
from apitest import ApiTestCase, PASSWORD, app, app_module
from Models import AuditLog, UserSchool


class LoginTestCase(ApiTestCase):

    def test_login_returns_profile_and_active_school(self):
        client = app.test_client()
        response = client.post('/api/auth/login', json={"username": "admin", "password": PASSWORD})
        data = self.assertStatus(response, 200, "Login successful")
        self.assertEqual(data['school_id'], self.school_id)
        self.assertEqual(data['role'], "admin")
        self.assertEqual(data['user']['username'], "admin")
        self.assertNotIn('password', data['user'])
        self.assertTrue(data['access_token'])

    def test_login_with_email(self):
        client = app.test_client()
        response = client.post('/api/auth/login', json={"username": "admin@example.com", "password": PASSWORD})
        self.assertStatus(response, 200)

    def test_login_missing_fields(self):
        response = app.test_client().post('/api/auth/login', json={"username": "admin"})
        self.assertStatus(response, 400, "Username and password are required")

    def test_login_incorrect_password(self):
        response = app.test_client().post('/api/auth/login', json={"username": "admin", "password": "Wrong1234"})
        self.assertStatus(response, 403, "Invalid username or password")

    def test_login_unknown_user(self):
        response = app.test_client().post('/api/auth/login', json={"username": "ghost", "password": PASSWORD})
        self.assertStatus(response, 403, "Invalid username or password")

    def test_lockout_after_repeated_failures(self):
        client = app.test_client()
        for _ in range(5):
            response = client.post('/api/auth/login', json={"username": "admin", "password": "Wrong1234"})
            self.assertEqual(response.status_code, 403)
        response = client.post('/api/auth/login', json={"username": "admin", "password": PASSWORD})
        self.assertStatus(response, 429, "Too many failed login attempts. Try again later.")

    def test_login_is_audited(self):
        logs = self.db().query(AuditLog).filter_by(action="login", user_id=self.admin_id).all()
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].school_id, self.school_id)

    def test_me(self):
        data = self.assertStatus(self.client.get('/api/me'), 200)
        self.assertEqual(data['user']['id'], self.admin_id)
        self.assertEqual(data['role'], "admin")

    def test_me_requires_authentication(self):
        self.assertStatus(app.test_client().get('/api/me'), 401, "Authentication required")

    def test_bearer_header_authentication(self):
        token = self.read(app.test_client().post(
            '/api/auth/login', json={"username": "admin", "password": PASSWORD}))['access_token']
        response = app.test_client().get('/api/me', headers={"Authorization": f"Bearer {token}"})
        self.assertStatus(response, 200)


class LogoutTestCase(ApiTestCase):

    def test_logout_revokes_token(self):
        client = app.test_client()
        token = self.read(client.post('/api/auth/login',
                                      json={"username": "admin", "password": PASSWORD}))['access_token']
        self.assertStatus(client.post('/api/auth/logout'), 200, "Logged out")

        response = app.test_client().get('/api/me', headers={"Authorization": f"Bearer {token}"})
        self.assertStatus(response, 401, "Token has been revoked")

    def test_logout_clears_cookies(self):
        self.client.post('/api/auth/logout')
        self.assertStatus(self.client.get('/api/me'), 401, "Authentication required")

    def test_refresh_issues_new_access_token(self):
        data = self.assertStatus(self.client.post('/api/auth/refresh'), 200, "Token refreshed")
        self.assertTrue(data['access_token'])


class SwitchSchoolTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.other_school = self.make_school("Hillside Academy", "HSA")

    def test_switch_to_member_school_changes_role(self):
        self.session.add(UserSchool(user_id=self.admin_id, school_id=self.other_school, role="teacher"))
        self.session.commit()

        data = self.assertStatus(self.client.post('/api/auth/switch-school', json={"school_id": self.other_school}),
                                 200, "Switched to Hillside Academy")
        self.assertEqual(data['role'], "teacher")
        self.assertEqual(self.read(self.client.get('/api/me'))['school_id'], self.other_school)
        self.assertStatus(self.client.get('/api/users'), 403, "Admin access required")

    def test_switch_to_foreign_school_is_refused(self):
        response = self.client.post('/api/auth/switch-school', json={"school_id": self.other_school})
        self.assertStatus(response, 403, "You do not have access to this school")

    def test_super_admin_can_enter_any_school_as_admin(self):
        self.make_user("root", "admin", super_admin=True, member=False)
        root = self.login("root")
        data = self.assertStatus(root.post('/api/auth/switch-school', json={"school_id": self.other_school}), 200)
        self.assertEqual(data['role'], "admin")

    def test_switch_to_missing_school(self):
        self.assertStatus(self.client.post('/api/auth/switch-school', json={"school_id": 999}), 404, "School not found")


class ChangePasswordTestCase(ApiTestCase):

    def test_wrong_current_password(self):
        response = self.client.post('/api/auth/change-password',
                                    json={"current_password": "Nope12345", "new_password": "NewPassw0rd"})
        self.assertStatus(response, 403, "Current password is incorrect")

    def test_weak_new_password(self):
        response = self.client.post('/api/auth/change-password',
                                    json={"current_password": PASSWORD, "new_password": "short"})
        self.assertStatus(response, 400, "Password must be at least 8 characters")

    def test_password_without_digit(self):
        response = self.client.post('/api/auth/change-password',
                                    json={"current_password": PASSWORD, "new_password": "NoDigitsHere"})
        self.assertStatus(response, 400, "Password must contain at least one uppercase letter, "
                                         "one lowercase letter, and one number")

    def test_change_password(self):
        response = self.client.post('/api/auth/change-password',
                                    json={"current_password": PASSWORD, "new_password": "NewPassw0rd"})
        self.assertStatus(response, 200, "Password updated")
        self.login("admin", "NewPassw0rd")


class MembershipChangeTestCase(ApiTestCase):
    """Access follows the current membership, not the claims issued at login."""

    def setUp(self):
        super().setUp()
        self.clerk_id = self.make_user("clerk", "staff")
        self.clerk = self.login("clerk")

    def test_removed_member_loses_school_access(self):
        self.assertStatus(self.clerk.get('/api/students'), 200)
        self.assertStatus(self.client.delete(f'/api/users/{self.clerk_id}'), 200, "User removed from school")
        self.assertStatus(self.clerk.get('/api/students'), 403, "You do not have access to this school")
        self.assertStatus(self.clerk.post('/api/auth/refresh'), 403, "You do not have access to this school")

    def test_demoted_admin_loses_admin_routes(self):
        self.make_user("deputy", "admin")
        deputy = self.login("deputy")
        deputy_id = self.read(deputy.get('/api/me'))['user']['id']
        self.assertStatus(deputy.get('/api/users'), 200)

        self.assertStatus(self.client.put(f'/api/users/{deputy_id}', json={"role": "teacher"}), 200)
        self.assertStatus(deputy.get('/api/users'), 403, "Admin access required")
        self.assertEqual(self.read(deputy.get('/api/me'))['role'], "teacher")

    def test_refresh_carries_the_current_role(self):
        self.client.put(f'/api/users/{self.clerk_id}', json={"role": "bursar"})
        self.assertStatus(self.clerk.post('/api/auth/refresh'), 200, "Token refreshed")
        self.assertStatus(self.clerk.get('/api/fees/structures'), 200)
        self.assertEqual(self.read(self.clerk.get('/api/me'))['role'], "bursar")

    def test_refresh_falls_back_to_remaining_school(self):
        other = self.make_school("Hillside Academy", "HSA")
        self.session.add(UserSchool(user_id=self.clerk_id, school_id=other, role="teacher"))
        self.session.commit()
        self.client.delete(f'/api/users/{self.clerk_id}')

        self.assertStatus(self.clerk.post('/api/auth/refresh'), 200)
        me = self.read(self.clerk.get('/api/me'))
        self.assertEqual((me['school_id'], me['role']), (other, "teacher"))

    def test_deactivated_school_is_closed(self):
        self.make_user("root", "admin", super_admin=True, member=False)
        root = self.login("root")
        self.assertStatus(root.delete(f'/api/admin/schools/{self.school_id}'), 200)
        self.assertStatus(self.client.get('/api/students'), 403, "You do not have access to this school")
        self.assertIsNone(self.read(self.client.get('/api/me'))['school_id'])


class LoginAttemptPruningTestCase(ApiTestCase):

    def test_expired_entries_are_forgotten(self):
        now = datetime.now()
        app_module.LOGIN_ATTEMPTS.update({
            "10.0.0.1": {"count": 0, "locked_until": now - timedelta(seconds=1), "last_failed": now - timedelta(minutes=20)},
            "10.0.0.2": {"count": 2, "locked_until": None, "last_failed": now - timedelta(hours=1)},
            "10.0.0.3": {"count": 0, "locked_until": now + timedelta(minutes=5), "last_failed": now},
            "10.0.0.4": {"count": 1, "locked_until": None, "last_failed": now},
        })
        app_module.prune_login_attempts(now)
        self.assertEqual(sorted(app_module.LOGIN_ATTEMPTS), ["10.0.0.3", "10.0.0.4"])

    def test_lockout_expires(self):
        client = app.test_client()
        for _ in range(5):
            client.post('/api/auth/login', json={"username": "admin", "password": "Wrong1234"})
        ip = next(iter(app_module.LOGIN_ATTEMPTS))
        app_module.LOGIN_ATTEMPTS[ip]["locked_until"] = datetime.now() - timedelta(seconds=1)
        response = client.post('/api/auth/login', json={"username": "admin", "password": PASSWORD})
        self.assertStatus(response, 200, "Login successful")
        self.assertEqual(app_module.LOGIN_ATTEMPTS, {})


if __name__ == "__main__":
    unittest.main()
