"""
Integration Tests for the authentication endpoints
Tests login, lockout, token refresh, registration, password lifecycle and profile
"""
from httpx import AsyncClient
from sqlalchemy import select

from app.core.config import settings
from app.models.audit_log import AuditLog
from app.models.user import User

from conftest import TEST_PASSWORD, fake, login


class TestLogin:

    async def test_login_success(self, client: AsyncClient, student):
        response = await client.post(
            '/api/v1/auth/login',
            json={'email': student.email, 'password': TEST_PASSWORD}
        )

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        data = body['data']
        assert data['token_type'] == 'bearer'
        assert data['access_token'] and data['refresh_token']
        assert data['user']['email'] == student.email
        assert data['expires_in'] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    async def test_login_email_is_case_insensitive(self, client: AsyncClient, student):
        response = await client.post(
            '/api/v1/auth/login',
            json={'email': student.email.upper(), 'password': TEST_PASSWORD}
        )

        assert response.status_code == 200

    async def test_login_invalid_credentials(self, client: AsyncClient, student):
        response = await client.post(
            '/api/v1/auth/login',
            json={'email': student.email, 'password': 'WrongPassword1!'}
        )

        assert response.status_code == 401
        assert response.json()['message'] == 'Invalid email or password'

    async def test_login_unknown_email(self, client: AsyncClient):
        response = await client.post(
            '/api/v1/auth/login',
            json={'email': 'nobody@example.com', 'password': TEST_PASSWORD}
        )

        assert response.status_code == 401

    async def test_login_inactive_account(self, client: AsyncClient, make_user):
        user = await make_user(is_active=False)

        response = await client.post('/api/v1/auth/login', json={'email': user.email, 'password': TEST_PASSWORD})

        assert response.status_code == 401
        assert response.json()['message'] == 'Account is deactivated'

    async def test_account_locks_after_repeated_failures(self, client: AsyncClient, student):
        for _ in range(settings.MAX_LOGIN_ATTEMPTS):
            await client.post('/api/v1/auth/login', json={'email': student.email, 'password': 'WrongPassword1!'})

        response = await client.post('/api/v1/auth/login', json={'email': student.email, 'password': TEST_PASSWORD})

        assert response.status_code == 423
        assert response.json()['error']['code'] == 'ACCOUNT_LOCKED'

    async def test_login_writes_audit_entry(self, client: AsyncClient, db_session, student):
        await login(client, student.email)

        result = await db_session.execute(select(AuditLog).where(AuditLog.action == 'USER_LOGIN'))
        entry = result.scalar_one()
        assert entry.user_id == student.id

    async def test_validation_error_shape(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/login', json={'email': 'not-an-email'})

        assert response.status_code == 400
        body = response.json()
        assert body['success'] is False
        assert body['message'] == 'Validation error'
        fields = {e['field'] for e in body['errors']}
        assert {'email', 'password'} <= fields


class TestTokens:

    async def test_refresh_rotates_tokens(self, client: AsyncClient, student):
        tokens = await login(client, student.email)

        response = await client.post('/api/v1/auth/refresh-token', json={'refresh_token': tokens['refresh_token']})

        assert response.status_code == 200
        new_tokens = response.json()['data']
        assert new_tokens['refresh_token'] != tokens['refresh_token']

        # The old refresh token is now spent
        reused = await client.post('/api/v1/auth/refresh-token', json={'refresh_token': tokens['refresh_token']})
        assert reused.status_code == 401

    async def test_refresh_rejects_access_token(self, client: AsyncClient, student):
        tokens = await login(client, student.email)

        response = await client.post('/api/v1/auth/refresh-token', json={'refresh_token': tokens['access_token']})

        assert response.status_code == 401

    async def test_logout_ends_session(self, client: AsyncClient, student):
        tokens = await login(client, student.email)
        headers = {'Authorization': f"Bearer {tokens['access_token']}"}

        response = await client.post(
            '/api/v1/auth/logout', json={'refresh_token': tokens['refresh_token']}, headers=headers
        )

        assert response.status_code == 200
        refreshed = await client.post('/api/v1/auth/refresh-token', json={'refresh_token': tokens['refresh_token']})
        assert refreshed.status_code == 401

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get('/api/v1/auth/profile')

        assert response.status_code == 401
        assert response.json()['success'] is False

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get('/api/v1/auth/profile', headers={'Authorization': 'Bearer not-a-jwt'})

        assert response.status_code == 401


class TestRegistration:

    def payload(self, **overrides):
        data = {
            'email': fake.unique.email(),
            'password': 'Password123!',
            'first_name': 'Grace',
            'last_name': 'Hopper',
        }
        data.update(overrides)
        return data

    async def test_admin_registers_student(self, client: AsyncClient, admin_auth_headers):
        response = await client.post('/api/v1/auth/register', json=self.payload(), headers=admin_auth_headers)

        assert response.status_code == 201
        data = response.json()['data']
        assert data['role'] == 'student'
        assert data['full_name'] == 'Grace Hopper'
        assert data['is_email_verified'] is False

    async def test_student_cannot_register_users(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/v1/auth/register', json=self.payload(), headers=auth_headers)

        assert response.status_code == 403

    async def test_duplicate_email(self, client: AsyncClient, admin_auth_headers, student):
        response = await client.post(
            '/api/v1/auth/register', json=self.payload(email=student.email), headers=admin_auth_headers
        )

        assert response.status_code == 409

    async def test_admin_cannot_create_admin(self, client: AsyncClient, admin_auth_headers):
        response = await client.post(
            '/api/v1/auth/register', json=self.payload(role='admin'), headers=admin_auth_headers
        )

        assert response.status_code == 403

    async def test_super_admin_can_create_admin(self, client: AsyncClient, super_admin_auth_headers):
        response = await client.post(
            '/api/v1/auth/register', json=self.payload(role='admin'), headers=super_admin_auth_headers
        )

        assert response.status_code == 201
        assert response.json()['data']['role'] == 'admin'

    async def test_weak_password(self, client: AsyncClient, admin_auth_headers):
        response = await client.post(
            '/api/v1/auth/register', json=self.payload(password='weakpass'), headers=admin_auth_headers
        )

        assert response.status_code == 400
        assert response.json()['errors'][0]['field'] == 'password'

    async def test_verify_email(self, client: AsyncClient, db_session, admin_auth_headers):
        payload = self.payload()
        await client.post('/api/v1/auth/register', json=payload, headers=admin_auth_headers)
        user = (await db_session.execute(select(User).where(User.email == payload['email'].lower()))).scalar_one()

        token = user.email_verification_token

        response = await client.get(f"/api/v1/auth/verify-email/{token}")

        assert response.status_code == 200
        assert response.json()['data']['is_email_verified'] is True

        again = await client.get(f"/api/v1/auth/verify-email/{token}")
        assert again.status_code == 400


class TestPasswordLifecycle:

    async def test_reset_request_does_not_reveal_accounts(self, client: AsyncClient, student):
        known = await client.post('/api/v1/auth/request-password-reset', json={'email': student.email})
        unknown = await client.post('/api/v1/auth/request-password-reset', json={'email': 'ghost@example.com'})

        assert known.status_code == unknown.status_code == 200
        assert known.json()['message'] == unknown.json()['message']

    async def test_reset_password_with_token(self, client: AsyncClient, db_session, student):
        await client.post('/api/v1/auth/request-password-reset', json={'email': student.email})
        await db_session.refresh(student)

        response = await client.post('/api/v1/auth/reset-password', json={
            'token': student.password_reset_token,
            'password': 'NewPassword456!',
            'confirm_password': 'NewPassword456!',
        })

        assert response.status_code == 200
        relogin = await client.post(
            '/api/v1/auth/login', json={'email': student.email, 'password': 'NewPassword456!'}
        )
        assert relogin.status_code == 200

    async def test_reset_password_bad_token(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/reset-password', json={
            'token': 'bogus',
            'password': 'NewPassword456!',
            'confirm_password': 'NewPassword456!',
        })

        assert response.status_code == 400

    async def test_change_password(self, client: AsyncClient, student, auth_headers):
        response = await client.post('/api/v1/auth/change-password', headers=auth_headers, json={
            'current_password': TEST_PASSWORD,
            'new_password': 'Changed789!',
            'confirm_password': 'Changed789!',
        })

        assert response.status_code == 200

    async def test_change_password_wrong_current(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/v1/auth/change-password', headers=auth_headers, json={
            'current_password': 'NotMyPassword1!',
            'new_password': 'Changed789!',
            'confirm_password': 'Changed789!',
        })

        assert response.status_code == 400

    async def test_change_password_must_differ(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/v1/auth/change-password', headers=auth_headers, json={
            'current_password': TEST_PASSWORD,
            'new_password': TEST_PASSWORD,
            'confirm_password': TEST_PASSWORD,
        })

        assert response.status_code == 400

    async def test_password_strength(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/password-strength', json={'password': 'Password123!'})

        data = response.json()['data']
        assert data['is_valid'] is True
        assert data['strength'] == 'very_strong'


class TestProfile:

    async def test_get_profile(self, client: AsyncClient, student, auth_headers):
        response = await client.get('/api/v1/auth/profile', headers=auth_headers)

        assert response.status_code == 200
        assert response.json()['data']['id'] == student.id

    async def test_update_profile(self, client: AsyncClient, auth_headers):
        response = await client.put(
            '/api/v1/auth/profile', headers=auth_headers, json={'first_name': '  Ada ', 'phone': '+1 555 0100'}
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['first_name'] == 'Ada'
        assert data['phone'] == '+1 555 0100'

    async def test_update_profile_ignores_null(self, client: AsyncClient, student, auth_headers):
        response = await client.put(
            '/api/v1/auth/profile', headers=auth_headers, json={'first_name': None, 'last_name': 'Byron'}
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['first_name'] == student.first_name
        assert data['last_name'] == 'Byron'

    async def test_permissions(self, client: AsyncClient, moderator_auth_headers):
        response = await client.get('/api/v1/auth/permissions', headers=moderator_auth_headers)

        data = response.json()['data']
        assert data['role'] == 'moderator'
        assert 'question:create' in data['permissions']
