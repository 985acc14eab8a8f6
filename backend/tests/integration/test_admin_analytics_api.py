"""
Integration Tests for the administration console and analytics
"""
import csv
import io
import json

from httpx import AsyncClient

from conftest import fake


def user_payload(**overrides):
    data = {
        'email': fake.unique.email(),
        'password': 'Password123!',
        'first_name': 'Alan',
        'last_name': 'Turing',
    }
    data.update(overrides)
    return data


def question_payload(category_id, **overrides):
    data = {
        'text': 'Which account records money owed to suppliers?',
        'type': 'SINGLE_CHOICE',
        'difficulty': 'MEDIUM',
        'marks': 2,
        'exam_category_id': category_id,
        'options': [
            {'text': 'Accounts payable', 'is_correct': True},
            {'text': 'Accounts receivable', 'is_correct': False},
        ],
    }
    data.update(overrides)
    return data


class TestHealth:

    async def test_root_health(self, client: AsyncClient):
        response = await client.get('/health')

        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    async def test_api_health(self, client: AsyncClient):
        response = await client.get('/api/v1/health')

        assert response.json()['service'] == 'mockexam-backend'

    async def test_system_health(self, client: AsyncClient, admin_auth_headers):
        response = await client.get('/api/v1/admin/system/health', headers=admin_auth_headers)

        data = response.json()['data']
        assert data['status'] == 'healthy'
        assert data['database']['status'] == 'healthy'
        assert 'uptime' in data

    async def test_system_health_requires_admin(self, client: AsyncClient, moderator_auth_headers):
        response = await client.get('/api/v1/admin/system/health', headers=moderator_auth_headers)

        assert response.status_code == 403


class TestUserManagement:

    async def test_create_and_list(self, client: AsyncClient, admin_auth_headers):
        created = await client.post(
            '/api/v1/admin/users', json=user_payload(is_email_verified=True), headers=admin_auth_headers
        )
        assert created.status_code == 201
        assert created.json()['data']['is_email_verified'] is True

        listing = await client.get(
            '/api/v1/admin/users', params={'search': 'Turing'}, headers=admin_auth_headers
        )
        assert listing.json()['data']['pagination']['total'] == 1

    async def test_filter_by_role(self, client: AsyncClient, student, moderator, admin_auth_headers):
        response = await client.get('/api/v1/admin/users', params={'role': 'moderator'}, headers=admin_auth_headers)

        emails = [u['email'] for u in response.json()['data']['items']]
        assert emails == [moderator.email]

    async def test_user_detail(self, client: AsyncClient, student, admin_auth_headers):
        response = await client.get(f'/api/v1/admin/users/{student.id}', headers=admin_auth_headers)

        data = response.json()['data']
        assert data['email'] == student.email
        assert data['attempt_count'] == 0

    async def test_bulk_import_reports_duplicates(self, client: AsyncClient, student, admin_auth_headers):
        duplicate = user_payload(email=student.email)
        fresh = user_payload()

        response = await client.post(
            '/api/v1/admin/users/bulk-import', json={'users': [fresh, duplicate]}, headers=admin_auth_headers
        )

        data = response.json()['data']
        assert data['summary'] == {'total': 2, 'successful': 1, 'failed': 1}
        assert data['failed'][0]['index'] == 1

    async def test_only_super_admin_promotes_to_admin(
        self, client: AsyncClient, student, admin_auth_headers, super_admin_auth_headers
    ):
        url = f'/api/v1/admin/users/{student.id}'

        denied = await client.put(url, json={'role': 'admin'}, headers=admin_auth_headers)
        allowed = await client.put(url, json={'role': 'admin'}, headers=super_admin_auth_headers)

        assert denied.status_code == 403
        assert allowed.json()['data']['role'] == 'admin'

    async def test_admin_can_promote_to_moderator(self, client: AsyncClient, student, admin_auth_headers):
        response = await client.put(
            f'/api/v1/admin/users/{student.id}', json={'role': 'moderator'}, headers=admin_auth_headers
        )

        assert response.json()['data']['role'] == 'moderator'

    async def test_admin_cannot_demote_super_admin(self, client: AsyncClient, super_admin, admin_auth_headers):
        response = await client.put(
            f'/api/v1/admin/users/{super_admin.id}', json={'role': 'student'}, headers=admin_auth_headers
        )

        assert response.status_code == 403

    async def test_null_fields_are_ignored_on_update(self, client: AsyncClient, student, admin_auth_headers):
        response = await client.put(
            f'/api/v1/admin/users/{student.id}',
            json={'first_name': None, 'is_active': None, 'last_name': 'Lovelace'},
            headers=admin_auth_headers,
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['first_name'] == student.first_name
        assert data['last_name'] == 'Lovelace'
        assert data['is_active'] is True

    async def test_deactivate_user_blocks_access(
        self, client: AsyncClient, student, auth_headers, admin_auth_headers
    ):
        response = await client.patch(
            f'/api/v1/admin/users/{student.id}/status', json={'is_active': False}, headers=admin_auth_headers
        )
        assert response.json()['data']['is_active'] is False

        profile = await client.get('/api/v1/auth/profile', headers=auth_headers)
        assert profile.status_code == 401

    async def test_cannot_deactivate_or_delete_self(self, client: AsyncClient, admin_user, admin_auth_headers):
        status_change = await client.patch(
            f'/api/v1/admin/users/{admin_user.id}/status', json={'is_active': False}, headers=admin_auth_headers
        )
        deletion = await client.delete(f'/api/v1/admin/users/{admin_user.id}', headers=admin_auth_headers)

        assert status_change.status_code == 400
        assert deletion.status_code == 400

    async def test_delete_user_without_history(self, client: AsyncClient, student, admin_auth_headers):
        response = await client.delete(f'/api/v1/admin/users/{student.id}', headers=admin_auth_headers)

        assert response.json()['data'] == {'deleted': True, 'deactivated': False}
        missing = await client.get(f'/api/v1/admin/users/{student.id}', headers=admin_auth_headers)
        assert missing.status_code == 404

    async def test_delete_user_with_history_deactivates(
        self, client: AsyncClient, free_exam, student, auth_headers, admin_auth_headers
    ):
        await client.post(f'/api/v1/exams/{free_exam.id}/start', headers=auth_headers)

        response = await client.delete(f'/api/v1/admin/users/{student.id}', headers=admin_auth_headers)

        assert response.json()['data'] == {'deleted': False, 'deactivated': True}


class TestCategoryAdmin:

    async def test_category_lifecycle(self, client: AsyncClient, admin_auth_headers):
        created = await client.post(
            '/api/v1/admin/exam-categories',
            json={'name': 'Taxation', 'color': '#10B981'},
            headers=admin_auth_headers,
        )
        assert created.status_code == 201
        category_id = created.json()['data']['id']

        updated = await client.put(
            f'/api/v1/admin/exam-categories/{category_id}',
            json={'description': 'Direct and indirect taxes'},
            headers=admin_auth_headers,
        )
        assert updated.json()['data']['description'] == 'Direct and indirect taxes'

        deleted = await client.delete(f'/api/v1/admin/exam-categories/{category_id}', headers=admin_auth_headers)
        assert deleted.status_code == 200

    async def test_duplicate_name(self, client: AsyncClient, category, admin_auth_headers):
        response = await client.post(
            '/api/v1/admin/exam-categories', json={'name': 'accounting'}, headers=admin_auth_headers
        )

        assert response.status_code == 409

    async def test_null_name_is_ignored_on_update(self, client: AsyncClient, category, admin_auth_headers):
        response = await client.put(
            f'/api/v1/admin/exam-categories/{category.id}',
            json={'name': None, 'sort_order': 3},
            headers=admin_auth_headers,
        )

        assert response.status_code == 200
        assert response.json()['data']['name'] == 'Accounting'
        assert response.json()['data']['sort_order'] == 3

    async def test_category_in_use_cannot_be_deleted(self, client: AsyncClient, category, questions, admin_auth_headers):
        response = await client.delete(f'/api/v1/admin/exam-categories/{category.id}', headers=admin_auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['details']['questions'] == len(questions)

    async def test_moderator_cannot_create_category(self, client: AsyncClient, moderator_auth_headers):
        response = await client.post(
            '/api/v1/admin/exam-categories', json={'name': 'Auditing'}, headers=moderator_auth_headers
        )

        assert response.status_code == 403


class TestQuestionAdmin:

    async def test_moderator_creates_question(self, client: AsyncClient, category, moderator_auth_headers):
        response = await client.post(
            '/api/v1/admin/questions', json=question_payload(category.id), headers=moderator_auth_headers
        )

        assert response.status_code == 201
        data = response.json()['data']
        assert len(data['options']) == 2
        assert data['usage_count'] == 0

    async def test_rules_are_enforced(self, client: AsyncClient, category, moderator_auth_headers):
        payload = question_payload(category.id, options=[
            {'text': 'Accounts payable', 'is_correct': True},
            {'text': 'Accrued expenses', 'is_correct': True},
        ])

        response = await client.post('/api/v1/admin/questions', json=payload, headers=moderator_auth_headers)

        assert response.status_code == 400

    async def test_update_replaces_options(self, client: AsyncClient, questions, moderator_auth_headers):
        question = questions[1]

        response = await client.put(
            f'/api/v1/admin/questions/{question.id}',
            json={'options': [
                {'text': 'Bank overdraft', 'is_correct': True},
                {'text': 'Prepaid rent', 'is_correct': False},
                {'text': 'Equipment', 'is_correct': False},
            ]},
            headers=moderator_auth_headers,
        )

        assert response.status_code == 200
        assert [o['text'] for o in response.json()['data']['options']][0] == 'Bank overdraft'

    async def test_null_text_is_ignored_on_update(self, client: AsyncClient, questions, moderator_auth_headers):
        question = questions[0]

        response = await client.put(
            f'/api/v1/admin/questions/{question.id}',
            json={'text': None, 'marks': 3},
            headers=moderator_auth_headers,
        )

        assert response.status_code == 200
        assert response.json()['data']['text'] == question.text
        assert response.json()['data']['marks'] == 3

    async def test_moderator_cannot_delete(self, client: AsyncClient, questions, moderator_auth_headers, admin_auth_headers):
        url = f'/api/v1/admin/questions/{questions[0].id}'

        assert (await client.delete(url, headers=moderator_auth_headers)).status_code == 403
        assert (await client.delete(url, headers=admin_auth_headers)).status_code == 200

    async def test_bulk_import_per_item(self, client: AsyncClient, category, moderator_auth_headers):
        good = question_payload(category.id)
        bad_type = question_payload(category.id, type='RIDDLE')
        bad_category = question_payload('missing-category')

        response = await client.post(
            '/api/v1/admin/questions/bulk-import',
            json={'questions': [good, bad_type, bad_category]},
            headers=moderator_auth_headers,
        )

        data = response.json()['data']
        assert data['summary']['successful'] == 1
        assert [f['index'] for f in data['failed']] == [1, 2]

    async def test_score_essay(self, client: AsyncClient, moderator_auth_headers):
        response = await client.post('/api/v1/admin/questions/score-essay', headers=moderator_auth_headers, json={
            'student_answer': 'Depreciation spreads the cost of an asset over its useful life.',
            'model_answer': 'Depreciation allocates the cost of a tangible asset over its useful life.',
            'max_marks': 5,
        })

        data = response.json()['data']
        assert 0 < data['total_score'] <= 5
        assert 'grade' in data

    async def test_students_cannot_score_essays(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/v1/admin/questions/score-essay', headers=auth_headers, json={
            'student_answer': 'text', 'model_answer': 'text',
        })

        assert response.status_code == 403


class TestExamAdmin:

    def exam_payload(self, category_id, **overrides):
        data = {
            'title': 'Intermediate Accounting Mock',
            'exam_category_id': category_id,
            'duration': 45,
            'total_marks': 20,
            'passing_marks': 60,
            'price': 12.5,
            'question_type_counts': {'SINGLE_CHOICE': 3},
        }
        data.update(overrides)
        return data

    async def test_create_and_approve(self, client: AsyncClient, category, admin_auth_headers):
        created = await client.post(
            '/api/v1/admin/exams', json=self.exam_payload(category.id), headers=admin_auth_headers
        )
        assert created.status_code == 201
        exam = created.json()['data']
        assert exam['total_questions'] == 3
        assert exam['is_approved'] is False

        approved = await client.patch(f"/api/v1/admin/exams/{exam['id']}/approve", headers=admin_auth_headers)

        data = approved.json()['data']
        assert data['is_approved'] is True
        assert data['approved_by'] is not None

    async def test_moderator_can_read_but_not_create(self, client: AsyncClient, category, free_exam, moderator_auth_headers):
        listing = await client.get('/api/v1/admin/exams', headers=moderator_auth_headers)
        created = await client.post(
            '/api/v1/admin/exams', json=self.exam_payload(category.id), headers=moderator_auth_headers
        )

        assert listing.json()['data']['pagination']['total'] == 1
        assert created.status_code == 403

    async def test_update_exam(self, client: AsyncClient, free_exam, moderator_auth_headers):
        response = await client.put(
            f'/api/v1/admin/exams/{free_exam.id}', json={'duration': 90}, headers=moderator_auth_headers
        )

        assert response.json()['data']['duration'] == 90

    async def test_null_fields_are_ignored_on_update(self, client: AsyncClient, free_exam, admin_auth_headers):
        response = await client.put(
            f'/api/v1/admin/exams/{free_exam.id}',
            json={'title': None, 'is_active': None, 'duration': 45},
            headers=admin_auth_headers,
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['title'] == free_exam.title
        assert data['is_active'] is True
        assert data['duration'] == 45

    async def test_unknown_category(self, client: AsyncClient, admin_auth_headers):
        response = await client.post(
            '/api/v1/admin/exams', json=self.exam_payload('missing'), headers=admin_auth_headers
        )

        assert response.status_code == 404

    async def test_exam_with_attempts_cannot_be_deleted(
        self, client: AsyncClient, free_exam, auth_headers, admin_auth_headers
    ):
        await client.post(f'/api/v1/exams/{free_exam.id}/start', headers=auth_headers)

        response = await client.delete(f'/api/v1/admin/exams/{free_exam.id}', headers=admin_auth_headers)

        assert response.status_code == 400

    async def test_delete_unused_exam(self, client: AsyncClient, free_exam, admin_auth_headers):
        response = await client.delete(f'/api/v1/admin/exams/{free_exam.id}', headers=admin_auth_headers)

        assert response.status_code == 200


class TestAuditAndExport:

    async def test_audit_trail(self, client: AsyncClient, category, admin_auth_headers):
        await client.post('/api/v1/admin/exam-categories', json={'name': 'Auditing'}, headers=admin_auth_headers)

        response = await client.get(
            '/api/v1/admin/system/audit-logs', params={'action': 'CATEGORY_CREATED'}, headers=admin_auth_headers
        )

        items = response.json()['data']['items']
        assert len(items) == 1
        assert items[0]['details'] == {'name': 'Auditing'}

    async def test_moderators_cannot_read_audit_logs(self, client: AsyncClient, moderator_auth_headers):
        response = await client.get('/api/v1/admin/system/audit-logs', headers=moderator_auth_headers)

        assert response.status_code == 403

    async def test_export_users_csv(self, client: AsyncClient, student, admin_user, admin_auth_headers):
        response = await client.get(
            '/api/v1/admin/system/export', params={'resource': 'users', 'format': 'csv'}, headers=admin_auth_headers
        )

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/csv')
        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert {r['email'] for r in rows} == {student.email, admin_user.email}

    async def test_export_exams_json(self, client: AsyncClient, free_exam, admin_auth_headers):
        response = await client.get(
            '/api/v1/admin/system/export', params={'resource': 'exams', 'format': 'json'}, headers=admin_auth_headers
        )

        assert json.loads(response.text)[0]['title'] == free_exam.title

    async def test_export_rejects_unknown_resource(self, client: AsyncClient, admin_auth_headers):
        response = await client.get(
            '/api/v1/admin/system/export', params={'resource': 'secrets'}, headers=admin_auth_headers
        )

        assert response.status_code == 400


class TestAnalytics:

    async def completed_attempt(self, client, exam, headers):
        started = (await client.post(f'/api/v1/exams/{exam.id}/start', headers=headers)).json()['data']
        await client.post(f"/api/v1/exams/attempts/{started['attempt']['id']}/complete", headers=headers)
        return started['attempt']['id']

    async def test_dashboard(self, client: AsyncClient, free_exam, student, auth_headers, admin_auth_headers):
        await self.completed_attempt(client, free_exam, auth_headers)

        response = await client.get('/api/v1/analytics/dashboard', headers=admin_auth_headers)

        data = response.json()['data']
        assert data['overview']['totalUsers'] == 2
        assert data['overview']['totalAttempts'] == 1
        assert data['overview']['totalQuestions'] == 5
        assert len(data['analytics']['userGrowth']) > 0

    async def test_admin_dashboard_stats_route(self, client: AsyncClient, admin_auth_headers):
        response = await client.get('/api/v1/admin/dashboard/stats', headers=admin_auth_headers)

        assert response.status_code == 200
        assert 'overview' in response.json()['data']

    async def test_students_have_no_analytics(self, client: AsyncClient, auth_headers):
        response = await client.get('/api/v1/analytics/dashboard', headers=auth_headers)

        assert response.status_code == 403

    async def test_revenue_nets_out_refunds(
        self, client: AsyncClient, paid_exam, auth_headers, admin_auth_headers, future_time
    ):
        booking = (await client.post(
            '/api/v1/bookings', json={'exam_id': paid_exam.id, 'scheduled_at': future_time}, headers=auth_headers
        )).json()['data']['booking']
        payment = (await client.post(
            f"/api/v1/payments/admin/process-on-print/{booking['id']}", headers=auth_headers
        )).json()['data']['payment']
        await client.post(
            f"/api/v1/payments/{payment['id']}/refund", json={'amount': 10.5}, headers=admin_auth_headers
        )

        response = await client.get('/api/v1/analytics/dashboard', headers=admin_auth_headers)

        assert response.json()['data']['overview']['totalRevenue'] == 15.0

    async def test_system_and_breakdowns(self, client: AsyncClient, free_exam, auth_headers, moderator_auth_headers):
        await self.completed_attempt(client, free_exam, auth_headers)

        system = await client.get('/api/v1/analytics/system', headers=moderator_auth_headers)
        categories = await client.get('/api/v1/analytics/categories', headers=moderator_auth_headers)
        difficulty = await client.get('/api/v1/analytics/difficulty', headers=moderator_auth_headers)
        questions = await client.get('/api/v1/analytics/questions', headers=moderator_auth_headers)
        realtime = await client.get('/api/v1/analytics/realtime', headers=moderator_auth_headers)

        assert system.json()['data']['exams']['completed'] == 1
        assert categories.json()['data'][0]['name'] == 'Accounting'
        assert {d['difficulty'] for d in difficulty.json()['data']} >= {'EASY', 'MEDIUM'}
        assert questions.status_code == 200
        assert realtime.json()['data']['attemptsToday'] == 1

    async def test_exam_analytics(self, client: AsyncClient, free_exam, auth_headers, moderator_auth_headers):
        await self.completed_attempt(client, free_exam, auth_headers)

        response = await client.get(f'/api/v1/analytics/exams/{free_exam.id}', headers=moderator_auth_headers)

        data = response.json()['data']
        assert data['completed'] == 1
        assert data['passed'] == 0
        assert sum(bucket['count'] for bucket in data['scoreDistribution']) == 1
