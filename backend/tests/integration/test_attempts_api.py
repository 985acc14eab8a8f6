"""
Integration Tests for taking exams
Start, answer, complete, results, certificates and leaderboards
"""
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy import select

from app.models.attempt import ExamAttempt, QuestionResponse
from app.models.question import QuestionType


def correct_answer(question) -> dict:
    """Response payload answering a fixture question correctly"""
    if question.type == QuestionType.SHORT_ANSWER:
        return {'question_id': question.id, 'essay_answer': '  Income   Statement '}
    return {
        'question_id': question.id,
        'selected_options': [o.id for o in question.options if o.is_correct],
        'time_spent': 20,
    }


def wrong_answer(question) -> dict:
    if question.type == QuestionType.SHORT_ANSWER:
        return {'question_id': question.id, 'essay_answer': 'trial balance'}
    return {
        'question_id': question.id,
        'selected_options': [o.id for o in question.options if not o.is_correct][:1],
    }


async def start(client: AsyncClient, exam, headers) -> dict:
    response = await client.post(f'/api/v1/exams/{exam.id}/start', headers=headers)
    assert response.status_code == 200, response.text
    return response.json()['data']


async def answer_all(client: AsyncClient, attempt_id: str, questions, headers, answer=correct_answer):
    for question in questions:
        response = await client.post(
            f'/api/v1/exams/attempts/{attempt_id}/responses', json=answer(question), headers=headers
        )
        assert response.status_code == 200, response.text


async def complete(client: AsyncClient, attempt_id: str, headers) -> dict:
    response = await client.post(f'/api/v1/exams/attempts/{attempt_id}/complete', headers=headers)
    assert response.status_code == 200, response.text
    return response.json()['data']


class TestStartExam:

    async def test_start_free_exam(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)

        assert data['attempt']['status'] == 'IN_PROGRESS'
        assert data['exam']['ends_at']
        assert {q['id'] for q in data['questions']} == {q.id for q in questions}
        for question in data['questions']:
            for option in question['options']:
                assert 'is_correct' not in option

    async def test_paid_exam_needs_booking(self, client: AsyncClient, paid_exam, auth_headers):
        response = await client.post(f'/api/v1/exams/{paid_exam.id}/start', headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['message'] == 'This exam requires a confirmed booking'

    async def test_one_attempt_in_progress(self, client: AsyncClient, free_exam, auth_headers):
        await start(client, free_exam, auth_headers)

        response = await client.post(f'/api/v1/exams/{free_exam.id}/start', headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['message'] == 'You already have an attempt in progress'

    async def test_retakes_not_allowed(self, client: AsyncClient, free_exam, auth_headers):
        data = await start(client, free_exam, auth_headers)
        await complete(client, data['attempt']['id'], auth_headers)

        response = await client.post(f'/api/v1/exams/{free_exam.id}/start', headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['message'] == 'Retakes are not allowed for this exam'

    async def test_retakes_limited(self, client: AsyncClient, make_exam, questions, auth_headers):
        exam = await make_exam(allow_retakes=True, max_retakes=1)

        for _ in range(2):
            data = await start(client, exam, auth_headers)
            await complete(client, data['attempt']['id'], auth_headers)

        response = await client.post(f'/api/v1/exams/{exam.id}/start', headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['message'] == 'Maximum retakes reached'

    async def test_type_counts_limit_selection(self, client: AsyncClient, make_exam, questions, auth_headers):
        exam = await make_exam(question_type_counts={'SINGLE_CHOICE': 2, 'SHORT_ANSWER': 1})

        data = await start(client, exam, auth_headers)

        types = sorted(q['type'] for q in data['questions'])
        assert types == ['SHORT_ANSWER', 'SINGLE_CHOICE', 'SINGLE_CHOICE']

    async def test_usage_counts_increase(self, client: AsyncClient, free_exam, questions, auth_headers):
        await start(client, free_exam, auth_headers)

        assert all(q.usage_count == 1 for q in questions)


class TestResponses:

    async def test_response_is_upserted(self, client: AsyncClient, db_session, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)
        attempt_id = data['attempt']['id']
        url = f'/api/v1/exams/attempts/{attempt_id}/responses'

        await client.post(url, json=wrong_answer(questions[0]), headers=auth_headers)
        response = await client.post(url, json=correct_answer(questions[0]), headers=auth_headers)

        assert response.status_code == 200
        rows = (await db_session.execute(
            select(QuestionResponse).where(QuestionResponse.attempt_id == attempt_id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].selected_options == [questions[0].options[0].id]

    async def test_question_must_belong_to_attempt(self, client: AsyncClient, make_exam, questions, auth_headers):
        exam = await make_exam(question_type_counts={'SHORT_ANSWER': 1})
        data = await start(client, exam, auth_headers)

        response = await client.post(
            f"/api/v1/exams/attempts/{data['attempt']['id']}/responses",
            json=correct_answer(questions[0]),
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()['error']['details']['field'] == 'question_id'

    async def test_option_must_belong_to_question(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)

        response = await client.post(
            f"/api/v1/exams/attempts/{data['attempt']['id']}/responses",
            json={'question_id': questions[0].id, 'selected_options': [questions[1].options[0].id]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()['message'] == 'Invalid option selected'

    async def test_empty_response_rejected(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)

        response = await client.post(
            f"/api/v1/exams/attempts/{data['attempt']['id']}/responses",
            json={'question_id': questions[0].id},
            headers=auth_headers,
        )

        assert response.status_code == 400

    async def test_other_users_attempt_is_hidden(
        self, client: AsyncClient, free_exam, questions, auth_headers, other_auth_headers
    ):
        data = await start(client, free_exam, auth_headers)
        attempt_id = data['attempt']['id']

        submit = await client.post(
            f'/api/v1/exams/attempts/{attempt_id}/responses',
            json=correct_answer(questions[0]),
            headers=other_auth_headers,
        )
        view = await client.get(f'/api/v1/exams/attempts/{attempt_id}', headers=other_auth_headers)

        assert submit.status_code == 404
        assert view.status_code == 403

    async def test_overdue_attempt_times_out(
        self, client: AsyncClient, db_session, free_exam, questions, auth_headers
    ):
        data = await start(client, free_exam, auth_headers)
        attempt = (await db_session.execute(
            select(ExamAttempt).where(ExamAttempt.id == data['attempt']['id'])
        )).scalar_one()
        attempt.started_at = attempt.started_at - timedelta(minutes=free_exam.duration + 1)
        await db_session.commit()

        response = await client.post(
            f'/api/v1/exams/attempts/{attempt.id}/responses',
            json=correct_answer(questions[0]),
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'EXAM_TIMED_OUT'

        # A timed out attempt can still be graded
        result = await complete(client, attempt.id, auth_headers)
        assert result['attempt']['status'] == 'COMPLETED'
        assert result['attempt']['time_spent'] == free_exam.duration * 60


class TestCompletion:

    async def test_perfect_score(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)
        attempt_id = data['attempt']['id']
        await answer_all(client, attempt_id, questions, auth_headers)

        result = await complete(client, attempt_id, auth_headers)

        attempt = result['attempt']
        assert attempt['total_score'] == 6.0
        assert attempt['max_score'] == 6.0
        assert attempt['percentage'] == 100.0
        assert attempt['is_passed'] is True
        assert result['answered'] == 5
        assert result['certificate']['certificate_number'].startswith('CERT-')

    async def test_partial_score_without_certificate(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)
        attempt_id = data['attempt']['id']
        await answer_all(client, attempt_id, questions[:1], auth_headers)
        await answer_all(client, attempt_id, questions[1:], auth_headers, answer=wrong_answer)

        result = await complete(client, attempt_id, auth_headers)

        assert result['attempt']['total_score'] == 1.0
        assert result['attempt']['percentage'] == 16.67
        assert result['attempt']['is_passed'] is False
        assert result['certificate'] is None

        certificate = await client.post(f'/api/v1/exams/attempts/{attempt_id}/certificate', headers=auth_headers)
        assert certificate.status_code == 400

    async def test_partial_multiple_choice_earns_nothing(self, client: AsyncClient, free_exam, questions, auth_headers):
        multiple = questions[3]
        data = await start(client, free_exam, auth_headers)
        attempt_id = data['attempt']['id']
        await client.post(
            f'/api/v1/exams/attempts/{attempt_id}/responses',
            json={'question_id': multiple.id, 'selected_options': [multiple.options[0].id]},
            headers=auth_headers,
        )

        result = await complete(client, attempt_id, auth_headers)

        assert result['attempt']['total_score'] == 0.0

    async def test_cannot_complete_twice(self, client: AsyncClient, free_exam, auth_headers):
        data = await start(client, free_exam, auth_headers)
        await complete(client, data['attempt']['id'], auth_headers)

        response = await client.post(f"/api/v1/exams/attempts/{data['attempt']['id']}/complete", headers=auth_headers)

        assert response.status_code == 400

    async def test_booking_completes_when_attempts_used(
        self, client: AsyncClient, free_exam, auth_headers, future_time
    ):
        booking = (await client.post(
            '/api/v1/bookings', json={'exam_id': free_exam.id, 'scheduled_at': future_time}, headers=auth_headers
        )).json()['data']['booking']
        started = (await client.post(
            f"/api/v1/bookings/{booking['id']}/start-exam", headers=auth_headers
        )).json()['data']

        await complete(client, started['attempt']['id'], auth_headers)

        refreshed = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
        assert refreshed.json()['data']['status'] == 'COMPLETED'


class TestResultsAndCertificates:

    async def finished_attempt(self, client, exam, questions, headers) -> dict:
        data = await start(client, exam, headers)
        attempt_id = data['attempt']['id']
        await answer_all(client, attempt_id, questions, headers)
        return await complete(client, attempt_id, headers)

    async def test_results_need_completion(self, client: AsyncClient, free_exam, auth_headers):
        data = await start(client, free_exam, auth_headers)

        response = await client.get(f"/api/v1/exams/attempts/{data['attempt']['id']}/results", headers=auth_headers)

        assert response.status_code == 400

    async def test_results_breakdown(self, client: AsyncClient, free_exam, questions, auth_headers):
        result = await self.finished_attempt(client, free_exam, questions, auth_headers)
        attempt_id = result['attempt']['id']

        response = await client.get(f'/api/v1/exams/attempts/{attempt_id}/results', headers=auth_headers)

        data = response.json()['data']
        assert len(data['questions']) == 5
        assert all(q['is_correct'] for q in data['questions'])
        assert data['certificate']['certificate_number'] == result['certificate']['certificate_number']

    async def test_staff_can_view_results(
        self, client: AsyncClient, free_exam, questions, auth_headers, moderator_auth_headers
    ):
        result = await self.finished_attempt(client, free_exam, questions, auth_headers)

        response = await client.get(
            f"/api/v1/exams/attempts/{result['attempt']['id']}/results", headers=moderator_auth_headers
        )

        assert response.status_code == 200

    async def test_certificate_verification_is_public(
        self, client: AsyncClient, free_exam, questions, student, auth_headers
    ):
        result = await self.finished_attempt(client, free_exam, questions, auth_headers)
        number = result['certificate']['certificate_number']

        response = await client.get(f'/api/v1/exams/certificates/verify/{number}')

        data = response.json()['data']
        assert data['is_valid'] is True
        assert data['holder'] == student.full_name
        assert data['exam'] == free_exam.title

        unknown = await client.get('/api/v1/exams/certificates/verify/CERT-00000000-NOPE')
        assert unknown.status_code == 404

    async def test_certificate_generation_is_idempotent(self, client: AsyncClient, free_exam, questions, auth_headers):
        result = await self.finished_attempt(client, free_exam, questions, auth_headers)

        response = await client.post(
            f"/api/v1/exams/attempts/{result['attempt']['id']}/certificate", headers=auth_headers
        )

        assert response.json()['data']['id'] == result['certificate']['id']

    async def test_certificate_download(
        self, client: AsyncClient, free_exam, questions, auth_headers, other_auth_headers
    ):
        result = await self.finished_attempt(client, free_exam, questions, auth_headers)
        certificate_id = result['certificate']['id']

        response = await client.get(f'/api/v1/exams/certificates/{certificate_id}/download', headers=auth_headers)
        assert response.status_code == 200
        assert response.content.startswith(b'%PDF')

        forbidden = await client.get(
            f'/api/v1/exams/certificates/{certificate_id}/download', headers=other_auth_headers
        )
        assert forbidden.status_code == 403

    async def test_my_certificates(self, client: AsyncClient, free_exam, questions, auth_headers):
        await self.finished_attempt(client, free_exam, questions, auth_headers)

        response = await client.get('/api/v1/exams/certificates', headers=auth_headers)

        assert response.json()['data'][0]['exam_title'] == free_exam.title


class TestHistoryAndLeaderboard:

    async def test_history_and_stats(self, client: AsyncClient, free_exam, questions, auth_headers):
        data = await start(client, free_exam, auth_headers)
        await answer_all(client, data['attempt']['id'], questions, auth_headers)
        await complete(client, data['attempt']['id'], auth_headers)

        history = await client.get('/api/v1/exams/history', headers=auth_headers)
        stats = await client.get('/api/v1/exams/stats', headers=auth_headers)

        assert history.json()['data']['items'][0]['exam_title'] == free_exam.title
        summary = stats.json()['data']
        assert summary['completedAttempts'] == 1
        assert summary['passRate'] == 100.0
        assert summary['certificates'] == 1

    async def test_upcoming_lists_confirmed_bookings(self, client: AsyncClient, free_exam, auth_headers, future_time):
        await client.post('/api/v1/bookings', json={'exam_id': free_exam.id, 'scheduled_at': future_time},
                          headers=auth_headers)

        response = await client.get('/api/v1/exams/upcoming', headers=auth_headers)

        upcoming = response.json()['data']
        assert len(upcoming) == 1
        assert upcoming[0]['attempts_remaining'] == 1

    async def test_leaderboard_ranks_best_attempts(
        self, client: AsyncClient, free_exam, questions, student, auth_headers, other_auth_headers
    ):
        first = await start(client, free_exam, auth_headers)
        await answer_all(client, first['attempt']['id'], questions, auth_headers)
        await complete(client, first['attempt']['id'], auth_headers)

        second = await start(client, free_exam, other_auth_headers)
        await answer_all(client, second['attempt']['id'], questions[:2], other_auth_headers)
        await complete(client, second['attempt']['id'], other_auth_headers)

        response = await client.get(f'/api/v1/exams/{free_exam.id}/leaderboard', headers=auth_headers)

        board = response.json()['data']
        assert [entry['rank'] for entry in board] == [1, 2]
        assert board[0]['user_id'] == student.id
        assert board[0]['percentage'] == 100.0
