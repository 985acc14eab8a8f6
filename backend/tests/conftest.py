"""
MockExam - Test Configuration and Fixtures
"""
import os
from datetime import timedelta
from typing import AsyncGenerator, Awaitable, Callable, Dict, List
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.pool import StaticPool
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite://'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['LOG_LEVEL'] = 'WARNING'

from app.main import app
from app.core.database import Base, get_db
from app.core.security import get_password_hash, create_access_token
from app.core.types import utcnow
from app.models.user import User, UserRole
from app.models.exam_category import ExamCategory
from app.models.question import Question, QuestionOption, QuestionType, Difficulty
from app.models.exam import Exam

fake = Faker()

TEST_PASSWORD = 'Password123!'
TEST_DATABASE_URL = 'sqlite+aiosqlite://'


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared by every session of one test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Users ====================

def auth_headers_for(user: User) -> Dict[str, str]:
    """Bearer headers for a user"""
    token = create_access_token({
        'sub': str(user.id),
        'email': user.email,
        'role': user.role.value,
    })
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory creating an active user with TEST_PASSWORD"""
    async def _make_user(role: UserRole = UserRole.STUDENT, **overrides) -> User:
        fields = {
            'email': fake.unique.email().lower(),
            'hashed_password': get_password_hash(TEST_PASSWORD),
            'first_name': fake.first_name(),
            'last_name': fake.last_name(),
            'role': role,
            'is_active': True,
            'is_email_verified': True,
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
async def student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def other_student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest.fixture
async def moderator(make_user) -> User:
    return await make_user(UserRole.MODERATOR)


@pytest.fixture
async def super_admin(make_user) -> User:
    return await make_user(UserRole.SUPER_ADMIN)


@pytest.fixture
def auth_headers(student: User) -> Dict[str, str]:
    """Generate authentication headers for the student"""
    return auth_headers_for(student)


@pytest.fixture
def other_auth_headers(other_student: User) -> Dict[str, str]:
    return auth_headers_for(other_student)


@pytest.fixture
def admin_auth_headers(admin_user: User) -> Dict[str, str]:
    """Generate authentication headers for admin user"""
    return auth_headers_for(admin_user)


@pytest.fixture
def moderator_auth_headers(moderator: User) -> Dict[str, str]:
    return auth_headers_for(moderator)


@pytest.fixture
def super_admin_auth_headers(super_admin: User) -> Dict[str, str]:
    return auth_headers_for(super_admin)


# ==================== Question bank and exams ====================

@pytest.fixture
async def category(db_session: AsyncSession) -> ExamCategory:
    item = ExamCategory(name='Accounting', description='Bookkeeping basics', color='#2563EB')
    db_session.add(item)
    await db_session.commit()
    return item


def choice_question(category_id: str, text: str, options: List[tuple], question_type=QuestionType.SINGLE_CHOICE,
                    marks: int = 1) -> Question:
    question = Question(
        exam_category_id=category_id,
        text=text,
        type=question_type,
        difficulty=Difficulty.EASY,
        marks=marks,
        tags=[],
        images=[],
    )
    question.options = [
        QuestionOption(text=option_text, is_correct=is_correct, sort_order=index)
        for index, (option_text, is_correct) in enumerate(options)
    ]
    return question


@pytest.fixture
async def questions(db_session: AsyncSession, category: ExamCategory) -> List[Question]:
    """Three single choice questions, one multiple choice and one short answer"""
    items = [
        choice_question(category.id, 'Which of these is an asset account?',
                        [('Cash', True), ('Revenue', False), ('Capital', False)]),
        choice_question(category.id, 'Which of these is a liability account?',
                        [('Loan payable', True), ('Inventory', False)]),
        choice_question(category.id, 'Which statement lists assets and liabilities?',
                        [('Balance sheet', True), ('Cash flow statement', False)]),
        choice_question(category.id, 'Select every item that is a current asset.',
                        [('Inventory', True), ('Receivables', True), ('Goodwill', False)],
                        question_type=QuestionType.MULTIPLE_CHOICE, marks=2),
        Question(
            exam_category_id=category.id,
            text='Name the statement that reports revenue and expenses.',
            type=QuestionType.SHORT_ANSWER,
            difficulty=Difficulty.MEDIUM,
            marks=1,
            correct_answer='income statement|profit and loss statement',
            tags=[],
            images=[],
        ),
    ]
    db_session.add_all(items)
    await db_session.commit()
    return items


@pytest.fixture
def make_exam(db_session: AsyncSession, category: ExamCategory) -> Callable[..., Awaitable[Exam]]:
    async def _make_exam(**overrides) -> Exam:
        fields = {
            'exam_category_id': category.id,
            'title': fake.sentence(nb_words=4),
            'description': 'Practice exam',
            'duration': 30,
            'total_marks': 6,
            'passing_marks': 50.0,
            'price': 0,
            'currency': 'USD',
            'is_active': True,
            'is_public': True,
            'is_approved': True,
            'allow_retakes': False,
            'max_retakes': 0,
            'question_overlap_percentage': 10.0,
            'question_type_counts': {},
        }
        fields.update(overrides)
        exam = Exam(**fields)
        db_session.add(exam)
        await db_session.commit()
        return exam

    return _make_exam


@pytest.fixture
async def free_exam(make_exam, questions) -> Exam:
    return await make_exam(title='Free Accounting Practice')


@pytest.fixture
async def paid_exam(make_exam, questions) -> Exam:
    return await make_exam(title='Paid Accounting Mock', price=25.5)


@pytest.fixture
def future_time() -> str:
    """ISO timestamp two days ahead"""
    return (utcnow() + timedelta(days=2)).replace(microsecond=0).isoformat()


async def login(client: AsyncClient, email: str, password: str = TEST_PASSWORD) -> Dict[str, str]:
    """Log in through the API and return the token payload"""
    response = await client.post('/api/v1/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.text
    return response.json()['data']
