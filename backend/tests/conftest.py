"""
Pytest configuration and shared fixtures for the test suite.

Runs the app against an in-memory SQLite database and mints bearer tokens
with the app's own token helper.
"""
import os
from types import SimpleNamespace

# Must be set before kaderlearn reads its settings.
os.environ.setdefault("TESTING", "True")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kaderlearn.core.database import Base, enable_sqlite_savepoints, get_db
from kaderlearn.core.security import create_access_token
from kaderlearn.models import (
    Module,
    PoinDetail,
    Profile,
    Quiz,
    QuizQuestion,
    SubMaterial,
    UserRole,
)


# ----- In-memory DB -----
@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with working SAVEPOINTs."""
    test_engine = enable_sqlite_savepoints(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


# ----- Seed data -----
def make_profile(db, full_name, role=UserRole.PENGGUNA, email=None, phone=None):
    profile = Profile(
        full_name=full_name,
        email=email or f"{full_name.lower().replace(' ', '.')}@example.com",
        phone=phone,
        role=role.value,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_quiz(db, module, sub_material=None, correct_indexes=(0,), passing_score=70, published=True, title=None):
    quiz = Quiz(
        module_id=module.id,
        sub_material_id=sub_material.id if sub_material else None,
        title=title or f"Quiz {module.slug}",
        passing_score=passing_score,
        published=published,
    )
    db.add(quiz)
    db.flush()
    for position, correct in enumerate(correct_indexes):
        db.add(QuizQuestion(
            quiz_id=quiz.id,
            question_text=f"Question {position + 1}",
            options=["A", "B", "C", "D"],
            correct_answer_index=correct,
            explanation=f"Option {correct} is right",
            order_index=position,
        ))
    db.commit()
    db.refresh(quiz)
    return quiz


@pytest.fixture
def learner(db_session):
    return make_profile(db_session, "Siti Learner", phone="+6281234567890")


@pytest.fixture
def admin(db_session):
    return make_profile(db_session, "Budi Admin", role=UserRole.ADMIN)


@pytest.fixture
def superadmin(db_session):
    return make_profile(db_session, "Rina Superadmin", role=UserRole.SUPERADMIN)


@pytest.fixture
def content(db_session):
    """
    Module "posyandu-dasar" with sub-materi A (2 poin) and B (1 poin), a
    two-question quiz closing A and a four-question module quiz.
    """
    module = Module(title="Posyandu Dasar", slug="posyandu-dasar", category="Kesehatan", published=True)
    db_session.add(module)
    db_session.flush()

    sub_a = SubMaterial(module_id=module.id, title="Pengenalan", order_index=0)
    sub_b = SubMaterial(module_id=module.id, title="Penimbangan", order_index=1)
    db_session.add_all([sub_a, sub_b])
    db_session.flush()

    poins_a = [
        PoinDetail(sub_material_id=sub_a.id, title="Apa itu posyandu", order_index=0),
        PoinDetail(sub_material_id=sub_a.id, title="Peran kader", order_index=1),
    ]
    poin_b = PoinDetail(sub_material_id=sub_b.id, title="Alat timbang", order_index=0)
    db_session.add_all(poins_a + [poin_b])
    db_session.commit()

    quiz_a = make_quiz(db_session, module, sub_a, correct_indexes=(1, 2), title="Kuis Pengenalan")
    final_quiz = make_quiz(db_session, module, correct_indexes=(0, 1, 2, 3), title="Kuis Akhir")

    return SimpleNamespace(
        module=module,
        sub_a=sub_a,
        sub_b=sub_b,
        poins_a=poins_a,
        poin_b=poin_b,
        quiz_a=quiz_a,
        final_quiz=final_quiz,
    )


# ----- API client -----
def auth_headers(profile):
    token = create_access_token(profile.id, role=profile.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_client(db_session):
    """FastAPI TestClient sharing the test session."""
    from fastapi.testclient import TestClient
    from kaderlearn.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
