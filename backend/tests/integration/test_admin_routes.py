"""
Admin routes: content CRUD with audit log, user management and progress
monitoring.
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from kaderlearn.models import (
    AdminLog,
    QuizAttempt,
    UserModuleProgress,
    UserRole,
    UserSubMaterialProgress,
)

from tests.conftest import auth_headers, make_profile


API = "/api/v1"


def add_attempts(db, user, quiz, scores, passing_score=70):
    now = datetime.utcnow()
    for offset, value in enumerate(scores):
        completed_at = now - timedelta(minutes=len(scores) - offset)
        db.add(QuizAttempt(
            user_id=user.id,
            quiz_id=quiz.id,
            score=value,
            total_questions=4,
            correct_answers=int(value / 25),
            passed=value >= passing_score,
            started_at=completed_at,
            completed_at=completed_at,
        ))
    db.commit()


@pytest.mark.integration
class TestAdminModules:
    def test_create_module_writes_audit_log(self, api_client: TestClient, db_session, admin):
        response = api_client.post(
            f"{API}/admin/modules",
            json={"title": "Gizi Balita", "slug": "gizi-balita", "published": True},
            headers=auth_headers(admin),
        )
        assert response.status_code == 201
        module = response.json()["data"]
        assert module["created_by"] == admin.id

        log = db_session.query(AdminLog).filter_by(entity_id=module["id"]).one()
        assert log.action == "create"
        assert log.entity_type == "module"
        assert log.user_id == admin.id

    def test_duplicate_slug_conflicts(self, api_client: TestClient, admin, content):
        response = api_client.post(
            f"{API}/admin/modules",
            json={"title": "Lagi", "slug": "posyandu-dasar"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "SLUG_TAKEN"

    def test_invalid_slug_is_422(self, api_client: TestClient, admin):
        response = api_client.post(
            f"{API}/admin/modules",
            json={"title": "Bad", "slug": "Bad Slug"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 422

    def test_update_and_delete(self, api_client: TestClient, db_session, admin, content):
        headers = auth_headers(admin)
        module_id = content.module.id
        updated = api_client.put(
            f"{API}/admin/modules/{module_id}",
            json={"title": "Posyandu Lanjutan"},
            headers=headers,
        )
        assert updated.json()["data"]["title"] == "Posyandu Lanjutan"

        deleted = api_client.delete(f"{API}/admin/modules/{module_id}", headers=headers)
        assert deleted.status_code == 200
        assert api_client.get(f"{API}/admin/modules/{module_id}", headers=headers).status_code == 404

        actions = [log.action for log in db_session.query(AdminLog).order_by(AdminLog.created_at)]
        assert actions == ["update", "delete"]

    def test_logs_filter_by_entity_type(self, api_client: TestClient, admin, content):
        headers = auth_headers(admin)
        api_client.post(f"{API}/admin/modules", json={"title": "Baru", "slug": "baru"}, headers=headers)
        api_client.post(
            f"{API}/admin/sub-materis",
            json={"module_id": content.module.id, "title": "Tambahan", "order_index": 5},
            headers=headers,
        )

        data = api_client.get(
            f"{API}/admin/logs",
            params={"entity_type": "module"},
            headers=headers,
        ).json()["data"]
        assert data["pagination"]["total"] == 1
        assert data["items"][0]["action"] == "create"
        assert data["items"][0]["user_id"] == admin.id

    def test_admin_list_includes_drafts(self, api_client: TestClient, admin, content):
        api_client.post(
            f"{API}/admin/modules",
            json={"title": "Draft", "slug": "draft-module"},
            headers=auth_headers(admin),
        )
        data = api_client.get(f"{API}/admin/modules", headers=auth_headers(admin)).json()["data"]
        assert data["pagination"]["total"] == 2


@pytest.mark.integration
class TestAdminContent:
    def test_sub_material_order_must_be_unique(self, api_client: TestClient, admin, content):
        response = api_client.post(
            f"{API}/admin/sub-materis",
            json={"module_id": content.module.id, "title": "Duplikat", "order_index": 1},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "ORDER_INDEX_TAKEN"

    def test_create_sub_material_and_poin(self, api_client: TestClient, admin, content):
        headers = auth_headers(admin)
        sub_material = api_client.post(
            f"{API}/admin/sub-materis",
            json={"module_id": content.module.id, "title": "Pencatatan", "order_index": 2},
            headers=headers,
        ).json()["data"]

        poin = api_client.post(
            f"{API}/admin/sub-materis/{sub_material['id']}/poins",
            json={"title": "Buku KIA", "content_html": "<p>KIA</p>"},
            headers=headers,
        )
        assert poin.status_code == 201

        detail = api_client.get(f"{API}/admin/sub-materis/{sub_material['id']}", headers=headers).json()["data"]
        assert [p["title"] for p in detail["poin_details"]] == ["Buku KIA"]

    def test_quiz_and_question_crud(self, api_client: TestClient, admin, content):
        headers = auth_headers(admin)
        quiz = api_client.post(
            f"{API}/admin/quizzes",
            json={"module_id": content.module.id, "sub_material_id": content.sub_b.id, "title": "Kuis B"},
            headers=headers,
        ).json()["data"]
        assert quiz["quiz_type"] == "sub"
        assert quiz["published"] is False

        bad = api_client.post(
            f"{API}/admin/quizzes/{quiz['id']}/questions",
            json={"question_text": "?", "options": ["a", "b"], "correct_answer_index": 2},
            headers=headers,
        )
        assert bad.status_code == 422

        question = api_client.post(
            f"{API}/admin/quizzes/{quiz['id']}/questions",
            json={"question_text": "Berapa?", "options": ["1", "2", "3"], "correct_answer_index": 2},
            headers=headers,
        )
        assert question.status_code == 201

        published = api_client.put(
            f"{API}/admin/quizzes/{quiz['id']}",
            json={"published": True, "passing_score": 80},
            headers=headers,
        ).json()["data"]
        assert published["published"] is True
        assert published["passing_score"] == 80
        assert len(published["questions"]) == 1

    def test_quiz_sub_material_must_match_module(self, api_client: TestClient, admin, content):
        headers = auth_headers(admin)
        other = api_client.post(
            f"{API}/admin/modules",
            json={"title": "Lain", "slug": "modul-lain"},
            headers=headers,
        ).json()["data"]

        response = api_client.post(
            f"{API}/admin/quizzes",
            json={"module_id": other["id"], "sub_material_id": content.sub_a.id},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "SUB_MATERI_MODULE_MISMATCH"


@pytest.mark.integration
class TestAdminUsers:
    def test_search_matches_local_phone_format(self, api_client: TestClient, admin, learner):
        response = api_client.get(
            f"{API}/admin/users",
            params={"search": "081234567890"},
            headers=auth_headers(admin),
        )
        ids = [user["id"] for user in response.json()["data"]["items"]]
        assert ids == [learner.id]

    def test_filter_by_role(self, api_client: TestClient, admin, learner):
        response = api_client.get(f"{API}/admin/users", params={"role": "admin"}, headers=auth_headers(admin))
        assert [user["id"] for user in response.json()["data"]["items"]] == [admin.id]

    def test_admin_cannot_change_roles(self, api_client: TestClient, admin, learner):
        response = api_client.put(
            f"{API}/admin/users/{learner.id}/role",
            json={"role": "admin"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "SUPERADMIN_REQUIRED"

    def test_superadmin_changes_role(self, api_client: TestClient, db_session, superadmin, learner):
        response = api_client.put(
            f"{API}/admin/users/{learner.id}/role",
            json={"role": "admin"},
            headers=auth_headers(superadmin),
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == UserRole.ADMIN.value
        assert db_session.query(AdminLog).filter_by(action="role_change", entity_id=learner.id).count() == 1

    def test_superadmin_cannot_demote_self(self, api_client: TestClient, superadmin):
        response = api_client.put(
            f"{API}/admin/users/{superadmin.id}/role",
            json={"role": "pengguna"},
            headers=auth_headers(superadmin),
        )
        assert response.status_code == 400

    def test_invalid_role_is_422(self, api_client: TestClient, superadmin, learner):
        response = api_client.put(
            f"{API}/admin/users/{learner.id}/role",
            json={"role": "owner"},
            headers=auth_headers(superadmin),
        )
        assert response.status_code == 422

    def test_reset_progress_for_module(self, api_client: TestClient, db_session, admin, learner, content):
        learner_headers = auth_headers(learner)
        api_client.post(f"{API}/progress/sub-materis/{content.sub_a.id}/complete", headers=learner_headers)
        add_attempts(db_session, learner, content.final_quiz, [25, 100])

        response = api_client.post(
            f"{API}/admin/users/{learner.id}/reset-progress",
            json={"module_id": content.module.id},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        deleted = response.json()["data"]["deleted"]
        assert deleted["quiz_attempts"] == 2
        assert deleted["module_progress"] == 1

        assert db_session.query(UserModuleProgress).filter_by(user_id=learner.id).count() == 0
        assert db_session.query(UserSubMaterialProgress).filter_by(user_id=learner.id).count() == 0
        assert db_session.query(QuizAttempt).filter_by(user_id=learner.id).count() == 0


@pytest.mark.integration
class TestProgressMonitoring:
    def test_stats_count_every_learner_once(self, api_client: TestClient, db_session, admin, learner, content):
        struggling = make_profile(db_session, "Andi Struggling")
        make_profile(db_session, "Dewi Idle")
        add_attempts(db_session, learner, content.final_quiz, [100, 90])
        add_attempts(db_session, struggling, content.final_quiz, [0, 25, 25, 50, 50])

        data = api_client.get(f"{API}/admin/progress-monitoring/stats", headers=auth_headers(admin)).json()["data"]
        assert data == {"total_users": 3, "active_users": 1, "struggling_users": 1, "inactive_users": 1}

    def test_open_attempts_are_not_counted(self, api_client: TestClient, db_session, admin, learner, content):
        db_session.add(QuizAttempt(user_id=learner.id, quiz_id=content.final_quiz.id))
        db_session.commit()

        data = api_client.get(f"{API}/admin/progress-monitoring/stats", headers=auth_headers(admin)).json()["data"]
        assert data["inactive_users"] == 1

    def test_user_list_sorted_by_status(self, api_client: TestClient, db_session, admin, learner, content):
        struggling = make_profile(db_session, "Andi Struggling")
        add_attempts(db_session, learner, content.final_quiz, [100])
        add_attempts(db_session, struggling, content.final_quiz, [0] * 5)

        data = api_client.get(f"{API}/admin/progress-monitoring/users", headers=auth_headers(admin)).json()["data"]
        assert [row["status"] for row in data["items"]] == ["struggling", "active"]
        assert data["pagination"]["total"] == 2

        filtered = api_client.get(
            f"{API}/admin/progress-monitoring/users",
            params={"status": "active"},
            headers=auth_headers(admin),
        ).json()["data"]
        assert [row["user_id"] for row in filtered["items"]] == [learner.id]

    def test_invalid_status_filter(self, api_client: TestClient, admin):
        response = api_client.get(
            f"{API}/admin/progress-monitoring/users",
            params={"status": "sleepy"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATUS"

    def test_stuck_users_by_module(self, api_client: TestClient, db_session, admin, learner, content):
        add_attempts(db_session, learner, content.final_quiz, [0, 25, 25, 50, 50, 100])

        stuck = api_client.get(
            f"{API}/admin/progress-monitoring/stuck-users/{content.module.id}",
            headers=auth_headers(admin),
        ).json()["data"]
        assert len(stuck) == 1
        assert stuck[0]["user_id"] == learner.id
        assert stuck[0]["failure_count"] == 5

    def test_stuck_users_unknown_module(self, api_client: TestClient, admin):
        response = api_client.get(
            f"{API}/admin/progress-monitoring/stuck-users/missing",
            headers=auth_headers(admin),
        )
        assert response.status_code == 404

    def test_module_stats(self, api_client: TestClient, db_session, admin, learner, content):
        add_attempts(db_session, learner, content.final_quiz, [100])
        add_attempts(db_session, learner, content.quiz_a, [100])

        stats = api_client.get(f"{API}/admin/progress-monitoring/module-stats", headers=auth_headers(admin)).json()["data"]
        assert stats == [{
            "module_id": content.module.id,
            "module_title": "Posyandu Dasar",
            "total_started": 1,
            "total_completions": 1,
            "total_stuck": 0,
            "completion_rate": 100,
        }]

    def test_user_detail(self, api_client: TestClient, db_session, admin, learner, content):
        add_attempts(db_session, learner, content.final_quiz, [50, 75])

        response = api_client.get(
            f"{API}/admin/progress-monitoring/users/{learner.id}",
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "active"

    def test_user_detail_unknown_user(self, api_client: TestClient, admin):
        response = api_client.get(f"{API}/admin/progress-monitoring/users/missing", headers=auth_headers(admin))
        assert response.status_code == 404
        assert response.json()["code"] == "USER_NOT_FOUND"

    def test_reading_progress(self, api_client: TestClient, admin, learner, content):
        api_client.post(f"{API}/progress/poins/{content.poins_a[0].id}/scroll-complete", headers=auth_headers(learner))

        records = api_client.get(
            f"{API}/admin/progress-monitoring/reading-progress",
            headers=auth_headers(admin),
        ).json()["data"]
        assert len(records) == 1
        assert records[0]["user_id"] == learner.id

    def test_full_reading_without_attempts_is_inactive(self, api_client: TestClient, admin, learner, content):
        headers = auth_headers(learner)
        for poin in content.poins_a + [content.poin_b]:
            api_client.post(f"{API}/progress/poins/{poin.id}/complete", headers=headers)
            api_client.post(f"{API}/progress/poins/{poin.id}/scroll-complete", headers=headers)

        stats = api_client.get(f"{API}/admin/progress-monitoring/stats", headers=auth_headers(admin)).json()["data"]
        assert stats["inactive_users"] == 1
        assert stats["active_users"] == 0

        detail = api_client.get(
            f"{API}/admin/progress-monitoring/users/{learner.id}",
            headers=auth_headers(admin),
        ).json()["data"]
        assert detail["status"] == "inactive"
        sub_materials = detail["modules_progress"][0]["sub_materials"]
        assert [item["reading_percentage"] for item in sub_materials] == [100, 100]

    def test_user_list_pagination(self, api_client: TestClient, db_session, admin):
        for number in range(12):
            make_profile(db_session, f"Kader {number:02d}")

        data = api_client.get(
            f"{API}/admin/progress-monitoring/users",
            params={"page": 3, "limit": 5},
            headers=auth_headers(admin),
        ).json()["data"]

        assert len(data["items"]) == 2
        assert data["pagination"] == {"page": 3, "limit": 5, "total": 12, "total_pages": 3}

    def test_user_detail_breakdown(self, api_client: TestClient, admin, learner, content):
        headers = auth_headers(learner)
        api_client.post(f"{API}/progress/poins/{content.poins_a[0].id}/scroll-complete", headers=headers)
        questions = content.quiz_a.questions
        api_client.post(
            f"{API}/quizzes/submit",
            json={
                "quiz_id": content.quiz_a.id,
                "answers": [
                    {"question_id": questions[0].id, "selected_option_index": 1},
                    {"question_id": questions[1].id, "selected_option_index": 0},
                ],
            },
            headers=headers,
        )

        detail = api_client.get(
            f"{API}/admin/progress-monitoring/users/{learner.id}",
            headers=auth_headers(admin),
        ).json()["data"]
        module = detail["modules_progress"][0]
        assert module["status"] == "in-progress"
        assert module["quizzes_passed"] == 0
        assert module["total_quizzes"] == 2

        by_quiz = {entry["quiz_id"]: entry for entry in module["quiz_attempts"]}
        attempted = by_quiz[content.quiz_a.id]
        assert attempted["is_attempted"] is True
        assert attempted["score"] == 50.0
        assert attempted["sub_material_title"] == "Pengenalan"
        assert attempted["reading_percentage"] == 50
        assert attempted["reading_completed"] is False
        assert attempted["answers"] == [
            {
                "question_id": questions[0].id,
                "question_text": "Question 1",
                "user_answer": "B",
                "correct_answer": "B",
                "is_correct": True,
            },
            {
                "question_id": questions[1].id,
                "question_text": "Question 2",
                "user_answer": "A",
                "correct_answer": "C",
                "is_correct": False,
            },
        ]

        placeholder = by_quiz[content.final_quiz.id]
        assert placeholder["is_attempted"] is False
        assert placeholder["score"] == 0
        assert placeholder["attempted_at"] is None
        assert placeholder["answers"] == []
        assert placeholder["sub_material_title"] is None
        assert placeholder["reading_percentage"] == 0
