"""
Service tests against an in-memory session: aggregation, unlocking and the
upsert helper.
"""
import pytest

from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.models import (
    Module,
    ModuleStatus,
    SubMaterial,
    UserModuleProgress,
    UserPoinProgress,
    UserSubMaterialProgress,
)
from kaderlearn.services.progress_aggregator import ProgressAggregator
from kaderlearn.services.store import upsert
from kaderlearn.services.unlock_engine import UnlockEngine, is_first_in_module, is_unlocked


def sub_progress(db, user, sub_material):
    return db.query(UserSubMaterialProgress).filter_by(
        user_id=user.id, sub_material_id=sub_material.id
    ).one_or_none()


@pytest.mark.unit
class TestUpsert:
    def test_inserts_then_updates_same_row(self, db_session, learner, content):
        keys = {"user_id": learner.id, "poin_id": content.poin_b.id}
        first = upsert(db_session, UserPoinProgress, keys=keys, update={"is_completed": False})
        second = upsert(db_session, UserPoinProgress, keys=keys, update={"is_completed": True})
        db_session.commit()

        assert first.id == second.id
        assert db_session.query(UserPoinProgress).filter_by(**keys).count() == 1
        assert second.is_completed is True

    def test_create_values_only_apply_on_insert(self, db_session, learner, content):
        keys = {"user_id": learner.id, "sub_material_id": content.sub_b.id}
        upsert(db_session, UserSubMaterialProgress, keys=keys, update={}, create={"is_unlocked": True})
        row = upsert(db_session, UserSubMaterialProgress, keys=keys, update={"progress_percent": 10},
                     create={"is_unlocked": False})
        assert row.is_unlocked is True
        assert row.progress_percent == 10


@pytest.mark.unit
class TestProgressAggregator:
    def test_sub_material_percentage(self, db_session, learner, content):
        db_session.add(UserPoinProgress(user_id=learner.id, poin_id=content.poins_a[0].id, is_completed=True))
        db_session.commit()

        progress = ProgressAggregator(db_session).update_sub_material_progress(learner.id, content.sub_a.id)
        assert progress.progress_percent == 50
        assert progress.current_poin_index == 1
        assert progress.is_unlocked is True
        assert progress.is_completed is False

    def test_rerunning_is_idempotent(self, db_session, learner, content):
        aggregator = ProgressAggregator(db_session)
        db_session.add(UserSubMaterialProgress(
            user_id=learner.id, sub_material_id=content.sub_a.id, is_unlocked=True, is_completed=True
        ))
        db_session.commit()

        first = aggregator.update_module_progress(learner.id, content.module.id).to_dict()
        second = aggregator.update_module_progress(learner.id, content.module.id).to_dict()

        assert first["progress_percent"] == second["progress_percent"] == 50
        assert first["status"] == second["status"] == ModuleStatus.IN_PROGRESS.value
        assert db_session.query(UserModuleProgress).filter_by(user_id=learner.id).count() == 1

    def test_all_completed_marks_module_completed(self, db_session, learner, content):
        for sub_material in (content.sub_a, content.sub_b):
            db_session.add(UserSubMaterialProgress(
                user_id=learner.id, sub_material_id=sub_material.id, is_unlocked=True, is_completed=True
            ))
        db_session.commit()

        progress = ProgressAggregator(db_session).update_module_progress(learner.id, content.module.id)
        assert progress.progress_percent == 100
        assert progress.status == ModuleStatus.COMPLETED.value
        assert progress.completed_at is not None

    def test_no_completion_is_not_started(self, db_session, learner, content):
        progress = ProgressAggregator(db_session).update_module_progress(learner.id, content.module.id)
        assert progress.progress_percent == 0
        assert progress.status == ModuleStatus.NOT_STARTED.value
        assert progress.completed_at is None

    def test_unknown_module(self, db_session, learner):
        with pytest.raises(NotFoundError):
            ProgressAggregator(db_session).update_module_progress(learner.id, "missing")


@pytest.mark.unit
class TestUnlockEngine:
    def test_first_sub_material_always_unlocked(self, db_session, learner, content):
        assert is_unlocked(content.sub_a, None) is True
        assert is_unlocked(content.sub_b, None) is False

        state = UnlockEngine(db_session).evaluate_unlock_state(learner.id, content.module.id)
        assert [item["is_unlocked"] for item in state] == [True, False]

    def test_completed_previous_unlocks_next(self, db_session, learner, content):
        db_session.add(UserSubMaterialProgress(
            user_id=learner.id, sub_material_id=content.sub_a.id, is_unlocked=True, is_completed=True
        ))
        db_session.commit()

        state = UnlockEngine(db_session).evaluate_unlock_state(learner.id, content.module.id)
        assert state[1]["is_unlocked"] is True
        assert sub_progress(db_session, learner, content.sub_b).is_unlocked is True

    def test_stale_unlock_is_relocked(self, db_session, learner, content):
        db_session.add(UserSubMaterialProgress(
            user_id=learner.id, sub_material_id=content.sub_b.id, is_unlocked=True, is_completed=False
        ))
        db_session.commit()

        state = UnlockEngine(db_session).evaluate_unlock_state(learner.id, content.module.id)
        assert state[1]["is_unlocked"] is False
        assert sub_progress(db_session, learner, content.sub_b).is_unlocked is False

    def test_completed_next_is_never_relocked(self, db_session, learner, content):
        db_session.add(UserSubMaterialProgress(
            user_id=learner.id, sub_material_id=content.sub_b.id, is_unlocked=True, is_completed=True
        ))
        db_session.commit()

        UnlockEngine(db_session).evaluate_unlock_state(learner.id, content.module.id)
        assert sub_progress(db_session, learner, content.sub_b).is_unlocked is True

    def test_unlock_next_on_last_is_noop(self, db_session, learner, content):
        engine = UnlockEngine(db_session)
        assert engine.unlock_next(learner.id, content.module.id, content.sub_b.id) is None

    def test_unlock_next(self, db_session, learner, content):
        row = UnlockEngine(db_session).unlock_next(learner.id, content.module.id, content.sub_a.id)
        assert row.sub_material_id == content.sub_b.id
        assert row.is_unlocked is True
        assert row.is_completed is False

    def test_stored_lock_on_first_sub_material_is_ignored(self, db_session, learner, content):
        db_session.add(UserSubMaterialProgress(
            user_id=learner.id, sub_material_id=content.sub_a.id, is_unlocked=False, is_completed=False
        ))
        db_session.commit()

        stored = sub_progress(db_session, learner, content.sub_a)
        assert stored.is_unlocked is False
        assert is_unlocked(content.sub_a, stored) is True

        state = UnlockEngine(db_session).evaluate_unlock_state(learner.id, content.module.id)
        assert state[0]["is_unlocked"] is True


@pytest.mark.unit
class TestUnlockWithOrderGaps:
    @pytest.fixture
    def gapped(self, db_session):
        module = Module(title="Imunisasi", slug="imunisasi", published=True)
        db_session.add(module)
        db_session.flush()
        first = SubMaterial(module_id=module.id, title="Jadwal", order_index=3)
        second = SubMaterial(module_id=module.id, title="Efek Samping", order_index=7)
        db_session.add_all([first, second])
        db_session.commit()
        return module, first, second

    def test_lowest_order_is_first(self, db_session, learner, gapped):
        module, first, second = gapped
        assert is_first_in_module(first) is True
        assert is_first_in_module(second) is False

    def test_read_rule_and_module_walk_agree(self, db_session, learner, gapped):
        module, first, second = gapped
        state = UnlockEngine(db_session).evaluate_unlock_state(learner.id, module.id)

        assert [item["is_unlocked"] for item in state] == [True, False]
        assert is_unlocked(first, sub_progress(db_session, learner, first)) is True
        assert is_unlocked(second, sub_progress(db_session, learner, second)) is False

    def test_unlock_next_skips_order_gaps(self, db_session, learner, gapped):
        module, first, second = gapped
        row = UnlockEngine(db_session).unlock_next(learner.id, module.id, first.id)
        assert row.sub_material_id == second.id
        assert row.is_unlocked is True
