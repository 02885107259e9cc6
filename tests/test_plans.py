from datetime import date, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from clinic_core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from clinic_core.models import Exercise, TherapyPlanVersion
from clinic_core.plans import AddExercise, ArchiveExercise, PlanVersionManager, UpdateExercise


@pytest.fixture
def plans(store, clock):
    return PlanVersionManager(store, clock)


@pytest.fixture
def with_squat(plans, plan, exercise, admin):
    return plans.mutate(plan.id, AddExercise(exercise.id, reps=10, sets=3), admin)


def test_new_plan_starts_at_version_one(plans, admin, doctor, patient):
    created = plans.create_plan(admin, patient.id, doctor.id, "Shoulder", date(2026, 3, 1))
    assert created.version == 1
    assert plans.history(created.id) == []


def test_create_plan_permissions(plans, physio, other_physio, receptionist, doctor, patient):
    with pytest.raises(ForbiddenError):
        plans.create_plan(other_physio, patient.id, doctor.id, "Shoulder", date(2026, 3, 1))
    with pytest.raises(ForbiddenError):
        plans.create_plan(receptionist, patient.id, doctor.id, "Shoulder", date(2026, 3, 1))
    assert plans.create_plan(physio, patient.id, doctor.id, "Shoulder", date(2026, 3, 1)).version == 1


def test_create_plan_requires_name(plans, admin, doctor, patient):
    with pytest.raises(ValidationError):
        plans.create_plan(admin, patient.id, doctor.id, "  ", date(2026, 3, 1))


def test_add_bumps_version_with_one_record(with_squat, plan, plans, admin, clock):
    assert with_squat.version == 2
    assert plan.version == 2
    history = plans.history(plan.id)
    assert len(history) == 1
    assert history[0].version == 2
    assert history[0].summary == 'Exercise "Squat" added to plan'
    assert history[0].author_id == admin.user_id
    assert history[0].created_at == clock.now()
    assert with_squat.plan_exercise.reps == 10


def test_archive_bumps_again_and_keeps_order(with_squat, plan, plans, exercise, admin):
    bump = plans.mutate(plan.id, ArchiveExercise(exercise.id), admin)

    assert bump.version == 3
    history = plans.history(plan.id)
    assert [r.version for r in history] == [2, 3]
    assert history[1].summary == 'Exercise "Squat" archived from plan'
    assert bump.plan_exercise.archived is True


def test_archived_rows_are_retained(with_squat, plan, plans, exercise, admin):
    plans.mutate(plan.id, ArchiveExercise(exercise.id), admin)
    assert plans.list_exercises(plan.id) == []
    assert len(plans.list_exercises(plan.id, include_archived=True)) == 1


def test_update_parameters_is_structural(with_squat, plan, plans, exercise, physio):
    bump = plans.mutate(plan.id, UpdateExercise(exercise.id, {"reps": 12, "sets": 3, "notes": "slow"}), physio)

    assert bump.version == 3
    # sets was already 3: only real changes are named
    assert bump.record.summary == 'Exercise "Squat" updated in plan: reps, notes'
    assert bump.plan_exercise.reps == 12


def test_update_can_clear_a_field(with_squat, plan, plans, exercise, admin):
    bump = plans.mutate(plan.id, UpdateExercise(exercise.id, {"reps": None}), admin)
    assert bump.plan_exercise.reps is None


def test_update_without_changes_does_not_bump(with_squat, plan, plans, exercise, admin):
    with pytest.raises(ValidationError):
        plans.mutate(plan.id, UpdateExercise(exercise.id, {"reps": 10}), admin)
    with pytest.raises(ValidationError):
        plans.mutate(plan.id, UpdateExercise(exercise.id, {}), admin)
    assert plan.version == 2
    assert len(plans.history(plan.id)) == 1


def test_update_rejects_unknown_fields_and_bad_values(with_squat, plan, plans, exercise, admin):
    with pytest.raises(ValidationError):
        plans.mutate(plan.id, UpdateExercise(exercise.id, {"exercise_id": 99}), admin)
    with pytest.raises(ValidationError):
        plans.mutate(plan.id, UpdateExercise(exercise.id, {"reps": -1}), admin)
    assert plan.version == 2


def test_position_cannot_be_cleared(with_squat, plan, plans, exercise, admin):
    with pytest.raises(ValidationError, match="position"):
        plans.mutate(plan.id, UpdateExercise(exercise.id, {"position": None}), admin)
    assert plan.version == 2
    assert with_squat.plan_exercise.position == 0
    assert plans.history(plan.id)[-1].version == 2


def test_add_without_position_goes_first(plans, plan, exercise, admin):
    bump = plans.mutate(plan.id, AddExercise(exercise.id, position=None), admin)
    assert bump.plan_exercise.position == 0


def test_reads_never_touch_version(with_squat, plan, plans):
    plans.list_exercises(plan.id)
    plans.history(plan.id)
    assert plan.version == 2


def test_version_tracks_history_length(plans, plan, store, admin):
    squat = store.add(Exercise(name="Front squat"))
    bridge = store.add(Exercise(name="Bridge"))
    plans.mutate(plan.id, AddExercise(squat.id), admin)
    plans.mutate(plan.id, AddExercise(bridge.id, position=1), admin)
    plans.mutate(plan.id, UpdateExercise(bridge.id, {"position": 0}), admin)
    plans.mutate(plan.id, ArchiveExercise(squat.id), admin)

    history = plans.history(plan.id)
    assert plan.version == 1 + len(history) == 5
    assert [r.version for r in history] == [2, 3, 4, 5]


def test_missing_plan_or_exercise(plans, plan, exercise, store, admin):
    with pytest.raises(NotFoundError):
        plans.mutate(999, AddExercise(exercise.id), admin)
    with pytest.raises(NotFoundError):
        plans.mutate(plan.id, AddExercise(999), admin)
    with pytest.raises(NotFoundError):
        plans.mutate(plan.id, ArchiveExercise(exercise.id), admin)

    retired = store.add(Exercise(name="Retired", archived=True))
    with pytest.raises(NotFoundError):
        plans.mutate(plan.id, AddExercise(retired.id), admin)
    assert plan.version == 1


def test_same_exercise_cannot_be_added_twice(with_squat, plan, plans, exercise, admin):
    with pytest.raises(ConflictError):
        plans.mutate(plan.id, AddExercise(exercise.id), admin)


def test_archived_exercise_can_be_added_back(with_squat, plan, plans, exercise, admin):
    plans.mutate(plan.id, ArchiveExercise(exercise.id), admin)
    assert plans.mutate(plan.id, AddExercise(exercise.id), admin).version == 4


@pytest.mark.parametrize("actor_fixture", ["other_physio", "receptionist", "patient_actor", "stranger"])
def test_only_admin_or_assigned_physio_edit(plans, plan, exercise, actor_fixture, request):
    actor = request.getfixturevalue(actor_fixture)
    with pytest.raises(ForbiddenError):
        plans.mutate(plan.id, AddExercise(exercise.id), actor)
    assert plan.version == 1


def test_failed_history_insert_rolls_back_everything(session, store, plans, plan, exercise, admin):
    # a stray record already holding version 2 makes the history insert fail
    store.add(
        TherapyPlanVersion(
            therapy_plan_id=plan.id, version=2, summary="stray", author_id="x", created_at=datetime(2026, 1, 1)
        )
    )
    session.commit()

    with pytest.raises(IntegrityError):
        plans.mutate(plan.id, AddExercise(exercise.id), admin)
    session.rollback()

    assert plan.version == 1
    assert plans.list_exercises(plan.id, include_archived=True) == []
