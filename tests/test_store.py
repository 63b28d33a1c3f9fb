import asyncio
from datetime import date

import pytest

from fakes import habit_row, make_session
from streakly.errors import NetworkError, NotAuthenticated, ValidationFailed
from streakly.gateway.client import GatewayError, GatewayUnavailable
from streakly.gateway.models import AuthEvent
from streakly.habits.models import Category

JAN_1 = date(2025, 1, 1)
JAN_2 = date(2025, 1, 2)


@pytest.fixture
def seeded(gateway):
    gateway.rows = [
        habit_row("a", "Read", created_at="2025-01-01T08:00:00+00:00"),
        habit_row(
            "b",
            "Run",
            category="exercise",
            streak=3,
            last_completed_date="2025-01-01",
            created_at="2025-01-01T09:00:00+00:00",
        ),
    ]
    return gateway


@pytest.mark.asyncio
async def test_load_requires_session(store, gateway):
    with pytest.raises(NotAuthenticated):
        await store.load()

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_load_orders_by_creation(store, signed_in, seeded):
    seeded.rows.reverse()

    habits = await store.load()

    assert [habit.id for habit in habits] == ["a", "b"]
    assert habits[1].category == Category.EXERCISE
    assert habits[1].last_completed_date == JAN_1
    assert store.loaded


@pytest.mark.asyncio
async def test_completed_today_is_derived_at_read_time(store, signed_in, seeded):
    await store.load()
    run = store.get("b")

    assert store.completed_today(run, JAN_1)
    assert not store.completed_today(run, JAN_2)


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_habits(store, signed_in, seeded):
    await store.load()
    seeded.fail_with = GatewayUnavailable("Request timed out")

    with pytest.raises(NetworkError):
        await store.load()

    assert [habit.id for habit in store.habits] == ["a", "b"]


@pytest.mark.asyncio
async def test_load_skips_unusable_rows(store, signed_in, gateway):
    gateway.rows = [
        habit_row("a", "Read"),
        habit_row("b", "   "),
        habit_row("c", "Stretch", streak=2, last_completed_date=None),
        habit_row("d", "Walk", streak=-1),
        habit_row("e", "Cook", last_completed_date="yesterday"),
    ]

    habits = await store.load()

    assert [habit.id for habit in habits] == ["a"]


@pytest.mark.asyncio
async def test_unknown_or_missing_category_reads_as_general(store, signed_in, gateway):
    gateway.rows = [habit_row("a", "Read", category="hobby"), habit_row("b", "Nap", category=None)]

    habits = await store.load()

    assert [habit.category for habit in habits] == [Category.GENERAL, Category.GENERAL]


@pytest.mark.asyncio
async def test_unauthorized_load(store, signed_in, gateway):
    gateway.fail_with = GatewayError("JWT expired", 401, "PGRST301")

    with pytest.raises(NotAuthenticated):
        await store.load()


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   "])
async def test_add_rejects_blank_name_without_network(store, signed_in, gateway, name):
    with pytest.raises(ValidationFailed) as excinfo:
        await store.add(name, Category.STUDY)

    assert excinfo.value.field == "name"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_add_rejects_unknown_category(store, signed_in, gateway):
    with pytest.raises(ValidationFailed) as excinfo:
        await store.add("Read", "hobby")

    assert excinfo.value.field == "category"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_add_requires_session(store, gateway):
    with pytest.raises(NotAuthenticated):
        await store.add("Read")


@pytest.mark.asyncio
async def test_add_appends_trimmed_habit(store, signed_in, seeded):
    await store.load()

    habit = await store.add("  Meditate  ", "health")

    assert store.habits[-1] == habit
    assert habit.name == "Meditate"
    assert habit.category == Category.HEALTH
    assert habit.streak == 0
    assert habit.last_completed_date is None
    assert habit.owner == signed_in.user.id
    assert seeded.calls[-1] == (
        "insert_habit",
        {
            "user_id": "user-1",
            "name": "Meditate",
            "category": "health",
            "streak": 0,
            "last_completed_date": None,
        },
    )


@pytest.mark.asyncio
async def test_add_defaults_to_general(store, signed_in):
    habit = await store.add("Journal")

    assert habit.category == Category.GENERAL


@pytest.mark.asyncio
async def test_failed_add_leaves_list_alone(store, signed_in, seeded):
    await store.load()
    seeded.fail_with = GatewayUnavailable("Gateway unreachable")

    with pytest.raises(NetworkError):
        await store.add("Meditate")

    assert len(store.habits) == 2


@pytest.mark.asyncio
async def test_remove_unknown_id_is_a_no_op(store, signed_in, seeded):
    await store.load()
    before = list(store.habits)

    assert await store.remove("missing") is False

    assert store.habits == before
    assert "delete_habit" not in seeded.call_names()


@pytest.mark.asyncio
async def test_remove_deletes_remotely_then_locally(store, signed_in, seeded):
    await store.load()

    assert await store.remove("a") is True

    assert [habit.id for habit in store.habits] == ["b"]
    assert [row["id"] for row in seeded.rows] == ["b"]


@pytest.mark.asyncio
async def test_failed_remove_keeps_habit(store, signed_in, seeded):
    await store.load()
    seeded.fail_with = GatewayUnavailable("Gateway unreachable")

    with pytest.raises(NetworkError):
        await store.remove("a")

    assert store.get("a") is not None


@pytest.mark.asyncio
async def test_toggle_next_day_increments_and_persists(store, signed_in, seeded):
    await store.load()

    habit = await store.toggle_complete("b", today=JAN_2)

    assert habit.streak == 4
    assert habit.last_completed_date == JAN_2
    assert store.get("b") == habit
    assert seeded.calls[-1] == (
        "update_habit",
        "b",
        {"streak": 4, "last_completed_date": "2025-01-02"},
    )


@pytest.mark.asyncio
async def test_toggle_same_day_is_a_no_op(store, signed_in, seeded):
    await store.load()
    calls_before = len(seeded.calls)

    habit = await store.toggle_complete("b", today=JAN_1)

    assert habit.streak == 3
    assert habit.last_completed_date == JAN_1
    assert len(seeded.calls) == calls_before


@pytest.mark.asyncio
async def test_toggle_twice_is_idempotent(store, signed_in, seeded):
    await store.load()

    first = await store.toggle_complete("a", today=JAN_2)
    second = await store.toggle_complete("a", today=JAN_2)

    assert first == second
    assert second.streak == 1
    assert seeded.call_names().count("update_habit") == 1


@pytest.mark.asyncio
async def test_concurrent_toggles_increment_once(store, signed_in, seeded):
    await store.load()
    seeded.update_delay = 0.01

    results = await asyncio.gather(
        store.toggle_complete("a", today=JAN_2),
        store.toggle_complete("a", today=JAN_2),
        store.toggle_complete("a", today=JAN_2),
    )

    assert [habit.streak for habit in results] == [1, 1, 1]
    assert seeded.call_names().count("update_habit") == 1


@pytest.mark.asyncio
async def test_toggle_unknown_id(store, signed_in, seeded):
    await store.load()

    assert await store.toggle_complete("missing", today=JAN_2) is None
    assert "update_habit" not in seeded.call_names()


@pytest.mark.asyncio
async def test_toggle_unknown_ids_leave_no_locks_behind(store, signed_in, seeded):
    await store.load()

    for habit_id in ("missing-1", "missing-2", "missing-3"):
        await store.toggle_complete(habit_id, today=JAN_2)

    assert dict(store._locks) == {}


@pytest.mark.asyncio
async def test_toggle_of_habit_removed_while_waiting(store, signed_in, seeded):
    await store.load()
    seeded.update_delay = 0.01

    first = asyncio.create_task(store.toggle_complete("a", today=JAN_2))
    await asyncio.sleep(0)
    second = asyncio.create_task(store.toggle_complete("a", today=JAN_2))
    await asyncio.sleep(0)
    store.habits = [habit for habit in store.habits if habit.id != "a"]

    assert (await first).streak == 1
    assert await second is None
    assert "a" not in store._locks


@pytest.mark.asyncio
async def test_failed_toggle_keeps_old_streak(store, signed_in, seeded):
    await store.load()
    seeded.fail_with = GatewayUnavailable("Request timed out")

    with pytest.raises(NetworkError):
        await store.toggle_complete("b", today=JAN_2)

    assert store.get("b").streak == 3


@pytest.mark.asyncio
async def test_sign_out_clears_habits(store, sessions, signed_in, seeded):
    await store.load()

    await sessions.sign_out()

    assert store.habits == []
    assert not store.loaded


@pytest.mark.asyncio
async def test_token_refresh_keeps_habits(store, sessions, signed_in, seeded):
    await store.load()

    sessions.on_change(AuthEvent.TOKEN_REFRESHED, make_session())

    assert len(store.habits) == 2


@pytest.mark.asyncio
async def test_filter_and_summary(store, signed_in, seeded):
    await store.load()

    assert [habit.id for habit in store.filter("exercise")] == ["b"]
    assert [habit.id for habit in store.filter()] == ["a", "b"]

    summary = store.summary(today=JAN_1)
    assert (summary.completed, summary.total, summary.percentage) == (1, 2, 50.0)
