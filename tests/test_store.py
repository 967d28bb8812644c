"""Tests for Store dispatch, subscriptions, history and lifecycle."""

import pydantic
import pytest

from pycomposex import (
    Action, Effect, Store, StoreConfig, StoreError, create_action, create_reducer,
    create_store, on,
)

from conftest import add, advance, counter_reducer, decrement, increment, noop


@pytest.mark.unit
def test_dispatch_runs_reducer_and_returns_action():
    """Test that dispatch updates state synchronously and returns the action."""
    store = create_store(0, counter_reducer)

    result = store.dispatch(increment())

    assert result == increment()
    assert store.state == 1


@pytest.mark.unit
def test_subscribe_is_called_immediately_and_on_change():
    """Test that subscribers receive the current state and every change."""
    store = create_store(0, counter_reducer)
    seen = []

    store.subscribe(seen.append)
    store.dispatch(increment())
    store.dispatch(add(5))

    assert seen == [0, 1, 6]


@pytest.mark.unit
def test_unchanged_state_does_not_notify_state_subscribers():
    """Test that returning the same state object skips state subscribers."""
    store = create_store(0, counter_reducer)
    seen = []
    store.subscribe(seen.append)

    store.dispatch(noop())

    assert seen == [0]


@pytest.mark.unit
def test_action_subscribers_see_every_dispatch():
    """Test that action subscribers are notified even when state is unchanged."""
    store = create_store(0, counter_reducer)
    seen = []
    store.subscribe_to_actions(lambda action, state: seen.append((action.type, state)))

    store.dispatch(noop())
    store.dispatch(increment())

    assert seen == [("[Counter] Noop", 0), ("[Counter] Increment", 1)]


@pytest.mark.unit
def test_unsubscribe_stops_notifications():
    """Test that the returned callable removes the subscriber."""
    store = create_store(0, counter_reducer)
    seen = []

    unsubscribe = store.subscribe(seen.append)
    unsubscribe()
    store.dispatch(increment())

    assert seen == [0]


@pytest.mark.unit
def test_history_records_actions_in_order():
    """Test that dispatched actions are kept in history."""
    store = create_store(0, counter_reducer)

    store.dispatch(increment())
    store.dispatch(noop())

    assert store.history == (increment(), noop())


@pytest.mark.unit
def test_history_is_bounded_and_can_be_disabled():
    """Test that max_history_size drops the oldest entries and 0 disables history."""
    bounded = create_store(0, counter_reducer, max_history_size=2)
    disabled = create_store(0, counter_reducer, max_history_size=0)

    for store in (bounded, disabled):
        store.dispatch(add(1))
        store.dispatch(add(2))
        store.dispatch(add(3))

    assert bounded.history == (add(2), add(3))
    assert disabled.history == ()
    assert disabled.state == 6


@pytest.mark.unit
def test_reducer_exceptions_propagate_without_commit():
    """Test that a failing reducer raises and leaves the state untouched."""
    explode = create_action("[Counter] Explode")

    def handle(state, action):
        raise ValueError("boom")

    store = create_store(3, create_reducer(0, on(explode, handle)))

    with pytest.raises(ValueError):
        store.dispatch(explode())
    assert store.state == 3


@pytest.mark.unit
def test_malformed_reducer_result_raises_store_error():
    """Test that reducers must return a (state, effect) pair."""
    store = create_store(0, lambda state, action, deps: state + 1)

    with pytest.raises(StoreError):
        store.dispatch(increment())


@pytest.mark.unit
def test_non_effect_second_element_raises_store_error():
    """Test that the second element of the reducer result must be an Effect."""
    store = create_store(0, lambda state, action, deps: (state, "not an effect"))

    with pytest.raises(StoreError):
        store.dispatch(increment())


@pytest.mark.unit
def test_subscriber_errors_are_isolated(errors):
    """Test that a failing subscriber is reported and others still run."""
    store = create_store(0, counter_reducer, error_handler=errors)
    seen = []

    def broken(state):
        if state:
            raise RuntimeError("render failed")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.dispatch(increment())

    assert seen == [0, 1]
    assert len(errors.captured) == 1
    assert isinstance(errors.captured[0], StoreError)


@pytest.mark.unit
def test_dispatch_from_subscriber_is_queued():
    """Test that a dispatch inside a subscriber runs after the current dispatch completes."""
    store = create_store(0, counter_reducer)
    order = []

    def listener(state):
        order.append(state)
        if state == 1:
            store.dispatch(add(10))
            order.append(("after nested dispatch", store.state))

    store.subscribe(listener)
    store.dispatch(increment())

    assert order == [0, 1, ("after nested dispatch", 1), 11]
    assert store.state == 11


@pytest.mark.unit
def test_effects_run_after_reduce_and_can_dispatch():
    """Test that the effect returned by the reducer executes and feeds actions back."""
    loaded = create_action("[Data] Loaded", lambda value: value)
    load = create_action("[Data] Load")
    reducer = create_reducer(
        {"status": "idle"},
        on(load, lambda s, a: ({"status": "loading"}, Effect.run(lambda dispatch: dispatch(loaded(42))))),
        on(loaded, lambda s, a: {"status": "done", "value": a.payload}),
    )
    store = create_store({"status": "idle"}, reducer)
    states = []
    store.subscribe(states.append)

    store.dispatch(load())

    assert [s["status"] for s in states] == ["idle", "loading", "done"]
    assert store.state["value"] == 42


@pytest.mark.unit
def test_dependencies_are_passed_to_reducer():
    """Test that the store hands its dependencies to the reducer."""
    seen = []

    def reducer(state, action, dependencies):
        seen.append(dependencies["api"])
        return state, Effect.none()

    store = create_store(0, reducer, {"api": "client"})
    store.dispatch(noop())

    assert seen == ["client"]
    assert store.dependencies == {"api": "client"}


@pytest.mark.unit
def test_select_and_observe():
    """Test that select reads the current state and observe emits distinct changes."""
    store = create_store({"count": 0, "label": "a"}, create_reducer(
        None,
        on(increment, lambda s, a: {**s, "count": s["count"] + 1}),
        on("[Label] Set", lambda s, a: {**s, "label": a.payload}),
    ))
    counts = []

    store.observe(lambda s: s["count"]).subscribe(counts.append)
    store.dispatch(increment())
    store.dispatch(Action("[Label] Set", "b"))
    store.dispatch(increment())

    assert store.select(lambda s: s["label"]) == "b"
    assert counts == [0, 1, 2]


@pytest.mark.unit
def test_destroy_is_idempotent_and_cancels_timers(scheduler):
    """Test that destroy cancels pending effects and later dispatches are ignored."""
    ping = create_action("[Timer] Ping")
    start = create_action("[Timer] Start")
    reducer = create_reducer(
        0,
        on(start, lambda s, a: (s, Effect.after_delay(100, lambda dispatch: dispatch(ping())))),
        on(ping, lambda s, a: s + 1),
    )
    store = create_store(0, reducer, scheduler=scheduler)

    store.dispatch(start())
    store.destroy()
    store.destroy()
    advance(scheduler, 500)
    store.dispatch(ping())

    assert store.is_destroyed
    assert store.state == 0


@pytest.mark.unit
def test_context_manager_destroys_store():
    """Test that leaving a with-block destroys the store."""
    with create_store(0, counter_reducer) as store:
        store.dispatch(increment())

    assert store.is_destroyed
    assert store.state == 1


@pytest.mark.unit
def test_store_config_validation():
    """Test that StoreConfig rejects invalid settings."""
    with pytest.raises(pydantic.ValidationError):
        StoreConfig(initial_state=0, reducer=counter_reducer, max_history_size=-1)
    with pytest.raises(pydantic.ValidationError):
        StoreConfig(initial_state=0, reducer="not callable")


@pytest.mark.unit
def test_create_store_accepts_config():
    """Test that create_store accepts a StoreConfig but not mixed arguments."""
    config = StoreConfig(initial_state=5, reducer=counter_reducer)

    assert isinstance(create_store(config), Store)
    assert create_store(config).state == 5
    with pytest.raises(TypeError):
        create_store(config, counter_reducer)


@pytest.mark.unit
def test_counter_scenario():
    """Test the basic counter flow end to end."""
    store = create_store(0, counter_reducer)

    store.dispatch(increment())
    store.dispatch(increment())
    store.dispatch(decrement())

    assert store.state == 1
