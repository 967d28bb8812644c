"""Tests for the effect data model and map_effect."""

import dataclasses

import pytest

from pycomposex import (
    AfterDelay, Batch, Cancel, Cancellable, Debounced, Effect, FireAndForget,
    NoneEffect, Run, Subscription, Throttled, ValidationError, map_effect,
)


def emit(value):
    return lambda dispatch: dispatch(value)


@pytest.mark.unit
def test_constructors_build_matching_variants():
    """Test that each constructor returns its variant with the expected kind."""
    executor = emit("x")

    assert isinstance(Effect.none(), NoneEffect)
    assert Effect.run(executor).kind == "run"
    assert Effect.fire_and_forget(lambda: None).kind == "fire_and_forget"
    assert Effect.cancellable("load", executor) == Cancellable("load", executor)
    assert Effect.debounced("q", 300, executor) == Debounced("q", 300, executor)
    assert Effect.throttled("scroll", 100, executor) == Throttled("scroll", 100, executor)
    assert Effect.after_delay(50, executor) == AfterDelay(50, executor)
    assert Effect.subscription("ticks", executor) == Subscription("ticks", executor)
    assert Effect.cancel("load") == Cancel("load")


@pytest.mark.unit
def test_effects_are_frozen():
    """Test that effect values cannot be mutated after construction."""
    effect = Effect.debounced("q", 300, emit("x"))

    with pytest.raises(dataclasses.FrozenInstanceError):
        effect.ms = 10


@pytest.mark.unit
@pytest.mark.parametrize("build", [
    lambda: Effect.debounced("q", -1, emit("x")),
    lambda: Effect.throttled("q", -5, emit("x")),
    lambda: Effect.after_delay(-0.5, emit("x")),
])
def test_negative_delay_is_rejected(build):
    """Test that negative millisecond values raise ValidationError."""
    with pytest.raises(ValidationError):
        build()


@pytest.mark.unit
def test_non_callable_executor_is_rejected():
    """Test that executors must be callable."""
    with pytest.raises(ValidationError):
        Effect.run("not callable")


@pytest.mark.unit
def test_batch_filters_none_and_collapses():
    """Test that batch drops none effects and unwraps a single survivor."""
    single = Effect.run(emit("x"))

    assert isinstance(Effect.batch(), NoneEffect)
    assert isinstance(Effect.batch(Effect.none(), None), NoneEffect)
    assert Effect.batch(Effect.none(), single) is single
    assert Effect.batch([single]) is single


@pytest.mark.unit
def test_batch_keeps_order():
    """Test that batch keeps its children in order."""
    first, second = Effect.run(emit(1)), Effect.run(emit(2))

    batch = Effect.batch(first, Effect.none(), second)

    assert isinstance(batch, Batch)
    assert batch.effects == (first, second)


@pytest.mark.unit
def test_map_effect_wraps_dispatched_actions():
    """Test that mapped run effects dispatch transformed actions."""
    dispatched = []
    mapped = Effect.run(emit("child")).map(lambda a: ("parent", a))

    mapped.execute(dispatched.append)

    assert dispatched == [("parent", "child")]


@pytest.mark.unit
def test_map_effect_preserves_ids_and_delays():
    """Test that mapping keeps the id and timing of keyed effects."""
    mapped = map_effect(Effect.debounced("q", 300, emit("x")), str.upper)

    assert isinstance(mapped, Debounced)
    assert (mapped.id, mapped.ms) == ("q", 300)


@pytest.mark.unit
def test_map_effect_recurses_into_batches_and_subscriptions():
    """Test that batches and subscription setups are mapped too."""
    dispatched = []
    batch = Effect.batch(Effect.run(emit("a")), Effect.subscription("s", emit("b")))

    mapped = map_effect(batch, lambda a: a * 2)

    mapped.effects[0].execute(dispatched.append)
    mapped.effects[1].setup(dispatched.append)
    assert dispatched == ["aa", "bb"]


@pytest.mark.unit
def test_map_effect_leaves_non_dispatching_effects_alone():
    """Test that none, fire_and_forget and cancel are returned unchanged."""
    for effect in (Effect.none(), Effect.fire_and_forget(lambda: None), Effect.cancel("x")):
        assert map_effect(effect, str) is effect


@pytest.mark.unit
def test_run_effect_is_inert_until_executed():
    """Test that building an effect does not call its executor."""
    calls = []

    Run(lambda dispatch: calls.append("ran"))
    FireAndForget(lambda: calls.append("ran"))

    assert calls == []
