"""Tests for scope, if_let and for_each composition operators."""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import pytest

from pycomposex import (
    Action, Effect, EffectsManager, IdentifiedItem, NoneEffect, create_action,
    create_reducer, dismiss, element_action, for_each, for_each_element, if_let,
    if_let_presentation, integrate, on, presented, scope, scope_action,
)

from conftest import Parent, counter_reducer, increment


child_loaded = create_action("[Child] Loaded")
child_load = create_action("[Child] Load")

loading_child = create_reducer(
    0,
    on(child_load, lambda s, a: (s, Effect.run(lambda dispatch: dispatch(child_loaded())))),
    on(child_loaded, lambda s, a: s + 100),
)


def run_effect(effect):
    dispatched = []
    effect.execute(dispatched.append)
    return dispatched


counter_scope = scope(
    lambda parent: parent.counter,
    lambda parent, counter: replace(parent, counter=counter),
    lambda action: action.payload if action.type == "[Parent] Counter" else None,
    lambda child_action: Action("[Parent] Counter", child_action),
    counter_reducer,
)


@pytest.mark.unit
def test_scope_routes_child_actions():
    """Test that scope runs the child reducer and re-embeds its state."""
    state, effect = counter_scope(Parent(), Action("[Parent] Counter", increment()), {})

    assert state == Parent(counter=1)
    assert isinstance(effect, NoneEffect)


@pytest.mark.unit
def test_scope_ignores_unrelated_actions():
    """Test that non-targeting actions return the same parent object."""
    parent = Parent(counter=3)

    state, effect = counter_scope(parent, Action("[Parent] Other"), {})

    assert state is parent
    assert isinstance(effect, NoneEffect)


@pytest.mark.unit
def test_scope_keeps_parent_when_child_unchanged():
    """Test that an unchanged child state keeps the parent object."""
    parent = Parent(counter=3)

    state, _ = counter_scope(parent, Action("[Parent] Counter", Action("[Counter] Noop")), {})

    assert state is parent


@pytest.mark.unit
def test_scope_action_wraps_child_effects():
    """Test that child effect actions come back wrapped in the parent envelope."""
    reducer = scope_action(
        lambda parent: parent.counter,
        lambda parent, counter: replace(parent, counter=counter),
        "[Parent] Counter",
        loading_child,
    )

    _, effect = reducer(Parent(), Action("[Parent] Counter", child_load()), {})

    assert run_effect(effect) == [Action("[Parent] Counter", child_loaded())]


child_if_let = if_let(
    lambda parent: parent.child,
    lambda parent, child: replace(parent, child=child),
    lambda action: action.payload if action.type == "[Parent] Child" else None,
    lambda child_action: Action("[Parent] Child", child_action),
    counter_reducer,
)


@pytest.mark.unit
def test_if_let_ignores_actions_when_child_absent():
    """Test that child actions are a no-op while the child is None."""
    parent = Parent(child=None)

    state, effect = child_if_let(parent, Action("[Parent] Child", increment()), {})

    assert state is parent
    assert isinstance(effect, NoneEffect)


@pytest.mark.unit
def test_if_let_runs_present_child():
    """Test that child actions reach a present child."""
    state, _ = child_if_let(Parent(child=1), Action("[Parent] Child", increment()), {})

    assert state.child == 2


@pytest.mark.unit
def test_if_let_child_can_dismiss_itself():
    """Test that a child reducer returning None clears the slot."""
    close = create_action("[Child] Close")
    reducer = if_let(
        lambda parent: parent.child,
        lambda parent, child: replace(parent, child=child),
        lambda action: action,
        lambda action: action,
        create_reducer(0, on(close, lambda s, a: (None, Effect.none()))),
    )

    state, _ = reducer(Parent(child=4), close(), {})

    assert state.child is None


presentation = if_let_presentation(
    lambda parent: parent.child,
    lambda parent, child: replace(parent, child=child),
    "[Parent] Sheet",
    loading_child,
)


@pytest.mark.unit
def test_if_let_presentation_dismiss_clears_child():
    """Test that dismiss sets the child to None without running the child reducer."""
    state, effect = presentation(Parent(child=7), Action("[Parent] Sheet", dismiss()), {})

    assert state.child is None
    assert isinstance(effect, NoneEffect)


@pytest.mark.unit
def test_if_let_presentation_dismiss_when_absent_is_noop():
    """Test that dismissing an absent child keeps the parent object."""
    parent = Parent()

    assert presentation(parent, Action("[Parent] Sheet", dismiss()), {})[0] is parent


@pytest.mark.unit
def test_if_let_presentation_rewraps_effects():
    """Test that presented child effects are re-wrapped as presented actions."""
    state, effect = presentation(Parent(child=0), Action("[Parent] Sheet", presented(child_load())), {})

    assert state.child == 0
    assert run_effect(effect) == [Action("[Parent] Sheet", presented(child_loaded()))]


@dataclass(frozen=True)
class Todo:
    title: str
    done: bool = False


toggle = create_action("[Todo] Toggle")
todo_reducer = create_reducer(None, on(toggle, lambda todo, a: replace(todo, done=not todo.done)))


@dataclass(frozen=True)
class TodoList:
    todos: Tuple[IdentifiedItem, ...] = ()
    filter: Optional[str] = None


todos_for_each = for_each_element(
    "[Todos] Element",
    lambda s: s.todos,
    lambda s, todos: replace(s, todos=todos),
    todo_reducer,
)


def make_list():
    return TodoList(todos=(
        IdentifiedItem("a", Todo("write")),
        IdentifiedItem("b", Todo("test")),
        IdentifiedItem("c", Todo("ship")),
    ))


@pytest.mark.unit
def test_for_each_updates_only_target_element():
    """Test that only the addressed element changes and the others keep identity."""
    before = make_list()

    after, _ = todos_for_each(before, element_action("[Todos] Element", "b", toggle()), {})

    assert isinstance(after.todos, tuple)
    assert len(after.todos) == 3
    assert after.todos[1].state.done is True
    assert after.todos[0] is before.todos[0]
    assert after.todos[2] is before.todos[2]


@pytest.mark.unit
def test_for_each_missing_id_is_logged_noop(caplog):
    """Test that an unknown element id logs a warning and keeps the state."""
    before = make_list()

    with caplog.at_level(logging.WARNING):
        after, effect = todos_for_each(before, element_action("[Todos] Element", "zzz", toggle()), {})

    assert after is before
    assert isinstance(effect, NoneEffect)
    assert "zzz" in caplog.text


@pytest.mark.unit
def test_for_each_embeds_element_effects():
    """Test that element effects are embedded with the element id."""
    reducer = for_each(
        lambda s: s,
        lambda s, items: items,
        lambda action: action if isinstance(action, tuple) else None,
        lambda element_id, child_action: (element_id, child_action),
        loading_child,
    )
    items = [IdentifiedItem(1, 0), IdentifiedItem(2, 0)]

    state, effect = reducer(items, (2, child_load()), {})

    assert state is items
    assert run_effect(effect) == [(2, child_loaded())]


@pytest.mark.unit
def test_for_each_preserves_list_container():
    """Test that list sequences stay lists."""
    reducer = for_each(
        lambda s: s,
        lambda s, items: items,
        lambda action: action,
        lambda element_id, child_action: (element_id, child_action),
        counter_reducer,
    )
    items = [IdentifiedItem(1, 0), IdentifiedItem(2, 0)]

    state, _ = reducer(items, (1, increment()), {})

    assert isinstance(state, list)
    assert [item.state for item in state] == [1, 0]
    assert items[0].state == 0


@pytest.mark.unit
def test_if_let_presentation_dismiss_skips_child_reducer():
    """Test that dismiss never invokes the child reducer."""
    calls = []

    def spy(state, action, dependencies):
        calls.append(action)
        return state, Effect.none()

    reducer = if_let_presentation(
        lambda parent: parent.child,
        lambda parent, child: replace(parent, child=child),
        "[Parent] Sheet",
        spy,
    )

    state, _ = reducer(Parent(child=3), Action("[Parent] Sheet", dismiss()), {})

    assert state.child is None
    assert calls == []


@dataclass(frozen=True)
class Shell:
    opened: int = 0
    sheet: Optional[int] = None
    alert: Optional[str] = None


open_sheet = create_action("[Shell] Open Sheet")
acknowledge = create_action("[Alert] Acknowledge")

shell_core = create_reducer(
    Shell(),
    on(open_sheet, lambda s, a: replace(s, opened=s.opened + 1, sheet=0)),
)
alert_reducer = create_reducer(None, on(acknowledge, lambda s, a: s.upper()))


@pytest.mark.unit
def test_integrate_routes_each_field():
    """Test that integrated fields receive their presented actions after the core reducer."""
    reducer = (integrate(shell_core)
               .with_("sheet", loading_child)
               .with_("alert", alert_reducer, action_type="[Shell] Alert")
               .build())

    state, _ = reducer(Shell(alert="careful"), open_sheet(), {})
    assert state == Shell(opened=1, sheet=0, alert="careful")

    state, effect = reducer(state, Action("sheet", presented(child_load())), {})
    assert run_effect(effect) == [Action("sheet", presented(child_loaded()))]

    state, _ = reducer(state, Action("[Shell] Alert", presented(acknowledge())), {})
    assert state.alert == "CAREFUL"

    state, _ = reducer(state, Action("sheet", dismiss()), {})
    assert state == Shell(opened=1, sheet=None, alert="CAREFUL")


@pytest.mark.unit
def test_integrate_batches_core_and_child_effects():
    """Test that effects from the core and a field are both kept."""
    core = create_reducer(
        {"sheet": 0},
        on("[Sheet] Load", lambda s, a: (s, Effect.run(lambda dispatch: dispatch("core")))),
    )
    reducer = integrate(core).with_("[Sheet] Load", loading_child).build()
    action = Action("[Sheet] Load", presented(child_load()))

    dispatched = []
    _, effect = reducer({"[Sheet] Load": 0, "sheet": 0}, action, {})
    EffectsManager(dispatched.append).execute(effect)

    assert dispatched == ["core", Action("[Sheet] Load", presented(child_loaded()))]


@pytest.mark.unit
def test_integrate_rejects_duplicates_and_non_callables():
    """Test that each field is registered once with a callable reducer."""
    builder = integrate(shell_core).with_("sheet", loading_child)

    with pytest.raises(ValueError):
        builder.with_("sheet", loading_child)
    with pytest.raises(TypeError):
        builder.with_("alert", None)
    with pytest.raises(TypeError):
        integrate("not a reducer")
