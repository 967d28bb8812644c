"""
Shared pytest fixtures and helpers for PyComposeX tests.
"""
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Optional, Tuple

import pytest
from reactivex.scheduler import HistoricalScheduler

from pycomposex import (
    Action, Destination, ErrorHandler, create_action, create_destination_reducer,
    create_reducer, create_stack_reducer, if_let_presentation, is_action, merge_reducers, on,
)


increment = create_action("[Counter] Increment")
decrement = create_action("[Counter] Decrement")
add = create_action("[Counter] Add", lambda amount: amount)
noop = create_action("[Counter] Noop")

counter_reducer = create_reducer(
    0,
    on(increment, lambda state, action: state + 1),
    on(decrement, lambda state, action: state - 1),
    on(add, lambda state, action: state + action.payload),
)


@dataclass(frozen=True)
class Parent:
    """A parent feature holding a counter and an optional presented counter."""
    counter: int = 0
    child: Optional[int] = None


def advance(scheduler: HistoricalScheduler, ms: float) -> None:
    scheduler.advance_by(timedelta(milliseconds=ms))


@pytest.fixture
def scheduler():
    """Provide a virtual time scheduler starting at the epoch."""
    return HistoricalScheduler()


@pytest.fixture
def errors():
    """Provide an ErrorHandler that records handled errors instead of logging them."""
    handler = ErrorHandler(log_to_console=False)
    captured = []
    handler.register_handler(captured.append)
    handler.captured = captured
    return handler


@pytest.fixture
def dispatched():
    """Provide a list that doubles as a dispatch function via its append method."""
    return []


@dataclass(frozen=True)
class App:
    """An application state with a sheet, a destination and a navigation path."""
    counter: int = 0
    sheet: Optional[int] = None
    destination: Optional[Destination] = None
    path: Tuple[int, ...] = ()


show_sheet = create_action("[App] Show Sheet")
show_counter = create_action("[App] Show Counter")
close = create_action("[Sheet] Close")

sheet_reducer = create_reducer(
    0,
    on(increment, lambda state, action: state + 1),
    on(close, lambda state, action, deps: (state, deps["dismiss"]()), with_dependencies=True),
)

app_reducer = merge_reducers(
    create_reducer(
        None,
        on(show_sheet, lambda state, action: replace(state, sheet=0)),
        on(show_counter, lambda state, action: replace(state, destination=Destination("counter", 0))),
    ),
    if_let_presentation(
        lambda state: state.sheet,
        lambda state, sheet: replace(state, sheet=sheet),
        "[App] Sheet",
        sheet_reducer,
    ),
    if_let_presentation(
        lambda state: state.destination,
        lambda state, destination: replace(state, destination=destination),
        "[App] Destination",
        create_destination_reducer({"counter": counter_reducer}),
    ),
    create_stack_reducer(
        lambda state: state.path,
        lambda state, path: replace(state, path=path),
        lambda action: action.payload if is_action(action, "[App] Path") else None,
        lambda stack_action: Action("[App] Path", stack_action),
        counter_reducer,
    ),
)
