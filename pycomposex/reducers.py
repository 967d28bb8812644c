from typing import Any, Callable, Dict, Mapping, Tuple, TypeVar

from immutables import Map

from .actions import Action
from .effects import Effect

S = TypeVar("S")
Reducer = Callable[[S, Any, Any], Tuple[S, Effect]]


def _normalize(result: Any) -> Tuple[Any, Effect]:
    # handler 可以只回傳新狀態，也可以回傳 (state, effect)
    if isinstance(result, tuple) and len(result) == 2 and isinstance(result[1], Effect):
        return result
    return result, Effect.none()


def create_reducer(initial_state: S, *handlers) -> Reducer[S]:
    """
    創建一個 reducer 函式，用於處理狀態變更。

    Args:
        initial_state: 初始狀態，state 為 None 時使用。
        *handlers: 一系列 (action_type, handler_fn) 元組或使用 on 函式創建的處理器。
            handler_fn 可以接收 (state, action) 或 (state, action, dependencies)，
            回傳新狀態，或 (新狀態, effect)。

    Returns:
        一個 reducer 函式 (state, action, dependencies) -> (state, effect)。
    """
    action_handlers = {}  # 儲存 action 類型與處理函式的對應關係

    for handler in handlers:
        if isinstance(handler, tuple) and len(handler) == 2:
            action_type, handler_fn = handler
            action_handlers[getattr(action_type, "type", action_type)] = handler_fn
        else:
            action_handlers.update(handler)

    def reducer(state: S = None, action: Action = None, dependencies: Any = None) -> Tuple[S, Effect]:
        if state is None:
            state = initial_state
        if not isinstance(action, Action):
            return state, Effect.none()

        handler = action_handlers.get(action.type)
        if handler is None:
            return state, Effect.none()
        if getattr(handler, "_wants_dependencies", False):
            return _normalize(handler(state, action, dependencies))
        return _normalize(handler(state, action))

    reducer.initial_state = initial_state
    reducer.handlers = action_handlers

    return reducer


def on(action_creator_or_type, handler, *, with_dependencies: bool = False):
    """
    創建一個 action 類型與處理函式的映射。

    Args:
        action_creator_or_type: Action 創建器函式或 Action 類型字串。
        handler: 處理該 Action 的函式。
        with_dependencies: 為 True 時 handler 會收到第三個參數 dependencies。

    Returns:
        一個包含 {action_type: handler} 的字典。
    """
    if callable(action_creator_or_type) and hasattr(action_creator_or_type, 'type'):
        action_type = action_creator_or_type.type
    else:
        action_type = str(action_creator_or_type)

    if with_dependencies:
        def wrapped(state, action, dependencies):
            return handler(state, action, dependencies)
        wrapped._wants_dependencies = True
        return {action_type: wrapped}
    return {action_type: handler}


def combine_reducers(reducers: Mapping[str, Reducer]) -> Reducer:
    """
    將多個切片 reducer 組合成一個，每個 reducer 只處理 state[key]。

    各切片的副作用以 batch 合併。沒有任何切片變化時回傳原本的 state 物件；
    有變化時回傳同類型的新映射（immutables.Map 使用 mutate()，其他使用 dict）。
    """
    items = tuple(reducers.items())

    def reducer(state: Mapping[str, Any], action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        changes: Dict[str, Any] = {}
        effects = []
        for key, slice_reducer in items:
            prev = state.get(key) if state is not None else None
            next_slice, effect = slice_reducer(prev, action, dependencies)
            if next_slice is not prev:
                changes[key] = next_slice
            effects.append(effect)

        if not changes:
            return state, Effect.batch(effects)
        if isinstance(state, Map):
            with state.mutate() as mutation:
                for key, value in changes.items():
                    mutation[key] = value
                new_state = mutation.finish()
        else:
            new_state = {**(state or {}), **changes}
        return new_state, Effect.batch(effects)

    return reducer


def merge_reducers(*reducers: Reducer) -> Reducer:
    """
    依序執行多個作用於同一個狀態的 reducer，後一個收到前一個的結果，
    副作用以 batch 合併。常用於「先由父層處理，再交給導航 reducer」。
    """
    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        effects = []
        for r in reducers:
            state, effect = r(state, action, dependencies)
            effects.append(effect)
        return state, Effect.batch(effects)

    return reducer
