"""
子功能用的 Store 外觀 (facade)。

ScopedStore 沒有自己的狀態或訂閱者：state 每次都從父 store 重新讀取，
dispatch 把子動作包裝成父層的路由動作後轉送。
"""
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from .actions import Action
from .navigation import Destination, dismiss, element, presented

C = TypeVar("C")

KeyPath = Sequence


class ScopedStore(Generic[C]):
    """
    指向父 store 一部分的輕量 store。

    Args:
        parent: 父 store（Store 或另一個 ScopedStore）
        get_state: 從父狀態取出子狀態，子功能不存在時回傳 None
        wrap_action: 子動作包裝為父動作
        dismiss_action: dismiss() 時送給父 store 的動作
    """

    def __init__(self, parent: Any, get_state: Callable[[Any], Optional[C]],
                 wrap_action: Callable[[Any], Any], dismiss_action: Callable[[], Any]):
        self._parent = parent
        self._get_state = get_state
        self._wrap_action = wrap_action
        self._dismiss_action = dismiss_action

    @property
    def state(self) -> Optional[C]:
        return self._get_state(self._parent.state)

    @property
    def is_present(self) -> bool:
        return self.state is not None

    def dispatch(self, action: Any) -> Any:
        return self._parent.dispatch(self._wrap_action(action))

    def dismiss(self) -> Any:
        """請求父層關閉這個子功能。"""
        return self._parent.dispatch(self._dismiss_action())

    def __repr__(self) -> str:
        return f"ScopedStore(state={self.state!r})"


def resolve_path(state: Any, path: Union[Callable[[Any], Any], KeyPath]) -> Any:
    """
    依 path 從 state 取值。

    path 可以是函數，或由 mapping key / 屬性名稱 / 索引組成的序列；
    任一步取不到值時回傳 None。
    """
    if callable(path):
        return path(state)
    if isinstance(path, str):
        path = (path,)
    value = state
    for key in path:
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(key)
        elif isinstance(key, int) and isinstance(value, Sequence):
            value = value[key] if -len(value) <= key < len(value) else None
        else:
            value = getattr(value, key, None)
    return value


def scope_to_element(parent: Any, get_stack: Callable[[Any], Sequence],
                     index: int, to_parent_action: Callable[[Action], Any]) -> ScopedStore:
    """
    建立指向堆疊第 index 個畫面的 ScopedStore。

    dispatch(a) 送出 to_parent_action(element(index, presented(a)))，
    dismiss() 送出 to_parent_action(element(index, dismiss()))。
    """
    def get_state(state: Any) -> Any:
        stack = get_stack(state)
        if stack is None or not 0 <= index < len(stack):
            return None
        return stack[index]

    return ScopedStore(
        parent,
        get_state,
        lambda action: to_parent_action(element(index, presented(action))),
        lambda: to_parent_action(element(index, dismiss())),
    )


def scope_to_destination(parent: Any, destination: Union[Callable[[Any], Optional[Destination]], KeyPath],
                         case: str, action_type: str) -> ScopedStore:
    """
    建立指向某個 destination case 的 ScopedStore。

    目前呈現的不是這個 case 時，state 為 None。
    dispatch(a) 送出 Action(action_type, presented(Action(case, a)))，
    dismiss() 送出 Action(action_type, dismiss())。
    """
    def get_state(state: Any) -> Any:
        current = resolve_path(state, destination)
        if current is None or current.type != case:
            return None
        return current.state

    return ScopedStore(
        parent,
        get_state,
        lambda action: Action(action_type, presented(Action(case, action))),
        lambda: Action(action_type, dismiss()),
    )


def scope_to_optional(parent: Any, child: Union[Callable[[Any], Any], KeyPath],
                      action_type: str) -> ScopedStore:
    """建立指向可選子狀態（if_let_presentation 管理的欄位）的 ScopedStore。"""
    return ScopedStore(
        parent,
        lambda state: resolve_path(state, child),
        lambda action: Action(action_type, presented(action)),
        lambda: Action(action_type, dismiss()),
    )
