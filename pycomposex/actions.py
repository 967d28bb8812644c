"""
Action 與 action creator。

Action 是描述「發生了什麼」的不可變值，由 type 字串與可選的 payload 組成。
組合運算子（scope_action、if_let_presentation、for_each_element、導航）
都把子動作放在 Action(type, payload) 的 payload 裡往上傳。
"""
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar, Union

from .immutable_utils import to_immutable

P = TypeVar("P")


class Action(Generic[P]):
    """
    不可變的動作。以 type 與 payload 比較相等並可雜湊，因此能放進 set 或當作字典鍵。

    Attributes:
        type: 類型字串，慣例為 ``"[Feature] Event"``
        payload: 附帶的資料；dict / list / set 會在 create_action 中轉為不可變結構
    """
    __slots__ = ("type", "payload")

    def __init__(self, type: str, payload: Optional[P] = None):
        object.__setattr__(self, "type", type)
        object.__setattr__(self, "payload", payload)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"Action is immutable; cannot set {name!r}")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Action is immutable; cannot delete {name!r}")

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Action):
            return NotImplemented
        return (self.type, self.payload) == (other.type, other.payload)

    def __hash__(self) -> int:
        return hash((Action, self.type, self.payload))

    def __repr__(self) -> str:
        if self.payload is None:
            return f"Action(type={self.type!r})"
        return f"Action(type={self.type!r}, payload={self.payload!r})"


def _freeze(payload: Any) -> Any:
    if isinstance(payload, (dict, list, set)):
        return to_immutable(payload)
    return payload


def _collect_payload(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
    """單一位置參數直接作為 payload；多個參數則以位置索引與關鍵字為鍵收集成 Map。"""
    if not args and not kwargs:
        return None
    if len(args) == 1 and not kwargs:
        return args[0]
    collected: Dict[Union[int, str], Any] = {index: value for index, value in enumerate(args)}
    collected.update(kwargs)
    return collected


def create_action(action_type: str, prepare_fn: Optional[Callable[..., Any]] = None) -> Callable[..., Action[Any]]:
    """
    建立一個 action creator。

    回傳的函數帶有 ``type`` 屬性，可以直接交給 ``on()``、``is_action()``
    或 TestStore.receive()。

    Args:
        action_type: 動作類型
        prepare_fn: 將呼叫參數轉為 payload 的函數；省略時參數本身就是 payload

    範例:
        >>> loaded = create_action("[Todos] Loaded", lambda todos: tuple(todos))
        >>> loaded(["a"])
        Action(type='[Todos] Loaded', payload=('a',))
    """
    def creator(*args: Any, **kwargs: Any) -> Action[Any]:
        if prepare_fn is not None:
            payload = prepare_fn(*args, **kwargs)
        else:
            payload = _collect_payload(args, kwargs)
        return Action(action_type, _freeze(payload))

    creator.type = action_type  # type: ignore
    creator.__name__ = creator.__qualname__ = f"create[{action_type}]"
    return creator


def is_action(value: Any, action_type: Union[str, Callable[..., Action[Any]]]) -> bool:
    """判斷 value 是否為指定類型的 Action；action_type 可以是字串或 action creator。"""
    expected = getattr(action_type, "type", action_type)
    return isinstance(value, Action) and value.type == expected
