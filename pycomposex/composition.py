"""
Reducer 組合運算子。

每個運算子都把一個只認識子狀態與子動作的 reducer，提升為作用於父狀態與父動作的
reducer：
    scope       子狀態一定存在
    if_let      子狀態可能為 None（可被關閉的子功能）
    for_each    以 id 辨識的子狀態序列
    integrate   以鏈式呼叫一次掛上多個可被關閉的子功能

子 reducer 回傳同一個子狀態物件時，父狀態物件也保持不變；
子副作用產生的動作會被包裝回父層的動作。
"""
import dataclasses
import logging
from typing import Any, Callable, Hashable, List, Optional, Sequence, Tuple

from immutables import Map
from pydantic import BaseModel

from .actions import Action, is_action
from .effects import Effect, map_effect
from .immutable_utils import replace_at
from .navigation import is_dismiss, is_presented, presented
from .types import Reducer

logger = logging.getLogger(__name__)


def scope(to_child_state: Callable[[Any], Any],
          from_child_state: Callable[[Any, Any], Any],
          to_child_action: Callable[[Any], Optional[Any]],
          from_child_action: Callable[[Any], Any],
          child_reducer: Reducer) -> Reducer:
    """
    將子 reducer 嵌入父 reducer。

    Args:
        to_child_state: 從父狀態取出子狀態
        from_child_state: (父狀態, 新子狀態) -> 新父狀態
        to_child_action: 父動作轉為子動作，不是給子功能的動作時回傳 None
        from_child_action: 子動作包裝回父動作，用於子副作用
        child_reducer: 子 reducer

    Returns:
        父層的 reducer
    """
    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        child_action = to_child_action(action)
        if child_action is None:
            return state, Effect.none()

        child_state = to_child_state(state)
        new_child, effect = child_reducer(child_state, child_action, dependencies)
        new_state = state if new_child is child_state else from_child_state(state, new_child)
        return new_state, map_effect(effect, from_child_action)

    return reducer


def scope_action(to_child_state: Callable[[Any], Any],
                 from_child_state: Callable[[Any, Any], Any],
                 action_type: str,
                 child_reducer: Reducer) -> Reducer:
    """scope 的簡化版：子動作包裝在 ``Action(action_type, child_action)`` 中。"""
    return scope(
        to_child_state,
        from_child_state,
        lambda action: action.payload if is_action(action, action_type) else None,
        lambda child_action: Action(action_type, child_action),
        child_reducer,
    )


def if_let(to_child_state: Callable[[Any], Optional[Any]],
           from_child_state: Callable[[Any, Optional[Any]], Any],
           to_child_action: Callable[[Any], Optional[Any]],
           from_child_action: Callable[[Any], Any],
           child_reducer: Reducer) -> Reducer:
    """
    與 scope 相同，但子狀態可能為 None。

    子狀態為 None 時，送往子功能的動作會被忽略。子 reducer 可以回傳 None
    來關閉自己。
    """
    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        child_action = to_child_action(action)
        if child_action is None:
            return state, Effect.none()

        child_state = to_child_state(state)
        if child_state is None:
            logger.debug("Ignoring %r: child state is not present", child_action)
            return state, Effect.none()

        new_child, effect = child_reducer(child_state, child_action, dependencies)
        new_state = state if new_child is child_state else from_child_state(state, new_child)
        return new_state, map_effect(effect, from_child_action)

    return reducer


def if_let_presentation(to_child_state: Callable[[Any], Optional[Any]],
                        from_child_state: Callable[[Any, Optional[Any]], Any],
                        action_type: str,
                        child_reducer: Reducer) -> Reducer:
    """
    處理 ``Action(action_type, presented(a) | dismiss())`` 的 if_let。

    dismiss() 直接把子狀態設為 None，不呼叫子 reducer；
    presented(a) 解開後交給子 reducer，子副作用的動作會被重新包裝為
    ``Action(action_type, presented(·))``。
    """
    def wrap(child_action: Any) -> Action:
        return Action(action_type, presented(child_action))

    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        if not is_action(action, action_type):
            return state, Effect.none()

        presentation = action.payload
        if is_dismiss(presentation):
            if to_child_state(state) is None:
                return state, Effect.none()
            return from_child_state(state, None), Effect.none()

        if not is_presented(presentation):
            logger.warning("Unsupported presentation action %r for %s", presentation, action_type)
            return state, Effect.none()

        child_state = to_child_state(state)
        if child_state is None:
            logger.debug("Ignoring %r: %s is not presented", presentation.payload, action_type)
            return state, Effect.none()

        new_child, effect = child_reducer(child_state, presentation.payload, dependencies)
        new_state = state if new_child is child_state else from_child_state(state, new_child)
        return new_state, map_effect(effect, wrap)

    return reducer


# ———— for_each ————

@dataclasses.dataclass(frozen=True)
class IdentifiedItem:
    """序列中帶有穩定 id 的子狀態。"""
    id: Hashable
    state: Any


def _item_field(item: Any, name: str) -> Any:
    if isinstance(item, (Map, dict)):
        return item[name]
    return getattr(item, name)


def _with_field(item: Any, name: str, value: Any) -> Any:
    if dataclasses.is_dataclass(item):
        return dataclasses.replace(item, **{name: value})
    if isinstance(item, BaseModel):
        return item.model_copy(update={name: value})
    if isinstance(item, Map):
        return item.set(name, value)
    if isinstance(item, dict):
        return {**item, name: value}
    raise TypeError(f"Cannot replace {name!r} on {type(item).__name__}")


def for_each(get_array: Callable[[Any], Sequence[Any]],
             set_array: Callable[[Any, Sequence[Any]], Any],
             extract_element_action: Callable[[Any], Optional[Tuple[Hashable, Any]]],
             embed_element_action: Callable[[Hashable, Any], Any],
             element_reducer: Reducer) -> Reducer:
    """
    將單一元素的 reducer 套用到以 id 辨識的元素序列。

    Args:
        get_array: 從父狀態取出元素序列
        set_array: 將新序列放回父狀態
        extract_element_action: 父動作轉為 (id, 子動作)，不相關時回傳 None
        embed_element_action: (id, 子動作) 包裝回父動作
        element_reducer: 單一元素狀態的 reducer

    元素是帶有 ``id`` 與 ``state`` 的物件（例如 IdentifiedItem）。
    找不到 id 時記錄警告並回傳原狀態；只有目標元素會被替換，
    新序列與原序列長度相同、容器類型相同。
    """
    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        extracted = extract_element_action(action)
        if extracted is None:
            return state, Effect.none()
        element_id, child_action = extracted

        items = get_array(state)
        for index, item in enumerate(items):
            if _item_field(item, "id") == element_id:
                break
        else:
            logger.warning("No element with id %r for %r", element_id, child_action)
            return state, Effect.none()

        child_state = _item_field(item, "state")
        new_child, effect = element_reducer(child_state, child_action, dependencies)
        new_state = state
        if new_child is not child_state:
            new_state = set_array(state, replace_at(items, index, _with_field(item, "state", new_child)))
        return new_state, map_effect(effect, lambda a: embed_element_action(element_id, a))

    return reducer


def element_action(action_type: str, element_id: Hashable, action: Any) -> Action:
    """建立指向 element_id 的元素動作 ``Action(action_type, {id, action})``。"""
    return Action(action_type, Map({"id": element_id, "action": action}))


def for_each_element(action_type: str,
                     get_array: Callable[[Any], Sequence[Any]],
                     set_array: Callable[[Any, Sequence[Any]], Any],
                     element_reducer: Reducer) -> Reducer:
    """for_each 的簡化版，元素動作使用 element_action(action_type, id, action)。"""
    def extract(action: Any) -> Optional[Tuple[Hashable, Any]]:
        if not is_action(action, action_type):
            return None
        return action.payload["id"], action.payload["action"]

    return for_each(
        get_array,
        set_array,
        extract,
        lambda element_id, child_action: element_action(action_type, element_id, child_action),
        element_reducer,
    )


# ———— integrate ————

def _optional_field(state: Any, name: str) -> Any:
    if isinstance(state, (Map, dict)):
        return state.get(name)
    return getattr(state, name)


def _present_field(parent: Reducer, field: str, action_type: str, child_reducer: Reducer) -> Reducer:
    presentation = if_let_presentation(
        lambda state: _optional_field(state, field),
        lambda state, child_state: _with_field(state, field, child_state),
        action_type,
        child_reducer,
    )

    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        state, parent_effect = parent(state, action, dependencies)
        state, child_effect = presentation(state, action, dependencies)
        return state, Effect.batch(parent_effect, child_effect)

    return reducer


class IntegrationBuilder:
    """
    以鏈式呼叫把多個可被關閉的子功能掛到核心 reducer 上。

    每個 ``with_(field, child_reducer)`` 都等同於在前一個 reducer 之後套用
    ``if_let_presentation``：父 reducer 先執行，接著
    ``Action(action_type, presented(a) | dismiss())`` 被路由到 ``state.field``。

    範例:
        >>> reducer = (integrate(app_reducer)
        ...            .with_("sheet", sheet_reducer)
        ...            .with_("alert", alert_reducer, action_type="[App] Alert")
        ...            .build())
    """

    def __init__(self, core_reducer: Reducer):
        if not callable(core_reducer):
            raise TypeError(f"core_reducer must be callable, got {type(core_reducer).__name__}")
        self._core = core_reducer
        self._fields: List[Tuple[str, str, Reducer]] = []

    def with_(self, field: str, child_reducer: Reducer, action_type: Optional[str] = None) -> "IntegrationBuilder":
        """
        註冊一個子功能。

        Args:
            field: 父狀態中存放子狀態的欄位（dataclass、pydantic model、Map 或 dict）
            child_reducer: 子 reducer
            action_type: 包裝子動作的類型，預設為 field

        Raises:
            ValueError: field 已經註冊過
            TypeError: child_reducer 不可呼叫
        """
        if any(existing == field for existing, _, _ in self._fields):
            raise ValueError(f"Field {field!r} has already been integrated")
        if not callable(child_reducer):
            raise TypeError(f"child_reducer for {field!r} must be callable, got {type(child_reducer).__name__}")
        self._fields.append((field, action_type or field, child_reducer))
        return self

    def build(self) -> Reducer:
        reducer = self._core
        for field, action_type, child_reducer in self._fields:
            reducer = _present_field(reducer, field, action_type, child_reducer)
        return reducer


def integrate(core_reducer: Reducer) -> IntegrationBuilder:
    """開始為 core_reducer 組合可被關閉的子功能，見 IntegrationBuilder。"""
    return IntegrationBuilder(core_reducer)
