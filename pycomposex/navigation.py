"""
導航模組：呈現 (presentation) 動作、目的地 (destination) 路由與堆疊 (stack) 路由。

呈現動作包裝送往「可被關閉」子功能的動作：
    presented(action)  子功能本身的動作
    dismiss()          請求父層把子功能的狀態設為 None

堆疊動作操作一個畫面序列：
    push(screen) / pop() / pop_to_root() / set_path(screens)
    element(index, presented(action) | dismiss())

目的地有兩種路由方式：create_destination_reducer 接受 Action(case, child_action)，
DestinationGroup 接受帶呈現信封的 Action(case, presented(child_action))。
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence, Tuple

from immutables import Map

from .actions import Action, is_action
from .effects import Effect, map_effect
from .immutable_utils import append_item, like, replace_at
from .types import Reducer

logger = logging.getLogger(__name__)


# ———— 呈現動作 ————

PRESENTED = "[Presentation] Presented"
DISMISS = "[Presentation] Dismiss"


def presented(action: Any) -> Action:
    """將子功能的動作包裝為呈現動作。"""
    return Action(PRESENTED, action)


def dismiss() -> Action:
    """請求關閉子功能。"""
    return Action(DISMISS)


presented.type = PRESENTED
dismiss.type = DISMISS


def is_presented(action: Any) -> bool:
    return is_action(action, PRESENTED)


def is_dismiss(action: Any) -> bool:
    return is_action(action, DISMISS)


# ———— 堆疊動作 ————

PUSH = "[Stack] Push"
POP = "[Stack] Pop"
POP_TO_ROOT = "[Stack] PopToRoot"
SET_PATH = "[Stack] SetPath"
ELEMENT = "[Stack] Element"


def push(screen: Any) -> Action:
    return Action(PUSH, screen)


def pop() -> Action:
    return Action(POP)


def pop_to_root() -> Action:
    return Action(POP_TO_ROOT)


def set_path(screens: Sequence[Any]) -> Action:
    return Action(SET_PATH, tuple(screens))


def element(index: int, action: Action) -> Action:
    """
    將呈現動作指向堆疊中的第 index 個畫面。

    Args:
        index: 畫面在堆疊中的位置
        action: presented(...) 或 dismiss()
    """
    return Action(ELEMENT, Map({"index": index, "action": action}))


for _creator, _type in ((push, PUSH), (pop, POP), (pop_to_root, POP_TO_ROOT),
                        (set_path, SET_PATH), (element, ELEMENT)):
    _creator.type = _type
del _creator, _type


# ———— Destination ————

@dataclass(frozen=True)
class Destination:
    """
    互斥子功能中目前呈現的那一個。

    Attributes:
        type: 子功能的名稱（case），同時也是路由動作的類型
        state: 子功能的狀態
    """
    type: str
    state: Any


def create_destination(case: str, state: Any) -> Destination:
    return Destination(case, state)


def is_destination_type(destination: Optional[Destination], case: str) -> bool:
    return destination is not None and destination.type == case


def extract_destination_state(destination: Optional[Destination], case: str) -> Any:
    """destination 為指定 case 時回傳其狀態，否則回傳 None。"""
    if is_destination_type(destination, case):
        return destination.state
    return None


def create_destination_reducer(reducers_by_case: Dict[str, Reducer]) -> Reducer:
    """
    創建作用於 ``Destination | None`` 的 reducer。

    收到的動作必須是 ``Action(case, child_action)``。只有當 case 與目前的
    destination 相同時才會執行該 case 的 reducer，副作用產生的動作會被包裝回
    ``Action(case, ·)``。子 reducer 回傳 None 時 destination 變成 None。

    Args:
        reducers_by_case: case 名稱到子 reducer 的映射

    Returns:
        (destination, action, dependencies) -> (destination, effect)
    """
    reducers = dict(reducers_by_case)

    def reducer(destination: Optional[Destination], action: Any, dependencies: Any) -> Tuple[Optional[Destination], Effect]:
        if destination is None:
            logger.debug("Destination action %r received with no destination presented", action)
            return destination, Effect.none()

        case_reducer = reducers.get(destination.type)
        if case_reducer is None:
            logger.warning("Unknown destination case %r", destination.type)
            return destination, Effect.none()

        if not isinstance(action, Action) or action.type != destination.type:
            logger.warning(
                "Action %r does not target the presented destination %r",
                getattr(action, "type", action), destination.type,
            )
            return destination, Effect.none()

        case = destination.type
        new_state, effect = case_reducer(destination.state, action.payload, dependencies)
        if new_state is None:
            new_destination = None
        elif new_state is destination.state:
            new_destination = destination
        else:
            new_destination = replace(destination, state=new_state)
        return new_destination, map_effect(effect, lambda a: Action(case, a))

    reducer.cases = tuple(reducers)
    return reducer


class DestinationMatch(NamedTuple):
    matched: bool
    value: Any = None


class DestinationGroup:
    """
    一組互斥目的地的 reducer 與查詢工具。

    與 create_destination_reducer 不同，路由動作帶有呈現信封：
    ``Action(case, presented(child_action))``。dismiss() 在這一層不做任何事，
    由父層的 if_let_presentation 把整個 destination 設為 None。

    範例:
        >>> destinations = create_destination_group({"edit": edit_reducer, "alert": alert_reducer})
        >>> state = replace(state, destination=destinations.initial("edit", EditState()))
        >>> destinations.is_case(action, "edit.[Edit] Save")
    """

    def __init__(self, reducers_by_case: Dict[str, Reducer]):
        if not reducers_by_case:
            raise ValueError("A destination group needs at least one case")
        self.cases = tuple(reducers_by_case)
        self._route = create_destination_reducer(reducers_by_case)

    def reducer(self, destination: Optional[Destination], action: Any,
                dependencies: Any) -> Tuple[Optional[Destination], Effect]:
        if not isinstance(action, Action):
            return destination, Effect.none()
        if action.type not in self.cases:
            logger.warning("Unknown destination case %r", action.type)
            return destination, Effect.none()

        presentation = action.payload
        if is_dismiss(presentation):
            return destination, Effect.none()
        if not is_presented(presentation):
            logger.warning("Unsupported presentation action %r for destination %r", presentation, action.type)
            return destination, Effect.none()

        new_destination, effect = self._route(destination, Action(action.type, presentation.payload), dependencies)
        return new_destination, map_effect(effect, lambda a: Action(a.type, presented(a.payload)))

    def initial(self, case: str, state: Any) -> Destination:
        """建立指定 case 的 destination。"""
        if case not in self.cases:
            raise ValueError(f"Unknown destination case {case!r}; expected one of {self.cases}")
        return Destination(case, state)

    def extract(self, destination: Optional[Destination], case: str) -> Any:
        return extract_destination_state(destination, case)

    def is_case(self, action: Any, case_path: str) -> bool:
        """
        判斷 action 是否指向 case_path。

        case_path 為 ``"case"`` 時比對任何送往該 case 的動作；
        ``"case.child_type"`` 時還要求被呈現的子動作類型為 child_type。
        """
        case, _, child_type = case_path.partition(".")
        if not is_action(action, case):
            return False
        if not child_type:
            return True
        presentation = action.payload
        return is_presented(presentation) and getattr(presentation.payload, "type", None) == child_type

    def match_case(self, action: Any, destination: Optional[Destination], case_path: str) -> Any:
        """action 符合 case_path 時回傳該 case 目前的狀態，否則回傳 None。"""
        if not self.is_case(action, case_path):
            return None
        return self.extract(destination, case_path.partition(".")[0])

    def match(self, action: Any, destination: Optional[Destination],
              handlers: Dict[str, Callable[[Any], Any]]) -> DestinationMatch:
        """依序嘗試 handlers 中的 case_path，以第一個符合的子狀態呼叫對應的 handler。"""
        for case_path, handler in handlers.items():
            child_state = self.match_case(action, destination, case_path)
            if child_state is not None:
                return DestinationMatch(True, handler(child_state))
        return DestinationMatch(False)


def create_destination_group(reducers_by_case: Dict[str, Reducer]) -> DestinationGroup:
    return DestinationGroup(reducers_by_case)


# ———— Stack ————

def _identity(action: Any) -> Any:
    return action


def handle_stack_action(state: Any, action: Any, dependencies: Any,
                        screen_reducer: Reducer,
                        get_stack: Callable[[Any], Sequence[Any]],
                        set_stack: Callable[[Any, Sequence[Any]], Any],
                        to_parent_action: Callable[[Action], Any] = _identity) -> Tuple[Any, Effect]:
    """
    處理一個堆疊動作。

    - push 加到尾端
    - pop 移除最後一個畫面；只剩根畫面（或空）時不動作
    - pop_to_root 只保留第一個畫面；空堆疊時不動作
    - set_path 取代整個堆疊
    - element(i, dismiss()) 移除第 i 個及其上的所有畫面
    - element(i, presented(a)) 以 screen_reducer 更新第 i 個畫面，副作用的動作
      會經過 to_parent_action(element(i, presented(·))) 包裝

    索引超出範圍時記錄警告並回傳原狀態。不動作時回傳的是同一個 state 物件。
    """
    if not isinstance(action, Action):
        return state, Effect.none()

    stack = get_stack(state)

    if action.type == PUSH:
        return set_stack(state, append_item(stack, action.payload)), Effect.none()

    if action.type == POP:
        if len(stack) <= 1:
            return state, Effect.none()
        return set_stack(state, stack[:-1]), Effect.none()

    if action.type == POP_TO_ROOT:
        if len(stack) <= 1:
            return state, Effect.none()
        return set_stack(state, stack[:1]), Effect.none()

    if action.type == SET_PATH:
        return set_stack(state, like(stack, action.payload)), Effect.none()

    if action.type == ELEMENT:
        index = action.payload["index"]
        inner = action.payload["action"]
        if not 0 <= index < len(stack):
            logger.warning("Stack index %d out of range for stack of %d screen(s)", index, len(stack))
            return state, Effect.none()

        if is_dismiss(inner):
            return set_stack(state, stack[:index]), Effect.none()

        if is_presented(inner):
            screen = stack[index]
            new_screen, effect = screen_reducer(screen, inner.payload, dependencies)
            new_state = state
            if new_screen is not screen:
                new_state = set_stack(state, replace_at(stack, index, new_screen))
            return new_state, map_effect(effect, lambda a: to_parent_action(element(index, presented(a))))

        logger.warning("Unsupported presentation action %r for stack element %d", inner, index)
        return state, Effect.none()

    return state, Effect.none()


def create_stack_reducer(get_stack: Callable[[Any], Sequence[Any]],
                         set_stack: Callable[[Any, Sequence[Any]], Any],
                         to_stack_action: Callable[[Any], Optional[Action]],
                         from_stack_action: Callable[[Action], Any],
                         screen_reducer: Reducer) -> Reducer:
    """
    創建一個 reducer，將父層動作轉為堆疊動作後交給 handle_stack_action。

    Args:
        get_stack: 從父層狀態取出堆疊
        set_stack: 將新堆疊放回父層狀態
        to_stack_action: 父層動作轉為堆疊動作，不相關時回傳 None
        from_stack_action: 堆疊動作包裝回父層動作
        screen_reducer: 單一畫面的 reducer
    """
    def reducer(state: Any, action: Any, dependencies: Any) -> Tuple[Any, Effect]:
        stack_action = to_stack_action(action)
        if stack_action is None:
            return state, Effect.none()
        return handle_stack_action(state, stack_action, dependencies, screen_reducer,
                                   get_stack, set_stack, from_stack_action)

    return reducer


def top_screen(stack: Sequence[Any]) -> Any:
    return stack[-1] if stack else None


def root_screen(stack: Sequence[Any]) -> Any:
    return stack[0] if stack else None


def can_go_back(stack: Sequence[Any]) -> bool:
    return len(stack) > 1


def stack_depth(stack: Sequence[Any]) -> int:
    return len(stack)
