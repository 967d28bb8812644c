"""
dismiss 依賴：讓子功能的 reducer 可以回傳「關閉自己」的副作用。

dismiss 函數透過依賴注入交給子 reducer。它產生的副作用使用建立時捕獲的
父層 dispatch，而不是副作用執行時收到的 dispatch，因此動作不會被
組合運算子再包裝一次。
"""
import inspect
from typing import Any, Callable

from .actions import Action
from .effects import Effect
from .navigation import dismiss
from .types import Dispatch


def create_dismiss_dependency(dispatch: Dispatch, wrap: Callable[[Action], Any]) -> Callable[[], Effect]:
    """
    Args:
        dispatch: 父 store 的 dispatch
        wrap: 將 dismiss() 包裝為父層路由動作的函數

    Returns:
        零參數函數，回傳執行時會送出 wrap(dismiss()) 的 Effect
    """
    def dismiss_effect() -> Effect:
        return Effect.run(lambda _dispatch: dispatch(wrap(dismiss())))

    return dismiss_effect


def create_dismiss_dependency_with_cleanup(dispatch: Dispatch, wrap: Callable[[Action], Any],
                                           cleanup: Callable[[], Any]) -> Callable[[], Effect]:
    """與 create_dismiss_dependency 相同，但先執行 cleanup（可為 coroutine function）。"""
    def execute(_dispatch: Dispatch) -> Any:
        result = cleanup()
        if inspect.isawaitable(result):
            async def finish() -> None:
                await result
                dispatch(wrap(dismiss()))
            return finish()
        dispatch(wrap(dismiss()))
        return None

    def dismiss_effect() -> Effect:
        return Effect.run(execute)

    return dismiss_effect


def dismiss_dependency(dispatch: Dispatch, action_type: str) -> Callable[[], Effect]:
    """以 Action(action_type, dismiss()) 作為路由動作的 dismiss 依賴。"""
    return create_dismiss_dependency(dispatch, lambda action: Action(action_type, action))
