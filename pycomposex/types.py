"""
PyComposeX 共用的類型定義。
"""
from typing import Any, Callable, Hashable, Optional, Tuple, TypeVar, Union, TYPE_CHECKING

from reactivex.abc import DisposableBase

if TYPE_CHECKING:
    from .effects import Effect


S = TypeVar("S")  # 狀態
A = TypeVar("A")  # 動作
C = TypeVar("C")  # 子狀態
CA = TypeVar("CA")  # 子動作
D = TypeVar("D")  # 依賴
R = TypeVar("R")

EffectId = Hashable

# 分發函數
Dispatch = Callable[[Any], Any]

# 取消副作用的鉤子
Teardown = Callable[[], None]

# Reducer: (state, action, dependencies) -> (new_state, effect)
Reducer = Callable[[Any, Any, Any], Tuple[Any, "Effect"]]

# 副作用執行函數，可以回傳 None、取消鉤子、disposable 或 awaitable
EffectExecutor = Callable[[Dispatch], Any]
CleanupHook = Union[None, Teardown, DisposableBase]

# 長期訂閱的建立函數
SubscriptionSetup = Callable[[Dispatch], Optional[Teardown]]

StateListener = Callable[[Any], None]
ActionListener = Callable[[Any, Any], None]
Unsubscribe = Callable[[], None]

Selector = Callable[[Any], Any]

# TestStore 的狀態斷言：可呼叫對象或預期的狀態值
StateAssertion = Union[Callable[[Any], Any], Any]
