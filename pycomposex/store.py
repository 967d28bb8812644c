import inspect
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from reactivex import Observable, operators as ops
from reactivex.abc import DisposableBase, SchedulerBase
from reactivex.disposable import CompositeDisposable
from reactivex.subject import BehaviorSubject, Subject

from .effects import Effect, EffectsManager, NoneEffect
from .errors import ErrorHandler, StoreError, global_error_handler
from .types import ActionListener, Dispatch, Selector, StateListener, Unsubscribe

logger = logging.getLogger(__name__)

S = TypeVar("S")


class StoreConfig(BaseModel):
    """
    Store 的設定。

    Attributes:
        initial_state: 初始狀態
        reducer: (state, action, dependencies) -> (new_state, effect)
        dependencies: 傳給 reducer 的依賴（API 客戶端、dismiss 函數等）
        max_history_size: action 歷史的上限；None 表示不限，0 表示停用
        scheduler: 副作用計時器使用的 reactivex 排程器
        error_handler: 副作用與訂閱者錯誤的處理器
        middleware: 建立時套用的中介軟體
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    initial_state: Any
    reducer: Callable[..., Any]
    dependencies: Any = Field(default_factory=dict)
    max_history_size: Optional[int] = Field(default=None, ge=0)
    scheduler: Optional[SchedulerBase] = None
    error_handler: Optional[ErrorHandler] = None
    middleware: Tuple[Any, ...] = ()


class Store(Generic[S]):
    """
    狀態容器，執行 reducer、通知訂閱者並把回傳的副作用交給 EffectsManager。

    dispatch 是同步的：回傳時 reducer 已執行、訂閱者已通知、副作用已開始執行。
    在 reducer 或訂閱者通知期間發生的巢狀 dispatch 會排隊，於目前的 dispatch
    完成後依序處理；副作用執行期間的 dispatch 則立即處理。
    """

    def __init__(self, config: StoreConfig, *, effect_sink: Optional[Dispatch] = None):
        """
        Args:
            config: Store 設定。
            effect_sink: 副作用 dispatch 的目的地；預設為 store 自己的 dispatch。
                TestStore 以此攔截副作用產生的 action。
        """
        self._config = config
        self._reducer = config.reducer
        self._dependencies = config.dependencies
        self._state = config.initial_state
        self._error_handler = config.error_handler or global_error_handler

        # action 歷史，0 表示停用
        self._history: Optional[Deque[Any]] = None
        if config.max_history_size != 0:
            self._history = deque(maxlen=config.max_history_size)

        # 狀態流與動作流
        self._state_subject = BehaviorSubject(self._state)
        self._action_subject = Subject()
        self._listeners = CompositeDisposable()

        self._lock = threading.RLock()
        self._pending: Deque[Any] = deque()
        self._is_reducing = False
        self._is_destroyed = False

        self._effects_manager = EffectsManager(
            effect_sink or self.dispatch,
            scheduler=config.scheduler,
            error_handler=self._error_handler,
            lock=self._lock,
        )

        # 中介軟體
        self._middleware: List[Any] = []
        self._raw_dispatch = self._dispatch_core
        self._dispatch_chain = self._apply_middleware_chain()
        if config.middleware:
            self.apply_middleware(*config.middleware)

    # ———— 狀態 ————

    @property
    def state(self) -> S:
        """當前狀態的快照。"""
        return self._state

    @property
    def dependencies(self) -> Any:
        return self._dependencies

    @property
    def history(self) -> Tuple[Any, ...]:
        """已 dispatch 的 action，最舊的在前。"""
        if self._history is None:
            return ()
        return tuple(self._history)

    @property
    def effects(self) -> EffectsManager:
        return self._effects_manager

    @property
    def is_destroyed(self) -> bool:
        return self._is_destroyed

    def select(self, selector: Selector) -> Any:
        """對當前狀態套用 selector，不做快取。"""
        return selector(self._state)

    def observe(self, selector: Optional[Selector] = None) -> Observable:
        """
        以 Observable 觀察狀態的一部分。

        訂閱時會先收到當前的值，之後只在選取的值變化時發出。

        Args:
            selector: 從整個狀態取出要觀察的部分；None 表示整個狀態。
        """
        if selector is None:
            return self._state_subject.pipe(ops.distinct_until_changed(comparer=lambda a, b: a is b))
        return self._state_subject.pipe(
            ops.map(selector),
            ops.distinct_until_changed(),
        )

    # ———— 分發 ————

    def dispatch(self, action: Any) -> Any:
        """
        分發一個動作，經過中介軟體鏈後交給 reducer。

        Args:
            action: 要分發的動作。

        Returns:
            傳入的動作。
        """
        return self._dispatch_chain(action)

    def _dispatch_core(self, action: Any) -> Any:
        with self._lock:
            if self._is_destroyed:
                logger.warning("Ignoring %r dispatched after destroy", action)
                return action
            if self._is_reducing:
                # reducer 或訂閱者中的巢狀 dispatch
                self._pending.append(action)
                return action
            try:
                self._process(action)
                while self._pending and not self._is_destroyed:
                    self._process(self._pending.popleft())
            except Exception:
                self._pending.clear()
                raise
        return action

    def _process(self, action: Any) -> None:
        self._is_reducing = True
        try:
            effect = self._reduce(action)
        finally:
            self._is_reducing = False
        if not isinstance(effect, NoneEffect):
            self._effects_manager.execute(effect)

    def _reduce(self, action: Any) -> Effect:
        if self._history is not None:
            self._history.append(action)

        result = self._reducer(self._state, action, self._dependencies)
        if not isinstance(result, tuple) or len(result) != 2:
            raise StoreError(
                "Reducer must return a (state, effect) pair",
                "dispatch",
                action=action,
                result_type=type(result).__name__,
            )
        new_state, effect = result
        if effect is None:
            effect = Effect.none()
        elif not isinstance(effect, Effect):
            raise StoreError(
                "Reducer returned a non-Effect value as its effect",
                "dispatch",
                action=action,
                effect_type=type(effect).__name__,
            )

        if new_state is not self._state:
            self._state = new_state
            self._state_subject.on_next(new_state)
        self._action_subject.on_next((action, self._state))
        return effect

    # ———— 訂閱 ————

    def subscribe(self, listener: StateListener) -> Unsubscribe:
        """
        訂閱狀態變更。listener 會立即以當前狀態被呼叫一次。

        Returns:
            取消訂閱的函數。
        """
        guarded = self._guard(listener, "state subscriber")
        return self._register(self._state_subject.subscribe(on_next=guarded))

    def subscribe_to_actions(self, listener: ActionListener) -> Unsubscribe:
        """訂閱每次 dispatch，listener 收到 (action, state)。"""
        guarded = self._guard(lambda pair: listener(*pair), "action subscriber")
        return self._register(self._action_subject.subscribe(on_next=guarded))

    def _register(self, disposable: DisposableBase) -> Unsubscribe:
        self._listeners.add(disposable)

        def unsubscribe() -> None:
            self._listeners.remove(disposable)

        return unsubscribe

    def _guard(self, listener: Callable[[Any], Any], role: str) -> Callable[[Any], None]:
        def guarded(value: Any) -> None:
            try:
                listener(value)
            except Exception as err:
                self._error_handler.handle(StoreError(f"{role} failed: {err}", "notify", listener=repr(listener)))
        return guarded

    # ———— 中介軟體 ————

    def _apply_middleware_chain(self) -> Dispatch:
        """
        構建中介軟體鏈，將中介軟體按順序包裹在 dispatch 方法外層。
        """
        dispatch = self._raw_dispatch
        for mw in reversed(self._middleware):
            if hasattr(mw, "on_next"):
                dispatch = self._wrap_obj_middleware(mw, dispatch)
            else:
                dispatch = mw(self)(dispatch)
        return dispatch

    def _wrap_obj_middleware(self, mw: Any, next_dispatch: Dispatch) -> Dispatch:
        def dispatch(action: Any) -> Any:
            prev_state = self._state
            mw.on_next(action, prev_state)
            try:
                result = next_dispatch(action)
                mw.on_complete(self._state, action)
                return result
            except Exception as err:
                mw.on_error(err, action)
                raise

        return dispatch

    def apply_middleware(self, *middlewares: Any) -> None:
        """
        一次註冊多個中介軟體，並重建 dispatch 鏈。

        Args:
            *middlewares: 要註冊的中介軟體，可以是類或實例。
        """
        for m in middlewares:
            inst = m() if inspect.isclass(m) else m
            self._middleware.append(inst)
        self._dispatch_chain = self._apply_middleware_chain()

    # ———— 生命週期 ————

    def destroy(self) -> None:
        """釋放所有計時器、訂閱、執行中的副作用與訂閱者。重複呼叫無副作用。"""
        with self._lock:
            if self._is_destroyed:
                return
            self._is_destroyed = True
            self._pending.clear()
            self._effects_manager.dispose()
            self._listeners.dispose()
            for mw in self._middleware:
                teardown = getattr(mw, "teardown", None)
                if teardown is None:
                    continue
                try:
                    teardown()
                except Exception as err:
                    self._error_handler.handle(StoreError(f"Middleware teardown failed: {err}", "destroy"))
            self._state_subject.dispose()
            self._action_subject.dispose()

    def __enter__(self) -> "Store[S]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()


def create_store(initial_state: Any, reducer: Optional[Callable[..., Any]] = None,
                 dependencies: Any = None, **options: Any) -> Store:
    """
    創建一個新的 Store 實例。

    可以傳入 StoreConfig，或直接傳入 initial_state、reducer 與 StoreConfig 的其他欄位。

    範例:
        >>> store = create_store(0, counter_reducer)
        >>> store = create_store(StoreConfig(initial_state=0, reducer=counter_reducer, max_history_size=50))

    Returns:
        Store: 新創建的 Store 實例。
    """
    if isinstance(initial_state, StoreConfig):
        if reducer is not None or dependencies is not None or options:
            raise TypeError("create_store() takes either a StoreConfig or keyword settings, not both")
        return Store(initial_state)
    config = StoreConfig(
        initial_state=initial_state,
        reducer=reducer,
        dependencies={} if dependencies is None else dependencies,
        **options,
    )
    return Store(config)
