"""
副作用（Effect）模組。

Effect 是 reducer 回傳的純資料，描述「之後要做什麼」；建構 Effect 不會執行任何 I/O。
EffectsManager 是直譯器：依照 Effect 的種類執行它，並以 id 為鍵管理可取消的工作、
防抖計時器、節流時間窗與長期訂閱。

執行函數 (executor) 會收到 dispatch，可以回傳：
    - None
    - 零參數的取消鉤子（cancellable 會保存它，取消或銷毀時呼叫；run 等其他種類會捨棄）
    - reactivex 的 Disposable
    - awaitable（coroutine），會在目前的 asyncio 事件迴圈上以 Task 執行，取消即 task.cancel()
"""
import asyncio
import functools
import inspect
import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, ClassVar, Dict, Hashable, Iterable, Optional, Set, Tuple, Union

from reactivex.abc import DisposableBase, SchedulerBase
from reactivex.disposable import BooleanDisposable, CompositeDisposable, Disposable, SerialDisposable
from reactivex.scheduler import TimeoutScheduler
from reactivex.scheduler.eventloop import AsyncIOScheduler

from .errors import EffectError, ErrorHandler, ValidationError, global_error_handler
from .types import Dispatch, EffectExecutor, SubscriptionSetup

logger = logging.getLogger(__name__)


def _check_ms(ms: Any) -> None:
    if isinstance(ms, bool) or not isinstance(ms, (int, float)) or ms < 0:
        raise ValidationError(f"Delay must be a non-negative number of milliseconds, got {ms!r}", field="ms", value=ms)


def _check_callable(name: str, fn: Any) -> None:
    if not callable(fn):
        raise ValidationError(f"{name} must be callable, got {type(fn).__name__}", field=name, value=fn)


@dataclass(frozen=True)
class Effect:
    """
    所有副作用的基底類別，同時提供建構用的靜態方法。

    範例:
        >>> Effect.none()
        >>> Effect.run(lambda dispatch: dispatch(loaded()))
        >>> Effect.debounced("search", 300, lambda dispatch: dispatch(search()))
    """
    kind: ClassVar[str] = "effect"

    @staticmethod
    def none() -> "NoneEffect":
        """不做任何事的副作用。"""
        return _NONE

    @staticmethod
    def run(execute: EffectExecutor) -> "Run":
        """立即執行，executor 可以多次 dispatch（同步或非同步）。"""
        return Run(execute)

    @staticmethod
    def fire_and_forget(execute: Callable[[], Any]) -> "FireAndForget":
        """立即執行零參數的函數，永不 dispatch。"""
        return FireAndForget(execute)

    @staticmethod
    def batch(*effects: Union["Effect", Iterable["Effect"], None]) -> "Effect":
        """
        合併多個副作用。

        接受多個 Effect，或一個 Effect 的序列。None 與 NoneEffect 會被過濾；
        過濾後為空則回傳 none，只剩一個則直接回傳該副作用。
        """
        if len(effects) == 1 and isinstance(effects[0], (list, tuple)):
            effects = tuple(effects[0])
        kept = tuple(e for e in effects if e is not None and not isinstance(e, NoneEffect))
        if not kept:
            return _NONE
        if len(kept) == 1:
            return kept[0]
        return Batch(kept)

    @staticmethod
    def cancellable(id: Hashable, execute: EffectExecutor) -> "Cancellable":
        """以 id 註冊可取消的工作；同 id 的新工作會先取消舊的。"""
        return Cancellable(id, execute)

    @staticmethod
    def debounced(id: Hashable, ms: float, execute: EffectExecutor) -> "Debounced":
        """ms 毫秒內同 id 的請求只會執行最後一次。"""
        return Debounced(id, ms, execute)

    @staticmethod
    def throttled(id: Hashable, ms: float, execute: EffectExecutor) -> "Throttled":
        """ms 毫秒內同 id 最多執行一次，時間窗內的請求直接丟棄。"""
        return Throttled(id, ms, execute)

    @staticmethod
    def after_delay(ms: float, execute: EffectExecutor) -> "AfterDelay":
        return AfterDelay(ms, execute)

    @staticmethod
    def subscription(id: Hashable, setup: SubscriptionSetup) -> "Subscription":
        """建立長期訂閱，setup 回傳的 teardown 會在同 id 重新訂閱或 Store 銷毀時呼叫。"""
        return Subscription(id, setup)

    @staticmethod
    def cancel(id: Hashable) -> "Cancel":
        """取消 id 下所有已註冊的工作、計時器與訂閱。"""
        return Cancel(id)

    def map(self, transform: Callable[[Any], Any]) -> "Effect":
        """回傳一個新的副作用，其 dispatch 出來的每個 action 都先經過 transform。"""
        return map_effect(self, transform)


@dataclass(frozen=True)
class NoneEffect(Effect):
    kind: ClassVar[str] = "none"


_NONE = NoneEffect()


@dataclass(frozen=True)
class Run(Effect):
    kind: ClassVar[str] = "run"
    execute: EffectExecutor

    def __post_init__(self):
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class FireAndForget(Effect):
    kind: ClassVar[str] = "fire_and_forget"
    execute: Callable[[], Any]

    def __post_init__(self):
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class Batch(Effect):
    kind: ClassVar[str] = "batch"
    effects: Tuple[Effect, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.effects, tuple):
            object.__setattr__(self, "effects", tuple(self.effects))
        for effect in self.effects:
            if not isinstance(effect, Effect):
                raise ValidationError(f"Batch can only contain effects, got {type(effect).__name__}", field="effects", value=effect)


@dataclass(frozen=True)
class Cancellable(Effect):
    kind: ClassVar[str] = "cancellable"
    id: Hashable
    execute: EffectExecutor

    def __post_init__(self):
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class Debounced(Effect):
    kind: ClassVar[str] = "debounced"
    id: Hashable
    ms: float
    execute: EffectExecutor

    def __post_init__(self):
        _check_ms(self.ms)
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class Throttled(Effect):
    kind: ClassVar[str] = "throttled"
    id: Hashable
    ms: float
    execute: EffectExecutor

    def __post_init__(self):
        _check_ms(self.ms)
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class AfterDelay(Effect):
    kind: ClassVar[str] = "after_delay"
    ms: float
    execute: EffectExecutor

    def __post_init__(self):
        _check_ms(self.ms)
        _check_callable("execute", self.execute)


@dataclass(frozen=True)
class Subscription(Effect):
    kind: ClassVar[str] = "subscription"
    id: Hashable
    setup: SubscriptionSetup

    def __post_init__(self):
        _check_callable("setup", self.setup)


@dataclass(frozen=True)
class Cancel(Effect):
    kind: ClassVar[str] = "cancel"
    id: Hashable


# ———— map_effect ————

def _map_executor(execute: Callable[[Dispatch], Any], transform: Callable[[Any], Any]) -> Callable[[Dispatch], Any]:
    @functools.wraps(execute)
    def mapped(dispatch: Dispatch) -> Any:
        return execute(lambda action: dispatch(transform(action)))
    return mapped


@functools.singledispatch
def map_effect(effect: Effect, transform: Callable[[Any], Any]) -> Effect:
    """
    將副作用 dispatch 的 action 映射到另一個動作空間。

    組合運算子用它把子 reducer 的副作用包裝回父層的 action。
    不會 dispatch 的副作用（none、fire_and_forget、cancel）原樣回傳。
    """
    raise TypeError(f"Cannot map unknown effect type {type(effect).__name__}")


@map_effect.register(NoneEffect)
@map_effect.register(FireAndForget)
@map_effect.register(Cancel)
def _(effect: Effect, transform: Callable[[Any], Any]) -> Effect:
    return effect


@map_effect.register(Run)
@map_effect.register(Cancellable)
@map_effect.register(Debounced)
@map_effect.register(Throttled)
@map_effect.register(AfterDelay)
def _(effect: Effect, transform: Callable[[Any], Any]) -> Effect:
    return replace(effect, execute=_map_executor(effect.execute, transform))


@map_effect.register(Subscription)
def _(effect: Subscription, transform: Callable[[Any], Any]) -> Effect:
    return replace(effect, setup=_map_executor(effect.setup, transform))


@map_effect.register(Batch)
def _(effect: Batch, transform: Callable[[Any], Any]) -> Effect:
    return Batch(tuple(map_effect(child, transform) for child in effect.effects))


# ———— EffectsManager ————

class EffectsManager:
    """
    副作用直譯器，每個 Store 一個。

    :param dispatch: 副作用 dispatch action 時呼叫的函數（通常是 Store.dispatch）。
    :param scheduler: reactivex 排程器，用於計時器；None 時在有執行中的事件迴圈時使用
        AsyncIOScheduler，否則使用 TimeoutScheduler。
    :param error_handler: 副作用失敗時的錯誤處理器。
    :param lock: 與 dispatch 共用的可重入鎖。計時器在其他執行緒觸發時（TimeoutScheduler），
        執行函數會在持有此鎖的情況下執行，與 Store.dispatch 互斥。
    """

    def __init__(self, dispatch: Dispatch, scheduler: Optional[SchedulerBase] = None,
                 error_handler: Optional[ErrorHandler] = None, lock: Any = None):
        self._dispatch = dispatch
        self._scheduler = scheduler
        self._loop_schedulers: Dict[int, AsyncIOScheduler] = {}
        self.error_handler = error_handler or global_error_handler

        self._in_flight: Dict[Hashable, CompositeDisposable] = {}  # cancellable
        self._debounce_timers: Dict[Hashable, DisposableBase] = {}
        self._throttle_runs: Dict[Hashable, Any] = {}  # id -> 上次執行時間 (datetime)
        self._subscriptions: Dict[Hashable, CompositeDisposable] = {}
        self._delayed: Dict[int, DisposableBase] = {}
        self._delay_keys = itertools.count()
        self._tasks: Set[asyncio.Future] = set()
        self._is_disposed = False
        self._lock = lock if lock is not None else threading.RLock()

    @property
    def scheduler(self) -> SchedulerBase:
        if self._scheduler is not None:
            return self._scheduler
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return TimeoutScheduler()
        scheduler = self._loop_schedulers.get(id(loop))
        if scheduler is None:
            scheduler = self._loop_schedulers[id(loop)] = AsyncIOScheduler(loop)
        return scheduler

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def pending_tasks(self) -> Tuple[asyncio.Future, ...]:
        """目前仍在執行的 asyncio 任務。"""
        return tuple(task for task in self._tasks if not task.done())

    @property
    def pending_timers(self) -> int:
        """尚未觸發的防抖與延遲計時器數量。"""
        return len(self._debounce_timers) + len(self._delayed)

    @property
    def in_flight_ids(self) -> Tuple[Hashable, ...]:
        """仍持有取消鉤子或任務的 cancellable id。"""
        return tuple(self._in_flight)

    def execute(self, effect: Effect) -> None:
        """執行一個副作用。Store 銷毀後呼叫會被忽略。"""
        with self._lock:
            if self._is_disposed:
                logger.debug("Ignoring %s effect after dispose", effect.kind)
                return
            self._execute(effect)

    @functools.singledispatchmethod
    def _execute(self, effect: Effect) -> None:
        raise EffectError(f"Unknown effect type {type(effect).__name__}", effect_kind=getattr(effect, "kind", "unknown"))

    @_execute.register(NoneEffect)
    def _(self, effect: NoneEffect) -> None:
        pass

    @_execute.register(Batch)
    def _(self, effect: Batch) -> None:
        for child in effect.effects:
            if self._is_disposed:
                return
            self._execute(child)

    @_execute.register(Run)
    def _(self, effect: Run) -> None:
        self._run_detached(effect, effect.execute, self._guarded_dispatch())

    @_execute.register(FireAndForget)
    def _(self, effect: FireAndForget) -> None:
        self._run_detached(effect, lambda _dispatch: effect.execute(), self._guarded_dispatch())

    @_execute.register(Cancellable)
    def _(self, effect: Cancellable) -> None:
        self._dispose_entry(self._in_flight, effect.id)
        token = BooleanDisposable()
        entry = CompositeDisposable(token)
        self._in_flight[effect.id] = entry

        def release() -> None:
            if self._in_flight.get(effect.id) is entry:
                del self._in_flight[effect.id]

        hook, task = self._start(effect, effect.execute, self._guarded_dispatch(token), on_done=release)
        if hook is None and task is None:
            # 同步執行完畢，沒有可取消的東西
            release()
        elif hook is not None:
            entry.add(hook)

    @_execute.register(Debounced)
    def _(self, effect: Debounced) -> None:
        self._dispose_entry(self._debounce_timers, effect.id)
        entry = SerialDisposable()
        self._debounce_timers[effect.id] = entry

        def fire(scheduler: SchedulerBase, state: Any = None) -> None:
            with self._lock:
                # 已被同 id 的新請求取代、取消或 dispose
                if self._debounce_timers.get(effect.id) is not entry:
                    return
                del self._debounce_timers[effect.id]
                self._run_detached(effect, effect.execute, self._guarded_dispatch())

        entry.disposable = self.scheduler.schedule_relative(timedelta(milliseconds=effect.ms), fire)

    @_execute.register(Throttled)
    def _(self, effect: Throttled) -> None:
        now = self.scheduler.now
        last = self._throttle_runs.get(effect.id)
        if last is not None and now - last < timedelta(milliseconds=effect.ms):
            logger.debug("Throttled effect %r dropped", effect.id)
            return
        self._throttle_runs[effect.id] = now
        self._run_detached(effect, effect.execute, self._guarded_dispatch())

    @_execute.register(AfterDelay)
    def _(self, effect: AfterDelay) -> None:
        key = next(self._delay_keys)
        entry = SerialDisposable()
        self._delayed[key] = entry

        def fire(scheduler: SchedulerBase, state: Any = None) -> None:
            with self._lock:
                if self._delayed.pop(key, None) is None:
                    return
                self._run_detached(effect, effect.execute, self._guarded_dispatch())

        entry.disposable = self.scheduler.schedule_relative(timedelta(milliseconds=effect.ms), fire)

    @_execute.register(Subscription)
    def _(self, effect: Subscription) -> None:
        self._dispose_entry(self._subscriptions, effect.id)
        token = BooleanDisposable()
        entry = CompositeDisposable(token)
        self._subscriptions[effect.id] = entry
        hook, _task = self._start(effect, effect.setup, self._guarded_dispatch(token))
        if hook is not None:
            entry.add(hook)

    @_execute.register(Cancel)
    def _(self, effect: Cancel) -> None:
        self._dispose_entry(self._in_flight, effect.id)
        self._dispose_entry(self._debounce_timers, effect.id)
        self._dispose_entry(self._subscriptions, effect.id)
        self._throttle_runs.pop(effect.id, None)

    def cancel(self, effect_id: Hashable) -> None:
        """取消 id 下所有已註冊的工作，等同執行 Effect.cancel(effect_id)。"""
        self.execute(Cancel(effect_id))

    def dispose(self) -> None:
        """釋放所有計時器、訂閱、cancellable 的取消鉤子與執行中的任務。重複呼叫無副作用。"""
        with self._lock:
            if self._is_disposed:
                return
            self._is_disposed = True
            for registry in (self._in_flight, self._debounce_timers, self._subscriptions, self._delayed):
                for key in list(registry):
                    self._dispose_entry(registry, key)
            self._throttle_runs.clear()
            for task in list(self._tasks):
                try:
                    task.cancel()
                except RuntimeError as err:
                    # 事件迴圈已關閉
                    logger.debug("Could not cancel task %r: %s", task, err)
            self._tasks.clear()

    # ———— 內部工具 ————

    def _guarded_dispatch(self, token: Optional[BooleanDisposable] = None) -> Dispatch:
        def dispatch(action: Any) -> Any:
            if self._is_disposed or (token is not None and token.is_disposed):
                logger.debug("Dropping %r from cancelled effect", action)
                return action
            return self._dispatch(action)
        return dispatch

    def _run_detached(self, effect: Effect, execute: Callable[[Dispatch], Any], dispatch: Dispatch) -> None:
        hook, task = self._start(effect, execute, dispatch)
        if hook is not None and task is None:
            # 只有 cancellable 與 subscription 會保存取消鉤子
            logger.debug("Discarding cancellation hook returned by %s effect", effect.kind)

    def _start(self, effect: Effect, execute: Callable[[Dispatch], Any], dispatch: Dispatch,
               on_done: Optional[Callable[[], None]] = None
               ) -> Tuple[Optional[DisposableBase], Optional[asyncio.Future]]:
        """呼叫 executor，並將回傳值轉為 (取消鉤子, 任務)。"""
        try:
            result = execute(dispatch)
        except Exception as err:
            self._report(err, effect)
            return None, None

        if result is None:
            return None, None
        if isinstance(result, DisposableBase):
            return result, None
        if inspect.isawaitable(result):
            task = self._spawn(result, effect, on_done)
            if task is None:
                return None, None
            return Disposable(task.cancel), task
        if callable(result):
            return Disposable(result), None
        logger.warning("Ignoring unsupported result %r from %s effect", result, effect.kind)
        return None, None

    def _spawn(self, awaitable: Any, effect: Effect, on_done: Optional[Callable[[], None]]) -> Optional[asyncio.Future]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._report(
                EffectError("Async executor requires a running event loop", effect.kind, getattr(effect, "id", None)),
                effect,
            )
            return None

        if asyncio.iscoroutine(awaitable):
            task = loop.create_task(awaitable)
        else:
            task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def done(fut: asyncio.Future) -> None:
            self._tasks.discard(fut)
            if on_done is not None:
                on_done()
            if fut.cancelled():
                return
            err = fut.exception()
            if err is not None:
                self._report(err, effect)

        task.add_done_callback(done)
        return task

    def _dispose_entry(self, registry: Dict[Any, DisposableBase], key: Any) -> None:
        disposable = registry.pop(key, None)
        if disposable is not None:
            self._safe_dispose(disposable, key)

    def _safe_dispose(self, disposable: DisposableBase, key: Any) -> None:
        try:
            disposable.dispose()
        except Exception as err:
            self.error_handler.handle(EffectError(f"Cleanup for {key!r} failed: {err}", "cleanup", key))

    def _report(self, err: BaseException, effect: Effect) -> None:
        if isinstance(err, EffectError):
            error = err
        else:
            error = EffectError(f"{effect.kind} effect failed: {err}", effect.kind, getattr(effect, "id", None))
            error.__cause__ = err
        self.error_handler.handle(error)
