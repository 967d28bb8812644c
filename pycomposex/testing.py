"""
確定性的測試 Store。

TestStore 包裝一個真正的 Store，但把副作用 dispatch 的動作攔截到佇列中，
由測試逐一 receive 並斷言。計時器預設使用 reactivex 的 HistoricalScheduler，
時間只會在 advance_time() 時前進。

範例:
    store = create_test_store(initial, reducer, deps)
    await store.send(search_changed("py"), lambda s: s.query == "py")
    await store.advance_time(300)
    await store.receive(search_response(results), lambda s: s.results == results)
    await store.finish()
"""
import asyncio
import logging
from collections import deque
from datetime import timedelta
from typing import Any, Callable, Deque, Generic, List, Optional, Tuple, TypeVar

from reactivex.scheduler import HistoricalScheduler
from reactivex.scheduler.virtualtimescheduler import VirtualTimeScheduler

from .actions import Action
from .errors import (
    EffectsInFlightError, MissingActionError, StateMismatchError,
    UnconsumedActionError, UnexpectedActionError, ValidationError,
)
from .store import Store, StoreConfig
from .types import StateAssertion

logger = logging.getLogger(__name__)

S = TypeVar("S")


class TestStore(Generic[S]):
    """
    逐步斷言 reducer 與副作用行為的 Store。

    Args:
        config: Store 設定；未指定 scheduler 時使用新的 HistoricalScheduler
        exhaustive: 為 True（預設）時，送出新動作前必須 receive 所有副作用產生的動作，
            finish() 時也不能留有未處理的動作或執行中的任務
        timeout: receive() 與 finish() 等待非同步副作用的預設秒數
    """

    __test__ = False

    def __init__(self, config: StoreConfig, *, exhaustive: bool = True, timeout: float = 1.0):
        if config.scheduler is None:
            config = config.model_copy(update={"scheduler": HistoricalScheduler()})
        self.scheduler = config.scheduler
        self.exhaustive = exhaustive
        self.timeout = timeout

        self._queue: Deque[Any] = deque()
        self._received: List[Any] = []
        self._arrived = asyncio.Event()
        self._store: Store[S] = Store(config, effect_sink=self.effect_dispatch)

    # ———— 狀態 ————

    @property
    def state(self) -> S:
        return self._store.state

    @property
    def store(self) -> Store[S]:
        return self._store

    @property
    def dependencies(self) -> Any:
        return self._store.dependencies

    @property
    def history(self) -> Tuple[Any, ...]:
        return self._store.history

    @property
    def received_actions(self) -> Tuple[Any, ...]:
        """已經 receive（並送進 reducer）的副作用動作。"""
        return tuple(self._received)

    @property
    def pending_actions(self) -> Tuple[Any, ...]:
        """副作用已送出、尚未 receive 的動作。"""
        return tuple(self._queue)

    # ———— 操作 ————

    def effect_dispatch(self, action: Any) -> Any:
        """
        將動作放進接收佇列，如同由副作用送出。

        Store 的副作用都經由這裡 dispatch；也可以直接交給 dismiss 依賴使用。
        """
        self._queue.append(action)
        self._arrived.set()
        return action

    async def send(self, action: Any, assertion: StateAssertion = None) -> S:
        """
        送出一個使用者動作並斷言新狀態。

        Raises:
            UnconsumedActionError: exhaustive 模式下仍有未 receive 的副作用動作
            StateMismatchError: 斷言失敗
        """
        if self._queue:
            if self.exhaustive:
                raise UnconsumedActionError(
                    f"Must handle {len(self._queue)} received action(s) before sending {action!r}: "
                    f"{list(self._queue)!r}"
                )
            await self.skip_received_actions()

        self._store.dispatch(action)
        await asyncio.sleep(0)
        self._check(assertion, f"after sending {action!r}")
        return self.state

    async def receive(self, expected: Any, assertion: StateAssertion = None,
                      timeout: Optional[float] = None) -> S:
        """
        等待下一個副作用動作，確認它符合 expected 後送進 reducer。

        Args:
            expected: 預期的 Action（以 == 比較）、action creator（比較 type）
                或判斷函數
            assertion: 對新狀態的斷言
            timeout: 等待秒數，預設為 self.timeout

        Raises:
            MissingActionError: 逾時沒有收到動作
            UnexpectedActionError: 收到的動作不符合預期
            StateMismatchError: 斷言失敗
        """
        wait = self.timeout if timeout is None else timeout
        action = await self._next_action(wait)
        if action is _MISSING:
            raise MissingActionError(f"Expected to receive {expected!r}, but no action arrived within {wait}s")

        if not _matches(expected, action):
            # 放回佇列，讓測試可以再檢查
            self._queue.appendleft(action)
            raise UnexpectedActionError(
                f"Received unexpected action\n  expected: {expected!r}\n  received: {action!r}"
            )

        self._received.append(action)
        self._store.dispatch(action)
        await asyncio.sleep(0)
        self._check(assertion, f"after receiving {action!r}")
        return self.state

    async def advance_time(self, ms: float) -> None:
        """將虛擬時鐘前進 ms 毫秒，觸發到期的防抖、延遲與節流計時器。"""
        if ms < 0:
            raise ValidationError("Cannot move time backwards", field="ms", value=ms)
        if not isinstance(self.scheduler, VirtualTimeScheduler):
            raise TypeError("advance_time() requires a virtual time scheduler")
        self.scheduler.advance_by(timedelta(milliseconds=ms))
        await asyncio.sleep(0)

    async def skip_received_actions(self) -> List[Any]:
        """把佇列中所有副作用動作送進 reducer，不做斷言。"""
        skipped = []
        while self._queue:
            action = self._queue.popleft()
            skipped.append(action)
            self._received.append(action)
            self._store.dispatch(action)
            await asyncio.sleep(0)
        if skipped:
            logger.debug("Skipped %d received action(s): %r", len(skipped), skipped)
        return skipped

    async def finish(self, timeout: Optional[float] = None) -> None:
        """
        等待執行中的副作用任務結束，並確認沒有遺留的動作，最後銷毀 Store。

        Raises:
            EffectsInFlightError: 逾時後仍有任務在執行，或仍有未觸發的防抖、延遲計時器
                （exhaustive 模式）
            UnconsumedActionError: 仍有未 receive 的動作（exhaustive 模式）
        """
        wait = self.timeout if timeout is None else timeout
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + wait
            while True:
                pending = self._store.effects.pending_tasks
                remaining = deadline - loop.time()
                if not pending or remaining <= 0:
                    break
                await asyncio.wait(pending, timeout=remaining)

            if not self.exhaustive:
                return
            pending = self._store.effects.pending_tasks
            if pending:
                raise EffectsInFlightError(f"{len(pending)} effect task(s) still running after {wait}s")
            timers = self._store.effects.pending_timers
            if timers:
                if isinstance(self.scheduler, VirtualTimeScheduler):
                    hint = "virtual time was not advanced far enough; call advance_time()"
                else:
                    hint = "the timers have not fired yet"
                raise EffectsInFlightError(f"{timers} debounced or delayed effect(s) still pending: {hint}")
            if self._queue:
                raise UnconsumedActionError(
                    f"{len(self._queue)} received action(s) were not handled: {list(self._queue)!r}"
                )
        finally:
            self._store.destroy()

    def destroy(self) -> None:
        self._store.destroy()

    # ———— 內部 ————

    async def _next_action(self, wait: float) -> Any:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait
        # 先讓剛建立的任務有機會執行
        await asyncio.sleep(0)
        while not self._queue:
            remaining = deadline - loop.time()
            pending = self._store.effects.pending_tasks
            if remaining <= 0:
                return _MISSING
            if not pending and isinstance(self.scheduler, VirtualTimeScheduler):
                # 虛擬時間不會自己前進，沒有任務就不會再有動作
                return _MISSING
            self._arrived.clear()
            waiter = asyncio.ensure_future(self._arrived.wait())
            try:
                await asyncio.wait({waiter, *pending}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
        return self._queue.popleft()

    def _check(self, assertion: StateAssertion, when: str) -> None:
        if assertion is None:
            return
        state = self.state
        if callable(assertion):
            try:
                result = assertion(state)
            except AssertionError as err:
                raise StateMismatchError(f"State assertion failed {when}: {err}", {"state": state}) from err
            if result is False:
                raise StateMismatchError(f"State assertion returned False {when}", {"state": state})
            return
        if state != assertion:
            raise StateMismatchError(
                f"State mismatch {when}\n  expected: {assertion!r}\n  actual:   {state!r}",
                {"state": state},
            )


_MISSING = object()


def _matches(expected: Any, action: Any) -> bool:
    if isinstance(expected, Action):
        return action == expected
    if callable(expected) and hasattr(expected, "type"):
        return getattr(action, "type", None) == expected.type
    if callable(expected):
        return bool(expected(action))
    return action == expected


def create_test_store(initial_state: Any, reducer: Optional[Callable[..., Any]] = None,
                      dependencies: Any = None, *, exhaustive: bool = True, timeout: float = 1.0,
                      **options: Any) -> TestStore:
    """
    創建一個 TestStore。

    參數與 create_store 相同，另外接受 exhaustive 與 timeout。
    """
    if isinstance(initial_state, StoreConfig):
        if reducer is not None or dependencies is not None or options:
            raise TypeError("create_test_store() takes either a StoreConfig or keyword settings, not both")
        config = initial_state
    else:
        config = StoreConfig(
            initial_state=initial_state,
            reducer=reducer,
            dependencies={} if dependencies is None else dependencies,
            **options,
        )
    return TestStore(config, exhaustive=exhaustive, timeout=timeout)
