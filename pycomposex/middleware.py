"""
基於 PyComposeX 的中介軟體定義模組。

中介軟體介入 dispatch 的流程，在動作到達 reducer 前、處理完成後或出現錯誤時
執行自定義邏輯。可以是物件（實作 on_next / on_complete / on_error / teardown），
也可以是工廠函數 ``mw(store)(next_dispatch) -> dispatch``。
"""
import datetime
import logging
from typing import Any, List, Optional, Tuple

from .immutable_utils import to_dict


def _action_name(action: Any) -> str:
    return getattr(action, "type", None) or type(action).__name__


# ———— Base Middleware ————
class BaseMiddleware:
    """
    基礎中介類，定義所有中介可能實現的鉤子。
    """

    def on_next(self, action: Any, prev_state: Any) -> None:
        """
        在 action 發送給 reducer 之前調用。

        Args:
            action: 正在 dispatch 的 Action
            prev_state: dispatch 之前的 store.state
        """
        pass

    def on_complete(self, next_state: Any, action: Any) -> None:
        """
        在 reducer 處理完 action、副作用開始執行之後調用。

        Args:
            next_state: dispatch 之後的最新 store.state
            action: 剛剛 dispatch 的 Action
        """
        pass

    def on_error(self, error: Exception, action: Any) -> None:
        """
        如果 dispatch 過程中拋出異常，則調用此鉤子。異常之後仍會被重新拋出。
        """
        pass

    def teardown(self) -> None:
        """當 Store 銷毀時調用，用於清理中介軟體持有的資源。"""
        pass


# ———— LoggerMiddleware ————
class LoggerMiddleware(BaseMiddleware):
    """
    日誌中介，以 logging 記錄每個 action 發送前和發送後的 state。

    Args:
        logger_name: 使用的 logger 名稱
        level: 一般訊息的日誌等級
        log_state: 是否同時記錄 state（轉為普通 dict 後輸出）
    """

    def __init__(self, logger_name: str = "pycomposex.dispatch", level: int = logging.DEBUG,
                 log_state: bool = True):
        self.logger = logging.getLogger(logger_name)
        self.level = level
        self.log_state = log_state
        self._started: List[datetime.datetime] = []

    def on_next(self, action: Any, prev_state: Any) -> None:
        self._started.append(datetime.datetime.now())
        self.logger.log(self.level, "dispatching %s", _action_name(action))
        if self.log_state:
            self.logger.log(self.level, "state before %s: %r", _action_name(action), to_dict(prev_state))

    def on_complete(self, next_state: Any, action: Any) -> None:
        started = self._started.pop() if self._started else None
        elapsed = (datetime.datetime.now() - started).total_seconds() * 1000 if started else 0.0
        if self.log_state:
            self.logger.log(self.level, "state after %s (%.2fms): %r", _action_name(action), elapsed, to_dict(next_state))
        else:
            self.logger.log(self.level, "handled %s (%.2fms)", _action_name(action), elapsed)

    def on_error(self, error: Exception, action: Any) -> None:
        if self._started:
            self._started.pop()
        self.logger.error("error in %s: %s", _action_name(action), error)


# ———— DevToolsMiddleware ————
class DevToolsMiddleware(BaseMiddleware):
    """
    記錄每次 action 與 state 快照，支援回溯調試。

    Args:
        max_entries: 保留的最大筆數，None 表示不限
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self.max_entries = max_entries
        self.history: List[Tuple[Any, Any, Any]] = []
        self._pending: List[Any] = []

    def on_next(self, action: Any, prev_state: Any) -> None:
        self._pending.append(prev_state)

    def on_complete(self, next_state: Any, action: Any) -> None:
        prev_state = self._pending.pop() if self._pending else None
        self.history.append((prev_state, action, next_state))
        if self.max_entries is not None and len(self.history) > self.max_entries:
            del self.history[0]

    def on_error(self, error: Exception, action: Any) -> None:
        if self._pending:
            self._pending.pop()

    def get_history(self) -> List[Tuple[Any, Any, Any]]:
        """
        返回整個歷史快照列表。

        Returns:
            歷史快照列表，每項為 (prev_state, action, next_state)
        """
        return list(self.history)

    def teardown(self) -> None:
        self._pending.clear()
