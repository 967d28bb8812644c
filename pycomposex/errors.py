"""
PyComposeX 錯誤處理模組。

定義套件內所有異常類別，以及集中式的錯誤處理器。
被捕獲但不應中斷流程的錯誤（副作用失敗、訂閱者異常等）
都會交給 ErrorHandler 記錄並轉發給已註冊的處理函數。
"""
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional, Union


logger = logging.getLogger("pycomposex")


class PyComposeXError(Exception):
    """所有 PyComposeX 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """將錯誤轉為可序列化的字典。"""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({extra})"


class EffectError(PyComposeXError):
    """副作用執行失敗。"""

    def __init__(self, message: str, effect_kind: str, effect_id: Any = None, **kwargs: Any) -> None:
        details = {"effect_kind": effect_kind}
        if effect_id is not None:
            details["effect_id"] = effect_id
        details.update(kwargs)
        super().__init__(message, details)
        self.effect_kind = effect_kind
        self.effect_id = effect_id


class StoreError(PyComposeXError):
    """與 Store 相關的錯誤。"""

    def __init__(self, message: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})
        self.operation = operation


class ValidationError(PyComposeXError, ValueError):
    """資料驗證錯誤，例如負數的延遲毫秒數。"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs: Any) -> None:
        details: Dict[str, Any] = dict(kwargs)
        if field is not None:
            details["field"] = field
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class TestStoreError(PyComposeXError, AssertionError):
    """TestStore 斷言失敗的基礎類。"""

    __test__ = False


class UnconsumedActionError(TestStoreError):
    """送出新 action 前，仍有副作用產生的 action 未被 receive。"""


class UnexpectedActionError(TestStoreError):
    """收到的 action 與預期不符。"""


class MissingActionError(TestStoreError):
    """等待逾時，沒有收到任何副作用產生的 action。"""


class StateMismatchError(TestStoreError):
    """狀態斷言失敗。"""


class EffectsInFlightError(TestStoreError):
    """finish() 時仍有副作用在執行。"""


class ErrorHandler:
    """
    集中式錯誤處理器，用於捕獲、日誌記錄和錯誤報告。

    Args:
        log_to_console: 是否透過 logging 輸出錯誤
        log_to_file: 是否額外寫入檔案
        log_file: 檔案路徑，log_to_file 為 True 時使用
    """

    def __init__(self, log_to_console: bool = True, log_to_file: bool = False, log_file: Optional[str] = None) -> None:
        self.log_to_console = log_to_console
        self.log_to_file = log_to_file
        self.log_file = log_file or "pycomposex_errors.log"
        self.handlers: List[Callable[[PyComposeXError], None]] = []
        self._file_logger: Optional[logging.Logger] = None

    def register_handler(self, handler: Callable[[PyComposeXError], None]) -> None:
        """註冊一個錯誤處理函數，每次 handle 時都會被呼叫。"""
        self.handlers.append(handler)

    def unregister_handler(self, handler: Callable[[PyComposeXError], None]) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def handle(self, error: Union[PyComposeXError, Exception]) -> None:
        """
        處理一個錯誤：非 PyComposeXError 會先被包裝，接著記錄日誌並通知處理函數。

        處理函數本身拋出的異常只會被記錄，不會再往外拋。
        """
        if not isinstance(error, PyComposeXError):
            wrapped = PyComposeXError(str(error), {"original_type": type(error).__name__})
            wrapped.__cause__ = error
            error = wrapped

        if self.log_to_console:
            logger.error("%s: %s", type(error).__name__, error, exc_info=error.__cause__ or error)
        if self.log_to_file:
            self._get_file_logger().error("%s: %s", type(error).__name__, error)

        for handler in list(self.handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Error handler %r failed", handler)

    def _get_file_logger(self) -> logging.Logger:
        if self._file_logger is None:
            file_logger = logging.getLogger(f"pycomposex.file.{id(self)}")
            file_logger.propagate = False
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
            file_logger.addHandler(file_handler)
            self._file_logger = file_logger
        return self._file_logger


# 單例錯誤處理器
global_error_handler = ErrorHandler()
