"""
PyComposeX: 可組合的單向資料流狀態管理函式庫。

Reducer 是純函數 ``(state, action, dependencies) -> (new_state, effect)``；
Store 執行 reducer、通知訂閱者並直譯回傳的 Effect。組合運算子
(scope / if_let / for_each / destination / stack) 把獨立撰寫的子 reducer
組合成整個應用的 reducer，TestStore 則逐步斷言 reducer 與副作用的行為。
"""
from .actions import Action, create_action, is_action
from .composition import (
    IdentifiedItem, IntegrationBuilder, element_action, for_each, for_each_element,
    if_let, if_let_presentation, integrate, scope, scope_action,
)
from .dismissal import create_dismiss_dependency, create_dismiss_dependency_with_cleanup, dismiss_dependency
from .effects import (
    AfterDelay, Batch, Cancel, Cancellable, Debounced, Effect, EffectsManager,
    FireAndForget, NoneEffect, Run, Subscription, Throttled, map_effect,
)
from .errors import (
    EffectError, EffectsInFlightError, ErrorHandler, MissingActionError, PyComposeXError,
    StateMismatchError, StoreError, TestStoreError, UnconsumedActionError,
    UnexpectedActionError, ValidationError, global_error_handler,
)
from .middleware import BaseMiddleware, DevToolsMiddleware, LoggerMiddleware
from .navigation import (
    Destination, DestinationGroup, DestinationMatch, can_go_back, create_destination,
    create_destination_group, create_destination_reducer,
    create_stack_reducer, dismiss, element, extract_destination_state,
    handle_stack_action, is_destination_type, pop, pop_to_root, presented,
    push, root_screen, set_path, stack_depth, top_screen,
)
from .reducers import combine_reducers, create_reducer, merge_reducers, on
from .scoped_store import ScopedStore, scope_to_destination, scope_to_element, scope_to_optional
from .store import Store, StoreConfig, create_store
from .store_selectors import create_selector
from .testing import TestStore, create_test_store

__version__ = "0.1.0"

__all__ = [
    # Store
    "Store", "StoreConfig", "create_store",
    # Actions
    "Action", "create_action", "is_action",
    # Effects
    "Effect", "NoneEffect", "Run", "FireAndForget", "Batch", "Cancellable",
    "Debounced", "Throttled", "AfterDelay", "Subscription", "Cancel",
    "map_effect", "EffectsManager",
    # Reducers
    "create_reducer", "on", "combine_reducers", "merge_reducers",
    # Composition
    "scope", "scope_action", "if_let", "if_let_presentation",
    "for_each", "for_each_element", "element_action", "IdentifiedItem",
    "integrate", "IntegrationBuilder",
    # Navigation
    "presented", "dismiss", "push", "pop", "pop_to_root", "set_path", "element",
    "Destination", "create_destination", "is_destination_type", "extract_destination_state",
    "create_destination_reducer", "DestinationGroup", "DestinationMatch", "create_destination_group",
    "handle_stack_action", "create_stack_reducer",
    "top_screen", "root_screen", "can_go_back", "stack_depth",
    # Scoped stores
    "ScopedStore", "scope_to_element", "scope_to_destination", "scope_to_optional",
    # Dismiss
    "create_dismiss_dependency", "create_dismiss_dependency_with_cleanup", "dismiss_dependency",
    # Middleware
    "BaseMiddleware", "LoggerMiddleware", "DevToolsMiddleware",
    # Selectors
    "create_selector",
    # Testing
    "TestStore", "create_test_store",
    # Errors
    "PyComposeXError", "EffectError", "StoreError", "ValidationError",
    "TestStoreError", "UnconsumedActionError", "UnexpectedActionError",
    "MissingActionError", "StateMismatchError", "EffectsInFlightError",
    "ErrorHandler", "global_error_handler",
]
