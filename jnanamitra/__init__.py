"""Top-level package for the JnanaMitra chat core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import WidgetSession, create_controller, create_widget_session
    from .collaborators import (
        ChatCollaborator,
        HttpChatCollaborator,
        OllamaChatCollaborator,
    )
    from .config import ensure_config_dir, load_config
    from .controller import ConversationController
    from .exceptions import (
        CollaboratorConnectionError,
        CollaboratorError,
        CollaboratorResponseError,
        ConfigValidationError,
        InvalidMessageError,
        JnanaMitraError,
        SpeechRecognitionError,
    )
    from .message_store import SessionStore
    from .models import Message, Role
    from .state import RequestState, StateManager

__all__ = [
    "ChatCollaborator",
    "CollaboratorConnectionError",
    "CollaboratorError",
    "CollaboratorResponseError",
    "ConfigValidationError",
    "ConversationController",
    "HttpChatCollaborator",
    "InvalidMessageError",
    "JnanaMitraError",
    "Message",
    "OllamaChatCollaborator",
    "RequestState",
    "Role",
    "SessionStore",
    "SpeechRecognitionError",
    "StateManager",
    "WidgetSession",
    "create_controller",
    "create_widget_session",
    "ensure_config_dir",
    "load_config",
]

_EXCEPTION_NAMES = {
    "CollaboratorConnectionError",
    "CollaboratorError",
    "CollaboratorResponseError",
    "ConfigValidationError",
    "InvalidMessageError",
    "JnanaMitraError",
    "SpeechRecognitionError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    if name in _EXCEPTION_NAMES:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"Message", "Role"}:
        from .models import Message, Role

        return {"Message": Message, "Role": Role}[name]
    if name in {"RequestState", "StateManager"}:
        from .state import RequestState, StateManager

        return {"RequestState": RequestState, "StateManager": StateManager}[name]
    if name == "SessionStore":
        from .message_store import SessionStore

        return SessionStore
    if name == "ConversationController":
        from .controller import ConversationController

        return ConversationController
    if name in {"ChatCollaborator", "HttpChatCollaborator", "OllamaChatCollaborator"}:
        from . import collaborators

        return getattr(collaborators, name)
    if name in {"ensure_config_dir", "load_config"}:
        from .config import ensure_config_dir, load_config

        return {
            "ensure_config_dir": ensure_config_dir,
            "load_config": load_config,
        }[name]
    if name in {"WidgetSession", "create_controller", "create_widget_session"}:
        from . import app

        return getattr(app, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
