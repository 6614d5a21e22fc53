"""Dispatching of user callbacks during migrations."""

from __future__ import annotations

import enum
from typing import Any, Callable, Dict, Optional, Tuple


class CallbackEvent(enum.IntEnum):
    """Kind of event a migration callback is invoked for."""

    BEFORE_MIGRATION = 0
    AFTER_MIGRATION = 1
    CALL_COMMENT = 2


#: A callback receives the session, the event and a name: the migration
#: file name for BEFORE_MIGRATION and AFTER_MIGRATION, or the name given in
#: a ``-- CALL <name>;`` comment for CALL_COMMENT. Raising aborts the migration.
CallbackFunc = Callable[[Any, CallbackEvent, str], Any]


class CallbackRegister:
    """Registry of handlers keyed by event and name.

    Its ``callback`` method can be installed as the migration callback. A
    CALL_COMMENT with no registered handler is an error; other unhandled
    events are ignored.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[str, CallbackEvent], CallbackFunc] = {}

    def add(self, event: CallbackEvent, name: str, func: CallbackFunc) -> None:
        """Register ``func`` for ``event`` and ``name``."""
        self._handlers[(name, event)] = func

    def find(self, event: CallbackEvent, name: str) -> Optional[CallbackFunc]:
        """Return the handler registered for ``event`` and ``name``, if any."""
        return self._handlers.get((name, event))

    def callback(self, session: Any, event: CallbackEvent, name: str) -> Any:
        """Dispatch to the registered handler."""
        handler = self.find(event, name)
        if handler is None:
            if event is CallbackEvent.CALL_COMMENT:
                raise LookupError("missing handler")
            return None
        return handler(session, event, name)