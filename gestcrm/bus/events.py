"""
Event Bus - Decoupled Module Communication
Services emit events after a successful write; other modules listen.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for decoupled module communication.
    Modules emit events, other modules register handlers to listen.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)}")

    def off(self, event_name: str, handler: Callable):
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.
        A failing handler is logged and does not stop the others.
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data keys: {sorted(event_data)}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {getattr(handler, '__name__', handler)} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Clients / deals / activities
EVENT_CLIENT_CREATED = 'client_created'
EVENT_CLIENT_UPDATED = 'client_updated'
EVENT_CLIENT_DELETED = 'client_deleted'
EVENT_DEAL_CREATED = 'deal_created'
EVENT_DEAL_UPDATED = 'deal_updated'
EVENT_DEAL_DELETED = 'deal_deleted'
EVENT_ACTIVITY_LOGGED = 'activity_logged'
EVENT_ACTIVITY_UPDATED = 'activity_updated'
EVENT_ACTIVITY_DELETED = 'activity_deleted'

# Contract notifications
EVENT_NOTIFICATIONS_GENERATED = 'notifications_generated'
EVENT_NOTIFICATIONS_READ = 'notifications_read'
EVENT_NOTIFICATION_DELETED = 'notification_deleted'

# User accounts
EVENT_USER_APPROVAL_CHANGED = 'user_approval_changed'

# Operations (projects / collaborators / tokens)
EVENT_PROJECT_CREATED = 'project_created'
EVENT_PROJECT_UPDATED = 'project_updated'
EVENT_PROJECT_DELETED = 'project_deleted'
EVENT_COLLABORATOR_CREATED = 'collaborator_created'
EVENT_COLLABORATOR_UPDATED = 'collaborator_updated'
EVENT_COLLABORATOR_DELETED = 'collaborator_deleted'
EVENT_COLLABORATOR_ASSIGNED = 'collaborator_assigned'
EVENT_COLLABORATOR_UNASSIGNED = 'collaborator_unassigned'
EVENT_TOKENS_USED = 'tokens_used'
