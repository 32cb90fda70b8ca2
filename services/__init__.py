"""
RFP Portal - Services Package

Policy modules (access evaluation, NDA and registration state machines,
membership and auto-join, RFP status) and the collaborators they use.
"""

from services.access import (
    can_view_rfp,
    can_access_document,
    evaluate_documents,
    load_access_context
)
from services.rfp_status import (
    effective_status,
    rfp_effective_status,
    is_open_for_submissions
)
from services.identity import resolve_identity
from services.notifications import (
    NotificationEvent,
    NotificationDispatcher,
    get_dispatcher,
    configure_dispatcher
)
from services.storage import (
    StorageService,
    get_storage,
    configure_storage
)

__all__ = [
    "can_view_rfp",
    "can_access_document",
    "evaluate_documents",
    "load_access_context",
    "effective_status",
    "rfp_effective_status",
    "is_open_for_submissions",
    "resolve_identity",
    "NotificationEvent",
    "NotificationDispatcher",
    "get_dispatcher",
    "configure_dispatcher",
    "StorageService",
    "get_storage",
    "configure_storage",
]
