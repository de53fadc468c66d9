"""
Engine settings.

Projects override any of these through the ``WORKFLOW_ENGINE`` dict in
Django settings.
"""
from typing import Any

from django.conf import settings

DEFAULTS = {
    # Trigger event marking a mid-graph trigger as a human-approval gate
    'APPROVE_EVENT': 'approve',
    # Upstream trigger event that turns a Send node into an approval request
    'SEND_APPROVE_EVENT': 'sendapprove',
    # 'start_edge' or 'incoming_edges', see GraphStore.is_external_trigger
    'INTERNAL_TRIGGER_DETECTION': 'start_edge',
    'ENFORCE_TRIGGER_PERMISSIONS': True,
    'OBJECT_ID_FIELDS': ['Id', 'id', 'objectId', 'ObjectId'],
    'OBJECT_NAME_FIELDS': ['Name', 'name', 'title', 'Title'],
    'SEND_KIND_ALIASES': {
        'notification': 'inapp',
        'in-app': 'inapp',
        'mail': 'email',
    },
    'DEFAULT_FROM_EMAIL': None,
}


def engine_setting(name: str) -> Any:
    """Return an engine option, project overrides first."""
    overrides = getattr(settings, 'WORKFLOW_ENGINE', None) or {}
    if name in overrides:
        return overrides[name]
    if name == 'DEFAULT_FROM_EMAIL':
        return getattr(settings, 'DEFAULT_FROM_EMAIL', None)
    return DEFAULTS[name]
