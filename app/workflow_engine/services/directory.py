"""
User directory backed by django.contrib.auth.

A "role" is an auth Group; role ids are group ids. Human nodes in a diagram
refer to users either directly (`humanType: 'personal'`, `humanIds`) or by
role (`humanType: 'role'`, `humanRoleIds`).
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from django.contrib.auth import get_user_model

from diagrams.models import ObjectMapping, TriggerEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    """A notification recipient or eligible approver."""
    id: int
    email: str
    display_name: str


def _as_ids(values: Iterable) -> List[int]:
    ids = []
    for value in values or []:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric user/role id {value!r}")
    return ids


def _display_name(user) -> str:
    return user.get_full_name() or user.get_username()


class DjangoDirectory:

    def _records(self, queryset) -> List[DirectoryUser]:
        return [
            DirectoryUser(id=user.pk, email=user.email or '', display_name=_display_name(user))
            for user in queryset.filter(is_active=True).order_by('pk')
        ]

    def resolve_users_by_id(self, ids: Iterable) -> List[DirectoryUser]:
        User = get_user_model()
        return self._records(User.objects.filter(pk__in=_as_ids(ids)))

    def resolve_users_by_role(self, role_ids: Iterable) -> List[DirectoryUser]:
        User = get_user_model()
        return self._records(User.objects.filter(groups__id__in=_as_ids(role_ids)).distinct())

    def resolve_display_name(self, user_id) -> str:
        if user_id is None:
            return 'System'
        User = get_user_model()
        user = User.objects.filter(pk=user_id).first()
        return _display_name(user) if user else str(user_id)

    def users_for_human_config(self, data: dict) -> List[DirectoryUser]:
        """Users named by one human configuration blob (a human node's data, or a trigger's inline config)."""
        data = data or {}
        human_type = data.get('humanType')
        users = []
        if human_type in (None, 'personal'):
            users.extend(self.resolve_users_by_id(data.get('humanIds') or []))
        if human_type in (None, 'role'):
            users.extend(self.resolve_users_by_role(data.get('humanRoleIds') or []))
        return users

    def users_for_human_nodes(self, nodes) -> List[DirectoryUser]:
        """Union of the users named by several human nodes, duplicates collapsed."""
        seen = set()
        users = []
        for node in nodes:
            for user in self.users_for_human_config(node.data):
                if user.id not in seen:
                    seen.add(user.id)
                    users.append(user)
        return users

    def event_label(self, code: Optional[str]) -> str:
        if not code:
            return ''
        event = TriggerEvent.objects.filter(code=code).first()
        return event.name if event else code

    def mapping_label(self, mapping_id) -> str:
        if mapping_id in (None, ''):
            return ''
        try:
            mapping = ObjectMapping.objects.filter(pk=int(mapping_id)).first()
        except (TypeError, ValueError):
            mapping = None
        return mapping.display_name if mapping else str(mapping_id)
