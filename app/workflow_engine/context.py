"""
Instance context: typed fragments and the reducer that merges them.

Each executed node contributes a fragment. Fragments keyed by a node-state id
land under ``context['nodes'][<node_state_id>]``; root merges union into the
top level. Downstream executors read their upstream fragment back through
``UpstreamSignal`` instead of poking at raw dicts.
"""
import copy
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from django.utils import timezone
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workflow_engine.models import WorkflowInstance

NODES_KEY = 'nodes'


class ContextFragment(BaseModel):
    """Base for everything merged into an instance context."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_context(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode='json')


class TriggerFragment(ContextFragment):
    """Trigger metadata plus every field of the triggering payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='allow')

    trigger_event: str
    mapping_id: Any = None
    object_id: Optional[str] = None
    triggered_by: Optional[int] = None

    @classmethod
    def build(cls, event_name: str, mapping_id: Any, object_id: Optional[str],
              user_id: Optional[int], payload: Dict[str, Any]) -> 'TriggerFragment':
        reserved = {NODES_KEY}
        for name, info in cls.model_fields.items():
            reserved.update({name, info.alias})
        payload = {k: v for k, v in (payload or {}).items() if k not in reserved}
        return cls(
            trigger_event=event_name,
            mapping_id=mapping_id,
            object_id=object_id,
            triggered_by=user_id,
            **payload
        )


class DecisionFragment(ContextFragment):
    condition_value: Any = None
    input_value: Any = None
    result: bool
    condition_type: str = 'if-then-else'
    processed_at: datetime = Field(default_factory=timezone.now)


class JoinFragment(ContextFragment):
    """AND/OR metadata, carrying the arriving input's result/value forward."""

    check_type: Literal['and', 'or']
    last_input: bool
    input_received: int
    result: Any = None
    value: Any = None


class SendFragment(ContextFragment):
    send_kinds: List[str] = Field(default_factory=list)
    recipient_count: int = 0
    needs_action: bool = False
    processed_at: datetime = Field(default_factory=timezone.now)


class ApprovalFragment(ContextFragment):
    approval_result: bool
    approved_count: int
    rejected_count: int
    total_count: int
    approval_mode: str
    processed_at: datetime = Field(default_factory=timezone.now)
    comment: Optional[str] = None
    user_id: Optional[int] = None


class ApprovalOutcomeFragment(ContextFragment):
    """An approval outcome shaped like a decision result."""

    result: bool
    approval_result: bool
    value: Literal['true', 'false']

    @classmethod
    def from_result(cls, approved: bool) -> 'ApprovalOutcomeFragment':
        return cls(
            result=approved,
            approval_result=approved,
            value='true' if approved else 'false'
        )


class UpstreamSignal(BaseModel):
    """What a downstream executor reads from its originating fragment."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    result: Any = None
    value: Any = None
    check_type: Optional[str] = None
    last_input: Optional[bool] = None
    trigger_event: Optional[str] = None
    event_name: Optional[str] = None

    @property
    def upstream_event(self) -> Optional[str]:
        return self.event_name or self.trigger_event

    @property
    def input_value(self) -> Any:
        return self.result if self.result is not None else self.value

    @property
    def blocks_true(self) -> bool:
        """An AND join that has not seen its last input yet."""
        return self.check_type == 'and' and not self.last_input

    @property
    def blocks_false(self) -> bool:
        return self.check_type == 'or' and not self.last_input


def reduce_context(
    context: Optional[Dict[str, Any]],
    fragment: ContextFragment,
    node_state_id: Optional[Any] = None,
    root: bool = False
) -> Dict[str, Any]:
    """
    Merge a fragment into a context and return the new context.

    Args:
        context: Current instance context (left untouched)
        fragment: Fragment to merge
        node_state_id: When given, union the fragment into context['nodes'][id]
        root: When True, union the fragment into the top level as well

    Returns:
        The merged context
    """
    merged = copy.deepcopy(context or {})
    data = fragment.to_context()

    if node_state_id is not None:
        nodes = merged.setdefault(NODES_KEY, {})
        key = str(node_state_id)
        nodes[key] = {**nodes.get(key, {}), **data}

    if root:
        merged.update({k: v for k, v in data.items() if k != NODES_KEY})

    return merged


def read_fragment(context: Optional[Dict[str, Any]], node_state_id: Optional[Any]) -> Dict[str, Any]:
    if node_state_id is None:
        return {}
    return dict(((context or {}).get(NODES_KEY) or {}).get(str(node_state_id)) or {})


class ContextStore:
    """
    Reads and merges instance contexts.

    Merges lock the instance row first so concurrent callers cannot lose
    each other's fragments.
    """

    def merge(
        self,
        instance_id,
        fragment: ContextFragment,
        node_state_id=None,
        root: bool = False
    ) -> Dict[str, Any]:
        instance = WorkflowInstance.objects.select_for_update().get(pk=instance_id)
        instance.context = reduce_context(instance.context, fragment, node_state_id, root)
        instance.save(update_fields=['context', 'updated_at'])
        return instance.context

    def read(self, instance_id) -> Dict[str, Any]:
        return WorkflowInstance.objects.values_list('context', flat=True).get(pk=instance_id) or {}

    def read_fragment(self, instance_id, node_state_id) -> Dict[str, Any]:
        return read_fragment(self.read(instance_id), node_state_id)

    def upstream_signal(self, instance_id, node_state_id) -> UpstreamSignal:
        return UpstreamSignal.model_validate(self.read_fragment(instance_id, node_state_id))

    def lookup(self, instance_id, node_state_id, field: str) -> Any:
        """Find a field in a node's fragment, falling back to the root context."""
        context = self.read(instance_id)
        fragment = read_fragment(context, node_state_id)
        if field in fragment:
            return fragment[field]
        return context.get(field)
