# link_state.py: link and unlink targets of a relationship
#
# pylint: disable=protected-access,logging-format-interpolation
"""
The LinkStateEngine decides what has to be written when targets are linked to
or unlinked from a parent instance, and reports the outcome:

- UNCHANGED: nothing had to be written (304)
- CHANGED: the relationship has been updated (204)
- CREATED: a new target has been created and linked (201)
- INVALID: an instance carries validation errors, it is returned to the client.
  Changes may already have been made in the session, the caller rolls it back

Three relationship shapes are handled:

- join entity: the MANYTOMANY join table is mapped to a NestedBase class,
  the request payload is loaded into the join entity instances
- join table: the payload is written as extra columns of the join table rows
- simple: ONETOMANY and MANYTOONE relationships, the payload is ignored
"""
import enum
from dataclasses import dataclass, field
from http import HTTPStatus
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple
from sqlalchemy.orm.interfaces import ONETOMANY
import nested_rest
from .errors import GenericError, NotFoundError, UnAuthorizedError, ValidationError
from .relation import RelationDescriptor


class LinkStatus(enum.Enum):
    UNCHANGED = HTTPStatus.NOT_MODIFIED
    CHANGED = HTTPStatus.NO_CONTENT
    CREATED = HTTPStatus.CREATED
    INVALID = HTTPStatus.OK


@dataclass(frozen=True)
class LinkPlan:
    """
    Classification of the requested ids: every id is either already linked or to be linked
    """

    already_linked: Tuple[str, ...] = ()
    to_link: Tuple[str, ...] = ()
    junction_payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def requested(self) -> Tuple[str, ...]:
        return self.already_linked + self.to_link


@dataclass(frozen=True)
class LinkOutcome:
    status: LinkStatus
    instance: Any = None


def authorize(check_access: Optional[Callable], action_id: str, subject=None) -> None:
    """
    Call the access check, it can raise an exception or return False to reject the request
    :param check_access: callable(action_id, subject) or None
    :param action_id: the action being executed, eg. "nested-link"
    :param subject: the instance being accessed, None for collection level checks
    """
    if check_access is None:
        return
    if check_access(action_id, subject) is False:
        raise UnAuthorizedError(f'"{action_id}" not allowed on {subject}')


def partition_junction_payload(target_class, data: dict) -> dict:
    """
    Select the fields of a create payload that are meant for the join entity/table:
    these are the fields that can't be assigned to the target itself.
    A field that exists on both the target and the join entity is assigned to the target only.
    """
    safe_attributes = target_class._s_safe_attributes
    return {key: value for key, value in data.items() if key not in safe_attributes}


class LinkStateEngine:
    """
    :param parent: the parent instance, its relationship `descriptor.name` is modified
    :param descriptor: RelationDescriptor
    :param check_access: callable(action_id, subject), called for every instance that is written
    :param action_id: id of the action using the engine
    """

    def __init__(self, parent, descriptor: RelationDescriptor, check_access: Callable = None, action_id: str = None) -> None:
        self.parent = parent
        self.descriptor = descriptor
        self.check_access = check_access
        self.action_id = action_id

    def _authorize(self, subject) -> None:
        authorize(self.check_access, self.action_id, subject)

    @property
    def _parent_name(self) -> str:
        return f"{self.parent.__class__.__name__} '{self.parent.jsonapi_id}'"

    def _find_target(self, target_id):
        target_class = self.descriptor.target_class
        target = target_class.get_instance(target_id, failsafe=True)
        if target is None:
            raise NotFoundError(f"{target_class.__name__} '{target_id}' not found.")
        return target

    def plan(self, ids, payload: dict = None) -> LinkPlan:
        """
        Classify the requested ids
        :param ids: list of target ids
        :param payload: request body, only kept for join entities and join tables
        :raise NotFoundError: an id doesn't exist
        """
        already_linked, to_link = [], []
        for target_id in ids:
            if self.descriptor.exists(target_id, parent=self.parent):
                already_linked.append(target_id)
            elif self.descriptor.exists(target_id):
                to_link.append(target_id)
            else:
                raise NotFoundError(f"{self.descriptor.target_class.__name__} '{target_id}' not found.")
        junction_payload = dict(payload or {}) if self.descriptor.is_many_to_many else {}
        return LinkPlan(tuple(already_linked), tuple(to_link), MappingProxyType(junction_payload))

    def link(self, ids, payload: dict = None) -> LinkOutcome:
        """
        Link the targets with the given ids to the parent,
        join entity instances of targets that are already linked are updated with the payload
        """
        if not self.descriptor.multiple and len(ids) > 1:
            raise ValidationError(f'"{self.descriptor.name}" can only be linked to a single object.')

        plan = self.plan(ids, payload)
        if self.descriptor.is_via_class:
            return self._link_via_class(plan)

        if not plan.to_link:
            if plan.junction_payload:
                raise ValidationError("objects already linked.")
            return LinkOutcome(LinkStatus.UNCHANGED)

        targets = [self._find_target(target_id) for target_id in plan.to_link]
        for target in targets:
            self._authorize(target)
            self.descriptor.relate(self.parent, target, dict(plan.junction_payload))
        nested_rest.log.info(f"Linked {targets} to {self._parent_name}")
        return LinkOutcome(LinkStatus.CHANGED)

    def _link_via_class(self, plan: LinkPlan) -> LinkOutcome:
        if not plan.to_link and not plan.junction_payload:
            return LinkOutcome(LinkStatus.UNCHANGED)

        descriptor = self.descriptor
        for target_id in plan.requested:
            target = self._find_target(target_id)
            if target_id in plan.to_link:
                via_model = descriptor.via_class()
            else:
                via_model = descriptor.find_via_instance(self.parent, target)
                if via_model is None:  # pragma: no cover
                    raise GenericError(f"No {descriptor.via_class.__name__} found for {target}")
            self._authorize(via_model)
            via_model._s_load(dict(plan.junction_payload))
            # the link keys can't be overwritten by the payload
            for attr_name, attr_val in descriptor.via_attributes(self.parent, target).items():
                setattr(via_model, attr_name, attr_val)
            if not via_model._s_save():
                if via_model._s_has_errors():
                    return LinkOutcome(LinkStatus.INVALID, via_model)
                raise GenericError("Failed to update the object for unknown reason.")
        return LinkOutcome(LinkStatus.CHANGED)

    def unlink(self, ids) -> LinkOutcome:
        """
        Unlink the targets with the given ids, nothing is unlinked if one of them isn't linked
        :raise ValidationError: a target isn't linked to the parent
        """
        target_class = self.descriptor.target_class
        for target_id in ids:
            if not self.descriptor.exists(target_id, parent=self.parent):
                raise ValidationError(f"{target_class.__name__} '{target_id}' not linked to {self._parent_name}.")
        targets = [self._find_target(target_id) for target_id in ids]
        for target in targets:
            self._authorize(target)
            self.descriptor.sever(self.parent, target)
        nested_rest.log.info(f"Unlinked {targets} from {self._parent_name}")
        return LinkOutcome(LinkStatus.CHANGED)

    def unlink_all(self) -> LinkOutcome:
        self.descriptor.sever_all(self.parent)
        nested_rest.log.info(f"Unlinked all {self.descriptor.name} from {self._parent_name}")
        return LinkOutcome(LinkStatus.CHANGED)

    def create(self, data: dict, via_wrapper: str = None) -> LinkOutcome:
        """
        Create a new target and link it to the parent
        :param data: request body
        :param via_wrapper: name of the body field holding the join entity/table payload,
                            when not set the payload is partitioned with `partition_junction_payload`
        """
        descriptor = self.descriptor
        body = dict(data or {})
        if via_wrapper:
            via_data = body.pop(via_wrapper, None) or {}
        elif descriptor.is_many_to_many:
            via_data = partition_junction_payload(descriptor.target_class, body)
        else:
            via_data = {}
        if not isinstance(via_data, dict):
            raise ValidationError(f'"{via_wrapper}" should hold an object')

        model = descriptor.target_class()
        model._s_load(body)
        descriptor.prepare_target(self.parent, model)
        if not model._s_save():
            if model._s_has_errors():
                return LinkOutcome(LinkStatus.INVALID, model)
            raise GenericError("Failed to create the object for unknown reason.")

        if descriptor.is_via_class:
            via_model = descriptor.via_class()
            self._authorize(via_model)
            via_model._s_load(via_data)
            for attr_name, attr_val in descriptor.via_attributes(self.parent, model).items():
                setattr(via_model, attr_name, attr_val)
            if not via_model._s_save():
                if via_model._s_has_errors():
                    return LinkOutcome(LinkStatus.INVALID, via_model)
                raise GenericError("Failed to link the object for unknown reason.")
        elif descriptor.is_many_to_many:
            descriptor.relate(self.parent, model, via_data)
        elif not (descriptor.multiple and descriptor.direction == ONETOMANY):
            # ONETOMANY targets have been linked by prepare_target
            descriptor.relate(self.parent, model)

        nested_rest.log.info(f"Created {model} in {self._parent_name}.{descriptor.name}")
        return LinkOutcome(LinkStatus.CREATED, model)
