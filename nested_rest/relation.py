# relation.py: describes how a model relationship is persisted
#
# 3 types of relationships (directions) exist in the sqla orm:
# MANYTOONE ONETOMANY MANYTOMANY
# A MANYTOMANY relationship is stored in a join table, this table may be mapped to a join entity class
# (an association object) which can carry extra attributes.
#
# pylint: disable=protected-access,logging-format-interpolation
from dataclasses import dataclass
from typing import Any, Optional, Tuple
from sqlalchemy import and_, inspect as sqla_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import with_parent
from sqlalchemy.orm.interfaces import ONETOMANY, MANYTOONE, MANYTOMANY
import nested_rest
from .base import NestedBase
from .errors import ConfigurationError


@dataclass(frozen=True, eq=False)
class RelationDescriptor:
    """
    Immutable description of a relationship, resolved once when the routes are created.

    parent_pairs: (parent attribute name, column) pairs, the column holds the parent key
                  on the owning side (the target table for ONETOMANY, the join table for MANYTOMANY)
    target_pairs: (target attribute name, column) pairs, the column holds the target key
                  on the owning side (the parent table for MANYTOONE, the join table for MANYTOMANY)
    """

    name: str
    parent_class: Any
    target_class: Any
    direction: Any
    multiple: bool
    parent_pairs: Tuple[Tuple[str, Any], ...] = ()
    target_pairs: Tuple[Tuple[str, Any], ...] = ()
    via_table: Optional[Any] = None
    via_class: Optional[Any] = None

    @property
    def session(self):
        return nested_rest.DB.session

    @property
    def is_many_to_many(self) -> bool:
        return self.multiple and self.via_table is not None

    @property
    def is_via_class(self) -> bool:
        return self.is_many_to_many and self.via_class is not None

    @property
    def is_via_table(self) -> bool:
        return self.is_many_to_many and self.via_class is None

    @property
    def relation_attr(self):
        return getattr(self.parent_class, self.name)

    @property
    def link_columns(self) -> dict:
        """
        :return: join attribute (column) name => key attribute name on the owning side
        """
        return {column.key: attr_name for attr_name, column in self.parent_pairs + self.target_pairs}

    def scoped_query(self, parent):
        """
        :param parent: parent instance
        :return: query for the targets related to `parent`
        """
        return self.session.query(self.target_class).filter(with_parent(parent, self.relation_attr))

    def exists(self, target_id, parent=None) -> bool:
        """
        :param target_id: target id
        :param parent: when set, only the targets related to this parent are considered
        :return: whether the target exists
        """
        target = self.target_class
        query = self.scoped_query(parent) if parent is not None else self.session.query(target)
        query = query.filter(target._s_pk_attr == target._s_coerce_id(target_id))
        return bool(self.session.query(query.exists()).scalar())

    def via_row(self, parent, target) -> dict:
        """
        :return: join table column key => value, for the row linking `parent` and `target`
        """
        row = {column.key: getattr(parent, attr_name) for attr_name, column in self.parent_pairs}
        row.update({column.key: getattr(target, attr_name) for attr_name, column in self.target_pairs})
        return row

    def via_attributes(self, parent, target) -> dict:
        """
        :return: join entity attribute name => value, for the instance linking `parent` and `target`
        """
        mapper = sqla_inspect(self.via_class)
        result = {}
        for owner, pairs in ((parent, self.parent_pairs), (target, self.target_pairs)):
            for attr_name, column in pairs:
                result[mapper.get_property_by_column(column).key] = getattr(owner, attr_name)
        return result

    def _via_criteria(self, parent, target=None) -> list:
        criteria = [column == getattr(parent, attr_name) for attr_name, column in self.parent_pairs]
        if target is not None:
            criteria += [column == getattr(target, attr_name) for attr_name, column in self.target_pairs]
        return criteria

    def find_via_instance(self, parent, target):
        """
        :return: the join entity instance linking `parent` and `target`, or None
        """
        return self.session.query(self.via_class).filter_by(**self.via_attributes(parent, target)).first()

    def prepare_target(self, parent, target) -> None:
        """
        Set the foreign keys of a new target of a ONETOMANY relationship so it can be saved
        before it is linked
        """
        if self.direction == ONETOMANY and self.multiple:
            for attr_name, column in self.parent_pairs:
                setattr(target, _attr_key(self.target_class, column), getattr(parent, attr_name))

    def relate(self, parent, target, extra: dict = None) -> None:
        """
        Link `target` to `parent`
        :param extra: extra join table values, only used for join tables
        """
        if self.is_many_to_many:
            # extra values that are not join table columns are ignored
            row = {key: value for key, value in (extra or {}).items() if key in self.via_table.c}
            row.update(self.via_row(parent, target))
            self.session.execute(self.via_table.insert().values(**row))
        elif self.multiple:
            collection = getattr(parent, self.name)
            if target not in collection:
                collection.append(target)
        else:
            setattr(parent, self.name, target)

    def sever(self, parent, target) -> None:
        """
        Unlink `target` from `parent`, join table rows are deleted, foreign keys are nulled
        """
        if self.is_many_to_many:
            self.session.execute(self.via_table.delete().where(and_(*self._via_criteria(parent, target))))
        elif self.multiple:
            getattr(parent, self.name).remove(target)
        else:
            setattr(parent, self.name, None)

    def sever_all(self, parent) -> None:
        """
        Unlink all targets from `parent`
        """
        if self.is_many_to_many:
            self.session.execute(self.via_table.delete().where(and_(*self._via_criteria(parent))))
        elif self.multiple:
            keys = {_attr_key(self.target_class, column): getattr(parent, attr_name) for attr_name, column in self.parent_pairs}
            values = {attr_key: None for attr_key in keys}
            self.session.query(self.target_class).filter_by(**keys).update(values, synchronize_session="fetch")
        else:
            setattr(parent, self.name, None)


def _attr_key(model_class, column) -> str:
    return sqla_inspect(model_class).get_property_by_column(column).key


def _mapped_class_for(mapper, table):
    """
    :return: the class mapped to `table` in the registry of `mapper`, or None
    """
    for candidate in mapper.registry.mappers:
        if candidate.local_table is table:
            return candidate.class_
    return None


def describe_relation(model_class, relation_name: str) -> RelationDescriptor:
    """
    Resolve the relationship `relation_name` of `model_class`, called once per relation when the routes are built
    The join entity class of a MANYTOMANY relationship is looked up in the mapper registry,
    it can also be set explicitly with `relationship(..., info={"via_class": JoinClass})`
    :raise ConfigurationError: the relationship doesn't exist or can't be exposed
    """
    try:
        mapper = sqla_inspect(model_class)
    except NoInspectionAvailable:
        raise ConfigurationError(f'"{model_class}" is not a mapped class')

    if relation_name not in mapper.relationships:
        raise ConfigurationError(f'"{model_class.__name__}" has no relation named "{relation_name}"')

    relationship = mapper.relationships[relation_name]
    target_class = relationship.mapper.class_
    if not issubclass(target_class, NestedBase):
        raise ConfigurationError(f'"{target_class.__name__}" should inherit from NestedBase')

    if relationship.secondary is not None and not relationship.uselist:
        raise ConfigurationError(f'"{relation_name}" is a single-valued relation with a join table')

    parent_mapper, target_mapper = mapper, relationship.mapper
    via_table = via_class = None
    if relationship.direction == MANYTOMANY:
        via_table = relationship.secondary
        via_class = relationship.info.get("via_class") or _mapped_class_for(mapper, via_table)
        if via_class is not None and not issubclass(via_class, NestedBase):
            raise ConfigurationError(f'"{via_class.__name__}" should inherit from NestedBase')
        parent_pairs = [(parent_mapper.get_property_by_column(src).key, dest) for src, dest in relationship.synchronize_pairs]
        target_pairs = [
            (target_mapper.get_property_by_column(src).key, dest) for src, dest in relationship.secondary_synchronize_pairs
        ]
    elif relationship.direction == ONETOMANY:
        parent_pairs = [(parent_mapper.get_property_by_column(src).key, dest) for src, dest in relationship.synchronize_pairs]
        target_pairs = []
    elif relationship.direction == MANYTOONE:
        parent_pairs = []
        target_pairs = [(target_mapper.get_property_by_column(src).key, dest) for src, dest in relationship.synchronize_pairs]
    else:  # pragma: no cover
        raise ConfigurationError(f"Unknown relationship direction for relationship {relation_name}: {relationship.direction}")

    descriptor = RelationDescriptor(
        name=relation_name,
        parent_class=model_class,
        target_class=target_class,
        direction=relationship.direction,
        multiple=bool(relationship.uselist),
        parent_pairs=tuple(parent_pairs),
        target_pairs=tuple(target_pairs),
        via_table=via_table,
        via_class=via_class,
    )
    nested_rest.log.debug(f"{model_class.__name__}.{relation_name}: {relationship.direction.name} => {target_class.__name__}")
    return descriptor
