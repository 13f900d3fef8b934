# base.py: implements the NestedBase SQLAlchemy db Mixin
#
# pylint: disable=logging-format-interpolation,no-self-argument,no-member,line-too-long,protected-access
#
"""
NestedBase class customizable attributes and methods, override these to customize the behavior
of the models exposed through nested relationship endpoints.

exclude_attrs:
Type: List[str]
Description: attribute names that are neither serialized nor loaded from request payloads.

allow_client_generated_ids:
Type: bool
Description: whether the primary key may be set from a request payload.

validate:
Type: method
Description: validation hook called before the instance is saved, use `_s_add_error` to report errors.

_s_safe_attributes:
Type: classproperty
Description: names of the attributes that may be mass-assigned from a request payload.

_s_load:
Type: method
Description: assign the safe attributes found in a payload.

_s_save:
Type: method
Description: validate and flush the instance, returns False when it couldn't be saved.
"""
import sqlalchemy
from sqlalchemy import inspect as sqla_inspect
from flask_sqlalchemy.model import Model
import nested_rest
from .errors import NotFoundError
from .util import classproperty


class NestedBase(Model):
    """This SQLAlchemy mixin provides the lookup, mass-assignment, validation and serialization
    used by the nested actions.

    This class is used as a sqla model mixin therefore the object attributes should not
    match column names or sqla attribute names, this is why the methods & properties have
    the distinguishing `_s_` prefix
    """

    allow_client_generated_ids = False  # Indicates whether the client is allowed to create the id
    exclude_attrs = []  # list of attribute names that should not be serialized or loaded

    _s_pk_delimiter = "_"

    @classproperty
    def _s_column_attrs(cls):
        """
        :return: the mapped column properties
        """
        return list(sqla_inspect(cls).column_attrs)

    @classproperty
    def _s_pk_names(cls) -> list:
        """
        :return: the attribute names of the primary keys
        """
        mapper = sqla_inspect(cls)
        return [mapper.get_property_by_column(col).key for col in mapper.primary_key]

    @classproperty
    def _s_pk_name(cls) -> str:
        """
        :return: the attribute name of the (first) primary key
        """
        return cls._s_pk_names[0]

    @classproperty
    def _s_pk_attr(cls):
        """
        :return: the instrumented attribute of the primary key, to be used in queries
        """
        return getattr(cls, cls._s_pk_name)

    @classproperty
    def _s_safe_attributes(cls) -> list:
        """
        :return: list of attribute names that can be set from a request payload
        """
        result = []
        pk_names = cls._s_pk_names
        for prop in cls._s_column_attrs:
            if prop.key.startswith("_") or prop.key in cls.exclude_attrs:
                continue
            if prop.key in pk_names and not cls.allow_client_generated_ids:
                continue
            result.append(prop.key)
        return result

    @classmethod
    def _s_coerce_id(cls, value):
        """
        Convert a textual id to the python type of the primary key column
        :param value: id, eg. "1"
        :return: coerced id, eg. 1
        """
        column = sqla_inspect(cls).primary_key[0]
        try:
            python_type = column.type.python_type
        except NotImplementedError:  # pragma: no cover
            return value
        if isinstance(value, python_type):
            return value
        try:
            return python_type(value)
        except (TypeError, ValueError):
            raise NotFoundError(f'Invalid "{cls.__name__}" ID "{value}"')

    @classmethod
    def get_instance(cls, item=None, failsafe=False):
        """
        :param item: instance id
        :param failsafe: indicates whether we want an exception to be raised in case the id is not found
        :return: Instance or None. An error is raised if an invalid id is used
        """
        try:
            instance = nested_rest.DB.session.get(cls, cls._s_coerce_id(item))
        except NotFoundError:
            if failsafe:
                return None
            raise
        if instance is None and not failsafe:
            raise NotFoundError(f'Invalid "{cls.__name__}" ID "{item}"')
        return instance

    @property
    def jsonapi_id(self) -> str:
        """
        :return: the string id of the instance, composite keys are joined with `_s_pk_delimiter`
        """
        return self._s_pk_delimiter.join(str(getattr(self, name)) for name in self._s_pk_names)

    @property
    def _s_errors(self) -> dict:
        """
        :return: attribute name => list of error messages
        """
        errors = self.__dict__.get("_s_error_store")
        if errors is None:
            errors = self.__dict__["_s_error_store"] = {}
        return errors

    def _s_add_error(self, attr_name: str, message: str) -> None:
        self._s_errors.setdefault(attr_name, []).append(message)

    def _s_has_errors(self) -> bool:
        return bool(self._s_errors)

    def _s_load(self, data: dict) -> bool:
        """
        Mass-assign the safe attributes found in `data`, other keys are ignored.
        Errors raised by sqla `@validates` handlers are collected instead of propagated.
        The errors of a previous load are discarded.
        :param data: request payload
        :return: whether any attribute has been assigned
        """
        self._s_errors.clear()
        loaded = False
        safe_attributes = self._s_safe_attributes
        for attr_name, attr_val in (data or {}).items():
            if attr_name not in safe_attributes:
                continue
            try:
                setattr(self, attr_name, attr_val)
            except (ValueError, AssertionError) as exc:
                self._s_add_error(attr_name, str(exc))
            loaded = True
        return loaded

    def validate(self) -> None:
        """
        Override this to implement model validation rules
        """

    def _s_validate(self) -> bool:
        for prop in self._s_column_attrs:
            column = prop.columns[0]
            if column.nullable or column.primary_key or column.default is not None or column.server_default is not None:
                continue
            if getattr(self, prop.key) is None and prop.key not in self._s_errors:
                self._s_add_error(prop.key, f"{prop.key} cannot be blank.")
        self.validate()
        return not self._s_has_errors()

    def _s_save(self) -> bool:
        """
        Validate the instance and flush it to the database
        :return: False if the instance has validation errors or if the flush failed
        """
        if not self._s_validate():
            nested_rest.log.debug(f"Not saving {self.__class__.__name__}: {self._s_errors}")
            return False
        session = nested_rest.DB.session
        try:
            session.add(self)
            session.flush()
        except sqlalchemy.exc.SQLAlchemyError as exc:
            nested_rest.log.warning(f"Failed to save {self.__class__.__name__}: {exc}")
            session.rollback()
            return False
        return True

    def to_dict(self) -> dict:
        """
        :return: dictionary with the serialized column attributes
        """
        return {prop.key: getattr(self, prop.key) for prop in self._s_column_attrs if prop.key not in self.exclude_attrs}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.jsonapi_id}>"
