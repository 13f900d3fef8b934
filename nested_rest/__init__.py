# flake8: noqa: F401
#
# nested_rest exposes the relationships of SQLAlchemy models as nested REST routes:
#   /posts/1/comments, /posts/1/comments/2,3
#
from .nested_init import DB, log, NestedRest
from .errors import ConfigurationError, ValidationError, GenericError, UnAuthorizedError, NotFoundError
from .request import NestedRequest
from .json_encoder import NestedJSONProvider
from .base import NestedBase
from .relation import RelationDescriptor, describe_relation
from .url_rule import NestedUrlRule, IdListConverter
from .link_state import LinkStateEngine, LinkPlan, LinkOutcome, LinkStatus
from .actions import (
    NestedAction,
    NestedIndexAction,
    NestedViewAction,
    NestedCreateAction,
    NestedLinkAction,
    NestedUnlinkAction,
    NestedUnlinkAllAction,
    NestedOptionsAction,
)
from .formatting import paginate, format_response
from .nested_api import NestedRestAPI
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "NestedRestAPI",
    "NestedRest",
    # db:
    "NestedBase",
    "RelationDescriptor",
    "describe_relation",
    # routing:
    "NestedUrlRule",
    "IdListConverter",
    # linking:
    "LinkStateEngine",
    "LinkPlan",
    "LinkOutcome",
    "LinkStatus",
    # actions:
    "NestedAction",
    "NestedIndexAction",
    "NestedViewAction",
    "NestedCreateAction",
    "NestedLinkAction",
    "NestedUnlinkAction",
    "NestedUnlinkAllAction",
    "NestedOptionsAction",
    "paginate",
    "format_response",
    "NestedJSONProvider",
    # Errors:
    "ConfigurationError",
    "ValidationError",
    "GenericError",
    "UnAuthorizedError",
    "NotFoundError",
    # request
    "NestedRequest",
)
