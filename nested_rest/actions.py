# actions.py: the views serving the nested relationship routes
#
# The views are flask MethodView subclasses, NestedRestAPI.expose_nested creates a subclass for every
# exposed endpoint and sets the class attributes (check_access, via_wrapper, url_rule, ...)
#
# The route context is found in the view args:
#   relative_class: the parent model class
#   relation_name: the relationship of the parent class
#   link_attribute: the name of the view arg holding the parent id
#
# pylint: disable=protected-access,logging-format-interpolation,unused-argument
from http import HTTPStatus
from flask import jsonify, make_response, request
from flask.views import MethodView
import nested_rest
from .config import get_config
from .errors import ConfigurationError, NotFoundError
from .formatting import format_errors, format_response, paginate
from .link_state import LinkStateEngine, LinkStatus, authorize
from .url_rule import ROUTE_CONTEXT_KEYS
from .util import split_ids


class NestedAction(MethodView):
    """
    Base view for the nested actions

    check_access: callable(action_id, subject), raise an exception or return False to reject the request.
                  subject is None for checks that don't concern a specific instance
    """

    action_id = None
    check_access = None
    via_wrapper = None
    url_rule = None

    def __init__(self, *args, **kwargs):
        params = request.view_args or {}
        if not all(params.get(key) for key in ROUTE_CONTEXT_KEYS) or not params.get(params.get("link_attribute")):
            raise ConfigurationError(f"unexpected configurations for {self.__class__.__name__}: {params}")
        super().__init__(*args, **kwargs)
        self.relative_class = params["relative_class"]
        self.relation_name = params["relation_name"]
        self.link_attribute = params["link_attribute"]
        self.relative_id = params[self.link_attribute]
        descriptors = self.url_rule.descriptors if self.url_rule is not None else {}
        if self.relation_name not in descriptors:
            raise ConfigurationError(f'"{self.relation_name}" is not routed by {self.url_rule}')
        self.descriptor = descriptors[self.relation_name]

    @property
    def model_class(self):
        return self.descriptor.target_class

    def authorize(self, subject=None) -> None:
        authorize(self.check_access, self.action_id, subject)

    def get_relative_model(self):
        """
        :return: the parent instance
        :raise NotFoundError: the parent doesn't exist
        """
        relative_model = self.relative_class.get_instance(self.relative_id, failsafe=True)
        if relative_model is None:
            raise NotFoundError(f"{self.relative_class.__name__} '{self.relative_id}' not found.")
        self.authorize(relative_model)
        return relative_model

    def find_current_models(self, ids):
        """
        :param ids: comma separated target ids, eg. "2,3"
        :return: the related target, or a list of targets in the requested order when a comma separated list was requested
        :raise NotFoundError: a target doesn't exist or isn't related to the parent
        """
        id_list = split_ids(ids)
        relative_model = self.get_relative_model()
        pk_values = [self.model_class._s_coerce_id(target_id) for target_id in id_list]
        models = self.descriptor.scoped_query(relative_model).filter(self.model_class._s_pk_attr.in_(pk_values)).all()
        if not id_list or len(models) != len(id_list):
            raise NotFoundError("Not found or unrelated objects.")
        if "," in str(ids):
            order = {pk: index for index, pk in enumerate(pk_values)}
            return sorted(models, key=lambda model: order[getattr(model, self.model_class._s_pk_name)])
        return models[0]

    def engine(self, relative_model) -> LinkStateEngine:
        return LinkStateEngine(relative_model, self.descriptor, check_access=self.check_access, action_id=self.action_id)

    def outcome_response(self, outcome):
        """
        :param outcome: LinkOutcome
        :return: the response for a link or unlink outcome
        """
        if outcome.status is LinkStatus.INVALID:
            return self.invalid_response(outcome.instance)
        return make_response("", outcome.status.value)

    @staticmethod
    def invalid_response(instance):
        """
        The instance carrying validation errors is sent back with the errors,
        nothing written by the request is committed
        """
        data = format_response(data=instance, errors=format_errors(instance))
        # jsonify serializes the instance before the rollback expires it
        response = make_response(jsonify(data), get_config("VALIDATION_ERROR_STATUS"))
        nested_rest.DB.session.rollback()
        return response


class NestedIndexAction(NestedAction):
    def get(self, **kwargs):
        """
        summary: Retrieve the related items
        responses:
            200:
                description: paginated list of the related items
            403:
                description: Forbidden
            404:
                description: Parent Not Found
        """
        self.authorize()
        relative_model = self.get_relative_model()
        query = self.descriptor.scoped_query(relative_model).order_by(self.model_class._s_pk_attr)
        links, instances, meta = paginate(query)
        return make_response(jsonify(format_response(data=instances, meta=meta, links=links)), HTTPStatus.OK)


class NestedViewAction(NestedAction):
    def get(self, IDs=None, **kwargs):  # pylint: disable=invalid-name
        """
        summary: Retrieve one or more related items
        responses:
            200:
                description: the item, or a list of items when multiple ids were requested
            404:
                description: Not found or unrelated objects
        """
        models = self.find_current_models(IDs)
        for model in models if isinstance(models, list) else [models]:
            self.authorize(model)
        return make_response(jsonify(format_response(data=models)), HTTPStatus.OK)


class NestedCreateAction(NestedAction):
    def post(self, **kwargs):
        """
        summary: Create a new item and link it to the parent
        responses:
            201:
                description: Created, the Location header holds the url of the new item
            400:
                description: Invalid payload
            404:
                description: Parent Not Found
        """
        self.authorize()
        relative_model = self.get_relative_model()
        outcome = self.engine(relative_model).create(request.get_body_params(), via_wrapper=self.via_wrapper)
        if outcome.status is LinkStatus.INVALID:
            return self.invalid_response(outcome.instance)
        response = make_response(jsonify(format_response(data=outcome.instance)), HTTPStatus.CREATED)
        response.headers["Location"] = self.location(outcome.instance)
        return response

    def location(self, instance) -> str:
        """
        :return: the url of the created instance
        """
        url = None
        if self.url_rule is not None:
            view_endpoint = request.endpoint.rsplit(".", 1)[0] + ".nested-view"
            url = self.url_rule.create_url(view_endpoint, {self.link_attribute: self.relative_id, "IDs": instance.jsonapi_id})
        if url is None:
            return f"{request.base_url.rstrip('/')}/{instance.jsonapi_id}"
        return request.host_url.rstrip("/") + request.script_root + url


class NestedLinkAction(NestedAction):
    def put(self, IDs=None, **kwargs):  # pylint: disable=invalid-name
        """
        summary: Link existing items to the parent, the payload is stored in the join table/entity
        responses:
            204:
                description: Linked
            304:
                description: Nothing changed
            400:
                description: Already linked
            404:
                description: Not Found
        """
        relative_model = self.get_relative_model()
        outcome = self.engine(relative_model).link(split_ids(IDs), request.get_body_params())
        return self.outcome_response(outcome)


class NestedUnlinkAction(NestedAction):
    def delete(self, IDs=None, **kwargs):  # pylint: disable=invalid-name
        """
        summary: Unlink items from the parent
        responses:
            204:
                description: Unlinked
            400:
                description: Not linked
            404:
                description: Parent Not Found
        """
        relative_model = self.get_relative_model()
        return self.outcome_response(self.engine(relative_model).unlink(split_ids(IDs)))


class NestedUnlinkAllAction(NestedAction):
    def delete(self, **kwargs):
        relative_model = self.get_relative_model()
        return self.outcome_response(self.engine(relative_model).unlink_all())


class NestedOptionsAction(NestedAction):
    """
    Responds to OPTIONS requests with the allowed methods,
    other methods routed here are not allowed
    """

    collection_options = ("GET", "POST", "HEAD", "DELETE", "OPTIONS")
    resource_options = ("GET", "PUT", "DELETE", "HEAD", "OPTIONS")

    def dispatch_request(self, id=None, **kwargs):  # pylint: disable=redefined-builtin,invalid-name
        options = self.resource_options if id else self.collection_options
        status_code = HTTPStatus.OK if request.method == "OPTIONS" else HTTPStatus.METHOD_NOT_ALLOWED
        nested_rest.log.debug(f"{request.method} {request.path}: {status_code.value}")
        response = make_response("", status_code)
        response.headers["Allow"] = ", ".join(options)
        return response


NESTED_ACTIONS = {
    "nested-index": NestedIndexAction,
    "nested-view": NestedViewAction,
    "nested-create": NestedCreateAction,
    "nested-link": NestedLinkAction,
    "nested-unlink": NestedUnlinkAction,
    "nested-unlink-all": NestedUnlinkAllAction,
    "options": NestedOptionsAction,
}
