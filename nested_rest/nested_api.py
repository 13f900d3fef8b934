# nested_api.py: exposes the relationships of NestedBase models as nested REST endpoints
#
# pylint: disable=logging-format-interpolation,protected-access,line-too-long
import logging
from functools import wraps
from http import HTTPStatus
from typing import Callable, Dict, Type
import werkzeug.exceptions
from flask import Flask, jsonify, make_response
from flask_sqlalchemy import SQLAlchemy
import nested_rest
from .actions import NESTED_ACTIONS, NestedAction
from .errors import ConfigurationError, NestedRestError
from .json_encoder import NestedJSONProvider
from .url_rule import HTTP_VERBS, NestedUrlRule


class NestedRestAPI:
    """
    Registers the nested routes of the exposed models on a Flask app

    :param app: Flask app
    :param prefix: url prefix of all nested routes, eg. "/api"
    :param app_db: flask_sqlalchemy.SQLAlchemy instance
    :param json_encoder: flask json provider class
    :param kwargs: configuration, see NestedRest
    """

    def __init__(self, app: Flask, prefix: str = "", app_db: SQLAlchemy = None, json_encoder: Type[NestedJSONProvider] = None, **kwargs) -> None:
        nested_rest.NestedRest(app, app_db=app_db, **kwargs)
        self.app = app
        self.prefix = prefix
        self.url_rules = []
        self._prefixes = {}
        app.json = (json_encoder or NestedJSONProvider)(app)

    def expose_nested(
        self,
        model_class,
        relations,
        resource_name: str = None,
        link_attribute: str = None,
        module_prefix: str = None,
        only=(),
        except_=(),
        extra_patterns: Dict[str, str] = None,
        tokens: Dict[str, str] = None,
        patterns: Dict[str, str] = None,
        check_access: Callable = None,
        via_wrapper: str = None,
        actions: Dict[str, Type[NestedAction]] = None,
        decorators=(),
        **properties,
    ) -> NestedUrlRule:
        """
        Create the nested routes for the `relations` of `model_class`

        :param model_class: the parent class, a NestedBase subclass
        :param relations: relationship names, see NestedUrlRule
        :param check_access: callable(action_id, subject), raise an exception or return False to deny access
        :param via_wrapper: body field holding the join entity payload in create requests
        :param actions: action id => NestedAction subclass, extends or overrides the default actions
        :param decorators: extra view decorators
        :param properties: additional class attributes of the generated views
        :return: the NestedUrlRule holding the generated rules
        """
        url_rule = NestedUrlRule(
            model_class,
            relations,
            resource_name=resource_name,
            link_attribute=link_attribute,
            module_prefix=module_prefix,
            url_prefix=self.prefix,
            only=only,
            except_=except_,
            extra_patterns=extra_patterns,
            tokens=tokens,
            patterns=patterns,
        )
        for prefix in url_rule.prefixes:
            if prefix in self._prefixes:
                raise ConfigurationError(f'"{prefix}" of {model_class.__name__} is already exposed by {self._prefixes[prefix]}')

        action_classes = dict(NESTED_ACTIONS, **(actions or {}))
        properties.update(
            check_access=staticmethod(check_access) if check_access else None,
            via_wrapper=via_wrapper,
            url_rule=url_rule,
        )

        view_funcs = {}
        for relation_name, rule in url_rule.iter_rules():
            action_id = rule.endpoint.rsplit(".", 1)[-1]
            action_class = action_classes.get(action_id)
            if action_class is None:
                raise ConfigurationError(f'No action registered for "{action_id}"')
            view_func = view_funcs.get(rule.endpoint)
            if view_func is None:
                api_class_name = f"{model_class.__name__}_{relation_name}_{action_class.__name__}"
                api_class = api_decorator(type(api_class_name, (action_class,), dict(properties, action_id=action_id)), decorators)
                view_func = view_funcs[rule.endpoint] = api_class.as_view(rule.endpoint)
            nested_rest.log.info(f"Exposing {model_class.__name__}.{relation_name} {action_id} on {rule.rule}, endpoint: {rule.endpoint}")
            self.app.add_url_rule(
                rule.rule,
                endpoint=rule.endpoint,
                view_func=view_func,
                methods=sorted(rule.methods) if rule.methods else list(HTTP_VERBS),
                defaults=url_rule.route_context(relation_name),
                provide_automatic_options=False,
                strict_slashes=False,
            )

        for prefix in url_rule.prefixes:
            self._prefixes[prefix] = model_class.__name__
        self.url_rules.append(url_rule)
        return url_rule

    def parse_request(self, path, method: str = "GET"):
        """
        :return: (endpoint, parameters) of the first exposed nested route matching the request, or None
        """
        for url_rule in self.url_rules:
            result = url_rule.parse_request(path, method)
            if result is not None:
                return result
        return None

    def create_url(self, endpoint: str, params: dict):
        """
        :return: the url of a nested route or None
        """
        for url_rule in self.url_rules:
            url = url_rule.create_url(endpoint, params)
            if url:
                return url
        return None


def api_decorator(cls, decorators=()):
    """Decorator for the API views:
        - add generic exception handling
        - add the custom view decorators

    :param cls: The class that will be decorated (e.g. NestedIndexAction)
    :return: decorated class
    """
    cls.decorators = [http_method_decorator] + list(decorators)
    return cls


def http_method_decorator(fun: Callable) -> Callable:
    """Decorator for the nested views
    - commit the database
    - convert all exceptions to a JSON serializable error

    This method will be called for all requests
    :param fun:
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        nested_exception = None
        status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
        message = ""
        try:
            result = fun(*args, **kwargs)
            nested_rest.DB.session.commit()
            return result

        except werkzeug.exceptions.NotFound as exc:
            # this also catches nested_rest.errors.NotFoundError
            status_code = HTTPStatus.NOT_FOUND.value
            nested_exception = exc
            message = HTTPStatus.NOT_FOUND.description

        except NestedRestError as exc:
            nested_rest.log.exception(exc)
            nested_exception = exc

        except werkzeug.exceptions.HTTPException as exc:
            status_code = exc.code
            message = exc.description
            nested_rest.log.error(message)

        except Exception as exc:
            nested_rest.log.exception(exc)
            if nested_rest.log.getEffectiveLevel() > logging.DEBUG:
                message = "Logging Disabled"
            else:
                message = str(exc)

        status_code = getattr(nested_exception, "status_code", status_code)
        api_code = getattr(nested_exception, "api_code", status_code)
        title = getattr(nested_exception, "message", message)
        detail = getattr(nested_exception, "detail", title)

        nested_rest.DB.session.rollback()
        errors = dict(title=title, detail=detail, code=str(api_code))
        return make_response(jsonify(errors=[errors]), status_code)

    return method_wrapper
