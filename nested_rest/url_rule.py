# url_rule.py: routing of nested relationship urls
#
# A NestedUrlRule generates the rules for the relationships of a model, for example
# the "comments" relationship of the "Post" model results in these rules:
#
#   GET,HEAD  /posts/<post_id>/comments/<IDs>   nested-view
#   GET,HEAD  /posts/<post_id>/comments         nested-index
#   POST      /posts/<post_id>/comments         nested-create
#   PUT       /posts/<post_id>/comments/<IDs>   nested-link
#   DELETE    /posts/<post_id>/comments/<IDs>   nested-unlink
#   DELETE    /posts/<post_id>/comments         nested-unlink-all
#   *         /posts/<post_id>/comments/<id>    options
#   *         /posts/<post_id>/comments         options
#
# The rules of each relationship are kept in a separate werkzeug Map so that the relationships
# are resolved independently and in declaration order.
#
# pylint: disable=logging-format-interpolation
import re
from types import MappingProxyType
from typing import Dict, Iterator, Optional, Tuple
import inflection
from werkzeug.exceptions import MethodNotAllowed, NotFound
from werkzeug.routing import BaseConverter, BuildError, Map, RequestRedirect, Rule, RuleFactory
import nested_rest
from .errors import ConfigurationError
from .relation import describe_relation
from .util import camel2id, controller_name, url_name

# the request parameters injected when a nested route matches
ROUTE_CONTEXT_KEYS = ("relative_class", "relation_name", "link_attribute")

HTTP_VERBS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


class IdListConverter(BaseConverter):
    """
    One or more ids separated by commas: "2" or "2,3"
    The value is kept as a string, it is split by the actions
    """

    regex = r"\d[\d,]*"


class DigitsConverter(BaseConverter):
    """
    A single numeric id, kept as a string
    """

    regex = r"\d+"


CONVERTERS = {"ids": IdListConverter, "digits": DigitsConverter}

DEFAULT_TOKENS = {"{id}": "<ids:id>", "{IDs}": "<ids:IDs>"}

DEFAULT_PATTERNS = {
    "GET,HEAD {IDs}": "nested-view",
    "GET,HEAD": "nested-index",
    "POST": "nested-create",
    "PUT {IDs}": "nested-link",
    "DELETE {IDs}": "nested-unlink",
    "DELETE": "nested-unlink-all",
    "{id}": "options",
    "": "options",
}

PATTERN_RE = re.compile(r"^((?:(?:GET|HEAD|POST|PUT|PATCH|DELETE|OPTIONS),?)*)\s*(.*)$")


def _normalize_relations(relations) -> Iterator[Tuple[str, str, str]]:
    """
    Relations can be configured as
    - "comments": url name "comments", controller "comment"
    - {"comments": "note"}: url name "comments", controller "note"
    - {"comments": {"remarks": "note"}} or {"comments": ("remarks", "note")}: url name "remarks", controller "note"
    :return: generator of (relation name, url name, controller) tuples
    """
    if isinstance(relations, str):
        relations = [relations]
    items = []
    for relation in relations.items() if isinstance(relations, dict) else relations:
        if isinstance(relation, str):
            items.append((relation, None))
        elif isinstance(relation, dict):
            items.extend(relation.items())
        elif isinstance(relation, (tuple, list)) and len(relation) == 2:
            items.append(tuple(relation))
        else:
            raise ConfigurationError(f"Invalid relation configuration: {relation}")

    for relation_name, value in items:
        if value is None:
            yield relation_name, url_name(relation_name), controller_name(relation_name)
        elif isinstance(value, str):
            yield relation_name, url_name(relation_name), value
        elif isinstance(value, dict) and len(value) == 1:
            (relation_url, controller), = value.items()
            yield relation_name, relation_url, controller
        elif isinstance(value, (tuple, list)) and len(value) == 2:
            yield relation_name, value[0], value[1]
        else:
            raise ConfigurationError(f'Invalid configuration for relation "{relation_name}": {value}')


class NestedUrlRule(RuleFactory):
    """
    Generates and resolves the nested rules of `model_class`

    :param model_class: the parent model class
    :param relations: the relationship names, see `_normalize_relations`
    :param resource_name: the first url segment, defaults to the pluralized, dasherized class name
    :param link_attribute: the name of the parent id parameter, defaults to "<class_name>_id"
    :param module_prefix: prefix of the generated endpoints
    :param url_prefix: api url prefix, eg. "/api"
    :param tokens: placeholders in the patterns and their rule replacements
    :param patterns: pattern => action id
    :param only: when set, only these actions are routed
    :param except_: these actions are not routed
    :param extra_patterns: patterns that take precedence over `patterns`
    """

    def __init__(
        self,
        model_class,
        relations,
        resource_name: str = None,
        link_attribute: str = None,
        module_prefix: str = None,
        url_prefix: str = "",
        tokens: Dict[str, str] = None,
        patterns: Dict[str, str] = None,
        only=(),
        except_=(),
        extra_patterns: Dict[str, str] = None,
    ) -> None:
        if model_class is None:
            raise ConfigurationError('"model_class" must be set.')
        if not relations:
            raise ConfigurationError('"relations" must be set.')

        self.model_class = model_class
        self.resource_name = resource_name or inflection.pluralize(camel2id(model_class.__name__))
        self.link_attribute = link_attribute or f"{inflection.underscore(model_class.__name__)}_id"
        if not self.link_attribute.isidentifier():
            raise ConfigurationError(f'Invalid link attribute "{self.link_attribute}"')
        self.module_prefix = module_prefix
        self.url_prefix = url_prefix.strip("/")
        self.tokens = dict(DEFAULT_TOKENS if tokens is None else tokens)
        self.only = frozenset(only)
        self.except_ = frozenset(except_)

        base_patterns = DEFAULT_PATTERNS if patterns is None else patterns
        extra_patterns = dict(extra_patterns or {})
        # extra patterns come first, they can override the default patterns
        self.patterns = MappingProxyType({**extra_patterns, **{k: v for k, v in base_patterns.items() if k not in extra_patterns}})

        self.prefix = "/".join(part for part in (self.url_prefix, self.resource_name, f"<digits:{self.link_attribute}>") if part)

        maps, descriptors, url_names = {}, {}, {}
        endpoints = set()
        for relation_name, relation_url, controller in _normalize_relations(relations):
            if relation_name in maps:
                raise ConfigurationError(f'Relation "{relation_name}" is configured more than once')
            if relation_url in url_names:
                raise ConfigurationError(
                    f'Relations "{url_names[relation_url]}" and "{relation_name}" share the url prefix "{relation_url}"'
                )
            # the relationship is validated before any rule is created
            descriptors[relation_name] = describe_relation(model_class, relation_name)
            url_names[relation_url] = relation_name
            maps[relation_name] = self._create_map(relation_url, controller, endpoints)

        self.url_names = MappingProxyType({name: url for url, name in url_names.items()})
        self.descriptors = MappingProxyType(descriptors)
        self._maps = MappingProxyType(maps)

    @property
    def prefixes(self) -> frozenset:
        """
        :return: the normalized url prefixes of the relationships, to detect overlapping rules
        """
        base = "/".join(part for part in (self.url_prefix, self.resource_name, "*") if part)
        return frozenset(f"{base}/{relation_url}" for relation_url in self.url_names.values())

    def endpoint(self, controller: str, action: str) -> str:
        parts = (self.module_prefix, self.resource_name, controller, action)
        return ".".join(part for part in parts if part)

    def _create_map(self, relation_url: str, controller: str, endpoints: set) -> Map:
        prefix = f"{self.prefix}/{relation_url}"
        rules = []
        for pattern, action in self.patterns.items():
            if action in self.except_ or (self.only and action not in self.only):
                continue
            endpoint = self.endpoint(controller, action)
            rule = self._create_rule(pattern, prefix, endpoint)
            # two patterns may route to the same action (eg. options)
            if (endpoint, rule.rule) in endpoints:
                raise ConfigurationError(f'Duplicate rule "{rule.rule}" for endpoint "{endpoint}"')
            endpoints.add((endpoint, rule.rule))
            rules.append(rule)
        if not rules:
            raise ConfigurationError(f'No rules created for "{prefix}", check "only" and "except_"')
        return Map(rules, converters=CONVERTERS, strict_slashes=False)

    def _create_rule(self, pattern: str, prefix: str, endpoint: str) -> Rule:
        match = PATTERN_RE.match(pattern)
        if match is None:  # pragma: no cover
            raise ConfigurationError(f'Invalid pattern "{pattern}"')
        verbs = [verb for verb in match.group(1).split(",") if verb]
        path = match.group(2)
        for token, replacement in self.tokens.items():
            path = path.replace(token, replacement)
        rule_string = "/" + f"{prefix}/{path}".strip("/")
        return Rule(rule_string, endpoint=endpoint, methods=verbs or None, strict_slashes=False)

    def route_context(self, relation_name: str) -> dict:
        """
        :return: the parameters injected in the matched request parameters
        """
        return {"relative_class": self.model_class, "relation_name": relation_name, "link_attribute": self.link_attribute}

    def iter_rules(self) -> Iterator[Tuple[str, Rule]]:
        """
        :return: generator of (relation name, rule), in declaration order
        """
        for relation_name, rule_map in self._maps.items():
            for rule in rule_map.iter_rules():
                yield relation_name, rule

    def get_rules(self, map):  # pylint: disable=redefined-builtin
        """
        RuleFactory implementation, allows the factory to be added to a werkzeug Map:
        the generated rules carry the route context as defaults
        """
        for relation_name, rule in self.iter_rules():
            yield Rule(
                rule.rule,
                endpoint=rule.endpoint,
                methods=rule.methods,
                defaults=self.route_context(relation_name),
                strict_slashes=False,
            )

    def parse_request(self, path, method: str = "GET") -> Optional[Tuple[str, dict]]:
        """
        Resolve a request path
        :param path: url path or request object
        :param method: http method, ignored when `path` is a request object
        :return: (endpoint, parameters) or None when no rule matches
        """
        if not isinstance(path, str):
            method, path = path.method, path.path
        for relation_name, rule_map in self._maps.items():
            adapter = rule_map.bind("localhost")
            try:
                endpoint, params = adapter.match(path, method)
            except (NotFound, MethodNotAllowed, RequestRedirect):
                continue
            params.update(self.route_context(relation_name))
            nested_rest.log.debug(f"{method} {path} => {endpoint} {params}")
            return endpoint, params
        return None

    def create_url(self, endpoint: str, params: dict) -> Optional[str]:
        """
        Build the url of a nested route
        :param endpoint: endpoint of the route
        :param params: route parameters, the route context parameters are ignored
        :return: url path or None if no rule can be built
        """
        params = {key: value for key, value in params.items() if key not in ROUTE_CONTEXT_KEYS}
        for rule_map in self._maps.values():
            adapter = rule_map.bind("localhost")
            try:
                url = adapter.build(endpoint, params)
            except BuildError:
                continue
            if url:
                return url
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.prefix} {list(self._maps)}>"
