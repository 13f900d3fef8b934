#
import re
from typing import Callable, List
import inflection


class ClassPropertyDescriptor:
    """
    ClassPropertyDescriptor
    """

    def __init__(self, fget: classmethod, fset: None = None) -> None:
        self.fget = fget
        self.fset = fset

    def __get__(self, obj, klass=None):
        if klass is None:
            klass = type(obj)
        return self.fget.__get__(obj, klass)()

    def __set__(self, obj, value):
        if not self.fset:
            raise AttributeError("can't set attribute")
        type_ = type(obj)
        return self.fset.__get__(obj, type_)(value)


def classproperty(func: Callable) -> ClassPropertyDescriptor:
    """
    classproperty
    """
    if not isinstance(func, (classmethod, staticmethod)):
        func = classmethod(func)

    return ClassPropertyDescriptor(func)


def camel2id(name: str) -> str:
    """
    :param name: CamelCase or snake_case name, eg. "BlogPost"
    :return: dasherized lowercase name, eg. "blog-post"
    """
    return inflection.dasherize(inflection.underscore(name))


def url_name(relation_name: str) -> str:
    """
    :return: the url segment of a relation: "postTags" => "post-tags"
    """
    return inflection.pluralize(camel2id(relation_name))


def controller_name(relation_name: str) -> str:
    """
    :return: the singular name used in endpoints: "postTags" => "post-tag"
    """
    return inflection.singularize(camel2id(relation_name))


def split_ids(ids: str) -> List[str]:
    """
    Split a comma separated id list, empty tokens are dropped and duplicates
    are removed while keeping the order of appearance
    :param ids: "1,2 , 3"
    :return: ["1", "2", "3"]
    """
    tokens = [token for token in re.split(r"\s*,\s*", str(ids).strip()) if token]
    return list(dict.fromkeys(tokens))
