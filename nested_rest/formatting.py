# Response formatting and pagination
#
# pylint: disable=logging-format-interpolation
from flask import request
import nested_rest
from .config import get_config


def paginate(object_query):
    """
    this is where the query is executed, hence it's the bottleneck of the queries

    A server MAY choose to limit the number of resources returned
    in a response to a subset (“page”) of the whole set available.
    We use page[offset] and page[limit], where
    offset is the number of records to offset by prior to returning resources

    The following keys are used for pagination links:
    first, self, last, prev, next

    :param object_query: SQLAlchemy query object
    :return: links, instances, count
    """

    def get_link(offset, limit):
        ignore_args = "page[offset]", "page[limit]", "page[number]", "page[size]"
        return f"{request.base_url}?" + "&".join(
            [f"{k}={v}" for k, v in request.args.items() if k not in ignore_args] + [f"page[offset]={offset}&page[limit]={limit}"]
        )

    page_offset = request.page_offset
    limit = request.page_limit

    if limit <= 0:
        limit = 1
    if limit > get_config("MAX_PAGE_LIMIT"):
        limit = get_config("MAX_PAGE_LIMIT")
    if page_offset <= 0:
        page_offset = 0
    if page_offset > get_config("MAX_PAGE_OFFSET"):
        page_offset = get_config("MAX_PAGE_OFFSET")
    page_base = int(page_offset / limit) * limit

    count = object_query.count()

    first_args = (0, limit)
    last_args = (((count - 1) // limit) * limit if count > 0 else 0, limit)  # offset of the last non-empty page
    self_args = (page_base if page_base <= last_args[0] else last_args[0], limit)
    next_args = (page_offset + limit, limit) if page_offset + limit <= last_args[0] else last_args
    prev_args = (page_offset - limit, limit) if page_offset > limit else first_args

    links = {
        "first": get_link(*first_args),
        "self": get_link(page_offset, limit),
        "last": get_link(*last_args),
        "prev": get_link(*prev_args),
        "next": get_link(*next_args),
    }

    if last_args == self_args:
        del links["last"]
    if first_args == self_args:
        del links["first"]
    if next_args == last_args:
        del links["next"]
    if prev_args == first_args:
        del links["prev"]

    instances = object_query.offset(page_offset).limit(limit).all()
    nested_rest.log.debug(f"paginate: offset {page_offset}, limit {limit}, count {count}")
    return links, instances, {"count": count, "limit": limit, "offset": page_offset}


def format_response(data=None, meta=None, links=None, errors=None) -> dict:
    """
    Create the response dict
    :param data: the objects that will be serialized
    :return: dictionary
    """
    result = dict(data=data)
    if errors:
        result["errors"] = errors
    if meta:
        result["meta"] = meta
    if links:
        result["links"] = links
    return result


def format_errors(instance) -> list:
    """
    :param instance: NestedBase instance carrying validation errors
    :return: error objects, one for every error message
    """
    errors = []
    for attr_name, messages in instance._s_errors.items():
        for message in messages:
            errors.append(dict(title="Validation Error: ", detail=message, source={"parameter": attr_name}))
    return errors
