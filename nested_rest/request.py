"""
The request class parses the paging arguments and the request payload
"""
from flask import Request
import nested_rest
from .config import get_config
from .errors import ValidationError


# pylint: disable=too-many-ancestors, logging-format-interpolation
class NestedRequest(Request):
    """
    Parse the request arguments used by the nested actions:
    - query args: page[limit], page[offset] (or page[number] and page[size])
    - body: json object or form data
    """

    @property
    def page_offset(self) -> int:
        """
        :return: page offset requested by the client when fetching lists

        If the client uses page[number] instead of page[offset], then we transform the
        number parameter to an offset
        """
        page_offset = self.args.get("page[offset]", 0, type=int)
        if page_offset == 0 and "page[number]" in self.args and "page[size]" in self.args:
            page_size = self.args.get("page[size]", 0, type=int)
            page_number = self.args.get("page[number]", 1, type=int) - 1
            page_offset = page_number * page_size
        return page_offset

    @property
    def page_limit(self) -> int:
        """
        :return: page limit requested by the client when fetching lists
        """
        page_limit = self.args.get("page[limit]", get_config("DEFAULT_PAGE_LIMIT"), type=int)
        if "page[number]" in self.args and "page[size]" in self.args:
            return self.args.get("page[size]", page_limit, type=int)
        return page_limit

    def get_body_params(self) -> dict:
        """
        :return: the request body as a dict, json bodies take precedence over form data
        """
        if self.method in ("GET", "HEAD", "OPTIONS"):
            return {}
        if self.is_json:
            result = self.get_json(silent=True)
        else:
            result = self.form.to_dict()
        if result is None:
            nested_rest.log.debug(f'Empty or unparsable body, content type "{self.content_type}"')
            return {}
        if not isinstance(result, dict):
            raise ValidationError(f"Invalid JSON Payload : {result}")
        return result
