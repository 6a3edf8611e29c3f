"""
Request class that parses the controller query arguments:
- where: json filter in the query string or in the body
- attributes: the columns to load
- limit, offset, orderBy, order
- page (used by the paginate middleware)

The paginate middleware overrides limit, offset and orderBy for the next
handler in the chain, that's why the arguments are copied to a mutable ctrl_args
"""

import json
from flask import Request
from werkzeug.datastructures import MultiDict
from werkzeug.utils import cached_property
from .config import get_config
from .errors import ValidationError
from .util import parse_int, parse_list


# pylint: disable=too-many-ancestors
class CtrlRequest(Request):
    """
    Parse the controller request arguments
    """

    @cached_property
    def ctrl_args(self) -> MultiDict:
        """
        :return: mutable copy of the query string arguments
        """
        return MultiDict(self.args)

    @property
    def body(self):
        """
        :return: the json request body, None if there is none
        """
        return self.get_json(silent=True)

    @property
    def where(self):
        """
        The where filter is taken from the "where" query argument if it contains
        a json object or array. Otherwise the json body is used as filter.

        :return: dict or list
        """
        where_arg = self.ctrl_args.get("where", "")
        try:
            where = json.loads(where_arg) if where_arg else None
        except ValueError:
            where = None
        if isinstance(where, (dict, list)):
            return where

        body = self.body
        if isinstance(body, (dict, list)):
            return body
        return {}

    @property
    def attributes(self):
        """
        :return: list of attribute (column) names or None
        """
        attributes = parse_list(self.ctrl_args.getlist("attributes"))
        return attributes or None

    @property
    def limit(self):
        limit = parse_int(self.ctrl_args.get("limit"))
        if limit is not None and limit < 0:
            return None
        return limit

    @property
    def offset(self):
        offset = parse_int(self.ctrl_args.get("offset"))
        if offset is not None and offset < 0:
            return None
        return offset

    @property
    def order_by(self):
        return self.ctrl_args.get("orderBy") or self.ctrl_args.get("order_by") or None

    @property
    def order(self):
        """
        :return: sort direction, "ASC" or "DESC"
        """
        order = str(self.ctrl_args.get("order") or get_config("DEFAULT_ORDER") or "ASC").upper()
        if order not in ("ASC", "DESC"):
            raise ValidationError(f"Invalid order '{order}', use ASC or DESC")
        return order

    @property
    def page(self):
        return self.ctrl_args.get("page")
