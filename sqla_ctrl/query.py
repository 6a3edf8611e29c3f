# Query formatting functions, the request arguments are applied to an sqla query:
# - where (json filter)
# - attributes (columns to load)
# - orderBy / order
# - offset / limit
#
# Query formatting follows filter -> sort -> paginate
#
import operator
import sqlalchemy
from flask import request
from sqlalchemy import and_, or_, not_, true
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.orm import load_only
import sqla_ctrl
from .errors import ValidationError


def _in(attr, val):
    if not isinstance(val, list):
        raise ValidationError(f'Invalid "in" value {val}, a list is required')
    return attr.in_(val)


def _not_in(attr, val):
    if not isinstance(val, list):
        raise ValidationError(f'Invalid "notIn" value {val}, a list is required')
    return attr.not_in(val)


def _between(attr, val):
    if not isinstance(val, list) or len(val) != 2:
        raise ValidationError(f'Invalid "between" value {val}, a [low, high] list is required')
    return attr.between(*val)


# where operators, the keys may be prefixed with a "$"
OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "like": lambda attr, val: attr.like(val),
    "notLike": lambda attr, val: attr.not_like(val),
    "iLike": lambda attr, val: attr.ilike(val),
    "notILike": lambda attr, val: attr.not_ilike(val),
    "startsWith": lambda attr, val: attr.startswith(val, autoescape=True),
    "endsWith": lambda attr, val: attr.endswith(val, autoescape=True),
    "substring": lambda attr, val: attr.contains(val, autoescape=True),
    "in": _in,
    "notIn": _not_in,
    "between": _between,
    "notBetween": lambda attr, val: not_(_between(attr, val)),
    "is": lambda attr, val: attr.is_(val),
    "not": lambda attr, val: attr.is_not(val),
}

# logical operators, combining sub-filters
LOGICAL_OPERATORS = {
    "and": and_,
    "or": or_,
    "not": lambda *criteria: not_(and_(*criteria)),
}


SCALAR_TYPES = (str, int, float, bool, type(None))

# operators that take a list of values
LIST_OPERATORS = ("in", "notIn", "between", "notBetween")


def check_operand(attr_name, op_name, value):
    """
    Operands are json scalars, or lists of scalars for the LIST_OPERATORS
    """
    values = value if op_name in LIST_OPERATORS and isinstance(value, list) else [value]
    for val in values:
        if not isinstance(val, SCALAR_TYPES):
            raise ValidationError(f"Invalid '{op_name}' value {value} for '{attr_name}'")


def get_column_attr(model, attr_name):
    """
    :param model: sqla model class
    :param attr_name: name of a column attribute
    :return: instrumented attribute, a ValidationError is raised for unknown attributes
    """
    if not isinstance(attr_name, str) or attr_name not in sqla_inspect(model).column_attrs:
        raise ValidationError(f"Invalid attribute '{attr_name}' for '{model.__name__}'")
    return getattr(model, attr_name)


def where_criteria(model, where):
    """
    Build the sqla filter criteria for a where filter:
    - a dict is an implicit AND of its items:
        {"color": "red", "type": {"$in": ["suv", "van"]}}
    - a list is an implicit AND of its elements
    - "and", "or", "not" combine sub filters:
        {"$or": {"color": "red", "type": "van"}}
        {"$or": [{"color": "red", "type": "suv"}, {"type": "van"}]}

    :param model: sqla model class
    :param where: where filter
    :return: list of sqla criteria
    """
    criteria = []
    if isinstance(where, list):
        for item in where:
            criteria += where_criteria(model, item)
        return criteria

    if not isinstance(where, dict):
        raise ValidationError(f"Invalid where clause {where}")

    for key, value in where.items():
        logical_op = LOGICAL_OPERATORS.get(key.lstrip("$"))
        if logical_op is not None:
            criteria.append(logical_criterion(model, logical_op, value))
            continue
        attr = get_column_attr(model, key)
        if isinstance(value, dict):
            for op_name, op_val in value.items():
                op_name = str(op_name).lstrip("$")
                op = OPERATORS.get(op_name)
                if op is None:
                    raise ValidationError(f"Invalid where operator '{op_name}' for '{key}'")
                check_operand(key, op_name, op_val)
                criteria.append(op(attr, op_val))
        elif isinstance(value, list):
            check_operand(key, "in", value)
            criteria.append(attr.in_(value))
        elif value is None:
            criteria.append(attr.is_(None))
        else:
            criteria.append(attr == value)

    return criteria


def logical_criterion(model, logical_op, value):
    """
    :param logical_op: and_, or_, ..
    :param value: dict (every item is an operand) or list (every element is an operand)
    :return: sqla criterion
    """
    if isinstance(value, list):
        operands = [and_(true(), *where_criteria(model, item)) for item in value]
    else:
        operands = where_criteria(model, value)
    if not operands:
        return true()
    return logical_op(*operands)


def apply_where(query, model, where=None):
    """
    :param query: sqla query object
    :param model: sqla model class
    :param where: where filter, taken from the request if not specified
    :return: filtered query
    """
    if where is None:
        where = request.where
    criteria = where_criteria(model, where)
    if criteria:
        query = query.filter(*criteria)
    return query


def apply_attributes(query, model):
    """
    Only load the columns specified by the "attributes" query argument
    (the primary key columns are always loaded by sqla)
    """
    attributes = request.attributes
    if not attributes:
        return query
    columns = [get_column_attr(model, attr_name) for attr_name in attributes]
    return query.options(load_only(*columns))


def apply_order(query, model):
    """
    sort by the "orderBy" column, in "order" direction (ASC or DESC)
    """
    order_by = request.order_by
    if not order_by:
        return query
    attr = get_column_attr(model, order_by)
    if request.order == "DESC":
        attr = attr.desc()
    else:
        attr = attr.asc()
    return query.order_by(attr)


def paginate(query):
    """
    apply the offset and limit query arguments,
    this is where the query is executed

    :param query: sqla query object
    :return: list of instances
    """
    offset = request.offset
    limit = request.limit
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    try:
        return query.all()
    except OverflowError:
        raise ValidationError("Pagination Overflow Error")


def find_all(query, model):
    """
    Apply the request arguments to `query` and execute it

    :param query: sqla query object
    :param model: sqla model class that is queried
    :return: list of instances
    """
    query = apply_where(query, model)
    query = apply_attributes(query, model)
    query = apply_order(query, model)
    sqla_ctrl.log.debug(f"find_all {model.__name__}")
    return paginate(query)


def count(query, model):
    """
    :return: the number of rows matching the where filter
    """
    query = apply_where(query, model)
    try:
        return query.order_by(None).count()
    except sqlalchemy.exc.SQLAlchemyError as exc:
        sqla_ctrl.log.warning(f"Can't get count for {model} ({exc})")
        raise
