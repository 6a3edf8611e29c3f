import datetime
import sqla_ctrl
import sqlalchemy
from .errors import ValidationError

TRUE_STRINGS = ("true", "1", "yes", "on")
FALSE_STRINGS = ("false", "0", "no", "off", "")


def parse_attr(column, attr_val):
    """
    Parse the supplied `attr_val` so it can be saved in the SQLAlchemy `column`

    :param column: SQLAlchemy column
    :param attr_val: json attribute value
    :return: processed value
    """
    if attr_val is None:
        return attr_val

    try:
        python_type = column.type.python_type
    except NotImplementedError as exc:
        """
        This happens when a custom type has been implemented, in which case the user/dev should know how to handle it
        => simply return the attr_val for user-defined classes
        """
        sqla_ctrl.log.debug(exc)
        return attr_val

    # skip type coercion on JSON columns, since they could be anything
    if isinstance(column.type, sqlalchemy.types.JSON):
        return attr_val

    if isinstance(attr_val, python_type) and not (python_type is datetime.date and isinstance(attr_val, datetime.datetime)):
        return attr_val

    try:
        if python_type is datetime.datetime:
            attr_val = parse_datetime(attr_val)
        elif python_type is datetime.date:
            attr_val = parse_datetime(attr_val).date()
        elif python_type is datetime.time:
            attr_val = datetime.time.fromisoformat(str(attr_val))
        elif python_type is bool:
            attr_val = parse_bool(attr_val)
        elif python_type in (dict, list):
            pass
        else:
            attr_val = python_type(attr_val)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f'Invalid value "{attr_val}" for {column.name} ({exc})')

    return attr_val


def parse_datetime(attr_val):
    """
    Parse datetime and date values for some common representations:
    - iso format, as sent by JSON.stringify() (a trailing "Z" is accepted)
    - str(datetime.datetime.now()) => "%Y-%m-%d %H:%M:%S.%f"
    If another format is used, the user should create a custom column type
    """
    date_str = str(attr_val).strip()
    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(date_str)


def parse_bool(attr_val):
    if isinstance(attr_val, (int, float)):
        return bool(attr_val)
    lowered = str(attr_val).strip().lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    raise ValueError("not a boolean")
