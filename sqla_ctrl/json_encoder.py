# sqlalchemy instances to json encoding

import datetime
import decimal
from flask.json.provider import DefaultJSONProvider
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.engine import Row
from sqlalchemy.orm import InstanceState
from uuid import UUID
import sqla_ctrl
from .config import is_debug


def to_dict(instance):
    """
    Create a dictionary with the loaded column attributes of a mapped instance,
    columns that weren't loaded (e.g. excluded with the "attributes" query argument
    or deferred) are left out

    :param instance: sqlalchemy mapped instance
    :return: dictionary
    """
    state = sqla_inspect(instance)
    unloaded = state.unloaded
    return {attr.key: getattr(instance, attr.key) for attr in state.mapper.column_attrs if attr.key not in unloaded}


def is_mapped_instance(obj) -> bool:
    """
    :return: True if obj is an instance of a mapped class
    """
    return isinstance(sqla_inspect(obj, raiseerr=False), InstanceState)


class _CtrlJSONEncoder:
    """
    JSON encoding for model instances and common types
    """

    # pylint: disable=too-many-return-statements,arguments-differ,method-hidden
    def default(self, obj, **kwargs):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        if obj is None:
            return None
        if is_mapped_instance(obj):
            return to_dict(obj)
        if isinstance(obj, Row):
            return obj._asdict()
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, (datetime.datetime, datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, set):
            return list(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, decimal.Decimal):
            return float(obj)
        if isinstance(obj, bytes):
            if obj == b"":
                return ""
            sqla_ctrl.log.debug("CtrlJSONEncoder: serializing bytes obj")
            return obj.hex()

        # We shouldn't get here in a normal setup
        if not is_debug():  # pragma: no cover
            sqla_ctrl.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
            return {"error": "CtrlJSONEncoder invalid object"}

        return self.ghetto_encode(obj)

    @staticmethod
    def ghetto_encode(obj):  # pragma: no cover
        """
        if everything else failed, try to encode the public obj attributes
        i.e. those attributes without a _ prefix
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        try:
            result = {}
            for k, v in vars(obj).items():
                if not k.startswith("_"):
                    if isinstance(v, (int, float)) or v is None:
                        result[k] = v
                    else:
                        result[k] = str(v)
        except TypeError:
            result = str(obj)
        return result


class CtrlJSONProvider(_CtrlJSONEncoder, DefaultJSONProvider):
    """
    Flask JSON encoding
    """

    sort_keys = False
