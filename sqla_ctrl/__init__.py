# flake8: noqa: F401
#
# ctrl_init has to be imported first: the other modules use sqla_ctrl.log and sqla_ctrl.DB
#
from .ctrl_init import DB, log, SQLACtrl, dict_merge
from .errors import CtrlError, ValidationError, GenericError, NotFoundError, handle_error
from .request import CtrlRequest
from .json_encoder import CtrlJSONProvider
from .attr_parse import parse_attr
from .swagger_doc import public_method, ctrl_scope
from .controller import controller, Controller, ModelController
from .ctrl_api import CtrlAPI
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "SQLACtrl",
    "CtrlAPI",
    # controllers:
    "controller",
    "Controller",
    "ModelController",
    "public_method",
    "ctrl_scope",
    # serialization
    "CtrlJSONProvider",
    "parse_attr",
    # Errors:
    "CtrlError",
    "ValidationError",
    "GenericError",
    "NotFoundError",
    "handle_error",
    # request
    "CtrlRequest",
)
