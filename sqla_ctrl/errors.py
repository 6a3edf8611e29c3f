# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user.
# If set to debug, too much sensitive info might be shown !
#
# The exceptions will be caught in http_method_decorator and formatted, for example:
# {
#     "errors": [
#         {
#             "title": "Not Found",
#             "detail": "Instance of 'User' Not Found",
#             "code": "404"
#         }
#     ]
# }
#
import traceback
from flask import request, jsonify, make_response, has_request_context
from werkzeug.exceptions import NotFound, HTTPException
import sqla_ctrl
from sqlalchemy.exc import DontWrapMixin
from http import HTTPStatus
from .config import is_debug

HIDDEN_LOG = "(debug logging disabled)"


class CtrlError(Exception, DontWrapMixin):
    """
    Base class for the errors raised by the controllers,
    DontWrapMixin keeps sqlalchemy from wrapping it in a StatementError
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
    title = HTTPStatus.INTERNAL_SERVER_ERROR.phrase
    message = ""


class NotFoundError(CtrlError, NotFound):
    """
    This exception is raised when an item was not found
    """

    status_code = HTTPStatus.NOT_FOUND.value
    title = HTTPStatus.NOT_FOUND.phrase

    def __init__(self, message="", status_code=HTTPStatus.NOT_FOUND.value, api_code=None):
        """
        :param message: Message to be returned in the (json) body
        :param status_code: HTTP Status code
        :param api_code: API code
        """
        CtrlError.__init__(self, message)
        self.status_code = status_code
        self.api_code = api_code or status_code
        sqla_ctrl.log.info("Not found: %s", message)
        self.message = message


class ValidationError(CtrlError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    title = HTTPStatus.BAD_REQUEST.phrase

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, api_code=None):
        CtrlError.__init__(self, message)
        self.status_code = status_code
        self.api_code = api_code or status_code
        sqla_ctrl.log.warning("ValidationError: %s", message)
        self.message = message


class GenericError(CtrlError):
    """
    This exception is raised when an error has been detected
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value  # 500
    title = "Generic Error"

    def __init__(self, message, status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, api_code=None):
        CtrlError.__init__(self, message)
        self.status_code = status_code
        self.api_code = api_code or status_code
        sqla_ctrl.log.error("Generic Error: %s", message)
        if is_debug():
            if has_request_context():
                sqla_ctrl.log.info(f"Error in {request.url}")
            sqla_ctrl.log.debug(traceback.format_exc(120))
            self.message = str(message)
        else:
            self.message = HIDDEN_LOG


def handle_error(exc):
    """
    Flask error handler: render the errors of aborted controller requests as json.
    http_method_decorator aborts with flask_restful.abort, which stores the
    error document in exc.data

    :param exc: werkzeug HTTPException
    :return: json response, or the exception itself if it isn't ours
    """
    data = getattr(exc, "data", None)
    if not isinstance(exc, HTTPException) or not isinstance(data, dict) or "errors" not in data:
        return exc

    return make_response(jsonify(data), exc.code)
