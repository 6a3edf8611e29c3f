#
# Functions for api documentation:
# - the public_method and ctrl_scope decorators mark the model methods that may be called through the api
# - swagger_doc generates the swagger operation objects for the exposed controller handlers
#
import inspect
from http import HTTPStatus
import yaml
from flask_restful_swagger_2 import swagger
import sqla_ctrl
from .config import is_debug
from typing import Any, Callable, Dict, List, Optional, Union


REST_DOC = "__rest_doc"  # swagger doc attribute name. If this attribute is set
# this means that the method can be called through HTTP PUT
SCOPE_DOC = "__scope_doc"  # set on the query functions that can be used as scope
DOC_DELIMITER = "---"  # used as delimiter between the rest_doc swagger yaml spec
# and regular documentation

# additional responses added when in debug mode
debug_responses = {
    HTTPStatus.BAD_REQUEST.value: {"description": HTTPStatus.BAD_REQUEST.description},
    HTTPStatus.INTERNAL_SERVER_ERROR.value: {"description": "Internal Server Error"},
}

# query string arguments accepted by the list handlers
QUERY_PARAMETERS = [
    ("where", "json filter, f.i. {\"name\": {\"$like\": \"a%\"}}"),
    ("attributes", "attributes (columns) to include (csv)"),
    ("limit", "maximum number of items"),
    ("offset", "number of items to skip"),
    ("orderBy", "attribute to sort by"),
    ("order", "sort direction: ASC or DESC"),
    ("page", "page number, page headers are added to the response"),
]


# pylint: disable=redefined-builtin
def parse_object_doc(object: Callable) -> Dict[str, Union[str, Dict[int, Dict[str, str]], bool, Dict[str, str]]]:
    """
    Parse the yaml description from the documented methods
    """
    api_doc = {}
    obj_doc = str(inspect.getdoc(object))
    raw_doc = obj_doc.split(DOC_DELIMITER)[0]
    yaml_doc = None

    try:
        yaml_doc = yaml.safe_load(raw_doc)
    except yaml.YAMLError as exc:
        sqla_ctrl.log.error(f"Failed to parse documentation {raw_doc} ({exc})")
        yaml_doc = {"description": raw_doc}

    if isinstance(yaml_doc, dict):
        api_doc.update(yaml_doc)

    return api_doc


def public_method(method: Callable) -> Callable:
    """
    Decorator to expose model instance methods in the REST API:
    a method decorated with public_method can be called with
    PUT /model/<id>/method/<method>, the json body is passed as argument

    :param method:
    :return: method
    """
    try:
        api_doc = parse_object_doc(method)
    except Exception as exc:  # pragma: no cover
        sqla_ctrl.log.error(f"Failed to parse documentation for {method}: {exc}")
        api_doc = {}
    setattr(method, REST_DOC, api_doc)
    return method


def ctrl_scope(func: Callable) -> staticmethod:
    """
    Decorator to declare a model scope, the function receives a query
    and returns a restricted query:

        @ctrl_scope
        def red(query):
            return query.filter(Car.color == "red")

    the scope is available at /model/scope/<scope>
    """
    setattr(func, SCOPE_DOC, parse_object_doc(func))
    return staticmethod(func)


def is_public(method: Any) -> bool:
    """
    :param method: model method
    :return: True or False, whether the method is to be exposed
    """
    return callable(method) and hasattr(method, REST_DOC)


def is_scope(func: Any) -> bool:
    """
    :return: True if func has been decorated with ctrl_scope
    """
    return callable(func) and hasattr(func, SCOPE_DOC)


def get_doc(method: Any) -> Optional[Dict[str, Any]]:
    """
    :param  method: model method
    :return: OAS documentation
    """
    return getattr(method, REST_DOC, getattr(method, SCOPE_DOC, None))


def get_public_methods(model) -> List[str]:
    """
    :return: the names of the methods that can be called through the api,
    (decorated with public_method or listed in model.public_instance_methods)
    """
    result = list(getattr(model, "public_instance_methods", []))
    for name, member in inspect.getmembers(model, is_public):
        if name not in result:
            result.append(name)
    return result


def swagger_doc(model, handler, tags=None, path_params=None, query_params=False, body=False, responses=None):
    """
    Create the decorator used to document the exposed handlers

    :param model: the exposed model class
    :param handler: the controller handler, its docstring yaml contains the summary and description
    :param tags: swagger tags
    :param path_params: names of the url path parameters
    :param query_params: whether the list query arguments are accepted
    :param body: whether a json body is accepted
    :param responses: {status_code: description}
    :return: decorator
    """
    class_name = model.__name__
    collection_name = getattr(model, "__tablename__", class_name)
    if tags is None:
        tags = [collection_name]

    parameters = []
    for param_name in path_params or []:
        parameters.append({"name": param_name, "in": "path", "type": "string", "required": True})

    if query_params:
        for param_name, description in QUERY_PARAMETERS:
            parameters.append({"name": param_name, "in": "query", "type": "string", "required": False, "description": description})

    if body:
        parameters.append(
            {"name": "body", "in": "body", "description": f"{class_name} attributes", "schema": {"type": "object"}, "required": False}
        )

    if responses is None:
        responses = {HTTPStatus.OK.value: HTTPStatus.OK.description}
    doc_responses = {str(code): {"description": description} for code, description in responses.items()}
    if is_debug():
        doc_responses.update({str(code): response for code, response in debug_responses.items()})

    doc = {"tags": tags, "parameters": parameters, "responses": doc_responses, "produces": ["application/json"]}
    method_doc = parse_object_doc(handler)
    sqla_ctrl.dict_merge(doc, method_doc)
    apply_fstring(doc, {"class_name": class_name, "collection_name": collection_name})

    def swagger_doc_gen(func):
        """
        Decorator used to document the Resource HTTP methods exposed in the API
        """
        return swagger.doc(doc)(func)

    return swagger_doc_gen


def apply_fstring(swagger_obj, vars, k=None):
    """
    Format the strings of the swagger documentation, f.i. "Retrieve {class_name}"
    """
    if isinstance(swagger_obj, dict):
        for k, v in swagger_obj.items():
            swagger_obj[k] = apply_fstring(v, vars, k)
    elif isinstance(swagger_obj, list):
        return [apply_fstring(item, vars, k) for item in swagger_obj]
    elif isinstance(swagger_obj, str):
        try:
            return swagger_obj.format(**vars)
        except (KeyError, IndexError, ValueError):
            return swagger_obj
    return swagger_obj
