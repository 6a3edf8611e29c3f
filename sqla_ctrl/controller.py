#  This file contains the controller factory:
#  controller(model) returns a Controller, a mapping of named flask view functions
#  that translate the http requests to sqla queries for `model`
#
#  - paginate (middleware), list, scope, instance_method
#  - create, select, update, patch, destroy
#  - relation_list, relation_parent, relation_create, relation_select, relation_link, relation_unlink
#  - handle_error (flask error handler)
#
#  Routing convention (see CtrlAPI.expose_model):
#    /model                              GET paginate+list, POST create
#    /model/search                       POST paginate+list
#    /model/scope/<scope>                GET, POST scope
#    /model/<id>                         GET select, PUT update, PATCH patch, DELETE destroy
#    /model/<id>/method/<method>         PUT instance_method
#    /model/<id>/<relation>              GET relation_list or relation_parent, POST relation_create
#    /model/<id>/<relation>/search       POST relation_list
#    /model/<id>/<relation>/<rel_id>     GET relation_select, PUT relation_link, DELETE relation_unlink
#
# pylint: disable=redefined-builtin,invalid-name,protected-access
#
import math
import logging
from functools import wraps
from http import HTTPStatus
import sqlalchemy
import werkzeug
from flask import jsonify, make_response, request, after_this_request
from flask_restful import abort
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.orm import Mapper
from typing import Callable
import sqla_ctrl
from .attr_parse import parse_attr
from .config import get_config, is_debug
from .errors import CtrlError, NotFoundError, ValidationError, handle_error
from .query import find_all, count
from .relations import get_relationship, get_collection, get_scalar, relation_title
from .swagger_doc import is_scope, get_public_methods
from .util import parse_int

DELETE_REFERENCED_MSG = (
    "Cannot delete item as it is referenced by another object. "
    "Delete or amend any objects that reference this item then try again"
)


def pk_attr_name(model) -> str:
    """
    :param model: sqla model class
    :return: name of the attribute mapped to the (first) primary key column,
             this may differ from the column name
    """
    mapper = sqla_inspect(model)
    return mapper.get_property_by_column(mapper.primary_key[0]).key


class ModelController:
    """
    Request handlers for the underlying sqla model (self.model)

    The handlers are called by flask with the url parameters as keyword arguments:
    id, scope, method, relation, rel_id
    """

    pk_delimiter = ","  # separates the values of composite primary keys in the url

    def __init__(self, model, db=None):
        """
        :param model: sqla model class
        :param db: flask_sqlalchemy extension, sqla_ctrl.DB is used if not set
        """
        self.model = model
        self.db = db

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.model.__name__}>"

    @property
    def session(self):
        """
        :return: sqla session
        """
        db = self.db if self.db is not None else sqla_ctrl.DB
        return db.session

    @property
    def model_name(self):
        return self.model.__name__

    #
    # Helpers
    #
    def pk_criteria(self, model, id):
        """
        :param model: sqla model class
        :param id: primary key value(s) from the url
        :return: list of sqla criteria, None if the id isn't valid for the pk type
        """
        pk_columns = sqla_inspect(model).primary_key
        values = str(id).split(self.pk_delimiter) if len(pk_columns) > 1 else [id]
        if len(values) != len(pk_columns):
            return None
        criteria = []
        for column, value in zip(pk_columns, values):
            try:
                value = parse_attr(column, value)
            except ValidationError:
                return None
            criteria.append(column == value)
        return criteria

    def get_instance(self, model, id):
        """
        :return: the instance with primary key `id` or None
        """
        criteria = self.pk_criteria(model, id)
        if criteria is None:
            return None
        return self.session.query(model).filter(*criteria).first()

    def get_parent(self, id):
        """
        :return: self.model instance, NotFoundError if it doesn't exist
        """
        instance = self.get_instance(self.model, id)
        if instance is None:
            raise NotFoundError(f"Instance of '{self.model_name}' Not Found")
        return instance

    def new_instance(self, model, data):
        """
        Create an instance of `model` with the data attributes,
        attributes that are not columns are ignored

        :param model: sqla model class
        :param data: json body
        :return: new instance, added to the session
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid JSON body for '{model.__name__}': {data}")
        attributes = self.parse_attributes(model, data)
        # pylint: disable=not-callable
        instance = model(**attributes)
        self.session.add(instance)
        return instance

    @staticmethod
    def parse_attributes(model, data):
        """
        :return: dict with the column attributes in data, parsed to the column types
        """
        column_attrs = sqla_inspect(model).column_attrs
        result = {}
        for attr_name, attr_val in data.items():
            if attr_name not in column_attrs:
                sqla_ctrl.log.debug(f"Ignoring attribute {attr_name} for {model.__name__}")
                continue
            column = column_attrs[attr_name].columns[0]
            result[attr_name] = parse_attr(column, attr_val)
        return result

    def update_attributes(self, instance, data):
        """
        Update the instance column attributes
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid JSON body for '{self.model_name}': {data}")
        for attr_name, attr_val in self.parse_attributes(type(instance), data).items():
            setattr(instance, attr_name, attr_val)
        self.flush()
        # reload ourself, this will also pick up server side defaults and triggers
        self.session.refresh(instance)
        return instance

    def flush(self):
        """
        Flush the pending changes, the commit happens when the request has been handled
        (cfr. http_method_decorator)
        """
        try:
            self.session.flush()
        except sqlalchemy.exc.IntegrityError as exc:
            sqla_ctrl.log.warning(f"Integrity error for {self.model_name}: {exc}")
            raise ValidationError(str(exc.orig) if is_debug() else "Constraint violation")

    def scoped_query(self, scope):
        """
        :param scope: name of a ctrl_scope decorated model function
        :return: sqla query
        """
        scope_func = getattr(self.model, scope, None) if not scope.startswith("_") else None
        if not is_scope(scope_func):
            raise NotFoundError(f"Scope '{scope}' Not Found On '{self.model_name}'")
        return scope_func(self.session.query(self.model))

    def relation_query(self, parent, relationship):
        """
        :return: query for the items related to `parent`
        """
        target = relationship.mapper.class_
        return self.session.query(target).with_parent(parent, getattr(self.model, relationship.key))

    def base_query(self, id=None, scope=None, relation=None, **kwargs):
        """
        :return: the (model, query) the listing handlers will use for the url parameters
        """
        if scope is not None:
            return self.model, self.scoped_query(scope)
        if id is not None and relation is not None:
            relationship = get_collection(self.model, relation)
            return relationship.mapper.class_, self.relation_query(self.get_parent(id), relationship)
        return self.model, self.session.query(self.model)

    #
    # Handlers
    #
    def paginate(self, **kwargs):
        """
        summary : Paginate {class_name} results
        ---
        Middleware only, it should be followed by a listing handler.
        Only active when the "page" query argument is set:
        - limit, offset and orderBy are computed for the next handler
        - the X-Page-* headers are added to the response
        """
        if not request.page:
            return None

        page = parse_int(request.page, 1)
        if page <= 1:
            page = 1
        limit = parse_int(request.ctrl_args.get("limit"), get_config("DEFAULT_PAGE_LIMIT"))
        if limit <= 0:
            limit = get_config("DEFAULT_PAGE_LIMIT")
        limit = min(limit, get_config("MAX_PAGE_LIMIT"))
        model, query = self.base_query(**kwargs)
        order_by = request.order_by or pk_attr_name(model)
        offset = limit * (page - 1)

        request.ctrl_args["page"] = page
        request.ctrl_args["limit"] = limit
        request.ctrl_args["offset"] = offset
        request.ctrl_args["orderBy"] = order_by

        total = count(query, model)
        prefix = get_config("PAGE_HEADER_PREFIX")
        headers = {
            f"{prefix}Total-Items": total,
            f"{prefix}Current": page,
            f"{prefix}Limit": limit,
            f"{prefix}Total-Pages": math.ceil(total / limit),
        }

        @after_this_request
        def add_page_headers(response):
            if response.status_code >= HTTPStatus.BAD_REQUEST:
                return response
            for header, value in headers.items():
                response.headers[header] = str(value)
            return response

        return None

    def list(self, **kwargs):
        """
        summary : Retrieve {class_name} collection
        description : Returns a list of {class_name} results based on the search criteria
        ---
        GET /model
        POST /model/search
        """
        instances = find_all(self.session.query(self.model), self.model)
        return jsonify(instances)

    def scope(self, scope, **kwargs):
        """
        summary : Retrieve scoped {class_name} collection
        description : Returns a list of {class_name} results from a scope declared on the model
        ---
        GET /model/scope/<scope>
        POST /model/scope/<scope>
        """
        instances = find_all(self.scoped_query(scope), self.model)
        return jsonify(instances)

    def instance_method(self, id, method, **kwargs):
        """
        summary : Call {class_name} method
        description : Call a public instance method, the json body is passed as argument
        ---
        PUT /model/<id>/method/<method>
        """
        instance = self.get_parent(id)
        if method.startswith("_") or method not in get_public_methods(self.model):
            raise NotFoundError(f"Method '{method}' Not Found On '{self.model_name}'")
        instance_method = getattr(instance, method, None)
        if not callable(instance_method):
            raise NotFoundError(f"Method '{method}' Not Found On '{self.model_name}'")

        body = request.body
        sqla_ctrl.log.debug(f"method {method} args {body}")
        result = instance_method(body if body is not None else {})
        self.flush()
        return jsonify(result)

    def create(self, **kwargs):
        """
        summary : Create {class_name}
        description : Creates a new {class_name} instance
        ---
        POST /model
        """
        instance = self.new_instance(self.model, request.body)
        self.flush()
        self.session.refresh(instance)
        return make_response(jsonify(instance), HTTPStatus.CREATED)

    def select(self, id, **kwargs):
        """
        summary : Retrieve {class_name} instance
        description : Retrieves a single {class_name} instance by its id
        ---
        GET /model/<id>
        """
        instance = self.get_parent(id)
        return jsonify(instance)

    def update(self, id, **kwargs):
        """
        summary : Update {class_name}
        description : Updates the {class_name} attributes
        ---
        PUT /model/<id>
        """
        instance = self.get_parent(id)
        instance = self.update_attributes(instance, request.body)
        return jsonify(instance)

    def patch(self, id, **kwargs):
        """
        summary : Patch {class_name}
        description : Updates the {class_name} attributes, JSON columns are merged with the stored value
        ---
        PATCH /model/<id>
        """
        instance = self.get_parent(id)
        data = request.body
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid JSON body for '{self.model_name}': {data}")
        data = dict(data)
        for column_attr in sqla_inspect(self.model).column_attrs:
            attr_name = column_attr.key
            if not isinstance(column_attr.columns[0].type, sqlalchemy.types.JSON):
                continue
            current = getattr(instance, attr_name)
            if isinstance(data.get(attr_name), dict) and isinstance(current, (dict, type(None))):
                # a new dict, so sqla detects the change
                data[attr_name] = {**(current or {}), **data[attr_name]}
        instance = self.update_attributes(instance, data)
        return jsonify(instance)

    def destroy(self, id, **kwargs):
        """
        summary : Delete {class_name}
        description : Deletes a single {class_name} instance
        responses :
            202 :
                description : Accepted
        ---
        DELETE /model/<id>
        Instances are deleted one by one so the orm events are triggered
        """
        criteria = self.pk_criteria(self.model, id)
        instances = self.session.query(self.model).filter(*criteria).all() if criteria is not None else []
        for instance in instances:
            self.session.delete(instance)
        try:
            self.session.flush()
        except sqlalchemy.exc.IntegrityError as exc:
            sqla_ctrl.log.warning(f"Failed to delete {self.model_name} {id}: {exc}")
            raise ValidationError(DELETE_REFERENCED_MSG)

        return make_response("", HTTPStatus.ACCEPTED)

    #
    # Relations
    #
    def relation_list(self, id, relation, **kwargs):
        """
        summary : Retrieve {class_name} relation items
        description : Returns the items linked to {class_name} in a one-to-many or many-to-many relation
        ---
        GET /model/<id>/<relation>
        POST /model/<id>/<relation>/search
        """
        parent = self.get_parent(id)
        relationship = get_collection(self.model, relation)
        query = self.relation_query(parent, relationship)
        instances = find_all(query, relationship.mapper.class_)
        return jsonify(instances)

    def relation_parent(self, id, relation, **kwargs):
        """
        summary : Retrieve {class_name} related item
        description : Returns the single item linked to {class_name} in a many-to-one or one-to-one relation
        ---
        GET /model/<id>/<relation>
        """
        parent = self.get_parent(id)
        relationship = get_scalar(self.model, relation)
        return jsonify(getattr(parent, relationship.key))

    def relation_create(self, id, relation, **kwargs):
        """
        summary : Create {class_name} related item
        description : Creates a new instance linked to {class_name}
        ---
        POST /model/<id>/<relation>
        """
        parent = self.get_parent(id)
        relationship = get_relationship(self.model, relation, plural=False)
        # loading the relation would flush the new child before it is linked
        with self.session.no_autoflush:
            child = self.new_instance(relationship.mapper.class_, request.body)
            if relationship.uselist:
                getattr(parent, relationship.key).append(child)
            else:
                setattr(parent, relationship.key, child)
        self.flush()
        self.session.refresh(child)
        return make_response(jsonify(child), HTTPStatus.CREATED)

    def relation_select(self, id, relation, rel_id, **kwargs):
        """
        summary : Retrieve {class_name} related item by id
        description : Retrieves a single item linked to {class_name}
        ---
        GET /model/<id>/<relation>/<rel_id>
        """
        parent = self.get_parent(id)
        relationship = get_relationship(self.model, relation, plural=True)
        child = self.get_related(parent, relationship, rel_id)
        if child is None:
            raise NotFoundError(f"Instance of '{relation_title(relationship)}' Not Found")
        return jsonify(child)

    def relation_link(self, id, relation, rel_id, **kwargs):
        """
        summary : Link {class_name} to an item
        description : Creates a relationship between {class_name} and an existing item
        ---
        PUT /model/<id>/<relation>/<rel_id>
        """
        parent = self.get_parent(id)
        relationship = get_relationship(self.model, relation, plural=False)
        target_name = relation_title(relationship)
        child = self.get_instance(relationship.mapper.class_, rel_id)
        if child is None:
            raise NotFoundError(f"Instance of '{target_name}' Not Found")
        if self.get_related(parent, relationship, rel_id) is not None:
            raise ValidationError(f"Relation of '{target_name}' and '{self.model_name}' Already Exists")

        if relationship.uselist:
            getattr(parent, relationship.key).append(child)
        else:
            setattr(parent, relationship.key, child)
        try:
            self.session.flush()
        except sqlalchemy.exc.IntegrityError as exc:
            sqla_ctrl.log.warning(f"Failed to link {self.model_name} {id} to {target_name} {rel_id}: {exc}")
            raise NotFoundError(f"Instance of '{target_name}' Not Found")

        return jsonify(child)

    def relation_unlink(self, id, relation, rel_id, **kwargs):
        """
        summary : Unlink {class_name} from an item
        description : Deletes the relationship between {class_name} and an item, the items are not deleted
        ---
        DELETE /model/<id>/<relation>/<rel_id>
        """
        parent = self.get_parent(id)
        relationship = get_relationship(self.model, relation, plural=False)
        child = self.get_related(parent, relationship, rel_id)
        removed = 0
        if child is not None:
            if relationship.uselist:
                getattr(parent, relationship.key).remove(child)
            else:
                setattr(parent, relationship.key, None)
            removed = 1
            self.flush()

        return jsonify(removed)

    def get_related(self, parent, relationship, rel_id):
        """
        :return: the item with id `rel_id` related to parent, or None
        """
        target = relationship.mapper.class_
        criteria = self.pk_criteria(target, rel_id)
        if criteria is None:
            return None
        if relationship.uselist:
            return self.relation_query(parent, relationship).filter(*criteria).first()
        child = getattr(parent, relationship.key)
        if child is None or self.get_instance(target, rel_id) is not child:
            return None
        return child


# names of the handlers in the Controller mapping
HANDLER_NAMES = (
    "paginate",
    "list",
    "scope",
    "instance_method",
    "create",
    "select",
    "update",
    "patch",
    "destroy",
    "relation_list",
    "relation_parent",
    "relation_create",
    "relation_select",
    "relation_link",
    "relation_unlink",
)


class Controller(dict):
    """
    Mapping of handler names to flask view functions,
    ctrl["select"] can be used as view_func for app.add_url_rule("/users/<id>", ...)
    """

    def __init__(self, model_ctrl: ModelController) -> None:
        super().__init__()
        self.model_ctrl = model_ctrl
        collection_name = getattr(model_ctrl.model, "__tablename__", model_ctrl.model.__name__)
        for name in HANDLER_NAMES:
            handler = http_method_decorator(getattr(model_ctrl, name))
            handler.__name__ = f"{collection_name}_{name}"
            self[name] = handler
        self["handle_error"] = handle_error

    @property
    def model(self):
        return self.model_ctrl.model

    def chain(self, *names: str) -> Callable:
        """
        Compose the handlers the way middleware works:
        the handlers are called in order, a handler that returns None passes on to the next,
        the first response is returned

        ctrl.chain("paginate", "list")

        :param names: handler names
        :return: flask view function
        """
        steps = [self[name] for name in names]

        def chained(**kwargs):
            for step in steps:
                result = step(**kwargs)
                if result is not None:
                    return result
            return make_response("", HTTPStatus.NO_CONTENT)

        chained.__name__ = "_".join([steps[0].__name__] + list(names[1:]))
        chained.__doc__ = steps[-1].__doc__
        return chained


def controller(model, db=None) -> Controller:
    """
    Create the request handlers for `model`

    :param model: sqla model class
    :param db: flask_sqlalchemy extension, sqla_ctrl.DB is used if not set
    :return: Controller
    """
    if not isinstance(sqla_inspect(model, raiseerr=False), Mapper):
        raise TypeError(f"{model} is not a mapped class")
    return Controller(ModelController(model, db))


def http_method_decorator(fun: Callable) -> Callable:
    """Decorator for the controller handlers
    - commit the database
    - convert all exceptions to a json error document

    This method will be called for all requests
    :param fun: bound ModelController handler
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        session = fun.__self__.session
        ctrl_exception = None
        status_code = HTTPStatus.INTERNAL_SERVER_ERROR.value
        title = HTTPStatus.INTERNAL_SERVER_ERROR.phrase
        message = ""
        try:
            result = fun(*args, **kwargs)
            session.commit()
            return result

        except CtrlError as exc:
            # this also catches NotFoundError
            ctrl_exception = exc
            message = exc.message

        except werkzeug.exceptions.HTTPException as exc:
            status_code = exc.code
            title = exc.name
            message = exc.description
            sqla_ctrl.log.error(message)

        except Exception as exc:
            sqla_ctrl.log.exception(exc)
            if sqla_ctrl.log.getEffectiveLevel() > logging.DEBUG:
                message = "Logging Disabled"
            else:
                message = str(exc)

        status_code = getattr(ctrl_exception, "status_code", status_code)
        api_code = getattr(ctrl_exception, "api_code", status_code)
        title = getattr(ctrl_exception, "title", title)

        session.rollback()
        errors = dict(title=title, detail=message, code=str(api_code))
        abort(status_code, errors=[errors])

    return method_wrapper
