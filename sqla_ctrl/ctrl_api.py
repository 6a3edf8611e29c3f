# flask_restful_swagger2 API subclass
import json
from flask import current_app
from flask.app import Flask
from flask_restful import Resource
from flask_restful_swagger_2 import Api as FRSApiBase
from flask_restful_swagger_2 import validate_definitions_object, validate_path_item_object
from flask_restful_swagger_2 import extract_swagger_path, Extractor, ValidationError as FRSValidationError
from flask_swagger_ui import get_swaggerui_blueprint
from http import HTTPStatus
from sqlalchemy import inspect as sqla_inspect
from typing import Callable, Dict, List, Optional
import sqla_ctrl
from .controller import controller, Controller
from .swagger_doc import swagger_doc, parse_object_doc

HTTP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

OK = {HTTPStatus.OK.value: HTTPStatus.OK.description}
CREATED = {HTTPStatus.CREATED.value: HTTPStatus.CREATED.description}
ACCEPTED = {HTTPStatus.ACCEPTED.value: HTTPStatus.ACCEPTED.description}
NOT_FOUND = {HTTPStatus.NOT_FOUND.value: HTTPStatus.NOT_FOUND.description}


class CtrlResource(Resource):
    """
    Base class for the generated resources,
    the http methods of the subclasses call the controller handlers
    """

    model = None


class CtrlAPI(FRSApiBase):
    """
    Subclass of the flask_restful_swagger API class where we add the expose_model method
    this method creates the API endpoints for a sqla model and the corresponding swagger
    documentation
    """

    _operation_ids: Dict[str, int] = {}

    def __init__(
        self,
        app: Flask,
        host: str = "localhost",
        port: int = 5000,
        prefix: str = "",
        description: str = "sqla_ctrl API",
        swaggerui_blueprint: bool = True,
        **kwargs,
    ) -> None:
        """
        :param app: flask app
        :param host: the host shown in the swagger ui
        :param port: port shown in the swagger ui, may be None when proxied
        :param prefix: url prefix of the api
        :param swaggerui_blueprint: whether to register the swagger ui
        :param kwargs: app_db, api_spec_url, config settings and flask_restful_swagger_2 Api arguments
        """
        self.swaggerui_blueprint = swaggerui_blueprint
        self.controllers: Dict[str, Controller] = {}
        app_db = kwargs.pop("app_db", None)
        config = {name: kwargs.pop(name) for name in list(kwargs) if name.isupper()}
        sqla_ctrl.SQLACtrl(app, app_db=app_db, **config)
        if port:
            host = f"{host}:{port}"

        api_spec_url = kwargs.pop("api_spec_url", "/swagger")
        super().__init__(
            app,
            api_spec_url=api_spec_url,
            host=host,
            description=description,
            prefix=prefix,
            base_path=prefix or "/",
            **kwargs,
        )
        if swaggerui_blueprint:
            # the ui can't be mounted on "/" without shadowing the api urls
            ui_url = prefix or "/swagger-ui"
            blueprint = get_swaggerui_blueprint(
                ui_url, f"{prefix}{api_spec_url}.json", config={"docExpansion": "none", "defaultModelsExpandDepth": -1}
            )
            app.register_blueprint(blueprint, url_prefix=ui_url)

    def expose_model(self, model, url_prefix: str = "", relations: Optional[List[str]] = None, db=None) -> Controller:
        """This methods creates the API url endpoints for the sqla model
        :param model: sqla model class
        :param url_prefix: url prefix, relative to the api prefix
        :param relations: names of the relationships to expose, all relationships by default
        :param db: flask_sqlalchemy extension, sqla_ctrl.DB by default
        :return: the Controller that handles the requests

        tablename/collection_name: model.__tablename__, e.g. "users"
        class_name: model.__name__, e.g. "User"
        """
        if not current_app:
            sqla_ctrl.log.error("Working outside of app context!")

        ctrl = controller(model, db)
        model_ctrl = ctrl.model_ctrl
        class_name = model.__name__
        collection_name = getattr(model, "__tablename__", class_name)
        self.controllers[collection_name] = ctrl
        # tags indicate where in the swagger hierarchy the endpoint will be shown
        tags = [collection_name]
        url = f"{url_prefix}/{collection_name}"
        list_view = ctrl.chain("paginate", "list")

        def doc(handler, path_params=None, query_params=False, body=False, responses=OK):
            return swagger_doc(model, handler, tags, path_params, query_params, body, responses)

        # Collection
        self.expose_resource(
            f"{class_name}_API",
            model,
            url,
            get=(list_view, doc(model_ctrl.list, query_params=True)),
            post=(ctrl["create"], doc(model_ctrl.create, body=True, responses=CREATED)),
        )
        self.expose_resource(
            f"{class_name}_search_API",
            model,
            f"{url}/search",
            post=(list_view, doc(model_ctrl.list, query_params=True, body=True)),
        )

        # Scopes
        scope_view = ctrl.chain("paginate", "scope")
        scope_doc = doc(model_ctrl.scope, ["scope"], query_params=True, responses={**OK, **NOT_FOUND})
        self.expose_resource(
            f"{class_name}_scope_API", model, f"{url}/scope/<string:scope>", get=(scope_view, scope_doc), post=(scope_view, scope_doc)
        )

        # Instances
        id_doc = ["id"]
        self.expose_resource(
            f"{class_name}_i_API",
            model,
            f"{url}/<string:id>",
            get=(ctrl["select"], doc(model_ctrl.select, id_doc, responses={**OK, **NOT_FOUND})),
            put=(ctrl["update"], doc(model_ctrl.update, id_doc, body=True, responses={**OK, **NOT_FOUND})),
            patch=(ctrl["patch"], doc(model_ctrl.patch, id_doc, body=True, responses={**OK, **NOT_FOUND})),
            delete=(ctrl["destroy"], doc(model_ctrl.destroy, id_doc, responses=ACCEPTED)),
        )

        # Instance methods
        method_doc = doc(model_ctrl.instance_method, ["id", "method"], body=True, responses={**OK, **NOT_FOUND})
        self.expose_resource(
            f"{class_name}_method_API", model, f"{url}/<string:id>/method/<string:method>", put=(ctrl["instance_method"], method_doc)
        )

        try:
            object_doc = parse_object_doc(model)
        except Exception as exc:
            sqla_ctrl.log.error(f"Failed to parse docstring {exc}")
            object_doc = {}
        object_doc["name"] = collection_name
        self._swagger_object.setdefault("tags", []).append(object_doc)

        for relationship in sqla_inspect(model).relationships:
            if relations is not None and relationship.key not in relations:
                continue
            self.expose_relationship(ctrl, relationship, url, tags)

        return ctrl

    def expose(self, *models, url_prefix: str = "", **kwargs) -> None:
        """
        Expose multiple models at once
        """
        for model in models:
            self.expose_model(model, url_prefix, **kwargs)

    def expose_relationship(self, ctrl: Controller, relationship, url_prefix: str, tags: List[str]) -> None:
        """
        Expose a relationship to the REST API, the url segment is the
        relationship key with dashes, f.i. /users/<id>/car-parts

        :param ctrl: controller of the parent model
        :param relationship: sqla relationship
        :param url_prefix: url of the parent collection
        :param tags: swagger tags
        """
        model = ctrl.model
        model_ctrl = ctrl.model_ctrl
        rel_name = relationship.key
        rel_segment = rel_name.replace("_", "-")
        api_class_name = f"{model.__name__}_X_{rel_name}_API"
        url = f"{url_prefix}/<string:id>/{rel_segment}"
        rel_kwargs = {"relation": rel_name}

        def doc(handler, path_params, body=False, query_params=False, responses=OK):
            return swagger_doc(model, handler, tags, path_params, query_params, body, {**responses, **NOT_FOUND})

        sqla_ctrl.log.info(f"Exposing {model.__name__} relationship {rel_name} on {url}")
        create = (ctrl["relation_create"], doc(model_ctrl.relation_create, ["id"], body=True, responses=CREATED), rel_kwargs)
        if relationship.uselist:
            list_view = ctrl.chain("paginate", "relation_list")
            self.expose_resource(
                api_class_name,
                model,
                url,
                get=(list_view, doc(model_ctrl.relation_list, ["id"], query_params=True), rel_kwargs),
                post=create,
            )
            self.expose_resource(
                f"{api_class_name}_search",
                model,
                f"{url}/search",
                post=(list_view, doc(model_ctrl.relation_list, ["id"], body=True, query_params=True), rel_kwargs),
            )
        else:
            self.expose_resource(
                api_class_name,
                model,
                url,
                get=(ctrl["relation_parent"], doc(model_ctrl.relation_parent, ["id"]), rel_kwargs),
                post=create,
            )

        rel_id_doc = ["id", "rel_id"]
        self.expose_resource(
            f"{api_class_name}_i",
            model,
            f"{url}/<string:rel_id>",
            get=(ctrl["relation_select"], doc(model_ctrl.relation_select, rel_id_doc), rel_kwargs),
            put=(ctrl["relation_link"], doc(model_ctrl.relation_link, rel_id_doc), rel_kwargs),
            delete=(ctrl["relation_unlink"], doc(model_ctrl.relation_unlink, rel_id_doc), rel_kwargs),
        )

    def expose_resource(self, api_class_name: str, model, url: str, **http_methods) -> None:
        """
        Create a CtrlResource subclass and add it to the api

        :param api_class_name: name of the generated class, also used as endpoint
        :param model: exposed model
        :param url: resource url
        :param http_methods: get=(view, swagger_decorator[, view_kwargs]), post=..
        """
        properties = {"model": model}
        for method_name, args in http_methods.items():
            view, swagger_decorator = args[0], args[1]
            view_kwargs = args[2] if len(args) > 2 else {}
            properties[method_name] = resource_method(view, swagger_decorator, view_kwargs)

        api_class = type(api_class_name, (CtrlResource,), properties)
        sqla_ctrl.log.info(f"Exposing {model.__name__} on {url}, endpoint: {api_class_name}")
        self.add_resource(api_class, url, endpoint=api_class_name)

    @staticmethod
    def get_resource_methods(resource) -> List[str]:
        """
        :return: the http methods of the resource, in HTTP_METHODS order
        """
        resource_methods = getattr(resource, "methods", None) or []
        return [m.lower() for m in HTTP_METHODS if m in resource_methods]

    def add_resource(self, resource, *urls, **kwargs):
        """
        This method is partly copied from flask_restful_swagger_2/__init__.py

        Changed because the operation objects are created by swagger_doc
        and the swagger endpoint itself shouldn't be documented
        """
        if isinstance(resource, type) and issubclass(resource, CtrlResource):
            path_item = {}
            self._add_oas_resource_definitions(resource, path_item)

            for url in urls:
                swagger_url = extract_swagger_path(url)
                for method, method_doc in path_item.items():
                    method_doc["operationId"] = self._get_operation_id(method_doc.get("summary", ""))

                try:
                    validate_path_item_object(path_item)
                except FRSValidationError as exc:
                    sqla_ctrl.log.exception(exc)
                    sqla_ctrl.log.error(f"Validation failed for {path_item}")
                    continue

                self._swagger_object["paths"][swagger_url] = path_item
                # Check whether we manage to convert to json
                try:
                    json.dumps(self._swagger_object)
                except Exception:  # pragma: no cover
                    sqla_ctrl.log.critical("Json encoding failed")

        # pylint: disable=bad-super-call
        super(FRSApiBase, self).add_resource(resource, *urls, **kwargs)

    def _add_oas_resource_definitions(self, resource, path_item):
        """
        add the resource method operations to the path_item and
        the schema references to the swagger "definitions"
        :param resource:
        :param path_item:
        """
        definitions = {}

        for method in self.get_resource_methods(resource):
            f = getattr(resource, method, None)
            if not f:
                continue

            operation = getattr(f, "__swagger_operation_object", None)
            if operation:
                operation, definitions_ = Extractor.extract(operation)
                path_item[method] = operation
                definitions.update(definitions_)

        try:
            validate_definitions_object(definitions)
        except FRSValidationError:
            sqla_ctrl.log.error(f"Validation failed for {definitions}")
            return

        self._swagger_object["definitions"].update(definitions)

    @classmethod
    def _get_operation_id(cls, summary: str) -> str:
        """
        :param summary:
        """
        summary = "".join(c for c in summary if c.isalnum())
        if summary not in cls._operation_ids:
            cls._operation_ids[summary] = 0
        else:
            cls._operation_ids[summary] += 1
        return f"{summary}_{cls._operation_ids[summary]}"


def resource_method(view: Callable, swagger_decorator: Callable, view_kwargs: Dict) -> Callable:
    """
    Create the http method of a generated resource:
    - call the controller handler with the url parameters
    - add swagger documentation ( swagger_decorator )

    :param view: controller handler
    :param swagger_decorator: function that will generate the swagger
    :param view_kwargs: fixed handler arguments, f.i. the relation name
    :return: resource method
    """

    def method(self, **kwargs):
        return view(**view_kwargs, **kwargs)

    method.__name__ = view.__name__
    try:
        # Add swagger documentation
        return swagger_decorator(method)
    except Exception as exc:
        sqla_ctrl.log.exception(exc)
        sqla_ctrl.log.error(f"Failed to generate documentation for {view.__name__}")
    return method
