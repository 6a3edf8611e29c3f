import logging
import os
import sys
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException
from .request import CtrlRequest
from .json_encoder import CtrlJSONProvider
from .errors import handle_error
import sqla_ctrl
import flask.app
from typing import Any, Dict, Union


class SQLACtrl:
    """This class configures the Flask application to serve the generated controllers
    :param app: a Flask application.
    :param app_db: the flask_sqlalchemy extension, app.extensions["sqlalchemy"] by default
    :param kwargs: configuration settings, stored as class variables
    """

    # Configuration settings are stored as class variables
    DEFAULT_PAGE_LIMIT = 25
    MAX_PAGE_LIMIT = 100000
    DEFAULT_ORDER = "ASC"
    PAGE_HEADER_PREFIX = "X-Page-"
    LOGLEVEL = None  # the DEBUG environment variable sets the level when this isn't set

    def __init__(self, app: flask.app.Flask, *args, **kwargs) -> None:
        """
        Constructor
        """
        self.app = app
        self.db = None
        if app is not None:
            self.init_app(app, *args, **kwargs)

    def init_app(self, app: flask.app.Flask, app_db: SQLAlchemy = None, **kwargs) -> None:
        """
        Application initialization
        """
        if not isinstance(app, Flask):  # pragma: no cover
            raise TypeError("'app' should be Flask.")

        if app_db is None:
            app_db = app.extensions["sqlalchemy"]

        sqla_ctrl.DB = self.db = app_db

        app.request_class = CtrlRequest
        app.json = CtrlJSONProvider(app)
        app.register_error_handler(HTTPException, handle_error)

        if app.config.get("DEBUG", False):
            log.setLevel(logging.DEBUG)

        for conf_name, conf_val in kwargs.items():
            setattr(SQLACtrl, conf_name, conf_val)

        loglevel = app.config.get("LOGLEVEL", kwargs.get("LOGLEVEL"))
        if loglevel is not None:
            log.setLevel(loglevel)

        # pylint: disable=unused-argument,unused-variable
        @app.teardown_appcontext
        def shutdown_session(exception=None):
            """cfr. https://flask.palletsprojects.com/en/latest/patterns/sqlalchemy/"""
            self.db.session.remove()

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the webserver logs
        The webserver will catch stderr so we redirect everything to sys.stderr
        """
        log = logging.getLogger(__name__)
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


def dict_merge(dct: Dict[str, Any], merge_dct: Union[Dict[str, Any], Dict[int, Any]]) -> None:
    """Recursive dict merge used for creating the swagger spec.
    Inspired by :meth:``dict.update()``, instead of updating only
    top-level keys, dict_merge recurses down into dicts nested
    to an arbitrary depth, updating keys. The ``merge_dct`` is merged into ``dct``.
    :param dct: dict onto which the merge is executed
    :param merge_dct: dct merged into dct
    :return: None
    """
    for k in merge_dct:
        if k in dct and isinstance(dct[k], dict) and isinstance(merge_dct[k], dict):
            dict_merge(dct[k], merge_dct[k])
        else:
            # convert to string, for ex. http return codes
            dct[str(k)] = merge_dct[k]


#
# DB and logging initialization
#
DB = SQLAlchemy()

try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = SQLACtrl.init_logging(LOGLEVEL)
