import datetime
import decimal
import uuid
from http import HTTPStatus
from types import SimpleNamespace

import pytest
from werkzeug.exceptions import HTTPException, NotFound

import sqla_ctrl
import sqla_ctrl.errors as errors_mod
from sqla_ctrl.controller import http_method_decorator, Controller, ModelController, controller
from sqla_ctrl.errors import NotFoundError, ValidationError, GenericError, HIDDEN_LOG, handle_error
from models import User


class _FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


class _FakeCtrl:
    def __init__(self) -> None:
        self.session = _FakeSession()

    def ok(self, **kwargs):
        return kwargs

    def invalid(self, **kwargs):
        raise ValidationError("Invalid input")

    def missing(self, **kwargs):
        raise NotFoundError("Instance of 'User' Not Found")

    def gone(self, **kwargs):
        raise NotFound()

    def broken(self, **kwargs):
        raise RuntimeError("database password is hunter2")


@pytest.fixture(autouse=True)
def _quiet_log(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        sqla_ctrl,
        "log",
        SimpleNamespace(
            debug=lambda *a, **k: None,
            info=lambda *a, **k: None,
            warning=lambda *a, **k: None,
            error=lambda *a, **k: None,
            exception=lambda *a, **k: None,
            getEffectiveLevel=lambda: 30,
        ),
        raising=False,
    )


def _call(method_name: str):
    ctrl = _FakeCtrl()
    wrapped = http_method_decorator(getattr(ctrl, method_name))
    with pytest.raises(HTTPException) as exc_info:
        wrapped(id="1")
    return ctrl.session, exc_info.value


def test_decorator_commits() -> None:
    ctrl = _FakeCtrl()
    wrapped = http_method_decorator(ctrl.ok)
    assert wrapped(id="1") == {"id": "1"}
    assert ctrl.session.commits == 1
    assert ctrl.session.rollbacks == 0
    assert wrapped.__name__ == "ok"


def test_decorator_validation_error() -> None:
    session, exc = _call("invalid")
    assert exc.code == HTTPStatus.BAD_REQUEST
    assert exc.data == {"errors": [{"title": "Bad Request", "detail": "Invalid input", "code": "400"}]}
    assert session.rollbacks == 1
    assert session.commits == 0


def test_decorator_not_found_error() -> None:
    session, exc = _call("missing")
    assert exc.code == HTTPStatus.NOT_FOUND
    assert exc.data["errors"][0]["detail"] == "Instance of 'User' Not Found"


def test_decorator_http_exception() -> None:
    session, exc = _call("gone")
    assert exc.code == HTTPStatus.NOT_FOUND
    assert exc.data["errors"][0]["title"] == "Not Found"
    assert session.rollbacks == 1


def test_decorator_hides_unexpected_errors() -> None:
    session, exc = _call("broken")
    assert exc.code == HTTPStatus.INTERNAL_SERVER_ERROR
    error = exc.data["errors"][0]
    assert "hunter2" not in error["detail"]
    assert error["code"] == "500"


def test_decorator_shows_unexpected_errors_when_debugging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sqla_ctrl.log, "getEffectiveLevel", lambda: 10)
    session, exc = _call("broken")
    assert exc.data["errors"][0]["detail"] == "database password is hunter2"


def test_generic_error_message(monkeypatch: pytest.MonkeyPatch) -> None:
    assert GenericError("secret").message == HIDDEN_LOG
    monkeypatch.setattr(errors_mod, "is_debug", lambda: True)
    error = GenericError("secret", HTTPStatus.SERVICE_UNAVAILABLE.value)
    assert error.message == "secret"
    assert error.status_code == HTTPStatus.SERVICE_UNAVAILABLE


def test_not_found_error_is_werkzeug_not_found() -> None:
    error = NotFoundError("gone")
    assert isinstance(error, NotFound)
    assert error.status_code == HTTPStatus.NOT_FOUND
    assert error.api_code == HTTPStatus.NOT_FOUND


def test_handle_error_passes_foreign_exceptions(app) -> None:
    exc = NotFound()
    assert handle_error(exc) is exc


def test_handle_error_renders_errors(app) -> None:
    exc = NotFound()
    exc.data = {"errors": [{"title": "Not Found", "detail": "x", "code": "404"}]}
    response = handle_error(exc)
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.get_json() == exc.data


def test_controller_names(app) -> None:
    ctrl = controller(User)
    assert isinstance(ctrl, Controller)
    assert isinstance(ctrl.model_ctrl, ModelController)
    assert ctrl["select"].__name__ == "users_select"
    assert ctrl["relation_unlink"].__name__ == "users_relation_unlink"
    assert ctrl["handle_error"] is handle_error
    assert ctrl.chain("paginate", "list").__name__ == "users_paginate_list"
    assert len({view.__name__ for name, view in ctrl.items() if name != "handle_error"}) == 15


def test_controller_requires_mapped_class() -> None:
    with pytest.raises(TypeError):
        controller(dict)


def test_chain_without_response(app) -> None:
    ctrl = controller(User)
    ctrl["nothing"] = lambda **kwargs: None
    with app.test_request_context("/users"):
        response = ctrl.chain("paginate", "nothing")()
    assert response.status_code == HTTPStatus.NO_CONTENT


@pytest.mark.parametrize(
    "value, expected",
    [
        (datetime.datetime(2021, 3, 4, 10, 11, 12), '"2021-03-04T10:11:12"'),
        (datetime.date(2021, 3, 4), '"2021-03-04"'),
        (datetime.time(10, 11), '"10:11:00"'),
        (datetime.timedelta(hours=1), '"1:00:00"'),
        (decimal.Decimal("1.5"), "1.5"),
        (uuid.UUID("12345678-1234-5678-1234-567812345678"), '"12345678-1234-5678-1234-567812345678"'),
        (b"\x01\xff", '"01ff"'),
        ({3}, "[3]"),
    ],
)
def test_json_provider(app, value, expected) -> None:
    assert app.json.dumps(value) == expected


def test_json_provider_instance(app) -> None:
    user = User(id=1, first_name="Alice", last_name=None, profile={"a": 1})
    assert app.json.loads(app.json.dumps(user)) == {"id": 1, "first_name": "Alice", "last_name": None, "profile": {"a": 1}}
