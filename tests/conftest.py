from functools import partial

import pytest
from flask import Flask

from sqla_ctrl import SQLACtrl, CtrlAPI, controller
from models import db, User, Car, Tag


def add_routes(app, ctrl, collection):
    """
    Register the controller handlers on the app, the way an application would do it by hand
    """
    list_view = ctrl.chain("paginate", "list")
    rules = [
        ("", "list", list_view, ["GET"]),
        ("", "create", ctrl["create"], ["POST"]),
        ("/search", "search", list_view, ["POST"]),
        ("/scope/<scope>", "scope", ctrl.chain("paginate", "scope"), ["GET", "POST"]),
        ("/<id>", "select", ctrl["select"], ["GET"]),
        ("/<id>", "update", ctrl["update"], ["PUT"]),
        ("/<id>", "patch", ctrl["patch"], ["PATCH"]),
        ("/<id>", "destroy", ctrl["destroy"], ["DELETE"]),
        ("/<id>/method/<method>", "instance_method", ctrl["instance_method"], ["PUT"]),
        ("/<id>/<relation>", "relation_list", ctrl.chain("paginate", "relation_list"), ["GET"]),
        ("/<id>/<relation>", "relation_create", ctrl["relation_create"], ["POST"]),
        ("/<id>/<relation>/search", "relation_search", ctrl.chain("paginate", "relation_list"), ["POST"]),
        ("/<id>/<relation>/<rel_id>", "relation_select", ctrl["relation_select"], ["GET"]),
        ("/<id>/<relation>/<rel_id>", "relation_link", ctrl["relation_link"], ["PUT"]),
        ("/<id>/<relation>/<rel_id>", "relation_unlink", ctrl["relation_unlink"], ["DELETE"]),
    ]
    for path, name, view, methods in rules:
        app.add_url_rule(f"/{collection}{path}", endpoint=f"{collection}_{name}", view_func=view, methods=methods)


@pytest.fixture
def app():
    app = Flask("sqla_ctrl_test")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    db.init_app(app)
    with app.app_context():
        SQLACtrl(app, app_db=db)
        for model in (User, Car, Tag):
            add_routes(app, controller(model, db), model.__tablename__)
        # the owner of a car is a scalar relation
        car_ctrl = controller(Car, db)
        app.add_url_rule("/cars/<id>/user", endpoint="cars_user", view_func=partial(car_ctrl["relation_parent"], relation="user"))
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def api_app():
    app = Flask("sqla_ctrl_api_test")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    db.init_app(app)
    with app.app_context():
        api = CtrlAPI(app, host="localhost", port=None, prefix="/api", app_db=db)
        api.expose(User, Car, Tag)
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def data(request):
    """
    Users:
        1 Alice Smith (cars 1, 2)
        2 Bob Jones (car 3)
        3 Carol Smith
        4 Dave (no last name)
        5 Eve Brown
    Cars 1 and 3 are red, car 2 is tagged "family"
    """
    app_fixture = "api_app" if "api_app" in request.fixturenames else "app"
    request.getfixturevalue(app_fixture)
    users = [
        User(first_name="Alice", last_name="Smith", profile={"age": 30, "city": "Ghent"}),
        User(first_name="Bob", last_name="Jones"),
        User(first_name="Carol", last_name="Smith"),
        User(first_name="Dave", last_name=None),
        User(first_name="Eve", last_name="Brown"),
    ]
    db.session.add_all(users)
    db.session.flush()
    fast, family = Tag(name="fast"), Tag(name="family")
    # tags 1 and 2, before car 2 cascades "family" into the session
    db.session.add_all([fast, family])
    db.session.flush()
    cars = [
        Car(user=users[0], type="suv", color="red"),
        Car(user=users[0], type="van", color="blue", tags=[family]),
        Car(user=users[1], type="suv", color="red"),
    ]
    db.session.add_all(cars)
    db.session.commit()
    # start the requests with an empty identity map
    db.session.expunge_all()
    return {"users": 5, "cars": 3, "tags": 2}


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def api_client(api_app):
    return api_app.test_client()
