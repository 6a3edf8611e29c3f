#!/usr/bin/env python3
"""
  This demo application shows how the controller handlers are registered by hand
  When sqla_ctrl is installed, you can run this app:
  $ python3 demo_routes.py [Listener-IP]

  This will run the example on http://Listener-Ip:4000

  - An sqlite database is created and populated
  - The users routes are added to the flask app

  $ curl "http://127.0.0.1:4000/users?page=2&limit=5"
  $ curl "http://127.0.0.1:4000/users/1/cars"
"""
import sys
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqla_ctrl import SQLACtrl, controller

db = SQLAlchemy()


# Example sqla database objects
class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String, nullable=False)
    last_name = db.Column(db.String, nullable=False)
    cars = db.relationship("Car", back_populates="user")


class Car(db.Model):
    __tablename__ = "cars"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    type = db.Column(db.String, nullable=False)
    color = db.Column(db.String, nullable=False)
    user = db.relationship("User", back_populates="cars")


def add_routes(app):
    user_ctrl = controller(User, db)

    app.add_url_rule("/users", view_func=user_ctrl.chain("paginate", "list"), methods=["GET"])
    app.add_url_rule("/users", view_func=user_ctrl["create"], methods=["POST"])

    app.add_url_rule("/users/<id>", view_func=user_ctrl["select"], methods=["GET"])
    app.add_url_rule("/users/<id>", view_func=user_ctrl["update"], methods=["PUT"])
    app.add_url_rule("/users/<id>", view_func=user_ctrl["destroy"], methods=["DELETE"])

    app.add_url_rule("/users/<id>/<any(cars):relation>", view_func=user_ctrl["relation_list"], methods=["GET"])
    app.add_url_rule("/users/<id>/<any(cars):relation>", view_func=user_ctrl["relation_create"], methods=["POST"])
    app.add_url_rule("/users/<id>/<any(cars):relation>/<rel_id>", view_func=user_ctrl["relation_select"], methods=["GET"])


def create_app(config_filename=None):
    app = Flask("demo_app")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://")
    db.init_app(app)

    with app.app_context():
        SQLACtrl(app, app_db=db)
        db.create_all()
        add_routes(app)
        # Populate the db with users and their cars
        for i in range(20):
            user = User(first_name=f"first{i}", last_name=f"last{i}")
            user.cars.append(Car(type="suv", color="red" if i % 2 else "blue"))
            db.session.add(user)
        db.session.commit()

    return app


# Address where the app will be hosted, change this if you're not running the app on localhost!
host = sys.argv[1] if sys.argv[1:] else "127.0.0.1"
app = create_app()

if __name__ == "__main__":
    app.run(host=host, port=4000)
