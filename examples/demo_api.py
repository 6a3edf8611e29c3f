#!/usr/bin/env python3
"""
  This demo application exposes the models with the generated routes and swagger documentation
  When sqla_ctrl is installed, you can run this app:
  $ python3 demo_api.py [Listener-IP]

  This will run the example on http://Listener-Ip:5000/api

  - An sqlite database is created and populated
  - The controller routes are created for every model
  - Swagger documentation is generated
"""
import sys
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqla_ctrl import CtrlAPI, public_method, ctrl_scope

db = SQLAlchemy()

car_tags = db.Table(
    "car_tags",
    db.Column("car_id", db.Integer, db.ForeignKey("cars.id"), primary_key=True),
    db.Column("tag_id", db.Integer, db.ForeignKey("tags.id"), primary_key=True),
)


# Example sqla database objects
class User(db.Model):
    """
    description: Car owners
    """

    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String, nullable=False)
    last_name = db.Column(db.String, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    cars = db.relationship("Car", back_populates="user")

    @public_method
    def send_mail(self, args):
        """
        description : Send a mail to the user
        """
        content = args.get("content", "")
        return {"result": f"sent {content} to {self.first_name}"}


class Car(db.Model):
    """
    description: Cars and their owner
    """

    __tablename__ = "cars"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    type = db.Column(db.String, nullable=False)
    color = db.Column(db.String, nullable=False)
    user = db.relationship("User", back_populates="cars")
    car_tags = db.relationship("Tag", secondary=car_tags)

    @ctrl_scope
    def red(query):
        return query.filter(Car.color == "red")


class Tag(db.Model):
    __tablename__ = "tags"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, unique=True)


# Create the api endpoints
def create_api(app, host="localhost", port=5000, api_prefix="/api"):
    api = CtrlAPI(app, host=host, port=port, prefix=api_prefix, app_db=db)
    api.expose(User, Car, Tag)
    print(f"Created API: http://{host}:{port}{api_prefix}")


def create_app(config_filename=None, host="localhost"):
    app = Flask("demo_app")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://")
    db.init_app(app)

    with app.app_context():
        db.create_all()
        create_api(app, host)
        # Populate the db with users and cars, the cars are tagged
        tags = [Tag(name="fast"), Tag(name="family")]
        for i in range(50):
            user = User(first_name=f"first{i}", last_name=f"last{i}")
            user.cars.append(Car(type="suv", color="red" if i % 3 else "white", car_tags=tags[i % 2 :]))
            db.session.add(user)
        db.session.commit()

    return app


# Address where the api will be hosted, change this if you're not running the app on localhost!
host = sys.argv[1] if sys.argv[1:] else "127.0.0.1"
app = create_app(host=host)

if __name__ == "__main__":
    app.run(host=host)
