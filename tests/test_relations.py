import json
from http import HTTPStatus

import pytest

from sqla_ctrl.errors import NotFoundError, ValidationError
from sqla_ctrl.relations import get_relationship, get_collection, get_scalar, name_candidates, underscore
from models import db, User, Car, Tag


def ids(response):
    return [item["id"] for item in response.get_json()]


def error_detail(response):
    return response.get_json()["errors"][0]["detail"]


@pytest.mark.parametrize(
    "name, expected",
    [("car-parts", "car_parts"), ("carParts", "car_parts"), ("cars", "cars")],
)
def test_underscore(name, expected) -> None:
    assert underscore(name) == expected


def test_name_candidates() -> None:
    assert name_candidates("car", plural=True) == ["car", "cars"]
    assert name_candidates("cars", plural=False) == ["cars", "car"]
    assert name_candidates("car-parts") == ["car_parts", "car_part"]


@pytest.mark.parametrize("name", ["cars", "car", "Cars"])
def test_get_relationship(name) -> None:
    assert get_relationship(User, name).key == "cars"


def test_get_relationship_not_found() -> None:
    with pytest.raises(NotFoundError) as exc_info:
        get_relationship(User, "bikes")
    assert exc_info.value.message == "Relation 'bikes' Not Found On 'User'"


def test_get_collection_rejects_scalar() -> None:
    with pytest.raises(ValidationError):
        get_collection(Car, "user")


def test_get_scalar_rejects_collection() -> None:
    with pytest.raises(ValidationError):
        get_scalar(Car, "tags")


def test_relation_list(client, data) -> None:
    response = client.get("/users/1/cars")
    assert response.status_code == HTTPStatus.OK
    assert ids(response) == [1, 2]


def test_relation_list_singular_name(client, data) -> None:
    assert ids(client.get("/users/1/car")) == [1, 2]


def test_relation_list_where(client, data) -> None:
    response = client.get("/users/1/cars", query_string={"where": json.dumps({"color": "blue"})})
    assert ids(response) == [2]


def test_relation_search(client, data) -> None:
    response = client.post("/users/1/cars/search", json={"type": "suv"})
    assert ids(response) == [1]


def test_relation_list_paginated(client, data) -> None:
    response = client.get("/users/1/cars", query_string={"page": 2, "limit": 1})
    assert ids(response) == [2]
    assert response.headers["X-Page-Total-Items"] == "2"
    assert response.headers["X-Page-Total-Pages"] == "2"


def test_relation_list_many_to_many(client, data) -> None:
    response = client.get("/tags/2/cars")
    assert ids(response) == [2]


def test_relation_list_parent_not_found(client, data) -> None:
    response = client.get("/users/99/cars")
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert error_detail(response) == "Instance of 'User' Not Found"


def test_relation_list_unknown_relation(client, data) -> None:
    response = client.get("/users/1/bikes")
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert error_detail(response) == "Relation 'bikes' Not Found On 'User'"


def test_relation_list_on_scalar(client, data) -> None:
    response = client.get("/cars/1/users")
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert error_detail(response) == "Relation 'user' of 'Car' holds a single item"


def test_relation_parent(client, data) -> None:
    response = client.get("/cars/3/user")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json()["first_name"] == "Bob"


def test_relation_create(client, data) -> None:
    response = client.post("/users/3/cars", json={"type": "van", "color": "white"})
    assert response.status_code == HTTPStatus.CREATED
    car = response.get_json()
    assert car["user_id"] == 3
    assert ids(client.get("/users/3/cars")) == [car["id"]]


def test_relation_create_many_to_many(client, data) -> None:
    response = client.post("/cars/1/tags", json={"name": "classic"})
    assert response.status_code == HTTPStatus.CREATED
    assert [tag["name"] for tag in client.get("/cars/1/tags").get_json()] == ["classic"]


def test_relation_select(client, data) -> None:
    response = client.get("/users/1/cars/2")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json()["color"] == "blue"


def test_relation_select_unrelated(client, data) -> None:
    response = client.get("/users/1/cars/3")
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert error_detail(response) == "Instance of 'Car' Not Found"


def test_relation_link(client, data) -> None:
    response = client.put("/cars/1/tags/1")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json() == {"id": 1, "name": "fast"}
    assert ids(client.get("/tags/1/cars")) == [1]


def test_relation_link_singular_name(client, data) -> None:
    response = client.put("/cars/3/tag/2")
    assert response.status_code == HTTPStatus.OK
    assert sorted(ids(client.get("/tags/2/cars"))) == [2, 3]


def test_relation_link_exists(client, data) -> None:
    response = client.put("/cars/2/tags/2")
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert error_detail(response) == "Relation of 'Tag' and 'Car' Already Exists"


def test_relation_link_target_not_found(client, data) -> None:
    response = client.put("/cars/1/tags/99")
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert error_detail(response) == "Instance of 'Tag' Not Found"


def test_relation_link_moves_one_to_many(client, data) -> None:
    response = client.put("/users/2/cars/1")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json()["user_id"] == 2
    assert ids(client.get("/users/1/cars")) == [2]


def test_relation_unlink(client, data) -> None:
    response = client.delete("/cars/2/tags/2")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json() == 1
    assert client.get("/cars/2/tags").get_json() == []
    # the tag itself still exists
    assert client.get("/tags/2").status_code == HTTPStatus.OK
    assert client.delete("/cars/2/tags/2").get_json() == 0


def test_relation_unlink_required_parent(client, data) -> None:
    # cars.user_id is not nullable
    response = client.delete("/users/1/cars/1")
    assert response.status_code == HTTPStatus.BAD_REQUEST
    db.session.expunge_all()
    assert db.session.get(Car, 1).user_id == 1


def test_relation_routes_share_session(client, data) -> None:
    client.put("/cars/1/tags/1")
    db.session.expunge_all()
    assert [tag.name for tag in db.session.get(Car, 1).tags] == ["fast"]
    assert db.session.query(Tag).count() == data["tags"]
