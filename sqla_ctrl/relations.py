"""
Relationship lookup: map the relation url segment to a relationship of the model

The segment may use dashes and either the singular or the plural form,
f.i. "car-parts", "car_part" and "carParts" all resolve to a "car_parts" relationship
"""
import re
import inflect
from sqlalchemy import inspect as sqla_inspect
from .errors import NotFoundError, ValidationError

pluralizer = inflect.engine()


def underscore(word: str) -> str:
    """
    "carParts" => "car_parts", "car-parts" => "car_parts"
    """
    word = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", word)
    return word.replace("-", "_").lower()


def name_candidates(name: str, plural: bool = True):
    """
    :param name: relation url segment
    :param plural: whether the plural form is expected
    :return: candidate relationship keys, the expected form first
    """
    word = underscore(name)
    singular = pluralizer.singular_noun(word) or word
    plural_form = pluralizer.plural(singular)
    if plural:
        candidates = [word, plural_form, singular]
    else:
        candidates = [word, singular, plural_form]
    # keep the order, drop duplicates
    return list(dict.fromkeys(candidates))


def get_relationship(model, name: str, plural: bool = True):
    """
    :param model: sqla model class
    :param name: relation url segment
    :param plural: True for to-many handlers
    :return: sqla RelationshipProperty, NotFoundError if there's no such relationship
    """
    relationships = sqla_inspect(model).relationships
    for candidate in name_candidates(name, plural):
        if candidate in relationships:
            return relationships[candidate]
    raise NotFoundError(f"Relation '{name}' Not Found On '{model.__name__}'")


def get_collection(model, name: str):
    """
    :return: relationship that holds a collection (one-to-many, many-to-many)
    """
    relationship = get_relationship(model, name, plural=True)
    if not relationship.uselist:
        raise ValidationError(f"Relation '{relationship.key}' of '{model.__name__}' holds a single item")
    return relationship


def get_scalar(model, name: str):
    """
    :return: relationship that holds a single item (many-to-one, one-to-one)
    """
    relationship = get_relationship(model, name, plural=False)
    if relationship.uselist:
        raise ValidationError(f"Relation '{relationship.key}' of '{model.__name__}' holds a collection")
    return relationship


def relation_title(relationship) -> str:
    """
    :return: the name used in messages, f.i. "Car" for the "cars" relationship
    """
    return relationship.mapper.class_.__name__
