import pytest
from flask import Flask
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE, ONETOMANY

from nested_rest import ConfigurationError, NestedUrlRule, describe_relation
from blog_models import Author, Category, Comment, Post, PostCategory, Tag, post_tags


def test_one_to_many() -> None:
    descriptor = describe_relation(Post, "comments")
    assert descriptor.direction == ONETOMANY
    assert descriptor.multiple
    assert descriptor.target_class is Comment
    assert not descriptor.is_many_to_many
    assert descriptor.link_columns == {"post_id": "id"}


def test_many_to_one() -> None:
    descriptor = describe_relation(Post, "author")
    assert descriptor.direction == MANYTOONE
    assert not descriptor.multiple
    assert descriptor.target_class is Author
    assert descriptor.link_columns == {"author_id": "id"}


def test_join_table() -> None:
    descriptor = describe_relation(Post, "tags")
    assert descriptor.direction == MANYTOMANY
    assert descriptor.is_via_table
    assert not descriptor.is_via_class
    assert descriptor.via_table is post_tags
    assert descriptor.target_class is Tag
    assert descriptor.link_columns == {"post_id": "id", "tag_id": "id"}


def test_join_entity_is_found_in_the_registry() -> None:
    descriptor = describe_relation(Post, "categories")
    assert descriptor.is_via_class
    assert descriptor.via_class is PostCategory
    assert descriptor.target_class is Category


def test_descriptors_are_owned_by_the_url_rule() -> None:
    url_rule = NestedUrlRule(Post, ["comments", "tags"])
    descriptor = url_rule.descriptors["comments"]
    assert descriptor.target_class is Comment
    assert list(url_rule.descriptors) == ["comments", "tags"]
    with pytest.raises(TypeError):
        url_rule.descriptors["author"] = describe_relation(Post, "author")
    with pytest.raises(AttributeError):
        descriptor.name = "tags"


def test_unknown_relation() -> None:
    with pytest.raises(ConfigurationError):
        describe_relation(Post, "readers")


def test_unmapped_class() -> None:
    with pytest.raises(ConfigurationError):
        describe_relation(dict, "items")


def test_scoped_query_and_exists(app: Flask) -> None:
    descriptor = describe_relation(Post, "tags")
    post = Post.get_instance(1)
    assert [tag.id for tag in descriptor.scoped_query(post)] == [2]
    assert descriptor.exists("2", parent=post)
    assert not descriptor.exists("1", parent=post)
    assert descriptor.exists("1")
    assert not descriptor.exists("9")


def test_via_values(app: Flask) -> None:
    post, category = Post.get_instance(1), Category.get_instance(2)
    descriptor = describe_relation(Post, "categories")
    assert descriptor.via_row(post, category) == {"post_id": 1, "category_id": 2}
    assert descriptor.via_attributes(post, category) == {"post_id": 1, "category_id": 2}
    assert descriptor.find_via_instance(post, Category.get_instance(1)).weight == 5
    assert descriptor.find_via_instance(post, category) is None
