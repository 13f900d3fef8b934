from http import HTTPStatus

import pytest
from flask import Flask, request
from sqlalchemy import select

from nested_rest import ConfigurationError, NestedIndexAction, NestedRestAPI
from nested_rest.nested_api import api_decorator
from blog_models import Comment, Post, PostCategory, db, post_tags


def _ids(response) -> list:
    return [item["id"] for item in response.json["data"]]


def test_index(client) -> None:
    response = client.get("/posts/1/comments")
    assert response.status_code == HTTPStatus.OK
    assert _ids(response) == [1, 2]
    assert response.json["data"][0] == {"id": 1, "post_id": 1, "text": "c1"}
    assert response.json["meta"]["count"] == 2


def test_index_head(client) -> None:
    assert client.head("/posts/1/comments").status_code == HTTPStatus.OK


def test_index_pagination(client) -> None:
    response = client.get("/posts/1/comments?page[offset]=1&page[limit]=1")
    assert _ids(response) == [2]
    assert response.json["meta"] == {"count": 2, "limit": 1, "offset": 1}
    assert "first" in response.json["links"]


def test_index_unknown_parent(client) -> None:
    response = client.get("/posts/99/comments")
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.json["errors"][0]["code"] == "404"


def test_index_of_single_valued_relation(client) -> None:
    assert _ids(client.get("/posts/1/author")) == [1]
    assert _ids(client.get("/posts/2/author")) == []


def test_custom_controller(client) -> None:
    response = client.get("/authors/1/posts")
    assert _ids(response) == [1]
    assert response.json["data"][0]["title"] == "first"


def test_view(client) -> None:
    response = client.get("/posts/1/comments/1")
    assert response.status_code == HTTPStatus.OK
    assert response.json["data"]["text"] == "c1"

    response = client.get("/posts/1/comments/2,1")
    assert sorted(item["id"] for item in response.json["data"]) == [1, 2]


@pytest.mark.parametrize("path", ["/posts/1/comments/3", "/posts/1/comments/1,3", "/posts/1/comments/99", "/posts/99/comments/1"])
def test_view_not_found(client, path: str) -> None:
    assert client.get(path).status_code == HTTPStatus.NOT_FOUND


def test_create(client, access) -> None:
    response = client.post("/posts/1/comments", json={"text": "hello"})
    assert response.status_code == HTTPStatus.CREATED
    assert response.json["data"]["post_id"] == 1
    comment_id = response.json["data"]["id"]
    assert response.headers["Location"] == f"http://localhost/posts/1/comments/{comment_id}"
    assert access.calls[0] == ("nested-create", None)
    assert db.session.get(Comment, comment_id).text == "hello"


def test_create_form_data(client) -> None:
    response = client.post("/posts/1/tags", data={"name": "form", "note": "posted"})
    assert response.status_code == HTTPStatus.CREATED
    tag_id = response.json["data"]["id"]
    note = db.session.execute(select(post_tags.c.note).where(post_tags.c.tag_id == tag_id)).scalar()
    assert note == "posted"


def test_create_with_validation_errors(client) -> None:
    response = client.post("/posts/1/comments", json={})
    assert response.status_code == HTTPStatus.OK
    assert response.json["errors"] == [
        {"title": "Validation Error: ", "detail": "text cannot be blank.", "source": {"parameter": "text"}}
    ]
    assert response.json["data"]["post_id"] == 1


def test_validation_error_status_is_configurable(app: Flask, client) -> None:
    app.config["VALIDATION_ERROR_STATUS"] = HTTPStatus.UNPROCESSABLE_ENTITY.value
    response = client.put("/posts/1/categories/2", json={"weight": -3})
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json["errors"][0]["source"] == {"parameter": "weight"}


def test_link(client) -> None:
    assert client.put("/posts/1/comments/3").status_code == HTTPStatus.NO_CONTENT
    assert client.put("/posts/1/comments/3").status_code == HTTPStatus.NOT_MODIFIED
    assert _ids(client.get("/posts/1/comments")) == [1, 2, 3]


def test_link_join_entity(client) -> None:
    response = client.put("/posts/1/categories/1,2", json={"weight": 4})
    assert response.status_code == HTTPStatus.NO_CONTENT
    weights = db.session.scalars(select(PostCategory.weight).where(PostCategory.post_id == 1)).all()
    assert weights == [4, 4]


def test_link_conflict(client) -> None:
    response = client.put("/posts/1/tags/2", json={"note": "x"})
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.json["errors"][0]["title"] == "Validation Error: objects already linked."


def test_link_invalid_payload(client) -> None:
    assert client.put("/posts/1/tags/1", json=["x"]).status_code == HTTPStatus.BAD_REQUEST


def test_link_unknown_target(client) -> None:
    assert client.put("/posts/1/comments/3,99").status_code == HTTPStatus.NOT_FOUND
    assert db.session.get(Comment, 3).post_id == 2


def test_link_single_valued_relation(client) -> None:
    assert client.put("/posts/2/author/1").status_code == HTTPStatus.NO_CONTENT
    assert _ids(client.get("/posts/2/author")) == [1]
    assert client.put("/posts/2/author/1,2").status_code == HTTPStatus.BAD_REQUEST


def test_unlink(client) -> None:
    assert client.delete("/posts/1/comments/3").status_code == HTTPStatus.BAD_REQUEST
    assert client.delete("/posts/1/comments/1").status_code == HTTPStatus.NO_CONTENT
    assert _ids(client.get("/posts/1/comments")) == [2]


def test_unlink_all(client) -> None:
    assert client.delete("/posts/1/tags").status_code == HTTPStatus.NO_CONTENT
    assert _ids(client.get("/posts/1/tags")) == []
    # nothing to unlink still counts as a change
    assert client.delete("/posts/1/tags").status_code == HTTPStatus.NO_CONTENT


def test_options(client) -> None:
    response = client.options("/posts/1/comments")
    assert response.status_code == HTTPStatus.OK
    assert response.headers["Allow"] == "GET, POST, HEAD, DELETE, OPTIONS"

    response = client.options("/posts/1/comments/1")
    assert response.status_code == HTTPStatus.OK
    assert response.headers["Allow"] == "GET, PUT, DELETE, HEAD, OPTIONS"


def test_unsupported_method(client) -> None:
    response = client.patch("/posts/1/comments/1")
    assert response.status_code == HTTPStatus.METHOD_NOT_ALLOWED
    assert response.headers["Allow"] == "GET, PUT, DELETE, HEAD, OPTIONS"
    assert client.put("/posts/1/comments").status_code == HTTPStatus.METHOD_NOT_ALLOWED


def test_access_denied(client, access) -> None:
    access.denied.add("nested-index")
    assert client.get("/posts/1/comments").status_code == HTTPStatus.FORBIDDEN

    access.rejected.add("nested-unlink")
    assert client.delete("/posts/1/comments/1").status_code == HTTPStatus.FORBIDDEN
    assert db.session.get(Comment, 1).post_id == 1


def test_access_is_checked_for_every_viewed_target(client, access) -> None:
    client.get("/posts/1/comments/1,2")
    subjects = [subject for action_id, subject in access.calls if action_id == "nested-view"]
    assert isinstance(subjects[0], Post)
    assert sorted(subject.id for subject in subjects[1:]) == [1, 2]


def test_duplicate_exposure(api: NestedRestAPI) -> None:
    with pytest.raises(ConfigurationError):
        api.expose_nested(Post, ["comments"])


def test_api_parse_request_and_create_url(api: NestedRestAPI) -> None:
    endpoint, params = api.parse_request("/authors/2/posts", "POST")
    assert endpoint == "authors.article.nested-create"
    assert api.create_url(endpoint, params) == "/authors/2/posts"
    assert api.parse_request("/unknown/1/posts") is None


def test_missing_route_context(app: Flask, client) -> None:
    view = api_decorator(type("BrokenIndex", (NestedIndexAction,), {})).as_view("broken")
    app.add_url_rule("/broken/<digits:post_id>", view_func=view)
    response = client.get("/broken/1")
    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.json["errors"][0]["code"] == "500"


def test_request_paging_arguments(app: Flask) -> None:
    with app.test_request_context("/posts/1/comments?page[number]=3&page[size]=10"):
        assert request.page_offset == 20
        assert request.page_limit == 10
    with app.test_request_context("/posts/1/comments"):
        assert request.page_offset == 0
        assert request.page_limit == 250


def test_view_shape_follows_the_requested_ids(client) -> None:
    response = client.get("/posts/1/comments/1,1")
    assert response.status_code == HTTPStatus.OK
    assert [item["id"] for item in response.json["data"]] == [1]
    assert [item["id"] for item in client.get("/posts/1/comments/2,1").json["data"]] == [2, 1]


def test_index_last_page_link(client) -> None:
    links = client.get("/posts/1/comments?page[offset]=0&page[limit]=1").json["links"]
    assert links["last"].endswith("page[offset]=1&page[limit]=1")
    links = client.get("/posts/1/comments?page[offset]=0&page[limit]=2").json.get("links", {})
    assert "last" not in links


def test_link_join_table_twice(client) -> None:
    assert client.put("/posts/1/tags/2,3").status_code == HTTPStatus.NO_CONTENT
    tag_ids = db.session.scalars(select(post_tags.c.tag_id).where(post_tags.c.post_id == 1).order_by(post_tags.c.tag_id)).all()
    assert tag_ids == [2, 3]
    assert client.put("/posts/1/tags/2,3").status_code == HTTPStatus.NOT_MODIFIED


def _stored_weight(post_id: int, category_id: int) -> int:
    return db.session.scalar(
        select(PostCategory.weight).where(PostCategory.post_id == post_id, PostCategory.category_id == category_id)
    )


def test_update_join_entity_with_blank_value(client) -> None:
    response = client.put("/posts/1/categories/1", json={"weight": None})
    assert response.status_code == HTTPStatus.OK
    assert response.json["errors"] == [
        {"title": "Validation Error: ", "detail": "weight cannot be blank.", "source": {"parameter": "weight"}}
    ]
    assert _stored_weight(1, 1) == 5


def test_update_join_entity_rejected_by_validate(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def validate(self) -> None:
        if self.weight > 100:
            self._s_add_error("weight", "too heavy.")

    monkeypatch.setattr(PostCategory, "validate", validate)
    response = client.put("/posts/1/categories/1", json={"weight": 500})
    assert response.status_code == HTTPStatus.OK
    assert response.json["errors"][0]["detail"] == "too heavy."
    assert response.json["data"]["weight"] == 500
    assert _stored_weight(1, 1) == 5

    assert client.put("/posts/1/categories/1", json={"weight": 50}).status_code == HTTPStatus.NO_CONTENT
    assert _stored_weight(1, 1) == 50


def test_rejected_link_writes_nothing(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def validate(self) -> None:
        if self.category_id == 2:
            self._s_add_error("weight", "locked.")

    monkeypatch.setattr(PostCategory, "validate", validate)
    response = client.put("/posts/1/categories/2,1", json={"weight": 7})
    assert response.status_code == HTTPStatus.OK
    assert response.json["data"]["category_id"] == 2
    assert _stored_weight(1, 2) is None
    assert _stored_weight(1, 1) == 5


def test_route_without_url_rule(app: Flask, client) -> None:
    view = api_decorator(type("OrphanIndex", (NestedIndexAction,), {})).as_view("orphan")
    defaults = {"relative_class": Post, "relation_name": "comments", "link_attribute": "post_id"}
    app.add_url_rule("/orphan/<digits:post_id>", view_func=view, defaults=defaults)
    assert client.get("/orphan/1").status_code == HTTPStatus.INTERNAL_SERVER_ERROR
