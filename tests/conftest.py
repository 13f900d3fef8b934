from typing import Iterator, List, Optional, Tuple

import pytest
from flask import Flask

from nested_rest import NestedRestAPI, UnAuthorizedError
from blog_models import Author, Post, db, seed


class AccessControl:
    """
    Records the access checks, the actions in `denied` are rejected
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Optional[object]]] = []
        self.denied = set()
        self.rejected = set()

    def __call__(self, action_id: str, subject: Optional[object] = None) -> bool:
        self.calls.append((action_id, subject))
        if action_id in self.denied:
            raise UnAuthorizedError(f"{action_id} denied")
        return action_id not in self.rejected


@pytest.fixture
def access() -> AccessControl:
    return AccessControl()


@pytest.fixture
def app(access: AccessControl) -> Iterator[Flask]:
    app = Flask("nested_rest_tests")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    db.init_app(app)
    with app.app_context():
        db.create_all()
        seed()
        api = NestedRestAPI(app)
        api.expose_nested(Post, ["comments", "tags", "categories", {"author": {"author": "author"}}], check_access=access)
        api.expose_nested(Author, {"posts": "article"})
        app.extensions["nested_rest_api"] = api
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def api(app: Flask) -> NestedRestAPI:
    return app.extensions["nested_rest_api"]


@pytest.fixture
def client(app: Flask):
    return app.test_client()
