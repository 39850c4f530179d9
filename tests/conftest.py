import pytest
from flask_jwt_extended import create_access_token
from sqlalchemy import event

from almanac import create_app
from almanac.models import db

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture()
def app(tmp_path):
    database_path = tmp_path / "test.db"
    flask_app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{database_path}",
        "JWT_SECRET_KEY": TEST_SECRET,
        "MQTT_ENABLED": False,
    })
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(app):
    def _headers(user_id, **kwargs):
        with app.app_context():
            token = create_access_token(identity=user_id, **kwargs)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def store_calls(app):
    """Records every SQL statement sent to the database."""
    statements = []

    def _record(conn, cursor, statement, *args):
        statements.append(statement)

    with app.app_context():
        engine = db.engine
    event.listen(engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine, "before_cursor_execute", _record)
