# tests/conftest.py
import os, sys
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("APP_ENV", "test")

from notesync import create_app
from notesync.extensions import db
from notesync.device.transport import PROTOCOL_VERSION, PROTOCOL_HEADER

@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(TESTING=True)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()

@pytest.fixture(autouse=True)
def _fresh_tables(app):
    # tables propres pour chaque test
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield
    with app.app_context():
        db.session.remove()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def issue_token(app):
    from notesync.auth.service import issue_client

    def _issue(username="alice"):
        with app.app_context():
            return issue_client(username).token
    return _issue

@pytest.fixture()
def api(client):
    """POST JSON avec token + header de version."""
    def _post(path, token=None, json=None, version=PROTOCOL_VERSION):
        headers = {}
        if version is not None:
            headers[PROTOCOL_HEADER] = str(version)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return client.post(path, json=json if json is not None else {}, headers=headers)
    return _post
