import json

from sablier.instance import State, Status
from sablier.routes import StrategyConfig
from sablier.server import create_app
from sablier.sessions import InstanceState, SessionState
from sablier.theme import Themes


class FakeManager:
    def __init__(self):
        self.session = SessionState(
            instances={"nginx": InstanceState(State(name="nginx", status=Status.READY))}
        )

    def request_session(self, names, duration):
        return self.session

    def request_session_group(self, group, duration):
        return None

    def request_ready_session(self, names, duration, timeout, cancel=None):
        return self.session

    def request_ready_session_group(self, group, duration, timeout, cancel=None):
        raise ValueError("group has no member")


def _app(base_path="/"):
    themes = Themes({"ghost.html": "<p>{{ display_name }}</p>"})
    return create_app(FakeManager(), themes, StrategyConfig(default_theme="ghost"), base_path)


def test_health_route():
    response = _app().test_client().get("/health")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "OK"


def test_health_reports_terminating():
    app = _app()
    app.extensions["sablier"]["health"].mark_terminating()
    assert app.test_client().get("/health").status_code == 503


def test_base_path_prefixes_routes():
    client = _app("/sablier/").test_client()
    assert client.get("/sablier/health").status_code == 200
    assert client.get("/health").status_code == 404


def test_themes_route():
    response = _app().test_client().get("/api/strategies/dynamic/themes")
    assert json.loads(response.get_data(as_text=True)) == {"themes": ["ghost"]}


def test_dynamic_route_uses_default_theme():
    response = _app().test_client().get("/api/strategies/dynamic?names=nginx&display_name=Web")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "<p>Web</p>"
    assert response.headers["X-Sablier-Session-Status"] == "ready"


def test_blocking_route():
    response = _app().test_client().get("/api/strategies/blocking?names=nginx")
    assert response.status_code == 200
    assert json.loads(response.get_data(as_text=True))["session"]["status"] == "ready"