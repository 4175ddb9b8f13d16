from fastapi import FastAPI
from fastapi.testclient import TestClient

from opshell.server import create_app


def _client(application) -> TestClient:
    return TestClient(create_app(application))


def test_health(application):
    client = _client(application)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_app_binds_context_registry(application):
    app = create_app(application)
    assert isinstance(app, FastAPI)
    assert application.http_contexts is app.state.contexts


def test_list_and_execute_commands(application):
    client = _client(application)
    names = [entry["name"] for entry in client.get("/api/commands").json()]
    assert "echo" in names
    assert "httpAddContext" in names

    resp = client.post("/api/commands", json={"command": "echo", "args": ["a", "b"]})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "output": "a b\n"}

    resp = client.post("/api/commands", json={"command": "sum", "args": [".1f"]})
    assert resp.json()["success"] is False

    resp = client.post("/api/commands", json={"command": "nope"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "There is no command nope"


def test_run_inline_action(application):
    client = _client(application)
    source = "actions = greet\ngreet = echo\ngreet.param.1 = hi <who>\ngreet.assign = said\n"
    resp = client.post("/api/actions", json={"source": source, "variables": {"who": "there"}})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["output"] == ""
    assert data["variables"]["said"] == "hi there"


def test_run_action_from_file(application, tmp_path):
    script = tmp_path / "run.cf"
    script.write_text("main = echo\nmain.param.1 = from file\n", encoding="utf-8")
    client = _client(application)
    resp = client.post("/api/actions", json={"control_file": str(script), "action": "main"})
    assert resp.json()["output"] == "from file\n"

    resp = client.post("/api/actions", json={"control_file": str(tmp_path / "missing.cf")})
    assert resp.status_code == 400


def test_action_request_needs_exactly_one_source(application):
    client = _client(application)
    assert client.post("/api/actions", json={}).status_code == 422
    assert client.post("/api/actions", json={"source": "a = b", "control_file": "x"}).status_code == 422


def test_events_are_exposed(application):
    client = _client(application)
    client.post("/api/actions", json={"source": "actions = echo\n"})
    events = client.get("/api/events").json()["events"]
    names = [entry["event"] for entry in events]
    assert "run_started" in names
    assert "run_finished" in names
    latest = events[-1]["id"]
    assert client.get("/api/events", params={"after": latest}).json()["events"] == []


def test_http_context_lifecycle(application, tmp_path):
    script = tmp_path / "web.cf"
    script.write_text(
        "hello = echo\nhello.param.1 = hello <name:anonymous>\n"
        "broken = namedInstanceEcho\n",
        encoding="utf-8",
    )
    client = _client(application)

    def command(*args):
        return client.post("/api/commands", json={"command": args[0], "args": list(args[1:])}).json()

    assert command("httpAddContext", str(script), "/hello", "hello")["success"]
    assert command("httpAddContext", str(script), "/hello", "hello") == {
        "success": False,
        "output": "Context '/hello' already exists\n",
    }
    assert command("httpAddContext", str(script), "/missing", "nothere") == {
        "success": False,
        "output": "Cannot find action 'nothere' in the given control file data\n",
    }
    assert command("httpAddContext", str(script), "/broken", "broken")["success"]
    assert command("httpListContexts") == {"success": True, "output": "/broken\n/hello\n"}

    resp = client.get("/hello", params={"name": "web"})
    assert resp.status_code == 200
    assert resp.text == "hello web\n"
    assert resp.headers["content-type"].startswith("text/plain")

    resp = client.post("/hello", data={"name": "form"})
    assert resp.text == "hello form\n"

    resp = client.get("/broken")
    assert resp.status_code == 400

    assert command("httpRemoveContext", "/hello")["success"]
    assert client.get("/hello").status_code == 404


def test_http_context_propagates_exceptions_as_500(application, tmp_path):
    data = tmp_path / "empty.txt"
    data.write_text("", encoding="utf-8")
    script = tmp_path / "crash.cf"
    script.write_text(
        "crash = operationExecute\ncrash.param.1 = InsertOperation\ncrash.param.2 = empty\n",
        encoding="utf-8",
    )
    client = _client(application)
    client.post("/api/commands", json={"command": "algorithmStart", "args": ["MemoryEngine"]})
    client.post("/api/commands", json={"command": "objectStreamOpen", "args": [str(data), "str", "empty"]})
    client.post("/api/commands", json={"command": "httpAddContext", "args": [str(script), "/crash", "crash"]})
    resp = client.get("/crash")
    assert resp.status_code == 500
    assert resp.text.startswith("StreamExhaustedError: No more objects in stream")


def test_http_add_context_from_control_file(application, tmp_path):
    client = _client(application)
    source = (
        "actions = register\n"
        "register = httpAddContext\nregister.param.1 = /greet\nregister.param.2 = greet\n"
        "greet = echo\ngreet.param.1 = greetings from <origin>\n"
    )
    resp = client.post("/api/actions", json={"source": source, "variables": {"origin": "setup"}})
    assert resp.json()["success"] is True
    resp = client.get("/greet")
    assert resp.status_code == 200
    assert resp.text == "greetings from setup\n"


def test_events_filter_by_action_and_run(application):
    client = _client(application)
    client.post("/api/actions", json={"source": "first = echo\n", "action": "first"})
    client.post("/api/actions", json={"source": "second = echo\n", "action": "second"})
    second = client.get("/api/events", params={"action": "second"}).json()["events"]
    assert [entry["event"] for entry in second] == ["run_started", "run_finished"]
    run_id = second[0]["run"]
    assert run_id is not None
    by_run = client.get("/api/events", params={"run": run_id}).json()["events"]
    assert by_run == second
