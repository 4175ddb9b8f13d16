import io

import pytest

from opshell.errors import NoSuchPrimitiveError
from opshell.runtime.commands import CommandRegistry, primitive


class Greeter:
    @primitive("greet", "say hello", ("name",))
    def greet(self, out, *args):
        out.write(f"hello {' '.join(args)}\n")

    @primitive("refuse", "always fails")
    def refuse(self, out, *args):
        return False

    def helper(self):
        return "not a primitive"


def test_register_object_collects_decorated_methods():
    registry = CommandRegistry()
    registered = registry.register_object(Greeter())
    assert sorted(entry.name for entry in registered) == ["greet", "refuse"]
    assert registry.names() == ["greet", "refuse"]
    assert "helper" not in registry
    assert registry.get("greet").usage() == "greet <name>"
    assert registry.get("refuse").usage() == "refuse"


def test_execute_distinguishes_failure_from_unknown():
    registry = CommandRegistry()
    registry.register_object(Greeter())
    out = io.StringIO()
    assert registry.execute(out, ["greet", "you"]) is True
    assert out.getvalue() == "hello you\n"
    assert registry.execute(out, ["refuse"]) is False
    with pytest.raises(NoSuchPrimitiveError) as excinfo:
        registry.execute(out, ["nothing"])
    assert excinfo.value.message == "There is no command nothing"


def test_handler_errors_propagate():
    registry = CommandRegistry()

    def broken(out, *args):
        raise RuntimeError("broken")

    registry.register("broken", broken)
    with pytest.raises(RuntimeError):
        registry.execute(io.StringIO(), ["broken"])
