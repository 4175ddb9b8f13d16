import pytest

from opshell.errors import InstantiationError, NoSuchInstantiatorError, StreamExhaustedError
from opshell.runtime.engines import MemoryEngine
from opshell.runtime.factory import ObjectFactory
from opshell.runtime.operations import ErrorCode, InsertOperation, MatchQueryOperation
from opshell.runtime.streams import ObjectStream


@pytest.fixture
def factory():
    return ObjectFactory()


def test_literals(factory):
    assert factory.instantiate("'it\\'s'") == "it's"
    assert factory.instantiate('"x"') == "x"
    assert factory.instantiate("42") == 42
    assert factory.instantiate("-1.5") == -1.5
    assert factory.instantiate("true") is True
    assert factory.instantiate("null") is None
    assert factory.instantiate("[1, 'a']") == [1, "a"]


def test_constructor_and_expected_kind(factory):
    engine = factory.instantiate('MemoryEngine("main")', MemoryEngine)
    assert isinstance(engine, MemoryEngine)
    assert engine.name == "main"
    query = factory.instantiate("MatchQueryOperation('^a', 10)")
    assert query.limit == 10
    with pytest.raises(NoSuchInstantiatorError):
        factory.instantiate("'text'", MemoryEngine)


def test_static_field_and_qualified_name(factory):
    assert factory.instantiate("ErrorCode.OBJECT_INSERTED") is ErrorCode.OBJECT_INSERTED
    assert factory.instantiate("opshell.runtime.operations.ErrorCode.NOT_SET") is ErrorCode.NOT_SET


def test_named_instances_and_method_calls(factory):
    engine = MemoryEngine()
    engine.objects.extend(["a", "b"])
    assert factory.instantiate("engine.size()", instances={"engine": engine}) == 2
    op = factory.instantiate("InsertOperation(engine)", instances={"engine": engine})
    assert op.obj is engine


def test_private_members_are_rejected(factory):
    with pytest.raises(NoSuchInstantiatorError):
        factory.instantiate("MemoryEngine()._data_lock")


def test_unknown_names_and_bad_arity(factory):
    with pytest.raises(NoSuchInstantiatorError):
        factory.instantiate("NoSuchType()")
    with pytest.raises(NoSuchInstantiatorError):
        factory.instantiate("InsertOperation()")
    with pytest.raises(NoSuchInstantiatorError):
        factory.instantiate("MemoryEngine(")


def test_constructor_errors_are_wrapped(factory):
    with pytest.raises(InstantiationError) as excinfo:
        factory.instantiate("MatchQueryOperation('(')")
    assert excinfo.value.__cause__ is not None


def test_stream_argument_yields_next_item(factory, tmp_path):
    path = tmp_path / "objects.txt"
    path.write_text("first\nsecond\n", encoding="utf-8")
    stream = ObjectStream(str(path))
    instances = {"data": stream}
    assert factory.instantiate("InsertOperation(data)", instances=instances).obj == "first"
    assert factory.instantiate("InsertOperation(data)", instances=instances).obj == "second"
    with pytest.raises(StreamExhaustedError):
        factory.instantiate("InsertOperation(data)", instances=instances)
    stream.close()


def test_create_from_string_arguments(factory):
    engine = MemoryEngine()
    op = factory.create("DeleteOperation", ["x", "2"])
    assert op.obj == "x"
    assert op.limit == 2
    assert factory.create("InsertOperation", ["engine"], {"engine": engine}).obj is engine
    assert factory.create("InsertOperation", ["inf"]).obj == "inf"
    assert factory.create("InsertOperation", ['"quoted"']).obj == "quoted"
    with pytest.raises(NoSuchInstantiatorError):
        factory.create("MemoryEngine", [], expected=InsertOperation)


def test_register_type(factory):
    class Point:
        def __init__(self, x, y):
            self.x, self.y = x, y

    factory.register_type(Point, aliases=("geo.Point",))
    point = factory.instantiate("geo.Point(1, 2)")
    assert (point.x, point.y) == (1, 2)
    assert factory.describe(Point) == "Point(x, y)"
