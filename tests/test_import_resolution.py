from __future__ import annotations

import pytest

from lexmod import declare_module, export, import_, resolve
from lexmod.errors import ConfigurationError, ConflictError, UnknownSymbolError, VisibilityError
from lexmod.facade import extension_of
from lexmod.scope import NamespaceScope


class GeometryMethods:
    def hyp(a, b):
        return (a * a + b * b) ** 0.5

    def area(b, h):
        return b * h / 2.0

    def square(x):
        return x * x


Geometry = export(GeometryMethods, "hyp", "area", name="Geometry")


def test_passthrough_reuses_the_full_extension():
    assert resolve(Geometry) is extension_of(Geometry)


def test_selective_import_narrows():
    ext = resolve(Geometry, ["hyp"])
    assert ext.names == ("hyp",)
    assert ext.forwarders["hyp"] is Geometry.hyp
    assert "area" not in ext


def test_except_import_narrows():
    ext = resolve(Geometry, excluded=["area"])
    assert ext.names == ("hyp",)


def test_hidden_names_cannot_be_imported():
    with pytest.raises(VisibilityError, match="hidden functions cannot be imported: square"):
        resolve(Geometry, ["hyp", "square"])


def test_nonexistent_names_cannot_be_imported():
    with pytest.raises(UnknownSymbolError, match="do not exist: foo"):
        resolve(Geometry, ["foo"])


def test_names_and_except_are_exclusive():
    with pytest.raises(ConfigurationError, match="mutually exclusive"):
        resolve(Geometry, ["hyp"], ["area"])


def test_resolve_by_declared_name():
    class Body:
        def hello(name):
            return f"hello, {name}"

    greetings = declare_module("Greetings", Body)
    assert resolve("Greetings") is extension_of(greetings)


def test_resolve_unknown_module_name():
    with pytest.raises(UnknownSymbolError, match="Nowhere"):
        resolve("Nowhere")


def test_resolve_rejects_non_facades():
    with pytest.raises(ConfigurationError, match="not an exported module"):
        resolve(GeometryMethods)


def test_anonymous_facades_cannot_be_imported():
    anonymous = export({"hyp": GeometryMethods.hyp})
    with pytest.raises(ConfigurationError, match="anonymous"):
        resolve(anonymous)


def test_extensions_are_immutable_snapshots():
    ext = resolve(Geometry)
    with pytest.raises(TypeError):
        ext.forwarders["square"] = GeometryMethods.square  # type: ignore[index]

    # Re-exporting the same unit builds a new facade; the old snapshot does not change.
    export(GeometryMethods, name="Geometry")
    assert ext.names == ("hyp", "area")
    assert resolve(Geometry) is ext


def test_conflicts_are_detected_before_installation():
    namespace = {"__name__": "consumer", "area": lambda b, h: "mine"}
    scope = NamespaceScope(namespace, identity="module consumer")

    with pytest.raises(ConflictError, match='Cannot import function "area" from Geometry. module consumer already has'):
        ext = resolve(Geometry, scope=scope)
        scope.install(ext)

    assert "hyp" not in namespace
    assert namespace["area"](1, 2) == "mine"


def test_import_inside_function_body_is_rejected():
    with pytest.raises(ConfigurationError, match="cannot import into function"):
        import_(Geometry)


def test_exec_with_separate_locals_is_rejected():
    with pytest.raises(ConfigurationError, match="locals are not its globals"):
        exec("import_(Geometry)\n", {"import_": import_, "Geometry": Geometry}, {})


def test_exec_with_one_namespace_imports_like_a_module():
    namespace = {"import_": import_, "Geometry": Geometry}
    exec("import_(Geometry)\n\ndef diagonal():\n    return hyp(3, 4)\n", namespace)
    assert namespace["diagonal"]() == 5.0
