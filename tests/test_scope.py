from __future__ import annotations

import builtins
import contextlib
import functools

import pytest

from lexmod import export, import_
from lexmod.errors import ConfigurationError, ConflictError
from lexmod.scope import PENDING_IMPORTS_KEY, ScopedGlobals


class GeometryMethods:
    def hyp(a, b):
        return (a * a + b * b) ** 0.5

    def area(b, h):
        return b * h / 2.0

    def square(x):
        return x * x


class ArithMethods:
    def add(a, b):
        return a + b


class ISayMethods:
    def say():
        return "potayto"


class YouSayMethods:
    def say():
        return "potahto"


Geometry = export(GeometryMethods, "hyp", "area", name="Geometry")
Arith = export(ArithMethods, name="Arith")
ISay = export(ISayMethods, name="ISay")
YouSay = export(YouSayMethods, name="YouSay")


class GeometryUser:
    import_(Geometry)

    def calculate(self, a, b):
        return hyp(a, b)  # noqa: F821

    @staticmethod
    def static_area(b, h):
        return area(b, h)  # noqa: F821

    @classmethod
    def class_area(cls, b, h):
        return area(b, h)  # noqa: F821

    @property
    def unit_hyp(self):
        return hyp(1, 0)  # noqa: F821

    def lazily(self):
        return [hyp(x, 0) for x in (1, 2)]  # noqa: F821

    def uses_module_globals(self):
        return Geometry.area(3, 4)

    class Nested:
        def nested_area(self):
            return area(3, 4)  # noqa: F821


class GeometryUserChild(GeometryUser):
    def own_call(self):
        return hyp(3, 4)  # noqa: F821


class Sibling:
    def call(self):
        return hyp(3, 4)  # noqa: F821


class Outer:
    import_(Geometry, "hyp")

    class Inner:
        import_(Arith)

        def both(self):
            return add(hyp(3, 4), 1)  # noqa: F821

    def outer_only(self):
        return add(1, 2)  # noqa: F821


def test_imported_names_are_callable_inside_the_class():
    user = GeometryUser()
    assert user.calculate(3, 4) == 5.0
    assert GeometryUser.static_area(3, 4) == 6.0
    assert GeometryUser.class_area(3, 4) == 6.0
    assert user.unit_hyp == 1.0
    assert user.lazily() == [1.0, 2.0]
    assert user.uses_module_globals() == 6.0


def test_imports_do_not_become_attributes():
    user = GeometryUser()
    assert not hasattr(user, "hyp")
    assert not hasattr(GeometryUser, "hyp")
    assert PENDING_IMPORTS_KEY not in vars(GeometryUser)


def test_imports_do_not_change_identity():
    assert GeometryUser.__bases__ == (object,)
    assert GeometryUser.__mro__ == (GeometryUser, object)
    assert not isinstance(GeometryUser(), type(Geometry))


def test_nested_classes_see_enclosing_imports():
    assert GeometryUser.Nested().nested_area() == 6.0


def test_subclasses_inherit_methods_but_not_imports():
    child = GeometryUserChild()
    assert child.calculate(3, 4) == 5.0
    assert not hasattr(child, "hyp")
    with pytest.raises(NameError, match="hyp"):
        child.own_call()


def test_sibling_scopes_do_not_see_imports():
    with pytest.raises(NameError, match="hyp"):
        Sibling().call()


def test_imports_do_not_reach_module_or_builtins():
    assert "hyp" not in globals()
    assert not hasattr(builtins, "hyp")
    with pytest.raises(NameError):
        hyp(3, 4)  # noqa: F821


def test_nested_class_combines_its_own_and_enclosing_imports():
    assert Outer.Inner().both() == 6.0
    with pytest.raises(NameError, match="add"):
        Outer().outer_only()


def test_methods_are_rebound_onto_scoped_globals():
    fn = vars(GeometryUser)["calculate"]
    assert isinstance(fn.__globals__, ScopedGlobals)
    assert fn.__globals__.parent is globals()
    assert fn.__qualname__ == "GeometryUser.calculate"

    inner = vars(Outer.Inner)["both"].__globals__
    assert list(k for k in inner if not k.startswith("__")) == ["add"]
    assert isinstance(inner.parent, ScopedGlobals)
    assert inner.parent.parent is globals()


def test_conflict_with_previous_import():
    with pytest.raises(ConflictError, match='Cannot import function "say" from YouSay. class .*Both already has'):
        class Both:
            import_(ISay)
            import_(YouSay)


def test_conflict_with_own_method():
    with pytest.raises(ConflictError, match='"hyp"'):
        class HasHyp:
            def hyp(self):
                return True

            import_(Geometry)


def test_selected_import_avoids_conflict_with_own_method():
    class HasHyp:
        def hyp(self):
            return True

        import_(Geometry, "area")

        def calc(self):
            return area(3, 4)  # noqa: F821

    assert HasHyp().hyp() is True
    assert HasHyp().calc() == 6.0


def test_separate_scopes_may_import_same_name():
    class UsesISay:
        import_(ISay)

        def speak(self):
            return say()  # noqa: F821

    class UsesYouSay:
        import_(YouSay)

        def speak(self):
            return say()  # noqa: F821

    assert UsesISay().speak() == "potayto"
    assert UsesYouSay().speak() == "potahto"
    assert YouSay.say() == "potahto"


def test_class_body_without_functions_imports_cleanly():
    class Marker:
        import_(Arith)

    assert PENDING_IMPORTS_KEY not in vars(Marker)


class TaggingMethods:
    def tagged(fn):
        fn.tag = "tagged"
        return fn


Tagging = export(TaggingMethods, name="Tagging")


class GeometryAttributes:
    import_(Geometry)
    import_(Tagging)

    DIAG = hyp(3, 4)  # noqa: F821

    @tagged  # noqa: F821
    def labelled(self):
        return area(3, 4)  # noqa: F821


def test_class_body_statements_see_imports():
    assert GeometryAttributes.DIAG == 5.0
    assert GeometryAttributes.labelled.tag == "tagged"
    assert GeometryAttributes().labelled() == 6.0
    for name in ("hyp", "area", "tagged"):
        assert name not in vars(GeometryAttributes)


def _logged(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        return fn(*args, **kwargs)

    return wrapper


class DecoratedUser:
    import_(Geometry)

    @_logged
    def logged_hyp(self, a, b):
        return hyp(a, b)  # noqa: F821

    @contextlib.contextmanager
    def measured(self):
        yield area(3, 4)  # noqa: F821

    @staticmethod
    @_logged
    def static_logged():
        return hyp(3, 4)  # noqa: F821

    @functools.cached_property
    def cached(self):
        return hyp(6, 8)  # noqa: F821


def test_decorated_methods_see_imports():
    user = DecoratedUser()
    assert user.logged_hyp(3, 4) == 5.0
    with user.measured() as measured:
        assert measured == 6.0
    assert DecoratedUser.static_logged() == 5.0
    assert user.cached == 10.0
    assert DecoratedUser.logged_hyp.__wrapped__.__globals__["hyp"] is Geometry.hyp
    # The decorator's own globals are left alone.
    assert "hyp" not in DecoratedUser.logged_hyp.__globals__


def test_non_function_wrappers_are_rejected_at_class_creation():
    with pytest.raises((ConfigurationError, RuntimeError)) as excinfo:
        class Cached:
            import_(Geometry)

            @functools.lru_cache(maxsize=None)
            def cached_hyp(self, a, b):
                return hyp(a, b)  # noqa: F821

    err = excinfo.value
    if not isinstance(err, ConfigurationError):
        # Before Python 3.12 errors from __set_name__ arrive wrapped in a RuntimeError.
        err = err.__cause__
    assert isinstance(err, ConfigurationError)
    assert "cached_hyp" in str(err)
