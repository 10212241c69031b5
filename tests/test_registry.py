"""Tests for the registrar and registry."""

import pytest

from convtest.core.registry import Registrar, Registry, TestGroup
from convtest.errors import RegistrationError


def noop(ctx):
    pass


class TestRegistrar:
    """Tests for building a container's group tree."""

    def test_tests_land_in_innermost_group(self):
        """register_test applies to the innermost open group."""
        registrar = Registrar("suite")
        registrar.begin_group("Outer")
        registrar.begin_group("Inner")
        inner = registrar.register_test("deep", noop)
        registrar.end_group()
        outer = registrar.register_test("shallow", noop)
        registrar.end_group()
        top = registrar.register_test("top", noop)
        root = registrar.seal()

        assert inner.id == "suite::Outer::Inner::deep"
        assert inner.group_path == ("Outer", "Inner")
        assert outer.id == "suite::Outer::shallow"
        assert top.id == "suite::top"
        assert top.group_path == ()
        assert [t.id for t in root.walk()] == [inner.id, outer.id, top.id]

    def test_group_handle_context_manager(self):
        registrar = Registrar("suite")
        with registrar.begin_group("Group") as group:
            assert group.name == "Group"
            registrar.register_test("inside", noop)
        registrar.register_test("outside", noop)

        assert registrar.current_group is registrar.root
        assert [t.id for t in registrar.seal().walk()] == ["suite::Group::inside", "suite::outside"]

    def test_decorator_form(self):
        registrar = Registrar("suite")

        @registrar.test("decorated", skip_reason="later")
        def body(ctx):
            pass

        (test,) = list(registrar.seal().walk())
        assert test.name == "decorated"
        assert test.body is body
        assert test.skip_reason == "later"

    def test_free_text_names(self):
        """Names may contain spaces and punctuation."""
        registrar = Registrar("suite")
        with registrar.begin_group("when the cart is empty!"):
            test = registrar.register_test("it shows a 'nothing here' message (v2)", noop)
        assert test.id == "suite::when the cart is empty!::it shows a 'nothing here' message (v2)"

    def test_end_group_without_open_group(self):
        registrar = Registrar("suite")
        with pytest.raises(RegistrationError, match="no open group"):
            registrar.end_group()

    def test_unclosed_group_fails_seal(self):
        registrar = Registrar("suite")
        registrar.begin_group("Open")
        with pytest.raises(RegistrationError, match="Unbalanced"):
            registrar.seal()

    def test_handle_closed_out_of_order(self):
        registrar = Registrar("suite")
        outer = registrar.begin_group("Outer")
        registrar.begin_group("Inner")
        with pytest.raises(RegistrationError, match="out of order"):
            outer.__exit__(None, None, None)

    def test_duplicate_test_name(self):
        registrar = Registrar("suite")
        registrar.register_test("same", noop)
        with pytest.raises(RegistrationError, match="Duplicate"):
            registrar.register_test("same", noop)

    def test_duplicate_group_name(self):
        registrar = Registrar("suite")
        with registrar.begin_group("Group"):
            pass
        with pytest.raises(RegistrationError, match="Duplicate"):
            registrar.begin_group("Group")

    def test_same_name_in_different_groups(self):
        registrar = Registrar("suite")
        with registrar.begin_group("A"):
            registrar.register_test("same", noop)
        with registrar.begin_group("B"):
            registrar.register_test("same", noop)
        assert len(list(registrar.seal().walk())) == 2

    @pytest.mark.parametrize("name", ["", None, 3])
    def test_invalid_names(self, name):
        registrar = Registrar("suite")
        with pytest.raises(RegistrationError):
            registrar.register_test(name, noop)
        with pytest.raises(RegistrationError):
            registrar.begin_group(name)

    def test_body_must_be_callable(self):
        registrar = Registrar("suite")
        with pytest.raises(RegistrationError, match="not callable"):
            registrar.register_test("bad", "not a function")

    def test_timeout_must_be_positive(self):
        registrar = Registrar("suite")
        with pytest.raises(RegistrationError):
            registrar.register_test("bad", noop, timeout=0)

    def test_sealed_registrar_rejects_calls(self):
        registrar = Registrar("suite")
        registrar.seal()
        with pytest.raises(RegistrationError, match="sealed"):
            registrar.register_test("late", noop)

    def test_source_location_hint(self):
        registrar = Registrar("suite")
        test = registrar.register_test("located", noop)
        assert test.source_file.endswith("test_registry.py")
        assert test.line_number > 0

    def test_builtin_body_has_no_location(self):
        registrar = Registrar("suite")
        test = registrar.register_test("builtin", print)
        assert test.source_file is None
        assert test.line_number is None


class TestTestGroup:
    """Tests for group tree behaviour."""

    def test_frozen_group_rejects_children(self):
        root = TestGroup("suite")
        root.freeze()
        with pytest.raises(RegistrationError, match="frozen"):
            root.add_group("late")

    def test_qualified_name_and_container(self):
        root = TestGroup("suite")
        child = root.add_group("Child").add_group("Grandchild")
        assert child.qualified_name == "suite::Child::Grandchild"
        assert child.path == ("Child", "Grandchild")
        assert child.container == "suite"


def _sealed(container, *names, group=None):
    registrar = Registrar(container)
    if group:
        registrar.begin_group(group)
    for name in names:
        registrar.register_test(name, noop)
    if group:
        registrar.end_group()
    return registrar.seal()


class TestRegistry:
    """Tests for the merged registry."""

    def test_tests_in_container_order(self):
        registry = Registry()
        registry.add_container(_sealed("one", "a", "b"))
        registry.add_container(_sealed("two", "c"))

        assert [t.id for t in registry.tests()] == ["one::a", "one::b", "two::c"]
        assert len(registry) == 3
        assert "two::c" in registry
        assert registry.get("one::b").name == "b"
        assert registry.get("missing") is None

    def test_unsealed_root_rejected(self):
        registry = Registry()
        with pytest.raises(RegistrationError):
            registry.add_container(TestGroup("open"))

    def test_duplicate_container_rejected(self):
        registry = Registry()
        registry.add_container(_sealed("one", "a"))
        with pytest.raises(RegistrationError):
            registry.add_container(_sealed("one", "b"))

    def test_partitions_by_top_level_group(self):
        registry = Registry()
        registry.add_container(_sealed("one", "a", "b", group="G1"))
        registry.add_container(_sealed("one-more", "c"))

        partitions = registry.partitions()
        assert [[t.id for t in p] for p in partitions] == [
            ["one::G1::a", "one::G1::b"],
            ["one-more::c"],
        ]

    def test_partitions_respect_selection(self):
        registry = Registry()
        registry.add_container(_sealed("one", "a", "b", group="G1"))
        partitions = registry.partitions({"one::G1::b"})
        assert [[t.id for t in p] for p in partitions] == [["one::G1::b"]]
