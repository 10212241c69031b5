"""Test and group registry.

Containers describe their tests by calling a ``Registrar``: groups are opened
and closed like a stack, and every test lands in the innermost open group.
The resulting tree is frozen once the container's entry point returns.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Union

from convtest.errors import RegistrationError

SEPARATOR = "::"

TestBody = Callable[..., Any]
SkipCondition = Callable[[], Union[bool, str, None]]


@dataclass(frozen=True)
class TestCase:
    """A single named, executable test."""

    id: str
    name: str
    container: str
    body: TestBody = field(repr=False, compare=False)
    group_path: tuple[str, ...] = ()
    skip_if: Optional[SkipCondition] = field(default=None, repr=False, compare=False)
    skip_reason: Optional[str] = None
    timeout: Optional[float] = None
    source_file: Optional[str] = None
    line_number: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def top_level_group(self) -> Optional[str]:
        """Name of the outermost group below the container, if any."""
        return self.group_path[0] if self.group_path else None


class TestGroup:
    """Named scope owning child groups and test cases."""

    def __init__(self, name: str, parent: Optional["TestGroup"] = None):
        self.name = name
        self.parent = parent
        self._children: list[Union["TestGroup", TestCase]] = []
        self._frozen = False

    @property
    def qualified_name(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.qualified_name}{SEPARATOR}{self.name}"

    @property
    def path(self) -> tuple[str, ...]:
        """Group names from just below the container root down to this group."""
        if self.parent is None:
            return ()
        return self.parent.path + (self.name,)

    @property
    def container(self) -> str:
        group = self
        while group.parent is not None:
            group = group.parent
        return group.name

    @property
    def children(self) -> tuple[Union["TestGroup", TestCase], ...]:
        return tuple(self._children)

    @property
    def groups(self) -> list["TestGroup"]:
        return [c for c in self._children if isinstance(c, TestGroup)]

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_name(self, name: str) -> None:
        if self._frozen:
            raise RegistrationError(f"Group {self.qualified_name!r} is frozen")
        for child in self._children:
            if child.name == name:
                raise RegistrationError(
                    f"Duplicate name {name!r} in group {self.qualified_name!r}"
                )

    def add_group(self, name: str) -> "TestGroup":
        self._check_name(name)
        group = TestGroup(name, parent=self)
        self._children.append(group)
        return group

    def add_test(self, test: TestCase) -> TestCase:
        self._check_name(test.name)
        self._children.append(test)
        return test

    def freeze(self) -> None:
        self._frozen = True
        for group in self.groups:
            group.freeze()

    def walk(self) -> Iterator[TestCase]:
        """Yield test cases depth-first, in declaration order."""
        for child in self._children:
            if isinstance(child, TestGroup):
                yield from child.walk()
            else:
                yield child

    def __repr__(self) -> str:
        return f"TestGroup({self.qualified_name!r}, children={len(self._children)})"


class GroupHandle:
    """Handle to an open group; closes it when used as a context manager."""

    def __init__(self, registrar: "Registrar", group: TestGroup):
        self._registrar = registrar
        self.group = group

    @property
    def name(self) -> str:
        return self.group.name

    def __enter__(self) -> "GroupHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            # Leave the stack alone so the original error surfaces.
            return
        if self._registrar.current_group is not self.group:
            raise RegistrationError(
                f"Group {self.group.qualified_name!r} closed out of order"
            )
        self._registrar.end_group()


def _source_location(body: TestBody) -> tuple[Optional[str], Optional[int]]:
    try:
        source_file = inspect.getsourcefile(body)
        _, line_number = inspect.getsourcelines(body)
    except (TypeError, OSError):
        return None, None
    return source_file, line_number


class Registrar:
    """Registration handle passed to a container's entry point."""

    def __init__(self, container: str, registry: Optional["Registry"] = None):
        self.root = TestGroup(container)
        self._registry = registry
        self._stack: list[TestGroup] = [self.root]
        self._ids: set[str] = set()
        self._sealed = False

    @property
    def container(self) -> str:
        return self.root.name

    @property
    def current_group(self) -> TestGroup:
        return self._stack[-1]

    def _check_open(self) -> None:
        if self._sealed:
            raise RegistrationError(
                f"Registrar for {self.container!r} is sealed; register tests from the entry point only"
            )

    @staticmethod
    def _check_label(kind: str, name: Any) -> None:
        if not isinstance(name, str) or not name:
            raise RegistrationError(f"{kind} name must be a non-empty string, got {name!r}")

    def begin_group(self, name: str) -> GroupHandle:
        """Open a group nested inside the current one."""
        self._check_open()
        self._check_label("Group", name)
        group = self.current_group.add_group(name)
        self._stack.append(group)
        return GroupHandle(self, group)

    def end_group(self) -> None:
        """Close the most recently opened group."""
        self._check_open()
        if len(self._stack) == 1:
            raise RegistrationError(
                f"end_group() called with no open group in {self.container!r}"
            )
        self._stack.pop()

    def register_test(
        self,
        name: str,
        body: TestBody,
        *,
        skip_if: Optional[SkipCondition] = None,
        skip_reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TestCase:
        """Register a test in the innermost open group."""
        self._check_open()
        self._check_label("Test", name)
        if not callable(body):
            raise RegistrationError(f"Body of test {name!r} is not callable")
        if skip_if is not None and not callable(skip_if):
            raise RegistrationError(f"skip_if of test {name!r} is not callable")
        if timeout is not None and timeout <= 0:
            raise RegistrationError(f"Timeout of test {name!r} must be positive")

        group = self.current_group
        test_id = f"{group.qualified_name}{SEPARATOR}{name}"
        if test_id in self._ids or (self._registry is not None and test_id in self._registry):
            raise RegistrationError(f"Duplicate test id {test_id!r}")

        source_file, line_number = _source_location(body)
        test = group.add_test(
            TestCase(
                id=test_id,
                name=name,
                container=self.container,
                body=body,
                group_path=group.path,
                skip_if=skip_if,
                skip_reason=skip_reason,
                timeout=timeout,
                source_file=source_file,
                line_number=line_number,
            )
        )
        self._ids.add(test_id)
        return test

    def test(self, name: str, **options: Any) -> Callable[[TestBody], TestBody]:
        """Decorator form of ``register_test``."""

        def decorator(body: TestBody) -> TestBody:
            self.register_test(name, body, **options)
            return body

        return decorator

    def seal(self) -> TestGroup:
        """Finish registration and return the frozen container root.

        Raises:
            RegistrationError: If groups are still open.
        """
        if len(self._stack) > 1:
            unclosed = ", ".join(repr(g.name) for g in self._stack[1:])
            raise RegistrationError(
                f"Unbalanced groups in {self.container!r}: never closed {unclosed}"
            )
        self._sealed = True
        self.root.freeze()
        return self.root


class Registry:
    """Tree of test groups, one root per container."""

    def __init__(self):
        self._roots: list[TestGroup] = []
        self._tests: dict[str, TestCase] = {}

    def add_container(self, root: TestGroup) -> None:
        """Merge a sealed container root into the registry."""
        if not root.frozen:
            raise RegistrationError(f"Container {root.name!r} was not sealed")
        if any(r.name == root.name for r in self._roots):
            raise RegistrationError(f"Container {root.name!r} already registered")
        tests = list(root.walk())
        for test in tests:
            if test.id in self._tests:
                raise RegistrationError(f"Duplicate test id {test.id!r}")
        self._roots.append(root)
        for test in tests:
            self._tests[test.id] = test

    @property
    def containers(self) -> tuple[TestGroup, ...]:
        return tuple(self._roots)

    def tests(self) -> list[TestCase]:
        """All test cases in registry order."""
        return [test for root in self._roots for test in root.walk()]

    def get(self, test_id: str) -> Optional[TestCase]:
        return self._tests.get(test_id)

    def partitions(self, selection: Optional[set[str]] = None) -> list[list[TestCase]]:
        """Group tests by container and top-level group.

        Each partition is independent of the others and keeps registry order.
        """
        partitions: dict[tuple[str, Optional[str]], list[TestCase]] = {}
        for test in self.tests():
            if selection is not None and test.id not in selection:
                continue
            partitions.setdefault((test.container, test.top_level_group), []).append(test)
        return list(partitions.values())

    def __contains__(self, test_id: object) -> bool:
        return test_id in self._tests

    def __len__(self) -> int:
        return len(self._tests)

    def __iter__(self) -> Iterator[TestCase]:
        return iter(self.tests())
