"""Test discovery by structural convention.

A container is a Python module. Its registration entry point is the single
public function defined in that module that takes exactly one parameter
annotated as ``Registrar`` and returns nothing::

    def register(registrar: Registrar) -> None:
        with registrar.begin_group("Arithmetic"):
            registrar.register_test("adds two numbers", adds_two_numbers)

Discovery imports each container, calls its entry point once to build the
registry, and never runs test bodies.
"""

import hashlib
import importlib
import importlib.util
import inspect
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from types import FunctionType, ModuleType
from typing import Any, Iterable, Iterator, Optional, Union

from convtest.core.registry import Registrar, Registry, TestCase, TestGroup
from convtest.errors import ContainerReferenceError, EntryPointError, RegistrationError

ContainerRef = Union[str, Path, ModuleType]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredTest:
    """Descriptor of a discovered test, as reported to hosts."""

    id: str
    display_name: str
    container: str
    source_file: Optional[str] = None
    line_number: Optional[int] = None

    @property
    def source_location(self) -> Optional[str]:
        if self.source_file is None:
            return None
        if self.line_number is None:
            return self.source_file
        return f"{self.source_file}:{self.line_number}"

    @classmethod
    def from_test_case(cls, test: TestCase) -> "DiscoveredTest":
        return cls(
            id=test.id,
            display_name=test.display_name,
            container=test.container,
            source_file=test.source_file,
            line_number=test.line_number,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "container": self.container,
            "source_file": self.source_file,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal problem found while discovering one container."""

    container: str
    message: str
    level: int = logging.WARNING

    def __str__(self) -> str:
        return f"{self.container}: {self.message}"


@dataclass
class ContainerDiscovery:
    """Outcome of discovering a single container."""

    container: str
    root: Optional[TestGroup] = None
    tests: list[DiscoveredTest] = field(default_factory=list)
    diagnostic: Optional[Diagnostic] = None

    @property
    def success(self) -> bool:
        return self.diagnostic is None


@dataclass
class DiscoveryResult:
    """Result of a full discovery pass."""

    registry: Registry = field(default_factory=Registry)
    tests: list[DiscoveredTest] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.tests)

    @property
    def success(self) -> bool:
        """Check if every container was discovered cleanly."""
        return not self.diagnostics


def container_name(ref: ContainerRef) -> str:
    """Name used as the root group of a container."""
    if isinstance(ref, ModuleType):
        return ref.__name__
    if isinstance(ref, Path):
        return ref.as_posix()
    if isinstance(ref, str):
        return ref
    raise ContainerReferenceError(f"Not a container reference: {ref!r}")


def _is_path_ref(ref: Union[str, Path]) -> bool:
    return isinstance(ref, Path) or ref.endswith(".py") or "/" in ref or "\\" in ref


def _annotation_is_registrar(annotation: Any) -> bool:
    if annotation is Registrar:
        return True
    if isinstance(annotation, str):
        return annotation.strip("'\" ").rsplit(".", 1)[-1] == "Registrar"
    return False


def is_entry_point(func: Any, module: ModuleType) -> bool:
    """Check whether ``func`` matches the registration entry point signature."""
    if not isinstance(func, FunctionType):
        return False
    if getattr(func, "__module__", None) != module.__name__:
        return False
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False

    params = list(signature.parameters.values())
    if len(params) != 1:
        return False
    param = params[0]
    if param.kind not in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
        return False
    if param.default is not param.empty:
        return False
    if not _annotation_is_registrar(param.annotation):
        return False
    return signature.return_annotation in (signature.empty, None, "None")


def find_entry_points(module: ModuleType) -> list[FunctionType]:
    """Return every public function of ``module`` that qualifies as an entry point."""
    public = getattr(module, "__all__", None)
    found = []
    for name, obj in vars(module).items():
        if name.startswith("_"):
            continue
        if public is not None and name not in public:
            continue
        if is_entry_point(obj, module):
            found.append(obj)
    return found


class TestDiscovery:
    """Discovers tests in a set of containers."""

    def __init__(
        self,
        search_paths: Optional[Iterable[Union[str, Path]]] = None,
        parallel_workers: int = 1,
        base_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize test discovery.

        Args:
            search_paths: Directories prepended to ``sys.path`` before
                module-name containers are imported
            parallel_workers: Number of containers discovered concurrently
            base_dir: Directory relative file paths are resolved against
            logger: Diagnostic channel; defaults to this module's logger
        """
        self.search_paths = [str(Path(p).resolve()) for p in (search_paths or [])]
        self.parallel_workers = max(1, parallel_workers)
        self.base_dir = base_dir or Path.cwd()
        self.logger = logger or log

    def discover(self, containers: Iterable[ContainerRef]) -> DiscoveryResult:
        """Discover all containers and merge them into one registry."""
        result = DiscoveryResult()
        for _ in self.iter_merge(containers, result):
            pass
        return result

    def iter_merge(
        self, containers: Iterable[ContainerRef], result: DiscoveryResult
    ) -> Iterator[ContainerDiscovery]:
        """Discover containers into ``result``, yielding each one once merged.

        The parallel phase only touches per-container fragments; merging into
        ``result`` happens here, on the consuming thread.
        """
        for discovered in self.iter_discover(containers):
            if discovered.diagnostic is None:
                try:
                    result.registry.add_container(discovered.root)
                except RegistrationError as e:
                    discovered = self._diagnose(discovered.container, str(e))
            if discovered.diagnostic is not None:
                result.diagnostics.append(discovered.diagnostic)
            else:
                result.tests.extend(discovered.tests)
            yield discovered

    def iter_discover(self, containers: Iterable[ContainerRef]) -> Iterator[ContainerDiscovery]:
        """Yield per-container results in input order as they complete.

        Raises:
            ContainerReferenceError: If a reference cannot be resolved. This
                is checked for every container before any is imported.
        """
        refs = self._unique(containers)
        for ref in refs:
            self._check_reference(ref)
        self._extend_sys_path()

        if self.parallel_workers == 1 or len(refs) < 2:
            for ref in refs:
                yield self._discover_container(ref)
            return

        with ThreadPoolExecutor(max_workers=self.parallel_workers) as executor:
            # map() hands results back in input order
            yield from executor.map(self._discover_container, refs)

    @staticmethod
    def _unique(containers: Iterable[ContainerRef]) -> list[ContainerRef]:
        seen: set[str] = set()
        refs = []
        for ref in containers:
            name = container_name(ref)
            if name in seen:
                continue
            seen.add(name)
            refs.append(ref)
        return refs

    def _resolve_path(self, ref: Union[str, Path]) -> Path:
        path = Path(ref)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def _check_reference(self, ref: ContainerRef) -> None:
        if isinstance(ref, ModuleType):
            return
        if _is_path_ref(ref):
            path = self._resolve_path(ref)
            if not path.is_file():
                raise ContainerReferenceError(f"Container file not found: {path}")
            return
        self._extend_sys_path()
        try:
            spec = importlib.util.find_spec(ref)
        except (ModuleNotFoundError, ValueError) as e:
            raise ContainerReferenceError(f"Cannot resolve container module {ref!r}: {e}") from e
        except (Exception, SystemExit):
            # A parent package failed to import; reported when the container loads.
            return
        if spec is None:
            raise ContainerReferenceError(f"Container module not found: {ref!r}")

    def _extend_sys_path(self) -> None:
        for path in reversed(self.search_paths):
            if path not in sys.path:
                sys.path.insert(0, path)

    def _load(self, ref: ContainerRef) -> ModuleType:
        if isinstance(ref, ModuleType):
            return ref
        if not _is_path_ref(ref):
            return importlib.import_module(ref)

        path = self._resolve_path(ref).resolve()
        digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:10]
        module_name = f"_convtest_container_{path.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load {path} as a Python module")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module

    def _discover_container(self, ref: ContainerRef) -> ContainerDiscovery:
        name = container_name(ref)
        try:
            module = self._load(ref)
            entry_points = find_entry_points(module)
            if not entry_points:
                raise EntryPointError(
                    "no registration entry point found "
                    "(expected one public function taking a single Registrar argument)"
                )
            if len(entry_points) > 1:
                names = ", ".join(f.__name__ for f in entry_points)
                raise EntryPointError(f"ambiguous registration entry points: {names}")

            registrar = Registrar(name)
            entry_points[0](registrar)
            root = registrar.seal()
        except (EntryPointError, RegistrationError) as e:
            return self._diagnose(name, str(e))
        except (Exception, SystemExit) as e:
            return self._diagnose(name, f"{type(e).__name__}: {e}")

        tests = [DiscoveredTest.from_test_case(t) for t in root.walk()]
        self.logger.debug(f"Discovered {len(tests)} test(s) in {name}")
        return ContainerDiscovery(container=name, root=root, tests=tests)

    def _diagnose(self, name: str, message: str) -> ContainerDiscovery:
        diagnostic = Diagnostic(container=name, message=message)
        self.logger.warning(f"Discovery failed for {diagnostic}", extra={"container": name})
        return ContainerDiscovery(container=name, diagnostic=diagnostic)
