"""Container that fails while being imported."""

from convtest import Registrar

raise RuntimeError("container is broken")


def register(registrar: Registrar) -> None:
    registrar.register_test("never", lambda ctx: None)
