"""Container that opens a group and never closes it."""

from convtest import Registrar


def register(registrar: Registrar) -> None:
    registrar.begin_group("Open")
    registrar.register_test("inside", lambda ctx: None)
