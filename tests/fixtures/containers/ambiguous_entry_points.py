"""Container with two public registration functions."""

from convtest import Registrar


def register_fast(registrar: Registrar) -> None:
    registrar.register_test("fast", lambda ctx: None)


def register_slow(registrar: Registrar) -> None:
    registrar.register_test("slow", lambda ctx: None)
