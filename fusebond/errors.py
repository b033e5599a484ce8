from __future__ import annotations


class BondedValidationError(ValueError):
    """Caller contract violation detected at registration or build time."""


class KernelBuildError(RuntimeError):
    """The synthesized kernel could not be compiled or resolved."""


class RegistryStateError(RuntimeError):
    """An operation was called in the wrong registry state."""


def _err(msg: str) -> BondedValidationError:
    return BondedValidationError(msg)
