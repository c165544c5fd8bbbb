"""Exception hierarchy for the light client."""

from __future__ import annotations


class LightClientError(Exception):
    """Base class for all errors raised by the light client."""

    prefix = ""

    def __init__(self, inner: object = "") -> None:
        self.message = str(inner)
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.prefix}{self.message}"


class ConfigError(LightClientError):
    """The configuration or command line is missing or invalid."""

    prefix = "config error: "


class RuntimeFailure(LightClientError):
    """Something went wrong while the client was running."""

    prefix = "runtime error: "


class VerificationError(LightClientError):
    """Data received from a peer failed verification.

    ``code`` names the kind of failure, when one is known.
    """

    def __init__(self, inner: object = "", code: str | None = None) -> None:
        super().__init__(inner)
        self.code = code


def argument_should_exist(name: str) -> ConfigError:
    """Build the error for a required argument that was not given."""
    return ConfigError(f"argument {name} should exist")