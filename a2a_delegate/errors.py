"""Errors raised along the delegation path.

Each error carries a plain-language ``user_message()`` so the dispatcher can
turn any of them into something an end user can read.
"""

from typing import Any


class DelegationError(Exception):
    """Base error for a failed call to a remote agent."""

    def __init__(
        self,
        message: str,
        agent: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.data = data
        super().__init__(f"[{agent}] {message}" if agent else message)

    @property
    def agent_label(self) -> str:
        return f"the {self.agent} agent" if self.agent else "the remote agent"

    def user_message(self) -> str:
        return f"Something went wrong while asking {self.agent_label}: {self.message}"


class ConfigurationError(DelegationError):
    """The delegation is missing required configuration (e.g. target address)."""

    def user_message(self) -> str:
        return f"I can't reach {self.agent_label} because it is not configured: {self.message}"


class ResolutionError(DelegationError):
    """The remote agent card could not be fetched or parsed."""

    def __init__(
        self,
        message: str,
        agent: str | None = None,
        data: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, agent=agent, data=data)
        self.status_code = status_code

    @property
    def auth_rejected(self) -> bool:
        return self.status_code in (401, 403)

    def user_message(self) -> str:
        if self.auth_rejected:
            return f"{self.agent_label.capitalize()} did not accept our credentials ({self.message})."
        return f"I couldn't discover {self.agent_label}: {self.message}"


class TransportError(DelegationError):
    """Network failure or timeout while talking to the remote agent."""

    def __init__(
        self,
        message: str,
        agent: str | None = None,
        data: dict[str, Any] | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message, agent=agent, data=data)
        self.timed_out = timed_out

    def user_message(self) -> str:
        if self.timed_out:
            return f"{self.agent_label.capitalize()} took too long to answer ({self.message})."
        return f"I couldn't reach {self.agent_label}: {self.message}"


class ProtocolError(DelegationError):
    """The remote agent replied with something that is not a valid A2A envelope."""

    def user_message(self) -> str:
        return f"{self.agent_label.capitalize()} sent a reply I couldn't understand: {self.message}"


class AuthorizationError(DelegationError):
    """The remote agent rejected the bearer token (HTTP 401 or 403)."""

    def __init__(
        self,
        message: str,
        agent: str | None = None,
        data: dict[str, Any] | None = None,
        status_code: int = 401,
    ):
        super().__init__(message, agent=agent, data=data)
        self.status_code = status_code

    def user_message(self) -> str:
        if self.status_code == 403:
            reason = "the token is expired or invalid"
        else:
            reason = "the token is missing or malformed"
        return f"{self.agent_label.capitalize()} refused the request because {reason}."


class RemoteAgentError(DelegationError):
    """The remote agent answered with a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        code: int,
        agent: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        super().__init__(message, agent=agent, data=data)
        self.code = code

    def user_message(self) -> str:
        return f"{self.agent_label.capitalize()} couldn't complete the task: {self.message}"
