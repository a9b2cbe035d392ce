"""
Role resolution for privileged operations.

Identity lives outside the engine; all the engine needs to know is
whether a user id holds the controller role (may skip the current track
and clear the queue).
"""

from typing import Iterable, Protocol


class RoleProvider(Protocol):
    """Answers whether a user may control the stream."""

    def is_controller(self, user_id: str) -> bool:
        ...


class StaticRoleProvider:
    """
    Role provider backed by a fixed set of controller ids (roles.controllers
    in radio.yaml).
    """

    def __init__(self, controllers: Iterable[str] = ()) -> None:
        self._controllers = frozenset(controllers)

    def is_controller(self, user_id: str) -> bool:
        return user_id in self._controllers
