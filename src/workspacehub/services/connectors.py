"""
Connector Interfaces
====================
Structural interfaces of the two external collaborators.

Why is this file needed?
------------------------
1. Isolation: The mapping engine never talks to the workspace tool or the hub
   session directly. Any object with these methods can be plugged in (a COM
   bridge, a REST client, an in-memory fake in the tests).
2. Ownership: The engine only fills in a ThingTransaction. Committing it,
   retrying and timeouts belong to whoever implements HubConnector.

Classes:
    WorkspaceConnector: connect/disconnect/get/put/execute on the workspace tool.
    HubConnector: identity lookup and transaction write on the hub.
"""
from __future__ import annotations

import uuid
from typing import Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from workspacehub.model.hub import DomainOfExpertise, Iteration, Thing, ThingTransaction
    from workspacehub.model.variables import WorkspaceVariable


class WorkspaceConnector(Protocol):
    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def get_variable(self, name: str) -> WorkspaceVariable: ...

    def put_variable(self, variable: WorkspaceVariable) -> None: ...

    def execute(self, command: str) -> str: ...


class HubConnector(Protocol):
    current_domain_of_expertise: Optional[DomainOfExpertise]
    open_iteration: Optional[Iteration]

    def get_thing_by_id(self, iid: uuid.UUID, container: Optional[Thing] = None) -> Optional[Thing]: ...

    def write(self, transaction: ThingTransaction) -> None: ...
