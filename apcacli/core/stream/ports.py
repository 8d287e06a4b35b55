from __future__ import annotations

from typing import AsyncIterator, Protocol

from apcacli.core.stream.events import StreamEvent


class UpdatesPort(Protocol):
    def subscribe_updates(self) -> AsyncIterator[StreamEvent]:
        """Open a new subscription to the account's update stream.

        Iteration raises StreamConnectionError when the connection breaks and
        Unauthorized when the credentials are refused. Calling again starts a
        fresh subscription.
        """
        raise NotImplementedError
