"""Model stream client protocol.

The orchestrator never talks to a provider SDK directly. Each provider ships an
implementation of this protocol that turns a StreamRequest into a lazy, finite,
non-restartable sequence of chunks. Retrying means calling ``stream`` again.
"""

from typing import AsyncIterator, Protocol

from nexus_chat.llm_client.cancellation import CancellationToken
from nexus_chat.llm_client.types import StreamChunk, StreamRequest


class ModelStreamClient(Protocol):
    """Streaming model provider.

    Implementations should report provider failures as an ``error`` chunk rather
    than raising; the orchestrator tolerates both.
    """

    name: str

    def stream(
        self, request: StreamRequest, token: CancellationToken
    ) -> AsyncIterator[StreamChunk]:
        ...
