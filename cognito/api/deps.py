from __future__ import annotations

from cognito.agents.turn_controller import TurnController
from cognito.llm_client import LLMClient
from cognito.services.collaborator import Collaborator, InMemoryCollaborator
from cognito.tools.search_provider import SearchAggregator


class ChatRegistry:
    """Process-wide state: one controller per conversation plus shared clients."""

    def __init__(
        self,
        collaborator: Collaborator | None = None,
        llm: LLMClient | None = None,
        search: SearchAggregator | None = None,
    ):
        self.collaborator = collaborator or InMemoryCollaborator()
        self.llm = llm or LLMClient()
        self.search = search or SearchAggregator()
        self._controllers: dict[str, TurnController] = {}

    def get(self, conversation_id: str) -> TurnController | None:
        return self._controllers.get(conversation_id)

    def controller(self, conversation_id: str) -> TurnController:
        if conversation_id not in self._controllers:
            self._controllers[conversation_id] = TurnController(
                conversation_id,
                self.collaborator,
                self.llm,
                self.search,
            )
        return self._controllers[conversation_id]

    async def aclose(self) -> None:
        for controller in self._controllers.values():
            await controller.stop()
        await self.search.aclose()
        await self.llm.aclose()


_registry: ChatRegistry | None = None


def get_registry() -> ChatRegistry:
    global _registry
    if _registry is None:
        _registry = ChatRegistry()
    return _registry


async def close_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.aclose()
        _registry = None
