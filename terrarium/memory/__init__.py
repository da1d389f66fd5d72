from terrarium.memory.conversation import ConversationHistory, Exchange
from terrarium.memory.episodic import EpisodicMemory, MemoryEntry, MemoryType

__all__ = [
    "ConversationHistory",
    "EpisodicMemory",
    "Exchange",
    "MemoryEntry",
    "MemoryType",
]
