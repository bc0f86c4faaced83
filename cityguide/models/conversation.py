"""Pydantic models for conversation turns."""
from enum import Enum
from typing import List

from pydantic import BaseModel


class Role(str, Enum):
    """Author of a turn."""
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One exchange unit sent to the generative service."""
    role: Role
    text: str


class ConversationResponse(BaseModel):
    """Current turns of a trip's planning session."""
    trip_id: str
    turns: List[ConversationTurn]
