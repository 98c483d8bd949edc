from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class EntityCategory(str, Enum):
    APPLICATION = "application"
    ENDPOINT = "endpoint"
    SUPERVISOR = "supervisor"
    PUBLISHER = "publisher"
    GATEWAY = "gateway"
    DISCOVERER = "discoverer"
    WRITER_GROUP = "writer-group"
    DATASET_WRITER = "dataset-writer"
    DATASET_VARIABLE = "dataset-variable"
    DATASET_EVENT = "dataset-event"

    @property
    def collection(self) -> str:
        # REST collection name, e.g. "discoverers", "writer-groups"
        return f"{self.value}s"


ALL_CATEGORIES: tuple[EntityCategory, ...] = tuple(EntityCategory)


class EntityEvent(BaseModel):
    """Change notification for one registered entity (created/updated/deleted...)."""
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    category: Optional[EntityCategory] = None
    event_type: str = Field(default="unknown", alias="eventType")
    id: Optional[str] = None
    payload: Any = None
