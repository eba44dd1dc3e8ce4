from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from models.records import ActionDraft, EventDraft


class EventTask(BaseModel):
    type: Literal["event"] = "event"
    data: EventDraft


class ActionTask(BaseModel):
    type: Literal["action"] = "action"
    data: ActionDraft


IngestionTask = Annotated[Union[EventTask, ActionTask], Field(discriminator="type")]


def describe_task(task: Union[EventTask, ActionTask]) -> str:
    """Short label used when logging a failed task."""
    if task.type == "event":
        return f"{task.data.event_type} {task.data.file_path}"
    return task.data.description[:80]
