"""Wire schemas for the watsonx and IBM Cloud IAM responses."""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_log = logging.getLogger(__name__)

_Record = TypeVar("_Record", bound=BaseModel)


class IAMTokenResponse(BaseModel):
    access_token: str
    expires_in: int


class ModelTask(BaseModel):
    id: str


class FoundationModelSpec(BaseModel):
    """One entry of ``/ml/v1/foundation_model_specs``."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    label: Optional[str] = None
    provider: Optional[str] = None
    source: Optional[str] = None
    short_description: Optional[str] = None
    number_params: Optional[str] = None
    tasks: list[ModelTask] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]


class LegacyModelMetadata(BaseModel):
    task_type: Union[list[str], str, None] = None
    max_sequence_length: Optional[int] = None


class LegacyModel(BaseModel):
    """One entry of the older ``/ml/v1/models`` listing."""

    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    metadata: LegacyModelMetadata = Field(default_factory=LegacyModelMetadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def is_text_generation(self) -> bool:
        return "text-generation" in (self.metadata.task_type or [])


class ResourceList(BaseModel):
    """Envelope of a watsonx listing; entries are validated one by one."""

    resources: Optional[list[Any]] = None

    def parse(self, model: type[_Record]) -> list[_Record]:
        """Validate each entry as ``model``, skipping the malformed ones."""
        records: list[_Record] = []
        for index, entry in enumerate(self.resources or []):
            try:
                records.append(model.model_validate(entry))
            except ValidationError as exc:
                _log.warning(
                    "Skipping malformed %s entry %d: %s", model.__name__, index, exc
                )
        return records
