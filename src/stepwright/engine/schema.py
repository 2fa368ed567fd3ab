"""Pydantic schema for workflow YAML files.

A workflow file names the workflow and points at its instructions markdown::

    name: create-prd
    description: Produce a product requirements document
    installed_path: "{project-root}/workflows/create-prd"
    instructions: "{installed_path}/instructions.md"
    config_source: "{project-root}/config.yaml"
    variables:
      project_name: "{config_source}:project.name"
      date: date:system-generated

Unknown keys are kept (``extra="allow"``) so workflow files can carry
metadata for other tools.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["WorkflowFile"]


class WorkflowFile(BaseModel):
    """Top-level workflow file schema.

    Validation Rules:
        - name: Required, non-blank
        - instructions: Optional; defaults to instructions.md next to the file
        - variables: Mapping of variable name to default value
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)
    description: str = ""
    instructions: str | None = None
    installed_path: str | None = None
    config_source: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

    @field_validator("variables", mode="before")
    @classmethod
    def default_variables(cls, v: Any) -> Any:
        """Treat an empty ``variables:`` key as no variables."""
        return {} if v is None else v
