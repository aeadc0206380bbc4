from __future__ import annotations

from typing import Protocol
from uuid import UUID

from attempt_service.models.assessment import AssessmentDefinition


class AssessmentCatalog(Protocol):
    """Read-only source of published assessment definitions.

    A definition returned here must stay the same for the lifetime of
    any attempt bound to it.
    """

    async def get_definition(
        self, assessment_id: UUID
    ) -> AssessmentDefinition | None: ...


class InMemoryAssessmentCatalog:
    def __init__(self) -> None:
        self._by_id: dict[UUID, AssessmentDefinition] = {}

    async def get_definition(self, assessment_id: UUID) -> AssessmentDefinition | None:
        return self._by_id.get(assessment_id)

    def publish(self, definition: AssessmentDefinition) -> None:
        # Seeding hook for dev and tests; authoring lives elsewhere.
        if definition.id in self._by_id:
            raise ValueError("assessment already published")
        self._by_id[definition.id] = definition
