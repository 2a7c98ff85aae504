from pydantic import Field

from app.services.pipeline_types import CamelModel, PipelineData


class LoadChecklistRequest(CamelModel):
    pipeline_data: PipelineData = Field(default_factory=PipelineData)
    health_score: float = 0


class ToggleItemRequest(CamelModel):
    health_score: float = 0


class ReanalyzeRequest(CamelModel):
    pipeline_data: PipelineData = Field(default_factory=PipelineData)
    health_score: float = 0
    force: bool = False
