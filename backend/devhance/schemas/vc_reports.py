import uuid
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class VCReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    case_study_id: uuid.UUID
    scores: Dict[str, Any]
    narrative_sections: Dict[str, Any]
    verdict: str
    created_at: datetime
