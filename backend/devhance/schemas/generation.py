"""Schemas for model-generated content.

The generation adapter only repairs syntax (code fences); these models are
the structural check applied to the parsed JSON before anything is stored.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SCORE_KEYS = (
    "problemClarity",
    "solutionStrength",
    "marketPotential",
    "technicalQuality",
    "defensibility",
    "tractionReadiness",
    "executionRisk",
    "overallStartupPotential",
)

SCORE_MIN = 0
SCORE_MAX = 10


class CaseStudyContent(BaseModel):
    """
    Case study fields as produced by the model.

    Every field is optional here; the writer applies safe defaults at the
    persistence boundary. Wrong types are rejected, unknown keys ignored.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    summary: Optional[str] = None
    problem_summary: Optional[str] = Field(default=None, alias="problemSummary")
    solution_summary: Optional[str] = Field(default=None, alias="solutionSummary")
    tech_stack: Optional[str] = Field(default=None, alias="techStack")
    architecture_overview: Optional[str] = Field(default=None, alias="architectureOverview")
    core_features: Optional[List[Any]] = Field(default=None, alias="coreFeatures")
    challenges_and_solutions: Optional[str] = Field(default=None, alias="challengesAndSolutions")
    impact: Optional[str] = None
    proof_data: Optional[Dict[str, Any]] = Field(default=None, alias="proofData")
    key_folders: Optional[List[str]] = Field(default=None, alias="keyFolders")


class ScoreItem(BaseModel):
    score: float
    reason: str = ""

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        """Scores outside 0-10 are clamped to the nearest bound."""
        return float(min(max(v, SCORE_MIN), SCORE_MAX))


class NarrativeSections(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    problem_and_user_pain: str = Field(alias="problemAndUserPain")
    solution_and_product: str = Field(alias="solutionAndProduct")
    market_and_competition: str = Field(alias="marketAndCompetition")
    technology_and_architecture: str = Field(alias="technologyAndArchitecture")
    traction_and_validation: str = Field(alias="tractionAndValidation")
    risks_and_gaps: str = Field(alias="risksAndGaps")
    growth_path_and_next_steps: str = Field(alias="growthPathAndNextSteps")


class VCReportContent(BaseModel):
    """VC report as produced by the model. Every documented key is required."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    scores: Dict[str, ScoreItem]
    narrative_sections: NarrativeSections = Field(alias="narrativeSections")
    verdict: str

    @model_validator(mode="after")
    def require_all_scores(self) -> "VCReportContent":
        missing = [key for key in SCORE_KEYS if key not in self.scores]
        if missing:
            raise ValueError(f"missing score keys: {', '.join(missing)}")
        if not self.verdict.strip():
            raise ValueError("verdict must not be empty")
        # Keep only documented score keys, in a stable order
        self.scores = {key: self.scores[key] for key in SCORE_KEYS}
        return self

    def scores_dict(self) -> Dict[str, Any]:
        return {key: item.model_dump() for key, item in self.scores.items()}

    def narrative_dict(self) -> Dict[str, Any]:
        return self.narrative_sections.model_dump(by_alias=True)
