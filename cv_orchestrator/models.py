"""Data models for analysis jobs and ATS scores."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cv_orchestrator.errors import ResponseFormatError


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _str_list(value: Any, key: str = "list") -> list[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ResponseFormatError(f"{key} must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _mapping(value: Any, key: str) -> dict:
    """An optional JSON object; anything else is a malformed body."""
    if not value:
        return {}
    if not isinstance(value, dict):
        raise ResponseFormatError(f"{key} must be an object, got {type(value).__name__}")
    return value


def _number(value: Any, key: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ResponseFormatError(f"{key} must be a number, got {value!r}")
    return value


@dataclass
class SkillMatchDetails:
    skill_match_percentage: float | None = None
    matched_skills: list[str] = field(default_factory=list)
    missing_skills: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    gap_analysis: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict | None) -> SkillMatchDetails | None:
        data = _mapping(data, "skillMatchDetails")
        if not data:
            return None
        return cls(
            skill_match_percentage=_number(data.get("skillMatchPercentage"), "skillMatchPercentage"),
            matched_skills=_str_list(data.get("matchedSkills"), "matchedSkills"),
            missing_skills=_str_list(data.get("missingSkills"), "missingSkills"),
            recommendations=_str_list(data.get("recommendations"), "recommendations"),
            gap_analysis=dict(_mapping(data.get("gapAnalysis"), "gapAnalysis")),
        )

    def has_content(self) -> bool:
        return (
            self.skill_match_percentage is not None
            or bool(self.matched_skills)
            or bool(self.missing_skills)
        )


@dataclass
class ComplianceDetails:
    keywords_matched: list[str] = field(default_factory=list)
    keywords_missing: list[str] = field(default_factory=list)
    formatting_issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    section_scores: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict | None) -> ComplianceDetails | None:
        data = _mapping(data, "complianceDetails")
        if not data:
            return None
        return cls(
            keywords_matched=_str_list(data.get("keywordsMatched"), "keywordsMatched"),
            keywords_missing=_str_list(data.get("keywordsMissing"), "keywordsMissing"),
            formatting_issues=_str_list(data.get("formattingIssues"), "formattingIssues"),
            suggestions=_str_list(data.get("suggestions"), "suggestions"),
            section_scores=dict(_mapping(data.get("sectionScores"), "sectionScores")),
        )

    def has_content(self) -> bool:
        return any(
            (
                self.keywords_matched,
                self.keywords_missing,
                self.formatting_issues,
                self.suggestions,
            )
        )


@dataclass
class AtsScores:
    score: float | None = None
    skill_match_details: SkillMatchDetails | None = None
    compliance_details: ComplianceDetails | None = None
    error: str | None = None
    last_analyzed_at: str | None = None
    job_application_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> AtsScores | None:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ResponseFormatError(f"atsScores must be an object, got {type(data).__name__}")
        return cls(
            score=_number(data.get("score"), "score"),
            skill_match_details=SkillMatchDetails.from_dict(data.get("skillMatchDetails")),
            compliance_details=ComplianceDetails.from_dict(data.get("complianceDetails")),
            error=data.get("error") or None,
            last_analyzed_at=data.get("lastAnalyzedAt"),
            job_application_id=data.get("jobApplicationId"),
        )

    def is_empty(self) -> bool:
        """True when nothing at all has been filled in yet."""
        return (
            self.score is None
            and self.skill_match_details is None
            and self.compliance_details is None
            and self.error is None
            and self.last_analyzed_at is None
        )


def is_ats_ready(scores: AtsScores | None) -> bool:
    """Structural completion test for an ATS scan.

    ATS records carry no status field, so a scan counts as finished as soon
    as any result-bearing field is populated, or an analytical error is set.
    Used both as the poll stop condition and by reconciliation.
    """
    if scores is None:
        return False
    if scores.score is not None or scores.error:
        return True
    if scores.skill_match_details is not None and scores.skill_match_details.has_content():
        return True
    if scores.compliance_details is not None and scores.compliance_details.has_content():
        return True
    return False


@dataclass
class DetailedCheck:
    check_name: str
    status: str
    score: float | None = None
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> DetailedCheck:
        if not isinstance(data, dict):
            raise ResponseFormatError(f"detailedResults.{name} must be an object")
        return cls(
            check_name=data.get("checkName") or name,
            status=data.get("status", "not-applicable"),
            score=_number(data.get("score"), f"detailedResults.{name}.score"),
            issues=_str_list(data.get("issues"), "issues"),
            suggestions=_str_list(data.get("suggestions"), "suggestions"),
        )


@dataclass
class AnalysisJob:
    id: str
    status: JobStatus
    overall_score: float | None = None
    issue_count: int | None = None
    category_scores: dict[str, float] = field(default_factory=dict)
    detailed_results: dict[str, DetailedCheck] = field(default_factory=dict)
    embedded_ats_scores: AtsScores | None = None
    error_info: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> AnalysisJob:
        if not isinstance(data, dict):
            raise ResponseFormatError(f"analysis record must be an object, got {type(data).__name__}")
        job_id = data.get("_id") or data.get("id")
        if not job_id:
            raise ResponseFormatError("analysis record has no id")
        try:
            status = JobStatus(data.get("status"))
        except (TypeError, ValueError) as exc:
            raise ResponseFormatError(f"unknown analysis status {data.get('status')!r}") from exc

        completed = status is JobStatus.COMPLETED
        detailed = _mapping(data.get("detailedResults"), "detailedResults") if completed else {}
        return cls(
            id=str(job_id),
            status=status,
            overall_score=_number(data.get("overallScore"), "overallScore") if completed else None,
            issue_count=data.get("issueCount") if completed else None,
            category_scores=dict(_mapping(data.get("categoryScores"), "categoryScores")) if completed else {},
            detailed_results={
                name: DetailedCheck.from_dict(name, check) for name, check in detailed.items()
            },
            embedded_ats_scores=AtsScores.from_dict(data.get("atsScores")),
            error_info=data.get("errorInfo") if status is JobStatus.FAILED else None,
            raw=data,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.PENDING


@dataclass
class StoredAts:
    """Latest ATS result the server keeps for a job application."""

    analysis_id: str | None = None
    scores: AtsScores | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> StoredAts:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ResponseFormatError(f"stored ATS response must be an object, got {type(data).__name__}")
        analysis_id = data.get("analysisId")
        return cls(
            analysis_id=str(analysis_id) if analysis_id else None,
            scores=AtsScores.from_dict(data.get("atsScores")),
        )
