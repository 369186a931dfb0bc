"""Pydantic models for component graphs, threat templates and analyzed threats."""

import re
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator


def normalize_label(value):
    """Lowercase a scale label and join words with underscores ('Very High' -> 'very_high')."""
    if isinstance(value, str):
        return re.sub(r'[\s\-]+', '_', value.strip().lower())
    return value


def display_label(value: str) -> str:
    return value.replace('_', ' ').title()


class StrideCategory(str, Enum):
    SPOOFING = 'spoofing'
    TAMPERING = 'tampering'
    REPUDIATION = 'repudiation'
    INFORMATION_DISCLOSURE = 'information_disclosure'
    DENIAL_OF_SERVICE = 'denial_of_service'
    ELEVATION_OF_PRIVILEGE = 'elevation_of_privilege'

    @property
    def label(self) -> str:
        if self is StrideCategory.DENIAL_OF_SERVICE:
            return 'Denial of Service'
        if self is StrideCategory.ELEVATION_OF_PRIVILEGE:
            return 'Elevation of Privilege'
        return display_label(self.value)


class Criticality(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class Likelihood(str, Enum):
    VERY_LOW = 'very_low'
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    VERY_HIGH = 'very_high'


class ImpactLevel(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class RiskLevel(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class ThreatStatus(str, Enum):
    IDENTIFIED = 'identified'
    IN_PROGRESS = 'in_progress'
    MITIGATED = 'mitigated'
    ACCEPTED = 'accepted'
    TRANSFERRED = 'transferred'


class TargetKind(str, Enum):
    COMPONENT = 'component'
    DATA_FLOW = 'data_flow'


IMPACT_ORDER = [ImpactLevel.LOW, ImpactLevel.MEDIUM, ImpactLevel.HIGH, ImpactLevel.CRITICAL]

CIA_KEYS = {'c': 'confidentiality', 'i': 'integrity', 'a': 'availability'}
GROUPED_CIA = re.compile(r'^\s*([A-Za-z ]+?)\s*\(\s*([CIAcia,\s]+)\)\s*$')


class ImpactCIA(BaseModel):
    """Impact split over confidentiality, integrity and availability."""
    confidentiality: ImpactLevel = ImpactLevel.MEDIUM
    integrity: ImpactLevel = ImpactLevel.MEDIUM
    availability: ImpactLevel = ImpactLevel.MEDIUM

    @classmethod
    def parse(cls, text: str) -> 'ImpactCIA':
        """
        Parse 'C:High, I:High, A:Medium', the grouped form 'High (C,I)' or a
        bare level such as 'Critical', which applies to all three dimensions.

        Dimensions missing from the per-key form default to medium; dimensions
        not named in the grouped form are low. Text with no recognisable part
        raises ValueError.
        """
        text = (text or '').strip()
        grouped = GROUPED_CIA.match(text)
        if grouped:
            level = ImpactLevel(normalize_label(grouped.group(1)))
            named = {part.strip().lower() for part in grouped.group(2).split(',') if part.strip()}
            values = {field: level if key in named else ImpactLevel.LOW for key, field in CIA_KEYS.items()}
            return cls(**values)

        if ':' not in text:
            level = ImpactLevel(normalize_label(text))
            return cls(confidentiality=level, integrity=level, availability=level)

        values = {}
        for part in text.split(','):
            if ':' not in part:
                continue
            key, value = (s.strip() for s in part.split(':', 1))
            field = CIA_KEYS.get(key.lower())
            if field:
                values[field] = ImpactLevel(normalize_label(value))
        if not values:
            raise ValueError(f"no C, I or A impact found in {text!r}")
        return cls(**values)

    def highest(self) -> ImpactLevel:
        return max(
            (self.confidentiality, self.integrity, self.availability),
            key=IMPACT_ORDER.index,
        )

    def format(self) -> str:
        return (
            f'C:{display_label(self.confidentiality.value)}, '
            f'I:{display_label(self.integrity.value)}, '
            f'A:{display_label(self.availability.value)}'
        )


class Component(BaseModel):
    """A node of the component graph."""
    id: str
    diagramId: Optional[str] = None
    name: str
    type: str = 'process'
    technology: Optional[str] = None
    criticality: Criticality = Criticality.MEDIUM
    dataClassification: Optional[str] = None
    trustBoundary: Optional[str] = None
    description: Optional[str] = None

    @field_validator('id')
    @classmethod
    def validate_component_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Component id cannot be empty')
        return v.strip()

    @field_validator('criticality', mode='before')
    @classmethod
    def normalize_criticality(cls, v):
        return normalize_label(v)


class DataFlow(BaseModel):
    """A directed edge between two components."""
    id: str
    diagramId: Optional[str] = None
    sourceId: str
    targetId: str
    label: str = ''
    protocol: Optional[str] = None
    dataType: Optional[str] = None
    encrypted: bool = False
    authenticated: bool = False
    # None means "infer from the endpoints' trust boundaries"
    crossesTrustBoundary: Optional[bool] = None


class TrustBoundary(BaseModel):
    """A named security perimeter grouping components."""
    id: str
    name: str
    type: str = 'cloud_account'
    memberComponentIds: list[str] = Field(default_factory=list)


class ThreatModelGraph(BaseModel):
    """Components, data flows and trust boundaries of one system."""
    title: str = 'Untitled Threat Model'
    version: str = '1.0'
    components: list[Component] = Field(default_factory=list)
    dataFlows: list[DataFlow] = Field(default_factory=list)
    trustBoundaries: list[TrustBoundary] = Field(default_factory=list)
    threatActors: list[str] = Field(default_factory=list)


class ThreatTemplate(BaseModel):
    """A catalog entry matched against component types."""
    id: str
    strideCategory: StrideCategory
    title: str
    description: str
    applicableComponentTypes: list[str] = Field(default_factory=list)
    vulnerability: str = ''
    attackVector: str = ''
    threatActors: list[str] = Field(default_factory=list)
    skillsRequired: str = 'Medium'
    complexity: str = 'Medium'
    likelihood: Likelihood
    impact: Optional[ImpactLevel] = None
    impactCIA: Optional[str] = None
    existingControls: Optional[str] = None
    recommendation: Optional[str] = None
    mitigations: list[str] = Field(default_factory=list)
    cweIds: list[str] = Field(default_factory=list)
    attackTechniqueIds: list[str] = Field(default_factory=list)

    @field_validator('strideCategory', 'likelihood', 'impact', mode='before')
    @classmethod
    def normalize_scale(cls, v):
        return normalize_label(v)

    @model_validator(mode='after')
    def resolve_impact(self) -> 'ThreatTemplate':
        if self.impactCIA:
            highest = ImpactCIA.parse(self.impactCIA).highest()
            if self.impact is None:
                self.impact = highest
            elif self.impact != highest:
                raise ValueError(
                    f"Template '{self.id}' impact '{self.impact.value}' disagrees with "
                    f"impactCIA '{self.impactCIA}' (highest '{highest.value}')"
                )
        if self.impact is None:
            raise ValueError(f"Template '{self.id}' needs impact or impactCIA")
        return self


class ThreatCatalog(BaseModel):
    """A versioned, ordered set of threat templates."""
    name: str = 'default'
    version: str = '1.0'
    templates: list[ThreatTemplate] = Field(default_factory=list)

    def by_category(self, category: StrideCategory) -> list[ThreatTemplate]:
        return [t for t in self.templates if t.strideCategory == category]


class DreadLevel(str, Enum):
    CRITICAL = 'critical'
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'
    INFORMATIONAL = 'informational'


class DreadFactors(BaseModel):
    """The five DREAD ratings, each 0-10."""
    damage: int = Field(default=5, ge=0, le=10)
    reproducibility: int = Field(default=5, ge=0, le=10)
    exploitability: int = Field(default=5, ge=0, le=10)
    affectedUsers: int = Field(default=5, ge=0, le=10)
    discoverability: int = Field(default=5, ge=0, le=10)


class DreadAssessment(BaseModel):
    factors: DreadFactors
    score: float
    level: DreadLevel
    justification: dict[str, str] = Field(default_factory=dict)
    recommendation: str = ''


class AnalyzedThreat(BaseModel):
    """A concrete threat against one component or data flow."""
    diagramId: Optional[str] = None
    targetKind: TargetKind
    targetId: str
    targetName: str
    templateId: Optional[str] = None
    strideCategory: StrideCategory
    title: str
    description: str
    vulnerability: str = ''
    attackVector: str = ''
    threatActor: str = ''
    skillsRequired: str = ''
    complexity: str = ''
    likelihood: Likelihood
    impact: ImpactLevel
    impactCIA: str = ''
    riskScore: float
    riskLevel: RiskLevel
    existingControls: Optional[str] = None
    riskAfterExisting: RiskLevel
    gapRecommendation: Optional[str] = None
    finalRisk: RiskLevel
    mitigations: list[str] = Field(default_factory=list)
    cweIds: list[str] = Field(default_factory=list)
    attackTechniqueIds: list[str] = Field(default_factory=list)
    comments: Optional[str] = None
    commentedBy: Optional[str] = None
    ticketRef: Optional[str] = None
    status: ThreatStatus = ThreatStatus.IDENTIFIED
    dread: Optional[DreadAssessment] = None


class ThreatSummary(BaseModel):
    """Threat counts per STRIDE category and per risk level."""
    total: int = 0
    byCategory: dict[str, int] = Field(default_factory=dict)
    byRiskLevel: dict[str, int] = Field(default_factory=dict)
