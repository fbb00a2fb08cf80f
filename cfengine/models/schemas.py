"""
Pydantic models for the CF modeling engine.

This module defines every record that crosses the engine boundary: market
benchmark rows, provider records, scenario inputs and results, batch rows,
optimizer settings and results, comparison outputs, productivity target and
imputed-vs-market records, and worker messages.

Field names are camelCase so that JSON payloads from the presentation layer
validate without aliasing, and so results serialize back in the same shape.

Conventions:
- Input records are mutable and tolerant (missing numeric fields are None;
  extra keys from upstream column mapping are ignored).
- Result records are frozen: they are created once by the engine and are
  read-only downstream. Re-running produces a new result tree.
- Malformed optimizer objective / error-metric / outlier-method values are
  normalized to engine defaults on load (logged at WARNING) rather than
  rejected.

All models use Pydantic v2 syntax.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cfengine.models.enums import (
    BenchmarkBasis,
    BudgetConstraintKind,
    CFPolicyEnforcementMode,
    CFSource,
    ErrorMetric,
    ExclusionReason,
    MatchStatus,
    ObjectiveKind,
    OptimizerFlag,
    OptimizerStatus,
    OutlierMethod,
    PlanningCFSource,
    PolicyCheckStatus,
    ProductivityModel,
    ProviderTargetStatus,
    PSQBasis,
    QualityPaymentsSource,
    RecommendedAction,
    RiskLevel,
    TargetApproach,
    TCCLayerType,
    ThresholdMethod,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Market and Provider Input Records
# =============================================================================


class MarketRow(BaseModel):
    """
    Market survey benchmark row for one specialty.

    Carries the four-point (25/50/75/90) curves for TCC, wRVU and CF. A row is
    only usable for matching when all twelve points are present and finite.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra='ignore',
        json_schema_extra={
            "example": {
                "specialty": "Cardiology",
                "TCC_25": 400000, "TCC_50": 500000, "TCC_75": 600000, "TCC_90": 700000,
                "WRVU_25": 4000, "WRVU_50": 5000, "WRVU_75": 6000, "WRVU_90": 7000,
                "CF_25": 55, "CF_50": 60, "CF_75": 65, "CF_90": 70,
            }
        }
    )

    specialty: str = Field(default="", description="Market specialty name")
    providerType: Optional[str] = Field(default=None, description="Optional provider type")
    region: Optional[str] = Field(default=None, description="Optional survey region")

    TCC_25: Optional[float] = None
    TCC_50: Optional[float] = None
    TCC_75: Optional[float] = None
    TCC_90: Optional[float] = None
    WRVU_25: Optional[float] = None
    WRVU_50: Optional[float] = None
    WRVU_75: Optional[float] = None
    WRVU_90: Optional[float] = None
    CF_25: Optional[float] = None
    CF_50: Optional[float] = None
    CF_75: Optional[float] = None
    CF_90: Optional[float] = None


class BasePayComponent(BaseModel):
    """Single line item that rolls up into total base pay."""
    id: str = ""
    label: str = ""
    amount: Optional[float] = None
    fte: Optional[float] = None


class ProviderRecord(BaseModel):
    """
    One provider from the provider-level dataset.

    All numeric fields are optional at parse time; the engine applies explicit
    fallbacks for missing, zero or non-finite values.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra='ignore',
        json_schema_extra={
            "example": {
                "providerId": "P-001",
                "providerName": "Dr. Example",
                "specialty": "Cardiology",
                "totalFTE": 1.0,
                "clinicalFTE": 1.0,
                "baseSalary": 400000,
                "workRVUs": 5200,
                "currentCF": 58,
            }
        }
    )

    # Identity
    providerId: Optional[str] = None
    providerName: Optional[str] = None
    specialty: Optional[str] = None
    division: Optional[str] = None
    providerType: Optional[str] = None

    # FTE breakdown (clinical, admin, research, teaching)
    totalFTE: Optional[float] = None
    clinicalFTE: Optional[float] = None
    adminFTE: Optional[float] = None
    researchFTE: Optional[float] = None
    teachingFTE: Optional[float] = None

    # Compensation components
    baseSalary: Optional[float] = None
    basePayComponents: List[BasePayComponent] = Field(default_factory=list)
    clinicalFTESalary: Optional[float] = Field(
        default=None,
        description="Clinical-FTE-attributable salary override"
    )
    nonClinicalPay: Optional[float] = None
    qualityPayments: Optional[float] = None
    otherIncentives: Optional[float] = None
    otherIncentive1: Optional[float] = None
    otherIncentive2: Optional[float] = None
    otherIncentive3: Optional[float] = None

    # Productivity
    workRVUs: Optional[float] = None
    outsideWRVUs: Optional[float] = None
    pchWRVUs: Optional[float] = Field(default=None, description="Legacy wRVU field")
    totalWRVUs: Optional[float] = None

    # Current plan
    currentCF: Optional[float] = None
    currentThreshold: Optional[float] = None
    currentTCC: Optional[float] = Field(default=None, description="File-supplied current TCC")
    productivityModel: Optional[ProductivityModel] = None

    # Optimizer exclusion inputs
    loa: Optional[bool] = None
    leaveOfAbsence: Optional[bool] = None
    LOA: Optional[str] = None
    tenureMonths: Optional[float] = None

    @field_validator('productivityModel', mode='before')
    @classmethod
    def _coerce_productivity_model(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().lower()
            return cleaned if cleaned in ('base', 'productivity') else None
        return value


# =============================================================================
# Scenario Inputs and Results
# =============================================================================


class ScenarioInputs(BaseModel):
    """
    User-controlled inputs for one modeled scenario.

    Modeled PSQ percent/basis default to the current-state values when not set.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "cfSource": "target_percentile",
                "proposedCFPercentile": 50,
                "psqPercent": 0,
                "thresholdMethod": "derived",
            }
        }
    )

    cfSource: CFSource = CFSource.TARGET_PERCENTILE
    proposedCFPercentile: float = Field(default=40.0, description="Target market CF percentile")
    haircutPct: float = Field(default=5.0, description="Percent reduction for target_haircut")
    overrideCF: Optional[float] = Field(default=None, description="CF dollars for override mode")

    psqPercent: float = Field(default=0.0, description="Current-state PSQ percent")
    psqBasis: PSQBasis = PSQBasis.BASE_SALARY
    modeledPsqPercent: Optional[float] = None
    modeledPsqBasis: Optional[PSQBasis] = None

    thresholdMethod: ThresholdMethod = ThresholdMethod.DERIVED
    annualThreshold: Optional[float] = None
    wrvuPercentile: float = Field(default=50.0, description="Market wRVU percentile for threshold")

    modeledBasePay: Optional[float] = None
    modeledNonClinicalPay: Optional[float] = None
    modeledWRVUs: Optional[float] = None


class GovernanceFlags(BaseModel):
    """Four independent governance booleans derived from a ScenarioResult."""
    model_config = ConfigDict(frozen=True)

    underpayRisk: bool = False
    cfBelow25: bool = False
    modeledInPolicyBand: bool = False
    fmvCheckSuggested: bool = False


class RiskAssessment(BaseModel):
    """High-risk notes and warnings collected while computing a scenario."""
    model_config = ConfigDict(frozen=True)

    highRisk: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ScenarioResult(BaseModel):
    """
    All computed outputs for a single (provider, scenario) pair.

    Percentile fields carry companion BelowRange/AboveRange flags when the
    value fell outside the market's 25th-90th anchors.
    """
    model_config = ConfigDict(frozen=True)

    # Pay inputs resolved
    baseSalary: float
    clinicalBaseSalary: float
    totalBasePay: float
    modeledBasePay: float
    modeledTotalBasePay: float
    modeledClinicalSalary: float
    totalFTE: float
    clinicalFTE: float

    # Productivity and thresholds
    totalWRVUs: float
    modeledTotalWRVUs: float
    currentCF: float
    currentThreshold: float
    currentIncentive: float
    modeledCF: float
    annualThreshold: float
    wRVUsAboveThreshold: float
    annualIncentive: float

    # PSQ and other components
    currentPsqDollars: float
    psqDollars: float
    qualityPayments: float
    otherIncentives: float

    # TCC
    currentTCC: float
    modeledTCC: float
    changeInTCC: float

    # Normalized metrics
    wrvuNormalized: float
    tccNormalized: float
    modeledTccNormalized: float

    # Percentiles
    wrvuPercentile: float
    wrvuPercentileBelowRange: bool = False
    wrvuPercentileAboveRange: bool = False
    tccPercentile: float
    tccPercentileBelowRange: bool = False
    tccPercentileAboveRange: bool = False
    modeledTCCPercentile: float
    modeledTCCPercentileBelowRange: bool = False
    modeledTCCPercentileAboveRange: bool = False
    cfPercentileCurrent: float
    cfPercentileCurrentBelowRange: bool = False
    cfPercentileCurrentAboveRange: bool = False
    cfPercentileModeled: float

    # Imputed $/wRVU
    imputedTCCPerWRVURatioCurrent: float
    imputedTCCPerWRVURatioModeled: float
    imputedPercentileCurrent: float
    imputedPercentileModeled: float
    marketDollarPerWRVU: List[float] = Field(
        default_factory=list,
        description="Synthetic market $/wRVU curve (TCC anchor / wRVU anchor)"
    )

    # Alignment and governance
    baselineGap: float
    modeledGap: float
    governanceFlags: GovernanceFlags
    risk: RiskAssessment
    warnings: List[str] = Field(default_factory=list)


# =============================================================================
# Matching
# =============================================================================


class MatchResult(BaseModel):
    """Result of resolving a provider's specialty to a market row."""
    model_config = ConfigDict(frozen=True)

    marketRow: Optional[MarketRow] = None
    status: MatchStatus
    matchedKey: Optional[str] = Field(
        default=None,
        description="Normalized market specialty key that matched"
    )


# =============================================================================
# Batch
# =============================================================================


class BatchScenario(BaseModel):
    """Named scenario preset applied to every provider in a batch run."""
    id: str
    name: str
    scenarioInputs: ScenarioInputs = Field(default_factory=ScenarioInputs)


class BatchRowResult(BaseModel):
    """One row of batch output: one provider x one scenario."""
    model_config = ConfigDict(frozen=True)

    providerId: str
    providerName: str
    specialty: str
    division: str
    scenarioId: str
    scenarioName: str
    scenarioInputsSnapshot: ScenarioInputs
    results: Optional[ScenarioResult] = Field(
        default=None,
        description="Null when the market is missing (no compute)"
    )
    matchStatus: MatchStatus
    matchedMarketSpecialty: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    riskLevel: RiskLevel


class BatchResults(BaseModel):
    """Full output of a batch run."""
    model_config = ConfigDict(frozen=True)

    rows: List[BatchRowResult] = Field(default_factory=list)
    runAt: str
    scenarioCount: int = Field(..., ge=0)
    providerCount: int = Field(..., ge=0)


# =============================================================================
# Optimizer Settings
# =============================================================================


class OptimizationObjective(BaseModel):
    """
    Optimization objective for the CF search.

    targetPercentile is used by target_fixed_percentile and hybrid; the
    weights are used by hybrid only.
    """
    kind: ObjectiveKind = ObjectiveKind.ALIGN_PERCENTILE
    targetPercentile: float = 40.0
    alignWeight: float = 0.7
    targetWeight: float = 0.3


class OutlierParams(BaseModel):
    """Outlier detection method and thresholds."""
    method: OutlierMethod = OutlierMethod.MAD_Z
    iqrK: float = 1.5
    madZThreshold: float = 3.5

    @field_validator('method', mode='before')
    @classmethod
    def _default_unknown_method(cls, value: Any) -> Any:
        if value not in [m.value for m in OutlierMethod] and not isinstance(value, OutlierMethod):
            logger.warning(f"Unknown outlier method {value!r}; using {OutlierMethod.MAD_Z.value}")
            return OutlierMethod.MAD_Z
        return value


class CFBounds(BaseModel):
    """Search bounds as percent change from current CF, with optional absolute floor/ceiling."""
    minChangePct: float = 30.0
    maxChangePct: float = 30.0
    absoluteMin: Optional[float] = None
    absoluteMax: Optional[float] = None


class BudgetConstraint(BaseModel):
    """Constraint on aggregate spend impact."""
    kind: BudgetConstraintKind = BudgetConstraintKind.NONE
    capPct: Optional[float] = None
    capDollars: Optional[float] = None


class DefaultExclusionRules(BaseModel):
    """Automatic eligibility rules applied before the search."""
    minBasisFTE: float = 0.5
    minWRVUPer1p0CFTE: float = 1000.0
    excludeLOA: bool = True
    newHireMonthsThreshold: Optional[float] = None


class CFPolicySettings(BaseModel):
    """CF policy percentile and whether it caps or only flags."""
    thresholdPercentile: float = 50.0
    enforcementMode: CFPolicyEnforcementMode = CFPolicyEnforcementMode.FLAG_ONLY


class GovernanceConfig(BaseModel):
    """Governance thresholds for status, action and explanation logic."""
    hardCapPercentile: float = Field(
        default=50.0,
        description="Do not increase CF when group comp is above this TCC percentile"
    )
    softCapPercentile: float = Field(default=60.0, description="Yellow-zone TCC percentile")
    fmvRedFlagPercentile: float = Field(default=75.0, description="FMV red-flag TCC percentile")
    alignmentTolerancePctile: float = Field(
        default=3.0,
        description="Within +/- this many percentile points counts as aligned"
    )
    minMeaningfulChangePct: float = Field(
        default=0.01,
        description="Minimum CF change (fraction) considered meaningful"
    )


class TCCLayer(BaseModel):
    """Named additional TCC layer applied to both baseline and modeled TCC."""
    id: str = ""
    name: str = ""
    type: TCCLayerType
    value: float = 0.0


class OptimizerSettings(BaseModel):
    """
    Full configuration for a CF optimization run.

    Objective, error metric and outlier method values that fail to parse are
    normalized to defaults instead of failing the whole payload.
    """
    model_config = ConfigDict(extra='ignore')

    benchmarkBasis: BenchmarkBasis = BenchmarkBasis.PER_CFTE
    optimizationObjective: OptimizationObjective = Field(default_factory=OptimizationObjective)
    errorMetric: ErrorMetric = ErrorMetric.SQUARED
    outlierParams: OutlierParams = Field(default_factory=OutlierParams)
    defaultExclusionRules: DefaultExclusionRules = Field(default_factory=DefaultExclusionRules)
    cfBounds: CFBounds = Field(default_factory=CFBounds)
    budgetConstraint: BudgetConstraint = Field(default_factory=BudgetConstraint)
    cfPolicy: CFPolicySettings = Field(default_factory=CFPolicySettings)
    governanceConfig: GovernanceConfig = Field(default_factory=GovernanceConfig)

    # TCC component assembly
    baseScenarioInputs: ScenarioInputs = Field(default_factory=ScenarioInputs)
    includePsqInBaselineAndModeled: bool = False
    includeQualityPaymentsInBaselineAndModeled: bool = True
    qualityPaymentsSource: QualityPaymentsSource = QualityPaymentsSource.FROM_FILE
    qualityPaymentsOverridePct: Optional[float] = None
    normalizeQualityForFTE: bool = False
    includeWorkRVUIncentiveInTCC: bool = True
    includeOtherIncentivesInBaselineAndModeled: bool = False
    includeStipendInBaselineAndModeled: bool = False
    additionalTCCLayers: List[TCCLayer] = Field(default_factory=list)

    # Scope
    manualExcludeProviderIds: List[str] = Field(default_factory=list)
    manualIncludeProviderIds: List[str] = Field(default_factory=list)

    # Search policy
    gridStepPct: Optional[float] = Field(
        default=None,
        description="Candidate spacing as a fraction of CF; engine default when unset"
    )
    maxRecommendedCFPercentile: Optional[float] = Field(
        default=50.0,
        description="Recommended CF never exceeds this market CF percentile"
    )
    wRVUGrowthFactorPct: float = Field(
        default=0.0,
        description="Scale recorded wRVUs by (1 + pct/100) for this run only"
    )

    @field_validator('optimizationObjective', mode='before')
    @classmethod
    def _normalize_objective(cls, value: Any) -> Any:
        if isinstance(value, OptimizationObjective):
            return value
        if isinstance(value, str):
            value = {"kind": value}
        if not isinstance(value, dict) or value.get("kind") not in [k.value for k in ObjectiveKind]:
            logger.warning(f"Malformed optimization objective {value!r}; using align_percentile")
            return OptimizationObjective()
        cleaned = {"kind": value["kind"]}
        for key in ("targetPercentile", "alignWeight", "targetWeight"):
            raw = value.get(key)
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                cleaned[key] = raw
        return cleaned

    @field_validator('errorMetric', mode='before')
    @classmethod
    def _normalize_error_metric(cls, value: Any) -> Any:
        if isinstance(value, ErrorMetric):
            return value
        if value not in [m.value for m in ErrorMetric]:
            logger.warning(f"Malformed error metric {value!r}; using squared")
            return ErrorMetric.SQUARED
        return value


# =============================================================================
# Optimizer Results
# =============================================================================


class OptimizerProviderContext(BaseModel):
    """
    Per-provider working state inside a specialty run, kept for audit.

    All *_1p0 values are normalized to 1.0 of the run's benchmark basis FTE.
    """
    model_config = ConfigDict(frozen=True)

    providerId: str
    providerName: str
    specialty: str
    marketSpecialty: Optional[str] = None
    matchStatus: MatchStatus
    basisFTE: float
    clinicalFTE: float
    currentCF: float
    clinicalBase: float

    currentTCCBaseline: float
    currentTCC_1p0: float
    currentTCC_pctile: float
    tccOffScale: bool = False

    wRVU_1p0: float
    effectiveTotalWRVUs: float
    wrvuPercentile: float
    wrvuOffScale: bool = False
    baselineGap: float

    modeledTCCRaw: float = 0.0
    modeledTCC_1p0: float = 0.0
    modeledTCC_pctile: float = 0.0
    modeledGap: float = 0.0
    baselineIncentiveDollars: float = 0.0
    modeledIncentiveDollars: float = 0.0

    effectiveRate: float = 0.0
    effectiveRatePercentile: float = 0.0
    effectiveRateOffScale: bool = False

    included: bool
    exclusionReasons: List[ExclusionReason] = Field(default_factory=list)
    includeAnyway: bool = False
    riskLevel: RiskLevel = RiskLevel.LOW


class OptimizerKeyMetrics(BaseModel):
    """Mean metrics across a specialty's included providers at baseline."""
    model_config = ConfigDict(frozen=True)

    prodPercentile: float = 0.0
    compPercentile: float = 0.0
    gap: float = 0.0
    tcc_1p0: float = 0.0
    workRVU_1p0: float = 0.0


class OptimizerExplanation(BaseModel):
    """Templated plain-English explanation of a recommendation."""
    model_config = ConfigDict(frozen=True)

    headline: str
    why: List[str] = Field(default_factory=list)
    whatToDoNext: List[str] = Field(default_factory=list)


class MarketCFBenchmarks(BaseModel):
    """Market CF 25th/50th/75th/90th for a specialty."""
    model_config = ConfigDict(frozen=True)

    cf25: float
    cf50: float
    cf75: float
    cf90: float


class OptimizerSpecialtyResult(BaseModel):
    """Specialty-level CF recommendation with governance status and audit trail."""
    model_config = ConfigDict(frozen=True)

    specialty: str
    includedCount: int
    excludedCount: int
    currentCF: float
    recommendedCF: float
    cfChangePct: float

    preGap: float
    postGap: float
    meanModeledTCCPercentile: float = 0.0
    maeBefore: float
    maeAfter: float
    mseBefore: float
    mseAfter: float
    objectiveBefore: float = 0.0
    objectiveAfter: float = 0.0
    candidatesEvaluated: int = 0

    spendImpactRaw: float
    baselineSpend: float = 0.0
    totalIncentiveDollars: float = 0.0

    policyCheck: PolicyCheckStatus
    cfPolicyPercentile: float
    effectiveRateFlag: bool
    highRiskCount: int
    mediumRiskCount: int

    flags: List[OptimizerFlag] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    keyMessages: List[str] = Field(default_factory=list)
    providerContexts: List[OptimizerProviderContext] = Field(default_factory=list)

    recommendedAction: RecommendedAction
    status: OptimizerStatus
    constraintsHit: List[str] = Field(default_factory=list)
    explanation: OptimizerExplanation
    keyMetrics: OptimizerKeyMetrics
    marketCF: MarketCFBenchmarks


class ExclusionReasonCount(BaseModel):
    """Count of providers carrying one exclusion reason."""
    model_config = ConfigDict(frozen=True)

    reason: ExclusionReason
    count: int


class ExcludedProvider(BaseModel):
    """Audit row for a provider excluded from the run."""
    model_config = ConfigDict(frozen=True)

    providerId: str
    providerName: str
    specialty: str
    reasons: List[ExclusionReason]


class OptimizerRunSummary(BaseModel):
    """Run-level roll-up across all analyzed specialties."""
    model_config = ConfigDict(frozen=True)

    scenarioId: str
    scenarioName: str
    timestamp: str
    specialtiesAnalyzed: int
    providersIncluded: int
    providersExcluded: int
    topExclusionReasons: List[ExclusionReasonCount] = Field(default_factory=list)
    totalSpendImpactRaw: float
    totalIncentiveDollars: float = 0.0
    countMeetingAlignmentTarget: int
    countCFAbovePolicy: int
    countEffectiveRateAbove90: int
    keyMessages: List[str] = Field(default_factory=list)


class OptimizerAuditExport(BaseModel):
    """Settings echo plus results for audit export."""
    model_config = ConfigDict(frozen=True)

    scenarioId: str
    scenarioName: str
    timestamp: str
    benchmarkBasis: BenchmarkBasis
    marketBasisAssumption: Optional[str] = None
    optimizationObjective: OptimizationObjective
    errorMetric: ErrorMetric
    exclusionRules: DefaultExclusionRules
    outlierMethod: OutlierMethod
    outlierThresholds: Dict[str, float] = Field(default_factory=dict)
    cfPolicyThreshold: float
    cfPolicyEnforcementMode: CFPolicyEnforcementMode
    budgetConstraint: BudgetConstraint
    wRVUGrowthFactorPct: float = 0.0
    results: List[OptimizerSpecialtyResult] = Field(default_factory=list)
    excludedProviders: List[ExcludedProvider] = Field(default_factory=list)
    summary: OptimizerRunSummary


class OptimizerRunResult(BaseModel):
    """Full optimizer run output."""
    model_config = ConfigDict(frozen=True)

    summary: OptimizerRunSummary
    bySpecialty: List[OptimizerSpecialtyResult] = Field(default_factory=list)
    audit: OptimizerAuditExport


class CFSweepRow(BaseModel):
    """Modeled outcomes for a specialty at one fixed CF percentile."""
    model_config = ConfigDict(frozen=True)

    cfPercentile: float
    cfDollars: float
    meanModeledTCCPctile: float
    meanWrvuPctile: float
    gap: float
    totalIncentiveDollars: float = 0.0
    spendImpactRaw: float = 0.0
    includedCount: int = 0


class CFSweepAllResult(BaseModel):
    """Sweep rows keyed by market specialty name."""
    model_config = ConfigDict(frozen=True)

    bySpecialty: Dict[str, List[CFSweepRow]] = Field(default_factory=dict)


# =============================================================================
# Comparison
# =============================================================================


class RunWithResult(BaseModel):
    """A completed optimizer run selected for comparison."""
    id: str
    name: str
    settings: Optional[OptimizerSettings] = None
    result: Optional[OptimizerRunResult] = None
    selectedSpecialties: List[str] = Field(default_factory=list)


class ScenarioInfo(BaseModel):
    """Identity of one compared scenario."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class AssumptionsPerScenario(BaseModel):
    """Key assumptions of one compared run."""
    model_config = ConfigDict(frozen=True)

    scenarioId: str
    scenarioName: str
    wRVUGrowthFactorPct: Optional[float] = None
    optimizationObjective: Optional[OptimizationObjective] = None
    governanceConfig: Optional[GovernanceConfig] = None
    budgetConstraint: Optional[BudgetConstraint] = None
    providersIncluded: int
    providersExcluded: int
    manualExcludeCount: int = 0
    manualIncludeCount: int = 0
    selectedSpecialties: List[str] = Field(default_factory=list)


class ComparisonRollup(BaseModel):
    """Roll-up metrics keyed by scenario id."""
    model_config = ConfigDict(frozen=True)

    totalSpendImpactByScenario: Dict[str, float] = Field(default_factory=dict)
    totalIncentiveByScenario: Dict[str, float] = Field(default_factory=dict)
    meanTCCPercentileByScenario: Dict[str, float] = Field(default_factory=dict)
    meanModeledTCCPercentileByScenario: Dict[str, float] = Field(default_factory=dict)
    meanWRVUPercentileByScenario: Dict[str, float] = Field(default_factory=dict)
    countMeetingAlignmentTargetByScenario: Dict[str, int] = Field(default_factory=dict)
    countCFAbovePolicyByScenario: Dict[str, int] = Field(default_factory=dict)
    countEffectiveRateAbove90ByScenario: Dict[str, int] = Field(default_factory=dict)
    deltaSpendImpactVsBaseline: Dict[str, float] = Field(default_factory=dict)
    deltaSpendImpactPctVsBaseline: Dict[str, Optional[float]] = Field(default_factory=dict)


class ComparisonSpecialtyRow(BaseModel):
    """One specialty across the compared runs (None where absent)."""
    model_config = ConfigDict(frozen=True)

    specialty: str
    scenarioIds: List[str] = Field(
        default_factory=list,
        description="Scenario ids whose run includes this specialty"
    )
    recommendedCFByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    spendImpactByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanTCCPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanModeledTCCPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanWRVUPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    deltaCFPctVsBaseline: Dict[str, Optional[float]] = Field(default_factory=dict)


class ComparisonResult(BaseModel):
    """Full comparison of 2-4 optimizer runs."""
    model_config = ConfigDict(frozen=True)

    scenarios: List[ScenarioInfo]
    baselineScenarioId: str
    assumptionsPerScenario: List[AssumptionsPerScenario]
    rollup: ComparisonRollup
    bySpecialty: List[ComparisonSpecialtyRow]
    narrativeSummary: List[str]


# =============================================================================
# Productivity Targets
# =============================================================================


class SpecialtyTargetRule(BaseModel):
    """Per-specialty target rule; unset fields fall back to the run settings."""
    targetApproach: TargetApproach
    targetPercentile: Optional[float] = Field(default=None, ge=0, le=100)
    manualTargetWRVU: Optional[float] = None


class ProductivityTargetSettings(BaseModel):
    """
    Settings for a group wRVU target run.

    The group target is set at 1.0 cFTE per specialty and scaled by each
    provider's cFTE and ramp factor. Planning incentive treats the ramped
    target as the threshold and pays the planning CF on wRVUs above it.
    """
    targetPercentile: float = Field(default=50.0, ge=0, le=100)
    targetApproach: TargetApproach = TargetApproach.WRVU_PERCENTILE
    manualTargetWRVU: Optional[float] = Field(
        default=None,
        description="Target wRVUs at 1.0 cFTE for the pay_per_wrvu approach"
    )
    specialtyTargetOverrides: Dict[str, SpecialtyTargetRule] = Field(
        default_factory=dict,
        description="Provider specialty -> target rule override"
    )
    rampFactorByProviderId: Dict[str, float] = Field(
        default_factory=dict,
        description="Provider id -> target multiplier (1.0 when absent)"
    )
    planningCFSource: PlanningCFSource = PlanningCFSource.MARKET_PERCENTILE
    planningCFPercentile: float = Field(default=50.0, ge=0, le=100)
    planningCFManual: Optional[float] = None


class StatusBandCounts(BaseModel):
    """Provider counts per percent-to-target band."""
    model_config = ConfigDict(frozen=True)

    below80: int = 0
    eightyTo99: int = 0
    hundredTo119: int = 0
    atOrAbove120: int = 0


class ProductivityTargetProviderResult(BaseModel):
    """One provider evaluated against the specialty's group target."""
    model_config = ConfigDict(frozen=True)

    providerId: str
    providerName: Optional[str] = None
    specialty: str
    cFTE: float
    actualWRVUs: float
    rampFactor: float = 1.0
    targetWRVU: float
    rampedTargetWRVU: float
    varianceWRVU: float
    percentToTarget: float
    status: ProviderTargetStatus
    planningIncentiveDollars: Optional[float] = Field(
        default=None,
        description="None when no positive planning CF or target is available"
    )


class ProductivityTargetSpecialtySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    meanPercentToTarget: float = 0.0
    medianPercentToTarget: float = 0.0
    bandCounts: StatusBandCounts = Field(default_factory=StatusBandCounts)


class ProductivityTargetSpecialtyResult(BaseModel):
    """Group target, provider evaluations and summary for one provider specialty."""
    model_config = ConfigDict(frozen=True)

    specialty: str
    groupTargetWRVU_1cFTE: Optional[float] = None
    targetPercentile: float
    targetApproach: TargetApproach
    planningCF: Optional[float] = None
    providers: List[ProductivityTargetProviderResult] = Field(default_factory=list)
    summary: ProductivityTargetSpecialtySummary
    totalPlanningIncentiveDollars: float = 0.0
    warning: Optional[str] = None


class ProductivityTargetRunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    bySpecialty: List[ProductivityTargetSpecialtyResult] = Field(default_factory=list)


class ProductivityTargetRunRequest(BaseModel):
    """Inputs for a group wRVU target run."""
    providerRows: List[ProviderRecord] = Field(default_factory=list)
    marketRows: List[MarketRow] = Field(default_factory=list)
    settings: ProductivityTargetSettings = Field(default_factory=ProductivityTargetSettings)
    synonymMap: Dict[str, str] = Field(default_factory=dict)


class TargetRunWithResult(BaseModel):
    """A completed target run selected for comparison."""
    id: str
    name: str
    settings: Optional[ProductivityTargetSettings] = None
    result: Optional[ProductivityTargetRunResult] = None


class TargetComparisonRollup(BaseModel):
    """Target run roll-ups keyed by scenario id."""
    model_config = ConfigDict(frozen=True)

    targetPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    targetApproachByScenario: Dict[str, Optional[TargetApproach]] = Field(default_factory=dict)
    totalPlanningIncentiveByScenario: Dict[str, float] = Field(default_factory=dict)
    meanPercentToTargetByScenario: Dict[str, float] = Field(default_factory=dict)
    below80ByScenario: Dict[str, int] = Field(default_factory=dict)
    eightyTo99ByScenario: Dict[str, int] = Field(default_factory=dict)
    hundredTo119ByScenario: Dict[str, int] = Field(default_factory=dict)
    atOrAbove120ByScenario: Dict[str, int] = Field(default_factory=dict)


class TargetComparisonSpecialtyRow(BaseModel):
    """
    One specialty across compared target runs.

    Metric values are None (band counts 0) for runs without the specialty.
    """
    model_config = ConfigDict(frozen=True)

    specialty: str
    scenarioIds: List[str] = Field(default_factory=list)
    groupTargetWRVUByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    planningIncentiveByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanPercentToTargetByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    below80ByScenario: Dict[str, int] = Field(default_factory=dict)
    eightyTo99ByScenario: Dict[str, int] = Field(default_factory=dict)
    hundredTo119ByScenario: Dict[str, int] = Field(default_factory=dict)
    atOrAbove120ByScenario: Dict[str, int] = Field(default_factory=dict)


class TargetComparisonResult(BaseModel):
    """Full comparison of 2-4 target runs."""
    model_config = ConfigDict(frozen=True)

    scenarios: List[ScenarioInfo]
    rollup: TargetComparisonRollup
    bySpecialty: List[TargetComparisonSpecialtyRow]


# =============================================================================
# Imputed vs Market
# =============================================================================


class ImputedVsMarketSettings(BaseModel):
    """
    Baseline TCC components and eligibility floors for the imputed $/wRVU view.

    Providers below minBasisFTE cFTE, or with positive wRVUs per 1.0 cFTE below
    minWRVUPer1p0CFTE, are left out.
    """
    includeQualityPayments: bool = True
    includeWorkRVUIncentive: bool = True
    includeOtherIncentives: bool = False
    additionalTCCLayers: List[TCCLayer] = Field(default_factory=list)
    minBasisFTE: float = Field(default=0.5, ge=0)
    minWRVUPer1p0CFTE: float = Field(default=1000.0, ge=0)


class ImputedVsMarketRow(BaseModel):
    """Median imputed $/wRVU of one specialty against the market $/wRVU curve."""
    model_config = ConfigDict(frozen=True)

    specialty: str
    providerCount: int
    medianImputedDollarPerWRVU: float
    medianCurrentCFUsed: float
    market25: float
    market50: float
    market75: float
    market90: float
    yourPercentile: float
    yourPercentileBelowRange: bool = False
    yourPercentileAboveRange: bool = False
    avgTCCPercentile: float
    avgWRVUPercentile: float
    marketCF25: float
    marketCF50: float
    marketCF75: float
    marketCF90: float


class ImputedVsMarketProviderDetail(BaseModel):
    """Per-provider TCC build-up and percentiles behind an ImputedVsMarketRow."""
    model_config = ConfigDict(frozen=True)

    providerId: str
    providerName: str
    division: str
    providerType: str
    cFTE: float
    totalWRVUs: float
    wRVU_1p0: float
    baselineTCC: float
    currentCFUsed: float
    imputedDollarPerWRVU: float
    clinicalBase: float
    quality: float
    workRVUIncentive: float
    otherIncentives: float
    additionalTCC: float
    tccPercentile: float
    tccPercentileBelowRange: bool = False
    tccPercentileAboveRange: bool = False
    wrvuPercentile: float
    wrvuPercentileBelowRange: bool = False
    wrvuPercentileAboveRange: bool = False
    marketTCC_25: float
    marketTCC_50: float
    marketTCC_75: float
    marketTCC_90: float
    marketWRVU_25: float
    marketWRVU_50: float
    marketWRVU_75: float
    marketWRVU_90: float


class ImputedVsMarketRequest(BaseModel):
    providerRows: List[ProviderRecord] = Field(default_factory=list)
    marketRows: List[MarketRow] = Field(default_factory=list)
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    settings: ImputedVsMarketSettings = Field(default_factory=ImputedVsMarketSettings)


class ImputedProviderDetailRequest(ImputedVsMarketRequest):
    """Drill-down request: the specialty is a row's display name."""
    specialty: str


# =============================================================================
# Worker Protocol Messages
# =============================================================================


class OptimizerRunRequest(BaseModel):
    """Request accepted by the optimizer worker: {type: 'run', ...payload}."""
    type: Literal['run'] = 'run'
    providerRows: List[ProviderRecord] = Field(default_factory=list)
    marketRows: List[MarketRow] = Field(default_factory=list)
    settings: OptimizerSettings = Field(default_factory=OptimizerSettings)
    scenarioId: str = ""
    scenarioName: str = ""
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    specialtyFilter: Optional[str] = None


class BatchRunRequest(BaseModel):
    """Request accepted by the batch worker."""
    type: Literal['run'] = 'run'
    providers: List[ProviderRecord] = Field(default_factory=list)
    marketRows: List[MarketRow] = Field(default_factory=list)
    scenarios: List[BatchScenario] = Field(default_factory=list)
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    chunkSize: Optional[int] = Field(default=None, ge=1)


class WorkerProgressMessage(BaseModel):
    """Optimizer progress: specialty N of M."""
    model_config = ConfigDict(frozen=True)

    type: Literal['progress'] = 'progress'
    specialtyIndex: int
    totalSpecialties: int
    specialtyName: str


class BatchProgressMessage(BaseModel):
    """Batch progress: rows processed of total."""
    model_config = ConfigDict(frozen=True)

    type: Literal['progress'] = 'progress'
    processed: int
    total: int
    elapsedMs: int


class WorkerDoneMessage(BaseModel):
    """Terminal success message carrying the full optimizer result."""
    model_config = ConfigDict(frozen=True)

    type: Literal['done'] = 'done'
    result: OptimizerRunResult


class BatchDoneMessage(BaseModel):
    """Terminal success message carrying the full batch result."""
    model_config = ConfigDict(frozen=True)

    type: Literal['done'] = 'done'
    result: BatchResults


class WorkerErrorMessage(BaseModel):
    """Terminal failure message; no partial results accompany it."""
    model_config = ConfigDict(frozen=True)

    type: Literal['error'] = 'error'
    message: str


OptimizerWorkerMessage = Union[WorkerProgressMessage, WorkerDoneMessage, WorkerErrorMessage]
BatchWorkerMessage = Union[BatchProgressMessage, BatchDoneMessage, WorkerErrorMessage]
