"""
Package initialization file for engine models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from cfengine.models directly.

Usage:
    from cfengine.models import (
        MarketRow,
        ProviderRecord,
        ScenarioInputs,
        OptimizerSettings,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from cfengine.models.enums import (
    # Scenario inputs
    CFSource,
    PSQBasis,
    ThresholdMethod,
    ProductivityModel,
    # Matching and batch
    MatchStatus,
    RiskLevel,
    # Optimizer settings
    BenchmarkBasis,
    ObjectiveKind,
    ErrorMetric,
    OutlierMethod,
    BudgetConstraintKind,
    CFPolicyEnforcementMode,
    QualityPaymentsSource,
    TCCLayerType,
    # Optimizer results
    ExclusionReason,
    OptimizerFlag,
    PolicyCheckStatus,
    RecommendedAction,
    OptimizerStatus,
    # Productivity targets
    TargetApproach,
    PlanningCFSource,
    ProviderTargetStatus,
    JobStatus,
)

# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from cfengine.models.schemas import (
    # Inputs
    MarketRow,
    BasePayComponent,
    ProviderRecord,
    ScenarioInputs,
    # Scenario results
    GovernanceFlags,
    RiskAssessment,
    ScenarioResult,
    MatchResult,
    # Batch
    BatchScenario,
    BatchRowResult,
    BatchResults,
    # Optimizer settings
    OptimizationObjective,
    OutlierParams,
    CFBounds,
    BudgetConstraint,
    DefaultExclusionRules,
    CFPolicySettings,
    GovernanceConfig,
    TCCLayer,
    OptimizerSettings,
    # Optimizer results
    OptimizerProviderContext,
    OptimizerKeyMetrics,
    OptimizerExplanation,
    MarketCFBenchmarks,
    OptimizerSpecialtyResult,
    ExclusionReasonCount,
    ExcludedProvider,
    OptimizerRunSummary,
    OptimizerAuditExport,
    OptimizerRunResult,
    CFSweepRow,
    CFSweepAllResult,
    # Comparison
    RunWithResult,
    ScenarioInfo,
    AssumptionsPerScenario,
    ComparisonRollup,
    ComparisonSpecialtyRow,
    ComparisonResult,
    # Productivity targets
    SpecialtyTargetRule,
    ProductivityTargetSettings,
    StatusBandCounts,
    ProductivityTargetProviderResult,
    ProductivityTargetSpecialtySummary,
    ProductivityTargetSpecialtyResult,
    ProductivityTargetRunResult,
    ProductivityTargetRunRequest,
    TargetRunWithResult,
    TargetComparisonRollup,
    TargetComparisonSpecialtyRow,
    TargetComparisonResult,
    # Imputed vs market
    ImputedVsMarketSettings,
    ImputedVsMarketRow,
    ImputedVsMarketProviderDetail,
    ImputedVsMarketRequest,
    ImputedProviderDetailRequest,
    # Worker protocol
    OptimizerRunRequest,
    BatchRunRequest,
    WorkerProgressMessage,
    BatchProgressMessage,
    WorkerDoneMessage,
    BatchDoneMessage,
    WorkerErrorMessage,
    OptimizerWorkerMessage,
    BatchWorkerMessage,
)

__all__ = [
    # Enums
    'CFSource', 'PSQBasis', 'ThresholdMethod', 'ProductivityModel',
    'MatchStatus', 'RiskLevel',
    'BenchmarkBasis', 'ObjectiveKind', 'ErrorMetric', 'OutlierMethod',
    'BudgetConstraintKind', 'CFPolicyEnforcementMode', 'QualityPaymentsSource',
    'TCCLayerType',
    'ExclusionReason', 'OptimizerFlag', 'PolicyCheckStatus',
    'RecommendedAction', 'OptimizerStatus',
    'TargetApproach', 'PlanningCFSource', 'ProviderTargetStatus', 'JobStatus',
    # Inputs
    'MarketRow', 'BasePayComponent', 'ProviderRecord', 'ScenarioInputs',
    # Scenario results
    'GovernanceFlags', 'RiskAssessment', 'ScenarioResult', 'MatchResult',
    # Batch
    'BatchScenario', 'BatchRowResult', 'BatchResults',
    # Optimizer settings
    'OptimizationObjective', 'OutlierParams', 'CFBounds', 'BudgetConstraint',
    'DefaultExclusionRules', 'CFPolicySettings', 'GovernanceConfig', 'TCCLayer',
    'OptimizerSettings',
    # Optimizer results
    'OptimizerProviderContext', 'OptimizerKeyMetrics', 'OptimizerExplanation',
    'MarketCFBenchmarks', 'OptimizerSpecialtyResult', 'ExclusionReasonCount',
    'ExcludedProvider', 'OptimizerRunSummary', 'OptimizerAuditExport',
    'OptimizerRunResult', 'CFSweepRow', 'CFSweepAllResult',
    # Comparison
    'RunWithResult', 'ScenarioInfo', 'AssumptionsPerScenario',
    'ComparisonRollup', 'ComparisonSpecialtyRow', 'ComparisonResult',
    # Productivity targets
    'SpecialtyTargetRule', 'ProductivityTargetSettings', 'StatusBandCounts',
    'ProductivityTargetProviderResult', 'ProductivityTargetSpecialtySummary',
    'ProductivityTargetSpecialtyResult', 'ProductivityTargetRunResult',
    'ProductivityTargetRunRequest', 'TargetRunWithResult', 'TargetComparisonRollup',
    'TargetComparisonSpecialtyRow', 'TargetComparisonResult',
    # Imputed vs market
    'ImputedVsMarketSettings', 'ImputedVsMarketRow', 'ImputedVsMarketProviderDetail',
    'ImputedVsMarketRequest', 'ImputedProviderDetailRequest',
    # Worker protocol
    'OptimizerRunRequest', 'BatchRunRequest', 'WorkerProgressMessage',
    'BatchProgressMessage', 'WorkerDoneMessage', 'BatchDoneMessage',
    'WorkerErrorMessage', 'OptimizerWorkerMessage', 'BatchWorkerMessage',
]
