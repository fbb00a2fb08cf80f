"""
Engine Services Module

Business logic for the compensation modeling engine. Every service is a
stateless, deterministic function of its inputs; ambient constants arrive as
an explicit EngineConfig.

Services:
- percentile_curve: Four-anchor market curve interpolation / inference
- specialty_match: Provider specialty -> market row resolution and mapping suggestions
- outliers: IQR and MAD-z outlier detection
- compensation: Shared pay, FTE, wRVU, threshold and PSQ math
- scenario: Per-provider scenario calculator
- batch: Providers x scenarios batch runner
- governance: Action, status, policy check and explanation rules
- optimizer: Specialty-level CF optimizer and CF sweep
- comparison: Side-by-side comparison of completed optimizer runs
- productivity_target: Group wRVU targets and provider percent to target
- target_comparison: Side-by-side comparison of completed target runs
- imputed_market: Imputed $/wRVU by specialty vs the market curve
- exports: pandas DataFrame exports of engine results

All services are consumed by the worker layer (cfengine/jobs/) and the API
layer (cfengine/api/).
"""

# =============================================================================
# Percentile Curve Exports
# Market curve interpolation (percentile -> value) and inference
# (value -> percentile) with off-scale extrapolation flags
# =============================================================================

from cfengine.services.percentile_curve import (
    ANCHOR_PERCENTILES,
    PercentileResult,
    interpolate_percentile,
    infer_percentile,
    interpolate_market,
    infer_market,
)

# =============================================================================
# Specialty Matching Exports
# Exact / synonym / missing market resolution and fuzzy mapping suggestions
# =============================================================================

from cfengine.services.specialty_match import (
    SpecialtySuggestion,
    normalize_specialty_key,
    is_market_row_valid,
    match_market_row,
    match_specialty,
    specialty_similarity,
    suggest_specialty_mappings,
)

# =============================================================================
# Outlier Detection Exports
# =============================================================================

from cfengine.services.outliers import (
    detect_outliers,
    detect_outliers_iqr,
    detect_outliers_mad,
)

# =============================================================================
# Scenario Calculator Exports
# Current vs modeled compensation, percentiles, gaps and governance flags
# =============================================================================

from cfengine.services.scenario import (
    compute_scenario,
    resolve_modeled_cf,
    resolve_modeled_threshold,
    evaluate_governance_flags,
)

# =============================================================================
# Batch Runner Exports
# =============================================================================

from cfengine.services.batch import (
    DEFAULT_SCENARIO,
    build_provider_rows,
    derive_risk_level,
    resolve_scenarios,
    run_batch,
)

# =============================================================================
# CF Optimizer Exports
# Eligibility, outlier exclusion, candidate search, governance caps, budget
# constraint and classification per specialty; fixed-percentile CF sweep
# =============================================================================

from cfengine.services.optimizer import (
    build_provider_contexts,
    compute_optimizer_tcc,
    optimize_specialty,
    run_optimizer,
    run_cf_sweep,
)

from cfengine.services.governance import (
    build_explanation,
    determine_action,
    evaluate_status,
    policy_check,
)

# =============================================================================
# Comparison Exports
# =============================================================================

from cfengine.services.comparison import (
    compare_optimizer_runs,
)

# =============================================================================
# Productivity Target Exports
# =============================================================================

from cfengine.services.productivity_target import (
    provider_target_status,
    group_target_wrvu,
    run_productivity_targets,
)

from cfengine.services.target_comparison import (
    compare_target_runs,
)

# =============================================================================
# Imputed vs Market Exports
# =============================================================================

from cfengine.services.imputed_market import (
    imputed_vs_market_by_specialty,
    imputed_vs_market_provider_detail,
)

# =============================================================================
# Export Frames
# =============================================================================

from cfengine.services.exports import (
    batch_results_to_frame,
    optimizer_results_to_frame,
    excluded_providers_to_frame,
    cf_sweep_to_frame,
    productivity_targets_to_frame,
    imputed_vs_market_to_frame,
)


__all__ = [
    # Percentile curve
    'ANCHOR_PERCENTILES',
    'PercentileResult',
    'interpolate_percentile',
    'infer_percentile',
    'interpolate_market',
    'infer_market',
    # Specialty matching
    'SpecialtySuggestion',
    'normalize_specialty_key',
    'is_market_row_valid',
    'match_market_row',
    'match_specialty',
    'specialty_similarity',
    'suggest_specialty_mappings',
    # Outliers
    'detect_outliers',
    'detect_outliers_iqr',
    'detect_outliers_mad',
    # Scenario
    'compute_scenario',
    'resolve_modeled_cf',
    'resolve_modeled_threshold',
    'evaluate_governance_flags',
    # Batch
    'DEFAULT_SCENARIO',
    'build_provider_rows',
    'derive_risk_level',
    'resolve_scenarios',
    'run_batch',
    # Optimizer
    'build_provider_contexts',
    'compute_optimizer_tcc',
    'optimize_specialty',
    'run_optimizer',
    'run_cf_sweep',
    # Governance
    'build_explanation',
    'determine_action',
    'evaluate_status',
    'policy_check',
    # Comparison
    'compare_optimizer_runs',
    # Productivity targets
    'provider_target_status',
    'group_target_wrvu',
    'run_productivity_targets',
    'compare_target_runs',
    # Imputed vs market
    'imputed_vs_market_by_specialty',
    'imputed_vs_market_provider_detail',
    # Exports
    'batch_results_to_frame',
    'optimizer_results_to_frame',
    'excluded_providers_to_frame',
    'cf_sweep_to_frame',
    'productivity_targets_to_frame',
    'imputed_vs_market_to_frame',
]
