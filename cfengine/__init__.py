"""
CF Modeling Engine Package.

Physician compensation modeling: percentile interpolation against market
surveys, specialty matching, single-scenario compensation math, batch runs
across providers x scenarios, the conversion factor (CF) optimizer,
side-by-side comparison of optimizer runs, group wRVU productivity targets,
and imputed $/wRVU against the market.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration and dependencies
    - models: Pydantic schemas and enums
    - services: Calculation engine (pure functions over immutable inputs)
    - jobs: Worker boundary for long-running batch and optimizer runs
"""

__version__ = "1.0.0"
