'''
CF Modeling Engine Test Suite

Test Modules:
-------------
- test_percentile_curve.py: Anchor exactness, round trip, extrapolation flags
- test_specialty_match.py: Exact / synonym / missing resolution, suggestions
- test_outliers.py: IQR and MAD-z detection
- test_scenario.py: Scenario calculator worked examples and governance flags
- test_batch.py: Batch ordering, missing rows, risk levels, progress
- test_governance.py: Action, status, policy check and explanation rules
- test_optimizer.py: Eligibility, outliers, search, caps, budget, determinism
- test_comparison.py: Roll-ups, specialty table, narrative, validation
- test_exports.py: pandas export frames
- test_jobs.py: Worker message protocol, job registry and partitioned batches
- test_api.py: HTTP contract via FastAPI TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest cfengine/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

# Package is empty by design - all tests are in individual modules
# This file enables pytest discovery of the tests directory

__all__ = []
