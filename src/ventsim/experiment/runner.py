"""Single and batch trial runners.

Each trial draws one cohort and evaluates every policy against that same
cohort. Trial ``i`` owns random streams derived only from (root seed, i),
so a run is bit-reproducible whether trials execute sequentially or in a
process pool, and whatever order the policies are listed in.
"""

import logging
import os
import time
import zlib
from concurrent.futures import ProcessPoolExecutor
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ventsim.core.calibration import (
    AgeOutcomeTable,
    SeverityOutcomeTable,
    default_age_table,
    default_severity_table,
)
from ventsim.core.scenario import CohortParams, Scenario, validate_run
from ventsim.model.cohort import generate_cohort
from ventsim.model.patient import Cohort
from ventsim.model.policies import Allocation, AllocationPolicy, resolve_policies
from ventsim.results.outcomes import PolicyComparisonReport, TrialResult, summarize

logger = logging.getLogger(__name__)

PolicySpec = Union[str, AllocationPolicy]


def cohort_rng(root_seed: int, trial: int) -> np.random.Generator:
    """Generator for trial ``trial``'s cohort draw."""
    return np.random.default_rng(np.random.SeedSequence(root_seed, spawn_key=(trial, 0)))


def lottery_rng(root_seed: int, trial: int, policy_name: str) -> np.random.Generator:
    """Generator for one policy's lottery in trial ``trial``.

    Keyed by policy name so a policy's draws do not depend on which other
    policies run alongside it.
    """
    stream = 1 + zlib.crc32(policy_name.encode("utf-8"))
    return np.random.default_rng(np.random.SeedSequence(root_seed, spawn_key=(trial, stream)))


def run_single_trial(
    age_table: AgeOutcomeTable,
    severity_table: SeverityOutcomeTable,
    n_patients: int,
    n_resources: int,
    policies: Optional[Sequence[PolicySpec]] = None,
    params: Optional[CohortParams] = None,
    seed: int = 42,
    trial: int = 0,
) -> Tuple[Cohort, Dict[str, Allocation]]:
    """Generate one cohort and allocate under every policy.

    Uses the same streams as trial ``trial`` of run_trials with the same
    seed, so a single trial can be inspected in full detail.

    Returns:
        The cohort and a mapping from policy name to its Allocation.
    """
    validate_run(n_patients, n_resources, seed=seed)
    resolved = resolve_policies(policies)
    params = params if params is not None else CohortParams()

    cohort = generate_cohort(
        age_table, severity_table, n_patients, params=params, rng=cohort_rng(seed, trial)
    )
    allocations = {
        policy.name: policy.allocate(
            cohort, n_resources, rng=lottery_rng(seed, trial, policy.name)
        )
        for policy in resolved
    }
    return cohort, allocations


def _evaluate_trial(
    trial: int,
    age_table: AgeOutcomeTable,
    severity_table: SeverityOutcomeTable,
    n_patients: int,
    n_resources: int,
    policies: Sequence[AllocationPolicy],
    params: CohortParams,
    seed: int,
) -> List[TrialResult]:
    """One trial's results, one per policy (module level so it pickles)."""
    cohort, allocations = run_single_trial(
        age_table, severity_table, n_patients, n_resources,
        policies=policies, params=params, seed=seed, trial=trial,
    )
    return [summarize(cohort, allocations[p.name], trial=trial) for p in policies]


def run_trials(
    age_table: AgeOutcomeTable,
    severity_table: SeverityOutcomeTable,
    n_patients: int,
    n_resources: int,
    policies: Optional[Sequence[PolicySpec]] = None,
    n_trials: int = 100,
    params: Optional[CohortParams] = None,
    seed: Optional[int] = None,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> PolicyComparisonReport:
    """Run n_trials trials, evaluating every policy on each trial's cohort.

    Args:
        age_table: Age bands and their ICU admission weights.
        severity_table: Severity bucket mortality rates.
        n_patients: Cohort size N.
        n_resources: Ventilators per trial K.
        policies: Policy names or instances. None selects all registered.
        n_trials: Number of independent trials.
        params: Calibration constants for cohort generation.
        seed: Root seed. None draws fresh entropy, recorded on the report.
        parallel: Run trials in a process pool.
        max_workers: Pool size when parallel (defaults to CPU count).
        progress_callback: Optional callback(completed_trials, n_trials).

    Returns:
        PolicyComparisonReport with one TrialResult per policy per trial.

    Raises:
        InvalidConfiguration: Raised before any trial runs if N, K,
            n_trials, the policy set or the calibration are unusable.
    """
    validate_run(n_patients, n_resources, n_trials, seed)
    resolved = resolve_policies(policies)
    params = params if params is not None else CohortParams()
    if seed is None:
        seed = int(np.random.SeedSequence().entropy)

    logger.info(
        f"Running {n_trials} trials: N={n_patients}, K={n_resources}, "
        f"policies={[p.name for p in resolved]}, seed={seed}, parallel={parallel}"
    )
    start = time.perf_counter()

    worker = partial(
        _evaluate_trial,
        age_table=age_table,
        severity_table=severity_table,
        n_patients=n_patients,
        n_resources=n_resources,
        policies=resolved,
        params=params,
        seed=seed,
    )
    # Generate trial 0 up front so calibration errors surface before any pool starts
    first = worker(0)

    report = PolicyComparisonReport(
        results={p.name: [] for p in resolved},
        random_seed=seed,
        n_patients=n_patients,
        n_resources=n_resources,
    )

    def collect(trial: int, results: List[TrialResult]) -> None:
        report.extend(results)
        logger.debug(
            f"Trial {trial + 1}/{n_trials}: "
            + ", ".join(f"{r.policy}={r.lives_saved}" for r in results)
        )
        if progress_callback is not None:
            progress_callback(trial + 1, n_trials)

    collect(0, first)
    remaining = range(1, n_trials)

    if parallel and n_trials > 1:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            chunksize = max(1, len(remaining) // (4 * (max_workers or os.cpu_count() or 1)))
            for trial, results in zip(remaining, executor.map(worker, remaining, chunksize=chunksize)):
                collect(trial, results)
    else:
        for trial in remaining:
            collect(trial, worker(trial))

    logger.info(f"Completed {n_trials} trials in {time.perf_counter() - start:.2f}s")
    return report


def multiple_trials(
    scenario: Scenario,
    age_table: Optional[AgeOutcomeTable] = None,
    severity_table: Optional[SeverityOutcomeTable] = None,
    policies: Optional[Sequence[PolicySpec]] = None,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> PolicyComparisonReport:
    """Run a scenario's trials.

    Args:
        scenario: Population size, ventilators, policy names, trial count,
            seed and calibration constants.
        age_table: Defaults to the CDC worst-case age table.
        severity_table: Defaults to the SOFA mortality table.
        policies: Policy instances overriding scenario.policies (e.g. to
            pass a configured TieredLotteryPolicy).
        parallel: Run trials in a process pool.
        max_workers: Pool size when parallel.
        progress_callback: Optional callback(completed_trials, n_trials).

    Returns:
        PolicyComparisonReport for the scenario.
    """
    return run_trials(
        age_table if age_table is not None else default_age_table(),
        severity_table if severity_table is not None else default_severity_table(),
        n_patients=scenario.n_patients,
        n_resources=scenario.n_resources,
        policies=policies if policies is not None else scenario.policies,
        n_trials=scenario.n_trials,
        params=scenario.params,
        seed=scenario.random_seed,
        parallel=parallel,
        max_workers=max_workers,
        progress_callback=progress_callback,
    )


def run_policy_comparison(
    scenarios: Dict[str, Scenario],
    **kwargs,
) -> Dict[str, PolicyComparisonReport]:
    """Run several scenarios (e.g. different scarcity levels).

    Returns:
        Mapping from scenario name to its report.
    """
    return {name: multiple_trials(scenario, **kwargs) for name, scenario in scenarios.items()}
