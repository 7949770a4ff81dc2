from .momentum_pipeline import (
    MomentumConfig,
    benchmark_comparison,
    collapse_factors_annual,
    load_ff3_monthly,
    load_security_returns,
    market_annual_returns,
    run_analysis,
    save_outputs,
    setup_logging,
)

__all__ = [
    "MomentumConfig", "setup_logging",
    "load_security_returns", "load_ff3_monthly",
    "collapse_factors_annual", "market_annual_returns",
    "benchmark_comparison", "run_analysis", "save_outputs",
]
