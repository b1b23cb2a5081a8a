from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "SplitStats"
    LOG_LEVEL: str = "INFO"

    # Monte Carlo draws: accuracy vs. latency
    BAYESIAN_SIMULATIONS: int = 100_000
    EXPECTED_LOSS_SIMULATIONS: int = 10_000

    # Memoization capacities per function family
    NORMAL_CDF_CACHE_SIZE: int = 200
    CRITICAL_Z_CACHE_SIZE: int = 50
    P_VALUE_CACHE_SIZE: int = 200
    COMPARISON_CACHE_SIZE: int = 100
    CURVE_POINTS_CACHE_SIZE: int = 50

    # Background worker result cache
    WORKER_RESULT_CACHE_SIZE: int = 50

    model_config = {"env_prefix": "SPLITSTATS_", "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
