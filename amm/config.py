"""
Engine settings. Read once from the environment at import.

    AMM_DECIMAL_PRECISION      significant digits for exp/ln (default 40)
    AMM_SOLVER_PRECISION       bisection stop width, in shares (default 1e-9)
    AMM_SOLVER_MAX_ITERATIONS  expansion + bisection steps (default 512)
    AMM_SATURATION_PRICE       LS-LMSR max-loss price ceiling (default 0.999)
    AMM_LOG_LEVEL              CLI log level (default WARNING)
"""

import os
from decimal import Decimal


DECIMAL_PRECISION = int(os.environ.get("AMM_DECIMAL_PRECISION", "40"))
SOLVER_PRECISION = Decimal(os.environ.get("AMM_SOLVER_PRECISION", "1e-9"))
SOLVER_MAX_ITERATIONS = int(os.environ.get("AMM_SOLVER_MAX_ITERATIONS", "512"))
SATURATION_PRICE = Decimal(os.environ.get("AMM_SATURATION_PRICE", "0.999"))
LOG_LEVEL = os.environ.get("AMM_LOG_LEVEL", "WARNING")
