import os
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Load environment variables from .env file if it exists
load_dotenv()

# Paths
PROJ_ROOT = Path(__file__).resolve().parents[1]
logger.debug(f"PROJ_ROOT path is: {PROJ_ROOT}")

DATA_DIR = Path(os.environ.get("SMC_REDIST_DATA_DIR", PROJ_ROOT / "data"))
GRAPHS_DIR = DATA_DIR / "graphs"
ENSEMBLES_DIR = DATA_DIR / "ensembles"

# Sampling defaults
DEFAULT_POPCONS = 0.01
DEFAULT_COMPACTNESS = 1.0
DEFAULT_ADAPT_K_THRESH = 0.95
DEFAULT_POP_COL = "population"
DEFAULT_SEED = int(os.environ.get("SMC_REDIST_SEED", "20240101"))

# Importance weights
DEFAULT_TRUNC_SCALE = 0.01
DEFAULT_TRUNC_POWER = 0.4
EFFICIENCY_WARN_RATIO = 0.05

# Constraint defaults
DEFAULT_TGT_VRA_MIN = 0.55
DEFAULT_TGT_VRA_OTHER = 0.25
DEFAULT_POW_VRA = 1.5

# Output
FLUSH_EVERY_PLANS = 25

# If tqdm is installed, configure loguru with tqdm.write
# https://github.com/Delgan/loguru/issues/135
try:
    from tqdm import tqdm

    logger.remove(0)
    logger.add(lambda msg: tqdm.write(msg, end=""), colorize=True)
except (ModuleNotFoundError, ValueError):
    pass
