from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
FIGURES_DIR = OUTPUTS_DIR / "figures"
METRICS_DIR = OUTPUTS_DIR / "metrics"
TABLES_DIR = OUTPUTS_DIR / "tables"
MODELS_DIR = OUTPUTS_DIR / "models"
LOGS_DIR = OUTPUTS_DIR / "logs"
SPLITS_DIR = OUTPUTS_DIR / "splits"

# Site-level table: one row per site, biodiversity metrics + environmental predictors.
DEFAULT_DATA_FILE = RAW_DIR / "biodiversity_sites.csv"
# Same predictors under a future climate / land-use scenario.
DEFAULT_FUTURE_FILE = RAW_DIR / "predictors_future.csv"

# Experiment identifier (used in outputs/ metadata and run ids)
EXPERIMENT_NAMESPACE = "super_learner_v1"

# Frozen validation protocol
TEST_SIZE = 0.2
CV_FOLDS = 10
RANDOM_SEED = 2026
# Quantile bins of the response used to stratify the holdout split (0 disables).
STRATIFY_BINS = 5
# A response needs at least this many observed rows to be modelled.
MIN_ROWS = 30

# Learner library (names resolved in biodiv_ensemble.models.library)
DEFAULT_LEARNERS = ["mean", "lm", "glmnet", "rf", "hgb", "svr"]
AVAILABLE_LEARNERS = ["mean", "lm", "ridge", "glmnet", "svr", "knn", "rf", "extratrees", "gbm", "hgb"]
RF_N_ESTIMATORS = 500

# Variable importance (permutation on the held-out test set)
IMPORTANCE_REPEATS = 10
IMPORTANCE_SCORING = "neg_root_mean_squared_error"

# Test-set bootstrap
N_BOOT = 1000
CI_ALPHA = 0.05
