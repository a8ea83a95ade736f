from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
TABLES_DIR = OUTPUTS_DIR / "tables"
LOGS_DIR = OUTPUTS_DIR / "logs"

# 2017 NHTS public-use files (https://nhts.ornl.gov/), CSV release.
HOUSEHOLD_FILE = RAW_DIR / "hhpub.csv"
PERSON_FILE = RAW_DIR / "perpub.csv"
PANEL_FILE = PROCESSED_DIR / "nhts_2017_household_panel.parquet"

# Dataset and experiment identifiers (used in outputs/ metadata)
DATASET_VERSION = "nhts_2017_vehavail_v1"
EXPERIMENT_NAMESPACE = "mnl_nested_v1"

# Source-column names
HOUSEHOLD_ID_COL = "HOUSEID"

HOUSEHOLD_COLUMNS = [
    "HOUSEID",
    "HHSIZE",
    "HHVEHCNT",
    "HOMEOWN",
    "URBRUR",
    "HHFAMINC",
    "WRKCOUNT",
    "DRVRCNT",
    "WTHHFIN",
]
PERSON_COLUMNS = ["HOUSEID", "PERSONID", "R_AGE", "DRIVER", "WORKER", "EDUC"]

# -1 appropriate skip, -7 refused, -8 don't know, -9 not ascertained
NHTS_MISSING_CODES = (-1, -7, -8, -9)

TENURE_CODES = {1: "own", 2: "rent", 97: "other"}
URBAN_CODES = {1: "urban", 2: "rural"}
INCOME_BRACKETS = {
    "lt35k": (1, 2, 3, 4),
    "35k_100k": (5, 6, 7),
    "gt100k": (8, 9, 10, 11),
}
YES_NO_CODES = {1: 1, 2: 0}
BACHELOR_EDUC_CODES = (4, 5)
ADULT_AGE = 18
SENIOR_AGE = 65

# Analysis-column names in the processed parquet
ID_COL = "houseid"
OUTCOME_COL = "veh_avail"
SUFFICIENCY_COL = "car_sufficiency"
WEIGHT_COL = "weight"

OUTCOME_LEVELS = {
    OUTCOME_COL: ["zero", "one", "two", "three_plus"],
    SUFFICIENCY_COL: ["zero", "insufficient", "sufficient"],
}
OUTCOME_REFERENCE = {OUTCOME_COL: "zero", SUFFICIENCY_COL: "zero"}

# First level is the treatment-coding baseline in every formula.
TENURE_LEVELS = ["rent", "own"]
URBAN_LEVELS = ["urban", "rural"]
INCOME_LEVELS = ["lt35k", "35k_100k", "gt100k"]

PANEL_COLUMNS = [
    ID_COL,
    OUTCOME_COL,
    SUFFICIENCY_COL,
    "tenure",
    "urban",
    "income_cat",
    "hhsize",
    "n_vehicles",
    "n_drivers",
    "n_workers",
    "n_children",
    "n_seniors",
    "has_bachelor",
    "weight",
]

# Nested specifications, each one adds terms to the previous.
MODEL_SPECS = [
    ("m0_null", []),
    ("m1_tenure", ["tenure"]),
    ("m2_tenure_urban", ["tenure", "urban"]),
    ("m3_tenure_x_urban", ["tenure", "urban", "tenure:urban"]),
    (
        "m4_full",
        [
            "tenure",
            "urban",
            "tenure:urban",
            "income_cat",
            "n_drivers",
            "n_workers",
            "n_children",
            "has_bachelor",
        ],
    ),
]

# Frozen validation protocol
TEST_SIZE = 0.2
RANDOM_SEEDS = [2017, 2018, 2019]
N_BOOT = 500
MIN_GROUP_N = 100

# MNLogit optimizer settings
MNL_METHOD = "newton"
MNL_MAX_ITER = 100
