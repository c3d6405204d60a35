from leadflow.scoring.config import ScoringAlgorithmConfig, Thresholds, validate_algorithm_config
from leadflow.scoring.features import FEATURE_NAMES, ActivityRecord, LeadProfile, extract_features
from leadflow.scoring.model import apply_algorithm, categorize, normalize_feature_value

__all__ = [
    "ScoringAlgorithmConfig",
    "Thresholds",
    "validate_algorithm_config",
    "FEATURE_NAMES",
    "ActivityRecord",
    "LeadProfile",
    "extract_features",
    "apply_algorithm",
    "categorize",
    "normalize_feature_value",
]
