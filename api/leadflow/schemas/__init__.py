from leadflow.schemas.experiments import ExperimentCreate, VariantCreate

__all__ = ["ExperimentCreate", "VariantCreate"]
