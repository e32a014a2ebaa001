"""Model architectures and the model_type registry."""

from typing import Any, Dict

from .base_model import BaseModel
from .polynomial import PolynomialRegressor, Polynomial3, LegendrePolynomial3, LegendrePolynomial3Model, DynamicNet
from .m5 import M5


MODEL_REGISTRY = {
    'polynomial': PolynomialRegressor,
    'polynomial3': Polynomial3,
    'legendre': LegendrePolynomial3Model,
    'dynamic': DynamicNet,
    'm5': M5,
}

# Models that consume bare x rather than the stacked powers of x.
RAW_INPUT_MODELS = ('polynomial3', 'legendre', 'dynamic')


def create_model(model_config: Dict[str, Any]) -> BaseModel:
    """Instantiate a model from its config's ``model_type``."""
    model_type = model_config.get('model_type')
    if model_type not in MODEL_REGISTRY:
        raise ValueError(f"Unknown model type: {model_type}. Available: {sorted(MODEL_REGISTRY)}")
    return MODEL_REGISTRY[model_type](model_config)


__all__ = [
    "BaseModel",
    "PolynomialRegressor",
    "Polynomial3",
    "LegendrePolynomial3",
    "LegendrePolynomial3Model",
    "DynamicNet",
    "M5",
    "MODEL_REGISTRY",
    "RAW_INPUT_MODELS",
    "create_model",
]
