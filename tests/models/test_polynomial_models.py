"""
Tests for the four sin(x) polynomial models.
"""

import pytest
import torch

from recipes.data.polynomial import polynomial_features
from recipes.models import MODEL_REGISTRY, create_model
from recipes.models.polynomial import (
    DynamicNet,
    LegendrePolynomial3,
    LegendrePolynomial3Model,
    PolynomialRegressor,
    format_polynomial,
)


class TestRegistry:
    @pytest.mark.parametrize("model_type", sorted(MODEL_REGISTRY))
    def test_create_model_by_type(self, model_type: str) -> None:
        model = create_model({"model_type": model_type})
        assert isinstance(model, MODEL_REGISTRY[model_type])
        assert model.model_type == model_type

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown model type"):
            create_model({"model_type": "transformer"})


class TestPolynomialRegressor:
    def test_output_matches_target_shape(self) -> None:
        model = PolynomialRegressor({"model_type": "polynomial", "degree": 3})
        x = torch.linspace(-1, 1, 7)
        assert model(polynomial_features(x, 3)).shape == (7,)

    def test_rejects_wrong_feature_count(self) -> None:
        model = PolynomialRegressor({"model_type": "polynomial", "degree": 3})
        with pytest.raises(ValueError):
            model(torch.zeros(4, 2))

    def test_coefficients_evaluate_the_model(self) -> None:
        model = PolynomialRegressor({"model_type": "polynomial", "degree": 3})
        a, b, c, d = model.coefficients()
        x = torch.tensor([0.5, -2.0])

        expected = a + b * x + c * x ** 2 + d * x ** 3
        assert torch.allclose(model(polynomial_features(x, 3)), expected, atol=1e-5)
        assert model.polynomial_string().startswith("y = ")

    def test_parameter_count(self) -> None:
        model = PolynomialRegressor({"model_type": "polynomial", "degree": 3})
        assert model.count_parameters() == 4


class TestPolynomial3:
    def test_forward_is_cubic(self) -> None:
        model = create_model({"model_type": "polynomial3"})
        a, b, c, d = model.coefficients()
        x = torch.tensor([1.5])
        assert model(x).item() == pytest.approx(a + b * 1.5 + c * 1.5 ** 2 + d * 1.5 ** 3, rel=1e-5)


class TestLegendre:
    def test_forward_value(self) -> None:
        x = torch.tensor([0.0, 1.0, 0.5])
        expected = 0.5 * (5 * x ** 3 - 3 * x)
        assert torch.allclose(LegendrePolynomial3.apply(x), expected)

    def test_custom_backward_matches_autograd(self) -> None:
        x = torch.randn(6, dtype=torch.float64, requires_grad=True)
        assert torch.autograd.gradcheck(LegendrePolynomial3.apply, (x,))

    def test_default_initialisation(self) -> None:
        model = LegendrePolynomial3Model({"model_type": "legendre"})
        assert model.a.item() == 0.0
        assert model.b.item() == -1.0
        assert model.d.item() == pytest.approx(0.3)
        assert "P3(" in model.polynomial_string()


class TestDynamicNet:
    def test_eval_mode_is_deterministic_cubic(self) -> None:
        model = DynamicNet({"model_type": "dynamic"}).eval()
        x = torch.tensor([2.0])
        expected = model.a + model.b * x + model.c * x ** 2 + model.d * x ** 3
        assert torch.allclose(model(x), expected)

    def test_eval_degree_five_adds_shared_terms(self) -> None:
        model = DynamicNet({"model_type": "dynamic", "eval_degree": 5}).eval()
        x = torch.tensor([2.0])
        cubic = model.a + model.b * x + model.c * x ** 2 + model.d * x ** 3
        assert torch.allclose(model(x), cubic + model.e * x ** 4 + model.e * x ** 5)

    def test_training_forward_uses_random_degree(self, monkeypatch: pytest.MonkeyPatch) -> None:
        model = DynamicNet({"model_type": "dynamic"}).train()
        monkeypatch.setattr("recipes.models.polynomial.random.randint", lambda a, b: 2)
        x = torch.tensor([1.0])

        model(x).sum().backward()
        # x^4 and x^5 both reuse e
        assert model.e.grad.item() == pytest.approx(2.0)

    def test_invalid_eval_degree(self) -> None:
        with pytest.raises(ValueError):
            DynamicNet({"model_type": "dynamic", "eval_degree": 7})


def test_format_polynomial() -> None:
    assert format_polynomial([1.0, 2.0, 3.0]) == "y = 1.0 + 2.0 x + 3.0 x^2"
