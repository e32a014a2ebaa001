"""Polynomial models for fitting y = sin(x).

Four variants of the same fit:

* ``PolynomialRegressor`` - ``nn.Sequential`` of a linear layer over the
  stacked powers ``x, x^2, x^3``.
* ``Polynomial3`` - a custom module holding the four coefficients.
* ``LegendrePolynomial3Model`` - ``a + b * P3(c + d x)`` through a custom
  autograd function.
* ``DynamicNet`` - a polynomial whose degree is sampled on every forward.
"""

import random
from typing import Any, Dict

import torch
import torch.nn as nn

from .base_model import BaseModel


def _format_term(coefficient: float, power: int) -> str:
    if power == 0:
        return f"{coefficient}"
    if power == 1:
        return f"{coefficient} x"
    return f"{coefficient} x^{power}"


def format_polynomial(coefficients) -> str:
    """Render coefficients ``[a, b, c, ...]`` as ``y = a + b x + c x^2 + ...``."""
    return "y = " + " + ".join(_format_term(c, p) for p, c in enumerate(coefficients))


class PolynomialRegressor(BaseModel):
    """``y = a + b x + c x^2 + d x^3`` as a Linear layer over precomputed powers.

    Input is the ``(N, degree)`` tensor from ``polynomial_features``. The
    Flatten layer turns the ``(N, 1)`` output into ``(N,)`` to match ``y``.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.degree = self.config.get('degree', 3)
        if self.degree < 1:
            raise ValueError("degree must be >= 1")

        self.layers = nn.Sequential(
            nn.Linear(self.degree, 1),
            nn.Flatten(0, 1)
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if x.dim() != 2 or x.size(1) != self.degree:
            raise ValueError(f"Expected input of shape (N, {self.degree}), got {tuple(x.shape)}")
        return self.layers(x)

    @property
    def linear(self) -> nn.Linear:
        return self.layers[0]

    def coefficients(self):
        """``[a, b, c, ...]`` with ``a`` the bias."""
        return [self.linear.bias.item()] + self.linear.weight[0].tolist()

    def polynomial_string(self) -> str:
        return format_polynomial(self.coefficients())


class Polynomial3(BaseModel):
    """Third order polynomial with its coefficients as scalar parameters."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.a = nn.Parameter(torch.randn(()))
        self.b = nn.Parameter(torch.randn(()))
        self.c = nn.Parameter(torch.randn(()))
        self.d = nn.Parameter(torch.randn(()))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.a + self.b * x + self.c * x ** 2 + self.d * x ** 3

    def coefficients(self):
        return [self.a.item(), self.b.item(), self.c.item(), self.d.item()]

    def polynomial_string(self) -> str:
        return format_polynomial(self.coefficients())


class LegendrePolynomial3(torch.autograd.Function):
    """Legendre polynomial of degree three, ``P3(x) = 0.5 (5x^3 - 3x)``, with its own backward."""

    @staticmethod
    def forward(ctx, input):
        ctx.save_for_backward(input)
        return 0.5 * (5 * input ** 3 - 3 * input)

    @staticmethod
    def backward(ctx, grad_output):
        input, = ctx.saved_tensors
        return grad_output * 1.5 * (5 * input ** 2 - 1)


class LegendrePolynomial3Model(BaseModel):
    """``y = a + b * P3(c + d x)``.

    Initial weights sit close enough to the solution for plain SGD to converge.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        init = self.config.get('init', {})
        self.a = nn.Parameter(torch.tensor(float(init.get('a', 0.0))))
        self.b = nn.Parameter(torch.tensor(float(init.get('b', -1.0))))
        self.c = nn.Parameter(torch.tensor(float(init.get('c', 0.0))))
        self.d = nn.Parameter(torch.tensor(float(init.get('d', 0.3))))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.a + self.b * LegendrePolynomial3.apply(self.c + self.d * x)

    def polynomial_string(self) -> str:
        return (f"y = {self.a.item()} + {self.b.item()} * "
                f"P3({self.c.item()} + {self.d.item()} x)")


class DynamicNet(BaseModel):
    """Polynomial of degree 3 to 5 chosen at random on each training forward.

    The fourth and fifth order terms share the parameter ``e``, so the same
    weight is reused several times in one graph. In eval mode the degree is
    fixed at ``eval_degree`` to make predictions deterministic.
    """

    max_extra_terms = 2

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.eval_degree = self.config.get('eval_degree', 3)
        if not 3 <= self.eval_degree <= 3 + self.max_extra_terms:
            raise ValueError("eval_degree must be between 3 and 5")

        self.a = nn.Parameter(torch.randn(()))
        self.b = nn.Parameter(torch.randn(()))
        self.c = nn.Parameter(torch.randn(()))
        self.d = nn.Parameter(torch.randn(()))
        self.e = nn.Parameter(torch.randn(()))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        y = self.a + self.b * x + self.c * x ** 2 + self.d * x ** 3

        if self.training:
            extra_terms = random.randint(0, self.max_extra_terms)
        else:
            extra_terms = self.eval_degree - 3

        for exp in range(4, 4 + extra_terms):
            y = y + self.e * x ** exp
        return y

    def polynomial_string(self) -> str:
        return (f"y = {self.a.item()} + {self.b.item()} x + {self.c.item()} x^2 + "
                f"{self.d.item()} x^3 + {self.e.item()} x^4 ? + {self.e.item()} x^5 ?")

