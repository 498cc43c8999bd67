"""要素モデル共通の点量.

各点量は要素モデルが提供するフックを使う:

  力学要素（LinearElasticity3D, LinearThermoelasticity3D）:
    model.constitutive
    model.strain_operator(elem_index, pt, X) -> B  (6, vars*(dim+1)),  e = B Ux

  伝熱要素（HeatConduction2D/3D, LinearThermoelasticity3D）:
    model.temperature_var
    model.flux_tangent(elem_index, pt, X) -> K  (dim, dim),  q = K ∇T
    model.add_flux_dv_sens(elem_index, scale, pt, X, grad, psi, dfdx)

ひずみは Ux に線形なので、状態感度は B による引き戻しで厳密に得られる。
"""

from __future__ import annotations

import numpy as np

from dvfem.core.quantity import PointContext, PointQuantity
from dvfem.materials.elastic import unpack_symmetric

FAILURE = "failure"
DENSITY = "density"
STRAIN_ENERGY_DENSITY = "strain_energy_density"
TEMPERATURE = "temperature"
HEAT_FLUX = "heat_flux"


def _strain(model, ctx: PointContext) -> tuple[np.ndarray, np.ndarray]:
    B = model.strain_operator(ctx.elem_index, ctx.pt, ctx.X)
    return B @ ctx.Ux.reshape(-1), B


def _weighted_stress(model, ctx: PointContext, e: np.ndarray) -> np.ndarray:
    """弱形式と同じ重み付き応力 C_t e."""
    C = unpack_symmetric(
        model.constitutive.eval_tangent_stiffness(ctx.elem_index, ctx.pt, ctx.X), 6
    )
    return C @ e


class FailureQuantity(PointQuantity):
    """破壊指標 f(e)."""

    def size(self, model) -> int:
        return 1

    def evaluate(self, model, ctx: PointContext) -> np.ndarray:
        e, _ = _strain(model, ctx)
        return np.array([model.constitutive.eval_failure(ctx.elem_index, ctx.pt, ctx.X, e)])

    def add_dv_sens(self, model, ctx, scale, dfdq, dfdx) -> None:
        e, _ = _strain(model, ctx)
        model.constitutive.add_failure_dv_sens(
            ctx.elem_index, scale * dfdq[0], ctx.pt, ctx.X, e, dfdx
        )

    def eval_state_sens(self, model, ctx, dfdq):
        e, B = _strain(model, ctx)
        _, dfde = model.constitutive.eval_failure_strain_sens(ctx.elem_index, ctx.pt, ctx.X, e)
        dfdUx = (dfdq[0] * (B.T @ dfde)).reshape(ctx.Ux.shape)
        return np.zeros(3), np.zeros(9), np.zeros_like(ctx.Ut), dfdUx


class DensityQuantity(PointQuantity):
    """密度（質量）."""

    def size(self, model) -> int:
        return 1

    def evaluate(self, model, ctx: PointContext) -> np.ndarray:
        return np.array([model.constitutive.eval_density(ctx.elem_index, ctx.pt, ctx.X)])

    def add_dv_sens(self, model, ctx, scale, dfdq, dfdx) -> None:
        model.constitutive.add_density_dv_sens(ctx.elem_index, scale * dfdq[0], ctx.pt, ctx.X, dfdx)


class StrainEnergyDensityQuantity(PointQuantity):
    """ひずみエネルギー密度 w = ½ e·C_t e."""

    def size(self, model) -> int:
        return 1

    def evaluate(self, model, ctx: PointContext) -> np.ndarray:
        e, _ = _strain(model, ctx)
        s = _weighted_stress(model, ctx, e)
        return np.array([0.5 * float(e @ s)])

    def add_dv_sens(self, model, ctx, scale, dfdq, dfdx) -> None:
        e, _ = _strain(model, ctx)
        model.constitutive.add_stress_dv_sens(
            ctx.elem_index, 0.5 * scale * dfdq[0], ctx.pt, ctx.X, e, e, dfdx
        )

    def eval_state_sens(self, model, ctx, dfdq):
        # C_t が対称なので ∂w/∂e = C_t e
        e, B = _strain(model, ctx)
        s = _weighted_stress(model, ctx, e)
        dfdUx = (dfdq[0] * (B.T @ s)).reshape(ctx.Ux.shape)
        return np.zeros(3), np.zeros(9), np.zeros_like(ctx.Ut), dfdUx


class TemperatureQuantity(PointQuantity):
    """温度 T = Ut[temperature_var, 0]."""

    def size(self, model) -> int:
        return 1

    def evaluate(self, model, ctx: PointContext) -> np.ndarray:
        return np.array([ctx.Ut[model.temperature_var, 0]])

    def eval_state_sens(self, model, ctx, dfdq):
        dfdUt = np.zeros_like(ctx.Ut)
        dfdUt[model.temperature_var, 0] = dfdq[0]
        return np.zeros(3), np.zeros(9), dfdUt, np.zeros_like(ctx.Ux)


class HeatFluxQuantity(PointQuantity):
    """熱流束ベクトル q = K ∇T（長さ spatial_dim）."""

    def size(self, model) -> int:
        return model.get_spatial_dim()

    def _grad(self, model, ctx) -> np.ndarray:
        return ctx.Ux[model.temperature_var, 1:]

    def evaluate(self, model, ctx: PointContext) -> np.ndarray:
        K = model.flux_tangent(ctx.elem_index, ctx.pt, ctx.X)
        return K @ self._grad(model, ctx)

    def add_dv_sens(self, model, ctx, scale, dfdq, dfdx) -> None:
        model.add_flux_dv_sens(
            ctx.elem_index, scale, ctx.pt, ctx.X, self._grad(model, ctx), dfdq, dfdx
        )

    def eval_state_sens(self, model, ctx, dfdq):
        K = model.flux_tangent(ctx.elem_index, ctx.pt, ctx.X)
        dfdUx = np.zeros_like(ctx.Ux)
        dfdUx[model.temperature_var, 1:] = K.T @ dfdq
        return np.zeros(3), np.zeros(9), np.zeros_like(ctx.Ut), dfdUx
