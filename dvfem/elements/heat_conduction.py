"""2D / 3D 熱伝導の要素モデル.

状態量: 温度 T（1 変数）

  DUt = [0, ρ_t c_t Ṫ, 0]
  DUx = [0, q],   q = κ_t ∇T

熱容量 ρ_t c_t は密度と比熱がともに構成則の設計変数に依存しうるので、
随伴×設計感度は積の微分で評価する:

  ∂(ρ_t c_t)/∂x = c_t ∂ρ_t/∂x + ρ_t ∂c_t/∂x
"""

from __future__ import annotations

from abc import abstractmethod

import numpy as np

from dvfem.core.arrays import as_vector
from dvfem.core.element import ConstitutiveElementModel
from dvfem.core.jacobian import JacobianPattern, assemble_point_jacobian
from dvfem.core.quantity import QuantityRegistry
from dvfem.core.results import WeakIntegrand, WeakJacobian
from dvfem.elements.quantities import (
    DENSITY,
    HEAT_FLUX,
    TEMPERATURE,
    DensityQuantity,
    HeatFluxQuantity,
    TemperatureQuantity,
)
from dvfem.materials.elastic import unpack_symmetric
from dvfem.output.request import ElementType, OutputFlag, OutputRequest


class _HeatConduction(ConstitutiveElementModel):
    """熱伝導の共通実装. 次元依存部は flux_tangent / add_flux_dv_sens."""

    quantities = QuantityRegistry(
        {
            DENSITY: DensityQuantity(),
            TEMPERATURE: TemperatureQuantity(),
            HEAT_FLUX: HeatFluxQuantity(),
        }
    )

    temperature_var = 0
    output_type: ElementType

    def __init__(self, constitutive, spatial_dim: int) -> None:
        super().__init__(constitutive, spatial_dim=spatial_dim, vars_per_node=1)
        # 熱伝導の密ヤコビアンはほぼ疎。値スロットと 2 階時間微分の行は空。
        mask_t = np.zeros((3, 3))
        mask_t[1, 1] = 1.0
        mask_x = np.zeros((spatial_dim + 1, spatial_dim + 1))
        mask_x[1:, 1:] = 1.0
        self._pattern = JacobianPattern.from_mask(
            assemble_point_jacobian(mask_t, mask_x, 1, spatial_dim) > 0.0
        )

    @abstractmethod
    def flux_tangent(self, elem_index: int, pt, X) -> np.ndarray:
        """熱伝導テンソル K (dim, dim)."""

    @abstractmethod
    def add_flux_dv_sens(self, elem_index, scale, pt, X, grad, psi, dfdx) -> None:
        """dfdx += scale * psi · ∂(K ∇T)/∂x."""

    def _heat_capacity(self, elem_index, pt, X) -> tuple[float, float]:
        rho = self.constitutive.eval_density(elem_index, pt, X)
        c = self.constitutive.eval_specific_heat(elem_index, pt, X)
        return rho, c

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakIntegrand:
        Ut, Ux = self.state_blocks(Ut, Ux)
        rho, c = self._heat_capacity(elem_index, pt, X)

        DUt = np.array([0.0, rho * c * Ut[0, 1], 0.0])
        DUx = np.zeros(self.get_spatial_dim() + 1, dtype=float)
        DUx[1:] = self.flux_tangent(elem_index, pt, X) @ Ux[0, 1:]
        return WeakIntegrand(DUt, DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        dim = self.get_spatial_dim()
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        rho, c = self._heat_capacity(elem_index, pt, X)

        dDUt = np.zeros((3, 3), dtype=float)
        dDUt[1, 1] = rho * c
        dDUx = np.zeros((dim + 1, dim + 1), dtype=float)
        dDUx[1:, 1:] = self.flux_tangent(elem_index, pt, X)

        J = assemble_point_jacobian(dDUt, dDUx, 1, dim)
        return self._pattern.build(DUt, DUx, J)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        dim = self.get_spatial_dim()
        Ut, Ux = self.state_blocks(Ut, Ux)
        Psi = as_vector(Psi, 1, "Psi")
        Psix = as_vector(Psix, dim, "Psix")

        rho, c = self._heat_capacity(elem_index, pt, X)
        a = scale * Psi[0] * Ut[0, 1]
        self.constitutive.add_density_dv_sens(elem_index, a * c, pt, X, dfdx)
        self.constitutive.add_specific_heat_dv_sens(elem_index, a * rho, pt, X, dfdx)
        self.add_flux_dv_sens(elem_index, scale, pt, X, Ux[0, 1:], Psix, dfdx)

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux, data, ld_data
    ) -> int:
        if etype != self.output_type:
            return 0
        request = OutputRequest(etype, OutputFlag(write_flag))
        Ut, Ux = self.state_blocks(Ut, Ux)
        grad = Ux[0, 1:]
        fields = {
            OutputFlag.NODES: as_vector(X, 3, "X"),
            OutputFlag.DISPLACEMENTS: Ut[0, :1],
            OutputFlag.STRAINS: grad,
            OutputFlag.STRESSES: self.flux_tangent(elem_index, pt, X) @ grad,
            OutputFlag.EXTRAS: [self.constitutive.eval_density(elem_index, pt, X)],
        }
        return request.write(fields, data, ld_data)


class HeatConduction2D(_HeatConduction):
    """面内 2D 熱伝導（κ2 = [k11, k12, k22]）."""

    output_type = ElementType.SCALAR_2D

    def __init__(self, constitutive) -> None:
        super().__init__(constitutive, spatial_dim=2)

    def flux_tangent(self, elem_index: int, pt, X) -> np.ndarray:
        return unpack_symmetric(self.constitutive.eval_tangent_heat_flux(elem_index, pt, X), 2)

    def add_flux_dv_sens(self, elem_index, scale, pt, X, grad, psi, dfdx) -> None:
        self.constitutive.add_heat_flux_dv_sens(elem_index, scale, pt, X, grad, psi, dfdx)


class HeatConduction3D(_HeatConduction):
    """3D 熱伝導."""

    output_type = ElementType.SCALAR_3D

    def __init__(self, constitutive) -> None:
        super().__init__(constitutive, spatial_dim=3)

    def flux_tangent(self, elem_index: int, pt, X) -> np.ndarray:
        return unpack_symmetric(
            self.constitutive.eval_tangent_heat_flux_3d(elem_index, pt, X), 3
        )

    def add_flux_dv_sens(self, elem_index, scale, pt, X, grad, psi, dfdx) -> None:
        self.constitutive.add_heat_flux_3d_dv_sens(elem_index, scale, pt, X, grad, psi, dfdx)
