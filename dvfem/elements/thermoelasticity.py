"""3D 線形熱弾性（一方向連成）の要素モデル.

状態量: U = (u, v, w, T)、空間次元 3

温度は熱ひずみとして力学側に入るが、力学側から熱側への連成はない。

  ε_m = E g − T α          （α = 単位温度あたりの熱ひずみ）
  σ   = C_t ε_m
  q   = κ_t ∇T

弱形式係数:
  DUt[k] = [0, 0, ρ_t ü_k]   (k = 0..2)
  DUt[3] = [0, ρ_t c_t Ṫ, 0]
  DUx[k] = [0, (Eᵀσ)_{3k..3k+2}]  (k = 0..2)
  DUx[3] = [0, q]

Ux 平坦配列に対して ε_m = B Ux とおくと、B の温度値の列 (12) は −α。
∂DUx/∂Ux = Pᵀ C_t B（P は B から温度列を除いたもの）で、非対称になる。
"""

from __future__ import annotations

import numpy as np

from dvfem.core.arrays import as_block, as_vector
from dvfem.core.element import ConstitutiveElementModel
from dvfem.core.jacobian import JacobianPattern, assemble_point_jacobian
from dvfem.core.quantity import QuantityRegistry
from dvfem.core.results import WeakIntegrand, WeakJacobian
from dvfem.elements.elasticity import STRAIN_FROM_GRADIENT, strain_operator_3d
from dvfem.elements.quantities import (
    DENSITY,
    FAILURE,
    HEAT_FLUX,
    STRAIN_ENERGY_DENSITY,
    TEMPERATURE,
    DensityQuantity,
    FailureQuantity,
    HeatFluxQuantity,
    StrainEnergyDensityQuantity,
    TemperatureQuantity,
)
from dvfem.materials.elastic import unpack_symmetric
from dvfem.output.request import ElementType, OutputFlag, OutputRequest

# Ux 平坦配列での温度値と温度勾配の位置
_T_VALUE = 12
_T_GRAD = slice(13, 16)


class LinearThermoelasticity3D(ConstitutiveElementModel):
    """3D 線形熱弾性（ElementModelProtocol 適合）.

    Args:
        constitutive: 熱物性を持つ固体構成則（SolidConstitutive）
    """

    quantities = QuantityRegistry(
        {
            FAILURE: FailureQuantity(),
            DENSITY: DensityQuantity(),
            STRAIN_ENERGY_DENSITY: StrainEnergyDensityQuantity(),
            TEMPERATURE: TemperatureQuantity(),
            HEAT_FLUX: HeatFluxQuantity(),
        }
    )

    temperature_var = 3

    def __init__(self, constitutive) -> None:
        super().__init__(constitutive, spatial_dim=3, vars_per_node=4)
        self._P = strain_operator_3d(4)
        self._P.setflags(write=False)

        # 構造的な非ゼロ（材料値に依存しない）
        B_struct = np.abs(self._P)
        B_struct[:, _T_VALUE] = 1.0
        mask_x = np.abs(self._P).T @ np.ones((6, 6)) @ B_struct
        mask_x[_T_GRAD, _T_GRAD] = 1.0
        mask_t = np.zeros((12, 12))
        for k in range(3):
            mask_t[3 * k + 2, 3 * k + 2] = 1.0
        mask_t[10, 10] = 1.0
        self._pattern = JacobianPattern.from_mask(
            assemble_point_jacobian(mask_t, mask_x > 0.0, 4, 3) > 0.0
        )

    # ------------------------------------------------------------------
    # 点量フック
    # ------------------------------------------------------------------

    def strain_operator(self, elem_index: int, pt, X) -> np.ndarray:
        """Ux 平坦配列 → 力学ひずみ ε_m の写像 B (6, 16)."""
        B = self._P.copy()
        B[:, _T_VALUE] = -self.constitutive.eval_thermal_strain(elem_index, pt, X, 1.0)
        return B

    def flux_tangent(self, elem_index: int, pt, X) -> np.ndarray:
        return unpack_symmetric(
            self.constitutive.eval_tangent_heat_flux_3d(elem_index, pt, X), 3
        )

    def add_flux_dv_sens(self, elem_index, scale, pt, X, grad, psi, dfdx) -> None:
        self.constitutive.add_heat_flux_3d_dv_sens(elem_index, scale, pt, X, grad, psi, dfdx)

    # ------------------------------------------------------------------
    # 弱形式
    # ------------------------------------------------------------------

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakIntegrand:
        Ut, Ux = self.state_blocks(Ut, Ux)
        con = self.constitutive
        rho = con.eval_density(elem_index, pt, X)
        c = con.eval_specific_heat(elem_index, pt, X)

        DUt = np.zeros((4, 3), dtype=float)
        DUt[:3, 2] = rho * Ut[:3, 2]
        DUt[3, 1] = rho * c * Ut[3, 1]

        ux = Ux.reshape(-1)
        e = self.strain_operator(elem_index, pt, X) @ ux
        s = unpack_symmetric(con.eval_tangent_stiffness(elem_index, pt, X), 6) @ e
        DUx = self._P.T @ s
        DUx[_T_GRAD] = self.flux_tangent(elem_index, pt, X) @ ux[_T_GRAD]
        return WeakIntegrand(DUt.reshape(-1), DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        con = self.constitutive
        rho = con.eval_density(elem_index, pt, X)
        c = con.eval_specific_heat(elem_index, pt, X)

        dDUt = np.zeros((12, 12), dtype=float)
        for k in range(3):
            dDUt[3 * k + 2, 3 * k + 2] = rho
        dDUt[10, 10] = rho * c

        C = unpack_symmetric(con.eval_tangent_stiffness(elem_index, pt, X), 6)
        dDUx = self._P.T @ C @ self.strain_operator(elem_index, pt, X)
        dDUx[_T_GRAD, _T_GRAD] = self.flux_tangent(elem_index, pt, X)

        J = assemble_point_jacobian(dDUt, dDUx, 4, 3)
        return self._pattern.build(DUt, DUx, J)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        Ut, Ux = self.state_blocks(Ut, Ux)
        Psi = as_vector(Psi, 4, "Psi")
        Psix = as_block(Psix, 4, 3, "Psix")
        con = self.constitutive
        rho = con.eval_density(elem_index, pt, X)
        c = con.eval_specific_heat(elem_index, pt, X)

        # 慣性項と熱容量項（ρ_t c_t は積の微分）
        a = scale * Psi[3] * Ut[3, 1]
        con.add_density_dv_sens(
            elem_index, scale * float(Psi[:3] @ Ut[:3, 2]) + a * c, pt, X, dfdx
        )
        con.add_specific_heat_dv_sens(elem_index, a * rho, pt, X, dfdx)

        ux = Ux.reshape(-1)
        e = self.strain_operator(elem_index, pt, X) @ ux
        psi_e = STRAIN_FROM_GRADIENT @ Psix[:3].reshape(-1)
        con.add_stress_dv_sens(elem_index, scale, pt, X, e, psi_e, dfdx)
        self.add_flux_dv_sens(elem_index, scale, pt, X, ux[_T_GRAD], Psix[3], dfdx)

    # ------------------------------------------------------------------
    # 可視化出力
    # ------------------------------------------------------------------

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux, data, ld_data
    ) -> int:
        if etype != ElementType.THERMOELASTIC_3D:
            return 0
        request = OutputRequest(etype, OutputFlag(write_flag))
        con = self.constitutive
        Ut, Ux = self.state_blocks(Ut, Ux)
        ux = Ux.reshape(-1)
        e = self.strain_operator(elem_index, pt, X) @ ux
        q = self.flux_tangent(elem_index, pt, X) @ ux[_T_GRAD]
        fields = {
            OutputFlag.NODES: as_vector(X, 3, "X"),
            OutputFlag.DISPLACEMENTS: Ut[:, 0],
            OutputFlag.STRAINS: e,
            OutputFlag.STRESSES: con.eval_stress(elem_index, pt, X, e),
            OutputFlag.EXTRAS: np.concatenate(
                [
                    [con.eval_density(elem_index, pt, X), con.eval_failure(elem_index, pt, X, e)],
                    q,
                ]
            ),
        }
        return request.write(fields, data, ld_data)
