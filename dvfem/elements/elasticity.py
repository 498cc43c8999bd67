"""3D 線形弾性の要素モデル.

== 定式化 ==

状態量: U = (u, v, w)、空間次元 3

  ε = E g,   g = [u,x u,y u,z v,x v,y v,z w,x w,y w,z]
  σ = C_t ε  （C_t = 構成則の接線剛性、板厚スケール込み）

弱形式係数:
  DUt[k] = [0, 0, ρ_t ü_k]
  DUx[k] = [0, (Eᵀσ)_{3k}, (Eᵀσ)_{3k+1}, (Eᵀσ)_{3k+2}]

ヤコビアンは状態に依存しない:
  ∂DUt[k,2]/∂ü_k = ρ_t,   ∂DUx/∂g = Eᵀ C_t E

随伴×設計感度:
  ∂R/∂x = Σ_k ψ_k ü_k ∂ρ_t/∂x + (E ψx)·∂σ/∂x
"""

from __future__ import annotations

import numpy as np

from dvfem.core.arrays import as_block, as_vector
from dvfem.core.element import ConstitutiveElementModel
from dvfem.core.jacobian import JacobianPattern, assemble_point_jacobian
from dvfem.core.quantity import QuantityRegistry
from dvfem.core.results import WeakIntegrand, WeakJacobian
from dvfem.elements.quantities import (
    DENSITY,
    FAILURE,
    STRAIN_ENERGY_DENSITY,
    DensityQuantity,
    FailureQuantity,
    StrainEnergyDensityQuantity,
)
from dvfem.materials.elastic import unpack_symmetric
from dvfem.output.request import ElementType, OutputFlag, OutputRequest


def _strain_from_gradient() -> np.ndarray:
    """変位勾配 g (9,) → 工学ひずみ ε (6,) の線形写像 E (6, 9)."""
    E = np.zeros((6, 9), dtype=float)
    E[0, 0] = 1.0  # ε11 = u,x
    E[1, 4] = 1.0  # ε22 = v,y
    E[2, 8] = 1.0  # ε33 = w,z
    E[3, 5] = E[3, 7] = 1.0  # γ23 = v,z + w,y
    E[4, 2] = E[4, 6] = 1.0  # γ13 = u,z + w,x
    E[5, 1] = E[5, 3] = 1.0  # γ12 = u,y + v,x
    return E


STRAIN_FROM_GRADIENT = _strain_from_gradient()
STRAIN_FROM_GRADIENT.setflags(write=False)


def strain_operator_3d(vars_per_node: int) -> np.ndarray:
    """Ux 平坦配列 → ひずみの写像 B (6, vars*4).

    変位は変数 0..2 とし、残りの変数（温度など）の列は 0。
    """
    B = np.zeros((6, 4 * vars_per_node), dtype=float)
    for k in range(3):
        B[:, 4 * k + 1 : 4 * k + 4] = STRAIN_FROM_GRADIENT[:, 3 * k : 3 * k + 3]
    return B


class LinearElasticity3D(ConstitutiveElementModel):
    """3D 線形弾性（ElementModelProtocol 適合）.

    Args:
        constitutive: 固体構成則（SolidConstitutive, SolidStiffness 等）
    """

    quantities = QuantityRegistry(
        {
            FAILURE: FailureQuantity(),
            DENSITY: DensityQuantity(),
            STRAIN_ENERGY_DENSITY: StrainEnergyDensityQuantity(),
        }
    )

    def __init__(self, constitutive) -> None:
        super().__init__(constitutive, spatial_dim=3, vars_per_node=3)
        self._B = strain_operator_3d(3)
        self._B.setflags(write=False)

        mask_t = np.zeros((9, 9))
        for k in range(3):
            mask_t[3 * k + 2, 3 * k + 2] = 1.0
        mask_x = (np.abs(self._B.T) @ np.ones((6, 6)) @ np.abs(self._B) > 0.0).astype(float)
        self._pattern = JacobianPattern.from_mask(assemble_point_jacobian(mask_t, mask_x, 3, 3) > 0.0)

    def strain_operator(self, elem_index: int, pt, X) -> np.ndarray:
        return self._B

    def _tangent(self, elem_index: int, pt, X) -> np.ndarray:
        return unpack_symmetric(self.constitutive.eval_tangent_stiffness(elem_index, pt, X), 6)

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakIntegrand:
        Ut, Ux = self.state_blocks(Ut, Ux)
        rho = self.constitutive.eval_density(elem_index, pt, X)

        DUt = np.zeros((3, 3), dtype=float)
        DUt[:, 2] = rho * Ut[:, 2]

        e = self._B @ Ux.reshape(-1)
        s = self._tangent(elem_index, pt, X) @ e
        DUx = self._B.T @ s
        return WeakIntegrand(DUt.reshape(-1), DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        rho = self.constitutive.eval_density(elem_index, pt, X)

        dDUt = np.zeros((9, 9), dtype=float)
        for k in range(3):
            dDUt[3 * k + 2, 3 * k + 2] = rho
        C = self._tangent(elem_index, pt, X)
        dDUx = self._B.T @ C @ self._B

        J = assemble_point_jacobian(dDUt, dDUx, 3, 3)
        return self._pattern.build(DUt, DUx, J)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        Ut, Ux = self.state_blocks(Ut, Ux)
        Psi = as_vector(Psi, 3, "Psi")
        Psix = as_block(Psix, 3, 3, "Psix")

        self.constitutive.add_density_dv_sens(
            elem_index, scale * float(Psi @ Ut[:, 2]), pt, X, dfdx
        )
        e = self._B @ Ux.reshape(-1)
        psi_e = STRAIN_FROM_GRADIENT @ Psix.reshape(-1)
        self.constitutive.add_stress_dv_sens(elem_index, scale, pt, X, e, psi_e, dfdx)

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux, data, ld_data
    ) -> int:
        if etype != ElementType.SOLID:
            return 0
        request = OutputRequest(etype, OutputFlag(write_flag))
        Ut, Ux = self.state_blocks(Ut, Ux)
        e = self._B @ Ux.reshape(-1)
        fields = {
            OutputFlag.NODES: as_vector(X, 3, "X"),
            OutputFlag.DISPLACEMENTS: Ut[:, 0],
            OutputFlag.STRAINS: e,
            OutputFlag.STRESSES: self.constitutive.eval_stress(elem_index, pt, X, e),
            OutputFlag.EXTRAS: [
                self.constitutive.eval_density(elem_index, pt, X),
                self.constitutive.eval_failure(elem_index, pt, X, e),
            ],
        }
        return request.write(fields, data, ld_data)
