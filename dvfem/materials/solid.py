"""板厚を設計変数とする 3D 固体構成則（SolidConstitutive）.

MaterialProperties を参照で共有し、スカラー設計変数 t（板厚）で
材料応答をスケーリングする。

== 板厚のかかり方 ==

  応力:             s = C e（材料応力。t に依存しない）
  接線剛性:         C_t = t C（21 成分すべて。弱形式の係数は C_t e）
  密度・比熱:       t ρ, t c
  伝熱:             q = t κ ∇T
  熱ひずみ:         θ α（ひずみなので t に依存しない）
  破壊指標:         f(C e)（材料応力で評価するので t に依存しない）

MaterialProperties が None の場合は剛性ゼロの材料として振る舞い、
応力・密度・破壊指標・熱流束はすべて 0 を返す。破壊指標の 0 は
「材料なし」を意味し、「破壊の危険なし」ではない。
"""

from __future__ import annotations

import numpy as np

from dvfem.core.arrays import as_vector, check_buffer
from dvfem.core.constitutive import Constitutive
from dvfem.materials.elastic import unpack_symmetric
from dvfem.materials.properties import MaterialProperties


class SolidConstitutive(Constitutive):
    """3D 固体構成則（ConstitutiveProtocol 適合）.

    Args:
        properties: 共有する材料物性。None なら剛性ゼロ材料。
        t: 板厚（正値）
        t_num: 板厚のグローバル設計変数番号。負なら設計変数ではない。
        t_lb: 板厚の下限
        t_ub: 板厚の上限
    """

    NUM_STRESSES = 6

    def __init__(
        self,
        properties: MaterialProperties | None = None,
        t: float = 1.0,
        t_num: int = -1,
        t_lb: float = 0.0,
        t_ub: float = 1e20,
    ) -> None:
        if t <= 0.0:
            raise ValueError(f"板厚 t は正値: {t}")
        if t_lb > t_ub:
            raise ValueError(f"t_lb <= t_ub が必要: t_lb={t_lb}, t_ub={t_ub}")
        if t_num >= 0 and not (t_lb <= t <= t_ub):
            raise ValueError(f"板厚 t={t} が範囲 [{t_lb}, {t_ub}] の外")
        self.properties = properties
        self.t = float(t)
        self.t_num = int(t_num)
        self.t_lb = float(t_lb)
        self.t_ub = float(t_ub)

    def get_num_stresses(self) -> int:
        return self.NUM_STRESSES

    # ------------------------------------------------------------------
    # 設計変数
    # ------------------------------------------------------------------

    def get_design_var_nums(self, elem_index: int, dv_nums: np.ndarray | None = None) -> int:
        if self.t_num < 0:
            return 0
        if dv_nums is not None and len(dv_nums) >= 1:
            dv_nums[0] = self.t_num
        return 1

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        """板厚を設定する（範囲外でもクリップしない）."""
        if self.t_num >= 0 and len(dvs) >= 1:
            self.t = float(dvs[0])

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self.t_num >= 0 and len(dvs) >= 1:
            dvs[0] = self.t

    def get_design_var_range(self, elem_index: int, lb: np.ndarray, ub: np.ndarray) -> None:
        if self.t_num >= 0:
            if lb is not None and len(lb) >= 1:
                lb[0] = self.t_lb
            if ub is not None and len(ub) >= 1:
                ub[0] = self.t_ub

    # ------------------------------------------------------------------
    # 質量・比熱
    # ------------------------------------------------------------------

    def eval_density(self, elem_index: int, pt: np.ndarray, X: np.ndarray) -> float:
        if self.properties is None:
            return 0.0
        return self.t * self.properties.get_density()

    def eval_specific_heat(self, elem_index: int, pt: np.ndarray, X: np.ndarray) -> float:
        if self.properties is None:
            return 0.0
        return self.t * self.properties.get_specific_heat()

    # ------------------------------------------------------------------
    # 応力・剛性
    # ------------------------------------------------------------------

    def _material_stiffness(self) -> np.ndarray:
        """板厚を掛ける前の弾性テンソル (6, 6)."""
        return unpack_symmetric(self.properties.eval_tangent_stiffness_3d(), 6)

    def eval_stress(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> np.ndarray:
        e = as_vector(e, 6, "e")
        if self.properties is None:
            return np.zeros(6, dtype=float)
        return self._material_stiffness() @ e

    def eval_tangent_stiffness(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        if self.properties is None:
            return np.zeros(21, dtype=float)
        return self.t * self.properties.eval_tangent_stiffness_3d()

    def eval_thermal_strain(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, theta: float
    ) -> np.ndarray:
        """熱ひずみ θ α (6,)."""
        if self.properties is None:
            return np.zeros(6, dtype=float)
        return theta * self.properties.eval_thermal_strain_3d()

    # ------------------------------------------------------------------
    # 伝熱
    # ------------------------------------------------------------------

    def eval_heat_flux(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, grad: np.ndarray
    ) -> np.ndarray:
        """面内熱流束 q = t κ2 ∇T (2,)."""
        grad = as_vector(grad, 2, "grad")
        if self.properties is None:
            return np.zeros(2, dtype=float)
        k = self.properties.eval_tangent_heat_flux_2d()
        return self.t * np.array(
            [k[0] * grad[0] + k[1] * grad[1], k[1] * grad[0] + k[2] * grad[1]]
        )

    def eval_tangent_heat_flux(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """面内伝熱接線 [k11, k12, k22] × t."""
        if self.properties is None:
            return np.zeros(3, dtype=float)
        return self.t * self.properties.eval_tangent_heat_flux_2d()

    def eval_heat_flux_3d(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, grad: np.ndarray
    ) -> np.ndarray:
        """3D 熱流束 q = t κ3 ∇T (3,)."""
        grad = as_vector(grad, 3, "grad")
        if self.properties is None:
            return np.zeros(3, dtype=float)
        return unpack_symmetric(self.eval_tangent_heat_flux_3d(elem_index, pt, X), 3) @ grad

    def eval_tangent_heat_flux_3d(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        if self.properties is None:
            return np.zeros(6, dtype=float)
        return self.t * self.properties.eval_tangent_heat_flux_3d()

    # ------------------------------------------------------------------
    # 破壊指標
    # ------------------------------------------------------------------

    def eval_failure(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> float:
        e = as_vector(e, 6, "e")
        if self.properties is None:
            return 0.0
        return self.properties.von_mises_failure_3d(self._material_stiffness() @ e)

    def eval_failure_strain_sens(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> tuple[float, np.ndarray]:
        """破壊指標とそのひずみ感度 dfde = Cᵀ ∂f/∂s.

        Returns:
            (fail, dfde)
        """
        e = as_vector(e, 6, "e")
        if self.properties is None:
            return 0.0, np.zeros(6, dtype=float)
        C = self._material_stiffness()
        fail, dfds = self.properties.von_mises_failure_3d_stress_sens(C @ e)
        return fail, C.T @ dfds

    # ------------------------------------------------------------------
    # 設計感度
    # ------------------------------------------------------------------

    def _active_sens_buffer(self, dfdx: np.ndarray) -> bool:
        if self.t_num < 0 or self.properties is None:
            return False
        check_buffer(dfdx, 1, "dfdx")
        return True

    def add_stress_dv_sens(
        self,
        elem_index: int,
        scale: float,
        pt: np.ndarray,
        X: np.ndarray,
        e: np.ndarray,
        psi: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx[0] += scale * psi · ∂(C_t e)/∂t = scale * psi · (C e)."""
        e = as_vector(e, 6, "e")
        psi = as_vector(psi, 6, "psi")
        if self._active_sens_buffer(dfdx):
            dfdx[0] += scale * float(psi @ (self._material_stiffness() @ e))

    def add_density_dv_sens(
        self, elem_index: int, scale: float, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        if self._active_sens_buffer(dfdx):
            dfdx[0] += scale * self.properties.get_density()

    def add_specific_heat_dv_sens(
        self, elem_index: int, scale: float, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        if self._active_sens_buffer(dfdx):
            dfdx[0] += scale * self.properties.get_specific_heat()

    def add_heat_flux_dv_sens(
        self,
        elem_index: int,
        scale: float,
        pt: np.ndarray,
        X: np.ndarray,
        grad: np.ndarray,
        psi: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx[0] += scale * psi · (κ2 ∇T)."""
        grad = as_vector(grad, 2, "grad")
        psi = as_vector(psi, 2, "psi")
        if self._active_sens_buffer(dfdx):
            k = unpack_symmetric(self.properties.eval_tangent_heat_flux_2d(), 2)
            dfdx[0] += scale * float(psi @ (k @ grad))

    def add_heat_flux_3d_dv_sens(
        self,
        elem_index: int,
        scale: float,
        pt: np.ndarray,
        X: np.ndarray,
        grad: np.ndarray,
        psi: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx[0] += scale * psi · (κ3 ∇T)."""
        grad = as_vector(grad, 3, "grad")
        psi = as_vector(psi, 3, "psi")
        if self._active_sens_buffer(dfdx):
            k = unpack_symmetric(self.properties.eval_tangent_heat_flux_3d(), 3)
            dfdx[0] += scale * float(psi @ (k @ grad))
