"""ヤング率を設計変数とする線形固体剛性（SolidStiffness）.

MaterialProperties を介さず、自身で弾性定数を保持する自己完結型の
構成則。等方（E, ν）と直交異方性（E1..G12）の 2 種類。

応力は法線 3×3 ブロックと対角せん断剛性のみで計算する:
  s[0:3] = C_n e[0:3]
  s[3] = G23 e[3],  s[4] = G13 e[4],  s[5] = G12 e[5]

等方材料ではヤング率 E を設計変数にできる。弾性テンソルは
C = E C(1, ν) と保持するので ∂C/∂E = C(1, ν)。
"""

from __future__ import annotations

import numpy as np

from dvfem.core.arrays import as_vector, check_buffer
from dvfem.core.constitutive import Constitutive
from dvfem.materials.elastic import (
    isotropic_stiffness_3d,
    orthotropic_stiffness_3d,
    pack_symmetric,
)
from dvfem.materials.properties import von_mises_failure, von_mises_failure_stress_sens


class SolidStiffness(Constitutive):
    """等方/直交異方性の線形固体（ConstitutiveProtocol 適合）.

    Args:
        rho: 密度
        E: ヤング率
        nu: ポアソン比
        e_num: E のグローバル設計変数番号。負なら設計変数ではない。
        E_lb: E の下限
        E_ub: E の上限
        ys: 降伏応力（None なら破壊指標は 0）
    """

    NUM_STRESSES = 6

    def __init__(
        self,
        rho: float,
        E: float,
        nu: float,
        e_num: int = -1,
        E_lb: float = 0.0,
        E_ub: float = 1e20,
        ys: float | None = None,
    ) -> None:
        if rho < 0.0:
            raise ValueError(f"密度 rho は非負: {rho}")
        if E <= 0.0:
            raise ValueError(f"ヤング率 E は正値: {E}")
        if E_lb > E_ub:
            raise ValueError(f"E_lb <= E_ub が必要: E_lb={E_lb}, E_ub={E_ub}")
        if e_num >= 0 and not (E_lb <= E <= E_ub):
            raise ValueError(f"ヤング率 E={E} が範囲 [{E_lb}, {E_ub}] の外")
        if ys is not None and ys <= 0.0:
            raise ValueError(f"降伏応力 ys は正値: {ys}")
        self.rho = float(rho)
        self.nu = float(nu)
        self.e_num = int(e_num)
        self.E_lb = float(E_lb)
        self.E_ub = float(E_ub)
        self.ys = ys
        self._isotropic = True
        self._C_unit = isotropic_stiffness_3d(1.0, self.nu)
        self._set_modulus(E)

    @classmethod
    def orthotropic(
        cls,
        rho: float,
        E1: float,
        E2: float,
        E3: float,
        nu12: float,
        nu13: float,
        nu23: float,
        G23: float,
        G13: float,
        G12: float,
        ys: float | None = None,
    ) -> SolidStiffness:
        """直交異方性材料（設計変数なし）."""
        obj = cls(rho, E1, 0.0, ys=ys)
        obj._isotropic = False
        obj.E = E1
        obj._C = orthotropic_stiffness_3d(E1, E2, E3, nu12, nu13, nu23, G23, G13, G12)
        return obj

    def _set_modulus(self, E: float) -> None:
        # 範囲外や E <= 0 でもそのまま保持する
        self.E = float(E)
        self._C = self.E * self._C_unit

    @property
    def C_normal(self) -> np.ndarray:
        """法線 3×3 ブロック."""
        return self._C[:3, :3].copy()

    @property
    def G23(self) -> float:
        return float(self._C[3, 3])

    @property
    def G13(self) -> float:
        return float(self._C[4, 4])

    @property
    def G12(self) -> float:
        return float(self._C[5, 5])

    def get_num_stresses(self) -> int:
        return self.NUM_STRESSES

    # ------------------------------------------------------------------
    # 設計変数
    # ------------------------------------------------------------------

    def _active(self) -> bool:
        return self._isotropic and self.e_num >= 0

    def get_design_var_nums(self, elem_index: int, dv_nums: np.ndarray | None = None) -> int:
        if not self._active():
            return 0
        if dv_nums is not None and len(dv_nums) >= 1:
            dv_nums[0] = self.e_num
        return 1

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        """ヤング率を設定し弾性テンソルを再計算する."""
        if self._active() and len(dvs) >= 1:
            self._set_modulus(dvs[0])

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self._active() and len(dvs) >= 1:
            dvs[0] = self.E

    def get_design_var_range(self, elem_index: int, lb: np.ndarray, ub: np.ndarray) -> None:
        if self._active():
            if lb is not None and len(lb) >= 1:
                lb[0] = self.E_lb
            if ub is not None and len(ub) >= 1:
                ub[0] = self.E_ub

    # ------------------------------------------------------------------
    # 評価
    # ------------------------------------------------------------------

    def eval_density(self, elem_index: int, pt: np.ndarray, X: np.ndarray) -> float:
        return self.rho

    def _calc_stress(self, e: np.ndarray, C: np.ndarray | None = None) -> np.ndarray:
        if C is None:
            C = self._C
        s = np.empty(6, dtype=float)
        s[:3] = C[:3, :3] @ e[:3]
        s[3] = C[3, 3] * e[3]
        s[4] = C[4, 4] * e[4]
        s[5] = C[5, 5] * e[5]
        return s

    def eval_stress(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> np.ndarray:
        return self._calc_stress(as_vector(e, 6, "e"))

    def eval_tangent_stiffness(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        return pack_symmetric(self._C)

    def eval_failure(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> float:
        if self.ys is None:
            return 0.0
        return von_mises_failure(self._calc_stress(as_vector(e, 6, "e")), self.ys)

    def eval_failure_strain_sens(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> tuple[float, np.ndarray]:
        e = as_vector(e, 6, "e")
        if self.ys is None:
            return 0.0, np.zeros(6, dtype=float)
        fail, dfds = von_mises_failure_stress_sens(self._calc_stress(e), self.ys)
        return fail, self._calc_stress(dfds)

    # ------------------------------------------------------------------
    # 設計感度
    # ------------------------------------------------------------------

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
        """dfdx[0] += scale * psi · C(1, ν) e."""
        e = as_vector(e, 6, "e")
        psi = as_vector(psi, 6, "psi")
        if not self._active():
            return
        check_buffer(dfdx, 1, "dfdx")
        dfdx[0] += scale * float(psi @ self._calc_stress(e, self._C_unit))

    def add_failure_dv_sens(
        self,
        elem_index: int,
        scale: float,
        pt: np.ndarray,
        X: np.ndarray,
        e: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """σ_vm = |E| σ_vm(C(1, ν) e) なので ∂fail/∂E = sign(E) fail(C(1, ν) e)."""
        if not self._active() or self.ys is None:
            return
        check_buffer(dfdx, 1, "dfdx")
        s_unit = self._calc_stress(as_vector(e, 6, "e"), self._C_unit)
        dfdx[0] += scale * float(np.sign(self.E)) * von_mises_failure(s_unit, self.ys)
