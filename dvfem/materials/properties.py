"""材料物性（MaterialProperties）.

解析中は不変で、多数の構成則インスタンスから参照で共有される。
Python の参照そのものが参照カウント付きハンドルであり、最後の保持者が
解放した時点で破棄される。内部配列は書き込み不可にしてあり、
取得メソッドはコピーを返す。

保持する物性:
  - 密度 rho, 比熱 specific_heat
  - 3D 接線剛性（対称 6×6, パック 21 成分）
  - 熱ひずみ（線膨張）ベクトル (6,)
  - 面内 2D 伝熱テンソル（パック 3 成分）, 3D 伝熱テンソル（パック 6 成分）
  - 降伏応力 ys（von Mises 破壊指標用）
"""

from __future__ import annotations

import numpy as np

from dvfem.core.arrays import as_vector, readonly
from dvfem.materials.elastic import (
    isotropic_stiffness_3d,
    orthotropic_stiffness_3d,
    pack_symmetric,
)


class MaterialProperties:
    """不変な材料物性.

    通常は ``isotropic`` / ``orthotropic`` / ``anisotropic`` から生成する。

    Args:
        rho: 密度
        C: (6, 6) 対称弾性テンソル
        alpha: (6,) 熱ひずみベクトル（単位温度変化あたり）
        kappa: (3, 3) 対称伝熱テンソル。2D 面内テンソルは左上 2×2 ブロック。
        specific_heat: 比熱
        ys: 降伏応力
    """

    def __init__(
        self,
        rho: float,
        C: np.ndarray,
        alpha: np.ndarray | None = None,
        kappa: np.ndarray | None = None,
        specific_heat: float = 0.0,
        ys: float = 1.0,
    ) -> None:
        if rho < 0.0:
            raise ValueError(f"密度 rho は非負: {rho}")
        if specific_heat < 0.0:
            raise ValueError(f"比熱 specific_heat は非負: {specific_heat}")
        if ys <= 0.0:
            raise ValueError(f"降伏応力 ys は正値: {ys}")

        C = np.asarray(C, dtype=float)
        if C.shape != (6, 6):
            raise ValueError(f"C は (6,6) が必要。実際: {C.shape}")
        if np.linalg.eigvalsh(0.5 * (C + C.T)).min() < -1e-12 * np.abs(C).max():
            raise ValueError("C が半正定値でない")

        kappa = np.zeros((3, 3)) if kappa is None else np.asarray(kappa, dtype=float)
        if kappa.shape != (3, 3):
            raise ValueError(f"kappa は (3,3) が必要。実際: {kappa.shape}")

        self._rho = float(rho)
        self._specific_heat = float(specific_heat)
        self._ys = float(ys)
        self._C = readonly(pack_symmetric(C))
        self._alpha = readonly(
            np.zeros(6) if alpha is None else as_vector(alpha, 6, "alpha").copy()
        )
        self._kappa3 = readonly(pack_symmetric(kappa))
        self._kappa2 = readonly(pack_symmetric(kappa[:2, :2]))

    # ------------------------------------------------------------------
    # 生成
    # ------------------------------------------------------------------

    @classmethod
    def isotropic(
        cls,
        rho: float,
        E: float,
        nu: float,
        ys: float = 1.0,
        alpha: float = 0.0,
        kappa: float = 0.0,
        specific_heat: float = 0.0,
    ) -> MaterialProperties:
        """等方材料.

        Args:
            rho: 密度
            E: ヤング率
            nu: ポアソン比
            ys: 降伏応力
            alpha: 線膨張係数
            kappa: 熱伝導率
            specific_heat: 比熱
        """
        return cls(
            rho,
            isotropic_stiffness_3d(E, nu),
            alpha=np.array([alpha, alpha, alpha, 0.0, 0.0, 0.0]),
            kappa=kappa * np.eye(3),
            specific_heat=specific_heat,
            ys=ys,
        )

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
        ys: float = 1.0,
        alpha: tuple[float, float, float] = (0.0, 0.0, 0.0),
        kappa: tuple[float, float, float] = (0.0, 0.0, 0.0),
        specific_heat: float = 0.0,
    ) -> MaterialProperties:
        """直交異方性材料（材料主軸 = 座標軸）."""
        C = orthotropic_stiffness_3d(E1, E2, E3, nu12, nu13, nu23, G23, G13, G12)
        a1, a2, a3 = alpha
        return cls(
            rho,
            C,
            alpha=np.array([a1, a2, a3, 0.0, 0.0, 0.0]),
            kappa=np.diag(np.asarray(kappa, dtype=float)),
            specific_heat=specific_heat,
            ys=ys,
        )

    @classmethod
    def anisotropic(
        cls,
        rho: float,
        C: np.ndarray,
        ys: float = 1.0,
        alpha: np.ndarray | None = None,
        kappa: np.ndarray | None = None,
        specific_heat: float = 0.0,
    ) -> MaterialProperties:
        """一般異方性材料（対称 6×6 を直接与える）."""
        return cls(rho, C, alpha=alpha, kappa=kappa, specific_heat=specific_heat, ys=ys)

    # ------------------------------------------------------------------
    # 物性値
    # ------------------------------------------------------------------

    def get_density(self) -> float:
        return self._rho

    def get_specific_heat(self) -> float:
        return self._specific_heat

    def get_yield_stress(self) -> float:
        return self._ys

    def eval_tangent_stiffness_3d(self) -> np.ndarray:
        """パック 21 成分の接線剛性（コピー）."""
        return self._C.copy()

    def eval_thermal_strain_3d(self) -> np.ndarray:
        """単位温度変化あたりの熱ひずみ (6,)（コピー）."""
        return self._alpha.copy()

    def eval_tangent_heat_flux_2d(self) -> np.ndarray:
        """面内伝熱テンソル [k11, k12, k22]（コピー）."""
        return self._kappa2.copy()

    def eval_tangent_heat_flux_3d(self) -> np.ndarray:
        """3D 伝熱テンソル [k11, k12, k13, k22, k23, k33]（コピー）."""
        return self._kappa3.copy()

    # ------------------------------------------------------------------
    # 破壊指標
    # ------------------------------------------------------------------

    def von_mises_failure_3d(self, s: np.ndarray) -> float:
        """von Mises 破壊指標 σ_vm / ys."""
        return von_mises_failure(s, self._ys)

    def von_mises_failure_3d_stress_sens(self, s: np.ndarray) -> tuple[float, np.ndarray]:
        """von Mises 破壊指標とその応力感度 (fail, ∂fail/∂s)."""
        return von_mises_failure_stress_sens(s, self._ys)


def von_mises_failure(s: np.ndarray, ys: float) -> float:
    """von Mises 破壊指標 σ_vm / ys.

    σ_vm² = ½[(s11−s22)² + (s11−s33)² + (s22−s33)²] + 3(s23² + s13² + s12²)
    """
    s = as_vector(s, 6, "s")
    return float(np.sqrt(_von_mises_sq(s))) / ys


def von_mises_failure_stress_sens(s: np.ndarray, ys: float) -> tuple[float, np.ndarray]:
    """von Mises 破壊指標とその応力感度.

    σ_vm = 0 では勾配を 0 ベクトルとする。

    Returns:
        (fail, dfds): 破壊指標と ∂fail/∂s (6,)
    """
    s = as_vector(s, 6, "s")
    vm = float(np.sqrt(_von_mises_sq(s)))
    dfds = np.zeros(6, dtype=float)
    if vm == 0.0:
        return 0.0, dfds

    fac = 0.5 / (vm * ys)
    dfds[0] = fac * (2.0 * s[0] - s[1] - s[2])
    dfds[1] = fac * (2.0 * s[1] - s[0] - s[2])
    dfds[2] = fac * (2.0 * s[2] - s[0] - s[1])
    dfds[3] = fac * 6.0 * s[3]
    dfds[4] = fac * 6.0 * s[4]
    dfds[5] = fac * 6.0 * s[5]
    return vm / ys, dfds


def _von_mises_sq(s: np.ndarray) -> float:
    return 0.5 * (
        (s[0] - s[1]) ** 2 + (s[0] - s[2]) ** 2 + (s[1] - s[2]) ** 2
    ) + 3.0 * (s[3] ** 2 + s[4] ** 2 + s[5] ** 2)
