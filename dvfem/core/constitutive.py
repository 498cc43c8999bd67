"""構成則（材料モデル）の抽象インタフェース定義.

Protocol 定義:
  ConstitutiveProtocol  : 応力・剛性・密度・破壊指標の評価（構造的部分型）
  Constitutive          : 設計変数アクセサと感度の既定実装を持つ基底クラス

設計変数を持たない構成則は Constitutive を継承すれば
「設計変数 0 個・感度寄与なし」の振る舞いになる。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class ConstitutiveProtocol(Protocol):
    """固体構成則の共通インタフェース.

    ひずみ・応力の並び: [e11, e22, e33, e23, e13, e12]

    適合クラス例:
      - SolidConstitutive  (板厚を設計変数とする)
      - SolidStiffness     (ヤング率を設計変数とする)
    """

    def get_num_stresses(self) -> int: ...

    def eval_density(self, elem_index: int, pt: np.ndarray, X: np.ndarray) -> float: ...

    def eval_stress(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> np.ndarray:
        """応力 s = C e を返す."""
        ...

    def eval_tangent_stiffness(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """パック 21 成分の接線剛性を返す."""
        ...

    def eval_failure(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> float: ...

    def eval_failure_strain_sens(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> tuple[float, np.ndarray]: ...


class Constitutive:
    """設計変数を持たない構成則の既定実装.

    設計変数アクセサは何もせず、感度の加算は何も寄与しない。
    設計変数を持つ構成則はこれらを上書きする。
    """

    def get_design_var_nums(self, elem_index: int, dv_nums: np.ndarray | None = None) -> int:
        """設計変数番号を返す.

        Args:
            elem_index: 局所要素番号
            dv_nums: 書き込み先。None の場合は個数の問い合わせ。

        Returns:
            設計変数の個数（dv_nums の有無によらず同じ値）
        """
        return 0

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_var_range(self, elem_index: int, lb: np.ndarray, ub: np.ndarray) -> None:
        return None

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
        """dfdx += scale * psi · ∂s/∂x."""
        return None

    def add_density_dv_sens(
        self, elem_index: int, scale: float, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        """dfdx += scale * ∂ρ/∂x."""
        return None

    def add_failure_dv_sens(
        self,
        elem_index: int,
        scale: float,
        pt: np.ndarray,
        X: np.ndarray,
        e: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * ∂fail/∂x."""
        return None
