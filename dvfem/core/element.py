"""要素モデル（物理記述）の抽象インタフェース定義.

要素モデルは形状関数・積分則から独立に、積分点 1 点での
弱形式の被積分係数、その厳密ヤコビアン、随伴×設計感度積、
点量とその感度を評価する。基底関数・積分器（外部）が
Ut, Ux, X を与え、結果を要素・全体へ組み立てる。

Protocol / 基底クラス:
  ElementModelProtocol : 構造的部分型による適合判定用
  ElementModel         : 既定実装（設計変数なし・点量なし）を持つ ABC
  ConstitutiveElementModel: 設計変数アクセサを構成則へ転送する ABC

弱形式（変数 k, 試験関数 v_k）:

  R = Σ_k ∫ v_k (DUt[k,0] + DUt[k,1] + DUt[k,2] + DUx[k,0])
          + Σ_j ∂v_k/∂x_j DUx[k,1+j] dΩ

分離性: DUt は Ut のみ、DUx は Ux のみに依存する。積分器は
これを前提に再計算を省略してよい。

eval_weak_integrand / eval_weak_jacobian / get_output_data は
抽象メソッドで、実装しないサブクラスはインスタンス化できない。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Protocol, runtime_checkable

import numpy as np

from dvfem.core.arrays import as_block, as_vector
from dvfem.core.jacobian import jacobian_size
from dvfem.core.quantity import PointContext, QuantityRegistry
from dvfem.core.results import (
    QuantityResult,
    QuantityStateSens,
    WeakIntegrand,
    WeakJacobian,
)
from dvfem.output.request import ElementType, OutputFlag


@runtime_checkable
class ElementModelProtocol(Protocol):
    """要素モデルの必須インタフェース.

    適合クラス例:
      - LinearElasticity3D
      - HeatConduction2D, HeatConduction3D
      - LinearThermoelasticity3D
    """

    def get_spatial_dim(self) -> int: ...

    def get_vars_per_node(self) -> int: ...

    def eval_weak_integrand(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakIntegrand: ...

    def eval_weak_jacobian(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakJacobian: ...

    def get_output_data(
        self,
        elem_index: int,
        time: float,
        etype: ElementType,
        write_flag: OutputFlag,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        data: np.ndarray,
        ld_data: int,
    ) -> int: ...


class ElementModel(ABC):
    """要素モデルの基底クラス.

    Args:
        spatial_dim: 空間次元（1, 2, 3）
        vars_per_node: 節点あたりの変数数（1 以上）
    """

    quantities: ClassVar[QuantityRegistry] = QuantityRegistry()

    def __init__(self, spatial_dim: int, vars_per_node: int) -> None:
        if spatial_dim not in (1, 2, 3):
            raise ValueError(f"spatial_dim は 1/2/3: {spatial_dim}")
        if vars_per_node < 1:
            raise ValueError(f"vars_per_node は 1 以上: {vars_per_node}")
        self._spatial_dim = int(spatial_dim)
        self._vars_per_node = int(vars_per_node)

    def get_spatial_dim(self) -> int:
        return self._spatial_dim

    def get_vars_per_node(self) -> int:
        return self._vars_per_node

    @property
    def jacobian_size(self) -> int:
        """点ごとヤコビアンの一辺 (3 + spatial_dim) * vars_per_node."""
        return jacobian_size(self._vars_per_node, self._spatial_dim)

    # ------------------------------------------------------------------
    # 入力整形
    # ------------------------------------------------------------------

    def state_blocks(self, Ut, Ux) -> tuple[np.ndarray, np.ndarray]:
        """(Ut, Ux) を (vars, 3), (vars, dim+1) に整形する（長さ不一致は ValueError）."""
        nv, dim = self._vars_per_node, self._spatial_dim
        return as_block(Ut, nv, 3, "Ut"), as_block(Ux, nv, dim + 1, "Ux")

    # ------------------------------------------------------------------
    # 設計変数（既定: なし）
    # ------------------------------------------------------------------

    def get_design_var_nums(self, elem_index: int, dv_nums: np.ndarray | None = None) -> int:
        """設計変数番号. dv_nums=None は個数の問い合わせ."""
        return 0

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_var_range(self, elem_index: int, lb: np.ndarray, ub: np.ndarray) -> None:
        return None

    # ------------------------------------------------------------------
    # 弱形式
    # ------------------------------------------------------------------

    @abstractmethod
    def eval_weak_integrand(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakIntegrand:
        """弱形式係数 (DUt, DUx) を評価する."""

    @abstractmethod
    def eval_weak_jacobian(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakJacobian:
        """弱形式係数と (Ut, Ux) に関する厳密ヤコビアンを評価する."""

    def add_weak_adj_product(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        Psi: np.ndarray,
        Psix: np.ndarray,
        scale: float,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * (∂R/∂x)ᵀ ψ（既定: 寄与なし）.

        Args:
            Psi: (vars_per_node,) 随伴変数の値
            Psix: (vars_per_node * spatial_dim,) 随伴変数の空間微分
            scale: スケール係数
            dfdx: 要素の局所設計感度ベクトル（加算のみ、上書きしない）
        """
        return None

    # ------------------------------------------------------------------
    # 点量
    # ------------------------------------------------------------------

    def _context(self, elem_index, time, n, pt, X, Xd, Ut, Ux) -> PointContext:
        Ut, Ux = self.state_blocks(Ut, Ux)
        return PointContext(
            elem_index=elem_index,
            time=time,
            n=n,
            pt=np.asarray(pt, dtype=float) if pt is not None else np.zeros(self._spatial_dim),
            X=as_vector(X, 3, "X"),
            Xd=np.zeros(9) if Xd is None else as_vector(Xd, 9, "Xd"),
            Ut=Ut,
            Ux=Ux,
        )

    def eval_point_quantity(
        self,
        elem_index: int,
        quantity_type: str,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray | None,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> QuantityResult:
        """点量を評価する. 未登録の ID は supported=False."""
        quantity = self.quantities.get(quantity_type)
        if quantity is None:
            return QuantityResult(False, np.zeros(0))
        ctx = self._context(elem_index, time, n, pt, X, Xd, Ut, Ux)
        values = np.asarray(quantity.evaluate(self, ctx), dtype=float).reshape(-1)
        if values.shape[0] != quantity.size(self):
            raise ValueError(
                f"点量 {quantity_type} の長さ不一致: {values.shape[0]} != {quantity.size(self)}"
            )
        return QuantityResult(True, values)

    def add_point_quantity_dv_sens(
        self,
        elem_index: int,
        quantity_type: str,
        time: float,
        scale: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray | None,
        Ut: np.ndarray,
        Ux: np.ndarray,
        dfdq: np.ndarray,
        dfdx: np.ndarray,
    ) -> bool:
        """dfdx += scale * dfdq · ∂q/∂x.

        Returns:
            点量がサポートされていれば True（未サポート時は何もしない）
        """
        quantity = self.quantities.get(quantity_type)
        if quantity is None:
            return False
        ctx = self._context(elem_index, time, n, pt, X, Xd, Ut, Ux)
        dfdq = as_vector(dfdq, quantity.size(self), "dfdq")
        quantity.add_dv_sens(self, ctx, scale, dfdq, dfdx)
        return True

    def eval_point_quantity_sens(
        self,
        elem_index: int,
        quantity_type: str,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray | None,
        Ut: np.ndarray,
        Ux: np.ndarray,
        dfdq: np.ndarray,
    ) -> QuantityStateSens:
        """dfdq · ∂q/∂(X, Xd, Ut, Ux) を評価する."""
        nv, dim = self._vars_per_node, self._spatial_dim
        quantity = self.quantities.get(quantity_type)
        if quantity is None:
            return QuantityStateSens(
                False,
                np.zeros(3),
                np.zeros(9),
                np.zeros(nv * 3),
                np.zeros(nv * (dim + 1)),
            )
        ctx = self._context(elem_index, time, n, pt, X, Xd, Ut, Ux)
        dfdq = as_vector(dfdq, quantity.size(self), "dfdq")
        dfdX, dfdXd, dfdUt, dfdUx = quantity.eval_state_sens(self, ctx, dfdq)
        return QuantityStateSens(
            True,
            as_vector(dfdX, 3, "dfdX").copy(),
            as_vector(dfdXd, 9, "dfdXd").copy(),
            as_vector(dfdUt, nv * 3, "dfdUt").copy(),
            as_vector(dfdUx, nv * (dim + 1), "dfdUx").copy(),
        )

    # ------------------------------------------------------------------
    # 可視化出力
    # ------------------------------------------------------------------

    @abstractmethod
    def get_output_data(
        self,
        elem_index: int,
        time: float,
        etype: ElementType,
        write_flag: OutputFlag,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        data: np.ndarray,
        ld_data: int,
    ) -> int:
        """可視化点 1 点分の平坦レコードを data に書き込み、書き込んだ個数を返す."""


class ConstitutiveElementModel(ElementModel):
    """構成則を 1 つ持つ要素モデル.

    設計変数アクセサはすべて構成則に転送する。

    Args:
        constitutive: 構成則（SolidConstitutive 等）
        spatial_dim: 空間次元
        vars_per_node: 節点あたりの変数数
    """

    def __init__(self, constitutive, spatial_dim: int, vars_per_node: int) -> None:
        super().__init__(spatial_dim, vars_per_node)
        self.constitutive = constitutive

    def get_design_var_nums(self, elem_index: int, dv_nums: np.ndarray | None = None) -> int:
        return self.constitutive.get_design_var_nums(elem_index, dv_nums)

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        self.constitutive.set_design_vars(elem_index, dvs)

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        self.constitutive.get_design_vars(elem_index, dvs)

    def get_design_var_range(self, elem_index: int, lb: np.ndarray, ub: np.ndarray) -> None:
        self.constitutive.get_design_var_range(elem_index, lb, ub)
