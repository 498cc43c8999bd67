"""メソッド戻り値の型定義.

要素モデル・構成則の公開メソッドが返すデータ構造を NamedTuple で定義する。
タプルアンパッキング（DUt, DUx = model.eval_weak_integrand(...)）と
名前付きアクセスの両方が使える。
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np


class WeakIntegrand(NamedTuple):
    """弱形式係数.

    Attributes:
        DUt: (vars_per_node * 3,) 時間項係数（値, 1階, 2階時間微分）
        DUx: (vars_per_node * (spatial_dim + 1),) 空間項係数（値, 各空間微分）
    """

    DUt: np.ndarray
    DUx: np.ndarray


class WeakJacobian(NamedTuple):
    """弱形式係数とその厳密ヤコビアン.

    Attributes:
        DUt: 時間項係数
        DUx: 空間項係数
        nnz: 非ゼロ数。負なら密行列。
        pairs: (nnz, 2) の (row, col) 組。密行列のとき None。
        Jac: pairs と位置で対応する値 (nnz,)。密行列のときは行優先 (N*N,)。
    """

    DUt: np.ndarray
    DUx: np.ndarray
    nnz: int
    pairs: np.ndarray | None
    Jac: np.ndarray


class QuantityResult(NamedTuple):
    """点量（quantity of interest）の評価結果.

    Attributes:
        supported: この要素がその量をサポートするか
        values: 量の値。未サポート時は空配列。
    """

    supported: bool
    values: np.ndarray

    @property
    def size(self) -> int:
        return int(self.values.shape[0])


class QuantityStateSens(NamedTuple):
    """点量の X, Xd, Ut, Ux に関する感度.

    Attributes:
        supported: この要素がその量をサポートするか（未サポート時は全て 0）
        dfdX: (3,)
        dfdXd: (9,)
        dfdUt: (vars_per_node * 3,)
        dfdUx: (vars_per_node * (spatial_dim + 1),)
    """

    supported: bool
    dfdX: np.ndarray
    dfdXd: np.ndarray
    dfdUt: np.ndarray
    dfdUx: np.ndarray
