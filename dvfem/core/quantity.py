"""点量（quantity of interest）のレジストリ.

点量は安定な文字列 ID（"failure", "density" 等）で識別する。
各要素モデルはクラス属性 ``quantities`` にレジストリを持ち、
未登録の ID に対しては supported=False の結果を返す。

新しい点量は既存のレジストリを変更せずに追加できる:

    class MyElasticity(LinearElasticity3D):
        quantities = LinearElasticity3D.quantities.with_quantity("my_q", MyQuantity())
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

if TYPE_CHECKING:
    from dvfem.core.element import ElementModel


class PointContext(NamedTuple):
    """点量評価に渡す積分点データ.

    Attributes:
        elem_index: 局所要素番号
        time: 時刻
        n: 積分点番号
        pt: パラメトリック座標
        X: (3,) 物理座標
        Xd: (9,) 座標のパラメータ微分
        Ut: (vars_per_node, 3) 状態量とその時間微分
        Ux: (vars_per_node, spatial_dim + 1) 状態量とその空間微分
    """

    elem_index: int
    time: float
    n: int
    pt: np.ndarray
    X: np.ndarray
    Xd: np.ndarray
    Ut: np.ndarray
    Ux: np.ndarray


class PointQuantity(ABC):
    """点量の基底クラス.

    evaluate と size は必須。設計感度・状態感度の既定は寄与なし。
    """

    @abstractmethod
    def size(self, model: ElementModel) -> int:
        """点量の長さ."""

    @abstractmethod
    def evaluate(self, model: ElementModel, ctx: PointContext) -> np.ndarray:
        """点量の値 (size,)."""

    def add_dv_sens(
        self,
        model: ElementModel,
        ctx: PointContext,
        scale: float,
        dfdq: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * dfdq · ∂q/∂x."""
        return None

    def eval_state_sens(
        self, model: ElementModel, ctx: PointContext, dfdq: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """(dfdX, dfdXd, dfdUt, dfdUx) を返す.

        dfdUt, dfdUx は ctx.Ut, ctx.Ux と同じ形状。
        """
        return (
            np.zeros(3),
            np.zeros(9),
            np.zeros_like(ctx.Ut),
            np.zeros_like(ctx.Ux),
        )


class QuantityRegistry(Mapping):
    """文字列 ID → PointQuantity の不変マップ.

    Args:
        entries: 初期登録 {ID: PointQuantity}
    """

    def __init__(self, entries: Mapping[str, PointQuantity] | None = None) -> None:
        self._entries: dict[str, PointQuantity] = {}
        for name, quantity in (entries or {}).items():
            self._add(name, quantity)

    def _add(self, name: str, quantity: PointQuantity) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError(f"点量 ID は空でない文字列が必要: {name!r}")
        if name in self._entries:
            raise ValueError(f"点量 ID が重複: {name}")
        if not isinstance(quantity, PointQuantity):
            raise ValueError(f"PointQuantity が必要。実際: {type(quantity).__name__}")
        self._entries[name] = quantity

    def with_quantity(self, name: str, quantity: PointQuantity) -> QuantityRegistry:
        """点量を 1 つ追加した新しいレジストリを返す（自身は変更しない）."""
        new = QuantityRegistry(self._entries)
        new._add(name, quantity)
        return new

    def __getitem__(self, name: str) -> PointQuantity:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"QuantityRegistry({sorted(self._entries)})"
