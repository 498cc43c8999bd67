"""可視化出力要求（要素タイプと書き込みフラグ）.

要素モデルの get_output_data は、可視化点 1 点につき 1 本の平坦な
レコードを書き込む。どの物理量を書くかは OutputFlag のビットマスクで
指定し、レコード内の並びはフラグのビット順（NODES → EXTRAS）に固定。

OutputRequest: (要素タイプ, フラグ) の組と、その成分名・レコード長
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag

import numpy as np


class ElementType(Enum):
    """出力レコードの要素種別."""

    SOLID = "solid"
    SCALAR_2D = "scalar_2d"
    SCALAR_3D = "scalar_3d"
    THERMOELASTIC_3D = "thermoelastic_3d"


class OutputFlag(IntFlag):
    """出力する物理量のビットマスク."""

    NODES = 1
    DISPLACEMENTS = 2
    STRAINS = 4
    STRESSES = 8
    EXTRAS = 16


ALL_OUTPUT = (
    OutputFlag.NODES
    | OutputFlag.DISPLACEMENTS
    | OutputFlag.STRAINS
    | OutputFlag.STRESSES
    | OutputFlag.EXTRAS
)

_XYZ = ("x", "y", "z")
_VOIGT_STRAIN = ("exx", "eyy", "ezz", "gyz", "gxz", "gxy")
_VOIGT_STRESS = ("sxx", "syy", "szz", "syz", "sxz", "sxy")

# 要素種別ごとの成分名
FIELD_COMPONENTS: dict[ElementType, dict[OutputFlag, tuple[str, ...]]] = {
    ElementType.SOLID: {
        OutputFlag.NODES: _XYZ,
        OutputFlag.DISPLACEMENTS: ("u", "v", "w"),
        OutputFlag.STRAINS: _VOIGT_STRAIN,
        OutputFlag.STRESSES: _VOIGT_STRESS,
        OutputFlag.EXTRAS: ("density", "failure"),
    },
    ElementType.SCALAR_2D: {
        OutputFlag.NODES: _XYZ,
        OutputFlag.DISPLACEMENTS: ("T",),
        OutputFlag.STRAINS: ("Tx", "Ty"),
        OutputFlag.STRESSES: ("qx", "qy"),
        OutputFlag.EXTRAS: ("density",),
    },
    ElementType.SCALAR_3D: {
        OutputFlag.NODES: _XYZ,
        OutputFlag.DISPLACEMENTS: ("T",),
        OutputFlag.STRAINS: ("Tx", "Ty", "Tz"),
        OutputFlag.STRESSES: ("qx", "qy", "qz"),
        OutputFlag.EXTRAS: ("density",),
    },
    ElementType.THERMOELASTIC_3D: {
        OutputFlag.NODES: _XYZ,
        OutputFlag.DISPLACEMENTS: ("u", "v", "w", "T"),
        OutputFlag.STRAINS: _VOIGT_STRAIN,
        OutputFlag.STRESSES: _VOIGT_STRESS,
        OutputFlag.EXTRAS: ("density", "failure", "qx", "qy", "qz"),
    },
}

_FLAG_ORDER = (
    OutputFlag.NODES,
    OutputFlag.DISPLACEMENTS,
    OutputFlag.STRAINS,
    OutputFlag.STRESSES,
    OutputFlag.EXTRAS,
)


@dataclass(frozen=True)
class OutputRequest:
    """出力要求.

    Attributes:
        etype: 要素種別
        write_flag: 書き込みフラグ（OutputFlag の OR）
    """

    etype: ElementType
    write_flag: OutputFlag

    def __post_init__(self) -> None:
        if not isinstance(self.etype, ElementType):
            raise ValueError(f"未対応の要素種別: {self.etype!r}")
        if int(self.write_flag) & ~int(ALL_OUTPUT):
            raise ValueError(f"未対応の出力フラグ: {int(self.write_flag)}")

    def flags(self) -> list[OutputFlag]:
        """要求されたフラグをレコード順で返す."""
        return [f for f in _FLAG_ORDER if self.write_flag & f]

    @property
    def components(self) -> list[str]:
        table = FIELD_COMPONENTS[self.etype]
        return [name for f in self.flags() for name in table[f]]

    @property
    def length(self) -> int:
        return len(self.components)

    def write(
        self,
        fields: dict[OutputFlag, np.ndarray],
        data: np.ndarray,
        ld_data: int,
    ) -> int:
        """要求されたフィールドを data にレコード順で書き込む.

        Args:
            fields: フラグ → 値配列（成分数が FIELD_COMPONENTS と一致すること）
            data: 書き込み先（1 次元）
            ld_data: レコードのストライド（レコード長以上）

        Returns:
            書き込んだ個数
        """
        n = self.length
        if ld_data < n:
            raise ValueError(f"ld_data はレコード長 {n} 以上が必要。実際: {ld_data}")
        if not isinstance(data, np.ndarray) or data.ndim != 1 or data.shape[0] < n:
            raise ValueError(f"data は長さ {n} 以上の 1 次元 ndarray が必要")
        table = FIELD_COMPONENTS[self.etype]
        pos = 0
        for f in self.flags():
            vals = np.asarray(fields[f], dtype=float).reshape(-1)
            if vals.shape[0] != len(table[f]):
                raise ValueError(f"{f.name} の成分数は {len(table[f])}。実際: {vals.shape[0]}")
            data[pos : pos + vals.shape[0]] = vals
            pos += vals.shape[0]
        return pos
