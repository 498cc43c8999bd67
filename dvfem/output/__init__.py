"""可視化出力インターフェース.

主要クラス:
    ElementType: 出力レコードの要素種別
    OutputFlag: 出力物理量のビットマスク
    OutputRequest: (要素種別, フラグ) から成分名・レコード長を決め、レコードを書き込む
"""

from dvfem.output.request import (
    ALL_OUTPUT,
    FIELD_COMPONENTS,
    ElementType,
    OutputFlag,
    OutputRequest,
)

__all__ = [
    "ElementType",
    "OutputFlag",
    "OutputRequest",
    "FIELD_COMPONENTS",
    "ALL_OUTPUT",
]
