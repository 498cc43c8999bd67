"""dvfem.core - 要素モデル・構成則の抽象インタフェース定義・戻り値型.

Protocol / 基底クラス:
  ElementModelProtocol     : 弱形式・ヤコビアン・出力の必須インタフェース
  ElementModel             : 設計変数なし・点量なしの既定実装を持つ ABC
  ConstitutiveElementModel : 設計変数を構成則へ転送する ABC
  ConstitutiveProtocol     : 応力・剛性・破壊指標の評価
  Constitutive             : 設計変数なしの既定実装
"""

from dvfem.core.constitutive import Constitutive, ConstitutiveProtocol
from dvfem.core.element import (
    ConstitutiveElementModel,
    ElementModel,
    ElementModelProtocol,
)
from dvfem.core.jacobian import (
    JacobianPattern,
    jacobian_index,
    jacobian_size,
    to_dense,
    to_sparse,
)
from dvfem.core.quantity import PointContext, PointQuantity, QuantityRegistry
from dvfem.core.results import (
    QuantityResult,
    QuantityStateSens,
    WeakIntegrand,
    WeakJacobian,
)

__all__ = [
    "ElementModelProtocol",
    "ElementModel",
    "ConstitutiveElementModel",
    "ConstitutiveProtocol",
    "Constitutive",
    "JacobianPattern",
    "jacobian_index",
    "jacobian_size",
    "to_dense",
    "to_sparse",
    "PointContext",
    "PointQuantity",
    "QuantityRegistry",
    "WeakIntegrand",
    "WeakJacobian",
    "QuantityResult",
    "QuantityStateSens",
]
