"""中心差分による解析微分の検証.

要素モデル・構成則の解析微分（弱形式ヤコビアン、随伴×設計感度、
破壊指標のひずみ感度、点量の状態・設計感度）を中心差分と比較する。

判定:
  max|analytic − fd| <= atol + rtol * max(|analytic|, |fd|)

差分幅は成分ごとに step * max(1, |x_i|)。

使用例:
    report = check_weak_jacobian(model, 0, 0.0, 0, pt, X, Ut, Ux)
    assert report.passed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from dvfem.core.arrays import as_vector
from dvfem.core.jacobian import (
    jacobian_size,
    pack_adjoint,
    pack_coefficients,
    pack_state,
    to_dense,
    unpack_state,
)


@dataclass
class FDCheckConfig:
    """差分検証の設定.

    Attributes:
        step: 相対差分幅
        rtol: 相対許容誤差
        atol: 絶対許容誤差
        verbose: 結果を表示するか
    """

    step: float = 1e-6
    rtol: float = 1e-5
    atol: float = 1e-8
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.step <= 0.0:
            raise ValueError(f"step は正値: {self.step}")
        if self.rtol < 0.0 or self.atol < 0.0:
            raise ValueError(f"rtol, atol は非負: rtol={self.rtol}, atol={self.atol}")


class FDCheckReport(NamedTuple):
    """差分検証の結果.

    Attributes:
        name: 検証項目名
        analytic: 解析微分
        fd: 中心差分
        max_abs_error: 最大絶対誤差
        tolerance: 判定に用いた許容誤差
        passed: 合否
    """

    name: str
    analytic: np.ndarray
    fd: np.ndarray
    max_abs_error: float
    tolerance: float
    passed: bool


def _report(name: str, analytic, fd, config: FDCheckConfig) -> FDCheckReport:
    analytic = np.asarray(analytic, dtype=float)
    fd = np.asarray(fd, dtype=float)
    if analytic.size == 0:
        err, scale = 0.0, 0.0
    else:
        err = float(np.max(np.abs(analytic - fd)))
        scale = float(max(np.max(np.abs(analytic)), np.max(np.abs(fd))))
    tol = config.atol + config.rtol * scale
    passed = err <= tol
    if config.verbose:
        print(
            f"[fd_check] {name}: max_err={err:.3e}, tol={tol:.3e}, "
            f"{'OK' if passed else 'NG'}"
        )
    return FDCheckReport(name, analytic, fd, err, tol, passed)


def _central_diff(f, x: np.ndarray, step: float) -> np.ndarray:
    """f: R^n → R^m の中心差分ヤコビアン (m, n)."""
    x = np.asarray(x, dtype=float)
    cols = []
    for i in range(x.shape[0]):
        h = step * max(1.0, abs(x[i]))
        xp = x.copy()
        xm = x.copy()
        xp[i] += h
        xm[i] -= h
        cols.append((np.asarray(f(xp), dtype=float) - np.asarray(f(xm), dtype=float)) / (2.0 * h))
    if not cols:
        return np.zeros((0, 0))
    return np.column_stack(cols)


def _design_diff(model, elem_index: int, f, step: float) -> np.ndarray:
    """設計変数に関する f の中心差分. 終了時に設計変数を元に戻す."""
    ndv = model.get_design_var_nums(elem_index)
    x0 = np.zeros(ndv, dtype=float)
    model.get_design_vars(elem_index, x0)

    def g(x):
        model.set_design_vars(elem_index, x)
        return np.atleast_1d(f())

    try:
        return _central_diff(g, x0, step)
    finally:
        model.set_design_vars(elem_index, x0)


def check_weak_jacobian(
    model,
    elem_index: int,
    time: float,
    n: int,
    pt,
    X,
    Ut,
    Ux,
    config: FDCheckConfig | None = None,
) -> FDCheckReport:
    """eval_weak_jacobian を (Ut, Ux) の中心差分と比較する."""
    config = config or FDCheckConfig()
    nv, dim = model.get_vars_per_node(), model.get_spatial_dim()
    N = jacobian_size(nv, dim)

    J = to_dense(model.eval_weak_jacobian(elem_index, time, n, pt, X, Ut, Ux), N)

    def residual(q):
        ut, ux = unpack_state(q, nv, dim)
        DUt, DUx = model.eval_weak_integrand(elem_index, time, n, pt, X, ut, ux)
        return pack_coefficients(DUt, DUx, nv, dim)

    J_fd = _central_diff(residual, pack_state(Ut, Ux, nv, dim), config.step)
    return _report("weak_jacobian", J, J_fd, config)


def check_adjoint_product(
    model,
    elem_index: int,
    time: float,
    n: int,
    pt,
    X,
    Ut,
    Ux,
    Psi,
    Psix,
    config: FDCheckConfig | None = None,
) -> FDCheckReport:
    """add_weak_adj_product を設計変数の中心差分と比較する.

    差分側は ψ と係数ベクトルの内積 R(x) を差分する。
    """
    config = config or FDCheckConfig()
    nv, dim = model.get_vars_per_node(), model.get_spatial_dim()
    ndv = model.get_design_var_nums(elem_index)

    dfdx = np.zeros(ndv, dtype=float)
    model.add_weak_adj_product(elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, 1.0, dfdx)

    a = pack_adjoint(Psi, Psix, nv, dim)

    def pairing():
        DUt, DUx = model.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        return float(a @ pack_coefficients(DUt, DUx, nv, dim))

    fd = _design_diff(model, elem_index, pairing, config.step).reshape(-1)
    return _report("adjoint_product", dfdx, fd, config)


def check_failure_strain_sens(
    constitutive,
    elem_index: int,
    pt,
    X,
    e,
    config: FDCheckConfig | None = None,
) -> FDCheckReport:
    """eval_failure_strain_sens をひずみの中心差分と比較する."""
    config = config or FDCheckConfig()
    e = as_vector(e, 6, "e")
    _, dfde = constitutive.eval_failure_strain_sens(elem_index, pt, X, e)

    def fail(ee):
        return [constitutive.eval_failure(elem_index, pt, X, ee)]

    fd = _central_diff(fail, e, config.step).reshape(-1)
    return _report("failure_strain_sens", dfde, fd, config)


def check_point_quantity_sens(
    model,
    elem_index: int,
    quantity_type: str,
    time: float,
    n: int,
    pt,
    X,
    Xd,
    Ut,
    Ux,
    dfdq,
    config: FDCheckConfig | None = None,
) -> FDCheckReport:
    """点量の状態感度 (dfdUt, dfdUx) と設計感度 dfdx を中心差分と比較する.

    analytic / fd は [dfdUt, dfdUx, dfdx] を連結したもの。
    """
    config = config or FDCheckConfig()
    sens = model.eval_point_quantity_sens(
        elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    )
    if not sens.supported:
        raise ValueError(f"未対応の点量: {quantity_type}")
    dfdq = np.asarray(dfdq, dtype=float).reshape(-1)
    Ut = np.asarray(Ut, dtype=float).reshape(-1)
    Ux = np.asarray(Ux, dtype=float).reshape(-1)

    def q_of(ut, ux):
        res = model.eval_point_quantity(elem_index, quantity_type, time, n, pt, X, Xd, ut, ux)
        return [float(dfdq @ res.values)]

    fd_ut = _central_diff(lambda v: q_of(v, Ux), Ut, config.step).reshape(-1)
    fd_ux = _central_diff(lambda v: q_of(Ut, v), Ux, config.step).reshape(-1)

    ndv = model.get_design_var_nums(elem_index)
    dfdx = np.zeros(ndv, dtype=float)
    model.add_point_quantity_dv_sens(
        elem_index, quantity_type, time, 1.0, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    )
    fd_x = _design_diff(model, elem_index, lambda: q_of(Ut, Ux), config.step).reshape(-1)

    analytic = np.concatenate([sens.dfdUt, sens.dfdUx, dfdx])
    fd = np.concatenate([fd_ut, fd_ux, fd_x])
    return _report(f"point_quantity[{quantity_type}]", analytic, fd, config)
