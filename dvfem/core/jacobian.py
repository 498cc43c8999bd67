"""弱形式ヤコビアンの添字規約と疎パターン.

変数 k のブロック先頭 b = (3 + spatial_dim) * k に対し:
  b+0        値（行: DUt[k,0] + DUx[k,0], 列: Ut[k,0] = Ux[k,0]）
  b+1, b+2   1階・2階時間微分（行: DUt[k,1], DUt[k,2]）
  b+3+j      j 番目の空間微分（行: DUx[k,1+j]）

変数値は Ut[k,0] と Ux[k,0] の両方に現れる（積分器は同じ値を渡す）。
分離性（DUt は Ut のみ、DUx は Ux のみに依存）により、値の列は
∂DUt/∂Ut[k,0] + ∂DUx/∂Ux[k,0] の和になる。
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from dvfem.core.arrays import as_block, as_vector, readonly
from dvfem.core.results import WeakJacobian


def block_size(spatial_dim: int) -> int:
    """1 変数あたりのヤコビアン行数 (3 + spatial_dim)."""
    return 3 + spatial_dim


def jacobian_size(vars_per_node: int, spatial_dim: int) -> int:
    """ヤコビアンの一辺 N = (3 + spatial_dim) * vars_per_node."""
    return block_size(spatial_dim) * vars_per_node


def jacobian_index(var: int, slot: int, spatial_dim: int) -> int:
    """変数 var, スロット slot（0..2+spatial_dim）の行・列番号."""
    nb = block_size(spatial_dim)
    if not (0 <= slot < nb):
        raise ValueError(f"slot は 0..{nb - 1}。実際: {slot}")
    return nb * var + slot


def pack_coefficients(DUt, DUx, vars_per_node: int, spatial_dim: int) -> np.ndarray:
    """(DUt, DUx) をヤコビアンの行順に並べたベクトル (N,) にする."""
    nb = block_size(spatial_dim)
    DUt = as_block(DUt, vars_per_node, 3, "DUt")
    DUx = as_block(DUx, vars_per_node, spatial_dim + 1, "DUx")
    r = np.zeros((vars_per_node, nb), dtype=float)
    r[:, :3] = DUt
    r[:, 0] += DUx[:, 0]
    r[:, 3:] = DUx[:, 1:]
    return r.reshape(-1)


def pack_state(Ut, Ux, vars_per_node: int, spatial_dim: int) -> np.ndarray:
    """(Ut, Ux) をヤコビアンの列順に並べた状態ベクトル (N,) にする.

    値は Ut[k,0] を採用する。
    """
    nb = block_size(spatial_dim)
    Ut = as_block(Ut, vars_per_node, 3, "Ut")
    Ux = as_block(Ux, vars_per_node, spatial_dim + 1, "Ux")
    q = np.zeros((vars_per_node, nb), dtype=float)
    q[:, :3] = Ut
    q[:, 3:] = Ux[:, 1:]
    return q.reshape(-1)


def unpack_state(q, vars_per_node: int, spatial_dim: int) -> tuple[np.ndarray, np.ndarray]:
    """状態ベクトルから (Ut, Ux) の平坦配列を復元する（Ux[k,0] = Ut[k,0]）."""
    nb = block_size(spatial_dim)
    q = as_block(q, vars_per_node, nb, "q")
    Ut = q[:, :3].copy()
    Ux = np.zeros((vars_per_node, spatial_dim + 1), dtype=float)
    Ux[:, 0] = q[:, 0]
    Ux[:, 1:] = q[:, 3:]
    return Ut.reshape(-1), Ux.reshape(-1)


def pack_adjoint(Psi, Psix, vars_per_node: int, spatial_dim: int) -> np.ndarray:
    """随伴 (Psi, Psix) を係数ベクトルと対になる並び (N,) にする.

    時間項係数はすべて試験関数の値に掛かるので、スロット 0..2 は Psi[k]。
    """
    nb = block_size(spatial_dim)
    Psi = as_vector(Psi, vars_per_node, "Psi")
    Psix = as_block(Psix, vars_per_node, spatial_dim, "Psix")
    a = np.zeros((vars_per_node, nb), dtype=float)
    a[:, :3] = Psi[:, None]
    a[:, 3:] = Psix
    return a.reshape(-1)


class JacobianPattern:
    """点ごとヤコビアンの静的疎パターン.

    要素モデルの構築時に 1 度だけ作り、以後は読み取り専用で共有する。

    Args:
        pairs: (nnz, 2) の (row, col) 組。None なら密行列。
        size: ヤコビアンの一辺 N
    """

    def __init__(self, pairs: np.ndarray | None, size: int) -> None:
        self.size = int(size)
        if pairs is None:
            self.pairs = None
            self.nnz = -1
            return
        pairs = np.asarray(pairs, dtype=np.int64)
        if pairs.ndim != 2 or pairs.shape[1] != 2:
            raise ValueError(f"pairs は (nnz,2) が必要。実際: {pairs.shape}")
        if pairs.size and (pairs.min() < 0 or pairs.max() >= self.size):
            raise ValueError(f"pairs の添字は 0..{self.size - 1} の範囲が必要")
        if len({(int(r), int(c)) for r, c in pairs}) != pairs.shape[0]:
            raise ValueError("pairs に重複がある")
        self.pairs = readonly(pairs)
        self.nnz = int(pairs.shape[0])

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> JacobianPattern:
        """真偽マスク (N, N) から行優先順のパターンを作る."""
        mask = np.asarray(mask, dtype=bool)
        rows, cols = np.nonzero(mask)
        return cls(np.column_stack([rows, cols]), mask.shape[0])

    @property
    def dense(self) -> bool:
        return self.nnz < 0

    def gather(self, J: np.ndarray) -> np.ndarray:
        """密ヤコビアン (N, N) からパターン順の値配列を取り出す."""
        if J.shape != (self.size, self.size):
            raise ValueError(f"J は ({self.size},{self.size}) が必要。実際: {J.shape}")
        if self.dense:
            return J.reshape(-1).copy()
        return J[self.pairs[:, 0], self.pairs[:, 1]].copy()

    def build(self, DUt: np.ndarray, DUx: np.ndarray, J: np.ndarray) -> WeakJacobian:
        """密行列 J からパターン付きの WeakJacobian を作る."""
        return WeakJacobian(DUt, DUx, self.nnz, self.pairs, self.gather(J))


def _validated(jac: WeakJacobian, size: int) -> None:
    if jac.nnz < 0:
        if jac.pairs is not None:
            raise ValueError("密行列（nnz < 0）では pairs は None が必要")
        if jac.Jac.shape[0] != size * size:
            raise ValueError(f"密ヤコビアンは長さ {size * size} が必要。実際: {jac.Jac.shape[0]}")
        return
    if jac.pairs is None or jac.pairs.shape != (jac.nnz, 2):
        raise ValueError(f"pairs は ({jac.nnz},2) が必要")
    if jac.Jac.shape[0] != jac.nnz:
        raise ValueError(f"Jac は長さ {jac.nnz} が必要。実際: {jac.Jac.shape[0]}")
    if jac.nnz and (jac.pairs.min() < 0 or jac.pairs.max() >= size):
        raise ValueError(f"pairs の添字は 0..{size - 1} の範囲が必要")


def to_dense(jac: WeakJacobian, size: int) -> np.ndarray:
    """WeakJacobian の値を密行列 (N, N) に展開する."""
    _validated(jac, size)
    if jac.nnz < 0:
        return np.asarray(jac.Jac, dtype=float).reshape(size, size).copy()
    J = np.zeros((size, size), dtype=float)
    J[jac.pairs[:, 0], jac.pairs[:, 1]] = jac.Jac
    return J


def to_sparse(jac: WeakJacobian, size: int) -> sp.csr_matrix:
    """WeakJacobian を CSR 行列に変換する."""
    _validated(jac, size)
    if jac.nnz < 0:
        return sp.csr_matrix(np.asarray(jac.Jac, dtype=float).reshape(size, size))
    return sp.coo_matrix(
        (jac.Jac, (jac.pairs[:, 0], jac.pairs[:, 1])),
        shape=(size, size),
    ).tocsr()


def time_index_map(vars_per_node: int, spatial_dim: int) -> np.ndarray:
    """Ut の平坦添字 → ヤコビアン行列番号 (vars*3,)."""
    nb = block_size(spatial_dim)
    return (nb * np.arange(vars_per_node)[:, None] + np.arange(3)[None, :]).reshape(-1)


def space_index_map(vars_per_node: int, spatial_dim: int) -> np.ndarray:
    """Ux の平坦添字 → ヤコビアン行列番号 (vars*(dim+1),).

    Ux[k,0]（値）はブロック先頭 b+0、Ux[k,1+j] は b+3+j に対応する。
    """
    nb = block_size(spatial_dim)
    slots = np.concatenate([[0], 3 + np.arange(spatial_dim)])
    return (nb * np.arange(vars_per_node)[:, None] + slots[None, :]).reshape(-1)


def assemble_point_jacobian(
    dDUt_dUt: np.ndarray,
    dDUx_dUx: np.ndarray,
    vars_per_node: int,
    spatial_dim: int,
) -> np.ndarray:
    """時間項・空間項の偏微分を 1 つの密ヤコビアン (N, N) にまとめる.

    分離性により ∂DUt/∂Ux = 0, ∂DUx/∂Ut = 0。値スロットでは両者が加算される。

    Args:
        dDUt_dUt: (vars*3, vars*3)
        dDUx_dUx: (vars*(dim+1), vars*(dim+1))
    """
    N = jacobian_size(vars_per_node, spatial_dim)
    it = time_index_map(vars_per_node, spatial_dim)
    ix = space_index_map(vars_per_node, spatial_dim)
    if dDUt_dUt.shape != (it.shape[0], it.shape[0]):
        raise ValueError(f"dDUt_dUt は ({it.shape[0]},{it.shape[0]}) が必要。実際: {dDUt_dUt.shape}")
    if dDUx_dUx.shape != (ix.shape[0], ix.shape[0]):
        raise ValueError(f"dDUx_dUx は ({ix.shape[0]},{ix.shape[0]}) が必要。実際: {dDUx_dUx.shape}")
    J = np.zeros((N, N), dtype=float)
    J[np.ix_(it, it)] += dDUt_dUt
    J[np.ix_(ix, ix)] += dDUx_dUx
    return J
