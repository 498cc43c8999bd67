"""弱形式ヤコビアンの添字規約・疎パターン・交換形式のテスト."""

from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from dvfem.core.jacobian import (
    JacobianPattern,
    assemble_point_jacobian,
    jacobian_index,
    jacobian_size,
    pack_adjoint,
    pack_coefficients,
    pack_state,
    space_index_map,
    time_index_map,
    to_dense,
    to_sparse,
    unpack_state,
)
from dvfem.core.results import WeakJacobian


class TestIndexing:
    """添字規約."""

    @pytest.mark.parametrize("nv,dim,N", [(1, 2, 5), (1, 3, 6), (3, 3, 18), (4, 3, 24)])
    def test_size(self, nv, dim, N):
        assert jacobian_size(nv, dim) == N

    def test_index(self):
        assert jacobian_index(0, 0, 3) == 0
        assert jacobian_index(1, 2, 3) == 8
        assert jacobian_index(2, 5, 3) == 17

    def test_index_out_of_range(self):
        with pytest.raises(ValueError):
            jacobian_index(0, 5, 2)

    def test_index_maps(self):
        np.testing.assert_array_equal(time_index_map(2, 2), [0, 1, 2, 5, 6, 7])
        np.testing.assert_array_equal(space_index_map(2, 2), [0, 3, 4, 5, 8, 9])


class TestPacking:
    """係数・状態・随伴のパック."""

    def test_coefficients_value_row_summed(self):
        DUt = np.array([1.0, 2.0, 3.0])
        DUx = np.array([10.0, 20.0, 30.0])
        np.testing.assert_allclose(pack_coefficients(DUt, DUx, 1, 2), [11.0, 2.0, 3.0, 20.0, 30.0])

    def test_state_roundtrip(self):
        Ut = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        Ux = np.array([1.0, 7.0, 8.0, 4.0, 9.0, 10.0])
        q = pack_state(Ut, Ux, 2, 2)
        Ut2, Ux2 = unpack_state(q, 2, 2)
        np.testing.assert_allclose(Ut2, Ut)
        np.testing.assert_allclose(Ux2, Ux)

    def test_adjoint_pairing(self):
        """ψ · r が R = Σ ψ(DUt0+DUt1+DUt2+DUx0) + Σ ψx DUx[1:] と一致."""
        rng = np.random.default_rng(0)
        DUt, DUx = rng.standard_normal(6), rng.standard_normal(8)
        Psi, Psix = rng.standard_normal(2), rng.standard_normal(6)
        a = pack_adjoint(Psi, Psix, 2, 3)
        r = pack_coefficients(DUt, DUx, 2, 3)
        R = 0.0
        for k in range(2):
            R += Psi[k] * (DUt[3 * k : 3 * k + 3].sum() + DUx[4 * k])
            R += Psix[3 * k : 3 * k + 3] @ DUx[4 * k + 1 : 4 * k + 4]
        assert a @ r == pytest.approx(R)


class TestAssemble:
    """時間項・空間項の偏微分の結合."""

    def test_value_entry_summed(self):
        dDUt = np.zeros((3, 3))
        dDUx = np.zeros((3, 3))
        dDUt[0, 0] = 2.0
        dDUx[0, 0] = 5.0
        J = assemble_point_jacobian(dDUt, dDUx, 1, 2)
        assert J[0, 0] == 7.0

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="dDUx_dUx"):
            assemble_point_jacobian(np.zeros((3, 3)), np.zeros((4, 4)), 1, 2)


class TestPattern:
    """静的疎パターン."""

    def test_from_mask_row_major(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[2, 0] = mask[0, 1] = mask[1, 1] = True
        pat = JacobianPattern.from_mask(mask)
        assert pat.nnz == 3
        np.testing.assert_array_equal(pat.pairs, [[0, 1], [1, 1], [2, 0]])

    def test_duplicate_rejected(self):
        with pytest.raises(ValueError, match="重複"):
            JacobianPattern(np.array([[0, 0], [0, 0]]), 2)

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError, match="範囲"):
            JacobianPattern(np.array([[0, 2]]), 2)

    def test_dense(self):
        pat = JacobianPattern(None, 2)
        assert pat.dense
        J = np.array([[1.0, 2.0], [3.0, 4.0]])
        jac = pat.build(np.zeros(3), np.zeros(3), J)
        assert jac.nnz < 0 and jac.pairs is None
        np.testing.assert_allclose(to_dense(jac, 2), J)


class TestExchange:
    """(nnz, pairs, Jac) 交換形式の変換と検証."""

    def _jac(self):
        pairs = np.array([[0, 0], [1, 2], [2, 1]])
        return WeakJacobian(np.zeros(3), np.zeros(3), 3, pairs, np.array([1.0, 2.0, 3.0]))

    def test_to_dense(self):
        J = to_dense(self._jac(), 3)
        assert J[1, 2] == 2.0 and J[2, 1] == 3.0
        assert np.count_nonzero(J) == 3

    def test_to_sparse(self):
        S = to_sparse(self._jac(), 3)
        assert sp.issparse(S)
        np.testing.assert_allclose(S.toarray(), to_dense(self._jac(), 3))

    def test_length_mismatch(self):
        jac = self._jac()._replace(Jac=np.zeros(2))
        with pytest.raises(ValueError):
            to_dense(jac, 3)

    def test_pairs_out_of_range(self):
        with pytest.raises(ValueError):
            to_dense(self._jac(), 2)

    def test_dense_with_pairs_rejected(self):
        jac = self._jac()._replace(nnz=-1, Jac=np.zeros(9))
        with pytest.raises(ValueError):
            to_sparse(jac, 3)
