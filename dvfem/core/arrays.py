"""配列長・形状の事前条件チェック.

積分点ごとのカーネルは固定レイアウトの配列を受け取る。
長さ不一致はメモリ破壊ではなく ValueError で即座に失敗させる。
"""

from __future__ import annotations

import numpy as np


def as_vector(a, n: int, name: str) -> np.ndarray:
    """長さ n の float ベクトルに変換する.

    平坦配列でも 2 次元配列でも、総要素数が n であれば受け付ける。

    Args:
        a: 入力配列
        n: 要求される要素数
        name: エラーメッセージ用の引数名

    Returns:
        v: (n,) float 配列（入力とメモリを共有しうるので書き換えないこと）
    """
    v = np.asarray(a, dtype=float).reshape(-1)
    if v.shape[0] != n:
        raise ValueError(f"{name} は長さ {n} が必要。実際: {v.shape[0]}")
    return v


def as_block(a, rows: int, cols: int, name: str) -> np.ndarray:
    """(rows, cols) の行優先ブロックに変換する."""
    return as_vector(a, rows * cols, name).reshape(rows, cols)


def check_buffer(buf, n: int, name: str) -> np.ndarray:
    """呼び出し側所有の出力バッファを検査する.

    Args:
        buf: 書き込み先 ndarray（1 次元）
        n: 最低限必要な長さ
        name: エラーメッセージ用の引数名

    Returns:
        buf: 検査済みのバッファ（同一オブジェクト）
    """
    if not isinstance(buf, np.ndarray):
        raise ValueError(f"{name} は np.ndarray が必要。実際: {type(buf).__name__}")
    if buf.ndim != 1:
        raise ValueError(f"{name} は 1 次元配列が必要。実際: ndim={buf.ndim}")
    if buf.shape[0] < n:
        raise ValueError(f"{name} は長さ {n} 以上が必要。実際: {buf.shape[0]}")
    if not buf.flags.writeable:
        raise ValueError(f"{name} が書き込み不可")
    return buf


def readonly(a: np.ndarray) -> np.ndarray:
    """書き込み不可フラグを立てて返す."""
    a.setflags(write=False)
    return a
