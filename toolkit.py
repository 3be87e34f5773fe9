"""
小ツール共通の「I/Oまわり」部品集（toolkit）

maxcpumhz から使うのは次の3つ：
- stderr 向け logger の構成
- 環境変数の取得（空文字は「未指定」扱い）
- env 文字列の bool 変換

ツール固有の環境変数名やデフォルト値は各ツール側で持つ。
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping


def parse_bool(value: str) -> bool:
    """
    env用のboolパース（環境変数は文字列なので明示変換が必要）。

    true: 1, true, yes, y, on
    false: 0, false, no, n, off
    それ以外は「空でなければ True」。
    """
    v = value.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return bool(v)


def get_env(name: str, environ: Mapping[str, str] | None = None) -> str | None:
    """
    環境変数を取得する。未設定・空文字はどちらも None。

    environ を渡すとそちらから読む（テスト用）。省略時は os.environ。
    """
    source = os.environ if environ is None else environ
    v = source.get(name)
    if v is not None and v.strip() != "":
        return v
    return None


def setup_logger(name: str, verbose: bool) -> logging.Logger:
    """
    ログをstderrに出すためのloggerを構成する。

    stdout は結果（クロック表示）専用なので、
    進捗/警告/失敗はstderrへ寄せる。
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False

    logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger
