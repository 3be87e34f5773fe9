"""
maxcpumhz のエントリーポイント（薄いラッパー）

テストは `maxcpumhz.py` を直接 import して行う。
"""

from __future__ import annotations

import sys

if __name__ == "__main__":
    from maxcpumhz import main

    raise SystemExit(main(sys.argv[1:]))
