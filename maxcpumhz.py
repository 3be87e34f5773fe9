"""
maxcpumhz: /proc/cpuinfo からCPUクロック（cpu MHz）を表示する小ツール

このツールがやること（ざっくり）：
- /proc/cpuinfo をチャンク単位で読み、"cpu MHz" ラベルの後ろの数値を拾う
- 最大値だけ、または全コアの値を昇順で表示する（小数2桁）
- 引数に r が含まれていれば、1秒ごとに繰り返し表示する

構成：
- 走査（FieldScanner）：文字ストリーム → 改行区切りの数値テキスト
- 集計（Aggregator）：改行区切りの数値テキスト → ScanResult
- CLI：バナー / ヘルプ / 繰り返しループ / 終了コード
"""

from __future__ import annotations

import io
import logging
import re
import sys
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Literal, Mapping, TextIO

import toolkit

LOGGER_NAME = "maxcpumhz"

FIELD_LABEL = "cpu MHz"
DEFAULT_SOURCE = Path("/proc/cpuinfo")
READ_CHUNK_SIZE = 10 * 1024
DEFAULT_INTERVAL = 1.0
DELIMITER = "\n"

ENV_SOURCE = "MAXCPUMHZ_SOURCE"
ENV_INTERVAL = "MAXCPUMHZ_INTERVAL"
ENV_VERBOSE = "MAXCPUMHZ_VERBOSE"

HELP_ARGS = frozenset({"help", "-h", "--help"})

BANNER = (
    "maxcpumhz  Copyright (C) 2020  Fionn Langhans\n"
    "This program comes with ABSOLUTELY NO WARRANTY;\n"
    "This is free software, and you are welcome to redistribute it\n"
    "under certain conditions;\n"
)

USAGE = (
    "cpumaxmhz: Display clock speed of processor threads\n"
    "\n"
    "ra - Repeat every 1 second, display all clock speeds\n"
    "r - Repeat every 1 second, display max\n"
    "a - Output one time, display all clock speeds\n"
    "No argument - Output one time, display max"
)

Mode = Literal["max", "all"]


class SourceUnavailable(Exception):
    """cpuinfo ファイルを開けない / 読めない。"""

    def __init__(self, path: Path, cause: OSError | None = None) -> None:
        super().__init__(f"Error reading {path}")
        self.path = path
        self.cause = cause


# -------------------------
# 走査（FieldScanner）
# -------------------------


def _is_digit(c: str) -> bool:
    # str.isdigit は全角数字なども True になるので ASCII に限定する
    return "0" <= c <= "9"


def iter_chars(fp: TextIO, chunk_size: int = READ_CHUNK_SIZE) -> Iterator[str]:
    """fp を chunk_size ずつ読み、1文字ずつ yield する（全体を先読みしない）。"""
    while True:
        chunk = fp.read(chunk_size)
        if not chunk:
            return
        yield from chunk


def iter_field_values(
    fp: TextIO,
    label: str = FIELD_LABEL,
    chunk_size: int = READ_CHUNK_SIZE,
) -> Iterator[str]:
    """
    label の出現ごとに、その後ろの数値テキストを順次 yield する。

    仕様：
    - 直近 len(label) 文字のウィンドウと label を比較する（大文字小文字を区別、行頭でなくてよい）
    - ヒットしたらウィンドウを空にする（ヒット前の文字は次のマッチに使わない）
    - ヒット後は最初の数字まで読み飛ばし、そこから改行（または終端）の手前までを1トークンにする
    - 数字が出る前に終端に達したヒットは何も出さない（エラーにしない）
    """
    if not label:
        raise ValueError("label must not be empty")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0: {chunk_size}")
    return _scan_chars(iter_chars(fp, chunk_size), label)


def _scan_chars(chars: Iterator[str], label: str) -> Iterator[str]:
    window: deque[str] = deque(maxlen=len(label))
    for c in chars:
        window.append(c)
        if len(window) < len(label) or "".join(window) != label:
            continue
        window.clear()

        for c in chars:
            if _is_digit(c):
                break
        else:
            return

        token = [c]
        for c in chars:
            if c == DELIMITER:
                break
            token.append(c)
        yield "".join(token)


def scan_source(
    fp: TextIO,
    label: str = FIELD_LABEL,
    chunk_size: int = READ_CHUNK_SIZE,
) -> str:
    """
    fp を走査して RawValueBuffer（"<数値>\\n" の連結）を返す。

    ヒット0件なら空文字。毎回新しいバッファから始める。
    """
    buffer = io.StringIO()
    for token in iter_field_values(fp, label=label, chunk_size=chunk_size):
        buffer.write(token)
        buffer.write(DELIMITER)
    return buffer.getvalue()


def read_source(
    path: Path,
    label: str = FIELD_LABEL,
    chunk_size: int = READ_CHUNK_SIZE,
) -> str:
    """path を開いて scan_source する。開けない/読めない場合は SourceUnavailable。"""
    try:
        with path.open("r", encoding="utf-8", errors="replace") as fp:
            return scan_source(fp, label=label, chunk_size=chunk_size)
    except OSError as exc:
        raise SourceUnavailable(path, exc) from exc


# -------------------------
# 集計（Aggregator）
# -------------------------

# strtod と同じく「先頭の数値部分」だけを値として読む（末尾の空白や \r は無視）
_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?")


@dataclass(frozen=True)
class CoreReading:
    """
    1件ぶんの読み取り値。

    - ordinal: 今回の走査で何番目に見つかったか（0始まり）。CPU番号ではない
    - mhz: クロック（MHz）
    """

    ordinal: int
    mhz: float


@dataclass(frozen=True)
class ScanResult:
    """
    集計結果DTO。

    - mode="max": values は最大値1件
    - mode="all": values は昇順の全件（空もありうる）
    """

    mode: Mode
    values: tuple[float, ...]


def parse_value(token: str) -> float | None:
    m = _NUMBER_RE.match(token)
    if not m:
        return None
    return float(m.group(0))


def iter_readings(buffer: str) -> Iterator[CoreReading]:
    """RawValueBuffer を CoreReading の列にする。ordinal はトークンの出現位置。"""
    tokens = [t for t in buffer.split(DELIMITER) if t]
    for ordinal, token in enumerate(tokens):
        mhz = parse_value(token)
        if mhz is None:
            continue
        yield CoreReading(ordinal=ordinal, mhz=mhz)


def reduce_max(buffer: str) -> ScanResult:
    """最大値。1件もなければ 0。"""
    best = max((r.mhz for r in iter_readings(buffer)), default=0.0)
    return ScanResult(mode="max", values=(best,))


def sort_readings(readings: Iterable[CoreReading]) -> list[CoreReading]:
    """
    mhz の昇順に並べる。

    同じ値どうしは出現順のまま（ordinal をキーの第2要素にして明示的に安定させる）。
    """
    return sorted(readings, key=lambda r: (r.mhz, r.ordinal))


def reduce_all(buffer: str) -> ScanResult:
    """全件を昇順に。1件もなければ values は空。"""
    readings = sort_readings(iter_readings(buffer))
    return ScanResult(mode="all", values=tuple(r.mhz for r in readings))


def reduce_buffer(buffer: str, mode: Mode) -> ScanResult:
    if mode == "max":
        return reduce_max(buffer)
    if mode == "all":
        return reduce_all(buffer)
    raise ValueError(f"unknown mode: {mode!r}")


def format_mhz(value: float) -> str:
    return f"{value:.2f}"


def format_result(result: ScanResult) -> str:
    """表示用の文字列にする（max は1つ、all は ", " 区切り。0件の all は空文字）。"""
    return ", ".join(format_mhz(v) for v in result.values)


# -------------------------
# 設定（I/O境界：入力）
# -------------------------


@dataclass(frozen=True)
class CliOptions:
    repeat: bool = False
    display_all: bool = False
    show_help: bool = False

    @property
    def mode(self) -> Mode:
        return "all" if self.display_all else "max"


@dataclass(frozen=True)
class Settings:
    """
    実行時設定。設定ファイルは持たず、環境変数だけで上書きできる。

      MAXCPUMHZ_SOURCE   : 読むファイル（default: /proc/cpuinfo）
      MAXCPUMHZ_INTERVAL : 繰り返し間隔（秒、default: 1.0）
      MAXCPUMHZ_VERBOSE  : true なら INFO ログを stderr に出す
    """

    source: Path = DEFAULT_SOURCE
    interval: float = DEFAULT_INTERVAL
    verbose: bool = False


def parse_args(argv: list[str]) -> CliOptions:
    """
    引数を解釈する。

    仕様：
    - 見るのは「引数がちょうど1つ」のときだけ（0個/2個以上はデフォルト）
    - help / -h / --help は完全一致でヘルプ
    - それ以外は部分文字列で判定（r を含めば繰り返し、a を含めば全件表示）
    - 知らない文字は黙って無視する
    """
    if len(argv) != 1:
        return CliOptions()
    arg = argv[0]
    if arg in HELP_ARGS:
        return CliOptions(show_help=True)
    return CliOptions(repeat="r" in arg, display_all="a" in arg)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """環境変数から Settings を作る。間隔が数値でない/0以下なら ValueError。"""
    source = DEFAULT_SOURCE
    v = toolkit.get_env(ENV_SOURCE, environ)
    if v:
        source = Path(v).expanduser()

    interval = DEFAULT_INTERVAL
    v = toolkit.get_env(ENV_INTERVAL, environ)
    if v:
        try:
            interval = float(v)
        except ValueError:
            raise ValueError(f"{ENV_INTERVAL} must be a number: {v!r}") from None
        if not interval > 0:
            raise ValueError(f"{ENV_INTERVAL} must be > 0: {v!r}")

    verbose = False
    v = toolkit.get_env(ENV_VERBOSE, environ)
    if v is not None:
        verbose = toolkit.parse_bool(v)

    return Settings(source=source, interval=interval, verbose=verbose)


# -------------------------
# 実行（I/O境界：stdout）
# -------------------------


def measure(source: Path, mode: Mode, logger: logging.Logger) -> str:
    """1回ぶん：読む → 集計 → 整形。"""
    logger.info("scan start: source=%s mode=%s", source, mode)
    buffer = read_source(source)
    result = reduce_buffer(buffer, mode)
    logger.info("scan done: values=%d", buffer.count(DELIMITER))
    return format_result(result)


def watch(
    settings: Settings,
    mode: Mode,
    logger: logging.Logger,
    out: TextIO,
    sleep: Callable[[float], None] = time.sleep,
    max_iterations: int | None = None,
) -> None:
    """
    settings.interval 秒ごとに measure を繰り返して out に出す。

    - 端末なら \\r で同じ行を書き直す（前回より短いときは空白で消す）
    - 端末でなければ1回1行で出す
    - max_iterations を指定しなければ止まらない（Ctrl-C / シグナルで終了）
    """
    redraw = out.isatty()
    width = 0
    count = 0
    try:
        while max_iterations is None or count < max_iterations:
            if count > 0:
                sleep(settings.interval)
            text = measure(settings.source, mode, logger)
            count += 1
            logger.info("iteration %d", count)
            if redraw:
                out.write("\r" + text + " " * max(0, width - len(text)))
                width = len(text)
            else:
                out.write(text + "\n")
            out.flush()
    finally:
        if redraw and count > 0:
            out.write("\n")
            out.flush()


def main(argv: list[str] | None = None) -> int:
    """
    実行入口（テストからも呼べる形）。

    終了コード：
    - 0: 正常終了 / ヘルプ
    - 1: cpuinfo を読めない（繰り返し中も同じ扱い）
    - 2: 環境変数の値が不正
    - 130: Ctrl-C
    """
    if argv is None:
        argv = sys.argv[1:]

    print(BANNER)

    options = parse_args(argv)
    if options.show_help:
        print(USAGE)
        return 0

    try:
        settings = load_settings()
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    logger = toolkit.setup_logger(LOGGER_NAME, settings.verbose)

    try:
        if options.repeat:
            watch(settings, options.mode, logger, out=sys.stdout)
        else:
            print(measure(settings.source, options.mode, logger))
    except SourceUnavailable as exc:
        logger.error("%s (%s)", exc, exc.cause)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))
