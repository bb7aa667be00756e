"""
ロガー設定
ファイル（app.log）とコンソールに出力する
"""
import logging
from pathlib import Path

from jamtalk.config import LOG_FILE


def setup_logger(
    name: str = "jamtalk",
    log_level: int = logging.INFO,
    log_file: Path | None = None,
) -> logging.Logger:
    """
    ファイルハンドラーとコンソールハンドラーを持つロガーを作成

    Args:
        name: ロガー名（各モジュールはこの配下のロガーを使用する）
        log_level: ロガーのレベル
        log_file: ログファイルのパス（指定しない場合はLOG_FILE）

    Returns:
        設定済みのロガー
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # ハンドラーの重複登録を防ぐ
    if logger.handlers:
        return logger

    file_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")

    path: Path = log_file or LOG_FILE
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        # ログファイルが作成できなくてもアプリは起動する
        print(f"ログファイルを作成できませんでした: {e}")

    # コンソールには警告以上のみ表示
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    return logger
