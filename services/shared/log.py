"""
Shared — ロガー設定

各モジュールは get_logger(__name__) でロガーを取得する。
ハンドラの設定は各サービスの起動時 (lifespan) に configure_logging で一度だけ行う。
"""

import logging

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str = "services") -> logging.Logger:
    logger = logging.getLogger(name)
    # ハンドラ未設定時の "No handler found" 警告を抑える
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


def configure_logging(level: str | int = logging.INFO, format_string: str = DEFAULT_FORMAT) -> None:
    """コンソールへのログ出力を設定する。level は "DEBUG" などの名前でもよい。"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=format_string)
    logging.getLogger("services").setLevel(level)
