from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

LOG_FORMAT = "%(asctime)s %(levelname)s runId=%(runId)s comp=%(component)s msg=%(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class EnsureFieldsFilter(logging.Filter):
    """
    Назначение:
        Подставляет runId/component в LogRecord, если их не передали через extra,
        чтобы форматтер не падал на сторонних сообщениях.
    """

    def __init__(self, runId: str, defaultComponent: str = "core"):
        super().__init__()
        self.runId = runId
        self.defaultComponent = defaultComponent

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "runId"):
            record.runId = self.runId
        if not hasattr(record, "component"):
            record.component = self.defaultComponent
        return True


class StreamTee:
    """
    Назначение:
        Дублирует stdout/stderr команды: пишет в исходный поток и построчно в лог.

    Входные данные:
        primary: исходный sys.stdout/sys.stderr
        logger, level, runId, component: куда и с какой меткой логировать строки
    """

    def __init__(self, primary: TextIO, logger: logging.Logger, level: int, runId: str, component: str):
        self.primary = primary
        self.logger = logger
        self.level = level
        self.runId = runId
        self.component = component
        self._pending = ""

    def write(self, s: str) -> int:
        written = self.primary.write(s)
        self._pending += s
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self._emit(line)
        return written

    def flush(self) -> None:
        self.primary.flush()
        self._emit(self._pending)
        self._pending = ""

    def _emit(self, line: str) -> None:
        if line.strip():
            logEvent(self.logger, self.level, self.runId, self.component, line.rstrip())


def mapLogLevel(levelName: str) -> int:
    """
    Назначение:
        Преобразует строковый уровень (ERROR|WARN|INFO|DEBUG) в уровень logging.
    """
    value = (levelName or "").strip().upper()
    if value not in _LEVELS:
        raise ValueError(f"Unsupported log level: {levelName}")
    return _LEVELS[value]


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Создаёт изолированный логгер команды с файлом logs/<command>_<runId>.log.

    Выходные данные:
        (logger, logFilePath)
    """
    Path(logDir).mkdir(parents=True, exist_ok=True)
    logFilePath = str(Path(logDir) / f"{commandName}_{runId}.log")

    logger = logging.getLogger(f"hbaseImport.{commandName}.{runId}")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    level = mapLogLevel(logLevel)
    logger.setLevel(level)

    fileHandler = logging.FileHandler(logFilePath, encoding="utf-8")
    fileHandler.setLevel(level)
    fileHandler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    fileHandler.addFilter(EnsureFieldsFilter(runId=runId))
    logger.addHandler(fileHandler)

    return logger, logFilePath


def closeCommandLogger(logger: logging.Logger) -> None:
    """Закрывает файловые хэндлеры логгера команды."""
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def logEvent(logger: logging.Logger, level: int, runId: str, component: str, message: str) -> None:
    """
    Назначение:
        Унифицированная запись события с runId/component.
    """
    logger.log(level, message, extra={"runId": runId, "component": component})
