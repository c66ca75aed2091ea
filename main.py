#!/usr/bin/env python3
# main.py
"""
Главная точка входа LogiFlow Events.
Запускает шлюз WebSocket, сервис уведомлений или оба компонента.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from logiflow.config import settings
from logiflow.common.logger import setup_logging, log_info, log_error
from logiflow.common.constants import TypeMsg

VALID_MODES = ("gateway", "notifications", "all")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def _serve(app_path: str, host: str, port: int, name: str) -> None:
    """Запускает uvicorn сервер внутри текущего event loop."""
    import uvicorn

    await log_info(f"Запуск {name} на {host}:{port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_path,
        host=host,
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info(f"{name}: graceful shutdown", type_msg=TypeMsg.DEBUG)
        server.should_exit = True
        raise


async def run_gateway() -> None:
    """Шлюз: WebSocket мост событий + /health, /stats, /broadcast."""
    await _serve(
        "logiflow.services.realtime_ws.app:app",
        host=settings.deployment.GATEWAY_HOST,
        port=settings.deployment.GATEWAY_PORT,
        name="Realtime Gateway",
    )


async def run_notifications() -> None:
    """Сервис уведомлений: консьюмер notifications.queue + HTTP API журнала."""
    await _serve(
        "logiflow.notifications.app:app",
        host=settings.deployment.NOTIFICATIONS_HOST,
        port=settings.deployment.NOTIFICATIONS_PORT,
        name="Notifications Service",
    )


def resolve_mode(mode: str | None) -> str:
    """Режим из аргумента, иначе из COMPONENT_MODE."""
    candidate = mode or settings.system.COMPONENT_MODE
    if candidate not in VALID_MODES:
        raise ValueError(f"Неизвестный режим '{candidate}'. Допустимо: {', '.join(VALID_MODES)}")
    return candidate


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: gateway | notifications | all (если None, берётся COMPONENT_MODE)
    """
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    mode = resolve_mode(mode)
    await log_info(
        f"LogiFlow Events v{settings.system.VERSION} - запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    runners = {
        "gateway": [run_gateway],
        "notifications": [run_notifications],
        "all": [run_gateway, run_notifications],
    }[mode]

    _running_tasks = [asyncio.create_task(runner()) for runner in runners]

    try:
        results = await asyncio.gather(*_running_tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                await log_error(f"Компонент завершился с ошибкой: {result}")
    except asyncio.CancelledError:
        await log_info("Отмена всех задач...", type_msg=TypeMsg.INFO)
        for task in _running_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*_running_tasks, return_exceptions=True)
    finally:
        await log_info("Все компоненты остановлены", type_msg=TypeMsg.INFO)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LogiFlow Events")
    parser.add_argument("--mode", choices=VALID_MODES, default=None, help="Компонент для запуска")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    try:
        asyncio.run(main(mode=args.mode))
    except KeyboardInterrupt:
        print("\nПолучен сигнал остановки, завершение работы...")
    except ValueError as e:
        print(f"\n{e}")
        sys.exit(2)
