"""System Version: 0.3.0
File Version: 1.0.0"""
from __future__ import annotations

import os
import signal

from launcher import create_app
from launcher.config import load_env
from launcher.utils import log_info

load_env()
app = create_app()


def run() -> None:
    """ローカル起動用エントリポイント."""
    import uvicorn

    port = int(os.getenv("PORT", "8765"))
    host = os.getenv("HOST", "127.0.0.1").strip() or "127.0.0.1"
    config = uvicorn.Config(
        "app:app",
        host=host,
        port=port,
        reload=False,
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = lambda: None
    interrupt_count = {"count": 0}

    def handle_interrupt(signum, frame):
        interrupt_count["count"] += 1
        if interrupt_count["count"] == 1:
            log_info("Ctrl+Cを検知しました。もう一度Ctrl+Cで強制終了します。")
            server.should_exit = True
            return
        log_info("Ctrl+Cを再度検知しました。強制終了します。")
        os._exit(1)

    signal.signal(signal.SIGINT, handle_interrupt)
    try:
        signal.signal(signal.SIGTERM, handle_interrupt)
    except (AttributeError, ValueError):
        pass

    server.run()


if __name__ == "__main__":
    run()
