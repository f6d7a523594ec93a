"""
UPnP Event Proxy - Main Entry Point

UPnP devices push state changes with HTTP NOTIFY, which the home
controller's own web server cannot receive. This daemon receives them
instead and forwards each interesting variable to the registered consumer
as an action call on the controller's data_request API.

Consumers talk to the proxy over a small HTTP API:
- PUT /upnp/event/{sid}     register the variables to forward for a SID
- DELETE /upnp/event/{sid}  stop forwarding
- GET /version              API version, used by supervisors to detect upgrades
"""
import argparse
import asyncio
import signal
import sys
from typing import Optional

from core.utils import log_info, log_error, set_log_level, LOG_LEVEL_DEBUG, LOG_LEVEL_INFO
from config import APP_NAME, APP_VERSION, API_VERSION, DEBUG, LISTEN_HOST, LISTEN_PORT

from proxy.dispatcher import Dispatcher
from proxy.reactor import Reactor
from proxy.subscriptions import Registry


class UPnPEventProxy:
    """
    Main application for the event proxy.

    Owns the registry, the dispatcher and the reactor that drives both.
    """

    def __init__(self, host: str = LISTEN_HOST, port: int = LISTEN_PORT):
        self._host = host
        self._port = port
        self._dispatcher: Optional[Dispatcher] = None
        self._registry: Optional[Registry] = None
        self._reactor: Optional[Reactor] = None
        self._run_task: Optional[asyncio.Task] = None

    async def run(self):
        """Run until shutdown() is requested"""
        print(" ")
        print(f"  {APP_NAME} v{APP_VERSION} (API {API_VERSION})")
        print(" ")

        self._dispatcher = Dispatcher()
        self._registry = Registry(self._dispatcher)
        self._reactor = Reactor(self._registry, self._dispatcher, host=self._host, port=self._port)

        await self._reactor.start()
        log_info("Proxy", "Event proxy ready.")

        self._run_task = asyncio.current_task()
        try:
            await self._reactor.run()
        except asyncio.CancelledError:
            pass
        finally:
            await self._reactor.stop()
            await self._dispatcher.close()
            log_info("Proxy", "Shutdown complete")

    def shutdown(self):
        """Request shutdown (safe to call from a signal handler)"""
        log_info("Proxy", "Shutting down...")
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Forward UPnP events to action calls")
    parser.add_argument("--host", default=LISTEN_HOST, help=f"Address to listen on (default: {LISTEN_HOST})")
    parser.add_argument("--port", type=int, default=LISTEN_PORT, help=f"Port to listen on (default: {LISTEN_PORT})")
    parser.add_argument("--debug", action="store_true", default=DEBUG, help="Enable debug logging")
    return parser.parse_args(argv)


async def _serve(app: UPnPEventProxy):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass
    await app.run()


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    if args.debug:
        set_log_level(LOG_LEVEL_DEBUG)
        log_info("Startup", "DEBUG mode enabled - Log level set to DEBUG")
    else:
        set_log_level(LOG_LEVEL_INFO)

    app = UPnPEventProxy(host=args.host, port=args.port)
    try:
        asyncio.run(_serve(app))
    except OSError as e:
        log_error("Startup", f"Cannot listen on {args.host}:{args.port}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
