"""
Performs an `echo` call against a local server, streaming two lines of input.

    python run_echo_call.py [ws://localhost:3000]
"""

import asyncio
import sys

from pow_client import CallHooks, CallSession, CallSpec, RemoteDescriptor


async def on_connect(session: CallSession) -> None:
    await session.send_text("hello")
    await session.send_text("world")
    await session.close_input()


async def main(url: str) -> None:
    session = CallSession(
        RemoteDescriptor(url=url),
        CallSpec.create("echo", "random", "params"),
        CallHooks(on_connect=on_connect, on_log_line=lambda _, line: print(line)),
    )
    print(await session.connect())

asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:3000"))
