#!/usr/bin/env python3
"""
Example: Streaming a multipart body without loading files into memory.

Shows the push (async iterator) and pull (reader) forms of the same body.
"""
from __future__ import annotations

import asyncio
import sys

from formwire import Encoding, Multipart


async def push_stream(path: str) -> None:
    print("=== Push stream ===")
    form = Multipart()
    form.add_text("description", "streamed upload")
    await form.add_file_from_path("file", path, Encoding.BASE64)
    print(f"Size hint: {form.size_hint()}")

    total = 0
    count = 0
    async for chunk in form.render_to_stream(chunk_size=4096):
        total += len(chunk)
        count += 1
    print(f"Produced {total} bytes in {count} chunks")


async def pull_reader(path: str) -> None:
    print("\n=== Pull reader ===")
    form = Multipart()
    await form.add_file_from_path("file", path, Encoding.QUOTED_PRINTABLE)
    print(f"Size hint: {form.size_hint()}")

    reader = form.render_to_reader(chunk_size=4096)
    total = 0
    while True:
        data = await reader.read(1000)
        if not data:
            break
        total += len(data)
    print(f"Read {total} bytes")


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else __file__
    asyncio.run(push_stream(target))
    asyncio.run(pull_reader(target))
