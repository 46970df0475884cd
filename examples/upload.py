import asyncio
import sys

import click

from formwire import Encoding, Multipart, Request


async def main(path: str) -> None:
    form = Multipart()
    form.add_text("name", "John Doe")
    await form.add_file_from_path("attachment", path, Encoding.BASE64)

    req = Request("POST", "https://httpbin.org/post")
    await form.attach_to_request(req, chunk_size=8192)

    click.secho(f"Content-Type: {req.header('Content-Type')}", fg="green")
    click.secho(f"Content-Length: {req.header('Content-Length')}", fg="green")

    body = await req.read_body()
    print(body.decode("utf-8", errors="replace"))


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else __file__))
