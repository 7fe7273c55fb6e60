"""
Example usage of the WhatsApp REST API.

    python examples/client.py status
    python examples/client.py qr
    python examples/client.py send 628999812190 "Hello from WhatsApp API!"
    python examples/client.py image 628999812190 ./image.jpg "Check out this image!"

Set WA_REST_URL to point at another server (default http://localhost:3000).
"""

import asyncio
import os
import sys

import aiohttp

BASE_URL = os.getenv("WA_REST_URL", "http://localhost:3000")


async def check_status(session):
    async with session.get(f"{BASE_URL}/status") as resp:
        data = await resp.json()
        print("Server Status:", data)
        return data


async def get_qr_code(session):
    async with session.get(f"{BASE_URL}/qr") as resp:
        data = await resp.json()
        print("QR Code:", data)
        return data


async def send_text_message(session, number, message):
    async with session.post(f"{BASE_URL}/send-message", json={"number": number, "message": message}) as resp:
        data = await resp.json()
        print("Message sent:", data)
        return data


async def send_message_with_image(session, number, image_path, caption=""):
    status = await check_status(session)
    if not status.get("isReady"):
        print(f"WhatsApp client is not ready! Scan the QR code first at: {BASE_URL}/qr/display")
        return None

    with open(image_path, "rb") as image:
        form = aiohttp.FormData()
        form.add_field("number", number)
        form.add_field("message", caption)
        form.add_field("image", image, filename=os.path.basename(image_path))

        async with session.post(f"{BASE_URL}/send-message", data=form) as resp:
            data = await resp.json()

    if resp.status == 200 and data.get("status") == "success":
        print(f"Message with image sent, id: {data.get('messageId')}")
    else:
        print("Error sending message:", data)
    return data


async def main(argv):
    if not argv:
        print(__doc__)
        return 1

    command, args = argv[0], argv[1:]
    async with aiohttp.ClientSession() as session:
        if command == "status":
            await check_status(session)
        elif command == "qr":
            await get_qr_code(session)
        elif command == "send" and len(args) == 2:
            await send_text_message(session, *args)
        elif command == "image" and len(args) in (2, 3):
            if not os.path.exists(args[1]):
                print(f"Image file not found at: {args[1]}")
                return 1
            await send_message_with_image(session, *args)
        else:
            print(__doc__)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
