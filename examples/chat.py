"""Chat example with account-linkage redirect.

Sends a chat message. If the server asks for an account to be linked
first, prints the URL and polls until the retried request streams.

Prerequisites:
    The example server running at http://localhost:8080 (see serve.py).
"""

import asyncio
import logging

import jobstream

logging.basicConfig(level=logging.INFO)


async def main():
    redirects: list[str] = []
    replies: dict[str, dict] = {}

    callbacks = jobstream.StreamCallbacks(
        on_event=lambda messages: replies.update({m["id"]: m for m in messages}),
        on_error=lambda message: print(f"Chat failed: {message}"),
        on_redirect=redirects.append,
    )
    payload = {"userId": "u-1", "message": "How is my candidate doing?"}

    async with jobstream.StreamClient(
        "http://localhost:8080", vocabulary=jobstream.CHAT_VOCABULARY
    ) as client:

        async def attempt():
            redirects.clear()
            await client.open(payload, "/api/assessments/chat", callbacks)
            if redirects:
                print("Link your account at", redirects[-1])
                return False
            return True

        try:
            await jobstream.poll_until(attempt, interval=7.0, max_attempts=60)
        except jobstream.PollTimeoutError as e:
            print(e)
            return

    for message in replies.values():
        print(f"[{message['messageType']}] {message['text']}")


if __name__ == "__main__":
    asyncio.run(main())
