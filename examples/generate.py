"""Buffered and streamed generation against a local server."""

from __future__ import annotations

import asyncio

from suhaider import GenerateRequest, JsonSchema, SuhAiderClient, load_config, run_blocking


def structured() -> None:
    schema = JsonSchema(properties={"city": {"type": "string"}, "country": {"type": "string"}},
                        required=["city", "country"])
    with SuhAiderClient(load_config()) as client:
        response = client.generate(GenerateRequest(model="llama3.2", prompt="Where is the Eiffel tower?",
                                                   response_schema=schema))
        print(response.response)


def streamed() -> None:
    with SuhAiderClient(load_config()) as client:
        request = GenerateRequest(model="llama3.2", prompt="Write a haiku about rivers.")
        result = run_blocking(
            lambda handler: client.generate_stream(request, handler),
            on_event=lambda e: print(e.content, end="", flush=True),
        )
        print(f"\n({result.formatted_duration})")


async def pull_then_chat() -> None:
    with SuhAiderClient(load_config()) as client:
        result = await client.apull_model("llama3.2")
        if result.is_success:
            print(client.chat_text("llama3.2", "Say hello.", system_prompt="Be brief."))


if __name__ == "__main__":
    structured()
    streamed()
    asyncio.run(pull_then_chat())
