"""Interactive terminal chat against the agent engine."""

import argparse
import asyncio
import getpass
import logging
import os

from conversational_agent.agent.output import OutputChannel
from conversational_agent.agent_service import AgentService
from conversational_agent.errors import MissingAPIKeyError
from conversational_agent.interfaces.langchain.agent_state import (
    AgentResult,
    RequestInput,
    StepResult,
)
from conversational_agent.key_storage.key_manager import APIKeyManager
from conversational_agent.utils.env import load_env


class ConsoleOutputChannel:
    """Prints acknowledgements, step results and errors as they happen."""

    async def send_ack(self, chat_id: str, text: str) -> None:
        print(f"⏳ {text}")

    async def send_text(self, chat_id: str, text: str) -> None:
        print(text)

    async def send_step_result(self, chat_id: str, step: StepResult) -> None:
        print(f"✅ Step {step.step_number}: {step.action}")
        for line in (step.text, step.image_url, step.video_url, step.audio_url):
            if line:
                print(f"   {line}")
        if step.poll:
            print(f"   📊 {step.poll.question}: {' / '.join(step.poll.options)}")

    async def send_error(self, chat_id: str, error: str) -> None:
        print(error)


def print_result(result: AgentResult) -> None:
    if result.already_sent:
        print(f"🏁 {result.steps_completed}/{result.total_steps} steps completed")
        return
    if result.text:
        print(f"\n{result.text}")
    media = (("🖼️", result.image_url), ("🎬", result.video_url), ("🔊", result.audio_url))
    for label, url in media:
        if url:
            print(f"{label} {url}")
    if result.poll:
        print(f"📊 {result.poll.question}")
        for option in result.poll.options:
            print(f"   - {option}")
    if not result.success and result.error:
        print(f"❌ {result.error}")


async def async_main(chat_id: str, verbose: bool = False) -> None:
    """Async entry point for the terminal chat."""
    key_manager = APIKeyManager()
    existing_key, source = key_manager.get_api_key()
    if not existing_key:
        existing_key = prompt_for_api_key(key_manager)
        if not existing_key:
            return
        os.environ[APIKeyManager.ENV_VAR_API_KEY] = existing_key
    else:
        print(f"✅ Using existing API key from {source.value}")

    output: OutputChannel = ConsoleOutputChannel()
    try:
        service = AgentService(output=output)
    except MissingAPIKeyError as e:
        print(f"❌ Error: {e}")
        return

    service.start()
    print("Enter a message (or 'exit' to quit):\n")
    message_number = 0
    try:
        while True:
            query = (await asyncio.to_thread(input, "> ")).strip()
            if query.lower() in ["exit", "quit"]:
                break
            if not query:
                continue

            message_number += 1
            request_input = RequestInput(
                user_text=query, original_message_id=f"cli-{message_number}"
            )
            try:
                result = await service.handle_message(chat_id, request_input)
                print_result(result)
            except Exception as e:
                print(f"❌ Error: {e}")
                if verbose:
                    logging.getLogger(__name__).exception("Request failed")
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        await service.shutdown()


def prompt_for_api_key(key_manager: APIKeyManager) -> str | None:
    """Prompt for an API key and try to keep it in the OS keychain.

    Returns:
        The API key, or None if the user cancelled
    """
    print("\n🔑 No API key found. Let's configure one now.")
    try:
        api_key = getpass.getpass("Enter your OpenAI API key: ").strip()
        if not api_key:
            print("❌ No API key provided. Exiting.")
            return None

        success, error = key_manager.store_api_key(api_key)
        if success:
            print("✅ API key saved to the OS keychain!")
        else:
            print(f"⚠️ Could not save API key ({error}), but will use it for this session.")
        return api_key
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled by user.")
        return None


def main() -> None:
    """Synchronous entry point that runs the async main function."""
    load_env()
    parser = argparse.ArgumentParser(description="Conversational agent terminal chat")
    parser.add_argument("--chat-id", default="cli", help="Chat identifier to use")
    parser.add_argument(
        "--verbose", action="store_true", help="Log engine activity to the terminal"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    asyncio.run(async_main(args.chat_id, verbose=args.verbose))


if __name__ == "__main__":
    main()
