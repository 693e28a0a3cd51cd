"""CLI entry point for the IBM watsonx provider.

Usage:
    watsonx-provider models
    watsonx-provider models --json
    watsonx-provider chat "What is the maintenance interval for a chiller?"
    watsonx-provider chat --model-id ibm/granite-3-3-8b-instruct --max-tokens 512 "Hello"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from openai import APIStatusError

from .errors import ProviderError
from .watsonx import IBMWatsonxProvider

_DEFAULT_MODEL_ID = "mistralai/mistral-small-24b-instruct-2501"

_LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_LOG_DATE_FORMAT = "%H:%M:%S"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watsonx-provider",
        description="List IBM watsonx models or send a chat message through the provider.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
environment variables:
  IBM_WATSONX_API_KEY         IBM Cloud API key (required)
  IBM_WATSONX_PROJECT_ID      watsonx project ID
  IBM_WATSONX_SPACE_ID        watsonx deployment space ID
  IBM_WATSONX_INSTANCE_CRN    watsonx machine learning instance CRN
  IBM_WATSONX_API_BASE_URL    watsonx endpoint (optional, defaults to us-south)

  At least one of project, space or instance CRN is needed for chat.

examples:
  watsonx-provider models --json
  watsonx-provider chat --temperature 0.2 "Summarise ISO 55000 in one line."
""",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show INFO-level progress logs on stderr (default: WARNING+ only).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    models = sub.add_parser("models", help="List available models.")
    models.add_argument(
        "--static-only",
        action="store_true",
        help="Skip the network and list only the built-in models.",
    )
    models.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output the model list as JSON.",
    )

    chat = sub.add_parser("chat", help="Send a single user message.")
    chat.add_argument("prompt", help="The message to send.")
    chat.add_argument(
        "--model-id",
        default=_DEFAULT_MODEL_ID,
        metavar="MODEL_ID",
        help=f"watsonx model ID (default: {_DEFAULT_MODEL_ID}).",
    )
    chat.add_argument("--temperature", type=float, default=None)
    chat.add_argument("--max-tokens", type=int, default=None)
    chat.add_argument("--top-p", type=float, default=None)
    chat.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output the raw completion as JSON.",
    )
    return parser


def _setup_logging(verbose: bool) -> None:
    """Configure root logger to stderr; level depends on --verbose."""
    level = logging.INFO if verbose else logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))
    logging.root.handlers.clear()
    logging.root.addHandler(handler)
    logging.root.setLevel(level)


async def _list_models(provider: IBMWatsonxProvider, args: argparse.Namespace) -> None:
    if args.static_only:
        models = list(provider.static_models)
    else:
        models = await provider.list_models()

    if args.output_json:
        print(json.dumps([m.to_dict() for m in models], indent=2))
        return

    for m in models:
        print(f"  {m.name:<60} {m.max_token_allowed:>6}  {m.label}")


async def _chat(provider: IBMWatsonxProvider, args: argparse.Namespace) -> None:
    params = {
        key: value
        for key, value in (
            ("temperature", args.temperature),
            ("max_tokens", args.max_tokens),
            ("top_p", args.top_p),
        )
        if value is not None
    }
    async with provider.get_model_instance(args.model_id) as model:
        completion = await model.chat(
            [{"role": "user", "content": args.prompt}], **params
        )

    if args.output_json:
        print(completion.model_dump_json(indent=2))
        return
    print(completion.choices[0].message.content or "")


async def _run(args: argparse.Namespace) -> None:
    provider = IBMWatsonxProvider()
    if args.command == "models":
        await _list_models(provider, args)
    else:
        await _chat(provider, args)


def main() -> None:
    from dotenv import load_dotenv
    load_dotenv()
    args = _build_parser().parse_args()
    _setup_logging(args.verbose)
    try:
        asyncio.run(_run(args))
    except APIStatusError as exc:
        print(f"error: {exc.status_code} {exc.message}", file=sys.stderr)
        sys.exit(1)
    except ProviderError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
