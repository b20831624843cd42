#!/usr/bin/env python3
"""Generate an image from a text prompt with a configured provider.

Usage:
  python scripts/image_gen.py --prompt "a red fox" --provider openai
  python scripts/image_gen.py --prompt "make it snow" --provider replicate \
    --model black-forest-labs/flux-kontext-pro --source-image https://example.com/in.png
  python scripts/image_gen.py --list-providers

Notes:
- Loads .env from the nearest parent directory without overriding set variables.
- Prints the JSON payload the editor expects: {url, id?, status} or {code, message}.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent))

from image_gen_api.api import default_service  # noqa: E402
from image_gen_api.core.contracts import ASPECT_RATIOS, MODERATION_LEVELS, STYLES  # noqa: E402
from image_gen_api.core.errors import ImageGenError  # noqa: E402


def _find_repo_dotenv() -> Path | None:
    current = Path(__file__).resolve()
    for parent in (current.parent, *current.parents):
        dotenv_path = parent / ".env"
        if dotenv_path.exists():
            return dotenv_path
    return None


def _load_repo_dotenv() -> Path | None:
    dotenv_path = _find_repo_dotenv()
    if dotenv_path is not None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        return dotenv_path
    load_dotenv(override=False)
    return None


def _configure_logging(verbose: bool) -> None:
    debug = verbose or os.getenv("AI_IMAGE_GEN_DEBUG", "").strip().lower() in {"1", "true", "yes"}
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate an image from a text prompt.")
    parser.add_argument("--prompt", help="Text prompt for the image.")
    parser.add_argument("--provider", default="auto", help="Provider id (openai, replicate, auto).")
    parser.add_argument("--model", help="Model id; defaults to the configured model.")
    parser.add_argument("--aspect-ratio", choices=ASPECT_RATIOS)
    parser.add_argument("--output-format", choices=["webp", "png", "jpg"])
    parser.add_argument("--output-quality", type=int)
    parser.add_argument("--style", choices=STYLES)
    parser.add_argument("--moderation", choices=MODERATION_LEVELS)
    parser.add_argument("--source-image", action="append", default=[], help="Source image URL (repeatable).")
    parser.add_argument("--mask", help="Mask image URL for inpainting.")
    parser.add_argument("--out", help="Directory for generated images (default outputs/ai_image_gen).")
    parser.add_argument("--no-persist", action="store_true", help="Return the provider URL without saving.")
    parser.add_argument("--list-providers", action="store_true", help="List providers with a configured key.")
    parser.add_argument(
        "--list-image-to-image",
        action="store_true",
        help="List providers whose configured model supports image-to-image.",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def _print(payload) -> None:
    print(json.dumps(payload, indent=2))


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _load_repo_dotenv()
    _configure_logging(args.verbose)

    if args.list_providers or args.list_image_to_image:
        service = default_service(persist=False)
        if args.list_providers:
            _print(service.list_providers())
        if args.list_image_to_image:
            _print(service.list_image_to_image_providers())
        return 0

    if not args.prompt:
        parser.print_usage(sys.stderr)
        print("error: --prompt is required", file=sys.stderr)
        return 2

    params = {
        "aspect_ratio": args.aspect_ratio,
        "output_format": args.output_format,
        "output_quality": args.output_quality,
        "style": args.style,
        "moderation": args.moderation,
        "mask_url": args.mask,
    }
    if args.source_image:
        params["source_image_url"] = args.source_image[0]
        params["additional_image_urls"] = args.source_image[1:]

    service = default_service(args.out, persist=not args.no_persist)
    try:
        result = service.generate(args.prompt, args.provider, model=args.model, **params)
    except ImageGenError as exc:
        _print(exc.to_payload())
        return 1
    _print(result.to_payload())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
