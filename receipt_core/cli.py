"""
Command line entry point.

    receipt-core image photo.heic
    receipt-core text ocr_output.txt
    receipt-core email forwarded.html --subject "Your order" --sender orders@shop.com

Prints the extracted record as JSON. Exit code 2 means the input is not a
receipt, 1 means it could not be processed.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import settings
from .exceptions import NotAReceiptError, ProcessingError
from .services.ingestion import ReceiptProcessor

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROCESSING_ERROR = 1
EXIT_NOT_A_RECEIPT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='receipt-core',
        description='Extract structured purchase data from receipt photos, OCR text and emails',
    )
    subcommands = parser.add_subparsers(dest='command', required=True)

    image = subcommands.add_parser('image', help='Preprocess, OCR and parse a receipt photo')
    image.add_argument('path', type=Path)

    text = subcommands.add_parser('text', help='Validate and parse already-recognized receipt text')
    text.add_argument('path', type=Path)

    email = subcommands.add_parser(
        'email', help='Parse a forwarded email body (.html, .txt, or a .json payload)'
    )
    email.add_argument('path', type=Path)
    email.add_argument('--subject', '-s', type=str, help='Email subject line')
    email.add_argument('--sender', '-f', type=str, help='Sender address')

    parser.add_argument(
        '--log-level', default=settings.LOG_LEVEL,
        help='Logging level (default from LOG_LEVEL)'
    )
    return parser


def load_email_payload(path: Path, subject: Optional[str] = None, sender: Optional[str] = None) -> dict:
    """Read an email file into a payload dict; command line flags override file values."""
    raw = path.read_text(encoding='utf-8', errors='replace')
    if path.suffix.lower() == '.json':
        payload = json.loads(raw)
    elif path.suffix.lower() in ('.html', '.htm') or '<html' in raw.lower():
        payload = {'html': raw}
    else:
        payload = {'text': raw}

    if subject:
        payload['subject'] = subject
    if sender:
        payload['sender'] = sender
    return payload


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    with ReceiptProcessor() as processor:
        try:
            if args.command == 'image':
                record = processor.process_image(args.path.read_bytes())
            elif args.command == 'text':
                record = processor.process_text(args.path.read_text(encoding='utf-8', errors='replace'))
            else:
                payload = load_email_payload(args.path, args.subject, args.sender)
                record = processor.process_email(payload)
        except NotAReceiptError as e:
            print(json.dumps(e.to_dict(), indent=2))
            return EXIT_NOT_A_RECEIPT
        except (ProcessingError, OSError, ValueError) as e:
            logger.error("Failed to process %s", args.path, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_PROCESSING_ERROR

    print(record.model_dump_json(by_alias=True, indent=2))
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
