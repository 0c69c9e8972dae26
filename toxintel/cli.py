"""
CLI interface for Toxic Intelligence
"""

import sys
import json
import logging
import argparse

from . import config
from .analysis_client import AnalysisClient, build_default_client
from .parser import ChatLineParser, count_by_sender_type
from .pipeline import EmptyImportError, ImportPipeline, analyze_text
from .storage import ConversationNotFound, MessageStore

logger = logging.getLogger(__name__)


def _write_json(data: dict, output_file: str = None):
    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Report saved to {output_file}")
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False))


def analyze_file(filepath: str, output_file: str = None, mock: bool = False) -> dict:
    """
    Analyze a chat export in memory and print or save a JSON report.

    Args:
        filepath: Path to the chat export
        output_file: Optional output JSON file
        mock: Use mock analysis responses (for testing)

    Returns:
        Report dict
    """
    logger.info(f"Analyzing file: {filepath}")

    valid, msg = config.validate_config()
    if not valid and not mock:
        logger.warning(f"Configuration: {msg}")

    parser = ChatLineParser()
    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        raw = f.read()

    analyzer = AnalysisClient(mock_mode=True, use_cache=False) if mock else build_default_client()
    report = analyze_text(raw, analyzer=analyzer, parser=parser)
    report["metadata"]["source"] = filepath

    _write_json(report, output_file)
    return report


def validate_file(filepath: str) -> bool:
    """Parse a file and report how its lines were classified."""
    messages = ChatLineParser().parse_file(filepath)
    counts = count_by_sender_type(messages)
    print(f"Parsed {len(messages)} messages: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return len(messages) > 0


def import_file(filepath: str, conversation_id: str = None, title: str = None) -> dict:
    """Import a chat export into the configured store and return its summary."""
    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        raw = f.read()
    # A new conversation is only created once the export yields messages
    if not ChatLineParser().parse(raw):
        raise EmptyImportError(f"No messages found in {filepath}")

    store = MessageStore()
    pipeline = ImportPipeline(store, analyzer=build_default_client())
    if conversation_id is None:
        conversation_id = store.create_conversation(title or filepath).id
        logger.info(f"Created conversation {conversation_id}")

    imported = pipeline.import_raw(conversation_id, raw)

    return {
        "conversation_id": conversation_id,
        "imported": imported,
        "summary": pipeline.get_summary(conversation_id).to_dict(),
    }


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Toxic Intelligence - chat toxicity and relationship risk analyzer"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_p = subparsers.add_parser("analyze", help="Analyze a chat export without storing it")
    analyze_p.add_argument("filepath", help="Path to chat export .txt file")
    analyze_p.add_argument("-o", "--output", dest="output_file", help="Output JSON file path")
    analyze_p.add_argument("--mock", action="store_true", help="Use mock analysis responses")

    validate_p = subparsers.add_parser("validate", help="Parse a chat export and count message types")
    validate_p.add_argument("filepath", help="Path to chat export .txt file")

    import_p = subparsers.add_parser("import", help="Import a chat export into the store")
    import_p.add_argument("filepath", help="Path to chat export .txt file")
    import_p.add_argument("--conversation", dest="conversation_id", help="Existing conversation id")
    import_p.add_argument("--title", help="Title for a new conversation")

    summary_p = subparsers.add_parser("summary", help="Show a stored conversation summary")
    summary_p.add_argument("conversation_id", help="Conversation id")

    serve_p = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=5000)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "validate":
            return 0 if validate_file(args.filepath) else 1

        if args.command == "analyze":
            report = analyze_file(args.filepath, args.output_file, args.mock)
            logger.info(f"Breakup risk: {report['summary']['breakup_risk_score']:.2f}")
            return 0

        if args.command == "import":
            _write_json(import_file(args.filepath, args.conversation_id, args.title))
            return 0

        if args.command == "summary":
            store = MessageStore()
            if store.get_conversation(args.conversation_id) is None:
                logger.error(f"Conversation not found: {args.conversation_id}")
                return 1
            _write_json(ImportPipeline(store).get_summary(args.conversation_id).to_dict())
            return 0

        if args.command == "serve":
            from .api import create_app
            create_app().run(host=args.host, port=args.port, use_reloader=config.DEV_USE_RELOADER)
            return 0

    except (EmptyImportError, ConversationNotFound, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
